import json
import random

import networkx as nx


def entries_from_networkx(G, order=None):
    """
    Convert a networkx graph to topology entries ``[(id, [neighbours]), ...]``.

    ``order`` fixes the load order, and with it the ring; by default the
    graph's own node order is used.
    """
    order = list(G.nodes()) if order is None else list(order)
    return [(int(u), sorted(int(v) for v in G.neighbors(u))) for u in order]


def _relabel(G, ids):
    return nx.relabel_nodes(G, dict(zip(sorted(G.nodes()), ids)))


def _ids(n, seed=None, shuffle=False, first_id=1):
    ids = list(range(first_id, first_id + n))
    if shuffle:
        random.Random(seed).shuffle(ids)
    return ids


def build_ring(n, seed=None, shuffle=False):
    """Plain ring; node ids are 1..n, optionally shuffled around the ring."""
    ids = _ids(n, seed, shuffle)
    G = _relabel(nx.cycle_graph(n), ids)
    return entries_from_networkx(G, order=ids)


def build_chordal_ring(n, k=2, p=0.3, seed=None, shuffle=False):
    # ring lattice plus random shortcuts, no rewiring
    ids = _ids(n, seed, shuffle)
    G = nx.newman_watts_strogatz_graph(n, k, p, seed=seed)
    G = _relabel(G, ids)
    return entries_from_networkx(G, order=ids)


def build_complete_graph(n, seed=None, shuffle=False):
    ids = _ids(n, seed, shuffle)
    G = _relabel(nx.complete_graph(n), ids)
    return entries_from_networkx(G, order=ids)


def build_random_graph(n, p=0.3, seed=None, shuffle=False):
    # the ring overlay added at load time keeps the graph connected
    ids = _ids(n, seed, shuffle)
    G = _relabel(nx.gnp_random_graph(n, p, seed=seed), ids)
    return entries_from_networkx(G, order=ids)


def build_graph(graph, n, seed=None, shuffle=False):
    if graph == "ring":
        return build_ring(n, seed, shuffle)
    if graph in {"chordal", "chordal_ring"}:
        return build_chordal_ring(n, seed=seed, shuffle=shuffle)
    if graph == "complete":
        return build_complete_graph(n, seed, shuffle)
    if graph in {"random", "gnp"}:
        return build_random_graph(n, seed=seed, shuffle=shuffle)
    raise ValueError(f"unknown graph type {graph!r}")


def build_custom_graph_from_json(json_path: str):
    """
    Load topology entries from a JSON file.

    Supported JSON formats:

    1. Adjacency list, load order is the key order:
       {"adjacency": {"1": [2, 3], "2": [1], "3": [1]}}

    2. Node-link format, load order is the node order:
       {"nodes": [1, 2, 3], "edges": [[1, 2], [2, 3]]}
       {"nodes": [{"id": 1}, {"id": 2}], "links": [{"source": 1, "target": 2}]}
    """
    with open(json_path, 'r') as f:
        data = json.load(f)

    G = nx.Graph()

    if "adjacency" in data:
        for node_id in data["adjacency"]:
            G.add_node(int(node_id))
        for node_id, neighbors in data["adjacency"].items():
            for neighbor in neighbors:
                G.add_edge(int(node_id), int(neighbor))

    elif "nodes" in data:
        for node in data["nodes"]:
            G.add_node(int(node["id"]) if isinstance(node, dict) else int(node))
        for edge in data.get("edges", data.get("links", [])):
            if isinstance(edge, dict):
                source = edge.get("source", edge.get("from"))
                target = edge.get("target", edge.get("to"))
            else:
                source, target = edge[0], edge[1]
            if int(source) not in G or int(target) not in G:
                raise ValueError(f"edge {source}-{target} references an unknown node")
            G.add_edge(int(source), int(target))

    else:
        raise ValueError(
            "Invalid JSON format. Expected either 'adjacency' or 'nodes' key."
        )

    return entries_from_networkx(G)
