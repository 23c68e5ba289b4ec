import collections

import networkx as nx

from node import Node, connect_nodes


class SimulationHalted(Exception):
    """Base class for conditions that end the whole simulation."""


class Disconnected(SimulationHalted):
    def __init__(self, failed_id, components=None):
        self.failed_id = failed_id
        self.components = components or []
        super().__init__(f"graph disconnected after failure of node {failed_id}")


class Unreachable(SimulationHalted):
    def __init__(self, source, target):
        self.source = source
        self.target = target
        super().__init__(f"no path from node {source} to node {target}")


class Topology:
    """
    Live nodes in load order, their neighbour sets and the virtual ring.

    The ring is laid over the declared adjacency once at load time: entry i
    is linked to entry i+1, wrapping around, and both ring links are added
    to the neighbour sets.
    """

    def __init__(self, nodes: dict[int, Node], order: list[int]):
        self.nodes = nodes
        self.order = list(order)

    @classmethod
    def from_entries(cls, entries, on_elected=None, verbose=False):
        """
        Build a topology from ``[(node_id, [neighbour ids]), ...]``.

        Explicit neighbours are made symmetric; a node listing itself is
        ignored.
        """
        nodes = {}
        order = []
        for node_id, _ in entries:
            if node_id in nodes:
                raise ValueError(f"duplicate node id {node_id}")
            nodes[node_id] = Node(node_id, on_elected=on_elected, verbose=verbose)
            order.append(node_id)

        for node_id, neighbours in entries:
            for nid in neighbours:
                if nid not in nodes:
                    raise ValueError(f"node {node_id} lists unknown neighbour {nid}")
                if nid != node_id:
                    connect_nodes(nodes[node_id], nodes[nid])

        n = len(order)
        for i, node_id in enumerate(order):
            node = nodes[node_id]
            node.next = order[(i + 1) % n]
            node.prev = order[i - 1]
            node.add_neighbor(node.next)
            node.add_neighbor(node.prev)

        return cls(nodes, order)

    def __contains__(self, node_id):
        return node_id in self.nodes and not self.nodes[node_id].failed

    def __getitem__(self, node_id) -> Node:
        return self.nodes[node_id]

    def __len__(self):
        return len(self.order)

    def live_ids(self):
        return list(self.order)

    def live_nodes(self):
        return [self.nodes[i] for i in self.order]

    def adjacency(self):
        return {i: set(self.nodes[i].neighbors) for i in self.order}

    def to_networkx(self):
        G = nx.Graph()
        G.add_nodes_from(self.order)
        for u in self.order:
            for v in self.nodes[u].neighbors:
                G.add_edge(u, v)
        return G

    def is_connected(self):
        if not self.order:
            return False
        return nx.is_connected(self.to_networkx())

    def remove_node(self, node_id):
        """
        Fail a node and relink the ring around it.

        Returns the id of the node that has to start a fresh election, or
        raises Disconnected when the remaining nodes no longer form one
        connected graph.
        """
        if node_id not in self:
            raise KeyError(f"node {node_id} is not live")

        failed = self.nodes[node_id]
        for nid in failed.get_neighbours():
            if nid in self:
                self.nodes[nid].notify_failure(node_id)

        prev, nxt = self.nodes[failed.prev], self.nodes[failed.next]
        prev.next = failed.next
        prev.next_is_dead = True
        nxt.prev = failed.prev

        failed.fail()
        self.order.remove(node_id)

        if not self.is_connected():
            components = [sorted(c) for c in nx.connected_components(self.to_networkx())]
            raise Disconnected(node_id, components)
        return self.order[0]

    def next_hop(self, source, target):
        """
        Neighbour of ``source`` on a shortest path towards ``target``.

        Breadth-first search starts at ``target`` and stops at the first
        explored node that lists ``source`` as a neighbour.
        """
        if target not in self:
            raise Unreachable(source, target)
        # a lone survivor relaying to itself
        if source == target:
            return target

        visited = {target}
        queue = collections.deque([target])
        while queue:
            current = self.nodes[queue.popleft()]
            if source in current.neighbors:
                return current.id
            for nid in current.get_neighbours():
                if nid not in visited and nid in self:
                    visited.add(nid)
                    queue.append(nid)

        raise Unreachable(source, target)
