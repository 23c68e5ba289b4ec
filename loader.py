"""
Input and output files of the simulator.

Graph file, one node per line, load order is the ring order:

    <node id> <neighbour id> <neighbour id> ...

Events file:

    ELECT <round> <node id> [<node id> ...]
    FAIL <round> <node id>
"""

from network import Schedule, Status


def _ints(tokens, path, lineno):
    try:
        return [int(t) for t in tokens]
    except ValueError:
        raise ValueError(f"{path}:{lineno}: expected integers, got {' '.join(tokens)!r}") from None


def load_graph(path):
    entries = []
    with open(path, 'r') as f:
        for lineno, line in enumerate(f, start=1):
            tokens = line.split()
            if not tokens:
                continue
            ids = _ints(tokens, path, lineno)
            entries.append((ids[0], ids[1:]))
    if not entries:
        raise ValueError(f"{path}: graph file has no nodes")
    return entries


def load_events(path):
    schedule = Schedule()
    with open(path, 'r') as f:
        for lineno, line in enumerate(f, start=1):
            tokens = line.split()
            if not tokens:
                continue
            command, args = tokens[0], _ints(tokens[1:], path, lineno)

            if command == "ELECT":
                if len(args) < 2:
                    raise ValueError(f"{path}:{lineno}: ELECT needs a round and at least one node")
                schedule.elections.setdefault(args[0], []).extend(args[1:])
            elif command == "FAIL":
                if len(args) != 2:
                    raise ValueError(f"{path}:{lineno}: FAIL needs a round and one node")
                if args[0] in schedule.failures:
                    raise ValueError(f"{path}:{lineno}: round {args[0]} already has a failure")
                schedule.failures[args[0]] = args[1]
            else:
                raise ValueError(f"{path}:{lineno}: unknown command {command!r}")
    return schedule


def format_log(result):
    lines = ["Part A"]
    lines += [f"Leader Node {leader}" for leader in result.elected_a]
    lines += ["", "Part B"]
    lines += [f"Leader Node {leader}" for leader in result.elected_b]
    if result.status is Status.COMPLETED:
        lines.append("simulation completed")
        return "\n".join(lines) + "\n"

    if result.status is Status.DISCONNECTED:
        status = f"graph disconnected at round {result.round}"
    elif result.status is Status.UNREACHABLE:
        status = f"unreachable node at round {result.round}"
    else:
        status = f"round limit reached at round {result.round}"
    if result.reason:
        status += f": {result.reason}"
    lines.append(status)
    return "\n".join(lines) + "\n"


def write_log(result, path):
    with open(path, 'w', encoding='utf-8') as f:
        f.write(format_log(result))
