import argparse
import sys

import config
from graphs import build_custom_graph_from_json, build_graph
from loader import format_log, load_events, load_graph, write_log
from network import Network, RoundLimitExceeded


def parse_args_once():
    parser = argparse.ArgumentParser(description="Simulate ring leader election with node failures.")
    parser.add_argument("graph", nargs="?", default=None, help="Graph file: '<id> <neighbour> ...' per line")
    parser.add_argument("events", nargs="?", default=None, help="Events file: 'ELECT <round> <ids...>' / 'FAIL <round> <id>'")
    parser.add_argument("--generate", choices=["ring", "chordal", "complete", "random"], default=None, help="Generate the topology instead of reading a graph file")
    parser.add_argument("--custom-graph", type=str, default=None, help="Path to JSON file for the topology")
    parser.add_argument("--n", type=int, default=5, help="Number of nodes for --generate")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for --generate")
    parser.add_argument("--shuffle", action="store_true", help="Shuffle node ids around the generated ring")
    parser.add_argument("--log", type=str, default=config.DEFAULT_LOG_FILE, help="Result log file")
    parser.add_argument("--period", type=float, default=config.ROUND_PERIOD, help="Seconds per round")
    parser.add_argument("--max-rounds", type=int, default=config.MAX_ROUNDS, help="Give up after this many rounds")
    parser.add_argument("--quiet", action="store_true", help="Do not trace rounds and messages")
    return parser


def load_inputs(args, parser):
    # with a generated or JSON topology the only positional is the events file
    try:
        if args.generate is not None:
            entries = build_graph(args.generate, args.n, seed=args.seed, shuffle=args.shuffle)
            events_path = args.graph
        elif args.custom_graph is not None:
            entries = build_custom_graph_from_json(args.custom_graph)
            events_path = args.graph
        else:
            if args.graph is None or args.events is None:
                parser.error("a graph file and an events file are required")
            entries = load_graph(args.graph)
            events_path = args.events
        if events_path is None:
            parser.error("an events file is required")
        schedule = load_events(events_path)
    except (OSError, ValueError) as exc:
        parser.error(str(exc))
    return entries, schedule


def run_once(args, parser):
    entries, schedule = load_inputs(args, parser)
    try:
        net = Network.from_entries(entries, schedule, period=args.period, verbose=not args.quiet)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        result = net.run(max_rounds=args.max_rounds)
    except RoundLimitExceeded as exc:
        result = exc.result
    write_log(result, args.log)

    print("")
    print(format_log(result), end="")
    return result


def main(argv=None):
    parser = parse_args_once()
    args = parser.parse_args(argv)
    result = run_once(args, parser)
    return 0 if result.completed else 1


if __name__ == "__main__":
    sys.exit(main())
