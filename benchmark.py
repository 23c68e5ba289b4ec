"""
Batch runs of the election over generated topologies.

Every sample builds a graph, starts the election from a random set of nodes,
optionally fails one node after the first election has settled, and checks
that each phase elected exactly one leader: the highest live id.
Samples run in parallel worker processes.
"""

import argparse
import multiprocessing
import random
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Optional

from graphs import build_graph
from network import Network, Schedule


@dataclass
class BenchmarkResult:
    graph: str
    n: int
    seed: int
    triggers: list
    failed: Optional[int]
    status: str
    rounds: int
    elected_a: list
    elected_b: list
    success: bool
    seconds: float


def plan_schedule(ids, seed, triggers=1, fail=False):
    rng = random.Random(seed)
    starters = sorted(rng.sample(ids, k=min(triggers, len(ids))))
    schedule = Schedule(elections={0: starters})
    failed = None
    if fail and len(ids) > 2:
        failed = rng.choice(ids)
        # late enough for the first election and its announcement to settle
        schedule.failures[6 * len(ids)] = failed
    return schedule, starters, failed


def run_sample(graph, n, seed, triggers=1, fail=False):
    entries = build_graph(graph, n, seed=seed, shuffle=True)
    ids = [node_id for node_id, _ in entries]
    schedule, starters, failed = plan_schedule(ids, seed, triggers, fail)

    net = Network.from_entries(entries, schedule, period=0)
    start = time.perf_counter()
    try:
        result = net.run(max_rounds=20 * n)
    except RuntimeError:
        return BenchmarkResult(graph, n, seed, starters, failed, "timeout", net.round,
                               list(net.elected_a), list(net.elected_b), False,
                               time.perf_counter() - start)
    elapsed = time.perf_counter() - start

    success = result.completed and result.elected_a == [max(ids)]
    if failed is not None:
        success = success and result.elected_b == [max(set(ids) - {failed})]
    else:
        success = success and result.elected_b == []

    return BenchmarkResult(graph, n, seed, starters, failed, result.status.value, result.round,
                           result.elected_a, result.elected_b, success, elapsed)


def _run_sample(args):
    return run_sample(*args)


def run_benchmark(graph, n, num_samples=20, triggers=1, fail=False, parallel=True):
    jobs = [(graph, n, seed, triggers, fail) for seed in range(num_samples)]
    if not parallel:
        return [_run_sample(job) for job in jobs]

    results = []
    num_workers = min(multiprocessing.cpu_count(), 8)
    with ProcessPoolExecutor(max_workers=num_workers) as executor:
        futures = [executor.submit(_run_sample, job) for job in jobs]
        for future in as_completed(futures):
            results.append(future.result())
    return sorted(results, key=lambda r: r.seed)


def print_results(title, results):
    ok = sum(1 for r in results if r.success)
    rounds = [r.rounds for r in results]
    print("")
    print("--- %s ---" % title)
    print(f"samples: {len(results)}  correct: {ok}/{len(results)}")
    if rounds:
        print(f"rounds: min={min(rounds)} avg={sum(rounds) / len(rounds):.1f} max={max(rounds)}")
    for r in results:
        if not r.success:
            print(f"  seed={r.seed} status={r.status} A={r.elected_a} B={r.elected_b} "
                  f"triggers={r.triggers} failed={r.failed}")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Benchmark ring election over generated graphs.")
    parser.add_argument("--graph", choices=["ring", "chordal", "complete", "random"], default="chordal")
    parser.add_argument("--n", type=int, nargs="+", default=[5, 10, 20])
    parser.add_argument("--samples", type=int, default=20)
    parser.add_argument("--triggers", type=int, default=1, help="Nodes starting the election in round 0")
    parser.add_argument("--fail", action="store_true", help="Fail one random node after the first election")
    parser.add_argument("--serial", action="store_true", help="Run samples in this process")
    args = parser.parse_args(argv)

    print(f"Using {multiprocessing.cpu_count()} CPU cores for parallel execution")
    for n in args.n:
        results = run_benchmark(args.graph, n, args.samples, args.triggers, args.fail, parallel=not args.serial)
        print_results(f"{args.graph} n={n} triggers={args.triggers} fail={args.fail}", results)


if __name__ == "__main__":
    main()
