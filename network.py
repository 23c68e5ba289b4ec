import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import config
from message import ForwardTo, Message
from topology import Disconnected, SimulationHalted, Topology, Unreachable


class Status(Enum):
    COMPLETED = "completed"
    DISCONNECTED = "disconnected"
    UNREACHABLE = "unreachable"
    ROUND_LIMIT = "round_limit"


class RoundLimitExceeded(RuntimeError):
    """The run hit its round cap; ``result`` holds what was elected so far."""

    def __init__(self, result):
        self.result = result
        super().__init__(result.reason)


@dataclass
class Schedule:
    """Scheduled events: round -> nodes starting an election, round -> failing node."""
    elections: dict[int, list[int]] = field(default_factory=dict)
    failures: dict[int, int] = field(default_factory=dict)

    def copy(self):
        return Schedule(
            elections={r: list(ids) for r, ids in self.elections.items()},
            failures=dict(self.failures),
        )

    def pending_after(self, rnd):
        return any(r >= rnd for r in self.elections) or any(r >= rnd for r in self.failures)


@dataclass
class SimulationResult:
    status: Status
    round: int
    elected_a: list[int]
    elected_b: list[int]
    rejected: list[Message] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def completed(self):
        return self.status is Status.COMPLETED


class Network:
    """
    Synchronous round scheduler.

    Each round collects the releasable outbound messages of every live node,
    delivers them (routing relay envelopes hop by hop), waits for the nodes
    to process their inboxes, and finally applies the elections and the
    failure scheduled for that round.
    """

    def __init__(self, topology: Topology, schedule: Optional[Schedule] = None,
                 period=config.ROUND_PERIOD, idle_timeout=config.IDLE_TIMEOUT, verbose=False):
        self.topology = topology
        self.schedule = schedule.copy() if schedule is not None else Schedule()
        self.period = period
        self.idle_timeout = idle_timeout
        self.verbose = verbose

        self.round = 0
        self.phase_b = False
        self.elected_a = []
        self.elected_b = []
        self.buffer = []
        self.rejected = []
        self.result = None

        self._lock = threading.Lock()
        for node in self.topology.nodes.values():
            node.on_elected = self.log_election

    @classmethod
    def from_entries(cls, entries, schedule=None, **kwargs):
        verbose = kwargs.get("verbose", False)
        return cls(Topology.from_entries(entries, verbose=verbose), schedule, **kwargs)

    def _trace(self, text):
        if self.verbose:
            print(text)

    def log_election(self, leader):
        """Record an elected leader; called from node worker threads."""
        with self._lock:
            if self.phase_b:
                self.elected_b.append(leader)
            else:
                self.elected_a.append(leader)

    # ---- round phases ----

    def collect_messages(self):
        for node in self.topology.live_nodes():
            self.buffer.extend(node.take_outgoing())

    def deliver_messages(self):
        buffer, self.buffer = self.buffer, []
        for msg in buffer:
            if msg.forward:
                hop = self.topology.next_hop(msg.sender, msg.recipient)
                payload = msg.payload
                if hop == msg.recipient and isinstance(payload, ForwardTo):
                    payload = payload.inner
                else:
                    self._trace(f"Network forwards the message to {hop}")
            else:
                sender = self.topology[msg.sender]
                if msg.recipient not in self.topology or msg.recipient not in sender.neighbors:
                    self._trace(f"Network rejects ({msg.payload}) from Node({msg.sender}) "
                                f"to non-neighbour Node({msg.recipient})")
                    self.rejected.append(msg)
                    continue
                hop, payload = msg.recipient, msg.payload

            node = self.topology[hop]
            node.start()
            node.deliver(payload)

        self._await_nodes()

    def _await_nodes(self):
        for node in self.topology.live_nodes():
            if not node.wait_idle(self.idle_timeout):
                raise RuntimeError(f"node {node.id} did not drain its inbox in round {self.round}")
            if node.error is not None:
                raise node.error

    def trigger_events(self):
        for nid in self.schedule.elections.pop(self.round, []):
            if nid not in self.topology:
                self._trace(f"Skipping election at unknown or failed node {nid}")
                continue
            self.topology[nid].trigger_election()

        failed_id = self.schedule.failures.pop(self.round, None)
        if failed_id is None:
            return
        if failed_id not in self.topology:
            self._trace(f"Skipping failure of unknown or failed node {failed_id}")
            return

        self._trace(f"Node({failed_id}) has failed")
        with self._lock:
            self.phase_b = True
        starter = self.topology.remove_node(failed_id)
        self.topology[starter].trigger_election()

    # ---- driving ----

    def is_quiescent(self):
        if self.schedule.pending_after(self.round) or self.buffer:
            return False
        return not any(node.active or node.has_outgoing() for node in self.topology.live_nodes())

    def step(self):
        """Run one round; returns the final result once the run has halted."""
        if self.result is not None:
            return self.result
        if self.is_quiescent():
            self._trace("\n\nProgram has finished executing")
            return self._halt(Status.COMPLETED)

        self._trace(f"\n--- Round {self.round} ---")
        self.collect_messages()
        try:
            self.deliver_messages()
            self.trigger_events()
        except Unreachable as exc:
            self._trace("\n\nUnreachable node detected")
            return self._halt(Status.UNREACHABLE, exc)
        except Disconnected as exc:
            self._trace("\n\nGraph has become disconnected")
            return self._halt(Status.DISCONNECTED, exc)

        self.round += 1
        return None

    def _halt(self, status, exc: Optional[SimulationHalted] = None, reason=None):
        self.stop_all()
        with self._lock:
            self.result = SimulationResult(
                status=status,
                round=self.round,
                elected_a=list(self.elected_a),
                elected_b=list(self.elected_b),
                rejected=list(self.rejected),
                reason=str(exc) if exc is not None else reason,
            )
        return self.result

    def run(self, max_rounds=config.MAX_ROUNDS):
        try:
            while self.result is None:
                if self.round >= max_rounds:
                    result = self._halt(Status.ROUND_LIMIT,
                                        reason=f"simulation did not finish within {max_rounds} rounds")
                    raise RoundLimitExceeded(result)
                self.step()
                if self.result is None and self.period:
                    time.sleep(self.period)
        finally:
            self.stop_all()
        return self.result

    def stop_all(self):
        for node in self.topology.nodes.values():
            node.stop()
