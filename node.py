import collections
import threading
from enum import Enum
from typing import Callable, Optional

from message import Elect, ForwardTo, Leader, Message, ProtocolViolation


class NodeState(Enum):
    IDLE = "idle"
    PARTICIPANT = "participant"
    LEADER = "leader"
    RELAYING = "relaying"
    FAILED = "failed"


class Node:
    """
    One ring member running the Chang-Roberts election.

    The node owns its inbound and outbound queues. Every access to them,
    from the node's own worker thread or from the scheduler, goes through
    the node's condition variable.
    """

    def __init__(self, node_id, on_elected: Optional[Callable[[int], None]] = None, verbose=False):
        self.id = node_id
        self.neighbors = set()
        self.next = None
        self.prev = None
        self.next_is_dead = False

        self.participant = False
        self.is_leader = False
        self.active = False
        self.failed = False
        self.current_leader = None
        self.error = None

        self.on_elected = on_elected
        self.verbose = verbose

        self.inbox = collections.deque()
        self.outbox = []

        self._cond = threading.Condition()
        self._thread = None
        self._stopping = False

    def __repr__(self):
        return f"Node({self.id})"

    def add_neighbor(self, nid):
        if nid != self.id:
            self.neighbors.add(nid)

    def remove_neighbor(self, nid):
        self.neighbors.discard(nid)

    def notify_failure(self, nid):
        self.remove_neighbor(nid)
        self._trace(f"has been notified of failure of Node({nid})")

    def get_neighbours(self):
        return sorted(self.neighbors)

    @property
    def state(self) -> NodeState:
        if self.failed:
            return NodeState.FAILED
        if self.participant:
            return NodeState.PARTICIPANT
        if self.is_leader:
            return NodeState.LEADER
        with self._cond:
            if any(_announces_leader(m.payload) for m in self.outbox):
                return NodeState.RELAYING
        return NodeState.IDLE

    def _trace(self, text):
        if self.verbose:
            print(f"Node({self.id}) {text}")

    # ---- queues ----

    def deliver(self, payload):
        if self.failed:
            raise RuntimeError(f"cannot deliver {payload} to failed node {self.id}")
        with self._cond:
            self.inbox.append(payload)
            # relaying an envelope is not protocol participation
            if not isinstance(payload, ForwardTo):
                self.active = True
            self._cond.notify_all()

    def forward_message(self, payload):
        """Queue a protocol payload for the ring successor."""
        with self._cond:
            if self.next_is_dead:
                envelope = ForwardTo(self.next, payload)
                self.outbox.append(Message(self.id, self.next, envelope, forward=True))
                self._trace(f"sends message ({envelope})")
            else:
                self.outbox.append(Message(self.id, self.next, payload, forward=False))
                self._trace(f"sends message ({payload}) to Node({self.next})")

    def take_outgoing(self):
        """
        Remove and return the messages allowed to leave this round.

        Only the first queued message per recipient is released; later ones
        stay queued, in order, for the following rounds.
        """
        with self._cond:
            sent_to = set()
            released, kept = [], []
            for msg in self.outbox:
                if msg.recipient in sent_to:
                    kept.append(msg)
                else:
                    sent_to.add(msg.recipient)
                    released.append(msg)
            self.outbox = kept
            return released

    def has_outgoing(self):
        with self._cond:
            return bool(self.outbox)

    # ---- protocol ----

    def trigger_election(self):
        with self._cond:
            self._trace("starting ELECTION")
            self.participant = True
            self.active = True
            self.forward_message(Elect(self.id))

    def process_inbox(self):
        with self._cond:
            while self.inbox:
                payload = self.inbox.popleft()
                self._trace(f"received message ({payload})")
                self._handle(payload)
            self._cond.notify_all()

    def _handle(self, payload):
        if isinstance(payload, Elect):
            self._on_elect(payload.candidate)
        elif isinstance(payload, Leader):
            self._on_leader(payload.leader)
        elif isinstance(payload, ForwardTo):
            self.outbox.append(Message(self.id, payload.target, payload, forward=True))
        else:
            raise ProtocolViolation(f"node {self.id} cannot handle {payload!r}")

    def _on_elect(self, candidate):
        if candidate > self.id:
            self.participant = True
            self.active = True
            self.forward_message(Elect(candidate))
        elif candidate < self.id:
            if not self.participant:
                self.participant = True
                self.active = True
                self.forward_message(Elect(self.id))
            else:
                self._trace(f"discards message (ELECT {candidate})")
        else:
            self.is_leader = True
            self.current_leader = self.id
            self._trace("marks itself as LEADER")
            if self.on_elected is not None:
                self.on_elected(self.id)
            self.forward_message(Leader(self.id))
            self.participant = False
            self.active = False

    def _on_leader(self, leader):
        self._trace(f"set Node({leader}) as leader")
        self.current_leader = leader
        if leader != self.id:
            self.is_leader = False
        if self.next != leader:
            self.forward_message(Leader(leader))
        self.participant = False
        self.active = False

    # ---- worker thread ----

    def start(self):
        with self._cond:
            if self.failed or self._stopping:
                return
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name=f"node-{self.id}", daemon=True)
                self._thread.start()

    def _run(self):
        with self._cond:
            while True:
                self._cond.wait_for(lambda: self.inbox or self._stopping)
                if self._stopping:
                    break
                try:
                    self.process_inbox()
                except ProtocolViolation as exc:
                    self.error = exc
                    self._stopping = True
                    self._cond.notify_all()
                    break

    def wait_idle(self, timeout=None):
        """Block until the inbox is drained; returns False on timeout."""
        with self._cond:
            if self._thread is None:
                return not self.inbox
            return self._cond.wait_for(lambda: not self.inbox or self._stopping, timeout)

    def stop(self):
        with self._cond:
            self._stopping = True
            self.participant = False
            self.active = False
            self._cond.notify_all()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def fail(self):
        self.stop()
        with self._cond:
            self.failed = True
            self.inbox.clear()
            self.outbox.clear()


def _announces_leader(payload):
    if isinstance(payload, ForwardTo):
        payload = payload.inner
    return isinstance(payload, Leader)


def connect_nodes(n1, n2):
    n1.add_neighbor(n2.id)
    n2.add_neighbor(n1.id)
