"""
Tests for the node state machine and the round scheduler.

These tests verify:
1. Chang-Roberts message handling at a single node
2. Queue rules enforced by the network (neighbour check, one message per recipient per round)
3. End-to-end elections, with and without node failures
4. Fatal conditions: disconnection, unreachable nodes, malformed payloads
"""

import io
import sys
import unittest

from graphs import build_chordal_ring, build_ring
from message import Elect, ForwardTo, Leader, Message, ProtocolViolation, parse_payload
from network import Network, RoundLimitExceeded, Schedule, Status
from node import Node, NodeState
from topology import Topology


def _ring(n):
    return [(i, []) for i in range(1, n + 1)]


def _node(node_id, next_id, elected=None):
    node = Node(node_id, on_elected=(elected.append if elected is not None else None))
    node.next = next_id
    node.add_neighbor(next_id)
    return node


class TestPayloads(unittest.TestCase):

    def test_parse_protocol_messages(self):
        self.assertEqual(parse_payload("ELECT 4"), Elect(4))
        self.assertEqual(parse_payload("LEADER 7"), Leader(7))
        self.assertEqual(parse_payload("FORWARDTO 3 ELECT 5"), ForwardTo(3, Elect(5)))
        self.assertEqual(str(ForwardTo(3, Leader(5))), "FORWARDTO 3 LEADER 5")

    def test_malformed_payloads_are_rejected(self):
        for text in ["", "ELECT", "ELECT x", "LEADER 1 2", "PING 3", "FORWARDTO 3", "FORWARDTO 1 FORWARDTO 2 ELECT 3"]:
            with self.assertRaises(ProtocolViolation, msg=text):
                parse_payload(text)


class TestNodeProtocol(unittest.TestCase):
    """Single node, inbox drained synchronously with process_inbox()."""

    def test_larger_candidate_is_forwarded_unchanged(self):
        node = _node(2, 3)
        node.deliver(Elect(5))
        node.process_inbox()
        self.assertTrue(node.participant)
        self.assertEqual(node.take_outgoing(), [Message(2, 3, Elect(5), False)])

    def test_smaller_candidate_is_replaced_by_own_id(self):
        node = _node(4, 1)
        node.deliver(Elect(2))
        node.process_inbox()
        self.assertTrue(node.participant)
        self.assertEqual(node.take_outgoing(), [Message(4, 1, Elect(4), False)])

    def test_smaller_candidate_is_discarded_by_participant(self):
        node = _node(4, 1)
        node.participant = True
        node.deliver(Elect(2))
        node.process_inbox()
        self.assertEqual(node.take_outgoing(), [])

    def test_own_id_returning_makes_node_leader(self):
        elected = []
        node = _node(6, 1, elected)
        node.trigger_election()
        node.take_outgoing()
        node.deliver(Elect(6))
        node.process_inbox()

        self.assertEqual(elected, [6])
        self.assertTrue(node.is_leader)
        self.assertFalse(node.participant)
        self.assertFalse(node.active)
        self.assertEqual(node.state, NodeState.LEADER)
        self.assertEqual(node.take_outgoing(), [Message(6, 1, Leader(6), False)])

    def test_leader_announcement_stops_before_leader(self):
        node = _node(2, 3)
        node.deliver(Leader(3))
        node.process_inbox()
        self.assertEqual(node.current_leader, 3)
        self.assertEqual(node.take_outgoing(), [])

        node = _node(2, 1)
        node.deliver(Leader(3))
        node.process_inbox()
        self.assertEqual(node.state, NodeState.RELAYING)
        self.assertEqual(node.take_outgoing(), [Message(2, 1, Leader(3), False)])
        self.assertEqual(node.state, NodeState.IDLE)

    def test_dead_successor_wraps_messages_in_relay_envelope(self):
        node = _node(1, 3)
        node.next_is_dead = True
        node.trigger_election()
        self.assertEqual(node.take_outgoing(), [Message(1, 3, ForwardTo(3, Elect(1)), True)])

    def test_relay_envelope_is_requeued_for_its_target(self):
        node = _node(5, 1)
        envelope = ForwardTo(4, Elect(2))
        node.deliver(envelope)
        node.process_inbox()
        self.assertFalse(node.active)
        self.assertEqual(node.take_outgoing(), [Message(5, 4, envelope, True)])

    def test_repeated_trigger_sends_again(self):
        node = _node(1, 2)
        node.trigger_election()
        node.trigger_election()
        self.assertEqual(node.state, NodeState.PARTICIPANT)
        self.assertEqual(len(node.outbox), 2)

    def test_unknown_payload_is_a_protocol_violation(self):
        node = _node(1, 2)
        node.deliver("ELECT 3")
        with self.assertRaises(ProtocolViolation):
            node.process_inbox()

    def test_worker_thread_processes_deliveries(self):
        node = _node(2, 3)
        node.start()
        try:
            node.deliver(Elect(9))
            self.assertTrue(node.wait_idle(timeout=5))
            self.assertEqual(node.take_outgoing(), [Message(2, 3, Elect(9), False)])
        finally:
            node.stop()

    def test_relaying_state_while_worker_runs(self):
        node = _node(2, 1)
        node.start()
        try:
            node.deliver(Leader(3))
            self.assertTrue(node.wait_idle(timeout=5))
            self.assertEqual(node.state, NodeState.RELAYING)
            node.take_outgoing()
            self.assertEqual(node.state, NodeState.IDLE)
        finally:
            node.stop()

    def test_worker_thread_records_protocol_violation(self):
        node = _node(2, 3)
        node.start()
        try:
            node.deliver(object())
            self.assertTrue(node.wait_idle(timeout=5))
            self.assertIsInstance(node.error, ProtocolViolation)
        finally:
            node.stop()


class TestNetworkRules(unittest.TestCase):

    def test_direct_message_to_non_neighbour_is_rejected(self):
        net = Network.from_entries(_ring(4), period=0)
        bogus = Message(1, 3, Elect(1), False)
        net.topology[1].outbox.append(bogus)

        result = net.run(max_rounds=10)

        self.assertEqual(result.status, Status.COMPLETED)
        self.assertEqual(result.rejected, [bogus])
        self.assertFalse(net.topology[3].participant)
        self.assertEqual(result.elected_a, [])

    def test_one_message_per_recipient_per_round(self):
        net = Network.from_entries(_ring(3) , period=0)
        first = Message(1, 2, Elect(1), False)
        second = Message(1, 2, Elect(7), False)
        other = Message(1, 3, Elect(1), False)
        net.topology[1].outbox.extend([first, second, other])

        net.collect_messages()
        self.assertEqual(net.buffer, [first, other])
        self.assertEqual(net.topology[1].outbox, [second])

        net.buffer = []
        net.collect_messages()
        self.assertEqual(net.buffer, [second])
        net.stop_all()

    def test_malformed_payload_surfaces_to_caller(self):
        net = Network.from_entries(_ring(3), period=0)
        net.topology[1].outbox.append(Message(1, 2, "BOGUS", False))
        try:
            with self.assertRaises(ProtocolViolation):
                net.step()
            self.assertIsNotNone(net.topology[2].error)
        finally:
            net.stop_all()


class TestElections(unittest.TestCase):

    def test_three_node_ring_elects_highest_id(self):
        net = Network.from_entries(_ring(3), Schedule(elections={0: [1]}), period=0)
        result = net.run(max_rounds=50)

        self.assertEqual(result.status, Status.COMPLETED)
        self.assertEqual(result.elected_a, [3])
        self.assertEqual(result.elected_b, [])
        self.assertEqual(result.round, 8)
        for node_id in (1, 2, 3):
            self.assertEqual(net.topology[node_id].current_leader, 3)

    def test_single_trigger_on_shuffled_ring(self):
        for seed in range(5):
            entries = build_ring(8, seed=seed, shuffle=True)
            starter = entries[seed % 8][0]
            net = Network.from_entries(entries, Schedule(elections={0: [starter]}), period=0)
            result = net.run(max_rounds=100)
            self.assertEqual(result.elected_a, [8], f"seed {seed}")

    def test_simultaneous_triggers_elect_one_leader(self):
        entries = build_ring(9, seed=4, shuffle=True)
        ids = [node_id for node_id, _ in entries]
        net = Network.from_entries(entries, Schedule(elections={0: ids}), period=0)
        result = net.run(max_rounds=200)

        self.assertEqual(result.status, Status.COMPLETED)
        self.assertEqual(result.elected_a, [max(ids)])

    def test_chords_do_not_change_the_winner(self):
        entries = build_chordal_ring(10, seed=11, shuffle=True)
        ids = [node_id for node_id, _ in entries]
        net = Network.from_entries(entries, Schedule(elections={0: ids[:3]}), period=0)
        result = net.run(max_rounds=200)
        self.assertEqual(result.elected_a, [10])

    def test_failure_repairs_ring_and_reelects(self):
        schedule = Schedule(elections={0: [1]}, failures={5: 2})
        net = Network.from_entries(_ring(3), schedule, period=0)
        result = net.run(max_rounds=50)

        self.assertEqual(result.status, Status.COMPLETED)
        self.assertEqual(result.elected_a, [3])
        self.assertEqual(result.elected_b, [3])
        self.assertTrue(net.phase_b)
        self.assertNotIn(2, net.topology)
        self.assertEqual(net.topology[1].next, 3)
        self.assertEqual(net.topology[3].prev, 1)
        self.assertTrue(net.topology[1].next_is_dead)

    def test_failure_of_leader_elects_next_highest(self):
        schedule = Schedule(elections={0: [2]}, failures={30: 5})
        net = Network.from_entries(_ring(5), schedule, period=0)
        result = net.run(max_rounds=200)

        self.assertEqual(result.elected_a, [5])
        self.assertEqual(result.elected_b, [4])
        self.assertTrue(net.topology[4].next_is_dead)
        self.assertEqual(net.topology[4].next, 1)

    def test_disconnection_halts_simulation(self):
        schedule = Schedule(failures={0: 1, 1: 3, 2: 4})
        net = Network.from_entries(_ring(4), schedule, period=0)
        result = net.run(max_rounds=50)

        self.assertEqual(result.status, Status.DISCONNECTED)
        self.assertEqual(result.round, 1)
        self.assertIs(net.step(), result)
        self.assertEqual(net.round, 1)
        self.assertIn(4, net.topology)

    def test_unreachable_target_halts_simulation(self):
        topology = Topology.from_entries(_ring(4))
        net = Network(topology, period=0)
        topology.remove_node(3)
        topology[1].outbox.append(Message(1, 3, ForwardTo(3, Elect(1)), True))

        result = net.run(max_rounds=10)

        self.assertEqual(result.status, Status.UNREACHABLE)
        self.assertEqual(result.round, 0)

    def test_stale_election_of_failed_node_hits_round_limit(self):
        # ELECT 5 is still travelling when node 5 fails; no live id can absorb it
        schedule = Schedule(elections={0: [5]}, failures={2: 5})
        net = Network.from_entries(_ring(5), schedule, period=0)

        with self.assertRaises(RoundLimitExceeded) as ctx:
            net.run(max_rounds=40)

        result = ctx.exception.result
        self.assertIs(net.result, result)
        self.assertEqual(result.status, Status.ROUND_LIMIT)
        self.assertEqual(result.round, 40)
        self.assertEqual(result.elected_a, [])
        self.assertEqual(result.elected_b, [])
        self.assertIn("40 rounds", result.reason)

    def test_trace_prints_rounds(self):
        captured = io.StringIO()
        sys.stdout = captured
        try:
            net = Network.from_entries(_ring(3), Schedule(elections={0: [1]}), period=0, verbose=True)
            net.run(max_rounds=50)
        finally:
            sys.stdout = sys.__stdout__

        output = captured.getvalue()
        self.assertEqual(output.count("--- Round "), 8)
        self.assertIn("Node(3) marks itself as LEADER", output)


if __name__ == "__main__":
    unittest.main()
