"""Tests for the workflow graph model: nodes, edges, lookups, adjacency."""

import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from resolver.model import (
    NodeType, ServiceNode, TransitionNode, WorkflowEdge, WorkflowModel, terminate_node,
)


class TestNodeType(unittest.TestCase):

    def test_parse_wire_strings(self):
        self.assertIs(NodeType.parse("DecisionNode"), NodeType.DECISION)
        self.assertIs(NodeType.parse("FeedFwdNode"), NodeType.FEED_FORWARD)
        self.assertIs(NodeType.parse("EventGenerator"), NodeType.EVENT_GENERATOR)

    def test_parse_is_case_sensitive(self):
        with self.assertRaises(ValueError) as ctx:
            NodeType.parse("decisionnode")
        self.assertIn("DecisionNode", str(ctx.exception))

    def test_behaviour_properties(self):
        self.assertTrue(NodeType.DECISION.is_decision)
        self.assertTrue(NodeType.TERMINATE.is_terminal)
        self.assertTrue(NodeType.MONITOR.is_monitor)
        self.assertTrue(NodeType.JOIN.is_join)
        self.assertFalse(NodeType.EDGE.is_decision)

    def test_vocabulary_is_closed(self):
        self.assertEqual(len(NodeType), 11)


class TestServiceNode(unittest.TestCase):

    def test_primary_operation_always_present(self):
        node = ServiceNode("P_A", "AService", "opA")
        self.assertEqual(node.all_operations, {"opA"})
        node.set_all_operations(["opB", "opC"])
        self.assertEqual(node.all_operations, {"opA", "opB", "opC"})
        self.assertTrue(node.is_multi_operation)

    def test_add_operation_ignores_blank(self):
        node = ServiceNode("P_A", "AService", "opA")
        node.add_operation("  ")
        node.add_operation("opB")
        self.assertTrue(node.supports_operation("opB"))
        self.assertFalse(node.supports_operation("  "))

    def test_attributes_copied(self):
        attrs = {"label": "A"}
        node = ServiceNode("P_A", "AService", "opA", attrs)
        attrs["label"] = "changed"
        self.assertEqual(node.attributes["label"], "A")

    def test_equality_ignores_attributes(self):
        a = ServiceNode("P_A", "AService", "opA", {"x": "1"})
        b = ServiceNode("P_A", "AService", "opA", {"x": "2"})
        self.assertEqual(a, b)
        self.assertEqual(len({a, b}), 1)
        self.assertNotEqual(a, ServiceNode("P_A", "AService", "opB"))

    def test_null_identity_rejected(self):
        with self.assertRaises(ValueError):
            ServiceNode(None, "AService", "opA")

    def test_terminate_node_is_fresh(self):
        a, b = terminate_node(), terminate_node()
        self.assertIsNot(a, b)
        self.assertEqual(a, b)
        self.assertTrue(a.is_terminate)
        a.add_operation("extra")
        self.assertFalse(b.supports_operation("extra"))


class TestTransitionNode(unittest.TestCase):

    def test_string_type_coerced(self):
        node = TransitionNode("T_out_A", "JoinNode")
        self.assertIs(node.node_type, NodeType.JOIN)

    def test_unknown_type_rejected(self):
        with self.assertRaises(ValueError):
            TransitionNode("T_out_A", "BogusNode")

    def test_attributes_read_only(self):
        node = TransitionNode("T_in_A", NodeType.EDGE, "", {"buffer": "10"})
        with self.assertRaises(TypeError):
            node.attributes["buffer"] = "20"


class TestWorkflowEdge(unittest.TestCase):

    def test_decision_edge_requires_both_keys(self):
        self.assertFalse(WorkflowEdge("T", "B", {"condition": "DECISION_EQUAL"}).is_decision_edge)
        self.assertTrue(WorkflowEdge(
            "T", "B", {"condition": "DECISION_EQUAL", "decision_value": "X"}).is_decision_edge)

    def test_null_values_are_absent(self):
        edge = WorkflowEdge("T", "B", {"condition": "DECISION_EQUAL", "decision_value": None})
        self.assertFalse(edge.is_decision_edge)

    def test_positive_and_negative_paths(self):
        pos = WorkflowEdge("T", "B", {"condition": "DECISION_EQUAL", "decision_value": "X"})
        neg = WorkflowEdge("T", "END", {"condition": "DECISION_NOT_EQUAL", "decision_value": "X"})
        self.assertTrue(pos.is_positive_decision_path)
        self.assertTrue(neg.is_negative_decision_path)
        self.assertTrue(neg.is_end)

    def test_accepts(self):
        pos = WorkflowEdge("T", "B", {"condition": "DECISION_EQUAL", "decision_value": "X"})
        neg = WorkflowEdge("T", "END", {"condition": "DECISION_NOT_EQUAL", "decision_value": "X"})
        odd = WorkflowEdge("T", "C", {"condition": "GREATER", "decision_value": "X"})
        self.assertTrue(pos.accepts("X"))
        self.assertFalse(pos.accepts("Y"))
        self.assertFalse(neg.accepts("X"))
        self.assertTrue(neg.accepts("Y"))
        self.assertTrue(neg.accepts(None))
        self.assertFalse(odd.accepts("X"))

    def test_target_override(self):
        edge = WorkflowEdge("T", "X", {"target_service": "S", "target_operation": "op"})
        self.assertTrue(edge.has_target_service)
        self.assertFalse(WorkflowEdge("T", "X", {"target_service": "S"}).has_target_service)

    def test_attributes_immutable(self):
        edge = WorkflowEdge("A", "B", {"label": "x"})
        with self.assertRaises(TypeError):
            edge.attributes["label"] = "y"


class TestWorkflowModel(unittest.TestCase):

    def setUp(self):
        self.model = WorkflowModel("m")
        self.model.add_service_node(ServiceNode("P_A", "AService", "opA"))
        self.model.add_transition_node(TransitionNode("T_out_A", NodeType.EDGE))
        self.model.add_workflow_edge(WorkflowEdge("P_A", "T_out_A"))
        self.model.add_workflow_edge(WorkflowEdge("T_out_A", "P_B", {"label": "1"}))
        self.model.add_workflow_edge(WorkflowEdge("T_out_A", "P_B", {"label": "2"}))

    def test_lookups_return_none(self):
        self.assertIsNone(self.model.get_service_node("nope"))
        self.assertIsNone(self.model.get_transition_node("P_A"))
        self.assertTrue(self.model.node_exists("T_out_A"))
        self.assertFalse(self.model.node_exists("P_B"))

    def test_last_write_wins(self):
        self.model.add_service_node(ServiceNode("P_A", "AService", "opZ"))
        self.assertEqual(self.model.get_service_node("P_A").operation, "opZ")

    def test_edges_not_deduplicated(self):
        self.assertEqual(len(self.model.edges_from("T_out_A")), 2)
        self.assertEqual(self.model.build_adjacency_list()["T_out_A"], ["P_B", "P_B"])

    def test_has_edge_ignores_attributes(self):
        self.assertTrue(self.model.has_edge("T_out_A", "P_B"))
        self.assertFalse(self.model.has_edge("P_B", "T_out_A"))

    def test_views_are_read_only(self):
        with self.assertRaises(TypeError):
            self.model.service_nodes["X"] = None
        self.assertIsInstance(self.model.edges, tuple)

    def test_describe_logs_at_debug(self):
        with self.assertLogs("routing_core.model", level="DEBUG") as captured:
            self.model.describe()
        self.assertTrue(any("P_A" in line for line in captured.output))


if __name__ == "__main__":
    unittest.main()
