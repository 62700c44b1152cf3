"""
Routing Core — Workflow Graph Model

A workflow is a directed graph of two vertex kinds:

  ServiceNode     — work performed: a service and its operation(s)
  TransitionNode  — routing only: edge, decision, fork, join, terminate, ...

WorkflowEdges connect them by node id and carry the guard and override
attributes that decision routing reads. The model is built once per
workflow compilation and then queried read-only by the RoutingResolver.

Usage:
    from resolver.model import WorkflowModel, ServiceNode, TransitionNode, WorkflowEdge, NodeType

    model = WorkflowModel()
    model.add_service_node(ServiceNode("P_Triage", "TriageService", "processTriageAssessment"))
    model.add_transition_node(TransitionNode("T_out_Triage", NodeType.DECISION))
    model.add_workflow_edge(WorkflowEdge("P_Triage", "T_out_Triage"))
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

logger = logging.getLogger("routing_core.model")

# Reserved node ids with routing meaning but no graph vertex
END = "END"
START = "START"
EVENT_GENERATOR = "EVENT_GENERATOR"

# Identity of the synthetic node returned when a path reaches a TerminateNode
TERMINATE = "TERMINATE"

DECISION_EQUAL = "DECISION_EQUAL"
DECISION_NOT_EQUAL = "DECISION_NOT_EQUAL"


class NodeType(str, enum.Enum):
    """Closed vocabulary of transition kinds. Values are the wire strings."""
    EDGE = "EdgeNode"
    DECISION = "DecisionNode"
    FORK = "ForkNode"
    JOIN = "JoinNode"
    MERGE = "MergeNode"
    XOR = "XorNode"
    GATEWAY = "GatewayNode"
    MONITOR = "MonitorNode"
    FEED_FORWARD = "FeedFwdNode"
    TERMINATE = "TerminateNode"
    EVENT_GENERATOR = "EventGenerator"

    @classmethod
    def parse(cls, value: str) -> NodeType:
        """Exact, case-sensitive lookup by wire string."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(
                f"Unknown transition node type {value!r}. "
                f"Valid: {sorted(t.value for t in cls)}"
            ) from None

    @property
    def is_decision(self) -> bool:
        return self is NodeType.DECISION

    @property
    def is_terminal(self) -> bool:
        return self is NodeType.TERMINATE

    @property
    def is_monitor(self) -> bool:
        return self is NodeType.MONITOR

    @property
    def is_join(self) -> bool:
        return self is NodeType.JOIN


# ═══════════════════════════════════════════════════════════════════
# Vertices
# ═══════════════════════════════════════════════════════════════════

@dataclass(eq=False)
class ServiceNode:
    """
    A unit of work. Identity for deduplication is (node_id, service, operation).

    all_operations always contains the primary operation; extra operations
    make this a multi-operation service.
    """
    node_id: str
    service: str
    operation: str
    attributes: Mapping[str, str] = field(default_factory=dict)
    all_operations: set[str] = field(default_factory=set, repr=False)

    def __post_init__(self):
        for name in ("node_id", "service", "operation"):
            if getattr(self, name) is None:
                raise ValueError(f"ServiceNode {name} cannot be None")
        self.attributes = dict(self.attributes or {})
        self.all_operations = set(self.all_operations)
        self.all_operations.add(self.operation)

    def add_operation(self, operation: str) -> None:
        if operation and operation.strip():
            self.all_operations.add(operation)

    def set_all_operations(self, operations: set[str] | list[str]) -> None:
        self.all_operations = set(operations)
        self.all_operations.add(self.operation)

    def supports_operation(self, operation: str) -> bool:
        return operation in self.all_operations

    @property
    def is_multi_operation(self) -> bool:
        return len(self.all_operations) > 1

    @property
    def is_terminate(self) -> bool:
        return self.node_id == TERMINATE and self.service == TERMINATE

    def _key(self) -> tuple[str, str, str]:
        return (self.node_id, self.service, self.operation)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ServiceNode):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        if self.is_multi_operation:
            return f"{self.node_id}({self.service}:{sorted(self.all_operations)})"
        return f"{self.node_id}({self.service}:{self.operation})"


def terminate_node() -> ServiceNode:
    """Fresh sentinel signalling 'workflow ends here'."""
    return ServiceNode(TERMINATE, TERMINATE, TERMINATE, {})


@dataclass(frozen=True)
class TransitionNode:
    """A routing-only vertex. Carries no service semantics."""
    node_id: str
    node_type: NodeType
    node_value: str = ""
    attributes: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        if self.node_id is None:
            raise ValueError("TransitionNode node_id cannot be None")
        if not isinstance(self.node_type, NodeType):
            object.__setattr__(self, "node_type", NodeType.parse(self.node_type))
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes or {})))

    def __str__(self) -> str:
        return f"{self.node_id}<{self.node_type.value}>"


# ═══════════════════════════════════════════════════════════════════
# Edges
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class WorkflowEdge:
    """Directed edge between node ids. Attributes are read-only after construction."""
    from_node: str
    to_node: str
    attributes: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        if self.from_node is None or self.to_node is None:
            raise ValueError("WorkflowEdge endpoints cannot be None")
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes or {})))

    def _has(self, key: str) -> bool:
        return self.attributes.get(key) is not None

    def attribute(self, key: str) -> str | None:
        return self.attributes.get(key)

    @property
    def condition(self) -> str | None:
        return self.attribute("condition")

    @property
    def decision_value(self) -> str | None:
        return self.attribute("decision_value")

    @property
    def target_service(self) -> str | None:
        return self.attribute("target_service")

    @property
    def target_operation(self) -> str | None:
        return self.attribute("target_operation")

    @property
    def label(self) -> str | None:
        return self.attribute("label")

    @property
    def endpoint(self) -> str | None:
        return self.attribute("endpoint")

    @property
    def is_decision_edge(self) -> bool:
        return self._has("condition") and self._has("decision_value")

    @property
    def has_target_service(self) -> bool:
        return self._has("target_service") and self._has("target_operation")

    @property
    def is_positive_decision_path(self) -> bool:
        return self.condition == DECISION_EQUAL

    @property
    def is_negative_decision_path(self) -> bool:
        return self.condition == DECISION_NOT_EQUAL

    @property
    def is_end(self) -> bool:
        return self.to_node == END

    def accepts(self, value: str | None) -> bool:
        """Evaluate this edge's guard against an upstream decision value."""
        if not self.is_decision_edge:
            return False
        if self.is_positive_decision_path:
            return value == self.decision_value
        if self.is_negative_decision_path:
            return value != self.decision_value
        return False

    def __str__(self) -> str:
        if self.is_decision_edge:
            return (f"{self.from_node} -> {self.to_node} "
                    f"[{self.condition}={self.decision_value}]")
        return f"{self.from_node} -> {self.to_node}"


# ═══════════════════════════════════════════════════════════════════
# Graph
# ═══════════════════════════════════════════════════════════════════

class WorkflowModel:
    """
    Service nodes, transition nodes and edges of one workflow.

    Node maps are keyed by node id (last write wins). Edges keep insertion
    order and are never deduplicated. Service and transition ids are
    expected to be disjoint; the model does not enforce it.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._service_nodes: dict[str, ServiceNode] = {}
        self._transition_nodes: dict[str, TransitionNode] = {}
        self._edges: list[WorkflowEdge] = []

    # ── Insertion ───────────────────────────────────────────────

    def add_service_node(self, node: ServiceNode) -> None:
        self._service_nodes[node.node_id] = node

    def add_transition_node(self, node: TransitionNode) -> None:
        self._transition_nodes[node.node_id] = node

    def add_workflow_edge(self, edge: WorkflowEdge) -> None:
        self._edges.append(edge)

    # ── Lookup ──────────────────────────────────────────────────

    @property
    def service_nodes(self) -> Mapping[str, ServiceNode]:
        return MappingProxyType(self._service_nodes)

    @property
    def transition_nodes(self) -> Mapping[str, TransitionNode]:
        return MappingProxyType(self._transition_nodes)

    @property
    def edges(self) -> tuple[WorkflowEdge, ...]:
        return tuple(self._edges)

    def get_service_node(self, node_id: str) -> ServiceNode | None:
        return self._service_nodes.get(node_id)

    def get_transition_node(self, node_id: str) -> TransitionNode | None:
        return self._transition_nodes.get(node_id)

    def node_exists(self, node_id: str) -> bool:
        return node_id in self._service_nodes or node_id in self._transition_nodes

    def has_edge(self, from_node: str, to_node: str) -> bool:
        return any(e.from_node == from_node and e.to_node == to_node for e in self._edges)

    def edges_from(self, node_id: str) -> list[WorkflowEdge]:
        return [e for e in self._edges if e.from_node == node_id]

    def edges_to(self, node_id: str) -> list[WorkflowEdge]:
        return [e for e in self._edges if e.to_node == node_id]

    def build_adjacency_list(self) -> dict[str, list[str]]:
        adjacency: dict[str, list[str]] = {}
        for edge in self._edges:
            adjacency.setdefault(edge.from_node, []).append(edge.to_node)
        return adjacency

    def describe(self) -> None:
        """Log every node and edge at DEBUG."""
        logger.debug("Workflow %r: %d services, %d transitions, %d edges",
                     self.name, len(self._service_nodes),
                     len(self._transition_nodes), len(self._edges))
        for edge in self._edges:
            if edge.has_target_service:
                logger.debug("  edge %s target=%s:%s", edge,
                             edge.target_service, edge.target_operation)
            else:
                logger.debug("  edge %s", edge)
        for node in self._service_nodes.values():
            logger.debug("  service %s", node)
        for node in self._transition_nodes.values():
            logger.debug("  transition %s", node)

    def __repr__(self) -> str:
        return (f"WorkflowModel(name={self.name!r}, services={len(self._service_nodes)}, "
                f"transitions={len(self._transition_nodes)}, edges={len(self._edges)})")
