"""
Routing Core — Routing Resolver

Traversal algorithms over a WorkflowModel. Answers, for every service hop:

  inbound role   — which transitions trigger the service (find_incoming_transitions)
  outbound route — which transitions receive its output (find_outgoing_transitions)
  next hop       — which concrete service:operation gets the token next
                   (find_destination_services / resolve_decision)

Incoming and outgoing discovery are deliberately separate operations: a
service is commonly fed by a JoinNode and drained by an EdgeNode, and the
inbound transition type is what classifies the service's position.

Reachability walks through intermediate transitions depth-first, first
match wins. A TerminateNode yields the TERMINATE sentinel. A node revisited
on its own path, or a path longer than max_depth, raises
CyclicWorkflowError.

Usage:
    from resolver.routing import RoutingResolver

    resolver = RoutingResolver(model)
    role = resolver.find_incoming_transitions(service)[0].node_type
    hops = resolver.resolve_decision(model.get_transition_node("T_out_Triage"), "DIRECT_TO_TREATMENT")
    table = resolver.build_route_table()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from resolver.errors import CyclicWorkflowError
from resolver.issues import ValidationResult
from resolver.logging import StructuredLogger
from resolver.model import (
    ServiceNode, TransitionNode, WorkflowEdge, WorkflowModel, terminate_node,
)

logger = logging.getLogger("routing_core.routing")

DEFAULT_MAX_DEPTH = 256
DEFAULT_MONITOR_SERVICE = "MonitorService"


# ═══════════════════════════════════════════════════════════════════
# Route table types
# ═══════════════════════════════════════════════════════════════════

@dataclass
class Destination:
    """One resolved next hop for a service."""
    via: str             # transition id the token leaves through
    node_id: str
    service: str
    operation: str
    condition: str | None = None
    decision_value: str | None = None

    @property
    def terminal(self) -> bool:
        return self.service == "TERMINATE"

    def to_dict(self) -> dict[str, Any]:
        d = {
            "via": self.via,
            "node_id": self.node_id,
            "service": self.service,
            "operation": self.operation,
        }
        if self.condition is not None:
            d["condition"] = self.condition
            d["decision_value"] = self.decision_value
        return d


@dataclass
class ServiceRoute:
    """Routing metadata for one service node."""
    node_id: str
    service: str
    operation: str
    operations: list[str] = field(default_factory=list)
    role: str | None = None
    incoming: list[str] = field(default_factory=list)
    outgoing: list[str] = field(default_factory=list)
    destinations: list[Destination] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "service": self.service,
            "operation": self.operation,
            "operations": self.operations,
            "role": self.role,
            "incoming": self.incoming,
            "outgoing": self.outgoing,
            "destinations": [d.to_dict() for d in self.destinations],
        }


@dataclass
class RouteTable:
    routes: list[ServiceRoute] = field(default_factory=list)
    issues: ValidationResult = field(default_factory=ValidationResult)

    def get(self, node_id: str) -> ServiceRoute | None:
        for route in self.routes:
            if route.node_id == node_id:
                return route
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "routes": [r.to_dict() for r in self.routes],
            "valid": self.issues.valid,
            "errors": [str(i).strip() for i in self.issues.errors],
        }


# ═══════════════════════════════════════════════════════════════════
# Resolver
# ═══════════════════════════════════════════════════════════════════

class RoutingResolver:
    """Read-only traversal over a WorkflowModel."""

    def __init__(
        self,
        model: WorkflowModel,
        max_depth: int = DEFAULT_MAX_DEPTH,
        monitor_service: str = DEFAULT_MONITOR_SERVICE,
        trace: StructuredLogger | None = None,
    ):
        self.model = model
        self.max_depth = max_depth
        self.monitor_service = monitor_service
        self.trace = trace

    @classmethod
    def from_config(cls, model: WorkflowModel, config, trace: StructuredLogger | None = None):
        return cls(
            model,
            max_depth=int(config.get("routing.max_depth", DEFAULT_MAX_DEPTH)),
            monitor_service=config.get("routing.monitor_service", DEFAULT_MONITOR_SERVICE),
            trace=trace,
        )

    # ── Inbound / outbound ──────────────────────────────────────

    def find_incoming_transitions(self, service: ServiceNode) -> list[TransitionNode]:
        """Transitions with an edge into the service: its trigger."""
        incoming = []
        for edge in self.model.edges_to(service.node_id):
            transition = self.model.get_transition_node(edge.from_node)
            if transition is not None:
                incoming.append(transition)
            else:
                logger.debug("Edge %s: source is not a transition node", edge)
        logger.debug("Service %s has %d incoming transitions", service.node_id, len(incoming))
        return incoming

    def find_outgoing_transitions(self, service: ServiceNode) -> list[TransitionNode]:
        """Transitions with an edge out of the service: where results go."""
        outgoing = []
        for edge in self.model.edges_from(service.node_id):
            transition = self.model.get_transition_node(edge.to_node)
            if transition is not None:
                outgoing.append(transition)
            else:
                logger.debug("Edge %s: target is not a transition node", edge)
        logger.debug("Service %s has %d outgoing transitions", service.node_id, len(outgoing))
        return outgoing

    # ── Destinations ────────────────────────────────────────────

    def find_destination_services(
        self,
        from_service: ServiceNode | None,
        transition: TransitionNode,
    ) -> list[ServiceNode]:
        """Next-hop services reachable from a transition, in edge order."""
        return [node for _, node in self._resolve_edges(transition) if node is not None]

    def find_decision_destinations(self, transition: TransitionNode) -> list[ServiceNode]:
        """Every branch target of a decision transition, regardless of value."""
        return [node for _, node in self._resolve_decision_edges(transition) if node is not None]

    def resolve_decision(self, transition: TransitionNode, value: str | None) -> list[ServiceNode]:
        """
        Next hops for an upstream decision value.

        Only decision edges whose guard accepts the value contribute. An
        accepted edge to END contributes nothing: the workflow terminates.
        Non-decision transitions route unconditionally.
        """
        if not transition.node_type.is_decision:
            return self.find_destination_services(None, transition)
        hops = []
        for edge, node in self._resolve_decision_edges(transition):
            if not edge.accepts(value):
                continue
            if node is not None:
                hops.append(node)
            elif edge.is_end:
                logger.debug("Decision %s=%r terminates at END", transition.node_id, value)
        return hops

    def _resolve_edges(self, transition: TransitionNode) -> list[tuple[WorkflowEdge, ServiceNode | None]]:
        if transition.node_type.is_decision:
            return self._resolve_decision_edges(transition)
        return [
            (edge, self.find_reachable_service(edge.to_node))
            for edge in self.model.edges_from(transition.node_id)
        ]

    def _resolve_decision_edges(self, decision: TransitionNode) -> list[tuple[WorkflowEdge, ServiceNode | None]]:
        resolved = []
        for edge in self.model.edges_from(decision.node_id):
            if not edge.is_decision_edge:
                continue
            if edge.has_target_service:
                # Explicit override wins over whatever the graph reaches
                target = ServiceNode(
                    f"{edge.target_service}_{edge.target_operation}",
                    edge.target_service,
                    edge.target_operation,
                    {},
                )
            else:
                target = self.find_reachable_service(edge.to_node)
            if target is None and edge.is_end:
                logger.debug("Termination edge %s", edge)
            resolved.append((edge, target))
        return resolved

    # ── Reachability ────────────────────────────────────────────

    def find_reachable_service(self, node_id: str) -> ServiceNode | None:
        """Nearest service (or TERMINATE sentinel) reachable from node_id."""
        return self._reach(node_id, node_id, [], set())

    def _reach(self, start: str, node_id: str, path: list[str], explored: set[str]) -> ServiceNode | None:
        service = self.model.get_service_node(node_id)
        if service is not None:
            return service

        transition = self.model.get_transition_node(node_id)
        if transition is None:
            return None
        if transition.node_type.is_terminal:
            logger.debug("Reached TerminateNode %s from %s", node_id, start)
            return terminate_node()

        if node_id in path:
            raise CyclicWorkflowError(start, path + [node_id])
        if len(path) >= self.max_depth:
            raise CyclicWorkflowError(start, path + [node_id], reason=f"depth > {self.max_depth}")
        if node_id in explored:
            # Converging paths: already searched, nothing found
            return None

        path.append(node_id)
        try:
            for edge in self.model.edges_from(node_id):
                found = self._reach(start, edge.to_node, path, explored)
                if found is not None:
                    return found
        finally:
            path.pop()
        explored.add(node_id)
        return None

    # ── Linting ─────────────────────────────────────────────────

    def find_standalone_monitor_nodes(self) -> list[TransitionNode]:
        """MonitorNode transitions with no monitoring service registered."""
        has_monitor_service = any(
            s.service == self.monitor_service for s in self.model.service_nodes.values()
        )
        if has_monitor_service:
            return []
        return [
            t for t in self.model.transition_nodes.values()
            if t.node_type.is_monitor
        ]

    # ── Route table ─────────────────────────────────────────────

    def build_route_table(self) -> RouteTable:
        """
        Routing metadata for every service node, with resolution problems
        collected into table.issues rather than raised.
        """
        table = RouteTable()
        for service in self.model.service_nodes.values():
            incoming = self.find_incoming_transitions(service)
            outgoing = self.find_outgoing_transitions(service)
            route = ServiceRoute(
                node_id=service.node_id,
                service=service.service,
                operation=service.operation,
                operations=sorted(service.all_operations),
                role=incoming[0].node_type.value if incoming else None,
                incoming=[t.node_id for t in incoming],
                outgoing=[t.node_id for t in outgoing],
            )

            roles = {t.node_type for t in incoming}
            if len(roles) > 1:
                table.issues.add(
                    "warning", "AMBIGUOUS_ROLE", service.node_id,
                    f"Incoming transitions disagree on role: {sorted(r.value for r in roles)}",
                    f"{service.service}:{service.operation}",
                )

            for transition in outgoing:
                try:
                    resolved = self._resolve_edges(transition)
                except CyclicWorkflowError as e:
                    table.issues.add(
                        "error", "ROUTING_CYCLE", transition.node_id, str(e),
                        f"from {service.node_id}",
                    )
                    continue
                for edge, node in resolved:
                    if node is not None:
                        route.destinations.append(Destination(
                            via=transition.node_id,
                            node_id=node.node_id,
                            service=node.service,
                            operation=node.operation,
                            condition=edge.condition if edge.is_decision_edge else None,
                            decision_value=edge.decision_value if edge.is_decision_edge else None,
                        ))
                    elif not edge.is_end:
                        table.issues.add(
                            "error", "UNRESOLVED_DESTINATION", f"edge:{edge.from_node}->{edge.to_node}",
                            f"No service or TerminateNode reachable from {edge.to_node!r}",
                            f"from {service.node_id} via {transition.node_id}",
                        )

            if self.trace:
                self.trace.on_route_resolved(service.node_id, route.role, len(route.destinations))
            table.routes.append(route)

        if self.trace:
            for issue in table.issues.issues:
                self.trace.on_validation_issue(issue.level, issue.location, issue.message)
        return table
