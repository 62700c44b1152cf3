"""
Routing Core — Workflow Validator

Batch validation of a loaded WorkflowModel. Every check appends to one
ValidationResult so a workflow author sees all problems in a single report.

Checks:
  1. SERVICES      — each service:operation is known to the knowledge base
                     (activeService, then hasOperation). Only when a
                     reasoning engine and knowledge base are supplied.
  2. STRUCTURE     — every edge endpoint exists (EVENT_GENERATOR sources,
                     END / START targets are allowed)
  3. CONNECTIVITY  — no service node without any edge (floating nodes skipped)
  4. JOINS         — every JoinNode has 2+ incoming edges
  5. ROUTES        — every outgoing edge resolves to a service or TERMINATE;
                     no cycles
  6. MONITORS      — MonitorNode transitions with no monitoring service

Usage:
    from resolver.loader import load_workflow
    from resolver.validate import validate_workflow

    model, issues = load_workflow("workflows/triage.json")
    issues.merge(validate_workflow(model))
    print(issues.summary())
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from xml.sax.saxutils import escape

from resolver.errors import RuleBaseParseError
from resolver.issues import ValidationResult
from resolver.model import END, EVENT_GENERATOR, START, WorkflowModel
from resolver.routing import RoutingResolver

if TYPE_CHECKING:
    from rulebase.reasoner import KnowledgeBase, ReasoningEngine

logger = logging.getLogger("routing_core.validate")

_SERVICE_QUERY = (
    "<Query><Atom><Rel>{rel}</Rel><Ind>{service}</Ind><Ind>{operation}</Ind>"
    "<Var>channelId</Var><Var>port</Var></Atom></Query>"
)


# ═══════════════════════════════════════════════════════════════════
# Individual checks
# ═══════════════════════════════════════════════════════════════════

def validate_services(
    model: WorkflowModel,
    engine: ReasoningEngine,
    kb: KnowledgeBase,
) -> ValidationResult:
    """Every operation of every service node must be deployed."""
    result = ValidationResult()
    for node in model.service_nodes.values():
        for operation in sorted(node.all_operations):
            context = f"{node.service}:{operation} (service_node)"
            try:
                rows = engine.query(kb, _SERVICE_QUERY.format(
                    rel="activeService", service=escape(node.service), operation=escape(operation)))
                if not rows:
                    rows = engine.query(kb, _SERVICE_QUERY.format(
                        rel="hasOperation", service=escape(node.service), operation=escape(operation)))
            except RuleBaseParseError as e:
                result.add("error", "KB_QUERY_ERROR", node.node_id,
                           f"Error querying knowledge base for {node.service}:{operation}: {e}",
                           context)
                continue

            if not rows:
                result.add("error", "SERVICE_NOT_FOUND", node.node_id,
                           f"Service:operation not found in activeService or hasOperation: "
                           f"{node.service}:{operation}", context)
                continue

            bound = {name for row in rows for name, _ in row}
            missing = [v for v in ("?channelId", "?port") if v not in bound]
            if missing:
                result.add("error", "SERVICE_NOT_FOUND", node.node_id,
                           f"Incomplete service configuration for {node.service}:{operation} "
                           f"(missing {', '.join(m[1:] for m in missing)})", context)
    return result


def validate_structure(model: WorkflowModel) -> ValidationResult:
    result = ValidationResult()
    for edge in model.edges:
        if not (model.node_exists(edge.from_node) or edge.from_node == EVENT_GENERATOR):
            result.add("error", "WORKFLOW_INCONSISTENCY", edge.from_node,
                       f"Edge references non-existent source node: {edge.from_node}",
                       f"edge: {edge}")
        if not (model.node_exists(edge.to_node) or edge.to_node in (END, START)):
            result.add("error", "WORKFLOW_INCONSISTENCY", edge.to_node,
                       f"Edge references non-existent target node: {edge.to_node}",
                       f"edge: {edge}")
    return result


def validate_connectivity(model: WorkflowModel) -> ValidationResult:
    result = ValidationResult()
    adjacency = model.build_adjacency_list()
    targets = {e.to_node for e in model.edges}
    for node in model.service_nodes.values():
        if node.attributes.get("floating") == "true":
            logger.info("Skipping connectivity check for floating node %s", node.node_id)
            continue
        if node.node_id not in targets and node.node_id not in adjacency:
            result.add("error", "WORKFLOW_INCOMPLETE", node.node_id,
                       f"Service node is disconnected (no incoming or outgoing edges): {node.node_id}",
                       f"{node.service}:{node.operation}")
    return result


def validate_join_nodes(model: WorkflowModel) -> ValidationResult:
    result = ValidationResult()
    for transition in model.transition_nodes.values():
        if not transition.node_type.is_join:
            continue
        incoming = len(model.edges_to(transition.node_id))
        if incoming < 2:
            result.add(
                "error", "JOIN_NODE_INSUFFICIENT_INPUTS", transition.node_id,
                f"JoinNode has only {incoming} incoming edge(s); a join synchronizes "
                f"parallel paths and needs 2 or more. Use EdgeNode for a single input.",
                "JoinNode requires 2+ inputs for synchronization",
            )
    return result


def validate_routes(resolver: RoutingResolver) -> ValidationResult:
    return resolver.build_route_table().issues


def validate_monitors(resolver: RoutingResolver) -> ValidationResult:
    result = ValidationResult()
    for transition in resolver.find_standalone_monitor_nodes():
        result.add("warning", "STANDALONE_MONITOR", transition.node_id,
                   f"MonitorNode present but no {resolver.monitor_service} service node is registered")
    return result


# ═══════════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════════

def validate_workflow(
    model: WorkflowModel,
    engine: ReasoningEngine | None = None,
    kb: KnowledgeBase | None = None,
    resolver: RoutingResolver | None = None,
) -> ValidationResult:
    """Run every check and return the combined result."""
    resolver = resolver or RoutingResolver(model)
    result = ValidationResult()

    if engine is not None and kb is not None:
        result.merge(validate_services(model, engine, kb))
    result.merge(validate_structure(model))
    result.merge(validate_connectivity(model))
    result.merge(validate_join_nodes(model))
    result.merge(validate_routes(resolver))
    result.merge(validate_monitors(resolver))

    logger.info(
        "Validated workflow %s: %d errors, %d warnings",
        model.name, len(result.errors), len(result.warnings),
    )
    return result
