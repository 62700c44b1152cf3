"""
Routing Core — Workflow Description Loader

Reads a workflow editor document (JSON or YAML) and populates a
WorkflowModel. Node type strings are parsed into NodeType here and only
here; the rest of the package works with the enum.

Document shape:

    processType: PetriNet | SOA
    elements:
      - {id: P_Triage, type: PLACE, service: TriageService,
         operations: [processTriageAssessment]}
      - {id: T_out_Triage, type: TRANSITION, node_type: DecisionNode,
         transition_type: T_out}
      - {id: EG_Triage, type: EVENT_GENERATOR, label: TRIAGE_EVENTGENERATOR}
    arrows:
      - {source: P_Triage, target: T_out_Triage}
      - {source: T_out_Triage, target: T_in_Treatment,
         guardCondition: DECISION_EQUAL, decision_value: DIRECT_TO_TREATMENT}

Element problems (unknown node type, missing service) are collected into a
ValidationResult and the element is skipped; only unreadable documents and
a missing or unknown processType raise WorkflowLoadError.

Usage:
    from resolver.loader import load_workflow

    model, issues = load_workflow("workflows/triage.json")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from resolver.errors import WorkflowLoadError
from resolver.issues import ValidationResult
from resolver.model import (
    EVENT_GENERATOR, NodeType, ServiceNode, TransitionNode, WorkflowEdge, WorkflowModel,
)

logger = logging.getLogger("routing_core.loader")

VALID_PROCESS_TYPES = {"PetriNet", "SOA"}

# Transition kinds that may carry an input buffer size
BUFFERED_TRANSITION_TYPES = {"T_in", "Other"}

_ARROW_KEYS = ("label", "decision_value", "endpoint", "target_service", "target_operation")


def load_workflow(path: str | Path) -> tuple[WorkflowModel, ValidationResult]:
    """Read a .json / .yaml / .yml workflow description from disk."""
    path = Path(path)
    try:
        with open(path) as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                document = yaml.safe_load(f)
            else:
                document = json.load(f)
    except FileNotFoundError:
        raise WorkflowLoadError(f"Workflow file not found: {path}", path=str(path)) from None
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise WorkflowLoadError(f"Failed to parse workflow {path}: {e}", path=str(path)) from e

    return build_model(document, source=str(path))


def build_model(document: Any, source: str = "<memory>") -> tuple[WorkflowModel, ValidationResult]:
    """Populate a WorkflowModel from an already-parsed editor document."""
    if not isinstance(document, dict):
        raise WorkflowLoadError(f"{source}: workflow document must be a mapping", path=source)

    process_type = document.get("processType")
    if not process_type:
        raise WorkflowLoadError(
            f"{source}: required field 'processType' not found. "
            f"Add \"processType\": \"PetriNet\" or \"processType\": \"SOA\"",
            path=source,
        )
    if process_type not in VALID_PROCESS_TYPES:
        raise WorkflowLoadError(
            f"{source}: processType {process_type!r} not in {sorted(VALID_PROCESS_TYPES)}",
            path=source,
        )

    model = WorkflowModel(name=document.get("name") or Path(source).stem)
    result = ValidationResult()

    for element in document.get("elements") or []:
        if not isinstance(element, dict):
            result.add("error", "INVALID_ELEMENT", source, f"Element is not a mapping: {element!r}")
            continue
        kind = element.get("type")
        if kind == "PLACE":
            _add_place(model, element, result)
        elif kind == "TRANSITION":
            _add_transition(model, element, result)
        elif kind == "EVENT_GENERATOR":
            _add_event_generator(model, element)
        else:
            result.add("warning", "UNKNOWN_ELEMENT", str(element.get("id", "?")),
                       f"Unknown element type {kind!r}, skipped")

    for arrow in document.get("arrows") or []:
        edge = _make_edge(arrow)
        if edge is None:
            result.add("error", "INVALID_ARROW", source, f"Arrow needs source and target: {arrow!r}")
            continue
        model.add_workflow_edge(edge)
        if edge.is_decision_edge:
            logger.debug("Decision edge %s", edge)

    logger.info(
        "Loaded workflow %s: %d services, %d transitions, %d edges (%s)",
        model.name, len(model.service_nodes), len(model.transition_nodes),
        len(model.edges), process_type,
    )
    return model, result


# ═══════════════════════════════════════════════════════════════════
# Elements
# ═══════════════════════════════════════════════════════════════════

def _operations(element: dict) -> list[tuple[str, dict]]:
    """Operation names with per-operation details, in document order."""
    ops = element.get("operations")
    if isinstance(ops, str):
        ops = [o.strip() for o in ops.split(",") if o.strip()]
    if not ops:
        single = element.get("operation")
        ops = [single] if single else []
    parsed = []
    for op in ops:
        if isinstance(op, dict):
            if op.get("name"):
                parsed.append((str(op["name"]), op))
        elif op:
            parsed.append((str(op), {}))
    return parsed


def _add_place(model: WorkflowModel, element: dict, result: ValidationResult) -> None:
    node_id = element.get("id")
    service = element.get("service")
    operations = _operations(element)
    if not node_id or not service or not operations:
        result.add(
            "error", "INCOMPLETE_PLACE", str(node_id or "?"),
            "PLACE needs id, service and at least one operation",
        )
        return

    primary, details = operations[0]
    attributes = {
        "label": str(element.get("label") or ""),
        "service": str(service),
        "operation": primary,
    }
    arguments = details.get("arguments") or []
    if arguments:
        attributes["operationArguments"] = ",".join(str(a) for a in arguments)
    if details.get("returnAttribute"):
        attributes["returnAttribute"] = str(details["returnAttribute"])
    if len(operations) > 1:
        attributes["operations"] = ",".join(name for name, _ in operations)
    if element.get("floating") is not None:
        attributes["floating"] = str(element["floating"]).lower()

    node = ServiceNode(str(node_id), str(service), primary, attributes)
    node.set_all_operations([name for name, _ in operations])
    model.add_service_node(node)


def _add_transition(model: WorkflowModel, element: dict, result: ValidationResult) -> None:
    node_id = element.get("id")
    raw_type = element.get("node_type")
    if not node_id or not raw_type:
        result.add("error", "INCOMPLETE_TRANSITION", str(node_id or "?"),
                   "TRANSITION needs id and node_type")
        return
    try:
        node_type = NodeType.parse(str(raw_type))
    except ValueError as e:
        result.add("error", "INVALID_NODE_TYPE", str(node_id), str(e))
        return

    node_value = str(element.get("node_value") or "")
    attributes = {
        "label": str(element.get("label") or ""),
        "node_type": node_type.value,
        "node_value": node_value,
    }
    transition_type = element.get("transition_type")
    if transition_type:
        attributes["transition_type"] = str(transition_type)
    buffer = element.get("buffer")
    if buffer not in (None, "") and transition_type:
        if transition_type in BUFFERED_TRANSITION_TYPES:
            attributes["buffer"] = str(buffer)
        else:
            logger.debug("Ignoring buffer on %s transition %s", transition_type, node_id)
    if element.get("floating") is not None:
        attributes["floating"] = str(element["floating"]).lower()

    model.add_transition_node(TransitionNode(str(node_id), node_type, node_value, attributes))


def _add_event_generator(model: WorkflowModel, element: dict) -> None:
    node_id = str(element.get("id") or EVENT_GENERATOR)
    attributes = {
        "label": str(element.get("label") or ""),
        "node_type": NodeType.EVENT_GENERATOR.value,
        "elementType": EVENT_GENERATOR,
    }
    model.add_transition_node(
        TransitionNode(node_id, NodeType.EVENT_GENERATOR, EVENT_GENERATOR, attributes)
    )


# ═══════════════════════════════════════════════════════════════════
# Arrows
# ═══════════════════════════════════════════════════════════════════

def _make_edge(arrow: Any) -> WorkflowEdge | None:
    if not isinstance(arrow, dict):
        return None
    source, target = arrow.get("source"), arrow.get("target")
    if not source or not target:
        return None
    attributes = {}
    condition = arrow.get("guardCondition") or arrow.get("condition")
    if condition:
        attributes["condition"] = str(condition)
    for key in _ARROW_KEYS:
        value = arrow.get(key)
        if value not in (None, ""):
            attributes[key] = str(value)
    return WorkflowEdge(str(source), str(target), attributes)
