"""
Routing Core — Workflow Resolver

Graph model, routing resolution and address derivation for rule-governed
service workflows. Everything here is synchronous and performs no I/O
except the workflow loader and the config layer.

Usage:
    from resolver import load_workflow, RoutingResolver, derive_address

    model, issues = load_workflow("workflows/triage.json")
    resolver = RoutingResolver(model)
    table = resolver.build_route_table()
"""

from resolver.model import (
    NodeType, ServiceNode, TransitionNode, WorkflowEdge, WorkflowModel,
    terminate_node, END, START, TERMINATE,
)
from resolver.errors import (
    RoutingCoreError, ConfigurationError, RuleBaseParseError,
    WorkflowError, WorkflowLoadError, CyclicWorkflowError, AddressError,
)
from resolver.issues import Issue, ValidationResult
from resolver.routing import RoutingResolver, RouteTable, ServiceRoute, Destination
from resolver.address import (
    Endpoint, PortScheme, channel_number,
    derive_address, derive_rule_address, derive_sync_address,
)
from resolver.loader import load_workflow, build_model
from resolver.validate import validate_workflow
