"""
Routing Core — Resolver CLI

Inspect a workflow description from the command line.

Usage:
    # Batch-validate a workflow (optionally against a built knowledge base)
    python -m resolver.cli validate workflows/triage.json \\
        [--kb RuleFolder.v001/Service.ruleml] [--strict]

    # Per-service routing table
    python -m resolver.cli routes workflows/triage.json [--format json]

    # Next hops out of a transition for an upstream decision value
    python -m resolver.cli resolve workflows/triage.json \\
        --transition T_out_Triage --value DIRECT_TO_TREATMENT

    # Endpoint for a channel/port pair
    python -m resolver.cli address 224.0.1.3 1025 [--kind rule]
"""

import argparse
import json
import sys

import yaml

from resolver.address import (
    PortScheme, derive_address, derive_rule_address, derive_sync_address,
)
from resolver.config_loader import get_config
from resolver.errors import ConfigurationError, RoutingCoreError
from resolver.loader import load_workflow
from resolver.logging import StructuredLogger, configure_logging
from resolver.routing import RoutingResolver
from resolver.validate import validate_workflow

_DERIVERS = {
    "event": derive_address,
    "rule": derive_rule_address,
    "sync": derive_sync_address,
}


def _load(args):
    model, issues = load_workflow(args.workflow)
    if issues.errors:
        print(issues.summary(), file=sys.stderr)
    return model, issues


def cmd_validate(args, config):
    """Run every workflow check and print the grouped report."""
    model, issues = _load(args)
    resolver = RoutingResolver.from_config(model, config)

    engine = kb = None
    if args.kb:
        from rulebase.reasoner import RuleMLEngine
        engine = RuleMLEngine()
        try:
            with open(args.kb, encoding="utf-8") as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Cannot read knowledge base {args.kb}: {e}", path=args.kb) from e
        kb = engine.parse(text)

    issues.merge(validate_workflow(model, engine=engine, kb=kb, resolver=resolver))

    if args.strict:
        for issue in issues.issues:
            if issue.level == "warning":
                issue.level = "error"

    print(issues.summary())
    if not issues.valid:
        sys.exit(1)


def cmd_routes(args, config):
    """Print the routing table for every service node."""
    model, _ = _load(args)
    trace = StructuredLogger(component="resolver")
    table = RoutingResolver.from_config(model, config, trace=trace).build_route_table()

    data = table.to_dict()
    if args.format == "json":
        print(json.dumps(data, indent=2))
    else:
        print(yaml.safe_dump(data, sort_keys=False), end="")

    if not table.issues.valid:
        print(table.issues.summary(), file=sys.stderr)
        sys.exit(1)


def cmd_resolve(args, config):
    """Print the next hops out of one transition."""
    model, _ = _load(args)
    transition = model.get_transition_node(args.transition)
    if transition is None:
        print(f"Error: transition not found: {args.transition}", file=sys.stderr)
        sys.exit(1)

    resolver = RoutingResolver.from_config(model, config)
    if transition.node_type.is_decision and args.value is None:
        hops = resolver.find_decision_destinations(transition)
    else:
        hops = resolver.resolve_decision(transition, args.value)

    print(f"  {transition} value={args.value!r}", file=sys.stderr)
    if not hops:
        print("  (no destinations: workflow terminates)", file=sys.stderr)
    for node in hops:
        print(f"{node.node_id}\t{node.service}:{node.operation}")


def cmd_address(args, config):
    """Print the endpoint for a channel/port pair."""
    scheme = PortScheme.from_config(config)
    endpoint = _DERIVERS[args.kind](args.channel, args.port, scheme)
    print(str(endpoint))


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Routing Core — Workflow Resolver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--env", default=None, help="Config environment (default: RC_ENV or dev)")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")

    subs = parser.add_subparsers(dest="command", help="Command")

    # validate
    val_p = subs.add_parser("validate", help="Batch-validate a workflow description")
    val_p.add_argument("workflow", help="Workflow .json / .yaml file")
    val_p.add_argument("--kb", help="Built Service.ruleml to check services against")
    val_p.add_argument("--strict", action="store_true", help="Treat warnings as errors")

    # routes
    routes_p = subs.add_parser("routes", help="Show per-service routing table")
    routes_p.add_argument("workflow")
    routes_p.add_argument("--format", choices=["yaml", "json"], default="yaml")

    # resolve
    resolve_p = subs.add_parser("resolve", help="Next hops out of a transition")
    resolve_p.add_argument("workflow")
    resolve_p.add_argument("--transition", "-t", required=True)
    resolve_p.add_argument("--value", help="Upstream decision value")

    # address
    addr_p = subs.add_parser("address", help="Derive a listener endpoint")
    addr_p.add_argument("channel")
    addr_p.add_argument("port")
    addr_p.add_argument("--kind", choices=sorted(_DERIVERS), default="event")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = get_config(env=args.env)
    configure_logging(level=args.log_level or config.get("logging.level", "INFO"))

    commands = {
        "validate": cmd_validate,
        "routes": cmd_routes,
        "resolve": cmd_resolve,
        "address": cmd_address,
    }
    try:
        commands[args.command](args, config)
    except RoutingCoreError as e:
        print(f"\n  ✗ FAILED: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
