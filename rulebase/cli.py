"""
Routing Core — Knowledge Base Build CLI

Usage:
    # Every service
    python -m rulebase.cli build v001

    # Filtered: dispatch facts only for these services
    python -m rulebase.cli build v001 TriageService,MonitorService

    # Also write a copy under the current directory
    python -m rulebase.cli build v001 ALL --local --root /srv/common
"""

import argparse
import sys
from pathlib import Path

from resolver.config_loader import get_config
from resolver.errors import RoutingCoreError
from resolver.logging import StructuredLogger, configure_logging
from rulebase.builder import RuleBaseBuilder, parse_services
from rulebase.sources import RuleBaseConfig


def cmd_build(args, config):
    """Assemble and write Service.ruleml for one version."""
    rb_config = RuleBaseConfig.from_config(config, root=args.root)
    output_dirs = [rb_config.root]
    if args.local:
        output_dirs.append(Path.cwd())

    print(f"\n{'═' * 60}", file=sys.stderr)
    print(f"  BUILDING RULE BASE: {args.version}", file=sys.stderr)
    print(f"  services: {args.services}", file=sys.stderr)
    print(f"  root:     {rb_config.root}", file=sys.stderr)
    print(f"{'═' * 60}", file=sys.stderr, flush=True)

    try:
        builder = RuleBaseBuilder(
            args.version,
            parse_services(args.services),
            rb_config,
            output_dirs=output_dirs,
            trace=StructuredLogger(component="rulebase", version=args.version),
        )
        result = builder.build()
    except (RoutingCoreError, OSError) as e:
        print(f"\n{'═' * 60}", file=sys.stderr)
        print("  BUILD FAILED", file=sys.stderr)
        print(f"  error: {e}", file=sys.stderr)
        print(f"{'═' * 60}\n", file=sys.stderr)
        sys.exit(1)

    print(result.summary(), file=sys.stderr)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Routing Core — Knowledge Base Builder",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--env", default=None, help="Config environment (default: RC_ENV or dev)")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")

    subs = parser.add_subparsers(dest="command", help="Command")

    build_p = subs.add_parser("build", help="Build RuleFolder.<version>/Service.ruleml")
    build_p.add_argument("version", help="Version identifier, e.g. v001")
    build_p.add_argument("services", nargs="?", default="ALL",
                         help="ALL (default) or a comma-separated service list")
    build_p.add_argument("--root", default=None,
                         help="Directory holding RuleBase/ and ServiceAttributeBindings/")
    build_p.add_argument("--local", action="store_true",
                         help="Also write the output under the current directory")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = get_config(env=args.env)
    configure_logging(level=args.log_level or config.get("logging.level", "INFO"))

    if args.command == "build":
        cmd_build(args, config)


if __name__ == "__main__":
    main()
