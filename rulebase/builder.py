"""
Routing Core — Knowledge Base Assembler

Builds the single authoritative Service.ruleml for one version:

  1. discover   — rule files under RuleBase/ (excluded dirs pruned)
  2. order      — core files first, then alphabetical
  3. bindings   — hierarchical > flat > generated stub, per service
  4. merge      — strip wrappers, frame each source, one Assert envelope
  5. load       — one engine.parse() per build
  6. filter     — activeService query per requested service
  7. synthesize — one serviceName fact per dispatch fact
  8. emit       — RuleFolder.<version>/Service.ruleml under each output base

Any ConfigurationError or RuleBaseParseError aborts the build before
anything is written.

Usage:
    from rulebase.builder import RuleBaseBuilder, parse_services

    builder = RuleBaseBuilder("v001", parse_services("TriageService,MonitorService"), cfg)
    result = builder.build()
    print(result.summary())
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from xml.sax.saxutils import escape

from resolver.errors import ConfigurationError
from resolver.logging import StructuredLogger
from rulebase.reasoner import KnowledgeBase, ReasoningEngine, RuleMLEngine
from rulebase.sources import (
    BindingSource, RuleBaseConfig, RuleSource,
    comment_safe, discover_sources, has_bare_double_dash, order_sources,
    read_rule_file, resolve_bindings, strip_wrappers,
)

logger = logging.getLogger("routing_core.rulebase.builder")

ALL = "ALL"

COUNTED_RELATIONS = ("activeService", "serviceName", "boundChannel", "canonicalBinding")

_ACTIVE_SERVICE_QUERY = (
    "<Query><Atom><Rel>activeService</Rel><Ind>{service}</Ind>"
    "<Var>operation</Var><Var>ip</Var><Var>port</Var></Atom></Query>"
)


def parse_services(arg: str | None) -> frozenset[str] | None:
    """Service selector: None (or 'ALL', any case) means every service."""
    if arg is None or arg.strip().upper() == ALL:
        return None
    services = frozenset(s.strip() for s in arg.split(",") if s.strip())
    if not services:
        raise ConfigurationError(f"No services in selector {arg!r}; use ALL or a comma list")
    return services


@dataclass(frozen=True)
class DispatchFact:
    service: str
    operation: str
    address: str
    port: str

    def to_atom(self) -> str:
        args = [self.service, self.operation, self.operation, "null", "null", self.address, self.port]
        inds = "".join(f"    <Ind>{escape(a)}</Ind>\n" for a in args)
        return f"<Atom>\n    <Rel>serviceName</Rel>\n{inds}</Atom>\n"


@dataclass
class BuildResult:
    version: str
    services: frozenset[str] | None
    sources: list[RuleSource] = field(default_factory=list)
    bindings: list[BindingSource] = field(default_factory=list)
    stub_bindings: list[str] = field(default_factory=list)
    dispatch_facts: list[DispatchFact] = field(default_factory=list)
    document: str = ""
    output_paths: list[Path] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)
    elapsed_s: float = 0.0

    @property
    def selector(self) -> str:
        return ", ".join(sorted(self.services)) if self.services else ALL

    def summary(self) -> str:
        lines = [
            f"{'═' * 60}",
            "  BUILD SUCCESSFUL",
            f"{'─' * 60}",
            f"  version:   {self.version}",
            f"  services:  {self.selector}",
            f"  sources:   {len(self.sources)} rule files, {len(self.bindings)} binding files",
        ]
        if self.stub_bindings:
            lines.append(f"  stubs:     {', '.join(self.stub_bindings)} (generic binding, needs follow-up)")
        for path in self.output_paths:
            lines.append(f"  written:   {path}")
        lines.append("  fact counts:")
        for rel in COUNTED_RELATIONS:
            lines.append(f"    {rel:<18} {self.counts.get(rel, 0)}")
        lines.append(f"  elapsed:   {self.elapsed_s:.2f}s")
        lines.append(f"{'═' * 60}")
        return "\n".join(lines)


def count_relations(document: str) -> dict[str, int]:
    return {
        rel: len(re.findall(rf"<Rel>\s*{rel}\s*</Rel>", document))
        for rel in COUNTED_RELATIONS
    }


# ═══════════════════════════════════════════════════════════════════
# Builder
# ═══════════════════════════════════════════════════════════════════

class RuleBaseBuilder:
    """One knowledge base build. Instances are single-use."""

    def __init__(
        self,
        version: str,
        services: frozenset[str] | None = None,
        config: RuleBaseConfig | None = None,
        engine: ReasoningEngine | None = None,
        output_dirs: list[str | Path] | None = None,
        trace: StructuredLogger | None = None,
    ):
        if not version or not version.strip():
            raise ConfigurationError("Build version is required")
        if services is not None and not services:
            raise ConfigurationError("Explicit service set is empty; pass None for ALL")
        self.version = version.strip()
        self.services = services
        self.config = config or RuleBaseConfig(root=Path("."))
        self.engine = engine or RuleMLEngine()
        self.output_dirs = [Path(d) for d in (output_dirs or [self.config.root])]
        self.trace = trace or StructuredLogger(component="rulebase", version=self.version)

    # ── Steps ───────────────────────────────────────────────────

    def discover(self) -> list[RuleSource]:
        return discover_sources(self.config)

    def order(self, sources: list[RuleSource]) -> list[RuleSource]:
        return order_sources(sources, self.config)

    def resolve_bindings(self) -> list[BindingSource]:
        bindings = resolve_bindings(self.config, self.services)
        for binding in bindings:
            if binding.is_stub:
                self.trace.on_stub_binding(binding.service)
            else:
                self.trace.on_binding_resolved(binding.service, binding.relative, binding.layout)
        return bindings

    def merge(
        self,
        sources: list[RuleSource],
        bindings: list[BindingSource],
        dispatch_facts: list[DispatchFact] | None = None,
    ) -> str:
        """The complete document: header, sources, serviceName facts, bindings."""
        parts = [self._header()]

        for source in sources:
            content = strip_wrappers(read_rule_file(source.path, source.relative))
            if has_bare_double_dash(content):
                logger.warning("File %s has -- outside of comments", source.relative)
            self.trace.on_source_loaded(source.relative, source.role, len(content))
            parts.append(_framed(source.relative, content))

        if dispatch_facts:
            parts.append(self.synthesize(dispatch_facts))

        if bindings:
            parts.append("\n<!-- ===== CANONICAL BINDINGS ===== -->\n")
            for binding in bindings:
                parts.append(_framed(binding.relative, binding.read()))

        parts.append("\n</Rulebase>\n</Assert>\n")
        return "".join(parts)

    def load(self, document: str) -> KnowledgeBase:
        kb = self.engine.parse(document)
        logger.info("Knowledge base loaded: %r", kb)
        return kb

    def query_dispatch_facts(self, kb: KnowledgeBase) -> list[DispatchFact]:
        """activeService rows for each requested service; empty for ALL."""
        if self.services is None:
            logger.info("Including ALL services (no filtering)")
            return []

        facts = []
        for service in sorted(self.services):
            rows = self.engine.query(kb, _ACTIVE_SERVICE_QUERY.format(service=escape(service)))
            if not rows:
                self.trace.on_query_empty(service)
                continue
            for row in rows:
                values = dict(row)
                fact = DispatchFact(service, values["?operation"], values["?ip"], values["?port"])
                self.trace.on_dispatch_fact(fact.service, fact.operation, fact.address, fact.port)
                facts.append(fact)
        return facts

    def synthesize(self, facts: list[DispatchFact]) -> str:
        block = ["\n<!-- ===== BEGIN: AUTO-GENERATED serviceName facts ===== -->\n"]
        block.extend(f.to_atom() for f in facts)
        block.append("<!-- ===== END: AUTO-GENERATED serviceName facts ===== -->\n")
        return "".join(block)

    def emit(self, document: str) -> list[Path]:
        written = []
        seen = set()
        for base in self.output_dirs:
            folder = base / f"{self.config.output_folder_prefix}{self.version}"
            target = folder / self.config.output_file
            if target.resolve() in seen:
                continue
            seen.add(target.resolve())
            try:
                folder.mkdir(parents=True, exist_ok=True)
                target.write_text(document, encoding="utf-8")
            except OSError as e:
                raise ConfigurationError(f"Cannot write {target}: {e}", path=str(target)) from e
            logger.info("Wrote %s (%d bytes)", target, len(document))
            written.append(target)
        return written

    # ── Pipeline ────────────────────────────────────────────────

    def build(self) -> BuildResult:
        start = time.time()
        self.trace.on_build_start(
            sorted(self.services) if self.services else None,
            root=str(self.config.root),
        )
        result = BuildResult(version=self.version, services=self.services)
        try:
            result.sources = self.order(self.discover())
            result.bindings = self.resolve_bindings()
            result.stub_bindings = [b.service for b in result.bindings if b.is_stub]

            kb = self.load(self.merge(result.sources, result.bindings))
            result.dispatch_facts = self.query_dispatch_facts(kb)

            result.document = self.merge(result.sources, result.bindings, result.dispatch_facts)
            result.counts = count_relations(result.document)
            result.output_paths = self.emit(result.document)
        except Exception:
            self.trace.on_build_end("failed", time.time() - start)
            raise

        result.elapsed_s = time.time() - start
        self.trace.on_build_end("ok", result.elapsed_s, [str(p) for p in result.output_paths])
        return result

    def _header(self) -> str:
        version = comment_safe(self.version)
        services = comment_safe(", ".join(sorted(self.services)) if self.services else ALL)
        generated = datetime.now(timezone.utc).isoformat(timespec="seconds")
        return (
            "<Assert>\n"
            "<Rulebase mapClosure=\"universal\">\n"
            "<!-- MASTER SERVICE RULE BASE -->\n"
            f"<!-- Generated: {generated} -->\n"
            f"<!-- Version: {version} -->\n"
            f"<!-- Services: {services} -->\n"
            f"<!-- Rule files loaded recursively from: {comment_safe(self.config.rule_base_dir)} -->\n\n"
            "<!-- Version -->\n"
            f"<Data><Atom><Rel>Version</Rel><Ind>{escape(self.version)}</Ind></Atom></Data>\n"
        )


def _framed(label: str, content: str) -> str:
    label = comment_safe(label)
    return (
        f"\n<!-- ===== BEGIN: {label} ===== -->\n"
        f"{content}\n"
        f"<!-- ===== END: {label} ===== -->\n"
    )
