"""
Routing Core — Rule Fact Sources

Discovery, ordering and cleaning of the XML fact files that make up a
knowledge base, plus resolution of per-service attribute bindings.

Layout under the rule root (config `rulebase.root`):

    RuleBase/                         rule_base_dir: searched recursively
        CoreRuleBase.ruleml.xml       core: always first, configured order
        ListofActiveServices.ruleml.xml   never_filter
        Healthcare/Triage.ruleml.xml  ordinary: alphabetical by file name
    ServiceAttributeBindings/         bindings_dir
        TriageService/TriageService-CanonicalBindings.ruleml.xml   hierarchical
        RadiologyService-CanonicalBindings.ruleml.xml              flat

Usage:
    from rulebase.sources import RuleBaseConfig, discover_sources, order_sources

    cfg = RuleBaseConfig.from_config(get_config())
    sources = order_sources(discover_sources(cfg), cfg)
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from resolver.config_loader import DEFAULTS
from resolver.errors import ConfigurationError, RuleBaseParseError

logger = logging.getLogger("routing_core.rulebase.sources")

CORE = "core"
NEVER_FILTER = "never_filter"
ORDINARY = "ordinary"

HIERARCHICAL = "hierarchical"
FLAT = "flat"
STUB = "stub"

_DEFAULTS = DEFAULTS["rulebase"]

STUB_BINDING_ATOM = (
    "<Atom>\n"
    "    <Rel>canonicalBinding</Rel>\n"
    "    <Ind>default</Ind>\n"
    "    <Ind>result</Ind>\n"
    "    <Ind>request</Ind>\n"
    "</Atom>"
)

_WRAPPER_PATTERNS = [
    re.compile(r"<\?xml[^>]*\?>"),
    re.compile(r"<Assert\b[^>]*>"),
    re.compile(r"</Assert\s*>"),
    re.compile(r"<Rulebase\b[^>]*>"),
    re.compile(r"</Rulebase\s*>"),
]
_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)


# ═══════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RuleBaseConfig:
    """Where fact sources live and how they are classified."""
    root: Path
    rule_base_dir: str = _DEFAULTS["rule_base_dir"]
    bindings_dir: str = _DEFAULTS["bindings_dir"]
    output_file: str = _DEFAULTS["output_file"]
    output_folder_prefix: str = _DEFAULTS["output_folder_prefix"]
    core_files: tuple[str, ...] = tuple(_DEFAULTS["core_files"])
    never_filter_files: frozenset[str] = frozenset(_DEFAULTS["never_filter_files"])
    binding_suffix: str = _DEFAULTS["binding_suffix"]
    rule_suffix: str = _DEFAULTS["rule_suffix"]
    excluded_dirs: frozenset[str] = field(default_factory=lambda: frozenset(_DEFAULTS["excluded_dirs"]))

    def __post_init__(self):
        object.__setattr__(self, "root", Path(self.root))
        object.__setattr__(self, "core_files", tuple(self.core_files))
        object.__setattr__(self, "never_filter_files", frozenset(self.never_filter_files))
        object.__setattr__(self, "excluded_dirs", frozenset(self.excluded_dirs))

    @classmethod
    def from_config(cls, config, root: str | Path | None = None) -> RuleBaseConfig:
        """Build from the `rulebase` section of a ConfigLoader. `root` overrides the configured root."""
        section = config.get("rulebase", {}) or {}
        kwargs = {
            k: section[k] for k in cls.__dataclass_fields__
            if k in section and k != "root"
        }
        return cls(root=Path(root if root is not None else section.get("root", ".")), **kwargs)

    @property
    def rule_base_path(self) -> Path:
        return self.root / self.rule_base_dir

    @property
    def bindings_path(self) -> Path:
        return self.root / self.bindings_dir

    def role_of(self, file_name: str) -> str:
        if file_name in self.core_files:
            return CORE
        if file_name in self.never_filter_files:
            return NEVER_FILTER
        return ORDINARY

    def service_of(self, binding_file: str) -> str:
        """Derived service name: the binding file name without its suffix."""
        return binding_file[: -len(self.binding_suffix)]


@dataclass(frozen=True)
class RuleSource:
    path: Path
    relative: str
    role: str

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class BindingSource:
    """Attribute bindings for one service. Stubs have no path and carry their own text."""
    service: str
    layout: str
    path: Path | None = None
    relative: str = ""
    text: str = ""

    @property
    def is_stub(self) -> bool:
        return self.layout == STUB

    def read(self) -> str:
        if self.is_stub:
            return self.text
        return strip_wrappers(read_rule_file(self.path, self.relative))


def stub_binding(service: str) -> BindingSource:
    text = (
        f"<!-- AUTO-GENERATED MINIMAL BINDING: {comment_safe(service)} -->\n"
        "<!-- Replace with the service's canonical bindings -->\n"
        f"{STUB_BINDING_ATOM}"
    )
    return BindingSource(service=service, layout=STUB, relative=f"STUB:{service}", text=text)


# ═══════════════════════════════════════════════════════════════════
# Discover / order / clean
# ═══════════════════════════════════════════════════════════════════

def discover_sources(config: RuleBaseConfig) -> list[RuleSource]:
    """Every rule file under the rule base directory, excluded directories pruned."""
    base = config.rule_base_path
    if not base.is_dir():
        raise ConfigurationError(f"Rule base directory not found: {base}", path=str(base))

    sources = []
    for dirpath, dirnames, filenames in os.walk(base):
        dirnames[:] = sorted(d for d in dirnames if d not in config.excluded_dirs)
        for filename in filenames:
            if not filename.endswith(config.rule_suffix):
                continue
            path = Path(dirpath) / filename
            if filename.endswith(config.binding_suffix):
                logger.warning(
                    "Skipping binding file %s under %s; move it to %s/",
                    path.relative_to(base).as_posix(), config.rule_base_dir, config.bindings_dir,
                )
                continue
            relative = path.relative_to(base).as_posix()
            sources.append(RuleSource(path, relative, config.role_of(filename)))

    if not sources:
        logger.warning("No rule files found in %s", base)
    logger.debug("Discovered %d rule files under %s", len(sources), base)
    return sources


def order_sources(sources: list[RuleSource], config: RuleBaseConfig) -> list[RuleSource]:
    """Core files first in configured order, then alphabetical by file name."""
    core_rank = {name: i for i, name in enumerate(config.core_files)}

    def key(source: RuleSource):
        if source.role == CORE:
            return (0, core_rank[source.name], "", source.relative)
        return (1, 0, source.name, source.relative)

    return sorted(sources, key=key)


def strip_wrappers(text: str) -> str:
    """Remove the XML prolog and the outer Assert / Rulebase tags."""
    for pattern in _WRAPPER_PATTERNS:
        text = pattern.sub("", text)
    return text.strip()


def has_bare_double_dash(text: str) -> bool:
    """True when '--' appears outside XML comments."""
    return "--" in _COMMENT.sub("", text)


def comment_safe(text: str) -> str:
    """Text that can sit inside an XML comment."""
    while "--" in text:
        text = text.replace("--", "-")
    return text


def read_rule_file(path: Path, relative: str = "") -> str:
    """UTF-8 text of a rule or binding file, with read failures as build errors."""
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise RuleBaseParseError(
            f"Rule file {relative or path} is not valid UTF-8: {e.reason} at byte {e.start}",
        ) from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read rule file {relative or path}: {e}", path=str(path)) from e


# ═══════════════════════════════════════════════════════════════════
# Attribute bindings
# ═══════════════════════════════════════════════════════════════════

def _scan_bindings(config: RuleBaseConfig) -> tuple[dict[str, list[BindingSource]], dict[str, BindingSource]]:
    """(hierarchical by service dir, flat by derived name)."""
    base = config.bindings_path
    if not base.is_dir():
        raise ConfigurationError(f"Bindings directory not found: {base}", path=str(base))

    hierarchical: dict[str, list[BindingSource]] = {}
    flat: dict[str, BindingSource] = {}
    for entry in sorted(base.iterdir()):
        if entry.is_dir():
            if entry.name in config.excluded_dirs:
                continue
            for path in sorted(entry.rglob(f"*{config.binding_suffix}")):
                hierarchical.setdefault(entry.name, []).append(BindingSource(
                    service=entry.name,
                    layout=HIERARCHICAL,
                    path=path,
                    relative=path.relative_to(config.root).as_posix(),
                ))
        elif entry.name.endswith(config.binding_suffix):
            service = config.service_of(entry.name)
            flat[service] = BindingSource(
                service=service,
                layout=FLAT,
                path=entry,
                relative=entry.relative_to(config.root).as_posix(),
            )
    return hierarchical, flat


def _hierarchical_for(service: str, hierarchical: dict[str, list[BindingSource]],
                      config: RuleBaseConfig) -> list[BindingSource]:
    found = list(hierarchical.get(service, []))
    seen = {b.path for b in found}
    for bindings in hierarchical.values():
        for binding in bindings:
            if binding.path not in seen and config.service_of(binding.path.name) == service:
                found.append(binding)
                seen.add(binding.path)
    return found


def resolve_bindings(config: RuleBaseConfig, services: frozenset[str] | None) -> list[BindingSource]:
    """
    Binding sources for the requested services (None means ALL).

    Hierarchical files win over the flat file of the same service. With an
    explicit service set, a service with neither gets an in-memory stub.
    """
    hierarchical, flat = _scan_bindings(config)

    if services is None:
        resolved = [b for name in sorted(hierarchical) for b in hierarchical[name]]
        overridden = set(hierarchical) | {config.service_of(b.path.name) for b in resolved}
        resolved.extend(flat[name] for name in sorted(flat) if name not in overridden)
        return resolved

    resolved = []
    for service in sorted(services):
        found = _hierarchical_for(service, hierarchical, config)
        if found:
            resolved.extend(found)
        elif service in flat:
            resolved.append(flat[service])
        else:
            logger.warning("No canonical binding for %s, using generic stub", service)
            resolved.append(stub_binding(service))
    return resolved
