"""
Routing Core — Reasoning Engine Boundary

The assembler talks to a reasoning engine through two calls:

    kb   = engine.parse(document)          # RuleBaseParseError on bad input
    rows = engine.query(kb, query_text)    # [[("?operation", "op"), ("?ip", ...)], ...]

The KnowledgeBase handle is owned by the caller and passed back on every
query; engines keep no global state.

RuleMLEngine is the bundled implementation. It indexes ground Atom facts
and answers single-Atom queries by pattern matching: Ind arguments must be
equal, Var arguments bind (a repeated Var must bind the same value). Rules
under Implies are counted and kept out of the fact index; no inference is
performed.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Protocol

from resolver.errors import RuleBaseParseError

logger = logging.getLogger("routing_core.rulebase.reasoner")

Row = list[tuple[str, str]]

_ARG_TAGS = {"Ind", "Data", "Var"}


@dataclass(frozen=True)
class Fact:
    rel: str
    args: tuple[str, ...]

    def __str__(self) -> str:
        return f"{self.rel}({', '.join(self.args)})"


class KnowledgeBase:
    """Parsed fact set. Facts are indexed by relation name."""

    def __init__(self, facts: list[Fact] | None = None, rules: int = 0):
        self.rules = rules
        self._by_rel: dict[str, list[Fact]] = {}
        self._count = 0
        for fact in facts or []:
            self.add(fact)

    def add(self, fact: Fact) -> None:
        self._by_rel.setdefault(fact.rel, []).append(fact)
        self._count += 1

    def facts(self, rel: str) -> list[Fact]:
        return list(self._by_rel.get(rel, []))

    def count(self, rel: str) -> int:
        return len(self._by_rel.get(rel, []))

    @property
    def relations(self) -> list[str]:
        return sorted(self._by_rel)

    def __len__(self) -> int:
        return self._count

    def __repr__(self) -> str:
        return f"KnowledgeBase(facts={self._count}, rules={self.rules}, relations={len(self._by_rel)})"


class ReasoningEngine(Protocol):
    def parse(self, document: str) -> KnowledgeBase: ...

    def query(self, kb: KnowledgeBase, query_text: str) -> list[Row]: ...


# ═══════════════════════════════════════════════════════════════════
# RuleML fact engine
# ═══════════════════════════════════════════════════════════════════

def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def _parse_xml(text: str, what: str) -> ET.Element:
    try:
        return ET.fromstring(text)
    except ET.ParseError as e:
        line, column = getattr(e, "position", (None, None))
        raise RuleBaseParseError(f"Malformed {what}: {e}", line=line, column=column) from e


def _atom_parts(atom: ET.Element) -> tuple[str | None, list[tuple[str, str]]]:
    """Relation name and (kind, text) arguments in document order."""
    rel = None
    args = []
    for child in atom:
        tag = _local(child.tag)
        if tag == "Rel":
            rel = (child.text or "").strip()
        elif tag in _ARG_TAGS:
            args.append((tag, (child.text or "").strip()))
    return rel, args


class RuleMLEngine:
    """Ground-fact matcher over RuleML Assert documents."""

    def parse(self, document: str) -> KnowledgeBase:
        root = _parse_xml(document, "rule base document")
        kb = KnowledgeBase()
        self._collect(root, kb)
        logger.debug("Parsed %r", kb)
        return kb

    def _collect(self, element: ET.Element, kb: KnowledgeBase) -> None:
        tag = _local(element.tag)
        if tag == "Implies":
            kb.rules += 1
            return
        if tag == "Atom":
            rel, args = _atom_parts(element)
            if rel and all(kind != "Var" for kind, _ in args):
                kb.add(Fact(rel, tuple(text for _, text in args)))
            return
        for child in element:
            self._collect(child, kb)

    def query(self, kb: KnowledgeBase, query_text: str) -> list[Row]:
        root = _parse_xml(query_text, "query")
        atom = root if _local(root.tag) == "Atom" else root.find(".//{*}Atom")
        if atom is None:
            raise RuleBaseParseError(f"Query has no Atom: {query_text[:200]}")
        rel, pattern = _atom_parts(atom)
        if not rel:
            raise RuleBaseParseError(f"Query Atom has no Rel: {query_text[:200]}")

        rows = []
        for fact in kb.facts(rel):
            row = _match(pattern, fact)
            if row is not None:
                rows.append(row)
        logger.debug("Query %s/%d: %d rows", rel, len(pattern), len(rows))
        return rows


def _match(pattern: list[tuple[str, str]], fact: Fact) -> Row | None:
    if len(pattern) != len(fact.args):
        return None
    bindings: dict[str, str] = {}
    order: list[str] = []
    for (kind, text), value in zip(pattern, fact.args):
        if kind == "Var":
            name = f"?{text}"
            if name in bindings:
                if bindings[name] != value:
                    return None
            else:
                bindings[name] = value
                order.append(name)
        elif text != value:
            return None
    return [(name, bindings[name]) for name in order]
