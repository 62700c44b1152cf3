"""
Routing Core — Structured Exception Hierarchy

Typed errors so callers can distinguish between:
- Configuration failures → abort the build, never retried
- Fact-source failures → abort the build, no partial knowledge base
- Workflow failures → report to the workflow author
- Address failures → reject the dispatch

Each error carries: severity and a free-form detail mapping.
"""

from __future__ import annotations
from enum import Enum


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ═══════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════

class RoutingCoreError(Exception):
    """Base exception for all Routing Core errors."""
    severity: Severity = Severity.MEDIUM

    def __init__(self, message: str = "", **kwargs):
        self.detail = kwargs
        super().__init__(message)


# ═══════════════════════════════════════════════════════════════
# Build Errors — fatal for a knowledge base build
# ═══════════════════════════════════════════════════════════════

class ConfigurationError(RoutingCoreError):
    """A required directory, fact source or argument is missing or invalid."""
    severity = Severity.CRITICAL


class RuleBaseParseError(RoutingCoreError):
    """A rule file could not be decoded, or the engine rejected the merged document or a query."""
    severity = Severity.CRITICAL

    def __init__(self, message: str, line: int | None = None, column: int | None = None):
        self.line = line
        self.column = column
        super().__init__(message, line=line, column=column)


# ═══════════════════════════════════════════════════════════════
# Workflow Errors — surfaced to the workflow author
# ═══════════════════════════════════════════════════════════════

class WorkflowError(RoutingCoreError):
    """Workflow description or graph failures."""
    severity = Severity.HIGH


class WorkflowLoadError(WorkflowError):
    """Workflow description could not be read or parsed."""
    pass


class CyclicWorkflowError(WorkflowError):
    """Reachability revisited a node on its own path or ran past the depth bound."""

    def __init__(self, start_node: str, path: list[str], reason: str = "cycle"):
        self.start_node = start_node
        self.path = list(path)
        self.reason = reason
        super().__init__(
            f"Cyclic or unterminated workflow from {start_node!r} ({reason}): "
            f"{' -> '.join(self.path)}",
            start_node=start_node,
            reason=reason,
        )


# ═══════════════════════════════════════════════════════════════
# Dispatch Errors
# ═══════════════════════════════════════════════════════════════

class AddressError(RoutingCoreError, ValueError):
    """A channel/port pair cannot be turned into an endpoint."""
    severity = Severity.MEDIUM

    def __init__(self, channel: str, port: str):
        self.channel = channel
        self.port = port
        super().__init__(
            f"Invalid port {port!r} for channel {channel!r}",
            channel=channel, port=port,
        )
