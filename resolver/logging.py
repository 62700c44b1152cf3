"""
Routing Core — Structured Logging with Trace IDs

Emits structured JSON log lines for knowledge base builds and workflow
resolution. Every build gets a trace_id so a failed deploy can be followed
from discovery through emit.

Design decisions:
  - Transport: Python logging with JSON formatter
  - Schema: OTel-compatible field names (trace_id, service.name)
  - Configurable log level: DEBUG (per-file detail), INFO (build steps), WARNING (stubs, gaps)

Usage:
    from resolver.logging import StructuredLogger, configure_logging

    configure_logging(level="INFO")
    log = StructuredLogger(component="rulebase", version="v001")
    log.on_build_start(services=["TriageService"])
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "routing_core"


# ═══════════════════════════════════════════════════════════════════
# JSON Formatter (OTel-compatible)
# ═══════════════════════════════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """
    Formats log records as JSON lines.

    OTel semantic conventions used:
      - trace_id: maps to OTel trace ID
      - service.name: "routing_core"
      - service.version: from env
    """

    def __init__(self, service_name: str = ROOT_LOGGER):
        super().__init__()
        self.service_name = service_name
        self.service_version = os.environ.get("RC_VERSION", "0.1.0")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service.name": self.service_name,
            "service.version": self.service_version,
        }

        # Merge structured fields from extra
        if hasattr(record, "structured"):
            entry.update(record.structured)

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception.type"] = record.exc_info[0].__name__
            entry["exception.message"] = str(record.exc_info[1])

        return json.dumps(entry, default=str)


# ═══════════════════════════════════════════════════════════════════
# Log Configuration
# ═══════════════════════════════════════════════════════════════════

def configure_logging(
    level: str = "INFO",
    stream: Any = None,
    service_name: str = ROOT_LOGGER,
) -> logging.Logger:
    """
    Configure the routing_core logger with JSON output.

    Args:
        level: DEBUG, INFO, WARNING, ERROR
        stream: Output stream (default: sys.stderr)
        service_name: Service name in log entries

    Returns:
        The configured root logger for routing_core
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers on reconfigure
    logger.handlers.clear()

    for name in list(logging.Logger.manager.loggerDict.keys()):
        if name.startswith(f"{ROOT_LOGGER}."):
            child = logging.getLogger(name)
            child.handlers.clear()
            child.setLevel(logging.NOTSET)  # Inherit from parent

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter(service_name=service_name))
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.addHandler(handler)

    # Don't propagate to root logger
    logger.propagate = False
    return logger


def get_logger(name: str = "") -> logging.Logger:
    """Get a child logger under the routing_core namespace."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)


def generate_trace_id() -> str:
    """Generate an OTel-compatible trace ID (32 hex chars)."""
    return uuid.uuid4().hex


# ═══════════════════════════════════════════════════════════════════
# Structured Logger
# ═══════════════════════════════════════════════════════════════════

class StructuredLogger:
    """
    Structured event logger for builds and route resolution.

    Every entry includes trace_id, component and version so one build's
    events can be filtered out of a shared log stream.
    """

    def __init__(
        self,
        component: str = "",
        version: str = "",
        trace_id: str | None = None,
    ):
        self.component = component
        self.version = version
        self.trace_id = trace_id or generate_trace_id()
        self._logger = get_logger("trace")

    def _base_fields(self) -> dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "component": self.component,
            "version": self.version,
        }

    def _emit(self, level: int, action: str, **fields):
        """Emit a structured log entry."""
        if not self._logger.isEnabledFor(level):
            return
        structured = {**self._base_fields(), "action": action, **fields}
        record = self._logger.makeRecord(
            name=self._logger.name,
            level=level,
            fn="", lno=0, msg=action,
            args=(), exc_info=None,
        )
        record.structured = structured
        self._logger.handle(record)

    # ── Knowledge base build ────────────────────────────────────

    def on_build_start(self, services: list[str] | None, root: str = "") -> None:
        self._emit(
            logging.INFO, "build_start",
            services=services if services else "ALL",
            root=root,
        )

    def on_source_loaded(self, path: str, role: str, chars: int) -> None:
        self._emit(logging.DEBUG, "source_loaded", path=path, role=role, chars=chars)

    def on_binding_resolved(self, service: str, path: str, layout: str) -> None:
        self._emit(logging.DEBUG, "binding_resolved", service=service, path=path, layout=layout)

    def on_stub_binding(self, service: str) -> None:
        self._emit(
            logging.WARNING, "stub_binding",
            service=service,
            reason="no canonical binding found; generic stub needs manual follow-up",
        )

    def on_dispatch_fact(self, service: str, operation: str, address: str, port: str) -> None:
        self._emit(
            logging.INFO, "dispatch_fact",
            service=service, operation=operation, address=address, port=port,
        )

    def on_query_empty(self, service: str) -> None:
        self._emit(logging.DEBUG, "query_empty", service=service)

    def on_build_end(self, status: str, elapsed_s: float, outputs: list[str] | None = None) -> None:
        self._emit(
            logging.INFO, "build_end",
            status=status,
            elapsed_s=round(elapsed_s, 3),
            outputs=outputs or [],
        )

    # ── Workflow resolution ─────────────────────────────────────

    def on_route_resolved(self, service: str, role: str | None, destinations: int) -> None:
        self._emit(
            logging.DEBUG, "route_resolved",
            service=service, role=role, destinations=destinations,
        )

    def on_validation_issue(self, level: str, location: str, message: str) -> None:
        self._emit(
            logging.WARNING if level == "error" else logging.INFO,
            "validation_issue",
            issue_level=level, location=location, message=message[:500],
        )
