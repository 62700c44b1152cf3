"""
Routing Core — Validation Result Types

Workflow problems are collected, not raised: a workflow author should see
every broken edge and unknown node type in one pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Issue:
    level: str       # "error", "warning", "info"
    code: str        # "WORKFLOW_INCONSISTENCY", "INVALID_NODE_TYPE", ...
    location: str    # node id, or "edge:A->B"
    message: str
    context: str = ""

    def __str__(self):
        icon = {"error": "✗", "warning": "⚠", "info": "ℹ"}.get(self.level, "?")
        ctx = f" ({self.context})" if self.context else ""
        return f"  {icon} [{self.code}] {self.location} — {self.message}{ctx}"


@dataclass
class ValidationResult:
    issues: list[Issue] = field(default_factory=list)

    @property
    def errors(self) -> list[Issue]:
        return [i for i in self.issues if i.level == "error"]

    @property
    def warnings(self) -> list[Issue]:
        return [i for i in self.issues if i.level == "warning"]

    @property
    def valid(self) -> bool:
        return len(self.errors) == 0

    def add(self, level: str, code: str, location: str, message: str, context: str = ""):
        self.issues.append(Issue(level, code, location, message, context))

    def merge(self, other: "ValidationResult"):
        self.issues.extend(other.issues)

    def by_code(self) -> dict[str, list[Issue]]:
        grouped: dict[str, list[Issue]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.code, []).append(issue)
        return grouped

    def summary(self) -> str:
        lines = []
        if self.valid:
            lines.append(f"✓ Valid ({len(self.warnings)} warnings)")
        else:
            lines.append(f"✗ {len(self.errors)} errors, {len(self.warnings)} warnings")
        for code, issues in self.by_code().items():
            lines.append(f"--- {code} ({len(issues)}) ---")
            for issue in issues:
                lines.append(str(issue))
        return "\n".join(lines)
