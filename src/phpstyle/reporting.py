"""
Reporting and output formatting.

Handles:
- Severity levels and the Violation dataclass
- Deterministic merge of per-file results into a RunReport
- Plain-text and JSON output
- Exit codes
"""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable

from phpstyle.parser.lexer import Span

# Reserved rule identifiers for failures outside a rule's own matching
LOAD_ERROR = "load-error"
PARSE_ERROR = "parse-error"
INTERNAL = "internal"
FIX_ERROR = "fix-error"
RESERVED_RULE_IDS = frozenset({LOAD_ERROR, PARSE_ERROR, INTERNAL, FIX_ERROR})

EXIT_OK = 0
EXIT_VIOLATIONS = 1
EXIT_ABORTED = 2


class Severity(IntEnum):
    INFO = 10
    WARNING = 20
    ERROR = 30

    @classmethod
    def parse(cls, value: "str | Severity") -> "Severity":
        """Parse 'info' / 'warning' / 'error' (case-insensitive, 'warn' accepted)."""
        if isinstance(value, Severity):
            return value
        key = str(value).strip().upper()
        if key == "WARN":
            key = "WARNING"
        try:
            return cls[key]
        except KeyError:
            choices = ", ".join(s.label for s in cls)
            raise ValueError(f"unknown severity {value!r} (expected one of: {choices})") from None

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class Violation:
    """A single rule violation in one file."""
    rule_id: str
    path: str
    span: Span
    message: str
    severity: Severity = Severity.ERROR
    fixable: bool = False

    def __str__(self) -> str:
        loc = f"{self.path}:{self.span.line}:{self.span.column}"
        return f"{loc}: {self.severity.label} {self.rule_id} {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "path": self.path,
            "line": self.span.line,
            "column": self.span.column,
            "end_line": self.span.end_line,
            "end_column": self.span.end_column,
            "severity": self.severity.label,
            "message": self.message,
            "fixable": self.fixable,
        }


@dataclass
class RunReport:
    """Outcome of a lint run."""
    violations: list[Violation] = field(default_factory=list)
    passed: bool = True
    threshold: Severity = Severity.ERROR
    files_checked: int = 0
    files_fixed: int = 0
    cancelled: bool = False

    @property
    def errors(self) -> list[Violation]:
        return [v for v in self.violations if v.severity >= Severity.ERROR]

    @property
    def warnings(self) -> list[Violation]:
        return [v for v in self.violations if v.severity == Severity.WARNING]

    def summary(self) -> dict[str, Any]:
        counts = Counter(v.severity.label for v in self.violations)
        return {
            "files_checked": self.files_checked,
            "files_fixed": self.files_fixed,
            "violations": len(self.violations),
            "errors": counts.get("error", 0),
            "warnings": counts.get("warning", 0),
            "info": counts.get("info", 0),
            "threshold": self.threshold.label,
        }


def _sort_key(violation: Violation) -> tuple[str, int]:
    return violation.path, violation.span.start


def build_report(
    per_file: Iterable[Iterable[Violation]],
    threshold: Severity = Severity.ERROR,
    *,
    files_checked: int = 0,
    files_fixed: int = 0,
    cancelled: bool = False,
) -> RunReport:
    """
    Merge per-file violation sequences into a report.

    Sorted by path then span start; the sort is stable so violations at the
    same position keep their rule order. The result never depends on the
    order in which files finished.
    """
    violations = sorted((v for group in per_file for v in group), key=_sort_key)
    passed = not any(
        v.severity >= threshold or v.rule_id in (LOAD_ERROR, PARSE_ERROR)
        for v in violations
    )
    return RunReport(
        violations=violations,
        passed=passed,
        threshold=threshold,
        files_checked=files_checked,
        files_fixed=files_fixed,
        cancelled=cancelled,
    )


def render_plain(report: RunReport) -> str:
    """Render a report as human-readable text."""
    lines = [str(v) for v in report.violations]
    summary = report.summary()
    status = "cancelled" if report.cancelled else ("passed" if report.passed else "failed")
    if lines:
        lines.append("")
    lines.append(
        f"{summary['files_checked']} file(s) checked, "
        f"{summary['violations']} violation(s) "
        f"({summary['errors']} error, {summary['warnings']} warning, {summary['info']} info)"
        + (f", {summary['files_fixed']} file(s) fixed" if report.files_fixed else "")
        + f": {status}"
    )
    return "\n".join(lines)


def render_json(report: RunReport) -> str:
    """Render a report as JSON."""
    payload = {
        "violations": [v.to_dict() for v in report.violations],
        "summary": report.summary(),
        "passed": report.passed,
        "cancelled": report.cancelled,
    }
    return json.dumps(payload, indent=2, sort_keys=True)


RENDERERS = {
    "plain": render_plain,
    "json": render_json,
}


def exit_code(report: RunReport) -> int:
    """0 when the run passed, 1 on violations at/above threshold, 2 if cancelled."""
    if report.cancelled:
        return EXIT_ABORTED
    return EXIT_OK if report.passed else EXIT_VIOLATIONS
