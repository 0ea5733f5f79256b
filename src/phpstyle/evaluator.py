"""
Rule evaluation for a single parsed file.

Rules run in resolution order. Each rule gets a fresh matcher and one
pre-order walk of the tree. A rule that raises is isolated: the failure is
logged and recorded as an `internal` violation, and the remaining rules
still run.
"""

from __future__ import annotations

import logging
from typing import Sequence

from phpstyle.loader import SourceFile
from phpstyle.parser.lexer import Span
from phpstyle.parser.nodes import StructuralNode, walk
from phpstyle.reporting import INTERNAL, Severity, Violation
from phpstyle.rules.base import Match, RuleDefinition, RuleExecutionError

logger = logging.getLogger(__name__)

FILE_START = Span(0, 0, 1, 1, 1, 1)


def run_rule(rule: RuleDefinition, source: SourceFile, tree: StructuralNode) -> list[Match]:
    """All matches of one rule over one tree, in traversal order."""
    matcher = rule.create_matcher(source)
    matches: list[Match] = []
    for node, ctx in walk(tree):
        matches.extend(matcher.visit(node, ctx))
    matches.extend(matcher.finish())
    return matches


def internal_violation(error: RuleExecutionError) -> Violation:
    return Violation(
        rule_id=INTERNAL,
        path=error.path,
        span=FILE_START,
        message=f"rule {error.rule_id} failed: {type(error.cause).__name__}: {error.cause}",
        severity=Severity.ERROR,
    )


def evaluate(source: SourceFile, tree: StructuralNode,
             rules: Sequence[RuleDefinition]) -> list[Violation]:
    """Ordered violations of `rules` for one file."""
    path = str(source.path)
    violations: list[Violation] = []
    for rule in rules:
        if not rule.applies_to(source):
            continue
        try:
            matches = run_rule(rule, source, tree)
        except Exception as exc:
            error = RuleExecutionError(rule.identifier, path, exc)
            logger.error("%s", error, exc_info=exc)
            violations.append(internal_violation(error))
            continue
        violations.extend(
            Violation(
                rule_id=rule.identifier,
                path=path,
                span=match.span,
                message=match.message,
                severity=rule.severity,
                fixable=rule.fixable and bool(match.edits),
            )
            for match in matches
        )
    return violations
