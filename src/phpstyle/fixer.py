"""
Automatic rewrites (`--fix`).

Fixable rules attach Edits to their matches. Rules are applied one after
another; after each rule the new text must parse, and after all rules a
second pass must change nothing. Otherwise the rewrite is rejected with a
`fix-error` violation and the file is left untouched.
"""

from __future__ import annotations

import contextlib
import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from phpstyle.evaluator import FILE_START, internal_violation, run_rule
from phpstyle.loader import SourceFile
from phpstyle.parser.nodes import StructuralNode
from phpstyle.parser.parser import ParseError, parse_source
from phpstyle.reporting import FIX_ERROR, Severity, Violation
from phpstyle.rules.base import Edit, RuleDefinition, RuleExecutionError

logger = logging.getLogger(__name__)

# Rounds per rule; overlapping edits dropped in one round are retried in the next
MAX_ROUNDS = 5


@dataclass
class FixResult:
    """Outcome of fixing one file."""
    source: SourceFile
    tree: StructuralNode
    applied: list[str] = field(default_factory=list)
    violations: list[Violation] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.applied)


def apply_edits(text: str, edits: Iterable[Edit]) -> str:
    """Apply non-overlapping edits; an edit overlapping an earlier one is dropped."""
    accepted: list[Edit] = []
    last_end = -1
    for edit in sorted(set(edits), key=lambda e: (e.start, e.end)):
        if edit.start < last_end or (edit.start == last_end and accepted and accepted[-1].start == edit.start):
            continue
        accepted.append(edit)
        last_end = edit.end
    for edit in reversed(accepted):
        text = text[:edit.start] + edit.replacement + text[edit.end:]
    return text


def _fix_error(source: SourceFile, message: str) -> Violation:
    return Violation(
        rule_id=FIX_ERROR,
        path=str(source.path),
        span=FILE_START,
        message=message,
        severity=Severity.ERROR,
    )


def _apply_rule(rule: RuleDefinition, source: SourceFile, tree: StructuralNode) -> tuple[SourceFile, StructuralNode]:
    """Apply one rule until it stops producing edits. May raise ParseError."""
    for _ in range(MAX_ROUNDS):
        edits = [edit for match in run_rule(rule, source, tree) for edit in match.edits]
        if not edits:
            break
        text = apply_edits(source.text, edits)
        if text == source.text:
            break
        tree = parse_source(text, str(source.path))
        source = dataclasses.replace(source, text=text)
    return source, tree


def _fix_pass(source: SourceFile, tree: StructuralNode, rules: Sequence[RuleDefinition],
              result: FixResult) -> tuple[SourceFile, StructuralNode, list[str]]:
    applied = []
    for rule in rules:
        if not rule.fixable or not rule.applies_to(source):
            continue
        try:
            fixed, fixed_tree = _apply_rule(rule, source, tree)
        except ParseError as exc:
            logger.warning("Discarding %s fix for %s: %s", rule.identifier, source.path, exc)
            result.violations.append(
                _fix_error(source, f"fix by {rule.identifier} produced unparseable code: {exc}"))
            continue
        except Exception as exc:
            error = RuleExecutionError(rule.identifier, str(source.path), exc)
            logger.error("%s", error, exc_info=exc)
            result.violations.append(internal_violation(error))
            continue
        if fixed.text != source.text:
            applied.append(rule.identifier)
            source, tree = fixed, fixed_tree
    return source, tree, applied


def fix_source(source: SourceFile, tree: StructuralNode, rules: Sequence[RuleDefinition]) -> FixResult:
    """
    Apply all fixable rules to one file (in memory).

    The returned FixResult carries the fixed source and its tree, or the
    original ones if nothing changed or the rewrite was rejected.
    """
    result = FixResult(source=source, tree=tree)
    fixed, fixed_tree, applied = _fix_pass(source, tree, rules, result)
    if not applied:
        return result

    # A second pass over the rewritten text must be a no-op. Rule crashes were
    # already reported by the first pass.
    recheck = FixResult(source=fixed, tree=fixed_tree)
    _, _, again = _fix_pass(fixed, fixed_tree, rules, recheck)
    if again or any(v.rule_id == FIX_ERROR for v in recheck.violations):
        names = ", ".join(again) or "verification"
        logger.warning("Rewrite of %s is not idempotent (%s); leaving file unchanged", source.path, names)
        result.violations.append(_fix_error(source, f"rewrite is not idempotent ({names}); file left unchanged"))
        return result

    result.source = fixed
    result.tree = fixed_tree
    result.applied = applied
    return result


def write_atomic(path: Path, text: str, encoding: str = "utf-8") -> None:
    """Replace `path` with `text` via a temporary sibling file."""
    tmp_path = path.with_name(path.name + ".phpstyle.tmp")
    try:
        with tmp_path.open("w", encoding=encoding, newline="") as fh:
            fh.write(text)
        with contextlib.suppress(OSError):
            os.chmod(tmp_path, path.stat().st_mode)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.remove(tmp_path)
        raise
