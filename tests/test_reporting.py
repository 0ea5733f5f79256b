"""
Tests for violations, report merging and rendering.
"""

import json

import pytest
from phpstyle.parser import Span
from phpstyle.reporting import (
    EXIT_ABORTED,
    EXIT_OK,
    EXIT_VIOLATIONS,
    LOAD_ERROR,
    PARSE_ERROR,
    RunReport,
    Severity,
    Violation,
    build_report,
    exit_code,
    render_json,
    render_plain,
)


def span_at(start, line=1, column=1):
    return Span(start, start + 1, line, column, line, column + 1)


def violation(path="a.php", start=0, rule_id="rule", severity=Severity.ERROR, line=1, column=1):
    return Violation(rule_id, path, span_at(start, line, column), "message", severity)


class TestSeverity:
    """Severity parsing and ordering."""

    def test_ordering(self):
        """info < warning < error."""
        assert Severity.INFO < Severity.WARNING < Severity.ERROR

    @pytest.mark.parametrize("value,expected", [
        ("error", Severity.ERROR),
        ("WARNING", Severity.WARNING),
        ("warn", Severity.WARNING),
        (" info ", Severity.INFO),
        (Severity.ERROR, Severity.ERROR),
    ])
    def test_parse(self, value, expected):
        """Names parse case-insensitively."""
        assert Severity.parse(value) == expected

    def test_parse_unknown(self):
        """Unknown names raise ValueError listing the choices."""
        with pytest.raises(ValueError) as exc_info:
            Severity.parse("fatal")
        assert "info, warning, error" in str(exc_info.value)


class TestViolation:
    """Violation formatting."""

    def test_str(self):
        """path:line:col: severity rule message."""
        v = Violation("concat_space", "src/A.php", span_at(10, 3, 7), "No spaces", Severity.WARNING)
        assert str(v) == "src/A.php:3:7: warning concat_space No spaces"

    def test_to_dict(self):
        """Dictionaries carry positions and flags."""
        data = violation(line=2, column=4).to_dict()
        assert data["line"] == 2
        assert data["column"] == 4
        assert data["severity"] == "error"
        assert data["fixable"] is False


class TestBuildReport:
    """build_report()."""

    def test_sorted_by_path_then_offset(self):
        """Order depends only on path and span start."""
        per_file = [
            [violation("b.php", 5), violation("b.php", 1)],
            [violation("a.php", 9)],
        ]
        report = build_report(per_file)
        assert [(v.path, v.span.start) for v in report.violations] == [
            ("a.php", 9), ("b.php", 1), ("b.php", 5),
        ]

    def test_completion_order_does_not_matter(self):
        """Any permutation of per-file results gives the same report."""
        a = [violation("a.php", 3, "r1"), violation("a.php", 3, "r2")]
        b = [violation("b.php", 0)]
        assert build_report([a, b]).violations == build_report([b, a]).violations

    def test_stable_for_same_position(self):
        """Violations at the same position keep their rule order."""
        group = [violation("a.php", 3, "second"), violation("a.php", 3, "first")]
        assert [v.rule_id for v in build_report([group]).violations] == ["second", "first"]

    def test_threshold(self):
        """The run fails only at or above the threshold."""
        warnings = [[violation(severity=Severity.WARNING)]]
        assert build_report(warnings, Severity.ERROR).passed
        assert not build_report(warnings, Severity.WARNING).passed
        assert build_report([], Severity.INFO).passed

    @pytest.mark.parametrize("rule_id", [LOAD_ERROR, PARSE_ERROR])
    def test_load_and_parse_errors_always_fail(self, rule_id):
        """Unreadable or unparseable files fail the run regardless of threshold."""
        report = build_report([[violation(rule_id=rule_id, severity=Severity.INFO)]], Severity.ERROR)
        assert not report.passed


class TestRendering:
    """Plain and JSON output."""

    def make_report(self):
        return build_report(
            [[violation("a.php", 0, "concat_space", Severity.WARNING, 2, 3)],
             [violation("b.php", 0, "ordered_imports", Severity.ERROR, 4, 1)]],
            Severity.ERROR,
            files_checked=3,
        )

    def test_plain(self):
        """One line per violation and a summary line."""
        lines = render_plain(self.make_report()).splitlines()
        assert lines[0] == "a.php:2:3: warning concat_space message"
        assert lines[1] == "b.php:4:1: error ordered_imports message"
        assert lines[-1] == "3 file(s) checked, 2 violation(s) (1 error, 1 warning, 0 info): failed"

    def test_plain_clean(self):
        """A clean run prints only the summary."""
        text = render_plain(build_report([], files_checked=1))
        assert text == "1 file(s) checked, 0 violation(s) (0 error, 0 warning, 0 info): passed"

    def test_plain_cancelled_and_fixed(self):
        """Cancelled runs and fixed files show in the summary."""
        text = render_plain(RunReport(files_checked=1, files_fixed=1, cancelled=True))
        assert text.endswith(", 1 file(s) fixed: cancelled")

    def test_json(self):
        """JSON output has violations, summary and status."""
        data = json.loads(render_json(self.make_report()))
        assert data["passed"] is False
        assert data["cancelled"] is False
        assert data["summary"]["errors"] == 1
        assert data["summary"]["warnings"] == 1
        assert data["summary"]["files_checked"] == 3
        assert [v["rule_id"] for v in data["violations"]] == ["concat_space", "ordered_imports"]


class TestExitCode:
    """exit_code()."""

    def test_codes(self):
        """0 passed, 1 failed, 2 cancelled."""
        assert exit_code(RunReport(passed=True)) == EXIT_OK
        assert exit_code(RunReport(passed=False)) == EXIT_VIOLATIONS
        assert exit_code(RunReport(passed=True, cancelled=True)) == EXIT_ABORTED
