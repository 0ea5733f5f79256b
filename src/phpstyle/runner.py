"""
Run orchestration.

A LintRun resolves the rule configuration, discovers the files to lint and
processes them in a thread pool. Each worker owns one file end to end
(load, parse, optional fix, evaluate). Per-file failures become
violations; only configuration errors abort the run.

State machine (per run):

    Idle -> Loading -> Parsing -> Evaluating -> Reporting -> Done
               |          |
               +----------+--> Aborted
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence, Union

from phpstyle.config import LintSettings
from phpstyle.evaluator import FILE_START, evaluate
from phpstyle.fixer import fix_source, write_atomic
from phpstyle.loader import EncodingError, SourceLoadError, iter_files, load_source
from phpstyle.logs import RunLogger
from phpstyle.parser.parser import ParseError, parse_source
from phpstyle.reporting import (
    FIX_ERROR,
    INTERNAL,
    LOAD_ERROR,
    PARSE_ERROR,
    RESERVED_RULE_IDS,
    RunReport,
    Severity,
    Violation,
    build_report,
)
from phpstyle.rules import RuleRegistry, default_registry
from phpstyle.rules.base import ConfigError, RuleDefinition

logger = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    PARSING = "parsing"
    EVALUATING = "evaluating"
    REPORTING = "reporting"
    DONE = "done"
    ABORTED = "aborted"


TRANSITIONS = {
    RunState.IDLE: {RunState.LOADING},
    RunState.LOADING: {RunState.PARSING, RunState.ABORTED},
    RunState.PARSING: {RunState.EVALUATING, RunState.ABORTED},
    RunState.EVALUATING: {RunState.REPORTING},
    RunState.REPORTING: {RunState.DONE},
    RunState.DONE: set(),
    RunState.ABORTED: set(),
}


class InvalidTransition(RuntimeError):
    def __init__(self, current: RunState, requested: RunState):
        self.current = current
        self.requested = requested
        super().__init__(f"invalid run state transition {current.value} -> {requested.value}")


class CancelToken:
    """Run-level cancellation signal, safe to set from any thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class FileResult:
    """Everything one worker produced for one file."""
    path: str
    violations: list[Violation] = field(default_factory=list)
    fixed_rules: list[str] = field(default_factory=list)


def _file_violation(rule_id: str, path: str, message: str, span=FILE_START) -> Violation:
    return Violation(rule_id=rule_id, path=path, span=span, message=message, severity=Severity.ERROR)


def process_file(path: Union[str, Path], rules: Sequence[RuleDefinition], settings: LintSettings) -> FileResult:
    """Load, parse, optionally fix, and evaluate one file. Never raises for per-file errors."""
    name = str(path)
    try:
        source = load_source(path, encoding=settings.encoding, timeout=settings.timeout)
    except (SourceLoadError, EncodingError) as exc:
        return FileResult(name, [_file_violation(LOAD_ERROR, name, str(exc))])

    try:
        tree = parse_source(source.text, name)
    except ParseError as exc:
        message = f"{exc.message} (expected {exc.expected})" if exc.expected else exc.message
        return FileResult(name, [_file_violation(PARSE_ERROR, name, message, exc.span or FILE_START)])

    result = FileResult(name)
    if settings.fix:
        fixed = fix_source(source, tree, rules)
        result.violations.extend(fixed.violations)
        if fixed.changed:
            try:
                write_atomic(source.path, fixed.source.text, settings.encoding)
            except OSError as exc:
                result.violations.append(_file_violation(FIX_ERROR, name, f"cannot write fixed file: {exc}"))
            else:
                source, tree = fixed.source, fixed.tree
                result.fixed_rules = fixed.applied

    # A rule that crashed while fixing is reported once
    crashed = {v.message for v in result.violations if v.rule_id == INTERNAL}
    result.violations.extend(
        v for v in evaluate(source, tree, rules)
        if v.rule_id != INTERNAL or v.message not in crashed
    )
    return result


class LintRun:
    """
    One lint run over a set of paths.

    Usage:
        run = LintRun(settings)
        report = run.execute(["src"])
    """

    def __init__(self, settings: LintSettings, registry: Optional[RuleRegistry] = None,
                 run_logger: Optional[RunLogger] = None):
        self.settings = settings
        self.registry = registry if registry is not None else default_registry()
        self.run_logger = run_logger or RunLogger(log_file=settings.log_file)
        self.state = RunState.IDLE
        self.rules: list[RuleDefinition] = []
        self.files: list[Path] = []

    def _transition(self, new_state: RunState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidTransition(self.state, new_state)
        logger.debug("Run %s: %s -> %s", self.run_logger.run_id, self.state.value, new_state.value)
        self.state = new_state

    def _abort(self, error: Exception) -> None:
        self._transition(RunState.ABORTED)
        self.run_logger.run_aborted(str(error))
        logger.error("Run aborted: %s", error)

    def execute(self, paths: Iterable[Union[str, Path]], cancel: Optional[CancelToken] = None) -> RunReport:
        """
        Run the pipeline and return the report.

        Raises:
            ConfigError: the rule configuration is invalid (no file is loaded).
            InvalidTransition: execute() called twice on the same run.
        """
        cancel = cancel or CancelToken()
        settings = self.settings

        self._transition(RunState.LOADING)
        try:
            self.rules = self.registry.select(
                settings.rules,
                risky_allowed=settings.risky_allowed,
                only=settings.only,
            )
        except ConfigError as exc:
            self._abort(exc)
            raise

        self._transition(RunState.PARSING)
        try:
            self.files = list(iter_files(paths, settings.names, settings.exclude, settings.finder_in))
        except OSError as exc:
            self._abort(exc)
            raise
        self.run_logger.run_start([rule.identifier for rule in self.rules], len(self.files))
        logger.info("Linting %d file(s) with %d rule(s)", len(self.files), len(self.rules))

        self._transition(RunState.EVALUATING)
        results = list(self._dispatch(self.files, cancel))

        self._transition(RunState.REPORTING)
        report = build_report(
            (r.violations for r in results),
            settings.fail_on,
            files_checked=len(results),
            files_fixed=sum(1 for r in results if r.fixed_rules),
            cancelled=cancel.cancelled,
        )
        self.run_logger.run_complete(
            files_checked=report.files_checked,
            violations=len(report.violations),
            files_fixed=report.files_fixed,
            passed=report.passed,
            cancelled=report.cancelled,
        )
        self._transition(RunState.DONE)
        return report

    def _dispatch(self, files: Sequence[Path], cancel: CancelToken) -> Iterator[FileResult]:
        """Process files with at most `workers` in flight; stop dispatching once cancelled."""
        workers = max(1, self.settings.workers)
        queue = iter(files)
        pending: dict[Future, Path] = {}

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="phpstyle-lint") as pool:

            def fill() -> None:
                while len(pending) < workers and not cancel.cancelled:
                    path = next(queue, None)
                    if path is None:
                        return
                    pending[pool.submit(process_file, path, self.rules, self.settings)] = path

            fill()
            while pending:
                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    path = pending.pop(future)
                    try:
                        result = future.result()
                    except Exception as exc:
                        logger.exception("Unexpected failure processing %s", path)
                        result = FileResult(str(path), [
                            _file_violation(INTERNAL, str(path), f"{type(exc).__name__}: {exc}")
                        ])
                    self._record(result)
                    yield result
                fill()

        if cancel.cancelled:
            logger.warning("Run cancelled; %d file(s) not processed", sum(1 for _ in queue))

    def _record(self, result: FileResult) -> None:
        for violation in result.violations:
            if violation.rule_id in RESERVED_RULE_IDS:
                logger.info("%s", violation)
                self.run_logger.file_error(result.path, violation.rule_id, violation.message)
        if result.fixed_rules:
            logger.info("Fixed %s (%s)", result.path, ", ".join(result.fixed_rules))
            self.run_logger.file_fixed(result.path, result.fixed_rules)
