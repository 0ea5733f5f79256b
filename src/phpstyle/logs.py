"""
phpstyle JSONL Run Log - Structured log of a lint run.

Appends one JSON object per line to the file given with --log-file.

Log entry types:
- run_start: Run started (rules and file count)
- file_error: A file could not be loaded, parsed or evaluated
- file_fixed: A file was rewritten by --fix
- run_complete: Run finished (counts, duration, pass/fail)
- run_aborted: Configuration error before any file was processed
"""

from __future__ import annotations

import json
import threading
import time
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class LogEntry:
    """A structured log entry."""
    ts: float  # Unix timestamp
    event: str  # Event type
    run_id: Optional[str] = None
    path: Optional[str] = None
    rule_id: Optional[str] = None
    duration_ms: Optional[float] = None
    error: Optional[str] = None
    stats: Optional[dict] = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        d = {k: v for k, v in asdict(self).items() if v is not None}
        return json.dumps(d, default=str)


class RunLogger:
    """
    Structured logger for lint runs.

    Writes to a JSONL file; with no file configured every call is a no-op.
    """

    def __init__(self, run_id: Optional[str] = None, log_file: Optional[Path] = None):
        self.run_id = run_id or new_run_id()
        self.log_file = log_file
        self._lock = threading.Lock()
        self._started: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return self.log_file is not None

    def _write(self, entry: LogEntry) -> None:
        """Write an entry to the log file."""
        if self.log_file is None:
            return
        with self._lock:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(entry.to_json() + "\n")

    def _entry(self, event: str, **kwargs) -> LogEntry:
        """Create a log entry with common fields."""
        return LogEntry(ts=time.time(), event=event, run_id=self.run_id, **kwargs)

    # =========================================================================
    # Run-level events
    # =========================================================================

    def run_start(self, rules: list[str], total_files: int) -> None:
        """Log the start of a run."""
        self._started = time.time()
        self._write(self._entry(
            "run_start",
            stats={"rules": rules, "total_files": total_files},
        ))

    def run_complete(self, files_checked: int, violations: int, files_fixed: int,
                     passed: bool, cancelled: bool) -> None:
        """Log the completion of a run."""
        duration_ms = (time.time() - self._started) * 1000 if self._started else None
        self._write(self._entry(
            "run_complete",
            duration_ms=duration_ms,
            stats={
                "files_checked": files_checked,
                "violations": violations,
                "files_fixed": files_fixed,
                "passed": passed,
                "cancelled": cancelled,
            },
        ))

    def run_aborted(self, error: str) -> None:
        """Log a run aborted by a configuration error."""
        self._write(self._entry("run_aborted", error=error))

    # =========================================================================
    # File-level events
    # =========================================================================

    def file_error(self, path: str, rule_id: str, error: str) -> None:
        """Log a per-file failure (load-error, parse-error, internal, fix-error)."""
        self._write(self._entry("file_error", path=path, rule_id=rule_id, error=error))

    def file_fixed(self, path: str, rules: list[str]) -> None:
        """Log a file rewritten by --fix."""
        self._write(self._entry("file_fixed", path=path, stats={"rules": rules}))
