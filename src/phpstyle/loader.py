"""
Source loading and file discovery.

Handles:
- Reading a file with a per-file timeout
- Decoding with the configured encoding (UTF-8 BOM stripped)
- Dialect detection (php, php-template, plain)
- Directory walking with the finder semantics of the lint config
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
import stat
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

logger = logging.getLogger(__name__)

PHP = "php"
PHP_TEMPLATE = "php-template"
PLAIN = "plain"
DIALECTS = (PHP, PHP_TEMPLATE, PLAIN)

DEFAULT_NAMES = ("*.php",)
DEFAULT_EXCLUDE_DIRS = frozenset({
    ".git", ".hg", ".svn", ".idea", "node_modules", "vendor", "var",
})
DEFAULT_TIMEOUT = 10.0

_OPEN_TAG_RE = re.compile(r"<\?(?:php\b|=)", re.IGNORECASE)
_TEMPLATE_SUFFIXES = {".phtml"}


class SourceLoadError(OSError):
    """A file could not be read (missing, unreadable, or the read timed out)."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"cannot read {path}: {reason}")


class EncodingError(ValueError):
    """A file's bytes are not valid in the configured encoding."""

    def __init__(self, path: Union[str, Path], encoding: str, reason: str):
        self.path = Path(path)
        self.encoding = encoding
        self.reason = reason
        super().__init__(f"cannot decode {path} as {encoding}: {reason}")


@dataclass(frozen=True)
class SourceFile:
    """A loaded source file with content."""
    path: Path
    text: str
    dialect: str = PHP

    @property
    def lines(self) -> list[str]:
        return self.text.splitlines()

    @property
    def is_php(self) -> bool:
        return self.dialect != PLAIN


def detect_dialect(path: Path, text: str) -> str:
    """Classify a source as pure PHP, a PHP template, or plain text."""
    match = _OPEN_TAG_RE.search(text)
    if match is None:
        return PLAIN
    if path.suffix.lower() in _TEMPLATE_SUFFIXES:
        return PHP_TEMPLATE
    leading = text[:match.start()]
    if leading.startswith("#!"):
        # Shebang line of a CLI script
        leading = leading.partition("\n")[2]
    return PHP if not leading.strip() else PHP_TEMPLATE


# =============================================================================
# Reading
# =============================================================================

class _ReadTimeout(Exception):
    pass


def _read_bytes(path: Path, timeout: Optional[float]) -> bytes:
    if not timeout or timeout <= 0:
        return path.read_bytes()

    outcome: dict = {}

    def _read() -> None:
        try:
            outcome["data"] = path.read_bytes()
        except BaseException as exc:
            outcome["error"] = exc

    # A read that never returns must not keep the interpreter alive
    reader = threading.Thread(target=_read, name=f"phpstyle-read-{path.name}", daemon=True)
    reader.start()
    reader.join(timeout)
    if reader.is_alive():
        raise _ReadTimeout()
    if "error" in outcome:
        raise outcome["error"]
    return outcome["data"]


def _codec(encoding: str) -> str:
    if encoding.lower().replace("_", "-") in ("utf-8", "utf8"):
        return "utf-8-sig"
    return encoding


def load_source(path: Union[str, Path], *, encoding: str = "utf-8",
                timeout: Optional[float] = None) -> SourceFile:
    """
    Load a single source file.

    Raises:
        SourceLoadError: missing/unreadable file or the read exceeded `timeout` seconds.
        EncodingError: the bytes are invalid for `encoding`.
    """
    path = Path(path)
    try:
        mode = path.stat().st_mode
        if not stat.S_ISREG(mode):
            raise SourceLoadError(path, "not a regular file")
        data = _read_bytes(path, timeout)
    except _ReadTimeout as exc:
        raise SourceLoadError(path, f"read timed out after {timeout:g}s") from exc
    except SourceLoadError:
        raise
    except OSError as exc:
        raise SourceLoadError(path, exc.strerror or str(exc)) from exc

    try:
        text = data.decode(_codec(encoding))
    except UnicodeDecodeError as exc:
        raise EncodingError(path, encoding, f"invalid byte at offset {exc.start}") from exc
    except LookupError as exc:
        raise EncodingError(path, encoding, "unknown encoding") from exc

    return SourceFile(path=path, text=text, dialect=detect_dialect(path, text))


# =============================================================================
# Discovery
# =============================================================================

def _is_excluded(name: str, relative: str, exclude: frozenset[str]) -> bool:
    return name in exclude or relative in exclude


def _walk(base: Path, names: tuple[str, ...], exclude: frozenset[str]) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(base):
        current = Path(dirpath)
        dirnames[:] = [
            d for d in dirnames
            if not _is_excluded(d, (current / d).relative_to(base).as_posix(), exclude)
        ]
        for filename in filenames:
            if any(fnmatch.fnmatch(filename, pattern) for pattern in names):
                yield current / filename


def iter_files(
    paths: Iterable[Union[str, Path]],
    names: Iterable[str] = DEFAULT_NAMES,
    exclude: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
    finder_in: Iterable[str] = (),
) -> Iterator[Path]:
    """
    Iterate over the files to lint, in sorted order without duplicates.

    Directories are walked (restricted to the `finder_in` subdirectories
    when given), keeping files matching a `names` glob and skipping
    excluded directory names. Any other path is yielded as-is, so a
    missing file surfaces later as a load error.
    """
    names = tuple(names)
    exclude = frozenset(exclude)
    finder_in = tuple(finder_in)

    found: dict[Path, Path] = {}
    for raw in paths:
        root = Path(raw)
        if not root.is_dir():
            found.setdefault(root.absolute(), root)
            continue
        bases = [root / sub for sub in finder_in] if finder_in else [root]
        for base in bases:
            if not base.is_dir():
                logger.warning("Finder directory does not exist: %s", base)
                continue
            for path in _walk(base, names, exclude):
                found.setdefault(path.absolute(), path)

    for key in sorted(found):
        yield found[key]
