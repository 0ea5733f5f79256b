"""
Lint Configuration

Loads the rule-configuration document (YAML or JSON) and builds the
immutable runtime settings for a run.

Precedence: built-in defaults, then the config document, then
environment variables, then command-line flags.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Mapping, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from phpstyle.loader import DEFAULT_EXCLUDE_DIRS, DEFAULT_NAMES, DEFAULT_TIMEOUT
from phpstyle.reporting import Severity
from phpstyle.rules import DEFAULT_PRESET
from phpstyle.rules.base import ConfigError

# Looked up (in order) in the linted directory when --rules is not given
CONFIG_FILENAMES = (".phpstyle.yaml", ".phpstyle.yml", ".phpstyle.json")

DEFAULT_WORKERS = min(os.cpu_count() or 2, 4)

# Environment variable -> settings field
ENV_OVERRIDES = {
    "PHPSTYLE_WORKERS": "workers",
    "PHPSTYLE_TIMEOUT": "timeout",
    "PHPSTYLE_FAIL_ON": "fail_on",
}


# =============================================================================
# Config document
# =============================================================================

class FinderConfig(BaseModel):
    """
    Which files to lint under each linted directory.

    Attributes:
        in_: Subdirectories to search (key `in`); empty means the directory itself
        name: File name globs
        exclude: Directory names (or relative paths) to skip
    """
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    in_: list[str] = Field(default_factory=list, alias="in")
    name: list[str] = Field(default_factory=lambda: list(DEFAULT_NAMES))
    exclude: list[str] = Field(default_factory=lambda: sorted(DEFAULT_EXCLUDE_DIRS))


class ConfigDocument(BaseModel):
    """The rule-configuration document. Unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid")

    finder: FinderConfig = Field(default_factory=FinderConfig)
    risky_allowed: bool = False
    fail_on: Literal["info", "warning", "error"] = "error"
    format: Literal["plain", "json"] = "plain"
    encoding: str = "utf-8"
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    workers: Optional[int] = Field(default=None, ge=1)
    rules: dict[str, Union[bool, dict[str, Any]]] = Field(
        default_factory=lambda: {DEFAULT_PRESET: True}
    )


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err["loc"]) or "<document>"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def parse_document(text: str, source: str = "<config>") -> ConfigDocument:
    """Parse and validate a config document (YAML, JSON being a subset)."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"{source}: invalid YAML: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: expected a mapping at top level, got {type(data).__name__}")
    try:
        return ConfigDocument.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"{source}: {_format_validation_error(exc)}") from exc


def load_document(path: Union[str, Path]) -> ConfigDocument:
    """Load the config document at `path`."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read config {path}: {exc.strerror or exc}") from exc
    return parse_document(text, str(path))


def find_config(paths: Sequence[Union[str, Path]]) -> Optional[Path]:
    """Config file next to the first linted path, if any."""
    if not paths:
        return None
    first = Path(paths[0])
    directory = first if first.is_dir() else first.parent
    for name in CONFIG_FILENAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


# =============================================================================
# Runtime settings
# =============================================================================

@dataclass(frozen=True)
class LintSettings:
    """Immutable settings for one run."""
    rules: Mapping[str, Any] = field(default_factory=lambda: {DEFAULT_PRESET: True})
    risky_allowed: bool = False
    fail_on: Severity = Severity.ERROR
    output_format: str = "plain"
    encoding: str = "utf-8"
    timeout: float = DEFAULT_TIMEOUT
    workers: int = DEFAULT_WORKERS
    fix: bool = False
    only: tuple[str, ...] = ()
    names: tuple[str, ...] = DEFAULT_NAMES
    exclude: tuple[str, ...] = tuple(sorted(DEFAULT_EXCLUDE_DIRS))
    finder_in: tuple[str, ...] = ()
    log_file: Optional[Path] = None
    config_path: Optional[Path] = None


def _coerce(key: str, value: Any) -> Any:
    """Validate one overridable value; raises ConfigError."""
    if key == "workers":
        try:
            workers = int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"workers must be an integer, got {value!r}") from None
        if workers < 1:
            raise ConfigError(f"workers must be at least 1, got {workers}")
        return workers
    if key == "timeout":
        try:
            timeout = float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"timeout must be a number, got {value!r}") from None
        if timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {timeout:g}")
        return timeout
    if key == "fail_on":
        try:
            return Severity.parse(value)
        except ValueError as exc:
            raise ConfigError(str(exc)) from None
    if key == "output_format":
        if value not in ("plain", "json"):
            raise ConfigError(f"format must be plain or json, got {value!r}")
        return value
    if key in ("only", "names", "exclude", "finder_in"):
        return tuple(value)
    if key in ("log_file", "config_path"):
        return Path(value)
    return value


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    """Settings overridden by PHPSTYLE_* environment variables."""
    environ = os.environ if environ is None else environ
    overrides = {}
    for env_var, key in ENV_OVERRIDES.items():
        value = environ.get(env_var)
        if value:
            overrides[key] = value
    return overrides


def build_settings(
    document: Optional[ConfigDocument] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[Path] = None,
    **cli: Any,
) -> LintSettings:
    """
    Build run settings: document values, then environment, then CLI flags.

    CLI keyword arguments use LintSettings field names; None means "not given".
    """
    document = document or ConfigDocument()
    values: dict[str, Any] = {
        "rules": dict(document.rules),
        "risky_allowed": document.risky_allowed,
        "fail_on": document.fail_on,
        "output_format": document.format,
        "encoding": document.encoding,
        "timeout": document.timeout,
        "names": document.finder.name,
        "exclude": document.finder.exclude,
        "finder_in": document.finder.in_,
    }
    if document.workers is not None:
        values["workers"] = document.workers
    if config_path is not None:
        values["config_path"] = config_path

    values.update(env_overrides(environ))
    values.update({key: value for key, value in cli.items() if value is not None})

    unknown = set(values) - set(LintSettings.__dataclass_fields__)
    if unknown:
        raise TypeError(f"unknown settings: {', '.join(sorted(unknown))}")
    return LintSettings(**{key: _coerce(key, value) for key, value in values.items()})
