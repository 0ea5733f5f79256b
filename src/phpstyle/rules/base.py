"""
Rule types shared by the registry, the built-in rules and the evaluator.

A rule is a RuleDefinition: identifier, option specs with defaults,
severity, and a Matcher class. The evaluator creates one Matcher per
(rule, file); the matcher sees every node once in pre-order and may keep
private state for that file only.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

from phpstyle.loader import PHP, PHP_TEMPLATE, SourceFile
from phpstyle.parser.lexer import Span, Token
from phpstyle.parser.nodes import NodeContext, StructuralNode
from phpstyle.reporting import Severity


# =============================================================================
# Errors
# =============================================================================

class ConfigError(Exception):
    """The rule configuration cannot be used; fatal to the whole run."""


class DuplicateRuleError(ConfigError):
    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"rule {identifier!r} is already registered")


class UnknownRuleError(ConfigError):
    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"unknown rule {identifier!r}")


class InvalidOptionError(ConfigError):
    def __init__(self, identifier: str, option: str, reason: str):
        self.identifier = identifier
        self.option = option
        self.reason = reason
        super().__init__(f"rule {identifier!r}: option {option!r} {reason}")


class RuleExecutionError(Exception):
    """A rule implementation raised while matching or fixing."""

    def __init__(self, rule_id: str, path: str, cause: BaseException):
        self.rule_id = rule_id
        self.path = path
        self.cause = cause
        super().__init__(f"rule {rule_id!r} failed on {path}: {type(cause).__name__}: {cause}")


# =============================================================================
# Matching
# =============================================================================

@dataclass(frozen=True)
class Edit:
    """Replace source[start:end] with `replacement`."""
    start: int
    end: int
    replacement: str


@dataclass(frozen=True)
class Match:
    """A candidate violation found by a matcher, with an optional rewrite."""
    span: Span
    message: str
    edits: tuple[Edit, ...] = ()


class Matcher:
    """
    Per-file matcher base class.

    Subclasses override visit() and/or finish(). Both return an iterable of
    Match; they must not modify the tree.
    """

    def __init__(self, options: Mapping[str, Any], source: SourceFile):
        self.options = options
        self.source = source
        self.text = source.text

    def visit(self, node: StructuralNode, ctx: NodeContext) -> Iterable[Match]:
        return ()

    def finish(self) -> Iterable[Match]:
        return ()

    def match(self, where: Union[Span, Token, StructuralNode], message: str,
              edits: Sequence[Edit] = ()) -> Match:
        span = where if isinstance(where, Span) else where.span
        return Match(span=span, message=message, edits=tuple(edits))


# =============================================================================
# Definitions
# =============================================================================

_MISSING = object()


@dataclass(frozen=True)
class OptionSpec:
    """Declared option of a rule: default value and accepted values."""
    name: str
    default: Any
    choices: Optional[tuple[Any, ...]] = None
    description: str = ""

    def validate(self, rule_id: str, value: Any) -> Any:
        expected = type(self.default)
        if isinstance(self.default, (list, tuple)):
            if not isinstance(value, (list, tuple)):
                raise InvalidOptionError(rule_id, self.name, f"must be a list, got {value!r}")
            if self.choices is not None:
                bad = [item for item in value if item not in self.choices]
                if bad:
                    raise InvalidOptionError(
                        rule_id, self.name,
                        f"has unknown entries {bad!r} (allowed: {', '.join(map(str, self.choices))})",
                    )
            return list(value)
        if isinstance(self.default, dict):
            if not isinstance(value, Mapping):
                raise InvalidOptionError(rule_id, self.name, f"must be a mapping, got {value!r}")
            return dict(value)
        if self.choices is not None:
            if value not in self.choices:
                raise InvalidOptionError(
                    rule_id, self.name,
                    f"must be one of {', '.join(map(str, self.choices))}, got {value!r}",
                )
            return value
        if not isinstance(value, expected) or (expected is not bool and isinstance(value, bool)):
            raise InvalidOptionError(rule_id, self.name, f"must be of type {expected.__name__}, got {value!r}")
        return value


@dataclass(frozen=True, eq=False)
class RuleDefinition:
    """A registered rule with its (resolved) options."""
    identifier: str
    matcher: Callable[[Mapping[str, Any], SourceFile], Matcher]
    description: str = ""
    option_specs: tuple[OptionSpec, ...] = ()
    options: Mapping[str, Any] = field(default_factory=dict)
    severity: Severity = Severity.ERROR
    risky: bool = False
    fixable: bool = False
    dialects: frozenset[str] = frozenset({PHP, PHP_TEMPLATE})

    def __post_init__(self):
        # Options start at their declared defaults
        if not self.options and self.option_specs:
            object.__setattr__(self, "options", self.defaults())

    def defaults(self) -> dict[str, Any]:
        return {spec.name: _copy(spec.default) for spec in self.option_specs}

    def with_options(self, overrides: Mapping[str, Any]) -> "RuleDefinition":
        """Return a copy with `overrides` merged over the current options."""
        specs = {spec.name: spec for spec in self.option_specs}
        merged = dict(self.options)
        for name, value in overrides.items():
            spec = specs.get(name, _MISSING)
            if spec is _MISSING:
                known = ", ".join(sorted(specs)) or "none"
                raise InvalidOptionError(self.identifier, name, f"is not defined (known options: {known})")
            merged[name] = spec.validate(self.identifier, value)
        return dataclasses.replace(self, options=merged)

    def with_severity(self, severity: Union[str, Severity]) -> "RuleDefinition":
        try:
            level = Severity.parse(severity)
        except ValueError as exc:
            raise InvalidOptionError(self.identifier, "severity", str(exc)) from None
        return dataclasses.replace(self, severity=level)

    def applies_to(self, source: SourceFile) -> bool:
        return source.dialect in self.dialects

    def create_matcher(self, source: SourceFile) -> Matcher:
        return self.matcher(self.options, source)


def _copy(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, dict):
        return dict(value)
    return value
