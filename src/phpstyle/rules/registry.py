"""
Rule registry: registration, presets, and resolution of a rule
configuration into an ordered list of configured RuleDefinitions.

Option merge order: rule defaults, then each override layer in the order
it was applied. The last layer to set a key wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence, Union

from phpstyle.reporting import RESERVED_RULE_IDS, Severity
from phpstyle.rules.base import (
    ConfigError,
    DuplicateRuleError,
    InvalidOptionError,
    RuleDefinition,
    UnknownRuleError,
)

logger = logging.getLogger(__name__)

PRESET_PREFIX = "@"
RESERVED_KEYS = ("enabled", "severity")

OverrideLayers = Union[Mapping[str, Mapping[str, Any]], Sequence[Mapping[str, Mapping[str, Any]]]]


@dataclass
class RuleSetting:
    """Accumulated configuration of one rule while expanding a rules mapping."""
    enabled: bool = True
    layers: list[dict[str, Any]] = field(default_factory=list)
    severity: Optional[str] = None


class RuleRegistry:
    """Registered rules and presets. Read-only once a run starts."""

    def __init__(self) -> None:
        self._rules: dict[str, RuleDefinition] = {}
        self._presets: dict[str, dict[str, Any]] = {}

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._rules

    def __iter__(self) -> Iterator[RuleDefinition]:
        return iter(sorted(self._rules.values(), key=lambda d: d.identifier))

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def presets(self) -> dict[str, dict[str, Any]]:
        return dict(self._presets)

    def register(self, definition: RuleDefinition) -> RuleDefinition:
        """Add a rule. Identifiers are unique and must not be reserved."""
        ident = definition.identifier
        if ident in self._rules or ident in RESERVED_RULE_IDS or ident in self._presets:
            raise DuplicateRuleError(ident)
        self._rules[ident] = definition
        return definition

    def register_preset(self, name: str, rules: Mapping[str, Any]) -> None:
        if not name.startswith(PRESET_PREFIX):
            raise ConfigError(f"preset names start with {PRESET_PREFIX!r}: {name!r}")
        if name in self._presets:
            raise DuplicateRuleError(name)
        self._presets[name] = dict(rules)

    def get(self, identifier: str) -> RuleDefinition:
        try:
            return self._rules[identifier]
        except KeyError:
            raise UnknownRuleError(identifier) from None

    def resolve(
        self,
        identifiers: Iterable[str],
        overrides: Optional[OverrideLayers] = None,
        severities: Optional[Mapping[str, Union[str, Severity]]] = None,
    ) -> list[RuleDefinition]:
        """
        Definitions for `identifiers` in requested order, options merged.

        Duplicates collapse to their first occurrence. `overrides` is one
        mapping (rule id -> options) or a sequence of such layers applied in
        order.

        Raises:
            UnknownRuleError: an identifier is not registered.
            InvalidOptionError: an option name or value is not accepted.
        """
        if overrides is None:
            layers: Sequence[Mapping[str, Mapping[str, Any]]] = ()
        elif isinstance(overrides, Mapping):
            layers = (overrides,)
        else:
            layers = overrides
        severities = severities or {}

        resolved = []
        seen = set()
        for ident in identifiers:
            if ident in seen:
                continue
            seen.add(ident)
            definition = self.get(ident)
            for layer in layers:
                options = layer.get(ident)
                if options:
                    definition = definition.with_options(options)
            if severities.get(ident) is not None:
                definition = definition.with_severity(severities[ident])
            resolved.append(definition)
        return resolved

    # ------------------------------------------------------------------
    # Rules mapping (config document) handling
    # ------------------------------------------------------------------

    def expand(self, rules_config: Mapping[str, Any]) -> dict[str, RuleSetting]:
        """
        Expand a rules mapping (presets included) into per-rule settings.

        Keys are rule ids or preset names; values are `true`, `false`, or an
        options mapping that may also carry `enabled` and `severity`. Order
        of first appearance is kept.
        """
        settings: dict[str, RuleSetting] = {}
        self._expand_into(rules_config, settings, enabled=True, trail=())
        return settings

    def _expand_into(self, rules_config: Mapping[str, Any], settings: dict[str, RuleSetting],
                     enabled: bool, trail: tuple[str, ...]) -> None:
        for key, value in rules_config.items():
            if key.startswith(PRESET_PREFIX):
                if key not in self._presets:
                    raise UnknownRuleError(key)
                if key in trail:
                    raise ConfigError(f"preset {key!r} includes itself")
                if value is True or value is False:
                    self._expand_into(self._presets[key], settings, enabled and value, trail + (key,))
                else:
                    raise ConfigError(f"preset {key!r} must be set to true or false, got {value!r}")
                continue

            if key not in self._rules:
                raise UnknownRuleError(key)
            setting = settings.setdefault(key, RuleSetting())
            if value is True or value is False:
                setting.enabled = enabled and value
            elif isinstance(value, Mapping):
                options = dict(value)
                rule_enabled = options.pop("enabled", True)
                if not isinstance(rule_enabled, bool):
                    raise InvalidOptionError(key, "enabled", f"must be true or false, got {rule_enabled!r}")
                severity = options.pop("severity", None)
                if severity is not None:
                    setting.severity = severity
                if options:
                    setting.layers.append(options)
                setting.enabled = enabled and rule_enabled
            else:
                raise ConfigError(f"rule {key!r} must be true, false or a mapping, got {value!r}")

    def select(
        self,
        rules_config: Mapping[str, Any],
        *,
        risky_allowed: bool = False,
        only: Sequence[str] = (),
    ) -> list[RuleDefinition]:
        """
        Resolve a rules mapping into the definitions to run.

        With `only`, exactly those rules run (in the given order) using any
        options the mapping sets for them, even if the mapping disables them.

        Raises:
            ConfigError (or a subclass): unknown rule, bad option, or a risky
            rule without `risky_allowed`.
        """
        settings = self.expand(rules_config)
        if only:
            identifiers = list(only)
        else:
            identifiers = [ident for ident, setting in settings.items() if setting.enabled]

        layers = [
            {ident: layer}
            for ident, setting in settings.items()
            for layer in setting.layers
        ]
        severities = {ident: s.severity for ident, s in settings.items() if s.severity is not None}
        definitions = self.resolve(identifiers, overrides=layers, severities=severities)

        risky = [d.identifier for d in definitions if d.risky]
        if risky and not risky_allowed:
            raise ConfigError(
                f"risky rules require risky_allowed: true ({', '.join(risky)})"
            )
        logger.debug("Selected %d rule(s): %s", len(definitions), ", ".join(d.identifier for d in definitions))
        return definitions
