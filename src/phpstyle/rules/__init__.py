"""
phpstyle.rules - rule types, registry, presets and built-in rules.
"""

from phpstyle.rules.base import (
    ConfigError,
    DuplicateRuleError,
    Edit,
    InvalidOptionError,
    Match,
    Matcher,
    OptionSpec,
    RuleDefinition,
    RuleExecutionError,
    UnknownRuleError,
)
from phpstyle.rules.registry import RuleRegistry
from phpstyle.rules import architecture, functions, ordering, syntax

BUILTIN_RULES = ordering.RULES + syntax.RULES + functions.RULES + architecture.RULES

PRESETS = {
    "@Symfony": {
        "ordered_imports": True,
        "concat_space": {"spacing": "none"},
        "linebreak_after_opening_tag": True,
        "ordered_class_elements": {"order": ["use_trait"]},
        "list_syntax": {"syntax": "short"},
    },
    "@PhpCsFixer": {
        "@Symfony": True,
        "ordered_class_elements": {"order": list(ordering.DEFAULT_CLASS_ORDER)},
    },
    "@Risky": {
        definition.identifier: True for definition in BUILTIN_RULES if definition.risky
    },
}

DEFAULT_PRESET = "@Symfony"


def default_registry() -> RuleRegistry:
    """A fresh registry holding the built-in rules and presets."""
    registry = RuleRegistry()
    for definition in BUILTIN_RULES:
        registry.register(definition)
    for name, rules in PRESETS.items():
        registry.register_preset(name, rules)
    return registry


__all__ = [
    "BUILTIN_RULES",
    "ConfigError",
    "DEFAULT_PRESET",
    "DuplicateRuleError",
    "Edit",
    "InvalidOptionError",
    "Match",
    "Matcher",
    "OptionSpec",
    "PRESETS",
    "RuleDefinition",
    "RuleExecutionError",
    "RuleRegistry",
    "UnknownRuleError",
    "default_registry",
]
