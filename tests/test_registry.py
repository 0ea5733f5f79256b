"""
Tests for rule registration, presets and resolution.
"""

import pytest
from phpstyle.reporting import Severity
from phpstyle.rules import (
    BUILTIN_RULES,
    ConfigError,
    DuplicateRuleError,
    InvalidOptionError,
    Matcher,
    OptionSpec,
    RuleDefinition,
    RuleRegistry,
    UnknownRuleError,
)


def dummy_rule(identifier="dummy", **kwargs):
    return RuleDefinition(identifier=identifier, matcher=Matcher, **kwargs)


class TestRegistration:
    """register / register_preset / get."""

    def test_builtin_rules_registered(self, registry):
        """Every built-in rule is available by id."""
        assert len(registry) == len(BUILTIN_RULES)
        for definition in BUILTIN_RULES:
            assert registry.get(definition.identifier) is definition

    def test_duplicate_rule(self):
        """Registering an id twice fails."""
        registry = RuleRegistry()
        registry.register(dummy_rule())
        with pytest.raises(DuplicateRuleError):
            registry.register(dummy_rule())

    @pytest.mark.parametrize("identifier", ["parse-error", "load-error", "internal", "fix-error"])
    def test_reserved_ids(self, identifier):
        """Reserved failure ids cannot be registered as rules."""
        with pytest.raises(DuplicateRuleError):
            RuleRegistry().register(dummy_rule(identifier))

    def test_unknown_rule(self, registry):
        """get() of an unknown id raises UnknownRuleError."""
        with pytest.raises(UnknownRuleError) as exc_info:
            registry.get("no_such_rule")
        assert exc_info.value.identifier == "no_such_rule"

    def test_preset_name_prefix(self):
        """Preset names start with @."""
        with pytest.raises(ConfigError):
            RuleRegistry().register_preset("Symfony", {})

    def test_iteration_is_sorted(self, registry):
        """Iterating the registry lists rules by id."""
        ids = [d.identifier for d in registry]
        assert ids == sorted(ids)


class TestResolve:
    """resolve(): order, options and severities."""

    def test_requested_order_and_duplicates(self, registry):
        """Rules come back in requested order, duplicates collapsed."""
        resolved = registry.resolve(["concat_space", "ordered_imports", "concat_space"])
        assert [d.identifier for d in resolved] == ["concat_space", "ordered_imports"]

    def test_defaults(self, registry):
        """Without overrides every option has its default."""
        (concat,) = registry.resolve(["concat_space"])
        assert concat.options == {"spacing": "none"}

    def test_layers_last_wins(self, registry):
        """Later override layers win over earlier ones."""
        (concat,) = registry.resolve(
            ["concat_space"],
            overrides=[{"concat_space": {"spacing": "one"}}, {"concat_space": {"spacing": "none"}}],
        )
        assert concat.options["spacing"] == "none"

    def test_registered_definition_untouched(self, registry):
        """Resolution never mutates the registered definition."""
        registry.resolve(["concat_space"], overrides={"concat_space": {"spacing": "one"}})
        assert registry.get("concat_space").options == {"spacing": "none"}

    def test_unknown_option(self, registry):
        """Undeclared options are rejected."""
        with pytest.raises(InvalidOptionError) as exc_info:
            registry.resolve(["concat_space"], overrides={"concat_space": {"spaces": "one"}})
        assert exc_info.value.option == "spaces"

    def test_invalid_choice(self, registry):
        """Values outside the allowed choices are rejected."""
        with pytest.raises(InvalidOptionError):
            registry.resolve(["concat_space"], overrides={"concat_space": {"spacing": "two"}})

    def test_invalid_list_entry(self, registry):
        """List options validate each entry."""
        with pytest.raises(InvalidOptionError):
            registry.resolve(
                ["ordered_class_elements"],
                overrides={"ordered_class_elements": {"order": ["use_trait", "bogus"]}},
            )

    def test_wrong_type(self):
        """Scalar options are type checked."""
        rule = dummy_rule(option_specs=(OptionSpec("limit", 10),))
        with pytest.raises(InvalidOptionError):
            rule.with_options({"limit": "ten"})
        with pytest.raises(InvalidOptionError):
            rule.with_options({"limit": True})
        assert rule.with_options({"limit": 3}).options == {"limit": 3}

    def test_severity_override(self, registry):
        """Severities can be overridden per rule."""
        (concat,) = registry.resolve(["concat_space"], severities={"concat_space": "warning"})
        assert concat.severity == Severity.WARNING

    def test_invalid_severity(self, registry):
        """Unknown severities are option errors."""
        with pytest.raises(InvalidOptionError):
            registry.resolve(["concat_space"], severities={"concat_space": "fatal"})


class TestSelect:
    """select(): rules mappings with presets."""

    def test_preset_expansion(self, registry):
        """@Symfony expands to its rules in preset order."""
        selected = registry.select({"@Symfony": True})
        assert [d.identifier for d in selected] == [
            "ordered_imports",
            "concat_space",
            "linebreak_after_opening_tag",
            "ordered_class_elements",
            "list_syntax",
        ]
        ordered = [d for d in selected if d.identifier == "ordered_class_elements"][0]
        assert ordered.options["order"] == ["use_trait"]

    def test_nested_preset_and_override(self, registry):
        """Later keys override preset options; nested presets expand."""
        selected = registry.select({
            "@PhpCsFixer": True,
            "concat_space": {"spacing": "one"},
        })
        by_id = {d.identifier: d for d in selected}
        assert by_id["concat_space"].options["spacing"] == "one"
        assert by_id["ordered_class_elements"].options["order"][0] == "use_trait"
        assert len(by_id["ordered_class_elements"].options["order"]) > 1

    def test_disable_rule(self, registry):
        """false (or enabled: false) removes a rule."""
        selected = registry.select({
            "@Symfony": True,
            "concat_space": False,
            "list_syntax": {"enabled": False},
        })
        ids = [d.identifier for d in selected]
        assert "concat_space" not in ids
        assert "list_syntax" not in ids

    def test_severity_key(self, registry):
        """A severity key in a rule mapping overrides the default."""
        (rule,) = registry.select({"layer_dependencies": {"severity": "error"}})
        assert rule.severity == Severity.ERROR

    def test_unknown_preset(self, registry):
        """Unknown presets are unknown rules."""
        with pytest.raises(UnknownRuleError):
            registry.select({"@Nope": True})

    def test_preset_cycle(self):
        """A preset including itself is a config error."""
        registry = RuleRegistry()
        registry.register(dummy_rule())
        registry.register_preset("@A", {"@B": True})
        registry.register_preset("@B", {"@A": True, "dummy": True})
        with pytest.raises(ConfigError):
            registry.select({"@A": True})

    def test_risky_requires_permission(self, registry):
        """Risky rules need risky_allowed."""
        with pytest.raises(ConfigError) as exc_info:
            registry.select({"is_null": True})
        assert "risky_allowed" in str(exc_info.value)
        assert [d.identifier for d in registry.select({"is_null": True}, risky_allowed=True)] == ["is_null"]

    def test_only(self, registry):
        """only runs exactly the named rules with configured options."""
        selected = registry.select(
            {"@Symfony": True, "concat_space": {"spacing": "one", "enabled": False}},
            only=["concat_space", "ordered_imports"],
        )
        assert [d.identifier for d in selected] == ["concat_space", "ordered_imports"]
        assert selected[0].options["spacing"] == "one"

    def test_only_unknown_rule(self, registry):
        """only with an unknown id fails."""
        with pytest.raises(UnknownRuleError):
            registry.select({}, only=["nope"])

    def test_bad_value(self, registry):
        """Rule values must be booleans or mappings."""
        with pytest.raises(ConfigError):
            registry.select({"concat_space": "yes"})
