"""
Pytest configuration and shared fixtures.
"""

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from phpstyle.config import build_settings
from phpstyle.evaluator import evaluate
from phpstyle.loader import SourceFile, detect_dialect
from phpstyle.parser import parse_source
from phpstyle.rules import default_registry


# =============================================================================
# REGISTRY / SETTINGS FIXTURES
# =============================================================================

@pytest.fixture
def registry():
    """Fresh registry with the built-in rules and presets."""
    return default_registry()


@pytest.fixture
def settings_for():
    """Build LintSettings without touching the process environment."""
    def _build(**cli):
        return build_settings(environ={}, **cli)
    return _build


# =============================================================================
# FILE FIXTURES
# =============================================================================

@pytest.fixture
def write_php(tmp_path):
    """Write a file under tmp_path and return its path."""
    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path
    return _write


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_source(text: str, name: str = "Example.php") -> SourceFile:
    """In-memory SourceFile with its dialect detected like the loader does."""
    path = Path(name)
    return SourceFile(path=path, text=text, dialect=detect_dialect(path, text))


def lint_text(registry, text: str, rules, name: str = "Example.php"):
    """Violations of the given rule config (ids or mapping) for one text."""
    if not isinstance(rules, dict):
        rules = {rule: True for rule in rules}
    definitions = registry.select(rules, risky_allowed=True)
    source = make_source(text, name)
    return evaluate(source, parse_source(text, name), definitions)


@pytest.fixture
def source_of():
    """Factory for in-memory SourceFile objects."""
    return make_source


@pytest.fixture
def lint(registry):
    """lint(text, rules) -> violations, with risky rules allowed."""
    def _lint(text, rules, name="Example.php"):
        return lint_text(registry, text, rules, name)
    return _lint


@pytest.fixture
def fix(registry):
    """fix(text, rules) -> FixResult for one in-memory file."""
    from phpstyle.fixer import fix_source

    def _fix(text, rules, name="Example.php"):
        if not isinstance(rules, dict):
            rules = {rule: True for rule in rules}
        definitions = registry.select(rules, risky_allowed=True)
        return fix_source(make_source(text, name), parse_source(text, name), definitions)
    return _fix
