"""
phpstyle - PHP style and architecture linter

Parses PHP sources into a structural tree, runs configurable rules over
it, and reports (or fixes) violations.
"""

__version__ = "0.1.0"
__author__ = "phpstyle contributors"

from phpstyle.parser import parse_source
