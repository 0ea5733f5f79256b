"""
phpstyle.parser - PHP Structural Parser

Lexer and structural parser for PHP source files.
Converts source text into a StructuralNode tree.
"""

from phpstyle.parser.lexer import Lexer, Token, TokenType, Span, ParseError, LexerError
from phpstyle.parser.nodes import (
    NodeKind,
    NodeContext,
    StructuralNode,
    iter_tokens,
    structurally_equal,
    walk,
)
from phpstyle.parser.parser import Parser, parse_source
from phpstyle.parser.serde import to_dict, to_source

__all__ = [
    # Lexer
    "Lexer",
    "Token",
    "TokenType",
    "Span",
    "LexerError",
    # Parser
    "Parser",
    "ParseError",
    "parse_source",
    # Tree
    "NodeKind",
    "NodeContext",
    "StructuralNode",
    "iter_tokens",
    "structurally_equal",
    "walk",
    # Serialization
    "to_dict",
    "to_source",
]
