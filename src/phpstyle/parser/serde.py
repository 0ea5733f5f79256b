"""
Tree serialization.

- to_dict: JSON-friendly form of a structural tree (`phpstyle parse`).
- to_source: canonical PHP text for a tree. Re-parsing the result yields
  a structurally equal tree, and to_source is idempotent over
  parse/serialize cycles.

Usage:
    from phpstyle.parser.serde import to_source, to_dict
"""

from typing import Any, Dict

from phpstyle.parser.lexer import Token, TokenType
from phpstyle.parser.nodes import StructuralNode, iter_tokens

_NEWLINE_AFTER = frozenset({
    TokenType.OPEN_TAG,
    TokenType.COMMENT,
    TokenType.DOC_COMMENT,
    TokenType.SEMICOLON,
    TokenType.LBRACE,
    TokenType.RBRACE,
})


def _separator(prev: Token, token: Token) -> str:
    """Whitespace emitted between two adjacent tokens."""
    if TokenType.INLINE_HTML in (prev.type, token.type) or prev.type == TokenType.CLOSE_TAG:
        # Anything here would become inline HTML
        return ""
    if prev.type in _NEWLINE_AFTER or token.type == TokenType.DOC_COMMENT:
        return "\n"
    return " "


def to_source(tree: StructuralNode) -> str:
    """Re-serialize a tree into canonical PHP text."""
    parts = []
    prev = None
    for token in iter_tokens(tree):
        if prev is not None:
            parts.append(_separator(prev, token))
        parts.append(token.value)
        prev = token
    if prev is not None and prev.type not in (TokenType.INLINE_HTML, TokenType.CLOSE_TAG):
        parts.append("\n")
    return "".join(parts)


def token_to_dict(token: Token) -> Dict[str, Any]:
    return {
        'type': token.type.name,
        'value': token.value,
        'line': token.line,
        'column': token.column,
    }


def to_dict(node: StructuralNode) -> Dict[str, Any]:
    """Convert a tree to a JSON-serializable dictionary."""
    result = {
        '_type': node.kind.value,
        'tag': node.tag,
        'span': node.span.to_dict(),
    }
    if node.name is not None:
        result['name'] = node.name
    if node.modifiers:
        result['modifiers'] = list(node.modifiers)
    if node.tokens:
        result['tokens'] = [token_to_dict(t) for t in node.tokens]
    if node.children:
        result['children'] = [to_dict(c) for c in node.children]
    return result

