"""
Structural tree for PHP sources.

The parser does not build a full expression AST. It recovers the
structure a style linter needs (declarations, blocks, statements,
expressions as flat token runs, comments) and keeps every token so that
spans can be mapped back to the original text.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from phpstyle.parser.lexer import Span, Token, TokenType


class NodeKind(Enum):
    """Kinds of structural nodes."""
    DECLARATION = "declaration"   # namespace, import, class, function, method, property, ...
    BLOCK = "block"               # file, { ... } bodies, alternative-syntax bodies
    STATEMENT = "statement"       # if, return, echo, expression statement, open tag, ...
    EXPRESSION = "expression"     # balanced token run
    COMMENT = "comment"           # // # /* */ and docblocks


DECLARATION_TAGS = frozenset({
    "namespace", "import", "class", "interface", "trait", "enum",
    "function", "method", "property", "constant", "use_trait", "case",
})

CLASS_LIKE_TAGS = frozenset({"class", "interface", "trait", "enum"})


@dataclass
class StructuralNode:
    """A node of the structural tree.

    ``tokens`` holds the node's own tokens only; tokens covered by a child
    belong to that child.
    """
    kind: NodeKind
    tag: str
    span: Span
    name: Optional[str] = None
    modifiers: Tuple[str, ...] = ()
    tokens: List[Token] = field(default_factory=list)
    children: List["StructuralNode"] = field(default_factory=list)

    def __repr__(self):
        label = f" {self.name}" if self.name else ""
        return f"{self.kind.name}({self.tag}{label}, {len(self.children)} children)"

    def text(self, source: str) -> str:
        """Original source text covered by this node."""
        return source[self.span.start:self.span.end]

    def child(self, tag: str) -> Optional["StructuralNode"]:
        """First direct child with the given tag."""
        for node in self.children:
            if node.tag == tag:
                return node
        return None

    def iter_tags(self, *tags: str) -> Iterator["StructuralNode"]:
        """Pre-order iteration over descendants (and self) with one of the tags."""
        for node, _ in walk(self):
            if node.tag in tags:
                yield node


@dataclass(frozen=True)
class NodeContext:
    """Position of a node in a pre-order walk."""
    index: int
    depth: int
    parent: Optional[StructuralNode]
    declarations: Tuple[StructuralNode, ...] = ()

    @property
    def enclosing(self) -> Optional[StructuralNode]:
        """Nearest enclosing declaration, or None at file level."""
        return self.declarations[-1] if self.declarations else None

    def enclosing_of(self, *tags: str) -> Optional[StructuralNode]:
        """Nearest enclosing declaration with one of the given tags."""
        for decl in reversed(self.declarations):
            if decl.tag in tags:
                return decl
        return None


def walk(root: StructuralNode) -> Iterator[Tuple[StructuralNode, NodeContext]]:
    """Pre-order traversal: parent before children, siblings in textual order."""
    index = 0
    stack = [(root, 0, None, ())]
    while stack:
        node, depth, parent, decls = stack.pop()
        yield node, NodeContext(index, depth, parent, decls)
        index += 1
        inner = decls + (node,) if node.kind == NodeKind.DECLARATION else decls
        for child in reversed(node.children):
            stack.append((child, depth + 1, node, inner))


def iter_tokens(node: StructuralNode) -> Iterator[Token]:
    """All tokens of a subtree in source order."""
    own = node.tokens
    children = node.children
    i = j = 0
    while i < len(own) or j < len(children):
        if j >= len(children) or (i < len(own) and own[i].offset < children[j].span.start):
            yield own[i]
            i += 1
        else:
            yield from iter_tokens(children[j])
            j += 1


def make_span(tokens: List[Token], children: List[StructuralNode]) -> Span:
    """Smallest span covering the given tokens and child spans."""
    bounds = [tok.span for tok in tokens] + [c.span for c in children]
    if not bounds:
        raise ValueError("cannot compute span of an empty node")
    first = min(bounds, key=lambda s: s.start)
    last = max(bounds, key=lambda s: s.end)
    return Span(first.start, last.end, first.line, first.column, last.end_line, last.end_column)


_WS_RE = re.compile(r"\s+")
_LOOSE_TOKENS = (TokenType.COMMENT, TokenType.DOC_COMMENT, TokenType.INLINE_HTML)


def normalize_token(token: Token) -> Tuple[str, str]:
    """Token content used for structural comparison.

    Whitespace inside comments and inline HTML is collapsed; everything
    else (string literals included) must match exactly.
    """
    if token.type in _LOOSE_TOKENS:
        return token.type.name, _WS_RE.sub(" ", token.value).strip()
    return token.type.name, token.value


def _is_blank_html(node: StructuralNode) -> bool:
    return node.tag == "inline_html" and all(
        t.type == TokenType.INLINE_HTML and not t.value.strip() for t in node.tokens
    )


def structurally_equal(a: StructuralNode, b: StructuralNode) -> bool:
    """Compare two trees ignoring spans and whitespace.

    Inline HTML that is only whitespace (e.g. the newline after a closing
    tag) is not part of the structure.
    """
    if (a.kind, a.tag, a.name, a.modifiers) != (b.kind, b.tag, b.name, b.modifiers):
        return False
    a_tokens = [t for t in a.tokens if t.type != TokenType.INLINE_HTML or t.value.strip()]
    b_tokens = [t for t in b.tokens if t.type != TokenType.INLINE_HTML or t.value.strip()]
    a_children = [c for c in a.children if not _is_blank_html(c)]
    b_children = [c for c in b.children if not _is_blank_html(c)]
    if len(a_tokens) != len(b_tokens) or len(a_children) != len(b_children):
        return False
    if any(normalize_token(x) != normalize_token(y) for x, y in zip(a_tokens, b_tokens)):
        return False
    return all(structurally_equal(x, y) for x, y in zip(a_children, b_children))
