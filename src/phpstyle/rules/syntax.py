"""
Syntax-level rules: operator spacing, keyword operators, list syntax,
strict types declaration, opening tag layout and self references.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from phpstyle.loader import PHP, SourceFile
from phpstyle.parser.lexer import Token, TokenType
from phpstyle.parser.nodes import NodeContext, NodeKind, StructuralNode
from phpstyle.rules.base import Edit, Match, Matcher, OptionSpec, RuleDefinition

_WHITESPACE = " \t\r\n\f\v"
_MEMBER_ACCESS = frozenset({"->", "?->", "::"})


def _previous(tokens: list[Token], index: int) -> Optional[Token]:
    for i in range(index - 1, -1, -1):
        if not tokens[i].is_comment:
            return tokens[i]
    return None


def _next(tokens: list[Token], index: int) -> Optional[Token]:
    for i in range(index + 1, len(tokens)):
        if not tokens[i].is_comment:
            return tokens[i]
    return None


# =============================================================================
# concat_space
# =============================================================================

class ConcatSpaceMatcher(Matcher):

    def __init__(self, options: Mapping[str, Any], source: SourceFile):
        super().__init__(options, source)
        self.wanted = " " if options["spacing"] == "one" else ""

    def _gap_before(self, token: Token) -> tuple[int, int]:
        start = token.offset
        while start > 0 and self.text[start - 1] in _WHITESPACE:
            start -= 1
        return start, token.offset

    def _gap_after(self, token: Token) -> tuple[int, int]:
        end = token.end
        while end < len(self.text) and self.text[end] in _WHITESPACE:
            end += 1
        return token.end, end

    def _needs_edit(self, gap: tuple[int, int], neighbour: str) -> bool:
        value = self.text[gap[0]:gap[1]]
        if "\n" in value:
            # Multi-line concatenation keeps its layout
            return False
        if not self.wanted and neighbour.isdigit():
            # `1 . 2` must not become the float `1.2`
            return False
        return value != self.wanted

    def visit(self, node: StructuralNode, ctx: NodeContext) -> Iterable[Match]:
        for token in node.tokens:
            if token.type != TokenType.OPERATOR or token.value != ".":
                continue
            before = self._gap_before(token)
            after = self._gap_after(token)
            edits = []
            if before[0] > 0 and self._needs_edit(before, self.text[before[0] - 1]):
                edits.append(Edit(before[0], before[1], self.wanted))
            if after[1] < len(self.text) and self._needs_edit(after, self.text[after[1]]):
                edits.append(Edit(after[0], after[1], self.wanted))
            if edits:
                message = ("Concatenation operator should be surrounded by one space"
                           if self.wanted else "Concatenation operator should not be surrounded by spaces")
                yield self.match(token, message, edits)


CONCAT_SPACE = RuleDefinition(
    identifier="concat_space",
    matcher=ConcatSpaceMatcher,
    description="Spacing around the `.` concatenation operator.",
    option_specs=(OptionSpec("spacing", "none", choices=("one", "none")),),
    fixable=True,
)


# =============================================================================
# logical_operators
# =============================================================================

LOGICAL_OPERATORS = {"and": "&&", "or": "||"}


class LogicalOperatorsMatcher(Matcher):

    def visit(self, node: StructuralNode, ctx: NodeContext) -> Iterable[Match]:
        if node.kind != NodeKind.EXPRESSION:
            return
        tokens = node.tokens
        for i, token in enumerate(tokens):
            replacement = LOGICAL_OPERATORS.get(token.word)
            if replacement is None:
                continue
            prev = _previous(tokens, i)
            if prev is not None and (prev.value in _MEMBER_ACCESS or prev.word == "function"):
                continue
            yield self.match(
                token,
                f"Use '{replacement}' instead of '{token.value}'",
                [Edit(token.offset, token.end, replacement)],
            )


LOGICAL_OPERATORS_RULE = RuleDefinition(
    identifier="logical_operators",
    matcher=LogicalOperatorsMatcher,
    description="Use && and || instead of the `and` / `or` keywords.",
    risky=True,
    fixable=True,
)


# =============================================================================
# list_syntax
# =============================================================================

def _closing_bracket(tokens: list[Token], open_index: int) -> Optional[int]:
    depth = 0
    for i in range(open_index, len(tokens)):
        if tokens[i].type == TokenType.LBRACKET:
            depth += 1
        elif tokens[i].type == TokenType.RBRACKET:
            depth -= 1
            if depth == 0:
                return i
    return None


def _closing_paren(tokens: list[Token], open_index: int) -> Optional[int]:
    depth = 0
    for i in range(open_index, len(tokens)):
        if tokens[i].type == TokenType.LPAREN:
            depth += 1
        elif tokens[i].type == TokenType.RPAREN:
            depth -= 1
            if depth == 0:
                return i
    return None


def _closing_brace(tokens: list[Token], open_index: int) -> Optional[int]:
    depth = 0
    for i in range(open_index, len(tokens)):
        if tokens[i].type == TokenType.LBRACE:
            depth += 1
        elif tokens[i].type == TokenType.RBRACE:
            depth -= 1
            if depth == 0:
                return i
    return None


class ListSyntaxMatcher(Matcher):

    def _long_lists(self, tokens: list[Token]) -> Iterable[Match]:
        for i, token in enumerate(tokens):
            if token.word != "list" or i + 1 >= len(tokens) or tokens[i + 1].type != TokenType.LPAREN:
                continue
            prev = _previous(tokens, i)
            if prev is not None and (prev.value in _MEMBER_ACCESS or prev.word == "function"):
                continue
            close = _closing_paren(tokens, i + 1)
            if close is None:
                continue
            yield self.match(
                token,
                "Use short list syntax '[...]' instead of 'list(...)'",
                [Edit(token.offset, tokens[i + 1].end, "["),
                 Edit(tokens[close].offset, tokens[close].end, "]")],
            )

    def _short_lists(self, tokens: list[Token]) -> Iterable[Match]:
        for i, token in enumerate(tokens):
            if token.type != TokenType.LBRACKET:
                continue
            prev = _previous(tokens, i)
            close = _closing_bracket(tokens, i)
            if close is None:
                continue
            following = _next(tokens, close)
            if prev is None:
                # `[$a, $b] = ...` at the start of an expression
                destructuring = following is not None and following.value == "="
            else:
                # `foreach ($rows as [$a, $b])`
                destructuring = prev.word == "as"
            if destructuring:
                yield self.match(token, "Use long list syntax 'list(...)' instead of '[...]'")

    def visit(self, node: StructuralNode, ctx: NodeContext) -> Iterable[Match]:
        if node.kind != NodeKind.EXPRESSION:
            return ()
        if self.options["syntax"] == "short":
            return self._long_lists(node.tokens)
        return self._short_lists(node.tokens)


LIST_SYNTAX = RuleDefinition(
    identifier="list_syntax",
    matcher=ListSyntaxMatcher,
    description="Use one syntax (short `[...]` or long `list(...)`) for destructuring.",
    option_specs=(OptionSpec("syntax", "short", choices=("short", "long")),),
    fixable=True,
)


# =============================================================================
# declare_strict_types
# =============================================================================

STRICT_TYPES_DECLARATION = "declare(strict_types=1);"


def _strict_types_value(statement: StructuralNode) -> Optional[str]:
    """Value assigned to strict_types in a declare statement, if any."""
    condition = statement.child("condition")
    if condition is None:
        return None
    tokens = [t for t in condition.tokens if not t.is_comment]
    for i, token in enumerate(tokens):
        if token.word == "strict_types" and i + 2 < len(tokens) and tokens[i + 1].value == "=":
            return tokens[i + 2].value
    return None


class DeclareStrictTypesMatcher(Matcher):

    def visit(self, node: StructuralNode, ctx: NodeContext) -> Iterable[Match]:
        if node.tag != "file":
            return
        open_tag = None
        for child in node.children:
            if child.tag == "open_tag" and open_tag is None:
                open_tag = child
            if child.tag == "declare":
                value = _strict_types_value(child)
                if value == "1":
                    return
                if value is not None:
                    yield self.match(child, f"strict_types must be enabled, found strict_types={value}")
                    return
        if open_tag is None or open_tag.tokens[0].value.lower() != "<?php":
            return
        token = open_tag.tokens[0]
        yield self.match(
            token,
            f"Missing '{STRICT_TYPES_DECLARATION}' after the opening tag",
            [Edit(token.end, token.end, "\n\n" + STRICT_TYPES_DECLARATION)],
        )


DECLARE_STRICT_TYPES = RuleDefinition(
    identifier="declare_strict_types",
    matcher=DeclareStrictTypesMatcher,
    description="Every PHP file declares strict_types=1.",
    risky=True,
    fixable=True,
    dialects=frozenset({PHP}),
)


# =============================================================================
# linebreak_after_opening_tag
# =============================================================================

class LinebreakAfterOpeningTagMatcher(Matcher):

    def __init__(self, options: Mapping[str, Any], source: SourceFile):
        super().__init__(options, source)
        self.seen_open_tag = False

    def visit(self, node: StructuralNode, ctx: NodeContext) -> Iterable[Match]:
        if node.tag != "open_tag" or self.seen_open_tag:
            return
        self.seen_open_tag = True
        token = node.tokens[0]
        if token.value.lower() != "<?php":
            return
        end = token.end
        while end < len(self.text) and self.text[end] in " \t":
            end += 1
        if end >= len(self.text) or self.text[end] in "\r\n":
            return
        if "\n" not in self.text[end:]:
            # Single-line file such as `<?php echo $title; ?>`
            return
        yield self.match(token, "Code must start on a new line after the opening tag",
                         [Edit(token.end, end, "\n")])


LINEBREAK_AFTER_OPENING_TAG = RuleDefinition(
    identifier="linebreak_after_opening_tag",
    matcher=LinebreakAfterOpeningTagMatcher,
    description="No code on the same line as the `<?php` tag.",
    fixable=True,
)


# =============================================================================
# self_accessor
# =============================================================================

SELF_ACCESSOR_TAGS = frozenset({"class", "interface", "enum"})


class SelfAccessorMatcher(Matcher):

    def _is_self_reference(self, tokens: list[Token], i: int, in_signature: bool) -> bool:
        prev = _previous(tokens, i)
        following = _next(tokens, i)
        if following is not None and following.value == "::":
            return True
        if prev is not None and prev.word in ("new", "instanceof"):
            return True
        if in_signature:
            # Parameter type (`Foo $other`) or return type (`: ?Foo`)
            if following is not None and following.type == TokenType.VARIABLE:
                return True
            if prev is not None and prev.value in (":", "?", "|"):
                return True
        return False

    @staticmethod
    def _anonymous_class_bodies(tokens: list[Token]) -> list[tuple[int, int]]:
        """Token index ranges of anonymous class bodies (`new class(...) { ... }`)."""
        ranges = []
        i = 0
        while i < len(tokens):
            prev = _previous(tokens, i)
            if tokens[i].word == "class" and prev is not None and prev.word == "new":
                body = next((j for j in range(i, len(tokens)) if tokens[j].type == TokenType.LBRACE), None)
                if body is not None:
                    close = _closing_brace(tokens, body)
                    end = close if close is not None else len(tokens) - 1
                    ranges.append((body, end))
                    i = end
            i += 1
        return ranges

    def visit(self, node: StructuralNode, ctx: NodeContext) -> Iterable[Match]:
        if node.kind == NodeKind.EXPRESSION:
            in_signature = False
        elif node.tag == "method":
            in_signature = True
        else:
            return
        owner = ctx.enclosing_of("class", "interface", "trait", "enum")
        if owner is None or owner.tag not in SELF_ACCESSOR_TAGS or not owner.name:
            return
        name = owner.name.lower()
        tokens = node.tokens
        # `self` inside an anonymous class means the anonymous class
        skipped = [] if in_signature else self._anonymous_class_bodies(tokens)
        for i, token in enumerate(tokens):
            if token.type != TokenType.IDENTIFIER or token.value.lower() != name:
                continue
            if any(start <= i <= end for start, end in skipped):
                continue
            if self._is_self_reference(tokens, i, in_signature):
                yield self.match(
                    token,
                    f"Use 'self' instead of the class name '{token.value}' inside {owner.tag} {owner.name}",
                    [Edit(token.offset, token.end, "self")],
                )


SELF_ACCESSOR = RuleDefinition(
    identifier="self_accessor",
    matcher=SelfAccessorMatcher,
    description="Inside a class, refer to the class itself as `self`.",
    risky=True,
    fixable=True,
)


RULES = (
    CONCAT_SPACE,
    LOGICAL_OPERATORS_RULE,
    LIST_SYNTAX,
    DECLARE_STRICT_TYPES,
    LINEBREAK_AFTER_OPENING_TAG,
    SELF_ACCESSOR,
)
