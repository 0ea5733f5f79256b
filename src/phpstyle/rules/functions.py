"""
Function-call rules: report (and where safe, rewrite) calls to PHP
functions that the style guide replaces with an operator, a cast, a
constant or a better API. All of them change runtime behaviour in edge
cases, so they are risky.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Mapping, Optional

from phpstyle.parser.lexer import Span, Token, TokenType
from phpstyle.parser.nodes import NodeContext, NodeKind, StructuralNode
from phpstyle.rules.base import Edit, Match, Matcher, OptionSpec, RuleDefinition

# Tokens after which a name followed by `(` is not a global function call
_NOT_A_CALL_AFTER = frozenset({"->", "?->", "::"})
_NOT_A_CALL_AFTER_WORDS = frozenset({"function", "new", "const", "fn"})


class FunctionCall:
    """A global function call found in an expression's tokens."""

    def __init__(self, tokens: list[Token], index: int, close: int):
        self.tokens = tokens
        self.index = index
        self.close = close

    @property
    def name_token(self) -> Token:
        return self.tokens[self.index]

    @property
    def name(self) -> str:
        return self.name_token.value.lstrip("\\").lower()

    @property
    def span(self) -> Span:
        first, last = self.name_token.span, self.tokens[self.close].span
        return Span(first.start, last.end, first.line, first.column, last.end_line, last.end_column)

    def arguments(self) -> list[list[Token]]:
        """Argument token runs split on top-level commas (comments dropped)."""
        args: list[list[Token]] = [[]]
        depth = 0
        for token in self.tokens[self.index + 2:self.close]:
            if token.is_comment:
                continue
            if token.type in (TokenType.LPAREN, TokenType.LBRACKET, TokenType.LBRACE, TokenType.ATTRIBUTE):
                depth += 1
            elif token.type in (TokenType.RPAREN, TokenType.RBRACKET, TokenType.RBRACE):
                depth -= 1
            elif token.type == TokenType.COMMA and depth == 0:
                args.append([])
                continue
            args[-1].append(token)
        return [arg for arg in args if arg]


def _matching_paren(tokens: list[Token], open_index: int) -> Optional[int]:
    depth = 0
    for i in range(open_index, len(tokens)):
        kind = tokens[i].type
        if kind == TokenType.LPAREN:
            depth += 1
        elif kind == TokenType.RPAREN:
            depth -= 1
            if depth == 0:
                return i
    return None


def _previous(tokens: list[Token], index: int) -> Optional[Token]:
    for i in range(index - 1, -1, -1):
        if not tokens[i].is_comment:
            return tokens[i]
    return None


def iter_calls(tokens: list[Token], names: Iterable[str]) -> Iterator[FunctionCall]:
    """Calls to any of `names` (lowercase, unqualified or `\\`-prefixed)."""
    wanted = frozenset(names)
    for i, token in enumerate(tokens):
        if token.type != TokenType.IDENTIFIER:
            continue
        name = token.value.lower()
        if name.startswith("\\"):
            name = name[1:]
        if name not in wanted:
            continue
        if i + 1 >= len(tokens) or tokens[i + 1].type != TokenType.LPAREN:
            continue
        prev = _previous(tokens, i)
        if prev is not None and (prev.value in _NOT_A_CALL_AFTER or prev.word in _NOT_A_CALL_AFTER_WORDS):
            continue
        close = _matching_paren(tokens, i + 1)
        if close is None:
            continue
        yield FunctionCall(tokens, i, close)


class FunctionCallMatcher(Matcher):
    """Base matcher for rules keyed on global function names."""

    functions: Mapping[str, Optional[str]] = {}

    def replacements(self) -> Mapping[str, Optional[str]]:
        return self.functions

    def visit(self, node: StructuralNode, ctx: NodeContext) -> Iterable[Match]:
        if node.kind != NodeKind.EXPRESSION:
            return
        replacements = self.replacements()
        for call in iter_calls(node.tokens, replacements):
            result = self.check(call, replacements.get(call.name))
            if result is not None:
                yield result

    def check(self, call: FunctionCall, replacement: Optional[str]) -> Optional[Match]:
        raise NotImplementedError

    def rename(self, call: FunctionCall, replacement: str) -> Edit:
        """Edit renaming the called function, keeping a leading backslash."""
        token = call.name_token
        prefix = "\\" if token.value.startswith("\\") else ""
        return Edit(token.offset, token.end, prefix + replacement)


# =============================================================================
# Rules
# =============================================================================

class IsNullMatcher(FunctionCallMatcher):
    functions = {"is_null": None}

    def check(self, call, replacement):
        return self.match(call.span, "Use 'null === $value' instead of is_null()")


class PowToExponentiationMatcher(FunctionCallMatcher):
    functions = {"pow": None}

    def check(self, call, replacement):
        if len(call.arguments()) != 2:
            return None
        return self.match(call.span, "Use the '**' operator instead of pow()")


MB_FUNCTIONS = {
    "str_split": "mb_str_split",
    "stripos": "mb_stripos",
    "stristr": "mb_stristr",
    "strlen": "mb_strlen",
    "strpos": "mb_strpos",
    "strrchr": "mb_strrchr",
    "strripos": "mb_strripos",
    "strrpos": "mb_strrpos",
    "strstr": "mb_strstr",
    "strtolower": "mb_strtolower",
    "strtoupper": "mb_strtoupper",
    "substr": "mb_substr",
    "substr_count": "mb_substr_count",
}


class MbStrFunctionsMatcher(FunctionCallMatcher):
    functions = MB_FUNCTIONS

    def check(self, call, replacement):
        return self.match(
            call.span,
            f"Use multibyte-safe {replacement}() instead of {call.name}()",
            [self.rename(call, replacement)],
        )


EREG_FUNCTIONS = {
    "ereg": "preg_match",
    "eregi": "preg_match",
    "ereg_replace": "preg_replace",
    "eregi_replace": "preg_replace",
    "split": "preg_split",
    "spliti": "preg_split",
}


class EregToPregMatcher(FunctionCallMatcher):
    functions = EREG_FUNCTIONS

    def check(self, call, replacement):
        return self.match(call.span, f"POSIX regex function {call.name}() was removed; use {replacement}()")


DEFAULT_RANDOM_REPLACEMENTS = {
    "getrandmax": "mt_getrandmax",
    "rand": "mt_rand",
    "srand": "mt_srand",
}


class RandomApiMigrationMatcher(FunctionCallMatcher):

    def replacements(self):
        return {name.lower(): target for name, target in self.options["replacements"].items()}

    def check(self, call, replacement):
        return self.match(
            call.span,
            f"Use {replacement}() instead of {call.name}()",
            [self.rename(call, replacement)],
        )


class SetTypeToCastMatcher(FunctionCallMatcher):
    functions = {"settype": None}

    def check(self, call, replacement):
        args = call.arguments()
        if len(args) != 2 or len(args[0]) != 1 or args[0][0].type != TokenType.VARIABLE:
            return None
        return self.match(call.span, "Use a cast (e.g. '$value = (int) $value') instead of settype()")


class DirConstantMatcher(FunctionCallMatcher):
    functions = {"dirname": None}

    def check(self, call, replacement):
        args = call.arguments()
        if len(args) != 1 or len(args[0]) != 1 or args[0][0].value.upper() != "__FILE__":
            return None
        span = call.span
        return self.match(span, "Use __DIR__ instead of dirname(__FILE__)",
                          [Edit(span.start, span.end, "__DIR__")])


def _risky(identifier: str, matcher, description: str, fixable: bool = False, **kwargs: Any) -> RuleDefinition:
    return RuleDefinition(
        identifier=identifier,
        matcher=matcher,
        description=description,
        risky=True,
        fixable=fixable,
        **kwargs,
    )


RULES = (
    _risky("is_null", IsNullMatcher, "Replace is_null($var) with null === $var."),
    _risky("pow_to_exponentiation", PowToExponentiationMatcher, "Use ** instead of pow()."),
    _risky("mb_str_functions", MbStrFunctionsMatcher,
           "Use multibyte string functions instead of byte-based ones.", fixable=True),
    _risky("ereg_to_preg", EregToPregMatcher, "Replace removed POSIX ereg functions with preg ones."),
    _risky("random_api_migration", RandomApiMigrationMatcher,
           "Replace rand/srand/getrandmax with the mt_* API.", fixable=True,
           option_specs=(
               OptionSpec("replacements", dict(DEFAULT_RANDOM_REPLACEMENTS),
                          description="Function name -> replacement name."),
           )),
    _risky("set_type_to_cast", SetTypeToCastMatcher, "Use casts instead of settype()."),
    _risky("dir_constant", DirConstantMatcher, "Replace dirname(__FILE__) with __DIR__.", fixable=True),
)
