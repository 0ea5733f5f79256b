"""
PHP Structural Parser

Converts a token stream from the lexer into a structural tree.
Recovers declarations, blocks, statements and comments; expressions are
kept as balanced token runs (closures, match and anonymous classes stay
inside the expression that contains them).
"""

from typing import Callable, List, Optional, Sequence, Tuple

from phpstyle.parser.lexer import Lexer, LexerError, ParseError, Span, Token, TokenType
from phpstyle.parser.nodes import NodeKind, StructuralNode, make_span

__all__ = ["Parser", "ParseError", "LexerError", "parse_source"]


CLASS_KEYWORDS = frozenset({"class", "interface", "trait", "enum"})
CLASS_MODIFIERS = frozenset({"abstract", "final", "readonly"})
MEMBER_MODIFIERS = frozenset({
    "public", "protected", "private", "static", "abstract", "final", "var", "readonly",
})

# Statements of the form `keyword (condition) body`
CONDITION_STATEMENTS = frozenset({
    "if", "elseif", "while", "for", "foreach", "switch", "declare", "catch",
})
# Statements of the form `keyword body`
BODY_STATEMENTS = frozenset({"else", "try", "finally", "do"})
SIMPLE_STATEMENTS = frozenset({
    "return", "echo", "print", "throw", "break", "continue", "global", "goto",
    "require", "require_once", "include", "include_once",
})
END_KEYWORDS = frozenset({
    "endif", "endwhile", "endfor", "endforeach", "endswitch", "enddeclare",
})

# Keywords that close an alternative-syntax (`:`) body
ALT_TERMINATORS = {
    "if": frozenset({"elseif", "else", "endif"}),
    "elseif": frozenset({"elseif", "else", "endif"}),
    "else": frozenset({"endif"}),
    "while": frozenset({"endwhile"}),
    "for": frozenset({"endfor"}),
    "foreach": frozenset({"endforeach"}),
    "switch": frozenset({"endswitch"}),
    "declare": frozenset({"enddeclare"}),
}

OPENERS = {
    TokenType.LPAREN: TokenType.RPAREN,
    TokenType.LBRACKET: TokenType.RBRACKET,
    TokenType.LBRACE: TokenType.RBRACE,
    TokenType.ATTRIBUTE: TokenType.RBRACKET,
}
CLOSERS = frozenset({TokenType.RPAREN, TokenType.RBRACKET, TokenType.RBRACE})
CLOSER_TEXT = {TokenType.RPAREN: "')'", TokenType.RBRACKET: "']'", TokenType.RBRACE: "'}'"}

# Two of these in a row can never be valid PHP
OPERANDS = frozenset({TokenType.VARIABLE, TokenType.NUMBER, TokenType.STRING, TokenType.HEREDOC})

LEAF_STATEMENTS = {
    TokenType.OPEN_TAG: "open_tag",
    TokenType.CLOSE_TAG: "close_tag",
    TokenType.INLINE_HTML: "inline_html",
    TokenType.SEMICOLON: "empty",
}


def _describe(token: Token) -> str:
    if token.type == TokenType.EOF:
        return "end of file"
    return f"'{token.value}'"


def _statement_end(token: Token) -> bool:
    return token.type in (TokenType.SEMICOLON, TokenType.CLOSE_TAG)


def _is_colon(token: Token) -> bool:
    return token.type == TokenType.OPERATOR and token.value == ":"


class Parser:
    """
    Structural parser for PHP files.

    Usage:
        parser = Parser(tokens)
        tree = parser.parse()
    """

    def __init__(self, tokens: List[Token], filename: str = "<unknown>"):
        self.tokens = tokens
        self.filename = filename
        self.pos = 0
        self.length = len(tokens)

    def _current(self) -> Token:
        """Get current token; the stream always ends with EOF."""
        if self.pos >= self.length:
            return self.tokens[-1]
        return self.tokens[self.pos]

    def _peek(self, offset: int = 1) -> Token:
        """Peek ahead by offset tokens."""
        pos = self.pos + offset
        if pos >= self.length:
            return self.tokens[-1]
        return self.tokens[pos]

    def _advance(self) -> Token:
        """Advance one token and return the previous one."""
        token = self._current()
        if token.type != TokenType.EOF:
            self.pos += 1
        return token

    def _expect(self, token_type: TokenType, expected: str) -> Token:
        """Expect a specific token type, raise error if not found."""
        token = self._current()
        if token.type != token_type:
            raise ParseError(f"Unexpected {_describe(token)}", token, expected=expected)
        return self._advance()

    def _node(self, kind: NodeKind, tag: str, tokens: List[Token],
              children: Sequence[StructuralNode] = (), name: Optional[str] = None,
              modifiers: Tuple[str, ...] = ()) -> StructuralNode:
        children = list(children)
        return StructuralNode(
            kind=kind,
            tag=tag,
            span=make_span(tokens, children),
            name=name,
            modifiers=modifiers,
            tokens=list(tokens),
            children=children,
        )

    def _collect(self, stop: Callable[[Token], bool], expected: str) -> List[Token]:
        """
        Collect a balanced run of tokens up to (not including) a stop token.

        The stop predicate is only consulted outside brackets. Mismatched or
        unexpected closers and end of file raise ParseError.
        """
        tokens = []
        stack = []
        prev = None
        while True:
            token = self._current()
            if token.type == TokenType.EOF:
                want = CLOSER_TEXT[stack[-1]] if stack else expected
                raise ParseError("Unexpected end of file", token, expected=want)
            if not stack and stop(token):
                return tokens
            if token.type in OPENERS:
                stack.append(OPENERS[token.type])
            elif token.type in CLOSERS:
                if not stack:
                    raise ParseError(f"Unexpected {_describe(token)}", token, expected=expected)
                want = stack.pop()
                if token.type != want:
                    raise ParseError(f"Mismatched {_describe(token)}", token, expected=CLOSER_TEXT[want])
            elif token.type in OPERANDS and prev is not None and prev.type in OPERANDS:
                raise ParseError(
                    f"Unexpected {_describe(token)}", token,
                    expected="an operator" if stack else expected,
                )
            tokens.append(self._advance())
            if not token.is_comment:
                prev = token

    def parse(self) -> StructuralNode:
        """Parse the token stream into a tree rooted at a `file` block."""
        children = []
        while self._current().type != TokenType.EOF:
            children.append(self._parse_statement("file"))
        eof = self._current()
        span = Span(0, eof.offset, 1, 1, eof.line, eof.column)
        return StructuralNode(NodeKind.BLOCK, "file", span, children=children)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _parse_statement(self, context: str) -> StructuralNode:
        """Parse one statement, declaration or comment."""
        token = self._current()

        if token.is_comment:
            return self._parse_comment()

        if token.type in LEAF_STATEMENTS:
            self._advance()
            return self._node(NodeKind.STATEMENT, LEAF_STATEMENTS[token.type], [token])

        if token.type == TokenType.LBRACE:
            return self._parse_block("block", context)

        if token.type in CLOSERS:
            raise ParseError(f"Unexpected {_describe(token)}", token, expected="statement")

        if token.type == TokenType.ATTRIBUTE or token.word in CLASS_MODIFIERS:
            return self._parse_modified_declaration(context)

        word = token.word
        following = self._peek()

        if word == "namespace" and following.type in (TokenType.IDENTIFIER, TokenType.LBRACE):
            return self._parse_namespace()
        if word == "use":
            return self._parse_import()
        if word == "const" and following.type == TokenType.IDENTIFIER:
            return self._parse_constant([], ())
        if word == "function" and self._is_named_function():
            return self._parse_function("function", [], ())
        if word in CLASS_KEYWORDS and following.type == TokenType.IDENTIFIER:
            return self._parse_class_like([], ())
        if word in CONDITION_STATEMENTS:
            return self._parse_control(word, with_condition=True)
        if word in BODY_STATEMENTS:
            return self._parse_control(word, with_condition=False)
        if word == "case" or (word == "default" and (_is_colon(following) or following.type == TokenType.SEMICOLON)):
            return self._parse_case_label(word)
        if word in SIMPLE_STATEMENTS or word in END_KEYWORDS:
            return self._parse_simple_statement(word)
        if word == "static" and following.type == TokenType.VARIABLE:
            return self._parse_simple_statement(word)

        return self._parse_expression_statement()

    def _parse_comment(self) -> StructuralNode:
        token = self._advance()
        tag = "docblock" if token.type == TokenType.DOC_COMMENT else "comment"
        return self._node(NodeKind.COMMENT, tag, [token])

    def _parse_block(self, tag: str, context: str) -> StructuralNode:
        """Parse `{ ... }` with statements (or class members) inside."""
        opening = self._expect(TokenType.LBRACE, "'{'")
        children = []
        while True:
            token = self._current()
            if token.type == TokenType.RBRACE:
                break
            if token.type == TokenType.EOF:
                raise ParseError("Unexpected end of file", token, expected="'}'")
            if context == "class":
                children.append(self._parse_member())
            else:
                children.append(self._parse_statement(context))
        closing = self._advance()
        return self._node(NodeKind.BLOCK, tag, [opening, closing], children)

    def _parse_expression(self, stop: Callable[[Token], bool], expected: str,
                          tag: str = "expression") -> StructuralNode:
        tokens = self._collect(stop, expected)
        if not tokens:
            token = self._current()
            raise ParseError(f"Unexpected {_describe(token)}", token, expected="expression")
        return self._node(NodeKind.EXPRESSION, tag, tokens)

    def _parse_expression_statement(self) -> StructuralNode:
        expression = self._parse_expression(_statement_end, "';'")
        tokens = []
        # A closing tag terminates the statement but is a statement of its own
        if self._current().type == TokenType.SEMICOLON:
            tokens.append(self._advance())
        return self._node(NodeKind.STATEMENT, "expression", tokens, [expression])

    def _parse_simple_statement(self, tag: str) -> StructuralNode:
        """`return`, `echo`, `endif` and friends: keyword, optional expression, `;`."""
        tokens = [self._advance()]
        children = []
        if not _statement_end(self._current()):
            children.append(self._parse_expression(_statement_end, "';'"))
        if self._current().type == TokenType.SEMICOLON:
            tokens.append(self._advance())
        return self._node(NodeKind.STATEMENT, tag, tokens, children)

    def _parse_case_label(self, tag: str) -> StructuralNode:
        """`case expr:` / `default:` inside a switch."""
        tokens = [self._advance()]
        children = []

        def label_end(token: Token) -> bool:
            return _is_colon(token) or token.type == TokenType.SEMICOLON

        if tag == "case":
            children.append(self._parse_expression(label_end, "':'"))
        token = self._current()
        if not label_end(token):
            raise ParseError(f"Unexpected {_describe(token)}", token, expected="':'")
        tokens.append(self._advance())
        return self._node(NodeKind.STATEMENT, tag, tokens, children)

    def _parse_condition(self) -> StructuralNode:
        """Parenthesised condition, parentheses included."""
        opening = self._expect(TokenType.LPAREN, "'('")
        inner = self._collect(lambda t: t.type == TokenType.RPAREN, "')'")
        closing = self._advance()
        return self._node(NodeKind.EXPRESSION, "condition", [opening] + inner + [closing])

    def _parse_control(self, keyword: str, with_condition: bool) -> StructuralNode:
        tokens = [self._advance()]
        children = []
        if with_condition:
            children.append(self._parse_condition())
        children.append(self._parse_body(keyword))
        return self._node(NodeKind.STATEMENT, keyword, tokens, children)

    def _parse_body(self, keyword: str) -> StructuralNode:
        """Body of a control statement: block, alternative syntax, `;` or a single statement."""
        token = self._current()
        if token.type == TokenType.LBRACE:
            return self._parse_block("block", "code")
        if _is_colon(token) and keyword in ALT_TERMINATORS:
            return self._parse_alt_body(keyword)
        if token.type == TokenType.SEMICOLON:
            self._advance()
            return self._node(NodeKind.STATEMENT, "empty", [token])
        if token.type == TokenType.EOF:
            raise ParseError("Unexpected end of file", token, expected="statement")
        return self._parse_statement("code")

    def _parse_alt_body(self, keyword: str) -> StructuralNode:
        """`: statements` up to the matching else/elseif/end* keyword."""
        colon = self._advance()
        stops = ALT_TERMINATORS[keyword]
        children = []
        while True:
            token = self._current()
            if token.word in stops and not (children and self._continues_chain(children[-1], token)):
                break
            if token.type == TokenType.EOF:
                raise ParseError("Unexpected end of file", token, expected=f"'end{keyword}'"
                                 if keyword not in ("if", "elseif", "else") else "'endif'")
            if token.type in CLOSERS:
                raise ParseError(f"Unexpected {_describe(token)}", token, expected="statement")
            children.append(self._parse_statement("code"))
        return self._node(NodeKind.BLOCK, "block", [colon], children)

    @staticmethod
    def _continues_chain(previous: StructuralNode, token: Token) -> bool:
        """An else/elseif right after a nested brace-style if belongs to that if."""
        if token.word not in ("else", "elseif") or previous.tag not in ("if", "elseif"):
            return False
        body = previous.children[-1]
        return not (body.tokens and _is_colon(body.tokens[0]))

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def _is_named_function(self) -> bool:
        following = self._peek()
        if following.type == TokenType.IDENTIFIER:
            return True
        return (following.type == TokenType.OPERATOR and following.value == "&"
                and self._peek(2).type == TokenType.IDENTIFIER)

    def _parse_prefix(self, allowed: frozenset) -> Tuple[List[Token], Tuple[str, ...]]:
        """Attributes, comments and modifiers in front of a declaration."""
        tokens = []
        modifiers = []
        while True:
            token = self._current()
            if token.type == TokenType.ATTRIBUTE:
                tokens.append(self._advance())
                tokens.extend(self._collect(lambda t: t.type == TokenType.RBRACKET, "']'"))
                tokens.append(self._advance())
            elif token.word in allowed:
                modifiers.append(token.word)
                tokens.append(self._advance())
            elif token.is_comment and tokens:
                tokens.append(self._advance())
            else:
                return tokens, tuple(modifiers)

    def _parse_modified_declaration(self, context: str) -> StructuralNode:
        start = self.pos
        prefix, modifiers = self._parse_prefix(CLASS_MODIFIERS)
        token = self._current()
        if token.word in CLASS_KEYWORDS and self._peek().type == TokenType.IDENTIFIER:
            return self._parse_class_like(prefix, modifiers)
        if token.word == "function" and self._is_named_function():
            return self._parse_function("function", prefix, modifiers)
        # Attributed closure or a call to a function named like a modifier
        self.pos = start
        return self._parse_expression_statement()

    def _parse_namespace(self) -> StructuralNode:
        tokens = [self._advance()]
        name = ""
        if self._current().type == TokenType.IDENTIFIER:
            name_token = self._advance()
            tokens.append(name_token)
            name = name_token.value
        if self._current().type == TokenType.LBRACE:
            body = self._parse_block("body", "file")
            return self._node(NodeKind.DECLARATION, "namespace", tokens, [body], name=name)
        tokens.append(self._expect(TokenType.SEMICOLON, "';' or '{'"))
        return self._node(NodeKind.DECLARATION, "namespace", tokens, name=name)

    def _parse_import(self) -> StructuralNode:
        """`use [function|const] Name [as Alias][, ...];` including group use."""
        tokens = [self._advance()]
        kind = "class"
        token = self._current()
        if token.word in ("function", "const") and self._peek().type == TokenType.IDENTIFIER:
            kind = token.word
            tokens.append(self._advance())
        rest = self._collect(_statement_end, "';'")
        names = [t for t in rest if t.type == TokenType.IDENTIFIER]
        if not names:
            token = self._current()
            raise ParseError(f"Unexpected {_describe(token)}", token, expected="import name")
        tokens.extend(rest)
        if self._current().type == TokenType.SEMICOLON:
            tokens.append(self._advance())
        return self._node(NodeKind.DECLARATION, "import", tokens, name=names[0].value, modifiers=(kind,))

    def _parse_constant(self, prefix: List[Token], modifiers: Tuple[str, ...]) -> StructuralNode:
        """`const [type] NAME = value[, ...];`"""
        keyword = self._advance()
        rest = self._collect(lambda t: t.type == TokenType.SEMICOLON, "';'")
        name = None
        for token in rest:
            if token.type == TokenType.OPERATOR and token.value == "=":
                break
            if token.type == TokenType.IDENTIFIER:
                name = token.value
        if name is None:
            raise ParseError("Unexpected token", keyword, expected="constant name")
        tokens = prefix + [keyword] + rest + [self._advance()]
        return self._node(NodeKind.DECLARATION, "constant", tokens, name=name, modifiers=modifiers)

    def _parse_function(self, tag: str, prefix: List[Token], modifiers: Tuple[str, ...]) -> StructuralNode:
        """Named function or method: signature, then a body block or `;`."""
        tokens = prefix + [self._advance()]
        token = self._current()
        if token.type == TokenType.OPERATOR and token.value == "&":
            tokens.append(self._advance())
        name_token = self._expect(TokenType.IDENTIFIER, "function name")
        tokens.append(name_token)
        signature = self._collect(lambda t: t.type in (TokenType.LBRACE, TokenType.SEMICOLON), "'{'")
        if not signature or signature[0].type != TokenType.LPAREN:
            token = signature[0] if signature else self._current()
            raise ParseError(f"Unexpected {_describe(token)}", token, expected="'('")
        tokens.extend(signature)
        children = []
        if self._current().type == TokenType.LBRACE:
            children.append(self._parse_block("body", "code"))
        else:
            tokens.append(self._advance())
        return self._node(NodeKind.DECLARATION, tag, tokens, children,
                          name=name_token.value, modifiers=modifiers)

    def _parse_class_like(self, prefix: List[Token], modifiers: Tuple[str, ...]) -> StructuralNode:
        keyword = self._advance()
        name_token = self._expect(TokenType.IDENTIFIER, "class name")
        header = self._collect(lambda t: t.type == TokenType.LBRACE, "'{'")
        body = self._parse_block("body", "class")
        tokens = prefix + [keyword, name_token] + header
        return self._node(NodeKind.DECLARATION, keyword.word, tokens, [body],
                          name=name_token.value, modifiers=modifiers)

    # ------------------------------------------------------------------
    # Class members
    # ------------------------------------------------------------------

    def _parse_member(self) -> StructuralNode:
        """Parse one member of a class, interface, trait or enum body."""
        token = self._current()
        if token.is_comment:
            return self._parse_comment()
        if token.type == TokenType.SEMICOLON:
            self._advance()
            return self._node(NodeKind.STATEMENT, "empty", [token])

        prefix, modifiers = self._parse_prefix(MEMBER_MODIFIERS)
        token = self._current()
        word = token.word

        if word == "use" and not prefix:
            return self._parse_use_trait()
        if word == "case":
            return self._parse_enum_case(prefix)
        if word == "const":
            return self._parse_constant(prefix, modifiers)
        if word == "function":
            return self._parse_function("method", prefix, modifiers)
        if token.type == TokenType.VARIABLE or modifiers:
            return self._parse_property(prefix, modifiers)
        raise ParseError(f"Unexpected {_describe(token)}", token, expected="class member")

    def _parse_use_trait(self) -> StructuralNode:
        tokens = [self._advance()]
        rest = self._collect(lambda t: t.type in (TokenType.SEMICOLON, TokenType.LBRACE), "';'")
        names = [t for t in rest if t.type == TokenType.IDENTIFIER]
        if not names:
            token = self._current()
            raise ParseError(f"Unexpected {_describe(token)}", token, expected="trait name")
        tokens.extend(rest)
        if self._current().type == TokenType.LBRACE:
            # Conflict resolution block: `{ A::foo insteadof B; }`
            tokens.append(self._advance())
            tokens.extend(self._collect(lambda t: t.type == TokenType.RBRACE, "'}'"))
        tokens.append(self._advance())
        return self._node(NodeKind.DECLARATION, "use_trait", tokens, name=names[0].value)

    def _parse_enum_case(self, prefix: List[Token]) -> StructuralNode:
        keyword = self._advance()
        name_token = self._expect(TokenType.IDENTIFIER, "case name")
        rest = self._collect(lambda t: t.type == TokenType.SEMICOLON, "';'")
        tokens = prefix + [keyword, name_token] + rest + [self._advance()]
        return self._node(NodeKind.DECLARATION, "case", tokens, name=name_token.value)

    def _parse_property(self, prefix: List[Token], modifiers: Tuple[str, ...]) -> StructuralNode:
        rest = self._collect(lambda t: t.type == TokenType.SEMICOLON, "';'")
        variables = [t for t in rest if t.type == TokenType.VARIABLE]
        if not variables:
            token = rest[0] if rest else self._current()
            raise ParseError(f"Unexpected {_describe(token)}", token, expected="property name")
        tokens = prefix + rest + [self._advance()]
        return self._node(NodeKind.DECLARATION, "property", tokens,
                          name=variables[0].value, modifiers=modifiers)


def parse_source(text: str, filename: str = "<string>") -> StructuralNode:
    """
    Parse PHP source text into a structural tree.

    Raises:
        ParseError: the text is not structurally valid (LexerError for
            lexical problems such as an unterminated string).
    """
    lexer = Lexer(text, filename)
    tokens = lexer.tokenize_all(include_comments=True)
    parser = Parser(tokens, filename)
    return parser.parse()
