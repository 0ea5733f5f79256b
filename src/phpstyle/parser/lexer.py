"""
PHP Lexer (Tokenizer)

Converts PHP source text into a stream of tokens.
Handles: open/close tags, inline HTML, variables, names, strings,
heredoc/nowdoc, numbers, comments, docblocks, attributes and operators.

Every token keeps its exact source text and character offset so that
fixers can rewrite the original file in place.
"""

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Iterator, List, Optional


class TokenType(Enum):
    """Types of tokens in PHP source."""
    OPEN_TAG = auto()        # <?php, <?=
    CLOSE_TAG = auto()       # ?>
    INLINE_HTML = auto()     # anything outside PHP tags
    VARIABLE = auto()        # $name
    IDENTIFIER = auto()      # keywords, names, Foo\Bar, \strlen
    STRING = auto()          # 'single', "double", `shell`
    HEREDOC = auto()         # <<<EOT ... EOT, <<<'EOT' ... EOT
    NUMBER = auto()          # 42, 0x1F, 1_000, 1.5e3
    COMMENT = auto()         # // line, # line, /* block */
    DOC_COMMENT = auto()     # /** docblock */
    ATTRIBUTE = auto()       # #[ (closed by RBRACKET)
    OPERATOR = auto()        # = . -> :: => ?? etc.
    LBRACE = auto()          # {
    RBRACE = auto()          # }
    LPAREN = auto()          # (
    RPAREN = auto()          # )
    LBRACKET = auto()        # [
    RBRACKET = auto()        # ]
    SEMICOLON = auto()       # ;
    COMMA = auto()           # ,
    EOF = auto()             # End of file


@dataclass(frozen=True)
class Span:
    """Character range (end exclusive) plus 1-based line/column bounds."""
    start: int
    end: int
    line: int
    column: int
    end_line: int
    end_column: int

    def contains(self, other: "Span") -> bool:
        return self.start <= other.start and other.end <= self.end

    def overlaps(self, other: "Span") -> bool:
        return self.start < other.end and other.start < self.end

    def to_dict(self) -> Dict[str, int]:
        return {
            'start': self.start,
            'end': self.end,
            'line': self.line,
            'column': self.column,
            'end_line': self.end_line,
            'end_column': self.end_column,
        }


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: str
    line: int
    column: int
    offset: int
    end_line: int
    end_column: int

    @property
    def end(self) -> int:
        return self.offset + len(self.value)

    @property
    def span(self) -> Span:
        return Span(self.offset, self.end, self.line, self.column, self.end_line, self.end_column)

    @property
    def word(self) -> str:
        """Lowercased identifier text, or '' for other tokens (PHP keywords are case-insensitive)."""
        if self.type == TokenType.IDENTIFIER:
            return self.value.lower()
        return ""

    @property
    def is_comment(self) -> bool:
        return self.type in (TokenType.COMMENT, TokenType.DOC_COMMENT)

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r}, L{self.line}:{self.column})"


class ParseError(Exception):
    """Error during parsing: the source is not structurally valid PHP."""
    def __init__(self, message: str, token: Token = None, expected: str = None, span: Span = None):
        self.token = token
        self.span = span or (token.span if token else None)
        self.expected = expected
        self.message = message
        self.line = self.span.line if self.span else 0
        self.column = self.span.column if self.span else 0
        detail = f"{message} (expected {expected})" if expected else message
        if self.span:
            super().__init__(f"Parse error at line {self.line}, column {self.column}: {detail}")
        else:
            super().__init__(f"Parse error: {detail}")


class LexerError(ParseError):
    """Error during lexical analysis."""
    def __init__(self, message: str, line: int, column: int, offset: int = 0):
        span = Span(offset, offset + 1, line, column, line, column + 1)
        super().__init__(message, span=span)
        self.args = (f"Lexer error at line {line}, column {column}: {message}",)


# Longest operators first so that maximal munch works with a simple scan.
OPERATORS = (
    "<<=", ">>=", "**=", "...", "<=>", "===", "!==", "??=", "?->",
    "<<", ">>", "**", "==", "!=", "<>", "<=", ">=", "&&", "||", "??",
    "->", "=>", "::", "++", "--", "+=", "-=", "*=", "/=", ".=", "%=",
    "&=", "|=", "^=",
    "+", "-", "*", "/", "%", "=", "<", ">", "!", ".", "&", "|", "^",
    "~", "?", ":", "@", "$",
)

_DIGITS = "0123456789"
_NUMBER_RE = re.compile(
    r"0[xX][0-9a-fA-F_]+"
    r"|0[bB][01_]+"
    r"|0[oO][0-7_]+"
    r"|(?:[0-9][0-9_]*(?:\.[0-9_]*)?|\.[0-9][0-9_]*)(?:[eE][+-]?[0-9]+)?"
)
_OPEN_TAG_RE = re.compile(r"<\?php(?=\s|$)|<\?=", re.IGNORECASE)
_HEREDOC_START_RE = re.compile(r"<<<[ \t]*(['\"]?)([A-Za-z_][A-Za-z0-9_]*)\1\r?\n")

_PUNCTUATION = {
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    ";": TokenType.SEMICOLON,
    ",": TokenType.COMMA,
}


class Lexer:
    """
    Tokenizer for PHP source files.

    Usage:
        lexer = Lexer(source_text)
        tokens = list(lexer.tokenize())
    """

    @staticmethod
    def _is_ident_start(ch: str) -> bool:
        """Check if character can start a name (letter, underscore, namespace separator)."""
        return ch == '_' or ch == '\\' or ch.isalpha() or ord(ch) >= 0x80

    @staticmethod
    def _is_ident_cont(ch: str) -> bool:
        """Check if character can continue a name."""
        return ch == '_' or ch == '\\' or ch.isalnum() or ord(ch) >= 0x80

    def __init__(self, source: str, filename: str = "<unknown>"):
        self.source = source
        self.filename = filename
        self.pos = 0
        self.line = 1
        self.column = 1
        self.length = len(source)
        self.in_php = False

    def _current(self) -> Optional[str]:
        """Get current character or None if at end."""
        if self.pos >= self.length:
            return None
        return self.source[self.pos]

    def _peek(self, offset: int = 1) -> Optional[str]:
        """Peek ahead by offset characters."""
        pos = self.pos + offset
        if pos >= self.length:
            return None
        return self.source[pos]

    def _startswith(self, text: str) -> bool:
        return self.source.startswith(text, self.pos)

    def _advance(self) -> Optional[str]:
        """Advance one character and return it."""
        ch = self._current()
        if ch is not None:
            self.pos += 1
            if ch == '\n':
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        return ch

    def _take(self, count: int) -> str:
        """Advance over ``count`` characters and return them."""
        start = self.pos
        for _ in range(count):
            if self._advance() is None:
                break
        return self.source[start:self.pos]

    def _token(self, token_type: TokenType, value: str, line: int, column: int, offset: int) -> Token:
        return Token(token_type, value, line, column, offset, self.line, self.column)

    def _error(self, message: str, line: int, column: int, offset: int) -> LexerError:
        return LexerError(message, line, column, offset)

    def _skip_whitespace(self) -> None:
        """Skip spaces, tabs and newlines."""
        while self._current() in (' ', '\t', '\r', '\n', '\f', '\v'):
            self._advance()

    def _read_inline_html(self) -> str:
        """Read text up to the next PHP open tag (or end of file)."""
        match = _OPEN_TAG_RE.search(self.source, self.pos)
        end = match.start() if match else self.length
        return self._take(end - self.pos)

    def _read_line_comment(self) -> str:
        """Read a // or # comment; it ends at a newline or a closing tag."""
        start = self.pos
        while True:
            ch = self._current()
            if ch is None or ch in ('\n', '\r'):
                break
            if ch == '?' and self._peek() == '>':
                break
            self._advance()
        return self.source[start:self.pos]

    def _read_block_comment(self, line: int, column: int) -> str:
        start = self.pos
        end = self.source.find("*/", self.pos + 2)
        if end < 0:
            raise self._error("Unterminated comment", line, column, start)
        return self._take(end + 2 - start)

    def _read_string(self, quote_char: str, line: int, column: int) -> str:
        """Read a quoted string including its quotes; backslash escapes the next character."""
        start = self.pos
        self._advance()
        while True:
            ch = self._current()
            if ch is None:
                raise self._error("Unterminated string", line, column, start)
            if ch == '\\':
                self._advance()
                self._advance()
                continue
            self._advance()
            if ch == quote_char:
                break
        return self.source[start:self.pos]

    def _read_heredoc(self, match: "re.Match[str]", line: int, column: int) -> str:
        """Read a heredoc/nowdoc up to and including its closing label."""
        start = self.pos
        label = match.group(2)
        closing = re.compile(r"^[ \t]*" + re.escape(label) + r"(?!\w)", re.MULTILINE)
        found = closing.search(self.source, match.end())
        if found is None:
            raise self._error(f"Unterminated heredoc '{label}'", line, column, start)
        return self._take(found.end() - start)

    def _read_identifier(self) -> str:
        start = self.pos
        while True:
            ch = self._current()
            if ch is None or not self._is_ident_cont(ch):
                break
            self._advance()
        return self.source[start:self.pos]

    def _read_operator(self) -> Optional[str]:
        for op in OPERATORS:
            if self._startswith(op):
                return self._take(len(op))
        return None

    def tokenize(self, include_comments: bool = True) -> Iterator[Token]:
        """
        Generate tokens from the source.

        Args:
            include_comments: If True, emit COMMENT/DOC_COMMENT tokens. Otherwise skip them.
        """
        while True:
            if not self.in_php:
                start_line, start_col, start = self.line, self.column, self.pos
                if start >= self.length:
                    yield self._token(TokenType.EOF, '', start_line, start_col, start)
                    break
                html = self._read_inline_html()
                if html:
                    yield self._token(TokenType.INLINE_HTML, html, start_line, start_col, start)
                if self.pos >= self.length:
                    continue
                start_line, start_col, start = self.line, self.column, self.pos
                tag = self._take(2 + 1 if self._startswith("<?=") else 5)
                self.in_php = True
                yield self._token(TokenType.OPEN_TAG, tag, start_line, start_col, start)
                continue

            self._skip_whitespace()

            ch = self._current()
            start_line = self.line
            start_col = self.column
            start = self.pos

            if ch is None:
                yield self._token(TokenType.EOF, '', start_line, start_col, start)
                break

            # Closing tag drops back to inline HTML
            if ch == '?' and self._peek() == '>':
                value = self._take(2)
                self.in_php = False
                yield self._token(TokenType.CLOSE_TAG, value, start_line, start_col, start)
                continue

            # Attribute start #[ ... ]
            if ch == '#' and self._peek() == '[':
                value = self._take(2)
                yield self._token(TokenType.ATTRIBUTE, value, start_line, start_col, start)
                continue

            # Line comments
            if ch == '#' or (ch == '/' and self._peek() == '/'):
                comment = self._read_line_comment()
                if include_comments:
                    yield self._token(TokenType.COMMENT, comment, start_line, start_col, start)
                continue

            # Block comments and docblocks
            if ch == '/' and self._peek() == '*':
                is_doc = self._startswith("/**") and self._peek(3) in (' ', '\t', '\r', '\n')
                comment = self._read_block_comment(start_line, start_col)
                if include_comments:
                    token_type = TokenType.DOC_COMMENT if is_doc else TokenType.COMMENT
                    yield self._token(token_type, comment, start_line, start_col, start)
                continue

            # Variables
            if ch == '$' and self._peek() is not None and self._is_ident_start(self._peek()) and self._peek() != '\\':
                self._advance()
                value = '$' + self._read_identifier()
                yield self._token(TokenType.VARIABLE, value, start_line, start_col, start)
                continue

            # Strings
            if ch in ('"', "'", '`'):
                value = self._read_string(ch, start_line, start_col)
                yield self._token(TokenType.STRING, value, start_line, start_col, start)
                continue

            # Heredoc / nowdoc
            if ch == '<' and self._startswith("<<<"):
                match = _HEREDOC_START_RE.match(self.source, self.pos)
                if match:
                    value = self._read_heredoc(match, start_line, start_col)
                    yield self._token(TokenType.HEREDOC, value, start_line, start_col, start)
                    continue

            # Numbers (a leading minus is an operator, not part of the literal)
            if ch in _DIGITS or (ch == '.' and self._peek() is not None and self._peek() in _DIGITS):
                match = _NUMBER_RE.match(self.source, self.pos)
                value = self._take(match.end() - self.pos)
                yield self._token(TokenType.NUMBER, value, start_line, start_col, start)
                continue

            # Names, keywords, qualified names
            if self._is_ident_start(ch):
                value = self._read_identifier()
                yield self._token(TokenType.IDENTIFIER, value, start_line, start_col, start)
                continue

            if ch in _PUNCTUATION:
                self._advance()
                yield self._token(_PUNCTUATION[ch], ch, start_line, start_col, start)
                continue

            op = self._read_operator()
            if op is not None:
                yield self._token(TokenType.OPERATOR, op, start_line, start_col, start)
                continue

            raise self._error(f"Unexpected character {ch!r}", start_line, start_col, start)

    def tokenize_all(self, include_comments: bool = True) -> List[Token]:
        """Convenience method to get all tokens as a list."""
        return list(self.tokenize(include_comments))
