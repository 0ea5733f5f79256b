"""
Tests for the phpstyle lexer.
"""

import pytest
from phpstyle.parser import Lexer, LexerError, ParseError, TokenType


def token_types(text):
    return [t.type for t in Lexer(text).tokenize_all() if t.type != TokenType.EOF]


def token_values(text):
    return [t.value for t in Lexer(text).tokenize_all() if t.type != TokenType.EOF]


class TestTags:
    """Open/close tags and inline HTML."""

    def test_empty_source(self):
        """Empty source yields only EOF."""
        tokens = Lexer("").tokenize_all()
        assert len(tokens) == 1
        assert tokens[0].type == TokenType.EOF

    def test_inline_html_only(self):
        """Text without an open tag is one INLINE_HTML token."""
        assert token_types("<p>hello</p>\n") == [TokenType.INLINE_HTML]

    def test_open_tag(self):
        """<?php switches into PHP mode."""
        assert token_values("<?php echo 1;") == ["<?php", "echo", "1", ";"]

    def test_open_tag_is_case_insensitive(self):
        """<?PHP is an open tag too."""
        assert token_types("<?PHP\n")[0] == TokenType.OPEN_TAG

    def test_short_echo_tag(self):
        """<?= is an open tag."""
        tokens = Lexer("<?= $title ?>").tokenize_all()
        assert tokens[0].type == TokenType.OPEN_TAG
        assert tokens[0].value == "<?="
        assert tokens[1].type == TokenType.VARIABLE

    def test_close_tag_returns_to_html(self):
        """Text after ?> is inline HTML again."""
        types = token_types("<p><?php echo 1; ?></p>")
        assert types == [
            TokenType.INLINE_HTML, TokenType.OPEN_TAG, TokenType.IDENTIFIER, TokenType.NUMBER,
            TokenType.SEMICOLON, TokenType.CLOSE_TAG, TokenType.INLINE_HTML,
        ]

    def test_line_comment_stops_at_close_tag(self):
        """A // comment ends before ?>."""
        tokens = Lexer("<?php // note ?>after").tokenize_all()
        assert tokens[1].type == TokenType.COMMENT
        assert tokens[1].value == "// note "
        assert tokens[2].type == TokenType.CLOSE_TAG
        assert tokens[3].value == "after"


class TestTokens:
    """Token classification inside PHP code."""

    def test_variables_and_identifiers(self):
        """$name is a VARIABLE, names are IDENTIFIERs."""
        assert token_types("<?php $a = strlen($b);")[1:] == [
            TokenType.VARIABLE, TokenType.OPERATOR, TokenType.IDENTIFIER,
            TokenType.LPAREN, TokenType.VARIABLE, TokenType.RPAREN, TokenType.SEMICOLON,
        ]

    def test_qualified_names_are_one_token(self):
        """Namespace separators are part of the identifier."""
        assert token_values("<?php use App\\Domain\\User;")[1:3] == ["use", "App\\Domain\\User"]

    def test_fully_qualified_name(self):
        """A leading backslash starts an identifier."""
        assert token_values("<?php \\strlen($x);")[1] == "\\strlen"

    def test_strings(self):
        """Quoted strings keep their quotes and escapes."""
        values = token_values("<?php 'it\\'s' . \"a \\\"b\\\"\";")
        assert values[1] == "'it\\'s'"
        assert values[3] == "\"a \\\"b\\\"\""

    def test_heredoc(self):
        """A heredoc is a single token up to its closing label."""
        text = "<?php $x = <<<EOT\nline $y\nEOT;\n"
        tokens = Lexer(text).tokenize_all()
        heredoc = [t for t in tokens if t.type == TokenType.HEREDOC]
        assert len(heredoc) == 1
        assert heredoc[0].value == "<<<EOT\nline $y\nEOT"
        assert tokens[tokens.index(heredoc[0]) + 1].type == TokenType.SEMICOLON

    def test_nowdoc(self):
        """Quoted labels are nowdocs."""
        text = "<?php $x = <<<'SQL'\n  SELECT 1\n  SQL;\n"
        values = [t.value for t in Lexer(text).tokenize_all() if t.type == TokenType.HEREDOC]
        assert values == ["<<<'SQL'\n  SELECT 1\n  SQL"]

    def test_numbers(self):
        """Integer, float, hex and separated literals."""
        values = token_values("<?php 42; 1.5e3; 0x1F; 1_000;")
        assert values[1::2] == ["42", "1.5e3", "0x1F", "1_000"]

    def test_non_ascii_digits_are_name_characters(self):
        """Characters like ² are part of names, never number literals."""
        tokens = [t for t in Lexer("<?php $x = ²; 1²;").tokenize_all() if t.type != TokenType.EOF]
        assert [(t.type, t.value) for t in tokens[3:]] == [
            (TokenType.IDENTIFIER, "²"),
            (TokenType.SEMICOLON, ";"),
            (TokenType.NUMBER, "1"),
            (TokenType.IDENTIFIER, "²"),
            (TokenType.SEMICOLON, ";"),
        ]

    def test_longest_operator_wins(self):
        """Multi-character operators are read whole."""
        values = token_values("<?php $a ??= $b <=> $c?->d;")
        assert "??=" in values
        assert "<=>" in values
        assert "?->" in values

    def test_docblock_vs_comment(self):
        """/** followed by whitespace is a docblock, /**/ is a comment."""
        tokens = Lexer("<?php /** doc */ /**/ /* c */").tokenize_all()
        assert [t.type for t in tokens[1:4]] == [
            TokenType.DOC_COMMENT, TokenType.COMMENT, TokenType.COMMENT,
        ]

    def test_attribute(self):
        """#[ starts an attribute, # alone is a comment."""
        tokens = Lexer("<?php #[Route('/')]\n# comment\n").tokenize_all()
        assert tokens[1].type == TokenType.ATTRIBUTE
        assert tokens[1].value == "#["
        assert any(t.type == TokenType.COMMENT and t.value == "# comment" for t in tokens)

    def test_comments_can_be_skipped(self):
        """include_comments=False drops comment tokens."""
        tokens = Lexer("<?php // a\n$x;").tokenize_all(include_comments=False)
        assert all(not t.is_comment for t in tokens)

    def test_word_is_lowercase_identifier(self):
        """Keywords compare case-insensitively through Token.word."""
        tokens = Lexer("<?php ECHO $x;").tokenize_all()
        assert tokens[1].word == "echo"
        assert tokens[2].word == ""


class TestPositions:
    """Line, column and offset tracking."""

    def test_line_and_column(self):
        """Positions are 1-based and follow newlines."""
        tokens = Lexer("<?php\n  $a = 1;\n$b;").tokenize_all()
        a = tokens[1]
        assert (a.line, a.column, a.offset) == (2, 3, 8)
        b = [t for t in tokens if t.value == "$b"][0]
        assert (b.line, b.column) == (3, 1)

    def test_span_covers_token_text(self):
        """Span end is exclusive and end_column follows the token."""
        text = "<?php $name;"
        token = Lexer(text).tokenize_all()[1]
        span = token.span
        assert text[span.start:span.end] == "$name"
        assert (span.line, span.column, span.end_line, span.end_column) == (1, 7, 1, 12)

    def test_multiline_token_end(self):
        """A block comment spanning lines ends on its last line."""
        token = Lexer("<?php /* a\nbc */").tokenize_all()[1]
        assert token.end_line == 2
        assert token.end_column == 6


class TestLexerErrors:
    """Lexical errors."""

    def test_unterminated_string(self):
        """An unterminated string raises LexerError with its start position."""
        with pytest.raises(LexerError) as exc_info:
            Lexer("<?php\n$x = 'abc;").tokenize_all()
        assert exc_info.value.line == 2
        assert exc_info.value.column == 6
        assert "Unterminated string" in exc_info.value.message

    def test_unterminated_comment(self):
        """An unterminated block comment raises LexerError."""
        with pytest.raises(LexerError):
            Lexer("<?php /* never closed").tokenize_all()

    def test_unterminated_heredoc(self):
        """A heredoc without its closing label raises LexerError."""
        with pytest.raises(LexerError):
            Lexer("<?php $x = <<<EOT\nabc\n").tokenize_all()

    def test_unexpected_character(self):
        """Characters outside the PHP grammar raise LexerError."""
        with pytest.raises(LexerError) as exc_info:
            Lexer("<?php $a = 1 \x01;").tokenize_all()
        assert "Unexpected character" in str(exc_info.value)

    def test_lexer_error_is_parse_error(self):
        """LexerError can be handled as a ParseError with a span."""
        with pytest.raises(ParseError) as exc_info:
            Lexer("<?php 'abc").tokenize_all()
        assert exc_info.value.span is not None
        assert exc_info.value.span.start == 6
