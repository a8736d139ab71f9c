# =============================================================================
# test_lexer.py - Toy Lexer Unit Tests
# =============================================================================
# Tests for the Toy lexer/tokenizer.
#
# Test coverage includes:
#   - Keywords, identifiers, numbers and punctuation
#   - Permissive numeric literals ("1.2.3")
#   - '#' line comments
#   - End-of-input behavior
#   - Line/column tracking and streaming input
# =============================================================================

import io

import pytest
from kaleido.toy.lexer import Lexer, TokenType, Token, parse_number


# =============================================================================
# Helper Functions
# =============================================================================

def tokenize(source: str) -> list:
    """Tokenize source and drop the trailing EOF token."""
    lexer = Lexer(source, "<test>")
    return [t for t in lexer.tokenize() if t.type != TokenType.EOF]


def kinds(source: str) -> list:
    """Return (type, value) pairs for every meaningful token."""
    return [(t.type, t.value) for t in tokenize(source)]


# =============================================================================
# Basic Token Recognition Tests
# =============================================================================

class TestBasicTokens:
    """Test token recognition for simple inputs."""

    def test_empty_input(self):
        """Empty input produces no meaningful tokens."""
        assert tokenize("") == []

    def test_whitespace_only(self):
        """Whitespace of every kind is skipped."""
        assert tokenize("  \t\n  \r\n ") == []

    def test_definition_token_sequence(self):
        """The canonical definition tokenizes into the expected sequence."""
        assert kinds("def foo(x) x+1") == [
            (TokenType.DEF, "def"),
            (TokenType.IDENTIFIER, "foo"),
            (TokenType.CHAR, "("),
            (TokenType.IDENTIFIER, "x"),
            (TokenType.CHAR, ")"),
            (TokenType.IDENTIFIER, "x"),
            (TokenType.CHAR, "+"),
            (TokenType.NUMBER, 1.0),
        ]

    def test_sequence_ends_with_eof(self):
        """tokenize() yields the EOF token last."""
        tokens = list(Lexer("def foo(x) x+1").tokenize())
        assert tokens[-1].type == TokenType.EOF
        assert len(tokens) == 9

    def test_extern_keyword(self):
        assert kinds("extern") == [(TokenType.EXTERN, "extern")]

    def test_keywords_case_sensitive(self):
        """'Def' and 'EXTERN' are ordinary identifiers."""
        assert kinds("Def EXTERN") == [
            (TokenType.IDENTIFIER, "Def"),
            (TokenType.IDENTIFIER, "EXTERN"),
        ]

    def test_identifier_with_digits(self):
        assert kinds("loop1 a2b") == [
            (TokenType.IDENTIFIER, "loop1"),
            (TokenType.IDENTIFIER, "a2b"),
        ]

    def test_underscore_is_punctuation(self):
        """Identifiers are alphanumeric only."""
        assert kinds("a_b") == [
            (TokenType.IDENTIFIER, "a"),
            (TokenType.CHAR, "_"),
            (TokenType.IDENTIFIER, "b"),
        ]

    def test_keyword_prefix_is_identifier(self):
        assert kinds("define") == [(TokenType.IDENTIFIER, "define")]


# =============================================================================
# Punctuation Tests
# =============================================================================

class TestPunctuation:
    """Any other character comes back verbatim as a CHAR token."""

    @pytest.mark.parametrize("char", ["<", "+", "-", "*", "(", ")", ",", ";", "%", "/"])
    def test_single_character(self, char):
        assert kinds(char) == [(TokenType.CHAR, char)]

    def test_adjacent_punctuation(self):
        assert kinds("(-)") == [
            (TokenType.CHAR, "("),
            (TokenType.CHAR, "-"),
            (TokenType.CHAR, ")"),
        ]

    def test_is_char(self):
        token = tokenize("(")[0]
        assert token.is_char("(")
        assert not token.is_char(")")


# =============================================================================
# Number Tests
# =============================================================================

class TestNumbers:
    """Numeric literals are scanned permissively."""

    def test_integer(self):
        assert kinds("42") == [(TokenType.NUMBER, 42.0)]

    def test_decimal(self):
        assert kinds("3.25") == [(TokenType.NUMBER, 3.25)]

    def test_leading_dot(self):
        assert kinds(".5") == [(TokenType.NUMBER, 0.5)]

    def test_trailing_dot(self):
        assert kinds("7.") == [(TokenType.NUMBER, 7.0)]

    def test_multiple_dots_single_token(self):
        """'1.2.3' is one token and converts to its valid prefix."""
        tokens = tokenize("1.2.3")
        assert len(tokens) == 1
        assert tokens[0].value == 1.2

    def test_lone_dot(self):
        assert kinds(".") == [(TokenType.NUMBER, 0.0)]

    def test_number_then_identifier(self):
        """A letter ends a number."""
        assert kinds("2x") == [
            (TokenType.NUMBER, 2.0),
            (TokenType.IDENTIFIER, "x"),
        ]

    def test_parse_number(self):
        assert parse_number("10") == 10.0
        assert parse_number("1.2.3") == 1.2
        assert parse_number("..") == 0.0
        assert parse_number("..5") == 0.0


# =============================================================================
# Comment Tests
# =============================================================================

class TestComments:
    """'#' comments run to end of line."""

    def test_comment_only(self):
        assert tokenize("# nothing here") == []

    def test_comment_then_code(self):
        assert kinds("# comment\n1") == [(TokenType.NUMBER, 1.0)]

    def test_trailing_comment(self):
        assert kinds("x # tail") == [(TokenType.IDENTIFIER, "x")]

    def test_consecutive_comments(self):
        assert kinds("# one\n# two\nfoo") == [(TokenType.IDENTIFIER, "foo")]


# =============================================================================
# End of Input Tests
# =============================================================================

class TestEndOfInput:

    def test_eof_repeats(self):
        """After the input is exhausted every call returns EOF."""
        lexer = Lexer("x")
        assert lexer.next_token().type == TokenType.IDENTIFIER
        for _ in range(3):
            assert lexer.next_token().type == TokenType.EOF

    def test_eof_describe(self):
        token = Lexer("").next_token()
        assert token.describe() == "end of input"


# =============================================================================
# Position Tracking Tests
# =============================================================================

class TestPositions:

    def test_columns(self):
        tokens = tokenize("def foo(x) x+1")
        assert [t.column for t in tokens] == [1, 5, 8, 9, 10, 12, 13, 14]
        assert all(t.line == 1 for t in tokens)

    def test_lines(self):
        tokens = tokenize("a\n  b\n\nc")
        assert [(t.line, t.column) for t in tokens] == [(1, 1), (2, 3), (4, 1)]

    def test_starting_line_number(self):
        lexer = Lexer("x", line_number=10)
        assert lexer.next_token().line == 10

    def test_location(self):
        token = tokenize("  foo")[0]
        assert str(token.location) == "<test>:1:3"

    def test_repr(self):
        token = Token(TokenType.IDENTIFIER, "foo", 1, 5)
        assert repr(token) == "Token(IDENTIFIER, 'foo', 1:5)"
        assert repr(Token(TokenType.EOF, None, 2, 1)) == "Token(EOF, 2:1)"


# =============================================================================
# Streaming Tests
# =============================================================================

class TestStreaming:
    """The lexer reads from text streams one character at a time."""

    def test_stream_input(self):
        lexer = Lexer(io.StringIO("extern sin(a)"), "<stream>")
        tokens = [t for t in lexer.tokenize() if t.type != TokenType.EOF]
        assert tokens[0].type == TokenType.EXTERN
        assert tokens[0].filename == "<stream>"
        assert len(tokens) == 5

    def test_source_line(self):
        lexer = Lexer("first\nsecond line\nthird")
        list(lexer.tokenize())
        assert lexer.get_source_line(1) == "first"
        assert lexer.get_source_line(2) == "second line"
        assert lexer.get_source_line(3) == "third"
        assert lexer.get_source_line(9) is None

    def test_skip_line(self):
        """skip_line() drops the rest of the current line."""
        lexer = Lexer("a b c\nd")
        assert lexer.next_token().value == "a"
        lexer.skip_line()
        token = lexer.next_token()
        assert token.value == "d"
        assert token.line == 2
