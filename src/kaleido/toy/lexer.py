"""
Toy Lexer (Tokenizer)
=====================

This module implements the lexer for the Toy expression language. It
pulls characters from a text stream one at a time and hands out tokens
on demand, so an interactive session never needs more input than the
token currently being built.

Token Categories
----------------
- Keywords: def, extern
- Identifiers: a letter followed by letters and digits
- Numbers: a run of digits and '.' characters
- Punctuation: any other single character, returned verbatim
  (binary operators, parentheses, commas, semicolons, ...)
- End of input

Comments
--------
- '#' starts a comment that runs to the end of the line.

Numeric Literals
----------------
The scanner accepts any run of digits and dots ("1.2.3" is one token).
Conversion keeps the longest leading prefix that forms a valid decimal
number and ignores the rest, so "1.2.3" evaluates to 1.2 and "." to 0.0.
Malformed numbers therefore never produce a lexer error.

Example Usage
-------------
>>> from kaleido.toy.lexer import Lexer
>>> lexer = Lexer("def foo(x) x+1")
>>> for token in lexer.tokenize():
...     print(token)
Token(DEF, 'def', 1:1)
Token(IDENTIFIER, 'foo', 1:5)
Token(CHAR, '(', 1:8)
Token(IDENTIFIER, 'x', 1:9)
Token(CHAR, ')', 1:10)
Token(IDENTIFIER, 'x', 1:12)
Token(CHAR, '+', 1:13)
Token(NUMBER, 1.0, 1:14)
Token(EOF, 1:15)
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional, TextIO
import io
import re
import string

from kaleido.errors import SourceLocation


# =============================================================================
# Token Type Enumeration
# =============================================================================

class TokenType(Enum):
    """
    Token kinds produced by the lexer.

    Operators and delimiters are not given individual kinds: they all arrive
    as CHAR tokens carrying the character itself, which lets the parser's
    precedence table decide what counts as a binary operator.
    """
    EOF = auto()            # End of input
    DEF = auto()            # def
    EXTERN = auto()         # extern
    IDENTIFIER = auto()     # Function and parameter names
    NUMBER = auto()         # Numeric literal (float value)
    CHAR = auto()           # Any other single character


KEYWORDS: dict[str, TokenType] = {
    "def": TokenType.DEF,
    "extern": TokenType.EXTERN,
}


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single lexical element.

    Attributes:
        type: The TokenType classification
        value: Identifier/keyword text, float for numbers, the character
            for CHAR tokens, None for EOF
        line: Line number in source (1-indexed)
        column: Column number in source (1-indexed)
        filename: Name of the source
    """
    type: TokenType
    value: str | float | None
    line: int
    column: int
    filename: str = "<input>"

    def __repr__(self) -> str:
        if self.value is not None:
            if isinstance(self.value, float):
                return f"Token({self.type.name}, {self.value}, {self.line}:{self.column})"
            return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"
        return f"Token({self.type.name}, {self.line}:{self.column})"

    @property
    def location(self) -> SourceLocation:
        """Return a SourceLocation for error reporting."""
        return SourceLocation(self.filename, self.line, self.column)

    def is_char(self, char: str) -> bool:
        """Return True if this is the punctuation token `char`."""
        return self.type == TokenType.CHAR and self.value == char

    def describe(self) -> str:
        """Short human readable form used in diagnostics."""
        if self.type == TokenType.EOF:
            return "end of input"
        if self.type == TokenType.NUMBER:
            return f"{self.value:g}"
        return str(self.value)


# =============================================================================
# Numeric Conversion
# =============================================================================

# Longest leading run that reads as a decimal number: "12", "1.5", ".5", "3."
_NUMBER_PREFIX = re.compile(r"[0-9]*\.?[0-9]*")


def parse_number(text: str) -> float:
    """
    Convert scanned numeric text to a float, best effort.

    The text may contain any mix of digits and dots. Only the longest
    valid leading prefix is converted; text without one yields 0.0.

    >>> parse_number("1.2.3")
    1.2
    >>> parse_number("..")
    0.0
    """
    prefix = _NUMBER_PREFIX.match(text).group(0)
    if prefix in ("", "."):
        return 0.0
    return float(prefix)


# =============================================================================
# Lexer Implementation
# =============================================================================

class Lexer:
    """
    Tokenizes Toy source text.

    The lexer keeps exactly one character of lookahead. Each call to
    next_token() consumes the characters of one token and leaves the
    character that ended it as the new lookahead. Once the input is
    exhausted every further call returns an EOF token.

    Usage:
        lexer = Lexer(source_text, filename)
        token = lexer.next_token()

        lexer = Lexer(sys.stdin, "<stdin>")   # interactive input

    Attributes:
        filename: Name of the source (for error reporting)
    """

    IDENT_START = string.ascii_letters
    IDENT_CHARS = string.ascii_letters + string.digits
    NUMBER_CHARS = string.digits + "."
    WHITESPACE = " \t\n\r\f\v"

    def __init__(
        self,
        source: str | TextIO,
        filename: str = "<input>",
        line_number: int = 1,
    ):
        """
        Initialize the lexer.

        Args:
            source: Source text, or a text stream read one character at a time
            filename: Name of the source (for error messages)
            line_number: Starting line number
        """
        if isinstance(source, str):
            source = io.StringIO(source)
        self._stream = source
        self.filename = filename

        # Lookahead character; '' once the stream is exhausted.
        # Starts as a blank so the first call reads real input.
        self._last_char = " "
        self._line = line_number
        self._column = 0

        # Completed lines and the line being read, for diagnostics
        self._first_line = line_number
        self._lines: list[str] = []
        self._line_chars: list[str] = []

    def tokenize(self) -> Iterator[Token]:
        """
        Generate every token up to and including the EOF token.
        """
        while True:
            token = self.next_token()
            yield token
            if token.type == TokenType.EOF:
                return

    # =========================================================================
    # Character Access
    # =========================================================================

    def _advance(self) -> str:
        """Read the next character into the lookahead slot and return it."""
        if self._last_char == "":
            return ""

        if self._last_char == "\n":
            self._lines.append("".join(self._line_chars))
            self._line_chars = []
            self._line += 1
            self._column = 1
        else:
            self._column += 1

        char = self._stream.read(1)
        if char and char != "\n":
            self._line_chars.append(char)
        self._last_char = char
        return char

    def _make_token(
        self,
        token_type: TokenType,
        value: str | float | None,
        line: int,
        column: int,
    ) -> Token:
        return Token(
            type=token_type,
            value=value,
            line=line,
            column=column,
            filename=self.filename,
        )

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def next_token(self) -> Token:
        """
        Consume and return the next token.

        Returns:
            The next Token; EOF at (and after) the end of input
        """
        while True:
            while self._last_char and self._last_char in self.WHITESPACE:
                self._advance()

            if self._last_char != "#":
                break

            # Comment runs to end of line; the newline is left as whitespace
            while self._last_char not in ("", "\n", "\r"):
                self._advance()

        line = self._line
        column = max(self._column, 1)
        char = self._last_char

        if char == "":
            return self._make_token(TokenType.EOF, None, line, column)

        if char in self.IDENT_START:
            return self._scan_identifier(line, column)

        if char in self.NUMBER_CHARS:
            return self._scan_number(line, column)

        self._advance()
        return self._make_token(TokenType.CHAR, char, line, column)

    def _scan_identifier(self, line: int, column: int) -> Token:
        """
        Scan an identifier or keyword.

        Keywords are matched case-sensitively, so 'Def' is an identifier.
        """
        chars = [self._last_char]
        while True:
            char = self._advance()
            if not char or char not in self.IDENT_CHARS:
                break
            chars.append(char)

        name = "".join(chars)
        if name in KEYWORDS:
            return self._make_token(KEYWORDS[name], name, line, column)
        return self._make_token(TokenType.IDENTIFIER, name, line, column)

    def _scan_number(self, line: int, column: int) -> Token:
        """Scan a run of digits and dots and convert it with parse_number()."""
        chars = [self._last_char]
        while True:
            char = self._advance()
            if not char or char not in self.NUMBER_CHARS:
                break
            chars.append(char)

        return self._make_token(TokenType.NUMBER, parse_number("".join(chars)), line, column)

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def get_source_line(self, line: int) -> Optional[str]:
        """
        Return the text of a line read so far, for error context.

        The current line is returned as far as it has been read.
        """
        index = line - self._first_line
        if 0 <= index < len(self._lines):
            return self._lines[index]
        if index == len(self._lines):
            return "".join(self._line_chars)
        return None

    def skip_line(self) -> None:
        """
        Discard the rest of the current input line.

        Used by interactive drivers to resynchronize after an error without
        waiting for more input than the user already typed.
        """
        while self._last_char not in ("", "\n"):
            self._advance()
