"""
Toy Recursive Descent Parser
============================

This module implements the parser for the Toy language. It pulls tokens
from a Lexer one at a time and builds AST nodes, one top-level construct
per call, always leaving the first unconsumed token as the lookahead.

Grammar (EBNF)
--------------
toplevel        ::= definition | external | expression
definition      ::= 'def' prototype expression
external        ::= 'extern' prototype
prototype       ::= IDENTIFIER '(' IDENTIFIER* ')'

expression      ::= primary binoprhs
binoprhs        ::= (BINOP primary)*
primary         ::= identifierexpr | numberexpr | parenexpr
identifierexpr  ::= IDENTIFIER
                  | IDENTIFIER '(' (expression (',' expression)*)? ')'
numberexpr      ::= NUMBER
parenexpr       ::= '(' expression ')'

Binary Operators
----------------
Binary expressions are parsed by precedence climbing over a table that
maps operator characters to precedences (higher binds tighter):

    <   10
    +   20
    -   30
    *   40

Any character missing from the table is not an infix operator. Operators
of equal precedence associate to the left.

Example Usage
-------------
>>> from kaleido.toy.parser import Parser, parse_expression
>>> parse_expression("1+2*3")
BinaryOp(op='+', left=NumberLiteral(value=1.0), right=BinaryOp(op='*', ...))
"""

from typing import Optional

from kaleido.toy.lexer import Lexer, Token, TokenType
from kaleido.toy.ast import (
    Expression,
    NumberLiteral,
    VariableRef,
    BinaryOp,
    Call,
    Prototype,
    FunctionDef,
)
from kaleido.toy.errors import (
    ToySyntaxError,
    UnexpectedTokenError,
    MissingTokenError,
)


# =============================================================================
# Operator Precedence
# =============================================================================

DEFAULT_PRECEDENCE: dict[str, int] = {
    "<": 10,
    "+": 20,
    "-": 30,
    "*": 40,
}


class Parser:
    """
    Recursive descent parser for Toy.

    Parse methods raise ToySyntaxError on malformed input. The caller
    decides how to recover; the session driver skips one token and
    resumes, which guarantees forward progress.

    Attributes:
        lexer: Token source
        precedence: Binary operator precedence table
    """

    def __init__(self, lexer: Lexer, precedence: Optional[dict[str, int]] = None):
        """
        Initialize the parser.

        The first token is not read here; it is pulled the first time a
        parse method (or advance()) needs it, so an interactive driver can
        show its prompt before input is requested.

        Args:
            lexer: The token source
            precedence: Operator precedence table (defaults to DEFAULT_PRECEDENCE)
        """
        self.lexer = lexer
        table = DEFAULT_PRECEDENCE if precedence is None else precedence
        for op, prec in table.items():
            if len(op) != 1 or prec <= 0:
                raise ValueError(f"invalid precedence entry {op!r}: {prec}")
        self.precedence = dict(table)
        self._current: Optional[Token] = None

    # =========================================================================
    # Token Access Methods
    # =========================================================================

    @property
    def current(self) -> Token:
        """The lookahead token."""
        if self._current is None:
            self._current = self.lexer.next_token()
        return self._current

    def advance(self) -> Token:
        """Read the next token into the lookahead slot and return it."""
        self._current = self.lexer.next_token()
        return self._current

    def discard_lookahead(self) -> None:
        """Forget the lookahead token; the next access reads a fresh one."""
        self._current = None

    def at_end(self) -> bool:
        return self.current.type == TokenType.EOF

    def token_precedence(self) -> int:
        """Precedence of the lookahead token, or -1 if it is not a binary operator."""
        token = self.current
        if token.type != TokenType.CHAR:
            return -1
        return self.precedence.get(token.value, -1)

    def _expect_char(self, char: str, context: Optional[str] = None) -> None:
        """Consume the punctuation token `char` or raise MissingTokenError."""
        if not self.current.is_char(char):
            raise MissingTokenError(
                char,
                self.current.location,
                self._source_line(self.current),
                context=context,
            )
        self.advance()

    def _source_line(self, token: Token) -> Optional[str]:
        return self.lexer.get_source_line(token.line)

    def _unexpected(self, expected: str) -> UnexpectedTokenError:
        token = self.current
        return UnexpectedTokenError(
            token.describe(),
            expected=expected,
            location=token.location,
            source_line=self._source_line(token),
        )

    # =========================================================================
    # Top-Level Parsing
    # =========================================================================

    def parse_top_level(self) -> Optional[Prototype | FunctionDef]:
        """
        Parse one top-level construct.

        Returns:
            FunctionDef for a definition, Prototype for an extern, an
            anonymous FunctionDef for a bare expression, or None at end
            of input
        """
        token = self.current
        if token.type == TokenType.EOF:
            return None
        if token.type == TokenType.DEF:
            return self.parse_definition()
        if token.type == TokenType.EXTERN:
            return self.parse_extern()
        return self.parse_top_level_expression()

    def parse_definition(self) -> FunctionDef:
        """definition ::= 'def' prototype expression"""
        location = self.current.location
        self.advance()  # consume 'def'
        proto = self.parse_prototype()
        body = self.parse_expression()
        return FunctionDef(proto=proto, body=body, location=location)

    def parse_extern(self) -> Prototype:
        """external ::= 'extern' prototype"""
        self.advance()  # consume 'extern'
        return self.parse_prototype()

    def parse_top_level_expression(self) -> FunctionDef:
        """
        Parse a bare expression and wrap it in a nullary anonymous function.
        """
        location = self.current.location
        body = self.parse_expression()
        proto = Prototype(name="", params=[], location=location)
        return FunctionDef(proto=proto, body=body, location=location)

    def parse_prototype(self) -> Prototype:
        """prototype ::= IDENTIFIER '(' IDENTIFIER* ')'"""
        token = self.current
        if token.type != TokenType.IDENTIFIER:
            raise self._unexpected("function name in prototype")
        name = token.value
        self.advance()

        self._expect_char("(", context="in prototype")

        params: list[str] = []
        while self.current.type == TokenType.IDENTIFIER:
            param = self.current
            if param.value in params:
                raise ToySyntaxError(
                    f"duplicate parameter name '{param.value}' in prototype of '{name}'",
                    param.location,
                    source_line=self._source_line(param),
                )
            params.append(param.value)
            self.advance()

        self._expect_char(")", context="in prototype")
        return Prototype(name=name, params=params, location=token.location)

    # =========================================================================
    # Expression Parsing
    # =========================================================================

    def parse_expression(self) -> Expression:
        """expression ::= primary binoprhs"""
        lhs = self.parse_primary()
        return self.parse_binop_rhs(0, lhs)

    def parse_binop_rhs(self, min_precedence: int, lhs: Expression) -> Expression:
        """
        Fold binary operators with precedence >= min_precedence into lhs.

        When the operator after the right operand binds strictly tighter
        than the current one, it is absorbed into the right operand first.
        Equal precedence keeps folding into lhs, giving left associativity.
        """
        while True:
            precedence = self.token_precedence()
            if precedence < min_precedence:
                return lhs

            op_token = self.current
            self.advance()  # consume operator

            rhs = self.parse_primary()

            next_precedence = self.token_precedence()
            if precedence < next_precedence:
                rhs = self.parse_binop_rhs(precedence + 1, rhs)

            lhs = BinaryOp(op=op_token.value, left=lhs, right=rhs, location=op_token.location)

    def parse_primary(self) -> Expression:
        """primary ::= identifierexpr | numberexpr | parenexpr"""
        token = self.current

        if token.type == TokenType.IDENTIFIER:
            return self.parse_identifier_expression()

        if token.type == TokenType.NUMBER:
            self.advance()
            return NumberLiteral(value=token.value, location=token.location)

        if token.is_char("("):
            return self.parse_paren_expression()

        raise self._unexpected("expression")

    def parse_paren_expression(self) -> Expression:
        """parenexpr ::= '(' expression ')'"""
        self.advance()  # consume '('
        expr = self.parse_expression()
        self._expect_char(")", context="to close parenthesized expression")
        return expr

    def parse_identifier_expression(self) -> Expression:
        """
        identifierexpr ::= IDENTIFIER
                         | IDENTIFIER '(' (expression (',' expression)*)? ')'
        """
        token = self.current
        self.advance()  # consume identifier

        if not self.current.is_char("("):
            return VariableRef(name=token.value, location=token.location)

        self.advance()  # consume '('
        args: list[Expression] = []
        if not self.current.is_char(")"):
            while True:
                args.append(self.parse_expression())
                if self.current.is_char(")"):
                    break
                if not self.current.is_char(","):
                    raise self._unexpected("')' or ',' in argument list")
                self.advance()  # consume ','

        self.advance()  # consume ')'
        return Call(callee=token.value, args=args, location=token.location)


# =============================================================================
# Convenience Functions
# =============================================================================

def parse_expression(source: str, filename: str = "<input>") -> Expression:
    """
    Parse a single expression from source text.

    Raises:
        ToySyntaxError: If the text is not a well-formed expression or has
            trailing tokens
    """
    parser = Parser(Lexer(source, filename))
    expr = parser.parse_expression()
    if not parser.at_end():
        raise parser._unexpected("end of input")
    return expr


def parse_source(source: str, filename: str = "<input>") -> list[Prototype | FunctionDef]:
    """
    Parse every top-level construct of a source text.

    Top-level ';' separators are skipped. Parsing stops at the first error.

    Raises:
        ToySyntaxError: If parsing fails
    """
    parser = Parser(Lexer(source, filename))
    constructs = []
    while not parser.at_end():
        if parser.current.is_char(";"):
            parser.advance()
            continue
        constructs.append(parser.parse_top_level())
    return constructs
