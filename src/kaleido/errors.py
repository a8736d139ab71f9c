"""
Kaleido Error Hierarchy
=======================

This module defines the root of the exception hierarchy for the whole
package. All exceptions inherit from KaleidoError, allowing callers to
catch every toolchain error with a single except clause if desired.

Exception Hierarchy
-------------------
KaleidoError (base)
├── ToyError (language front-end, see kaleido.toy.errors)
│   ├── ToySyntaxError - lexer/parser failures
│   └── LowerError - AST to IR lowering failures
├── FatalSymbolError - a compiled function's address can never be produced
└── EngineStateError - misuse of the compilation engine

Design Philosophy
-----------------
Each front-end exception captures source location information (filename,
line, column) when applicable, so diagnostics point at the offending token.

Error messages follow this format:
    filename:line:column: error: description
        source_line_text
        ^ (pointer to error location)
    hint: suggestion for fixing (when available)
"""

from dataclasses import dataclass


# =============================================================================
# Base Exception Class
# =============================================================================

class KaleidoError(Exception):
    """
    Base exception for all Kaleido errors.

    Every exception raised by the lexer, parser, code generator and engine
    inherits from this class:

        try:
            session.run_source("def f(x) x*x")
        except KaleidoError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    Represents a location in source text for error reporting.

    Attributes:
        filename: Name of the source (or "<stdin>" / "<input>")
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        """Format as 'filename:line:column' for error messages."""
        return f"{self.filename}:{self.line}:{self.column}"


# =============================================================================
# Engine Exceptions
# =============================================================================

class FatalSymbolError(KaleidoError):
    """
    A function was lowered successfully but its address cannot be produced.

    Raised by the engine when neither a finalized unit nor the external
    symbol resolver knows the requested name. Executing code that calls
    through such a symbol is impossible, so drivers must stop instead of
    continuing with the next statement.

    Attributes:
        symbol: The unresolvable symbol name
        referrer: Function whose code needed the symbol (if known)
    """

    def __init__(self, symbol: str, referrer: str | None = None):
        self.symbol = symbol
        self.referrer = referrer
        message = f"fatal: cannot resolve address of symbol '{symbol}'"
        if referrer:
            message += f" (referenced from '{referrer}')"
        super().__init__(message)


class EngineStateError(KaleidoError):
    """
    The engine was driven in an order that violates its invariants.

    This signals a programming error at the generator/engine boundary
    (for example looking up an address inside a unit that is still open),
    never a problem with user source text.
    """
    pass
