"""
Toy Language Error Hierarchy
============================

This module defines the recoverable errors raised by the Toy front-end.
All of them inherit from ToyError, which itself inherits from the package
base KaleidoError.

Exception Hierarchy
-------------------
ToyError (base for all recoverable Toy errors)
├── ToySyntaxError - parser errors
│   ├── UnexpectedTokenError - token does not start the expected construct
│   └── MissingTokenError - required punctuation not found
└── LowerError - AST to IR lowering errors
    ├── UnknownVariableError - name not bound in the function environment
    ├── UnknownFunctionError - callee not found in any unit
    ├── ArgumentCountError - call arity differs from the declaration
    ├── RedefinitionError - a second body for an already defined function
    └── ArityRedefinitionError - redeclaration with a different arity

Recoverable errors are reported and the offending top-level construct is
discarded; the session then continues with the next token. FatalSymbolError
(see kaleido.errors) is deliberately not part of this hierarchy.

Error Message Format
--------------------
    <stdin>:3:9: error: unknown variable name 'y'
        def f(x) y
                 ^
"""

from typing import Optional, List

from kaleido.errors import KaleidoError, SourceLocation


# =============================================================================
# Base Toy Exception
# =============================================================================

class ToyError(KaleidoError):
    """
    Base exception for all recoverable Toy language errors.

    Attributes:
        message: The error description
        location: Where in the source the error occurred
        hint: A suggestion for fixing the error
        source_line: The actual source text at the error location
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

            <stdin>:1:10: error: unknown function referenced 'fo'
                foo(1) + fo(2)
                         ^
            hint: did you mean 'foo'?
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


class ToyCompilationError(ToyError):
    """
    Aggregate error carrying a pre-formatted report of several errors.

    Raised by DiagnosticCollector.raise_if_errors(); the message is already
    a full report and gets no extra prefix.
    """

    def _format_message(self) -> str:
        return self.message


# =============================================================================
# Syntax Errors
# =============================================================================

class ToySyntaxError(ToyError):
    """
    Syntax error in Toy source.

    Raised by the parser when the token stream does not match the grammar.
    The lexer itself never fails: malformed numbers degrade to a best-effort
    value and unknown characters surface as punctuation tokens.
    """
    pass


class UnexpectedTokenError(ToySyntaxError):
    """
    Token that cannot start or continue the expected construct.
    """

    def __init__(
        self,
        found: str,
        expected: Optional[str] = None,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.found = found
        self.expected = expected

        if expected:
            message = f"expected {expected}"
            hint = f"found '{found}'"
        else:
            message = f"unexpected token '{found}'"
            hint = None

        super().__init__(
            message,
            location=location,
            hint=hint,
            source_line=source_line,
        )


class MissingTokenError(ToySyntaxError):
    """
    Required punctuation (such as ')' or '(') is missing.
    """

    def __init__(
        self,
        expected: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
        context: Optional[str] = None,
    ):
        self.expected = expected
        message = f"expected '{expected}'"
        if context:
            message += f" {context}"
        super().__init__(
            message,
            location=location,
            source_line=source_line,
        )


# =============================================================================
# Lowering Errors
# =============================================================================

class LowerError(ToyError):
    """
    Error while lowering a syntactically valid AST into IR.

    The construct being lowered is discarded; any function declaration it
    created in the open unit is removed again.
    """
    pass


class UnknownVariableError(LowerError):
    """Reference to a name that is not a parameter of the current function."""

    def __init__(
        self,
        name: str,
        location: Optional[SourceLocation] = None,
        parameters: Optional[List[str]] = None,
    ):
        self.name = name
        self.parameters = parameters or []

        hint = None
        if self.parameters:
            names = ", ".join(f"'{p}'" for p in self.parameters)
            hint = f"parameters in scope: {names}"

        super().__init__(
            f"unknown variable name '{name}'",
            location=location,
            hint=hint,
        )


class UnknownFunctionError(LowerError):
    """
    Call to a function that no unit declares.

    Similarly-named known functions are offered as a hint.
    """

    def __init__(
        self,
        name: str,
        location: Optional[SourceLocation] = None,
        similar_names: Optional[List[str]] = None,
    ):
        self.name = name
        self.similar_names = similar_names or []

        hint = None
        if self.similar_names:
            suggestions = ", ".join(f"'{s}'" for s in self.similar_names[:3])
            hint = f"did you mean {suggestions}?"
        else:
            hint = "declare it first with 'extern' or 'def'"

        super().__init__(
            f"unknown function referenced '{name}'",
            location=location,
            hint=hint,
        )


class ArgumentCountError(LowerError):
    """Call whose argument count differs from the callee's arity."""

    def __init__(
        self,
        function_name: str,
        expected: int,
        actual: int,
        location: Optional[SourceLocation] = None,
    ):
        self.function_name = function_name
        self.expected = expected
        self.actual = actual

        word = "argument" if expected == 1 else "arguments"
        super().__init__(
            f"incorrect number of arguments passed to '{function_name}'",
            location=location,
            hint=f"'{function_name}' expects {expected} {word}, got {actual}",
        )


class RedefinitionError(LowerError):
    """A body is supplied for a function that already has one."""

    def __init__(
        self,
        name: str,
        location: Optional[SourceLocation] = None,
    ):
        self.name = name
        super().__init__(
            f"redefinition of function '{name}'",
            location=location,
        )


class ArityRedefinitionError(LowerError):
    """A function is redeclared with a different number of parameters."""

    def __init__(
        self,
        name: str,
        expected: int,
        actual: int,
        location: Optional[SourceLocation] = None,
    ):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"redefinition of function '{name}' with different arity",
            location=location,
            hint=f"previously declared with {expected} parameter(s), now {actual}",
        )


# =============================================================================
# Error Collection (for multi-error reporting)
# =============================================================================

class DiagnosticCollector:
    """
    Collects recoverable errors for batch reporting.

    The session keeps going after a malformed construct, so every error of
    a script can be reported in one run.

    Example:
        collector = DiagnosticCollector(max_errors=100)

        try:
            handle(construct)
        except ToyError as e:
            collector.add(e)

        if collector.has_errors():
            print(collector.report())
    """

    def __init__(self, max_errors: int = 100):
        self.errors: List[ToyError] = []
        self.max_errors = max_errors

    def add(self, error: ToyError) -> None:
        """Add an error to the collection."""
        self.errors.append(error)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def should_stop(self) -> bool:
        """Return True if max_errors has been reached."""
        return len(self.errors) >= self.max_errors

    def error_count(self) -> int:
        return len(self.errors)

    def report(self) -> str:
        """Format all errors for display."""
        lines = []

        for error in self.errors:
            lines.append(str(error))
            lines.append("")

        error_word = "error" if len(self.errors) == 1 else "errors"
        lines.append(f"\n{len(self.errors)} {error_word} generated")

        return "\n".join(lines)

    def clear(self) -> None:
        self.errors.clear()

    def raise_if_errors(self) -> None:
        """Raise a ToyCompilationError if any errors were collected."""
        if self.has_errors():
            raise ToyCompilationError(self.report())
