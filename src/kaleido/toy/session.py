"""
Toy Session Driver
==================

This module provides the read-eval-print driver for Toy. A Session owns
one lexer/parser pair per input plus a long-lived code generator, engine
and runtime, and processes the input one top-level construct at a time:

    Parse -> Lower -> (bare expression) Finalize and Run -> Report

Usage
-----
Command line:
    $ kjit script.toy
    $ kjit            # interactive

Programmatic:
    >>> from kaleido.toy import Session
    >>> result = Session().run_source("def sq(x) x*x\\nsq(4)")
    Read function definition: sq
    Evaluated to 16.000000
    >>> result.values
    [16.0]

    >>> from kaleido.toy import evaluate
    >>> evaluate("1+2*3")
    [7.0]

Error Handling
--------------
Syntax and lowering errors are reported, recorded and skipped; the
session continues with the next construct, so every error of a script is
reported in one run. FatalSymbolError is never caught here.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, TextIO
import io
import logging
import sys

from kaleido.toy.lexer import Lexer
from kaleido.toy.parser import Parser, parse_source
from kaleido.toy.ast import Prototype, FunctionDef
from kaleido.toy.codegen import CodeGenerator
from kaleido.toy.engine import Engine, EngineOptions
from kaleido.toy.runtime import Runtime
from kaleido.toy.errors import (
    ToyError,
    ToySyntaxError,
    LowerError,
    DiagnosticCollector,
)

# Logger for this module
logger = logging.getLogger(__name__)

__all__ = [
    "SessionOptions",
    "Session",
    "StatementKind",
    "StatementResult",
    "SessionResult",
    "evaluate",
    "parse_source",
]


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class SessionOptions:
    """
    Session configuration options.

    Attributes:
        optimize: Run the optimization pipeline on each finalized unit
        opt_level: Optimization level 0-3
        dump_ir: Write the IR of every lowered function to the output
        echo_results: Report each construct ("Read extern: ...", "Evaluated to ...")
        prompt: Prompt shown before each construct in interactive mode
        precedence: Binary operator precedence table; None uses the default
        stop_on_error: Stop at the first recoverable error
        max_errors: Stop after this many recoverable errors
    """
    optimize: bool = True
    opt_level: int = 2
    dump_ir: bool = False
    echo_results: bool = True
    prompt: str = "ready> "
    precedence: Optional[dict[str, int]] = None
    stop_on_error: bool = False
    max_errors: int = 100

    def engine_options(self) -> EngineOptions:
        return EngineOptions(optimize=self.optimize, opt_level=self.opt_level)


# =============================================================================
# Results
# =============================================================================

class StatementKind(Enum):
    DEFINITION = "definition"
    EXTERN = "extern"
    EXPRESSION = "expression"
    ERROR = "error"


@dataclass
class StatementResult:
    """
    Outcome of one top-level construct.

    Attributes:
        kind: What the construct was (ERROR if it failed)
        name: Symbol name of the function it produced
        value: Result of a bare expression
        ir: IR text of the lowered function
        error: The recoverable error, for failed constructs
    """
    kind: StatementKind
    name: str = ""
    value: Optional[float] = None
    ir: str = ""
    error: Optional[ToyError] = None


@dataclass
class SessionResult:
    """
    Result of running a source text or stream.

    Attributes:
        filename: Source name
        statements: One entry per top-level construct, in order
        errors: Recoverable errors, in order
    """
    filename: str = ""
    statements: list[StatementResult] = field(default_factory=list)
    errors: list[ToyError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def values(self) -> list[float]:
        """Values of the bare expressions that were evaluated."""
        return [
            s.value for s in self.statements
            if s.kind == StatementKind.EXPRESSION
        ]


# =============================================================================
# Session
# =============================================================================

class Session:
    """
    One read-eval-print session.

    Definitions persist across run_source()/run_stream() calls on the same
    session. Independent sessions share nothing except LLVM's process-wide
    symbol table.

    Attributes:
        options: Session configuration
        output: Stream for reports and runtime output (putchard, printd)
        error_output: Stream for diagnostics and the interactive prompt
        engine: Unit and function registry
        diagnostics: Recoverable errors of the latest run
    """

    def __init__(
        self,
        options: Optional[SessionOptions] = None,
        output: Optional[TextIO] = None,
        error_output: Optional[TextIO] = None,
    ):
        self.options = options or SessionOptions()
        self.output = output if output is not None else sys.stdout
        self.error_output = error_output if error_output is not None else sys.stderr

        self.engine = Engine(self.options.engine_options())
        self.generator = CodeGenerator(self.engine)
        self.runtime = Runtime(self.output)
        self.runtime.install(self.engine)
        self.diagnostics = DiagnosticCollector(max_errors=self.options.max_errors)

    # =========================================================================
    # Entry Points
    # =========================================================================

    def run_source(self, source: str, filename: str = "<input>") -> SessionResult:
        """
        Run every top-level construct of a source text.

        Raises:
            FatalSymbolError: If compiled code needs a symbol nobody provides
        """
        return self._run(Lexer(source, filename), interactive=False)

    def run_stream(
        self,
        stream: TextIO,
        filename: str = "<stdin>",
        interactive: bool = False,
    ) -> SessionResult:
        """
        Run constructs read from a text stream until end of input.

        In interactive mode the prompt is shown before each construct and a
        syntax error discards the rest of the offending line.
        """
        return self._run(Lexer(stream, filename), interactive=interactive)

    def run_file(self, filepath: str) -> SessionResult:
        """
        Raises:
            FileNotFoundError: If the file does not exist
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Source file not found: {filepath}")
        return self.run_source(path.read_text(encoding="utf-8"), str(filepath))

    # =========================================================================
    # Driver Loop
    # =========================================================================

    def _run(self, lexer: Lexer, interactive: bool) -> SessionResult:
        parser = Parser(lexer, self.options.precedence)
        result = SessionResult(filename=lexer.filename)
        self.diagnostics.clear()

        while True:
            if interactive:
                self.error_output.write(self.options.prompt)
                self.error_output.flush()

            token = parser.current
            if parser.at_end():
                break
            if token.is_char(";"):
                parser.advance()
                continue

            try:
                construct = parser.parse_top_level()
                statement = self._handle(construct)
            except ToySyntaxError as e:
                statement = self._record_error(e, result)
                if interactive:
                    lexer.skip_line()
                    parser.discard_lookahead()
                else:
                    parser.advance()
            except LowerError as e:
                statement = self._record_error(e, result)

            result.statements.append(statement)

            if statement.error is not None and (
                self.options.stop_on_error or self.diagnostics.should_stop()
            ):
                break

        if interactive:
            self.error_output.write("\n")
        return result

    def _record_error(self, error: ToyError, result: SessionResult) -> StatementResult:
        logger.info(f"Discarded construct: {error.message}")
        self.diagnostics.add(error)
        result.errors.append(error)
        self.error_output.write(f"{error}\n")
        self.error_output.flush()
        return StatementResult(kind=StatementKind.ERROR, error=error)

    def _handle(self, construct: Prototype | FunctionDef) -> StatementResult:
        if isinstance(construct, Prototype):
            handle = self.generator.lower_prototype(construct)
            statement = StatementResult(
                kind=StatementKind.EXTERN,
                name=handle.name,
                ir=str(handle.function),
            )
            self._report(f"Read extern: {handle.name}", statement.ir)
            return statement

        handle = self.generator.lower_function(construct)
        ir_text = str(handle.function)

        if not construct.proto.is_anonymous:
            statement = StatementResult(
                kind=StatementKind.DEFINITION,
                name=handle.name,
                ir=ir_text,
            )
            self._report(f"Read function definition: {handle.name}", ir_text)
            return statement

        if self.options.dump_ir:
            self._write(ir_text)
        value = self.engine.finalize_and_run(handle)
        logger.debug(f"{handle.name} evaluated to {value}")
        if self.options.echo_results:
            self._write(f"Evaluated to {value:f}\n")
        return StatementResult(
            kind=StatementKind.EXPRESSION,
            name=handle.name,
            value=value,
            ir=ir_text,
        )

    def _report(self, message: str, ir_text: str) -> None:
        if self.options.echo_results:
            self._write(f"{message}\n")
        if self.options.dump_ir:
            self._write(ir_text)

    def _write(self, text: str) -> None:
        self.output.write(text)
        self.output.flush()


# =============================================================================
# Convenience Functions
# =============================================================================

def evaluate(source: str, filename: str = "<input>") -> list[float]:
    """
    Run Toy source in a fresh, quiet session and return expression values.

    Raises:
        ToyCompilationError: If any construct failed
        FatalSymbolError: If compiled code needs an unresolvable symbol

    Example:
        >>> evaluate("def sq(x) x*x  sq(3) sq(4)")
        [9.0, 16.0]
    """
    options = SessionOptions(echo_results=False)
    session = Session(options, output=io.StringIO(), error_output=io.StringIO())
    result = session.run_source(source, filename)
    session.diagnostics.raise_if_errors()
    return result.values
