"""
Kaleido - Incremental JIT for the Toy Expression Language
=========================================================

This package provides a lexer, parser, LLVM code generator and incremental
execution engine for Toy, a tiny language whose only value type is the
double-precision float. Definitions are compiled one top-level statement
at a time and bare expressions are evaluated immediately, as in a
read-eval-print session.

Main Components
---------------
- **toy**: The language front-end, code generator, engine and session driver
- **cli**: The kjit command (interactive prompt or script runner)

Quick Start
-----------
    >>> from kaleido import Session
    >>> session = Session()
    >>> session.run_source("def testfunc(x) x*x")
    Read function definition: testfunc
    >>> session.run_source("testfunc(4)").values
    Evaluated to 16.000000
    [16.0]

Or use the command-line tool:
    $ kjit script.toy
    $ kjit --dump-ir

Backend
-------
Code generation and execution use llvmlite (LLVM IR builder, function
simplification pipeline, MCJIT).
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from kaleido.errors import (
    KaleidoError,
    SourceLocation,
    FatalSymbolError,
    EngineStateError,
)
from kaleido.toy import (
    Lexer,
    Parser,
    CodeGenerator,
    Engine,
    EngineOptions,
    Session,
    SessionOptions,
    SessionResult,
    ToyError,
    ToySyntaxError,
    LowerError,
    evaluate,
    parse_source,
)

__all__ = [
    "__version__",
    # Exception hierarchy
    "KaleidoError",
    "SourceLocation",
    "FatalSymbolError",
    "EngineStateError",
    "ToyError",
    "ToySyntaxError",
    "LowerError",
    # Pipeline
    "Lexer",
    "Parser",
    "CodeGenerator",
    "Engine",
    "EngineOptions",
    # Driver
    "Session",
    "SessionOptions",
    "SessionResult",
    "evaluate",
    "parse_source",
]
