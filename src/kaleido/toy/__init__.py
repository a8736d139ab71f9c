"""
Toy Language
============

A minimal expression language compiled incrementally to native code.
Every value is a double; the only constructs are function definitions,
extern declarations, calls and the binary operators '<', '+', '-', '*'.

    # a comment
    extern putchard(c)
    def square(x) x*x
    def less(a b) a < b
    square(4) + less(1, 2)      # Evaluated to 17.000000

Pipeline
--------
    Source -> Lexer -> Parser -> AST -> CodeGenerator -> Engine -> native code

Usage
-----
    >>> from kaleido.toy import Session, evaluate
    >>> evaluate("def sq(x) x*x  sq(4)")
    [16.0]
"""

from kaleido.toy.lexer import Lexer, Token, TokenType, parse_number
from kaleido.toy.parser import Parser, DEFAULT_PRECEDENCE, parse_expression
from kaleido.toy.ast import (
    ASTNode,
    Expression,
    NumberLiteral,
    VariableRef,
    BinaryOp,
    Call,
    Prototype,
    FunctionDef,
    ASTVisitor,
    ASTPrinter,
)
from kaleido.toy.codegen import CodeGenerator
from kaleido.toy.engine import (
    Engine,
    EngineOptions,
    CompilationUnit,
    ExecutableUnit,
    FunctionRecord,
    FunctionHandle,
)
from kaleido.toy.runtime import Runtime
from kaleido.toy.errors import (
    ToyError,
    ToyCompilationError,
    ToySyntaxError,
    UnexpectedTokenError,
    MissingTokenError,
    LowerError,
    UnknownVariableError,
    UnknownFunctionError,
    ArgumentCountError,
    RedefinitionError,
    ArityRedefinitionError,
    DiagnosticCollector,
)
from kaleido.toy.session import (
    Session,
    SessionOptions,
    SessionResult,
    StatementKind,
    StatementResult,
    evaluate,
    parse_source,
)

__all__ = [
    # Lexer
    "Lexer",
    "Token",
    "TokenType",
    "parse_number",
    # Parser
    "Parser",
    "DEFAULT_PRECEDENCE",
    "parse_expression",
    "parse_source",
    # AST
    "ASTNode",
    "Expression",
    "NumberLiteral",
    "VariableRef",
    "BinaryOp",
    "Call",
    "Prototype",
    "FunctionDef",
    "ASTVisitor",
    "ASTPrinter",
    # Code generation and execution
    "CodeGenerator",
    "Engine",
    "EngineOptions",
    "CompilationUnit",
    "ExecutableUnit",
    "FunctionRecord",
    "FunctionHandle",
    "Runtime",
    # Driver
    "Session",
    "SessionOptions",
    "SessionResult",
    "StatementKind",
    "StatementResult",
    "evaluate",
    # Errors
    "ToyError",
    "ToyCompilationError",
    "ToySyntaxError",
    "UnexpectedTokenError",
    "MissingTokenError",
    "LowerError",
    "UnknownVariableError",
    "UnknownFunctionError",
    "ArgumentCountError",
    "RedefinitionError",
    "ArityRedefinitionError",
    "DiagnosticCollector",
]
