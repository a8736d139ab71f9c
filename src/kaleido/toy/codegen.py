"""
Toy Code Generator
==================

This module lowers Toy AST nodes into llvmlite IR inside the engine's
open compilation unit.

Lowering Rules
--------------
- NumberLiteral -> double constant
- VariableRef   -> the matching function argument
- BinaryOp      -> fadd / fsub / fmul; '<' is an unordered less-than
                   comparison widened back to double (0.0 or 1.0)
- Call          -> call of a function found through the engine, which may
                   add a declaration for a function living in an older unit
- Prototype     -> function declaration double name(double, ...)
- FunctionDef   -> declaration plus an 'entry' block returning the body

Variable Environment
--------------------
The only names in scope are the parameters of the function being lowered.
The environment is rebuilt for every prototype; there is no nesting.

Failure
-------
Every failure raises a LowerError. A failed definition never leaves a
half-built function behind: the engine either removes it or reduces it to
its earlier declaration.
"""

from typing import Optional
import difflib
import logging

from llvmlite import ir

from kaleido.toy.ast import (
    ASTNode,
    Expression,
    NumberLiteral,
    VariableRef,
    BinaryOp,
    Call,
    Prototype,
    FunctionDef,
)
from kaleido.toy.engine import DOUBLE, Engine, FunctionHandle
from kaleido.toy.errors import (
    LowerError,
    UnknownVariableError,
    UnknownFunctionError,
    ArgumentCountError,
)

# Logger for this module
logger = logging.getLogger(__name__)


class CodeGenerator:
    """
    Lowers Toy AST nodes into the engine's open unit.

    Usage:
        engine = Engine()
        gen = CodeGenerator(engine)
        handle = gen.lower(parse_definition_somehow())

    Attributes:
        engine: Unit and function registry
        named_values: Parameter name -> IR argument for the current function
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.named_values: dict[str, ir.Value] = {}
        self.builder: Optional[ir.IRBuilder] = None

    # =========================================================================
    # Top-Level Lowering
    # =========================================================================

    def lower(self, node: ASTNode) -> FunctionHandle:
        """Lower a Prototype or FunctionDef and return its function handle."""
        if isinstance(node, FunctionDef):
            return self.lower_function(node)
        if isinstance(node, Prototype):
            return self.lower_prototype(node)
        raise LowerError(f"cannot lower {type(node).__name__} at top level", node.location)

    def lower_prototype(self, proto: Prototype) -> FunctionHandle:
        """
        Declare the function in the open unit and bind its parameters.

        Raises:
            RedefinitionError: If the function already has a body
            ArityRedefinitionError: If it was declared with another arity
        """
        handle = self.engine.declare(proto.name, proto.arity, proto.location)

        self.named_values = {}
        for arg, param in zip(handle.function.args, proto.params):
            if handle.created:
                arg.name = param
            self.named_values[param] = arg

        return handle

    def lower_function(self, func: FunctionDef) -> FunctionHandle:
        """
        Lower a definition: prototype, entry block, body, return.

        Raises:
            LowerError: If the prototype or the body fails to lower; the
                partial function is discarded first
        """
        self.named_values = {}
        handle = self.lower_prototype(func.proto)

        block = handle.function.append_basic_block(name="entry")
        self.builder = ir.IRBuilder(block)
        try:
            value = self._lower_expression(func.body)
            self.builder.ret(value)
        except LowerError:
            logger.debug(f"Lowering of '{handle.name}' failed, discarding")
            self.engine.discard(handle)
            raise
        finally:
            self.builder = None

        return self.engine.define(handle)

    # =========================================================================
    # Expression Lowering
    # =========================================================================

    def _lower_expression(self, expr: Expression) -> ir.Value:
        if isinstance(expr, NumberLiteral):
            return ir.Constant(DOUBLE, expr.value)
        elif isinstance(expr, VariableRef):
            return self._lower_variable(expr)
        elif isinstance(expr, BinaryOp):
            return self._lower_binary(expr)
        elif isinstance(expr, Call):
            return self._lower_call(expr)
        else:
            raise LowerError(f"unsupported expression {type(expr).__name__}", expr.location)

    def _lower_variable(self, expr: VariableRef) -> ir.Value:
        value = self.named_values.get(expr.name)
        if value is None:
            raise UnknownVariableError(
                expr.name,
                expr.location,
                parameters=list(self.named_values),
            )
        return value

    def _lower_binary(self, expr: BinaryOp) -> ir.Value:
        left = self._lower_expression(expr.left)
        right = self._lower_expression(expr.right)

        if expr.op == "+":
            return self.builder.fadd(left, right, name="addtmp")
        if expr.op == "-":
            return self.builder.fsub(left, right, name="subtmp")
        if expr.op == "*":
            return self.builder.fmul(left, right, name="multmp")
        if expr.op == "<":
            cmp = self.builder.fcmp_unordered("<", left, right, name="cmptmp")
            return self.builder.uitofp(cmp, DOUBLE, name="booltmp")

        raise LowerError(f"invalid binary operator '{expr.op}'", expr.location)

    def _lower_call(self, expr: Call) -> ir.Value:
        handle = self.engine.lookup_function(expr.callee)
        if handle is None:
            similar = difflib.get_close_matches(
                expr.callee, self.engine.known_function_names(), n=3
            )
            raise UnknownFunctionError(expr.callee, expr.location, similar_names=similar)

        if handle.record.arity != len(expr.args):
            raise ArgumentCountError(
                expr.callee,
                handle.record.arity,
                len(expr.args),
                expr.location,
            )

        args = [self._lower_expression(arg) for arg in expr.args]
        return self.builder.call(handle.function, args, name="calltmp")
