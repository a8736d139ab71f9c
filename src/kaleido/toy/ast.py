"""
Toy Abstract Syntax Tree (AST) Definitions
==========================================

This module defines the AST node types produced by the Toy parser.
The set of nodes is closed: the code generator handles each kind
explicitly and rejects anything else.

Node Hierarchy
--------------
ASTNode (base)
├── Expressions
│   ├── NumberLiteral - floating point constant
│   ├── VariableRef - reference to a function parameter
│   ├── BinaryOp - binary operator application (<, +, -, *)
│   └── Call - call of a named function
└── Declarations
    ├── Prototype - function name and parameter names
    └── FunctionDef - prototype plus a single expression body

A bare top-level expression is represented as a FunctionDef whose
prototype has an empty name and no parameters.

Design Notes
------------
- All nodes are dataclasses; children are owned by their parent and never
  shared, so every parse result is a tree.
- Source locations are carried for diagnostics but excluded from equality,
  so trees built by hand in tests compare equal to parsed trees.
"""

from dataclasses import dataclass, field
from typing import Optional

from kaleido.errors import SourceLocation


# =============================================================================
# AST Node Base Classes
# =============================================================================

@dataclass
class ASTNode:
    """
    Base class for all AST nodes.

    Attributes:
        location: Source location where this node starts (if known)
    """
    location: Optional[SourceLocation] = field(default=None, compare=False, repr=False, kw_only=True)


@dataclass
class Expression(ASTNode):
    """Base class for nodes that lower to a value."""
    pass


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class NumberLiteral(Expression):
    """
    Numeric constant.

    Attributes:
        value: The literal value
    """
    value: float = 0.0


@dataclass
class VariableRef(Expression):
    """
    Reference to a parameter of the enclosing function.

    Attributes:
        name: The parameter name
    """
    name: str = ""


@dataclass
class BinaryOp(Expression):
    """
    Binary operation (left op right).

    Attributes:
        op: Operator character, one of '<', '+', '-', '*'
        left: Left operand expression
        right: Right operand expression
    """
    op: str = ""
    left: Expression = None
    right: Expression = None


@dataclass
class Call(Expression):
    """
    Function call expression.

    Attributes:
        callee: Name of the function to call
        args: Argument expressions in call order
    """
    callee: str = ""
    args: list[Expression] = field(default_factory=list)


# =============================================================================
# Declaration Nodes
# =============================================================================

@dataclass
class Prototype(ASTNode):
    """
    Function signature: name and parameter names.

    Every parameter and the return value are numbers, so only the names
    and their count matter.

    Attributes:
        name: Function name; empty for a bare top-level expression
        params: Parameter names in declaration order
    """
    name: str = ""
    params: list[str] = field(default_factory=list)

    @property
    def arity(self) -> int:
        return len(self.params)

    @property
    def is_anonymous(self) -> bool:
        return self.name == ""


@dataclass
class FunctionDef(ASTNode):
    """
    Function definition; the body is exactly one expression.

    Attributes:
        proto: The function prototype
        body: The body expression
    """
    proto: Prototype = None
    body: Expression = None


# =============================================================================
# AST Visitor Pattern
# =============================================================================

class ASTVisitor:
    """
    Base class for AST visitors.

    Subclasses override visit_* methods for the node types they care about.

    Usage:
        class CallCounter(ASTVisitor):
            def __init__(self):
                self.calls = 0

            def visit_Call(self, node):
                self.calls += 1
                self.generic_visit(node)
    """

    def visit(self, node: ASTNode):
        method_name = f"visit_{node.__class__.__name__}"
        visitor = getattr(self, method_name, self.generic_visit)
        return visitor(node)

    def generic_visit(self, node: ASTNode) -> None:
        """Visit all child nodes."""
        for field_value in node.__dict__.values():
            if isinstance(field_value, ASTNode):
                self.visit(field_value)
            elif isinstance(field_value, list):
                for item in field_value:
                    if isinstance(item, ASTNode):
                        self.visit(item)

    def visit_NumberLiteral(self, node: NumberLiteral): return self.generic_visit(node)
    def visit_VariableRef(self, node: VariableRef): return self.generic_visit(node)
    def visit_BinaryOp(self, node: BinaryOp): return self.generic_visit(node)
    def visit_Call(self, node: Call): return self.generic_visit(node)
    def visit_Prototype(self, node: Prototype): return self.generic_visit(node)
    def visit_FunctionDef(self, node: FunctionDef): return self.generic_visit(node)


# =============================================================================
# AST Pretty Printer
# =============================================================================

class ASTPrinter(ASTVisitor):
    """
    Pretty printer for AST debugging.

    Usage:
        printer = ASTPrinter()
        print(printer.print(node))

    Output for 'def f(x) x*x + 1':
        Function: f(x)
          Body: ((x * x) + 1)
    """

    def __init__(self):
        self.output: list[str] = []
        self.indent_level = 0

    def print(self, node: ASTNode) -> str:
        """Print the AST and return it as a string."""
        self.output = []
        self.indent_level = 0
        self.visit(node)
        return "\n".join(self.output)

    def _emit(self, text: str) -> None:
        indent = "  " * self.indent_level
        self.output.append(f"{indent}{text}")

    def visit_Prototype(self, node: Prototype):
        params = " ".join(node.params)
        self._emit(f"Extern: {node.name}({params})")

    def visit_FunctionDef(self, node: FunctionDef):
        if node.proto.is_anonymous:
            self._emit(f"Expression: {self.expr_str(node.body)}")
            return
        params = " ".join(node.proto.params)
        self._emit(f"Function: {node.proto.name}({params})")
        self.indent_level += 1
        self._emit(f"Body: {self.expr_str(node.body)}")
        self.indent_level -= 1

    def generic_visit(self, node: ASTNode) -> None:
        if isinstance(node, Expression):
            self._emit(self.expr_str(node))
        else:
            super().generic_visit(node)

    def expr_str(self, expr: Expression) -> str:
        """Convert an expression to a fully parenthesized string."""
        if isinstance(expr, NumberLiteral):
            return f"{expr.value:g}"
        if isinstance(expr, VariableRef):
            return expr.name
        if isinstance(expr, BinaryOp):
            return f"({self.expr_str(expr.left)} {expr.op} {self.expr_str(expr.right)})"
        if isinstance(expr, Call):
            args = ", ".join(self.expr_str(a) for a in expr.args)
            return f"{expr.callee}({args})"
        return f"<{type(expr).__name__}>"
