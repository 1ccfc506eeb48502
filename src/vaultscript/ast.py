"""
Abstract Syntax Tree (AST) node definitions for vaultscript.

The AST is a closed set of node dataclasses. Expressions and statements
share one base class so that expression statements, event-trigger actions
and loop headers can hold either.
"""

from dataclasses import dataclass
from typing import Optional, List, Union, Any
from abc import ABC

from .tokens import SourceSpan


# =============================================================================
# Base Classes
# =============================================================================

@dataclass
class AstNode(ABC):
    """Base class for all AST nodes."""
    span: SourceSpan  # Source location for error reporting


class AstVisitor(ABC):
    """Base class for AST visitors."""

    def generic_visit(self, node: AstNode) -> Any:
        raise NotImplementedError(f"No visitor for {node.__class__.__name__}")


@dataclass
class Expression(AstNode):
    """Base class for all expressions."""
    pass


@dataclass
class Statement(AstNode):
    """Base class for all statements."""
    pass


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class Literal(Expression):
    """A literal value (int, float, string, bool)."""
    value: Union[int, float, str, bool]


@dataclass
class ArrayLiteral(Expression):
    """A list literal, e.g. [1, 2, x]."""
    elements: List[Expression]


@dataclass
class Variable(Expression):
    """A variable reference. `name` keeps any '@ENC' marker."""
    name: str


@dataclass
class Assign(Expression):
    """Assignment to a variable: x = v, x += v, ...

    `operator` is None for plain '=' and the binary operator otherwise.
    """
    name: str
    operator: Optional[str]
    value: Expression


@dataclass
class Index(Expression):
    """Index access, e.g. items[0]."""
    target: Expression
    index: Expression


@dataclass
class AssignIndex(Expression):
    """Assignment through an index: items[i] = v, items[i] += v, ..."""
    target: Expression
    index: Expression
    operator: Optional[str]
    value: Expression


@dataclass
class Binary(Expression):
    """A binary operation (e.g. a + b, x && y)."""
    left: Expression
    operator: str
    right: Expression


@dataclass
class Unary(Expression):
    """A unary operation.

    `operator` is one of '++', '--', '!', '-'; `prefix` is False for the
    postfix forms x++ and x--.
    """
    operator: str
    operand: Expression
    prefix: bool = True


@dataclass
class FunctionCall(Expression):
    """A call to a user-defined function, e.g. add(1, 2)."""
    name: str
    arguments: List[Expression]


@dataclass
class ObjectMethodCall(Expression):
    """A method call on a value, e.g. items.add(4) or blockchain.init(k, 10)."""
    target: Expression
    method: str
    arguments: List[Expression]


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class Print(Statement):
    """print-> expr;"""
    expression: Expression


@dataclass
class If(Statement):
    """if(cond){...} else {...}. An 'else if' chain nests an If in else_branch."""
    condition: Expression
    then_branch: List[AstNode]
    else_branch: Optional[List[AstNode]] = None


@dataclass
class For(Statement):
    """for(init; cond; incr){...}"""
    init: Expression
    condition: Expression
    increment: Expression
    body: List[AstNode]


@dataclass
class While(Statement):
    """while(cond){...}"""
    condition: Expression
    body: List[AstNode]


@dataclass
class Input(Statement):
    """input-> prompt -> target;"""
    prompt: Expression
    target: Expression


@dataclass
class FunctionDef(Statement):
    """function name(params){...};"""
    name: str
    parameters: List[str]
    body: List[AstNode]


@dataclass
class Return(Statement):
    """return [expr];"""
    value: Optional[Expression] = None


@dataclass
class Use(Statement):
    """use library;"""
    library: str


@dataclass
class EventTrigger(Statement):
    """@EVENT_TRIGGER(time [, unit] [, times]) -> action

    Without a unit, `time` is an absolute date-time string.
    """
    time: Expression
    unit: Optional[str]
    action: AstNode
    times: Optional[Expression] = None


@dataclass
class ExpressionStatement(Statement):
    """An expression evaluated for its side effects."""
    expression: Expression


# Every concrete node type; the interpreter dispatch must cover these
NODE_TYPES = (
    Literal, ArrayLiteral, Variable, Assign, AssignIndex, Index, Binary,
    Unary, Print, If, For, While, Input, FunctionDef, FunctionCall, Return,
    Use, EventTrigger, ObjectMethodCall, ExpressionStatement,
)

STATEMENT_TYPES = tuple(t for t in NODE_TYPES if issubclass(t, Statement))
EXPRESSION_TYPES = tuple(t for t in NODE_TYPES if issubclass(t, Expression))


# =============================================================================
# Visitor Helpers
# =============================================================================

class PrintVisitor(AstVisitor):
    """Debug visitor that renders the AST structure as indented text."""

    def __init__(self, indent: int = 0, lines: Optional[List[str]] = None):
        self.indent = indent
        self.lines = lines if lines is not None else []

    def _emit(self, text: str) -> None:
        self.lines.append("  " * self.indent + text)

    def _child(self) -> "PrintVisitor":
        return PrintVisitor(self.indent + 2, self.lines)

    def generic_visit(self, node: AstNode) -> None:
        self._emit(f"{node.__class__.__name__}")
        for name, value in node.__dict__.items():
            if name == "span":
                continue
            if isinstance(value, AstNode):
                self._emit(f"  {name}:")
                self._child().generic_visit(value)
            elif isinstance(value, list):
                self._emit(f"  {name}: [")
                for item in value:
                    if isinstance(item, AstNode):
                        self._child().generic_visit(item)
                    else:
                        self._emit(f"    {item!r}")
                self._emit("  ]")
            else:
                self._emit(f"  {name}: {value!r}")


def format_ast(nodes: Union[AstNode, List[AstNode]]) -> str:
    """Render one node or a statement list as indented text."""
    visitor = PrintVisitor()
    for node in (nodes if isinstance(nodes, list) else [nodes]):
        visitor.generic_visit(node)
    return "\n".join(visitor.lines)


def print_ast(nodes: Union[AstNode, List[AstNode]]) -> None:
    """Print an AST node (or statement list) for debugging."""
    print(format_ast(nodes))
