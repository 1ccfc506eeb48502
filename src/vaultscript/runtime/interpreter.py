"""
Tree-walking interpreter for vaultscript programs.

Evaluates AST nodes by dispatching on node class. Statements produce an
ExecOutcome (NORMAL, or Returned(value) while a `return` unwinds to its
function call); expressions produce values.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TextIO
import logging
import sys
import threading

from .values import (
    apply_op, canonical, is_truthy, parse_value_text, to_integer, type_name,
)
from .context import CallStack, FunctionTable, Scope, Variable as Binding
from .crypto import AesCbcCipher, ValueCipher
from .builtins import LibraryRegistry, get_library_registry
from .scheduler import DEFAULT_DATETIME_FORMAT, Scheduler

from ..ast import (
    AstNode, NODE_TYPES,
    Literal, ArrayLiteral, Variable, Assign, AssignIndex, Index, Binary,
    Unary, FunctionCall, ObjectMethodCall,
    Print, If, For, While, Input, FunctionDef, Return, Use, EventTrigger,
    ExpressionStatement,
)
from ..errors import (
    Diagnostic,
    ScriptError,
    ScriptRuntimeError,
    error_undefined_variable,
    error_undefined_function,
    error_arity_mismatch,
    error_invalid_assignment,
    error_index_out_of_range,
    error_return_outside_function,
    error_type_mismatch,
    error_stack_overflow,
)
from ..tokens import split_marker


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Returned:
    """Outcome of a block left through `return`."""
    value: Any = None


# Outcome of a block that ran to completion
NORMAL = None

ExecOutcome = Optional[Returned]


@dataclass
class ExecutionResult:
    """Result of compiling and running a script."""
    success: bool
    error_message: Optional[str] = None
    diagnostic: Optional[Diagnostic] = None
    interpreter: Optional["Interpreter"] = None

    @property
    def scheduler(self) -> Optional[Scheduler]:
        if self.interpreter is None:
            return None
        return self.interpreter.scheduler


class Interpreter:
    """
    Tree-walking interpreter.

    One interpreter owns the function table, the call stack and a scheduler.
    Top-level statements and scheduled firings both run under `self.lock`,
    so they never interleave.
    """

    def __init__(
        self,
        output: Optional[TextIO] = None,
        input_stream: Optional[TextIO] = None,
        cipher: Optional[ValueCipher] = None,
        registry: Optional[LibraryRegistry] = None,
        config: Any = None,
        scheduler: Optional[Scheduler] = None,
        source: Optional[str] = None,
    ):
        """
        Initialize the interpreter.

        Args:
            output: Stream for print and prompts (default sys.stdout)
            input_stream: Stream read by input statements (default sys.stdin)
            cipher: Transform for '@ENC' variables (default built from config,
                else AES with the built-in key)
            registry: Library registry (default: the shared one)
            config: Optional RuntimeConfig
            scheduler: Optional pre-built scheduler
            source: Original source, used to quote lines in errors
        """
        self.output = output if output is not None else sys.stdout
        self.input_stream = input_stream if input_stream is not None else sys.stdin
        self.registry = registry if registry is not None else get_library_registry()
        self.config = config
        self._cipher = cipher
        self._lines = source.splitlines() if source else []

        self.functions = FunctionTable()
        self.call_stack = CallStack()
        self.lock = threading.RLock()

        if scheduler is None:
            datetime_format = getattr(config, "datetime_format", None) or DEFAULT_DATETIME_FORMAT
            scheduler = Scheduler(self.run_action, datetime_format=datetime_format)
        self.scheduler = scheduler

        self._statement_handlers: Dict[type, Callable[[Any], ExecOutcome]] = {
            Print: self._execute_print,
            If: self._execute_if,
            For: self._execute_for,
            While: self._execute_while,
            Input: self._execute_input,
            FunctionDef: self._execute_function_def,
            Return: self._execute_return,
            Use: self._execute_use,
            EventTrigger: self._execute_event_trigger,
            ExpressionStatement: self._execute_expression_statement,
        }
        self._expression_handlers: Dict[type, Callable[[Any, bool], Any]] = {
            Literal: self._eval_literal,
            ArrayLiteral: self._eval_array_literal,
            Variable: self._eval_variable,
            Assign: self._eval_assign,
            AssignIndex: self._eval_assign_index,
            Index: self._eval_index,
            Binary: self._eval_binary,
            Unary: self._eval_unary,
            FunctionCall: self._eval_function_call,
            ObjectMethodCall: self._eval_method_call,
        }
        missing = [
            node_type.__name__ for node_type in NODE_TYPES
            if node_type not in self._statement_handlers
            and node_type not in self._expression_handlers
        ]
        if missing:
            raise RuntimeError(f"No interpreter handler for: {', '.join(missing)}")

    @property
    def cipher(self) -> ValueCipher:
        """The value cipher, created on first use."""
        if self._cipher is None:
            if self.config is not None:
                self._cipher = self.config.build_cipher()
            else:
                self._cipher = AesCbcCipher()
        return self._cipher

    # =========================================================================
    # Host API
    # =========================================================================

    def execute(self, statements: List[AstNode]) -> None:
        """
        Run a program's statements in order.

        Raises:
            ScriptError: on the first failure; later statements do not run
        """
        logger.debug("Executing %d top-level statement(s)", len(statements))
        for statement in statements:
            self.run_action(statement)

    def run_action(self, node: AstNode) -> None:
        """Run one top-level statement under the interpreter lock."""
        with self.lock:
            outcome = self._execute_statement(node)
            if isinstance(outcome, Returned):
                logger.error("'return' executed outside of a function at %s", node.span.start)
                raise error_return_outside_function().with_span(
                    node.span, self._source_line(node)
                )

    def call_function(self, name: str, args: List[Any]) -> Any:
        """Call a script function with already-evaluated arguments."""
        with self.lock:
            return self._invoke(name, args)

    def get_variable(self, name: str, decrypt: bool = True) -> Any:
        """Read a variable the way a script expression would."""
        with self.lock:
            return self._read_variable(name, decrypt)

    def use(self, library: str) -> Any:
        """Bind a library in the global scope; returns the bound object."""
        with self.lock:
            return self._bind_library(library)

    def shutdown(self) -> None:
        """Cancel scheduled work and stop the scheduler thread."""
        self.scheduler.shutdown()

    # =========================================================================
    # Statements
    # =========================================================================

    def _source_line(self, node: AstNode) -> Optional[str]:
        line = node.span.start.line
        if 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return None

    def _execute_statement(self, node: AstNode) -> ExecOutcome:
        handler = self._statement_handlers.get(type(node))
        try:
            if handler is None:
                # Bare expressions are allowed as loop headers and trigger actions
                self._evaluate(node)
                return NORMAL
            return handler(node)
        except ScriptRuntimeError as exc:
            exc.with_span(node.span, self._source_line(node))
            raise

    def _execute_block(self, statements: List[AstNode]) -> ExecOutcome:
        for statement in statements:
            outcome = self._execute_statement(statement)
            if outcome is not NORMAL:
                return outcome
        return NORMAL

    def _execute_print(self, stmt: Print) -> ExecOutcome:
        value = self._evaluate(stmt.expression, decrypt=False)
        self.output.write(canonical(value) + "\n")
        self.output.flush()
        return NORMAL

    def _execute_if(self, stmt: If) -> ExecOutcome:
        if is_truthy(self._evaluate(stmt.condition)):
            return self._execute_block(stmt.then_branch)
        if stmt.else_branch is not None:
            return self._execute_block(stmt.else_branch)
        return NORMAL

    def _execute_for(self, stmt: For) -> ExecOutcome:
        self._evaluate(stmt.init)
        while is_truthy(self._evaluate(stmt.condition)):
            outcome = self._execute_block(stmt.body)
            if outcome is not NORMAL:
                return outcome
            self._evaluate(stmt.increment)
        return NORMAL

    def _execute_while(self, stmt: While) -> ExecOutcome:
        while is_truthy(self._evaluate(stmt.condition)):
            outcome = self._execute_block(stmt.body)
            if outcome is not NORMAL:
                return outcome
        return NORMAL

    def _execute_input(self, stmt: Input) -> ExecOutcome:
        prompt = self._evaluate(stmt.prompt)
        if not isinstance(prompt, str):
            raise error_type_mismatch(f"input prompt must be a string, got {type_name(prompt)}")
        if not isinstance(stmt.target, Variable):
            raise error_invalid_assignment("input")

        self.output.write(prompt + " ")
        self.output.flush()
        line = self.input_stream.readline()  # "" at end of input
        value = parse_value_text(line.rstrip("\r\n"))

        bare, marked = split_marker(stmt.target.name)
        self._store(bare, value, marked)
        return NORMAL

    def _execute_function_def(self, stmt: FunctionDef) -> ExecOutcome:
        self.functions.define(stmt)
        return NORMAL

    def _execute_return(self, stmt: Return) -> ExecOutcome:
        value = self._evaluate(stmt.value) if stmt.value is not None else None
        return Returned(value)

    def _execute_use(self, stmt: Use) -> ExecOutcome:
        self._bind_library(stmt.library)
        return NORMAL

    def _execute_event_trigger(self, stmt: EventTrigger) -> ExecOutcome:
        time_value = self._evaluate(stmt.time)
        times = self._evaluate(stmt.times) if stmt.times is not None else None
        self.scheduler.schedule(time_value, stmt.unit, stmt.action, times)
        return NORMAL

    def _execute_expression_statement(self, stmt: ExpressionStatement) -> ExecOutcome:
        self._evaluate(stmt.expression)
        return NORMAL

    # =========================================================================
    # Expressions
    # =========================================================================

    def evaluate(self, node: AstNode, decrypt: bool = True) -> Any:
        """Evaluate an expression node."""
        with self.lock:
            return self._evaluate(node, decrypt)

    def _evaluate(self, node: AstNode, decrypt: bool = True) -> Any:
        handler = self._expression_handlers.get(type(node))
        if handler is None:
            raise RuntimeError(f"Unknown expression type: {type(node).__name__}")
        try:
            return handler(node, decrypt)
        except ScriptRuntimeError as exc:
            exc.with_span(node.span, self._source_line(node))
            raise

    def _eval_literal(self, lit: Literal, decrypt: bool) -> Any:
        return lit.value

    def _eval_array_literal(self, arr: ArrayLiteral, decrypt: bool) -> List[Any]:
        return [self._evaluate(element, decrypt) for element in arr.elements]

    def _eval_variable(self, var: Variable, decrypt: bool) -> Any:
        return self._read_variable(var.name, decrypt)

    def _eval_assign(self, assign: Assign, decrypt: bool) -> Any:
        bare, marked = split_marker(assign.name)
        right = self._evaluate(assign.value, decrypt)
        if assign.operator is None:
            return self._store(bare, right, marked)

        existing = self.call_stack.lookup(bare)
        if existing is None:
            raise error_undefined_variable(bare)
        current = self._plain_value(existing)
        result = apply_op(current, right, assign.operator)
        return self._store(bare, result, marked or existing.encrypted)

    def _eval_index(self, access: Index, decrypt: bool) -> Any:
        items = self._evaluate(access.target, decrypt)
        position = self._list_position(items, self._evaluate(access.index, decrypt))
        return items[position]

    def _eval_assign_index(self, assign: AssignIndex, decrypt: bool) -> Any:
        items = self._evaluate(assign.target, decrypt)
        position = self._list_position(items, self._evaluate(assign.index, decrypt))
        value = self._evaluate(assign.value, decrypt)
        if assign.operator is not None:
            value = apply_op(items[position], value, assign.operator)
        items[position] = value
        return value

    def _list_position(self, items: Any, index: Any) -> int:
        if not isinstance(items, list):
            raise error_type_mismatch(f"cannot index into {type_name(items)}")
        position = to_integer(index)
        if position < 0 or position >= len(items):
            raise error_index_out_of_range(position, len(items))
        return position

    def _eval_binary(self, op: Binary, decrypt: bool) -> Any:
        left = self._evaluate(op.left, decrypt)
        right = self._evaluate(op.right, decrypt)
        return apply_op(left, right, op.operator)

    def _eval_unary(self, op: Unary, decrypt: bool) -> Any:
        if op.operator == "!":
            return not is_truthy(self._evaluate(op.operand, decrypt))
        if op.operator == "-":
            return apply_op(0, self._evaluate(op.operand, decrypt), "-")

        # ++ and --
        if not isinstance(op.operand, Variable):
            raise error_invalid_assignment(f"'{op.operator}'")
        bare, marked = split_marker(op.operand.name)
        existing = self.call_stack.lookup(bare)
        if existing is None:
            raise error_undefined_variable(bare)

        old = self._plain_value(existing)
        new = apply_op(old, 1, "+" if op.operator == "++" else "-")
        self._store(bare, new, marked or existing.encrypted)
        return new if op.prefix else old

    def _eval_function_call(self, call: FunctionCall, decrypt: bool) -> Any:
        function = self.functions.get(call.name)
        if function is None:
            raise error_undefined_function(call.name)
        if len(call.arguments) != len(function.parameters):
            raise error_arity_mismatch(call.name, len(function.parameters), len(call.arguments))
        args = [self._evaluate(arg, decrypt) for arg in call.arguments]
        return self._invoke(call.name, args)

    def _eval_method_call(self, call: ObjectMethodCall, decrypt: bool) -> Any:
        target = self._evaluate(call.target, decrypt)
        args = [self._evaluate(arg, decrypt) for arg in call.arguments]
        return self.registry.call_method(target, call.method, args)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _invoke(self, name: str, args: List[Any]) -> Any:
        """Run a function body in a fresh frame holding only its parameters."""
        function = self.functions.get(name)
        if function is None:
            raise error_undefined_function(name)
        if len(args) != len(function.parameters):
            raise error_arity_mismatch(name, len(function.parameters), len(args))

        scope = Scope({param: Binding(value) for param, value in zip(function.parameters, args)},
                      name=name)
        with self.call_stack.frame(scope):
            try:
                outcome = self._execute_block(function.body)
            except RecursionError:
                raise error_stack_overflow(name, self.call_stack.depth - 1) from None
        if isinstance(outcome, Returned):
            return outcome.value
        return None

    def _plain_value(self, variable: Binding) -> Any:
        if variable.encrypted:
            return parse_value_text(self.cipher.decrypt(variable.value))
        return variable.value

    def _read_variable(self, name: str, decrypt: bool = True) -> Any:
        bare, _ = split_marker(name)
        variable = self.call_stack.lookup(bare)
        if variable is None:
            raise error_undefined_variable(bare)
        if decrypt:
            return self._plain_value(variable)
        return variable.value

    def _store(self, name: str, value: Any, encrypt: bool) -> Any:
        """Assign a binding, encrypting when asked; returns what was stored."""
        if encrypt:
            value = self.cipher.encrypt(canonical(value))
        self.call_stack.assign(name, Binding(value, encrypted=encrypt))
        return value

    def _bind_library(self, library: str) -> Any:
        binding, obj = self.registry.load(library, self.output)
        self.call_stack.global_scope.set(binding, Binding(obj))
        logger.debug("Bound library %s as %s", library, binding)
        return obj


def compile_and_run(source: str, filename: Optional[str] = None, **kwargs) -> ExecutionResult:
    """
    High-level API to tokenize, parse and run a script in one call.

        result = compile_and_run('x = 2; print-> x * 21;')
        if not result.success:
            print(result.error_message)

    Scheduled triggers keep running after this returns; call
    `result.scheduler.wait()` and `result.interpreter.shutdown()` as needed.

    Args:
        source: Script source code
        filename: Optional file name used in error locations
        **kwargs: Passed to Interpreter (output, input_stream, cipher, ...)

    Returns:
        ExecutionResult with the interpreter and any error
    """
    from ..lexer import tokenize
    from ..parser import parse

    interpreter = None
    try:
        statements = parse(tokenize(source, filename), source=source)
        interpreter = Interpreter(source=source, **kwargs)
        interpreter.execute(statements)
    except ScriptError as exc:
        return ExecutionResult(
            success=False,
            error_message=exc.diagnostic.format(),
            diagnostic=exc.diagnostic,
            interpreter=interpreter,
        )
    return ExecutionResult(success=True, interpreter=interpreter)
