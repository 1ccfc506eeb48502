"""
Execution context for the interpreter.

Holds variable bindings as a stack of scopes plus the function table.
Lookup and assignment search every active frame from the innermost out to
the global scope, so a called function sees (and can update) its callers'
locals as well as globals.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional
from contextlib import contextmanager
import logging

from ..ast import FunctionDef


logger = logging.getLogger(__name__)


@dataclass
class Variable:
    """A stored binding. When `encrypted` is set, `value` is ciphertext."""
    value: Any
    encrypted: bool = False


@dataclass
class Scope:
    """One frame's name -> Variable bindings."""
    variables: Dict[str, Variable] = field(default_factory=dict)
    name: str = "anonymous"  # For debugging

    def get(self, name: str) -> Optional[Variable]:
        return self.variables.get(name)

    def set(self, name: str, variable: Variable) -> None:
        self.variables[name] = variable

    def __contains__(self, name: str) -> bool:
        return name in self.variables


class CallStack:
    """
    Stack of scopes, bottom = global.

    Backed by a plain list pushed and popped at the end. The global scope is
    created here and can never be popped.
    """

    def __init__(self):
        self._scopes: List[Scope] = [Scope(name="global")]

    @property
    def depth(self) -> int:
        return len(self._scopes)

    @property
    def global_scope(self) -> Scope:
        return self._scopes[0]

    @property
    def current(self) -> Scope:
        return self._scopes[-1]

    def push(self, scope: Scope) -> None:
        self._scopes.append(scope)

    def pop(self) -> Scope:
        if len(self._scopes) == 1:
            raise IndexError("cannot pop the global scope")
        return self._scopes.pop()

    @contextmanager
    def frame(self, scope: Scope) -> Iterator[Scope]:
        """
        Push a scope for the duration of a function call.

        Usage:
            with stack.frame(Scope({"a": Variable(1)}, name="add")):
                ...  # pops on return or on error
        """
        self.push(scope)
        try:
            yield scope
        finally:
            self.pop()

    def lookup(self, name: str) -> Optional[Variable]:
        """Find a binding, searching from the innermost scope outwards."""
        for scope in reversed(self._scopes):
            variable = scope.get(name)
            if variable is not None:
                return variable
        return None

    def assign(self, name: str, variable: Variable) -> None:
        """Overwrite the binding wherever it lives, or create it in the top scope."""
        for scope in reversed(self._scopes):
            if name in scope:
                scope.set(name, variable)
                return
        self.current.set(name, variable)

    def __iter__(self) -> Iterator[Scope]:
        return iter(self._scopes)


class FunctionTable:
    """Name -> FunctionDef; a later definition replaces an earlier one."""

    def __init__(self):
        self._functions: Dict[str, FunctionDef] = {}

    def define(self, function: FunctionDef) -> None:
        if function.name in self._functions:
            logger.debug("Redefining function %s", function.name)
        else:
            logger.debug("Registered function %s(%s)", function.name, ", ".join(function.parameters))
        self._functions[function.name] = function

    def get(self, name: str) -> Optional[FunctionDef]:
        return self._functions.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)
