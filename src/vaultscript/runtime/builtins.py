"""
Library registry and method dispatch.

Two hooks live here:

- the registration hook behind `use name;`: a closed but extensible map
  from library name to a factory building the object that gets bound in
  the global scope;
- the method-dispatch hook behind `target.method(args)`: methods are
  registered per target type name and looked up by (type_name, method).

Core list and string methods are registered by every registry; the
`blockchain` and `data_science` libraries are added by
`get_library_registry()`.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TextIO, Tuple
import logging

from .values import type_name, to_integer
from ..errors import (
    error_unknown_library,
    error_unknown_method,
    error_invalid_arguments,
    error_index_out_of_range,
)


logger = logging.getLogger(__name__)


@dataclass
class BuiltinMethod:
    """
    A method callable on values of one type.

    The implementation receives the target followed by the evaluated
    arguments. `max_args` of None means any number above `min_args`.
    """
    name: str
    implementation: Callable[..., Any]
    min_args: int = 0
    max_args: Optional[int] = 0
    doc: str = ""

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args


@dataclass
class LibraryEntry:
    """A library that `use` can bind. `factory` receives the output stream."""
    name: str
    factory: Callable[[TextIO], Any]
    bind_as: Optional[str] = None

    @property
    def binding(self) -> str:
        return self.bind_as or self.name


class LibraryRegistry:
    """
    Registry of bindable libraries and per-type methods.

    Libraries are registered by name; methods by (type_name, method_name).
    """

    def __init__(self):
        self._libraries: Dict[str, LibraryEntry] = {}
        self._methods: Dict[Tuple[str, str], BuiltinMethod] = {}
        self._register_core_methods()

    # --- Libraries ---

    def register(self, name: str, factory: Callable[[TextIO], Any],
                 bind_as: Optional[str] = None) -> None:
        """Make `use name;` bind `factory(output)` under `bind_as or name`."""
        self._libraries[name] = LibraryEntry(name, factory, bind_as)

    def get_library(self, name: str) -> Optional[LibraryEntry]:
        return self._libraries.get(name)

    @property
    def library_names(self) -> List[str]:
        return sorted(self._libraries)

    def load(self, name: str, output: TextIO) -> Tuple[str, Any]:
        """Build a library object; returns (binding name, object)."""
        entry = self._libraries.get(name)
        if entry is None:
            raise error_unknown_library(name, self.library_names)
        logger.debug("Loading library %s as %s", name, entry.binding)
        return entry.binding, entry.factory(output)

    # --- Methods ---

    def register_method(self, type_name: str, method: BuiltinMethod) -> None:
        self._methods[(type_name, method.name)] = method

    def get_method(self, type_name: str, method_name: str) -> Optional[BuiltinMethod]:
        return self._methods.get((type_name, method_name))

    def call_method(self, target: Any, method_name: str, args: List[Any]) -> Any:
        """Dispatch a method call on an already-evaluated target."""
        target_type = type_name(target)
        method = self.get_method(target_type, method_name)
        if method is None:
            raise error_unknown_method(target_type, method_name)
        if not method.accepts(len(args)):
            raise error_invalid_arguments(
                target_type, method_name, f"{len(args)} argument(s) given"
            )
        return method.implementation(target, *args)

    def _register_core_methods(self) -> None:
        """Register list and string methods."""

        def _list_add(items: list, value: Any) -> None:
            items.append(value)

        def _list_remove(items: list, index: Any) -> None:
            position = to_integer(index)
            if position < 0 or position >= len(items):
                raise error_index_out_of_range(position, len(items))
            del items[position]

        def _list_size(items: list) -> int:
            return len(items)

        def _string_length(text: str) -> int:
            return len(text)

        self.register_method("list", BuiltinMethod("add", _list_add, 1, 1))
        self.register_method("list", BuiltinMethod("remove", _list_remove, 1, 1))
        self.register_method("list", BuiltinMethod("size", _list_size))
        self.register_method("list", BuiltinMethod("numInstances", _list_size))
        self.register_method("string", BuiltinMethod("length", _string_length))


# Global singleton registry
_registry: Optional[LibraryRegistry] = None


def get_library_registry() -> LibraryRegistry:
    """Get the shared registry with the default libraries installed."""
    global _registry
    if _registry is None:
        from .libraries import install_default_libraries
        registry = LibraryRegistry()
        install_default_libraries(registry)
        _registry = registry
    return _registry
