"""
vaultscript runtime - tree-walking interpreter and its collaborators.

This module provides:
- Interpreter: Executes parsed programs
- values: Truthiness, coercion, canonical strings and the operator table
- CallStack / FunctionTable: Variable scopes and function definitions
- AesCbcCipher: Transform behind '@ENC' variables
- LibraryRegistry: Libraries for `use` and per-type methods
- Scheduler: Timers behind '@EVENT_TRIGGER'
"""

from .values import (
    type_name,
    is_truthy,
    parse_number,
    to_number,
    to_integer,
    canonical,
    parse_value_text,
    values_equal,
    apply_op,
)

from .context import (
    Variable,
    Scope,
    CallStack,
    FunctionTable,
)

from .crypto import (
    ValueCipher,
    AesCbcCipher,
    DEFAULT_KEY,
    DEFAULT_IV,
)

from .builtins import (
    BuiltinMethod,
    LibraryEntry,
    LibraryRegistry,
    get_library_registry,
)

from .scheduler import (
    ScheduledTask,
    Scheduler,
    UNIT_SECONDS,
    DEFAULT_DATETIME_FORMAT,
)

from .interpreter import (
    Interpreter,
    ExecutionResult,
    Returned,
    NORMAL,
    compile_and_run,
)

__all__ = [
    # Values
    'type_name',
    'is_truthy',
    'parse_number',
    'to_number',
    'to_integer',
    'canonical',
    'parse_value_text',
    'values_equal',
    'apply_op',

    # Context
    'Variable',
    'Scope',
    'CallStack',
    'FunctionTable',

    # Crypto
    'ValueCipher',
    'AesCbcCipher',
    'DEFAULT_KEY',
    'DEFAULT_IV',

    # Builtins
    'BuiltinMethod',
    'LibraryEntry',
    'LibraryRegistry',
    'get_library_registry',

    # Scheduler
    'ScheduledTask',
    'Scheduler',
    'UNIT_SECONDS',
    'DEFAULT_DATETIME_FORMAT',

    # Interpreter
    'Interpreter',
    'ExecutionResult',
    'Returned',
    'NORMAL',
    'compile_and_run',
]
