"""
vaultscript - a small scripting language with encrypted variables and
timed triggers.

This module provides:
- Lexer: Tokenizes script source
- Parser: Builds the AST from tokens
- Interpreter: Runs the AST, encrypting '@ENC' variables and scheduling
  '@EVENT_TRIGGER' actions
- RuntimeConfig: Keys and scheduler settings loaded from YAML

Usage:
    from vaultscript import compile_and_run

    result = compile_and_run('''
        function square(n){ return n * n; };
        @ENCsecret = square(12);
        print-> @ENCsecret;          // prints the ciphertext
        plain = @ENCsecret;
        print-> plain;               // 144
    ''')
    if not result.success:
        print(result.error_message)
"""

import logging

from .tokens import (
    Token,
    TokenType,
    SourceLocation,
    SourceSpan,
    KEYWORDS,
    ENC_MARKER,
    EVENT_MARKER,
    split_marker,
)

from .lexer import (
    Lexer,
    tokenize,
)

from .parser import (
    Parser,
    parse,
)

from .ast import (
    # Base
    AstNode,
    AstVisitor,
    Expression,
    Statement,
    # Expressions
    Literal,
    ArrayLiteral,
    Variable,
    Assign,
    AssignIndex,
    Index,
    Binary,
    Unary,
    FunctionCall,
    ObjectMethodCall,
    # Statements
    Print,
    If,
    For,
    While,
    Input,
    FunctionDef,
    Return,
    Use,
    EventTrigger,
    ExpressionStatement,
    NODE_TYPES,
    # Helpers
    format_ast,
    print_ast,
)

from .errors import (
    ScriptError,
    LexerError,
    ParserError,
    ScriptRuntimeError,
    Diagnostic,
    ErrorSeverity,
)

from .runtime import (
    Interpreter,
    ExecutionResult,
    compile_and_run,
    LibraryRegistry,
    get_library_registry,
    Scheduler,
    AesCbcCipher,
)

from .config import (
    RuntimeConfig,
    load_config,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Tokens
    'Token',
    'TokenType',
    'SourceLocation',
    'SourceSpan',
    'KEYWORDS',
    'ENC_MARKER',
    'EVENT_MARKER',
    'split_marker',

    # Lexer / Parser
    'Lexer',
    'tokenize',
    'Parser',
    'parse',

    # AST
    'AstNode',
    'AstVisitor',
    'Expression',
    'Statement',
    'Literal',
    'ArrayLiteral',
    'Variable',
    'Assign',
    'AssignIndex',
    'Index',
    'Binary',
    'Unary',
    'FunctionCall',
    'ObjectMethodCall',
    'Print',
    'If',
    'For',
    'While',
    'Input',
    'FunctionDef',
    'Return',
    'Use',
    'EventTrigger',
    'ExpressionStatement',
    'NODE_TYPES',
    'format_ast',
    'print_ast',

    # Errors
    'ScriptError',
    'LexerError',
    'ParserError',
    'ScriptRuntimeError',
    'Diagnostic',
    'ErrorSeverity',

    # Runtime
    'Interpreter',
    'ExecutionResult',
    'compile_and_run',
    'LibraryRegistry',
    'get_library_registry',
    'Scheduler',
    'AesCbcCipher',

    # Config
    'RuntimeConfig',
    'load_config',
]
