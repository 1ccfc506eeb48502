"""
Script exceptions and diagnostics.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Runtime errors
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List
from .tokens import SourceSpan


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"


@dataclass
class Diagnostic:
    """A single diagnostic message."""
    code: str                       # E001, E101, etc.
    message: str                    # Human-readable message
    severity: ErrorSeverity
    span: Optional[SourceSpan] = None   # Unknown for errors raised outside a node
    source_line: Optional[str] = None   # The actual line of source code
    hints: List[str] = field(default_factory=list)

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = []

        # Header: location: severity[code]: message
        if self.span is not None:
            parts.append(f"{self.span.start}: {self.severity.value}[{self.code}]: {self.message}")
        else:
            parts.append(f"{self.severity.value}[{self.code}]: {self.message}")

        # Source line with caret
        if show_source and self.source_line is not None and self.span is not None:
            parts.append("  |")
            line_num = str(self.span.start.line)
            parts.append(f"{line_num:>3} | {self.source_line}")

            col = self.span.start.column
            end_col = self.span.end.column if self.span.start.line == self.span.end.line else len(self.source_line) + 1
            underline_len = max(1, end_col - col)
            parts.append(f"    | {' ' * (col - 1)}{'^' * underline_len}")

        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        data = {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "hints": self.hints,
        }
        if self.span is not None:
            data["range"] = {
                "start": {
                    "line": self.span.start.line,
                    "column": self.span.start.column,
                    "offset": self.span.start.offset,
                },
                "end": {
                    "line": self.span.end.line,
                    "column": self.span.end.column,
                    "offset": self.span.end.offset,
                },
            }
        return data


class ScriptError(Exception):
    """Base exception for all script errors."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    @property
    def code(self) -> str:
        return self.diagnostic.code

    @property
    def line(self) -> Optional[int]:
        if self.diagnostic.span is None:
            return None
        return self.diagnostic.span.start.line

    @property
    def column(self) -> Optional[int]:
        if self.diagnostic.span is None:
            return None
        return self.diagnostic.span.start.column

    def __str__(self) -> str:
        return self.diagnostic.format()


class LexerError(ScriptError):
    """Error during lexical analysis (E0xx)."""
    pass


class ParserError(ScriptError):
    """Error during parsing (E1xx)."""

    def __init__(self, diagnostic: Diagnostic, expected: str = "", found: str = ""):
        super().__init__(diagnostic)
        self.expected = expected
        self.found = found


class ScriptRuntimeError(ScriptError):
    """Error while executing a script (E4xx)."""

    def with_span(self, span: Optional[SourceSpan],
                  source_line: Optional[str] = None) -> "ScriptRuntimeError":
        """Attach a location if none is recorded yet."""
        if self.diagnostic.span is None and span is not None:
            self.diagnostic.span = span
            self.diagnostic.source_line = source_line
        return self


class UndefinedVariable(ScriptRuntimeError):
    pass


class UndefinedFunction(ScriptRuntimeError):
    pass


class ArityMismatch(ScriptRuntimeError):
    pass


class InvalidAssignmentTarget(ScriptRuntimeError):
    pass


class DivisionByZero(ScriptRuntimeError):
    pass


class IndexOutOfRange(ScriptRuntimeError):
    pass


class UnsupportedOperator(ScriptRuntimeError):
    pass


class CipherError(ScriptRuntimeError):
    """Encryption or decryption failure."""
    pass


class InvalidScheduleParameters(ScriptRuntimeError):
    pass


class UnknownLibrary(ScriptRuntimeError):
    pass


class UnknownMethod(ScriptRuntimeError):
    pass


class ReturnOutsideFunction(ScriptRuntimeError):
    pass


class TypeMismatch(ScriptRuntimeError):
    pass


class StackOverflow(ScriptRuntimeError):
    pass


# --- Lexer error codes ---

def error_unexpected_character(char: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E001: Unexpected character."""
    diag = Diagnostic(
        code="E001",
        message=f"unexpected character '{char}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


def error_unterminated_string(span: SourceSpan, source_line: str = None) -> LexerError:
    """E002: Unterminated string literal."""
    diag = Diagnostic(
        code="E002",
        message="unterminated string literal",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["string literals must be closed with a matching '\"'"],
    )
    return LexerError(diag)


def error_empty_encrypted_name(span: SourceSpan, source_line: str = None) -> LexerError:
    """E003: Encryption marker with no variable name."""
    diag = Diagnostic(
        code="E003",
        message="'@ENC' must be followed by a variable name",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


# --- Parser error codes ---

def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: str = None) -> ParserError:
    """E101: Unexpected token."""
    diag = Diagnostic(
        code="E101",
        message=f"expected {expected}, found {found}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag, expected, found)


def error_unexpected_eof(expected: str, span: SourceSpan) -> ParserError:
    """E102: Unexpected end of file."""
    diag = Diagnostic(
        code="E102",
        message=f"unexpected end of file, expected {expected}",
        severity=ErrorSeverity.ERROR,
        span=span,
    )
    return ParserError(diag, expected, "EOF")


def error_invalid_assignment_target(span: SourceSpan, source_line: str = None) -> ParserError:
    """E103: Left side of an assignment is not assignable."""
    diag = Diagnostic(
        code="E103",
        message="invalid assignment target",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["only variables and index expressions can be assigned"],
    )
    return ParserError(diag, "variable or index expression", "expression")


# --- Runtime error codes ---

def _runtime(cls, code: str, message: str, span: Optional[SourceSpan] = None,
             hints: Optional[List[str]] = None):
    diag = Diagnostic(
        code=code,
        message=message,
        severity=ErrorSeverity.ERROR,
        span=span,
        hints=hints or [],
    )
    return cls(diag)


def error_undefined_variable(name: str, span: SourceSpan = None) -> UndefinedVariable:
    """E401: Variable read before assignment."""
    return _runtime(UndefinedVariable, "E401", f"undefined variable '{name}'", span)


def error_undefined_function(name: str, span: SourceSpan = None) -> UndefinedFunction:
    """E402: Call to a function that was never defined."""
    return _runtime(UndefinedFunction, "E402", f"undefined function '{name}'", span,
                    ["functions are callable only after their definition has run"])


def error_arity_mismatch(name: str, expected: int, found: int,
                         span: SourceSpan = None) -> ArityMismatch:
    """E403: Wrong number of arguments."""
    return _runtime(ArityMismatch, "E403",
                    f"function '{name}' expects {expected} argument(s), got {found}", span)


def error_invalid_assignment(what: str, span: SourceSpan = None) -> InvalidAssignmentTarget:
    """E404: Mutation of something that is not a variable."""
    return _runtime(InvalidAssignmentTarget, "E404", f"invalid target for {what}", span)


def error_division_by_zero(op: str, span: SourceSpan = None) -> DivisionByZero:
    """E405: Division or modulo by zero."""
    message = "division by zero" if op == "/" else "modulo by zero"
    return _runtime(DivisionByZero, "E405", message, span)


def error_index_out_of_range(index: int, size: int, span: SourceSpan = None) -> IndexOutOfRange:
    """E406: List index out of range."""
    return _runtime(IndexOutOfRange, "E406",
                    f"index {index} out of range for list of size {size}", span)


def error_unsupported_operator(op: str, span: SourceSpan = None) -> UnsupportedOperator:
    """E407: Operator with no defined semantics."""
    return _runtime(UnsupportedOperator, "E407", f"unsupported operator '{op}'", span)


def error_cipher(action: str, reason: str, span: SourceSpan = None) -> CipherError:
    """E408: Encryption or decryption failure."""
    return _runtime(CipherError, "E408", f"{action} failed: {reason}", span)


def error_invalid_schedule(reason: str, span: SourceSpan = None) -> InvalidScheduleParameters:
    """E409: Bad event trigger parameters."""
    return _runtime(InvalidScheduleParameters, "E409",
                    f"invalid schedule parameters: {reason}", span)


def error_unknown_library(name: str, known: List[str], span: SourceSpan = None) -> UnknownLibrary:
    """E410: Unknown library name in a use statement."""
    hints = [f"available libraries: {', '.join(known)}"] if known else []
    return _runtime(UnknownLibrary, "E410", f"unknown library '{name}'", span, hints)


def error_unknown_method(type_name: str, method: str, span: SourceSpan = None) -> UnknownMethod:
    """E411: Method not defined for the target type."""
    return _runtime(UnknownMethod, "E411", f"unknown method '{method}' on {type_name}", span)


def error_invalid_arguments(type_name: str, method: str, reason: str,
                            span: SourceSpan = None) -> UnknownMethod:
    """E411: Method exists but the arguments do not fit it."""
    return _runtime(UnknownMethod, "E411",
                    f"invalid arguments for {type_name}.{method}: {reason}", span)


def error_return_outside_function(span: SourceSpan = None) -> ReturnOutsideFunction:
    """E412: Return at top level."""
    return _runtime(ReturnOutsideFunction, "E412", "'return' outside of a function", span)


def error_type_mismatch(message: str, span: SourceSpan = None) -> TypeMismatch:
    """E413: Value of the wrong type."""
    return _runtime(TypeMismatch, "E413", message, span)


def error_stack_overflow(name: str, depth: int, span: SourceSpan = None) -> StackOverflow:
    """E414: Function calls nested too deeply."""
    return _runtime(StackOverflow, "E414",
                    f"call stack overflow in '{name}' at depth {depth}", span,
                    ["check that recursive functions reach a base case"])
