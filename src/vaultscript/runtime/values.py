"""
Runtime value rules.

Script values are plain Python objects: int, float, bool, str, list and
None (the absent value). Library objects bound by `use` are opaque host
objects. This module holds the rules every part of the runtime shares:
truthiness, numeric coercion, canonical string forms, text sniffing and
the binary operator table.
"""

import re
from typing import Any, List, Union

from ..errors import (
    error_division_by_zero,
    error_type_mismatch,
    error_unsupported_operator,
)


Number = Union[int, float]

_INT_RE = re.compile(r"[+-]?\d+")
_FLOAT_RE = re.compile(r"[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?")

ARITHMETIC_OPERATORS = ("+", "-", "*", "/", "%")
COMPARISON_OPERATORS = ("==", "!=", "<", ">", "<=", ">=")
LOGICAL_OPERATORS = ("&&", "||")


def type_name(value: Any) -> str:
    """Name of a value's script-level type."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "list"
    return getattr(value, "type_name", type(value).__name__)


def is_truthy(value: Any) -> bool:
    """Truthiness coercion used by conditions and logical operators."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (str, list)):
        return len(value) > 0
    return True


def parse_number(text: str):
    """Parse an int- or float-shaped string, or return None."""
    text = text.strip()
    if _INT_RE.fullmatch(text):
        return int(text)
    if _FLOAT_RE.fullmatch(text):
        return float(text)
    return None


def to_number(value: Any) -> Number:
    """Coerce a value for arithmetic; anything unparseable becomes 0."""
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        number = parse_number(value)
        return 0 if number is None else number
    return 0


def to_integer(value: Any) -> int:
    """Coerce an index value: ints, floats (truncated) or numeric strings."""
    if isinstance(value, bool):
        raise error_type_mismatch(f"cannot use boolean {canonical(value)} as an index")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        number = parse_number(value)
        if number is not None:
            return int(number)
    raise error_type_mismatch(f"cannot convert {type_name(value)} '{canonical(value)}' to an integer")


def canonical(value: Any) -> str:
    """Canonical string form, used for concatenation, printing and encryption."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, list):
        return "[" + ", ".join(canonical(item) for item in value) + "]"
    return str(value)


def _split_elements(body: str) -> List[str]:
    """Split list text on top-level commas, honouring nested brackets and quotes."""
    parts = []
    depth = 0
    in_quotes = False
    current = []
    for ch in body:
        if ch == '"':
            in_quotes = not in_quotes
        elif not in_quotes and ch == '[':
            depth += 1
        elif not in_quotes and ch == ']':
            depth -= 1
        elif not in_quotes and depth == 0 and ch == ',':
            parts.append("".join(current))
            current = []
            continue
        current.append(ch)
    parts.append("".join(current))
    return parts


def parse_value_text(text: str) -> Any:
    """
    Sniff a typed value out of text read from input or recovered by decryption.

    Tried in order: boolean keyword (any case), integer, float, bracketed
    comma-separated list (elements parsed by the same rule), quoted string
    (quotes stripped), raw string.
    """
    stripped = text.strip()
    lowered = stripped.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False

    number = parse_number(stripped)
    if number is not None:
        return number

    if len(stripped) >= 2 and stripped.startswith("[") and stripped.endswith("]"):
        body = stripped[1:-1]
        if not body.strip():
            return []
        return [parse_value_text(part.strip()) for part in _split_elements(body)]

    if len(stripped) >= 2 and stripped.startswith('"') and stripped.endswith('"'):
        return stripped[1:-1]

    return text


def values_equal(left: Any, right: Any) -> bool:
    """Structural equality for lists; numeric equality for everything else."""
    if isinstance(left, list) or isinstance(right, list):
        if not (isinstance(left, list) and isinstance(right, list)):
            return False
        if len(left) != len(right):
            return False
        return all(values_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    return to_number(left) == to_number(right)


def _truncating_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b >= 0) else -quotient


def _truncating_mod(a: int, b: int) -> int:
    # Result takes the sign of the dividend
    return a - b * _truncating_div(a, b)


def apply_op(left: Any, right: Any, op: str) -> Any:
    """
    Apply a binary operator to two already-evaluated values.

    String '+' concatenates canonical forms; list '+' concatenates lists;
    list '=='/'!=' compares structurally; '&&'/'||' combine truthiness;
    everything else works on numerically coerced operands.
    """
    if op == "+" and (isinstance(left, str) or isinstance(right, str)):
        return canonical(left) + canonical(right)

    if isinstance(left, list) or isinstance(right, list):
        if op == "+" and isinstance(left, list) and isinstance(right, list):
            return left + right
        if op == "==":
            return values_equal(left, right)
        if op == "!=":
            return not values_equal(left, right)

    if op == "&&":
        return is_truthy(left) and is_truthy(right)
    if op == "||":
        return is_truthy(left) or is_truthy(right)

    a = to_number(left)
    b = to_number(right)
    both_int = isinstance(a, int) and isinstance(b, int)

    if op == "+":
        return a + b if both_int else float(a) + float(b)
    if op == "-":
        return a - b if both_int else float(a) - float(b)
    if op == "*":
        return a * b if both_int else float(a) * float(b)
    if op == "/":
        if b == 0:
            raise error_division_by_zero(op)
        return _truncating_div(a, b) if both_int else float(a) / float(b)
    if op == "%":
        a, b = int(a), int(b)
        if b == 0:
            raise error_division_by_zero(op)
        return _truncating_mod(a, b)

    if op == "==":
        return a == b
    if op == "!=":
        return a != b
    if op == "<":
        return a < b
    if op == ">":
        return a > b
    if op == "<=":
        return a <= b
    if op == ">=":
        return a >= b

    raise error_unsupported_operator(op)
