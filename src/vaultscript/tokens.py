"""
Token types for the vaultscript lexer.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Runtime errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional, Tuple


# Identifier prefixes carried as part of the lexeme
ENC_MARKER = "@ENC"
EVENT_MARKER = "@EVENT_TRIGGER"


class TokenType(Enum):
    """All token types recognized by the lexer."""

    # --- Literals ---
    NUMBER = auto()             # 42, 3.14
    STRING = auto()             # "hello"
    BOOLEAN = auto()            # true, false

    # --- Identifiers ---
    IDENTIFIER = auto()         # x, @ENCsecret
    EVENT_TRIGGER = auto()      # @EVENT_TRIGGER

    # --- Keywords ---
    PRINT = auto()              # print
    IF = auto()                 # if
    ELSE = auto()               # else
    FOR = auto()                # for
    TO = auto()                 # to (reserved)
    INPUT = auto()              # input
    WHILE = auto()              # while
    FUNCTION = auto()           # function
    RETURN = auto()             # return
    USE = auto()                # use

    # --- Arithmetic operators ---
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # *
    SLASH = auto()              # /
    PERCENT = auto()            # %
    INCREMENT = auto()          # ++
    DECREMENT = auto()          # --

    # --- Comparison operators ---
    LT = auto()                 # <
    GT = auto()                 # >
    LE = auto()                 # <=
    GE = auto()                 # >=
    EQ = auto()                 # ==
    NE = auto()                 # !=

    # --- Logical operators ---
    AND = auto()                # &&
    OR = auto()                 # ||
    NOT = auto()                # !

    # --- Assignment ---
    ASSIGN = auto()             # =
    PLUS_ASSIGN = auto()        # +=
    MINUS_ASSIGN = auto()       # -=
    STAR_ASSIGN = auto()        # *=
    SLASH_ASSIGN = auto()       # /=

    # --- Delimiters ---
    LPAREN = auto()             # (
    RPAREN = auto()             # )
    LBRACE = auto()             # {
    RBRACE = auto()             # }
    LBRACKET = auto()           # [
    RBRACKET = auto()           # ]
    COMMA = auto()              # ,
    SEMICOLON = auto()          # ;
    DOT = auto()                # .
    ARROW = auto()              # ->

    # --- Special ---
    EOF = auto()                # end of file


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: Any              # int/float for NUMBER, str for STRING, bool for BOOLEAN
    lexeme: str             # The original source text
    span: SourceSpan

    @property
    def line(self) -> int:
        return self.span.start.line

    @property
    def column(self) -> int:
        return self.span.start.column

    def __str__(self) -> str:
        if self.type in (TokenType.NUMBER, TokenType.STRING,
                         TokenType.BOOLEAN, TokenType.IDENTIFIER):
            return f"{self.type.name}({self.value!r})"
        return self.type.name


KEYWORDS: dict[str, TokenType] = {
    "print": TokenType.PRINT,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "for": TokenType.FOR,
    "to": TokenType.TO,
    "input": TokenType.INPUT,
    "while": TokenType.WHILE,
    "function": TokenType.FUNCTION,
    "return": TokenType.RETURN,
    "use": TokenType.USE,
    "true": TokenType.BOOLEAN,
    "false": TokenType.BOOLEAN,
}


# Assignment operator -> the binary operator it applies ('=' maps to None)
ASSIGNMENT_OPERATORS: dict[TokenType, Optional[str]] = {
    TokenType.ASSIGN: None,
    TokenType.PLUS_ASSIGN: "+",
    TokenType.MINUS_ASSIGN: "-",
    TokenType.STAR_ASSIGN: "*",
    TokenType.SLASH_ASSIGN: "/",
}


def split_marker(name: str) -> Tuple[str, bool]:
    """Strip the encrypted-variable marker from a name.

    Returns the bare name and whether the marker was present.
    """
    if name.startswith(ENC_MARKER):
        return name[len(ENC_MARKER):], True
    return name, False
