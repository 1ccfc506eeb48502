"""
Lexer for vaultscript.

Converts source text into a stream of tokens for the parser.
Supports:
- Line comments (//)
- String literals with \\n, \\t, \\" and \\\\ escapes
- Integer and float literals
- Identifiers, including '@ENC' and '@EVENT_TRIGGER' marked names
- All keywords and operators
"""

from typing import List, Optional, Iterator
from .tokens import (
    Token, TokenType, SourceLocation, SourceSpan, KEYWORDS,
    ENC_MARKER, EVENT_MARKER,
)
from .errors import (
    error_unexpected_character,
    error_unterminated_string,
    error_empty_encrypted_name,
)


# Two-character operators, keyed by first character then second
_DOUBLE_CHAR_TOKENS = {
    '+': {'+': TokenType.INCREMENT, '=': TokenType.PLUS_ASSIGN},
    '-': {'-': TokenType.DECREMENT, '=': TokenType.MINUS_ASSIGN, '>': TokenType.ARROW},
    '*': {'=': TokenType.STAR_ASSIGN},
    '/': {'=': TokenType.SLASH_ASSIGN},
    '=': {'=': TokenType.EQ},
    '!': {'=': TokenType.NE},
    '<': {'=': TokenType.LE},
    '>': {'=': TokenType.GE},
    '&': {'&': TokenType.AND},
    '|': {'|': TokenType.OR},
}

_SINGLE_CHAR_TOKENS = {
    '+': TokenType.PLUS,
    '-': TokenType.MINUS,
    '*': TokenType.STAR,
    '/': TokenType.SLASH,
    '%': TokenType.PERCENT,
    '=': TokenType.ASSIGN,
    '!': TokenType.NOT,
    '<': TokenType.LT,
    '>': TokenType.GT,
    '(': TokenType.LPAREN,
    ')': TokenType.RPAREN,
    '{': TokenType.LBRACE,
    '}': TokenType.RBRACE,
    '[': TokenType.LBRACKET,
    ']': TokenType.RBRACKET,
    ',': TokenType.COMMA,
    ';': TokenType.SEMICOLON,
    '.': TokenType.DOT,
}

_ESCAPES = {
    'n': '\n',
    't': '\t',
    '"': '"',
    '\\': '\\',
}


def _is_digit(ch: str) -> bool:
    """ASCII digits only; str.isdigit() also accepts superscripts."""
    return '0' <= ch <= '9'


class Lexer:
    """
    Tokenizer for vaultscript source text.

    Usage:
        lexer = Lexer(source_code)
        tokens = lexer.tokenize()

    Or for streaming:
        lexer = Lexer(source_code)
        for token in lexer:
            process(token)
    """

    def __init__(self, source: str, filename: Optional[str] = None):
        self.source = source
        self.filename = filename
        self.pos = 0            # Current position in source
        self.line = 1           # Current line (1-indexed)
        self.column = 1         # Current column (1-indexed)
        self._lines: Optional[List[str]] = None

    @property
    def lines(self) -> List[str]:
        """Lazy-load line list for error reporting."""
        if self._lines is None:
            self._lines = self.source.splitlines()
        return self._lines

    def get_source_line(self, line_num: int) -> Optional[str]:
        """Get a specific line of source (1-indexed)."""
        if 1 <= line_num <= len(self.lines):
            return self.lines[line_num - 1]
        return None

    def _location(self) -> SourceLocation:
        return SourceLocation(self.line, self.column, self.pos, self.filename)

    def _span(self, start: SourceLocation) -> SourceSpan:
        return SourceSpan(start, self._location())

    def _peek(self, offset: int = 0) -> str:
        """Look at character at current position + offset without consuming."""
        idx = self.pos + offset
        if idx >= len(self.source):
            return '\0'
        return self.source[idx]

    def _advance(self) -> str:
        """Consume and return current character."""
        if self.pos >= len(self.source):
            return '\0'
        ch = self.source[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _match(self, expected: str) -> bool:
        """Consume character if it matches expected."""
        if self._peek() == expected:
            self._advance()
            return True
        return False

    def _is_at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _make_token(self, token_type: TokenType, value, start: SourceLocation,
                    lexeme: Optional[str] = None) -> Token:
        span = self._span(start)
        if lexeme is None:
            lexeme = self.source[start.offset:self.pos]
        return Token(token_type, value, lexeme, span)

    def _skip_whitespace_and_comments(self) -> None:
        while not self._is_at_end():
            ch = self._peek()
            if ch in ' \t\r\n':
                self._advance()
            elif ch == '/' and self._peek(1) == '/':
                while self._peek() != '\n' and not self._is_at_end():
                    self._advance()
            else:
                break

    def _scan_string(self) -> Token:
        """Scan a string literal."""
        start = self._location()
        self._advance()  # consume opening quote

        chars = []
        while not self._is_at_end() and self._peek() != '"':
            ch = self._advance()
            if ch == '\\':
                if self._is_at_end():
                    break
                escaped = self._advance()
                chars.append(_ESCAPES.get(escaped, escaped))
            else:
                chars.append(ch)

        if self._is_at_end():
            raise error_unterminated_string(
                self._span(start),
                self.get_source_line(start.line)
            )

        self._advance()  # consume closing quote
        return self._make_token(TokenType.STRING, ''.join(chars), start)

    def _scan_number(self) -> Token:
        """Scan a numeric literal; one '.' makes it a float."""
        start = self._location()
        has_dot = False
        while _is_digit(self._peek()) or self._peek() == '.':
            if self._peek() == '.':
                if has_dot:
                    break
                has_dot = True
            self._advance()

        lexeme = self.source[start.offset:self.pos]
        value = float(lexeme) if has_dot else int(lexeme)
        return self._make_token(TokenType.NUMBER, value, start, lexeme)

    def _scan_identifier_or_keyword(self) -> Token:
        """Scan an identifier, keyword or marked name."""
        start = self._location()
        self._advance()  # first character (letter, '_' or '@')

        while self._peek().isalnum() or self._peek() == '_':
            self._advance()

        lexeme = self.source[start.offset:self.pos]

        if lexeme.startswith(EVENT_MARKER):
            return self._make_token(TokenType.EVENT_TRIGGER, lexeme, start, lexeme)

        name = lexeme
        if lexeme.startswith(ENC_MARKER):
            name = lexeme[len(ENC_MARKER):]
            if not name:
                raise error_empty_encrypted_name(
                    self._span(start), self.get_source_line(start.line)
                )

        if name in KEYWORDS:
            token_type = KEYWORDS[name]
            value = name == "true" if token_type == TokenType.BOOLEAN else name
            return self._make_token(token_type, value, start, lexeme)

        return self._make_token(TokenType.IDENTIFIER, lexeme, start, lexeme)

    def _scan_token(self) -> Token:
        """Scan the next token."""
        self._skip_whitespace_and_comments()

        if self._is_at_end():
            return self._make_token(TokenType.EOF, None, self._location(), "")

        start = self._location()
        ch = self._peek()

        if ch == '"':
            return self._scan_string()

        if _is_digit(ch):
            return self._scan_number()

        if ch.isalpha() or ch == '_' or (ch == '@' and self._peek(1).isalpha()):
            return self._scan_identifier_or_keyword()

        self._advance()

        pairs = _DOUBLE_CHAR_TOKENS.get(ch, {})
        second = self._peek()
        if second in pairs:
            self._advance()
            return self._make_token(pairs[second], ch + second, start)

        if ch in _SINGLE_CHAR_TOKENS:
            return self._make_token(_SINGLE_CHAR_TOKENS[ch], ch, start)

        # Lone '&', '|', '@' and anything unknown
        raise error_unexpected_character(
            ch, self._span(start), self.get_source_line(start.line)
        )

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source, returning a list of tokens."""
        tokens = []
        while True:
            token = self._scan_token()
            tokens.append(token)
            if token.type == TokenType.EOF:
                break
        return tokens

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self._scan_token()
            yield token
            if token.type == TokenType.EOF:
                break


def tokenize(source: str, filename: Optional[str] = None) -> List[Token]:
    """
    Convenience function to tokenize source code.

    Args:
        source: The source code to tokenize
        filename: Optional filename for error messages

    Returns:
        List of tokens ending with EOF

    Raises:
        LexerError: If tokenization fails
    """
    lexer = Lexer(source, filename)
    return lexer.tokenize()
