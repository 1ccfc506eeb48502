"""
Recursive descent parser for vaultscript.

Converts a token stream into a list of statement nodes. Statement and block
boundaries come from the grammar itself: a block is parsed recursively up
to its matching '}', so semicolons inside nested blocks never end the
enclosing statement.
"""

from typing import List, Optional
from .tokens import Token, TokenType, SourceSpan, ASSIGNMENT_OPERATORS
from .ast import (
    AstNode, Expression,
    Literal, ArrayLiteral, Variable, Assign, AssignIndex, Index, Binary,
    Unary, FunctionCall, ObjectMethodCall,
    Print, If, For, While, Input, FunctionDef, Return, Use, EventTrigger,
    ExpressionStatement,
)
from .errors import (
    error_unexpected_token,
    error_unexpected_eof,
    error_invalid_assignment_target,
)


SCHEDULE_UNITS = ("seconds", "minutes", "hours")


class Parser:
    """
    Recursive descent parser for vaultscript.

    Usage:
        parser = Parser(tokens)
        statements = parser.parse_program()

    Expression precedence, lowest first:
        = += -= *= /=   (right-associative)
        ||
        &&
        == !=
        < > <= >=
        + -
        * / %
        prefix ++ -- ! -
        postfix ++ --
        indexing and .method() calls
    """

    # Operator precedence levels (higher = tighter binding)
    PRECEDENCE = {
        TokenType.OR: 1,
        TokenType.AND: 2,
        TokenType.EQ: 3,
        TokenType.NE: 3,
        TokenType.LT: 4,
        TokenType.GT: 4,
        TokenType.LE: 4,
        TokenType.GE: 4,
        TokenType.PLUS: 5,
        TokenType.MINUS: 5,
        TokenType.STAR: 6,
        TokenType.SLASH: 6,
        TokenType.PERCENT: 6,
    }

    PREFIX_OPERATORS = (
        TokenType.INCREMENT, TokenType.DECREMENT, TokenType.NOT, TokenType.MINUS,
    )

    def __init__(self, tokens: List[Token], source: Optional[str] = None):
        self.tokens = tokens
        self.pos = 0
        self._lines = source.splitlines() if source else []

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[idx]

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        return self._current().type == token_type

    def _check_any(self, *token_types: TokenType) -> bool:
        return self._current().type in token_types

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Consume token of expected type, or raise error."""
        if self._check(token_type):
            return self._advance()
        self._error(expected)

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        """Consume token if it matches any of the given types."""
        if self._current().type in token_types:
            return self._advance()
        return None

    def _source_line(self, line: int) -> Optional[str]:
        if 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return None

    def _error(self, expected: str) -> None:
        """Raise a parser error at the current token."""
        token = self._current()
        if token.type == TokenType.EOF:
            raise error_unexpected_eof(expected, token.span)
        raise error_unexpected_token(
            expected, f"'{token.lexeme}'", token.span,
            self._source_line(token.line),
        )

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to the last consumed token."""
        end_token = self.tokens[max(0, self.pos - 1)]
        return SourceSpan(start.span.start, end_token.span.end)

    # =========================================================================
    # Expression Parsing (Precedence Climbing)
    # =========================================================================

    def _parse_expression(self) -> Expression:
        return self._parse_assignment()

    def _parse_assignment(self) -> Expression:
        """Parse an assignment, or fall through to a binary expression."""
        target = self._parse_binary_expr(1)

        if self._current().type not in ASSIGNMENT_OPERATORS:
            return target

        op_token = self._advance()
        operator = ASSIGNMENT_OPERATORS[op_token.type]
        value = self._parse_assignment()  # right-associative
        span = SourceSpan(target.span.start, value.span.end)

        if isinstance(target, Variable):
            return Assign(span=span, name=target.name, operator=operator, value=value)
        if isinstance(target, Index):
            return AssignIndex(
                span=span,
                target=target.target,
                index=target.index,
                operator=operator,
                value=value,
            )
        raise error_invalid_assignment_target(
            target.span, self._source_line(target.span.start.line)
        )

    def _parse_binary_expr(self, min_precedence: int) -> Expression:
        """Parse binary expressions with precedence climbing."""
        left = self._parse_unary_expr()

        while True:
            op_token = self._current()
            precedence = self.PRECEDENCE.get(op_token.type)

            if precedence is None or precedence < min_precedence:
                break

            self._advance()
            right = self._parse_binary_expr(precedence + 1)
            left = Binary(
                span=SourceSpan(left.span.start, right.span.end),
                left=left,
                operator=op_token.lexeme,
                right=right,
            )

        return left

    def _parse_unary_expr(self) -> Expression:
        """Parse prefix unary expressions (++x, --x, !x, -x)."""
        if self._check_any(*self.PREFIX_OPERATORS):
            op = self._advance()
            operand = self._parse_unary_expr()
            return Unary(
                span=SourceSpan(op.span.start, operand.span.end),
                operator=op.lexeme,
                operand=operand,
                prefix=True,
            )

        return self._parse_postfix_unary()

    def _parse_postfix_unary(self) -> Expression:
        """Parse postfix x++ and x--."""
        expr = self._parse_postfix_expr()

        while self._check_any(TokenType.INCREMENT, TokenType.DECREMENT):
            op = self._advance()
            expr = Unary(
                span=SourceSpan(expr.span.start, op.span.end),
                operator=op.lexeme,
                operand=expr,
                prefix=False,
            )

        return expr

    def _parse_postfix_expr(self) -> Expression:
        """Parse indexing and method calls chained onto a primary."""
        expr = self._parse_primary_expr()

        while True:
            if self._match(TokenType.LBRACKET):
                index = self._parse_expression()
                self._consume(TokenType.RBRACKET, "']'")
                expr = Index(
                    span=SourceSpan(expr.span.start, self.tokens[self.pos - 1].span.end),
                    target=expr,
                    index=index,
                )
            elif self._match(TokenType.DOT):
                method = self._consume(TokenType.IDENTIFIER, "method name").lexeme
                arguments = self._parse_arguments()
                expr = ObjectMethodCall(
                    span=SourceSpan(expr.span.start, self.tokens[self.pos - 1].span.end),
                    target=expr,
                    method=method,
                    arguments=arguments,
                )
            else:
                break

        return expr

    def _parse_arguments(self) -> List[Expression]:
        """Parse a parenthesised, comma-separated argument list."""
        self._consume(TokenType.LPAREN, "'('")
        args = []
        if not self._check(TokenType.RPAREN):
            args.append(self._parse_expression())
            while self._match(TokenType.COMMA):
                args.append(self._parse_expression())
        self._consume(TokenType.RPAREN, "')'")
        return args

    def _parse_primary_expr(self) -> Expression:
        """Parse literals, names, calls, groups and list literals."""
        token = self._current()

        if token.type in (TokenType.NUMBER, TokenType.STRING, TokenType.BOOLEAN):
            self._advance()
            return Literal(span=token.span, value=token.value)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            if self._check(TokenType.LPAREN):
                arguments = self._parse_arguments()
                return FunctionCall(
                    span=self._span_from(token),
                    name=token.lexeme,
                    arguments=arguments,
                )
            return Variable(span=token.span, name=token.lexeme)

        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self._parse_expression()
            self._consume(TokenType.RPAREN, "')'")
            return expr

        if token.type == TokenType.LBRACKET:
            return self._parse_array_literal()

        self._error("expression")

    def _parse_array_literal(self) -> ArrayLiteral:
        start = self._advance()  # consume '['
        elements = []
        if not self._check(TokenType.RBRACKET):
            elements.append(self._parse_expression())
            while self._match(TokenType.COMMA):
                elements.append(self._parse_expression())
        self._consume(TokenType.RBRACKET, "']'")
        return ArrayLiteral(span=self._span_from(start), elements=elements)

    # =========================================================================
    # Statement Parsing
    # =========================================================================

    def _parse_statement(self) -> AstNode:
        """Parse one statement, including its terminator."""
        token_type = self._current().type

        if token_type == TokenType.FUNCTION:
            return self._parse_function_def()
        if token_type == TokenType.RETURN:
            return self._parse_return_statement()
        if token_type == TokenType.FOR:
            return self._parse_for_statement()
        if token_type == TokenType.WHILE:
            return self._parse_while_statement()
        if token_type == TokenType.IF:
            return self._parse_if_statement()
        if token_type == TokenType.PRINT:
            return self._parse_print_statement()
        if token_type == TokenType.INPUT:
            return self._parse_input_statement()
        if token_type == TokenType.USE:
            return self._parse_use_statement()
        if token_type == TokenType.EVENT_TRIGGER:
            return self._parse_event_trigger()

        start = self._current()
        expression = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';'")
        return ExpressionStatement(span=self._span_from(start), expression=expression)

    def _parse_block(self) -> List[AstNode]:
        """Parse a brace-delimited block of statements."""
        self._consume(TokenType.LBRACE, "'{'")
        statements = []
        while not self._check(TokenType.RBRACE) and not self._is_at_end():
            statements.append(self._parse_statement())
        self._consume(TokenType.RBRACE, "'}'")
        return statements

    def _parse_function_def(self) -> FunctionDef:
        """Parse `function name(a, b){ ... };`"""
        start = self._advance()  # consume 'function'
        name = self._consume(TokenType.IDENTIFIER, "function name").lexeme

        self._consume(TokenType.LPAREN, "'('")
        parameters = []
        if not self._check(TokenType.RPAREN):
            parameters.append(self._consume(TokenType.IDENTIFIER, "parameter name").lexeme)
            while self._match(TokenType.COMMA):
                parameters.append(self._consume(TokenType.IDENTIFIER, "parameter name").lexeme)
        self._consume(TokenType.RPAREN, "')'")

        body = self._parse_block()
        self._consume(TokenType.SEMICOLON, "';' after function body")

        return FunctionDef(
            span=self._span_from(start),
            name=name,
            parameters=parameters,
            body=body,
        )

    def _parse_return_statement(self) -> Return:
        start = self._advance()  # consume 'return'
        value = None
        if not self._check(TokenType.SEMICOLON):
            value = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';'")
        return Return(span=self._span_from(start), value=value)

    def _parse_for_statement(self) -> For:
        """Parse `for(init; cond; incr){ ... }`"""
        start = self._advance()  # consume 'for'
        self._consume(TokenType.LPAREN, "'('")
        init = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';'")
        condition = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';'")
        increment = self._parse_expression()
        self._consume(TokenType.RPAREN, "')'")
        body = self._parse_block()

        return For(
            span=self._span_from(start),
            init=init,
            condition=condition,
            increment=increment,
            body=body,
        )

    def _parse_while_statement(self) -> While:
        start = self._advance()  # consume 'while'
        self._consume(TokenType.LPAREN, "'('")
        condition = self._parse_expression()
        self._consume(TokenType.RPAREN, "')'")
        body = self._parse_block()
        return While(span=self._span_from(start), condition=condition, body=body)

    def _parse_if_statement(self) -> If:
        """Parse `if(cond){...}` with optional `else {...}` or `else if`."""
        start = self._advance()  # consume 'if'
        self._consume(TokenType.LPAREN, "'('")
        condition = self._parse_expression()
        self._consume(TokenType.RPAREN, "')'")
        then_branch = self._parse_block()

        else_branch = None
        if self._match(TokenType.ELSE):
            if self._check(TokenType.IF):
                else_branch = [self._parse_if_statement()]
            else:
                else_branch = self._parse_block()

        return If(
            span=self._span_from(start),
            condition=condition,
            then_branch=then_branch,
            else_branch=else_branch,
        )

    def _parse_print_statement(self) -> Print:
        start = self._advance()  # consume 'print'
        self._consume(TokenType.ARROW, "'->'")
        expression = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';'")
        return Print(span=self._span_from(start), expression=expression)

    def _parse_input_statement(self) -> Input:
        """Parse `input-> prompt -> target;`"""
        start = self._advance()  # consume 'input'
        self._consume(TokenType.ARROW, "'->'")
        prompt = self._parse_expression()
        self._consume(TokenType.ARROW, "'->'")
        target = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';'")
        return Input(span=self._span_from(start), prompt=prompt, target=target)

    def _parse_use_statement(self) -> Use:
        start = self._advance()  # consume 'use'
        library = self._consume(TokenType.IDENTIFIER, "library name").lexeme
        self._consume(TokenType.SEMICOLON, "';'")
        return Use(span=self._span_from(start), library=library)

    def _at_unit_name(self) -> bool:
        token = self._current()
        return (
            token.type == TokenType.IDENTIFIER
            and token.lexeme.lower() in SCHEDULE_UNITS
            and self._peek(1).type in (TokenType.COMMA, TokenType.RPAREN)
        )

    def _parse_event_trigger(self) -> EventTrigger:
        """Parse `@EVENT_TRIGGER(time [, unit] [, times]) -> statement`"""
        start = self._advance()  # consume '@EVENT_TRIGGER'
        self._consume(TokenType.LPAREN, "'('")
        time = self._parse_expression()

        unit = None
        times = None
        if self._match(TokenType.COMMA):
            if self._at_unit_name():
                unit = self._advance().lexeme.lower()
                if self._match(TokenType.COMMA):
                    times = self._parse_expression()
            else:
                times = self._parse_expression()
        self._consume(TokenType.RPAREN, "')'")

        self._consume(TokenType.ARROW, "'->'")
        action = self._parse_statement()

        return EventTrigger(
            span=self._span_from(start),
            time=time,
            unit=unit,
            action=action,
            times=times,
        )

    def parse_program(self) -> List[AstNode]:
        """Parse statements until end of file."""
        statements = []
        while not self._is_at_end():
            statements.append(self._parse_statement())
        return statements


def parse(tokens: List[Token], source: Optional[str] = None) -> List[AstNode]:
    """
    Convenience function to parse tokens into a statement list.

    Args:
        tokens: List of tokens from the lexer
        source: Optional original source, used to quote lines in errors

    Returns:
        List of statement nodes

    Raises:
        ParserError: If parsing fails
    """
    parser = Parser(tokens, source)
    return parser.parse_program()
