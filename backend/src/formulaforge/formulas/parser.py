"""Parser for the formula language.

Converts a stream of tokens into an Abstract Syntax Tree (AST).
Uses recursive descent parsing with operator precedence.

Operator Precedence (lowest to highest):
1. if ... then ... else ...
2. || (Or)
3. && (And)
4. = != <>
5. < <= > >= (non-associative)
6. + -
7. * / %
8. ! (Not) - (unary)
9. . (field access) [] (index)
10. literals, names, (grouping), calls, [lists], {records}
"""

from dataclasses import dataclass, field
from typing import Any

from formulaforge.formulas.errors import LexerError, ParseError, Span
from formulaforge.formulas.functions import FunctionRegistry
from formulaforge.formulas.lexer import Lexer, Token, TokenType

# Nested groupings/calls/unary operators allowed before the parser gives up
MAX_NESTING = 48

NO_SPAN = Span(0, 0)


# -----------------------------------------------------------------------------
# AST Node Types
# -----------------------------------------------------------------------------
#
# Nodes are immutable. Spans are excluded from equality so that trees can be
# compared structurally.


@dataclass(frozen=True)
class ASTNode:
    """Base class for AST nodes."""


@dataclass(frozen=True)
class Literal(ASTNode):
    """A literal value (number, string, boolean, null)."""

    value: Any
    span: Span = field(default=NO_SPAN, compare=False, repr=False)


@dataclass(frozen=True)
class VarRef(ASTNode):
    """A name resolved against the evaluation context."""

    name: str
    span: Span = field(default=NO_SPAN, compare=False, repr=False)


@dataclass(frozen=True)
class FieldAccess(ASTNode):
    """Dot notation (e.g., customer.name, orders.amount, items.1)."""

    target: ASTNode
    name: str
    span: Span = field(default=NO_SPAN, compare=False, repr=False)


@dataclass(frozen=True)
class Index(ASTNode):
    """Bracket notation (e.g., items[1], row["key"])."""

    target: ASTNode
    index: ASTNode
    span: Span = field(default=NO_SPAN, compare=False, repr=False)


@dataclass(frozen=True)
class UnaryOp(ASTNode):
    """Unary operation (``-x``, ``!x``, ``Not x``)."""

    operator: str
    operand: ASTNode
    span: Span = field(default=NO_SPAN, compare=False, repr=False)


@dataclass(frozen=True)
class BinaryOp(ASTNode):
    """Binary operation (e.g., a + b, x = y)."""

    operator: str
    left: ASTNode
    right: ASTNode
    span: Span = field(default=NO_SPAN, compare=False, repr=False)


@dataclass(frozen=True)
class Call(ASTNode):
    """Function call. ``name`` keeps the spelling used in the source."""

    name: str
    arguments: tuple[ASTNode, ...] = ()
    span: Span = field(default=NO_SPAN, compare=False, repr=False)
    key: str = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "arguments", tuple(self.arguments))
        object.__setattr__(self, "key", FunctionRegistry.normalize(self.name))


@dataclass(frozen=True)
class If(ASTNode):
    """Keyword conditional ``if cond then a else b``."""

    condition: ASTNode
    then_branch: ASTNode
    else_branch: ASTNode
    span: Span = field(default=NO_SPAN, compare=False, repr=False)


@dataclass(frozen=True)
class ListLiteral(ASTNode):
    """List literal (e.g., [1, 2, 3])."""

    elements: tuple[ASTNode, ...] = ()
    span: Span = field(default=NO_SPAN, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "elements", tuple(self.elements))


@dataclass(frozen=True)
class RecordLiteral(ASTNode):
    """Record literal (e.g., {id: 1, "display name": "A"})."""

    fields: tuple[tuple[str, ASTNode], ...] = ()
    span: Span = field(default=NO_SPAN, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(tuple(pair) for pair in self.fields))


# -----------------------------------------------------------------------------
# Parser
# -----------------------------------------------------------------------------

_EQUALITY_OPS = {
    TokenType.EQ: "=",
    TokenType.NEQ: "!=",
}

_COMPARISON_OPS = {
    TokenType.LT: "<",
    TokenType.LTE: "<=",
    TokenType.GT: ">",
    TokenType.GTE: ">=",
}

_ADDITIVE_OPS = {
    TokenType.PLUS: "+",
    TokenType.MINUS: "-",
}

_MULTIPLICATIVE_OPS = {
    TokenType.MULTIPLY: "*",
    TokenType.DIVIDE: "/",
    TokenType.MODULO: "%",
}

# Word operators that may also be written as calls: And(a, b), Or(...), Not(x)
_CALLABLE_KEYWORDS = {TokenType.AND, TokenType.OR, TokenType.NOT, TokenType.IF}


def _describe(token: Token) -> str:
    if token.type == TokenType.EOF:
        return "end of expression"
    if token.type == TokenType.STRING:
        return f"string {token.value!r}"
    if token.type == TokenType.NUMBER:
        return f"number {token.value:g}"
    if token.type == TokenType.BOOLEAN:
        return "'true'" if token.value else "'false'"
    if token.type == TokenType.NULL:
        return "'null'"
    return f"'{token.value}'"


class Parser:
    """Recursive descent parser for the formula language.

    Usage:
        parser = Parser('If(age >= 18, "adult", "minor")')
        ast = parser.parse()
    """

    def __init__(self, source: str, check_arity: bool = True):
        self.source = source
        self.check_arity = check_arity
        try:
            self.tokens = Lexer(source).tokenize()
        except LexerError as exc:
            raise ParseError(exc.message, exc.span) from exc
        self.position = 0
        self._depth = 0

    def parse(self) -> ASTNode:
        """Parse the expression and return the AST root."""
        if self._current().type == TokenType.EOF:
            raise ParseError("Empty expression", Span(0, len(self.source)))

        try:
            ast = self._parse_expression()
        except RecursionError:
            raise ParseError(
                "Expression is nested too deeply", Span(0, len(self.source))
            ) from None

        if not self._is_at_end():
            raise self._error(f"Unexpected {_describe(self._current())}")

        return ast

    # -------------------------------------------------------------------------
    # Helper methods
    # -------------------------------------------------------------------------

    def _current(self) -> Token:
        """Get current token."""
        return self.tokens[min(self.position, len(self.tokens) - 1)]

    def _peek(self, offset: int = 1) -> Token:
        """Peek at a token without consuming it."""
        return self.tokens[min(self.position + offset, len(self.tokens) - 1)]

    def _is_at_end(self) -> bool:
        """Check if we've consumed all tokens."""
        return self._current().type == TokenType.EOF

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._current()
        if token.type != TokenType.EOF:
            self.position += 1
        return token

    def _match(self, *types: TokenType) -> bool:
        """Check if current token matches any of the given types."""
        return self._current().type in types

    def _consume(self, token_type: TokenType, message: str) -> Token:
        """Consume a token of the expected type, or raise error."""
        if self._current().type == token_type:
            return self._advance()
        raise self._error(f"{message}, found {_describe(self._current())}")

    def _error(self, message: str, token: Token | None = None) -> ParseError:
        token = token or self._current()
        return ParseError(message, Span(token.position, token.end))

    def _nest(self) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING:
            raise self._error(
                f"Expression is nested too deeply (limit {MAX_NESTING} levels)"
            )

    def _unnest(self) -> None:
        self._depth -= 1

    # -------------------------------------------------------------------------
    # Parsing methods (in order of precedence, lowest to highest)
    # -------------------------------------------------------------------------

    def _parse_expression(self) -> ASTNode:
        self._nest()
        try:
            return self._parse_or()
        finally:
            self._unnest()

    def _parse_or(self) -> ASTNode:
        """Parse OR expression."""
        left = self._parse_and()

        while self._match(TokenType.OR):
            self._advance()
            right = self._parse_and()
            left = BinaryOp("||", left, right, Span(left.span.start, right.span.end))

        return left

    def _parse_and(self) -> ASTNode:
        """Parse AND expression."""
        left = self._parse_equality()

        while self._match(TokenType.AND):
            self._advance()
            right = self._parse_equality()
            left = BinaryOp("&&", left, right, Span(left.span.start, right.span.end))

        return left

    def _parse_equality(self) -> ASTNode:
        """Parse equality expression (=, !=, <>)."""
        left = self._parse_comparison()

        while self._current().type in _EQUALITY_OPS:
            op = _EQUALITY_OPS[self._advance().type]
            right = self._parse_comparison()
            left = BinaryOp(op, left, right, Span(left.span.start, right.span.end))

        return left

    def _parse_comparison(self) -> ASTNode:
        """Parse comparison expression (<, <=, >, >=). Chaining is rejected."""
        left = self._parse_additive()

        if self._current().type not in _COMPARISON_OPS:
            return left

        op = _COMPARISON_OPS[self._advance().type]
        right = self._parse_additive()
        node = BinaryOp(op, left, right, Span(left.span.start, right.span.end))

        if self._current().type in _COMPARISON_OPS:
            raise self._error(
                "Comparison operators cannot be chained; "
                "write 'a < b And b < c' instead of 'a < b < c'"
            )

        return node

    def _parse_additive(self) -> ASTNode:
        """Parse additive expression (+, -)."""
        left = self._parse_multiplicative()

        while self._current().type in _ADDITIVE_OPS:
            op = _ADDITIVE_OPS[self._advance().type]
            right = self._parse_multiplicative()
            left = BinaryOp(op, left, right, Span(left.span.start, right.span.end))

        return left

    def _parse_multiplicative(self) -> ASTNode:
        """Parse multiplicative expression (*, /, %)."""
        left = self._parse_unary()

        while self._current().type in _MULTIPLICATIVE_OPS:
            op = _MULTIPLICATIVE_OPS[self._advance().type]
            right = self._parse_unary()
            left = BinaryOp(op, left, right, Span(left.span.start, right.span.end))

        return left

    def _parse_unary(self) -> ASTNode:
        """Parse unary expression (!, Not, -)."""
        token = self._current()

        if token.type == TokenType.NOT and self._is_word_call(token):
            return self._parse_postfix()

        if token.type in (TokenType.NOT, TokenType.MINUS):
            self._advance()
            self._nest()
            try:
                operand = self._parse_unary()
            finally:
                self._unnest()
            op = "-" if token.type == TokenType.MINUS else "!"
            return UnaryOp(op, operand, Span(token.position, operand.span.end))

        return self._parse_postfix()

    def _parse_postfix(self) -> ASTNode:
        """Parse postfix expressions (field access, index)."""
        expr = self._parse_primary()

        while True:
            if self._match(TokenType.DOT):
                self._advance()
                member = self._current()
                if member.type == TokenType.IDENTIFIER:
                    name = str(member.value)
                elif member.type == TokenType.NUMBER and float(member.value).is_integer():
                    name = str(int(member.value))
                else:
                    raise self._error(
                        f"Expected field name after '.', found {_describe(member)}"
                    )
                self._advance()
                expr = FieldAccess(expr, name, Span(expr.span.start, member.end))

            elif self._match(TokenType.LBRACKET):
                self._advance()
                index = self._parse_expression()
                close = self._consume(TokenType.RBRACKET, "Expected ']' after index")
                expr = Index(expr, index, Span(expr.span.start, close.end))

            else:
                break

        return expr

    def _parse_primary(self) -> ASTNode:
        """Parse primary expression (literals, names, calls, groupings)."""
        token = self._current()
        span = Span(token.position, token.end)

        if token.type in (
            TokenType.NUMBER,
            TokenType.STRING,
            TokenType.BOOLEAN,
            TokenType.NULL,
        ):
            self._advance()
            return Literal(token.value, span)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            if self._match(TokenType.LPAREN):
                return self._parse_function_call(token)
            return VarRef(str(token.value), span)

        if token.type in _CALLABLE_KEYWORDS and self._is_word_call(token):
            self._advance()
            return self._parse_function_call(token)

        if token.type == TokenType.IF:
            return self._parse_if_expression()

        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self._parse_expression()
            self._consume(TokenType.RPAREN, "Expected ')' after expression")
            return expr

        if token.type == TokenType.LBRACKET:
            return self._parse_list_literal()

        if token.type == TokenType.LBRACE:
            return self._parse_record_literal()

        raise self._error(f"Unexpected {_describe(token)}")

    def _is_word_call(self, token: Token) -> bool:
        """True for the current token spelled ``If(``, ``And(``, ``Or(``, ``Not(``."""
        return (
            isinstance(token.value, str)
            and token.value[:1].isalpha()
            and self._peek().type == TokenType.LPAREN
        )

    def _parse_if_expression(self) -> If:
        """Parse ``if cond then a else b``."""
        if_token = self._advance()
        condition = self._parse_expression()
        self._consume(TokenType.THEN, "Expected 'then' after if condition")
        then_branch = self._parse_expression()
        self._consume(TokenType.ELSE, "Expected 'else' in if expression")
        else_branch = self._parse_expression()
        return If(
            condition,
            then_branch,
            else_branch,
            Span(if_token.position, else_branch.span.end),
        )

    def _parse_function_call(self, name_token: Token) -> Call:
        """Parse a function call (arguments in parentheses)."""
        self._consume(TokenType.LPAREN, "Expected '(' after function name")
        arguments = self._parse_arguments(TokenType.RPAREN)
        close = self._consume(TokenType.RPAREN, "Expected ')' after arguments")

        call = Call(
            str(name_token.value),
            arguments,
            Span(name_token.position, close.end),
        )
        if self.check_arity:
            self._check_arity(call)
        return call

    def _check_arity(self, call: Call) -> None:
        """Arity of known functions is checked here; unknown names are left to
        the evaluator so the library can grow after parsing."""
        func_def = FunctionRegistry.lookup(call.name)
        if func_def is None:
            return
        message = func_def.arity_error(len(call.arguments))
        if message:
            raise ParseError(message, call.span)

    def _parse_arguments(self, closing: TokenType) -> list[ASTNode]:
        arguments: list[ASTNode] = []

        if not self._match(closing):
            arguments.append(self._parse_expression())

            while self._match(TokenType.COMMA):
                self._advance()
                arguments.append(self._parse_expression())

        return arguments

    def _parse_list_literal(self) -> ListLiteral:
        """Parse a list literal [a, b, c]."""
        open_token = self._consume(TokenType.LBRACKET, "Expected '['")
        elements = self._parse_arguments(TokenType.RBRACKET)
        close = self._consume(TokenType.RBRACKET, "Expected ']' after list elements")
        return ListLiteral(elements, Span(open_token.position, close.end))

    def _parse_record_literal(self) -> RecordLiteral:
        """Parse a record literal {key: value}."""
        open_token = self._consume(TokenType.LBRACE, "Expected '{'")
        pairs: list[tuple[str, ASTNode]] = []

        if not self._match(TokenType.RBRACE):
            pairs.append(self._parse_record_pair())

            while self._match(TokenType.COMMA):
                self._advance()
                pairs.append(self._parse_record_pair())

        close = self._consume(TokenType.RBRACE, "Expected '}' after record fields")
        return RecordLiteral(pairs, Span(open_token.position, close.end))

    def _parse_record_pair(self) -> tuple[str, ASTNode]:
        """Parse a key-value pair in a record literal."""
        if self._match(TokenType.STRING, TokenType.IDENTIFIER):
            key = str(self._advance().value)
        else:
            raise self._error(
                f"Expected field name in record, found {_describe(self._current())}"
            )

        self._consume(TokenType.COLON, "Expected ':' after field name")

        return key, self._parse_expression()


# -----------------------------------------------------------------------------
# Convenience functions
# -----------------------------------------------------------------------------


@dataclass
class ValidationResult:
    """Outcome of ``validate``: parse only, never evaluate."""

    valid: bool
    error: ParseError | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"valid": self.valid}
        if self.error is not None:
            result["error"] = {
                "message": self.error.message,
                "position": self.error.position,
                "span": self.error.span.to_dict(),
            }
        return result


def parse(source: str) -> ASTNode:
    """Convenience function to parse a formula string.

    Args:
        source: The formula text

    Returns:
        The AST root node

    Raises:
        ParseError: On any lexical or syntax error
    """
    return Parser(source).parse()


def validate(source: str) -> ValidationResult:
    """Check that ``source`` parses, discarding the AST."""
    try:
        parse(source)
    except ParseError as exc:
        return ValidationResult(valid=False, error=exc)
    return ValidationResult(valid=True)
