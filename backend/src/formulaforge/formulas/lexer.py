"""Lexer/tokenizer for the formula language.

Converts formula text into a stream of tokens for the parser.

Token types:
- Literals: NUMBER, STRING, BOOLEAN, NULL
- Identifiers: IDENTIFIER (field names, function names)
- Keywords: IF, THEN, ELSE
- Operators: comparison, logical (symbolic and And/Or/Not), arithmetic
- Punctuation: LPAREN, RPAREN, LBRACKET, RBRACKET, LBRACE, RBRACE, COMMA, DOT, COLON

Whitespace, ``// line`` and ``/* block */`` comments are skipped.
"""

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator

from formulaforge.formulas.errors import LexerError


class TokenType(Enum):
    """Types of tokens in the formula language."""

    # Literals
    NUMBER = auto()
    STRING = auto()
    BOOLEAN = auto()
    NULL = auto()

    # Identifiers
    IDENTIFIER = auto()

    # Keywords
    IF = auto()
    THEN = auto()
    ELSE = auto()

    # Equality and comparison operators
    EQ = auto()          # = or ==
    NEQ = auto()         # != or <>
    LT = auto()          # <
    LTE = auto()         # <=
    GT = auto()          # >
    GTE = auto()         # >=

    # Logical operators
    AND = auto()         # && or And
    OR = auto()          # || or Or
    NOT = auto()         # ! or Not

    # Arithmetic operators
    PLUS = auto()        # +
    MINUS = auto()       # -
    MULTIPLY = auto()    # *
    DIVIDE = auto()      # /
    MODULO = auto()      # %

    # Punctuation
    LPAREN = auto()      # (
    RPAREN = auto()      # )
    LBRACKET = auto()    # [
    RBRACKET = auto()    # ]
    LBRACE = auto()      # {
    RBRACE = auto()      # }
    COMMA = auto()       # ,
    DOT = auto()         # .
    COLON = auto()       # :

    # End of input
    EOF = auto()


@dataclass(frozen=True)
class Token:
    """A single token from the lexer.

    Attributes:
        type: The token type
        value: The token's value (number, string content, identifier name,
            or the operator/keyword text as written)
        position: Character offset of the first character
        end: Character offset just past the last character
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """

    type: TokenType
    value: str | float | bool | None
    position: int
    end: int
    line: int = 1
    column: int = 1

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, pos={self.position})"


# Token patterns (order matters - longer matches first)
TOKEN_PATTERNS = [
    # Multi-character operators (before single character)
    (r"==", TokenType.EQ),
    (r"!=", TokenType.NEQ),
    (r"<>", TokenType.NEQ),
    (r"<=", TokenType.LTE),
    (r">=", TokenType.GTE),
    (r"&&", TokenType.AND),
    (r"\|\|", TokenType.OR),

    # Single character operators
    (r"=", TokenType.EQ),
    (r"<", TokenType.LT),
    (r">", TokenType.GT),
    (r"!", TokenType.NOT),
    (r"\+", TokenType.PLUS),
    (r"-", TokenType.MINUS),
    (r"\*", TokenType.MULTIPLY),
    (r"/", TokenType.DIVIDE),
    (r"%", TokenType.MODULO),

    # Punctuation
    (r"\(", TokenType.LPAREN),
    (r"\)", TokenType.RPAREN),
    (r"\[", TokenType.LBRACKET),
    (r"\]", TokenType.RBRACKET),
    (r"\{", TokenType.LBRACE),
    (r"\}", TokenType.RBRACE),
    (r",", TokenType.COMMA),
    (r"\.", TokenType.DOT),
    (r":", TokenType.COLON),

    # Numbers (sign is a unary operator, not part of the literal)
    (r"\d+(\.\d+)?([eE][+-]?\d+)?", TokenType.NUMBER),

    # Keywords and identifiers (must come after operators)
    (r"[A-Za-z_][A-Za-z0-9_]*", TokenType.IDENTIFIER),
]

_COMPILED_PATTERNS = [
    (re.compile(pattern), token_type) for pattern, token_type in TOKEN_PATTERNS
]

_WHITESPACE = re.compile(r"\s+")

# Keywords are matched case-insensitively; token values keep the source spelling
KEYWORDS = {
    "true": TokenType.BOOLEAN,
    "false": TokenType.BOOLEAN,
    "null": TokenType.NULL,
    "if": TokenType.IF,
    "then": TokenType.THEN,
    "else": TokenType.ELSE,
    "and": TokenType.AND,
    "or": TokenType.OR,
    "not": TokenType.NOT,
}

_ESCAPES = {
    '"': '"',
    "'": "'",
    "\\": "\\",
    "/": "/",
    "n": "\n",
    "t": "\t",
    "r": "\r",
}


class Lexer:
    """Tokenizer for the formula language.

    Usage:
        lexer = Lexer('status = "active" && count > 0')
        for token in lexer:
            print(token)
    """

    def __init__(self, source: str):
        self.source = source
        self.position = 0
        self.line = 1
        self.column = 1

    def __iter__(self) -> Iterator[Token]:
        """Iterate over all tokens in the source."""
        while True:
            token = self.next_token()
            yield token
            if token.type == TokenType.EOF:
                break

    def next_token(self) -> Token:
        """Get the next token from the source."""
        self._skip_trivia()

        if self.position >= len(self.source):
            return Token(
                TokenType.EOF, None, self.position, self.position, self.line, self.column
            )

        start_pos = self.position
        start_line = self.line
        start_column = self.column

        char = self.source[self.position]
        if char in "\"'":
            value = self._read_string(char)
            return Token(
                TokenType.STRING, value, start_pos, self.position, start_line, start_column
            )

        for pattern, token_type in _COMPILED_PATTERNS:
            match = pattern.match(self.source, self.position)
            if not match:
                continue

            text = match.group()
            self._advance(len(text))
            token_value: str | float | bool | None = text

            if token_type == TokenType.NUMBER:
                token_value = float(text)

            elif token_type == TokenType.IDENTIFIER:
                keyword_type = KEYWORDS.get(text.lower())
                if keyword_type is not None:
                    token_type = keyword_type
                    if keyword_type == TokenType.BOOLEAN:
                        token_value = text.lower() == "true"
                    elif keyword_type == TokenType.NULL:
                        token_value = None

            return Token(
                token_type, token_value, start_pos, self.position, start_line, start_column
            )

        raise LexerError(
            f"Unexpected character '{char}'",
            self.position,
            self.line,
            self.column,
        )

    def tokenize(self) -> list[Token]:
        """Tokenize the entire source and return list of tokens."""
        return list(self)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _advance(self, count: int) -> None:
        """Advance position by count characters, updating line/column."""
        for _ in range(count):
            if self.position < len(self.source):
                if self.source[self.position] == "\n":
                    self.line += 1
                    self.column = 1
                else:
                    self.column += 1
                self.position += 1

    def _skip_trivia(self) -> None:
        """Skip whitespace and comments."""
        while self.position < len(self.source):
            match = _WHITESPACE.match(self.source, self.position)
            if match:
                self._advance(len(match.group()))
                continue

            if self.source.startswith("//", self.position):
                newline = self.source.find("\n", self.position)
                end = len(self.source) if newline == -1 else newline
                self._advance(end - self.position)
                continue

            if self.source.startswith("/*", self.position):
                close = self.source.find("*/", self.position + 2)
                if close == -1:
                    raise LexerError(
                        "Unterminated block comment", self.position, self.line, self.column
                    )
                self._advance(close + 2 - self.position)
                continue

            break

    def _read_string(self, quote: str) -> str:
        """Read a quoted string starting at the current position."""
        start_pos, start_line, start_column = self.position, self.line, self.column
        self._advance(1)
        result = []

        while self.position < len(self.source):
            char = self.source[self.position]

            if char == quote:
                self._advance(1)
                return "".join(result)

            if char == "\\":
                result.append(self._read_escape())
                continue

            result.append(char)
            self._advance(1)

        raise LexerError("Unterminated string", start_pos, start_line, start_column)

    def _read_escape(self) -> str:
        """Decode the escape sequence at the current backslash."""
        escape_pos, escape_line, escape_column = self.position, self.line, self.column
        if self.position + 1 >= len(self.source):
            raise LexerError("Unterminated string", escape_pos, escape_line, escape_column)

        code = self.source[self.position + 1]
        if code in _ESCAPES:
            self._advance(2)
            return _ESCAPES[code]

        if code == "u":
            digits = self.source[self.position + 2:self.position + 6]
            if len(digits) == 4 and all(c in "0123456789abcdefABCDEF" for c in digits):
                self._advance(6)
                return chr(int(digits, 16))
            raise LexerError(
                "Invalid unicode escape, expected \\uXXXX",
                escape_pos,
                escape_line,
                escape_column,
            )

        raise LexerError(
            f"Invalid escape sequence '\\{code}'", escape_pos, escape_line, escape_column
        )


def tokenize(source: str) -> list[Token]:
    """Convenience function to tokenize a formula string."""
    return Lexer(source).tokenize()
