"""Error types for the formula engine.

Two families of failure exist:

- Exceptions (``FormulaError`` and subclasses) abort the current call. The
  lexer and parser raise ``ParseError``; the evaluator raises
  ``EvaluationError`` for structural problems such as unknown names.
- ``ErrorValue`` is a first-class value. Built-ins return it for domain
  failures (division by zero, ``Sqrt`` of a negative) so that ``IsError``
  and ``IfError`` can inspect it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Error codes shared by the engine and the HTTP payloads."""

    PARSE_ERROR = "PARSE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_FUNCTION = "UNKNOWN_FUNCTION"
    ARITY_MISMATCH = "ARITY_MISMATCH"
    TYPE_MISMATCH = "TYPE_MISMATCH"
    UNDEFINED_NAME = "UNDEFINED_NAME"
    ARITHMETIC = "ARITHMETIC"
    HIT_POLICY_VIOLATION = "HIT_POLICY_VIOLATION"
    TIMEOUT = "TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class Span:
    """Half-open character range ``[start, end)`` in the formula source."""

    start: int
    end: int

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class ErrorValue:
    """An ``Error`` value produced during evaluation.

    Attributes:
        kind: The error code
        message: Human-readable description
    """

    kind: ErrorKind
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind.value, "message": self.message}


class FormulaError(Exception):
    """Base class for all engine exceptions."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        kind: ErrorKind | None = None,
        span: Span | None = None,
    ):
        self.message = message
        if kind is not None:
            self.kind = kind
        self.span = span
        super().__init__(message)

    @property
    def position(self) -> int | None:
        return self.span.start if self.span is not None else None

    def to_dict(self) -> dict[str, Any]:
        """Render as the error payload used by the HTTP surface."""
        payload: dict[str, Any] = {
            "success": False,
            "error": self.kind.value,
            "message": self.message,
        }
        if self.span is not None:
            payload["position"] = self.span.start
            payload["span"] = self.span.to_dict()
        return payload


class LexerError(FormulaError):
    """Error during lexical analysis."""

    kind = ErrorKind.PARSE_ERROR

    def __init__(self, message: str, position: int, line: int = 1, column: int = 1):
        self.line = line
        self.column = column
        super().__init__(message, span=Span(position, position + 1))

    def __str__(self) -> str:
        return f"{self.message} at line {self.line}, column {self.column}"


class ParseError(FormulaError):
    """Error during parsing (including wrapped lexer errors)."""

    kind = ErrorKind.PARSE_ERROR

    def __init__(self, message: str, span: Span):
        super().__init__(message, span=span)

    def __str__(self) -> str:
        return f"{self.message} at position {self.span.start}"


class EvaluationError(FormulaError):
    """Error during expression evaluation."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        span: Span | None = None,
    ):
        super().__init__(message, kind=kind, span=span)

    @classmethod
    def from_value(cls, value: ErrorValue, span: Span | None = None) -> "EvaluationError":
        """Promote an ``ErrorValue`` that reached the top of an evaluation."""
        return cls(value.kind, value.message, span)

    def to_value(self) -> ErrorValue:
        return ErrorValue(self.kind, self.message)


class DuplicateFunctionError(ValueError):
    """A different function is already registered under the same name."""


class CatalogError(ValueError):
    """A persisted function catalog names a function with no native implementation."""
