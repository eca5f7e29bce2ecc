"""Utility functions that fit no other category."""

from typing import Any

from formulaforge.formulas.builtins._args import P, require_number
from formulaforge.formulas.errors import ErrorKind, EvaluationError
from formulaforge.formulas.functions import FunctionCategory, FunctionDefinition
from formulaforge.formulas.values import format_number


def _coalesce(*values: Any) -> Any:
    """First argument that is neither Null nor empty text."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _blank() -> None:
    return None


def _rgba(red: Any, green: Any, blue: Any, alpha: Any) -> str:
    channels = []
    limits = ((red, "red", 255), (green, "green", 255), (blue, "blue", 255), (alpha, "alpha", 1))
    for value, name, high in limits:
        number = require_number(value, "RGBA", name)
        if not 0 <= number <= high:
            raise EvaluationError(
                ErrorKind.TYPE_MISMATCH,
                f"RGBA '{name}' must be between 0 and {high}, got {number:g}",
            )
        channels.append(format_number(number))
    return f"rgba({', '.join(channels)})"


FUNCTIONS = [
    FunctionDefinition(
        name="Coalesce",
        description="Returns the first argument that is not blank",
        category=FunctionCategory.OTHER,
        parameters=[P("values", "any", "Candidate values", variadic=True)],
        return_type="any",
        examples=['Coalesce(nickname, firstName, "friend")'],
        implementation=_coalesce,
    ),
    FunctionDefinition(
        name="Blank",
        description="Returns Null",
        category=FunctionCategory.OTHER,
        parameters=[],
        return_type="null",
        implementation=_blank,
    ),
    FunctionDefinition(
        name="RGBA",
        description="Builds a CSS rgba() color text",
        category=FunctionCategory.OTHER,
        parameters=[
            P("red", "number", "0-255"),
            P("green", "number", "0-255"),
            P("blue", "number", "0-255"),
            P("alpha", "number", "0-1"),
        ],
        return_type="text",
        examples=['If(overdue, RGBA(220, 53, 69, 1), RGBA(0, 0, 0, 1))'],
        implementation=_rgba,
    ),
]
