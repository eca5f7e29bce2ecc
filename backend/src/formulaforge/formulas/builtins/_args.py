"""Argument coercion helpers shared by the built-in function modules."""

from datetime import datetime
from typing import Any

from formulaforge.formulas.errors import ErrorKind, ErrorValue, EvaluationError
from formulaforge.formulas.functions import FunctionParameter
from formulaforge.formulas.values import is_list, kind_of, to_date, to_number, to_text

P = FunctionParameter


def mismatch(func: str, param: str, expected: str, value: Any) -> EvaluationError:
    return EvaluationError(
        ErrorKind.TYPE_MISMATCH,
        f"{func} expects {expected} for '{param}', got {kind_of(value)}",
    )


def arithmetic(message: str) -> ErrorValue:
    return ErrorValue(ErrorKind.ARITHMETIC, message)


def require_number(value: Any, func: str, param: str) -> float:
    number = to_number(value)
    if number is None:
        raise mismatch(func, param, "a number", value)
    return number


def require_int(value: Any, func: str, param: str, minimum: int | None = None) -> int:
    number = require_number(value, func, param)
    if not number.is_integer():
        raise mismatch(func, param, "a whole number", value)
    if minimum is not None and number < minimum:
        raise EvaluationError(
            ErrorKind.TYPE_MISMATCH,
            f"{func} expects '{param}' to be at least {minimum}, got {number:g}",
        )
    return int(number)


def require_text(value: Any) -> str:
    """Any value renders as text; Null is the empty string."""
    return to_text(value)


def require_date(value: Any, func: str, param: str) -> datetime:
    result = to_date(value)
    if result is None:
        raise mismatch(func, param, "a date", value)
    return result


def require_list(value: Any, func: str, param: str) -> list[Any]:
    """Lists pass through, Null is an empty list."""
    if value is None:
        return []
    if is_list(value):
        return list(value)
    raise mismatch(func, param, "a list", value)
