"""Validation functions.

``IsBlank`` and ``IsError`` see their argument unevaluated so that an
undefined name or a failing expression can be inspected instead of aborting
the whole formula.
"""

from datetime import datetime, timezone
from typing import Any

from formulaforge.formulas.builtins._args import P
from formulaforge.formulas.errors import ErrorKind, ErrorValue, EvaluationError
from formulaforge.formulas.functions import FunctionCategory, FunctionDefinition
from formulaforge.formulas.values import NUMERIC_TEXT, is_list, is_number, is_record, to_date


def _is_blank(evaluator, args, scope) -> Any:
    try:
        value = evaluator.evaluate(args[0], scope)
    except EvaluationError as exc:
        if exc.kind == ErrorKind.UNDEFINED_NAME:
            return True
        raise
    if isinstance(value, ErrorValue):
        return value
    return value is None or value == ""


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if is_list(value) or is_record(value):
        return len(value) == 0
    return False


def _is_error(evaluator, args, scope) -> bool:
    try:
        value = evaluator.evaluate(args[0], scope)
    except EvaluationError as exc:
        if exc.kind == ErrorKind.TIMEOUT:
            raise
        return True
    return isinstance(value, ErrorValue)


def _is_numeric(value: Any) -> bool:
    if is_number(value):
        return True
    return isinstance(value, str) and NUMERIC_TEXT.match(value) is not None


def _is_today(value: Any) -> bool:
    d = to_date(value)
    if d is None:
        return False
    return d.date() == datetime.now(timezone.utc).date()


FUNCTIONS = [
    FunctionDefinition(
        name="IsBlank",
        description="True for Null, empty text or an undefined name",
        category=FunctionCategory.VALIDATION,
        parameters=[P("value", "any", "The value to check")],
        return_type="boolean",
        examples=["IsBlank(middleName)"],
        implementation=_is_blank,
        lazy=True,
    ),
    FunctionDefinition(
        name="IsEmpty",
        description="True for an empty list, an empty record or Null",
        category=FunctionCategory.VALIDATION,
        parameters=[P("value", "list|record", "The value to check")],
        return_type="boolean",
        examples=["IsEmpty(Filter(orders, open))"],
        implementation=_is_empty,
    ),
    FunctionDefinition(
        name="IsError",
        description="True if evaluating the argument produces an error",
        category=FunctionCategory.VALIDATION,
        parameters=[P("value", "any", "The expression to check")],
        return_type="boolean",
        examples=["IsError(1/0)"],
        implementation=_is_error,
        lazy=True,
    ),
    FunctionDefinition(
        name="IsNumeric",
        description="True for numbers and numeric text",
        category=FunctionCategory.VALIDATION,
        parameters=[P("value", "any", "The value to check")],
        return_type="boolean",
        implementation=_is_numeric,
    ),
    FunctionDefinition(
        name="IsToday",
        description="True if a date falls on today's UTC date",
        category=FunctionCategory.VALIDATION,
        parameters=[P("date", "date", "The date to check")],
        return_type="boolean",
        implementation=_is_today,
        pure=False,
    ),
]
