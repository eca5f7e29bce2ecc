"""Conversion functions."""

from datetime import datetime, timezone
from typing import Any

from formulaforge.formulas.builtins._args import P
from formulaforge.formulas.errors import ErrorKind, ErrorValue
from formulaforge.formulas.functions import FunctionCategory, FunctionDefinition
from formulaforge.formulas.values import (
    is_date,
    kind_of,
    to_bool,
    to_date,
    to_number,
    truncate_to_millis,
)


def _value(value: Any) -> Any:
    """Number from a number, numeric text or Boolean; anything else is an Error."""
    if value is None:
        return None
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    number = to_number(value)
    if number is None:
        shown = value if isinstance(value, str) else kind_of(value)
        return ErrorValue(ErrorKind.TYPE_MISMATCH, f"Cannot convert '{shown}' to a number")
    return number


def _boolean(value: Any) -> bool:
    return to_bool(value)


def parse_date(text: str) -> datetime | None:
    """Parse ISO 8601 text (``Z`` suffix allowed) to a UTC date, or None."""
    candidate = text.strip()
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return truncate_to_millis(parsed.astimezone(timezone.utc))


def _date_value(value: Any) -> Any:
    if value is None:
        return None
    if is_date(value):
        return to_date(value)
    if isinstance(value, str):
        parsed = parse_date(value)
        if parsed is not None:
            return parsed
        return ErrorValue(ErrorKind.TYPE_MISMATCH, f"Cannot convert '{value}' to a date")
    return ErrorValue(ErrorKind.TYPE_MISMATCH, f"Cannot convert {kind_of(value)} to a date")


FUNCTIONS = [
    FunctionDefinition(
        name="Value",
        description="Converts text to a number; unparseable text is an error",
        category=FunctionCategory.CONVERSION,
        parameters=[P("value", "any", "Text or number to convert")],
        return_type="number",
        examples=['Value("42.5")'],
        implementation=_value,
    ),
    FunctionDefinition(
        name="Boolean",
        description=(
            "Truthiness: non-zero numbers, non-empty text and non-empty lists are true; "
            "Null is false"
        ),
        category=FunctionCategory.CONVERSION,
        parameters=[P("value", "any", "The value to convert")],
        return_type="boolean",
        implementation=_boolean,
    ),
    FunctionDefinition(
        name="DateValue",
        description="Parses ISO 8601 text to a date; unparseable text is an error",
        category=FunctionCategory.CONVERSION,
        parameters=[P("text", "text", "ISO 8601 date or date-time")],
        return_type="date",
        examples=['DateValue("2024-01-31")', 'DateValue("2024-01-31T08:00:00Z")'],
        implementation=_date_value,
    ),
]
