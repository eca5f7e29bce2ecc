"""Value model helpers for the formula engine.

Formula values are plain Python objects:

    Null    -> None
    Bool    -> bool
    Number  -> float (int and Decimal inputs are accepted and coerced)
    Text    -> str
    Date    -> datetime (timezone-aware, UTC, millisecond resolution)
    List    -> list
    Record  -> dict[str, Any]
    Error   -> ErrorValue

Numbers are IEEE-754 doubles; integers are exact within +/- 2**53.
"""

import json
import math
import re
from collections.abc import Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from formulaforge.formulas.errors import ErrorKind, ErrorValue, EvaluationError

MAX_EXACT_INTEGER = 2**53

NUMERIC_TEXT = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


def is_number(value: Any) -> bool:
    """True for numeric values (bool is not a number)."""
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def is_date(value: Any) -> bool:
    return isinstance(value, (date, datetime))


def is_record(value: Any) -> bool:
    return isinstance(value, Mapping)


def is_list(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def kind_of(value: Any) -> str:
    """Name of the value kind, as reported by the evaluate endpoint."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "text"
    if is_date(value):
        return "date"
    if is_list(value):
        return "list"
    if is_record(value):
        return "record"
    if isinstance(value, ErrorValue):
        return "error"
    return type(value).__name__


# -----------------------------------------------------------------------------
# Coercions
# -----------------------------------------------------------------------------


def to_number(value: Any) -> float | None:
    """Coerce a Number or numeric Text to float; None if not coercible."""
    if is_number(value):
        return float(value)
    if isinstance(value, str) and NUMERIC_TEXT.match(value):
        return float(value)
    return None


def to_bool(value: Any) -> bool:
    """``Boolean`` truthiness.

    Numbers other than 0, non-empty text and non-empty lists/records are
    true; Null is false. Error values cannot be coerced.
    """
    if isinstance(value, ErrorValue):
        raise EvaluationError.from_value(value)
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    if isinstance(value, str):
        return len(value) > 0
    if is_list(value) or is_record(value):
        return len(value) > 0
    return True


def to_date(value: Any) -> datetime | None:
    """Coerce a date/datetime to an aware UTC datetime; None if not a date."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return None


def truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def format_number(value: float | int | Decimal) -> str:
    """Canonical text form of a number: integral values print without '.0'."""
    number = float(value)
    if number.is_integer() and abs(number) < MAX_EXACT_INTEGER:
        return str(int(number))
    return repr(number)


def format_date(value: datetime) -> str:
    """ISO 8601 in UTC with millisecond precision, e.g. 2024-01-31T08:00:00.000Z."""
    value = to_date(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def to_text(value: Any) -> str:
    """Default text rendering used by text functions and ``Text(value)``."""
    if isinstance(value, ErrorValue):
        raise EvaluationError.from_value(value)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, str):
        return value
    if is_date(value):
        return format_date(value)
    return json.dumps(to_plain(value), separators=(",", ":"))


def to_plain(value: Any) -> Any:
    """Convert a formula value to JSON-serializable Python data."""
    if isinstance(value, ErrorValue):
        return value.to_dict()
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if is_number(value):
        number = float(value)
        if not math.isfinite(number):
            return None
        if number.is_integer() and abs(number) < MAX_EXACT_INTEGER:
            return int(number)
        return number
    if is_date(value):
        return format_date(value)
    if is_list(value):
        return [to_plain(item) for item in value]
    if is_record(value):
        return {str(key): to_plain(item) for key, item in value.items()}
    return str(value)


# -----------------------------------------------------------------------------
# Equality and ordering
# -----------------------------------------------------------------------------


def values_equal(left: Any, right: Any) -> bool:
    """Value equality. Different kinds are never equal (no coercion)."""
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) or is_number(right):
        return is_number(left) and is_number(right) and float(left) == float(right)
    if is_date(left) or is_date(right):
        return is_date(left) and is_date(right) and to_date(left) == to_date(right)
    if isinstance(left, str) or isinstance(right, str):
        return isinstance(left, str) and isinstance(right, str) and left == right
    if is_list(left) and is_list(right):
        return len(left) == len(right) and all(
            values_equal(a, b) for a, b in zip(left, right)
        )
    if is_record(left) and is_record(right):
        return left.keys() == right.keys() and all(
            values_equal(left[key], right[key]) for key in left
        )
    return left == right


def compare(left: Any, right: Any) -> int:
    """Order two values, returning -1, 0 or 1.

    Numbers (and numeric text compared with a number), texts and dates are
    ordered; every other pairing is a TYPE_MISMATCH.
    """
    if is_number(left) or is_number(right):
        lnum, rnum = to_number(left), to_number(right)
        if lnum is not None and rnum is not None:
            return (lnum > rnum) - (lnum < rnum)
    elif isinstance(left, str) and isinstance(right, str):
        return (left > right) - (left < right)
    elif is_date(left) and is_date(right):
        ldate, rdate = to_date(left), to_date(right)
        return (ldate > rdate) - (ldate < rdate)

    raise EvaluationError(
        ErrorKind.TYPE_MISMATCH,
        f"Cannot compare {kind_of(left)} and {kind_of(right)}",
    )


def freeze(value: Any) -> Any:
    """Hashable key with the same equality as ``values_equal``."""
    if value is None or isinstance(value, (bool, str)):
        return (kind_of(value), value)
    if is_number(value):
        return ("number", float(value))
    if is_date(value):
        return ("date", to_date(value))
    if is_list(value):
        return ("list", tuple(freeze(item) for item in value))
    if is_record(value):
        return ("record", frozenset((key, freeze(item)) for key, item in value.items()))
    return (kind_of(value), repr(value))


# -----------------------------------------------------------------------------
# Literal rendering
# -----------------------------------------------------------------------------


def render_literal(value: Any) -> str:
    """Render a Null/Bool/Number/Text/Date value as formula source.

    ``evaluate(render_literal(v))`` reproduces ``v``.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(f"Cannot render non-finite number {number!r}")
        return format_number(number)
    if isinstance(value, str):
        escaped = (
            value.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\n", "\\n")
            .replace("\t", "\\t")
            .replace("\r", "\\r")
        )
        return f'"{escaped}"'
    if is_date(value):
        return f'DateValue("{format_date(value)}")'
    raise ValueError(f"Cannot render {kind_of(value)} as a literal")
