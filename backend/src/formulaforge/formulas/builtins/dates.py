"""Date and time functions. All dates are UTC instants with millisecond resolution."""

import calendar
from datetime import datetime, timedelta, timezone
from typing import Any

from formulaforge.formulas.builtins._args import (
    P,
    arithmetic,
    require_date,
    require_int,
    require_number,
    require_text,
)
from formulaforge.formulas.errors import ErrorKind, EvaluationError
from formulaforge.formulas.functions import FunctionCategory, FunctionDefinition
from formulaforge.formulas.values import to_date, truncate_to_millis

# Unit name -> length in seconds. Months and years use average lengths for DateDiff.
UNIT_SECONDS = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
    "months": 30.44 * 86400,
    "years": 365.25 * 86400,
}


def normalize_unit(unit: Any, func: str) -> str:
    name = require_text(unit).strip().lower()
    if not name.endswith("s"):
        name += "s"
    if name not in UNIT_SECONDS:
        raise EvaluationError(
            ErrorKind.TYPE_MISMATCH,
            f"{func} unit must be one of {', '.join(UNIT_SECONDS)}, got '{unit}'",
        )
    return name


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    total = value.year * 12 + (value.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    if not 1 <= year <= 9999:
        raise OverflowError("date out of range")
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _now() -> datetime:
    return truncate_to_millis(datetime.now(timezone.utc))


def _today() -> datetime:
    now = datetime.now(timezone.utc)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc)


def _part(attribute: str, func: str):
    def extract(value: Any) -> Any:
        if value is None:
            return None
        return getattr(require_date(value, func, "date"), attribute)

    extract.__name__ = f"_{attribute}"
    return extract


def _date_add(value: Any, amount: Any, unit: Any = "days") -> Any:
    if value is None:
        return None
    d = require_date(value, "DateAdd", "date")
    name = normalize_unit(unit, "DateAdd")
    try:
        if name == "months":
            return add_months(d, require_int(amount, "DateAdd", "amount"))
        if name == "years":
            return add_months(d, 12 * require_int(amount, "DateAdd", "amount"))
        seconds = require_number(amount, "DateAdd", "amount") * UNIT_SECONDS[name]
        return truncate_to_millis(d + timedelta(seconds=seconds))
    except OverflowError:
        return arithmetic("DateAdd result is outside the supported date range")


def _date_diff(start: Any, end: Any, unit: Any = "days") -> Any:
    """``end - start`` measured in ``unit`` (fractional)."""
    d1, d2 = to_date(start), to_date(end)
    if d1 is None or d2 is None:
        return arithmetic("DateDiff requires two dates")
    name = normalize_unit(unit, "DateDiff")
    return (d2 - d1).total_seconds() / UNIT_SECONDS[name]


def _date(year: Any, month: Any, day: Any) -> Any:
    return _date_time(year, month, day)


def _date_time(
    year: Any, month: Any, day: Any, hour: Any = 0, minute: Any = 0, second: Any = 0
) -> Any:
    parts = [
        require_int(v, "DateTime", name)
        for v, name in (
            (year, "year"), (month, "month"), (day, "day"),
            (hour, "hour"), (minute, "minute"), (second, "second"),
        )
    ]
    try:
        return datetime(*parts, tzinfo=timezone.utc)
    except (ValueError, OverflowError) as e:
        return arithmetic(f"Invalid date: {e}")


_DATE = [P("date", "date", "The date")]

FUNCTIONS = [
    FunctionDefinition(
        name="Now",
        description="Returns the current UTC instant",
        category=FunctionCategory.DATETIME,
        parameters=[],
        return_type="date",
        examples=["DateDiff(created, Now(), \"hours\") > 24"],
        implementation=_now,
        pure=False,
    ),
    FunctionDefinition(
        name="Today",
        description="Returns today's UTC date at 00:00",
        category=FunctionCategory.DATETIME,
        parameters=[],
        return_type="date",
        implementation=_today,
        pure=False,
    ),
    *[
        FunctionDefinition(
            name=name,
            description=f"Returns the {attribute} of a date (UTC)",
            category=FunctionCategory.DATETIME,
            parameters=_DATE,
            return_type="number",
            implementation=_part(attribute, name),
        )
        for name, attribute in (
            ("Year", "year"),
            ("Month", "month"),
            ("Day", "day"),
            ("Hour", "hour"),
            ("Minute", "minute"),
            ("Second", "second"),
        )
    ],
    FunctionDefinition(
        name="DateAdd",
        description="Adds an amount of seconds, minutes, hours, days, months or years to a date",
        category=FunctionCategory.DATETIME,
        parameters=[
            *_DATE,
            P("amount", "number", "Amount to add (may be negative)"),
            P("unit", "text", "Unit (default days)", required=False, default="days"),
        ],
        return_type="date",
        examples=['DateAdd(startDate, 30, "days")', 'DateAdd(renewal, 1, "years")'],
        implementation=_date_add,
    ),
    FunctionDefinition(
        name="DateDiff",
        description=(
            "Difference end - start in a unit; months count as 30.44 days "
            "and years as 365.25 days"
        ),
        category=FunctionCategory.DATETIME,
        parameters=[
            P("start", "date", "Start date"),
            P("end", "date", "End date"),
            P("unit", "text", "Unit (default days)", required=False, default="days"),
        ],
        return_type="number",
        examples=['DateDiff(orderDate, shipDate, "days")'],
        implementation=_date_diff,
    ),
    FunctionDefinition(
        name="Date",
        description="Builds a UTC date from year, month and day",
        category=FunctionCategory.DATETIME,
        parameters=[
            P("year", "number", "Year"),
            P("month", "number", "Month (1-12)"),
            P("day", "number", "Day of month"),
        ],
        return_type="date",
        examples=["Date(2024, 1, 31)"],
        implementation=_date,
    ),
    FunctionDefinition(
        name="DateTime",
        description="Builds a UTC date and time",
        category=FunctionCategory.DATETIME,
        parameters=[
            P("year", "number", "Year"),
            P("month", "number", "Month (1-12)"),
            P("day", "number", "Day of month"),
            P("hour", "number", "Hour (0-23)", required=False, default=0),
            P("minute", "number", "Minute", required=False, default=0),
            P("second", "number", "Second", required=False, default=0),
        ],
        return_type="date",
        implementation=_date_time,
    ),
]
