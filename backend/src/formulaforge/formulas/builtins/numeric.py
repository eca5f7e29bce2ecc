"""Math functions.

Rounding is half-away-from-zero and works on the decimal representation of
the number, so ``Round(2.675, 2)`` is ``2.68`` rather than the binary
``2.67``.
"""

import math
from decimal import ROUND_DOWN, ROUND_HALF_UP, ROUND_UP, Decimal, localcontext
from typing import Any

from formulaforge.formulas.builtins._args import (
    P,
    arithmetic,
    require_int,
    require_number,
)
from formulaforge.formulas.functions import FunctionCategory, FunctionDefinition

MAX_ROUND_PLACES = 15


def round_number(value: float, places: int = 0, rounding: str = ROUND_HALF_UP) -> float:
    """Round ``value`` to ``places`` decimals (negative places round to tens, hundreds...)."""
    if places > MAX_ROUND_PLACES or not math.isfinite(value):
        return value
    places = max(places, -308)
    with localcontext() as ctx:
        ctx.prec = 400
        quantum = Decimal(1).scaleb(-places)
        return float(Decimal(repr(value)).quantize(quantum, rounding=rounding))


def _round(value: Any, places: Any = 0) -> float:
    return round_number(
        require_number(value, "Round", "number"),
        require_int(places, "Round", "places"),
    )


def _round_up(value: Any, places: Any = 0) -> float:
    return round_number(
        require_number(value, "RoundUp", "number"),
        require_int(places, "RoundUp", "places"),
        ROUND_UP,
    )


def _round_down(value: Any, places: Any = 0) -> float:
    return round_number(
        require_number(value, "RoundDown", "number"),
        require_int(places, "RoundDown", "places"),
        ROUND_DOWN,
    )


def _abs(value: Any) -> float:
    return abs(require_number(value, "Abs", "number"))


def _sqrt(value: Any) -> Any:
    number = require_number(value, "Sqrt", "number")
    if number < 0:
        return arithmetic(f"Sqrt of negative number {number:g}")
    return math.sqrt(number)


def _power(base: Any, exponent: Any) -> Any:
    b = require_number(base, "Power", "base")
    e = require_number(exponent, "Power", "exponent")
    try:
        result = math.pow(b, e)
    except ZeroDivisionError:
        return arithmetic("Power of zero to a negative exponent")
    except ValueError:
        return arithmetic(f"Power({b:g}, {e:g}) is not a real number")
    except OverflowError:
        return arithmetic("Numeric overflow")
    if not math.isfinite(result):
        return arithmetic("Numeric overflow")
    return result


def _exp(value: Any) -> Any:
    try:
        return math.exp(require_number(value, "Exp", "number"))
    except OverflowError:
        return arithmetic("Numeric overflow")


def _ln(value: Any) -> Any:
    number = require_number(value, "Ln", "number")
    if number <= 0:
        return arithmetic(f"Ln of non-positive number {number:g}")
    return math.log(number)


def _log(value: Any, base: Any = 10) -> Any:
    number = require_number(value, "Log", "number")
    b = require_number(base, "Log", "base")
    if number <= 0:
        return arithmetic(f"Log of non-positive number {number:g}")
    if b <= 0 or b == 1:
        return arithmetic(f"Invalid logarithm base {b:g}")
    return math.log(number, b)


def _mod(dividend: Any, divisor: Any) -> Any:
    # Python's % already gives the result the sign of the divisor
    a = require_number(dividend, "Mod", "dividend")
    b = require_number(divisor, "Mod", "divisor")
    if b == 0:
        return arithmetic("Modulo by zero")
    return a % b


_NUMBER = [P("number", "number", "The number")]
_PLACES = P("places", "number", "Decimal places (default 0)", required=False, default=0)

FUNCTIONS = [
    FunctionDefinition(
        name="Round",
        description="Rounds a number, halves away from zero",
        category=FunctionCategory.MATH,
        parameters=[*_NUMBER, _PLACES],
        return_type="number",
        examples=["Round(price * 1.2, 2)", "Round(2.5)"],
        implementation=_round,
    ),
    FunctionDefinition(
        name="RoundUp",
        description="Rounds a number away from zero",
        category=FunctionCategory.MATH,
        parameters=[*_NUMBER, _PLACES],
        return_type="number",
        examples=["RoundUp(quantity / 12)"],
        implementation=_round_up,
    ),
    FunctionDefinition(
        name="RoundDown",
        description="Rounds a number toward zero",
        category=FunctionCategory.MATH,
        parameters=[*_NUMBER, _PLACES],
        return_type="number",
        examples=["RoundDown(3.99)"],
        implementation=_round_down,
    ),
    FunctionDefinition(
        name="Abs",
        description="Returns the absolute value of a number",
        category=FunctionCategory.MATH,
        parameters=_NUMBER,
        return_type="number",
        examples=["Abs(balance)"],
        implementation=_abs,
    ),
    FunctionDefinition(
        name="Sqrt",
        description="Returns the square root; negative input is an error",
        category=FunctionCategory.MATH,
        parameters=_NUMBER,
        return_type="number",
        examples=["Sqrt(16)"],
        implementation=_sqrt,
    ),
    FunctionDefinition(
        name="Power",
        description="Raises a base to an exponent",
        category=FunctionCategory.MATH,
        parameters=[
            P("base", "number", "The base"),
            P("exponent", "number", "The exponent"),
        ],
        return_type="number",
        examples=["Power(2, 10)"],
        implementation=_power,
    ),
    FunctionDefinition(
        name="Exp",
        description="Returns e raised to a power",
        category=FunctionCategory.MATH,
        parameters=_NUMBER,
        return_type="number",
        implementation=_exp,
    ),
    FunctionDefinition(
        name="Ln",
        description="Natural logarithm; non-positive input is an error",
        category=FunctionCategory.MATH,
        parameters=_NUMBER,
        return_type="number",
        implementation=_ln,
    ),
    FunctionDefinition(
        name="Log",
        description="Logarithm to a base (default 10); non-positive input is an error",
        category=FunctionCategory.MATH,
        parameters=[
            *_NUMBER,
            P("base", "number", "Logarithm base", required=False, default=10),
        ],
        return_type="number",
        examples=["Log(1000)", "Log(8, 2)"],
        implementation=_log,
    ),
    FunctionDefinition(
        name="Mod",
        description="Remainder of a division; the result takes the sign of the divisor",
        category=FunctionCategory.MATH,
        parameters=[
            P("dividend", "number", "The number to divide"),
            P("divisor", "number", "The number to divide by"),
        ],
        return_type="number",
        examples=["Mod(-3, 2)"],
        implementation=_mod,
    ),
]
