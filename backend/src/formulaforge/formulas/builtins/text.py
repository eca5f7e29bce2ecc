"""Text functions.

Positions are 1-based and counted in characters.

``Text(value, format)`` understands two kinds of format:

- number patterns such as ``"#,##0.00"``, ``"0%"`` or ``"$#,##0"``: the
  digits after ``.`` fix the decimals, ``,`` enables grouping and a ``%``
  suffix scales by 100; characters around the pattern are kept literally
- date patterns built from ``yyyy yy MMMM MMM MM M dd d HH H hh h mm m ss s
  fff tt``, with ``"iso"`` as a shortcut for ISO 8601; text inside single
  quotes is copied verbatim
"""

import re
from typing import Any

from formulaforge.formulas.builtins._args import (
    P,
    require_date,
    require_int,
    require_text,
)
from formulaforge.formulas.builtins.numeric import round_number
from formulaforge.formulas.errors import ErrorKind, EvaluationError
from formulaforge.formulas.functions import FunctionCategory, FunctionDefinition
from formulaforge.formulas.values import format_date, is_date, is_number, to_text

NUMBER_FORMAT = re.compile(r"^(?P<prefix>[^#0.,]*)(?P<body>[#0,]+(?:\.[#0]+)?|\.[#0]+)(?P<suffix>.*)$")

DATE_TOKENS = re.compile(r"'[^']*'|yyyy|yy|MMMM|MMM|MM|M|dd|d|HH|H|hh|h|mm|m|ss|s|fff|tt")


def format_number_pattern(number: float, pattern: str) -> str:
    match = NUMBER_FORMAT.match(pattern)
    if match is None:
        raise EvaluationError(
            ErrorKind.TYPE_MISMATCH, f"Unsupported number format '{pattern}'"
        )

    body = match.group("body")
    suffix = match.group("suffix")
    if "%" in suffix:
        number *= 100

    decimals = len(body.split(".", 1)[1]) if "." in body else 0
    rounded = round_number(number, decimals)
    grouping = "," if "," in body else ""
    text = f"{rounded:{grouping}.{decimals}f}"
    if text.startswith("-") and float(rounded) == 0:
        text = text[1:]
    return f"{match.group('prefix')}{text}{suffix}"


def format_date_pattern(value: Any, pattern: str) -> str:
    if pattern.lower() == "iso":
        return format_date(value)

    d = require_date(value, "Text", "value")
    hour12 = d.hour % 12 or 12

    def token(m: re.Match) -> str:
        t = m.group(0)
        if t.startswith("'"):
            return t[1:-1]
        return {
            "yyyy": f"{d.year:04d}",
            "yy": f"{d.year % 100:02d}",
            "MMMM": d.strftime("%B"),
            "MMM": d.strftime("%b"),
            "MM": f"{d.month:02d}",
            "M": str(d.month),
            "dd": f"{d.day:02d}",
            "d": str(d.day),
            "HH": f"{d.hour:02d}",
            "H": str(d.hour),
            "hh": f"{hour12:02d}",
            "h": str(hour12),
            "mm": f"{d.minute:02d}",
            "m": str(d.minute),
            "ss": f"{d.second:02d}",
            "s": str(d.second),
            "fff": f"{d.microsecond // 1000:03d}",
            "tt": "AM" if d.hour < 12 else "PM",
        }[t]

    return DATE_TOKENS.sub(token, pattern)


def _text(value: Any, pattern: Any = None) -> str:
    if pattern is None or value is None:
        return to_text(value)
    pattern = require_text(pattern)
    if is_number(value):
        return format_number_pattern(float(value), pattern)
    if is_date(value):
        return format_date_pattern(value, pattern)
    return to_text(value)


def _concatenate(*args: Any) -> str:
    return "".join(to_text(a) for a in args)


def _upper(value: Any) -> str:
    return require_text(value).upper()


def _lower(value: Any) -> str:
    return require_text(value).lower()


def _proper(value: Any) -> str:
    """Capitalize the first letter of every word, lowercase the rest."""
    return re.sub(
        r"\w\S*",
        lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(),
        require_text(value),
    )


def _trim(value: Any) -> str:
    return require_text(value).strip()


def _left(value: Any, count: Any) -> str:
    return require_text(value)[: require_int(count, "Left", "count", minimum=0)]


def _right(value: Any, count: Any) -> str:
    text = require_text(value)
    n = require_int(count, "Right", "count", minimum=0)
    return text[len(text) - n :] if n else ""


def _mid(value: Any, start: Any, length: Any = None) -> str:
    text = require_text(value)
    begin = require_int(start, "Mid", "start", minimum=1) - 1
    if length is None:
        return text[begin:]
    return text[begin : begin + require_int(length, "Mid", "length", minimum=0)]


def _len(value: Any) -> int:
    return len(require_text(value))


def _replace(value: Any, start: Any, count: Any, new_text: Any) -> str:
    """Replace ``count`` characters starting at 1-based ``start``."""
    text = require_text(value)
    begin = require_int(start, "Replace", "start", minimum=1) - 1
    n = require_int(count, "Replace", "count", minimum=0)
    return text[:begin] + require_text(new_text) + text[begin + n :]


def _substitute(value: Any, old: Any, new: Any, occurrence: Any = None) -> str:
    """Replace every occurrence of ``old``, or only the n-th one."""
    text = require_text(value)
    old_text = require_text(old)
    new_text = require_text(new)
    if not old_text:
        return text
    if occurrence is None:
        return text.replace(old_text, new_text)

    nth = require_int(occurrence, "Substitute", "occurrence", minimum=1)
    index = -1
    for _ in range(nth):
        index = text.find(old_text, index + 1)
        if index < 0:
            return text
    return text[:index] + new_text + text[index + len(old_text) :]


def _split(value: Any, separator: Any) -> list[str]:
    text = require_text(value)
    sep = require_text(separator)
    if text == "":
        return []
    if sep == "":
        return list(text)
    return text.split(sep)


_TEXT = P("text", "text", "The text")

FUNCTIONS = [
    FunctionDefinition(
        name="Text",
        description="Converts a value to text, optionally using a number or date format",
        category=FunctionCategory.TEXT,
        parameters=[
            P("value", "any", "The value to format"),
            P("format", "text", "Number or date format pattern", required=False),
        ],
        return_type="text",
        examples=['Text(price, "#,##0.00")', 'Text(created, "yyyy-MM-dd")'],
        implementation=_text,
    ),
    FunctionDefinition(
        name="Concatenate",
        description="Joins the text form of every argument",
        category=FunctionCategory.TEXT,
        parameters=[P("values", "any", "Values to join", required=False, variadic=True)],
        return_type="text",
        examples=['Concatenate(firstName, " ", lastName)'],
        implementation=_concatenate,
    ),
    FunctionDefinition(
        name="Upper",
        description="Converts text to uppercase",
        category=FunctionCategory.TEXT,
        parameters=[_TEXT],
        return_type="text",
        implementation=_upper,
    ),
    FunctionDefinition(
        name="Lower",
        description="Converts text to lowercase",
        category=FunctionCategory.TEXT,
        parameters=[_TEXT],
        return_type="text",
        implementation=_lower,
    ),
    FunctionDefinition(
        name="Proper",
        description="Capitalizes the first letter of each word",
        category=FunctionCategory.TEXT,
        parameters=[_TEXT],
        return_type="text",
        examples=['Proper("jane DOE")'],
        implementation=_proper,
    ),
    FunctionDefinition(
        name="Trim",
        description="Removes leading and trailing whitespace",
        category=FunctionCategory.TEXT,
        parameters=[_TEXT],
        return_type="text",
        implementation=_trim,
    ),
    FunctionDefinition(
        name="Left",
        description="Returns the first characters of a text",
        category=FunctionCategory.TEXT,
        parameters=[_TEXT, P("count", "number", "Number of characters")],
        return_type="text",
        implementation=_left,
    ),
    FunctionDefinition(
        name="Right",
        description="Returns the last characters of a text",
        category=FunctionCategory.TEXT,
        parameters=[_TEXT, P("count", "number", "Number of characters")],
        return_type="text",
        implementation=_right,
    ),
    FunctionDefinition(
        name="Mid",
        description="Returns characters from a 1-based start position",
        category=FunctionCategory.TEXT,
        parameters=[
            _TEXT,
            P("start", "number", "1-based start position"),
            P("length", "number", "Number of characters (default: to the end)", required=False),
        ],
        return_type="text",
        examples=['Mid(code, 3, 2)'],
        implementation=_mid,
    ),
    FunctionDefinition(
        name="Len",
        description="Returns the number of characters in a text",
        category=FunctionCategory.TEXT,
        parameters=[_TEXT],
        return_type="number",
        examples=["Len(name) > 0"],
        implementation=_len,
    ),
    FunctionDefinition(
        name="Replace",
        description="Replaces a character range, by 1-based position, with new text",
        category=FunctionCategory.TEXT,
        parameters=[
            _TEXT,
            P("start", "number", "1-based start position"),
            P("count", "number", "Number of characters to replace"),
            P("new", "text", "Replacement text"),
        ],
        return_type="text",
        implementation=_replace,
    ),
    FunctionDefinition(
        name="Substitute",
        description="Replaces occurrences of a text, or only the n-th occurrence",
        category=FunctionCategory.TEXT,
        parameters=[
            _TEXT,
            P("old", "text", "Text to find"),
            P("new", "text", "Replacement text"),
            P("occurrence", "number", "Which occurrence to replace", required=False),
        ],
        return_type="text",
        examples=['Substitute(phone, "-", "")'],
        implementation=_substitute,
    ),
    FunctionDefinition(
        name="Split",
        description="Splits a text into a list on a separator",
        category=FunctionCategory.TEXT,
        parameters=[_TEXT, P("separator", "text", "Separator")],
        return_type="list",
        examples=['Split(tags, ",")'],
        implementation=_split,
    ),
]
