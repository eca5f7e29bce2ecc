"""Built-in function library.

One module per category. Call ``register_all_builtins()`` once at startup;
calling it again is harmless because the same definition objects are
re-registered.

Categories:
- logic: If, And, Or, Not, Switch, IfError
- math: Round, RoundUp, RoundDown, Abs, Sqrt, Power, Exp, Ln, Log, Mod
- text: Text, Concatenate, Upper, Lower, Proper, Trim, Left, Right, Mid, Len,
  Replace, Substitute, Split
- datetime: Now, Today, Year, Month, Day, Hour, Minute, Second, DateAdd,
  DateDiff, Date, DateTime
- conversion: Value, Boolean, DateValue
- validation: IsBlank, IsEmpty, IsError, IsNumeric, IsToday
- data: Filter, LookUp, Sort, Distinct, CountRows, Sum, Average, Min, Max,
  First, Last
- collection: Collect, ClearCollect, Clear, Remove, Set, UpdateContext
- other: Coalesce, Blank, RGBA
"""

import logging

from formulaforge.formulas.builtins import (
    collection,
    conversion,
    data,
    dates,
    logic,
    numeric,
    other,
    text,
    validation,
)
from formulaforge.formulas.functions import FunctionDefinition, FunctionRegistry

logger = logging.getLogger(__name__)

BUILTIN_FUNCTIONS: list[FunctionDefinition] = [
    *logic.FUNCTIONS,
    *numeric.FUNCTIONS,
    *text.FUNCTIONS,
    *dates.FUNCTIONS,
    *conversion.FUNCTIONS,
    *validation.FUNCTIONS,
    *data.FUNCTIONS,
    *collection.FUNCTIONS,
    *other.FUNCTIONS,
]


def register_all_builtins() -> None:
    """Register all built-in functions with the FunctionRegistry."""
    for func_def in BUILTIN_FUNCTIONS:
        FunctionRegistry.register(func_def)
    logger.debug("Registered %d built-in functions", len(BUILTIN_FUNCTIONS))
