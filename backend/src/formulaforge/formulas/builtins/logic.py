"""Logic functions.

``If``, ``And``, ``Or``, ``Switch`` and ``IfError`` are special forms: they
receive their argument nodes unevaluated and only evaluate the arms they
need.
"""

from typing import Any

from formulaforge.formulas.builtins._args import P
from formulaforge.formulas.errors import ErrorKind, ErrorValue, EvaluationError
from formulaforge.formulas.functions import FunctionCategory, FunctionDefinition
from formulaforge.formulas.values import to_bool, values_equal


def _if(evaluator, args, scope) -> Any:
    """If(c1, r1, [c2, r2, ...], [default])."""
    pairs = len(args) // 2
    for i in range(pairs):
        condition = evaluator.evaluate(args[2 * i], scope)
        if isinstance(condition, ErrorValue):
            return condition
        if to_bool(condition):
            return evaluator.evaluate(args[2 * i + 1], scope)
    if len(args) % 2:
        return evaluator.evaluate(args[-1], scope)
    return None


def _and(evaluator, args, scope) -> Any:
    for arg in args:
        value = evaluator.evaluate(arg, scope)
        if isinstance(value, ErrorValue):
            return value
        if not to_bool(value):
            return False
    return True


def _or(evaluator, args, scope) -> Any:
    for arg in args:
        value = evaluator.evaluate(arg, scope)
        if isinstance(value, ErrorValue):
            return value
        if to_bool(value):
            return True
    return False


def _not(value: Any) -> bool:
    return not to_bool(value)


def _switch(evaluator, args, scope) -> Any:
    """Switch(value, case1, result1, ..., [default]); the first equal case wins."""
    subject = evaluator.evaluate(args[0], scope)
    if isinstance(subject, ErrorValue):
        return subject

    rest = args[1:]
    for i in range(0, len(rest) - 1, 2):
        case = evaluator.evaluate(rest[i], scope)
        if isinstance(case, ErrorValue):
            return case
        if values_equal(subject, case):
            return evaluator.evaluate(rest[i + 1], scope)

    if len(rest) % 2:
        return evaluator.evaluate(rest[-1], scope)
    return None


def _if_error(evaluator, args, scope) -> Any:
    try:
        value = evaluator.evaluate(args[0], scope)
    except EvaluationError as exc:
        if exc.kind == ErrorKind.TIMEOUT:
            raise
        value = exc.to_value()
    if isinstance(value, ErrorValue):
        return evaluator.evaluate(args[1], scope)
    return value


FUNCTIONS = [
    FunctionDefinition(
        name="If",
        description=(
            "Returns the result of the first true condition, or the default; "
            "only the chosen branch is evaluated"
        ),
        category=FunctionCategory.LOGIC,
        parameters=[
            P("condition", "boolean", "Condition to test"),
            P("then", "any", "Value if the condition is true"),
            P("else", "any", "More condition/result pairs, then an optional default",
              required=False, variadic=True),
        ],
        return_type="any",
        examples=['If(age >= 18, "adult", "minor")', 'If(x > 10, "big", x > 5, "medium", "small")'],
        implementation=_if,
        lazy=True,
    ),
    FunctionDefinition(
        name="And",
        description="True if every argument is true; stops at the first false one",
        category=FunctionCategory.LOGIC,
        parameters=[P("conditions", "boolean", "Conditions", variadic=True)],
        return_type="boolean",
        examples=["And(active, balance > 0)"],
        implementation=_and,
        lazy=True,
    ),
    FunctionDefinition(
        name="Or",
        description="True if any argument is true; stops at the first true one",
        category=FunctionCategory.LOGIC,
        parameters=[P("conditions", "boolean", "Conditions", variadic=True)],
        return_type="boolean",
        examples=['Or(status = "new", status = "open")'],
        implementation=_or,
        lazy=True,
    ),
    FunctionDefinition(
        name="Not",
        description="Logical complement using Boolean coercion",
        category=FunctionCategory.LOGIC,
        parameters=[P("value", "boolean", "The value to negate")],
        return_type="boolean",
        examples=["Not(IsBlank(email))"],
        implementation=_not,
    ),
    FunctionDefinition(
        name="Switch",
        description="Matches a value against cases and returns the first matching result",
        category=FunctionCategory.LOGIC,
        parameters=[
            P("value", "any", "The value to match"),
            P("case", "any", "Case value"),
            P("result", "any", "Result for the case"),
            P("more", "any", "More case/result pairs, then an optional default",
              required=False, variadic=True),
        ],
        return_type="any",
        examples=['Switch(level, 1, "low", 2, "medium", "high")'],
        implementation=_switch,
        lazy=True,
    ),
    FunctionDefinition(
        name="IfError",
        description="Returns the value, or the fallback when the value is an error",
        category=FunctionCategory.LOGIC,
        parameters=[
            P("value", "any", "The value to try"),
            P("fallback", "any", "Result if the value is an error"),
        ],
        return_type="any",
        examples=["IfError(total / count, 0)"],
        implementation=_if_error,
        lazy=True,
    ),
]
