"""Data functions over lists of records.

``Filter``, ``LookUp``, ``Sort``, ``Distinct`` and the aggregates take
expressions rather than closures: the evaluator binds each item as the
current record and evaluates the expression in that scope, so fields are
referenced by their bare names (``Filter(orders, amount > 100)``) and outer
names stay visible through the parent scope. A non-record item is bound as
``Value``.
"""

import math
from functools import cmp_to_key
from typing import Any

from formulaforge.formulas.builtins._args import P, arithmetic, require_int, require_list
from formulaforge.formulas.errors import ErrorKind, ErrorValue, EvaluationError
from formulaforge.formulas.functions import FunctionCategory, FunctionDefinition
from formulaforge.formulas.parser import ListLiteral, Literal, UnaryOp, VarRef
from formulaforge.formulas.values import (
    compare,
    freeze,
    is_list,
    is_number,
    is_record,
    kind_of,
    to_bool,
    to_number,
)

SORT_ORDERS = {"ascending": False, "descending": True}


def _items(evaluator, node, scope, func: str) -> Any:
    """Evaluate a collection argument; returns a list or an ErrorValue."""
    value = evaluator.evaluate(node, scope)
    if isinstance(value, ErrorValue):
        return value
    return require_list(value, func, "collection")


def _filter(evaluator, args, scope) -> Any:
    items = _items(evaluator, args[0], scope, "Filter")
    if isinstance(items, ErrorValue):
        return items

    result = []
    for item in items:
        for predicate in args[1:]:
            outcome = evaluator.evaluate_with(item, predicate, scope)
            if isinstance(outcome, ErrorValue):
                return outcome
            if not to_bool(outcome):
                break
        else:
            result.append(item)
    return result


def _look_up(evaluator, args, scope) -> Any:
    items = _items(evaluator, args[0], scope, "LookUp")
    if isinstance(items, ErrorValue):
        return items

    for item in items:
        outcome = evaluator.evaluate_with(item, args[1], scope)
        if isinstance(outcome, ErrorValue):
            return outcome
        if to_bool(outcome):
            if len(args) > 2:
                return evaluator.evaluate_with(item, args[2], scope)
            return item
    return None


def _sort_order(evaluator, node, scope) -> bool:
    """True for descending. Accepts the bare words Ascending/Descending or text."""
    if isinstance(node, VarRef) and node.name.casefold() in SORT_ORDERS:
        return SORT_ORDERS[node.name.casefold()]
    value = evaluator.evaluate(node, scope)
    if isinstance(value, str) and value.casefold() in SORT_ORDERS:
        return SORT_ORDERS[value.casefold()]
    raise EvaluationError(
        ErrorKind.TYPE_MISMATCH,
        f"Sort order must be Ascending or Descending, got {kind_of(value)}",
    )


def _sort_key_compare(left: Any, right: Any) -> int:
    # Nulls sort last in ascending order
    if left is None or right is None:
        return (left is None) - (right is None)
    return compare(left, right)


def _sort(evaluator, args, scope) -> Any:
    items = _items(evaluator, args[0], scope, "Sort")
    if isinstance(items, ErrorValue):
        return items
    descending = _sort_order(evaluator, args[2], scope) if len(args) > 2 else False

    keyed = []
    for item in items:
        key = evaluator.evaluate_with(item, args[1], scope)
        if isinstance(key, ErrorValue):
            return key
        keyed.append((key, item))

    keyed.sort(key=cmp_to_key(lambda a, b: _sort_key_compare(a[0], b[0])), reverse=descending)
    return [item for _, item in keyed]


def _distinct(evaluator, args, scope) -> Any:
    """Distinct values of the key expression (or of the items), first occurrence order."""
    items = _items(evaluator, args[0], scope, "Distinct")
    if isinstance(items, ErrorValue):
        return items

    seen = set()
    result = []
    for item in items:
        value = evaluator.evaluate_with(item, args[1], scope) if len(args) > 1 else item
        if isinstance(value, ErrorValue):
            return value
        key = freeze(value)
        if key not in seen:
            seen.add(key)
            result.append(value)
    return result


def _count_rows(collection: Any) -> int:
    return len(require_list(collection, "CountRows", "collection"))


def _first(collection: Any, count: Any = None) -> Any:
    items = require_list(collection, "First", "collection")
    if count is None:
        return items[0] if items else None
    return items[: require_int(count, "First", "count", minimum=0)]


def _last(collection: Any, count: Any = None) -> Any:
    items = require_list(collection, "Last", "collection")
    if count is None:
        return items[-1] if items else None
    n = require_int(count, "Last", "count", minimum=0)
    return items[len(items) - n :] if n else []


# -----------------------------------------------------------------------------
# Aggregates
# -----------------------------------------------------------------------------


def _is_item_expression(node, items: list, scope) -> bool:
    """Whether the second aggregate argument is evaluated once per item.

    Constants and names that resolve to a number or list in the outer scope
    (and are not a field of the items) are extra operands instead:
    ``Max(scores, 0)``, ``Sum(a, b)``.
    """
    while isinstance(node, UnaryOp):
        node = node.operand
    if isinstance(node, (Literal, ListLiteral)):
        return False
    if isinstance(node, VarRef):
        if any(is_record(item) and node.name in item for item in items):
            return True
        found, value = scope.resolve(node.name)
        if found and (is_number(value) or is_list(value)):
            return False
    return True


def _operands(evaluator, args, scope, func: str) -> Any:
    """Collect aggregate operands.

    Forms: ``Sum(list)``, ``Sum(collection, expression)`` and
    ``Sum(a, b, ...)``. Nulls are skipped; non-numeric operands produce an
    Error value.
    """
    first = evaluator.evaluate(args[0], scope)
    if isinstance(first, ErrorValue):
        return first

    if len(args) == 2 and is_list(first) and _is_item_expression(args[1], first, scope):
        raw = []
        for item in first:
            value = evaluator.evaluate_with(item, args[1], scope)
            if isinstance(value, ErrorValue):
                return value
            raw.append(value)
    else:
        raw = [first]
        for arg in args[1:]:
            value = evaluator.evaluate(arg, scope)
            if isinstance(value, ErrorValue):
                return value
            raw.append(value)
        raw = [v for value in raw for v in (value if is_list(value) else [value])]

    numbers = []
    for value in raw:
        if value is None:
            continue
        number = None if isinstance(value, bool) else to_number(value)
        if number is None:
            return ErrorValue(
                ErrorKind.TYPE_MISMATCH,
                f"{func} requires numbers, got {kind_of(value)}",
            )
        numbers.append(number)
    return numbers


def _aggregate(func: str, reduce):
    def implementation(evaluator, args, scope) -> Any:
        numbers = _operands(evaluator, args, scope, func)
        if isinstance(numbers, ErrorValue):
            return numbers
        return reduce(numbers)

    implementation.__name__ = f"_{func.lower()}"
    return implementation


def _fsum(numbers: list[float]) -> float | None:
    try:
        total = math.fsum(numbers)
    except OverflowError:
        return None
    return total if math.isfinite(total) else None


def _sum(numbers: list[float]) -> Any:
    total = _fsum(numbers)
    if total is None:
        return arithmetic("Numeric overflow")
    return total


def _average(numbers: list[float]) -> Any:
    if not numbers:
        return arithmetic("Average of no values")
    total = _fsum(numbers)
    if total is None:
        return arithmetic("Numeric overflow")
    return total / len(numbers)


_COLLECTION = P("collection", "list", "The collection")
_AGGREGATE_PARAMS = [
    P("values", "list|number", "A list, or the first number"),
    P("more", "expression|number", "Per-item expression, or more numbers",
      required=False, variadic=True),
]

FUNCTIONS = [
    FunctionDefinition(
        name="Filter",
        description="Returns the items for which every predicate is true",
        category=FunctionCategory.DATA,
        parameters=[
            _COLLECTION,
            P("predicate", "expression", "Condition evaluated per item", variadic=True),
        ],
        return_type="list",
        examples=['Filter(orders, status = "open", amount > 100)'],
        implementation=_filter,
        lazy=True,
    ),
    FunctionDefinition(
        name="LookUp",
        description="Returns the first matching item (or a projection of it), or Null",
        category=FunctionCategory.DATA,
        parameters=[
            _COLLECTION,
            P("predicate", "expression", "Condition evaluated per item"),
            P("projection", "expression", "Value to return from the match", required=False),
        ],
        return_type="any",
        examples=["LookUp(users, id = 42, name)"],
        implementation=_look_up,
        lazy=True,
    ),
    FunctionDefinition(
        name="Sort",
        description="Sorts items by a key expression (stable; Nulls sort last when ascending)",
        category=FunctionCategory.DATA,
        parameters=[
            _COLLECTION,
            P("key", "expression", "Sort key evaluated per item"),
            P("order", "text", "Ascending (default) or Descending", required=False),
        ],
        return_type="list",
        examples=["Sort(orders, amount, Descending)"],
        implementation=_sort,
        lazy=True,
    ),
    FunctionDefinition(
        name="Distinct",
        description="Returns the distinct values of a key expression, in first-seen order",
        category=FunctionCategory.DATA,
        parameters=[
            _COLLECTION,
            P("key", "expression", "Value evaluated per item", required=False),
        ],
        return_type="list",
        examples=["Distinct(orders, region)"],
        implementation=_distinct,
        lazy=True,
    ),
    FunctionDefinition(
        name="CountRows",
        description="Returns the number of items in a collection",
        category=FunctionCategory.DATA,
        parameters=[_COLLECTION],
        return_type="number",
        examples=["CountRows(Filter(tasks, done))"],
        implementation=_count_rows,
    ),
    FunctionDefinition(
        name="Sum",
        description="Sum of numbers; Nulls are ignored",
        category=FunctionCategory.DATA,
        parameters=_AGGREGATE_PARAMS,
        return_type="number",
        examples=["Sum(orders.amount)", "Sum(orders, quantity * price)"],
        implementation=_aggregate("Sum", _sum),
        lazy=True,
    ),
    FunctionDefinition(
        name="Average",
        description="Arithmetic mean; Nulls are ignored, no values is an error",
        category=FunctionCategory.DATA,
        parameters=_AGGREGATE_PARAMS,
        return_type="number",
        examples=["Average(scores)"],
        implementation=_aggregate("Average", _average),
        lazy=True,
    ),
    FunctionDefinition(
        name="Min",
        description="Smallest number, or Null when there are none",
        category=FunctionCategory.DATA,
        parameters=_AGGREGATE_PARAMS,
        return_type="number",
        examples=["Min(orders.amount)"],
        implementation=_aggregate("Min", lambda numbers: min(numbers, default=None)),
        lazy=True,
    ),
    FunctionDefinition(
        name="Max",
        description="Largest number, or Null when there are none",
        category=FunctionCategory.DATA,
        parameters=_AGGREGATE_PARAMS,
        return_type="number",
        examples=["Max(0, balance - 10)"],
        implementation=_aggregate("Max", lambda numbers: max(numbers, default=None)),
        lazy=True,
    ),
    FunctionDefinition(
        name="First",
        description="First item, or the first n items as a list",
        category=FunctionCategory.DATA,
        parameters=[_COLLECTION, P("count", "number", "Number of items", required=False)],
        return_type="any",
        implementation=_first,
    ),
    FunctionDefinition(
        name="Last",
        description="Last item, or the last n items as a list",
        category=FunctionCategory.DATA,
        parameters=[_COLLECTION, P("count", "number", "Number of items", required=False)],
        return_type="any",
        implementation=_last,
    ),
]
