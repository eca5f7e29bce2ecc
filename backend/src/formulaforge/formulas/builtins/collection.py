"""Collection and variable functions.

These are the only functions that change the evaluation context. Collection
updates are copy-on-write: the named list is replaced, never modified in
place, so lists handed in by the caller or returned earlier in the same
formula keep their contents.

The collection name may be written bare (``Collect(cart, {sku: "A"})``) or
as text (``Collect("cart", ...)``).
"""

from typing import Any

from formulaforge.formulas.builtins._args import P
from formulaforge.formulas.errors import ErrorKind, ErrorValue, EvaluationError
from formulaforge.formulas.functions import FunctionCategory, FunctionDefinition
from formulaforge.formulas.parser import VarRef
from formulaforge.formulas.values import is_list, is_record, kind_of, to_bool


def target_name(evaluator, node, scope, func: str) -> str:
    if isinstance(node, VarRef):
        return node.name
    value = evaluator.evaluate(node, scope)
    if isinstance(value, str) and value:
        return value
    raise EvaluationError(
        ErrorKind.TYPE_MISMATCH, f"{func} expects a name, got {kind_of(value)}"
    )


def _as_items(value: Any) -> list[Any]:
    if value is None:
        return []
    if is_list(value):
        return list(value)
    return [value]


def _collect(evaluator, args, scope) -> Any:
    name = target_name(evaluator, args[0], scope, "Collect")
    added = []
    for arg in args[1:]:
        value = evaluator.evaluate(arg, scope)
        if isinstance(value, ErrorValue):
            return value
        added.extend(_as_items(value))
    scope.collections[name] = [*scope.collections.get(name, []), *added]
    return scope.collections[name]


def _clear_collect(evaluator, args, scope) -> Any:
    name = target_name(evaluator, args[0], scope, "ClearCollect")
    value = evaluator.evaluate(args[1], scope)
    if isinstance(value, ErrorValue):
        return value
    scope.collections[name] = _as_items(value)
    return scope.collections[name]


def _clear(evaluator, args, scope) -> Any:
    name = target_name(evaluator, args[0], scope, "Clear")
    scope.collections[name] = []
    return scope.collections[name]


def _remove(evaluator, args, scope) -> Any:
    """Remove(name, predicate): drop the items the predicate matches."""
    name = target_name(evaluator, args[0], scope, "Remove")
    kept = []
    for item in scope.collections.get(name, []):
        outcome = evaluator.evaluate_with(item, args[1], scope)
        if isinstance(outcome, ErrorValue):
            return outcome
        if not to_bool(outcome):
            kept.append(item)
    scope.collections[name] = kept
    return kept


def _assign(scope, name: str, value: Any, func: str) -> None:
    node = scope
    while node is not None:
        if name in node.values:
            raise EvaluationError(
                ErrorKind.TYPE_MISMATCH,
                f"{func} cannot assign '{name}': it is a read-only input value",
            )
        node = node.parent
    scope.variables[name] = value


def _set(evaluator, args, scope) -> Any:
    name = target_name(evaluator, args[0], scope, "Set")
    value = evaluator.evaluate(args[1], scope)
    if isinstance(value, ErrorValue):
        return value
    _assign(scope, name, value, "Set")
    return value


def _update_context(scope, updates: Any) -> Any:
    if not is_record(updates):
        raise EvaluationError(
            ErrorKind.TYPE_MISMATCH,
            f"UpdateContext expects a record, got {kind_of(updates)}",
        )
    for name, value in updates.items():
        _assign(scope, name, value, "UpdateContext")
    return updates


_NAME = P("name", "name", "Collection name (bare or text)")

FUNCTIONS = [
    FunctionDefinition(
        name="Collect",
        description="Appends records (or every record of a list) to a named collection",
        category=FunctionCategory.COLLECTION,
        parameters=[_NAME, P("items", "record|list", "Items to append", variadic=True)],
        return_type="list",
        examples=['Collect(cart, {sku: "A-1", qty: 2})'],
        implementation=_collect,
        pure=False,
        lazy=True,
    ),
    FunctionDefinition(
        name="ClearCollect",
        description="Replaces the contents of a named collection",
        category=FunctionCategory.COLLECTION,
        parameters=[_NAME, P("source", "record|list", "New contents")],
        return_type="list",
        examples=["ClearCollect(open, Filter(orders, status = \"open\"))"],
        implementation=_clear_collect,
        pure=False,
        lazy=True,
    ),
    FunctionDefinition(
        name="Clear",
        description="Empties a named collection",
        category=FunctionCategory.COLLECTION,
        parameters=[_NAME],
        return_type="list",
        implementation=_clear,
        pure=False,
        lazy=True,
    ),
    FunctionDefinition(
        name="Remove",
        description="Removes the items of a named collection that match a predicate",
        category=FunctionCategory.COLLECTION,
        parameters=[_NAME, P("predicate", "expression", "Condition evaluated per item")],
        return_type="list",
        examples=['Remove(cart, sku = "A-1")'],
        implementation=_remove,
        pure=False,
        lazy=True,
    ),
    FunctionDefinition(
        name="Set",
        description="Sets a variable and returns the value",
        category=FunctionCategory.COLLECTION,
        parameters=[P("name", "name", "Variable name"), P("value", "any", "The value")],
        return_type="any",
        examples=["Set(total, Sum(cart, qty * price))"],
        implementation=_set,
        pure=False,
        lazy=True,
    ),
    FunctionDefinition(
        name="UpdateContext",
        description="Sets one variable per field of a record",
        category=FunctionCategory.COLLECTION,
        parameters=[P("updates", "record", "Variable names and values")],
        return_type="record",
        examples=['UpdateContext({step: 2, mode: "edit"})'],
        implementation=_update_context,
        pure=False,
        uses_context=True,
    ),
]
