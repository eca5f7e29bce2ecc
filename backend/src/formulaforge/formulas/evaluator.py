"""Evaluator for the formula language.

Walks the AST and computes the result against an evaluation context
containing read-only values, mutable variables and named collections.
"""

import logging
import math
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from formulaforge.formulas.errors import ErrorKind, ErrorValue, EvaluationError
from formulaforge.formulas.functions import FunctionRegistry
from formulaforge.formulas.parser import (
    ASTNode,
    BinaryOp,
    Call,
    FieldAccess,
    If,
    Index,
    ListLiteral,
    Literal,
    RecordLiteral,
    UnaryOp,
    VarRef,
    parse,
)
from formulaforge.formulas.values import (
    compare,
    is_list,
    is_record,
    kind_of,
    to_bool,
    to_number,
    to_text,
    values_equal,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_NODES = 100_000
DEFAULT_MAX_MILLIS = 1_000


@dataclass(frozen=True)
class ExecutionBudget:
    """Per-evaluation limits on AST node visits and wall-clock time."""

    max_nodes: int = DEFAULT_MAX_NODES
    max_millis: float = DEFAULT_MAX_MILLIS


@dataclass
class Context:
    """Bindings for expression evaluation.

    Attributes:
        values: Read-only named values (the input record)
        collections: Named lists of records, mutated by collection functions
        variables: Named values set with ``Set``/``UpdateContext``
        parent: Enclosing scope; iteration scopes shadow ``values`` with the
            current record and fall back to the parent for other names
    """

    values: Mapping[str, Any] = field(default_factory=dict)
    collections: dict[str, list[Any]] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)
    parent: "Context | None" = None

    def __post_init__(self) -> None:
        if not isinstance(self.values, MappingProxyType):
            self.values = MappingProxyType(self.values)

    def child(self, item: Any) -> "Context":
        """Scope for one iteration item. Non-record items are bound as ``Value``."""
        values = item if is_record(item) else {"Value": item}
        return Context(
            values=values,
            collections=self.collections,
            variables=self.variables,
            parent=self,
        )

    def resolve(self, name: str) -> tuple[bool, Any]:
        """Look a name up in values (innermost scope first), then variables,
        then collections. Returns ``(found, value)``."""
        scope: Context | None = self
        while scope is not None:
            if name in scope.values:
                return True, scope.values[name]
            scope = scope.parent

        if name in self.variables:
            return True, self.variables[name]
        if name in self.collections:
            return True, self.collections[name]
        return False, None


class Evaluator:
    """Evaluates expression AST against a context.

    Domain errors raised by built-ins come back as ``ErrorValue`` results;
    structural errors raise ``EvaluationError``.

    Usage:
        ctx = Context(values={"status": "active", "count": 5})
        evaluator = Evaluator(ctx)
        result = evaluator.run(ast)
    """

    def __init__(self, context: Context, budget: ExecutionBudget | None = None):
        self.context = context
        self.budget = budget or ExecutionBudget()
        self.visits = 0
        self._deadline: float | None = None

    def run(self, node: ASTNode) -> Any:
        """Evaluate a root node."""
        try:
            return self.evaluate(node)
        except RecursionError:
            raise EvaluationError(
                ErrorKind.TIMEOUT,
                "Expression nesting exceeds the evaluation depth limit",
                node.span,
            ) from None

    def evaluate(self, node: ASTNode, scope: Context | None = None) -> Any:
        """Evaluate an AST node in ``scope`` (default: the root context)."""
        self._charge()

        method_name = f"_eval_{type(node).__name__.lower()}"
        method = getattr(self, method_name, None)

        if method is None:
            raise EvaluationError(
                ErrorKind.INTERNAL_ERROR, f"Unknown node type: {type(node).__name__}"
            )

        try:
            return method(node, scope or self.context)
        except EvaluationError as exc:
            if exc.span is None:
                exc.span = node.span
            raise

    def evaluate_with(self, item: Any, node: ASTNode, scope: Context) -> Any:
        """Evaluate ``node`` with ``item`` bound as the current record."""
        return self.evaluate(node, scope.child(item))

    def _charge(self) -> None:
        """Account for one node visit against the execution budget."""
        self.visits += 1
        if self.visits > self.budget.max_nodes:
            raise EvaluationError(
                ErrorKind.TIMEOUT,
                f"Evaluation exceeded {self.budget.max_nodes} node visits",
            )

        now = time.monotonic()
        if self._deadline is None:
            self._deadline = now + self.budget.max_millis / 1000
        elif now > self._deadline:
            raise EvaluationError(
                ErrorKind.TIMEOUT,
                f"Evaluation exceeded {self.budget.max_millis:g} ms",
            )

    # -------------------------------------------------------------------------
    # Node type evaluators
    # -------------------------------------------------------------------------

    def _eval_literal(self, node: Literal, scope: Context) -> Any:
        return node.value

    def _eval_varref(self, node: VarRef, scope: Context) -> Any:
        found, value = scope.resolve(node.name)
        if not found:
            raise EvaluationError(
                ErrorKind.UNDEFINED_NAME, f"Undefined name '{node.name}'"
            )
        return value

    def _eval_fieldaccess(self, node: FieldAccess, scope: Context) -> Any:
        """Evaluate ``target.name``.

        Records return the field (Null when missing). Lists take a 1-based
        element for numeric names and otherwise project the field from every
        record. Null propagates.
        """
        target = self.evaluate(node.target, scope)

        if target is None or isinstance(target, ErrorValue):
            return target

        if is_record(target):
            return target.get(node.name)

        if is_list(target):
            if node.name.isdigit():
                return _element(target, int(node.name))
            projected = []
            for item in target:
                if not is_record(item):
                    raise EvaluationError(
                        ErrorKind.TYPE_MISMATCH,
                        f"Cannot read field '{node.name}' of {kind_of(item)} list item",
                    )
                projected.append(item.get(node.name))
            return projected

        raise EvaluationError(
            ErrorKind.TYPE_MISMATCH,
            f"Cannot read field '{node.name}' of {kind_of(target)}",
        )

    def _eval_index(self, node: Index, scope: Context) -> Any:
        """Evaluate ``target[index]`` (1-based for lists and text)."""
        target = self.evaluate(node.target, scope)
        index = self.evaluate(node.index, scope)

        for value in (target, index):
            if isinstance(value, ErrorValue):
                return value

        if target is None:
            return None

        if is_record(target):
            return target.get(to_text(index))

        if is_list(target) or isinstance(target, str):
            position = to_number(index)
            if position is None or not position.is_integer():
                raise EvaluationError(
                    ErrorKind.TYPE_MISMATCH,
                    f"Index must be a whole number, got {kind_of(index)}",
                )
            return _element(target, int(position))

        raise EvaluationError(
            ErrorKind.TYPE_MISMATCH, f"Cannot index into {kind_of(target)}"
        )

    def _eval_unaryop(self, node: UnaryOp, scope: Context) -> Any:
        operand = self.evaluate(node.operand, scope)

        if isinstance(operand, ErrorValue):
            return operand

        if node.operator == "!":
            return not to_bool(operand)

        if node.operator == "-":
            number = to_number(operand)
            if number is None:
                raise EvaluationError(
                    ErrorKind.TYPE_MISMATCH, f"Cannot negate {kind_of(operand)}"
                )
            return -number

        raise EvaluationError(
            ErrorKind.INTERNAL_ERROR, f"Unknown unary operator: {node.operator}"
        )

    def _eval_binaryop(self, node: BinaryOp, scope: Context) -> Any:
        """Evaluate a binary operation.

        Left-associative chains (``a + b + c + ...``) are walked along their
        left spine without recursing, so their length is bounded only by the
        node budget.
        """
        spine = [node]
        leftmost = node.left
        while isinstance(leftmost, BinaryOp):
            self._charge()
            spine.append(leftmost)
            leftmost = leftmost.left

        value = self.evaluate(leftmost, scope)
        for current in reversed(spine):
            try:
                value = self._apply_binary(current, value, scope)
            except EvaluationError as exc:
                if exc.span is None:
                    exc.span = current.span
                raise
        return value

    def _apply_binary(self, node: BinaryOp, left: Any, scope: Context) -> Any:
        op = node.operator

        # Short-circuit evaluation for logical operators
        if op in ("&&", "||"):
            if isinstance(left, ErrorValue):
                return left
            if op == "&&" and not to_bool(left):
                return False
            if op == "||" and to_bool(left):
                return True
            right = self.evaluate(node.right, scope)
            if isinstance(right, ErrorValue):
                return right
            return to_bool(right)

        right = self.evaluate(node.right, scope)

        for value in (left, right):
            if isinstance(value, ErrorValue):
                return value

        if op == "=":
            return values_equal(left, right)
        if op == "!=":
            return not values_equal(left, right)
        if op == "<":
            return compare(left, right) < 0
        if op == "<=":
            return compare(left, right) <= 0
        if op == ">":
            return compare(left, right) > 0
        if op == ">=":
            return compare(left, right) >= 0

        if op == "+" and (isinstance(left, str) or isinstance(right, str)):
            if isinstance(left, str) and isinstance(right, str):
                return left + right
            raise EvaluationError(
                ErrorKind.TYPE_MISMATCH,
                f"Cannot add {kind_of(left)} and {kind_of(right)}; use Concatenate",
            )

        if op in ("+", "-", "*", "/", "%"):
            return self._arithmetic(op, left, right)

        raise EvaluationError(ErrorKind.INTERNAL_ERROR, f"Unknown operator: {op}")

    def _arithmetic(self, op: str, left: Any, right: Any) -> Any:
        lnum, rnum = to_number(left), to_number(right)
        if lnum is None or rnum is None:
            raise EvaluationError(
                ErrorKind.TYPE_MISMATCH,
                f"Operator '{op}' requires numbers, got {kind_of(left)} and {kind_of(right)}",
            )

        if op == "+":
            result = lnum + rnum
        elif op == "-":
            result = lnum - rnum
        elif op == "*":
            result = lnum * rnum
        elif rnum == 0:
            return ErrorValue(
                ErrorKind.ARITHMETIC,
                "Division by zero" if op == "/" else "Modulo by zero",
            )
        elif op == "/":
            result = lnum / rnum
        else:
            result = lnum % rnum

        if not math.isfinite(result):
            return ErrorValue(ErrorKind.ARITHMETIC, "Numeric overflow")
        return result

    def _eval_call(self, node: Call, scope: Context) -> Any:
        """Evaluate a function call."""
        func_def = FunctionRegistry.lookup_key(node.key)
        if func_def is None:
            raise EvaluationError(
                ErrorKind.UNKNOWN_FUNCTION, f"Unknown function: {node.name}"
            )

        arity_error = func_def.arity_error(len(node.arguments))
        if arity_error:
            raise EvaluationError(ErrorKind.ARITY_MISMATCH, arity_error)

        try:
            if func_def.lazy:
                return func_def.implementation(self, node.arguments, scope)

            # Arguments are evaluated strictly left to right
            args = [self.evaluate(arg, scope) for arg in node.arguments]

            if func_def.propagates_errors:
                for arg in args:
                    if isinstance(arg, ErrorValue):
                        return arg

            if func_def.uses_context:
                return func_def.implementation(scope, *args)
            return func_def.implementation(*args)
        except (EvaluationError, RecursionError):
            raise
        except Exception as e:
            logger.exception("Built-in %s failed", func_def.name)
            raise EvaluationError(
                ErrorKind.INTERNAL_ERROR, f"Error calling {func_def.name}: {e}"
            ) from e

    def _eval_if(self, node: If, scope: Context) -> Any:
        condition = self.evaluate(node.condition, scope)
        if isinstance(condition, ErrorValue):
            return condition
        branch = node.then_branch if to_bool(condition) else node.else_branch
        return self.evaluate(branch, scope)

    def _eval_listliteral(self, node: ListLiteral, scope: Context) -> list[Any]:
        return [self.evaluate(elem, scope) for elem in node.elements]

    def _eval_recordliteral(self, node: RecordLiteral, scope: Context) -> dict[str, Any]:
        return {key: self.evaluate(value, scope) for key, value in node.fields}


def _element(sequence: Any, position: int) -> Any:
    """1-based element access; out of range yields Null."""
    if 1 <= position <= len(sequence):
        return sequence[position - 1]
    return None


# -----------------------------------------------------------------------------
# Convenience functions
# -----------------------------------------------------------------------------


def evaluate(
    expression: str | ASTNode,
    values: Mapping[str, Any] | None = None,
    collections: dict[str, list[Any]] | None = None,
    variables: dict[str, Any] | None = None,
    *,
    context: Context | None = None,
    budget: ExecutionBudget | None = None,
) -> Any:
    """Evaluate a formula against a set of values.

    This is the main entry point for expression evaluation. An Error value
    reaching the top level is raised as ``EvaluationError``.

    Args:
        expression: Formula text or an already parsed AST
        values: Named input values
        collections: Named collections of records
        variables: Initial variables
        context: A prepared context (overrides values/collections/variables)
        budget: Execution limits (defaults to 100,000 visits / 1,000 ms)

    Returns:
        The result of evaluating the expression

    Example:
        result = evaluate(
            'If(age >= 18, "adult", "minor")',
            {"age": 20}
        )
        # result = "adult"
    """
    ast = expression if isinstance(expression, ASTNode) else parse(expression)
    if context is None:
        context = Context(
            values=values if values is not None else {},
            collections=collections if collections is not None else {},
            variables=variables if variables is not None else {},
        )

    result = Evaluator(context, budget).run(ast)

    if isinstance(result, ErrorValue):
        raise EvaluationError.from_value(result, ast.span)
    return result


def evaluate_bool(
    expression: str | ASTNode,
    values: Mapping[str, Any] | None = None,
    collections: dict[str, list[Any]] | None = None,
    variables: dict[str, Any] | None = None,
    **kwargs: Any,
) -> bool:
    """Evaluate an expression and coerce the result with ``Boolean`` rules."""
    return to_bool(evaluate(expression, values, collections, variables, **kwargs))
