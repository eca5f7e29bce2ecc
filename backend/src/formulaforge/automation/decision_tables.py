"""Decision table executor.

Every rule row is tested in declaration order: a rule matches when each of
its condition cells is truthy for the input record. A cell that fails to
evaluate makes its rule not match and is reported as a diagnostic. The hit
policy then chooses which matched rules supply outputs, and only those
rules' output formulas are evaluated.

Condition cells take three forms:

    amount > 100 And region = "EU"    full formula
    > 100                             unary test, read as "<input> > 100"
    -   (or empty)                    any value
"""

import logging
import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from formulaforge.automation.types import (
    DecisionTable,
    HitPolicy,
    RuleDiagnostic,
    TableResult,
    TableRule,
    TableStatus,
)
from formulaforge.formulas.errors import ErrorKind, EvaluationError, FormulaError
from formulaforge.formulas.evaluator import Context, evaluate
from formulaforge.formulas.parser import ASTNode
from formulaforge.formulas.service import FormulaService
from formulaforge.formulas.values import to_bool, values_equal

logger = logging.getLogger(__name__)

ANY_VALUE = {"", "-"}

UNARY_TEST = re.compile(r"^(==|!=|<>|<=|>=|=|<|>)")


def condition_formula(input_name: str, cell: str | None) -> str | None:
    """Formula text for a condition cell, or None when the cell matches anything."""
    if cell is None or cell.strip() in ANY_VALUE:
        return None
    cell = cell.strip()
    if UNARY_TEST.match(cell):
        return f"{input_name} {cell}"
    return cell


@dataclass(frozen=True)
class CompiledCondition:
    input_name: str
    source: str
    ast: ASTNode | None
    error: FormulaError | None = None


@dataclass(frozen=True)
class CompiledRule:
    rule: TableRule
    conditions: tuple[CompiledCondition, ...]


class DecisionTableExecutor:
    """Executes decision tables.

    Parsed conditions are memoized per table id and revision.

    Example:
        executor = DecisionTableExecutor()
        result = executor.execute(table, {"amount": 50})
        result.outputs  # {"tier": "silver"}
    """

    def __init__(self, service: FormulaService | None = None):
        self.service = service or FormulaService()
        self._compiled: dict[tuple[str, int], list[CompiledRule]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def compile(self, table: DecisionTable) -> list[CompiledRule]:
        key = (table.id, table.revision)
        with self._lock:
            compiled = self._compiled.get(key)
        if compiled is not None:
            return compiled

        compiled = [
            CompiledRule(
                rule=rule,
                conditions=tuple(
                    self._compile_condition(name, cell)
                    for name, cell in rule.conditions.items()
                    if condition_formula(name, cell) is not None
                ),
            )
            for rule in table.rules
        ]
        with self._lock:
            self._compiled[key] = compiled
        logger.debug("Compiled decision table %s revision %d", table.id, table.revision)
        return compiled

    def _compile_condition(self, input_name: str, cell: str | None) -> CompiledCondition:
        source = condition_formula(input_name, cell)
        try:
            return CompiledCondition(input_name, source, self.service.parse(source))
        except FormulaError as e:
            return CompiledCondition(input_name, source, None, e)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(
        self,
        table: DecisionTable,
        input_data: Mapping[str, Any],
        require_active: bool = False,
    ) -> TableResult:
        """Execute a table against an input record.

        Raises:
            EvaluationError: HIT_POLICY_VIOLATION for unique/any conflicts, an
                evaluation error from a selected output formula, or
                VALIDATION_ERROR when ``require_active`` and the table is not active
            ParseError: If a selected output formula does not parse
        """
        if require_active and table.status != TableStatus.ACTIVE:
            raise EvaluationError(
                ErrorKind.VALIDATION_ERROR,
                f"Decision table '{table.id}' is {table.status.value}; "
                "only active tables can be executed",
            )

        diagnostics: list[RuleDiagnostic] = []
        matched = [
            compiled.rule
            for compiled in self.compile(table)
            if self._matches(compiled, input_data, diagnostics)
        ]
        matched_ids = [rule.id for rule in matched]
        logger.debug("Table %s matched rules %s", table.id, matched_ids)

        selected, outputs = self._apply_hit_policy(table, matched, input_data)
        return TableResult(
            table_id=table.id,
            matched_rules=matched_ids,
            selected_rules=[rule.id for rule in selected],
            outputs=outputs,
            diagnostics=diagnostics,
        )

    def _matches(
        self,
        compiled: CompiledRule,
        input_data: Mapping[str, Any],
        diagnostics: list[RuleDiagnostic],
    ) -> bool:
        for condition in compiled.conditions:
            if condition.error is not None:
                diagnostics.append(
                    RuleDiagnostic(compiled.rule.id, condition.input_name, condition.error)
                )
                return False
            try:
                value = evaluate(
                    condition.ast,
                    context=Context(values=dict(input_data)),
                    budget=self.service.budget,
                )
                if not to_bool(value):
                    return False
            except FormulaError as e:
                diagnostics.append(RuleDiagnostic(compiled.rule.id, condition.input_name, e))
                return False
        return True

    def _apply_hit_policy(
        self,
        table: DecisionTable,
        matched: list[TableRule],
        input_data: Mapping[str, Any],
    ) -> tuple[list[TableRule], Any]:
        policy = table.hit_policy

        if policy == HitPolicy.COLLECT:
            return matched, [self._outputs(rule, input_data) for rule in matched]

        if not matched:
            return [], dict(table.default_output or {})

        if policy == HitPolicy.FIRST:
            chosen = matched[0]
        elif policy == HitPolicy.UNIQUE:
            if len(matched) > 1:
                raise _violation(table, policy, matched)
            chosen = matched[0]
        elif policy == HitPolicy.PRIORITY:
            # max() keeps the earliest rule among equal priorities
            chosen = max(matched, key=lambda rule: rule.priority)
        elif policy == HitPolicy.ANY:
            results = [self._outputs(rule, input_data) for rule in matched]
            if any(not values_equal(results[0], other) for other in results[1:]):
                raise _violation(table, policy, matched)
            return matched, results[0]
        else:
            raise EvaluationError(ErrorKind.INTERNAL_ERROR, f"Unknown hit policy: {policy}")

        return [chosen], self._outputs(chosen, input_data)

    def _outputs(self, rule: TableRule, input_data: Mapping[str, Any]) -> dict[str, Any]:
        outputs: dict[str, Any] = {}
        for name, formula in rule.outputs.items():
            outputs[name] = None if formula is None else self.service.run(formula, input_data)
        return outputs


def _violation(table: DecisionTable, policy: HitPolicy, matched: list[TableRule]) -> EvaluationError:
    ids = ", ".join(rule.id for rule in matched)
    if policy == HitPolicy.UNIQUE:
        message = f"Hit policy 'unique' allows one matching rule; table '{table.id}' matched {ids}"
    else:
        message = f"Hit policy 'any' requires equal outputs; rules {ids} of table '{table.id}' disagree"
    return EvaluationError(ErrorKind.HIT_POLICY_VIOLATION, message)


def execute_table(
    table: DecisionTable,
    input_data: Mapping[str, Any],
    service: FormulaService | None = None,
) -> TableResult:
    """Convenience wrapper around ``DecisionTableExecutor.execute``."""
    return DecisionTableExecutor(service).execute(table, input_data)
