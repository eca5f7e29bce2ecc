"""Business rule executor.

A rule's condition is evaluated against the input record and coerced with
Boolean rules. When it is met and the rule is enabled, the action formula
is evaluated and its value returned. The rule type only tells callers how
to interpret that value; execution is uniform.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from formulaforge.automation.types import BusinessRule, RuleResult
from formulaforge.formulas.errors import FormulaError
from formulaforge.formulas.service import FormulaService
from formulaforge.formulas.values import to_bool

logger = logging.getLogger(__name__)


class RuleExecutor:
    """Executes business rules through a FormulaService (shared parse cache and budget)."""

    def __init__(self, service: FormulaService | None = None):
        self.service = service or FormulaService()

    def execute(self, rule: BusinessRule, input_data: Mapping[str, Any]) -> RuleResult:
        """Execute one rule. Failures are reported in the result, never raised."""
        try:
            condition_met = to_bool(self.service.run(rule.condition, input_data))
        except FormulaError as e:
            logger.debug("Rule %s condition failed: %s", rule.id, e.message)
            return RuleResult(rule.id, success=False, condition_met=False, error=e)

        logger.debug("Rule %s condition met: %s", rule.id, condition_met)
        if not condition_met or not rule.enabled or not rule.action:
            return RuleResult(rule.id, success=True, condition_met=condition_met)

        try:
            action = self.service.run(rule.action, input_data)
        except FormulaError as e:
            logger.debug("Rule %s action failed: %s", rule.id, e.message)
            return RuleResult(rule.id, success=False, condition_met=True, error=e)

        return RuleResult(rule.id, success=True, condition_met=True, action=action)

    def execute_all(
        self,
        rules: Iterable[BusinessRule],
        input_data: Mapping[str, Any],
        stop_at_first_match: bool = False,
    ) -> list[RuleResult]:
        """Execute enabled rules by descending priority (ties keep their order).

        Args:
            rules: Candidate rules
            input_data: The input record
            stop_at_first_match: Stop after the first rule whose condition is met
        """
        results = []
        for rule in order_rules(rules):
            result = self.execute(rule, input_data)
            results.append(result)
            if stop_at_first_match and result.condition_met:
                break
        return results


def order_rules(rules: Iterable[BusinessRule]) -> list[BusinessRule]:
    """Enabled rules, highest priority first; sorting is stable."""
    return sorted((r for r in rules if r.enabled), key=lambda r: -r.priority)


def execute_rule(
    rule: BusinessRule,
    input_data: Mapping[str, Any],
    service: FormulaService | None = None,
) -> RuleResult:
    """Convenience wrapper around ``RuleExecutor.execute``."""
    return RuleExecutor(service).execute(rule, input_data)


def execute_rules(
    rules: Iterable[BusinessRule],
    input_data: Mapping[str, Any],
    stop_at_first_match: bool = False,
    service: FormulaService | None = None,
) -> list[RuleResult]:
    """Convenience wrapper around ``RuleExecutor.execute_all``."""
    return RuleExecutor(service).execute_all(rules, input_data, stop_at_first_match)
