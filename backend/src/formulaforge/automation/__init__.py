"""Business rules and decision tables built on the formula engine."""

from formulaforge.automation.decision_tables import DecisionTableExecutor, execute_table
from formulaforge.automation.loader import AutomationLoader
from formulaforge.automation.rules import RuleExecutor, execute_rule, execute_rules, order_rules
from formulaforge.automation.types import (
    BusinessRule,
    ColumnDefinition,
    DecisionTable,
    HitPolicy,
    RuleDiagnostic,
    RuleResult,
    RuleType,
    TableResult,
    TableRule,
    TableStatus,
)

__all__ = [
    "AutomationLoader",
    "BusinessRule",
    "ColumnDefinition",
    "DecisionTable",
    "DecisionTableExecutor",
    "HitPolicy",
    "RuleDiagnostic",
    "RuleExecutor",
    "RuleResult",
    "RuleType",
    "TableResult",
    "TableRule",
    "TableStatus",
    "execute_rule",
    "execute_rules",
    "execute_table",
    "order_rules",
]
