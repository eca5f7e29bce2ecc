"""Business rule and decision table types.

Defines the data structures shared by the executors, the metadata loader
and the API:
- BusinessRule: a condition/action formula pair
- DecisionTable: input/output columns, rule rows and a hit policy
- RuleResult / TableResult: execution outcomes in API shape
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from formulaforge.formulas.errors import FormulaError
from formulaforge.formulas.values import to_plain


class RuleType(str, Enum):
    CONDITION = "condition"
    VALIDATION = "validation"
    TRANSFORMATION = "transformation"
    CALCULATION = "calculation"


class HitPolicy(str, Enum):
    FIRST = "first"
    UNIQUE = "unique"
    PRIORITY = "priority"
    ANY = "any"
    COLLECT = "collect"


class TableStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"


def _priority(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"priority must be a non-negative integer, got {value!r}")
    return value


def _formula(value: Any) -> str | None:
    """Formula cells may be written as YAML numbers or booleans."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class BusinessRule:
    """A condition/action pair.

    Attributes:
        id: Unique rule identifier
        condition: Formula coerced with Boolean rules
        action: Formula evaluated when the condition is met (optional)
        rule_type: How callers interpret the action value
        priority: Ordering key when a set of rules runs (higher first)
        enabled: Disabled rules never run their action
        decision_table_id: Table consulted by callers of this rule
    """

    id: str
    condition: str
    action: str | None = None
    rule_type: RuleType = RuleType.CONDITION
    priority: int = 0
    enabled: bool = True
    name: str | None = None
    display_name: str | None = None
    description: str | None = None
    decision_table_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BusinessRule":
        """Create BusinessRule from YAML/JSON dict."""
        if not data.get("id"):
            raise ValueError("Business rule requires an 'id'")
        condition = _formula(data.get("condition"))
        if not condition:
            raise ValueError(f"Business rule '{data['id']}' requires a 'condition'")

        return cls(
            id=str(data["id"]),
            condition=condition,
            action=_formula(data.get("action")),
            rule_type=RuleType(data.get("ruleType", "condition")),
            priority=_priority(data.get("priority", 0)),
            enabled=bool(data.get("enabled", True)),
            name=data.get("name"),
            display_name=data.get("displayName"),
            description=data.get("description"),
            decision_table_id=data.get("decisionTableId"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "displayName": self.display_name,
            "description": self.description,
            "ruleType": self.rule_type.value,
            "condition": self.condition,
            "action": self.action,
            "priority": self.priority,
            "enabled": self.enabled,
            "decisionTableId": self.decision_table_id,
        }


@dataclass
class ColumnDefinition:
    """An input or output column of a decision table."""

    name: str
    label: str | None = None
    type: str = "any"
    description: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | str) -> "ColumnDefinition":
        if isinstance(data, str):
            return cls(name=data)
        return cls(
            name=data["name"],
            label=data.get("label"),
            type=data.get("type", "any"),
            description=data.get("description"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label or self.name,
            "type": self.type,
            "description": self.description,
        }


@dataclass
class TableRule:
    """One row of a decision table.

    Attributes:
        conditions: Input name -> condition cell
        outputs: Output name -> output formula
    """

    id: str
    conditions: dict[str, str | None] = field(default_factory=dict)
    outputs: dict[str, str | None] = field(default_factory=dict)
    priority: int = 0
    description: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableRule":
        if not data.get("id"):
            raise ValueError("Decision table rule requires an 'id'")
        return cls(
            id=str(data["id"]),
            conditions={k: _formula(v) for k, v in (data.get("conditions") or {}).items()},
            outputs={k: _formula(v) for k, v in (data.get("outputs") or {}).items()},
            priority=_priority(data.get("priority", 0)),
            description=data.get("description"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conditions": self.conditions,
            "outputs": self.outputs,
            "priority": self.priority,
            "description": self.description,
        }


@dataclass
class DecisionTable:
    """A decision table.

    ``revision`` identifies the rule contents; compiled conditions are
    cached per (id, revision), so edits must bump it.
    """

    id: str
    inputs: list[ColumnDefinition]
    outputs: list[ColumnDefinition]
    rules: list[TableRule]
    hit_policy: HitPolicy = HitPolicy.FIRST
    default_output: dict[str, Any] | None = None
    name: str | None = None
    display_name: str | None = None
    description: str | None = None
    status: TableStatus = TableStatus.ACTIVE
    revision: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DecisionTable":
        """Create DecisionTable from YAML/JSON dict."""
        if not data.get("id"):
            raise ValueError("Decision table requires an 'id'")

        table = cls(
            id=str(data["id"]),
            inputs=[ColumnDefinition.from_dict(c) for c in data.get("inputs", [])],
            outputs=[ColumnDefinition.from_dict(c) for c in data.get("outputs", [])],
            rules=[TableRule.from_dict(r) for r in data.get("rules", [])],
            hit_policy=HitPolicy(data.get("hitPolicy", "first")),
            default_output=data.get("defaultOutput"),
            name=data.get("name"),
            display_name=data.get("displayName"),
            description=data.get("description"),
            status=TableStatus(data.get("status", "active")),
            revision=int(data.get("revision", 1)),
        )
        table.check_columns()
        return table

    def check_columns(self) -> None:
        """Every rule cell must name a declared column.

        Raises:
            ValueError: On an undeclared input or output name
        """
        input_names = {c.name for c in self.inputs}
        output_names = {c.name for c in self.outputs}
        seen: set[str] = set()
        for rule in self.rules:
            if rule.id in seen:
                raise ValueError(f"Decision table '{self.id}' has duplicate rule id '{rule.id}'")
            seen.add(rule.id)
            for name in rule.conditions:
                if name not in input_names:
                    raise ValueError(
                        f"Rule '{rule.id}' of table '{self.id}' uses undeclared input '{name}'"
                    )
            for name in rule.outputs:
                if name not in output_names:
                    raise ValueError(
                        f"Rule '{rule.id}' of table '{self.id}' sets undeclared output '{name}'"
                    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "displayName": self.display_name,
            "description": self.description,
            "status": self.status.value,
            "revision": self.revision,
            "hitPolicy": self.hit_policy.value,
            "inputs": [c.to_dict() for c in self.inputs],
            "outputs": [c.to_dict() for c in self.outputs],
            "rules": [r.to_dict() for r in self.rules],
            "defaultOutput": self.default_output,
        }


@dataclass
class RuleResult:
    """Outcome of executing one business rule."""

    rule_id: str
    success: bool
    condition_met: bool
    action: Any = None
    error: FormulaError | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "ruleId": self.rule_id,
            "conditionMet": self.condition_met,
        }
        if self.condition_met and self.error is None:
            result["action"] = to_plain(self.action)
        if self.error is not None:
            result["error"] = self.error.kind.value
            result["message"] = self.error.message
            if self.error.span is not None:
                result["position"] = self.error.span.start
        return result


@dataclass
class RuleDiagnostic:
    """A condition of a table rule that failed to evaluate."""

    rule_id: str
    input_name: str
    error: FormulaError

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "input": self.input_name,
            "error": self.error.kind.value,
            "message": self.error.message,
        }


@dataclass
class TableResult:
    """Outcome of executing a decision table.

    ``outputs`` is a record, or a list of records for the collect policy.
    """

    table_id: str
    matched_rules: list[str]
    selected_rules: list[str]
    outputs: dict[str, Any] | list[dict[str, Any]]
    diagnostics: list[RuleDiagnostic] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "tableId": self.table_id,
            "matchedRules": self.matched_rules,
            "selectedRules": self.selected_rules,
            "outputs": to_plain(self.outputs),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }
