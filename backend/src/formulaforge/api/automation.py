"""Business rule and decision table API endpoints."""

from typing import Any, Callable

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from formulaforge.api.errors import payload, status_for
from formulaforge.automation.decision_tables import DecisionTableExecutor
from formulaforge.automation.loader import AutomationLoader
from formulaforge.automation.rules import RuleExecutor
from formulaforge.automation.types import BusinessRule, DecisionTable, RuleResult
from formulaforge.formulas.service import FormulaService


class ExecuteRequest(BaseModel):
    """Request body for executing a stored rule or table."""
    inputData: dict[str, Any] = Field(default_factory=dict)


class InlineRuleRequest(BaseModel):
    rule: dict[str, Any]
    inputData: dict[str, Any] = Field(default_factory=dict)


class InlineTableRequest(BaseModel):
    table: dict[str, Any]
    inputData: dict[str, Any] = Field(default_factory=dict)


def _rule_response(result: RuleResult) -> Any:
    """Rule failures keep the result shape but carry an error status."""
    if result.error is not None:
        return JSONResponse(status_code=status_for(result.error.kind), content=result.to_dict())
    return result.to_dict()


def create_automation_router(
    get_service: Callable[[], FormulaService | None],
    get_loader: Callable[[], AutomationLoader | None],
    get_rule_executor: Callable[[], RuleExecutor | None],
    get_table_executor: Callable[[], DecisionTableExecutor | None],
) -> APIRouter:
    """Create the automation router.

    Args:
        get_service: Callable returning the shared FormulaService
        get_loader: Callable returning the loaded rule/table metadata
        get_rule_executor: Callable returning the shared RuleExecutor
        get_table_executor: Callable returning the shared DecisionTableExecutor
    """
    router = APIRouter(prefix="/api", tags=["automation"])

    def _loader() -> AutomationLoader:
        loader = get_loader()
        if not loader:
            raise HTTPException(500, "Automation metadata not loaded")
        return loader

    def _rule_executor() -> RuleExecutor:
        executor = get_rule_executor()
        if not executor:
            raise HTTPException(500, "Rule executor not initialized")
        return executor

    def _table_executor() -> DecisionTableExecutor:
        executor = get_table_executor()
        if not executor:
            raise HTTPException(500, "Decision table executor not initialized")
        return executor

    # --- Business rules ---

    @router.get("/rules")
    async def list_rules() -> dict[str, Any]:
        """List loaded business rules."""
        return payload([rule.to_dict() for rule in _loader().list_rules()])

    @router.get("/rules/{rule_id}")
    async def get_rule(rule_id: str) -> dict[str, Any]:
        rule = _loader().get_rule(rule_id)
        if not rule:
            raise HTTPException(404, f"Business rule '{rule_id}' not found")
        return payload(rule.to_dict())

    @router.post("/rules/execute")
    def execute_inline_rule(request: InlineRuleRequest) -> Any:
        """Execute a rule definition supplied in the request."""
        try:
            rule = BusinessRule.from_dict(request.rule)
        except (KeyError, TypeError, ValueError) as e:
            raise HTTPException(400, f"Invalid business rule: {e}") from e
        return _rule_response(_rule_executor().execute(rule, request.inputData))

    @router.post("/rules/{rule_id}/execute")
    def execute_rule(rule_id: str, request: ExecuteRequest) -> Any:
        """Execute a loaded rule against ``inputData``."""
        rule = _loader().get_rule(rule_id)
        if not rule:
            raise HTTPException(404, f"Business rule '{rule_id}' not found")
        return _rule_response(_rule_executor().execute(rule, request.inputData))

    # --- Decision tables ---

    @router.get("/tables")
    async def list_tables() -> dict[str, Any]:
        """List loaded decision tables."""
        return payload([table.to_dict() for table in _loader().list_tables()])

    @router.get("/tables/{table_id}")
    async def get_table(table_id: str) -> dict[str, Any]:
        table = _loader().get_table(table_id)
        if not table:
            raise HTTPException(404, f"Decision table '{table_id}' not found")
        return payload(table.to_dict())

    @router.post("/tables/execute")
    def execute_inline_table(request: InlineTableRequest) -> dict[str, Any]:
        """Execute a table definition supplied in the request.

        Inline tables are compiled by a throwaway executor so they never
        share cached conditions with loaded tables of the same id.
        """
        try:
            table = DecisionTable.from_dict(request.table)
        except (KeyError, TypeError, ValueError) as e:
            raise HTTPException(400, f"Invalid decision table: {e}") from e
        service = get_service()
        if not service:
            raise HTTPException(500, "Formula service not initialized")
        return DecisionTableExecutor(service).execute(table, request.inputData).to_dict()

    @router.post("/tables/{table_id}/execute")
    def execute_table(table_id: str, request: ExecuteRequest) -> dict[str, Any]:
        """Execute a loaded table against ``inputData``; only active tables run."""
        table = _loader().get_table(table_id)
        if not table:
            raise HTTPException(404, f"Decision table '{table_id}' not found")
        result = _table_executor().execute(table, request.inputData, require_active=True)
        return result.to_dict()

    return router
