"""Saved query API endpoints."""

import logging
import time
from typing import Any, Callable

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from formulaforge.api.errors import payload
from formulaforge.formulas.errors import FormulaError
from formulaforge.formulas.service import FormulaService
from formulaforge.persistence import ExecutionStatus, QueryStore, SavedQuery

logger = logging.getLogger(__name__)


class CreateQueryRequest(BaseModel):
    """Request body for saving a query."""
    name: str
    formula: str
    description: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    collections: dict[str, list[Any]] = Field(default_factory=dict)
    variables: dict[str, Any] = Field(default_factory=dict)


class UpdateQueryRequest(BaseModel):
    """Request body for a partial update."""
    name: str | None = None
    formula: str | None = None
    description: str | None = None
    context: dict[str, Any] | None = None
    collections: dict[str, list[Any]] | None = None
    variables: dict[str, Any] | None = None


def create_queries_router(
    get_store: Callable[[], QueryStore | None],
    get_service: Callable[[], FormulaService | None],
) -> APIRouter:
    """Create the saved queries router.

    Args:
        get_store: Callable returning the QueryStore instance
        get_service: Callable returning the shared FormulaService
    """
    router = APIRouter(prefix="/api/queries", tags=["queries"])

    def _store() -> QueryStore:
        store = get_store()
        if not store:
            raise HTTPException(500, "Query store not initialized")
        return store

    def _service() -> FormulaService:
        service = get_service()
        if not service:
            raise HTTPException(500, "Formula service not initialized")
        return service

    def _check_formula(formula: str) -> None:
        result = _service().validate(formula)
        if not result.valid:
            raise result.error

    def _get_or_404(query_id: str) -> SavedQuery:
        query = _store().get(query_id)
        if not query:
            raise HTTPException(404, f"Saved query '{query_id}' not found")
        return query

    @router.get("")
    async def list_queries(name: str | None = None) -> dict[str, Any]:
        """List saved queries, optionally filtered by name."""
        return payload([q.to_dict() for q in _store().list(name=name)])

    @router.post("", status_code=201)
    async def create_query(request: CreateQueryRequest) -> dict[str, Any]:
        """Save a query. The formula must parse."""
        _check_formula(request.formula)
        query = _store().create(SavedQuery(id="", **request.model_dump()))
        return payload(query.to_dict())

    @router.get("/{query_id}")
    async def get_query(query_id: str) -> dict[str, Any]:
        return payload(_get_or_404(query_id).to_dict())

    @router.put("/{query_id}")
    async def update_query(query_id: str, request: UpdateQueryRequest) -> dict[str, Any]:
        """Partial update; bumps the query version."""
        updates = request.model_dump(exclude_none=True)
        if "formula" in updates:
            _check_formula(updates["formula"])
        query = _store().update(query_id, updates)
        if not query:
            raise HTTPException(404, f"Saved query '{query_id}' not found")
        return payload(query.to_dict())

    @router.delete("/{query_id}")
    async def delete_query(query_id: str) -> dict[str, Any]:
        if not _store().delete(query_id):
            raise HTTPException(404, f"Saved query '{query_id}' not found")
        return {"success": True}

    @router.post("/{query_id}/execute")
    def execute_query(query_id: str) -> dict[str, Any]:
        """Evaluate a saved query and record the execution."""
        query = _get_or_404(query_id)
        started = time.perf_counter()
        try:
            data = _service().evaluate(
                query.formula, query.context, query.collections, query.variables
            )
        except FormulaError as e:
            elapsed = (time.perf_counter() - started) * 1000
            _store().record_execution(
                query.id, ExecutionStatus.ERROR, elapsed, error_message=e.message
            )
            logger.debug("Saved query %s failed: %s", query.id, e.message)
            raise

        elapsed = (time.perf_counter() - started) * 1000
        execution = _store().record_execution(
            query.id, ExecutionStatus.SUCCESS, elapsed, result=data["result"]
        )
        return payload({**data, "executionId": execution.id, "executionTimeMs": elapsed})

    @router.get("/{query_id}/executions")
    async def list_executions(query_id: str, limit: int = 50) -> dict[str, Any]:
        """Execution history, most recent first."""
        _get_or_404(query_id)
        return payload([e.to_dict() for e in _store().list_executions(query_id, limit=limit)])

    return router
