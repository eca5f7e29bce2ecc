"""Formula evaluation API endpoints."""

from typing import Any, Callable

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from formulaforge.api.errors import payload
from formulaforge.formulas.service import FormulaService


class EvaluateRequest(BaseModel):
    """Request body for single evaluation."""
    formula: str
    context: dict[str, Any] | None = None
    collections: dict[str, list[Any]] | None = None
    variables: dict[str, Any] | None = None


class BatchItem(BaseModel):
    id: str
    formula: str


class BatchEvaluateRequest(BaseModel):
    """Request body for batch evaluation."""
    formulas: list[BatchItem] = Field(default_factory=list)
    context: dict[str, Any] | None = None
    collections: dict[str, list[Any]] | None = None
    variables: dict[str, Any] | None = None


class ValidateRequest(BaseModel):
    formula: str


def create_formulas_router(
    get_service: Callable[[], FormulaService | None],
) -> APIRouter:
    """Create the formulas router.

    Args:
        get_service: Callable returning the shared FormulaService
    """
    router = APIRouter(prefix="/api/formulas", tags=["formulas"])

    def _service() -> FormulaService:
        service = get_service()
        if not service:
            raise HTTPException(500, "Formula service not initialized")
        return service

    @router.post("/evaluate")
    def evaluate_formula(request: EvaluateRequest) -> dict[str, Any]:
        """Evaluate one formula against a context."""
        data = _service().evaluate(
            request.formula,
            request.context,
            request.collections,
            request.variables,
        )
        return payload(data)

    @router.post("/evaluate-batch")
    def evaluate_batch(request: BatchEvaluateRequest) -> dict[str, Any]:
        """Evaluate many formulas; failures are reported per item."""
        data = _service().evaluate_batch(
            [item.model_dump() for item in request.formulas],
            request.context,
            request.collections,
            request.variables,
        )
        return payload(data)

    @router.post("/validate")
    def validate_formula(request: ValidateRequest) -> dict[str, Any]:
        """Parse a formula without evaluating it."""
        return _service().validate(request.formula).to_dict()

    @router.get("/functions")
    async def list_functions(category: str | None = None) -> dict[str, Any]:
        """Enumerate the registered functions, optionally for one category."""
        try:
            data = _service().list_functions(category)
        except ValueError:
            raise HTTPException(400, f"Unknown function category '{category}'") from None
        return {"success": True, **data}

    return router
