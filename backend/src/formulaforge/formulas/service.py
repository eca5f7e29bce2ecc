"""In-process interface used by the HTTP API, the CLI and the executors.

Wraps the parse cache, execution budget and function catalog so callers
deal in plain JSON-ready data. Engine failures are raised as
``FormulaError`` subclasses; ``error_payload`` renders them.
"""

import logging
from collections.abc import Mapping
from typing import Any

from formulaforge.formulas.cache import ParseCache
from formulaforge.formulas.catalog import FunctionCatalog
from formulaforge.formulas.errors import ErrorKind, FormulaError, ParseError
from formulaforge.formulas.evaluator import Context, ExecutionBudget, evaluate
from formulaforge.formulas.functions import FunctionCategory, FunctionRegistry
from formulaforge.formulas.parser import ASTNode, ValidationResult
from formulaforge.formulas.values import kind_of, to_plain

logger = logging.getLogger(__name__)


def error_payload(exc: Exception) -> dict[str, Any]:
    """The HTTP error payload for any failure."""
    if isinstance(exc, FormulaError):
        return exc.to_dict()
    return {
        "success": False,
        "error": ErrorKind.INTERNAL_ERROR.value,
        "message": str(exc) or type(exc).__name__,
    }


class FormulaService:
    """Evaluate, validate and describe formulas.

    Example:
        service = FormulaService()
        service.evaluate('If(age >= 18, "adult", "minor")', {"age": 20})
        # {"formula": ..., "result": "adult", "type": "text"}
    """

    def __init__(
        self,
        cache: ParseCache | None = None,
        budget: ExecutionBudget | None = None,
        catalog: FunctionCatalog | None = None,
    ):
        self.cache = cache or ParseCache()
        self.budget = budget or ExecutionBudget()
        self.catalog = catalog

    def parse(self, formula: str) -> ASTNode:
        return self.cache.get(formula)

    def run(
        self,
        formula: str,
        values: Mapping[str, Any] | None = None,
        collections: dict[str, list[Any]] | None = None,
        variables: dict[str, Any] | None = None,
    ) -> Any:
        """Evaluate and return the raw formula value.

        Collections and variables are copied, so the caller's dicts are
        never modified.
        """
        context = Context(
            values=dict(values or {}),
            collections=dict(collections or {}),
            variables=dict(variables or {}),
        )
        return evaluate(self.parse(formula), context=context, budget=self.budget)

    def evaluate(
        self,
        formula: str,
        values: Mapping[str, Any] | None = None,
        collections: dict[str, list[Any]] | None = None,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Evaluate a single formula.

        Raises:
            ParseError: If the formula does not parse
            EvaluationError: If evaluation fails
        """
        result = self.run(formula, values, collections, variables)
        logger.debug("Evaluated %r -> %s", formula, kind_of(result))
        return {"formula": formula, "result": to_plain(result), "type": kind_of(result)}

    def evaluate_batch(
        self,
        formulas: list[Mapping[str, Any]],
        values: Mapping[str, Any] | None = None,
        collections: dict[str, list[Any]] | None = None,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Evaluate ``[{id, formula}, ...]``; a failing item never aborts the others."""
        results: dict[str, Any] = {}
        errors: dict[str, str] = {}

        for item in formulas:
            item_id = str(item["id"])
            try:
                results[item_id] = to_plain(
                    self.run(item["formula"], values, collections, variables)
                )
            except FormulaError as e:
                errors[item_id] = e.message
            except Exception as e:
                logger.exception("Unexpected failure evaluating batch item %s", item_id)
                errors[item_id] = str(e) or type(e).__name__

        data: dict[str, Any] = {"results": results}
        if errors:
            data["errors"] = errors
        return data

    def validate(self, formula: str) -> ValidationResult:
        """Parse only, never evaluate."""
        try:
            self.parse(formula)
        except ParseError as exc:
            return ValidationResult(valid=False, error=exc)
        return ValidationResult(valid=True)

    def list_functions(self, category: str | None = None) -> dict[str, Any]:
        """Enumerate the live registry, optionally for one category.

        Raises:
            ValueError: For an unknown category name
        """
        if category:
            functions = FunctionRegistry.list_by_category(FunctionCategory(category.lower()))
        else:
            functions = FunctionRegistry.list_all()

        rows = []
        for func_def in sorted(functions, key=lambda f: (f.category.value, f.name.lower())):
            if self.catalog is not None:
                rows.append(self.catalog.describe(func_def.name))
            else:
                rows.append(func_def.to_dict())

        return {"count": len(rows), "functions": rows}
