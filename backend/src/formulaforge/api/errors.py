"""Error payloads and exception handlers for the HTTP API.

Every failure response has the shape
``{success: false, error: <code>, message, position?, span?}``.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from formulaforge.formulas.errors import ErrorKind, FormulaError

logger = logging.getLogger(__name__)

NOT_FOUND = "NOT_FOUND"

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.PARSE_ERROR: 400,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.INTERNAL_ERROR: 500,
}


def status_for(kind: ErrorKind) -> int:
    """HTTP status for an engine error kind; evaluation failures are 422."""
    return _STATUS_BY_KIND.get(kind, 422)


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": code, "message": message},
    )


def _request_validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def install_error_handlers(app: FastAPI) -> None:
    """Register the handlers that render failures as error payloads."""

    @app.exception_handler(FormulaError)
    async def formula_error_handler(request: Request, exc: FormulaError):
        if exc.kind == ErrorKind.INTERNAL_ERROR:
            logger.error("Internal error on %s: %s", request.url.path, exc.message)
        return JSONResponse(status_code=status_for(exc.kind), content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(
            400, ErrorKind.VALIDATION_ERROR.value, _request_validation_message(exc)
        )

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        if exc.status_code == 404:
            code = NOT_FOUND
        elif exc.status_code < 500:
            code = ErrorKind.VALIDATION_ERROR.value
        else:
            code = ErrorKind.INTERNAL_ERROR.value
        return error_response(exc.status_code, code, str(exc.detail))


def payload(data: Any) -> dict[str, Any]:
    """Successful response envelope."""
    return {"success": True, "data": data}
