"""
convo_mcp/core/errors.py

Purpose: HTTP error envelope

- Every error leaving the HTTP surface has the shape {error, code, details}
- Domain errors keep their own status and code
- Unexpected failures are logged with request context and hidden in production
"""

from typing import Any, Iterable, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from convo_mcp.core.config import settings
from convo_mcp.core.exceptions import ConvoMCPError
from convo_mcp.core.logging import get_logger
from convo_mcp.schemas.response import ErrorResponse

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "An internal error occurred. Please try again later."


def error_json(status_code: int, error: str, code: str, details: Optional[Any] = None) -> JSONResponse:
    """Builds the error envelope response."""
    body = ErrorResponse(error=error, code=code, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def jsonable_errors(errors: Iterable[dict]) -> List[dict]:
    """Drops the ``ctx`` payloads pydantic attaches to errors (they may hold exceptions)."""
    return [{key: value for key, value in error.items() if key != "ctx"} for error in errors]


def add_exception_handlers(app: FastAPI):
    """
    Registers exception handlers with the FastAPI app.
    """

    @app.exception_handler(ConvoMCPError)
    async def domain_error_handler(request: Request, exc: ConvoMCPError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return error_json(exc.status_code, exc.message, exc.code, exc.details)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return error_json(exc.status_code, str(exc.detail), "HTTP_ERROR")

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_json(
            422,
            "Input validation failed",
            "VALIDATION_ERROR",
            jsonable_errors(exc.errors()),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        client = request.client.host if request.client else "unknown"
        logger.error(
            f"💥 Unhandled exception on {request.method} {request.url.path}: {exc}",
            extra={"client": client},
            exc_info=True,
        )
        message = GENERIC_ERROR_MESSAGE if settings.is_production else str(exc)
        return error_json(500, message, "INTERNAL_ERROR")
