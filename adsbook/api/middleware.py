"""FastAPI middleware: correlation IDs and error handling."""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING, Any

import structlog
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from adsbook.errors import AdsbookError, PackIncompleteError

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Reads or generates X-Correlation-ID and binds it to structlog context."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID", uuid.uuid4().hex[:12])

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            path=request.url.path,
            method=request.method,
        )

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 2)

        logger.info(
            "Request completed",
            status=response.status_code,
            duration_ms=duration_ms,
        )

        response.headers["X-Correlation-ID"] = correlation_id
        return response


def error_body(error: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"ok": False, "error": error}
    if details:
        body["details"] = details
    return body


def add_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers returning ``{ok: false, error, details}``."""

    @app.exception_handler(PackIncompleteError)
    async def pack_incomplete_handler(_request: Request, exc: PackIncompleteError) -> JSONResponse:
        body = error_body(exc.message, exc.details())
        body["status"] = exc.status
        body["messages"] = exc.messages
        body["fetch_diagnostics"] = exc.fetch_diagnostics
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(AdsbookError)
    async def domain_error_handler(_request: Request, exc: AdsbookError) -> JSONResponse:
        logger.info("Request rejected", code=exc.code, status=exc.status_code, error=exc.message)
        return JSONResponse(
            status_code=exc.status_code, content=error_body(exc.message, exc.details())
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=error_body(
                "Request validation failed.",
                {"code": "invalid_request", "errors": jsonable_errors(exc)},
            ),
        )

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Store operation failed", error=str(exc), exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=error_body(f"Store operation failed: {exc}", {"code": "store_error"}),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(_request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400, content=error_body(str(exc), {"code": "bad_request"})
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(_request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", error=str(exc), exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=error_body(
                "An unexpected error occurred", {"code": "internal_server_error"}
            ),
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": str(err.get("msg", ""))}
        for err in exc.errors()
    ]
