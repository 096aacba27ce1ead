"""Global exception handlers for the FastAPI app.

Every error leaving the service has the same JSON shape:
`{"success": false, "message": ...}`. Unhandled exceptions are logged at
ERROR and answered with a generic 500; details never reach the client.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

logger = logging.getLogger(__name__)


def error_payload(message: str, **extra: Any) -> dict[str, Any]:
    """Return the standard error body."""
    return {"success": False, "message": message, **extra}


def install_error_handling(app: FastAPI) -> None:
    """Install exception handlers on the FastAPI app."""
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)


async def _http_exception_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, StarletteHTTPException):
        msg = "Expected StarletteHTTPException"
        raise TypeError(msg)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(str(exc.detail)),
        headers=exc.headers,
    )


async def _request_validation_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, RequestValidationError):
        msg = "Expected RequestValidationError"
        raise TypeError(msg)
    # Expected user input; don't log at ERROR.
    return JSONResponse(
        status_code=422,
        content=error_payload("Validation error", errors=jsonable_errors(exc)),
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Strip non-serializable context from validation errors."""
    return [
        {"loc": list(err.get("loc", ())), "msg": str(err.get("msg", "")), "type": err.get("type")}
        for err in exc.errors()
    ]


async def _unhandled_exception_handler(request: Request, _exc: Exception) -> Response:
    logger.exception(
        "Unhandled exception on %s %s", request.method, request.url.path
    )
    return JSONResponse(
        status_code=500,
        content=error_payload("Internal Server Error"),
    )
