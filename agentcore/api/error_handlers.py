"""Error Handlers — exception → JSON envelope mapping for the agentcore API.

Invariants:
    - AgentCoreError → its own http_status and to_response() envelope
    - Transient provider failures carry a Retry-After header when the vendor sent one
    - RequestValidationError → 400 VALIDATION_ERROR with one entry per bad field
    - Anything else → 500 INTERNAL_ERROR; internals never reach the client

Design Decisions:
    - Log level follows error severity: warnings (tool/validation class) stay warnings
    - SSE streams never reach these handlers; the runner reports in-band errors
"""

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from agentcore.core.errors import AgentCoreError, ErrorSeverity

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AgentCoreError, handle_agentcore_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)


async def handle_agentcore_error(request: Request, exc: AgentCoreError) -> JSONResponse:
    logger.log(
        _LOG_LEVELS.get(exc.severity, logging.ERROR),
        f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}",
        extra={
            "error_code": exc.code,
            "session_id": exc.context.session_id or request.path_params.get("session_id"),
            "provider": exc.context.provider,
        },
    )
    headers = None
    if exc.context.retry_after_ms:
        headers = {"Retry-After": str(math.ceil(exc.context.retry_after_ms / 1000))}
    return JSONResponse(
        status_code=exc.http_status, content=exc.to_response(), headers=headers,
    )


async def handle_validation_error(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(loc) for loc in e["loc"] if loc != "body") or "body",
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]
    logger.warning(
        f"Rejected request to {request.url.path}: "
        f"{', '.join(d['field'] for d in details)}",
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request data",
                "category": "validation",
                "severity": ErrorSeverity.WARNING.value,
                "details": details,
            },
        },
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
        exc_info=exc,
        extra={"session_id": request.path_params.get("session_id")},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "category": "internal",
                "severity": ErrorSeverity.CRITICAL.value,
            },
        },
    )
