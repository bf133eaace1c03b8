"""
Exception handlers that turn errors into the registry's JSON shape:

    {"error": {"code", "title", "message", "retryable",
               "user_action_required", "remediation"}}

``message`` is always the registry's safe_message; the exception's detail
and context only go to the log.
"""

import logging
from typing import Callable

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import FeedbackFunnelError, ValidationError
from app.core.errors.registry import ErrorEntry, error_registry

logger = logging.getLogger(__name__)

INTERNAL_ERROR_CODE = "FBF-SYS-001"

# Used when a code is missing from the registry (or the registry is not loaded)
_FALLBACK = ErrorEntry(
    code=INTERNAL_ERROR_CODE,
    domain="SYS",
    title="Internal error",
    severity="ERROR",
    retryable=False,
    user_action_required=False,
    http_status=500,
    safe_message="An unexpected error occurred.",
)


def _error_response(code: str, entry: ErrorEntry) -> JSONResponse:
    return JSONResponse(
        status_code=entry.http_status,
        content={
            "error": {
                "code": code,
                "title": entry.title,
                "message": entry.safe_message,
                "retryable": entry.retryable,
                "user_action_required": entry.user_action_required,
                "remediation": list(entry.remediation),
            }
        },
    )


def _log_fn(severity: str) -> Callable[..., None]:
    return {
        "DEBUG": logger.debug,
        "INFO": logger.info,
        "WARN": logger.warning,
        "ERROR": logger.error,
        "CRITICAL": logger.critical,
    }.get(severity, logger.error)


async def feedback_funnel_error_handler(request: Request, exc: FeedbackFunnelError) -> JSONResponse:
    entry = error_registry.get(exc.code)
    if entry is None:
        logger.error("unregistered_error_code", extra={"error.code": exc.code, "error.message": exc.detail})
        return _error_response(exc.code, _FALLBACK)

    _log_fn(entry.severity)(
        entry.title,
        extra={
            "error.code": exc.code,
            "error.kind": type(exc).__name__,
            "error.message": exc.detail,
            "error.retryable": entry.retryable,
            "http.path": request.url.path,
            **{f"error.ctx.{k}": v for k, v in exc.context.items()},
        },
    )
    return _error_response(entry.code, entry)


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body/query validation failures become FBF-API-001 (400, not FastAPI's 422)."""
    fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
    return await feedback_funnel_error_handler(
        request,
        ValidationError(detail="request validation failed", context={"fields": fields}),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception on %s %s: %s", request.method, request.url.path, exc,
        exc_info=exc,
    )
    return _error_response(INTERNAL_ERROR_CODE, error_registry.get(INTERNAL_ERROR_CODE) or _FALLBACK)
