"""
Error handling — maps ``DurableError`` subclasses to RFC 7807 responses.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from durable_mr.api.schemas import ProblemDetail
from durable_mr.core.errors import (
    DurableError,
    ErrorCategory,
    InstanceExistsError,
    InstanceNotFoundError,
    RegistrationError,
)
from durable_mr.core.logging import get_logger

logger = get_logger(__name__)

# ── Error type → HTTP status mapping ─────────────────────────────────────

ERROR_TYPE_TO_STATUS: dict[type[DurableError], int] = {
    InstanceNotFoundError: 404,
    RegistrationError: 404,
    InstanceExistsError: 409,
}


def status_for_error(error: DurableError) -> int:
    """Resolve a durable error to an HTTP status, defaulting to 500."""
    for error_type, status in ERROR_TYPE_TO_STATUS.items():
        if isinstance(error, error_type):
            return status
    if error.category is ErrorCategory.VALIDATION:
        return 400
    return 500


def problem_response(*, status: int, title: str, detail: str = "", instance: str = "") -> JSONResponse:
    """Build a RFC 7807 JSON error response."""
    body = ProblemDetail(title=title, status=status, detail=detail, instance=instance)
    return JSONResponse(
        status_code=status,
        content=body.model_dump(),
        media_type="application/problem+json",
    )


async def durable_error_handler(request: Request, exc: DurableError) -> JSONResponse:
    status = status_for_error(exc)
    if status >= 500:
        logger.error("request_failed", path=request.url.path, **exc.to_dict())
    return problem_response(
        status=status,
        title=type(exc).__name__,
        detail=exc.message,
        instance=str(request.url),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — returns 500 with ProblemDetail."""
    logger.exception("unhandled_exception", path=request.url.path)
    return problem_response(
        status=500,
        title="Internal Server Error",
        detail="An unexpected error occurred.",
        instance=str(request.url),
    )
