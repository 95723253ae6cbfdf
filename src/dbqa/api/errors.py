"""
Error handlers - map engine errors to RFC 7807 responses.

``NotFoundError`` → 404, ``QueryBusyError`` and ``AlertConflictError`` → 409, any other
``DbqaError`` → 400, anything else → 500.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from dbqa.api.schemas import ProblemDetail
from dbqa.core.errors import AlertConflictError, DbqaError, NotFoundError, QueryBusyError
from dbqa.logging import get_logger

logger = get_logger(__name__)

_TITLES = {400: "Bad Request", 404: "Not Found", 409: "Conflict", 500: "Internal Server Error"}


def status_for_error(exc: DbqaError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (QueryBusyError, AlertConflictError)):
        return 409
    return 400


def problem_response(
    *,
    status: int,
    title: str,
    detail: str = "",
    instance: str = "",
    error: DbqaError | None = None,
) -> JSONResponse:
    """Build an RFC 7807 JSON error response."""
    body = ProblemDetail(title=title, status=status, detail=detail, instance=instance)
    if error is not None:
        body.error_type = type(error).__name__
        body.category = error.category.value
        body.retryable = error.retryable
    return JSONResponse(
        status_code=status,
        content=body.model_dump(),
        media_type="application/problem+json",
    )


async def dbqa_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, DbqaError)
    status = status_for_error(exc)
    logger.info("api_error", path=request.url.path, status=status, **exc.to_dict())
    return problem_response(
        status=status,
        title=_TITLES[status],
        detail=exc.message,
        instance=str(request.url),
        error=exc,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions: 500 with a problem document."""
    logger.exception("api_unhandled_error", path=request.url.path, error=str(exc))
    return problem_response(
        status=500,
        title=_TITLES[500],
        detail="An unexpected error occurred.",
        instance=str(request.url),
    )
