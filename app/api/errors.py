"""HTTP rendering of the error taxonomy.

Every handler answers with the same shape::

    {"error": {"code": ..., "message": ..., <details>}}

Internal exception details never reach the client.
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import RateLimitError, SearchError

logger = logging.getLogger(__name__)


def search_error_handler(request: Request, exc: SearchError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}

    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc.message,
            extra={"context": {"event": "error", "path": request.url.path, **exc.details}},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_dict()},
        headers=headers,
    )


def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and parameters are validation errors (400)."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "header")]
    field = ".".join(location) or "request"
    return JSONResponse(
        status_code=400,
        content={"error": {
            "code": "VALIDATION_ERROR",
            "message": first.get("msg", "Invalid request."),
            "field": field,
        }},
    )


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log the traceback, answer with a bare 500."""
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}},
    )
