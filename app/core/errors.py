"""Error taxonomy shared by every core module.

Pure logic, no FastAPI imports.  Each error carries the HTTP status the
API layer should answer with, a stable machine-readable ``code`` and a
``details`` dict that is safe to return to the caller.
"""

from typing import Any


class SearchError(Exception):
    """Base class for all errors the search subsystem raises on purpose."""

    code = "SEARCH_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class ValidationError(SearchError):
    """Malformed or out-of-range input.  Caller-fixable, never retried."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, field: str, message: str, value: Any = None) -> None:
        details: dict[str, Any] = {"field": field}
        if value is not None:
            details["value"] = value if isinstance(value, (int, float, bool)) else str(value)[:100]
        super().__init__(message, details)
        self.field = field
        self.value = value


class IdentityError(SearchError):
    """Caller identity is missing or malformed."""

    code = "IDENTITY_REQUIRED"
    status_code = 401


class NotFoundError(SearchError):
    """The resource does not exist or is outside the caller's scope."""

    code = "NOT_FOUND"
    status_code = 404


class SearchTimeoutError(SearchError):
    """An operation exceeded its deadline."""

    code = "TIMEOUT"
    status_code = 408

    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(
            f"Operation '{operation}' timed out after {timeout:g}s",
            {"operation": operation, "timeout_seconds": timeout},
        )
        self.operation = operation
        self.timeout = timeout


class RateLimitError(SearchError):
    """Caller exceeded its request quota for the current window."""

    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, limit: int, window: float, retry_after: int) -> None:
        super().__init__(
            f"Rate limit of {limit} requests per {window:g}s exceeded",
            {"limit": limit, "window_seconds": window, "retry_after": retry_after},
        )
        self.limit = limit
        self.window = window
        self.retry_after = retry_after


class ServiceUnavailableError(SearchError):
    """A dependency failed and no fallback could stand in for it."""

    code = "SERVICE_UNAVAILABLE"
    status_code = 503

    def __init__(
        self,
        service: str,
        message: str | None = None,
        fallback_available: bool = False,
    ) -> None:
        super().__init__(
            message or f"Service '{service}' is temporarily unavailable",
            {"service": service, "fallback_available": fallback_available},
        )
        self.service = service
        self.fallback_available = fallback_available
