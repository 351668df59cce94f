"""Request-scoped dependencies: caller identity and rate limits.

Routers receive these through ``Depends`` so tests can swap any of them
with ``app.dependency_overrides``.
"""

from fastapi import Depends, Header, Request, Response

from app.config import settings
from app.core.errors import IdentityError, ValidationError
from app.core.rate_limiter import RateLimiter, SlidingWindowRateLimiter
from app.core.validation import validate_object_id

search_limiter = SlidingWindowRateLimiter(
    settings.search_rate_limit, settings.rate_limit_window_seconds, name="search",
)
suggestion_limiter = SlidingWindowRateLimiter(
    settings.suggestion_rate_limit, settings.rate_limit_window_seconds, name="suggestions",
)


def get_search_limiter() -> RateLimiter:
    return search_limiter


def get_suggestion_limiter() -> RateLimiter:
    return suggestion_limiter


def get_owner_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity from the ``X-User-Id`` header (24 hex characters)."""
    if not x_user_id:
        raise IdentityError("Caller identity is required (X-User-Id header).")
    try:
        return validate_object_id(x_user_id, "user_id")
    except ValidationError:
        raise IdentityError("Caller identity is malformed.", {"field": "user_id"}) from None


def caller_key(request: Request, x_user_id: str | None) -> str:
    """Rate-limit key: the user id when present, else the client address."""
    if x_user_id:
        return f"user:{x_user_id.lower()}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


def _enforce(limiter: RateLimiter, request: Request, response: Response, x_user_id: str | None) -> None:
    status = limiter.enforce(caller_key(request, x_user_id))
    response.headers["X-RateLimit-Limit"] = str(status.limit)
    response.headers["X-RateLimit-Remaining"] = str(status.remaining)


def limit_search(
    request: Request,
    response: Response,
    x_user_id: str | None = Header(default=None),
    limiter: RateLimiter = Depends(get_search_limiter),
) -> None:
    _enforce(limiter, request, response, x_user_id)


def limit_suggestions(
    request: Request,
    response: Response,
    x_user_id: str | None = Header(default=None),
    limiter: RateLimiter = Depends(get_suggestion_limiter),
) -> None:
    _enforce(limiter, request, response, x_user_id)


def client_info(
    request: Request,
    user_agent: str | None = Header(default=None),
) -> dict[str, str | None]:
    return {
        "user_agent": user_agent,
        "ip_address": request.client.host if request.client else None,
    }
