"""Rate limiting configuration using slowapi.

The limiter is shared, but the limit itself belongs to the application
serving the request: ``bind_rate_limit`` copies ``RATE_LIMIT`` from
``request.app.state.settings`` into the request context before the route
decorator evaluates ``generation_limit``. An empty value exempts the request.
"""

from contextvars import ContextVar

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

# Rate limiter instance, keyed by remote address
limiter = Limiter(key_func=get_remote_address)

_request_limit: ContextVar[str] = ContextVar("rate_limit", default="")

# Returned only while the request is exempt (RATE_LIMIT empty)
_EXEMPT_PLACEHOLDER = "1000000/second"


async def bind_rate_limit(request: Request) -> None:
    _request_limit.set(request.app.state.settings.rate_limit.strip())


def generation_limit() -> str:
    """Limit string for the generation routes (evaluated per request)."""
    return _request_limit.get() or _EXEMPT_PLACEHOLDER


def rate_limit_disabled() -> bool:
    return not _request_limit.get()
