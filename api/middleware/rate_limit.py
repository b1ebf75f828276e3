"""
Rate Limiting Middleware

Protect API from abuse with rate limiting.
"""

from fastapi import FastAPI, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware


def get_identifier(request: Request) -> str:
    """
    Get rate limit identifier from request.

    Uses the resolved principal id if available, otherwise client IP.
    """
    # Set by get_optional_principal
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"

    return get_remote_address(request)


limiter = Limiter(key_func=get_identifier, default_limits=["100/minute"])


def setup_rate_limiting(app: FastAPI):
    """
    Set up rate limiting for the application.

    Args:
        app: FastAPI application instance
    """
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)


# Usage: @limiter.limit(LIMIT_MAINTENANCE)
LIMIT_STANDARD = "100/minute"
LIMIT_MAINTENANCE = "10/minute"  # Batch sweeps over the whole store
