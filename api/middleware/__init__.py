"""
API Middleware Package

Error handling, rate limiting and request logging.
"""

from api.middleware.error_handler import setup_error_handlers
from api.middleware.logging import LoggingMiddleware, get_correlation_id
from api.middleware.rate_limit import setup_rate_limiting, limiter

__all__ = [
    "setup_error_handlers",
    "LoggingMiddleware",
    "get_correlation_id",
    "setup_rate_limiting",
    "limiter"
]
