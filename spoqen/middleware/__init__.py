"""
Middleware components for request processing.

This package contains middleware for:
- Request context (request ID, IP address, user agent)
- Rate limiting (anti-abuse protection)
"""

from spoqen.middleware.rate_limit_dependencies import rate_limit_dashboard_metrics
from spoqen.middleware.rate_limit_headers import RateLimitHeadersMiddleware
from spoqen.middleware.rate_limiter import (
    RateLimitConfig,
    RateLimiter,
    check_multiple_rate_limits,
    create_rate_limiter,
)
from spoqen.middleware.request_context import RequestContextMiddleware

__all__ = [
    "RequestContextMiddleware",
    "RateLimitHeadersMiddleware",
    "RateLimitConfig",
    "RateLimiter",
    "check_multiple_rate_limits",
    "create_rate_limiter",
    "rate_limit_dashboard_metrics",
]
