"""
Rate Limit Headers Middleware - Add rate limit info to responses.

Headers added:
- X-RateLimit-Limit: Maximum requests allowed in the window
- X-RateLimit-Remaining: Remaining requests in current window
- X-RateLimit-Reset: Epoch seconds when the current window ends
- Retry-After: Seconds to wait before retrying (if rate limited)

Reads rate_limit_info from request.state (set by rate limit dependencies).
Responses without rate_limit_info are passed through untouched.
"""

import math

from starlette.middleware.base import BaseHTTPMiddleware


class RateLimitHeadersMiddleware(BaseHTTPMiddleware):
    """Add rate limit headers to all responses, including 429 errors."""

    async def dispatch(self, request, call_next):
        response = await call_next(request)

        rate_limit_info = getattr(request.state, "rate_limit_info", None)
        if not rate_limit_info:
            return response

        if "limit" in rate_limit_info:
            response.headers["X-RateLimit-Limit"] = str(rate_limit_info["limit"])

        if "remaining" in rate_limit_info:
            response.headers["X-RateLimit-Remaining"] = str(rate_limit_info["remaining"])

        if rate_limit_info.get("reset_time") is not None:
            reset_seconds = math.ceil(rate_limit_info["reset_time"] / 1000)
            response.headers["X-RateLimit-Reset"] = str(reset_seconds)

        if not rate_limit_info.get("allowed", True) and rate_limit_info.get("retry_after"):
            response.headers["Retry-After"] = str(rate_limit_info["retry_after"])

        return response
