"""
Rate Limit Dependencies - Easy-to-use rate limiting for endpoints.

Usage:
    from spoqen.middleware.rate_limit_dependencies import rate_limit_dashboard_metrics

    @router.get("/my-endpoint")
    async def my_endpoint(
        request: Request,
        _rate: None = Depends(rate_limit_dashboard_metrics),
    ):
        pass

The limiters themselves live on app.state.rate_limiters (built when the app
is created), so tests get fresh tables per app instance.
"""

from fastapi import Depends, HTTPException, Request, status

from spoqen.config import settings
from spoqen.infrastructure.observability.logging import get_logger
from spoqen.middleware.rate_limiter import (
    RateLimitCheck,
    RateLimiterRegistry,
    check_multiple_rate_limits,
)

logger = get_logger(__name__)

SESSION_HEADER = "x-session-id"


def get_rate_limiters(request: Request) -> RateLimiterRegistry:
    """Resolve the limiter registry owned by the running application."""
    return request.app.state.rate_limiters


async def rate_limit_dashboard_metrics(
    request: Request,
    limiters: RateLimiterRegistry = Depends(get_rate_limiters),
) -> None:
    """
    Rate limit dependency for the dashboard metrics endpoint.

    Checks the per-IP limit first (broader protection), then the per-session
    limit when the client sends X-Session-ID. A rejected IP check leaves the
    session budget untouched.

    Raises:
        HTTPException: 429 if either limit is exceeded
    """
    if not settings.RATE_LIMIT_ENABLED:
        return

    ip_address = getattr(request.state, "ip_address", None) or "unknown"
    checks = [RateLimitCheck(limiters.dashboard_metrics_ip, ip_address, "ip")]

    session_id = request.headers.get(SESSION_HEADER)
    if session_id:
        checks.append(RateLimitCheck(limiters.dashboard_metrics_session, session_id, "session"))

    outcome = check_multiple_rate_limits(checks)

    # Most specific result wins for the headers middleware
    last_result = list(outcome.results.values())[-1]
    request.state.rate_limit_info = last_result.to_info()

    if outcome.allowed:
        return

    logger.warning(
        "Rate limit exceeded",
        failed_check=outcome.failed_check,
        ip_address=ip_address,
        limit=last_result.limit,
        retry_after=outcome.retry_after,
        path=request.url.path,
    )

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={
            "error": "rate_limit_exceeded",
            "message": f"Too many requests. Try again in {outcome.retry_after} seconds.",
            "limit": last_result.limit,
            "retry_after": outcome.retry_after,
            "failed_check": outcome.failed_check,
        },
        headers={"Retry-After": str(outcome.retry_after)},
    )
