"""
RequestContext Middleware - Adds request tracking to all requests.

This middleware automatically adds the following to every request:
- request_id: Unique ID for request tracing
- ip_address: Client IP address (rate limiting key)
- user_agent: Client user agent string

The request_id is also bound to structlog contextvars so every log line
emitted while handling the request carries it.
"""

import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from spoqen.config import settings
from spoqen.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

UNKNOWN_IP = "unknown"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Add request context to all incoming requests.

    Request.state Namespace Convention:
    - request_id, ip_address, user_agent: Set by RequestContextMiddleware
    - rate_limit_info: Set by rate limit dependencies
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.ip_address = self._extract_client_ip(request)
        request.state.user_agent = request.headers.get("user-agent")

        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            logger.debug(
                "Request started",
                method=request.method,
                path=request.url.path,
                ip_address=request.state.ip_address,
            )
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers["X-Request-ID"] = request_id
        return response

    def _extract_client_ip(self, request: Request) -> str:
        """
        Extract client IP address with proxy spoofing protection.

        X-Forwarded-For is only trusted when TRUST_X_FORWARDED_FOR is on and
        the direct peer is a configured proxy, otherwise clients could pick
        their own rate limit key.
        """
        direct_ip = request.client.host if request.client else None

        if settings.TRUST_X_FORWARDED_FOR and direct_ip in settings.TRUSTED_PROXY_IPS:
            forwarded_for = request.headers.get("x-forwarded-for")
            if forwarded_for:
                # "client, proxy1, proxy2" - first entry is the original client
                return forwarded_for.split(",")[0].strip()

        return direct_ip or UNKNOWN_IP
