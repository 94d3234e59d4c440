"""
Vapi call metrics aggregation for the dashboard "Call Overview" card.

Pulls raw call records from the Vapi list-calls endpoint page by page and
folds them into DashboardMetrics. The pass is all-or-nothing: any fatal
upstream error aborts it and nothing partial is returned.

Upstream contract:
    GET {VAPI_API_URL}{VAPI_CALLS_PATH}?from=<ISO>&to=<ISO>&limit=100[&cursor=<str>]
    Authorization: Bearer <VAPI_PRIVATE_KEY>

    -> {"data": [CallRecord, ...], "nextCursor": "<str>" | null}
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from pydantic import ValidationError

from spoqen.config import settings
from spoqen.infrastructure.observability.logging import get_logger
from spoqen.models.domain.call_domain import CallRecord, DashboardMetrics, MetricsAccumulator

logger = get_logger(__name__)

USER_AGENT = "spoqen-dashboard/1.0"


class VapiMetricsError(Exception):
    """Base exception for dashboard metrics aggregation errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class MissingCredential(VapiMetricsError):
    """No Vapi API token configured; raised before any request is made."""


class UpstreamUnavailable(VapiMetricsError):
    """Transport errors or 5xx responses outlasted the retry budget."""


class UpstreamClientError(VapiMetricsError):
    """Vapi rejected the request with a 4xx; retrying cannot help."""


class UpstreamProtocolError(VapiMetricsError):
    """Vapi answered with a body that is not a valid calls page."""


class VapiMetricsService:
    """
    Aggregates Vapi call records into dashboard KPIs.

    Pagination is sequential (each page needs the previous cursor). Every
    attempt gets its own timeout; there is no overall deadline, callers wrap
    get_metrics() in asyncio.timeout() if they need one.

    An injected httpx.AsyncClient is borrowed and never closed. Without one,
    a client is opened for each get_metrics() call.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        calls_url: str | None = None,
        page_limit: int | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.token = token if token is not None else settings.VAPI_PRIVATE_KEY
        self.calls_url = calls_url or settings.vapi_calls_url()
        self.page_limit = page_limit or settings.VAPI_PAGE_LIMIT
        self.timeout = timeout if timeout is not None else settings.VAPI_REQUEST_TIMEOUT
        self.max_retries = max_retries if max_retries is not None else settings.VAPI_MAX_RETRIES
        self.backoff_base = (
            backoff_base if backoff_base is not None else settings.VAPI_BACKOFF_BASE_SECONDS
        )
        self._client = client
        self._sleep = sleep

    def _get_auth_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _build_params(self, from_iso: str, to_iso: str, cursor: str | None) -> dict:
        params = {"from": from_iso, "to": to_iso, "limit": str(self.page_limit)}
        if cursor:
            params["cursor"] = cursor
        return params

    async def get_metrics(self, from_iso: str, to_iso: str) -> DashboardMetrics:
        """
        Aggregate call metrics for the inclusive range [from_iso, to_iso].

        Args:
            from_iso: Range start, ISO-8601
            to_iso: Range end, ISO-8601

        Returns:
            DashboardMetrics: totals and derived rates for the range

        Raises:
            MissingCredential: No Vapi token configured
            UpstreamUnavailable: Retries exhausted on network errors or 5xx
            UpstreamClientError: Vapi returned a 4xx
            UpstreamProtocolError: Response body is not a valid calls page
        """
        if not self.token:
            raise MissingCredential("VAPI token not configured")

        if self._client is not None:
            return await self._aggregate(self._client, from_iso, to_iso)

        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
            return await self._aggregate(client, from_iso, to_iso)

    async def _aggregate(
        self, client: httpx.AsyncClient, from_iso: str, to_iso: str
    ) -> DashboardMetrics:
        accumulator = MetricsAccumulator()
        cursor: str | None = None
        pages = 0

        while True:
            params = self._build_params(from_iso, to_iso, cursor)
            response = await self._request_with_retry(client, params)
            calls, cursor = self._parse_page(response)

            accumulator.add_all(calls)
            pages += 1

            if not cursor:
                break

        metrics = accumulator.to_metrics()

        logger.info(
            "Dashboard metrics calculated",
            from_iso=from_iso,
            to_iso=to_iso,
            pages=pages,
            total=metrics.total,
            answered=metrics.answered,
            missed=metrics.missed,
            conversions=accumulator.converted,
        )
        return metrics

    async def _request_with_retry(self, client: httpx.AsyncClient, params: dict) -> httpx.Response:
        """Issue one page request, retrying transport errors and 5xx with backoff."""
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            is_last = attempt == attempts - 1
            backoff = self.backoff_base * (2**attempt)

            try:
                response = await client.get(
                    self.calls_url,
                    params=params,
                    headers=self._get_auth_headers(),
                    timeout=self.timeout,
                )
            except httpx.DecodingError as e:
                logger.error("Failed to decode Vapi calls response", error=str(e))
                raise UpstreamProtocolError(f"Undecodable response from Vapi API: {e}") from e
            except httpx.TransportError as e:
                if is_last:
                    logger.error(
                        "Vapi calls request failed after retries",
                        attempts=attempts,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise UpstreamUnavailable(
                        f"Vapi API unreachable after {attempts} attempts: {e}"
                    ) from e

                logger.debug(
                    "Vapi calls request error, retrying",
                    attempt=attempt + 1,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await self._sleep(backoff)
                continue

            if response.status_code >= 500:
                if is_last:
                    logger.error(
                        "Vapi calls request failed after retries",
                        attempts=attempts,
                        status_code=response.status_code,
                    )
                    raise UpstreamUnavailable(
                        f"Vapi API returned {response.status_code} after {attempts} attempts",
                        status_code=response.status_code,
                        response_text=response.text[:200],
                    )

                logger.debug(
                    "Vapi calls request retrying",
                    attempt=attempt + 1,
                    status_code=response.status_code,
                    backoff_seconds=backoff,
                )
                await self._sleep(backoff)
                continue

            if not response.is_success:
                logger.error(
                    "Vapi calls request rejected",
                    status_code=response.status_code,
                    response_text=response.text[:200],
                )
                raise UpstreamClientError(
                    f"Vapi API request failed with {response.status_code} "
                    f"{response.reason_phrase}",
                    status_code=response.status_code,
                    response_text=response.text[:200],
                )

            return response

        raise RuntimeError("Vapi retry loop exhausted")

    def _parse_page(self, response: httpx.Response) -> tuple[list[CallRecord], str | None]:
        """Extract the call records and the next cursor from one page."""
        try:
            payload = response.json()
        except ValueError as e:
            logger.error("Failed to parse Vapi calls response", error=str(e))
            raise UpstreamProtocolError(
                f"Invalid JSON from Vapi API: {e}",
                status_code=response.status_code,
                response_text=response.text[:200],
            ) from e

        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise UpstreamProtocolError(
                "Vapi calls response is missing the 'data' array",
                status_code=response.status_code,
            )

        next_cursor = payload.get("nextCursor")
        if next_cursor is not None and not isinstance(next_cursor, str):
            raise UpstreamProtocolError(
                "Vapi calls response has a non-string 'nextCursor'",
                status_code=response.status_code,
            )

        try:
            calls = [CallRecord.model_validate(item) for item in payload["data"]]
        except ValidationError as e:
            raise UpstreamProtocolError(
                f"Malformed call record from Vapi API: {e.error_count()} error(s)",
                status_code=response.status_code,
            ) from e

        return calls, next_cursor


async def get_metrics(from_iso: str, to_iso: str, token: str | None = None) -> DashboardMetrics:
    """Aggregate dashboard metrics with a default-configured service."""
    return await VapiMetricsService(token).get_metrics(from_iso, to_iso)
