"""
dashboard_metrics.py
--------------------
Purpose:
    Serves the "Call Overview" KPIs for the dashboard.

    GET /api/vapi/dashboard-metrics?from=<ISO>&to=<ISO>

    - 400 when from/to are missing, unparsable, or reversed
    - 429 when the per-IP or per-session limit is exceeded
    - 500 when aggregation against the Vapi API fails
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from spoqen.infrastructure.observability.logging import get_logger
from spoqen.middleware.rate_limit_dependencies import rate_limit_dashboard_metrics
from spoqen.models.api.metrics_response import (
    DashboardMetricsBody,
    DashboardMetricsResponse,
    ErrorResponse,
)
from spoqen.services.vapi.metrics_service import VapiMetricsError, VapiMetricsService

router = APIRouter(prefix="/api/vapi", tags=["dashboard"])
logger = get_logger(__name__)


def get_metrics_service() -> VapiMetricsService:
    return VapiMetricsService()


def _parse_iso(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get(
    "/dashboard-metrics",
    response_model=DashboardMetricsResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def dashboard_metrics(
    from_iso: str | None = Query(None, alias="from"),
    to_iso: str | None = Query(None, alias="to"),
    service: VapiMetricsService = Depends(get_metrics_service),
    _rate: None = Depends(rate_limit_dashboard_metrics),
):
    if not from_iso or not to_iso:
        return _error("Missing from or to parameters", status.HTTP_400_BAD_REQUEST)

    start = _parse_iso(from_iso)
    end = _parse_iso(to_iso)
    if start is None or end is None:
        return _error("from and to must be ISO-8601 timestamps", status.HTTP_400_BAD_REQUEST)
    if start > end:
        return _error("from must not be after to", status.HTTP_400_BAD_REQUEST)

    try:
        metrics = await service.get_metrics(from_iso, to_iso)
    except VapiMetricsError as e:
        logger.error(
            "Failed to fetch dashboard metrics",
            error=str(e),
            error_type=type(e).__name__,
            upstream_status=e.status_code,
        )
        return _error("Failed to fetch dashboard metrics", status.HTTP_500_INTERNAL_SERVER_ERROR)
    except Exception as e:
        logger.error(
            "Unexpected error fetching dashboard metrics",
            error=str(e),
            error_type=type(e).__name__,
        )
        return _error("Failed to fetch dashboard metrics", status.HTTP_500_INTERNAL_SERVER_ERROR)

    return DashboardMetricsResponse(metrics=DashboardMetricsBody.model_validate(metrics.model_dump()))
