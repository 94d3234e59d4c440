# spoqen/models/api/metrics_response.py
"""
Dashboard metrics API response models.
Keys are camelCase on the wire because the dashboard frontend reads them as-is.
"""

from pydantic import BaseModel, ConfigDict, Field


class DashboardMetricsBody(BaseModel):
    """Call Overview KPIs for a date range."""

    model_config = ConfigDict(populate_by_name=True)

    total: int = Field(..., description="Total calls in the date range")
    answered: int = Field(..., description="Calls the assistant connected and spoke on")
    missed: int = Field(..., description="Rings, busy, voicemail and other missed outcomes")
    conversion_rate: float = Field(
        ..., alias="conversionRate", description="Converted share of answered calls, 0-1"
    )
    avg_duration: float = Field(
        ..., alias="avgDuration", description="Mean answered call duration in seconds"
    )


class DashboardMetricsResponse(BaseModel):
    """Response for GET /api/vapi/dashboard-metrics."""

    metrics: DashboardMetricsBody


class ErrorResponse(BaseModel):
    """Error body shared by the dashboard API routes."""

    error: str = Field(..., description="Human readable error message")
