# spoqen/models/domain/call_domain.py
"""
Call Domain Models
Upstream call records and the dashboard KPIs aggregated from them.
The answered/missed business rules live here so every consumer classifies
calls the same way.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# endedReason codes meaning the caller never talked to the assistant.
# New upstream codes that mean "not handled" belong here.
MISSED_CODES: frozenset[str] = frozenset(
    {
        "customer-did-not-answer",
        "customer-busy",
        "voicemail",
        "no-routes-available",
        "customer-did-not-give-microphone-permission",
        "assistant-error",
        "assistant-not-found",
        "call-declined",
        "insufficient-funds",
    }
)

COMPLETED_STATUS = "completed"


class CallRecord(BaseModel):
    """Domain model for a single upstream call record (read-only)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    status: str | None = None
    ended_reason: str | None = Field(default=None, alias="endedReason")
    duration_seconds: float | None = Field(default=None, alias="durationSeconds")
    metadata: dict[str, Any] | None = None

    def is_missed(self) -> bool:
        """Missed depends only on endedReason, whatever the status."""
        return self.ended_reason in MISSED_CODES

    def is_answered(self) -> bool:
        return self.status == COMPLETED_STATUS and not self.is_missed()

    def is_converted(self) -> bool:
        # Strict identity: "true" strings or 1 do not count as conversions
        return bool(self.metadata) and self.metadata.get("converted") is True

    def duration_or_zero(self) -> float:
        return self.duration_seconds or 0


class DashboardMetrics(BaseModel):
    """
    Aggregated KPIs for a date range.

    answered + missed <= total: calls that are neither (still in progress,
    failed without a missed code) only count toward total.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total: int = 0
    answered: int = 0
    missed: int = 0
    conversion_rate: float = Field(default=0.0, alias="conversionRate")
    avg_duration: float = Field(default=0.0, alias="avgDuration")


class MetricsAccumulator:
    """Running totals for one aggregation pass."""

    def __init__(self):
        self.total = 0
        self.answered = 0
        self.missed = 0
        self.converted = 0
        self.duration_total = 0.0

    def add(self, call: CallRecord) -> None:
        self.total += 1

        if call.is_answered():
            self.answered += 1
            self.duration_total += call.duration_or_zero()
            if call.is_converted():
                self.converted += 1
        elif call.is_missed():
            self.missed += 1

    def add_all(self, calls: list[CallRecord]) -> None:
        for call in calls:
            self.add(call)

    def to_metrics(self) -> DashboardMetrics:
        """Compute derived rates; both are 0 when nothing was answered."""
        if self.answered:
            conversion_rate = self.converted / self.answered
            avg_duration = self.duration_total / self.answered
        else:
            conversion_rate = 0.0
            avg_duration = 0.0

        return DashboardMetrics(
            total=self.total,
            answered=self.answered,
            missed=self.missed,
            conversion_rate=conversion_rate,
            avg_duration=avg_duration,
        )
