"""
Tests for call classification and metric derivation.
"""

import pytest

from spoqen.models.domain.call_domain import MISSED_CODES, CallRecord, MetricsAccumulator


def _call(**data) -> CallRecord:
    return CallRecord.model_validate(data)


def test_completed_without_ended_reason_is_answered():
    call = _call(status="completed")

    assert call.is_answered() is True
    assert call.is_missed() is False


@pytest.mark.parametrize("status", ["completed", "ended", "in-progress", None])
def test_voicemail_is_missed_regardless_of_status(status):
    call = _call(status=status, endedReason="voicemail")

    assert call.is_missed() is True
    assert call.is_answered() is False


def test_every_missed_code_blocks_answered():
    for code in MISSED_CODES:
        call = _call(status="completed", endedReason=code)
        assert call.is_missed() is True
        assert call.is_answered() is False


def test_in_progress_call_is_neither():
    call = _call(status="in-progress")

    assert call.is_answered() is False
    assert call.is_missed() is False


def test_completed_with_other_reason_is_answered():
    call = _call(status="completed", endedReason="customer-ended-call")

    assert call.is_answered() is True


def test_converted_requires_literal_true():
    assert _call(metadata={"converted": True}).is_converted() is True
    assert _call(metadata={"converted": "true"}).is_converted() is False
    assert _call(metadata={"converted": 1}).is_converted() is False
    assert _call(metadata={}).is_converted() is False
    assert _call().is_converted() is False


def test_unknown_fields_are_ignored():
    call = _call(id="call-1", status="completed", createdAt="2024-01-01T00:00:00Z")

    assert call.is_answered() is True


def test_accumulator_scenario():
    accumulator = MetricsAccumulator()
    accumulator.add_all(
        [
            _call(
                status="completed",
                durationSeconds=120,
                metadata={"converted": True},
            ),
            _call(status="completed", endedReason="voicemail"),
            _call(status="in-progress"),
        ]
    )

    metrics = accumulator.to_metrics()

    assert metrics.total == 3
    assert metrics.answered == 1
    assert metrics.missed == 1
    assert metrics.conversion_rate == 1
    assert metrics.avg_duration == 120


def test_no_answered_calls_yields_zero_rates():
    accumulator = MetricsAccumulator()
    accumulator.add_all(
        [
            _call(status="ended", endedReason="customer-busy"),
            _call(status="queued"),
        ]
    )

    metrics = accumulator.to_metrics()

    assert metrics.answered == 0
    assert metrics.conversion_rate == 0
    assert metrics.avg_duration == 0


def test_empty_pass_yields_zeroes():
    metrics = MetricsAccumulator().to_metrics()

    assert metrics.model_dump() == {
        "total": 0,
        "answered": 0,
        "missed": 0,
        "conversion_rate": 0.0,
        "avg_duration": 0.0,
    }


def test_missing_duration_counts_as_zero():
    accumulator = MetricsAccumulator()
    accumulator.add_all(
        [
            _call(status="completed", durationSeconds=90),
            _call(status="completed"),
        ]
    )

    metrics = accumulator.to_metrics()

    assert metrics.answered == 2
    assert metrics.avg_duration == 45
    assert metrics.conversion_rate == 0


def test_bucket_invariant_holds_for_mixed_records():
    statuses = ["completed", "in-progress", "ended", None]
    reasons = [None, "voicemail", "customer-ended-call", "assistant-error"]

    accumulator = MetricsAccumulator()
    for status in statuses:
        for reason in reasons:
            accumulator.add(_call(status=status, endedReason=reason))

    metrics = accumulator.to_metrics()

    assert metrics.total == len(statuses) * len(reasons)
    assert metrics.answered >= 0
    assert metrics.missed >= 0
    assert metrics.answered + metrics.missed <= metrics.total
    # completed + (None | customer-ended-call)
    assert metrics.answered == 2
    # voicemail + assistant-error, for every status
    assert metrics.missed == 8


def test_dashboard_metrics_serializes_camel_case():
    metrics = MetricsAccumulator().to_metrics()

    assert set(metrics.model_dump(by_alias=True)) == {
        "total",
        "answered",
        "missed",
        "conversionRate",
        "avgDuration",
    }
