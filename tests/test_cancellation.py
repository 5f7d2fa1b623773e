"""Tests for cancellation throttling."""

from datetime import UTC, datetime, timedelta

from app.scheduling.cancellation import apply_cancellation

NOW = datetime(2030, 3, 1, 12, 0, tzinfo=UTC)


def test_first_cancellation_counts_one():
    outcome = apply_cancellation(0, None, NOW)

    assert outcome.cancellation_count == 1
    assert outcome.last_cancellation_date == NOW
    assert not outcome.deactivate


def test_count_accumulates_within_window():
    outcome = apply_cancellation(1, NOW - timedelta(days=10), NOW)

    assert outcome.cancellation_count == 2
    assert not outcome.deactivate


def test_third_cancellation_within_window_deactivates():
    outcome = apply_cancellation(2, NOW - timedelta(days=29), NOW)

    assert outcome.cancellation_count == 3
    assert outcome.deactivate


def test_count_resets_after_window():
    outcome = apply_cancellation(2, NOW - timedelta(days=31), NOW)

    assert outcome.cancellation_count == 1
    assert not outcome.deactivate


def test_exactly_thirty_days_does_not_reset():
    outcome = apply_cancellation(2, NOW - timedelta(days=30), NOW)

    assert outcome.cancellation_count == 3
    assert outcome.deactivate


def test_naive_last_date_is_read_as_utc():
    outcome = apply_cancellation(1, (NOW - timedelta(days=1)).replace(tzinfo=None), NOW)

    assert outcome.cancellation_count == 2


def test_custom_limits():
    outcome = apply_cancellation(0, None, NOW, window_days=7, max_cancellations=1)

    assert outcome.deactivate
