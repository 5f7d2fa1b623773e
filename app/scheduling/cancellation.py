"""Cancellation throttling for patient accounts."""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.schemas.appointments import ensure_utc

DEFAULT_WINDOW_DAYS = 30
DEFAULT_MAX_CANCELLATIONS = 3

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class CancellationOutcome:
    """Patient cancellation state after one more cancellation."""

    cancellation_count: int
    last_cancellation_date: datetime
    deactivate: bool


def apply_cancellation(
    cancellation_count: int,
    last_cancellation_date: datetime | None,
    now: datetime,
    window_days: int = DEFAULT_WINDOW_DAYS,
    max_cancellations: int = DEFAULT_MAX_CANCELLATIONS,
) -> CancellationOutcome:
    """
    Count a patient cancellation within the rolling window.

    The count restarts when more than ``window_days`` have passed since the
    previous cancellation. Reaching ``max_cancellations`` deactivates the
    account.

    Args:
        cancellation_count: Current count
        last_cancellation_date: Previous cancellation instant, if any
        now: Current instant
        window_days: Rolling window length
        max_cancellations: Count at which the account is deactivated

    Returns:
        New count, new last cancellation date and whether to deactivate
    """
    last = ensure_utc(last_cancellation_date) if last_cancellation_date else _EPOCH
    if now - last > timedelta(days=window_days):
        cancellation_count = 0

    cancellation_count += 1
    return CancellationOutcome(
        cancellation_count=cancellation_count,
        last_cancellation_date=now,
        deactivate=cancellation_count >= max_cancellations,
    )
