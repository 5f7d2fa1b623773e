"""Interval overlap detection between a candidate slot and booked appointments."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.schemas.appointments import AppointmentStatus


@dataclass(frozen=True)
class BookedSlot:
    """The time interval occupied by an existing appointment."""

    start: datetime
    duration_minutes: int
    status: AppointmentStatus = AppointmentStatus.SCHEDULED

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    @property
    def is_active(self) -> bool:
        """Cancelled appointments free their interval."""
        return self.status != AppointmentStatus.CANCELLED


def intervals_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Half-open ``[start, end)`` overlap; touching endpoints do not conflict."""
    return start_a < end_b and start_b < end_a


def is_slot_free(
    candidate_start: datetime,
    duration_minutes: int,
    existing: Iterable[BookedSlot],
) -> bool:
    """
    Check a candidate slot against existing appointments.

    Args:
        candidate_start: Start of the candidate slot
        duration_minutes: Length of the candidate slot
        existing: The doctor's appointments; cancelled ones are ignored

    Returns:
        True if no active appointment overlaps the candidate
    """
    candidate_end = candidate_start + timedelta(minutes=duration_minutes)
    return not any(
        slot.is_active and intervals_overlap(candidate_start, candidate_end, slot.start, slot.end)
        for slot in existing
    )
