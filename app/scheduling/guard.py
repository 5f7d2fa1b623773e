"""Booking checks run before an appointment is written.

Each check raises the matching booking exception; the ledger runs them in
order: identity, past date, schedule, taken slot, manual block.
"""

from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from uuid import UUID

from app.core.exceptions import (
    BookingValidationException,
    MissingIdentityException,
    SlotBlockedException,
    SlotNotAvailableException,
    SlotTakenException,
)
from app.scheduling.availability import schedule_allows
from app.scheduling.overlap import BookedSlot, is_slot_free
from app.schemas.appointments import GuestInfo
from app.schemas.doctors import WeeklyScheduleBlock, format_hhmm


def check_requester_identity(patient_id: UUID | None, guest: GuestInfo | None) -> None:
    """Require an authenticated patient or complete guest info."""
    if patient_id is None and (guest is None or not guest.is_complete):
        raise MissingIdentityException()


def check_not_in_past(when: datetime, now: datetime) -> None:
    if when < now:
        raise BookingValidationException("Appointment date must not be in the past")


def check_within_schedule(
    schedule: list[WeeklyScheduleBlock],
    when: datetime,
    duration_minutes: int,
) -> None:
    """Re-derive the weekday's slots and require ``when`` to be one of them."""
    if not schedule_allows(schedule, when, duration_minutes):
        raise SlotNotAvailableException()


def check_slot_free(
    when: datetime,
    duration_minutes: int,
    existing: Iterable[BookedSlot],
) -> None:
    """Reject an exact start-time match first, then any interval overlap."""
    active = [slot for slot in existing if slot.is_active]
    if any(slot.start == when for slot in active):
        raise SlotTakenException()
    if not is_slot_free(when, duration_minutes, active):
        raise SlotTakenException("This time slot overlaps an existing appointment")


def check_not_blocked(manual_blocks: Mapping[date, list[str]], when: datetime) -> None:
    """Reject start times the doctor blocked for that date."""
    when = when.astimezone(UTC)
    if format_hhmm(when.time()) in manual_blocks.get(when.date(), []):
        raise SlotBlockedException()
