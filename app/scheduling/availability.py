"""Resolve a doctor's weekly schedule into bookable dates and start times."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from app.scheduling.overlap import BookedSlot, is_slot_free
from app.scheduling.slots import generate_time_slots
from app.schemas.doctors import TimeRange, Weekday, WeeklyScheduleBlock, format_hhmm

DEFAULT_HORIZON_DAYS = 183
# Date-level availability does not look at real durations: every booking
# counts as this many minutes.
ESTIMATED_MINUTES_PER_BOOKING = 30


@dataclass(frozen=True)
class AvailableTimes:
    """Free start times (``HH:MM``) on one date."""

    times: list[str]

    @property
    def is_fully_booked(self) -> bool:
        return not self.times


def ranges_for_day(
    schedule: Iterable[WeeklyScheduleBlock],
    day: Weekday,
    location: str | None = None,
) -> list[TimeRange]:
    """
    Collect the open ranges of a weekday, ordered by start.

    Args:
        schedule: Weekly schedule blocks
        day: Weekday to look up
        location: Keep only ranges at this location; None keeps all

    Returns:
        Matching time ranges
    """
    ranges = [
        time_range
        for block in schedule
        if block.day == day
        for time_range in block.time_slots
        if location is None or time_range.location == location
    ]
    return sorted(ranges, key=lambda r: r.from_)


def is_date_available(
    ranges: Iterable[TimeRange],
    booked_count: int,
    minutes_per_booking: int = ESTIMATED_MINUTES_PER_BOOKING,
) -> bool:
    """A date is available while the estimated booked minutes stay below the open minutes."""
    total_minutes = sum(time_range.minutes for time_range in ranges)
    return booked_count * minutes_per_booking < total_minutes


def resolve_available_dates(
    schedule: list[WeeklyScheduleBlock],
    location: str,
    booked_per_date: Mapping[date, int],
    start: date,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    minutes_per_booking: int = ESTIMATED_MINUTES_PER_BOOKING,
) -> list[date]:
    """
    List the dates in ``[start, start + horizon_days]`` with remaining capacity.

    Args:
        schedule: Weekly schedule blocks
        location: Location to resolve
        booked_per_date: Non-cancelled appointment count per date at the location
        start: First date (usually today, UTC)
        horizon_days: Days after ``start`` to include
        minutes_per_booking: Minutes each booking is assumed to take

    Returns:
        Ordered available dates
    """
    available = []
    for offset in range(horizon_days + 1):
        day = start + timedelta(days=offset)
        ranges = ranges_for_day(schedule, Weekday.for_date(day), location)
        if not ranges:
            continue
        if is_date_available(ranges, booked_per_date.get(day, 0), minutes_per_booking):
            available.append(day)
    return available


def candidate_starts(
    schedule: list[WeeklyScheduleBlock],
    target_date: date,
    duration_minutes: int,
    location: str | None = None,
) -> list[datetime]:
    """Generate every slot start (UTC) offered on a date."""
    starts = []
    for time_range in ranges_for_day(schedule, Weekday.for_date(target_date), location):
        for slot in generate_time_slots(time_range.from_, time_range.to, duration_minutes):
            starts.append(datetime.combine(target_date, slot, tzinfo=UTC))
    return starts


def resolve_available_times(
    schedule: list[WeeklyScheduleBlock],
    target_date: date,
    location: str,
    duration_minutes: int,
    existing: Iterable[BookedSlot],
    reference_now: datetime,
) -> AvailableTimes:
    """
    List free start times on a date at a location.

    On the calendar date of ``reference_now`` slots starting before it are
    dropped; every other date keeps its full slot list. Manual
    blocks are not consulted here; they are enforced when booking.

    Args:
        schedule: Weekly schedule blocks
        target_date: Date to resolve
        location: Location to resolve
        duration_minutes: Slot length and step
        existing: The doctor's appointments on that date
        reference_now: Current instant (UTC)

    Returns:
        Free start times and whether the date is fully booked
    """
    booked = list(existing)
    times = []
    for start in candidate_starts(schedule, target_date, duration_minutes, location):
        if start.date() == reference_now.date() and start < reference_now:
            continue
        if is_slot_free(start, duration_minutes, booked):
            times.append(format_hhmm(start.time()))
    return AvailableTimes(times=times)


def schedule_allows(
    schedule: list[WeeklyScheduleBlock],
    when: datetime,
    duration_minutes: int,
) -> bool:
    """Whether ``when`` is a generated slot start for its weekday at any location."""
    when = when.astimezone(UTC)
    if when.second or when.microsecond:
        return False
    return when in candidate_starts(schedule, when.date(), duration_minutes)
