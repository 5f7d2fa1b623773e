"""Availability service: bookable dates, free times and weekly slots of a doctor."""

from collections import Counter
from datetime import UTC, date, datetime, time, timedelta
from uuid import UUID

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.redis_client import CacheManager, available_dates_key
from app.models.appointments import appointments
from app.scheduling.availability import (
    ranges_for_day,
    resolve_available_dates,
    resolve_available_times,
)
from app.scheduling.overlap import BookedSlot
from app.scheduling.slots import generate_time_slots
from app.schemas.appointments import (
    AppointmentStatus,
    AvailableDatesResponse,
    AvailableTimesResponse,
    ensure_utc,
)
from app.schemas.doctors import DaySlots, DoctorWeeklySlotsResponse, Weekday, format_hhmm
from app.services.identity_service import IdentityService

logger = structlog.get_logger(__name__)

# Longest bookable duration; appointments starting this far before a date can still reach into it
MAX_DURATION_MINUTES = 480


class AvailabilityService:
    """Service for resolving a doctor's availability."""

    def __init__(self, db: AsyncSession, cache: CacheManager | None = None):
        """Initialize service with database session and optional cache."""
        self.db = db
        self.cache = cache
        self.identities = IdentityService(db)

    async def booked_slots(
        self,
        doctor_id: UUID,
        window_start: datetime,
        window_end: datetime,
        location: str | None = None,
    ) -> list[BookedSlot]:
        """Non-cancelled appointments of a doctor starting inside a window."""
        conditions = [
            appointments.c.doctor_id == doctor_id,
            appointments.c.status != AppointmentStatus.CANCELLED.value,
            appointments.c.appointment_at >= window_start,
            appointments.c.appointment_at < window_end,
        ]
        if location is not None:
            conditions.append(appointments.c.location == location)

        result = await self.db.execute(
            select(
                appointments.c.appointment_at,
                appointments.c.duration_minutes,
                appointments.c.status,
            ).where(and_(*conditions))
        )
        return [
            BookedSlot(
                start=ensure_utc(row.appointment_at),
                duration_minutes=row.duration_minutes,
                status=AppointmentStatus(row.status),
            )
            for row in result.fetchall()
        ]

    async def list_available_dates(
        self,
        doctor_id: UUID,
        location: str,
        horizon_days: int | None = None,
        today: date | None = None,
    ) -> AvailableDatesResponse:
        """
        List dates from today with remaining capacity at a location.

        Args:
            doctor_id: Doctor ID
            location: Location to resolve
            horizon_days: Days after today to include
            today: First date (defaults to the current UTC date)

        Returns:
            Available dates in ascending order

        Raises:
            NotFoundException: If the doctor does not exist
        """
        doctor = await self.identities.get_doctor(doctor_id)
        today = today or datetime.now(UTC).date()
        horizon_days = settings.availability_horizon_days if horizon_days is None else horizon_days

        cache_key = available_dates_key(doctor_id, location, today)
        if self.cache and horizon_days == settings.availability_horizon_days:
            cached = self.cache.get_json(cache_key)
            if cached is not None:
                logger.debug("available_dates_cache_hit", doctor_id=str(doctor_id))
                return AvailableDatesResponse(doctor_id=doctor_id, location=location, dates=cached)

        window_start = datetime.combine(today, time.min, tzinfo=UTC)
        window_end = window_start + timedelta(days=horizon_days + 1)
        booked = await self.booked_slots(doctor_id, window_start, window_end, location)
        booked_per_date = Counter(slot.start.date() for slot in booked)

        dates = resolve_available_dates(
            doctor.profile.availability,
            location,
            booked_per_date,
            start=today,
            horizon_days=horizon_days,
            minutes_per_booking=settings.estimated_minutes_per_booking,
        )

        if self.cache and horizon_days == settings.availability_horizon_days:
            self.cache.set_json(
                cache_key,
                [d.isoformat() for d in dates],
                ttl=settings.availability_cache_ttl_seconds,
            )

        return AvailableDatesResponse(doctor_id=doctor_id, location=location, dates=dates)

    async def list_available_times(
        self,
        doctor_id: UUID,
        target_date: date,
        location: str,
        duration_minutes: int | None = None,
        reference_now: datetime | None = None,
    ) -> AvailableTimesResponse:
        """
        List free start times on a date at a location.

        Args:
            doctor_id: Doctor ID
            target_date: Date to resolve
            location: Location to resolve
            duration_minutes: Slot length; defaults to the doctor's consultation duration
            reference_now: Instant before which slots are dropped (defaults to now)

        Returns:
            Free start times and whether the date is fully booked
        """
        doctor = await self.identities.get_doctor(doctor_id)
        duration = duration_minutes or doctor.profile.consultation_duration
        reference_now = ensure_utc(reference_now) if reference_now else datetime.now(UTC)

        day_start = datetime.combine(target_date, time.min, tzinfo=UTC)
        # Every location: the doctor cannot be in two places at once
        booked = await self.booked_slots(
            doctor_id,
            day_start - timedelta(minutes=MAX_DURATION_MINUTES),
            day_start + timedelta(days=1),
        )

        available = resolve_available_times(
            doctor.profile.availability,
            target_date,
            location,
            duration,
            booked,
            reference_now,
        )

        return AvailableTimesResponse(
            doctor_id=doctor_id,
            target_date=target_date,
            location=location,
            duration_minutes=duration,
            times=available.times,
            is_fully_booked=available.is_fully_booked,
        )

    async def weekly_slots(self, doctor_id: UUID) -> DoctorWeeklySlotsResponse:
        """Generate the slots of every scheduled weekday at the consultation duration."""
        doctor = await self.identities.get_doctor(doctor_id)
        profile = doctor.profile
        duration = profile.consultation_duration

        days = []
        for day in Weekday:
            ranges = ranges_for_day(profile.availability, day)
            if not ranges:
                continue
            slots = {
                format_hhmm(slot)
                for time_range in ranges
                for slot in generate_time_slots(time_range.from_, time_range.to, duration)
            }
            days.append(DaySlots(day=day, slots=sorted(slots)))

        return DoctorWeeklySlotsResponse(
            doctor_id=doctor_id,
            consultation_duration=duration,
            days=days,
        )
