"""Doctor schedule and availability endpoints."""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CacheManagerDep, DatabaseSession, DoctorUser
from app.schemas.appointments import AvailableDatesResponse, AvailableTimesResponse
from app.schemas.doctors import (
    DoctorScheduleResponse,
    DoctorWeeklySlotsResponse,
    ManualBlockUpdate,
    WeeklyAvailabilityUpdate,
)
from app.schemas.users import Identity
from app.services.availability_service import AvailabilityService
from app.services.identity_service import IdentityService

router = APIRouter(prefix="/doctors", tags=["Doctors"])


def _schedule_response(doctor: Identity) -> DoctorScheduleResponse:
    profile = doctor.profile
    return DoctorScheduleResponse(
        doctor_id=doctor.id,
        full_name=doctor.full_name,
        specialty=profile.specialty,
        consultation_duration=profile.consultation_duration,
        availability=profile.availability,
        manual_blocks=profile.manual_blocks,
    )


@router.get(
    "/{doctor_id}/schedule",
    response_model=DoctorScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Get a doctor's weekly schedule and manual blocks",
)
async def get_schedule(doctor_id: UUID, db: DatabaseSession) -> DoctorScheduleResponse:
    """Get a doctor's weekly schedule and manual blocks."""
    doctor = await IdentityService(db).get_doctor(doctor_id)
    return _schedule_response(doctor)


@router.get(
    "/{doctor_id}/weekly-slots",
    response_model=DoctorWeeklySlotsResponse,
    status_code=status.HTTP_200_OK,
    summary="Slots of each scheduled weekday",
)
async def get_weekly_slots(doctor_id: UUID, db: DatabaseSession) -> DoctorWeeklySlotsResponse:
    """
    Generate the slots of every scheduled weekday at the doctor's consultation duration.

    Args:
        doctor_id: Doctor ID
        db: Database session

    Returns:
        Slots per weekday, ignoring bookings
    """
    service = AvailabilityService(db)
    return await service.weekly_slots(doctor_id)


@router.get(
    "/{doctor_id}/availability/dates",
    response_model=AvailableDatesResponse,
    status_code=status.HTTP_200_OK,
    summary="Dates with remaining capacity",
)
async def get_available_dates(
    doctor_id: UUID,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    location: str = Query(..., min_length=1, description="Location to check"),
) -> AvailableDatesResponse:
    """
    List the dates from today on which the doctor still has capacity at a location.

    Args:
        doctor_id: Doctor ID
        db: Database session
        cache_manager: Availability cache
        location: Location to check

    Returns:
        Available dates in ascending order
    """
    service = AvailabilityService(db, cache_manager)
    return await service.list_available_dates(doctor_id, location)


@router.get(
    "/{doctor_id}/availability/times",
    response_model=AvailableTimesResponse,
    status_code=status.HTTP_200_OK,
    summary="Free start times on a date",
)
async def get_available_times(
    doctor_id: UUID,
    db: DatabaseSession,
    target_date: date = Query(..., description="Date to check (YYYY-MM-DD)"),
    location: str = Query(..., min_length=1, description="Location to check"),
    duration_minutes: int | None = Query(None, gt=0, le=480),
    reference_now: datetime | None = Query(
        None, description="Caller's current instant; earlier slots on its date are dropped"
    ),
) -> AvailableTimesResponse:
    """
    List free start times on a date at a location.

    Args:
        doctor_id: Doctor ID
        db: Database session
        target_date: Date to check
        location: Location to check
        duration_minutes: Slot length; defaults to the consultation duration
        reference_now: Current instant; defaults to the server clock

    Returns:
        Free start times and whether the date is fully booked
    """
    service = AvailabilityService(db)
    return await service.list_available_times(
        doctor_id, target_date, location, duration_minutes, reference_now
    )


@router.put(
    "/me/availability",
    response_model=DoctorScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Replace my weekly schedule",
)
async def update_my_availability(
    data: WeeklyAvailabilityUpdate,
    current_doctor: DoctorUser,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> DoctorScheduleResponse:
    """Replace the calling doctor's weekly schedule."""
    doctor = await IdentityService(db).update_availability(current_doctor, data)
    if cache_manager:
        cache_manager.invalidate_doctor_availability(doctor.id)
    return _schedule_response(doctor)


@router.put(
    "/me/manual-blocks/{block_date}",
    response_model=DoctorScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Block start times on a date",
)
async def set_my_manual_block(
    block_date: date,
    data: ManualBlockUpdate,
    current_doctor: DoctorUser,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> DoctorScheduleResponse:
    """
    Set the start times the calling doctor blocks on a date.

    Blocked times still show as free in availability listings but cannot be
    booked. An empty list clears the date.
    """
    doctor = await IdentityService(db).set_manual_block(current_doctor, block_date, data.times)
    if cache_manager:
        cache_manager.invalidate_doctor_availability(doctor.id)
    return _schedule_response(doctor)


@router.delete(
    "/me/manual-blocks/{block_date}",
    response_model=DoctorScheduleResponse,
    status_code=status.HTTP_200_OK,
    summary="Clear blocked times on a date",
)
async def clear_my_manual_block(
    block_date: date,
    current_doctor: DoctorUser,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
) -> DoctorScheduleResponse:
    """Remove every blocked start time of the calling doctor on a date."""
    doctor = await IdentityService(db).set_manual_block(current_doctor, block_date, [])
    if cache_manager:
        cache_manager.invalidate_doctor_availability(doctor.id)
    return _schedule_response(doctor)
