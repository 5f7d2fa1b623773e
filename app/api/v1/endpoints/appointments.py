"""Appointment endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import (
    AdminUser,
    CacheManagerDep,
    CurrentUser,
    DatabaseSession,
    MailerDep,
    OptionalUser,
)
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    DoctorAppointmentFilters,
)
from app.services.appointment_service import AppointmentService

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book an appointment",
)
async def book_appointment(
    data: AppointmentCreate,
    current_user: OptionalUser,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    mailer: MailerDep,
) -> AppointmentResponse:
    """
    Book an appointment.

    Authenticated patients book for themselves. Doctors, clinics, admins and
    anonymous callers book for a guest and must send ``guest`` name and phone.

    Args:
        data: Appointment creation data
        current_user: Authenticated user, if any
        db: Database session
        cache_manager: Availability cache
        mailer: Mailer

    Returns:
        Created appointment
    """
    service = AppointmentService(db, cache_manager, mailer)
    return await service.book(data, requester=current_user)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments (admin only)",
)
async def list_appointments(
    admin_user: AdminUser,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    doctor_id: UUID | None = Query(None),
    patient_id: UUID | None = Query(None),
    from_date: datetime | None = Query(None),
    to_date: datetime | None = Query(None),
) -> AppointmentListResponse:
    """
    List every appointment with filtering.

    Args:
        admin_user: Authenticated admin
        db: Database session
        status_filter: Filter by status
        doctor_id: Filter by doctor ID
        patient_id: Filter by patient ID
        from_date: Earliest start
        to_date: Latest start

    Returns:
        Matching appointments
    """
    filters = AppointmentFilters(
        status=status_filter,
        doctor_id=doctor_id,
        patient_id=patient_id,
        from_date=from_date,
        to_date=to_date,
    )

    service = AppointmentService(db)
    return await service.list_all(filters)


@router.get(
    "/me/upcoming",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="My upcoming appointments",
)
async def list_my_upcoming_appointments(
    current_user: CurrentUser,
    db: DatabaseSession,
) -> AppointmentListResponse:
    """List the caller's appointments from now on, soonest first."""
    service = AppointmentService(db)
    return await service.list_for_patient(current_user.id, upcoming=True)


@router.get(
    "/me/past",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="My past appointments",
)
async def list_my_past_appointments(
    current_user: CurrentUser,
    db: DatabaseSession,
) -> AppointmentListResponse:
    """List the caller's earlier appointments, most recent first."""
    service = AppointmentService(db)
    return await service.list_for_patient(current_user.id, upcoming=False)


@router.get(
    "/doctor/{doctor_id}",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List a doctor's appointments",
)
async def list_doctor_appointments(
    doctor_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
    upcoming: bool = Query(False, description="Only appointments from now on"),
    past: bool = Query(False, description="Only appointments before now"),
    location: str | None = Query(None),
    exclude_doctor_created: bool = Query(False, description="Hide blocks the doctor booked"),
) -> AppointmentListResponse:
    """
    List a doctor's non-cancelled appointments.

    Available to the doctor, clinics managing them and admins.

    Args:
        doctor_id: Doctor ID
        current_user: Authenticated user
        db: Database session
        upcoming: Only appointments from now on
        past: Only appointments before now
        location: Filter by location
        exclude_doctor_created: Hide appointments the doctor booked themselves

    Returns:
        Appointments sorted by start time
    """
    filters = DoctorAppointmentFilters(
        upcoming=upcoming,
        past=past,
        location=location,
        exclude_doctor_created=exclude_doctor_created,
    )

    service = AppointmentService(db)
    return await service.list_for_doctor(doctor_id, filters, current_user)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> AppointmentResponse:
    """
    Get a specific appointment by ID.

    Args:
        appointment_id: Appointment ID
        current_user: Authenticated user
        db: Database session

    Returns:
        Appointment details
    """
    service = AppointmentService(db)
    return await service.get_appointment(appointment_id, current_user)


@router.patch(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    mailer: MailerDep,
) -> AppointmentResponse:
    """
    Cancel an appointment.

    Patients cancelling their own appointments accrue cancellations; too
    many within the window deactivate the account.

    Args:
        appointment_id: Appointment ID
        current_user: The booking patient, the doctor or an admin
        db: Database session
        cache_manager: Availability cache
        mailer: Mailer

    Returns:
        Cancelled appointment
    """
    service = AppointmentService(db, cache_manager, mailer)
    return await service.cancel(appointment_id, current_user)
