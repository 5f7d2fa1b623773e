"""Appointment service: the booking ledger."""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import Select, and_, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    BadRequestException,
    ForbiddenException,
    NotFoundException,
    SlotTakenException,
)
from app.core.mailer import Mailer, get_mailer
from app.core.redis_client import CacheManager
from app.models.appointments import appointments
from app.models.users import users
from app.scheduling.cancellation import apply_cancellation
from app.scheduling.guard import (
    check_not_blocked,
    check_not_in_past,
    check_requester_identity,
    check_slot_free,
    check_within_schedule,
)
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    DoctorAppointmentFilters,
    GuestInfo,
)
from app.schemas.users import ClinicProfile, Identity, PatientProfile, UserRole
from app.services.availability_service import MAX_DURATION_MINUTES, AvailabilityService
from app.services.identity_service import IdentityService
from app.services.notification_service import NotificationService

logger = structlog.get_logger(__name__)


def _appointment_query() -> Select[Any]:
    """Appointments joined with the booking patient's current name."""
    return select(appointments, users.c.full_name.label("patient_name")).select_from(
        appointments.outerjoin(users, appointments.c.patient_id == users.c.id)
    )


def _manages(actor: Identity, doctor_id: UUID) -> bool:
    return isinstance(actor.profile, ClinicProfile) and doctor_id in actor.profile.doctors_managed


class AppointmentService:
    """Service for booking, cancelling and listing appointments."""

    def __init__(
        self,
        db: AsyncSession,
        cache: CacheManager | None = None,
        mailer: Mailer | None = None,
    ):
        """Initialize service with database session, optional cache and mailer."""
        self.db = db
        self.cache = cache
        self.mailer = mailer or get_mailer()
        self.identities = IdentityService(db)

    def _invalidate(self, doctor_id: UUID) -> None:
        if self.cache:
            self.cache.invalidate_doctor_availability(doctor_id)

    async def _fetch(self, appointment_id: UUID) -> AppointmentResponse:
        result = await self.db.execute(
            _appointment_query().where(appointments.c.id == appointment_id)
        )
        row = result.mappings().first()

        if not row:
            raise NotFoundException("Appointment not found")

        return AppointmentResponse.model_validate(dict(row))

    async def _list(self, query: Select[Any]) -> AppointmentListResponse:
        result = await self.db.execute(query)
        items = [AppointmentResponse.model_validate(dict(row)) for row in result.mappings().all()]
        return AppointmentListResponse(total=len(items), items=items)

    @staticmethod
    def _resolve_requester(
        requester: Identity | None,
        data: AppointmentCreate,
    ) -> tuple[UUID | None, GuestInfo | None, bool]:
        """
        Decide who the appointment is for.

        Returns:
            Tuple of (patient_id, guest, created_by_doctor)

        Raises:
            ForbiddenException: If the requester may not book on this doctor's calendar
        """
        if requester is None:
            return None, data.guest, False

        if requester.role == UserRole.PATIENT:
            return requester.id, None, False

        if requester.role == UserRole.DOCTOR:
            if requester.id != data.doctor_id:
                raise ForbiddenException("Doctors can only book on their own calendar")
            return None, data.guest, True

        if requester.role == UserRole.CLINIC and not _manages(requester, data.doctor_id):
            raise ForbiddenException("Clinic does not manage this doctor")

        return None, data.guest, False

    async def book(
        self,
        data: AppointmentCreate,
        requester: Identity | None = None,
        now: datetime | None = None,
    ) -> AppointmentResponse:
        """
        Book an appointment after running every booking check.

        Args:
            data: Appointment creation data
            requester: Authenticated caller, or None for an anonymous guest booking
            now: Current instant (defaults to now, UTC)

        Returns:
            Created appointment

        Raises:
            NotFoundException: If the doctor does not exist
            ForbiddenException: If the requester may not book for this doctor
            BadRequestException: A booking error (missing identity, past date,
                slot not available, slot taken, slot blocked)
        """
        now = now or datetime.now(UTC)
        when = data.appointment_at
        patient_id, guest, created_by_doctor = self._resolve_requester(requester, data)

        try:
            check_requester_identity(patient_id, guest)
            doctor = await self.identities.get_doctor(data.doctor_id)
            profile = doctor.profile
            duration = data.duration_minutes or profile.consultation_duration

            check_not_in_past(when, now)
            check_within_schedule(profile.availability, when, duration)
            existing = await AvailabilityService(self.db).booked_slots(
                doctor.id,
                when - timedelta(minutes=MAX_DURATION_MINUTES),
                when + timedelta(minutes=duration),
            )
            check_slot_free(when, duration, existing)
            check_not_blocked(profile.manual_blocks, when)
        except BadRequestException as e:
            logger.info(
                "appointment_booking_rejected",
                doctor_id=str(data.doctor_id),
                appointment_at=when.isoformat(),
                reason=type(e).__name__,
            )
            raise

        values = {
            "patient_id": patient_id,
            "doctor_id": doctor.id,
            "guest_name": guest.name.strip() if patient_id is None and guest and guest.name else None,
            "guest_phone": guest.phone.strip() if patient_id is None and guest and guest.phone else None,
            "doctor_name": doctor.full_name,
            "doctor_specialty": profile.specialty,
            "appointment_at": when,
            "duration_minutes": duration,
            "location": data.location,
            "created_by_doctor": created_by_doctor,
            "notes": data.notes,
            "status": AppointmentStatus.SCHEDULED.value,
            "created_at": now,
            "updated_at": now,
        }

        try:
            result = await self.db.execute(
                insert(appointments).values(**values).returning(appointments.c.id)
            )
            appointment_id = result.scalar_one()
            await self.db.commit()
        except IntegrityError as e:
            # Another request took the slot between the check and the insert
            await self.db.rollback()
            logger.info(
                "appointment_booking_rejected",
                doctor_id=str(doctor.id),
                appointment_at=when.isoformat(),
                reason=SlotTakenException.__name__,
            )
            raise SlotTakenException() from e

        self._invalidate(doctor.id)
        logger.info(
            "appointment_booked",
            appointment_id=str(appointment_id),
            doctor_id=str(doctor.id),
            patient_id=str(patient_id) if patient_id else None,
            appointment_at=when.isoformat(),
            location=data.location,
        )

        return await self._fetch(appointment_id)

    async def get_appointment(self, appointment_id: UUID, actor: Identity) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the actor is not a party to the appointment
        """
        appointment = await self._fetch(appointment_id)

        if not (
            actor.role == UserRole.ADMIN
            or actor.id in (appointment.patient_id, appointment.doctor_id)
            or _manages(actor, appointment.doctor_id)
        ):
            raise ForbiddenException("Access denied to this appointment")

        return appointment

    async def cancel(
        self,
        appointment_id: UUID,
        actor: Identity,
        now: datetime | None = None,
    ) -> AppointmentResponse:
        """
        Cancel an appointment.

        When the booking patient cancels, the cancellation is counted against
        their account; reaching the limit deactivates it and sends a notice.
        Cancelling an already cancelled appointment changes nothing.

        Args:
            appointment_id: Appointment ID
            actor: The booking patient, the assigned doctor or an admin
            now: Current instant (defaults to now, UTC)

        Returns:
            Cancelled appointment

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If the actor may not cancel it
        """
        now = now or datetime.now(UTC)
        appointment = await self._fetch(appointment_id)

        if not (
            actor.role == UserRole.ADMIN
            or actor.id in (appointment.patient_id, appointment.doctor_id)
        ):
            raise ForbiddenException("You are not allowed to cancel this appointment")

        if appointment.status == AppointmentStatus.CANCELLED:
            return appointment

        result = await self.db.execute(
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.status != AppointmentStatus.CANCELLED.value,
                )
            )
            .values(
                status=AppointmentStatus.CANCELLED.value,
                cancelled_at=now,
                cancelled_by=actor.id,
                updated_at=now,
            )
        )
        if result.rowcount == 0:
            # Cancelled by a concurrent request; the policy was applied there
            await self.db.rollback()
            return await self._fetch(appointment_id)

        deactivated: Identity | None = None
        if actor.role == UserRole.PATIENT and actor.id == appointment.patient_id:
            patient = await self.identities.find_identity_by_id(actor.id)
            if patient is not None and isinstance(patient.profile, PatientProfile):
                outcome = apply_cancellation(
                    patient.profile.cancellation_count,
                    patient.profile.last_cancellation_date,
                    now,
                    window_days=settings.cancellation_window_days,
                    max_cancellations=settings.max_cancellations,
                )
                payload = patient.profile_payload()
                payload["cancellation_count"] = outcome.cancellation_count
                payload["last_cancellation_date"] = outcome.last_cancellation_date.isoformat()
                updated = await self.identities.update_profile(
                    patient.id,
                    payload,
                    is_active=False if outcome.deactivate else None,
                    commit=False,
                )
                if outcome.deactivate and patient.is_active:
                    deactivated = updated

        await self.db.commit()
        self._invalidate(appointment.doctor_id)
        logger.info(
            "appointment_cancelled",
            appointment_id=str(appointment_id),
            doctor_id=str(appointment.doctor_id),
            cancelled_by=str(actor.id),
        )

        if deactivated is not None:
            logger.warning(
                "account_deactivated",
                user_id=str(deactivated.id),
                cancellation_count=deactivated.profile.cancellation_count,
            )
            try:
                await NotificationService(self.db, self.mailer).send_deactivation_notice(deactivated)
            except Exception as e:
                # Cancellation is already committed
                logger.warning(
                    "deactivation_notice_failed",
                    user_id=str(deactivated.id),
                    error=str(e),
                )

        return await self._fetch(appointment_id)

    async def list_for_patient(
        self,
        patient_id: UUID,
        upcoming: bool = True,
        now: datetime | None = None,
    ) -> AppointmentListResponse:
        """
        List a patient's upcoming or past appointments.

        Upcoming appointments are sorted soonest first, past ones most recent first.
        """
        now = now or datetime.now(UTC)
        query = _appointment_query().where(appointments.c.patient_id == patient_id)

        if upcoming:
            query = query.where(appointments.c.appointment_at >= now).order_by(
                appointments.c.appointment_at.asc()
            )
        else:
            query = query.where(appointments.c.appointment_at < now).order_by(
                appointments.c.appointment_at.desc()
            )

        return await self._list(query)

    async def list_for_doctor(
        self,
        doctor_id: UUID,
        filters: DoctorAppointmentFilters,
        actor: Identity,
        now: datetime | None = None,
    ) -> AppointmentListResponse:
        """
        List a doctor's non-cancelled appointments.

        Args:
            doctor_id: Doctor ID
            filters: upcoming/past/location/exclude_doctor_created filters
            actor: The doctor, a clinic managing them, or an admin
            now: Current instant (defaults to now, UTC)

        Returns:
            Appointments sorted by start time
        """
        if not (actor.role == UserRole.ADMIN or actor.id == doctor_id or _manages(actor, doctor_id)):
            raise ForbiddenException("Access denied to this doctor's appointments")

        now = now or datetime.now(UTC)
        conditions = [
            appointments.c.doctor_id == doctor_id,
            appointments.c.status != AppointmentStatus.CANCELLED.value,
        ]

        if filters.upcoming:
            conditions.append(appointments.c.appointment_at >= now)

        if filters.past:
            conditions.append(appointments.c.appointment_at < now)

        if filters.location:
            conditions.append(appointments.c.location == filters.location)

        if filters.exclude_doctor_created:
            conditions.append(appointments.c.created_by_doctor.is_(False))

        return await self._list(
            _appointment_query().where(and_(*conditions)).order_by(appointments.c.appointment_at.asc())
        )

    async def list_all(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """List every appointment matching the filters."""
        conditions = []

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.doctor_id:
            conditions.append(appointments.c.doctor_id == filters.doctor_id)

        if filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)

        if filters.from_date:
            conditions.append(appointments.c.appointment_at >= filters.from_date)

        if filters.to_date:
            conditions.append(appointments.c.appointment_at <= filters.to_date)

        query = _appointment_query()
        if conditions:
            query = query.where(and_(*conditions))

        return await self._list(query.order_by(appointments.c.appointment_at.asc()))
