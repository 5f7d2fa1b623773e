"""Identity service: users, their role profiles and account state."""

from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException, NotFoundException
from app.models.appointments import appointments
from app.models.notifications import notifications
from app.models.users import users
from app.schemas.doctors import DoctorProfile, WeeklyAvailabilityUpdate
from app.schemas.users import Identity, IdentityCreate, PatientProfile, UserRole

logger = structlog.get_logger(__name__)


class IdentityService:
    """Service for identity lookups and profile updates."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def create_identity(self, data: IdentityCreate) -> Identity:
        """
        Create a user with a validated role profile.

        Args:
            data: Identity creation data

        Returns:
            Created identity
        """
        now = datetime.now(UTC)
        # Validate the profile against the role before writing it
        draft = Identity.model_validate(
            {
                "id": UUID(int=0),
                "email": data.email,
                "full_name": data.full_name,
                "role": data.role,
                "profile": data.profile,
            }
        )

        query = (
            users.insert()
            .values(
                email=data.email,
                full_name=data.full_name,
                phone=data.phone,
                role=data.role.value,
                profile=draft.profile_payload(),
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            .returning(users)
        )

        try:
            result = await self.db.execute(query)
            row = result.mappings().first()
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictException("A user with this email already exists") from e

        if not row:
            raise ValueError("Failed to create user")

        return Identity.model_validate(dict(row))

    async def find_identity_by_id(self, user_id: UUID) -> Identity | None:
        """Get identity by ID, or None when it does not exist."""
        result = await self.db.execute(select(users).where(users.c.id == user_id))
        row = result.mappings().first()

        if not row:
            return None

        return Identity.model_validate(dict(row))

    async def get_doctor(self, doctor_id: UUID) -> Identity:
        """
        Get a doctor identity.

        Raises:
            NotFoundException: If the user does not exist or is not a doctor
        """
        identity = await self.find_identity_by_id(doctor_id)
        if identity is None or identity.role != UserRole.DOCTOR:
            raise NotFoundException("Doctor not found or invalid role")
        return identity

    async def update_profile(
        self,
        user_id: UUID,
        profile: dict[str, Any],
        is_active: bool | None = None,
        commit: bool = True,
    ) -> Identity:
        """
        Replace the stored profile of a user.

        Args:
            user_id: User ID
            profile: Profile payload as stored in the profile column
            is_active: New account state, or None to keep it
            commit: Commit immediately; pass False to join the caller's transaction

        Returns:
            Updated identity
        """
        values: dict[str, Any] = {"profile": profile, "updated_at": datetime.now(UTC)}
        if is_active is not None:
            values["is_active"] = is_active

        result = await self.db.execute(
            update(users).where(users.c.id == user_id).values(**values).returning(users)
        )
        row = result.mappings().first()
        if commit:
            await self.db.commit()

        if not row:
            raise NotFoundException("No user found with that ID")

        return Identity.model_validate(dict(row))

    async def update_availability(self, doctor: Identity, data: WeeklyAvailabilityUpdate) -> Identity:
        """Replace a doctor's weekly schedule (and optionally consultation duration)."""
        payload = doctor.profile_payload()
        payload["availability"] = [
            block.model_dump(mode="json", by_alias=True) for block in data.availability
        ]
        if data.consultation_duration is not None:
            payload["consultation_duration"] = data.consultation_duration

        DoctorProfile.model_validate(payload)
        return await self.update_profile(doctor.id, payload)

    async def set_manual_block(self, doctor: Identity, day: date, times: list[str]) -> Identity:
        """Set the blocked start times of one date; an empty list clears the date."""
        payload = doctor.profile_payload()
        manual_blocks = dict(payload.get("manual_blocks") or {})
        if times:
            manual_blocks[day.isoformat()] = times
        else:
            manual_blocks.pop(day.isoformat(), None)
        payload["manual_blocks"] = manual_blocks

        DoctorProfile.model_validate(payload)
        return await self.update_profile(doctor.id, payload)

    async def reactivate(self, user_id: UUID) -> Identity:
        """Reactivate an account and reset its cancellation history."""
        identity = await self.find_identity_by_id(user_id)
        if identity is None:
            raise NotFoundException("No user found with that ID")

        payload = identity.profile_payload()
        if isinstance(identity.profile, PatientProfile):
            payload["cancellation_count"] = 0
            payload["last_cancellation_date"] = None

        logger.info("account_reactivated", user_id=str(user_id))
        return await self.update_profile(user_id, payload, is_active=True)

    async def delete_identity(self, user_id: UUID) -> bool:
        """
        Delete a user and every appointment that references it.

        Appointments are removed outright, not cancelled.

        Returns:
            True if the user existed
        """
        appointment_ids = select(appointments.c.id).where(
            or_(appointments.c.patient_id == user_id, appointments.c.doctor_id == user_id)
        )
        await self.db.execute(
            delete(notifications).where(
                or_(
                    notifications.c.user_id == user_id,
                    notifications.c.appointment_id.in_(appointment_ids),
                )
            )
        )
        removed = await self.db.execute(
            delete(appointments).where(
                or_(appointments.c.patient_id == user_id, appointments.c.doctor_id == user_id)
            )
        )
        result = await self.db.execute(delete(users).where(users.c.id == user_id))
        await self.db.commit()

        deleted = result.rowcount > 0  # type: ignore[attr-defined]
        if deleted:
            logger.info(
                "account_deleted",
                user_id=str(user_id),
                appointments_removed=removed.rowcount,  # type: ignore[attr-defined]
            )
        return deleted
