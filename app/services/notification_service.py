"""Notification service for reminder and account emails."""

from datetime import UTC, datetime
from typing import Any, TypedDict
from uuid import UUID

import structlog
from sqlalchemy import insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.mailer import MailDeliveryError, Mailer
from app.models.notifications import notifications
from app.schemas.users import Identity

logger = structlog.get_logger(__name__)

REMINDER = "appointment_reminder"
ACCOUNT_DEACTIVATED = "account_deactivated"


class ReminderPayload(TypedDict):
    """What a reminder email says."""

    recipient: str
    recipient_name: str
    doctor_name: str
    date_time: datetime
    hours_before: int


def reminder_dedup_key(appointment_id: UUID, hours_before: int) -> str:
    """Ledger key allowing one reminder per appointment and lead time."""
    return f"reminder:{appointment_id}:{hours_before}h"


class NotificationService:
    """Service for sending notifications and recording them in the ledger.

    Delivery is best effort: failures are logged and recorded, never raised.
    """

    def __init__(self, db: AsyncSession, mailer: Mailer):
        """Initialize service with database session and mailer."""
        self.db = db
        self.mailer = mailer

    async def _record(self, **values: Any) -> UUID | None:
        """Insert a pending ledger row; None when the dedup key already exists."""
        try:
            result = await self.db.execute(
                insert(notifications)
                .values(status="pending", created_at=datetime.now(UTC), **values)
                .returning(notifications.c.id)
            )
            notification_id = result.scalar_one()
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return None
        return notification_id

    async def _deliver(self, notification_id: UUID, recipient: str, subject: str, body: str) -> bool:
        try:
            await self.mailer.send(recipient, subject, body)
        except MailDeliveryError as e:
            await self.db.execute(
                update(notifications)
                .where(notifications.c.id == notification_id)
                .values(status="failed", failure_reason=str(e))
            )
            await self.db.commit()
            logger.warning(
                "notification_failed",
                notification_id=str(notification_id),
                recipient=recipient,
                error=str(e),
            )
            return False

        await self.db.execute(
            update(notifications)
            .where(notifications.c.id == notification_id)
            .values(status="sent", sent_at=datetime.now(UTC))
        )
        await self.db.commit()
        logger.info("notification_sent", notification_id=str(notification_id), recipient=recipient)
        return True

    async def send_reminder(
        self,
        payload: ReminderPayload,
        appointment_id: UUID,
        user_id: UUID | None = None,
    ) -> bool:
        """
        Send an appointment reminder.

        Args:
            payload: Reminder contents
            appointment_id: Appointment being reminded of
            user_id: Recipient user ID

        Returns:
            True if the email was handed to the mail server
        """
        hours = payload["hours_before"]
        when = payload["date_time"].astimezone(UTC).strftime("%Y-%m-%d %H:%M UTC")
        subject = f"Reminder: appointment in {hours} hour{'s' if hours != 1 else ''}"
        body = (
            f"Hello {payload['recipient_name']},\n\n"
            f"This is a reminder of your appointment with {payload['doctor_name']} "
            f"on {when}.\n"
        )

        notification_id = await self._record(
            user_id=user_id,
            appointment_id=appointment_id,
            notification_type=REMINDER,
            recipient=payload["recipient"],
            subject=subject,
            body=body,
            dedup_key=reminder_dedup_key(appointment_id, hours),
        )
        if notification_id is None:
            logger.info(
                "notification_skipped_duplicate",
                appointment_id=str(appointment_id),
                hours_before=hours,
            )
            return False

        return await self._deliver(notification_id, payload["recipient"], subject, body)

    async def send_deactivation_notice(self, identity: Identity) -> bool:
        """Tell a patient their account was deactivated after repeated cancellations."""
        subject = "Your account has been deactivated"
        body = (
            f"Hello {identity.full_name},\n\n"
            "Your account has been deactivated because of repeated appointment "
            "cancellations. Please contact support to reactivate it.\n"
        )

        notification_id = await self._record(
            user_id=identity.id,
            notification_type=ACCOUNT_DEACTIVATED,
            recipient=identity.email,
            subject=subject,
            body=body,
        )
        if notification_id is None:
            return False

        return await self._deliver(notification_id, identity.email, subject, body)
