"""Periodic sweep sending reminders ahead of scheduled appointments."""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.mailer import Mailer
from app.models.appointments import appointments
from app.models.users import users
from app.schemas.appointments import AppointmentStatus, ensure_utc
from app.services.notification_service import NotificationService, ReminderPayload

logger = structlog.get_logger(__name__)


class ReminderSweeper:
    """Background job reminding patients of upcoming appointments.

    Every ``interval_seconds`` the sweeper looks, for each lead time, at the
    scheduled appointments starting within ``tolerance_minutes`` of
    ``now + lead`` and emails their patients. Each reminder is recorded under a
    per-appointment, per-lead key, so overlapping windows of consecutive ticks
    never send it twice. The sweep never modifies appointments.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        mailer: Mailer,
        interval_seconds: int = 120,
        lead_hours: list[int] | None = None,
        tolerance_minutes: int = 2,
    ):
        """Initialize sweeper.

        Args:
            session_factory: Creates a database session per tick
            mailer: Mailer used for reminder emails
            interval_seconds: Seconds between ticks
            lead_hours: Hours before the appointment to remind at
            tolerance_minutes: Half-width of the window around each lead time
        """
        self.session_factory = session_factory
        self.mailer = mailer
        self.interval_seconds = interval_seconds
        self.lead_hours = lead_hours if lead_hours is not None else [1, 24]
        self.tolerance = timedelta(minutes=tolerance_minutes)
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start sweeping in the background on the running event loop."""
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name="reminder-sweeper")
        logger.info(
            "reminder_sweeper_started",
            interval_seconds=self.interval_seconds,
            lead_hours=self.lead_hours,
        )

    async def stop(self) -> None:
        """Stop the background loop and wait for the current tick to finish."""
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("reminder_sweeper_stopped")

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.error("reminder_sweep_failed", error=str(e), exc_info=True)

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                pass

    async def tick(self, now: datetime | None = None) -> int:
        """
        Run one sweep.

        Args:
            now: Current instant (defaults to now, UTC)

        Returns:
            Number of reminders sent
        """
        now = ensure_utc(now) if now else datetime.now(UTC)
        sent = 0
        due = 0

        async with self.session_factory() as db:
            notifier = NotificationService(db, self.mailer)

            for hours in self.lead_hours:
                target = now + timedelta(hours=hours)
                result = await db.execute(
                    select(
                        appointments.c.id,
                        appointments.c.patient_id,
                        appointments.c.doctor_name,
                        appointments.c.appointment_at,
                        users.c.email,
                        users.c.full_name,
                    )
                    .select_from(appointments.join(users, appointments.c.patient_id == users.c.id))
                    .where(
                        and_(
                            appointments.c.status == AppointmentStatus.SCHEDULED.value,
                            appointments.c.appointment_at >= target - self.tolerance,
                            appointments.c.appointment_at <= target + self.tolerance,
                        )
                    )
                )

                for row in result.fetchall():
                    if not row.email:
                        continue
                    due += 1

                    payload: ReminderPayload = {
                        "recipient": row.email,
                        "recipient_name": row.full_name,
                        "doctor_name": row.doctor_name,
                        "date_time": ensure_utc(row.appointment_at),
                        "hours_before": hours,
                    }
                    try:
                        if await notifier.send_reminder(payload, row.id, row.patient_id):
                            sent += 1
                    except Exception as e:
                        logger.error(
                            "reminder_dispatch_failed",
                            appointment_id=str(row.id),
                            hours_before=hours,
                            error=str(e),
                        )

        logger.info("reminder_sweep_completed", due=due, sent=sent)
        return sent
