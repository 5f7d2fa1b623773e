"""Notification ledger for tracking outbound mail and its delivery status."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from app.models.base import metadata

notifications = Table(
    "notifications",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("user_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=True,
    ),
    Column("notification_type", String(50), nullable=False),
    Column("recipient", Text, nullable=False),
    Column("subject", Text, nullable=False),
    Column("body", Text, nullable=False),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("failure_reason", Text, nullable=True),
    # At most one notification per key, e.g. one 24h reminder per appointment
    Column("dedup_key", Text, nullable=True, unique=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("sent_at", DateTime(timezone=True), nullable=True),
    CheckConstraint(
        "notification_type IN ('appointment_reminder', 'account_deactivated')",
        name="notifications_type_check",
    ),
    CheckConstraint(
        "status IN ('pending', 'sent', 'failed')",
        name="notifications_status_check",
    ),
    Index("idx_notifications_user_id", "user_id"),
    Index("idx_notifications_appointment_id", "appointment_id"),
    Index("idx_notifications_status", "status"),
)
