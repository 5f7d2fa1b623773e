"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from app.models.base import metadata

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Ownership / references
    Column("patient_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
    Column("doctor_id", Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    # Guest booking (no registered patient)
    Column("guest_name", Text, nullable=True),
    Column("guest_phone", String(20), nullable=True),
    # Snapshot fields (denormalized for history)
    Column("doctor_name", Text, nullable=False),
    Column("doctor_specialty", Text, nullable=True),
    # Appointment details
    Column("appointment_at", DateTime(timezone=True), nullable=False),
    Column("duration_minutes", Integer, nullable=False),
    Column("location", Text, nullable=False),
    Column("created_by_doctor", Boolean, nullable=False, server_default="0", default=False),
    Column("notes", Text, nullable=True),
    # Status management
    Column("status", Text, nullable=False, server_default="scheduled"),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    Column("cancelled_by", Uuid, nullable=True),
    # Constraints
    CheckConstraint(
        "status IN ('scheduled', 'cancelled', 'completed')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "(patient_id IS NULL) <> (guest_name IS NULL)",
        name="appointments_patient_or_guest_check",
    ),
    CheckConstraint("duration_minutes > 0", name="appointments_duration_check"),
    Index("ix_appointments_doctor_id", "doctor_id"),
    Index("ix_appointments_patient_id", "patient_id"),
    Index("ix_appointments_appointment_at", "appointment_at"),
    # No double-booking for the same doctor and start instant
    Index(
        "uq_appointments_doctor_slot",
        "doctor_id",
        "appointment_at",
        unique=True,
        postgresql_where=text("status <> 'cancelled'"),
        sqlite_where=text("status <> 'cancelled'"),
    ),
)
