"""User model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from app.models.base import metadata

users = Table(
    "users",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Contact / identity
    Column("email", Text, nullable=False, unique=True, index=True),
    Column("full_name", Text, nullable=False),
    Column("phone", String(20)),
    Column("role", Text, nullable=False, server_default="patient"),
    # Role-specific profile (doctor schedule, patient cancellation policy, ...)
    Column("profile", JSON, nullable=False, default=dict),
    # Account state
    Column("is_active", Boolean, nullable=False, server_default="1", default=True),
    # Audit
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "role IN ('patient', 'doctor', 'admin', 'clinic')",
        name="users_role_check",
    ),
)
