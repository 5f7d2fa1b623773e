"""Database models."""

from app.models.appointments import appointments
from app.models.base import metadata
from app.models.notifications import notifications
from app.models.users import users

__all__ = [
    "appointments",
    "metadata",
    "notifications",
    "users",
]
