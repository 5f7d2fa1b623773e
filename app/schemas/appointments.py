"""Appointment schemas for request/response validation."""

from datetime import UTC, date, datetime, timedelta
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, computed_field, field_validator


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class GuestInfo(BaseModel):
    """Contact details of a patient without an account.

    Both fields are optional at the schema level so that incomplete guest info
    is reported as a missing identity rather than a request validation error.
    """

    name: str | None = Field(None, max_length=200)
    phone: str | None = Field(None, max_length=20)

    @property
    def is_complete(self) -> bool:
        """Whether both name and phone are present."""
        return bool(self.name and self.name.strip()) and bool(self.phone and self.phone.strip())


class AppointmentCreate(BaseModel):
    """Schema for creating a new appointment."""

    doctor_id: UUID
    appointment_at: datetime
    duration_minutes: int | None = Field(None, gt=0, le=480)
    location: str = Field(..., min_length=1, max_length=200)
    guest: GuestInfo | None = None
    notes: str | None = Field(None, max_length=1000)

    @field_validator("appointment_at")
    @classmethod
    def normalize_appointment_at(cls, v: datetime) -> datetime:
        """Store every instant in UTC."""
        return ensure_utc(v)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    doctor_id: UUID
    patient_id: UUID | None = None
    patient_name: str | None = None
    guest_name: str | None = None
    guest_phone: str | None = None
    doctor_name: str
    doctor_specialty: str | None = None
    appointment_at: datetime
    duration_minutes: int
    location: str
    status: AppointmentStatus
    created_by_doctor: bool = False
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("appointment_at", "created_at", "updated_at", "cancelled_at")
    @classmethod
    def as_utc(cls, v: datetime | None) -> datetime | None:
        """Return stored timestamps as UTC-aware datetimes."""
        return ensure_utc(v) if v is not None else None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def ends_at(self) -> datetime:
        """End of the booked interval."""
        return self.appointment_at + timedelta(minutes=self.duration_minutes)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def display_name(self) -> str:
        """Patient name, falling back to guest details when no account is linked."""
        return self.patient_name or self.guest_name or "Guest"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_past(self) -> bool:
        """Whether the appointment has already ended."""
        return self.ends_at <= datetime.now(UTC)


class AppointmentListResponse(BaseModel):
    """Schema for appointment list response."""

    total: int
    items: list[AppointmentResponse]


class DoctorAppointmentFilters(BaseModel):
    """Filters for a doctor's appointment list."""

    upcoming: bool = False
    past: bool = False
    location: str | None = None
    exclude_doctor_created: bool = False


class AppointmentFilters(BaseModel):
    """Schema for admin appointment filtering."""

    status: AppointmentStatus | None = None
    doctor_id: UUID | None = None
    patient_id: UUID | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None

    @field_validator("from_date", "to_date")
    @classmethod
    def as_utc(cls, v: datetime | None) -> datetime | None:
        """Compare bounds in UTC."""
        return ensure_utc(v) if v is not None else None


class AvailableDatesResponse(BaseModel):
    """Dates with remaining capacity at a location."""

    doctor_id: UUID
    location: str
    dates: list[date]


class AvailableTimesResponse(BaseModel):
    """Free start times on a date at a location."""

    doctor_id: UUID
    target_date: date
    location: str
    duration_minutes: int
    times: list[str]
    is_fully_booked: bool
