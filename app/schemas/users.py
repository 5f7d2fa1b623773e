"""Identity schemas: role-tagged profiles and user responses."""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.schemas.doctors import DoctorProfile


class UserRole(str, Enum):
    """User role enumeration."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"
    CLINIC = "clinic"


class PatientProfile(BaseModel):
    """Profile carried by identities with the patient role."""

    role: Literal["patient"] = "patient"
    gender: str | None = None
    blood_type: str | None = Field(None, max_length=10)
    cancellation_count: int = Field(default=0, ge=0)
    last_cancellation_date: datetime | None = None


class ClinicProfile(BaseModel):
    """Profile carried by identities with the clinic role."""

    role: Literal["clinic"] = "clinic"
    doctors_managed: list[UUID] = Field(default_factory=list)
    verified: bool = False


class AdminProfile(BaseModel):
    """Profile carried by identities with the admin role."""

    role: Literal["admin"] = "admin"


Profile = Annotated[
    DoctorProfile | PatientProfile | ClinicProfile | AdminProfile,
    Field(discriminator="role"),
]


class Identity(BaseModel):
    """A user as seen by the booking core.

    The ``profile`` column is stored without its discriminant; the user's role
    is copied into it before validation so the matching profile type is chosen.
    """

    id: UUID
    email: str
    full_name: str
    phone: str | None = None
    role: UserRole
    is_active: bool = True
    profile: Profile
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @model_validator(mode="before")
    @classmethod
    def tag_profile(cls, data: Any) -> Any:
        """Copy the role into the profile payload."""
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        role = data.get("role")
        profile = data.get("profile")
        if isinstance(profile, BaseModel):
            return data
        profile = dict(profile or {})
        profile["role"] = getattr(role, "value", role)
        data["profile"] = profile
        return data

    def has_role(self, *roles: UserRole) -> bool:
        """Check whether the identity has any of the given roles."""
        return self.role in roles

    def profile_payload(self) -> dict[str, Any]:
        """Profile as stored in the ``profile`` JSON column."""
        return self.profile.model_dump(mode="json", by_alias=True, exclude={"role"})


class IdentityCreate(BaseModel):
    """Schema for creating an identity."""

    email: str = Field(..., min_length=3, max_length=320)
    full_name: str = Field(..., min_length=1, max_length=200)
    phone: str | None = Field(None, max_length=20)
    role: UserRole = UserRole.PATIENT
    profile: dict[str, Any] = Field(default_factory=dict)


class UserResponse(BaseModel):
    """User schema for API responses."""

    id: UUID
    email: str
    full_name: str
    phone: str | None = None
    role: UserRole
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
