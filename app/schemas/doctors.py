"""Doctor schedule and profile schemas."""

from collections import defaultdict
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator


class Weekday(str, Enum):
    """Day of week, Monday first (matches ``date.weekday()`` ordering)."""

    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def for_date(cls, value: date) -> "Weekday":
        """Get the weekday of a calendar date."""
        return list(cls)[value.weekday()]


def format_hhmm(value: time) -> str:
    """Format a time of day as ``HH:MM``."""
    return f"{value.hour:02d}:{value.minute:02d}"


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` string into a time of day."""
    hour, minute = value.strip().split(":")[:2]
    return time(int(hour), int(minute))


class TimeRange(BaseModel):
    """Open hours at one location, e.g. ``{"from": "09:00", "to": "12:00"}``."""

    model_config = ConfigDict(populate_by_name=True)

    from_: time = Field(..., alias="from")
    to: time
    location: str = Field(..., min_length=1, max_length=200)

    @model_validator(mode="after")
    def validate_order(self) -> "TimeRange":
        """Validate range start is before its end."""
        if self.from_ >= self.to:
            raise ValueError("Time range 'from' must be before 'to'")
        return self

    @field_serializer("from_", "to")
    def serialize_time(self, value: time) -> str:
        """Serialize times as HH:MM."""
        return format_hhmm(value)

    @property
    def minutes(self) -> int:
        """Length of the range in minutes."""
        return (self.to.hour * 60 + self.to.minute) - (self.from_.hour * 60 + self.from_.minute)


class WeeklyScheduleBlock(BaseModel):
    """Recurring open hours for one weekday."""

    model_config = ConfigDict(populate_by_name=True)

    day: Weekday
    time_slots: list[TimeRange] = Field(default_factory=list, alias="timeSlots")


def _check_no_overlap(blocks: list[WeeklyScheduleBlock]) -> None:
    grouped: dict[tuple[Weekday, str], list[TimeRange]] = defaultdict(list)
    for block in blocks:
        for time_range in block.time_slots:
            grouped[(block.day, time_range.location)].append(time_range)

    for (day, location), ranges in grouped.items():
        ranges.sort(key=lambda r: r.from_)
        for previous, current in zip(ranges, ranges[1:]):
            if current.from_ < previous.to:
                raise ValueError(
                    f"Overlapping time ranges on {day.value} at {location}: "
                    f"{format_hhmm(previous.from_)}-{format_hhmm(previous.to)} and "
                    f"{format_hhmm(current.from_)}-{format_hhmm(current.to)}"
                )


class DoctorProfile(BaseModel):
    """Profile carried by identities with the doctor role."""

    model_config = ConfigDict(populate_by_name=True)

    role: Literal["doctor"] = "doctor"
    specialty: str | None = Field(None, max_length=200)
    sub_specialty: str | None = Field(None, max_length=200)
    consultation_fee: Decimal | None = Field(None, ge=0)
    consultation_duration: int = Field(default=30, gt=0, le=480)
    availability: list[WeeklyScheduleBlock] = Field(default_factory=list)
    # ISO date -> blocked "HH:MM" start times, e.g. {"2025-04-25": ["09:00", "10:00"]}
    manual_blocks: dict[date, list[str]] = Field(default_factory=dict)
    verified: bool = False

    @field_validator("manual_blocks")
    @classmethod
    def normalize_manual_blocks(cls, v: dict[date, list[str]]) -> dict[date, list[str]]:
        """Normalize blocked times to sorted, unique HH:MM strings."""
        normalized = {}
        for day, times in v.items():
            try:
                parsed = {format_hhmm(parse_hhmm(t)) for t in times}
            except ValueError as e:
                raise ValueError(f"Invalid blocked time on {day.isoformat()}: {e}") from e
            normalized[day] = sorted(parsed)
        return normalized

    @field_validator("availability")
    @classmethod
    def validate_availability(cls, v: list[WeeklyScheduleBlock]) -> list[WeeklyScheduleBlock]:
        """Reject overlapping ranges for the same weekday and location."""
        _check_no_overlap(v)
        return v

    @field_serializer("consultation_fee")
    def serialize_decimal(self, value: Decimal | None) -> float | None:
        """Serialize Decimal to float for JSON."""
        return float(value) if value is not None else None


class WeeklyAvailabilityUpdate(BaseModel):
    """Schema for replacing a doctor's weekly schedule."""

    availability: list[WeeklyScheduleBlock]
    consultation_duration: int | None = Field(None, gt=0, le=480)

    @field_validator("availability")
    @classmethod
    def validate_availability(cls, v: list[WeeklyScheduleBlock]) -> list[WeeklyScheduleBlock]:
        """Reject overlapping ranges for the same weekday and location."""
        _check_no_overlap(v)
        return v


class ManualBlockUpdate(BaseModel):
    """Schema for setting the blocked start times of one date."""

    times: list[str] = Field(default_factory=list)

    @field_validator("times")
    @classmethod
    def validate_times(cls, v: list[str]) -> list[str]:
        """Normalize blocked times to sorted, unique HH:MM strings."""
        return sorted({format_hhmm(parse_hhmm(t)) for t in v})


class DaySlots(BaseModel):
    """Generated slots for one weekday."""

    day: Weekday
    slots: list[str]


class DoctorWeeklySlotsResponse(BaseModel):
    """Slots of every scheduled weekday at the doctor's consultation duration."""

    doctor_id: UUID
    consultation_duration: int
    days: list[DaySlots]


class DoctorScheduleResponse(BaseModel):
    """Doctor schedule response schema."""

    doctor_id: UUID
    full_name: str
    specialty: str | None = None
    consultation_duration: int
    availability: list[WeeklyScheduleBlock]
    manual_blocks: dict[date, list[str]]
