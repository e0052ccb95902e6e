"""Appointment booking schemas."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from coach_assignment.schemas.common import ensure_utc


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class BookAppointmentRequest(BaseModel):
    """Schema for booking a new appointment."""

    calendar_id: str = Field(..., min_length=1, max_length=200)
    start_time: datetime
    contact_email: str | None = Field(None, max_length=320)
    contact_name: str | None = Field(None, max_length=200)
    timezone: str | None = Field(None, max_length=64)
    notes: str | None = Field(None, max_length=1000)

    @field_validator("start_time")
    @classmethod
    def normalize_start_time(cls, v: datetime) -> datetime:
        """Store and compare all start times in UTC."""
        return ensure_utc(v)


class BookAppointmentResponse(BaseModel):
    """Schema for a committed booking."""

    appointment_id: UUID
    coach_id: str
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
