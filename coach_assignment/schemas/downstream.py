"""Payloads exchanged with the auth, calendar and CRM services."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


# Auth service
class RateLimitInfo(BaseModel):
    """Rate limit state reported by the auth service."""

    limit: int
    remaining: int
    reset: str
    retry_after: int | None = None


class Permissions(BaseModel):
    """Permissions attached to an API key."""

    read: bool = False
    write: bool = False
    delete: bool = False


class ValidateResponse(BaseModel):
    """Result of an API key validation."""

    valid: bool
    error: str | None = None
    key_type: str | None = None
    rate_limit: RateLimitInfo | None = None
    permissions: Permissions | None = None


# Calendar service
class CalendarWindow(BaseModel):
    """A free/busy window as reported by the calendar."""

    start_time: datetime
    end_time: datetime
    available: bool = True


class CalendarAvailabilityResponse(BaseModel):
    """Availability windows for one coach."""

    coach_id: str
    slots: list[CalendarWindow] = Field(default_factory=list)
    total_available: int = 0


class BlockSlotRequest(BaseModel):
    """Body for blocking a slot on the external calendar."""

    start_time: datetime
    end_time: datetime


class BlockSlotResponse(BaseModel):
    """External calendar block confirmation."""

    success: bool
    coach_id: str
    start_time: datetime
    end_time: datetime
    blocked_at: datetime | None = None
    block_id: str


class ReleaseSlotRequest(BaseModel):
    """Body for releasing an external calendar block."""

    block_id: str


class ReleaseSlotResponse(BaseModel):
    """External calendar release confirmation."""

    success: bool
    coach_id: str
    released_at: datetime | None = None
    block_id: str


class WorkingHours(BaseModel):
    """Working window reported by the calendar."""

    start: str
    end: str
    timezone: str


class AvailabilityRules(BaseModel):
    """Booking rules reported by the calendar."""

    min_notice_hours: int = 0
    max_advance_days: int = 0
    buffer_minutes: int = 0


class CoachSettingsResponse(BaseModel):
    """Calendar settings for one coach."""

    coach_id: str
    working_hours: WorkingHours
    availability_rules: AvailabilityRules
    blocked_dates: list[str] = Field(default_factory=list)


# CRM
class AppointmentCreatedEvent(BaseModel):
    """Lifecycle event sent when a booking commits."""

    appointment_id: UUID
    coach_id: str
    start_time: datetime
    end_time: datetime
    client_id: str


class AppointmentCreatedAck(BaseModel):
    """CRM acknowledgement of a created event."""

    success: bool
    crm_id: str | None = None
    processed_at: str | None = None
    message: str | None = None


class AppointmentUpdatedEvent(BaseModel):
    """Lifecycle event sent when an appointment changes status."""

    appointment_id: UUID
    status: str


class AppointmentUpdatedAck(BaseModel):
    """CRM acknowledgement of an updated event."""

    success: bool
    processed_at: str | None = None
    message: str | None = None


class AppointmentCancelledEvent(BaseModel):
    """Lifecycle event sent when an appointment is cancelled."""

    appointment_id: UUID
    reason: str


class AppointmentCancelledAck(BaseModel):
    """CRM acknowledgement of a cancelled event."""

    success: bool
    processed_at: str | None = None


class Contact(BaseModel):
    """CRM contact record."""

    id: str
    email: str
    name: str
    phone: str | None = None
    tags: list[str] = Field(default_factory=list)
    score: float | None = None
    created_at: datetime | None = None
