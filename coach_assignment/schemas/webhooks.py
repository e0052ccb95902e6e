"""Inbound calendar webhook schemas."""

from uuid import UUID

from pydantic import BaseModel, Field


class WebhookEventType:
    """Event types with local side effects. Anything else is acknowledged only."""

    APPOINTMENT_CANCELLED = "appointment.cancelled"
    APPOINTMENT_CONFIRMED = "appointment.confirmed"


class WebhookRequest(BaseModel):
    """Schema for an inbound calendar webhook."""

    event_type: str = Field(..., min_length=1, max_length=100)
    appointment_id: UUID


class WebhookResponse(BaseModel):
    """Acknowledgement stored under the idempotency key and replayed verbatim."""

    received: bool
    event_id: str
