"""Availability schemas."""

from datetime import datetime

from pydantic import BaseModel


class AvailabilitySlot(BaseModel):
    """One bookable 15 minute slot."""

    coach_id: str
    start_time: datetime
    end_time: datetime


class AvailabilityResponse(BaseModel):
    """Schema for availability response."""

    slots: list[AvailabilitySlot]
    total_available: int
