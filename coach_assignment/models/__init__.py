"""Database models."""

from coach_assignment.models.api_keys import api_keys
from coach_assignment.models.appointments import coach_appointments
from coach_assignment.models.base import metadata
from coach_assignment.models.coaches import calendars, coach_calendars, coaches
from coach_assignment.models.distribution_log import distribution_log
from coach_assignment.models.slots import coach_slots
from coach_assignment.models.webhook_events import webhook_events

__all__ = [
    "api_keys",
    "calendars",
    "coach_appointments",
    "coach_calendars",
    "coach_slots",
    "coaches",
    "distribution_log",
    "metadata",
    "webhook_events",
]
