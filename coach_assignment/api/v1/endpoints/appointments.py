"""Appointment endpoints."""

from typing import Annotated

from fastapi import APIRouter, Header, status

from coach_assignment.core.redis_client import IdempotencyStore
from coach_assignment.dependencies import CRM, ApiKey, Cache, Calendar, Config, DatabaseSession
from coach_assignment.schemas.appointments import BookAppointmentRequest, BookAppointmentResponse
from coach_assignment.services.booking_service import BookingService

router = APIRouter()


@router.post(
    "",
    response_model=BookAppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book an appointment with an automatically assigned coach",
)
async def book_appointment(
    data: BookAppointmentRequest,
    _: ApiKey,
    db: DatabaseSession,
    calendar: Calendar,
    crm: CRM,
    cache: Cache,
    config: Config,
    x_idempotency_key: Annotated[str | None, Header(alias="X-Idempotency-Key")] = None,
) -> BookAppointmentResponse:
    """
    Book the requested start time with the best eligible coach.

    Args:
        data: Booking request
        db: Database session
        calendar: Calendar client
        crm: CRM client
        cache: Cache manager
        config: Scheduling configuration
        x_idempotency_key: Optional client idempotency key

    Returns:
        The scheduled appointment
    """
    idempotency = IdempotencyStore(cache, "booking", config.idempotency_ttl_seconds)
    service = BookingService(db, calendar, crm, idempotency)
    return await service.book_appointment(data, x_idempotency_key)
