"""Availability endpoints."""

from fastapi import APIRouter, Query, status

from coach_assignment.dependencies import ApiKey, Calendar, Config, DatabaseSession
from coach_assignment.schemas.availability import AvailabilityResponse
from coach_assignment.services.slot_sync_service import SlotSyncService

router = APIRouter()


@router.get(
    "/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Availability"],
    summary="Synchronize and list available slots",
)
async def get_availability(
    _: ApiKey,
    db: DatabaseSession,
    calendar: Calendar,
    config: Config,
    days: int | None = Query(None, description="Lookahead window in days"),
) -> AvailabilityResponse:
    """
    Refresh every coach's slots from the calendar and return the free ones.

    Args:
        db: Database session
        calendar: Calendar client
        config: Scheduling configuration
        days: Lookahead window, defaults to the configured window

    Returns:
        Available slots ordered by start time
    """
    service = SlotSyncService(db, calendar, config)
    return await service.sync_availability(days)
