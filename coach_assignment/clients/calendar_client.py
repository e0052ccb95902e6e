"""External calendar client."""

from datetime import datetime

import httpx
import structlog

from coach_assignment.clients.delivery import DeliveryClient
from coach_assignment.schemas.downstream import (
    BlockSlotRequest,
    BlockSlotResponse,
    CalendarAvailabilityResponse,
    CoachSettingsResponse,
    ReleaseSlotRequest,
    ReleaseSlotResponse,
)

logger = structlog.get_logger()


class CalendarClient:
    """Fetches coach availability and blocks or releases slots."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        max_attempts: int = 3,
        base_delay: float = 0.2,
    ):
        """Initialize with an httpx client pointed at the calendar API."""
        self.delivery = DeliveryClient(http_client, max_attempts, base_delay)

    async def get_availability(self, coach_id: str, days: int) -> CalendarAvailabilityResponse:
        """Fetch raw availability windows for a coach."""
        logger.info("calendar_availability_requested", coach_id=coach_id, days=days)
        return await self.delivery.send(
            "GET",
            f"/coaches/{coach_id}/availability",
            CalendarAvailabilityResponse,
            params={"days": days},
        )

    async def block_slot(
        self,
        coach_id: str,
        start_time: datetime,
        end_time: datetime,
        idempotency_key: str,
    ) -> BlockSlotResponse:
        """Block a time range on the coach's external calendar."""
        logger.info(
            "calendar_block_requested",
            coach_id=coach_id,
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
        )
        return await self.delivery.send(
            "POST",
            f"/coaches/{coach_id}/block-slot",
            BlockSlotResponse,
            body=BlockSlotRequest(start_time=start_time, end_time=end_time),
            idempotency_key=idempotency_key,
        )

    async def release_slot(
        self,
        coach_id: str,
        block_id: str,
        idempotency_key: str,
    ) -> ReleaseSlotResponse:
        """Release a previously blocked range."""
        logger.info("calendar_release_requested", coach_id=coach_id, block_id=block_id)
        return await self.delivery.send(
            "POST",
            f"/coaches/{coach_id}/release-slot",
            ReleaseSlotResponse,
            body=ReleaseSlotRequest(block_id=block_id),
            idempotency_key=idempotency_key,
        )

    async def get_settings(self, coach_id: str) -> CoachSettingsResponse:
        """Fetch calendar settings (working hours and booking rules)."""
        return await self.delivery.send(
            "GET",
            f"/coaches/{coach_id}/settings",
            CoachSettingsResponse,
            max_attempts=1,
        )
