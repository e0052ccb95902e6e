"""CRM webhook client."""

import httpx
import structlog

from coach_assignment.clients.delivery import ClientRejectedError, DeliveryClient
from coach_assignment.schemas.downstream import (
    AppointmentCancelledAck,
    AppointmentCancelledEvent,
    AppointmentCreatedAck,
    AppointmentCreatedEvent,
    AppointmentUpdatedAck,
    AppointmentUpdatedEvent,
    Contact,
)

logger = structlog.get_logger()


class CRMClient:
    """Sends appointment lifecycle events to the CRM."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        max_attempts: int = 3,
        base_delay: float = 0.2,
    ):
        """Initialize with an httpx client pointed at the CRM."""
        self.delivery = DeliveryClient(http_client, max_attempts, base_delay)

    async def notify_created(
        self,
        event: AppointmentCreatedEvent,
        idempotency_key: str,
    ) -> AppointmentCreatedAck:
        """Send an appointment-created event."""
        logger.info("crm_created_event_sent", appointment_id=str(event.appointment_id))
        return await self.delivery.send(
            "POST",
            "/webhooks/appointment-created",
            AppointmentCreatedAck,
            body=event,
            idempotency_key=idempotency_key,
        )

    async def notify_updated(
        self,
        event: AppointmentUpdatedEvent,
        idempotency_key: str,
    ) -> AppointmentUpdatedAck:
        """Send an appointment-updated event."""
        logger.info("crm_updated_event_sent", appointment_id=str(event.appointment_id))
        return await self.delivery.send(
            "POST",
            "/webhooks/appointment-updated",
            AppointmentUpdatedAck,
            body=event,
            idempotency_key=idempotency_key,
        )

    async def notify_cancelled(
        self,
        event: AppointmentCancelledEvent,
        idempotency_key: str,
    ) -> AppointmentCancelledAck:
        """Send an appointment-cancelled event."""
        logger.info("crm_cancelled_event_sent", appointment_id=str(event.appointment_id))
        return await self.delivery.send(
            "POST",
            "/webhooks/appointment-cancelled",
            AppointmentCancelledAck,
            body=event,
            idempotency_key=idempotency_key,
        )

    async def get_contact(self, contact_id: str) -> Contact | None:
        """
        Look up a CRM contact.

        Returns:
            The contact, or None if the CRM does not know it
        """
        try:
            return await self.delivery.send("GET", f"/contacts/{contact_id}", Contact)
        except ClientRejectedError as e:
            if e.status_code == 404:
                return None
            raise
