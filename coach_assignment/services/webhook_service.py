"""Inbound calendar webhook reconciliation."""

from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError
from sqlalchemy import and_, func, insert, not_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coach_assignment.clients.calendar_client import CalendarClient
from coach_assignment.clients.delivery import DeliveryError
from coach_assignment.core.exceptions import (
    GatewayException,
    InternalException,
    NotFoundException,
    ValidationException,
)
from coach_assignment.core.redis_client import IdempotencyStore
from coach_assignment.models.appointments import coach_appointments
from coach_assignment.models.slots import coach_slots
from coach_assignment.models.webhook_events import webhook_events
from coach_assignment.schemas.appointments import AppointmentStatus
from coach_assignment.schemas.webhooks import WebhookEventType, WebhookRequest, WebhookResponse

logger = structlog.get_logger()


class WebhookService:
    """Applies externally originated appointment events exactly once."""

    def __init__(
        self,
        db: AsyncSession,
        calendar_client: CalendarClient,
        idempotency: IdempotencyStore,
    ):
        """Initialize service with session, calendar client and idempotency store."""
        self.db = db
        self.calendar = calendar_client
        self.idempotency = idempotency

    async def handle_calendar_webhook(
        self,
        data: WebhookRequest,
        idempotency_key: str | None,
    ) -> WebhookResponse:
        """
        Reconcile one calendar event.

        A key that was already processed returns the stored acknowledgement
        and touches nothing else.

        Args:
            data: Webhook payload
            idempotency_key: Value of the X-Idempotency-Key header

        Returns:
            Acknowledgement with the generated event id

        Raises:
            ValidationException: Missing idempotency key
            NotFoundException: Unknown appointment
            InternalException: Local store failure
            GatewayException: Releasing the external calendar block failed
        """
        if not idempotency_key:
            raise ValidationException("Invalid request header: No X-Idempotency-Key")

        cached = self.idempotency.lookup(idempotency_key)
        if cached.hit:
            try:
                response = WebhookResponse.model_validate(cached.value)
            except ValidationError as e:
                logger.warning(
                    "idempotency_record_malformed",
                    idempotency_key=idempotency_key,
                    error=str(e),
                )
            else:
                logger.info("duplicate_webhook", idempotency_key=idempotency_key)
                return response

        event_id = uuid4()
        await self._record_event(event_id, data)

        appointment = await self._load_appointment(data.appointment_id)

        if data.event_type == WebhookEventType.APPOINTMENT_CANCELLED:
            await self._cancel(appointment)
        elif data.event_type == WebhookEventType.APPOINTMENT_CONFIRMED:
            await self._confirm(appointment.id)
        else:
            logger.info(
                "webhook_event_ignored",
                event_type=data.event_type,
                appointment_id=str(data.appointment_id),
            )

        response = WebhookResponse(received=True, event_id=str(event_id))
        self.idempotency.store(idempotency_key, response.model_dump(mode="json"))
        return response

    async def _record_event(self, event_id: UUID, data: WebhookRequest) -> None:
        """Persist the raw event. Failure is logged and processing continues."""
        try:
            await self.db.execute(
                insert(webhook_events).values(
                    id=event_id,
                    event_type=data.event_type,
                    event_source="webhook",
                    payload=data.model_dump(mode="json"),
                    last_attempt=func.now(),
                    processed_at=func.now(),
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("webhook_event_persist_failed", event_id=str(event_id), error=str(e))

    async def _load_appointment(self, appointment_id: UUID):
        stmt = select(
            coach_appointments.c.id,
            coach_appointments.c.coach_id,
            coach_appointments.c.calendar_id,
            coach_appointments.c.start_time,
            coach_appointments.c.end_time,
            coach_appointments.c.external_calendar_id,
        ).where(coach_appointments.c.id == appointment_id)

        try:
            result = await self.db.execute(stmt)
            row = result.fetchone()
        except SQLAlchemyError as e:
            raise InternalException("Database failure", details=str(e))

        if not row:
            raise NotFoundException(
                "Appointment not found",
                details=f"appointment {appointment_id} does not exist",
            )
        return row

    async def _cancel(self, appointment) -> None:
        try:
            await self.db.execute(
                update(coach_appointments)
                .where(coach_appointments.c.id == appointment.id)
                .values(
                    status=AppointmentStatus.CANCELLED.value,
                    updated_at=func.now(),
                    cancelled_at=func.now(),
                    webhook_attempts=coach_appointments.c.webhook_attempts + 1,
                    webhook_last_attempt=func.now(),
                )
            )
            await self.db.execute(
                update(coach_slots)
                .where(
                    and_(
                        coach_slots.c.coach_id == appointment.coach_id,
                        coach_slots.c.start_time >= appointment.start_time,
                        coach_slots.c.start_time < appointment.end_time,
                        not_(_held_by_other_booking(appointment.id)),
                    )
                )
                .values(available=True, updated_at=func.now())
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise InternalException("Database failure", details=str(e))

        logger.info("appointment_cancelled", appointment_id=str(appointment.id))

        if not appointment.external_calendar_id:
            logger.warning("no_external_block_to_release", appointment_id=str(appointment.id))
            return

        try:
            release = await self.calendar.release_slot(
                appointment.coach_id,
                appointment.external_calendar_id,
                idempotency_key=f"release-slot:{appointment.id}",
            )
        except DeliveryError as e:
            raise GatewayException(
                "Failed to send a request to release slot to calendar",
                details=e.message,
            )

        logger.info("external_block_released", block_id=release.block_id)

    async def _confirm(self, appointment_id: UUID) -> None:
        try:
            await self.db.execute(
                update(coach_appointments)
                .where(coach_appointments.c.id == appointment_id)
                .values(
                    updated_at=func.now(),
                    confirmed_at=func.now(),
                    webhook_attempts=coach_appointments.c.webhook_attempts + 1,
                    webhook_last_attempt=func.now(),
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise InternalException("Database failure", details=str(e))

        logger.info("appointment_confirmed", appointment_id=str(appointment_id))


def _held_by_other_booking(appointment_id: UUID):
    """Another scheduled appointment still covers the slot row being freed."""
    return (
        select(coach_appointments.c.id)
        .where(
            and_(
                coach_appointments.c.id != appointment_id,
                coach_appointments.c.coach_id == coach_slots.c.coach_id,
                coach_appointments.c.start_time <= coach_slots.c.start_time,
                coach_appointments.c.end_time > coach_slots.c.start_time,
                coach_appointments.c.status == AppointmentStatus.SCHEDULED.value,
            )
        )
        .exists()
    )
