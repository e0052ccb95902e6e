"""Appointment booking: serializable commit followed by downstream side effects."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError
from sqlalchemy import and_, func, insert, update
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coach_assignment.clients.calendar_client import CalendarClient
from coach_assignment.clients.crm_client import CRMClient
from coach_assignment.clients.delivery import DeliveryError
from coach_assignment.core.exceptions import (
    AppException,
    GatewayException,
    InternalException,
    NoSlotException,
    TransactionException,
)
from coach_assignment.core.redis_client import IdempotencyStore
from coach_assignment.models.appointments import coach_appointments
from coach_assignment.models.distribution_log import distribution_log
from coach_assignment.models.slots import coach_slots
from coach_assignment.schemas.appointments import (
    AppointmentStatus,
    BookAppointmentRequest,
    BookAppointmentResponse,
)
from coach_assignment.schemas.downstream import AppointmentCreatedEvent
from coach_assignment.services.distribution_service import compute_fairness_score, utilization
from coach_assignment.services.eligibility import (
    CoachCandidate,
    EligibilityPipeline,
    EligibilityResult,
    select_coach,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class CommittedBooking:
    """An appointment that has been durably committed."""

    appointment_id: UUID
    coach_id: str
    contact_id: str
    start_time: datetime
    end_time: datetime
    selection_reason: str


def distribution_score(result: EligibilityResult, selected: CoachCandidate) -> float:
    """Fairness of the calendar pool once the new booking is counted."""
    ratios = [
        utilization(
            result.daily_counts.get(c.id, 0) + (1 if c.id == selected.id else 0),
            c.max_daily_appointments,
        )
        for c in result.on_calendar
    ]
    return compute_fairness_score(ratios)


class BookingService:
    """Service for booking appointments."""

    def __init__(
        self,
        db: AsyncSession,
        calendar_client: CalendarClient,
        crm_client: CRMClient,
        idempotency: IdempotencyStore,
    ):
        """Initialize service with session, downstream clients and idempotency store."""
        self.db = db
        self.calendar = calendar_client
        self.crm = crm_client
        self.idempotency = idempotency

    async def book_appointment(
        self,
        data: BookAppointmentRequest,
        idempotency_key: str | None = None,
    ) -> BookAppointmentResponse:
        """
        Assign a coach and book the requested start time.

        The booking is stored under the idempotency key as soon as it commits,
        so a client retrying after a downstream failure gets the same
        appointment back instead of a second booking.

        Args:
            data: Booking request
            idempotency_key: Optional client key

        Returns:
            The scheduled appointment

        Raises:
            ValidationException: Unknown calendar
            NoSlotException: No eligible coach, or the slot was taken concurrently
            TransactionException: The transaction could not start or commit
            GatewayException: CRM notify or calendar block failed after commit
            InternalException: Recording a downstream reference failed after commit
        """
        if idempotency_key:
            cached = self.idempotency.lookup(idempotency_key)
            if cached.hit:
                try:
                    response = BookAppointmentResponse.model_validate(cached.value)
                except ValidationError as e:
                    logger.warning(
                        "idempotency_record_malformed",
                        idempotency_key=idempotency_key,
                        error=str(e),
                    )
                else:
                    logger.info(
                        "duplicate_booking_request",
                        idempotency_key=idempotency_key,
                        appointment_id=str(response.appointment_id),
                    )
                    return response

        booking = await self._commit_booking(data)

        response = BookAppointmentResponse(
            appointment_id=booking.appointment_id,
            coach_id=booking.coach_id,
            start_time=booking.start_time,
            end_time=booking.end_time,
            status=AppointmentStatus.SCHEDULED,
        )
        if idempotency_key:
            self.idempotency.store(idempotency_key, response.model_dump(mode="json"))

        crm_key = idempotency_key or f"appointment-created:{booking.appointment_id}"
        await self._notify_crm(booking, crm_key)
        await self._block_external_calendar(booking)

        return response

    async def _commit_booking(self, data: BookAppointmentRequest) -> CommittedBooking:
        """Run eligibility and all writes in one serializable transaction."""
        try:
            await self.db.connection(execution_options={"isolation_level": "SERIALIZABLE"})
        except SQLAlchemyError as e:
            raise TransactionException("Unable to create appointment", details=str(e))

        try:
            eligibility = await EligibilityPipeline(self.db).run(data.calendar_id, data.start_time)
            selected, reason = select_coach(eligibility)
            logger.info(
                "coach_selected",
                coach_id=selected.id,
                score=selected.score,
                selection_reason=reason,
            )

            appointment_id = uuid4()
            end_time = data.start_time + timedelta(minutes=eligibility.slot_duration)
            contact_id = f"user-{uuid4()}"

            try:
                await self.db.execute(
                    insert(coach_appointments).values(
                        id=appointment_id,
                        coach_id=selected.id,
                        calendar_id=data.calendar_id,
                        contact_id=contact_id,
                        contact_email=data.contact_email,
                        contact_name=data.contact_name,
                        title=f"Coaching session with {data.contact_name or contact_id}",
                        notes=data.notes,
                        start_time=data.start_time,
                        end_time=end_time,
                        status=AppointmentStatus.SCHEDULED.value,
                        source="api",
                    )
                )
            except IntegrityError as e:
                raise NoSlotException(
                    "This slot has already been scheduled.",
                    details=str(e.orig),
                )

            await self.db.execute(
                update(coach_slots)
                .where(
                    and_(
                        coach_slots.c.coach_id == selected.id,
                        coach_slots.c.start_time >= data.start_time,
                        coach_slots.c.start_time < end_time,
                    )
                )
                .values(available=False, updated_at=func.now())
            )

            await self.db.execute(
                insert(distribution_log).values(
                    appointment_id=appointment_id,
                    coaches_considered=[
                        {
                            "coach_id": c.id,
                            "score": c.score,
                            "appointments_today": eligibility.daily_counts.get(c.id, 0),
                        }
                        for c in eligibility.available
                    ],
                    selected_coach_id=selected.id,
                    selection_reason=reason,
                    distribution_score=distribution_score(eligibility, selected),
                )
            )

            await self.db.commit()
        except AppException:
            await self.db.rollback()
            raise
        except DBAPIError as e:
            await self.db.rollback()
            logger.warning("booking_transaction_failed", error=str(e.orig))
            raise TransactionException("Failed to create appointment", details=str(e.orig))
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "appointment_booked",
            appointment_id=str(appointment_id),
            coach_id=selected.id,
            start_time=data.start_time.isoformat(),
        )
        return CommittedBooking(
            appointment_id=appointment_id,
            coach_id=selected.id,
            contact_id=contact_id,
            start_time=data.start_time,
            end_time=end_time,
            selection_reason=reason,
        )

    async def _notify_crm(self, booking: CommittedBooking, idempotency_key: str) -> None:
        event = AppointmentCreatedEvent(
            appointment_id=booking.appointment_id,
            coach_id=booking.coach_id,
            start_time=booking.start_time,
            end_time=booking.end_time,
            client_id=booking.contact_id,
        )
        try:
            ack = await self.crm.notify_created(event, idempotency_key)
        except DeliveryError as e:
            logger.error(
                "crm_notify_failed",
                appointment_id=str(booking.appointment_id),
                error=e.message,
            )
            raise GatewayException(
                "Failed to send appointment creation request to CRM",
                details=f"appointment {booking.appointment_id} is booked; {e.message}",
            )

        await self._record_reference(booking.appointment_id, crm_contact_id=ack.crm_id)

    async def _block_external_calendar(self, booking: CommittedBooking) -> None:
        try:
            block = await self.calendar.block_slot(
                booking.coach_id,
                booking.start_time,
                booking.end_time,
                idempotency_key=f"block-slot:{booking.appointment_id}",
            )
        except DeliveryError as e:
            logger.error(
                "calendar_block_failed",
                appointment_id=str(booking.appointment_id),
                error=e.message,
            )
            raise GatewayException(
                "Failed to send a request to block slot to calendar",
                details=f"appointment {booking.appointment_id} is booked; {e.message}",
            )

        await self._record_reference(booking.appointment_id, external_calendar_id=block.block_id)

    async def _record_reference(self, appointment_id: UUID, **values: str | None) -> None:
        """Write a downstream id onto an already committed appointment."""
        try:
            await self.db.execute(
                update(coach_appointments)
                .where(coach_appointments.c.id == appointment_id)
                .values(**values, updated_at=func.now())
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "appointment_reference_write_failed",
                appointment_id=str(appointment_id),
                error=str(e),
            )
            raise InternalException(
                "Database failure",
                details=f"appointment {appointment_id} is booked; {e!s}",
            )
