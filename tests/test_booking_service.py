"""Tests for booking orchestration without a database."""

from datetime import UTC, datetime, time, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from coach_assignment.clients.delivery import ClientRejectedError, RetriesExhaustedError
from coach_assignment.core.exceptions import (
    GatewayException,
    InternalException,
    NoSlotException,
    TransactionException,
    ValidationException,
)
from coach_assignment.core.redis_client import CacheManager, IdempotencyStore
from coach_assignment.schemas.appointments import BookAppointmentRequest
from coach_assignment.schemas.downstream import AppointmentCreatedAck, BlockSlotResponse
from coach_assignment.services import booking_service
from coach_assignment.services.booking_service import BookingService, CommittedBooking
from coach_assignment.services.eligibility import CoachCandidate, EligibilityResult

START = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


@pytest.fixture
def request_data() -> BookAppointmentRequest:
    return BookAppointmentRequest(
        calendar_id="cal-1",
        start_time=START,
        contact_email="client@example.com",
        contact_name="Client",
    )


@pytest.fixture
def booking() -> CommittedBooking:
    return CommittedBooking(
        appointment_id=uuid4(),
        coach_id="coach-c",
        contact_id="user-1",
        start_time=START,
        end_time=START + timedelta(minutes=30),
        selection_reason="Only coach available at this time",
    )


@pytest.fixture
def crm() -> AsyncMock:
    client = AsyncMock()
    client.notify_created.return_value = AppointmentCreatedAck(success=True, crm_id="crm-1")
    return client


@pytest.fixture
def calendar(booking) -> AsyncMock:
    client = AsyncMock()
    client.block_slot.return_value = BlockSlotResponse(
        success=True,
        coach_id=booking.coach_id,
        start_time=booking.start_time,
        end_time=booking.end_time,
        block_id="block-1",
    )
    return client


@pytest.fixture
def service(cache_redis, calendar, crm, booking) -> BookingService:
    idempotency = IdempotencyStore(CacheManager(cache_redis), "booking", ttl=86400)
    service = BookingService(AsyncMock(), calendar, crm, idempotency)
    service._commit_booking = AsyncMock(return_value=booking)
    return service


@pytest.mark.asyncio
async def test_side_effects_run_in_order(service, calendar, crm, booking, request_data):
    """Test that CRM notify runs before the calendar block and both ids are recorded."""
    response = await service.book_appointment(request_data)

    assert response.appointment_id == booking.appointment_id
    assert response.coach_id == "coach-c"
    assert response.status == "scheduled"
    assert response.end_time - response.start_time == timedelta(minutes=30)

    event, key = crm.notify_created.await_args.args
    assert event.client_id == "user-1"
    assert key == f"appointment-created:{booking.appointment_id}"
    calendar.block_slot.assert_awaited_once_with(
        "coach-c",
        booking.start_time,
        booking.end_time,
        idempotency_key=f"block-slot:{booking.appointment_id}",
    )
    # CRM id then block id recorded on the appointment
    assert service.db.execute.await_count == 2


@pytest.mark.asyncio
async def test_client_idempotency_key_is_forwarded_and_replayed(
    service, crm, request_data, stored
):
    """Test that a client key reaches the CRM and replays the stored booking."""
    first = await service.book_appointment(request_data, idempotency_key="client-key")

    assert crm.notify_created.await_args.args[1] == "client-key"
    assert stored("idempotency:booking:client-key")["appointment_id"] == str(first.appointment_id)

    service._commit_booking.reset_mock()
    crm.reset_mock()
    second = await service.book_appointment(request_data, idempotency_key="client-key")

    assert second == first
    service._commit_booking.assert_not_awaited()
    crm.notify_created.assert_not_awaited()


@pytest.mark.asyncio
async def test_crm_failure_keeps_booking(service, calendar, crm, booking, request_data, stored):
    """Test that a CRM failure after commit reports a gateway error but keeps the booking."""
    crm.notify_created.side_effect = RetriesExhaustedError("/webhooks", 3, None, 503)

    with pytest.raises(GatewayException) as exc_info:
        await service.book_appointment(request_data, idempotency_key="k1")

    assert exc_info.value.status_code == 502
    assert f"appointment {booking.appointment_id} is booked" in exc_info.value.details
    calendar.block_slot.assert_not_awaited()
    # A retry with the same key gets the committed booking back
    assert stored("idempotency:booking:k1") is not None


@pytest.mark.asyncio
async def test_calendar_rejection_is_gateway_error(service, calendar, request_data):
    """Test that a calendar rejection after commit is a gateway error."""
    calendar.block_slot.side_effect = ClientRejectedError("/block-slot", 409, "already blocked")

    with pytest.raises(GatewayException):
        await service.book_appointment(request_data)


@pytest.mark.asyncio
async def test_reference_write_failure_is_internal_error(service, request_data):
    """Test that failing to record a downstream id is an internal error."""
    service.db.execute.side_effect = OperationalError("UPDATE", {}, Exception("gone"))

    with pytest.raises(InternalException) as exc_info:
        await service.book_appointment(request_data)

    assert exc_info.value.status_code == 500
    service.db.rollback.assert_awaited_once()


def fake_pipeline(result: EligibilityResult):
    class FakePipeline:
        def __init__(self, db):
            pass

        async def run(self, calendar_id, start_time):
            return result

    return FakePipeline


def eligibility_result() -> EligibilityResult:
    coach = CoachCandidate(
        id="coach-c",
        name="C",
        email="c@example.com",
        score=3.0,
        max_daily_appointments=8,
        working_hours_start=time(9),
        working_hours_end=time(17),
        timezone="UTC",
    )
    return EligibilityResult(
        calendar_id="cal-1",
        slot_duration=30,
        on_calendar=[coach],
        under_daily_limit=[coach],
        available=[coach],
        daily_counts={"coach-c": 0},
    )


@pytest.fixture
def transactional(cache_redis, calendar, crm) -> BookingService:
    idempotency = IdempotencyStore(CacheManager(cache_redis), "booking", ttl=86400)
    return BookingService(AsyncMock(), calendar, crm, idempotency)


@pytest.mark.asyncio
async def test_commit_writes_appointment_slots_and_log(monkeypatch, transactional, request_data):
    """Test the serializable commit of appointment, slot and distribution log."""
    monkeypatch.setattr(booking_service, "EligibilityPipeline", fake_pipeline(eligibility_result()))

    booking = await transactional._commit_booking(request_data)

    assert booking.coach_id == "coach-c"
    assert booking.end_time == START + timedelta(minutes=30)
    assert booking.contact_id.startswith("user-")
    transactional.db.connection.assert_awaited_once_with(
        execution_options={"isolation_level": "SERIALIZABLE"}
    )
    # appointment insert, slot update, distribution log insert
    assert transactional.db.execute.await_count == 3
    transactional.db.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_concurrent_insert_conflict_is_no_slot(monkeypatch, transactional, request_data):
    """Test that a unique index conflict means the slot was taken."""
    monkeypatch.setattr(booking_service, "EligibilityPipeline", fake_pipeline(eligibility_result()))
    transactional.db.execute.side_effect = IntegrityError(
        "INSERT", {}, Exception("duplicate key value violates unique constraint")
    )

    with pytest.raises(NoSlotException) as exc_info:
        await transactional._commit_booking(request_data)

    assert exc_info.value.message == "This slot has already been scheduled."
    transactional.db.rollback.assert_awaited_once()
    transactional.db.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_serialization_failure_is_transaction_error(
    monkeypatch, transactional, request_data
):
    """Test that a serialization failure on commit is a transaction error."""
    monkeypatch.setattr(booking_service, "EligibilityPipeline", fake_pipeline(eligibility_result()))
    transactional.db.commit.side_effect = OperationalError(
        "COMMIT", {}, Exception("could not serialize access")
    )

    with pytest.raises(TransactionException) as exc_info:
        await transactional._commit_booking(request_data)

    assert exc_info.value.status_code == 409
    transactional.db.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_no_eligible_coach_rolls_back(monkeypatch, transactional, request_data):
    """Test that an empty pipeline result rolls back without writing."""
    empty = EligibilityResult(calendar_id="cal-1", slot_duration=30)
    monkeypatch.setattr(booking_service, "EligibilityPipeline", fake_pipeline(empty))

    with pytest.raises(NoSlotException):
        await transactional._commit_booking(request_data)

    transactional.db.execute.assert_not_awaited()
    transactional.db.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_unknown_calendar_is_validation_error(monkeypatch, transactional, request_data):
    """Test that an unknown calendar is a validation error."""
    class MissingCalendar:
        def __init__(self, db):
            pass

        async def run(self, calendar_id, start_time):
            raise ValidationException("Invalid calendar information")

    monkeypatch.setattr(booking_service, "EligibilityPipeline", MissingCalendar)

    with pytest.raises(ValidationException):
        await transactional._commit_booking(request_data)
