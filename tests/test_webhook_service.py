"""Tests for inbound calendar webhook reconciliation."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from coach_assignment.clients.delivery import RetriesExhaustedError
from coach_assignment.core.exceptions import (
    GatewayException,
    NotFoundException,
    ValidationException,
)
from coach_assignment.core.redis_client import CacheManager, IdempotencyStore
from coach_assignment.schemas.downstream import ReleaseSlotResponse
from coach_assignment.schemas.webhooks import WebhookRequest
from coach_assignment.services.webhook_service import WebhookService

START = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


@pytest.fixture
def appointment():
    return SimpleNamespace(
        id=uuid4(),
        coach_id="coach-a",
        calendar_id="cal-1",
        start_time=START,
        end_time=START + timedelta(minutes=30),
        external_calendar_id="block-1",
    )


@pytest.fixture
def db(appointment) -> AsyncMock:
    result = MagicMock()
    result.fetchone.return_value = appointment
    session = AsyncMock()
    session.execute.return_value = result
    return session


@pytest.fixture
def calendar(appointment) -> AsyncMock:
    client = AsyncMock()
    client.release_slot.return_value = ReleaseSlotResponse(
        success=True, coach_id=appointment.coach_id, block_id="block-1"
    )
    return client


@pytest.fixture
def idempotency(cache_redis) -> IdempotencyStore:
    return IdempotencyStore(CacheManager(cache_redis), "webhook", ttl=86400)


@pytest.mark.asyncio
async def test_missing_idempotency_key_is_rejected(db, calendar, idempotency, appointment):
    """Test that a webhook without a key is rejected."""
    service = WebhookService(db, calendar, idempotency)
    event = WebhookRequest(event_type="appointment.cancelled", appointment_id=appointment.id)

    with pytest.raises(ValidationException) as exc_info:
        await service.handle_calendar_webhook(event, None)

    assert exc_info.value.status_code == 400
    db.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancel_frees_slots_and_releases_block(db, calendar, idempotency, appointment, stored):
    """Test that cancelling frees slots and releases the block."""
    service = WebhookService(db, calendar, idempotency)
    event = WebhookRequest(event_type="appointment.cancelled", appointment_id=appointment.id)

    response = await service.handle_calendar_webhook(event, "evt-1")

    assert response.received is True
    # event log, appointment lookup, status update, slot release
    assert db.execute.await_count == 4
    calendar.release_slot.assert_awaited_once_with(
        "coach-a", "block-1", idempotency_key=f"release-slot:{appointment.id}"
    )
    assert stored("idempotency:webhook:evt-1") == response.model_dump(mode="json")


@pytest.mark.asyncio
async def test_replay_returns_stored_response_without_side_effects(
    db, calendar, idempotency, appointment
):
    """Test that a replay has no side effects."""
    service = WebhookService(db, calendar, idempotency)
    event = WebhookRequest(event_type="appointment.cancelled", appointment_id=appointment.id)

    first = await service.handle_calendar_webhook(event, "evt-1")
    db.reset_mock()
    calendar.reset_mock()

    second = await service.handle_calendar_webhook(event, "evt-1")

    assert second == first
    db.execute.assert_not_awaited()
    db.commit.assert_not_awaited()
    calendar.release_slot.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_appointment(db, calendar, idempotency):
    """Test a webhook for an unknown appointment."""
    db.execute.return_value.fetchone.return_value = None
    service = WebhookService(db, calendar, idempotency)
    event = WebhookRequest(event_type="appointment.cancelled", appointment_id=uuid4())

    with pytest.raises(NotFoundException) as exc_info:
        await service.handle_calendar_webhook(event, "evt-2")

    assert exc_info.value.status_code == 404
    calendar.release_slot.assert_not_awaited()


@pytest.mark.asyncio
async def test_release_failure_is_gateway_error(db, calendar, idempotency, appointment, stored):
    """Test that a release failure is a gateway error."""
    calendar.release_slot.side_effect = RetriesExhaustedError("/release-slot", 3, None, 503)
    service = WebhookService(db, calendar, idempotency)
    event = WebhookRequest(event_type="appointment.cancelled", appointment_id=appointment.id)

    with pytest.raises(GatewayException):
        await service.handle_calendar_webhook(event, "evt-3")

    # Local cancellation committed before the release was attempted
    assert db.commit.await_count == 2
    assert stored("idempotency:webhook:evt-3") is None


@pytest.mark.asyncio
async def test_cancel_without_external_block(db, calendar, idempotency, appointment):
    """Test cancelling an appointment that was never blocked."""
    appointment.external_calendar_id = None
    service = WebhookService(db, calendar, idempotency)
    event = WebhookRequest(event_type="appointment.cancelled", appointment_id=appointment.id)

    await service.handle_calendar_webhook(event, "evt-4")

    calendar.release_slot.assert_not_awaited()


@pytest.mark.asyncio
async def test_confirm_only_updates_bookkeeping(db, calendar, idempotency, appointment):
    """Test that confirm only stamps the appointment."""
    service = WebhookService(db, calendar, idempotency)
    event = WebhookRequest(event_type="appointment.confirmed", appointment_id=appointment.id)

    await service.handle_calendar_webhook(event, "evt-5")

    # event log, appointment lookup, confirmation stamp
    assert db.execute.await_count == 3
    calendar.release_slot.assert_not_awaited()


@pytest.mark.asyncio
async def test_other_events_are_acknowledged(db, calendar, idempotency, appointment):
    """Test that other event types are acknowledged."""
    service = WebhookService(db, calendar, idempotency)
    event = WebhookRequest(event_type="appointment.rescheduled", appointment_id=appointment.id)

    response = await service.handle_calendar_webhook(event, "evt-6")

    assert response.received is True
    assert db.execute.await_count == 2
