"""Tests for slot decomposition and per-coach synchronization."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from coach_assignment.clients.delivery import RetriesExhaustedError
from coach_assignment.config import SchedulingConfig
from coach_assignment.core.exceptions import ValidationException
from coach_assignment.schemas.downstream import CalendarAvailabilityResponse, CalendarWindow
from coach_assignment.services.slot_sync_service import SlotSyncService, split_into_slot_starts

T0 = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)


@pytest.fixture
def config() -> SchedulingConfig:
    return SchedulingConfig(
        calendar_api_url="http://calendar",
        crm_webhook_url="http://crm",
        auth_service_url="http://auth",
    )


def window(start: datetime, minutes: int, available: bool = True) -> CalendarWindow:
    return CalendarWindow(
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        available=available,
    )


def test_hour_window_splits_into_four_slots():
    """Test splitting an hour into 15-minute slots."""
    starts = split_into_slot_starts(T0, T0 + timedelta(hours=1))
    assert starts == [T0 + timedelta(minutes=15 * i) for i in range(4)]


def test_partial_trailing_slot_is_kept():
    """Test that a partial trailing slot is kept."""
    starts = split_into_slot_starts(T0, T0 + timedelta(minutes=20))
    assert starts == [T0, T0 + timedelta(minutes=15)]


def test_start_is_truncated_to_the_minute():
    """Test that window starts are truncated to the minute."""
    starts = split_into_slot_starts(T0.replace(second=42, microsecond=5), T0 + timedelta(minutes=15))
    assert starts == [T0]


def test_naive_times_are_treated_as_utc():
    """Test that naive times are treated as UTC."""
    naive = datetime(2026, 3, 2, 10, 0)
    starts = split_into_slot_starts(naive, naive + timedelta(minutes=15))
    assert starts == [T0]
    assert starts[0].tzinfo is UTC


def test_empty_or_inverted_window():
    """Test empty and inverted windows."""
    assert split_into_slot_starts(T0, T0) == []
    assert split_into_slot_starts(T0, T0 - timedelta(minutes=30)) == []


@pytest.mark.asyncio
async def test_sync_coach_merges_windows_and_skips_booked_starts(config):
    """Overlapping windows merge; a booked start is written as unavailable."""
    calendar = AsyncMock()
    calendar.get_availability.return_value = CalendarAvailabilityResponse(
        coach_id="coach-a",
        slots=[window(T0, 30, available=False), window(T0, 45)],
    )
    db = AsyncMock()
    service = SlotSyncService(db, calendar, config)
    service._occupied_starts = AsyncMock(return_value={T0 + timedelta(minutes=15)})
    service._upsert_slots = AsyncMock()

    written = await service.sync_coach("coach-a", 7)

    assert written == 3
    calendar.get_availability.assert_awaited_once_with("coach-a", 7)
    rows = service._upsert_slots.await_args.args[0]
    assert [(r["start_time"], r["available"]) for r in rows] == [
        (T0, True),
        (T0 + timedelta(minutes=15), False),
        (T0 + timedelta(minutes=30), True),
    ]
    db.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_sync_coach_skips_coach_when_calendar_fails(config):
    """Test that a calendar failure skips the coach."""
    calendar = AsyncMock()
    calendar.get_availability.side_effect = RetriesExhaustedError("/coaches/a", 3, None, 503)
    db = AsyncMock()

    written = await SlotSyncService(db, calendar, config).sync_coach("coach-a", 7)

    assert written == 0
    db.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_sync_coach_rolls_back_on_store_failure(config):
    """Test that a store failure rolls back."""
    calendar = AsyncMock()
    calendar.get_availability.return_value = CalendarAvailabilityResponse(
        coach_id="coach-a", slots=[window(T0, 15)]
    )
    db = AsyncMock()
    service = SlotSyncService(db, calendar, config)
    service._occupied_starts = AsyncMock(return_value=set())
    service._upsert_slots = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("x")))

    assert await service.sync_coach("coach-a", 7) == 0
    db.rollback.assert_awaited_once()
    db.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_sync_availability_rejects_non_positive_days(config):
    """Test that non-positive days are rejected."""
    db = AsyncMock()
    with pytest.raises(ValidationException):
        await SlotSyncService(db, AsyncMock(), config).sync_availability(0)
    db.execute.assert_not_awaited()
