"""Slot synchronization between the external calendar and the slot table."""

from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy import and_, case, false, func, literal, literal_column, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coach_assignment.clients.calendar_client import CalendarClient
from coach_assignment.clients.delivery import DeliveryError
from coach_assignment.config import SchedulingConfig
from coach_assignment.core.exceptions import InternalException, ValidationException
from coach_assignment.models.appointments import coach_appointments
from coach_assignment.models.coaches import coaches
from coach_assignment.models.slots import coach_slots
from coach_assignment.schemas.appointments import AppointmentStatus
from coach_assignment.schemas.availability import AvailabilityResponse, AvailabilitySlot
from coach_assignment.schemas.common import ensure_utc

logger = structlog.get_logger()

SLOT_GRANULARITY = timedelta(minutes=15)

# Keeps each upsert well under the asyncpg bind parameter limit
UPSERT_BATCH_SIZE = 1000


def split_into_slot_starts(
    start: datetime,
    end: datetime,
    granularity: timedelta = SLOT_GRANULARITY,
) -> list[datetime]:
    """
    Decompose a window into slot start times.

    Args:
        start: Window start
        end: Window end (exclusive)
        granularity: Slot length

    Returns:
        UTC start times ``start, start+g, ...`` strictly before ``end``,
        with ``start`` truncated to the minute
    """
    current = ensure_utc(start).replace(second=0, microsecond=0)
    end = ensure_utc(end)

    starts = []
    while current < end:
        starts.append(current)
        current += granularity
    return starts


def _covering_appointment_exists():
    """Scheduled appointment covering the row being upserted."""
    excluded_coach_id = literal_column("excluded.coach_id")
    excluded_start_time = literal_column("excluded.start_time")
    return (
        select(literal(1))
        .select_from(coach_appointments)
        .where(
            and_(
                coach_appointments.c.coach_id == excluded_coach_id,
                coach_appointments.c.start_time <= excluded_start_time,
                coach_appointments.c.end_time > excluded_start_time,
                coach_appointments.c.status == AppointmentStatus.SCHEDULED.value,
            )
        )
        .exists()
    )


class SlotSyncService:
    """Materializes calendar availability as fixed-granularity slot rows."""

    def __init__(
        self,
        db: AsyncSession,
        calendar_client: CalendarClient,
        config: SchedulingConfig,
    ):
        """Initialize service with database session, calendar client and config."""
        self.db = db
        self.calendar = calendar_client
        self.config = config
        self.granularity = timedelta(minutes=config.slot_granularity_minutes)

    async def sync_availability(self, days: int | None = None) -> AvailabilityResponse:
        """
        Synchronize every coach's slots and return the bookable ones.

        A calendar failure for one coach is logged and skipped; the rest of
        the pool is still synchronized.

        Args:
            days: Lookahead window, defaults to the configured window

        Returns:
            Available slots in [now, now + days) ordered by start time then coach

        Raises:
            ValidationException: If days is not positive
            InternalException: If the coach pool or slot table cannot be read
        """
        if days is None:
            days = self.config.default_availability_days
        if days <= 0:
            raise ValidationException("days must be greater than 0")

        now = datetime.now(UTC)
        window_end = now + timedelta(days=days)

        try:
            result = await self.db.execute(select(coaches.c.id).order_by(coaches.c.id))
            coach_ids = [row.id for row in result.fetchall()]
        except SQLAlchemyError as e:
            logger.error("slot_sync_coach_query_failed", error=str(e))
            raise InternalException("Unhandled error", details=str(e))

        for coach_id in coach_ids:
            await self.sync_coach(coach_id, days)

        try:
            slots = await self._load_available_slots(now, window_end)
        except SQLAlchemyError as e:
            logger.error("slot_query_failed", error=str(e))
            raise InternalException("Failed to query slots", details=str(e))

        return AvailabilityResponse(slots=slots, total_available=len(slots))

    async def sync_coach(self, coach_id: str, days: int) -> int:
        """
        Pull one coach's windows and upsert their slots.

        Returns:
            Number of slot rows written
        """
        try:
            availability = await self.calendar.get_availability(coach_id, days)
        except DeliveryError as e:
            logger.warning("calendar_availability_failed", coach_id=coach_id, error=e.message)
            return 0

        # Overlapping windows are merged; a start is free if any window says so
        starts: dict[datetime, bool] = {}
        for window in availability.slots:
            for start in split_into_slot_starts(
                window.start_time, window.end_time, self.granularity
            ):
                starts[start] = starts.get(start, False) or window.available

        if not starts:
            return 0

        try:
            occupied = await self._occupied_starts(coach_id, sorted(starts))
            rows = [
                {
                    "coach_id": coach_id,
                    "start_time": start,
                    "available": available and start not in occupied,
                }
                for start, available in sorted(starts.items())
            ]
            for offset in range(0, len(rows), UPSERT_BATCH_SIZE):
                await self._upsert_slots(rows[offset : offset + UPSERT_BATCH_SIZE])
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("slot_upsert_failed", coach_id=coach_id, error=str(e))
            return 0

        logger.info("coach_slots_synced", coach_id=coach_id, upserted=len(rows))
        return len(rows)

    async def _occupied_starts(self, coach_id: str, starts: list[datetime]) -> set[datetime]:
        """Slot starts already covered by a scheduled appointment."""
        stmt = select(coach_appointments.c.start_time, coach_appointments.c.end_time).where(
            and_(
                coach_appointments.c.coach_id == coach_id,
                coach_appointments.c.status == AppointmentStatus.SCHEDULED.value,
                coach_appointments.c.start_time <= starts[-1],
                coach_appointments.c.end_time > starts[0],
            )
        )
        result = await self.db.execute(stmt)
        bookings = result.fetchall()

        return {
            start
            for start in starts
            if any(row.start_time <= start < row.end_time for row in bookings)
        }

    async def _upsert_slots(self, rows: list[dict]) -> None:
        """Insert slot rows; on conflict never re-open a slot a booking holds."""
        stmt = pg_insert(coach_slots).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=[coach_slots.c.coach_id, coach_slots.c.start_time],
            set_={
                "available": case(
                    (_covering_appointment_exists(), false()),
                    else_=stmt.excluded.available,
                ),
                "updated_at": func.now(),
            },
        )
        await self.db.execute(stmt)

    async def _load_available_slots(
        self,
        window_start: datetime,
        window_end: datetime,
    ) -> list[AvailabilitySlot]:
        stmt = (
            select(coach_slots.c.coach_id, coach_slots.c.start_time)
            .where(
                and_(
                    coach_slots.c.start_time >= window_start,
                    coach_slots.c.start_time < window_end,
                    coach_slots.c.available.is_(True),
                )
            )
            .order_by(coach_slots.c.start_time, coach_slots.c.coach_id)
        )
        result = await self.db.execute(stmt)

        return [
            AvailabilitySlot(
                coach_id=row.coach_id,
                start_time=row.start_time.astimezone(UTC),
                end_time=(row.start_time + self.granularity).astimezone(UTC),
            )
            for row in result.fetchall()
        ]
