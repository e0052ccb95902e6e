"""Coach eligibility pipeline and selection scoring."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from sqlalchemy import and_, func, not_, select
from sqlalchemy.ext.asyncio import AsyncSession

from coach_assignment.core.exceptions import NoSlotException, ValidationException
from coach_assignment.models.appointments import coach_appointments
from coach_assignment.models.coaches import calendars, coach_calendars, coaches
from coach_assignment.models.slots import coach_slots
from coach_assignment.schemas.appointments import AppointmentStatus

logger = structlog.get_logger()


class SelectionReason:
    """Human-readable rationale stored in the distribution log."""

    ONLY_COACH_ON_CALENDAR = "Only coach with this slot duration"
    ONLY_COACH_UNDER_DAILY_LIMIT = "Only coach not reaching daily appointment limit"
    ONLY_COACH_AVAILABLE = "Only coach available at this time"
    HIGHEST_SCORE = "Selected coach with highest score"


@dataclass(frozen=True)
class CoachCandidate:
    """A coach as seen by the pipeline."""

    id: str
    name: str
    email: str
    score: float
    max_daily_appointments: int
    working_hours_start: time
    working_hours_end: time
    timezone: str


@dataclass
class EligibilityResult:
    """Survivors of each stage, in pool order."""

    calendar_id: str
    slot_duration: int
    on_calendar: list[CoachCandidate] = field(default_factory=list)
    under_daily_limit: list[CoachCandidate] = field(default_factory=list)
    available: list[CoachCandidate] = field(default_factory=list)
    daily_counts: dict[str, int] = field(default_factory=dict)


def _coach_zone(candidate: CoachCandidate) -> ZoneInfo:
    try:
        return ZoneInfo(candidate.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown_coach_timezone", coach_id=candidate.id, timezone=candidate.timezone)
        return ZoneInfo("UTC")


def working_hours_window(candidate: CoachCandidate, start_time: datetime) -> tuple[datetime, datetime]:
    """
    Working window on the coach's local calendar day of ``start_time``.

    Returns:
        UTC bounds of the window; a window ending before it starts runs past midnight
    """
    zone = _coach_zone(candidate)
    local_day = start_time.astimezone(zone).date()
    window_start = datetime.combine(local_day, candidate.working_hours_start, tzinfo=zone)
    window_end = datetime.combine(local_day, candidate.working_hours_end, tzinfo=zone)
    if window_end <= window_start:
        window_end += timedelta(days=1)
    return window_start.astimezone(UTC), window_end.astimezone(UTC)


def filter_under_daily_limit(
    candidates: list[CoachCandidate],
    daily_counts: dict[str, int],
) -> list[CoachCandidate]:
    """
    Keep coaches whose booked count for the day is below their limit.

    A coach with nothing booked that day always survives, even with a zero limit.
    """
    kept = []
    for candidate in candidates:
        count = daily_counts.get(candidate.id, 0)
        if count == 0 or count < candidate.max_daily_appointments:
            kept.append(candidate)
    return kept


def select_coach(result: EligibilityResult) -> tuple[CoachCandidate, str]:
    """
    Pick the winning coach and explain why.

    The highest score wins; on equal scores the coach seen first is kept.
    The reason names the first stage that left a single coach.

    Raises:
        NoSlotException: If no coach survived the pipeline
    """
    if not result.available:
        raise NoSlotException("No slot available at this time for any coach")

    selected = result.available[0]
    for candidate in result.available[1:]:
        if candidate.score > selected.score:
            selected = candidate

    if len(result.on_calendar) == 1:
        reason = SelectionReason.ONLY_COACH_ON_CALENDAR
    elif len(result.under_daily_limit) == 1:
        reason = SelectionReason.ONLY_COACH_UNDER_DAILY_LIMIT
    elif len(result.available) == 1:
        reason = SelectionReason.ONLY_COACH_AVAILABLE
    else:
        reason = SelectionReason.HIGHEST_SCORE

    return selected, reason


class EligibilityPipeline:
    """Narrows the coaches of a calendar down to those bookable at a start time."""

    def __init__(self, db: AsyncSession):
        """Initialize pipeline with the session of the enclosing transaction."""
        self.db = db

    async def run(self, calendar_id: str, start_time: datetime) -> EligibilityResult:
        """
        Run every stage in order.

        Args:
            calendar_id: Requested calendar
            start_time: Requested start (UTC)

        Returns:
            Stage-by-stage survivors

        Raises:
            ValidationException: If the calendar does not exist
        """
        slot_duration = await self._load_slot_duration(calendar_id)
        result = EligibilityResult(calendar_id=calendar_id, slot_duration=slot_duration)

        # Stage 1: coaches on the calendar
        result.on_calendar = await self._load_candidates(calendar_id)
        logger.info(
            "eligibility_calendar_stage",
            calendar_id=calendar_id,
            slot_duration=slot_duration,
            candidates=[c.id for c in result.on_calendar],
        )

        # Stage 2: daily appointment limit
        for candidate in result.on_calendar:
            result.daily_counts[candidate.id] = await self._count_daily_appointments(
                candidate, start_time
            )
        result.under_daily_limit = filter_under_daily_limit(result.on_calendar, result.daily_counts)
        logger.info(
            "eligibility_daily_limit_stage",
            candidates=[c.id for c in result.under_daily_limit],
        )

        # Stage 3: real-time slot check
        for candidate in result.under_daily_limit:
            if await self._is_available(candidate.id, start_time):
                result.available.append(candidate)
        logger.info(
            "eligibility_availability_stage",
            candidates=[c.id for c in result.available],
        )

        return result

    async def _load_slot_duration(self, calendar_id: str) -> int:
        stmt = select(calendars.c.name, calendars.c.slot_duration).where(
            calendars.c.id == calendar_id
        )
        result = await self.db.execute(stmt)
        row = result.fetchone()

        if not row:
            raise ValidationException(
                "Invalid calendar information",
                details=f"calendar {calendar_id} not found",
            )

        return row.slot_duration

    async def _load_candidates(self, calendar_id: str) -> list[CoachCandidate]:
        stmt = (
            select(
                coaches.c.id,
                coaches.c.name,
                coaches.c.email,
                coaches.c.score,
                coaches.c.max_daily_appointments,
                coaches.c.working_hours_start,
                coaches.c.working_hours_end,
                coaches.c.timezone,
            )
            .select_from(coaches.join(coach_calendars, coach_calendars.c.coach_id == coaches.c.id))
            .where(coach_calendars.c.calendar_id == calendar_id)
            .order_by(coaches.c.id)
        )
        result = await self.db.execute(stmt)

        return [
            CoachCandidate(
                id=row.id,
                name=row.name,
                email=row.email,
                score=float(row.score),
                max_daily_appointments=row.max_daily_appointments,
                working_hours_start=row.working_hours_start,
                working_hours_end=row.working_hours_end,
                timezone=row.timezone,
            )
            for row in result.fetchall()
        ]

    async def _count_daily_appointments(
        self,
        candidate: CoachCandidate,
        start_time: datetime,
    ) -> int:
        window_start, window_end = working_hours_window(candidate, start_time)
        stmt = (
            select(func.count())
            .select_from(coach_appointments)
            .where(
                and_(
                    coach_appointments.c.coach_id == candidate.id,
                    coach_appointments.c.start_time >= window_start,
                    coach_appointments.c.end_time <= window_end,
                    coach_appointments.c.status == AppointmentStatus.SCHEDULED.value,
                )
            )
        )
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def _is_available(self, coach_id: str, start_time: datetime) -> bool:
        """Slot row is free and no scheduled appointment holds the exact start."""
        slot_free = (
            select(coach_slots.c.coach_id)
            .where(
                and_(
                    coach_slots.c.coach_id == coach_id,
                    coach_slots.c.start_time == start_time,
                    coach_slots.c.available.is_(True),
                )
            )
            .exists()
        )
        # Slot rows can lag appointment writes; this clause is authoritative
        occupied = (
            select(coach_appointments.c.id)
            .where(
                and_(
                    coach_appointments.c.coach_id == coach_id,
                    coach_appointments.c.start_time == start_time,
                    coach_appointments.c.status == AppointmentStatus.SCHEDULED.value,
                )
            )
            .exists()
        )
        result = await self.db.execute(select(and_(slot_free, not_(occupied))))
        return bool(result.scalar())
