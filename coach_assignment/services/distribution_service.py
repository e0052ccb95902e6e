"""Coach load distribution and fairness reporting."""

import math
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from coach_assignment.core.exceptions import InternalException
from coach_assignment.models.appointments import coach_appointments
from coach_assignment.models.coaches import coaches
from coach_assignment.schemas.appointments import AppointmentStatus
from coach_assignment.schemas.distribution import CoachDistribution, CoachDistributionResponse


def compute_fairness_score(utilizations: Sequence[float]) -> float:
    """
    Score how evenly load is spread across coaches.

    ``1 - population standard deviation`` of the utilization ratios,
    clamped at 0. An empty pool scores 0.
    """
    if not utilizations:
        return 0.0

    mean = sum(utilizations) / len(utilizations)
    variance = sum((u - mean) ** 2 for u in utilizations) / len(utilizations)

    return max(0.0, 1 - math.sqrt(variance))


def utilization(appointments_count: int, max_daily_appointments: int) -> float:
    """Booked share of a coach's daily capacity; a zero capacity counts as idle."""
    if max_daily_appointments <= 0:
        return 0.0
    return appointments_count / max_daily_appointments


class DistributionService:
    """Service for coach distribution reporting."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def get_coach_distribution(self, now: datetime | None = None) -> CoachDistributionResponse:
        """
        Report today's scheduled load per coach with the pool fairness score.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            Per-coach distribution and fairness score
        """
        now = now or datetime.now(UTC)
        day_start = now.astimezone(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1)

        counts = (
            select(
                coach_appointments.c.coach_id,
                func.count().label("appointments_count"),
            )
            .where(
                and_(
                    coach_appointments.c.status == AppointmentStatus.SCHEDULED.value,
                    coach_appointments.c.start_time >= day_start,
                    coach_appointments.c.start_time < day_end,
                )
            )
            .group_by(coach_appointments.c.coach_id)
            .subquery()
        )

        stmt = (
            select(
                coaches.c.id,
                coaches.c.name,
                coaches.c.email,
                coaches.c.score,
                coaches.c.max_daily_appointments,
                func.coalesce(counts.c.appointments_count, 0).label("appointments_count"),
            )
            .select_from(coaches.outerjoin(counts, coaches.c.id == counts.c.coach_id))
            .order_by(coaches.c.id)
        )

        try:
            result = await self.db.execute(stmt)
            rows = result.fetchall()
        except SQLAlchemyError as e:
            raise InternalException("Database failure", details=str(e))

        distribution = [
            CoachDistribution(
                coach_id=row.id,
                name=row.name,
                email=row.email,
                score=float(row.score),
                appointments_count=row.appointments_count,
                utilization=utilization(row.appointments_count, row.max_daily_appointments),
            )
            for row in rows
        ]

        return CoachDistributionResponse(
            distribution=distribution,
            fairness_score=compute_fairness_score([d.utilization for d in distribution]),
        )
