"""Coach endpoints."""

from fastapi import APIRouter, status

from coach_assignment.dependencies import ApiKey, DatabaseSession
from coach_assignment.schemas.distribution import CoachDistributionResponse
from coach_assignment.services.distribution_service import DistributionService

router = APIRouter()


@router.get(
    "/distribution",
    response_model=CoachDistributionResponse,
    status_code=status.HTTP_200_OK,
    tags=["Coaches"],
    summary="Today's load per coach and the fairness score",
)
async def get_coach_distribution(_: ApiKey, db: DatabaseSession) -> CoachDistributionResponse:
    """Report how evenly today's appointments are spread across coaches."""
    return await DistributionService(db).get_coach_distribution()
