"""Coach distribution schemas."""

from pydantic import BaseModel


class CoachDistribution(BaseModel):
    """Today's load for one coach."""

    coach_id: str
    name: str
    email: str
    score: float
    appointments_count: int
    utilization: float


class CoachDistributionResponse(BaseModel):
    """Schema for coach distribution response."""

    distribution: list[CoachDistribution]
    fairness_score: float
