"""API v1 router configuration."""

from fastapi import APIRouter

from coach_assignment.api.v1.endpoints import appointments, availability, coaches, webhooks

api_router = APIRouter()

api_router.include_router(availability.router, tags=["Availability"])
api_router.include_router(appointments.router, prefix="/appointments", tags=["Appointments"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
api_router.include_router(coaches.router, prefix="/coaches", tags=["Coaches"])
