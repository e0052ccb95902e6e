"""Inbound webhook endpoints."""

from typing import Annotated

from fastapi import APIRouter, Header, status

from coach_assignment.core.redis_client import IdempotencyStore
from coach_assignment.dependencies import ApiKey, Cache, Calendar, Config, DatabaseSession
from coach_assignment.schemas.webhooks import WebhookRequest, WebhookResponse
from coach_assignment.services.webhook_service import WebhookService

router = APIRouter()


@router.post(
    "/calendar",
    response_model=WebhookResponse,
    status_code=status.HTTP_200_OK,
    tags=["Webhooks"],
    summary="Receive a calendar event",
)
async def handle_calendar_webhook(
    data: WebhookRequest,
    _: ApiKey,
    db: DatabaseSession,
    calendar: Calendar,
    cache: Cache,
    config: Config,
    x_idempotency_key: Annotated[str | None, Header(alias="X-Idempotency-Key")] = None,
) -> WebhookResponse:
    """
    Apply a calendar event to the matching appointment.

    Args:
        data: Webhook payload
        db: Database session
        calendar: Calendar client
        cache: Cache manager
        config: Scheduling configuration
        x_idempotency_key: Required idempotency key

    Returns:
        Acknowledgement with the event id
    """
    idempotency = IdempotencyStore(cache, "webhook", config.idempotency_ttl_seconds)
    service = WebhookService(db, calendar, idempotency)
    return await service.handle_calendar_webhook(data, x_idempotency_key)
