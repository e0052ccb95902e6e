"""Shared schema helpers."""

from datetime import UTC, datetime

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Structured body returned for every unsuccessful request."""

    error: str
    message: str
    error_details: str | None = None


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
