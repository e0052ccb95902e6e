"""FastAPI dependencies."""

import hashlib
from collections.abc import AsyncGenerator
from typing import Annotated

import httpx
from fastapi import Depends, Header, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from coach_assignment.clients.auth_client import AuthClient
from coach_assignment.clients.calendar_client import CalendarClient
from coach_assignment.clients.crm_client import CRMClient
from coach_assignment.config import SchedulingConfig, build_scheduling_config, settings
from coach_assignment.core.exceptions import RateLimitException
from coach_assignment.core.redis_client import CacheManager, RateLimiter, get_redis_client
from coach_assignment.database import get_db
from coach_assignment.schemas.downstream import ValidateResponse
from coach_assignment.services.auth_service import AuthService


def get_scheduling_config(request: Request) -> SchedulingConfig:
    """
    Get the scheduling configuration frozen at startup.

    Falls back to one built from settings when the lifespan has not run.
    """
    config = getattr(request.app.state, "scheduling_config", None)
    if config is None:
        config = build_scheduling_config(settings)
    return config


def get_cache_manager() -> CacheManager:
    """Get a cache manager bound to the shared Redis client."""
    return CacheManager(get_redis_client())


def get_rate_limiter() -> RateLimiter:
    """Get a rate limiter bound to the shared Redis client."""
    return RateLimiter(get_redis_client())


async def get_auth_client(
    config: Annotated[SchedulingConfig, Depends(get_scheduling_config)],
) -> AsyncGenerator[AuthClient, None]:
    """Yield an auth client for the duration of a request."""
    async with httpx.AsyncClient(
        base_url=config.auth_service_url,
        timeout=config.http_timeout_seconds,
    ) as http:
        yield AuthClient(http)


async def get_calendar_client(
    config: Annotated[SchedulingConfig, Depends(get_scheduling_config)],
) -> AsyncGenerator[CalendarClient, None]:
    """Yield a calendar client for the duration of a request."""
    async with httpx.AsyncClient(
        base_url=config.calendar_api_url,
        timeout=config.http_timeout_seconds,
    ) as http:
        yield CalendarClient(http, config.max_attempts, config.base_delay_seconds)


async def get_crm_client(
    config: Annotated[SchedulingConfig, Depends(get_scheduling_config)],
) -> AsyncGenerator[CRMClient, None]:
    """Yield a CRM client for the duration of a request."""
    async with httpx.AsyncClient(
        base_url=config.crm_webhook_url,
        timeout=config.http_timeout_seconds,
    ) as http:
        yield CRMClient(http, config.max_attempts, config.base_delay_seconds)


async def require_api_key(
    response: Response,
    auth_client: Annotated[AuthClient, Depends(get_auth_client)],
    rate_limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    config: Annotated[SchedulingConfig, Depends(get_scheduling_config)],
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> ValidateResponse:
    """
    Authorize the caller and apply the per-key rate limit.

    Args:
        response: Outgoing response, for rate limit headers
        auth_client: Auth service client
        rate_limiter: Redis rate limiter
        config: Scheduling configuration
        x_api_key: Caller's API key

    Returns:
        Auth service validation result

    Raises:
        ValidationException: If the key is missing or rejected
        DownstreamException: If the auth service is unavailable
        RateLimitException: If the key exceeded its limit
    """
    result = await AuthService(auth_client).authorize(x_api_key)

    limit = config.rate_limit_per_minute
    key_hash = hashlib.sha256(x_api_key.encode()).hexdigest()
    if not rate_limiter.check_rate_limit(f"rate_limit:{key_hash}", limit):
        raise RateLimitException(details=f"limit is {limit} requests per minute")

    response.headers["X-RateLimit-Limit"] = str(limit)
    return result


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
Config = Annotated[SchedulingConfig, Depends(get_scheduling_config)]
Cache = Annotated[CacheManager, Depends(get_cache_manager)]
Calendar = Annotated[CalendarClient, Depends(get_calendar_client)]
CRM = Annotated[CRMClient, Depends(get_crm_client)]
ApiKey = Annotated[ValidateResponse, Depends(require_api_key)]
