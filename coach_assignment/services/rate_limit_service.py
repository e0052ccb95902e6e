"""Startup loading of the configured rate limit."""

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from coach_assignment.models.api_keys import api_keys

logger = structlog.get_logger()


async def load_rate_limit(conn: AsyncConnection, key_name: str) -> int | None:
    """
    Read the per-minute limit of a named API key.

    Args:
        conn: Database connection
        key_name: Name of the api_keys row, e.g. "Production Key"

    Returns:
        The limit, or None if the row is missing, inactive or unreadable
    """
    stmt = select(api_keys.c.rate_limit).where(
        api_keys.c.name == key_name,
        api_keys.c.active.is_(True),
    )
    try:
        result = await conn.execute(stmt)
        limit = result.scalar()
    except SQLAlchemyError as e:
        logger.warning("rate_limit_load_failed", key_name=key_name, error=str(e))
        return None

    if limit is None or limit <= 0:
        logger.warning("rate_limit_not_configured", key_name=key_name)
        return None

    return int(limit)
