"""Script to initialize the database."""

import asyncio

import structlog

from coach_assignment.database import engine
from coach_assignment.middleware.logging import configure_logging
from coach_assignment.models import metadata

logger = structlog.get_logger()


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    logger.info("database_initialized", tables=sorted(metadata.tables))


if __name__ == "__main__":
    configure_logging()
    asyncio.run(init_db())
