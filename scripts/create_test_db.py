#!/usr/bin/env python3
"""
Verify the test database configuration and create its schema.

Integration tests truncate every table, so refuse to touch a database that is
also the application database.
"""

import asyncio
import os
import sys

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import create_async_engine

from coach_assignment.models import metadata


async def create_schema(url: str) -> None:
    """Create all tables in the test database."""
    engine = create_async_engine(url.replace("postgresql://", "postgresql+asyncpg://"))
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    await engine.dispose()


def main() -> int:
    """Check test database configuration and create the schema."""
    load_dotenv()

    app_db = os.getenv("DATABASE_URL")
    test_db = os.getenv("TEST_DATABASE_URL")

    if not test_db:
        print("TEST_DATABASE_URL is not set; integration tests will be skipped.")
        return 1

    if test_db == app_db:
        print("TEST_DATABASE_URL must not point at the application database.")
        return 1

    if "test" not in test_db.lower():
        print("Warning: TEST_DATABASE_URL does not look like a test database.")

    asyncio.run(create_schema(test_db))
    print(f"Created {len(metadata.tables)} tables in the test database.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
