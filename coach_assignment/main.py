"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from coach_assignment.api.v1.endpoints import health
from coach_assignment.api.v1.router import api_router
from coach_assignment.config import build_scheduling_config, settings
from coach_assignment.core.exceptions import AppException
from coach_assignment.core.redis_client import check_redis_connection, close_redis_connection
from coach_assignment.database import check_database_connection, engine
from coach_assignment.middleware.deadline import RequestDeadlineMiddleware
from coach_assignment.middleware.error_handler import (
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from coach_assignment.middleware.logging import LoggingMiddleware, configure_logging
from coach_assignment.services.rate_limit_service import load_rate_limit

configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Checks the backing stores and freezes the scheduling configuration
    before serving; releases connections on shutdown.
    """
    logger.info("application_startup", environment=settings.environment)

    rate_limit = None
    if await check_database_connection():
        logger.info("database_connected")
        async with engine.connect() as conn:
            rate_limit = await load_rate_limit(conn, settings.rate_limit_key_name)
    else:
        logger.error("database_connection_failed")

    if await check_redis_connection():
        logger.info("redis_connected")
    else:
        logger.error("redis_connection_failed")

    app.state.scheduling_config = build_scheduling_config(settings, rate_limit)
    logger.info(
        "scheduling_config_loaded",
        rate_limit_per_minute=app.state.scheduling_config.rate_limit_per_minute,
        max_attempts=app.state.scheduling_config.max_attempts,
    )

    yield

    logger.info("application_shutdown")

    await engine.dispose()
    logger.info("database_connections_closed")

    close_redis_connection()
    logger.info("redis_connection_closed")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Assigns coaches to appointment requests and keeps calendars and CRM in sync",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestDeadlineMiddleware, timeout_seconds=settings.request_timeout_seconds)

app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(health.router)
app.include_router(api_router, prefix=settings.api_prefix)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    excluded_handlers=["/docs", "/redoc", "/openapi.json", "/metrics"],
).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "coach_assignment.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
