"""FastAPI application entry point."""

import asyncio
import os
import signal
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.router import api_router
from app.config import settings
from app.core.exceptions import AppException
from app.core.mailer import get_mailer
from app.core.redis_client import close_redis_connection, get_redis_client
from app.database import AsyncSessionLocal, check_database_connection, engine
from app.middleware.error_handler import (
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.middleware.logging import LoggingMiddleware, configure_logging
from app.services.reminder_sweeper import ReminderSweeper

# Configure logging
configure_logging()
logger = structlog.get_logger()


def _terminate() -> None:
    """Ask the server to shut down; uvicorn handles SIGTERM gracefully."""
    os.kill(os.getpid(), signal.SIGTERM)


def _loop_exception_handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    logger.critical(
        "fatal_unhandled_exception",
        source="event_loop",
        message=context.get("message"),
        error=str(exc) if exc else None,
        exc_info=exc,
    )
    _terminate()


def _excepthook(
    exc_type: type[BaseException],
    exc: BaseException,
    tb: TracebackType | None,
) -> None:
    logger.critical(
        "fatal_unhandled_exception",
        source="excepthook",
        error=str(exc),
        exc_info=(exc_type, exc, tb),
    )
    _terminate()


def install_fatal_handlers() -> None:
    """Log and terminate on exceptions nothing else handled."""
    asyncio.get_running_loop().set_exception_handler(_loop_exception_handler)
    sys.excepthook = _excepthook


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info("application_startup", environment=settings.environment)
    install_fatal_handlers()

    # Test database connection
    if await check_database_connection():
        logger.info("database_connected")
    else:
        logger.error("database_connection_failed")

    # Test Redis connection
    if settings.cache_enabled:
        try:
            get_redis_client().ping()
            logger.info("redis_connected")
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))

    sweeper: ReminderSweeper | None = None
    if settings.reminders_enabled:
        sweeper = ReminderSweeper(
            session_factory=AsyncSessionLocal,
            mailer=get_mailer(),
            interval_seconds=settings.reminder_sweep_interval_seconds,
            lead_hours=settings.reminder_lead_hours,
            tolerance_minutes=settings.reminder_tolerance_minutes,
        )
        sweeper.start()
    app.state.reminder_sweeper = sweeper

    yield

    # Shutdown
    logger.info("application_shutdown")

    if sweeper is not None:
        await sweeper.stop()
    app.state.reminder_sweeper = None

    # Close database connections
    await engine.dispose()
    logger.info("database_connections_closed")

    # Close Redis connection
    close_redis_connection()
    logger.info("redis_connection_closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Appointment booking backend: doctor availability, bookings, cancellations and reminders",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add logging middleware
app.add_middleware(LoggingMiddleware)

# Add exception handlers
app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, general_exception_handler)  # type: ignore[arg-type]

# Include API router
app.include_router(api_router, prefix=settings.api_v1_prefix)

# Setup Prometheus instrumentation
Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/docs", "/redoc", "/openapi.json", "/metrics"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """
    Root endpoint.

    Returns:
        Welcome message
    """
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
