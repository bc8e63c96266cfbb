"""
FastAPI Application Entry Point.

This is the main application file for the Fleet Dashboard Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fleet_dashboard.app.core.config import settings
from fleet_dashboard.app.core.observability import ObservabilityMiddleware
from fleet_dashboard.app.core.redis_client import ping_redis, close_redis
from fleet_dashboard.app.api.v1.router import router as api_v1_router
from fleet_dashboard.app.db.session import engine, Base, dispose_engine
from fleet_dashboard.app.services.change_feed import change_feed
from fleet_dashboard.app.services.fleet_view import fleet_view
from fleet_dashboard.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from fleet_dashboard.app.models.vehicle import Vehicle
from fleet_dashboard.app.models.reservation import Reservation
from fleet_dashboard.app.models.schedule_entry import ScheduleEntry
from fleet_dashboard.app.models.driver import Driver
from fleet_dashboard.app.models.trip_photo import TripPhoto
from fleet_dashboard.app.models.audit_log import AuditLog

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables and loads the fleet view on startup; closes
    Redis and the engine on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await fleet_view.reload()
    fleet_view.attach(change_feed)
    logger.info("Fleet Dashboard Backend started", extra={"api_version": settings.api_version})
    yield
    fleet_view.detach()
    await close_redis()
    await dispose_engine()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Backend for the fleet rental dashboard: vehicles, trips, reservations and schedules",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "ok" if redis_ok else "unavailable",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Fleet Dashboard Backend API",
        "docs": "/docs",
        "health": "/health",
    }
