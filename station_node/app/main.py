"""
FastAPI Application Entry Point.

This is the main application file for the station node: the queue and
seat-allocation engine behind a thin HTTP surface.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from station_node.app.core.config import settings
from station_node.app.api.v1.router import router as api_v1_router
from station_node.app.core.context import StationContext
from station_node.app.core.observability import ObservabilityMiddleware, configure_logging, logger
from station_node.app.core.redis_client import redis_client, ping_redis
from station_node.app.db.session import engine, AsyncSessionLocal, Base
from station_node.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from station_node.app.domain.pricing.route_prices import RoutePriceLookup
from station_node.app.services.booking_engine import BookingEngine
from station_node.app.services.overnight_transfer import OvernightTransferScheduler
from station_node.app.services.queue_store import QueueStore
from station_node.app.services.vehicle_directory import VehicleDirectory

# Import models to ensure they are registered with Base
from station_node.app.models.vehicle import Vehicle, VehicleAuthorizedStation
from station_node.app.models.vehicle_queue import VehicleQueue, QueuePartition
from station_node.app.models.booking import Booking
from station_node.app.models.route import Route
from station_node.app.models.trip import Trip


def install_services(app: FastAPI, ctx: StationContext) -> None:
    """Build the station services once and keep them on app.state."""
    prices = RoutePriceLookup(ctx)
    directory = VehicleDirectory(ctx, prices)
    queue_store = QueueStore(ctx, directory, prices)

    app.state.ctx = ctx
    app.state.route_prices = prices
    app.state.vehicle_directory = directory
    app.state.queue_store = queue_store
    app.state.booking_engine = BookingEngine(ctx, prices)
    app.state.transfer_scheduler = OvernightTransferScheduler(ctx, queue_store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Builds the station services and starts the overnight transfer timer.
    3. Stops the timer and closes connections on shutdown.
    """
    configure_logging(settings.log_level)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    install_services(app, StationContext.build(settings, AsyncSessionLocal, redis_client))
    scheduler = app.state.transfer_scheduler
    if settings.scheduler_enabled:
        scheduler.start()
    logger.info("Station %s (%s) ready", settings.station_name, settings.station_id)

    yield

    await scheduler.stop()
    await redis_client.aclose()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Station queue and seat-allocation engine",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns:
        dict: Status, station and cache connectivity
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "station_id": settings.station_id,
        "redis": await ping_redis(request.app.state.ctx.redis),
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")
