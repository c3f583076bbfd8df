"""
FastAPI Application Entry Point.

This is the main application file for the Delivery Marketplace Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.core.dependencies import build_services
from backend.app.core.observability import ObservabilityMiddleware, configure_logging
from backend.app.core.redis_client import create_redis_client, ping_redis
from backend.app.db.session import Base, create_engine, create_session_factory
from backend.app.services.notification_service import (
    DatabaseNotificationSink,
    NotificationDispatcher,
    RedisNotificationSink,
)
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from backend.app.models.user import User
from backend.app.models.driver_profile import DriverProfile
from backend.app.models.package import Package
from backend.app.models.trip import Trip
from backend.app.models.bid import Bid
from backend.app.models.wallet import Wallet
from backend.app.models.commission_reservation import CommissionReservation
from backend.app.models.wallet_transaction import WalletTransaction
from backend.app.models.notification import Notification

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates the engine, session factory and tables.
    2. Starts the notification dispatcher and the reservation sweeper.
    3. Stops both and disposes connections on shutdown.
    """
    configure_logging()

    engine = create_engine()
    session_factory = create_session_factory(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    notifier = NotificationDispatcher([DatabaseNotificationSink(session_factory)])
    redis_client = create_redis_client()
    if await ping_redis(redis_client):
        notifier.add_sink(RedisNotificationSink(redis_client))
    else:
        logger.warning("Redis unavailable, push notifications disabled")

    services = build_services(session_factory, notifier)
    app.state.session_factory = session_factory
    app.state.services = services

    await notifier.start()
    await services.sweeper.start()
    try:
        yield
    finally:
        await services.sweeper.stop()
        await notifier.stop()
        await redis_client.aclose()
        await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Delivery marketplace: package/trip matching, bidding and commission",
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
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
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
        "message": "Welcome to Delivery Marketplace Backend API",
        "docs": "/docs",
        "health": "/health",
    }
