"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from slotbooking.controllers.availability_controller import router as availability_router
from slotbooking.controllers.booking_controller import router as booking_router
from slotbooking.controllers.category_controller import router as category_router
from slotbooking.repository.booking_repository import BookingRepository
from slotbooking.services.availability_service import AvailabilityQueryService
from slotbooking.services.booking_service import BookingLifecycleService
from slotbooking.services.category_service import RepositoryCategoryProvider
from slotbooking.services.conflict_service import ConflictDetector
from slotbooking.services.expiry_service import ExpirySweeper
from slotbooking.utils.clock import Clock, SystemClock
from slotbooking.utils.config import Settings, get_settings
from slotbooking.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every service shares one repository, so all writes go through the same
    transaction lock.
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()

    # --- Repository (SQLite store + write serialization) ---
    repository = BookingRepository(settings, clock=clock)

    # --- Services (business logic, no direct DB access) ---
    category_provider = RepositoryCategoryProvider(repository)
    conflict_detector = ConflictDetector(repository)
    booking_service = BookingLifecycleService(
        repository=repository,
        category_provider=category_provider,
        conflict_detector=conflict_detector,
    )
    availability_service = AvailabilityQueryService(
        repository=repository,
        conflict_detector=conflict_detector,
    )
    expiry_sweeper = ExpirySweeper(
        repository=repository,
        settings=settings,
        clock=clock,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize storage and the sweeper before accepting requests."""
        _startup(app, settings)
        try:
            yield
        finally:
            _shutdown(app)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(booking_router)
    app.include_router(availability_router)
    app.include_router(category_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.repository = repository
    app.state.category_provider = category_provider
    app.state.booking_service = booking_service
    app.state.availability_service = availability_service
    app.state.expiry_sweeper = expiry_sweeper

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Order matters:
      1. Schema must exist before seeding.
      2. Categories are seeded before any booking can be validated.
      3. The sweeper starts last and runs one sweep immediately.
    """
    repository: BookingRepository = app.state.repository
    sweeper: ExpirySweeper = app.state.expiry_sweeper

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    logger.info("Startup: seeding default categories")
    repository.seed_categories(settings.default_categories)

    if settings.sweeper_enabled:
        logger.info("Startup: starting expiry sweeper")
        sweeper.tick()
        sweeper.start()

    logger.info("Startup complete, system ready")


def _shutdown(app: FastAPI) -> None:
    sweeper: ExpirySweeper = app.state.expiry_sweeper
    sweeper.shutdown()


# Module-level app object for uvicorn
app = create_app()
