"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from slotbooking.repository.booking_repository import BookingRepository
from slotbooking.services.availability_service import AvailabilityQueryService
from slotbooking.services.booking_service import BookingLifecycleService
from slotbooking.services.category_service import CategoryProvider
from slotbooking.services.expiry_service import ExpirySweeper


def _from_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_repository(request: Request) -> BookingRepository:
    return _from_state(request, "repository", "Booking repository")


def get_booking_service(request: Request) -> BookingLifecycleService:
    return _from_state(request, "booking_service", "Booking service")


def get_availability_service(request: Request) -> AvailabilityQueryService:
    return _from_state(request, "availability_service", "Availability service")


def get_category_provider(request: Request) -> CategoryProvider:
    return _from_state(request, "category_provider", "Category provider")


def get_expiry_sweeper(request: Request) -> ExpirySweeper:
    return _from_state(request, "expiry_sweeper", "Expiry sweeper")
