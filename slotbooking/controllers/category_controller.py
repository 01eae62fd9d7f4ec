"""HTTP controller layer for category lookup and service status."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from slotbooking.controllers.dependencies import get_category_provider, get_repository
from slotbooking.repository.booking_repository import BookingRepository
from slotbooking.services.category_service import CategoryProvider
from slotbooking.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["categories"])


class CategoryListResponse(BaseModel):
    data: list[str]


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: datetime


class DatabaseStatusResponse(BaseModel):
    connected: bool
    record_count: int = Field(ge=0)
    status: str
    timestamp: datetime


@router.get("/api/categories", response_model=CategoryListResponse)
def list_categories(
    search: Optional[str] = None,
    provider: CategoryProvider = Depends(get_category_provider),
) -> CategoryListResponse:
    if search and search.strip():
        return CategoryListResponse(data=provider.search(search))
    return CategoryListResponse(data=provider.all())


@router.get("/health", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    return HealthResponse(
        status="OK",
        service=request.app.title,
        version=request.app.version,
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/api/db-status", response_model=DatabaseStatusResponse)
def database_status(
    repository: BookingRepository = Depends(get_repository),
) -> DatabaseStatusResponse:
    try:
        record_count = repository.count_bookings()
    except Exception as exc:
        logger.exception("Database status check failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is not reachable",
        ) from exc
    return DatabaseStatusResponse(
        connected=True,
        record_count=record_count,
        status="populated" if record_count > 0 else "empty",
        timestamp=datetime.now(timezone.utc),
    )
