"""HTTP controller layer for availability queries."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from slotbooking.controllers.dependencies import get_availability_service
from slotbooking.controllers.schemas import (
    BookingResponse,
    OccupiedSlotResponse,
    SlotAvailabilityResponse,
    validation_detail,
)
from slotbooking.domain.constraints import build_interval
from slotbooking.domain.exceptions import BookingValidationError
from slotbooking.domain.models import SLOT_MAX, SLOT_MIN, Interval
from slotbooking.services.availability_service import AvailabilityQueryService


router = APIRouter(prefix="/api/availability", tags=["availability"])


class OverviewResponse(BaseModel):
    category: Optional[str]
    start: datetime
    end: Optional[datetime]
    slot_min: int = Field(ge=1, le=6)
    slot_max: int = Field(ge=1, le=6)
    overview: list[SlotAvailabilityResponse]


class BulkAvailabilityResponse(BaseModel):
    category: str
    start: datetime
    end: Optional[datetime]
    open_ended: bool
    available: list[int]
    occupied: list[OccupiedSlotResponse]


class CalendarResponse(BaseModel):
    start: datetime
    end: Optional[datetime]
    category: Optional[str]
    slot: Optional[int]
    total_bookings: int = Field(ge=0)
    calendar: dict[date, dict[int, list[BookingResponse]]]


def _interval(start: datetime, end: Optional[datetime]) -> Interval:
    try:
        return build_interval(start, end)
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=validation_detail(exc.details),
        ) from exc


@router.get("/check", response_model=SlotAvailabilityResponse)
def check_availability(
    category: str = Query(min_length=1),
    slot: int = Query(ge=SLOT_MIN, le=SLOT_MAX),
    start: datetime = Query(),
    end: Optional[datetime] = None,
    service: AvailabilityQueryService = Depends(get_availability_service),
) -> SlotAvailabilityResponse:
    interval = _interval(start, end)
    try:
        result = service.check_one(category, slot, interval)
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=validation_detail(exc.details),
        ) from exc
    return SlotAvailabilityResponse.from_domain(result)


@router.get("/overview", response_model=OverviewResponse)
def overview_availability(
    start: datetime,
    end: Optional[datetime] = None,
    category: Optional[str] = None,
    slot_min: int = SLOT_MIN,
    slot_max: int = SLOT_MAX,
    service: AvailabilityQueryService = Depends(get_availability_service),
) -> OverviewResponse:
    interval = _interval(start, end)
    try:
        rows = service.overview(
            interval,
            category=category or None,
            slot_min=slot_min,
            slot_max=slot_max,
        )
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=validation_detail(exc.details),
        ) from exc
    return OverviewResponse(
        category=category or None,
        start=interval.start,
        end=interval.end,
        slot_min=slot_min,
        slot_max=slot_max,
        overview=[SlotAvailabilityResponse.from_domain(row) for row in rows],
    )


@router.get("/bulk", response_model=BulkAvailabilityResponse)
def bulk_availability(
    category: str = Query(min_length=1),
    start: datetime = Query(),
    end: Optional[datetime] = None,
    service: AvailabilityQueryService = Depends(get_availability_service),
) -> BulkAvailabilityResponse:
    interval = _interval(start, end)
    try:
        report = service.bulk_report(category, interval)
    except BookingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=validation_detail(exc.details),
        ) from exc
    return BulkAvailabilityResponse(
        category=report.category,
        start=report.interval.start,
        end=report.interval.end,
        open_ended=report.interval.open_ended,
        available=report.available,
        occupied=[OccupiedSlotResponse.from_domain(row) for row in report.occupied],
    )


@router.get("/calendar", response_model=CalendarResponse)
def calendar_view(
    start: datetime,
    end: datetime,
    category: Optional[str] = None,
    slot: Optional[int] = Query(default=None, ge=SLOT_MIN, le=SLOT_MAX),
    service: AvailabilityQueryService = Depends(get_availability_service),
) -> CalendarResponse:
    interval = _interval(start, end)
    grouped = service.calendar(interval, category=category or None, slot=slot)
    calendar = {
        day: {
            slot_number: [BookingResponse.from_domain(item) for item in bookings]
            for slot_number, bookings in slots.items()
        }
        for day, slots in grouped.items()
    }
    return CalendarResponse(
        start=interval.start,
        end=interval.end,
        category=category or None,
        slot=slot,
        total_bookings=sum(len(items) for slots in grouped.values() for items in slots.values()),
        calendar=calendar,
    )
