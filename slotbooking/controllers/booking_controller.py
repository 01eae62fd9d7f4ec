"""HTTP controller layer for the booking lifecycle."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from slotbooking.controllers.dependencies import get_booking_service, get_expiry_sweeper
from slotbooking.controllers.schemas import (
    BookingCreateRequest,
    BookingListResponse,
    BookingResponse,
    BookingUpdateRequest,
    conflict_detail,
    validation_detail,
)
from slotbooking.domain.exceptions import (
    BookingConflictError,
    BookingNotFoundError,
    BookingValidationError,
    CapacityExceededError,
    InvalidCategoryError,
)
from slotbooking.domain.models import BookingFilters, BookingStatus
from slotbooking.services.booking_service import BookingLifecycleService
from slotbooking.services.expiry_service import ExpirySweeper
from slotbooking.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


class CleanupResponse(BaseModel):
    message: str
    demoted: list[BookingResponse]
    count: int = Field(ge=0)


def _not_found(exc: BookingNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _bad_request(exc: BookingValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=validation_detail(exc.details),
    )


def _invalid_category(exc: InvalidCategoryError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": "Invalid Category", "message": str(exc)},
    )


@router.get("", response_model=BookingListResponse)
def list_bookings(
    category: Optional[str] = None,
    advisor: Optional[str] = None,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    slot: Optional[int] = Query(default=None, ge=1, le=6),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service: BookingLifecycleService = Depends(get_booking_service),
) -> BookingListResponse:
    try:
        parsed_status = BookingStatus.parse(status_filter) if status_filter else None
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    bookings = service.list_bookings(
        BookingFilters(
            category_search=category,
            advisor=advisor,
            status=parsed_status,
            slot=slot,
            start=start,
            end=end,
        )
    )
    return BookingListResponse(
        data=[BookingResponse.from_domain(item) for item in bookings],
        count=len(bookings),
    )


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup_expired_holds(
    sweeper: ExpirySweeper = Depends(get_expiry_sweeper),
) -> CleanupResponse:
    """Run one expiry sweep immediately."""
    try:
        demoted = sweeper.run_once()
    except Exception as exc:  # pragma: no cover - unexpected failure
        logger.exception("Manual expiry sweep failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to clean up expired reservations",
        ) from exc
    return CleanupResponse(
        message=f"{len(demoted)} expired reservations cleaned up",
        demoted=[BookingResponse.from_domain(item) for item in demoted],
        count=len(demoted),
    )


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: int,
    service: BookingLifecycleService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        return BookingResponse.from_domain(service.get_booking(booking_id))
    except BookingNotFoundError as exc:
        raise _not_found(exc) from exc


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreateRequest,
    service: BookingLifecycleService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = service.create_booking(
            payload.to_input(),
            auto_allocate=payload.auto_allocate,
        )
        return BookingResponse.from_domain(booking)
    except BookingValidationError as exc:
        raise _bad_request(exc) from exc
    except InvalidCategoryError as exc:
        raise _invalid_category(exc) from exc
    except CapacityExceededError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "Fully Booked", "message": str(exc)},
        ) from exc
    except BookingConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=conflict_detail(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - unexpected failure
        logger.exception("Unexpected booking creation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking",
        ) from exc


@router.put("/{booking_id}", response_model=BookingResponse)
def update_booking(
    booking_id: int,
    payload: BookingUpdateRequest,
    service: BookingLifecycleService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = service.update_booking(booking_id, payload.to_changes())
        return BookingResponse.from_domain(booking)
    except BookingNotFoundError as exc:
        raise _not_found(exc) from exc
    except BookingValidationError as exc:
        raise _bad_request(exc) from exc
    except InvalidCategoryError as exc:
        raise _invalid_category(exc) from exc
    except BookingConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=conflict_detail(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - unexpected failure
        logger.exception("Unexpected booking update failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update booking",
        ) from exc


@router.delete("/{booking_id}", response_model=BookingResponse)
def delete_booking(
    booking_id: int,
    service: BookingLifecycleService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        return BookingResponse.from_domain(service.delete_booking(booking_id))
    except BookingNotFoundError as exc:
        raise _not_found(exc) from exc
