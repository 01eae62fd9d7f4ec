"""Request/response DTOs shared by the HTTP controllers."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from slotbooking.domain.exceptions import BookingConflictError
from slotbooking.domain.models import Booking, BookingInput, OccupiedSlot, SlotAvailability


class BookingResponse(BaseModel):
    """Open-ended bookings carry ``end=None`` and ``open_ended=True``."""

    id: int
    customer_name: str
    customer_number: str
    category: str
    slot: int = Field(ge=1, le=6)
    start: datetime
    end: Optional[datetime]
    open_ended: bool
    status: str
    advisor: str
    price: Optional[Decimal]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            customer_name=booking.customer_name,
            customer_number=booking.customer_number,
            category=booking.category,
            slot=booking.slot,
            start=booking.start,
            end=booking.end,
            open_ended=booking.open_ended,
            status=booking.status.value,
            advisor=booking.advisor,
            price=booking.price,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class BookingCreateRequest(BaseModel):
    customer_name: str
    customer_number: str
    category: str
    start: datetime
    end: Optional[datetime] = None
    advisor: str
    price: Optional[Decimal] = None
    status: Optional[str] = None
    slot: Optional[int] = None
    auto_allocate: bool = True

    def to_input(self) -> BookingInput:
        return BookingInput(
            customer_name=self.customer_name,
            customer_number=self.customer_number,
            category=self.category,
            start=self.start,
            end=self.end,
            advisor=self.advisor,
            price=self.price,
            status=self.status,
            slot=self.slot,
        )


class BookingUpdateRequest(BaseModel):
    """Only fields present in the payload are applied; ``end: null`` makes a booking open-ended."""

    customer_name: Optional[str] = None
    customer_number: Optional[str] = None
    category: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    advisor: Optional[str] = None
    price: Optional[Decimal] = None
    status: Optional[str] = None
    slot: Optional[int] = None

    def to_changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class BookingListResponse(BaseModel):
    data: list[BookingResponse]
    count: int = Field(ge=0)


class SlotAvailabilityResponse(BaseModel):
    slot: int = Field(ge=1, le=6)
    category: Optional[str]
    available: bool
    conflicts: list[BookingResponse]

    @classmethod
    def from_domain(cls, row: SlotAvailability) -> "SlotAvailabilityResponse":
        return cls(
            slot=row.slot,
            category=row.category,
            available=row.available,
            conflicts=[BookingResponse.from_domain(item) for item in row.conflicts],
        )


class OccupiedSlotResponse(BaseModel):
    slot: int = Field(ge=1, le=6)
    blocking_booking: BookingResponse
    conflicts: list[BookingResponse]
    free_again: Optional[date]

    @classmethod
    def from_domain(cls, row: OccupiedSlot) -> "OccupiedSlotResponse":
        return cls(
            slot=row.slot,
            blocking_booking=BookingResponse.from_domain(row.blocking_booking),
            conflicts=[BookingResponse.from_domain(item) for item in row.conflicts],
            free_again=row.free_again,
        )


def validation_detail(details: list[dict[str, str]]) -> dict[str, Any]:
    return {"error": "Validation Error", "details": details}


def conflict_detail(exc: BookingConflictError) -> dict[str, Any]:
    return {
        "error": "Booking Conflict",
        "message": str(exc),
        "conflicts": jsonable_encoder(
            [BookingResponse.from_domain(booking) for booking in exc.conflicts]
        ),
    }
