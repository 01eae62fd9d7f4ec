"""
Domain-specific exception hierarchy for slot booking.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from slotbooking.domain.models import Booking, Interval


class SlotBookingError(Exception):
    """Base class for all business-rule failures."""


class BookingValidationError(SlotBookingError):
    """Raised when a booking field is missing or malformed."""

    def __init__(self, details: Sequence[dict[str, str]]) -> None:
        self.details = list(details)
        summary = "; ".join(f"{item['field']}: {item['message']}" for item in self.details)
        super().__init__(f"Validation failed: {summary}")


class InvalidCategoryError(SlotBookingError):
    """Raised when the referenced category does not exist."""

    def __init__(self, category: str) -> None:
        self.category = category
        super().__init__(f"Unknown category: {category!r}")


class BookingConflictError(SlotBookingError):
    """Raised when a write would overlap other blocking bookings."""

    def __init__(self, conflicts: Sequence["Booking"], message: str | None = None) -> None:
        self.conflicts = list(conflicts)
        super().__init__(
            message
            or f"Booking conflicts with {len(self.conflicts)} existing blocking booking(s)"
        )


class CapacityExceededError(SlotBookingError):
    """Raised when every slot of a category is taken for the requested period."""

    def __init__(self, category: str, interval: "Interval") -> None:
        self.category = category
        self.interval = interval
        super().__init__(f"All slots for {category!r} are booked in {interval}")


class BookingNotFoundError(SlotBookingError):
    """Raised when a booking id does not exist."""

    def __init__(self, booking_id: int) -> None:
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")
