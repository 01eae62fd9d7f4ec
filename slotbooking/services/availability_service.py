"""Read-only availability projections over the booking store."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Optional

from slotbooking.domain.constraints import validate_slot
from slotbooking.domain.exceptions import BookingValidationError
from slotbooking.domain.models import (
    SLOT_MAX,
    SLOT_MIN,
    SLOT_NUMBERS,
    Booking,
    BookingFilters,
    BulkAvailabilityReport,
    Interval,
    OccupiedSlot,
    SlotAvailability,
)
from slotbooking.repository.booking_repository import BookingRepository
from slotbooking.services.conflict_service import ConflictDetector


def _latest_ending(bookings: list[Booking]) -> Booking:
    open_ended = [booking for booking in bookings if booking.open_ended]
    if open_ended:
        return min(open_ended, key=lambda booking: (booking.start, booking.id))
    return max(bookings, key=lambda booking: (booking.end, booking.id))


def compute_free_again(conflicts: list[Booking]) -> Optional[date]:
    """Day after the latest end; None while any conflicting booking is open-ended."""
    if not conflicts or any(booking.open_ended for booking in conflicts):
        return None
    latest_end = max(booking.end for booking in conflicts if booking.end is not None)
    return latest_end.date() + timedelta(days=1)


class AvailabilityQueryService:
    """Single-slot checks, slot overviews, bulk reports and calendar grouping."""

    def __init__(
        self,
        repository: Optional[BookingRepository] = None,
        conflict_detector: Optional[ConflictDetector] = None,
    ) -> None:
        self._repository = repository or BookingRepository()
        self._conflict_detector = conflict_detector or ConflictDetector(self._repository)

    def check_one(self, category: str, slot: int, interval: Interval) -> SlotAvailability:
        conflicts = self._conflict_detector.find_conflicts(
            category=category,
            slot=slot,
            interval=interval,
        )
        return SlotAvailability(
            slot=slot,
            available=not conflicts,
            conflicts=conflicts,
            category=category,
        )

    def overview(
        self,
        interval: Interval,
        category: Optional[str] = None,
        slot_min: int = SLOT_MIN,
        slot_max: int = SLOT_MAX,
    ) -> list[SlotAvailability]:
        """Per-slot availability; without a category every category counts."""
        errors: list[dict[str, str]] = []
        for name, value in (("slot_min", slot_min), ("slot_max", slot_max)):
            message = validate_slot(value)
            if message:
                errors.append({"field": name, "message": message})
        if not errors and slot_min > slot_max:
            errors.append({"field": "slot_min", "message": "slot_min must not exceed slot_max"})
        if errors:
            raise BookingValidationError(errors)

        rows: list[SlotAvailability] = []
        for slot in range(slot_min, slot_max + 1):
            conflicts = self._conflict_detector.find_conflicts(
                category=category,
                slot=slot,
                interval=interval,
            )
            rows.append(
                SlotAvailability(
                    slot=slot,
                    available=not conflicts,
                    conflicts=conflicts,
                    category=category,
                )
            )
        return rows

    def bulk_report(self, category: str, interval: Interval) -> BulkAvailabilityReport:
        available: list[int] = []
        occupied: list[OccupiedSlot] = []
        for slot in SLOT_NUMBERS:
            conflicts = self._conflict_detector.find_conflicts(
                category=category,
                slot=slot,
                interval=interval,
            )
            if not conflicts:
                available.append(slot)
                continue
            occupied.append(
                OccupiedSlot(
                    slot=slot,
                    blocking_booking=_latest_ending(conflicts),
                    conflicts=conflicts,
                    free_again=compute_free_again(conflicts),
                )
            )
        return BulkAvailabilityReport(
            category=category,
            interval=interval,
            available=available,
            occupied=occupied,
        )

    def calendar(
        self,
        interval: Interval,
        category: Optional[str] = None,
        slot: Optional[int] = None,
    ) -> dict[date, dict[int, list[Booking]]]:
        """Bookings overlapping ``interval`` grouped by start day, then slot."""
        if slot is not None:
            slot_error = validate_slot(slot)
            if slot_error:
                raise BookingValidationError([{"field": "slot", "message": slot_error}])
        bookings = self._repository.list_bookings(
            BookingFilters(
                category=category,
                slot=slot,
                start=interval.start,
                end=interval.end,
            )
        )
        grouped: dict[date, dict[int, list[Booking]]] = defaultdict(lambda: defaultdict(list))
        for booking in bookings:
            grouped[booking.start.date()][booking.slot].append(booking)
        return {
            day: {slot_number: grouped[day][slot_number] for slot_number in sorted(grouped[day])}
            for day in sorted(grouped)
        }
