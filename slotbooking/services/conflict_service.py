"""Overlap detection against blocking bookings on one (category, slot)."""

from __future__ import annotations

import sqlite3
from typing import Optional

from slotbooking.domain.constraints import validate_slot
from slotbooking.domain.exceptions import BookingValidationError
from slotbooking.domain.models import BLOCKING_STATUSES, Booking, Interval
from slotbooking.repository.booking_repository import BookingRepository


class ConflictDetector:
    """Returns every held/confirmed booking that overlaps a candidate interval."""

    def __init__(self, repository: Optional[BookingRepository] = None) -> None:
        self._repository = repository or BookingRepository()

    def find_conflicts(
        self,
        category: Optional[str],
        slot: int,
        interval: Interval,
        exclude_id: Optional[int] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Booking]:
        """
        ``category=None`` widens the check to every category on that slot.

        Pass ``conn`` to read inside an open write transaction.
        """
        if category is not None and not category.strip():
            raise BookingValidationError(
                [{"field": "category", "message": "category is required"}]
            )
        slot_error = validate_slot(slot)
        if slot_error:
            raise BookingValidationError([{"field": "slot", "message": slot_error}])

        candidates = self._repository.list_slot_bookings(
            category=category,
            slot=slot,
            statuses=BLOCKING_STATUSES,
            exclude_id=exclude_id,
            conn=conn,
        )
        return [booking for booking in candidates if booking.interval.overlaps(interval)]
