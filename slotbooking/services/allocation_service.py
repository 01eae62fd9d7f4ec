"""Lowest-free-slot allocation within a category."""

from __future__ import annotations

import sqlite3
from typing import Optional

from slotbooking.domain.exceptions import CapacityExceededError
from slotbooking.domain.models import SLOT_NUMBERS, Interval
from slotbooking.repository.booking_repository import BookingRepository
from slotbooking.services.conflict_service import ConflictDetector
from slotbooking.utils.logger import get_logger


logger = get_logger(__name__)


class SlotAllocator:
    """Packs bookings towards slot 1 so higher numbers stay free."""

    def __init__(
        self,
        repository: Optional[BookingRepository] = None,
        conflict_detector: Optional[ConflictDetector] = None,
    ) -> None:
        self._repository = repository or BookingRepository()
        self._conflict_detector = conflict_detector or ConflictDetector(self._repository)

    def allocate(
        self,
        category: str,
        interval: Interval,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Return the first slot in 1..6 without conflicts for ``interval``."""
        for slot in SLOT_NUMBERS:
            conflicts = self._conflict_detector.find_conflicts(
                category=category,
                slot=slot,
                interval=interval,
                conn=conn,
            )
            if not conflicts:
                return slot
        logger.info("No free slot for category=%s interval=%s", category, interval)
        raise CapacityExceededError(category, interval)
