"""Create, update and delete bookings under the slot invariants."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping, Optional

from slotbooking.domain.constraints import validate_booking_input, validate_status_transition
from slotbooking.domain.exceptions import (
    BookingConflictError,
    BookingNotFoundError,
    BookingValidationError,
    InvalidCategoryError,
)
from slotbooking.domain.models import Booking, BookingFilters, BookingInput
from slotbooking.repository.booking_repository import BookingRepository, StorageConflictError
from slotbooking.services.allocation_service import SlotAllocator
from slotbooking.services.category_service import CategoryProvider, RepositoryCategoryProvider
from slotbooking.services.conflict_service import ConflictDetector
from slotbooking.utils.logger import get_logger


logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "customer_name",
        "customer_number",
        "category",
        "start",
        "end",
        "advisor",
        "price",
        "status",
    }
)

# Fields that may be cleared on update; every other field must keep a value.
_NULLABLE_FIELDS = frozenset({"end", "price"})

_STORAGE_CONFLICT_MESSAGE = "Booking overlaps a blocking booking committed concurrently"


class BookingLifecycleService:
    """
    Owns every write to the booking store.

    Each operation runs its check and its write inside one repository
    transaction, so two writers can never both commit overlapping blocking
    bookings on the same (category, slot).
    """

    def __init__(
        self,
        repository: Optional[BookingRepository] = None,
        category_provider: Optional[CategoryProvider] = None,
        conflict_detector: Optional[ConflictDetector] = None,
        allocator: Optional[SlotAllocator] = None,
    ) -> None:
        self._repository = repository or BookingRepository()
        self._categories = category_provider or RepositoryCategoryProvider(self._repository)
        self._conflict_detector = conflict_detector or ConflictDetector(self._repository)
        self._allocator = allocator or SlotAllocator(
            repository=self._repository,
            conflict_detector=self._conflict_detector,
        )

    def _ensure_category(self, category: str) -> None:
        if not self._categories.exists(category):
            raise InvalidCategoryError(category)

    def get_booking(self, booking_id: int) -> Booking:
        booking = self._repository.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    def list_bookings(self, filters: Optional[BookingFilters] = None) -> list[Booking]:
        return self._repository.list_bookings(filters)

    def create_booking(self, data: BookingInput, *, auto_allocate: bool = True) -> Booking:
        """
        Persist a new booking.

        With ``auto_allocate`` the lowest free slot is assigned and a
        caller-supplied slot is rejected; without it ``data.slot`` is required
        and must be free for the requested period.
        """
        if auto_allocate and data.slot is not None:
            raise BookingValidationError(
                [{"field": "slot", "message": "slot is assigned automatically"}]
            )
        values = validate_booking_input(data, require_slot=not auto_allocate)
        self._ensure_category(values.category)

        try:
            with self._repository.transaction() as conn:
                if auto_allocate:
                    slot = self._allocator.allocate(values.category, values.interval, conn=conn)
                else:
                    assert values.slot is not None
                    slot = values.slot
                    if values.status.is_blocking:
                        conflicts = self._conflict_detector.find_conflicts(
                            category=values.category,
                            slot=slot,
                            interval=values.interval,
                            conn=conn,
                        )
                        if conflicts:
                            raise BookingConflictError(conflicts)
                booking = self._repository.insert_booking(values, slot, conn=conn)
        except StorageConflictError as exc:
            raise BookingConflictError([], message=_STORAGE_CONFLICT_MESSAGE) from exc

        logger.info(
            "Created booking id=%s category=%s slot=%s status=%s",
            booking.id,
            booking.category,
            booking.slot,
            booking.status.value,
        )
        return booking

    def update_booking(self, booking_id: int, changes: Mapping[str, Any]) -> Booking:
        """Merge ``changes`` into the stored record, then validate the merged value."""
        if "slot" in changes:
            raise BookingValidationError(
                [{"field": "slot", "message": "slot cannot be changed after creation"}]
            )
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise BookingValidationError(
                [{"field": name, "message": f"{name} is not an updatable field"} for name in unknown]
            )
        cleared = sorted(
            name
            for name, value in changes.items()
            if value is None and name not in _NULLABLE_FIELDS
        )
        if cleared:
            raise BookingValidationError(
                [{"field": name, "message": f"{name} cannot be cleared"} for name in cleared]
            )

        try:
            with self._repository.transaction() as conn:
                existing = self._repository.get_booking(booking_id, conn=conn)
                if existing is None:
                    raise BookingNotFoundError(booking_id)

                merged = replace(existing.to_input(), **dict(changes))
                values = validate_booking_input(merged, require_slot=True)
                validate_status_transition(existing.status, values.status)
                self._ensure_category(values.category)

                conflicts = self._conflict_detector.find_conflicts(
                    category=values.category,
                    slot=existing.slot,
                    interval=values.interval,
                    exclude_id=booking_id,
                    conn=conn,
                )
                if conflicts:
                    raise BookingConflictError(conflicts)

                updated = self._repository.update_booking(booking_id, values, conn=conn)
                if updated is None:
                    raise BookingNotFoundError(booking_id)
        except StorageConflictError as exc:
            raise BookingConflictError([], message=_STORAGE_CONFLICT_MESSAGE) from exc

        logger.info(
            "Updated booking id=%s category=%s slot=%s status=%s",
            updated.id,
            updated.category,
            updated.slot,
            updated.status.value,
        )
        return updated

    def delete_booking(self, booking_id: int) -> Booking:
        with self._repository.transaction() as conn:
            deleted = self._repository.delete_booking(booking_id, conn=conn)
        if deleted is None:
            raise BookingNotFoundError(booking_id)
        logger.info("Deleted booking id=%s", booking_id)
        return deleted
