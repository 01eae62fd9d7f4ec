"""Create/update/delete behaviour of the booking lifecycle service."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest

from slotbooking.domain.constraints import validate_booking_input
from slotbooking.domain.exceptions import (
    BookingConflictError,
    BookingNotFoundError,
    BookingValidationError,
    CapacityExceededError,
    InvalidCategoryError,
)
from slotbooking.domain.models import BookingFilters, BookingInput, BookingStatus
from slotbooking.repository.booking_repository import BookingRepository, StorageConflictError
from slotbooking.services.booking_service import BookingLifecycleService
from slotbooking.services.category_service import StaticCategoryProvider
from slotbooking.services.expiry_service import ExpirySweeper
from slotbooking.utils.clock import FixedClock
from slotbooking.utils.config import Settings, get_settings


CATEGORIES = ["Gastronomie", "Friseure", "Handwerk"]


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _build_test_settings(tmp_path: Path, filename: str) -> Settings:
    return replace(
        get_settings(),
        database_path=tmp_path / filename,
        sweeper_enabled=False,
    )


def _build_service(tmp_path: Path, filename: str = "lifecycle.db") -> BookingLifecycleService:
    settings = _build_test_settings(tmp_path, filename)
    repository = BookingRepository(settings, clock=FixedClock(_utc(2024, 6, 1, 9)))
    repository.initialize_database()
    return BookingLifecycleService(
        repository=repository,
        category_provider=StaticCategoryProvider(CATEGORIES),
    )


def _booking(**overrides) -> BookingInput:
    defaults = {
        "customer_name": "Café Ehrenfeld",
        "customer_number": "K-1001",
        "category": "Gastronomie",
        "start": _utc(2024, 7, 1),
        "end": _utc(2024, 7, 10),
        "advisor": "Anna Berger",
    }
    defaults.update(overrides)
    return BookingInput(**defaults)


def test_create_assigns_lowest_free_slot(tmp_path: Path) -> None:
    service = _build_service(tmp_path)

    first = service.create_booking(_booking())
    second = service.create_booking(_booking(start=_utc(2024, 7, 5), end=_utc(2024, 7, 15)))
    third = service.create_booking(_booking(start=_utc(2024, 7, 10), end=_utc(2024, 7, 20)))

    assert first.slot == 1
    assert second.slot == 2
    # Touching the end of the first booking is not an overlap.
    assert third.slot == 1
    assert first.status is BookingStatus.HELD


def test_categories_are_independent(tmp_path: Path) -> None:
    service = _build_service(tmp_path)

    service.create_booking(_booking())
    other = service.create_booking(_booking(category="Friseure"))

    assert other.slot == 1


def test_create_rejects_unknown_category(tmp_path: Path) -> None:
    service = _build_service(tmp_path)

    with pytest.raises(InvalidCategoryError):
        service.create_booking(_booking(category="Raumfahrt"))

    assert service.list_bookings() == []


def test_create_rejects_caller_slot_when_auto_allocating(tmp_path: Path) -> None:
    service = _build_service(tmp_path)

    with pytest.raises(BookingValidationError):
        service.create_booking(_booking(slot=3))


def test_manual_slot_create_checks_conflicts(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    existing = service.create_booking(_booking(slot=4), auto_allocate=False)

    with pytest.raises(BookingConflictError) as exc_info:
        service.create_booking(
            _booking(slot=4, start=_utc(2024, 7, 9), end=_utc(2024, 7, 12)),
            auto_allocate=False,
        )

    assert existing.slot == 4
    assert [item.id for item in exc_info.value.conflicts] == [existing.id]


def test_manual_tentative_booking_may_share_a_slot(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    service.create_booking(_booking(slot=2, status="confirmed"), auto_allocate=False)

    tentative = service.create_booking(
        _booking(slot=2, status="tentative"),
        auto_allocate=False,
    )

    assert tentative.slot == 2
    assert not tentative.is_blocking


def test_seventh_overlapping_booking_is_rejected(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    slots = [
        service.create_booking(_booking(customer_number=f"K-{index}", end=None)).slot
        for index in range(6)
    ]

    assert slots == [1, 2, 3, 4, 5, 6]
    with pytest.raises(CapacityExceededError):
        service.create_booking(_booking(customer_number="K-7"))
    assert len(service.list_bookings()) == 6


def test_update_applies_changes(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    booking = service.create_booking(_booking())

    updated = service.update_booking(
        booking.id,
        {"status": "confirmed", "price": "1500", "end": _utc(2024, 7, 20)},
    )

    assert updated.status is BookingStatus.CONFIRMED
    assert str(updated.price) == "1500.00"
    assert updated.end == _utc(2024, 7, 20)
    assert updated.slot == booking.slot


def test_update_with_null_end_makes_booking_open_ended(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    booking = service.create_booking(_booking())

    updated = service.update_booking(booking.id, {"end": None})

    assert updated.open_ended
    assert service.get_booking(booking.id).end is None


def test_update_conflict_leaves_record_unchanged(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    blocker = service.create_booking(_booking())
    later = service.create_booking(_booking(start=_utc(2024, 8, 1), end=_utc(2024, 8, 10)))
    assert later.slot == blocker.slot

    with pytest.raises(BookingConflictError) as exc_info:
        service.update_booking(later.id, {"start": _utc(2024, 7, 5)})

    assert [item.id for item in exc_info.value.conflicts] == [blocker.id]
    assert service.get_booking(later.id) == later


def test_update_rechecks_tentative_bookings_against_blocking_ones(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    blocker = service.create_booking(_booking(slot=2, status="confirmed"), auto_allocate=False)
    tentative = service.create_booking(
        _booking(slot=2, status="tentative", start=_utc(2024, 8, 1), end=_utc(2024, 8, 5)),
        auto_allocate=False,
    )

    with pytest.raises(BookingConflictError) as exc_info:
        service.update_booking(tentative.id, {"start": _utc(2024, 7, 8)})

    assert [item.id for item in exc_info.value.conflicts] == [blocker.id]


def test_update_ignores_its_own_interval(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    booking = service.create_booking(_booking())

    updated = service.update_booking(booking.id, {"start": _utc(2024, 7, 2)})

    assert updated.start == _utc(2024, 7, 2)


def test_update_rejects_slot_change(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    booking = service.create_booking(_booking())

    with pytest.raises(BookingValidationError):
        service.update_booking(booking.id, {"slot": 5})


def test_update_rejects_unknown_fields(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    booking = service.create_booking(_booking())

    with pytest.raises(BookingValidationError) as exc_info:
        service.update_booking(booking.id, {"colour": "red"})

    assert exc_info.value.details[0]["field"] == "colour"


def test_update_rejects_backward_status_transition(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    booking = service.create_booking(_booking(status="confirmed"))

    with pytest.raises(BookingValidationError):
        service.update_booking(booking.id, {"status": "held"})

    assert service.get_booking(booking.id).status is BookingStatus.CONFIRMED


def test_update_to_unknown_category_is_rejected(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    booking = service.create_booking(_booking())

    with pytest.raises(InvalidCategoryError):
        service.update_booking(booking.id, {"category": "Raumfahrt"})


def test_missing_booking_raises_not_found(tmp_path: Path) -> None:
    service = _build_service(tmp_path)

    with pytest.raises(BookingNotFoundError):
        service.get_booking(999)
    with pytest.raises(BookingNotFoundError):
        service.update_booking(999, {"advisor": "Jan Weber"})
    with pytest.raises(BookingNotFoundError):
        service.delete_booking(999)


def test_delete_frees_the_slot(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    booking = service.create_booking(_booking())

    deleted = service.delete_booking(booking.id)
    again = service.create_booking(_booking())

    assert deleted.id == booking.id
    assert again.slot == 1
    with pytest.raises(BookingNotFoundError):
        service.delete_booking(booking.id)


def test_storage_trigger_rejects_overlapping_blocking_rows(tmp_path: Path) -> None:
    settings = _build_test_settings(tmp_path, "trigger.db")
    repository = BookingRepository(settings)
    repository.initialize_database()
    values = validate_booking_input(_booking(), require_slot=False)

    repository.insert_booking(values, slot=1)
    with pytest.raises(StorageConflictError):
        repository.insert_booking(values, slot=1)

    tentative = replace(values, status=BookingStatus.TENTATIVE)
    assert repository.insert_booking(tentative, slot=1).slot == 1
    assert repository.count_bookings() == 2


def test_concurrent_creates_never_share_a_slot(tmp_path: Path) -> None:
    service = _build_service(tmp_path, "concurrent.db")
    workers = 8
    barrier = threading.Barrier(workers)
    created = []
    rejected = []
    guard = threading.Lock()

    def worker(index: int) -> None:
        barrier.wait()
        try:
            booking = service.create_booking(_booking(customer_number=f"K-{index}"))
        except CapacityExceededError as exc:
            with guard:
                rejected.append(exc)
            return
        with guard:
            created.append(booking)

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(booking.slot for booking in created) == [1, 2, 3, 4, 5, 6]
    assert len(rejected) == 2


def test_separate_repositories_serialize_through_sqlite(tmp_path: Path) -> None:
    settings = _build_test_settings(tmp_path, "shared.db")
    first_repository = BookingRepository(settings)
    first_repository.initialize_database()
    services = [
        BookingLifecycleService(
            repository=repository,
            category_provider=StaticCategoryProvider(CATEGORIES),
        )
        for repository in (first_repository, BookingRepository(settings))
    ]
    barrier = threading.Barrier(6)
    slots = []
    guard = threading.Lock()

    def worker(index: int) -> None:
        barrier.wait()
        booking = services[index % 2].create_booking(_booking(customer_number=f"K-{index}"))
        with guard:
            slots.append(booking.slot)

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(slots) == [1, 2, 3, 4, 5, 6]


def test_update_cannot_clear_status_or_required_fields(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    booking = service.create_booking(_booking(status="tentative"))

    with pytest.raises(BookingValidationError) as exc_info:
        service.update_booking(booking.id, {"status": None, "advisor": None})

    assert [item["field"] for item in exc_info.value.details] == ["advisor", "status"]
    assert service.get_booking(booking.id).status is BookingStatus.TENTATIVE


def test_update_can_clear_price(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    booking = service.create_booking(_booking(price="990"))

    updated = service.update_booking(booking.id, {"price": None})

    assert updated.price is None


def test_early_years_round_trip_through_storage(tmp_path: Path) -> None:
    service = _build_service(tmp_path)

    ancient = service.create_booking(_booking(start=_utc(999, 1, 1), end=_utc(999, 2, 1)))
    modern = service.create_booking(_booking())

    assert service.get_booking(ancient.id).start == _utc(999, 1, 1)
    assert ancient.slot == 1 and modern.slot == 1
    assert [booking.id for booking in service.list_bookings()] == [ancient.id, modern.id]
    overlapping = service.create_booking(_booking(start=_utc(999, 1, 15), end=_utc(999, 3, 1)))
    assert overlapping.slot == 2


def test_list_filters_category_by_substring(tmp_path: Path) -> None:
    service = _build_service(tmp_path)
    restaurant = service.create_booking(_booking())
    service.create_booking(_booking(category="Friseure"))

    matches = service.list_bookings(BookingFilters(category_search="gastro"))

    assert [booking.id for booking in matches] == [restaurant.id]


def test_sweep_and_update_of_the_same_hold_serialize(tmp_path: Path) -> None:
    settings = replace(
        _build_test_settings(tmp_path, "sweep_race.db"),
        hold_timeout_minutes=30,
        sweep_interval_minutes=30,
    )
    clock = FixedClock(_utc(2024, 6, 1, 9))
    repository = BookingRepository(settings, clock=clock)
    repository.initialize_database()
    service = BookingLifecycleService(
        repository=repository,
        category_provider=StaticCategoryProvider(CATEGORIES),
    )
    sweeper = ExpirySweeper(repository=repository, settings=settings, clock=clock)
    holds = [
        service.create_booking(_booking(customer_number=f"K-{index}")) for index in range(4)
    ]
    clock.advance(minutes=45)

    barrier = threading.Barrier(len(holds) + 1)
    errors = []

    def confirm(booking_id: int) -> None:
        barrier.wait()
        try:
            service.update_booking(booking_id, {"status": "confirmed"})
        except Exception as exc:
            errors.append(exc)

    def sweep() -> None:
        barrier.wait()
        sweeper.run_once()

    threads = [threading.Thread(target=confirm, args=(booking.id,)) for booking in holds]
    threads.append(threading.Thread(target=sweep))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    stored = [service.get_booking(booking.id) for booking in holds]
    # Whichever writer went first, a confirmation always lands on top.
    assert [booking.status for booking in stored] == [BookingStatus.CONFIRMED] * len(holds)
    assert sorted(booking.slot for booking in stored) == [1, 2, 3, 4]
