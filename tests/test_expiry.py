from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest

from slotbooking.domain.models import BookingInput, BookingStatus, Interval
from slotbooking.repository.booking_repository import BookingRepository
from slotbooking.services.booking_service import BookingLifecycleService
from slotbooking.services.category_service import StaticCategoryProvider
from slotbooking.services.conflict_service import ConflictDetector
from slotbooking.services.expiry_service import ExpirySweeper
from slotbooking.utils.clock import FixedClock
from slotbooking.utils.config import Settings, get_settings


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _build_test_settings(tmp_path: Path, filename: str) -> Settings:
    return replace(
        get_settings(),
        database_path=tmp_path / filename,
        sweeper_enabled=False,
        hold_timeout_minutes=30,
        sweep_interval_minutes=30,
    )


def _booking(**overrides) -> BookingInput:
    defaults = {
        "customer_name": "Salon Südstadt",
        "customer_number": "K-3001",
        "category": "Friseure",
        "start": _utc(2024, 9, 1),
        "end": _utc(2024, 9, 30),
        "advisor": "Lena Koch",
    }
    defaults.update(overrides)
    return BookingInput(**defaults)


def _build(tmp_path: Path):
    settings = _build_test_settings(tmp_path, "expiry.db")
    clock = FixedClock(_utc(2024, 8, 1, 10))
    repository = BookingRepository(settings, clock=clock)
    repository.initialize_database()
    service = BookingLifecycleService(
        repository=repository,
        category_provider=StaticCategoryProvider(["Friseure"]),
    )
    sweeper = ExpirySweeper(repository=repository, settings=settings, clock=clock)
    return clock, repository, service, sweeper


def test_expired_holds_are_demoted_not_deleted(tmp_path: Path) -> None:
    clock, repository, service, sweeper = _build(tmp_path)
    stale = service.create_booking(_booking())
    confirmed = service.create_booking(_booking(customer_number="K-3002", status="confirmed"))

    clock.advance(minutes=31)
    demoted = sweeper.run_once()

    assert [booking.id for booking in demoted] == [stale.id]
    reloaded = service.get_booking(stale.id)
    assert reloaded.status is BookingStatus.TENTATIVE
    assert reloaded.slot == stale.slot
    assert service.get_booking(confirmed.id).status is BookingStatus.CONFIRMED
    assert repository.count_bookings() == 2


def test_demoted_hold_no_longer_blocks_its_slot(tmp_path: Path) -> None:
    clock, repository, service, sweeper = _build(tmp_path)
    stale = service.create_booking(_booking())
    interval = Interval(_utc(2024, 9, 10), _utc(2024, 9, 12))
    detector = ConflictDetector(repository)
    assert detector.find_conflicts("Friseure", stale.slot, interval)

    clock.advance(minutes=45)
    sweeper.run_once()

    assert detector.find_conflicts("Friseure", stale.slot, interval) == []
    assert service.create_booking(_booking(customer_number="K-3003")).slot == stale.slot


def test_recent_holds_are_kept(tmp_path: Path) -> None:
    clock, _, service, sweeper = _build(tmp_path)
    old = service.create_booking(_booking())
    clock.advance(minutes=20)
    recent = service.create_booking(_booking(customer_number="K-3004"))

    clock.advance(minutes=15)
    demoted = sweeper.run_once()

    assert [booking.id for booking in demoted] == [old.id]
    assert service.get_booking(recent.id).status is BookingStatus.HELD


def test_sweep_is_idempotent(tmp_path: Path) -> None:
    clock, _, service, sweeper = _build(tmp_path)
    service.create_booking(_booking())
    clock.advance(hours=2)

    assert len(sweeper.run_once()) == 1
    assert sweeper.run_once() == []


def test_tick_logs_storage_failures(tmp_path: Path, monkeypatch, caplog) -> None:
    _, repository, _, sweeper = _build(tmp_path)

    def _fail(cutoff):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(repository, "demote_expired_holds", _fail)
    with caplog.at_level(logging.ERROR):
        assert sweeper.tick() == 0

    assert "Expiry sweep failed" in caplog.text


def test_invalid_sweeper_settings_are_rejected(tmp_path: Path) -> None:
    settings = replace(_build_test_settings(tmp_path, "invalid.db"), hold_timeout_minutes=0)

    with pytest.raises(ValueError):
        ExpirySweeper(repository=BookingRepository(settings), settings=settings)


def test_scheduler_starts_and_stops(tmp_path: Path) -> None:
    _, _, _, sweeper = _build(tmp_path)

    sweeper.start()
    try:
        assert sweeper.running
        sweeper.start()
        assert sweeper.running
    finally:
        sweeper.shutdown()

    assert not sweeper.running


def test_hold_exactly_at_the_timeout_is_kept(tmp_path: Path) -> None:
    clock, _, service, sweeper = _build(tmp_path)
    clock.set(_utc(2024, 8, 1, 12))
    booking = service.create_booking(_booking())

    clock.set(_utc(2024, 8, 1, 12, 30))
    assert sweeper.run_once() == []

    clock.set(datetime(2024, 8, 1, 12, 30, 1))
    assert [item.id for item in sweeper.run_once()] == [booking.id]
