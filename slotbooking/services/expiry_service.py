"""Periodic demotion of stale holds."""

from __future__ import annotations

from datetime import timedelta
from threading import RLock
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from slotbooking.domain.constraints import SweeperConfig, validate_sweeper_config
from slotbooking.domain.models import Booking
from slotbooking.repository.booking_repository import BookingRepository
from slotbooking.utils.clock import Clock, SystemClock
from slotbooking.utils.config import Settings, get_settings
from slotbooking.utils.logger import get_logger


logger = get_logger(__name__)

SWEEP_JOB_ID = "demote_expired_holds"


class ExpirySweeper:
    """
    Turns ``held`` bookings older than the hold timeout into ``tentative``.

    Demoted bookings are kept; they simply stop blocking their slot.
    """

    def __init__(
        self,
        repository: Optional[BookingRepository] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or BookingRepository(self._settings)
        self._clock = clock or SystemClock()
        self._config = SweeperConfig(
            hold_timeout_minutes=self._settings.hold_timeout_minutes,
            sweep_interval_minutes=self._settings.sweep_interval_minutes,
        )
        validate_sweeper_config(self._config)
        self._scheduler: Optional[BackgroundScheduler] = None
        self._lock = RLock()

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def run_once(self) -> list[Booking]:
        """Demote expired holds now; raises on storage failure."""
        cutoff = self._clock.now() - timedelta(minutes=self._config.hold_timeout_minutes)
        demoted = self._repository.demote_expired_holds(cutoff)
        if demoted:
            logger.info(
                "Demoted %s expired holds: %s",
                len(demoted),
                ", ".join(str(booking.id) for booking in demoted),
            )
        return demoted

    def tick(self) -> int:
        """Scheduler entry point; failures are logged and retried next tick."""
        try:
            return len(self.run_once())
        except Exception:
            logger.exception("Expiry sweep failed; retrying on next tick")
            return 0

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            scheduler = BackgroundScheduler(timezone="UTC")
            scheduler.add_job(
                self.tick,
                trigger=IntervalTrigger(minutes=self._config.sweep_interval_minutes),
                id=SWEEP_JOB_ID,
                name="Demote expired holds",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            scheduler.start()
            self._scheduler = scheduler
            logger.info(
                "Expiry sweeper started (interval=%s min, timeout=%s min)",
                self._config.sweep_interval_minutes,
                self._config.hold_timeout_minutes,
            )

    def shutdown(self) -> None:
        with self._lock:
            if self._scheduler is None:
                return
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Expiry sweeper stopped")
