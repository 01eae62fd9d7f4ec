"""Domain models for placement slots, intervals and bookings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union


SLOT_MIN = 1
SLOT_MAX = 6
SLOT_NUMBERS: tuple[int, ...] = tuple(range(SLOT_MIN, SLOT_MAX + 1))

# Bounded ends at or beyond this instant are treated as open-ended.
LATEST_SUPPORTED_INSTANT = datetime(2099, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BookingStatus(str, Enum):
    TENTATIVE = "tentative"
    HELD = "held"
    CONFIRMED = "confirmed"

    @property
    def is_blocking(self) -> bool:
        return self in BLOCKING_STATUSES

    @classmethod
    def parse(cls, value: Union[str, "BookingStatus"]) -> "BookingStatus":
        """Accept canonical values and the legacy German labels."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized in LEGACY_STATUS_LABELS:
            return LEGACY_STATUS_LABELS[normalized]
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"Unknown booking status: {value!r}") from exc


LEGACY_STATUS_LABELS: dict[str, BookingStatus] = {
    "frei": BookingStatus.TENTATIVE,
    "vorreserviert": BookingStatus.TENTATIVE,
    "reserviert": BookingStatus.HELD,
    "gebucht": BookingStatus.CONFIRMED,
}

BLOCKING_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.HELD, BookingStatus.CONFIRMED}
)


def _starts_before(instant: datetime, end: Optional[datetime]) -> bool:
    return end is None or instant < end


@dataclass(frozen=True)
class Interval:
    """
    Half-open time range ``[start, end)``.

    ``end`` of ``None`` is an open-ended subscription and compares greater
    than every bounded instant.

    Invariant: start must be before a bounded end.
    """

    start: datetime
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", as_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", as_utc(self.end))
            if self.start >= self.end:
                raise ValueError(f"Start {self.start} must be before end {self.end}")

    @property
    def open_ended(self) -> bool:
        return self.end is None

    def overlaps(self, other: "Interval") -> bool:
        return intervals_overlap(self, other)

    def __str__(self) -> str:
        end = self.end.isoformat() if self.end is not None else "open-ended"
        return f"[{self.start.isoformat()}, {end})"


def intervals_overlap(first: Interval, second: Interval) -> bool:
    """``A.start < B.end and B.start < A.end`` with a missing end as +infinity."""
    return _starts_before(first.start, second.end) and _starts_before(second.start, first.end)


@dataclass
class BookingInput:
    """Unvalidated booking fields as received from a caller."""

    customer_name: str
    customer_number: str
    category: str
    start: datetime
    end: Optional[datetime] = None
    advisor: str = ""
    price: Any = None
    status: Any = None
    slot: Optional[int] = None


@dataclass(frozen=True)
class BookingValues:
    """Validated booking fields, ready to persist."""

    customer_name: str
    customer_number: str
    category: str
    interval: Interval
    advisor: str
    status: BookingStatus
    price: Optional[Decimal] = None
    slot: Optional[int] = None


@dataclass(frozen=True)
class Booking:
    id: int
    customer_name: str
    customer_number: str
    category: str
    slot: int
    interval: Interval
    status: BookingStatus
    advisor: str
    price: Optional[Decimal]
    created_at: datetime
    updated_at: datetime

    @property
    def start(self) -> datetime:
        return self.interval.start

    @property
    def end(self) -> Optional[datetime]:
        return self.interval.end

    @property
    def open_ended(self) -> bool:
        return self.interval.open_ended

    @property
    def is_blocking(self) -> bool:
        return self.status.is_blocking

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


@dataclass(frozen=True)
class BookingFilters:
    category: Optional[str] = None
    category_search: Optional[str] = None
    advisor: Optional[str] = None
    status: Optional[BookingStatus] = None
    slot: Optional[int] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass(frozen=True)
class SlotAvailability:
    slot: int
    available: bool
    conflicts: list[Booking] = field(default_factory=list)
    category: Optional[str] = None


@dataclass(frozen=True)
class OccupiedSlot:
    slot: int
    blocking_booking: Booking
    conflicts: list[Booking]
    free_again: Optional[date]


@dataclass(frozen=True)
class BulkAvailabilityReport:
    category: str
    interval: Interval
    available: list[int]
    occupied: list[OccupiedSlot]
