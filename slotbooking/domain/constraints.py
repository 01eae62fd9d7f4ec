"""Domain-level validation rules for bookings and the expiry sweeper."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from slotbooking.domain.exceptions import BookingValidationError
from slotbooking.domain.models import (
    LATEST_SUPPORTED_INSTANT,
    SLOT_MAX,
    SLOT_MIN,
    BookingInput,
    BookingStatus,
    BookingValues,
    Interval,
    as_utc,
)


_TEXT_LIMITS: dict[str, tuple[int, int]] = {
    "customer_name": (2, 100),
    "customer_number": (1, 50),
    "category": (2, 100),
    "advisor": (2, 100),
}

_ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.TENTATIVE: frozenset(
        {BookingStatus.TENTATIVE, BookingStatus.HELD, BookingStatus.CONFIRMED}
    ),
    BookingStatus.HELD: frozenset({BookingStatus.HELD, BookingStatus.CONFIRMED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CONFIRMED}),
}


@dataclass(frozen=True)
class SweeperConfig:
    hold_timeout_minutes: int
    sweep_interval_minutes: int


def validate_sweeper_config(config: SweeperConfig) -> None:
    if config.hold_timeout_minutes <= 0:
        raise ValueError("hold_timeout_minutes must be > 0")
    if config.sweep_interval_minutes <= 0:
        raise ValueError("sweep_interval_minutes must be > 0")


def validate_slot(slot: Any) -> Optional[str]:
    if isinstance(slot, bool) or not isinstance(slot, int):
        return "slot must be an integer"
    if not SLOT_MIN <= slot <= SLOT_MAX:
        return f"slot must be between {SLOT_MIN} and {SLOT_MAX}"
    return None


def build_interval(start: Any, end: Any) -> Interval:
    """Build an interval, folding far-future ends into open-ended ones."""
    errors: list[dict[str, str]] = []
    if not isinstance(start, datetime):
        errors.append({"field": "start", "message": "start must be a datetime"})
    if end is not None and not isinstance(end, datetime):
        errors.append({"field": "end", "message": "end must be a datetime or empty"})
    if errors:
        raise BookingValidationError(errors)

    if end is not None and as_utc(end) >= LATEST_SUPPORTED_INSTANT:
        end = None
    if as_utc(start) >= LATEST_SUPPORTED_INSTANT:
        raise BookingValidationError(
            [{"field": "start", "message": "start lies beyond the supported range"}]
        )
    try:
        return Interval(start=start, end=end)
    except ValueError:
        raise BookingValidationError(
            [{"field": "end", "message": "end must be after start"}]
        ) from None


def parse_price(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("price must be a number")
    try:
        price = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError("price must be a number") from exc
    if not price.is_finite():
        raise ValueError("price must be a finite number")
    if price < 0:
        raise ValueError("price must not be negative")
    return price.quantize(Decimal("0.01"))


def validate_booking_input(data: BookingInput, *, require_slot: bool) -> BookingValues:
    """Validate every field of ``data`` and collect all failures at once."""
    errors: list[dict[str, str]] = []

    texts: dict[str, str] = {}
    for name, (min_length, max_length) in _TEXT_LIMITS.items():
        raw = getattr(data, name)
        value = raw.strip() if isinstance(raw, str) else ""
        if not value:
            errors.append({"field": name, "message": f"{name} is required"})
        elif not min_length <= len(value) <= max_length:
            errors.append(
                {
                    "field": name,
                    "message": f"{name} must be {min_length}-{max_length} characters long",
                }
            )
        texts[name] = value

    status = BookingStatus.HELD
    if data.status is not None:
        try:
            status = BookingStatus.parse(data.status)
        except ValueError as exc:
            errors.append({"field": "status", "message": str(exc)})

    price: Optional[Decimal] = None
    try:
        price = parse_price(data.price)
    except ValueError as exc:
        errors.append({"field": "price", "message": str(exc)})

    if data.slot is not None or require_slot:
        slot_error = validate_slot(data.slot) if data.slot is not None else "slot is required"
        if slot_error:
            errors.append({"field": "slot", "message": slot_error})

    interval: Optional[Interval] = None
    try:
        interval = build_interval(data.start, data.end)
    except BookingValidationError as exc:
        errors.extend(exc.details)

    if errors:
        raise BookingValidationError(errors)

    assert interval is not None
    return BookingValues(
        customer_name=texts["customer_name"],
        customer_number=texts["customer_number"],
        category=texts["category"],
        interval=interval,
        advisor=texts["advisor"],
        status=status,
        price=price,
        slot=data.slot,
    )


def validate_status_transition(current: BookingStatus, target: BookingStatus) -> None:
    """Explicit updates may only move a booking forward; confirmed is terminal."""
    if target not in _ALLOWED_TRANSITIONS[current]:
        raise BookingValidationError(
            [
                {
                    "field": "status",
                    "message": f"status cannot change from {current.value} to {target.value}",
                }
            ]
        )
