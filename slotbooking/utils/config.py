"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Autohaus",
    "Bäckerei",
    "Friseur",
    "Gastronomie",
    "Handwerk",
    "Immobilien",
    "Steuerberatung",
)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_categories(name: str) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return DEFAULT_CATEGORIES
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_path: Path
    log_level: str
    sqlite_timeout_seconds: int
    hold_timeout_minutes: int
    sweep_interval_minutes: int
    sweeper_enabled: bool
    default_categories: tuple[str, ...]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests derive variants with replace()."""
    load_dotenv()
    return Settings(
        app_name=os.getenv("APP_NAME", "Placement Slot Booking"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        database_path=Path(os.getenv("DATABASE_PATH", "data/slot_booking.db")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        sqlite_timeout_seconds=_env_int("SQLITE_TIMEOUT_SECONDS", 30),
        hold_timeout_minutes=_env_int("RESERVATION_TIMEOUT_MINUTES", 30),
        sweep_interval_minutes=_env_int("CLEANUP_INTERVAL_MINUTES", 30),
        sweeper_enabled=_env_bool("SWEEPER_ENABLED", True),
        default_categories=_env_categories("DEFAULT_CATEGORIES"),
    )
