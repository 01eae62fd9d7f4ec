"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from threading import RLock
from typing import Iterable, Iterator, List, Optional, Sequence

from slotbooking.domain.models import (
    LATEST_SUPPORTED_INSTANT,
    Booking,
    BookingFilters,
    BookingStatus,
    BookingValues,
    Interval,
    as_utc,
)
from slotbooking.utils.clock import Clock, SystemClock
from slotbooking.utils.config import Settings, get_settings
from slotbooking.utils.logger import get_logger


logger = get_logger(__name__)

_DB_TIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
_DB_TIME_FORMAT_NO_YEAR = "%m-%d %H:%M:%S.%f"
_OVERLAP_ABORT_MESSAGE = "blocking booking overlap"

_BLOCKING_SQL = "('held', 'confirmed')"

_BOOKING_COLUMNS = """
    id,
    customer_name,
    customer_number,
    category,
    slot,
    start_at,
    end_at,
    status,
    advisor,
    price,
    created_at,
    updated_at
"""


def to_db_time(value: datetime) -> str:
    """Fixed-width UTC text so lexical order equals chronological order."""
    value = as_utc(value)
    # strftime does not zero-pad years below 1000 on every platform.
    return f"{value.year:04d}-" + value.strftime(_DB_TIME_FORMAT_NO_YEAR)


def from_db_time(value: str) -> datetime:
    return datetime.strptime(value, _DB_TIME_FORMAT).replace(tzinfo=timezone.utc)


# Open-ended bookings are stored with this end; it never leaves the repository.
OPEN_END_SENTINEL = to_db_time(LATEST_SUPPORTED_INSTANT)


class StorageConflictError(Exception):
    """Raised when the overlap trigger rejects a write."""


class BookingRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = RLock()

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly by transaction().
        connection = sqlite3.connect(
            self._db_path,
            timeout=self._settings.sqlite_timeout_seconds,
            isolation_level=None,
        )
        connection.row_factory = sqlite3.Row
        return connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Serialized write unit.

        The process-local lock orders threads; ``BEGIN IMMEDIATE`` takes the
        SQLite write lock so other processes wait as well. Reads issued on the
        yielded connection see every write committed before it.
        """
        with self._write_lock:
            connection = self._connect()
            try:
                connection.execute("BEGIN IMMEDIATE;")
                try:
                    yield connection
                except BaseException:
                    connection.execute("ROLLBACK;")
                    raise
                connection.execute("COMMIT;")
            finally:
                connection.close()

    @contextmanager
    def _read(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
            return
        connection = self._connect()
        try:
            yield connection
        finally:
            connection.close()

    @contextmanager
    def _write(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
            return
        with self.transaction() as connection:
            yield connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            connection = self._connect()
            try:
                cursor = connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL;")

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Categories (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL UNIQUE
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        customer_name TEXT NOT NULL,
                        customer_number TEXT NOT NULL,
                        category TEXT NOT NULL,
                        slot INTEGER NOT NULL CHECK (slot BETWEEN 1 AND 6),
                        start_at TEXT NOT NULL,
                        end_at TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'held'
                            CHECK (status IN ('tentative', 'held', 'confirmed')),
                        advisor TEXT NOT NULL,
                        price TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        CHECK (start_at < end_at)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_category_slot_status
                    ON Bookings(category, slot, status);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_status_created
                    ON Bookings(status, created_at);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_period
                    ON Bookings(start_at, end_at);
                    """
                )

                # Last line of defence for non-overlap of blocking bookings.
                cursor.execute(
                    f"""
                    CREATE TRIGGER IF NOT EXISTS trg_bookings_overlap_insert
                    BEFORE INSERT ON Bookings
                    WHEN NEW.status IN {_BLOCKING_SQL}
                    BEGIN
                        SELECT RAISE(ABORT, '{_OVERLAP_ABORT_MESSAGE}')
                        WHERE EXISTS (
                            SELECT 1 FROM Bookings AS b
                            WHERE b.category = NEW.category
                              AND b.slot = NEW.slot
                              AND b.status IN {_BLOCKING_SQL}
                              AND b.start_at < NEW.end_at
                              AND NEW.start_at < b.end_at
                        );
                    END;
                    """
                )
                cursor.execute(
                    f"""
                    CREATE TRIGGER IF NOT EXISTS trg_bookings_overlap_update
                    BEFORE UPDATE OF category, slot, start_at, end_at, status ON Bookings
                    WHEN NEW.status IN {_BLOCKING_SQL}
                    BEGIN
                        SELECT RAISE(ABORT, '{_OVERLAP_ABORT_MESSAGE}')
                        WHERE EXISTS (
                            SELECT 1 FROM Bookings AS b
                            WHERE b.id != NEW.id
                              AND b.category = NEW.category
                              AND b.slot = NEW.slot
                              AND b.status IN {_BLOCKING_SQL}
                              AND b.start_at < NEW.end_at
                              AND NEW.start_at < b.end_at
                        );
                    END;
                    """
                )
            finally:
                connection.close()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_categories(self, names: Iterable[str]) -> int:
        """Insert missing categories and return how many were added."""
        rows = [(name.strip(),) for name in names if name and name.strip()]
        if not rows:
            return 0
        try:
            with self.transaction() as conn:
                before = conn.total_changes
                conn.executemany(
                    "INSERT OR IGNORE INTO Categories (name) VALUES (?);",
                    rows,
                )
                added = conn.total_changes - before
        except sqlite3.Error as exc:
            raise RuntimeError(f"Category seeding failed: {exc}") from exc
        if added:
            logger.info("Seeded %s categories", added)
        return added

    def list_categories(self) -> List[str]:
        with self._read(None) as conn:
            cursor = conn.execute("SELECT name FROM Categories ORDER BY name ASC;")
            return [str(row["name"]) for row in cursor.fetchall()]

    def search_categories(self, term: str, limit: int = 10) -> List[str]:
        with self._read(None) as conn:
            cursor = conn.execute(
                """
                SELECT name FROM Categories
                WHERE name LIKE ? ESCAPE '\\'
                ORDER BY name ASC
                LIMIT ?;
                """,
                (f"%{_escape_like(term)}%", limit),
            )
            return [str(row["name"]) for row in cursor.fetchall()]

    def category_exists(self, name: str) -> bool:
        with self._read(None) as conn:
            cursor = conn.execute("SELECT 1 FROM Categories WHERE name = ?;", (name,))
            return cursor.fetchone() is not None

    def insert_booking(
        self,
        values: BookingValues,
        slot: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Booking:
        """Insert a booking on ``slot`` and return the stored record."""
        now = to_db_time(self._clock.now())
        with self._write(conn) as connection:
            try:
                cursor = connection.execute(
                    """
                    INSERT INTO Bookings (
                        customer_name,
                        customer_number,
                        category,
                        slot,
                        start_at,
                        end_at,
                        status,
                        advisor,
                        price,
                        created_at,
                        updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        values.customer_name,
                        values.customer_number,
                        values.category,
                        slot,
                        to_db_time(values.interval.start),
                        _end_to_db(values.interval),
                        values.status.value,
                        values.advisor,
                        _price_to_db(values.price),
                        now,
                        now,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                _raise_if_overlap(exc)
                raise
            booking = self.get_booking(int(cursor.lastrowid), conn=connection)
        assert booking is not None
        return booking

    def get_booking(
        self,
        booking_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Booking]:
        with self._read(conn) as connection:
            cursor = connection.execute(
                f"SELECT {_BOOKING_COLUMNS} FROM Bookings WHERE id = ?;",
                (booking_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_booking(row)

    def update_booking(
        self,
        booking_id: int,
        values: BookingValues,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Booking]:
        """Overwrite every mutable field; the slot is only moved if ``values.slot`` is set."""
        now = to_db_time(self._clock.now())
        with self._write(conn) as connection:
            try:
                cursor = connection.execute(
                    """
                    UPDATE Bookings
                    SET customer_name = ?,
                        customer_number = ?,
                        category = ?,
                        slot = COALESCE(?, slot),
                        start_at = ?,
                        end_at = ?,
                        status = ?,
                        advisor = ?,
                        price = ?,
                        updated_at = ?
                    WHERE id = ?;
                    """,
                    (
                        values.customer_name,
                        values.customer_number,
                        values.category,
                        values.slot,
                        to_db_time(values.interval.start),
                        _end_to_db(values.interval),
                        values.status.value,
                        values.advisor,
                        _price_to_db(values.price),
                        now,
                        booking_id,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                _raise_if_overlap(exc)
                raise
            if cursor.rowcount == 0:
                return None
            return self.get_booking(booking_id, conn=connection)

    def delete_booking(
        self,
        booking_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Booking]:
        """Delete and return the removed record, or None when absent."""
        with self._write(conn) as connection:
            existing = self.get_booking(booking_id, conn=connection)
            if existing is None:
                return None
            connection.execute("DELETE FROM Bookings WHERE id = ?;", (booking_id,))
            return existing

    def list_slot_bookings(
        self,
        category: Optional[str],
        slot: int,
        statuses: Iterable[BookingStatus],
        exclude_id: Optional[int] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> List[Booking]:
        """Bookings on one slot, for one category or (category=None) for all of them."""
        status_values = [status.value for status in statuses]
        if not status_values:
            return []
        placeholders = ",".join("?" for _ in status_values)
        query = f"""
            SELECT {_BOOKING_COLUMNS}
            FROM Bookings
            WHERE slot = ?
              AND status IN ({placeholders})
        """
        params: list[object] = [slot, *status_values]
        if category is not None:
            query += " AND category = ?"
            params.append(category)
        if exclude_id is not None:
            query += " AND id != ?"
            params.append(exclude_id)
        query += " ORDER BY start_at ASC, id ASC;"

        with self._read(conn) as connection:
            cursor = connection.execute(query, params)
            return [_row_to_booking(row) for row in cursor.fetchall()]

    def list_bookings(self, filters: Optional[BookingFilters] = None) -> List[Booking]:
        filters = filters or BookingFilters()
        query = f"SELECT {_BOOKING_COLUMNS} FROM Bookings WHERE 1 = 1"
        params: list[object] = []

        if filters.category:
            query += " AND category = ?"
            params.append(filters.category)
        if filters.category_search:
            query += " AND category LIKE ? ESCAPE '\\'"
            params.append(f"%{_escape_like(filters.category_search)}%")
        if filters.advisor:
            query += " AND advisor LIKE ? ESCAPE '\\'"
            params.append(f"%{_escape_like(filters.advisor)}%")
        if filters.status is not None:
            query += " AND status = ?"
            params.append(filters.status.value)
        if filters.slot is not None:
            query += " AND slot = ?"
            params.append(filters.slot)
        if filters.start is not None:
            query += " AND end_at > ?"
            params.append(to_db_time(filters.start))
        if filters.end is not None:
            query += " AND start_at < ?"
            params.append(to_db_time(filters.end))

        query += " ORDER BY start_at ASC, slot ASC, id ASC;"
        with self._read(None) as conn:
            cursor = conn.execute(query, params)
            return [_row_to_booking(row) for row in cursor.fetchall()]

    def count_bookings(self) -> int:
        with self._read(None) as conn:
            cursor = conn.execute("SELECT COUNT(*) AS count FROM Bookings;")
            return int(cursor.fetchone()["count"])

    def demote_expired_holds(
        self,
        cutoff: datetime,
        conn: Optional[sqlite3.Connection] = None,
    ) -> List[Booking]:
        """Move ``held`` bookings created before ``cutoff`` to ``tentative``."""
        now = to_db_time(self._clock.now())
        with self._write(conn) as connection:
            cursor = connection.execute(
                """
                SELECT id FROM Bookings
                WHERE status = 'held' AND created_at < ?
                ORDER BY id ASC;
                """,
                (to_db_time(cutoff),),
            )
            expired_ids = [int(row["id"]) for row in cursor.fetchall()]
            if not expired_ids:
                return []
            placeholders = ",".join("?" for _ in expired_ids)
            connection.execute(
                f"""
                UPDATE Bookings
                SET status = 'tentative', updated_at = ?
                WHERE id IN ({placeholders});
                """,
                (now, *expired_ids),
            )
            return self._get_many(expired_ids, connection)

    def _get_many(
        self,
        booking_ids: Sequence[int],
        conn: sqlite3.Connection,
    ) -> List[Booking]:
        placeholders = ",".join("?" for _ in booking_ids)
        cursor = conn.execute(
            f"""
            SELECT {_BOOKING_COLUMNS} FROM Bookings
            WHERE id IN ({placeholders})
            ORDER BY id ASC;
            """,
            tuple(booking_ids),
        )
        return [_row_to_booking(row) for row in cursor.fetchall()]


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _end_to_db(interval: Interval) -> str:
    if interval.end is None:
        return OPEN_END_SENTINEL
    return to_db_time(interval.end)


def _price_to_db(price: Optional[Decimal]) -> Optional[str]:
    return None if price is None else str(price)


def _raise_if_overlap(exc: sqlite3.IntegrityError) -> None:
    if _OVERLAP_ABORT_MESSAGE in str(exc):
        raise StorageConflictError(str(exc)) from exc


def _row_to_booking(row: sqlite3.Row) -> Booking:
    end_text = str(row["end_at"])
    return Booking(
        id=int(row["id"]),
        customer_name=str(row["customer_name"]),
        customer_number=str(row["customer_number"]),
        category=str(row["category"]),
        slot=int(row["slot"]),
        interval=Interval(
            start=from_db_time(str(row["start_at"])),
            end=None if end_text >= OPEN_END_SENTINEL else from_db_time(end_text),
        ),
        status=BookingStatus(str(row["status"])),
        advisor=str(row["advisor"]),
        price=None if row["price"] is None else Decimal(str(row["price"])),
        created_at=from_db_time(str(row["created_at"])),
        updated_at=from_db_time(str(row["updated_at"])),
    )
