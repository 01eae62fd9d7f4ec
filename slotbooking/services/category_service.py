"""Category lookup capability used to validate bookings."""

from __future__ import annotations

from typing import Iterable, Optional, Protocol

from slotbooking.repository.booking_repository import BookingRepository


class CategoryProvider(Protocol):
    def exists(self, name: str) -> bool: ...

    def all(self) -> list[str]: ...

    def search(self, term: str, limit: int = 10) -> list[str]: ...


class StaticCategoryProvider:
    """Fixed in-memory category list."""

    def __init__(self, names: Iterable[str]) -> None:
        self._names = sorted({name.strip() for name in names if name and name.strip()})

    def exists(self, name: str) -> bool:
        return name in self._names

    def all(self) -> list[str]:
        return list(self._names)

    def search(self, term: str, limit: int = 10) -> list[str]:
        needle = term.strip().lower()
        return [name for name in self._names if needle in name.lower()][:limit]


class RepositoryCategoryProvider:
    """Category list backed by the Categories table."""

    def __init__(self, repository: Optional[BookingRepository] = None) -> None:
        self._repository = repository or BookingRepository()

    def exists(self, name: str) -> bool:
        return self._repository.category_exists(name)

    def all(self) -> list[str]:
        return self._repository.list_categories()

    def search(self, term: str, limit: int = 10) -> list[str]:
        return self._repository.search_categories(term.strip(), limit=limit)
