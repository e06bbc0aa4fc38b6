"""In-memory storage backend."""

import time
from collections.abc import Callable
from typing import Any

from layerstore.events import EventType
from layerstore.exceptions import DuplicateKeyError, KeyNotFoundError

from .base import Storage


class MemoryStorage(Storage):
    """Dict-backed storage with optional expiry.

    Entries are kept by reference. When ``ttl`` (seconds) is set, an entry
    expires ``ttl`` after its last create or update and is then treated as
    absent by every operation.
    """

    def __init__(
        self,
        key_field: str,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(key_field)
        if ttl is not None and ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.ttl = ttl
        self._clock = clock
        self._data: dict[Any, Any] = {}
        self._expirations: dict[Any, float] = {}

    async def exists(self, key: Any) -> bool:
        """Check if key exists."""
        self._purge_expired()
        return key in self._data

    async def create(self, entry: Any) -> None:
        """Store a new entry."""
        self._purge_expired()
        key = self.entry_key(entry)
        if key in self._data:
            raise DuplicateKeyError(key, "create")

        self._store(key, entry)
        await self._emit(EventType.CREATE, entry)

    async def get(self, key: Any) -> Any | None:
        """Read an entry by key."""
        self._purge_expired()
        return self._data.get(key)

    async def get_all(self) -> list[Any]:
        """Read every entry."""
        self._purge_expired()
        return list(self._data.values())

    async def get_keys(self) -> list[Any]:
        """Get all keys."""
        self._purge_expired()
        return list(self._data.keys())

    async def stream_all(self):
        """Yield entries present when streaming started."""
        self._purge_expired()
        for key in list(self._data.keys()):
            entry = await self.get(key)
            if entry is not None:
                yield entry

    async def update(self, entry: Any) -> None:
        """Replace an existing entry and restart its expiry."""
        self._purge_expired()
        key = self.entry_key(entry)
        if key not in self._data:
            raise KeyNotFoundError(key, "update")

        self._store(key, entry)
        await self._emit(EventType.UPDATE, entry)

    async def delete(self, key: Any) -> None:
        """Remove an entry."""
        self._purge_expired()
        if key not in self._data:
            raise KeyNotFoundError(key, "delete")

        entry = self._data.pop(key)
        self._expirations.pop(key, None)
        await self._emit(EventType.DELETE, entry)

    async def clear(self) -> None:
        """Remove all entries without emitting events."""
        self._data.clear()
        self._expirations.clear()

    def get_size(self) -> int:
        """Get the number of live entries."""
        self._purge_expired()
        return len(self._data)

    def _store(self, key: Any, entry: Any) -> None:
        self._data[key] = entry
        if self.ttl is not None:
            self._expirations[key] = self._clock() + self.ttl

    def _purge_expired(self) -> None:
        """Drop entries whose expiry has passed."""
        if not self._expirations:
            return

        now = self._clock()
        expired = [key for key, expires in self._expirations.items() if expires <= now]
        for key in expired:
            self._data.pop(key, None)
            del self._expirations[key]
