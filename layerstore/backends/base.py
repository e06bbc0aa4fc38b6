"""Base storage interface."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from typing import Any

from layerstore.events import EventEmitter, EventType, Listener, Subscription
from layerstore.keys import entry_key


class Storage(ABC):
    """Abstract base class for storages.

    Entries are addressed by the value of their ``key_field``. Every data
    operation is a coroutine; writes notify listeners registered with
    :meth:`on` once they have succeeded.
    """

    def __init__(self, key_field: str):
        self._key_field = key_field
        self._events = EventEmitter()

    @property
    def key_field(self) -> str:
        """Name of the field used as the key."""
        return self._key_field

    def entry_key(self, entry: Any) -> Any:
        """Get the key of an entry."""
        return entry_key(entry, self._key_field)

    @abstractmethod
    async def exists(self, key: Any) -> bool:
        """Check if key exists."""
        pass

    @abstractmethod
    async def create(self, entry: Any) -> None:
        """Store a new entry, failing with DuplicateKeyError if present."""
        pass

    @abstractmethod
    async def get(self, key: Any) -> Any | None:
        """Read an entry by key."""
        pass

    async def get_many(self, keys: Iterable[Any]) -> list[Any]:
        """Read several entries, dropping keys that are not stored."""
        entries = await asyncio.gather(*(self.get(key) for key in keys))
        return [entry for entry in entries if entry is not None]

    @abstractmethod
    async def get_all(self) -> list[Any]:
        """Read every entry."""
        pass

    @abstractmethod
    async def get_keys(self) -> list[Any]:
        """Get all keys."""
        pass

    async def stream_all(self) -> AsyncIterator[Any]:
        """Yield every entry, reading one at a time."""
        for key in await self.get_keys():
            entry = await self.get(key)
            if entry is not None:
                yield entry

    @abstractmethod
    async def update(self, entry: Any) -> None:
        """Replace an entry, failing with KeyNotFoundError if absent."""
        pass

    @abstractmethod
    async def delete(self, key: Any) -> None:
        """Remove an entry, failing with KeyNotFoundError if absent."""
        pass

    def on(self, event_type: EventType | str, listener: Listener) -> Subscription:
        """Subscribe to create, update or delete notifications."""
        return self._events.subscribe(event_type, listener)

    async def close(self) -> None:
        """Release backend resources."""
        pass

    async def _emit(self, event_type: EventType, entry: Any) -> None:
        await self._events.emit(event_type, entry)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key_field={self._key_field!r})"
