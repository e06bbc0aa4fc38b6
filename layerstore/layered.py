"""Layered storage combining several storages into one.

Layers are ordered from top to bottom: the first layer is consulted first
on reads and wins when several layers hold the same key. A typical stack
puts a fast cache (memory) above persistent storage (files, Redis):

    cache = MemoryStorage("id")
    disk = FileStorage("id", "./data/users")
    users = LayeredStorage([cache, disk])

    await users.create({"id": "1", "name": "Ada"})   # written to both layers
    await users.get("1")                             # served by the cache

Layers converge lazily:

- a read that misses upper layers copies the entry into them (bubble-up)
- ``update`` creates the entry in layers that lack it
- ``get_all`` backfills layers missing some of the merged entries
- create, update and delete events of a layer are replayed on the layer
  directly above it, so out-of-band changes at the bottom travel upward

Writes to several layers are neither atomic nor rolled back on failure.
"""

import asyncio
import functools
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

from layerstore.backends.base import Storage
from layerstore.events import EventType, Listener, Subscription
from layerstore.exceptions import ConfigurationError, DuplicateKeyError, KeyNotFoundError

logger = logging.getLogger(__name__)


class LayeredStorage(Storage):
    """A storage that fans out over ordered layers sharing one key field."""

    def __init__(self, layers: Sequence[Storage]):
        layers = tuple(layers)
        if not layers:
            raise ConfigurationError("At least one storage layer is required")

        key_fields = list(dict.fromkeys(layer.key_field for layer in layers))
        if len(key_fields) > 1:
            found = ", ".join(str(field) for field in key_fields)
            raise ConfigurationError(
                f"All layers must have the same key field. Found: {found}"
            )

        if len({id(layer) for layer in layers}) != len(layers):
            raise ConfigurationError("A storage can appear only once in the layers")

        super().__init__(key_fields[0])
        self._layers = layers
        self._bubbling: list[Subscription] = []
        self._wire_bubbling()

    @property
    def layers(self) -> tuple[Storage, ...]:
        """Layers from top to bottom."""
        return self._layers

    async def exists(self, key: Any) -> bool:
        """Check layers top to bottom, stopping at the first hit."""
        for layer in self._layers:
            if await layer.exists(key):
                return True
        return False

    async def create(self, entry: Any) -> None:
        """Create the entry in every layer.

        Raises:
            DuplicateKeyError: If any layer already holds the key.
        """
        key = self.entry_key(entry)
        if await self.exists(key):
            raise DuplicateKeyError(key, "create")

        await asyncio.gather(*(self._populate(layer, entry) for layer in self._layers))

    async def get(self, key: Any) -> Any | None:
        """Return the entry from the topmost layer holding it.

        Layers above the one that answered receive a copy before the entry
        is returned.
        """
        skipped = []
        for layer in self._layers:
            entry = await layer.get(key)
            if entry is None:
                skipped.append(layer)
                continue

            if skipped:
                logger.debug(f"Bubbling {key!r} up into {len(skipped)} layer(s)")
                await asyncio.gather(*(self._populate(upper, entry) for upper in skipped))
            return entry

        return None

    async def get_all(self) -> list[Any]:
        """Merge all layers, top layer winning on duplicate keys.

        Layers lacking some merged key receive that entry. Layers holding an
        older value for a key are left as they are.
        """
        results = await asyncio.gather(*(layer.get_all() for layer in self._layers))

        merged: dict[Any, Any] = {}
        for entries in reversed(results):
            for entry in entries:
                merged[self.entry_key(entry)] = entry

        backfill = []
        for layer, entries in zip(self._layers, results):
            present = {self.entry_key(entry) for entry in entries}
            missing = [entry for key, entry in merged.items() if key not in present]
            if missing:
                logger.debug(f"Backfilling {len(missing)} entries into {layer!r}")
                backfill.extend(self._populate(layer, entry) for entry in missing)

        await asyncio.gather(*backfill)
        return list(merged.values())

    async def get_keys(self) -> list[Any]:
        """Union of all layers' keys, each listed once."""
        results = await asyncio.gather(*(layer.get_keys() for layer in self._layers))
        return list(dict.fromkeys(key for keys in results for key in keys))

    async def stream_all(self) -> AsyncIterator[Any]:
        """Yield entries for a snapshot of the keys taken when streaming starts.

        Each entry is read when its key is reached; keys deleted meanwhile
        are skipped.
        """
        for key in await self.get_keys():
            entry = await self.get(key)
            if entry is not None:
                yield entry

    async def update(self, entry: Any) -> None:
        """Update the entry where present and create it everywhere else.

        Raises:
            KeyNotFoundError: If no layer holds the key.
        """
        key = self.entry_key(entry)
        if not await self.exists(key):
            raise KeyNotFoundError(key, "update")

        await asyncio.gather(*(self._upsert(layer, key, entry) for layer in self._layers))

    async def delete(self, key: Any) -> None:
        """Delete the key from every layer holding it.

        Raises:
            KeyNotFoundError: If no layer holds the key.
        """
        if not await self.exists(key):
            raise KeyNotFoundError(key, "delete")

        await asyncio.gather(*(self._remove(layer, key) for layer in self._layers))

    def on(self, event_type: EventType | str, listener: Listener) -> Subscription:
        """Subscribe to events of the top layer."""
        return self._layers[0].on(event_type, listener)

    async def close(self) -> None:
        """Stop bubbling and close every layer.

        The stack owns its layers: storages shared with other code must not
        be used after the stack is closed.
        """
        for subscription in self._bubbling:
            subscription.cancel()
        self._bubbling.clear()
        await asyncio.gather(*(layer.close() for layer in self._layers))

    async def _populate(self, layer: Storage, entry: Any) -> None:
        """Create an entry in a layer unless it is already there."""
        try:
            await layer.create(entry)
        except DuplicateKeyError:
            pass  # another writer got there first

    async def _upsert(self, layer: Storage, key: Any, entry: Any) -> None:
        if await layer.exists(key):
            await layer.update(entry)
            return

        try:
            await layer.create(entry)
        except DuplicateKeyError:
            # Created meanwhile, e.g. bubbled up from the layer below
            await layer.update(entry)

    async def _remove(self, layer: Storage, key: Any) -> None:
        if not await layer.exists(key):
            return

        try:
            await layer.delete(key)
        except KeyNotFoundError:
            pass  # already removed by bubbling from the layer below

    def _wire_bubbling(self) -> None:
        """Replay each layer's changes on the layer directly above it."""
        for upper, lower in zip(self._layers, self._layers[1:]):
            self._bubbling.extend(
                [
                    lower.on(EventType.CREATE, functools.partial(self._bubble_create, upper)),
                    lower.on(EventType.UPDATE, functools.partial(self._bubble_update, upper)),
                    lower.on(EventType.DELETE, functools.partial(self._bubble_delete, upper)),
                ]
            )
        logger.debug(f"Wired {len(self._bubbling)} bubbling listeners")

    async def _bubble_create(self, upper: Storage, entry: Any) -> None:
        await self._populate(upper, entry)

    async def _bubble_update(self, upper: Storage, entry: Any) -> None:
        try:
            await upper.update(entry)
        except KeyNotFoundError:
            await self._populate(upper, entry)

    async def _bubble_delete(self, upper: Storage, entry: Any) -> None:
        try:
            await upper.delete(self.entry_key(entry))
        except KeyNotFoundError:
            pass

    def __repr__(self) -> str:
        inner = ", ".join(repr(layer) for layer in self._layers)
        return f"LayeredStorage([{inner}])"


def create_layered_storage(layers: Sequence[Storage]) -> LayeredStorage:
    """Build a :class:`LayeredStorage` over ``layers`` (top first)."""
    return LayeredStorage(layers)
