"""Redis storage backend.

Each entry is a string value under ``{key_prefix}{key}``. Existence checks
and writes rely on Redis' own atomic primitives:

- create: ``SET NX``
- update: ``SET XX``
- delete: ``GETDEL``

Listing uses ``SCAN MATCH {key_prefix}*`` (glob characters in the prefix
escaped) followed by batched ``MGET``.
"""

import logging
import re
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from typing import Any

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from layerstore.events import EventType
from layerstore.exceptions import BackendError, DuplicateKeyError, KeyNotFoundError
from layerstore.serialization import JsonSerializationAdapter, SerializationAdapter

from .base import Storage

logger = logging.getLogger(__name__)

# Characters with a meaning in SCAN MATCH patterns
_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class RedisStorage(Storage):
    """Storage on a Redis server.

    Pass either ``url`` (a client is created and owned by the storage) or a
    ready ``client`` created with ``decode_responses=True``.
    """

    def __init__(
        self,
        key_field: str,
        url: str | None = None,
        client: aioredis.Redis | None = None,
        serializer: SerializationAdapter | None = None,
        key_prefix: str | None = None,
        key_from_storage: Callable[[str], Any] | None = None,
        scan_count: int = 100,
    ):
        super().__init__(key_field)
        if client is None:
            client = aioredis.Redis.from_url(
                url or "redis://localhost:6379/0", decode_responses=True
            )
            self._owns_client = True
        else:
            self._owns_client = False

        self.client = client
        self.serializer = serializer or JsonSerializationAdapter()
        self.key_prefix = key_prefix if key_prefix is not None else f"{key_field}:"
        self.key_from_storage = key_from_storage
        self.scan_count = scan_count

    def _redis_key(self, key: Any) -> str:
        return f"{self.key_prefix}{key}"

    def _scan_pattern(self) -> str:
        return _GLOB_SPECIAL.sub(r"\\\1", self.key_prefix) + "*"

    def _key_from_redis(self, redis_key: str) -> Any:
        raw = redis_key[len(self.key_prefix) :]
        if self.key_from_storage is None:
            return raw
        return self.key_from_storage(raw)

    def _decode(self, redis_key: str, data: str) -> Any:
        try:
            return self.serializer.deserialize(data)
        except Exception as e:
            raise BackendError(f"Failed to decode {redis_key}: {e}") from e

    @asynccontextmanager
    async def _errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except RedisError as e:
            logger.error(f"Redis {operation} failed: {e}")
            raise BackendError(f"Redis {operation} failed: {e}") from e

    async def ping(self) -> bool:
        """Check the connection."""
        async with self._errors("ping"):
            return bool(await self.client.ping())

    async def exists(self, key: Any) -> bool:
        """Check if key exists."""
        async with self._errors("exists"):
            return await self.client.exists(self._redis_key(key)) == 1

    async def create(self, entry: Any) -> None:
        """Store a new entry unless the key is taken."""
        key = self.entry_key(entry)
        data = self.serializer.serialize(entry)
        async with self._errors("create"):
            stored = await self.client.set(self._redis_key(key), data, nx=True)
        if not stored:
            raise DuplicateKeyError(key, "create")
        await self._emit(EventType.CREATE, entry)

    async def get(self, key: Any) -> Any | None:
        """Read an entry by key."""
        redis_key = self._redis_key(key)
        async with self._errors("get"):
            data = await self.client.get(redis_key)
        if data is None:
            return None
        return self._decode(redis_key, data)

    async def get_many(self, keys: Iterable[Any]) -> list[Any]:
        """Read several entries in one round trip."""
        redis_keys = [self._redis_key(key) for key in keys]
        return await self._mget(redis_keys)

    async def get_all(self) -> list[Any]:
        """Read every entry under the prefix."""
        return await self._mget(await self._scan_keys())

    async def get_keys(self) -> list[Any]:
        """Get all keys under the prefix."""
        return [self._key_from_redis(redis_key) for redis_key in await self._scan_keys()]

    async def update(self, entry: Any) -> None:
        """Replace an existing entry."""
        key = self.entry_key(entry)
        data = self.serializer.serialize(entry)
        async with self._errors("update"):
            stored = await self.client.set(self._redis_key(key), data, xx=True)
        if not stored:
            raise KeyNotFoundError(key, "update")
        await self._emit(EventType.UPDATE, entry)

    async def delete(self, key: Any) -> None:
        """Remove an entry."""
        redis_key = self._redis_key(key)
        async with self._errors("delete"):
            data = await self.client.getdel(redis_key)
        if data is None:
            raise KeyNotFoundError(key, "delete")

        try:
            entry = self._decode(redis_key, data)
        except BackendError:
            logger.warning(f"Deleted undecodable entry {redis_key}")
            entry = {self.key_field: key}
        await self._emit(EventType.DELETE, entry)

    async def close(self) -> None:
        """Close the client if this storage created it."""
        if self._owns_client:
            await self.client.aclose()

    async def _scan_keys(self) -> list[str]:
        async with self._errors("scan"):
            return [
                redis_key
                async for redis_key in self.client.scan_iter(
                    match=self._scan_pattern(), count=self.scan_count
                )
            ]

    async def _mget(self, redis_keys: list[str]) -> list[Any]:
        entries = []
        for start in range(0, len(redis_keys), self.scan_count):
            batch = redis_keys[start : start + self.scan_count]
            async with self._errors("mget"):
                values = await self.client.mget(batch)
            for redis_key, data in zip(batch, values):
                if data is not None:
                    entries.append(self._decode(redis_key, data))
        return entries
