"""Pluggable storage backends.

Provides unified interface for different storage mechanisms:

- **MemoryStorage**: dict-backed, optional expiry
- **FileStorage**: one file per entry with atomic writes
- **RedisStorage**: string values on a Redis server

All backends share the asynchronous :class:`Storage` interface and emit
change events for the writes they perform.
"""

from .base import Storage
from .filesystem import FileAdapter, FileStorage, JsonFileAdapter, YamlFileAdapter
from .memory import MemoryStorage
from .redis import RedisStorage

__all__ = [
    "Storage",
    "FileAdapter",
    "FileStorage",
    "JsonFileAdapter",
    "YamlFileAdapter",
    "MemoryStorage",
    "RedisStorage",
]
