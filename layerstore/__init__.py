"""Layerstore: asynchronous CRUD storages and layered composition.

Backends share one asynchronous interface and can be stacked with
:class:`LayeredStorage`, which reads through the layers top to bottom,
writes to all of them and copies entries upward as they are found.
"""

__version__ = "0.1.0"

from layerstore.backends import (
    FileAdapter,
    FileStorage,
    JsonFileAdapter,
    MemoryStorage,
    RedisStorage,
    Storage,
    YamlFileAdapter,
)
from layerstore.events import EventEmitter, EventType, Subscription
from layerstore.exceptions import (
    BackendError,
    ConfigurationError,
    DuplicateKeyError,
    KeyNotFoundError,
    StorageError,
)
from layerstore.layered import LayeredStorage, create_layered_storage

__all__ = [
    "__version__",
    "Storage",
    "MemoryStorage",
    "FileStorage",
    "FileAdapter",
    "JsonFileAdapter",
    "YamlFileAdapter",
    "RedisStorage",
    "LayeredStorage",
    "create_layered_storage",
    "EventEmitter",
    "EventType",
    "Subscription",
    "StorageError",
    "DuplicateKeyError",
    "KeyNotFoundError",
    "ConfigurationError",
    "BackendError",
]
