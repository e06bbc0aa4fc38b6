"""Exception classes for storage operations."""

from typing import Any


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class DuplicateKeyError(StorageError):
    """Raised when creating an entry whose key is already stored."""

    def __init__(self, key: Any, operation: str = "create"):
        """Initialize with the offending key and operation name."""
        self.key = key
        self.operation = operation
        super().__init__(f'{operation} failed: key "{key}" already exists')


class KeyNotFoundError(StorageError, KeyError):
    """Raised when updating or deleting a key that is not stored."""

    def __init__(self, key: Any, operation: str = "update"):
        """Initialize with the offending key and operation name."""
        self.key = key
        self.operation = operation
        super().__init__(f'{operation} failed: key "{key}" not found')

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0])


class ConfigurationError(StorageError, ValueError):
    """Raised when storages are wired or configured incorrectly."""

    pass


class BackendError(StorageError):
    """Raised when a backend fails to read or write its medium."""

    pass
