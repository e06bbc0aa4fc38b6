"""File system storage backend."""

import asyncio
import functools
import logging
import os
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from layerstore.events import EventType
from layerstore.exceptions import (
    BackendError,
    ConfigurationError,
    DuplicateKeyError,
    KeyNotFoundError,
)
from layerstore.serialization import (
    JsonSerializationAdapter,
    SerializationAdapter,
    YamlSerializationAdapter,
)

from .base import Storage

logger = logging.getLogger(__name__)

# Long enough to survive zero padding, unaffected by case changes
_PLACEHOLDER = "\x00" * 16


class FileAdapter:
    """Maps keys to file names and entries to file contents.

    Subclasses with a ``file_name`` that cannot be inverted by stripping a
    fixed prefix and suffix must override :meth:`key_from_file_name`.
    """

    encoding = "utf-8"
    extension = ""

    def __init__(
        self,
        serializer: SerializationAdapter | None = None,
        encoding: str | None = None,
    ):
        self.serializer = serializer or JsonSerializationAdapter()
        if encoding is not None:
            self.encoding = encoding

    def file_name(self, key: Any) -> str:
        """File name for an entry key."""
        return f"{key}{self.extension}"

    def key_from_file_name(self, name: str) -> str | None:
        """Raw key encoded in a file name, or None if the name is foreign."""
        prefix, suffix = self._name_pattern()
        if len(name) <= len(prefix) + len(suffix):
            return None
        if not (name.startswith(prefix) and name.endswith(suffix)):
            return None
        return name[len(prefix) : len(name) - len(suffix)]

    def serialize(self, entry: Any) -> str:
        return self.serializer.serialize(entry)

    def deserialize(self, text: str) -> Any:
        return self.serializer.deserialize(text)

    def _name_pattern(self) -> tuple[str, str]:
        try:
            template = self.file_name(_PLACEHOLDER)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"{type(self).__name__}.file_name cannot be inverted; "
                f"override key_from_file_name ({e})"
            ) from e

        prefix, found, suffix = template.partition(_PLACEHOLDER)
        if not found:
            raise ConfigurationError(
                f"{type(self).__name__}.file_name does not embed the key; "
                "override key_from_file_name"
            )
        return prefix, suffix


class JsonFileAdapter(FileAdapter):
    """Stores each entry as ``{key}.json``."""

    extension = ".json"

    def __init__(self, entry_type: Any = Any, indent: int | None = 2):
        super().__init__(JsonSerializationAdapter(entry_type, indent=indent))


class YamlFileAdapter(FileAdapter):
    """Stores each entry as ``{key}.yaml``."""

    extension = ".yaml"

    def __init__(self, entry_type: Any = None):
        super().__init__(YamlSerializationAdapter(entry_type))


class FileStorage(Storage):
    """One file per entry in a single directory.

    Writes go through a temporary file that replaces the target, so readers
    never observe partial content. Keys listed by :meth:`get_keys` are
    recovered from file names and passed through ``key_from_storage``
    (for example ``int``) when given.
    """

    def __init__(
        self,
        key_field: str,
        path: Path | str,
        adapter: FileAdapter | None = None,
        key_from_storage: Callable[[str], Any] | None = None,
    ):
        super().__init__(key_field)
        self.path = Path(path)
        self.adapter = adapter or JsonFileAdapter()
        self.key_from_storage = key_from_storage
        self._lock = threading.RLock()
        self.initialize()

    def initialize(self) -> None:
        """Create the storage directory."""
        self.path.mkdir(parents=True, exist_ok=True)

    async def exists(self, key: Any) -> bool:
        """Check if a file exists for the key."""
        return await self._run(self._entry_path(key).is_file)

    async def create(self, entry: Any) -> None:
        """Write a new entry file."""
        key = self.entry_key(entry)
        await self._run(self._create_file, key, entry)
        await self._emit(EventType.CREATE, entry)

    async def get(self, key: Any) -> Any | None:
        """Read an entry from its file."""
        return await self._run(self._read_file, self._entry_path(key))

    async def get_all(self) -> list[Any]:
        """Read every entry file."""
        return await self._run(self._read_all)

    async def get_keys(self) -> list[Any]:
        """Get keys recovered from file names."""
        return [key for key, _ in await self._run(self._scan)]

    async def update(self, entry: Any) -> None:
        """Overwrite an existing entry file."""
        key = self.entry_key(entry)
        await self._run(self._update_file, key, entry)
        await self._emit(EventType.UPDATE, entry)

    async def delete(self, key: Any) -> None:
        """Remove an entry file."""
        entry = await self._run(self._delete_file, key)
        await self._emit(EventType.DELETE, entry)

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run blocking file I/O in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    def _entry_path(self, key: Any) -> Path:
        name = self.adapter.file_name(key)
        if not name or Path(name).name != name or name in (".", ".."):
            raise ValueError(f"Key {key!r} maps to invalid file name {name!r}")
        return self.path / name

    def _coerce_key(self, raw: str) -> Any:
        if self.key_from_storage is None:
            return raw
        return self.key_from_storage(raw)

    def _scan(self) -> list[tuple[Any, Path]]:
        """List (key, path) pairs for entry files, sorted by file name."""
        found = []
        try:
            paths = sorted(self.path.iterdir())
        except OSError as e:
            raise BackendError(f"Failed to list {self.path}: {e}") from e

        for path in paths:
            # Temporary files from in-flight writes are hidden
            if path.name.startswith(".") or not path.is_file():
                continue
            raw = self.adapter.key_from_file_name(path.name)
            if raw is None:
                continue
            found.append((self._coerce_key(raw), path))
        return found

    def _read_file(self, path: Path) -> Any | None:
        try:
            text = path.read_text(encoding=self.adapter.encoding)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise BackendError(f"Failed to read {path.name}: {e}") from e

        try:
            return self.adapter.deserialize(text)
        except Exception as e:
            raise BackendError(f"Failed to decode {path.name}: {e}") from e

    def _read_all(self) -> list[Any]:
        entries = []
        for _, path in self._scan():
            entry = self._read_file(path)
            if entry is not None:
                entries.append(entry)
        return entries

    def _write_file(self, path: Path, entry: Any) -> None:
        """Write entry atomically."""
        text = self.adapter.serialize(entry)
        temp_fd, temp_path = tempfile.mkstemp(dir=self.path, prefix=".", suffix=".tmp")
        try:
            with open(temp_fd, "w", encoding=self.adapter.encoding) as f:
                f.write(text)
            os.replace(temp_path, path)
        except OSError as e:
            Path(temp_path).unlink(missing_ok=True)
            raise BackendError(f"Failed to write {path.name}: {e}") from e

    def _create_file(self, key: Any, entry: Any) -> None:
        path = self._entry_path(key)
        with self._lock:
            if path.exists():
                raise DuplicateKeyError(key, "create")
            self._write_file(path, entry)

    def _update_file(self, key: Any, entry: Any) -> None:
        path = self._entry_path(key)
        with self._lock:
            if not path.exists():
                raise KeyNotFoundError(key, "update")
            self._write_file(path, entry)

    def _delete_file(self, key: Any) -> Any:
        """Remove the file and return the entry it held."""
        path = self._entry_path(key)
        with self._lock:
            if not path.exists():
                raise KeyNotFoundError(key, "delete")

            try:
                entry = self._read_file(path)
            except BackendError:
                logger.warning(f"Deleting unreadable entry file {path.name}")
                entry = None

            try:
                path.unlink()
            except FileNotFoundError:
                raise KeyNotFoundError(key, "delete") from None
            except OSError as e:
                raise BackendError(f"Failed to delete {path.name}: {e}") from e

        return entry if entry is not None else {self.key_field: key}
