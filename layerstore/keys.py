"""Key extraction for stored entities."""

from collections.abc import Mapping
from typing import Any


def entry_key(entry: Any, key_field: str) -> Any:
    """Return the value of ``key_field`` on a mapping or an object.

    Raises:
        KeyError: If the entry has no such field.
    """
    if isinstance(entry, Mapping):
        try:
            return entry[key_field]
        except KeyError:
            raise KeyError(f"Entry has no key field '{key_field}'") from None

    try:
        return getattr(entry, key_field)
    except AttributeError:
        raise KeyError(
            f"{type(entry).__name__} has no key field '{key_field}'"
        ) from None
