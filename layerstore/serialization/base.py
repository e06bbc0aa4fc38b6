"""Serialization adapter interface."""

from typing import Any, Protocol


class SerializationAdapter(Protocol):
    """Protocol for converting entries to and from text."""

    def serialize(self, entry: Any) -> str:
        """Encode an entry as text."""
        ...

    def deserialize(self, text: str) -> Any:
        """Decode text back into an entry."""
        ...
