"""JSON serialization backed by msgspec."""

from collections.abc import Callable
from typing import Any

import msgspec


class JsonSerializationAdapter:
    """Encode entries as JSON text.

    Args:
        entry_type: Type to decode into (a msgspec Struct, dataclass, dict...).
            Defaults to plain JSON values.
        indent: Pretty-print with this many spaces.
        sort_keys: Emit object keys in sorted order.
        enc_hook: Called for objects msgspec cannot encode natively.
    """

    def __init__(
        self,
        entry_type: Any = Any,
        indent: int | None = None,
        sort_keys: bool = False,
        enc_hook: Callable[[Any], Any] | None = None,
    ):
        self.indent = indent
        self.encoder = msgspec.json.Encoder(
            enc_hook=enc_hook, order="sorted" if sort_keys else None
        )
        self.decoder = msgspec.json.Decoder(entry_type)

    def serialize(self, entry: Any) -> str:
        """Encode an entry as JSON."""
        data = self.encoder.encode(entry)
        if self.indent:
            data = msgspec.json.format(data, indent=self.indent)
        return data.decode("utf-8")

    def deserialize(self, text: str | bytes) -> Any:
        """Decode JSON text."""
        return self.decoder.decode(text)
