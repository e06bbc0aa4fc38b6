"""YAML serialization backed by PyYAML."""

from typing import Any

import msgspec
import yaml


class YamlSerializationAdapter:
    """Encode entries as YAML documents.

    Structs and dataclasses are converted to builtins before dumping. When
    ``entry_type`` is given, loaded documents are converted back into it.
    """

    def __init__(
        self,
        entry_type: Any = None,
        sort_keys: bool = False,
        default_flow_style: bool | None = False,
        loader: type[yaml.SafeLoader] = yaml.SafeLoader,
    ):
        self.entry_type = entry_type
        self.sort_keys = sort_keys
        self.default_flow_style = default_flow_style
        self.loader = loader

    def serialize(self, entry: Any) -> str:
        """Encode an entry as YAML."""
        return yaml.safe_dump(
            msgspec.to_builtins(entry),
            default_flow_style=self.default_flow_style,
            allow_unicode=True,
            sort_keys=self.sort_keys,
        )

    def deserialize(self, text: str) -> Any:
        """Decode a YAML document."""
        data = yaml.load(text, Loader=self.loader)
        if self.entry_type is not None:
            return msgspec.convert(data, self.entry_type)
        return data
