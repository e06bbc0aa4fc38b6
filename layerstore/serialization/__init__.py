"""Serialization adapters for text-based backends.

- **JsonSerializationAdapter**: msgspec JSON encoding
- **YamlSerializationAdapter**: PyYAML documents
"""

from .base import SerializationAdapter
from .json import JsonSerializationAdapter
from .yaml import YamlSerializationAdapter

__all__ = [
    "SerializationAdapter",
    "JsonSerializationAdapter",
    "YamlSerializationAdapter",
]
