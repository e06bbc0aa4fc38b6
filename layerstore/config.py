"""Configuration for storage stacks.

A stack is described in YAML::

    key_field: id
    key_type: str
    layers:
      - type: memory
        ttl: 60
      - type: file
        path: ./data/users
        format: json
      - type: redis
        url: redis://localhost:6379/0
        key_prefix: "users:"

Files are looked up in the user config directory and the current
directory; environment variables override individual settings.
"""

import logging
import os
from pathlib import Path
from typing import Any, Literal

import msgspec
import yaml

from layerstore.backends import (
    FileStorage,
    JsonFileAdapter,
    MemoryStorage,
    RedisStorage,
    Storage,
    YamlFileAdapter,
)
from layerstore.exceptions import ConfigurationError
from layerstore.layered import LayeredStorage

logger = logging.getLogger(__name__)

KEY_TYPES = {"str": str, "int": int}


class LayerConfig(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """One storage layer."""

    type: Literal["memory", "file", "redis"]
    ttl: float | None = None
    path: str | None = None
    format: Literal["json", "yaml"] = "json"
    key_type: Literal["str", "int"] | None = None
    url: str | None = None
    key_prefix: str | None = None


class StackConfig(msgspec.Struct, kw_only=True, forbid_unknown_fields=True):
    """A stack of layers sharing one key field, top layer first."""

    key_field: str = "id"
    key_type: Literal["str", "int"] = "str"
    layers: list[LayerConfig] = msgspec.field(
        default_factory=lambda: [LayerConfig(type="memory")]
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StackConfig":
        """Validate a plain configuration mapping."""
        try:
            return msgspec.convert(data, cls)
        except msgspec.ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def coerce_key(self, raw: str) -> Any:
        """Convert a key given as text to the configured key type."""
        try:
            return KEY_TYPES[self.key_type](raw)
        except ValueError as e:
            raise ConfigurationError(f"Invalid {self.key_type} key: {raw!r}") from e


class Config:
    """Configuration file handling."""

    @staticmethod
    def from_file(path: Path) -> dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Error reading config file: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return data

    @staticmethod
    def get_config_paths() -> list[Path]:
        """Get the default configuration file paths to check."""
        paths = []

        # User config
        xdg_config_home = Path(
            os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
        )
        paths.append(xdg_config_home / "layerstore" / "config.yaml")

        # Project config
        paths.append(Path(".layerstore.yaml"))
        paths.append(Path("layerstore.yaml"))

        return paths

    @staticmethod
    def merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
        """Merge multiple configuration dictionaries."""
        result = {}
        for config in configs:
            result = _deep_merge(result, config)
        return result


def get_config_paths() -> list[Path]:
    """Get configuration paths in precedence order."""
    return Config.get_config_paths()


def load_config(path: Path | str | None = None) -> StackConfig:
    """Load configuration from files and environment variables.

    An explicit ``path`` replaces the default locations and must exist.
    """
    config: dict[str, Any] = {}

    if path is not None:
        config = Config.from_file(Path(path))
    else:
        # Later paths win for conflicting keys
        for candidate in get_config_paths():
            if candidate.exists():
                logger.debug(f"Loading config from {candidate}")
                config = Config.merge_configs(config, Config.from_file(candidate))

    if key_field := os.environ.get("LAYERSTORE_KEY_FIELD"):
        config = Config.merge_configs(config, {"key_field": key_field})

    stack = StackConfig.from_dict(config)

    if redis_url := os.environ.get("LAYERSTORE_REDIS_URL"):
        for layer in stack.layers:
            if layer.type == "redis" and layer.url is None:
                layer.url = redis_url

    return stack


def build_layer(layer: LayerConfig, key_field: str, key_type: str = "str") -> Storage:
    """Create the storage described by one layer entry."""
    key_from_storage = KEY_TYPES[layer.key_type or key_type]

    if layer.type == "memory":
        return MemoryStorage(key_field, ttl=layer.ttl)

    if layer.type == "file":
        if not layer.path:
            raise ConfigurationError("File layers require a 'path'")
        adapter = YamlFileAdapter() if layer.format == "yaml" else JsonFileAdapter()
        return FileStorage(
            key_field,
            Path(layer.path).expanduser(),
            adapter=adapter,
            key_from_storage=key_from_storage,
        )

    return RedisStorage(
        key_field,
        url=layer.url,
        key_prefix=layer.key_prefix,
        key_from_storage=key_from_storage,
    )


def build_storage(config: StackConfig) -> Storage:
    """Create a single backend, or a layered storage for several layers."""
    if not config.layers:
        raise ConfigurationError("At least one storage layer is required")

    layers = [
        build_layer(layer, config.key_field, config.key_type) for layer in config.layers
    ]
    if len(layers) == 1:
        return layers[0]
    return LayeredStorage(layers)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result
