"""Configuration domain: config folder layout and the immutable snapshot."""

from contentloom.config.manager import ConfigManager, parse_config
from contentloom.config.models import (
    BuildConfig,
    CollectionConfig,
    ConfigSnapshot,
    ConnectionConfig,
    FieldConfig,
    OutputMode,
)

__all__ = [
    "BuildConfig",
    "CollectionConfig",
    "ConfigManager",
    "ConfigSnapshot",
    "ConnectionConfig",
    "FieldConfig",
    "OutputMode",
    "parse_config",
]
