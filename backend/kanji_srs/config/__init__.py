"""Configuration package."""

from kanji_srs.config.settings import (
    DEFAULT_INTERVAL_TABLE,
    Settings,
    get_settings,
    load_yaml_config,
    settings,
    yaml_config,
)

__all__ = [
    "DEFAULT_INTERVAL_TABLE",
    "Settings",
    "get_settings",
    "load_yaml_config",
    "settings",
    "yaml_config",
]
