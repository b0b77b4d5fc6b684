"""Configuration for dbwatcher."""

from dbwatcher.config.loader import ConfigLoadError, config_path, load_settings, read_config_file
from dbwatcher.config.models import DbWatcherSettings, WatcherConfig, normalize_database_url

__all__ = [
    "ConfigLoadError",
    "DbWatcherSettings",
    "WatcherConfig",
    "config_path",
    "load_settings",
    "normalize_database_url",
    "read_config_file",
]
