"""Load dbwatcher settings from dbwatcher.yaml and the environment."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from dbwatcher.config.models import DbWatcherSettings
from dbwatcher.exceptions import ConfigurationError

CONFIG_ENV = "DBWATCHER_CONFIG"
DEFAULT_CONFIG_FILE = "dbwatcher.yaml"


class ConfigLoadError(ConfigurationError, ValueError):
    """Raised when the config file cannot be read, parsed or validated."""


def config_path(cli_path: str | None = None) -> tuple[Path, bool]:
    """Return the config file to read and whether it was named explicitly.

    ``DBWATCHER_CONFIG`` wins over ``--config``; without either the file is
    ``./dbwatcher.yaml`` and may be absent.
    """
    for candidate in (os.environ.get(CONFIG_ENV), cli_path):
        if candidate and candidate.strip():
            return Path(candidate.strip()), True
    return Path.cwd() / DEFAULT_CONFIG_FILE, False


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse one YAML file into a mapping; a blank file is an empty config."""
    text = path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text)
    except yaml.MarkedYAMLError as exc:
        mark = exc.problem_mark
        where = f"{path}:{mark.line + 1}:{mark.column + 1}" if mark is not None else str(path)
        raise ConfigLoadError(f"Invalid YAML at {where}: {exc.problem}") from exc
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid YAML at {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(f"{path}: top level must be a mapping, not {type(data).__name__}")
    return data


def _describe_validation(exc: ValidationError, source: Path | None) -> str:
    header = f"Invalid configuration in {source}" if source is not None else "Invalid configuration"
    lines = [f"{header} ({exc.error_count()} error(s)):"]
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        lines.append(f"  {location}: {error['msg']}")
    return "\n".join(lines)


def load_settings(cli_path: str | None = None) -> DbWatcherSettings:
    """Build settings from the config file with ``DBWATCHER_*`` variables on top.

    Raises:
        ConfigLoadError: An explicitly named file is missing, or the file is
            not valid YAML, or the merged values fail validation. Validation
            messages name the offending keys, e.g. ``watcher.tables``.
    """
    path, explicit = config_path(cli_path)
    if path.is_file():
        data = read_config_file(path)
    elif explicit:
        raise ConfigLoadError(f"Config file not found: {path}")
    else:
        data = {}
    try:
        return DbWatcherSettings(**data)
    except ValidationError as exc:
        raise ConfigLoadError(_describe_validation(exc, path if data else None)) from exc
