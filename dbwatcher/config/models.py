"""Configuration models for dbwatcher."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from dbwatcher.exceptions import ConfigurationError
from dbwatcher.triggers import validate_table_name

_SCHEMES = ("postgresql://", "postgres://")
_DRIVER_SCHEMES = ("postgresql+asyncpg://", "postgresql+psycopg2://", "postgresql+psycopg://")
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def normalize_database_url(url: str) -> str:
    """Return a DSN asyncpg accepts; SQLAlchemy-style driver suffixes are dropped."""
    u = url.strip()
    for scheme in _DRIVER_SCHEMES:
        if u.startswith(scheme):
            return "postgresql://" + u[len(scheme) :]
    if u.startswith(_SCHEMES):
        return u
    raise ConfigurationError("Database URL must be PostgreSQL (postgresql:// or postgres://).")


class WatcherConfig(BaseModel):
    """Tables to watch and connection supervision."""

    tables: list[str] = Field(default_factory=list)
    reconnect_interval: float = Field(default=5.0, gt=0, le=3600)
    drop_triggers_on_exit: bool = Field(default=True)

    @field_validator("tables")
    @classmethod
    def _valid_tables(cls, value: list[str]) -> list[str]:
        names = [name.strip() for name in value if name.strip()]
        for name in names:
            validate_table_name(name)
        return list(dict.fromkeys(names))


class DbWatcherSettings(BaseSettings):
    """Root configuration; environment variables override file values."""

    database_url: str = Field(default="")
    log_level: str = Field(default="INFO")
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)

    model_config = SettingsConfigDict(
        env_prefix="DBWATCHER_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _valid_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return normalized

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    def resolved_database_url(self) -> str:
        """Normalized DSN, or ConfigurationError when none is configured."""
        if not self.database_url.strip():
            raise ConfigurationError("Database URL not set. Set DBWATCHER_DATABASE_URL or pass --database-url.")
        return normalize_database_url(self.database_url)

    def with_overrides(
        self,
        *,
        database_url: str | None = None,
        log_level: str | None = None,
        tables: list[str] | None = None,
    ) -> DbWatcherSettings:
        """Copy with CLI overrides applied; empty values keep the loaded setting."""
        data: dict[str, Any] = self.model_dump()
        if database_url:
            data["database_url"] = database_url
        if log_level:
            data["log_level"] = log_level
        if tables:
            data["watcher"]["tables"] = list(tables)
        return DbWatcherSettings.model_validate(data)
