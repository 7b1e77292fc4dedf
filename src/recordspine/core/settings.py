"""Environment-driven settings for record-spine.

``RecordSpineSettings`` reads ``RECORDSPINE_*`` environment variables (and a
``.env`` file) so that the connection URL, provider and bulk-upsert batch
size can be changed per deployment without code changes.

Examples:
    >>> import os
    >>> os.environ["RECORDSPINE_DATABASE_URL"] = "postgresql+psycopg2://app@db/orders"
    >>> settings = RecordSpineSettings()
    >>> settings.batch_size
    1000

Tags:
    settings, configuration, pydantic, environment, record-spine
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BATCH_SIZE = 1000


class RecordSpineSettings(BaseSettings):
    """Settings for connections, bulk upsert and logging.

    Fields
    ──────
    database_url     : SQLAlchemy URL or ADO-style connection string
    provider         : Explicit provider tag; detected from the URL when unset
    batch_size       : Default rows per bulk-upsert statement
    command_timeout  : Seconds passed to the record store with every command
    echo_sql         : Log every statement through SQLAlchemy
    log_level        : Log level applied by configure_logging_from_settings
    log_json         : JSON output (None = auto-detect from TTY)
    log_service      : ``service`` field stamped on every log event
    """

    model_config = SettingsConfigDict(
        env_prefix="RECORDSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Connection ───────────────────────────────────────────────
    database_url: str | None = None
    provider: str | None = None

    # ── Commands ─────────────────────────────────────────────────
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, gt=0)
    command_timeout: int | None = Field(default=None, gt=0)
    echo_sql: bool = False

    # ── Observability ────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_json: bool | None = None
    log_service: str = "recordspine"

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, RecordSpineSettings] = {}


def get_settings(*, _force_reload: bool = False) -> RecordSpineSettings:
    """Return the process-wide settings instance (read once)."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = RecordSpineSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "RecordSpineSettings",
    "get_settings",
    "clear_settings_cache",
]
