"""
Centralized settings for monitor-spine.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    One cached :class:`MonitorSettings` object feeds the stream consumer,
    the entity store and the retention sweeper so that all three agree on
    the same values.

All fields can be set via ``MONITOR_*`` environment variables (e.g.
``MONITOR_RETENTION_ENABLED=true``) or a ``.env`` file.

Tags:
    configuration, settings, pydantic, caching, validation, monitor-spine
"""

from __future__ import annotations

import os
import socket

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from monitor_spine.core.errors import InvalidConfigError


def _default_consumer_name() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


class MonitorSettings(BaseSettings):
    """monitor-spine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///data/monitor.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int | None = Field(default=None, gt=0)

    # ── Event log (Redis Streams) ────────────────────────────────
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_stream_prefix: str = Field(default="zeebe")
    redis_consumer_group: str = Field(default="simple-monitor")
    redis_consumer_name: str = Field(default_factory=_default_consumer_name)
    redis_xread_count: int = Field(default=500, gt=0, description="Max records pulled per round")
    redis_xread_block_millis: int = Field(
        default=2000, gt=0, description="Max wait for a round when no records are available"
    )

    # ── Reconnect backoff ────────────────────────────────────────
    reconnect_base_delay: float = Field(default=1.0, gt=0)
    reconnect_max_delay: float = Field(default=30.0, gt=0)

    # ── Retention ────────────────────────────────────────────────
    retention_enabled: bool = Field(default=False)
    retention_days: int = Field(default=7, ge=0)
    retention_batch_size: int = Field(default=32, gt=0)
    retention_interval_seconds: float = Field(default=3600.0, gt=0)
    retention_jitter_min_seconds: float = Field(default=8.192, ge=0)
    retention_jitter_max_seconds: float = Field(default=16.384, ge=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    metrics_enabled: bool = Field(default=True)
    metrics_host: str = Field(default="0.0.0.0")
    metrics_port: int = Field(default=9464, gt=0)

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {value}")
        return value

    @model_validator(mode="after")
    def _check_ranges(self) -> MonitorSettings:
        if self.retention_jitter_min_seconds > self.retention_jitter_max_seconds:
            raise ValueError("retention_jitter_min_seconds must not exceed retention_jitter_max_seconds")
        if self.reconnect_base_delay > self.reconnect_max_delay:
            raise ValueError("reconnect_base_delay must not exceed reconnect_max_delay")
        return self

    # ── Derived properties ───────────────────────────────────────

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def json_logs(self) -> bool:
        return self.log_format == "json"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: MonitorSettings | None = None


def get_settings(*, _force_reload: bool = False, **overrides: object) -> MonitorSettings:
    """Load, validate, and cache a :class:`MonitorSettings` instance.

    Keyword overrides bypass the cache and are applied on top of the
    environment.

    Raises:
        InvalidConfigError: if any value fails validation.
    """
    global _settings_cache
    if _settings_cache is not None and not _force_reload and not overrides:
        return _settings_cache

    try:
        settings = MonitorSettings(**overrides)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "settings"
        raise InvalidConfigError(field, first.get("input"), message=f"{field}: {first.get('msg')}") from exc

    if not overrides:
        _settings_cache = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, reload)."""
    global _settings_cache
    _settings_cache = None
