"""
Centralized settings for the DB QA engine.

:class:`DbqaSettings` is the single validated source for every tunable:
store URL, scheduler cadence, execution limits, channel transport settings,
logging and API binding. Values come from ``DBQA_*`` environment variables
or a ``.env`` file in the working directory.

Tags:
    dbqa, configuration, settings, pydantic, caching
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerBackendType(str, Enum):
    """Supported scheduler backends."""

    THREAD = "thread"
    APSCHEDULER = "apscheduler"


class DbqaSettings(BaseSettings):
    """DB QA engine configuration.

    All fields can be set via ``DBQA_*`` environment variables (e.g.
    ``DBQA_QUERY_TIMEOUT_SECONDS=60``).
    """

    model_config = SettingsConfigDict(
        env_prefix="DBQA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Store ────────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///dbqa.db")
    database_echo: bool = Field(default=False)

    # ── Scheduler ────────────────────────────────────────────────
    scheduler_backend: SchedulerBackendType = Field(default=SchedulerBackendType.THREAD)
    scheduler_interval_seconds: float = Field(default=60.0, gt=0)
    worker_pool_size: int = Field(default=4, ge=1)

    # ── Execution ────────────────────────────────────────────────
    query_timeout_seconds: float = Field(default=30.0, gt=0)
    result_row_limit: int = Field(default=1000, ge=0)

    # ── Alerting ─────────────────────────────────────────────────
    notify_on_resolve: bool = Field(default=False)
    dispatch_pool_size: int = Field(default=3, ge=1)

    # ── Email channel ────────────────────────────────────────────
    smtp_host: str = Field(default="localhost")
    smtp_port: int = Field(default=587)
    smtp_user: str | None = Field(default=None)
    smtp_password: str | None = Field(default=None)
    smtp_use_tls: bool = Field(default=True)
    email_from: str = Field(default="dbqa@localhost")

    # ── Webhook channels ─────────────────────────────────────────
    webhook_timeout_seconds: float = Field(default=10.0, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    # ── API ──────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=12100)
    api_prefix: str = Field(default="/api/v1")
    api_title: str = Field(default="DB QA")

    @model_validator(mode="after")
    def _normalise(self) -> DbqaSettings:
        object.__setattr__(self, "log_level", self.log_level.upper())
        object.__setattr__(self, "log_format", self.log_format.lower())
        if self.log_format not in ("json", "console"):
            raise ValueError(f"log_format must be 'json' or 'console', got {self.log_format!r}")
        return self

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, DbqaSettings] = {}


def get_settings(*, _force_reload: bool = False) -> DbqaSettings:
    """Load, validate and cache a :class:`DbqaSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = DbqaSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    _settings_cache.clear()
