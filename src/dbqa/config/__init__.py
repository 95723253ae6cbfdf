"""Configuration for the DB QA engine."""

from dbqa.config.settings import (
    DbqaSettings,
    SchedulerBackendType,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "DbqaSettings",
    "SchedulerBackendType",
    "get_settings",
    "clear_settings_cache",
]
