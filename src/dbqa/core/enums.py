"""
Enumerations shared across the DB QA engine.

All enums are ``str`` enums so their values round-trip through JSON
columns, API payloads and CLI options without conversion.
"""

from __future__ import annotations

from enum import Enum


class QueryCategory(str, Enum):
    """Kind of data-quality property a query checks."""

    COMPLETENESS = "data_completeness"
    CONSISTENCY = "data_consistency"
    ACCURACY = "data_accuracy"
    INTEGRITY = "data_integrity"
    TIMELINESS = "data_timeliness"
    UNIQUENESS = "data_uniqueness"
    RELATIONSHIP = "data_relationship"
    SENSITIVE_DATA_EXPOSURE = "sensitive_data_exposure"

    @classmethod
    def parse(cls, value: str | QueryCategory) -> QueryCategory:
        """Accept both ``data_completeness`` and the short ``completeness``."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if text in (member.value, member.value.removeprefix("data_"), member.name.lower()):
                return member
        raise ValueError(f"Unknown query category: {value!r}")


class ExecutionFrequency(str, Enum):
    """How often the scheduler runs a query."""

    MANUAL = "manual"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ExecutionStatus(str, Enum):
    """Outcome of a single execution.

    ``success`` means the query ran and passed (or only warned),
    ``failure`` means it ran and failed its thresholds, ``error`` means it
    could not run or could not be evaluated.
    """

    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


class Verdict(str, Enum):
    """Threshold evaluation verdict."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"

    def _order(self) -> list[Verdict]:
        return [Verdict.PASS, Verdict.WARN, Verdict.FAIL]

    def __lt__(self, other: Verdict) -> bool:
        return self._order().index(self) < self._order().index(other)

    def __gt__(self, other: Verdict) -> bool:
        return self._order().index(self) > self._order().index(other)


class AlertSeverity(str, Enum):
    """Alert severity levels, ordered low < medium < high < critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def _order(self) -> list[AlertSeverity]:
        return [
            AlertSeverity.LOW,
            AlertSeverity.MEDIUM,
            AlertSeverity.HIGH,
            AlertSeverity.CRITICAL,
        ]

    def __lt__(self, other: AlertSeverity) -> bool:
        return self._order().index(self) < self._order().index(other)

    def __le__(self, other: AlertSeverity) -> bool:
        return self._order().index(self) <= self._order().index(other)

    def __ge__(self, other: AlertSeverity) -> bool:
        return self._order().index(self) >= self._order().index(other)

    def __gt__(self, other: AlertSeverity) -> bool:
        return self._order().index(self) > self._order().index(other)


class AlertStatus(str, Enum):
    """Lifecycle state of an alert incident."""

    ACTIVE = "active"
    RESOLVED = "resolved"
    SNOOZED = "snoozed"


class ChannelType(str, Enum):
    """Notification channel types."""

    EMAIL = "email"
    SLACK = "slack"
    WEBHOOK = "webhook"


class NotificationStatus(str, Enum):
    """Outcome of one notification delivery attempt."""

    SENT = "sent"
    FAILED = "failed"


class RunTrigger(str, Enum):
    """What started a run."""

    SCHEDULE = "schedule"
    MANUAL = "manual"


__all__ = [
    "QueryCategory",
    "ExecutionFrequency",
    "ExecutionStatus",
    "Verdict",
    "AlertSeverity",
    "AlertStatus",
    "ChannelType",
    "NotificationStatus",
    "RunTrigger",
]
