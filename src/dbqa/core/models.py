"""DB QA record types.

Plain dataclasses mirroring the ``db_qa_*`` tables. The store converts
between these and ORM rows so nothing outside ``dbqa.core`` touches a
SQLAlchemy session.

Tags:
    dbqa, models, dataclasses, schema-mapping
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from dbqa.core.enums import (
    AlertSeverity,
    AlertStatus,
    ExecutionFrequency,
    ExecutionStatus,
    NotificationStatus,
    QueryCategory,
)


def _to_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


class _Record:
    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        return {key: _to_json(value) for key, value in asdict(self).items()}


# ---------------------------------------------------------------------------
# db_qa_connections
# ---------------------------------------------------------------------------


@dataclass
class Connection(_Record):
    """Data-source connection (``db_qa_connections``).

    ``config`` holds either ``{"url": ...}`` or discrete
    ``host/port/database/username/password`` keys.
    """

    id: str = ""
    user_id: str = ""
    space_id: str | None = None
    name: str = ""
    type: str = "postgresql"
    config: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# db_qa_queries
# ---------------------------------------------------------------------------


@dataclass
class Query(_Record):
    """Quality-check query definition (``db_qa_queries``)."""

    id: str = ""
    user_id: str = ""
    connection_id: str = ""
    space_id: str | None = None
    name: str = ""
    description: str | None = None
    category: QueryCategory = QueryCategory.ACCURACY
    query: str = ""
    expected_result: Any = field(default_factory=dict)
    thresholds: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    execution_frequency: ExecutionFrequency = ExecutionFrequency.MANUAL
    timeout_seconds: float | None = None
    last_execution_time: datetime | None = None
    next_execution_time: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_scheduled(self) -> bool:
        return self.enabled and self.execution_frequency != ExecutionFrequency.MANUAL


# ---------------------------------------------------------------------------
# db_qa_execution_results
# ---------------------------------------------------------------------------


@dataclass
class ExecutionResult(_Record):
    """One run of a query (``db_qa_execution_results``).

    Append-only: the store never updates a result once it is written.
    """

    id: str = ""
    query_id: str = ""
    execution_time: datetime | None = None
    status: ExecutionStatus = ExecutionStatus.SUCCESS
    result: dict[str, Any] | None = None
    metrics: dict[str, Any] = field(default_factory=dict)
    execution_duration: int | None = None  # milliseconds
    error_message: str | None = None

    @property
    def verdict(self) -> str | None:
        return self.metrics.get("verdict")


# ---------------------------------------------------------------------------
# db_qa_alert_rules
# ---------------------------------------------------------------------------


@dataclass
class AlertRule(_Record):
    """Alert rule attached to a query (``db_qa_alert_rules``)."""

    id: str = ""
    user_id: str = ""
    query_id: str = ""
    space_id: str | None = None
    name: str = ""
    description: str | None = None
    severity: AlertSeverity = AlertSeverity.MEDIUM
    condition: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    notification_channels: list[str] = field(default_factory=list)
    email_recipients: str | None = None  # comma separated
    slack_webhook: str | None = None
    custom_webhook: str | None = None
    throttle_minutes: int = 60
    notify_on_resolve: bool | None = None  # None: use settings default
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# db_qa_alerts
# ---------------------------------------------------------------------------


@dataclass
class Alert(_Record):
    """Alert incident (``db_qa_alerts``).

    ``resolved_at`` is set exactly when ``status`` is ``resolved`` and
    ``last_triggered_at`` never moves backwards.
    """

    id: str = ""
    user_id: str = ""
    query_id: str = ""
    space_id: str | None = None
    rule_id: str | None = None
    execution_result_id: str | None = None
    name: str = ""
    description: str | None = None
    severity: AlertSeverity = AlertSeverity.MEDIUM
    condition: dict[str, Any] = field(default_factory=dict)
    status: AlertStatus = AlertStatus.ACTIVE
    enabled: bool = True
    notification_channels: list[str] = field(default_factory=list)
    email_recipients: str | None = None
    slack_webhook: str | None = None
    custom_webhook: str | None = None
    throttle_minutes: int = 60
    last_triggered_at: datetime | None = None
    trigger_count: int = 0
    suppressed_count: int = 0
    snoozed_until: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    resolved_at: datetime | None = None
    version: int = 0

    @property
    def is_open(self) -> bool:
        return self.status != AlertStatus.RESOLVED

    @property
    def recipients(self) -> list[str]:
        if not self.email_recipients:
            return []
        return [r.strip() for r in self.email_recipients.split(",") if r.strip()]


# ---------------------------------------------------------------------------
# db_qa_alert_notifications
# ---------------------------------------------------------------------------


@dataclass
class AlertNotification(_Record):
    """Notification delivery attempt (``db_qa_alert_notifications``)."""

    id: str = ""
    alert_id: str = ""
    channel: str = ""
    sent_at: datetime | None = None
    status: NotificationStatus = NotificationStatus.SENT
    content: dict[str, Any] | None = None
    error_message: str | None = None


__all__ = [
    "Connection",
    "Query",
    "ExecutionResult",
    "AlertRule",
    "Alert",
    "AlertNotification",
]
