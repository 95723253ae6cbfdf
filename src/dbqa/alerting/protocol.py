"""
Notification channel protocol and data classes.

The channel set is closed: email, Slack (chat webhook) and a generic
webhook. Every channel exposes the same capability::

    channel.destination_for(alert) -> destination | None
    channel.send(destination, content) -> DeliveryResult

so the dispatcher only decides *what* to send and *where*, never *how*.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from dbqa.core.enums import AlertSeverity, ChannelType
from dbqa.core.errors import NotificationDeliveryError
from dbqa.core.frequency import utcnow


class NotificationEvent(str, Enum):
    """Why a notification is being sent."""

    TRIGGERED = "triggered"
    RETRIGGERED = "retriggered"
    RESOLVED = "resolved"


@dataclass
class NotificationContent:
    """Everything a channel renders for one alert notification."""

    event: NotificationEvent
    alert_id: str
    alert_name: str
    severity: AlertSeverity
    query_id: str
    query_name: str
    verdict: str | None = None
    reasons: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    execution_result_id: str | None = None
    description: str | None = None
    space_id: str | None = None
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def title(self) -> str:
        verb = {
            NotificationEvent.TRIGGERED: "triggered",
            NotificationEvent.RETRIGGERED: "still failing",
            NotificationEvent.RESOLVED: "resolved",
        }[self.event]
        return f"{self.alert_name} {verb}"

    @property
    def summary(self) -> str:
        lines = [f"Query: {self.query_name}"]
        if self.verdict:
            lines.append(f"Verdict: {self.verdict}")
        lines.extend(f"- {reason}" for reason in self.reasons)
        if self.description:
            lines.append(self.description)
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Snapshot stored with each notification and posted to webhooks."""
        result = {
            "event": self.event.value,
            "title": self.title,
            "alert_id": self.alert_id,
            "alert_name": self.alert_name,
            "severity": self.severity.value,
            "query_id": self.query_id,
            "query_name": self.query_name,
            "occurred_at": self.occurred_at.isoformat(),
        }
        if self.verdict:
            result["verdict"] = self.verdict
        if self.reasons:
            result["reasons"] = list(self.reasons)
        if self.metrics:
            result["metrics"] = dict(self.metrics)
        if self.execution_result_id:
            result["execution_result_id"] = self.execution_result_id
        if self.description:
            result["description"] = self.description
        if self.space_id:
            result["space_id"] = self.space_id
        return result


@dataclass
class DeliveryResult:
    """Result of one delivery attempt."""

    channel_name: str
    success: bool
    message: str | None = None
    response: dict[str, Any] | None = None
    error: Exception | None = None
    delivered_at: datetime = field(default_factory=utcnow)

    @classmethod
    def ok(cls, channel_name: str, message: str | None = None, **kwargs: Any) -> DeliveryResult:
        return cls(channel_name=channel_name, success=True, message=message, **kwargs)

    @classmethod
    def fail(cls, channel_name: str, error: Exception) -> DeliveryResult:
        if not isinstance(error, NotificationDeliveryError):
            error = NotificationDeliveryError(
                str(error) or type(error).__name__, cause=error
            ).with_context(channel=channel_name)
        return cls(
            channel_name=channel_name,
            success=False,
            error=error,
            message=str(error),
        )


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol for notification channels."""

    @property
    def name(self) -> str: ...

    @property
    def channel_type(self) -> ChannelType: ...

    @property
    def enabled(self) -> bool: ...

    def destination_for(self, alert: Any) -> Any:
        """Where this alert should be delivered, or ``None`` if unset."""
        ...

    def send(self, destination: Any, content: NotificationContent) -> DeliveryResult:
        """Deliver ``content``. Never raises; failures come back as results."""
        ...
