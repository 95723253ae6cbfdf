"""Slack incoming-webhook notification channel."""

from __future__ import annotations

from typing import Any

from dbqa.alerting.base import BaseChannel
from dbqa.alerting.protocol import DeliveryResult, NotificationContent, NotificationEvent
from dbqa.core.enums import AlertSeverity, ChannelType
from dbqa.core.errors import NotificationDeliveryError
from dbqa.core.models import Alert

_SEVERITY_EMOJI = {
    AlertSeverity.LOW: ":information_source:",
    AlertSeverity.MEDIUM: ":warning:",
    AlertSeverity.HIGH: ":x:",
    AlertSeverity.CRITICAL: ":rotating_light:",
}

_SEVERITY_COLOR = {
    AlertSeverity.LOW: "#439fe0",
    AlertSeverity.MEDIUM: "#daa038",
    AlertSeverity.HIGH: "#d63f3f",
    AlertSeverity.CRITICAL: "#8b0000",
}


class SlackChannel(BaseChannel):
    """
    Slack webhook channel.

    Posts to the alert's ``slack_webhook`` incoming-webhook URL.
    """

    def __init__(
        self,
        *,
        name: str = "slack",
        username: str = "DB QA Alerts",
        timeout: float = 10.0,
        **kwargs: Any,
    ):
        super().__init__(name, ChannelType.SLACK, **kwargs)
        self._username = username
        self._timeout = timeout

    def destination_for(self, alert: Alert) -> str | None:
        return alert.slack_webhook or None

    def _build_payload(self, content: NotificationContent) -> dict[str, Any]:
        """Build Slack message payload."""
        resolved = content.event == NotificationEvent.RESOLVED
        emoji = ":white_check_mark:" if resolved else _SEVERITY_EMOJI.get(content.severity, "")
        fields = [
            {"title": "Query", "value": content.query_name, "short": True},
            {"title": "Severity", "value": content.severity.value, "short": True},
        ]
        if content.verdict:
            fields.append({"title": "Verdict", "value": content.verdict, "short": True})

        attachment = {
            "color": "#36a64f" if resolved else _SEVERITY_COLOR.get(content.severity, "#808080"),
            "title": f"{emoji} {content.title}",
            "text": "\n".join(content.reasons) or content.description or "",
            "fields": fields,
            "ts": int(content.occurred_at.timestamp()),
        }
        return {
            "username": self._username,
            "text": f"{emoji} {content.title}",
            "attachments": [attachment],
        }

    def send(self, destination: str, content: NotificationContent) -> DeliveryResult:
        """Send the notification to Slack."""
        if not destination:
            return DeliveryResult.fail(
                self._name, NotificationDeliveryError("No Slack webhook configured")
            )
        return self._post_json(destination, self._build_payload(content), timeout=self._timeout)
