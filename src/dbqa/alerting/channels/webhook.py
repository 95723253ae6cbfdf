"""Generic webhook notification channel.

POSTs the notification snapshot as JSON to the alert's
``custom_webhook`` URL so custom integrations work without dedicated
channel code.
"""

from __future__ import annotations

from typing import Any

from dbqa.alerting.base import BaseChannel
from dbqa.alerting.protocol import DeliveryResult, NotificationContent
from dbqa.core.enums import ChannelType
from dbqa.core.errors import NotificationDeliveryError
from dbqa.core.models import Alert


class WebhookChannel(BaseChannel):
    """
    Generic webhook channel.

    POSTs ``content.to_dict()`` to a URL.
    """

    def __init__(
        self,
        *,
        name: str = "webhook",
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        **kwargs: Any,
    ):
        super().__init__(name, ChannelType.WEBHOOK, **kwargs)
        self._headers = headers or {}
        self._timeout = timeout

    def destination_for(self, alert: Alert) -> str | None:
        return alert.custom_webhook or None

    def send(self, destination: str, content: NotificationContent) -> DeliveryResult:
        """Send the notification to the webhook."""
        if not destination:
            return DeliveryResult.fail(
                self._name, NotificationDeliveryError("No custom webhook configured")
            )
        return self._post_json(
            destination, content.to_dict(), timeout=self._timeout, headers=self._headers
        )
