"""
Notification channel base class.

Provides enable/disable, naming and a JSON POST helper shared by the
webhook-based channels.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from typing import Any

from dbqa.alerting.protocol import DeliveryResult, NotificationContent
from dbqa.core.enums import ChannelType
from dbqa.core.errors import NotificationDeliveryError
from dbqa.core.models import Alert


class BaseChannel(ABC):
    """Base class for notification channels."""

    def __init__(self, name: str, channel_type: ChannelType, *, enabled: bool = True):
        self._name = name
        self._channel_type = channel_type
        self._enabled = enabled

    @property
    def name(self) -> str:
        return self._name

    @property
    def channel_type(self) -> ChannelType:
        return self._channel_type

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    @abstractmethod
    def destination_for(self, alert: Alert) -> Any:
        """Where ``alert`` should be delivered on this channel."""
        ...

    @abstractmethod
    def send(self, destination: Any, content: NotificationContent) -> DeliveryResult:
        """Deliver ``content`` to ``destination``."""
        ...

    def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        timeout: float,
        headers: dict[str, str] | None = None,
    ) -> DeliveryResult:
        all_headers = {"Content-Type": "application/json"}
        all_headers.update(headers or {})
        try:
            req = urllib.request.Request(
                url,
                data=json.dumps(payload, default=str).encode("utf-8"),
                headers=all_headers,
                method="POST",
            )
            with urllib.request.urlopen(req, timeout=timeout) as response:
                return DeliveryResult.ok(
                    self._name,
                    message=response.read().decode("utf-8", errors="replace")[:500],
                    response={"status": response.status},
                )
        except urllib.error.HTTPError as e:
            return DeliveryResult.fail(
                self._name,
                NotificationDeliveryError(
                    f"HTTP {e.code} from {self._channel_type.value} endpoint",
                    retryable=e.code >= 500 or e.code == 429,
                    cause=e,
                ).with_context(channel=self._name),
            )
        except (urllib.error.URLError, TimeoutError, OSError, ValueError) as e:
            return DeliveryResult.fail(
                self._name,
                NotificationDeliveryError(str(getattr(e, "reason", e)), cause=e).with_context(
                    channel=self._name
                ),
            )
