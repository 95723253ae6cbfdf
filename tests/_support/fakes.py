"""Fake resolvers and notification channels for dbqa tests."""

from __future__ import annotations

import threading
import time
from typing import Any

from dbqa.alerting.protocol import DeliveryResult, NotificationContent
from dbqa.core.enums import ChannelType
from dbqa.core.models import Alert


class FakeHandle:
    def __init__(self, resolver: FakeResolver) -> None:
        self._resolver = resolver

    def execute(self, sql: str, timeout: float | None = None) -> list[dict[str, Any]]:
        self._resolver.calls.append(sql)
        if self._resolver.delay:
            time.sleep(self._resolver.delay)
        if self._resolver.error is not None:
            raise self._resolver.error
        return [dict(r) for r in self._resolver.rows]

    def close(self) -> None:
        self._resolver.closed += 1


class FakeResolver:
    """Resolver returning canned rows, optionally slow or failing."""

    def __init__(
        self,
        rows: list[dict[str, Any]] | None = None,
        *,
        delay: float = 0.0,
        error: BaseException | None = None,
        resolve_error: BaseException | None = None,
    ) -> None:
        self.rows = rows if rows is not None else [{"count": 0}]
        self.delay = delay
        self.error = error
        self.resolve_error = resolve_error
        self.calls: list[str] = []
        self.closed = 0

    def resolve(self, connection_id: str) -> FakeHandle:
        if self.resolve_error is not None:
            raise self.resolve_error
        return FakeHandle(self)

    def dispose(self) -> None:
        pass


class RecordingChannel:
    """Notification channel that remembers what it was asked to send."""

    def __init__(
        self,
        channel_type: ChannelType,
        *,
        fail: bool = False,
        enabled: bool = True,
        gate: threading.Event | None = None,
    ) -> None:
        self.channel_type = channel_type
        self.name = channel_type.value
        self.enabled = enabled
        self.fail = fail
        self.gate = gate
        self.sent: list[tuple[Any, NotificationContent]] = []
        self.gate_opened: bool | None = None

    def destination_for(self, alert: Alert) -> Any:
        if self.channel_type == ChannelType.EMAIL:
            return alert.recipients or None
        if self.channel_type == ChannelType.SLACK:
            return alert.slack_webhook
        return alert.custom_webhook

    def send(self, destination: Any, content: NotificationContent) -> DeliveryResult:
        if self.gate is not None:
            self.gate_opened = self.gate.wait(2)
        self.sent.append((destination, content))
        if self.fail:
            return DeliveryResult.fail(self.name, ConnectionRefusedError("connection refused"))
        return DeliveryResult.ok(self.name)
