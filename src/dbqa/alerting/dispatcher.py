"""Notification dispatcher - routes alert notifications to channels.

Every channel listed on the alert gets exactly one delivery attempt, and
every attempt is recorded as one ``db_qa_alert_notifications`` row.
Attempts run concurrently; one channel failing never affects another or
the alert transition that caused the notification.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from dbqa.alerting.protocol import DeliveryResult, NotificationChannel, NotificationContent
from dbqa.core.enums import ChannelType, NotificationStatus
from dbqa.core.errors import NotificationDeliveryError
from dbqa.core.models import Alert, AlertNotification
from dbqa.core.store import QueryStore
from dbqa.logging import get_logger, log_context

logger = get_logger(__name__)


class NotificationDispatcher:
    """
    Registry of notification channels, one per channel type.

    Example:
        >>> dispatcher = NotificationDispatcher(store)
        >>> dispatcher.register(SlackChannel())
        >>> rows = dispatcher.dispatch(alert, content)
        >>> [r.status for r in rows]
        [<NotificationStatus.SENT: 'sent'>]
    """

    def __init__(
        self,
        store: QueryStore,
        channels: dict[ChannelType, NotificationChannel] | None = None,
        *,
        pool_size: int = 3,
    ):
        self._store = store
        self._channels: dict[ChannelType, NotificationChannel] = dict(channels or {})
        self._pool = ThreadPoolExecutor(max_workers=max(1, pool_size), thread_name_prefix="dbqa-notify")

    def register(self, channel: NotificationChannel) -> None:
        """Register a channel, replacing any channel of the same type."""
        self._channels[channel.channel_type] = channel

    def unregister(self, channel_type: ChannelType | str) -> None:
        self._channels.pop(ChannelType(channel_type), None)

    def get(self, channel_type: ChannelType | str) -> NotificationChannel | None:
        return self._channels.get(ChannelType(channel_type))

    def list_channels(self) -> list[str]:
        return sorted(t.value for t in self._channels)

    def dispatch(self, alert: Alert, content: NotificationContent) -> list[AlertNotification]:
        """Deliver ``content`` on every channel the alert names.

        Returns the recorded notification rows in the alert's channel order.
        """
        names = list(dict.fromkeys(alert.notification_channels))
        if not names:
            logger.debug("notification_no_channels", alert_id=alert.id)
            return []

        futures: list[tuple[str, Future[DeliveryResult]]] = [
            (name, self._pool.submit(self._deliver, alert, name, content)) for name in names
        ]
        snapshot = content.to_dict()
        rows: list[AlertNotification] = []
        for name, future in futures:
            try:
                result = future.result()
            except Exception as e:  # a channel that raises is still just one failed attempt
                result = DeliveryResult.fail(name, e)
            rows.append(self._record(alert, name, snapshot, result))

        failed = [r.channel for r in rows if r.status == NotificationStatus.FAILED]
        logger.info(
            "notifications_dispatched",
            alert_id=alert.id,
            notification_event=content.event.value,
            channels=names,
            failed=failed,
        )
        return rows

    def _deliver(self, alert: Alert, name: str, content: NotificationContent) -> DeliveryResult:
        with log_context(alert_id=alert.id, channel=name):
            try:
                channel_type = ChannelType(name)
            except ValueError:
                return DeliveryResult.fail(
                    name, NotificationDeliveryError(f"Unknown channel: {name}", retryable=False)
                )
            channel = self._channels.get(channel_type)
            if channel is None:
                return DeliveryResult.fail(
                    name, NotificationDeliveryError(f"Channel not configured: {name}", retryable=False)
                )
            if not channel.enabled:
                return DeliveryResult.fail(
                    name, NotificationDeliveryError(f"Channel disabled: {name}", retryable=False)
                )
            destination = channel.destination_for(alert)
            if not destination:
                return DeliveryResult.fail(
                    name,
                    NotificationDeliveryError(f"No destination configured for {name}", retryable=False),
                )
            result = channel.send(destination, content)
            if not result.success:
                logger.warning("notification_failed", error=result.message)
            return result

    def _record(
        self,
        alert: Alert,
        name: str,
        snapshot: dict[str, Any],
        result: DeliveryResult,
    ) -> AlertNotification:
        return self._store.record_notification(
            AlertNotification(
                alert_id=alert.id,
                channel=name,
                sent_at=result.delivered_at,
                status=NotificationStatus.SENT if result.success else NotificationStatus.FAILED,
                content=snapshot,
                error_message=None if result.success else result.message,
            )
        )

    def close(self) -> None:
        self._pool.shutdown(wait=True)
