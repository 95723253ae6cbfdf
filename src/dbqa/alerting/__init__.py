"""
Alerting: rule conditions, the alert state machine and notification delivery.

Usage:
    from dbqa.alerting import AlertEngine, NotificationDispatcher
    from dbqa.alerting.channels import EmailChannel, SlackChannel, WebhookChannel

    dispatcher = NotificationDispatcher(store)
    dispatcher.register(SlackChannel())
    dispatcher.register(WebhookChannel())
"""

from dbqa.alerting.base import BaseChannel
from dbqa.alerting.conditions import AlertCondition
from dbqa.alerting.dispatcher import NotificationDispatcher
from dbqa.alerting.engine import AlertAction, AlertEngine, AlertTransition, PreparedRule
from dbqa.alerting.protocol import (
    DeliveryResult,
    NotificationChannel,
    NotificationContent,
    NotificationEvent,
)

__all__ = [
    "AlertAction",
    "AlertCondition",
    "AlertEngine",
    "AlertTransition",
    "BaseChannel",
    "DeliveryResult",
    "NotificationChannel",
    "NotificationContent",
    "NotificationDispatcher",
    "NotificationEvent",
    "PreparedRule",
]
