"""Notification channel implementations."""

from dbqa.alerting.channels.email import EmailChannel
from dbqa.alerting.channels.slack import SlackChannel
from dbqa.alerting.channels.webhook import WebhookChannel

__all__ = [
    "EmailChannel",
    "SlackChannel",
    "WebhookChannel",
]
