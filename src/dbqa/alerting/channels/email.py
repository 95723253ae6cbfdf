"""Email (SMTP) notification channel."""

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Any

from dbqa.alerting.base import BaseChannel
from dbqa.alerting.protocol import DeliveryResult, NotificationContent
from dbqa.core.enums import ChannelType
from dbqa.core.errors import NotificationDeliveryError
from dbqa.core.models import Alert


class EmailChannel(BaseChannel):
    """SMTP delivery, one message per alert addressed to all recipients.

    Recipients come from each alert's ``email_recipients``; the SMTP
    server and sender are channel configuration.
    """

    def __init__(
        self,
        smtp_host: str,
        from_address: str,
        *,
        name: str = "email",
        smtp_port: int = 587,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        use_tls: bool = True,
        timeout: float = 10.0,
        **kwargs: Any,
    ):
        super().__init__(name, ChannelType.EMAIL, **kwargs)
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password
        self._from_address = from_address
        self._use_tls = use_tls
        self._timeout = timeout

    def destination_for(self, alert: Alert) -> list[str] | None:
        return alert.recipients or None

    def _build_message(self, recipients: list[str], content: NotificationContent) -> str:
        severity = content.severity.value.upper()
        lines = [
            f"{severity}: {content.title}",
            "",
            content.summary,
            "",
            f"Alert: {content.alert_id}",
            f"Time: {content.occurred_at.isoformat()}",
        ]
        if content.metrics:
            lines += ["", "Metrics:"]
            lines += [f"  {key}: {value}" for key, value in sorted(content.metrics.items())]

        message = EmailMessage()
        message["Subject"] = f"[{severity}] {content.title}"
        message["From"] = self._from_address
        message["To"] = ", ".join(recipients)
        message.set_content("\n".join(lines) + "\n")
        return message.as_string()

    def send(self, destination: list[str], content: NotificationContent) -> DeliveryResult:
        """Send the notification to every recipient in one message."""
        recipients = [r for r in destination or [] if r]
        if not recipients:
            return DeliveryResult.fail(
                self._name, NotificationDeliveryError("No email recipients configured")
            )
        try:
            with smtplib.SMTP(self._smtp_host, self._smtp_port, timeout=self._timeout) as server:
                if self._use_tls:
                    server.starttls()
                if self._smtp_user and self._smtp_password:
                    server.login(self._smtp_user, self._smtp_password)
                refused = server.sendmail(
                    self._from_address, recipients, self._build_message(recipients, content)
                )
        except (smtplib.SMTPException, OSError) as e:
            return DeliveryResult.fail(
                self._name,
                NotificationDeliveryError(str(e), cause=e).with_context(channel=self._name),
            )
        if refused:
            return DeliveryResult.fail(
                self._name,
                NotificationDeliveryError(f"Recipients refused: {sorted(refused)}"),
            )
        return DeliveryResult.ok(self._name, message=f"sent to {len(recipients)} recipients")
