"""Tests for the email, Slack and webhook notification channels."""

from __future__ import annotations

import json
import smtplib
import urllib.error
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from dbqa.alerting.channels import EmailChannel, SlackChannel, WebhookChannel
from dbqa.alerting.protocol import NotificationContent, NotificationEvent
from dbqa.core.enums import AlertSeverity, ChannelType
from dbqa.core.errors import NotificationDeliveryError
from dbqa.core.models import Alert


def _content(event: NotificationEvent = NotificationEvent.TRIGGERED) -> NotificationContent:
    return NotificationContent(
        event=event,
        alert_id="a-1",
        alert_name="orders look wrong",
        severity=AlertSeverity.HIGH,
        query_id="q-1",
        query_name="negative totals",
        verdict="fail",
        reasons=["value=3 above max 0"],
        metrics={"value": 3.0},
        occurred_at=datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
    )


def _smtp(MockSMTP) -> MagicMock:
    server = MagicMock()
    server.sendmail.return_value = {}
    MockSMTP.return_value.__enter__.return_value = server
    return server


def _response(status: int = 200, body: bytes = b"ok") -> MagicMock:
    response = MagicMock()
    response.__enter__ = lambda s: s
    response.__exit__ = MagicMock(return_value=False)
    response.status = status
    response.read.return_value = body
    return response


class TestEmailChannel:
    def test_destination(self):
        ch = EmailChannel("smtp.example.com", "dbqa@example.com")
        alert = Alert(email_recipients="a@example.com, ,b@example.com")
        assert ch.destination_for(alert) == ["a@example.com", "b@example.com"]
        assert ch.destination_for(Alert()) is None
        assert ch.channel_type == ChannelType.EMAIL

    def test_build_message(self):
        ch = EmailChannel("smtp.example.com", "dbqa@example.com")
        msg = ch._build_message(["x@example.com"], _content())
        assert "[HIGH] orders look wrong triggered" in msg
        assert "value=3 above max 0" in msg
        assert "x@example.com" in msg

    @patch("smtplib.SMTP")
    def test_send_success(self, MockSMTP):
        server = _smtp(MockSMTP)
        ch = EmailChannel(
            "smtp.example.com",
            "dbqa@example.com",
            smtp_port=2525,
            smtp_user="user",
            smtp_password="pass",
        )
        result = ch.send(["x@example.com", "y@example.com"], _content())

        assert result.success is True
        MockSMTP.assert_called_once_with("smtp.example.com", 2525, timeout=10.0)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "pass")
        args = server.sendmail.call_args.args
        assert args[0] == "dbqa@example.com"
        assert args[1] == ["x@example.com", "y@example.com"]

    @patch("smtplib.SMTP")
    def test_send_no_tls(self, MockSMTP):
        server = _smtp(MockSMTP)
        ch = EmailChannel("localhost", "dbqa@example.com", use_tls=False)
        assert ch.send(["x@example.com"], _content()).success is True
        server.starttls.assert_not_called()
        server.login.assert_not_called()

    @patch("smtplib.SMTP")
    def test_send_smtp_error(self, MockSMTP):
        server = _smtp(MockSMTP)
        server.sendmail.side_effect = smtplib.SMTPException("nope")
        result = EmailChannel("localhost", "dbqa@example.com").send(["x@example.com"], _content())
        assert result.success is False
        assert isinstance(result.error, NotificationDeliveryError)
        assert "nope" in result.message

    @patch("smtplib.SMTP")
    def test_send_connection_refused(self, MockSMTP):
        MockSMTP.side_effect = OSError("connection refused")
        result = EmailChannel("localhost", "dbqa@example.com").send(["x@example.com"], _content())
        assert result.success is False
        assert result.error.retryable is True

    @patch("smtplib.SMTP")
    def test_refused_recipients(self, MockSMTP):
        server = _smtp(MockSMTP)
        server.sendmail.return_value = {"y@example.com": (550, b"no such user")}
        result = EmailChannel("localhost", "dbqa@example.com").send(
            ["x@example.com", "y@example.com"], _content()
        )
        assert result.success is False
        assert "y@example.com" in result.message

    def test_no_recipients(self):
        result = EmailChannel("localhost", "dbqa@example.com").send([], _content())
        assert result.success is False


class TestSlackChannel:
    def test_destination(self):
        ch = SlackChannel()
        assert ch.destination_for(Alert(slack_webhook="https://hooks.slack.com/x")) == "https://hooks.slack.com/x"
        assert ch.destination_for(Alert()) is None

    def test_payload(self):
        payload = SlackChannel()._build_payload(_content())
        assert payload["username"] == "DB QA Alerts"
        attachment = payload["attachments"][0]
        assert attachment["color"] == "#d63f3f"
        assert attachment["text"] == "value=3 above max 0"
        assert {"title": "Verdict", "value": "fail", "short": True} in attachment["fields"]

    def test_resolved_payload_is_green(self):
        payload = SlackChannel()._build_payload(_content(NotificationEvent.RESOLVED))
        assert payload["attachments"][0]["color"] == "#36a64f"
        assert "resolved" in payload["text"]

    @patch("urllib.request.urlopen")
    def test_send_success(self, mock_urlopen):
        mock_urlopen.return_value = _response()
        result = SlackChannel().send("https://hooks.slack.com/x", _content())
        assert result.success is True
        request = mock_urlopen.call_args.args[0]
        assert request.full_url == "https://hooks.slack.com/x"
        assert request.get_method() == "POST"

    @patch("urllib.request.urlopen")
    def test_send_url_error(self, mock_urlopen):
        mock_urlopen.side_effect = urllib.error.URLError("refused")
        result = SlackChannel().send("https://hooks.slack.com/x", _content())
        assert result.success is False
        assert "refused" in result.message

    def test_send_without_webhook(self):
        assert SlackChannel().send("", _content()).success is False


class TestWebhookChannel:
    @patch("urllib.request.urlopen")
    def test_posts_snapshot(self, mock_urlopen):
        mock_urlopen.return_value = _response(202)
        ch = WebhookChannel(headers={"X-Token": "secret"}, timeout=3.0)
        result = ch.send("https://hooks.example.com/dq", _content())

        assert result.success is True
        assert result.response == {"status": 202}
        request = mock_urlopen.call_args.args[0]
        body = json.loads(request.data)
        assert body["event"] == "triggered"
        assert body["alert_id"] == "a-1"
        assert body["metrics"] == {"value": 3.0}
        assert request.get_header("X-token") == "secret"
        assert mock_urlopen.call_args.kwargs["timeout"] == 3.0

    @pytest.mark.parametrize("code, retryable", [(500, True), (429, True), (404, False)])
    @patch("urllib.request.urlopen")
    def test_http_errors(self, mock_urlopen, code, retryable):
        mock_urlopen.side_effect = urllib.error.HTTPError(
            "https://hooks.example.com/dq", code, "error", {}, None
        )
        result = WebhookChannel().send("https://hooks.example.com/dq", _content())
        assert result.success is False
        assert f"HTTP {code}" in result.message
        assert result.error.retryable is retryable

    def test_disable(self):
        ch = WebhookChannel()
        ch.disable()
        assert ch.enabled is False
        ch.enable()
        assert ch.enabled is True
