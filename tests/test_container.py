"""Tests for DbqaContainer wiring and lifecycle."""

from __future__ import annotations

from unittest.mock import MagicMock

from dbqa.alerting.channels import EmailChannel
from dbqa.config import DbqaSettings
from dbqa.container import DbqaContainer
from dbqa.core.enums import ExecutionStatus
from dbqa.core.models import Query
from dbqa.scheduling import ThreadSchedulerBackend

from tests._support.fakes import FakeResolver


class TestWiring:
    def test_components_are_lazy_and_cached(self, settings):
        container = DbqaContainer(settings)
        assert container._store is None
        assert container.store is container.store
        assert container.runner is container.runner
        assert container.scheduler.registry is container.registry
        container.close()

    def test_settings_flow_through(self, tmp_path):
        settings = DbqaSettings(
            _env_file=None,
            database_url=f"sqlite:///{tmp_path / 'c.db'}",
            query_timeout_seconds=7,
            result_row_limit=10,
            scheduler_interval_seconds=15,
            notify_on_resolve=True,
            smtp_host="mail.example.com",
            smtp_port=2525,
        )
        with DbqaContainer(settings) as container:
            assert container.executor.timeout_for(Query()) == 7.0
            assert container.executor._row_limit == 10
            assert container.scheduler.interval == 15
            assert isinstance(container.scheduler.backend, ThreadSchedulerBackend)
            assert container.alert_engine._notify_on_resolve is True
            assert container.dispatcher.list_channels() == ["email", "slack", "webhook"]
            email = container.dispatcher.get("email")
            assert isinstance(email, EmailChannel)
            assert email._smtp_host == "mail.example.com"
            assert email._smtp_port == 2525

    def test_injected_resolver_and_backend(self, settings, make_query):
        backend = MagicMock()
        backend.name = "mock"
        with DbqaContainer(settings, resolver=FakeResolver([{"count": 0}]), backend=backend) as container:
            assert container.scheduler.backend is backend
            report = container.scheduler.run_query_now(make_query().id)
            assert report.result.status == ExecutionStatus.SUCCESS


class TestLifecycle:
    def test_close_stops_running_scheduler(self, settings):
        backend = MagicMock()
        backend.name = "mock"
        container = DbqaContainer(settings, backend=backend)
        container.scheduler.start()
        container.close()
        backend.stop.assert_called_once()
        assert container.scheduler.is_running is False

    def test_close_without_use(self, settings):
        DbqaContainer(settings).close()
