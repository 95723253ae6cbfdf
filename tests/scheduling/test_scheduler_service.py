"""Tests for SchedulerService: ticks, manual runs, cancellation and health."""

from __future__ import annotations

import threading
import time
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from dbqa.config import DbqaSettings, SchedulerBackendType
from dbqa.core.enums import ExecutionStatus, RunTrigger
from dbqa.core.errors import NotFoundError, QueryBusyError
from dbqa.core.frequency import interval_for, utcnow
from dbqa.core.store import QueryCreate
from dbqa.execution import InFlightRegistry
from dbqa.scheduling import SchedulerService, ThreadSchedulerBackend, create_backend, create_scheduler

from tests._support.fakes import FakeResolver


@pytest.fixture
def backend():
    backend = MagicMock()
    backend.name = "mock"
    backend.health.return_value = {"healthy": True, "backend": "mock"}
    return backend


@pytest.fixture
def service_factory(store, runner_factory, backend):
    services = []

    def _make(resolver=None, **kwargs):
        service = SchedulerService(backend, store, runner_factory(resolver), **kwargs)
        services.append(service)
        return service

    yield _make
    for service in services:
        service.stop(cancel_running=True)


@pytest.fixture
def service(service_factory):
    return service_factory()


def _scheduled(store, connection, name="hourly check", frequency="hourly", **kwargs):
    return store.create_query(
        QueryCreate(
            name=name,
            connection_id=connection.id,
            query="SELECT count(*) AS count FROM orders WHERE total < 0",
            thresholds={"max": 0},
            execution_frequency=frequency,
            **kwargs,
        ),
        now=utcnow() - timedelta(minutes=1),
    )


class TestTick:
    async def test_runs_due_queries_and_reschedules(self, service, store, connection):
        queries = [
            _scheduled(store, connection, name=f, frequency=f)
            for f in ("hourly", "daily", "weekly", "monthly")
        ]

        submitted = await service.tick(wait=True)

        assert sorted(submitted) == sorted(q.id for q in queries)
        for query in queries:
            reloaded = store.get_query(query.id)
            assert reloaded.last_execution_time is not None
            gap = reloaded.next_execution_time - reloaded.last_execution_time
            assert gap == interval_for(query.execution_frequency)
            [result] = store.list_results(query.id)
            assert result.status == ExecutionStatus.FAILURE
            assert result.execution_time == reloaded.last_execution_time

    async def test_manual_queries_are_never_scanned(self, service, store, make_query):
        manual = make_query()
        assert await service.tick(wait=True) == []
        assert store.list_results(manual.id) == []
        assert store.get_query(manual.id).last_execution_time is None

    async def test_not_due_yet(self, service, store, connection):
        query = _scheduled(store, connection)
        now = utcnow()
        store.mark_executed(query.id, now)
        assert await service.tick(now=now + timedelta(minutes=30), wait=True) == []

    async def test_disabled_queries_are_skipped(self, service, store, connection):
        _scheduled(store, connection, enabled=False)
        assert await service.tick(wait=True) == []

    async def test_busy_query_is_skipped(self, service, store, connection):
        query = _scheduled(store, connection)
        handle = service.registry.try_acquire(query.id, RunTrigger.MANUAL)

        assert await service.tick(wait=True) == []
        assert service.get_stats().queries_skipped == 1
        assert store.list_results(query.id) == []

        service.registry.release(handle)
        assert await service.tick(wait=True) == [query.id]

    async def test_execution_error_still_reschedules(self, service_factory, store, connection):
        service = service_factory(FakeResolver(error=RuntimeError("boom")))
        query = _scheduled(store, connection)

        await service.tick(wait=True)

        reloaded = store.get_query(query.id)
        assert reloaded.next_execution_time - reloaded.last_execution_time == timedelta(hours=1)
        assert store.latest_result(query.id).status == ExecutionStatus.ERROR
        assert service.get_stats().runs_errored == 1

    async def test_tick_does_not_block_on_runs(self, service_factory, store, connection):
        service = service_factory(FakeResolver(delay=0.5))
        query = _scheduled(store, connection)

        start = time.monotonic()
        assert await service.tick() == [query.id]
        assert time.monotonic() - start < 0.4
        assert query.id in service.registry

        assert await service.tick() == []
        assert service.get_stats().queries_skipped == 1

    async def test_start_time_excludes_queue_wait(self, service_factory, store, connection):
        service = service_factory(FakeResolver(delay=0.3), worker_pool_size=1)
        first = _scheduled(store, connection, "first")
        second = _scheduled(store, connection, "second")

        submitted = await service.tick(wait=True)

        assert sorted(submitted) == sorted([first.id, second.id])
        started = sorted(store.get_query(q.id).last_execution_time for q in (first, second))
        assert started[1] - started[0] >= timedelta(seconds=0.25)

    async def test_store_failure_is_counted_not_raised(self, service, store):
        store.list_due_queries = MagicMock(side_effect=RuntimeError("store down"))
        assert await service.tick() == []
        assert service.get_stats().last_error == "store down"
        assert service.get_stats().tick_count == 1

    async def test_query_disabled_before_run_is_skipped(self, service, store, connection):
        query = _scheduled(store, connection)
        service.disable_query(query.id)
        handle = service.registry.try_acquire(query.id)
        service._run_scheduled(query.id, handle)
        assert store.list_results(query.id) == []
        assert query.id not in service.registry


class TestRunQueryNow:
    def test_manual_query(self, service, store, make_query):
        query = make_query()
        report = service.run_query_now(query.id)

        assert report.result.status == ExecutionStatus.FAILURE
        reloaded = store.get_query(query.id)
        assert reloaded.last_execution_time == report.result.execution_time
        assert reloaded.next_execution_time is None
        assert service.get_stats().manual_runs == 1

    def test_keeps_schedule_of_scheduled_query(self, service, store, connection):
        query = _scheduled(store, connection, frequency="daily")
        now = utcnow()
        store.mark_executed(query.id, now)

        service.run_query_now(query.id)

        reloaded = store.get_query(query.id)
        assert reloaded.next_execution_time == now + timedelta(days=1)
        assert reloaded.last_execution_time > now

    def test_error_is_returned_not_raised(self, service_factory, make_query):
        service = service_factory(FakeResolver(resolve_error=OSError("unreachable")))
        report = service.run_query_now(make_query().id)
        assert report.result.status == ExecutionStatus.ERROR
        assert report.result.metrics["error_type"] == "ConnectionUnavailable"

    def test_unknown_query(self, service):
        with pytest.raises(NotFoundError):
            service.run_query_now("missing")

    def test_busy_without_wait(self, service, make_query):
        query = make_query()
        service.registry.try_acquire(query.id)
        with pytest.raises(QueryBusyError):
            service.run_query_now(query.id, wait=False)

    def test_waits_for_in_flight_run(self, service, store, make_query):
        query = make_query()
        handle = service.registry.try_acquire(query.id)
        threading.Timer(0.1, service.registry.release, args=[handle]).start()

        report = service.run_query_now(query.id, timeout=2)

        assert report.result.status == ExecutionStatus.FAILURE
        assert query.id not in service.registry


class TestCancellation:
    def test_cancel_in_flight_manual_run(self, service_factory, store, make_query):
        service = service_factory(FakeResolver(delay=1.0))
        query = make_query()
        reports = []
        worker = threading.Thread(target=lambda: reports.append(service.run_query_now(query.id)))
        worker.start()
        deadline = time.monotonic() + 2
        while query.id not in service.registry and time.monotonic() < deadline:
            time.sleep(0.01)

        assert service.cancel_query(query.id) is True
        worker.join(2)

        [report] = reports
        assert report.cancelled is True
        assert store.latest_result(query.id).error_message == "Run cancelled"

    def test_cancel_idle_query(self, service, make_query):
        assert service.cancel_query(make_query().id) is False

    def test_disable_cancels(self, service, store, connection):
        query = _scheduled(store, connection)
        handle = service.registry.try_acquire(query.id)
        disabled = service.disable_query(query.id)
        assert disabled.enabled is False
        assert disabled.next_execution_time is None
        assert handle.cancelled is True

    async def test_delete_during_run(self, service_factory, store, connection):
        service = service_factory(FakeResolver(delay=1.0), cancel_wait_seconds=2.0)
        query = _scheduled(store, connection)
        await service.tick()

        assert service.delete_query(query.id) is True
        assert store.get_query(query.id) is None
        assert query.id not in service.registry


class TestLifecycle:
    def test_start_stop(self, service, backend):
        service.start()
        assert service.is_running is True
        backend.start.assert_called_once_with(service.tick, service.interval)
        service.start()
        assert backend.start.call_count == 1
        service.stop()
        assert service.is_running is False
        backend.stop.assert_called_once()

    def test_health(self, service, store, connection):
        _scheduled(store, connection)
        service.start()
        health = service.health().to_dict()
        assert health["healthy"] is True
        assert health["queries_enabled"] == 1
        assert health["backend"]["backend"] == "mock"
        assert health["stats"]["tick_count"] == 0

    def test_unhealthy_when_stopped(self, service):
        assert service.health().healthy is False

    def test_reset_stats(self, service):
        service._count(runs_completed=2)
        service.reset_stats()
        assert service.get_stats().runs_completed == 0


class TestFactories:
    def test_create_backend(self):
        assert isinstance(create_backend("thread"), ThreadSchedulerBackend)
        assert create_backend(SchedulerBackendType.APSCHEDULER).name == "apscheduler"

    def test_create_scheduler_from_settings(self, store, runner_factory):
        settings = DbqaSettings(_env_file=None, scheduler_interval_seconds=5, worker_pool_size=3)
        registry = InFlightRegistry()
        service = create_scheduler(settings, store, runner_factory(), registry)
        assert service.interval == 5
        assert service.registry is registry
        assert service.backend.name == "thread"

    def test_empty_shared_registry_is_kept(self, service_factory, store, connection):
        shared = InFlightRegistry()
        assert len(shared) == 0
        first = service_factory(registry=shared)
        second = service_factory(registry=shared)
        assert first.registry is shared
        assert second.registry is shared

        query = _scheduled(store, connection)
        handle = shared.try_acquire(query.id, RunTrigger.MANUAL)
        try:
            with pytest.raises(QueryBusyError):
                second.run_query_now(query.id, wait=False)
        finally:
            shared.release(handle)


class TestWithThreadBackend:
    @pytest.mark.slow
    def test_backend_drives_ticks(self, store, runner_factory, connection):
        query = _scheduled(store, connection)
        service = SchedulerService(
            ThreadSchedulerBackend(), store, runner_factory(), interval_seconds=0.05
        )
        service.start()
        try:
            deadline = time.monotonic() + 5
            while store.latest_result(query.id) is None and time.monotonic() < deadline:
                time.sleep(0.05)
        finally:
            service.stop()

        assert store.latest_result(query.id) is not None
        assert service.get_stats().tick_count >= 1
        assert store.get_query(query.id).next_execution_time > datetime.now(UTC)
