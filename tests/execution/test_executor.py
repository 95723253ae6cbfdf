"""Tests for QueryExecutor."""

from __future__ import annotations

import threading
import time
from datetime import UTC, datetime

import pytest

from dbqa.connections import SQLAlchemyConnectionResolver
from dbqa.core.enums import ExecutionStatus
from dbqa.core.errors import ConnectionUnavailable, ExecutionError, ExecutionTimeout, RunCancelled
from dbqa.core.models import Query
from dbqa.execution import QueryExecutor, RunHandle, build_payload

from tests._support.fakes import FakeResolver

STARTED = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _query(**kwargs) -> Query:
    return Query(id="q-1", connection_id="c-1", name="check", query="SELECT 1", **kwargs)


class TestExecute:
    def test_success_builds_draft(self):
        resolver = FakeResolver([{"count": 3}])
        outcome = QueryExecutor(resolver).execute(_query(), started_at=STARTED)

        assert outcome.succeeded
        assert outcome.rows == [{"count": 3}]
        result = outcome.result
        assert result.id == ""
        assert result.status == ExecutionStatus.SUCCESS
        assert result.execution_time == STARTED
        assert result.result == {"rows": [{"count": 3}], "row_count": 1, "truncated": False}
        assert result.execution_duration >= 0
        assert resolver.closed == 1

    def test_real_sqlite_source(self, store, make_query):
        query = make_query()
        outcome = QueryExecutor(SQLAlchemyConnectionResolver(store)).execute(query)
        assert outcome.succeeded
        assert outcome.rows == [{"count": 3}]

    def test_sql_error(self, store, make_query):
        query = make_query(query="SELECT * FROM no_such_table")
        outcome = QueryExecutor(SQLAlchemyConnectionResolver(store)).execute(query)

        assert not outcome.succeeded
        assert isinstance(outcome.error, ExecutionError)
        assert outcome.result.status == ExecutionStatus.ERROR
        assert outcome.result.result is None
        assert outcome.result.metrics == {"error_type": "ExecutionError"}
        assert "no_such_table" in outcome.result.error_message

    def test_unknown_connection(self, store):
        outcome = QueryExecutor(SQLAlchemyConnectionResolver(store)).execute(_query())
        assert isinstance(outcome.error, ConnectionUnavailable)
        assert outcome.result.metrics["error_type"] == "ConnectionUnavailable"

    def test_os_error_is_connection_unavailable(self):
        resolver = FakeResolver(resolve_error=ConnectionRefusedError("refused"))
        outcome = QueryExecutor(resolver).execute(_query())
        assert isinstance(outcome.error, ConnectionUnavailable)
        assert outcome.error.context.connection_id == "c-1"

    def test_unexpected_error_is_execution_error(self):
        outcome = QueryExecutor(FakeResolver(error=ValueError("bad cast"))).execute(_query())
        assert isinstance(outcome.error, ExecutionError)
        assert outcome.result.error_message == "bad cast"


class TestTimeout:
    def test_query_timeout(self):
        resolver = FakeResolver(delay=1.0)
        start = time.monotonic()
        outcome = QueryExecutor(resolver, default_timeout=0.1).execute(_query())

        assert time.monotonic() - start < 0.8
        assert isinstance(outcome.error, ExecutionTimeout)
        assert outcome.result.status == ExecutionStatus.ERROR
        assert outcome.result.error_message == "Query timed out after 0.1s"
        assert outcome.result.metrics == {"error_type": "ExecutionTimeout"}

    def test_per_query_timeout_wins(self):
        executor = QueryExecutor(FakeResolver(), default_timeout=30)
        assert executor.timeout_for(_query(timeout_seconds=2)) == 2.0
        assert executor.timeout_for(_query()) == 30.0


class TestCancellation:
    def test_cancelled_before_start(self):
        handle = RunHandle(query_id="q-1")
        handle.cancel()
        resolver = FakeResolver()
        outcome = QueryExecutor(resolver).execute(_query(), handle)
        assert isinstance(outcome.error, RunCancelled)
        assert resolver.calls == []

    def test_cancelled_while_running(self):
        handle = RunHandle(query_id="q-1")
        threading.Timer(0.1, handle.cancel).start()
        start = time.monotonic()
        outcome = QueryExecutor(FakeResolver(delay=1.0), default_timeout=5).execute(_query(), handle)

        assert time.monotonic() - start < 0.8
        assert isinstance(outcome.error, RunCancelled)
        assert outcome.result.error_message == "Run cancelled"


class TestBuildPayload:
    def test_truncates(self):
        payload = build_payload([{"i": i} for i in range(5)], row_limit=2)
        assert payload == {"rows": [{"i": 0}, {"i": 1}], "row_count": 5, "truncated": True}

    def test_zero_limit_keeps_count_only(self):
        assert build_payload([{"i": 1}], row_limit=0)["rows"] == []

    @pytest.mark.parametrize(
        "value, expected",
        [
            (b"\x00\x01", "AAE="),
            (datetime(2026, 1, 1, tzinfo=UTC), "2026-01-01T00:00:00+00:00"),
        ],
    )
    def test_values_are_json_safe(self, value, expected):
        assert build_payload([{"v": value}], row_limit=10)["rows"][0]["v"] == expected
