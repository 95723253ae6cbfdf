"""Tests for execution frequency arithmetic."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from dbqa.core.enums import ExecutionFrequency
from dbqa.core.frequency import (
    ensure_utc,
    initial_next_execution,
    interval_for,
    next_execution_after,
)

START = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestIntervals:
    @pytest.mark.parametrize(
        "frequency, interval",
        [
            ("hourly", timedelta(hours=1)),
            ("daily", timedelta(days=1)),
            ("weekly", timedelta(days=7)),
            ("monthly", timedelta(days=30)),
        ],
    )
    def test_interval(self, frequency, interval):
        assert interval_for(frequency) == interval
        assert next_execution_after(frequency, START) == START + interval

    def test_manual_has_no_interval(self):
        assert interval_for(ExecutionFrequency.MANUAL) is None
        assert next_execution_after("manual", START) is None

    def test_disabled_has_no_next_run(self):
        assert next_execution_after("hourly", START, enabled=False) is None

    def test_unknown_frequency(self):
        with pytest.raises(ValueError):
            interval_for("fortnightly")


class TestInitialNextExecution:
    def test_due_immediately(self):
        assert initial_next_execution("daily", now=START) == START

    def test_manual_or_disabled(self):
        assert initial_next_execution("manual", now=START) is None
        assert initial_next_execution("daily", enabled=False, now=START) is None


class TestEnsureUtc:
    def test_naive_is_utc(self):
        assert ensure_utc(datetime(2026, 1, 1, 8, 0)) == datetime(2026, 1, 1, 8, 0, tzinfo=UTC)

    def test_aware_is_converted(self):
        plus_two = timezone(timedelta(hours=2))
        value = ensure_utc(datetime(2026, 1, 1, 10, 0, tzinfo=plus_two))
        assert value == datetime(2026, 1, 1, 8, 0, tzinfo=UTC)
        assert value.tzinfo == UTC

    def test_none(self):
        assert ensure_utc(None) is None
