"""Execution frequency arithmetic.

A scheduled query's next run is always its run start plus a fixed
interval. Months are a fixed 30 days so the gap between
``last_execution_time`` and ``next_execution_time`` is the same for every
run of a query.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from dbqa.core.enums import ExecutionFrequency

FREQUENCY_INTERVALS: dict[ExecutionFrequency, timedelta] = {
    ExecutionFrequency.HOURLY: timedelta(hours=1),
    ExecutionFrequency.DAILY: timedelta(days=1),
    ExecutionFrequency.WEEKLY: timedelta(days=7),
    ExecutionFrequency.MONTHLY: timedelta(days=30),
}


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def interval_for(frequency: ExecutionFrequency | str) -> timedelta | None:
    """Interval for a frequency, or ``None`` for manual queries."""
    return FREQUENCY_INTERVALS.get(ExecutionFrequency(frequency))


def next_execution_after(
    frequency: ExecutionFrequency | str,
    started_at: datetime,
    enabled: bool = True,
) -> datetime | None:
    """Next run time for a query that started a run at ``started_at``.

    Returns ``None`` when the query is manual or disabled.
    """
    if not enabled:
        return None
    interval = interval_for(frequency)
    if interval is None:
        return None
    return ensure_utc(started_at) + interval


def initial_next_execution(
    frequency: ExecutionFrequency | str,
    enabled: bool = True,
    now: datetime | None = None,
) -> datetime | None:
    """First run time for a newly scheduled query: due immediately."""
    if not enabled or interval_for(frequency) is None:
        return None
    return ensure_utc(now) if now is not None else utcnow()


__all__ = [
    "FREQUENCY_INTERVALS",
    "utcnow",
    "ensure_utc",
    "interval_for",
    "next_execution_after",
    "initial_next_execution",
]
