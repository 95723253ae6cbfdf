"""Scheduler service - beat-as-poller over the query store.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULER SERVICE                                                            │
│                                                                               │
│   backend ──tick()──►  list_due_queries(now)                                 │
│                           │                                                   │
│                           ▼  for each due query                               │
│                        try_acquire(id) ── busy ──► skip (counted)             │
│                           │                                                   │
│                           ▼                                                   │
│                        worker pool: runner.run(query, handle)                 │
│                           │                                                   │
│                           ▼  always                                           │
│                        mark_executed(id, started_at)                          │
│                        release(handle)                                        │
│                                                                               │
│   run_query_now(id) ── acquire(id) (waits) ──► runner.run ──► mark (no        │
│                                                 reschedule) ──► release      │
│                                                                               │
│   cancel_query / disable_query / delete_query ──► handle.cancel()            │
└──────────────────────────────────────────────────────────────────────────────┘

The tick itself never blocks on query execution: runs are handed to the
worker pool and a still-running query is simply skipped by later ticks.
Scheduled failures surface only through results and alerts; tick errors
are logged and counted, never raised into the backend.
"""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from dbqa.config import DbqaSettings, SchedulerBackendType
from dbqa.core.enums import ExecutionStatus, RunTrigger
from dbqa.core.errors import NotFoundError
from dbqa.core.frequency import ensure_utc, utcnow
from dbqa.core.models import Query
from dbqa.core.store import QueryStore, QueryUpdate
from dbqa.execution.inflight import InFlightRegistry, RunHandle
from dbqa.execution.runner import CheckRunner, RunReport
from dbqa.logging import get_logger, log_context
from dbqa.scheduling.protocol import SchedulerBackend

logger = get_logger(__name__)


@dataclass
class SchedulerStats:
    """Counters for the scheduler service."""

    tick_count: int = 0
    queries_submitted: int = 0
    queries_skipped: int = 0
    runs_completed: int = 0
    runs_errored: int = 0
    runs_crashed: int = 0
    manual_runs: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["last_tick"] = self.last_tick.isoformat() if self.last_tick else None
        return data


@dataclass
class SchedulerHealth:
    """Health status for the scheduler service."""

    healthy: bool
    backend: dict[str, Any]
    queries_enabled: int = 0
    in_flight: list[dict[str, Any]] = field(default_factory=list)
    last_tick: datetime | None = None
    stats: SchedulerStats = field(default_factory=SchedulerStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "queries_enabled": self.queries_enabled,
            "in_flight": self.in_flight,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "stats": self.stats.to_dict(),
        }


class SchedulerService:
    """Runs due queries on a fixed tick and serves manual runs.

    Example:
        >>> service = SchedulerService(ThreadSchedulerBackend(), store, runner)
        >>> service.start()
        >>> report = service.run_query_now(query.id)
        >>> report.result.status
        <ExecutionStatus.FAILURE: 'failure'>
        >>> service.stop()
    """

    def __init__(
        self,
        backend: SchedulerBackend,
        store: QueryStore,
        runner: CheckRunner,
        registry: InFlightRegistry | None = None,
        *,
        interval_seconds: float = 60.0,
        worker_pool_size: int = 4,
        cancel_wait_seconds: float = 5.0,
    ) -> None:
        self.backend = backend
        self.store = store
        self.runner = runner
        self.registry = registry if registry is not None else InFlightRegistry()
        self.interval = interval_seconds
        self._pool_size = max(1, worker_pool_size)
        self._cancel_wait = cancel_wait_seconds

        self._pool: ThreadPoolExecutor | None = None
        self._pool_lock = threading.Lock()
        self._stats = SchedulerStats()
        self._stats_lock = threading.Lock()
        self._running = False

    # === Lifecycle ===

    def start(self) -> None:
        if self._running:
            logger.warning("scheduler_already_running")
            return
        logger.info("scheduler_starting", backend=self.backend.name, interval=self.interval)
        self.backend.start(self.tick, self.interval)
        self._running = True

    def stop(self, cancel_running: bool = False) -> None:
        """Stop ticking and wait for submitted runs to finish."""
        if self._running:
            self.backend.stop()
            self._running = False
        if cancel_running:
            self.registry.cancel_all()
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=True)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _get_pool(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._pool_size, thread_name_prefix="dbqa-worker"
                )
            return self._pool

    def _count(self, **increments: int) -> None:
        with self._stats_lock:
            for name, amount in increments.items():
                setattr(self._stats, name, getattr(self._stats, name) + amount)

    # === Tick ===

    async def tick(self, now: datetime | None = None, wait: bool = False) -> list[str]:
        """Submit every due, idle query to the worker pool.

        Returns the submitted query ids. With ``wait`` the tick also waits
        for those runs to finish.
        """
        now = ensure_utc(now) or utcnow()
        with self._stats_lock:
            self._stats.tick_count += 1
            self._stats.last_tick = now

        futures: list[Future[None]] = []
        submitted: list[str] = []
        try:
            due = self.store.list_due_queries(now)
            if due:
                logger.info("scheduler_due_queries", count=len(due))
            for query in due:
                handle = self.registry.try_acquire(query.id, RunTrigger.SCHEDULE)
                if handle is None:
                    logger.debug("scheduler_query_busy", query_id=query.id)
                    self._count(queries_skipped=1)
                    continue
                try:
                    futures.append(self._get_pool().submit(self._run_scheduled, query.id, handle))
                except RuntimeError:
                    self.registry.release(handle)
                    raise
                submitted.append(query.id)
                self._count(queries_submitted=1)
        except Exception as e:
            with self._stats_lock:
                self._stats.last_error = str(e)
            logger.exception("scheduler_tick_failed", error=str(e))

        if wait and futures:
            await asyncio.gather(*(asyncio.wrap_future(f) for f in futures))
        return submitted

    def _run_scheduled(self, query_id: str, handle: RunHandle) -> None:
        handle.mark_started()
        with log_context(query_id=query_id, run_id=handle.run_id, trigger=handle.trigger.value):
            try:
                query = self.store.get_query(query_id)
                if query is None or not query.is_scheduled:
                    logger.info("scheduler_query_no_longer_scheduled")
                    return
                try:
                    report = self.runner.run(query, handle)
                    self._record_outcome(report)
                except Exception as e:
                    self._count(runs_crashed=1)
                    with self._stats_lock:
                        self._stats.last_error = str(e)
                    logger.exception("scheduled_run_crashed", error=str(e))
                finally:
                    self._mark_executed(query_id, handle, reschedule=True)
            finally:
                self.registry.release(handle)

    def _record_outcome(self, report: RunReport) -> None:
        if report.result.status == ExecutionStatus.ERROR:
            self._count(runs_errored=1)
        else:
            self._count(runs_completed=1)

    def _mark_executed(self, query_id: str, handle: RunHandle, *, reschedule: bool) -> Query | None:
        try:
            return self.store.mark_executed(query_id, handle.started_at, reschedule=reschedule)
        except NotFoundError:
            logger.info("query_deleted_during_run", query_id=query_id)
            return None

    # === Manual operations ===

    def run_query_now(
        self,
        query_id: str,
        wait: bool = True,
        timeout: float | None = None,
    ) -> RunReport:
        """Run a query immediately and return its report.

        Shares per-query serialization with the tick: waits for an
        in-flight run (up to ``timeout``), or raises ``QueryBusyError``
        at once when ``wait`` is false. Manual runs set the last execution
        time but do not move the schedule.

        Raises:
            NotFoundError: Unknown query id.
            QueryBusyError: The query is still running.
        """
        self.store.require_query(query_id)
        with self.registry.claim(query_id, RunTrigger.MANUAL, wait=wait, timeout=timeout) as handle:
            query = self.store.require_query(query_id)
            try:
                report = self.runner.run(query, handle)
            finally:
                self._mark_executed(query_id, handle, reschedule=False)
        self._count(manual_runs=1)
        self._record_outcome(report)
        return report

    def cancel_query(self, query_id: str) -> bool:
        """Cancel the in-flight run of a query; False if nothing was running."""
        cancelled = self.registry.cancel(query_id)
        if cancelled:
            logger.info("query_run_cancelled", query_id=query_id)
        return cancelled

    def disable_query(self, query_id: str) -> Query:
        query = self.store.update_query(query_id, QueryUpdate(enabled=False))
        self.cancel_query(query_id)
        return query

    def delete_query(self, query_id: str) -> bool:
        """Cancel any in-flight run, wait for it to wind down, then delete."""
        handle = self.registry.get(query_id)
        if handle is not None:
            handle.cancel()
            if not handle.wait(self._cancel_wait):
                logger.warning("query_run_still_active_on_delete", query_id=query_id)
        return self.store.delete_query(query_id)

    # === Health & Stats ===

    def health(self) -> SchedulerHealth:
        backend_health = self.backend.health()
        return SchedulerHealth(
            healthy=self._running and bool(backend_health.get("healthy", False)),
            backend=backend_health,
            queries_enabled=self.store.count_queries(enabled=True),
            in_flight=[h.to_dict() for h in self.registry.active()],
            last_tick=self._stats.last_tick,
            stats=self._stats,
        )

    def get_stats(self) -> SchedulerStats:
        return self._stats

    def reset_stats(self) -> None:
        with self._stats_lock:
            self._stats = SchedulerStats()


def create_backend(backend_type: SchedulerBackendType | str) -> SchedulerBackend:
    backend_type = SchedulerBackendType(backend_type)
    if backend_type == SchedulerBackendType.APSCHEDULER:
        from dbqa.scheduling.apscheduler_backend import APSchedulerBackend

        return APSchedulerBackend()
    from dbqa.scheduling.thread_backend import ThreadSchedulerBackend

    return ThreadSchedulerBackend()


def create_scheduler(
    settings: DbqaSettings,
    store: QueryStore,
    runner: CheckRunner,
    registry: InFlightRegistry | None = None,
    backend: SchedulerBackend | None = None,
) -> SchedulerService:
    """Build a scheduler service from settings."""
    return SchedulerService(
        backend or create_backend(settings.scheduler_backend),
        store,
        runner,
        registry,
        interval_seconds=settings.scheduler_interval_seconds,
        worker_pool_size=settings.worker_pool_size,
    )
