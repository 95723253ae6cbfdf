"""Scheduler backend driven by an APScheduler 3.x ``BackgroundScheduler``.

The tick is registered as a single interval job with ``max_instances=1``
and ``coalesce=True``: APScheduler never starts a tick while the previous
one is still running, and slots skipped that way are reported through
``EVENT_JOB_MISSED`` and counted like the thread backend counts them.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

from apscheduler.events import EVENT_JOB_MISSED, JobEvent
from apscheduler.schedulers.background import BackgroundScheduler

from dbqa.core.frequency import utcnow
from dbqa.logging import get_logger
from dbqa.scheduling.protocol import BackendHealth, TickCallback

logger = get_logger(__name__)

_JOB_ID = "dbqa_scheduler_tick"


class APSchedulerBackend:
    """Backend for deployments that already run APScheduler.

    An existing ``BackgroundScheduler`` may be passed in; otherwise a
    UTC one is created.
    """

    name: str = "apscheduler"

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self._scheduler = scheduler if scheduler is not None else BackgroundScheduler(timezone="UTC")
        self._scheduler.add_listener(self._on_missed, EVENT_JOB_MISSED)
        self._callback: TickCallback | None = None
        self._interval = 60.0
        self._ticks = 0
        self._missed = 0
        self._last_tick: datetime | None = None

    def start(self, tick_callback: TickCallback, interval_seconds: float = 60.0) -> None:
        self._callback = tick_callback
        self._interval = interval_seconds
        self._scheduler.add_job(
            self._run_tick,
            "interval",
            seconds=interval_seconds,
            id=_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=max(1, int(interval_seconds)),
        )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("scheduler_backend_started", backend=self.name, interval=interval_seconds)

    def _run_tick(self) -> None:
        assert self._callback is not None
        self._ticks += 1
        self._last_tick = utcnow()
        try:
            asyncio.run(self._callback())
        except Exception as e:
            logger.exception("scheduler_tick_crashed", backend=self.name, error=str(e))

    def _on_missed(self, event: JobEvent) -> None:
        if event.job_id == _JOB_ID:
            self._missed += 1
            logger.warning("scheduler_ticks_missed", backend=self.name, missed=1)

    def stop(self) -> None:
        if not self._scheduler.running:
            return
        self._scheduler.shutdown(wait=True)
        logger.info("scheduler_backend_stopped", backend=self.name)

    @property
    def tick_count(self) -> int:
        return self._ticks

    @property
    def missed_ticks(self) -> int:
        return self._missed

    def get_health(self) -> BackendHealth:
        running = bool(self._scheduler.running)
        return BackendHealth(
            healthy=running,
            backend=self.name,
            tick_count=self._ticks,
            last_tick=self._last_tick,
            extra={
                "interval_seconds": self._interval,
                "missed_ticks": self._missed,
                "scheduled_jobs": len(self._scheduler.get_jobs()) if running else 0,
            },
        )

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()
