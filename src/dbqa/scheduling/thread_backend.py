"""Threading-based scheduler backend (the default).

One daemon thread keeps a fixed cadence measured on the monotonic clock:
tick ``n`` is due at ``start + n * interval`` regardless of how long
earlier ticks took. A tick that overruns one or more slots does not cause
a burst of catch-up ticks; the skipped slots are counted as missed.

Each tick runs the async callback to completion with ``asyncio.run``, so
ticks never overlap. ``stop()`` returns once the current tick has
finished or the join timeout expires.
"""

from __future__ import annotations

import asyncio
import threading
import time
from datetime import datetime
from typing import Any

from dbqa.core.frequency import utcnow
from dbqa.logging import get_logger
from dbqa.scheduling.protocol import BackendHealth, TickCallback

logger = get_logger(__name__)


class ThreadSchedulerBackend:
    """Daemon-thread scheduler backend.

    Example:
        >>> backend = ThreadSchedulerBackend()
        >>> backend.start(service.tick, interval_seconds=60.0)
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self, join_timeout: float = 5.0) -> None:
        self._join_timeout = join_timeout
        self._halt = threading.Event()
        self._worker: threading.Thread | None = None
        self._callback: TickCallback | None = None
        self._interval = 60.0
        self._ticks = 0
        self._missed = 0
        self._last_tick: datetime | None = None
        self._last_duration: float | None = None
        self._lock = threading.Lock()

    def start(self, tick_callback: TickCallback, interval_seconds: float = 60.0) -> None:
        if self.is_running:
            logger.warning("scheduler_backend_already_started", backend=self.name)
            return
        self._callback = tick_callback
        self._interval = interval_seconds
        self._halt.clear()
        self._worker = threading.Thread(target=self._run, name="dbqa-scheduler", daemon=True)
        self._worker.start()
        logger.info("scheduler_backend_started", backend=self.name, interval=interval_seconds)

    def _run(self) -> None:
        due = time.monotonic() + self._interval
        while not self._halt.wait(max(0.0, due - time.monotonic())):
            self._fire()
            due += self._interval
            lag = time.monotonic() - due
            if lag >= 0:
                skipped = int(lag // self._interval) + 1
                with self._lock:
                    self._missed += skipped
                due += skipped * self._interval
                logger.warning("scheduler_ticks_missed", backend=self.name, missed=skipped)
        logger.info("scheduler_backend_stopped", backend=self.name)

    def _fire(self) -> None:
        assert self._callback is not None
        began = time.monotonic()
        with self._lock:
            self._ticks += 1
            self._last_tick = utcnow()
        try:
            asyncio.run(self._callback())
        except Exception as e:
            logger.exception("scheduler_tick_crashed", backend=self.name, error=str(e))
        self._last_duration = time.monotonic() - began

    def stop(self) -> None:
        worker, self._worker = self._worker, None
        if worker is None:
            return
        self._halt.set()
        worker.join(timeout=self._join_timeout)
        if worker.is_alive():
            logger.warning("scheduler_thread_not_stopped", backend=self.name)

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    @property
    def tick_count(self) -> int:
        return self._ticks

    @property
    def missed_ticks(self) -> int:
        return self._missed

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick

    def get_health(self) -> BackendHealth:
        extra: dict[str, Any] = {"interval_seconds": self._interval, "missed_ticks": self._missed}
        if self._last_duration is not None:
            extra["last_tick_duration_ms"] = round(self._last_duration * 1000, 1)
        return BackendHealth(
            healthy=self.is_running,
            backend=self.name,
            tick_count=self._ticks,
            last_tick=self._last_tick,
            extra=extra,
        )

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()
