"""In-flight run registry.

At most one run per query id is in flight at any time, whether it was
started by the scheduler tick or by a manual trigger. The registry is the
only shared mutable state between those paths and is guarded by a single
condition variable.

┌──────────────────────────────────────────────────────────────────────────────┐
│   tick ─────► try_acquire(id) ──► None: skip this tick                       │
│                                └─► RunHandle ──► run ──► release            │
│                                                                               │
│   run_query_now ─► acquire(id) ──► waits for the running handle, then runs   │
│                                                                               │
│   cancel(id) ─► handle.cancel() ──► run observes it between stages           │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from dbqa.core.enums import RunTrigger
from dbqa.core.errors import QueryBusyError, RunCancelled
from dbqa.core.frequency import utcnow


@dataclass
class RunHandle:
    """Handle on one in-flight run; lets other threads cancel it."""

    query_id: str
    trigger: RunTrigger = RunTrigger.SCHEDULE
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = field(default_factory=utcnow)
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)
    _done: threading.Event = field(default_factory=threading.Event, repr=False)

    def mark_started(self, at: datetime | None = None) -> None:
        """Restamp ``started_at`` when the run leaves the worker queue."""
        self.started_at = at or utcnow()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise RunCancelled().with_context(query_id=self.query_id, run_id=self.run_id)

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for the run to finish."""
        return self._done.wait(timeout)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query_id": self.query_id,
            "run_id": self.run_id,
            "trigger": self.trigger.value,
            "started_at": self.started_at.isoformat(),
            "cancelled": self.cancelled,
        }


class InFlightRegistry:
    """Tracks the in-flight run of each query id."""

    def __init__(self) -> None:
        self._runs: dict[str, RunHandle] = {}
        self._cond = threading.Condition()

    def try_acquire(
        self, query_id: str, trigger: RunTrigger = RunTrigger.SCHEDULE
    ) -> RunHandle | None:
        """Claim ``query_id`` if nothing is running for it, else ``None``."""
        with self._cond:
            if query_id in self._runs:
                return None
            handle = RunHandle(query_id=query_id, trigger=trigger)
            self._runs[query_id] = handle
            return handle

    def acquire(
        self,
        query_id: str,
        trigger: RunTrigger = RunTrigger.MANUAL,
        timeout: float | None = None,
    ) -> RunHandle:
        """Claim ``query_id``, waiting for a running handle to finish.

        Raises:
            QueryBusyError: Still busy after ``timeout`` seconds.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: query_id not in self._runs, timeout):
                raise QueryBusyError(
                    f"Query {query_id} is already running"
                ).with_context(query_id=query_id, run_id=self._runs[query_id].run_id)
            handle = RunHandle(query_id=query_id, trigger=trigger)
            self._runs[query_id] = handle
            return handle

    def release(self, handle: RunHandle) -> None:
        with self._cond:
            if self._runs.get(handle.query_id) is handle:
                del self._runs[handle.query_id]
            handle._done.set()
            self._cond.notify_all()

    @contextmanager
    def claim(
        self,
        query_id: str,
        trigger: RunTrigger = RunTrigger.MANUAL,
        wait: bool = True,
        timeout: float | None = None,
    ) -> Iterator[RunHandle]:
        """Context manager around ``acquire``/``release``.

        With ``wait=False`` a busy query raises ``QueryBusyError`` at once.
        """
        if wait:
            handle = self.acquire(query_id, trigger, timeout)
        else:
            handle = self.try_acquire(query_id, trigger)
            if handle is None:
                raise QueryBusyError(f"Query {query_id} is already running").with_context(
                    query_id=query_id
                )
        try:
            yield handle
        finally:
            self.release(handle)

    def get(self, query_id: str) -> RunHandle | None:
        with self._cond:
            return self._runs.get(query_id)

    def cancel(self, query_id: str) -> bool:
        """Cancel the in-flight run of ``query_id``; False if none."""
        with self._cond:
            handle = self._runs.get(query_id)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> int:
        with self._cond:
            handles = list(self._runs.values())
        for handle in handles:
            handle.cancel()
        return len(handles)

    def active(self) -> list[RunHandle]:
        with self._cond:
            return list(self._runs.values())

    def __len__(self) -> int:
        with self._cond:
            return len(self._runs)

    def __contains__(self, query_id: object) -> bool:
        with self._cond:
            return query_id in self._runs
