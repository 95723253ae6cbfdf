"""Contract between the scheduler service and its timing backends.

A backend owns the clock and nothing else. Every ``interval_seconds`` it
awaits the service's ``tick`` coroutine; the service decides which queries
are due, claims them in the in-flight registry, hands them to the worker
pool and advances their next run time.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Anything with a ``name`` that can start, stop and report health.

    ``stop()`` must not return while a tick is still running, so the
    service can shut its worker pool down right after.
    """

    name: str

    def start(self, tick_callback: TickCallback, interval_seconds: float = 60.0) -> None: ...

    def stop(self) -> None: ...

    def health(self) -> dict[str, Any]: ...


@dataclass(frozen=True)
class BackendHealth:
    """Health snapshot; ``extra`` carries backend-specific keys."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload.update(
            healthy=self.healthy,
            backend=self.backend,
            tick_count=self.tick_count,
            last_tick=None if self.last_tick is None else self.last_tick.isoformat(),
        )
        return payload
