"""
Scheduling for quality-check queries.

Usage:
    from dbqa.scheduling import SchedulerService, ThreadSchedulerBackend

    service = SchedulerService(ThreadSchedulerBackend(), store, runner, interval_seconds=60)
    service.start()
    ...
    service.stop()
"""

from dbqa.scheduling.protocol import BackendHealth, SchedulerBackend, TickCallback
from dbqa.scheduling.service import (
    SchedulerHealth,
    SchedulerService,
    SchedulerStats,
    create_backend,
    create_scheduler,
)
from dbqa.scheduling.thread_backend import ThreadSchedulerBackend

__all__ = [
    "BackendHealth",
    "SchedulerBackend",
    "SchedulerHealth",
    "SchedulerService",
    "SchedulerStats",
    "ThreadSchedulerBackend",
    "TickCallback",
    "create_backend",
    "create_scheduler",
]
