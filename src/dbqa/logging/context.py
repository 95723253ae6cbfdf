"""
Logging context management using contextvars.

Run-scoped identifiers (query id, run id, trigger, alert id) are attached to
every log entry emitted while a check runs, without passing them through
every call. Each worker thread starts from an empty context, so concurrent
runs never see each other's identifiers.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

import structlog


@dataclass(frozen=True)
class LogContext:
    """
    Execution context attached to all log entries.

    query_id: Quality-check query being run
    run_id: Identifier of the in-flight run
    trigger: ``schedule`` or ``manual``
    alert_id: Alert being evaluated or notified
    channel: Notification channel being attempted
    """

    query_id: str | None = None
    run_id: str | None = None
    trigger: str | None = None
    alert_id: str | None = None
    channel: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs: Any) -> LogContext:
        """Copy with the given fields replaced; unknown keys and None are ignored."""
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in kwargs.items() if k in known and v is not None})


_log_context: ContextVar[LogContext] = ContextVar("dbqa_log_context")  # noqa: B039


def get_context() -> LogContext:
    """Get the current log context."""
    return _log_context.get(LogContext())


def bind_context(**kwargs: Any) -> LogContext:
    """Merge values into the current context and return it."""
    updated = get_context().merge(**kwargs)
    _log_context.set(updated)
    return updated


def clear_context() -> None:
    """Clear the current context (reset to empty)."""
    _log_context.set(LogContext())


@contextmanager
def log_context(**kwargs: Any) -> Iterator[LogContext]:
    """
    Scope context values to a block.

    Usage:
        with log_context(query_id=query.id, trigger="manual"):
            runner.run(query)
    """
    token = _log_context.set(get_context().merge(**kwargs))
    try:
        yield _log_context.get()
    finally:
        _log_context.reset(token)


def add_context_processor(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor that adds the run context to every log entry."""
    for key, value in get_context().to_dict().items():
        if key not in event_dict:
            event_dict[key] = value
    return event_dict


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (typically ``get_logger(__name__)``)."""
    return structlog.get_logger(name)
