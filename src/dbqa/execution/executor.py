"""Query executor.

Runs one query against its data source with a bounded execution time and
produces an *unsaved* :class:`ExecutionResult` draft. Nothing here writes
to the store; :class:`~dbqa.execution.runner.CheckRunner` records the
draft exactly once after evaluation and alerting have had their say.

The SQL runs on a helper thread so the caller can stop waiting when the
timeout expires or the run is cancelled. The helper closes its handle
whenever the statement finally returns.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from dbqa.connections.protocol import ConnectionResolver, Row
from dbqa.core.enums import ExecutionStatus
from dbqa.core.errors import (
    ConnectionUnavailable,
    DbqaError,
    ExecutionError,
    ExecutionTimeout,
    RunCancelled,
)
from dbqa.core.frequency import utcnow
from dbqa.core.models import ExecutionResult, Query
from dbqa.core.serialize import json_safe
from dbqa.execution.inflight import RunHandle
from dbqa.logging import get_logger

logger = get_logger(__name__)

# How often the waiting thread looks at the cancellation flag
_POLL_SECONDS = 0.05


def build_payload(rows: list[Row], row_limit: int) -> dict[str, Any]:
    """Result payload stored with an execution: rows capped at ``row_limit``."""
    kept = rows[:row_limit] if row_limit else []
    return {
        "rows": [{str(k): json_safe(v) for k, v in row.items()} for row in kept],
        "row_count": len(rows),
        "truncated": len(kept) < len(rows),
    }


@dataclass
class ExecutionOutcome:
    """What the executor hands to the runner.

    ``result`` is the unsaved draft; ``rows`` are the raw rows (``None``
    unless the query succeeded); ``error`` is the failure, if any.
    """

    result: ExecutionResult
    rows: list[Row] | None = None
    error: DbqaError | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class _Call:
    """Resolve + execute on a helper thread."""

    def __init__(self, resolver: ConnectionResolver, query: Query, timeout: float) -> None:
        self.resolver = resolver
        self.query = query
        self.timeout = timeout
        self.rows: list[Row] | None = None
        self.error: BaseException | None = None
        self.done = threading.Event()

    def __call__(self) -> None:
        handle = None
        try:
            handle = self.resolver.resolve(self.query.connection_id)
            self.rows = list(handle.execute(self.query.query, self.timeout))
        except BaseException as e:  # noqa: BLE001 - handed to the waiting thread
            self.error = e
        finally:
            if handle is not None:
                try:
                    handle.close()
                except Exception as e:  # noqa: BLE001
                    logger.debug("handle_close_failed", query_id=self.query.id, error=str(e))
            self.done.set()


class QueryExecutor:
    """Runs a query with a timeout and builds an unsaved result.

    Example:
        >>> executor = QueryExecutor(resolver, default_timeout=30)
        >>> outcome = executor.execute(query)
        >>> outcome.result.status
        <ExecutionStatus.SUCCESS: 'success'>
    """

    def __init__(
        self,
        resolver: ConnectionResolver,
        default_timeout: float = 30.0,
        row_limit: int = 1000,
    ) -> None:
        self._resolver = resolver
        self._default_timeout = default_timeout
        self._row_limit = row_limit

    def timeout_for(self, query: Query) -> float:
        return float(query.timeout_seconds or self._default_timeout)

    def execute(
        self,
        query: Query,
        run: RunHandle | None = None,
        started_at: datetime | None = None,
    ) -> ExecutionOutcome:
        """Run ``query`` and return the outcome. Never raises for run failures."""
        started_at = started_at or utcnow()
        timeout = self.timeout_for(query)
        start = time.perf_counter()

        try:
            rows = self._run(query, timeout, run)
        except DbqaError as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.warning(
                "query_execution_failed",
                query_id=query.id,
                error_type=type(e).__name__,
                error=e.message,
                duration_ms=duration_ms,
            )
            return ExecutionOutcome(
                result=ExecutionResult(
                    query_id=query.id,
                    execution_time=started_at,
                    status=ExecutionStatus.ERROR,
                    result=None,
                    metrics={"error_type": type(e).__name__},
                    execution_duration=duration_ms,
                    error_message=e.message,
                ),
                error=e,
            )

        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "query_executed", query_id=query.id, row_count=len(rows), duration_ms=duration_ms
        )
        return ExecutionOutcome(
            result=ExecutionResult(
                query_id=query.id,
                execution_time=started_at,
                status=ExecutionStatus.SUCCESS,
                result=build_payload(rows, self._row_limit),
                metrics={},
                execution_duration=duration_ms,
            ),
            rows=rows,
        )

    def _run(self, query: Query, timeout: float, run: RunHandle | None) -> list[Row]:
        if run is not None:
            run.raise_if_cancelled()

        call = _Call(self._resolver, query, timeout)
        worker = threading.Thread(
            target=call, name=f"dbqa-exec-{query.id[:8]}", daemon=True
        )
        worker.start()

        deadline = time.monotonic() + timeout
        while not call.done.wait(max(0.0, min(deadline - time.monotonic(), _POLL_SECONDS))):
            if run is not None and run.cancelled:
                raise RunCancelled().with_context(query_id=query.id, run_id=run.run_id)
            if time.monotonic() >= deadline:
                raise ExecutionTimeout(timeout).with_context(query_id=query.id)

        if call.error is not None:
            error = call.error
            if isinstance(error, DbqaError):
                raise error
            if isinstance(error, (ConnectionError, OSError)):
                raise ConnectionUnavailable(str(error), cause=error).with_context(
                    query_id=query.id, connection_id=query.connection_id
                ) from error
            if isinstance(error, Exception):
                raise ExecutionError(str(error) or type(error).__name__, cause=error).with_context(
                    query_id=query.id
                ) from error
            raise error
        return call.rows or []
