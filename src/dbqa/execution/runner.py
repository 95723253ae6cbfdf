"""Check runner - one complete quality-check run.

Executor → Evaluator → Alert Engine → Notification Dispatcher, for a
single query. The runner owns the rule that every invocation records
exactly one execution result, whatever happens:

┌──────────────────────────────────────────────────────────────────────────────┐
│  execute ──► error?      ──────────────────────────► record (error)          │
│     │                                                                        │
│     ▼                                                                        │
│  evaluate ─► EvaluationError ─────────────────────► record (error)           │
│     │                                                                        │
│     ▼                                                                        │
│  prepare rules (bad rules go to metrics.alert_rule_errors)                   │
│     │                                                                        │
│     ▼                                                                        │
│  cancelled? ─── yes ──────────────────────────────► record (Run cancelled)   │
│     │ no                                                                     │
│     ▼                                                                        │
│  record (success / failure) ──► alert engine ──► dispatcher                  │
└──────────────────────────────────────────────────────────────────────────────┘

Alert engine and dispatcher failures are logged and never undo the
recorded result.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from dbqa.alerting.dispatcher import NotificationDispatcher
from dbqa.alerting.engine import AlertEngine, AlertTransition, PreparedRule
from dbqa.core.enums import ExecutionStatus
from dbqa.core.errors import EvaluationError, RunCancelled
from dbqa.core.frequency import utcnow
from dbqa.core.models import AlertNotification, ExecutionResult, Query
from dbqa.core.store import QueryStore
from dbqa.evaluation.evaluator import Evaluation, ThresholdEvaluator
from dbqa.execution.executor import QueryExecutor
from dbqa.execution.inflight import RunHandle
from dbqa.logging import get_logger, log_context

logger = get_logger(__name__)


@dataclass
class RunReport:
    """Everything one run produced."""

    result: ExecutionResult
    evaluation: Evaluation | None = None
    transitions: list[AlertTransition] = field(default_factory=list)
    notifications: list[AlertNotification] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.result.status == ExecutionStatus.SUCCESS

    @property
    def cancelled(self) -> bool:
        return self.result.metrics.get("error_type") == RunCancelled.__name__


class CheckRunner:
    """Runs one query through the whole pipeline and records the result."""

    def __init__(
        self,
        store: QueryStore,
        executor: QueryExecutor,
        evaluator: ThresholdEvaluator,
        engine: AlertEngine,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self._store = store
        self._executor = executor
        self._evaluator = evaluator
        self._engine = engine
        self._dispatcher = dispatcher

    def run(
        self,
        query: Query,
        handle: RunHandle | None = None,
        started_at: datetime | None = None,
    ) -> RunReport:
        started_at = started_at or (handle.started_at if handle else utcnow())
        with log_context(
            query_id=query.id,
            run_id=handle.run_id if handle else None,
            trigger=handle.trigger.value if handle else None,
        ):
            draft, evaluation, prepared = self._check(query, handle, started_at)
            result = self._store.record_result(draft)
            logger.info(
                "check_recorded",
                result_id=result.id,
                status=result.status.value,
                verdict=result.verdict,
                duration_ms=result.execution_duration,
            )

            report = RunReport(result=result, evaluation=evaluation)
            if evaluation is None or result.status == ExecutionStatus.ERROR:
                return report
            self._alert(query, prepared, evaluation, report)
            return report

    def _check(
        self,
        query: Query,
        handle: RunHandle | None,
        started_at: datetime,
    ) -> tuple[ExecutionResult, Evaluation | None, list[PreparedRule]]:
        """Execute and evaluate; returns the unsaved draft."""
        outcome = self._executor.execute(query, handle, started_at)
        draft = outcome.result
        if not outcome.succeeded:
            return draft, None, []
        if handle is not None and handle.cancelled:
            return self._cancelled(draft), None, []

        try:
            evaluation = self._evaluator.evaluate(query, outcome.rows or [], utcnow())
        except EvaluationError as e:
            logger.warning("evaluation_failed", error=e.message)
            return (
                replace(
                    draft,
                    status=ExecutionStatus.ERROR,
                    metrics={**draft.metrics, "evaluation_error": e.message},
                    error_message=e.message,
                ),
                None,
                [],
            )

        metrics = {**draft.metrics, **evaluation.to_metrics()}
        prepared, errors = self._engine.prepare(self._store.list_rules(query.id, enabled=True))
        if errors:
            metrics["alert_rule_errors"] = {rule_id: e.message for rule_id, e in errors.items()}
        draft = replace(draft, status=evaluation.status, metrics=metrics)

        if handle is not None and handle.cancelled:
            return self._cancelled(draft), None, []
        return draft, evaluation, prepared

    def _cancelled(self, draft: ExecutionResult) -> ExecutionResult:
        error = RunCancelled()
        logger.info("check_cancelled")
        return replace(
            draft,
            status=ExecutionStatus.ERROR,
            result=None,
            metrics={"error_type": type(error).__name__},
            error_message=error.message,
        )

    def _alert(
        self,
        query: Query,
        prepared: list[PreparedRule],
        evaluation: Evaluation,
        report: RunReport,
    ) -> None:
        if not prepared:
            return
        now = utcnow()
        try:
            report.transitions = self._engine.apply(query, prepared, evaluation, report.result, now)
        except Exception as e:
            logger.exception("alert_engine_failed", error=str(e))
            return

        for transition in report.transitions:
            if not transition.notify:
                continue
            content = self._engine.content_for(transition, query, evaluation, now)
            try:
                report.notifications.extend(self._dispatcher.dispatch(transition.alert, content))
            except Exception as e:
                logger.exception(
                    "notification_dispatch_failed", alert_id=transition.alert.id, error=str(e)
                )
