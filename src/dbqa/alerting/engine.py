"""Alert engine.

One state machine per (query, alert rule) pair::

    ┌──────────┐  fires   ┌────────┐  pass   ┌──────────┐
    │ inactive │ ───────► │ active │ ──────► │ resolved │
    └──────────┘          └────────┘         └──────────┘
                           │     ▲
                   snooze  │     │  snooze window expired / unsnooze
                           ▼     │
                         ┌─────────┐
                         │ snoozed │ ── pass ──► resolved
                         └─────────┘

- fires, no open alert  -> create active alert, notify
- fires, active alert   -> re-trigger and notify only once the throttle
                           window has elapsed since ``last_triggered_at``;
                           otherwise count it as suppressed
- fires, snoozed alert  -> nothing until ``snoozed_until`` passes, then the
                           alert is active again and the rule above applies
- pass, open alert      -> resolve; notify only if the rule asks for it

A resolved alert is never reopened; the next firing creates a new one.

Every write is a compare-and-set on the alert version read just before
it. When a manual snooze or resolve lands in between, the rule is applied
again to the fresh row, so manual transitions are never overwritten.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum

from dbqa.alerting.conditions import AlertCondition
from dbqa.alerting.protocol import NotificationContent, NotificationEvent
from dbqa.core.enums import AlertSeverity, AlertStatus, Verdict
from dbqa.core.errors import AlertConflictError, AlertRuleError, ConfigError
from dbqa.core.frequency import ensure_utc, utcnow
from dbqa.core.models import Alert, AlertRule, ExecutionResult, Query
from dbqa.core.store import QueryStore
from dbqa.evaluation.evaluator import Evaluation
from dbqa.logging import get_logger

logger = get_logger(__name__)

_WRITE_ATTEMPTS = 3


class AlertAction(str, Enum):
    """What the engine did with one rule for one evaluation."""

    CREATED = "created"
    RETRIGGERED = "retriggered"
    SUPPRESSED = "suppressed"
    SNOOZED = "snoozed"
    RESOLVED = "resolved"
    UNCHANGED = "unchanged"


@dataclass
class PreparedRule:
    """An enabled rule with its parsed condition."""

    rule: AlertRule
    condition: AlertCondition


@dataclass
class AlertTransition:
    """Result of applying one rule."""

    rule_id: str
    action: AlertAction
    alert: Alert | None = None
    event: NotificationEvent | None = None

    @property
    def notify(self) -> bool:
        return self.event is not None and self.alert is not None


class AlertEngine:
    """Raises, re-triggers, suppresses and resolves alerts.

    Example:
        >>> engine = AlertEngine(store)
        >>> prepared, errors = engine.prepare(store.list_rules(query.id, enabled=True))
        >>> transitions = engine.apply(query, prepared, evaluation, result)
        >>> [t.action for t in transitions]
        [<AlertAction.CREATED: 'created'>]
    """

    def __init__(self, store: QueryStore, notify_on_resolve: bool = False) -> None:
        self._store = store
        self._notify_on_resolve = notify_on_resolve

    # === Rule preparation ===

    def prepare(
        self, rules: list[AlertRule]
    ) -> tuple[list[PreparedRule], dict[str, AlertRuleError]]:
        """Parse rule conditions; malformed rules are returned as errors."""
        prepared: list[PreparedRule] = []
        errors: dict[str, AlertRuleError] = {}
        for rule in rules:
            if not rule.enabled:
                continue
            try:
                prepared.append(PreparedRule(rule, AlertCondition.parse(rule.condition)))
            except AlertRuleError as e:
                e.with_context(query_id=rule.query_id, rule_id=rule.id)
                errors[rule.id] = e
                logger.error(
                    "alert_rule_invalid", rule_id=rule.id, query_id=rule.query_id, error=e.message
                )
        return prepared, errors

    # === State machine ===

    def apply(
        self,
        query: Query,
        prepared: list[PreparedRule],
        evaluation: Evaluation,
        result: ExecutionResult,
        now: datetime | None = None,
    ) -> list[AlertTransition]:
        """Apply every prepared rule to one evaluation."""
        now = ensure_utc(now) or utcnow()
        return [self._apply_with_retry(query, p, evaluation, result, now) for p in prepared]

    def _apply_with_retry(
        self,
        query: Query,
        prepared: PreparedRule,
        evaluation: Evaluation,
        result: ExecutionResult,
        now: datetime,
    ) -> AlertTransition:
        rule_id = prepared.rule.id
        for attempt in range(1, _WRITE_ATTEMPTS + 1):
            try:
                return self._apply_rule(query, prepared, evaluation, result, now)
            except AlertConflictError as e:
                logger.info(
                    "alert_changed_concurrently", rule_id=rule_id, alert_id=e.alert_id, attempt=attempt
                )
        logger.warning("alert_rule_skipped_after_conflicts", rule_id=rule_id)
        return AlertTransition(rule_id, AlertAction.UNCHANGED, self._store.find_open_alert(rule_id))

    def _apply_rule(
        self,
        query: Query,
        prepared: PreparedRule,
        evaluation: Evaluation,
        result: ExecutionResult,
        now: datetime,
    ) -> AlertTransition:
        rule = prepared.rule
        fires = prepared.condition.matches(evaluation)
        alert = self._store.find_open_alert(rule.id)

        if alert is not None and alert.status == AlertStatus.SNOOZED:
            if alert.snoozed_until is not None and now < alert.snoozed_until:
                if evaluation.verdict == Verdict.PASS:
                    return self._resolve(rule, alert, now)
                if fires:
                    alert = self._store.save_alert(
                        replace(alert, suppressed_count=alert.suppressed_count + 1)
                    )
                return AlertTransition(rule.id, AlertAction.SNOOZED, alert)
            alert = self._store.save_alert(
                replace(alert, status=AlertStatus.ACTIVE, snoozed_until=None)
            )
            logger.info("alert_snooze_expired", alert_id=alert.id, rule_id=rule.id)

        if fires:
            if alert is None:
                return self._create(query, rule, result, now)
            return self._retrigger(rule, alert, result, now)

        if alert is not None and evaluation.verdict == Verdict.PASS:
            return self._resolve(rule, alert, now)
        return AlertTransition(rule.id, AlertAction.UNCHANGED, alert)

    def _from_rule(self, alert: Alert, rule: AlertRule) -> Alert:
        return replace(
            alert,
            name=rule.name,
            description=rule.description,
            severity=rule.severity,
            condition=dict(rule.condition),
            notification_channels=list(rule.notification_channels),
            email_recipients=rule.email_recipients,
            slack_webhook=rule.slack_webhook,
            custom_webhook=rule.custom_webhook,
            throttle_minutes=rule.throttle_minutes,
        )

    def _create(
        self, query: Query, rule: AlertRule, result: ExecutionResult, now: datetime
    ) -> AlertTransition:
        alert = self._from_rule(
            Alert(
                user_id=rule.user_id,
                query_id=query.id,
                space_id=rule.space_id or query.space_id,
                rule_id=rule.id,
                execution_result_id=result.id or None,
                status=AlertStatus.ACTIVE,
                last_triggered_at=now,
                trigger_count=1,
            ),
            rule,
        )
        alert = self._store.create_alert(alert)
        logger.info("alert_created", alert_id=alert.id, rule_id=rule.id, severity=alert.severity.value)
        return AlertTransition(rule.id, AlertAction.CREATED, alert, NotificationEvent.TRIGGERED)

    def _retrigger(
        self, rule: AlertRule, alert: Alert, result: ExecutionResult, now: datetime
    ) -> AlertTransition:
        alert = self._from_rule(alert, rule)
        last = alert.last_triggered_at
        window = timedelta(minutes=alert.throttle_minutes)
        if last is not None and now - last < window:
            alert = self._store.save_alert(
                replace(alert, suppressed_count=alert.suppressed_count + 1)
            )
            logger.debug(
                "alert_suppressed",
                alert_id=alert.id,
                since_last_seconds=(now - last).total_seconds(),
                throttle_minutes=alert.throttle_minutes,
            )
            return AlertTransition(rule.id, AlertAction.SUPPRESSED, alert)

        alert = self._store.save_alert(
            replace(
                alert,
                last_triggered_at=max(last, now) if last else now,
                trigger_count=alert.trigger_count + 1,
                execution_result_id=result.id or alert.execution_result_id,
            )
        )
        logger.info("alert_retriggered", alert_id=alert.id, trigger_count=alert.trigger_count)
        return AlertTransition(rule.id, AlertAction.RETRIGGERED, alert, NotificationEvent.RETRIGGERED)

    def _resolve(self, rule: AlertRule, alert: Alert, now: datetime) -> AlertTransition:
        alert = self._store.save_alert(
            replace(alert, status=AlertStatus.RESOLVED, resolved_at=now, snoozed_until=None)
        )
        notify = rule.notify_on_resolve if rule.notify_on_resolve is not None else self._notify_on_resolve
        logger.info("alert_resolved", alert_id=alert.id, rule_id=rule.id, notify=notify)
        return AlertTransition(
            rule.id,
            AlertAction.RESOLVED,
            alert,
            NotificationEvent.RESOLVED if notify else None,
        )

    # === Manual operations ===

    def snooze(self, alert_id: str, until: datetime, now: datetime | None = None) -> Alert:
        """Silence an open alert until ``until``."""
        now = ensure_utc(now) or utcnow()
        until = ensure_utc(until)
        if until <= now:
            raise ConfigError("Snooze window must end in the future")

        def change(alert: Alert) -> Alert:
            if alert.status == AlertStatus.RESOLVED:
                raise ConfigError(f"Alert {alert_id} is resolved and cannot be snoozed")
            return replace(alert, status=AlertStatus.SNOOZED, snoozed_until=until)

        alert = self._update(alert_id, change)
        logger.info("alert_snoozed", alert_id=alert_id, snoozed_until=until.isoformat())
        return alert

    def unsnooze(self, alert_id: str) -> Alert:
        def change(alert: Alert) -> Alert | None:
            if alert.status != AlertStatus.SNOOZED:
                return None
            return replace(alert, status=AlertStatus.ACTIVE, snoozed_until=None)

        return self._update(alert_id, change)

    def resolve(self, alert_id: str, now: datetime | None = None) -> Alert:
        """Resolve an alert by hand. Already resolved alerts are returned as is."""
        resolved_at = ensure_utc(now) or utcnow()

        def change(alert: Alert) -> Alert | None:
            if alert.status == AlertStatus.RESOLVED:
                return None
            return replace(
                alert, status=AlertStatus.RESOLVED, resolved_at=resolved_at, snoozed_until=None
            )

        alert = self._update(alert_id, change)
        logger.info("alert_resolved_manually", alert_id=alert_id)
        return alert

    def _update(self, alert_id: str, change: Callable[[Alert], Alert | None]) -> Alert:
        """Re-read the alert, apply ``change`` and write it back.

        ``change`` returning ``None`` means nothing to do. A write that
        loses a race with the engine is retried on the fresh row.
        """
        for _ in range(_WRITE_ATTEMPTS):
            alert = self._store.require_alert(alert_id)
            updated = change(alert)
            if updated is None:
                return alert
            try:
                return self._store.save_alert(updated)
            except AlertConflictError:
                logger.info("alert_changed_concurrently", alert_id=alert_id)
        raise AlertConflictError(alert_id).with_context(alert_id=alert_id)

    def create_manual_alert(
        self,
        query_id: str,
        name: str,
        *,
        severity: AlertSeverity | str = AlertSeverity.MEDIUM,
        description: str | None = None,
        user_id: str = "system",
        notification_channels: list[str] | None = None,
        email_recipients: str | None = None,
        slack_webhook: str | None = None,
        custom_webhook: str | None = None,
        now: datetime | None = None,
    ) -> Alert:
        """Raise an alert that no rule or execution result triggered."""
        query = self._store.require_query(query_id)
        alert = self._store.create_alert(
            Alert(
                user_id=user_id,
                query_id=query.id,
                space_id=query.space_id,
                name=name,
                description=description,
                severity=AlertSeverity(severity),
                status=AlertStatus.ACTIVE,
                notification_channels=list(notification_channels or []),
                email_recipients=email_recipients,
                slack_webhook=slack_webhook,
                custom_webhook=custom_webhook,
                last_triggered_at=ensure_utc(now) or utcnow(),
                trigger_count=1,
            )
        )
        logger.info("alert_created_manually", alert_id=alert.id, query_id=query_id)
        return alert

    # === Notification content ===

    def content_for(
        self,
        transition: AlertTransition,
        query: Query,
        evaluation: Evaluation | None = None,
        now: datetime | None = None,
    ) -> NotificationContent:
        alert = transition.alert
        assert alert is not None
        return NotificationContent(
            event=transition.event or NotificationEvent.TRIGGERED,
            alert_id=alert.id,
            alert_name=alert.name,
            severity=alert.severity,
            query_id=query.id,
            query_name=query.name,
            verdict=evaluation.verdict.value if evaluation else None,
            reasons=list(evaluation.reasons) if evaluation else [],
            metrics=dict(evaluation.metrics) if evaluation else {},
            execution_result_id=alert.execution_result_id,
            description=alert.description,
            space_id=alert.space_id,
            occurred_at=ensure_utc(now) or utcnow(),
        )
