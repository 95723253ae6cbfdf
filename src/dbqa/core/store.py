"""Query store - persistence for queries, results, alert rules and alerts.

The store is the shared source of truth for the scheduler, executor and
alert engine. Every public method opens its own short transaction and
returns plain dataclasses from :mod:`dbqa.core.models`.

┌──────────────────────────────────────────────────────────────────────────────┐
│  QUERY STORE                                                                  │
│                                                                               │
│   Connections:   create_connection / get_connection / list_connections        │
│                  delete_connection                                            │
│   Queries:       create_query / get_query / require_query / list_queries      │
│                  update_query / delete_query                                  │
│   Scheduling:    list_due_queries(now) / mark_executed(id, started_at)        │
│   Results:       record_result / get_result / list_results / latest_result    │
│   Rules:         create_rule / get_rule / list_rules / update_rule            │
│                  delete_rule                                                  │
│   Alerts:        create_alert / save_alert / get_alert / list_alerts          │
│                  find_open_alert                                              │
│   Notifications: record_notification / list_notifications                     │
└──────────────────────────────────────────────────────────────────────────────┘

Schedule invariant: ``next_execution_time`` is NULL for manual or disabled
queries, otherwise it is never earlier than ``last_execution_time``.
``create_query``, ``update_query`` and ``mark_executed`` all maintain it.

Execution results are append-only; there is no update method for them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import and_, case, delete, func, literal, null, select, update
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from dbqa.core.enums import (
    AlertSeverity,
    AlertStatus,
    ChannelType,
    ExecutionFrequency,
    ExecutionStatus,
    NotificationStatus,
    QueryCategory,
)
from dbqa.core.errors import AlertConflictError, ConfigError, NotFoundError
from dbqa.core.frequency import (
    FREQUENCY_INTERVALS,
    ensure_utc,
    initial_next_execution,
    next_execution_after,
    utcnow,
)
from dbqa.core.models import (
    Alert,
    AlertNotification,
    AlertRule,
    Connection,
    ExecutionResult,
    Query,
)
from dbqa.core.orm.base import DbqaBase, UTCDateTime
from dbqa.core.orm.tables import (
    AlertNotificationTable,
    AlertRuleTable,
    AlertTable,
    ConnectionTable,
    ExecutionResultTable,
    QueryTable,
)
from dbqa.logging import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create/Update DTOs
# ---------------------------------------------------------------------------


@dataclass
class ConnectionCreate:
    """DTO for registering a data-source connection."""

    name: str
    type: str
    config: dict[str, Any]
    user_id: str = "system"
    space_id: str | None = None


@dataclass
class QueryCreate:
    """DTO for creating a quality-check query."""

    name: str
    connection_id: str
    query: str
    category: QueryCategory | str = QueryCategory.ACCURACY
    user_id: str = "system"
    space_id: str | None = None
    description: str | None = None
    expected_result: Any = None
    thresholds: dict[str, Any] | None = None
    enabled: bool = True
    execution_frequency: ExecutionFrequency | str = ExecutionFrequency.MANUAL
    timeout_seconds: float | None = None


@dataclass
class QueryUpdate:
    """DTO for updating a query. ``None`` leaves a field unchanged."""

    name: str | None = None
    description: str | None = None
    category: QueryCategory | str | None = None
    query: str | None = None
    connection_id: str | None = None
    expected_result: Any = None
    thresholds: dict[str, Any] | None = None
    enabled: bool | None = None
    execution_frequency: ExecutionFrequency | str | None = None
    timeout_seconds: float | None = None


@dataclass
class AlertRuleCreate:
    """DTO for attaching an alert rule to a query."""

    query_id: str
    name: str
    condition: dict[str, Any] = field(default_factory=dict)
    severity: AlertSeverity | str = AlertSeverity.MEDIUM
    user_id: str = "system"
    space_id: str | None = None
    description: str | None = None
    enabled: bool = True
    notification_channels: list[str] = field(default_factory=list)
    email_recipients: str | None = None
    slack_webhook: str | None = None
    custom_webhook: str | None = None
    throttle_minutes: int = 60
    notify_on_resolve: bool | None = None


@dataclass
class AlertRuleUpdate:
    """DTO for updating an alert rule. ``None`` leaves a field unchanged."""

    name: str | None = None
    description: str | None = None
    severity: AlertSeverity | str | None = None
    condition: dict[str, Any] | None = None
    enabled: bool | None = None
    notification_channels: list[str] | None = None
    email_recipients: str | None = None
    slack_webhook: str | None = None
    custom_webhook: str | None = None
    throttle_minutes: int | None = None
    notify_on_resolve: bool | None = None


def _new_id() -> str:
    return str(uuid4())


def _channels(values: list[str]) -> list[str]:
    out = []
    for value in values:
        try:
            out.append(ChannelType(str(value).lower()).value)
        except ValueError as e:
            raise ConfigError(f"Unknown notification channel: {value!r}") from e
    return out


def _frequency(value: ExecutionFrequency | str) -> ExecutionFrequency:
    try:
        return ExecutionFrequency(value)
    except ValueError as e:
        raise ConfigError(f"Unknown execution frequency: {value!r}") from e


def _category(value: QueryCategory | str) -> QueryCategory:
    try:
        return QueryCategory.parse(value)
    except ValueError as e:
        raise ConfigError(str(e)) from e


def _severity(value: AlertSeverity | str) -> AlertSeverity:
    try:
        return AlertSeverity(str(getattr(value, "value", value)).lower())
    except ValueError as e:
        raise ConfigError(f"Unknown alert severity: {value!r}") from e


# ---------------------------------------------------------------------------
# Store Implementation
# ---------------------------------------------------------------------------


class QueryStore:
    """Repository for every DB QA record.

    Example:
        >>> store = QueryStore(dbqa_session_factory(engine))
        >>> store.create_all()
        >>> conn = store.create_connection(ConnectionCreate(
        ...     name="warehouse", type="sqlite", config={"url": "sqlite:///wh.db"},
        ... ))
        >>> query = store.create_query(QueryCreate(
        ...     name="negative totals",
        ...     connection_id=conn.id,
        ...     query="SELECT count(*) AS count FROM orders WHERE total < 0",
        ...     thresholds={"max": 0},
        ...     execution_frequency="hourly",
        ... ))
        >>> due = store.list_due_queries(utcnow())
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def create_all(self) -> None:
        """Create all ``db_qa_*`` tables that do not exist yet."""
        bind = self._session_factory.kw["bind"]
        DbqaBase.metadata.create_all(bind)

    # === Connections ===

    def create_connection(self, spec: ConnectionCreate) -> Connection:
        if not spec.name:
            raise ConfigError("Connection name is required")
        if not isinstance(spec.config, dict):
            raise ConfigError("Connection config must be a mapping")
        row = ConnectionTable(
            id=_new_id(),
            user_id=spec.user_id,
            space_id=spec.space_id,
            name=spec.name,
            type=spec.type,
            config=spec.config,
        )
        with self._session_factory() as session, session.begin():
            session.add(row)
        logger.info("connection_created", connection_id=row.id, type=row.type)
        return _to_connection(row)

    def get_connection(self, connection_id: str) -> Connection | None:
        with self._session_factory() as session:
            row = session.get(ConnectionTable, connection_id)
            return _to_connection(row) if row else None

    def list_connections(self, space_id: str | None = None) -> list[Connection]:
        stmt = select(ConnectionTable).order_by(ConnectionTable.name)
        if space_id is not None:
            stmt = stmt.where(ConnectionTable.space_id == space_id)
        with self._session_factory() as session:
            return [_to_connection(r) for r in session.scalars(stmt)]

    def delete_connection(self, connection_id: str) -> bool:
        with self._session_factory() as session, session.begin():
            in_use = session.scalar(
                select(func.count()).select_from(QueryTable).where(
                    QueryTable.connection_id == connection_id
                )
            )
            if in_use:
                raise ConfigError(
                    f"Connection {connection_id} is used by {in_use} queries"
                )
            deleted = session.execute(
                delete(ConnectionTable).where(ConnectionTable.id == connection_id)
            ).rowcount
        return bool(deleted)

    # === Queries ===

    def create_query(self, spec: QueryCreate, now: datetime | None = None) -> Query:
        if not spec.name:
            raise ConfigError("Query name is required")
        if not spec.query or not spec.query.strip():
            raise ConfigError("Query SQL is required")
        if spec.thresholds is not None and not isinstance(spec.thresholds, dict):
            raise ConfigError("thresholds must be a mapping")
        if spec.timeout_seconds is not None and spec.timeout_seconds <= 0:
            raise ConfigError("timeout_seconds must be positive")

        frequency = _frequency(spec.execution_frequency)
        row = QueryTable(
            id=_new_id(),
            user_id=spec.user_id,
            connection_id=spec.connection_id,
            space_id=spec.space_id,
            name=spec.name,
            description=spec.description,
            category=_category(spec.category).value,
            query=spec.query,
            expected_result=spec.expected_result if spec.expected_result is not None else {},
            thresholds=spec.thresholds or {},
            enabled=spec.enabled,
            execution_frequency=frequency.value,
            timeout_seconds=spec.timeout_seconds,
            next_execution_time=initial_next_execution(frequency, spec.enabled, now),
        )
        with self._session_factory() as session, session.begin():
            if session.get(ConnectionTable, spec.connection_id) is None:
                raise NotFoundError("Connection", spec.connection_id)
            session.add(row)
        logger.info(
            "query_created",
            query_id=row.id,
            frequency=frequency.value,
            next_execution_time=row.next_execution_time,
        )
        return _to_query(row)

    def get_query(self, query_id: str) -> Query | None:
        with self._session_factory() as session:
            row = session.get(QueryTable, query_id)
            return _to_query(row) if row else None

    def require_query(self, query_id: str) -> Query:
        query = self.get_query(query_id)
        if query is None:
            raise NotFoundError("Query", query_id)
        return query

    def list_queries(
        self,
        *,
        space_id: str | None = None,
        category: QueryCategory | str | None = None,
        connection_id: str | None = None,
        frequency: ExecutionFrequency | str | None = None,
        enabled: bool | None = None,
        run_status: ExecutionStatus | str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Query]:
        """List queries matching all given filters.

        ``run_status`` filters on the status of each query's latest result;
        ``"never"`` selects queries that have not run yet.
        """
        stmt = select(QueryTable)
        if space_id is not None:
            stmt = stmt.where(QueryTable.space_id == space_id)
        if category is not None:
            stmt = stmt.where(QueryTable.category == _category(category).value)
        if connection_id is not None:
            stmt = stmt.where(QueryTable.connection_id == connection_id)
        if frequency is not None:
            stmt = stmt.where(QueryTable.execution_frequency == _frequency(frequency).value)
        if enabled is not None:
            stmt = stmt.where(QueryTable.enabled == enabled)
        if run_status is not None:
            status = str(getattr(run_status, "value", run_status))
            latest = (
                select(ExecutionResultTable.status)
                .where(ExecutionResultTable.query_id == QueryTable.id)
                .order_by(ExecutionResultTable.execution_time.desc())
                .limit(1)
                .correlate(QueryTable)
                .scalar_subquery()
            )
            if status == "never":
                stmt = stmt.where(latest.is_(None))
            else:
                stmt = stmt.where(latest == ExecutionStatus(status).value)
        stmt = stmt.order_by(QueryTable.created_at.desc(), QueryTable.id).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session_factory() as session:
            return [_to_query(r) for r in session.scalars(stmt)]

    def count_queries(self, enabled: bool | None = None) -> int:
        stmt = select(func.count()).select_from(QueryTable)
        if enabled is not None:
            stmt = stmt.where(QueryTable.enabled == enabled)
        with self._session_factory() as session:
            return int(session.scalar(stmt) or 0)

    def update_query(
        self, query_id: str, updates: QueryUpdate, now: datetime | None = None
    ) -> Query:
        """Apply ``updates`` and re-derive the next execution time.

        A query that becomes manual or disabled loses its next execution
        time. One that becomes scheduled (or changes frequency) is due one
        interval after its last run, or immediately if it never ran.
        """
        with self._session_factory() as session, session.begin():
            row = session.get(QueryTable, query_id)
            if row is None:
                raise NotFoundError("Query", query_id)
            was_scheduled = row.enabled and row.execution_frequency != ExecutionFrequency.MANUAL.value
            old_frequency = row.execution_frequency

            if updates.name is not None:
                row.name = updates.name
            if updates.description is not None:
                row.description = updates.description
            if updates.category is not None:
                row.category = _category(updates.category).value
            if updates.query is not None:
                if not updates.query.strip():
                    raise ConfigError("Query SQL is required")
                row.query = updates.query
            if updates.connection_id is not None:
                if session.get(ConnectionTable, updates.connection_id) is None:
                    raise NotFoundError("Connection", updates.connection_id)
                row.connection_id = updates.connection_id
            if updates.expected_result is not None:
                row.expected_result = updates.expected_result
            if updates.thresholds is not None:
                if not isinstance(updates.thresholds, dict):
                    raise ConfigError("thresholds must be a mapping")
                row.thresholds = updates.thresholds
            if updates.enabled is not None:
                row.enabled = updates.enabled
            if updates.execution_frequency is not None:
                row.execution_frequency = _frequency(updates.execution_frequency).value
            if updates.timeout_seconds is not None:
                if updates.timeout_seconds <= 0:
                    raise ConfigError("timeout_seconds must be positive")
                row.timeout_seconds = updates.timeout_seconds

            is_scheduled = row.enabled and row.execution_frequency != ExecutionFrequency.MANUAL.value
            if not is_scheduled:
                row.next_execution_time = None
            elif not was_scheduled or row.execution_frequency != old_frequency:
                if row.last_execution_time is not None:
                    row.next_execution_time = next_execution_after(
                        row.execution_frequency, row.last_execution_time
                    )
                else:
                    row.next_execution_time = ensure_utc(now) if now else utcnow()
            query = _to_query(row)
        logger.info("query_updated", query_id=query_id, enabled=query.enabled)
        return query

    def delete_query(self, query_id: str) -> bool:
        """Delete a query with its results, rules, alerts and notifications."""
        with self._session_factory() as session, session.begin():
            if session.get(QueryTable, query_id) is None:
                return False
            alert_ids = select(AlertTable.id).where(AlertTable.query_id == query_id)
            session.execute(
                delete(AlertNotificationTable).where(AlertNotificationTable.alert_id.in_(alert_ids))
            )
            session.execute(delete(AlertTable).where(AlertTable.query_id == query_id))
            session.execute(delete(AlertRuleTable).where(AlertRuleTable.query_id == query_id))
            session.execute(
                delete(ExecutionResultTable).where(ExecutionResultTable.query_id == query_id)
            )
            session.execute(delete(QueryTable).where(QueryTable.id == query_id))
        logger.info("query_deleted", query_id=query_id)
        return True

    # === Scheduling ===

    def list_due_queries(self, now: datetime) -> list[Query]:
        """Enabled, non-manual queries whose next execution time has passed."""
        now_value = literal(ensure_utc(now), UTCDateTime())
        stmt = (
            select(QueryTable)
            .where(
                QueryTable.enabled.is_(True),
                QueryTable.execution_frequency != ExecutionFrequency.MANUAL.value,
                QueryTable.next_execution_time.is_not(None),
                QueryTable.next_execution_time <= now_value,
            )
            .order_by(QueryTable.next_execution_time, QueryTable.id)
        )
        with self._session_factory() as session:
            return [_to_query(r) for r in session.scalars(stmt)]

    def mark_executed(
        self, query_id: str, started_at: datetime, *, reschedule: bool = True
    ) -> Query:
        """Record that a run started at ``started_at``, in one UPDATE.

        With ``reschedule`` the next execution time becomes
        ``started_at + interval`` for the query's *current* frequency, or
        NULL if it is now manual or disabled. Without it (manual runs) the
        next execution time is kept, but pulled up to ``started_at`` if it
        was earlier, so it never precedes the last execution time.
        """
        started = ensure_utc(started_at)
        started_value = literal(started, UTCDateTime())

        if reschedule:
            whens = [
                (
                    and_(
                        QueryTable.enabled.is_(True),
                        QueryTable.execution_frequency == frequency.value,
                    ),
                    literal(started + interval, UTCDateTime()),
                )
                for frequency, interval in FREQUENCY_INTERVALS.items()
            ]
            next_value = case(*whens, else_=null())
        else:
            next_value = case(
                (QueryTable.next_execution_time < started_value, started_value),
                else_=QueryTable.next_execution_time,
            )

        with self._session_factory() as session, session.begin():
            updated = session.execute(
                update(QueryTable)
                .where(QueryTable.id == query_id)
                .values(
                    last_execution_time=started_value,
                    next_execution_time=next_value,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            if not updated:
                raise NotFoundError("Query", query_id)
            row = session.get(QueryTable, query_id, populate_existing=True)
            query = _to_query(row)
        logger.debug(
            "query_marked_executed",
            query_id=query_id,
            last_execution_time=query.last_execution_time,
            next_execution_time=query.next_execution_time,
        )
        return query

    # === Results ===

    def record_result(self, result: ExecutionResult) -> ExecutionResult:
        """Persist an execution result. Results are never updated afterwards."""
        if result.id:
            raise ConfigError(f"Execution result {result.id} was already recorded")
        row = ExecutionResultTable(
            id=_new_id(),
            query_id=result.query_id,
            execution_time=ensure_utc(result.execution_time) or utcnow(),
            status=ExecutionStatus(result.status).value,
            result=result.result,
            metrics=result.metrics or {},
            execution_duration=result.execution_duration,
            error_message=result.error_message,
        )
        with self._session_factory() as session, session.begin():
            session.add(row)
        return _to_result(row)

    def get_result(self, result_id: str) -> ExecutionResult | None:
        with self._session_factory() as session:
            row = session.get(ExecutionResultTable, result_id)
            return _to_result(row) if row else None

    def list_results(
        self, query_id: str, limit: int = 50, status: ExecutionStatus | str | None = None
    ) -> list[ExecutionResult]:
        """Results for a query, newest first."""
        stmt = select(ExecutionResultTable).where(ExecutionResultTable.query_id == query_id)
        if status is not None:
            stmt = stmt.where(ExecutionResultTable.status == ExecutionStatus(status).value)
        stmt = stmt.order_by(
            ExecutionResultTable.execution_time.desc(), ExecutionResultTable.id
        ).limit(limit)
        with self._session_factory() as session:
            return [_to_result(r) for r in session.scalars(stmt)]

    def latest_result(self, query_id: str) -> ExecutionResult | None:
        results = self.list_results(query_id, limit=1)
        return results[0] if results else None

    # === Alert rules ===

    def create_rule(self, spec: AlertRuleCreate) -> AlertRule:
        if not spec.name:
            raise ConfigError("Alert rule name is required")
        if not isinstance(spec.condition, dict):
            raise ConfigError("Alert rule condition must be a mapping")
        if spec.throttle_minutes < 0:
            raise ConfigError("throttle_minutes must not be negative")
        row = AlertRuleTable(
            id=_new_id(),
            user_id=spec.user_id,
            query_id=spec.query_id,
            space_id=spec.space_id,
            name=spec.name,
            description=spec.description,
            severity=_severity(spec.severity).value,
            condition=spec.condition,
            enabled=spec.enabled,
            notification_channels=_channels(spec.notification_channels),
            email_recipients=spec.email_recipients,
            slack_webhook=spec.slack_webhook,
            custom_webhook=spec.custom_webhook,
            throttle_minutes=spec.throttle_minutes,
            notify_on_resolve=spec.notify_on_resolve,
        )
        with self._session_factory() as session, session.begin():
            query = session.get(QueryTable, spec.query_id)
            if query is None:
                raise NotFoundError("Query", spec.query_id)
            if row.space_id is None:
                row.space_id = query.space_id
            session.add(row)
        logger.info("alert_rule_created", rule_id=row.id, query_id=row.query_id)
        return _to_rule(row)

    def get_rule(self, rule_id: str) -> AlertRule | None:
        with self._session_factory() as session:
            row = session.get(AlertRuleTable, rule_id)
            return _to_rule(row) if row else None

    def list_rules(self, query_id: str | None = None, enabled: bool | None = None) -> list[AlertRule]:
        stmt = select(AlertRuleTable)
        if query_id is not None:
            stmt = stmt.where(AlertRuleTable.query_id == query_id)
        if enabled is not None:
            stmt = stmt.where(AlertRuleTable.enabled == enabled)
        stmt = stmt.order_by(AlertRuleTable.created_at, AlertRuleTable.id)
        with self._session_factory() as session:
            return [_to_rule(r) for r in session.scalars(stmt)]

    def update_rule(self, rule_id: str, updates: AlertRuleUpdate) -> AlertRule:
        with self._session_factory() as session, session.begin():
            row = session.get(AlertRuleTable, rule_id)
            if row is None:
                raise NotFoundError("AlertRule", rule_id)
            for name in (
                "name",
                "description",
                "condition",
                "enabled",
                "email_recipients",
                "slack_webhook",
                "custom_webhook",
                "throttle_minutes",
                "notify_on_resolve",
            ):
                value = getattr(updates, name)
                if value is not None:
                    setattr(row, name, value)
            if updates.severity is not None:
                row.severity = _severity(updates.severity).value
            if updates.notification_channels is not None:
                row.notification_channels = _channels(updates.notification_channels)
            rule = _to_rule(row)
        return rule

    def delete_rule(self, rule_id: str) -> bool:
        with self._session_factory() as session, session.begin():
            deleted = session.execute(
                delete(AlertRuleTable).where(AlertRuleTable.id == rule_id)
            ).rowcount
        return bool(deleted)

    # === Alerts ===

    def create_alert(self, alert: Alert) -> Alert:
        row = AlertTable(id=alert.id or _new_id())
        _apply_alert(row, alert)
        with self._session_factory() as session, session.begin():
            session.add(row)
        return _to_alert(row)

    def save_alert(self, alert: Alert) -> Alert:
        """Persist the state of an existing alert.

        The write is a compare-and-set on ``alert.version``: when the row
        changed after ``alert`` was read, ``AlertConflictError`` is raised
        and nothing is written. An alert with version 0 was never read from
        the store and is written unconditionally.

        ``last_triggered_at`` is kept monotonic: an older value never
        overwrites a newer one already stored.
        """
        try:
            with self._session_factory() as session, session.begin():
                row = session.get(AlertTable, alert.id)
                if row is None:
                    raise NotFoundError("Alert", alert.id)
                if alert.version and row.version != alert.version:
                    raise AlertConflictError(alert.id).with_context(
                        alert_id=alert.id, expected_version=alert.version, found_version=row.version
                    )
                stored_trigger = row.last_triggered_at
                _apply_alert(row, alert)
                if stored_trigger and (
                    row.last_triggered_at is None or row.last_triggered_at < stored_trigger
                ):
                    row.last_triggered_at = stored_trigger
                session.flush()
                saved = _to_alert(row)
        except StaleDataError as e:
            raise AlertConflictError(alert.id, cause=e).with_context(alert_id=alert.id) from e
        return saved

    def get_alert(self, alert_id: str) -> Alert | None:
        with self._session_factory() as session:
            row = session.get(AlertTable, alert_id)
            return _to_alert(row) if row else None

    def require_alert(self, alert_id: str) -> Alert:
        alert = self.get_alert(alert_id)
        if alert is None:
            raise NotFoundError("Alert", alert_id)
        return alert

    def list_alerts(
        self,
        *,
        query_id: str | None = None,
        rule_id: str | None = None,
        space_id: str | None = None,
        status: AlertStatus | str | None = None,
        severity: AlertSeverity | str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Alert]:
        stmt = select(AlertTable)
        if query_id is not None:
            stmt = stmt.where(AlertTable.query_id == query_id)
        if rule_id is not None:
            stmt = stmt.where(AlertTable.rule_id == rule_id)
        if space_id is not None:
            stmt = stmt.where(AlertTable.space_id == space_id)
        if status is not None:
            stmt = stmt.where(AlertTable.status == AlertStatus(status).value)
        if severity is not None:
            stmt = stmt.where(AlertTable.severity == _severity(severity).value)
        stmt = stmt.order_by(AlertTable.created_at.desc(), AlertTable.id).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session_factory() as session:
            return [_to_alert(r) for r in session.scalars(stmt)]

    def find_open_alert(self, rule_id: str) -> Alert | None:
        """The rule's active or snoozed alert, if any."""
        stmt = (
            select(AlertTable)
            .where(
                AlertTable.rule_id == rule_id,
                AlertTable.status != AlertStatus.RESOLVED.value,
            )
            .order_by(AlertTable.created_at.desc())
            .limit(1)
        )
        with self._session_factory() as session:
            row = session.scalars(stmt).first()
            return _to_alert(row) if row else None

    # === Notifications ===

    def record_notification(self, notification: AlertNotification) -> AlertNotification:
        row = AlertNotificationTable(
            id=_new_id(),
            alert_id=notification.alert_id,
            channel=notification.channel,
            sent_at=ensure_utc(notification.sent_at) or utcnow(),
            status=NotificationStatus(notification.status).value,
            content=notification.content,
            error_message=notification.error_message,
        )
        with self._session_factory() as session, session.begin():
            session.add(row)
        return _to_notification(row)

    def list_notifications(
        self, alert_id: str, status: NotificationStatus | str | None = None
    ) -> list[AlertNotification]:
        stmt = select(AlertNotificationTable).where(AlertNotificationTable.alert_id == alert_id)
        if status is not None:
            stmt = stmt.where(AlertNotificationTable.status == NotificationStatus(status).value)
        stmt = stmt.order_by(AlertNotificationTable.sent_at, AlertNotificationTable.id)
        with self._session_factory() as session:
            return [_to_notification(r) for r in session.scalars(stmt)]


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------


def _to_connection(row: ConnectionTable) -> Connection:
    return Connection(
        id=row.id,
        user_id=row.user_id,
        space_id=row.space_id,
        name=row.name,
        type=row.type,
        config=dict(row.config or {}),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _to_query(row: QueryTable) -> Query:
    return Query(
        id=row.id,
        user_id=row.user_id,
        connection_id=row.connection_id,
        space_id=row.space_id,
        name=row.name,
        description=row.description,
        category=QueryCategory(row.category),
        query=row.query,
        expected_result=row.expected_result if row.expected_result is not None else {},
        thresholds=dict(row.thresholds or {}),
        enabled=bool(row.enabled),
        execution_frequency=ExecutionFrequency(row.execution_frequency),
        timeout_seconds=row.timeout_seconds,
        last_execution_time=ensure_utc(row.last_execution_time),
        next_execution_time=ensure_utc(row.next_execution_time),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _to_result(row: ExecutionResultTable) -> ExecutionResult:
    return ExecutionResult(
        id=row.id,
        query_id=row.query_id,
        execution_time=ensure_utc(row.execution_time),
        status=ExecutionStatus(row.status),
        result=row.result,
        metrics=dict(row.metrics or {}),
        execution_duration=row.execution_duration,
        error_message=row.error_message,
    )


def _to_rule(row: AlertRuleTable) -> AlertRule:
    return AlertRule(
        id=row.id,
        user_id=row.user_id,
        query_id=row.query_id,
        space_id=row.space_id,
        name=row.name,
        description=row.description,
        severity=AlertSeverity(row.severity),
        condition=dict(row.condition or {}),
        enabled=bool(row.enabled),
        notification_channels=list(row.notification_channels or []),
        email_recipients=row.email_recipients,
        slack_webhook=row.slack_webhook,
        custom_webhook=row.custom_webhook,
        throttle_minutes=row.throttle_minutes,
        notify_on_resolve=row.notify_on_resolve,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _apply_alert(row: AlertTable, alert: Alert) -> None:
    status = AlertStatus(alert.status)
    resolved_at = ensure_utc(alert.resolved_at)
    if status == AlertStatus.RESOLVED and resolved_at is None:
        raise ConfigError(f"Resolved alert {alert.id} has no resolved_at")
    if status != AlertStatus.RESOLVED:
        resolved_at = None

    row.user_id = alert.user_id
    row.query_id = alert.query_id
    row.space_id = alert.space_id
    row.rule_id = alert.rule_id
    row.execution_result_id = alert.execution_result_id
    row.name = alert.name
    row.description = alert.description
    row.severity = _severity(alert.severity).value
    row.condition = alert.condition or {}
    row.status = status.value
    row.enabled = alert.enabled
    row.notification_channels = list(alert.notification_channels)
    row.email_recipients = alert.email_recipients
    row.slack_webhook = alert.slack_webhook
    row.custom_webhook = alert.custom_webhook
    row.throttle_minutes = alert.throttle_minutes
    row.last_triggered_at = ensure_utc(alert.last_triggered_at)
    row.trigger_count = alert.trigger_count
    row.suppressed_count = alert.suppressed_count
    row.snoozed_until = ensure_utc(alert.snoozed_until) if status == AlertStatus.SNOOZED else None
    row.resolved_at = resolved_at


def _to_alert(row: AlertTable) -> Alert:
    return Alert(
        id=row.id,
        user_id=row.user_id,
        query_id=row.query_id,
        space_id=row.space_id,
        rule_id=row.rule_id,
        execution_result_id=row.execution_result_id,
        name=row.name,
        description=row.description,
        severity=AlertSeverity(row.severity),
        condition=dict(row.condition or {}),
        status=AlertStatus(row.status),
        enabled=bool(row.enabled),
        notification_channels=list(row.notification_channels or []),
        email_recipients=row.email_recipients,
        slack_webhook=row.slack_webhook,
        custom_webhook=row.custom_webhook,
        throttle_minutes=row.throttle_minutes,
        last_triggered_at=ensure_utc(row.last_triggered_at),
        trigger_count=row.trigger_count or 0,
        suppressed_count=row.suppressed_count or 0,
        snoozed_until=ensure_utc(row.snoozed_until),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
        resolved_at=ensure_utc(row.resolved_at),
        version=row.version or 0,
    )


def _to_notification(row: AlertNotificationTable) -> AlertNotification:
    return AlertNotification(
        id=row.id,
        alert_id=row.alert_id,
        channel=row.channel,
        sent_at=ensure_utc(row.sent_at),
        status=NotificationStatus(row.status),
        content=row.content,
        error_message=row.error_message,
    )


__all__ = [
    "QueryStore",
    "ConnectionCreate",
    "QueryCreate",
    "QueryUpdate",
    "AlertRuleCreate",
    "AlertRuleUpdate",
]
