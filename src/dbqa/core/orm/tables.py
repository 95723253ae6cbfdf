"""DB QA tables.

Six tables: connections, queries, execution results, alert rules, alerts
and notification deliveries. Child rows reference their parent with
``ON DELETE CASCADE`` so removing a query removes its history.
"""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dbqa.core.orm.base import DbqaBase, TimestampMixin, UTCDateTime


class ConnectionTable(TimestampMixin, DbqaBase):
    __tablename__ = "db_qa_connections"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    space_id: Mapped[str | None] = mapped_column(Text)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class QueryTable(TimestampMixin, DbqaBase):
    __tablename__ = "db_qa_queries"
    __table_args__ = (
        Index("ix_db_qa_queries_due", "enabled", "next_execution_time"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    connection_id: Mapped[str] = mapped_column(
        Text, ForeignKey("db_qa_connections.id"), nullable=False
    )
    space_id: Mapped[str | None] = mapped_column(Text)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    query: Mapped[str] = mapped_column(Text, nullable=False)
    expected_result: Mapped[dict | None] = mapped_column(JSON, default=dict)
    thresholds: Mapped[dict | None] = mapped_column(JSON, default=dict)
    enabled: Mapped[bool] = mapped_column(default=True, nullable=False)
    execution_frequency: Mapped[str] = mapped_column(
        Text, default="manual", nullable=False
    )
    timeout_seconds: Mapped[float | None] = mapped_column()
    last_execution_time: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    next_execution_time: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)

    results: Mapped[list[ExecutionResultTable]] = relationship(
        back_populates="query", cascade="all, delete-orphan", passive_deletes=True
    )


class ExecutionResultTable(DbqaBase):
    __tablename__ = "db_qa_execution_results"
    __table_args__ = (
        Index("ix_db_qa_execution_results_query_time", "query_id", "execution_time"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    query_id: Mapped[str] = mapped_column(
        Text, ForeignKey("db_qa_queries.id", ondelete="CASCADE"), nullable=False
    )
    execution_time: Mapped[datetime.datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    result: Mapped[dict | None] = mapped_column(JSON)
    metrics: Mapped[dict | None] = mapped_column(JSON)
    execution_duration: Mapped[int | None] = mapped_column(Integer)
    error_message: Mapped[str | None] = mapped_column(Text)

    query: Mapped[QueryTable] = relationship(back_populates="results")


class AlertRuleTable(TimestampMixin, DbqaBase):
    __tablename__ = "db_qa_alert_rules"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    query_id: Mapped[str] = mapped_column(
        Text, ForeignKey("db_qa_queries.id", ondelete="CASCADE"), nullable=False
    )
    space_id: Mapped[str | None] = mapped_column(Text)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    severity: Mapped[str] = mapped_column(Text, default="medium", nullable=False)
    condition: Mapped[dict] = mapped_column(JSON, nullable=False)
    enabled: Mapped[bool] = mapped_column(default=True, nullable=False)
    notification_channels: Mapped[list] = mapped_column(JSON, default=list)
    email_recipients: Mapped[str | None] = mapped_column(Text)
    slack_webhook: Mapped[str | None] = mapped_column(Text)
    custom_webhook: Mapped[str | None] = mapped_column(Text)
    throttle_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    notify_on_resolve: Mapped[bool | None] = mapped_column()


class AlertTable(TimestampMixin, DbqaBase):
    __tablename__ = "db_qa_alerts"
    __table_args__ = (
        Index("ix_db_qa_alerts_rule_status", "rule_id", "status"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    query_id: Mapped[str] = mapped_column(
        Text, ForeignKey("db_qa_queries.id", ondelete="CASCADE"), nullable=False
    )
    space_id: Mapped[str | None] = mapped_column(Text)
    rule_id: Mapped[str | None] = mapped_column(
        Text, ForeignKey("db_qa_alert_rules.id", ondelete="SET NULL")
    )
    execution_result_id: Mapped[str | None] = mapped_column(
        Text, ForeignKey("db_qa_execution_results.id", ondelete="SET NULL")
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    severity: Mapped[str] = mapped_column(Text, default="medium", nullable=False)
    condition: Mapped[dict] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(Text, default="active", nullable=False)
    enabled: Mapped[bool] = mapped_column(default=True, nullable=False)
    notification_channels: Mapped[list] = mapped_column(JSON, default=list)
    email_recipients: Mapped[str | None] = mapped_column(Text)
    slack_webhook: Mapped[str | None] = mapped_column(Text)
    custom_webhook: Mapped[str | None] = mapped_column(Text)
    throttle_minutes: Mapped[int] = mapped_column(Integer, default=60, nullable=False)
    last_triggered_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    trigger_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    suppressed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    snoozed_until: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    resolved_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    notifications: Mapped[list[AlertNotificationTable]] = relationship(
        back_populates="alert", cascade="all, delete-orphan", passive_deletes=True
    )


class AlertNotificationTable(DbqaBase):
    __tablename__ = "db_qa_alert_notifications"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    alert_id: Mapped[str] = mapped_column(
        Text, ForeignKey("db_qa_alerts.id", ondelete="CASCADE"), nullable=False
    )
    channel: Mapped[str] = mapped_column(Text, nullable=False)
    sent_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[dict | None] = mapped_column(JSON)
    error_message: Mapped[str | None] = mapped_column(Text)

    alert: Mapped[AlertTable] = relationship(back_populates="notifications")


__all__ = [
    "ConnectionTable",
    "QueryTable",
    "ExecutionResultTable",
    "AlertRuleTable",
    "AlertTable",
    "AlertNotificationTable",
]
