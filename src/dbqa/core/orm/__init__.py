"""SQLAlchemy 2.0 persistence layer for the DB QA store.

Modules
-------
base        DbqaBase (declarative base), UTCDateTime, TimestampMixin
session     Engine factory, DbqaSession, dbqa_session_factory
tables      The six ``db_qa_*`` tables
"""

from __future__ import annotations

from dbqa.core.orm.base import DbqaBase, TimestampMixin, UTCDateTime
from dbqa.core.orm.session import DbqaSession, create_dbqa_engine, dbqa_session_factory
from dbqa.core.orm.tables import (
    AlertNotificationTable,
    AlertRuleTable,
    AlertTable,
    ConnectionTable,
    ExecutionResultTable,
    QueryTable,
)

__all__ = [
    "DbqaBase",
    "TimestampMixin",
    "UTCDateTime",
    "DbqaSession",
    "create_dbqa_engine",
    "dbqa_session_factory",
    "ConnectionTable",
    "QueryTable",
    "ExecutionResultTable",
    "AlertRuleTable",
    "AlertTable",
    "AlertNotificationTable",
]
