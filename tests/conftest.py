"""
Shared pytest fixtures for dbqa-core tests.

This module provides:
- A file-backed SQLite store under ``tmp_path``
- A small SQLite "warehouse" data source with an ``orders`` table
- Factories for connections, queries and alert rules
- Recording notification channels and a dispatcher around them

Usage:
    def test_something(store, make_query):
        query = make_query(thresholds={"max": 0})
        ...
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import create_engine, text

from dbqa.alerting.dispatcher import NotificationDispatcher
from dbqa.alerting.engine import AlertEngine
from dbqa.config import DbqaSettings, clear_settings_cache
from dbqa.core.enums import ChannelType
from dbqa.core.models import AlertRule, Connection, Query
from dbqa.core.orm.session import create_dbqa_engine, dbqa_session_factory
from dbqa.core.store import AlertRuleCreate, ConnectionCreate, QueryCreate, QueryStore
from dbqa.evaluation import ThresholdEvaluator
from dbqa.execution import CheckRunner, QueryExecutor
from tests._support.fakes import RecordingChannel


# =============================================================================
# Settings & Store
# =============================================================================


@pytest.fixture(autouse=True)
def _clean_settings_cache() -> Generator[None, None, None]:
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings(tmp_path: Path) -> DbqaSettings:
    return DbqaSettings(
        database_url=f"sqlite:///{tmp_path / 'dbqa.db'}",
        query_timeout_seconds=5,
        scheduler_interval_seconds=0.1,
        worker_pool_size=2,
    )


@pytest.fixture
def store(settings: DbqaSettings) -> Generator[QueryStore, None, None]:
    engine = create_dbqa_engine(settings.database_url)
    store = QueryStore(dbqa_session_factory(engine))
    store.create_all()
    yield store
    engine.dispose()


# =============================================================================
# Data source
# =============================================================================

ORDERS = [
    (1, "alice@example.com", 120.0, "2026-01-05T10:00:00+00:00"),
    (2, None, 35.5, "2026-01-05T11:00:00+00:00"),
    (3, "carol@example.com", -4.0, "2026-01-06T09:30:00+00:00"),
    (4, "dave@example.com", -12.0, "2026-01-06T12:00:00+00:00"),
    (5, "erin@example.com", -1.0, "2026-01-07T08:15:00+00:00"),
]


@pytest.fixture
def source_url(tmp_path: Path) -> str:
    """SQLite warehouse with five orders, three of them with a negative total."""
    url = f"sqlite:///{tmp_path / 'warehouse.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE orders (id INTEGER PRIMARY KEY, customer_email TEXT, "
                "total REAL, created_at TEXT)"
            )
        )
        conn.execute(
            text("INSERT INTO orders VALUES (:id, :email, :total, :created_at)"),
            [
                {"id": i, "email": e, "total": t, "created_at": c}
                for i, e, t, c in ORDERS
            ],
        )
    engine.dispose()
    return url


@pytest.fixture
def connection(store: QueryStore, source_url: str) -> Connection:
    return store.create_connection(
        ConnectionCreate(name="warehouse", type="sqlite", config={"url": source_url})
    )


# =============================================================================
# Factories
# =============================================================================


NEGATIVE_TOTALS_SQL = "SELECT count(*) AS count FROM orders WHERE total < 0"


@pytest.fixture
def make_query(store: QueryStore, connection: Connection) -> Callable[..., Query]:
    def _make(**overrides: Any) -> Query:
        fields: dict[str, Any] = {
            "name": "negative totals",
            "connection_id": connection.id,
            "query": NEGATIVE_TOTALS_SQL,
            "expected_result": {"count": 0},
            "thresholds": {"max": 0},
        }
        fields.update(overrides)
        return store.create_query(QueryCreate(**fields))

    return _make


@pytest.fixture
def make_rule(store: QueryStore) -> Callable[..., AlertRule]:
    def _make(query_id: str, **overrides: Any) -> AlertRule:
        fields: dict[str, Any] = {
            "query_id": query_id,
            "name": "orders look wrong",
            "severity": "high",
            "notification_channels": ["email", "webhook"],
            "email_recipients": "dq@example.com",
            "custom_webhook": "https://hooks.example.com/dq",
            "throttle_minutes": 60,
        }
        fields.update(overrides)
        return store.create_rule(AlertRuleCreate(**fields))

    return _make


# =============================================================================
# Alerting
# =============================================================================


@pytest.fixture
def channels() -> dict[ChannelType, RecordingChannel]:
    return {t: RecordingChannel(t) for t in ChannelType}


@pytest.fixture
def dispatcher(
    store: QueryStore, channels: dict[ChannelType, RecordingChannel]
) -> Generator[NotificationDispatcher, None, None]:
    dispatcher = NotificationDispatcher(store, dict(channels))
    yield dispatcher
    dispatcher.close()


@pytest.fixture
def runner_factory(
    store: QueryStore, dispatcher: NotificationDispatcher
) -> Callable[..., CheckRunner]:
    """Build a CheckRunner around any resolver; defaults to the real SQLite source."""

    def _make(resolver: Any = None, timeout: float = 5.0) -> CheckRunner:
        if resolver is None:
            from dbqa.connections import SQLAlchemyConnectionResolver

            resolver = SQLAlchemyConnectionResolver(store)
        return CheckRunner(
            store,
            QueryExecutor(resolver, default_timeout=timeout),
            ThresholdEvaluator(),
            AlertEngine(store),
            dispatcher,
        )

    return _make
