"""SQLAlchemy-backed connection resolver.

Builds one engine per stored connection and caches it until the
connection record changes. Connection ``config`` is either a full URL::

    {"url": "postgresql+psycopg://user:pw@host:5432/warehouse"}

or discrete parts combined with the connection ``type``::

    {"host": "db", "port": 5432, "database": "warehouse",
     "username": "qa", "password": "...", "driver": "psycopg"}
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Connection as SAConnection, Engine
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, OperationalError, SQLAlchemyError

from dbqa.connections.protocol import Row
from dbqa.core.errors import ConnectionUnavailable, ExecutionError
from dbqa.core.models import Connection
from dbqa.core.store import QueryStore
from dbqa.logging import get_logger

logger = get_logger(__name__)

_TYPE_ALIASES = {
    "postgres": "postgresql",
    "pg": "postgresql",
    "mariadb": "mysql",
    "sqlserver": "mssql",
}


def build_url(connection: Connection) -> URL | str:
    """SQLAlchemy URL for a stored connection."""
    config = connection.config or {}
    if config.get("url"):
        return str(config["url"])
    dialect = _TYPE_ALIASES.get(connection.type.lower(), connection.type.lower())
    driver = config.get("driver")
    drivername = f"{dialect}+{driver}" if driver else dialect
    port = config.get("port")
    return URL.create(
        drivername,
        username=config.get("username") or config.get("user"),
        password=config.get("password"),
        host=config.get("host"),
        port=int(port) if port not in (None, "") else None,
        database=config.get("database") or config.get("path"),
        query=config.get("options") or {},
    )


class SQLAlchemyQueryHandle:
    """Runs one query on a checked-out SQLAlchemy connection."""

    def __init__(self, connection: SAConnection, connection_id: str) -> None:
        self._connection = connection
        self._connection_id = connection_id

    def execute(self, sql: str, timeout: float | None = None) -> list[Row]:
        try:
            result = self._connection.execute(text(sql))
            if not result.returns_rows:
                return []
            rows = [dict(r._mapping) for r in result]
            # Quality checks are read only
            self._connection.rollback()
            return rows
        except SQLAlchemyError as e:
            raise ExecutionError(
                str(getattr(e, "orig", None) or e), cause=e
            ).with_context(connection_id=self._connection_id) from e

    def close(self) -> None:
        self._connection.close()


class SQLAlchemyConnectionResolver:
    """Resolves stored connections to SQLAlchemy handles.

    Example:
        >>> resolver = SQLAlchemyConnectionResolver(store)
        >>> handle = resolver.resolve(query.connection_id)
        >>> try:
        ...     rows = handle.execute(query.query)
        ... finally:
        ...     handle.close()
    """

    def __init__(self, store: QueryStore, engine_options: dict[str, Any] | None = None) -> None:
        self._store = store
        self._engine_options = engine_options or {}
        self._engines: dict[str, tuple[datetime | None, Engine]] = {}
        self._lock = threading.Lock()

    def _engine_for(self, connection: Connection) -> Engine:
        with self._lock:
            cached = self._engines.get(connection.id)
            if cached and cached[0] == connection.updated_at:
                return cached[1]
            if cached:
                cached[1].dispose()
            try:
                engine = create_engine(
                    build_url(connection), pool_pre_ping=True, **self._engine_options
                )
            except (ArgumentError, NoSuchModuleError, ImportError, ValueError) as e:
                raise ConnectionUnavailable(
                    f"Cannot build engine for connection {connection.name!r}: {e}", cause=e
                ).with_context(connection_id=connection.id) from e
            self._engines[connection.id] = (connection.updated_at, engine)
            return engine

    def resolve(self, connection_id: str) -> SQLAlchemyQueryHandle:
        connection = self._store.get_connection(connection_id)
        if connection is None:
            raise ConnectionUnavailable(
                f"Connection not found: {connection_id}", retryable=False
            ).with_context(connection_id=connection_id)
        engine = self._engine_for(connection)
        try:
            sa_connection = engine.connect()
        except (OperationalError, SQLAlchemyError) as e:
            logger.warning("connection_unavailable", connection_id=connection_id, error=str(e))
            raise ConnectionUnavailable(
                f"Connection {connection.name!r} is unavailable: {e}", cause=e
            ).with_context(connection_id=connection_id) from e
        return SQLAlchemyQueryHandle(sa_connection, connection_id)

    def dispose(self) -> None:
        with self._lock:
            for _, engine in self._engines.values():
                engine.dispose()
            self._engines.clear()
