"""Engine and session construction for the DB QA store.

The store is shared by the API thread, the scheduler tick and the worker
pool, so SQLite engines are built to be used across threads: the driver's
same-thread check is off, file databases run in WAL mode and an in-memory
database is pinned to a single connection so every thread sees the same
tables. Other backends get ``pool_pre_ping`` so a worker never picks up a
connection the server already dropped.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


def _enable_sqlite_pragmas(engine: Engine, *, wal: bool) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        try:
            if wal:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()


def create_dbqa_engine(
    url: str = "sqlite:///dbqa.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Build the store engine for *url*.

    ``pool_size`` and ``max_overflow`` apply to server databases only.
    Remaining keyword arguments go straight to ``create_engine``.
    """
    parsed = make_url(url)

    if parsed.get_backend_name() == "sqlite":
        in_memory = parsed.database in (None, "", ":memory:")
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        if in_memory:
            kwargs.setdefault("poolclass", StaticPool)
        engine = create_engine(parsed, echo=echo, connect_args=connect_args, **kwargs)
        _enable_sqlite_pragmas(engine, wal=not in_memory)
        return engine

    kwargs.setdefault("pool_pre_ping", True)
    if pool_size is not None:
        kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        kwargs["max_overflow"] = max_overflow
    return create_engine(parsed, echo=echo, **kwargs)


class DbqaSession(Session):
    """Session whose instances stay readable after commit.

    Store methods convert rows to domain dataclasses after the transaction
    closes, which must not trigger a refresh.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def dbqa_session_factory(engine: Engine) -> sessionmaker[DbqaSession]:
    return sessionmaker(bind=engine, class_=DbqaSession, expire_on_commit=False)
