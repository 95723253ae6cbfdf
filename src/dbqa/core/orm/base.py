"""Declarative base, column types and mixins for the DB QA tables.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
so ``Mapped`` columns can use plain Python types.

Timestamps are stored as naive UTC and handed back as timezone-aware
UTC datetimes by :class:`UTCDateTime`, so comparisons against
``datetime.now(UTC)`` never mix naive and aware values.
"""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """``DateTime`` that stores naive UTC and loads aware UTC."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(datetime.UTC)
        return value.replace(tzinfo=None)

    def process_result_value(self, value: Any, dialect: Any) -> Any:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.UTC)
        return value.astimezone(datetime.UTC)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class DbqaBase(DeclarativeBase):
    """Shared declarative base for every ``db_qa_*`` table.

    * ``str``   → ``Text``
    * ``int``   → ``Integer``
    * ``float`` → ``Float``
    * ``bool``  → ``Boolean``
    * ``datetime.datetime`` → :class:`UTCDateTime`
    * ``dict`` / ``list`` → ``JSON``
    """

    type_annotation_map = {
        str: Text,
        int: Integer,
        float: Float,
        bool: Boolean,
        datetime.datetime: UTCDateTime,
        dict: JSON,
        list: JSON,
    }


class TimestampMixin:
    """Adds ``created_at`` and ``updated_at``, maintained client side."""

    created_at: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime.datetime | None] = mapped_column(
        UTCDateTime, nullable=True, default=_utcnow, onupdate=_utcnow
    )
