"""Data-source connection resolution."""

from dbqa.connections.protocol import ConnectionResolver, QueryHandle, Row
from dbqa.connections.sqlalchemy_resolver import (
    SQLAlchemyConnectionResolver,
    SQLAlchemyQueryHandle,
    build_url,
)

__all__ = [
    "ConnectionResolver",
    "QueryHandle",
    "Row",
    "SQLAlchemyConnectionResolver",
    "SQLAlchemyQueryHandle",
    "build_url",
]
