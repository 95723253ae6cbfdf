"""Connection resolver protocol.

The executor never knows how a data source is reached. It asks a
``ConnectionResolver`` for a ``QueryHandle`` and runs SQL through it::

    resolver.resolve(connection_id)  ->  QueryHandle | ConnectionUnavailable
    handle.execute(sql, timeout)     ->  rows        | ExecutionError

Rows are a list of column-name → value mappings in result order.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

Row = Mapping[str, Any]


@runtime_checkable
class QueryHandle(Protocol):
    """An open connection able to run one query."""

    def execute(self, sql: str, timeout: float | None = None) -> list[Row]:
        """Run ``sql`` and return all rows.

        Raises:
            ExecutionError: The statement failed on the data source.
        """
        ...

    def close(self) -> None:
        """Release the underlying connection."""
        ...


@runtime_checkable
class ConnectionResolver(Protocol):
    """Maps a connection id to an open ``QueryHandle``."""

    def resolve(self, connection_id: str) -> QueryHandle:
        """
        Raises:
            ConnectionUnavailable: Unknown connection or the source is unreachable.
        """
        ...

    def dispose(self) -> None:
        """Release any pooled resources."""
        ...
