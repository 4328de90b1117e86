"""Pool and driver collaborators over SQLAlchemy.

Requires the optional ``sqlalchemy`` extra::

    pip install "quarry[sqlalchemy]"

SQLAlchemy is used purely as a connection layer: Quarry hands it native
SQL already converted to the DBAPI paramstyle, so the driver goes through
:meth:`~sqlalchemy.engine.Connection.exec_driver_sql` and bypasses
SQLAlchemy's own compiler::

    pool = SQLAlchemyPool.from_url("sqlite://")
    runner = Runner(db.client, pool, SQLAlchemyDriver())
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from quarry.execution.runner import QueryResult

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine


class SQLAlchemyPool:
    """Checks connections out of an :class:`~sqlalchemy.engine.Engine`.

    Released connections commit any open transaction before returning to
    the engine's pool.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def from_url(cls, url: str, **engine_options: Any) -> SQLAlchemyPool:
        """Create the engine from a SQLAlchemy URL.

        Raises:
            ImportError: If ``sqlalchemy`` is not installed.
        """
        try:
            from sqlalchemy import create_engine
        except ImportError as exc:
            raise ImportError(
                "SQLAlchemy is required for SQLAlchemyPool.from_url(). "
                'Install it with: pip install "quarry[sqlalchemy]"'
            ) from exc
        return cls(create_engine(url, **engine_options))

    def acquire(self) -> Connection:
        return self.engine.connect()

    def release(self, connection: Connection) -> None:
        if connection.in_transaction():
            connection.commit()
        connection.close()

    def validate(self, connection: Connection) -> bool:
        return not connection.closed and not connection.invalidated

    def destroy(self) -> None:
        self.engine.dispose()


class SQLAlchemyDriver:
    """Executes native SQL on a SQLAlchemy connection.

    Transactions map onto the connection's ``begin``, ``commit`` and
    ``rollback``.
    """

    def execute(self, connection: Connection, sql: str, bindings: Sequence[Any]) -> QueryResult:
        result = connection.exec_driver_sql(sql, tuple(bindings))
        rows = [dict(row._mapping) for row in result] if result.returns_rows else []
        return QueryResult(rows=rows, row_count=result.rowcount)

    def begin(self, connection: Connection) -> None:
        if connection.in_transaction():
            connection.commit()
        connection.begin()

    def commit(self, connection: Connection) -> None:
        connection.commit()

    def rollback(self, connection: Connection) -> None:
        connection.rollback()
