"""Async query runner.

Quarry owns no connections.  The runner drives two collaborators supplied
by the application, a :class:`ConnectionPool` and a :class:`Driver`, and
adds what every execution needs on top of them: paramstyle conversion,
timeouts and cancellation, ``output`` post-processing, response hooks,
transactions and error annotation.  Collaborator methods may be plain or
``async``; a plain ``execute`` runs in a worker thread so timeouts still
apply::

    runner = Runner(client, pool, driver)
    rows = await runner.run(db("users").where("id", 5))

Statements compiled together (``db.schema`` sequences, SQLite table
rebuilds) run one after another on the same connection.  A table rebuild
runs inside a transaction, and so does :meth:`Runner.transaction`::

    async with runner.transaction() as trx:
        await trx.run(db("accounts").where("id", 1).decrement("balance", 10))
        await trx.run(db("accounts").where("id", 2).increment("balance", 10))
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

from quarry.errors import ExecutionError, QuarryError, QuarryTimeoutError
from quarry.query.compiled import CompiledQuery

if TYPE_CHECKING:
    from quarry.client import Client

logger = structlog.get_logger(__name__)

_ACQUIRE_TIMEOUT_MESSAGE = (
    "Timeout acquiring a connection. The pool is probably full. "
    "Are you missing a .transacting(trx) call?"
)


# ---------------------------------------------------------------------------
# Collaborator contracts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QueryResult:
    """What a driver returns for one statement."""

    rows: list[Any] = field(default_factory=list)
    row_count: int = 0


@runtime_checkable
class ConnectionPool(Protocol):
    """Hands out connections; every method may be sync or async."""

    def acquire(self) -> Any: ...

    def release(self, connection: Any) -> Any: ...

    def destroy(self) -> Any: ...

    def validate(self, connection: Any) -> Any: ...


@runtime_checkable
class Driver(Protocol):
    """Executes native SQL on a connection.

    A driver that can cancel running queries also provides
    ``cancel(connection)``.
    """

    def execute(self, connection: Any, sql: str, bindings: Sequence[Any]) -> Any: ...


async def _maybe_await(value: Any) -> Any:
    """Await awaitables and return non-awaitable values unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


async def _call(fn: Any, *args: Any) -> Any:
    """Call ``fn``; a plain function runs in a worker thread."""
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    return await _maybe_await(await asyncio.to_thread(fn, *args))


def _statements(query: Any) -> tuple[Any, list[CompiledQuery]]:
    compiled = query.to_sql() if hasattr(query, "to_sql") else query
    statements = list(compiled) if isinstance(compiled, (list, tuple)) else [compiled]
    return compiled, statements


def _context(query: Any, query_context: Any) -> Any:
    if query_context is None and callable(getattr(query, "query_context", None)):
        return query.query_context()
    return query_context


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class Runner:
    """Executes compiled queries through the pool and driver collaborators.

    A driver may provide ``begin``, ``commit`` and ``rollback`` taking the
    connection; otherwise transactions are driven with the dialect's SQL
    statements.

    Args:
        client: Client whose dialect compiled the queries.
        pool: Connection pool collaborator.
        driver: Driver collaborator.
    """

    def __init__(self, client: Client, pool: ConnectionPool, driver: Driver) -> None:
        self.client = client
        self.pool = pool
        self.driver = driver

    async def run(self, query: Any, query_context: Any = None) -> Any:
        """Execute a builder, raw, schema builder or compiled query.

        Args:
            query: Anything with ``to_sql()``, a :class:`CompiledQuery`, or a
                list of compiled queries run in order.
            query_context: Passed to ``post_process_response``; taken from
                the builder when omitted.

        Returns:
            The processed response of a single statement, or a list of them
            when ``query`` compiles to several.

        Raises:
            QuarryTimeoutError: If acquiring a connection or the query times out.
            ExecutionError: If the driver fails.
        """
        query_context = _context(query, query_context)
        compiled, statements = _statements(query)

        connection = await self.acquire_connection()
        try:
            results = [await self.execute(connection, statement, query_context) for statement in statements]
        finally:
            await _maybe_await(self.pool.release(connection))

        if isinstance(compiled, (list, tuple)):
            return results
        return results[0]

    async def run_all(self, queries: Sequence[Any]) -> list[Any]:
        """Run each query in turn, each on its own connection checkout."""
        return [await self.run(query) for query in queries]

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """Hold one connection for a commit/rollback block.

        Leaving the block normally commits; any exception rolls back and
        propagates.  The connection is released either way.
        """
        connection = await self.acquire_connection()
        try:
            async with self.atomic(connection):
                yield Transaction(self, connection)
        finally:
            await _maybe_await(self.pool.release(connection))

    @contextlib.asynccontextmanager
    async def atomic(self, connection: Any) -> AsyncIterator[None]:
        """Begin on ``connection``, then commit or roll back."""
        await self._control(connection, "begin")
        try:
            yield
        except BaseException:
            logger.warning("transaction.rollback", dialect=self.client.dialect_name)
            await self._control(connection, "rollback")
            raise
        await self._control(connection, "commit")

    async def acquire_connection(self) -> Any:
        timeout_ms = self.client.config.acquire_connection_timeout
        try:
            connection = await asyncio.wait_for(
                _maybe_await(self.pool.acquire()),
                timeout_ms / 1000 if timeout_ms else None,
            )
        except (asyncio.TimeoutError, TimeoutError) as exc:
            logger.error("pool.acquire.timeout", dialect=self.client.dialect_name, timeout_ms=timeout_ms)
            raise QuarryTimeoutError(_ACQUIRE_TIMEOUT_MESSAGE) from exc
        if not await _maybe_await(self.pool.validate(connection)):
            await _maybe_await(self.pool.release(connection))
            raise ExecutionError("Acquired connection failed validation")
        return connection

    async def execute(
        self,
        connection: Any,
        compiled: CompiledQuery,
        query_context: Any = None,
        in_transaction: bool = False,
    ) -> Any:
        """Run one statement on ``connection`` and apply its ``output`` hook.

        An ``output`` hook that returns compiled queries (a SQLite table
        rebuild) has them executed on the same connection, inside a
        transaction unless one is already open; their results are
        returned in place of the hook's.
        """
        result = await self._query(connection, compiled)
        if compiled.output is not None:
            result = compiled.output(result)
            if isinstance(result, list) and result and all(isinstance(item, CompiledQuery) for item in result):
                follow_ups = result
                if in_transaction:
                    result = [await self._query(connection, follow_up) for follow_up in follow_ups]
                else:
                    async with self.atomic(connection):
                        result = [await self._query(connection, follow_up) for follow_up in follow_ups]
        return self.client.post_process_response(result, query_context)

    async def _query(self, connection: Any, compiled: CompiledQuery) -> Any:
        native = self.client.to_native(compiled)
        log = logger.bind(dialect=self.client.dialect_name, method=compiled.method)
        log.debug("query.executing", sql=native.sql, bindings=list(native.bindings))

        try:
            pending = _call(self.driver.execute, connection, native.sql, native.bindings)
            if compiled.timeout:
                result = await asyncio.wait_for(pending, compiled.timeout / 1000)
            else:
                result = await pending
        except (asyncio.TimeoutError, TimeoutError) as exc:
            if compiled.cancel_on_timeout:
                await self._cancel(connection)
            log.error("query.failed", sql=native.sql, reason="timeout", timeout_ms=compiled.timeout)
            raise QuarryTimeoutError(
                f"Defined query timeout of {compiled.timeout}ms exceeded when running query.",
                sql=native.sql,
                bindings=native.bindings,
            ) from exc
        except QuarryError:
            raise
        except Exception as exc:
            formatted = self.client.format_query(compiled.sql, compiled.bindings)
            log.error("query.failed", sql=native.sql, error=str(exc))
            raise ExecutionError(f"{formatted} - {exc}", sql=native.sql, bindings=native.bindings) from exc

        log.debug("query.completed", row_count=getattr(result, "row_count", None))
        return result

    async def _control(self, connection: Any, action: str) -> None:
        hook = getattr(self.driver, action, None)
        if callable(hook):
            await _call(hook, connection)
            return
        sql = self.client.capabilities.begin_transaction if action == "begin" else action
        if sql is not None:
            await self._query(connection, CompiledQuery(sql=sql, method="raw", dialect=self.client.dialect_name))

    async def _cancel(self, connection: Any) -> None:
        self.client.assert_can_cancel_query()
        cancel = getattr(self.driver, "cancel", None)
        if cancel is None:
            raise ExecutionError("The driver does not implement cancel(connection)")
        await _maybe_await(cancel(connection))


class Transaction:
    """Runs queries on the connection held by :meth:`Runner.transaction`."""

    def __init__(self, runner: Runner, connection: Any) -> None:
        self.runner = runner
        self.connection = connection

    async def run(self, query: Any, query_context: Any = None) -> Any:
        query_context = _context(query, query_context)
        compiled, statements = _statements(query)
        results = [
            await self.runner.execute(self.connection, statement, query_context, in_transaction=True)
            for statement in statements
        ]
        if isinstance(compiled, (list, tuple)):
            return results
        return results[0]
