"""Unit tests for the async runner against in-memory pool and driver fakes."""

from __future__ import annotations

import asyncio
import time

import pytest
from structlog.testing import capture_logs

from quarry import Quarry
from quarry.errors import (
    CapabilityError,
    ExecutionError,
    QuarryTimeoutError,
    ValidationError,
)
from quarry.execution import ConnectionPool, Driver, QueryResult, Runner
from quarry.query.compiled import CompiledQuery


class FakePool:
    def __init__(self, valid: bool = True) -> None:
        self.valid = valid
        self.acquired = 0
        self.released: list[str] = []

    def acquire(self):
        self.acquired += 1
        return f"conn{self.acquired}"

    def release(self, connection):
        self.released.append(connection)

    def validate(self, connection):
        return self.valid

    def destroy(self):
        pass


class FakeDriver:
    def __init__(self, rows=None, error: Exception | None = None) -> None:
        self.rows = rows or []
        self.error = error
        self.calls: list[tuple[str, tuple]] = []

    def execute(self, connection, sql, bindings):
        self.calls.append((sql, tuple(bindings)))
        if self.error is not None:
            raise self.error
        return QueryResult(rows=list(self.rows), row_count=len(self.rows))


class SlowDriver:
    """Async driver that never finishes in time; records cancellations."""

    def __init__(self) -> None:
        self.cancelled: list[str] = []

    async def execute(self, connection, sql, bindings):
        await asyncio.sleep(5)

    async def cancel(self, connection):
        self.cancelled.append(connection)


class SleepyDriver:
    """Blocking driver slower than the query timeouts used below."""

    def __init__(self) -> None:
        self.cancelled: list[str] = []

    def execute(self, connection, sql, bindings):
        time.sleep(0.5)
        return QueryResult(rows=[1], row_count=1)

    def cancel(self, connection):
        self.cancelled.append(connection)


class FailingDriver(FakeDriver):
    """Fails statements matching ``fail_on(sql, bindings)``."""

    def __init__(self, fail_on, rows=None) -> None:
        super().__init__(rows=rows)
        self.fail_on = fail_on

    def execute(self, connection, sql, bindings):
        self.calls.append((sql, tuple(bindings)))
        if self.fail_on(sql, tuple(bindings)):
            raise RuntimeError("constraint failed")
        return QueryResult(rows=list(self.rows), row_count=len(self.rows))


class AsyncPool(FakePool):
    async def acquire(self):
        return super().acquire()

    async def release(self, connection):
        super().release(connection)

    async def validate(self, connection):
        return self.valid


class StuckPool(FakePool):
    async def acquire(self):
        await asyncio.sleep(5)


def _run(runner, query, **kwargs):
    return asyncio.run(runner.run(query, **kwargs))


def test_fakes_satisfy_protocols():
    assert isinstance(FakePool(), ConnectionPool)
    assert isinstance(FakeDriver(), Driver)


class TestRun:
    def test_select_uses_native_paramstyle(self, pg):
        pool, driver = FakePool(), FakeDriver(rows=[{"id": 5}])
        result = _run(Runner(pg.client, pool, driver), pg("users").where("id", 5))
        assert driver.calls == [('select * from "users" where "id" = %s', (5,))]
        assert result == QueryResult(rows=[{"id": 5}], row_count=1)
        assert pool.released == ["conn1"]

    def test_oracle_booleans_bound_as_integers(self, ora):
        driver = FakeDriver()
        _run(Runner(ora.client, FakePool(), driver), ora("t").where("a", True))
        assert driver.calls == [('select * from "t" where "a" = :1', (1,))]

    def test_async_collaborators(self, pg):
        pool, driver = AsyncPool(), FakeDriver(rows=[{"n": 1}])
        result = _run(Runner(pg.client, pool, driver), pg.raw("select 1 as n"))
        assert result.rows == [{"n": 1}]
        assert pool.released == ["conn1"]

    def test_compiled_query_accepted(self, sq):
        driver = FakeDriver()
        _run(Runner(sq.client, FakePool(), driver), CompiledQuery(sql="select ?", bindings=(1,)))
        assert driver.calls == [("select ?", (1,))]

    def test_post_process_response_gets_context(self):
        db = Quarry({"client": "pg", "post_process_response": lambda result, ctx: (result.rows, ctx)})
        runner = Runner(db.client, FakePool(), FakeDriver(rows=[{"a": 1}]))
        assert _run(runner, db("t").query_context("ctx")) == ([{"a": 1}], "ctx")

    def test_explicit_context_wins(self):
        db = Quarry({"client": "pg", "post_process_response": lambda result, ctx: ctx})
        runner = Runner(db.client, FakePool(), FakeDriver())
        assert _run(runner, db("t").query_context("builder"), query_context="explicit") == "explicit"

    def test_run_all_checks_out_per_query(self, pg):
        pool = FakePool()
        runner = Runner(pg.client, pool, FakeDriver())
        results = asyncio.run(runner.run_all([pg("a"), pg("b")]))
        assert len(results) == 2
        assert pool.released == ["conn1", "conn2"]


class TestSchemaExecution:
    def test_catalog_check_output(self, pg):
        found = _run(Runner(pg.client, FakePool(), FakeDriver(rows=[{"table_name": "users"}])), pg.schema.has_table("users"))
        missing = _run(Runner(pg.client, FakePool(), FakeDriver()), pg.schema.has_table("users"))
        assert found == [True]
        assert missing == [False]

    def test_statements_share_one_connection(self, pg):
        pool, driver = FakePool(), FakeDriver()
        schema = pg.schema.create_table("users", lambda t: t.string("email").unique())
        results = _run(Runner(pg.client, pool, driver), schema)
        assert len(results) == 2
        assert len(driver.calls) == 2
        assert pool.acquired == 1

    def test_sqlite_rebuild_runs_follow_ups(self, sq):
        rows = [{"type": "table", "sql": "CREATE TABLE `users` (`id` integer, `email` varchar(255))"}]

        class CatalogDriver(FakeDriver):
            def execute(self, connection, sql, bindings):
                self.calls.append((sql, tuple(bindings)))
                if sql.startswith("SELECT type, sql FROM sqlite_master"):
                    return QueryResult(rows=rows)
                return QueryResult()

        driver = CatalogDriver()
        _run(Runner(sq.client, FakePool(), driver), sq.schema.table("users", lambda t: t.drop_nullable("email")))
        executed = [sql for sql, _ in driver.calls]
        assert len(executed) == 7
        assert executed[1] == "begin"
        assert executed[2] == "create table `_quarry_tmp_users` (`id` integer, `email` varchar(255) not null)"
        assert executed[-2] == "alter table `_quarry_tmp_users` rename to `users`"
        assert executed[-1] == "commit"


    def test_failed_rebuild_rolls_back(self, sq):
        rows = [{"type": "table", "sql": "CREATE TABLE `users` (`id` integer, `email` varchar(255))"}]

        def fail_on(sql, bindings):
            return sql.startswith("insert into `_quarry_tmp_users`")

        class CatalogDriver(FailingDriver):
            def execute(self, connection, sql, bindings):
                if sql.startswith("SELECT type, sql FROM sqlite_master"):
                    self.calls.append((sql, tuple(bindings)))
                    return QueryResult(rows=rows)
                return super().execute(connection, sql, bindings)

        driver = CatalogDriver(fail_on)
        with pytest.raises(ExecutionError):
            _run(Runner(sq.client, FakePool(), driver), sq.schema.table("users", lambda t: t.drop_nullable("email")))
        executed = [sql for sql, _ in driver.calls]
        assert executed[1] == "begin"
        assert executed[-1] == "rollback"
        assert "commit" not in executed
        assert not any(sql.startswith("drop table") for sql in executed)


class TestErrors:
    def test_driver_error_is_annotated(self, pg):
        pool = FakePool()
        runner = Runner(pg.client, pool, FakeDriver(error=RuntimeError("boom")))
        with capture_logs() as logs, pytest.raises(ExecutionError) as exc:
            _run(runner, pg("t").where("a", 1))
        assert str(exc.value) == 'select * from "t" where "a" = 1 - boom'
        assert exc.value.sql == 'select * from "t" where "a" = %s'
        assert exc.value.bindings == [1]
        assert isinstance(exc.value.__cause__, RuntimeError)
        assert pool.released == ["conn1"]
        assert any(log["event"] == "query.failed" and log["log_level"] == "error" for log in logs)

    def test_quarry_errors_pass_through(self, pg):
        runner = Runner(pg.client, FakePool(), FakeDriver(error=ValidationError("bad")))
        with pytest.raises(ValidationError):
            _run(runner, pg("t"))

    def test_failed_validation_releases(self, pg):
        pool = FakePool(valid=False)
        with pytest.raises(ExecutionError) as exc:
            _run(Runner(pg.client, pool, FakeDriver()), pg("t"))
        assert str(exc.value) == "Acquired connection failed validation"
        assert pool.released == ["conn1"]

    def test_acquire_timeout(self):
        db = Quarry({"client": "pg", "acquire_connection_timeout": 10})
        with capture_logs() as logs, pytest.raises(QuarryTimeoutError) as exc:
            _run(Runner(db.client, StuckPool(), FakeDriver()), db("t"))
        assert str(exc.value).startswith("Timeout acquiring a connection. The pool is probably full.")
        assert [log["event"] for log in logs] == ["pool.acquire.timeout"]


class TestTimeouts:
    def test_timeout_cancels(self, pg):
        driver = SlowDriver()
        with pytest.raises(QuarryTimeoutError) as exc:
            _run(Runner(pg.client, FakePool(), driver), pg("t").timeout(10, cancel=True))
        assert str(exc.value) == "Defined query timeout of 10ms exceeded when running query."
        assert exc.value.sql == 'select * from "t"'
        assert driver.cancelled == ["conn1"]

    def test_timeout_without_cancel(self, pg):
        driver = SlowDriver()
        with pytest.raises(QuarryTimeoutError):
            _run(Runner(pg.client, FakePool(), driver), pg("t").timeout(10))
        assert driver.cancelled == []

    def test_cancel_needs_dialect_support(self, rs):
        query = CompiledQuery(sql="select 1", timeout=10, cancel_on_timeout=True)
        with pytest.raises(CapabilityError):
            _run(Runner(rs.client, FakePool(), SlowDriver()), query)

    def test_cancel_needs_driver_support(self, pg):
        class NoCancelDriver:
            async def execute(self, connection, sql, bindings):
                await asyncio.sleep(5)

        query = CompiledQuery(sql="select 1", timeout=10, cancel_on_timeout=True)
        with pytest.raises(ExecutionError) as exc:
            _run(Runner(pg.client, FakePool(), NoCancelDriver()), query)
        assert str(exc.value) == "The driver does not implement cancel(connection)"

    def test_builder_rejects_cancel_on_redshift(self, rs):
        with pytest.raises(CapabilityError):
            rs("t").timeout(10, cancel=True)


    def test_blocking_driver_times_out(self, pg):
        started = time.monotonic()
        with pytest.raises(QuarryTimeoutError):
            _run(Runner(pg.client, FakePool(), SleepyDriver()), pg("t").timeout(50))
        assert time.monotonic() - started < 5

    def test_blocking_driver_is_cancelled(self, pg):
        driver = SleepyDriver()
        with pytest.raises(QuarryTimeoutError):
            _run(Runner(pg.client, FakePool(), driver), pg("t").timeout(50, cancel=True))
        assert driver.cancelled == ["conn1"]


class TestLogging:
    def test_query_events(self, pg):
        with capture_logs() as logs:
            _run(Runner(pg.client, FakePool(), FakeDriver(rows=[{"a": 1}])), pg("t").where("a", 1))
        assert [log["event"] for log in logs] == ["query.executing", "query.completed"]
        executing = logs[0]
        assert executing["log_level"] == "debug"
        assert executing["dialect"] == "postgres"
        assert executing["method"] == "select"
        assert executing["bindings"] == [1]
        assert logs[1]["row_count"] == 1

    def test_debug_logs_native_query(self):
        db = Quarry({"client": "pg", "debug": True})
        with capture_logs() as logs:
            db("t").where("a", 1).to_native()
        assert logs == [
            {
                "event": "query.native",
                "log_level": "debug",
                "dialect": "postgres",
                "method": "select",
                "sql": 'select * from "t" where "a" = %s',
                "bindings": [1],
            }
        ]


class TestBatchRun:
    def test_results_are_flattened(self, pg):
        driver = FakeDriver(rows=[{"id": 1}])
        batch = pg.batch_insert("t", [{"a": i} for i in range(5)], chunk_size=2).returning("id")
        results = asyncio.run(batch.run(Runner(pg.client, FakePool(), driver)))
        assert len(driver.calls) == 5
        assert results == [{"id": 1}, {"id": 1}, {"id": 1}]
        assert driver.calls[-2] == ('insert into "t" ("a") values (%s) returning "id"', (4,))

    def test_logs_batch_shape(self, pg):
        batch = pg.batch_insert("t", [{"a": 1}, {"a": 2}], chunk_size=1)
        with capture_logs() as logs:
            asyncio.run(batch.run(Runner(pg.client, FakePool(), FakeDriver())))
        batch_log = next(log for log in logs if log["event"] == "batch.insert")
        assert (batch_log["rows"], batch_log["chunks"], batch_log["chunk_size"]) == (2, 2, 1)

    def test_failing_chunk_rolls_back_earlier_chunks(self, pg):
        driver = FailingDriver(lambda sql, bindings: 2 in bindings)
        pool = FakePool()
        batch = pg.batch_insert("t", [{"a": i} for i in range(4)], chunk_size=2)
        with pytest.raises(ExecutionError):
            asyncio.run(batch.run(Runner(pg.client, pool, driver)))
        assert [sql for sql, _ in driver.calls] == [
            "begin",
            'insert into "t" ("a") values (%s), (%s)',
            'insert into "t" ("a") values (%s), (%s)',
            "rollback",
        ]
        assert pool.acquired == 1
        assert pool.released == ["conn1"]

    def test_empty_batch_skips_the_transaction(self, pg):
        driver = FakeDriver()
        assert asyncio.run(pg.batch_insert("t", []).run(Runner(pg.client, FakePool(), driver))) == []
        assert driver.calls == []


class TestTransactions:
    @staticmethod
    async def _transfer(runner, db):
        async with runner.transaction() as trx:
            await trx.run(db("accounts").insert({"id": 1}))
            await trx.run(db("accounts").where("id", 1).update({"balance": 10}))

    def test_commits_on_one_connection(self, pg):
        pool, driver = FakePool(), FakeDriver()
        asyncio.run(self._transfer(Runner(pg.client, pool, driver), pg))
        assert [sql for sql, _ in driver.calls] == [
            "begin",
            'insert into "accounts" ("id") values (%s)',
            'update "accounts" set "balance" = %s where "id" = %s',
            "commit",
        ]
        assert pool.acquired == 1
        assert pool.released == ["conn1"]

    def test_driver_error_rolls_back(self, pg):
        pool = FakePool()
        driver = FailingDriver(lambda sql, bindings: sql.startswith("update"))
        with capture_logs() as logs, pytest.raises(ExecutionError):
            asyncio.run(self._transfer(Runner(pg.client, pool, driver), pg))
        executed = [sql for sql, _ in driver.calls]
        assert executed[-1] == "rollback"
        assert "commit" not in executed
        assert pool.released == ["conn1"]
        assert any(log["event"] == "transaction.rollback" and log["log_level"] == "warning" for log in logs)

    def test_application_error_rolls_back(self, pg):
        driver = FakeDriver()

        async def work(runner):
            async with runner.transaction() as trx:
                await trx.run(pg("t").insert({"a": 1}))
                raise LookupError("stop")

        with pytest.raises(LookupError):
            asyncio.run(work(Runner(pg.client, FakePool(), driver)))
        assert [sql for sql, _ in driver.calls][-1] == "rollback"

    @pytest.mark.parametrize(
        ("fixture", "expected"),
        [
            ("ms", ["begin transaction", "select 1", "commit"]),
            ("ora", ["select 1", "commit"]),
            ("sq", ["begin", "select 1", "commit"]),
        ],
    )
    def test_dialect_begin_statement(self, request, fixture, expected):
        db = request.getfixturevalue(fixture)
        driver = FakeDriver()

        async def work(runner):
            async with runner.transaction() as trx:
                await trx.run(db.raw("select 1"))

        asyncio.run(work(Runner(db.client, FakePool(), driver)))
        assert [sql for sql, _ in driver.calls] == expected

    def test_driver_transaction_methods_take_over(self, pg):
        class TransactionalDriver(FakeDriver):
            def __init__(self) -> None:
                super().__init__()
                self.events: list[tuple[str, str]] = []

            def begin(self, connection):
                self.events.append(("begin", connection))

            def commit(self, connection):
                self.events.append(("commit", connection))

            def rollback(self, connection):
                self.events.append(("rollback", connection))

        driver = TransactionalDriver()
        asyncio.run(self._transfer(Runner(pg.client, FakePool(), driver), pg))
        assert driver.events == [("begin", "conn1"), ("commit", "conn1")]
        assert len(driver.calls) == 2
