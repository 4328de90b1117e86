"""Integration tests: compile → execute against a real SQLite in-memory DB.

Drives the runner with a minimal pool/driver pair over the stdlib
``sqlite3`` module, then repeats a short flow through the SQLAlchemy
collaborators when SQLAlchemy is installed.
"""

from __future__ import annotations

import asyncio
import sqlite3

import pytest

from quarry import Quarry
from quarry.errors import ExecutionError
from quarry.execution import QueryResult, Runner


class SQLitePool:
    """One shared in-memory connection, usable from the runner's worker threads."""

    def __init__(self) -> None:
        self.connection = sqlite3.connect(":memory:", isolation_level=None, check_same_thread=False)
        self.connection.row_factory = sqlite3.Row

    def acquire(self) -> sqlite3.Connection:
        return self.connection

    def release(self, connection: sqlite3.Connection) -> None:
        pass

    def validate(self, connection: sqlite3.Connection) -> bool:
        return True

    def destroy(self) -> None:
        self.connection.close()


class SQLiteDriver:
    def execute(self, connection, sql, bindings):
        cursor = connection.execute(sql, tuple(bindings))
        rows = [dict(row) for row in cursor.fetchall()]
        return QueryResult(rows=rows, row_count=cursor.rowcount)


def _users(t):
    t.increments()
    t.string("email").not_nullable().unique()
    t.integer("age").nullable()


@pytest.fixture()
def db() -> Quarry:
    return Quarry({"client": "sqlite3", "use_null_as_default": True})


@pytest.fixture()
def runner(db):
    pool = SQLitePool()
    runner = Runner(db.client, pool, SQLiteDriver())
    asyncio.run(runner.run(db.schema.create_table("users", _users)))
    yield runner
    pool.destroy()


def _run(runner, query):
    return asyncio.run(runner.run(query))


def test_catalog_checks(db, runner):
    assert _run(runner, db.schema.has_table("users")) == [True]
    assert _run(runner, db.schema.has_table("missing")) == [False]
    assert _run(runner, db.schema.has_column("users", "email")) == [True]
    assert _run(runner, db.schema.has_column("users", "nope")) == [False]


def test_insert_select_update_delete(db, runner):
    _run(runner, db("users").insert([{"email": "a@x", "age": 30}, {"email": "b@x"}]))

    rows = _run(runner, db("users").select("email", "age").order_by("email")).rows
    assert rows == [{"email": "a@x", "age": 30}, {"email": "b@x", "age": None}]

    updated = _run(runner, db("users").where_null("age").update({"age": 18}))
    assert updated.row_count == 1

    adults = _run(runner, db("users").where("age", ">=", 18).count("id as n")).rows
    assert adults == [{"n": 2}]

    deleted = _run(runner, db("users").where("email", "a@x").delete())
    assert deleted.row_count == 1


def test_unique_violation_is_annotated(db, runner):
    _run(runner, db("users").insert({"email": "a@x"}))
    with pytest.raises(ExecutionError) as exc:
        _run(runner, db("users").insert({"email": "a@x"}))
    assert str(exc.value).startswith("insert into `users` (`email`) values ('a@x') - ")
    assert isinstance(exc.value.__cause__, sqlite3.IntegrityError)


def test_rebuild_drops_not_null(db, runner):
    _run(runner, db("users").insert({"email": "a@x", "age": 1}))
    _run(runner, db.schema.table("users", lambda t: t.set_nullable("email")))

    _run(runner, db("users").insert({"email": None, "age": 2}))
    rows = _run(runner, db("users").select("email", "age").order_by("age")).rows
    assert rows == [{"email": "a@x", "age": 1}, {"email": None, "age": 2}]

    # the unique index survives the rebuild
    with pytest.raises(ExecutionError):
        _run(runner, db("users").insert({"email": "a@x"}))


def test_batch_insert(db, runner):
    rows = [{"email": f"u{i}@x", "age": i} for i in range(7)]
    asyncio.run(db.batch_insert("users", rows, chunk_size=3).run(runner))
    count = _run(runner, db("users").count("* as n")).rows
    assert count == [{"n": 7}]


def test_sqlalchemy_collaborators(db):
    pytest.importorskip("sqlalchemy")
    from sqlalchemy.pool import StaticPool

    from quarry.execution import SQLAlchemyDriver, SQLAlchemyPool

    pool = SQLAlchemyPool.from_url(
        "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    runner = Runner(db.client, pool, SQLAlchemyDriver())
    try:
        _run(runner, db.schema.create_table("users", _users))
        _run(runner, db("users").insert([{"email": "a@x", "age": 3}]))
        with pytest.raises(ExecutionError):
            asyncio.run(db.batch_insert("users", [{"email": "b@x"}, {"email": "a@x"}], chunk_size=1).run(runner))
        assert _run(runner, db.schema.has_table("users")) == [True]
        rows = _run(runner, db("users").select("email", "age")).rows
        assert rows == [{"email": "a@x", "age": 3}]
    finally:
        pool.destroy()


def test_failed_batch_leaves_no_rows(db, runner):
    _run(runner, db("users").insert({"email": "taken@x"}))
    rows = [{"email": "u1@x"}, {"email": "u2@x"}, {"email": "taken@x"}]
    with pytest.raises(ExecutionError):
        asyncio.run(db.batch_insert("users", rows, chunk_size=2).run(runner))
    count = _run(runner, db("users").count("* as n")).rows
    assert count == [{"n": 1}]


def test_transaction_commits(db, runner):
    async def work():
        async with runner.transaction() as trx:
            await trx.run(db("users").insert({"email": "a@x", "age": 1}))
            await trx.run(db("users").where("email", "a@x").increment("age", 1))

    asyncio.run(work())
    assert _run(runner, db("users").select("age")).rows == [{"age": 2}]
