"""Placeholder/binding parity and UNDEFINED detection across dialects."""

from __future__ import annotations

import re

import pytest

from quarry.errors import BindingError
from quarry.helpers import UNDEFINED, contains_undefined, get_undefined_indices

_PLACEHOLDER = re.compile(r"(?<!\\)\?")


def _assert_parity(compiled):
    assert len(_PLACEHOLDER.findall(compiled.sql)) == len(compiled.bindings), compiled.sql


def _queries(db):
    yield db("users").where("a", 1).or_where(lambda q: q.where("b", 2).where_in("c", [3, 4]))
    yield db("users").join("o", lambda j: j.on("o.uid", "users.id").on_val("o.kind", "x")).where("d", 5)
    yield db("users").where_in("id", db("o").select("uid").where("t", ">", 1)).limit(5).offset(10)
    yield db("users").select("id", db("o").count().where("uid", 9).as_("n")).where_between("age", [1, 2])
    yield db("users").insert([{"a": 1, "b": 2}, {"a": 3, "b": 4}])
    yield db("users").where("id", 7).update({"a": 1}).increment("n", 2)
    yield db("users").where_raw("?? = ? or ?? = ?", ["a", 1, "b", 2]).group_by("a").having("a", ">", 3)
    yield db("users").where_exists(lambda q: q.from_("o").where("x", 1)).union(db("b").where("y", 2))


def test_parity_every_dialect(any_db):
    for builder in _queries(any_db):
        _assert_parity(builder.to_sql())


def test_limit_binding_precedes_where_on_mssql(ms):
    compiled = ms("t").where("a", 1).limit(2).to_sql()
    _assert_parity(compiled)
    assert compiled.bindings == (2, 1)


def test_native_placeholder_count_matches(pg, ora):
    for db, token in ((pg, "%s"), (ora, ":")):
        native = db("t").where("a", 1).where_in("b", [2, 3]).to_native()
        assert native.sql.count(token) == 3


@pytest.mark.parametrize(
    "build",
    [
        lambda db: db("t").where("a", UNDEFINED),
        lambda db: db("t").where_in("a", [1, UNDEFINED]),
        lambda db: db("t").insert({"a": UNDEFINED}),
        lambda db: db("t").update({"a": UNDEFINED}),
        lambda db: db("t").where_between("a", [UNDEFINED, 2]),
        lambda db: db("t").insert({"a": {"x": UNDEFINED}}),
        lambda db: db("t").update({"a": [1, UNDEFINED]}),
        lambda db: db("t").insert([{"a": 1}, {"a": [UNDEFINED]}]),
    ],
)
def test_undefined_is_rejected(pg, build):
    with pytest.raises(BindingError) as exc:
        build(pg).to_sql()
    assert exc.value.keys == ["a"]


def test_undefined_in_callback_group(pg):
    with pytest.raises(BindingError) as exc:
        pg("t").where(lambda q: q.where("inner", UNDEFINED)).to_sql()
    assert "inner" in exc.value.keys


def test_none_is_not_undefined(pg):
    compiled = pg("t").insert({"a": None}).to_sql()
    assert compiled.bindings == (None,)


def test_undefined_helpers():
    assert contains_undefined([1, {"a": UNDEFINED}])
    assert not contains_undefined([1, None])
    assert get_undefined_indices([1, UNDEFINED, UNDEFINED]) == [1, 2]
    assert get_undefined_indices({"x": 1, "y": UNDEFINED}) == ["y"]
    assert not UNDEFINED


class TestFormatQuery:
    def test_inlines_in_order(self, pg):
        assert pg.client.format_query("a = ? and b = ?", (1, "x")) == "a = 1 and b = 'x'"

    def test_escaped_placeholder(self, pg):
        assert pg.client.format_query('"t" \\? ?', ("k",)) == "\"t\" ? 'k'"

    def test_extra_placeholders_kept(self, pg):
        assert pg.client.format_query("? ?", (1,)) == "1 ?"
