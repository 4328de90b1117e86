"""Unit tests for QueryBuilder compilation (Postgres unless stated)."""

from __future__ import annotations

import re

import pytest

from quarry import Quarry, QueryBuilder
from quarry.errors import BindingError, CompilationError, ValidationError
from quarry.helpers import UNDEFINED

_PLACEHOLDER = re.compile(r"(?<!\\)\?")


def _placeholders(sql: str) -> int:
    return len(_PLACEHOLDER.findall(sql))


# ---------------------------------------------------------------------------
# Select and projection
# ---------------------------------------------------------------------------


def test_simple_select(pg):
    r = pg("users").select("*").where("id", 5).to_sql()
    assert r.sql == 'select * from "users" where "id" = ?'
    assert r.bindings == (5,)
    assert r.method == "select"
    assert r.dialect == "postgres"


def test_select_defaults_to_star(pg):
    assert pg("users").to_sql().sql == 'select * from "users"'


def test_select_columns_and_aliases(pg):
    r = pg("users").select("id", "name as n", "u.email AS mail").to_sql()
    assert r.sql == 'select "id", "name" as "n", "u"."email" as "mail" from "users"'


def test_select_list_argument_equals_varargs(pg):
    assert pg("t").select(["a", "b"]).to_sql() == pg("t").select("a", "b").to_sql()


def test_select_mapping_alias(pg):
    r = pg("users").select({"n": "name"}).to_sql()
    assert r.sql == 'select "name" as "n" from "users"'


def test_table_alias_and_star(pg):
    r = pg("users as u").select("u.*").to_sql()
    assert r.sql == 'select "u".* from "users" as "u"'


def test_with_schema(pg):
    r = pg("users").with_schema("app").to_sql()
    assert r.sql == 'select * from "app"."users"'


def test_distinct(pg):
    r = pg("users").distinct("email").to_sql()
    assert r.sql == 'select distinct "email" from "users"'


def test_distinct_on(pg):
    r = pg("users").distinct_on("email").select("id").to_sql()
    assert r.sql == 'select distinct on ("email") "id" from "users"'


def test_subquery_as_column(pg):
    r = pg("users").select("id", pg("orders").count().as_("n")).to_sql()
    assert r.sql == 'select "id", (select count(*) from "orders") as "n" from "users"'


def test_subquery_as_table(pg):
    inner = pg("users").where("active", True).as_("u")
    r = pg.query_builder().from_(inner).to_sql()
    assert r.sql == 'select * from (select * from "users" where "active" = ?) as "u"'
    assert r.bindings == (True,)


# ---------------------------------------------------------------------------
# Where
# ---------------------------------------------------------------------------


class TestWhere:
    def test_and_or(self, pg):
        r = pg("t").where("a", 1).or_where("b", ">", 2).to_sql()
        assert r.sql == 'select * from "t" where "a" = ? or "b" > ?'
        assert r.bindings == (1, 2)

    def test_where_not(self, pg):
        r = pg("t").where_not("a", 1).to_sql()
        assert r.sql == 'select * from "t" where not "a" = ?'

    def test_none_value_is_null(self, pg):
        r = pg("t").where("deleted_at", None).to_sql()
        assert r.sql == 'select * from "t" where "deleted_at" is null'
        assert r.bindings == ()

    def test_not_equal_none_is_not_null(self, pg):
        r = pg("t").where("a", "!=", None).to_sql()
        assert r.sql == 'select * from "t" where "a" is not null'

    def test_where_null_helpers(self, pg):
        r = pg("t").where_null("a").or_where_not_null("b").to_sql()
        assert r.sql == 'select * from "t" where "a" is null or "b" is not null'

    def test_mapping(self, pg):
        r = pg("t").where({"a": 1, "b": "x"}).to_sql()
        assert r.sql == 'select * from "t" where "a" = ? and "b" = ?'
        assert r.bindings == (1, "x")

    def test_or_mapping_is_grouped(self, pg):
        r = pg("t").where("x", 1).or_where({"a": 1, "b": 2}).to_sql()
        assert r.sql == 'select * from "t" where "x" = ? or ("a" = ? and "b" = ?)'
        assert r.bindings == (1, 1, 2)

    def test_callback_group(self, pg):
        r = pg("t").where(lambda q: q.where("a", 1).or_where("b", 2)).where("c", 3).to_sql()
        assert r.sql == 'select * from "t" where ("a" = ? or "b" = ?) and "c" = ?'
        assert r.bindings == (1, 2, 3)

    def test_boolean_literal(self, pg):
        assert pg("t").where(True).to_sql().sql == 'select * from "t" where 1 = 1'
        assert pg("t").where(False).to_sql().sql == 'select * from "t" where 1 = 0'

    def test_invalid_single_argument(self, pg):
        with pytest.raises(ValidationError) as exc:
            pg("t").where("a")
        assert exc.value.code == "INVALID_WHERE"

    def test_where_column(self, pg):
        r = pg("t").where_column("a", "b").or_where_column("c", ">", "d").to_sql()
        assert r.sql == 'select * from "t" where "a" = "b" or "c" > "d"'
        assert r.bindings == ()

    def test_between(self, pg):
        r = pg("t").where_between("age", [18, 65]).or_where_not_between("age", (70, 80)).to_sql()
        assert r.sql == 'select * from "t" where "age" between ? and ? or "age" not between ? and ?'
        assert r.bindings == (18, 65, 70, 80)

    def test_between_needs_two_values(self, pg):
        with pytest.raises(ValidationError) as exc:
            pg("t").where_between("age", [1])
        assert exc.value.code == "INVALID_BETWEEN"

    def test_operator_in_via_where(self, pg):
        r = pg("t").where("id", "in", [1, 2]).to_sql()
        assert r.sql == 'select * from "t" where "id" in (?, ?)'

    def test_like(self, pg):
        r = pg("t").where_like("name", "a%").to_sql()
        assert r.sql == 'select * from "t" where "name" like ?'
        assert r.bindings == ("a%",)

    def test_ilike(self, pg):
        assert pg("t").where_ilike("name", "a%").to_sql().sql == 'select * from "t" where "name" ilike ?'

    def test_exists(self, pg):
        r = pg("users").where_exists(
            lambda q: q.select("*").from_("orders").where_column("orders.user_id", "users.id")
        ).to_sql()
        assert r.sql == (
            'select * from "users" where exists '
            '(select * from "orders" where "orders"."user_id" = "users"."id")'
        )

    def test_where_raw(self, pg):
        r = pg("t").where_raw("?? > ?", ["age", 18]).to_sql()
        assert r.sql == 'select * from "t" where "age" > ?'
        assert r.bindings == (18,)


class TestWhereIn:
    def test_list(self, pg):
        r = pg("t").where_in("id", [1, 2, 3]).to_sql()
        assert r.sql == 'select * from "t" where "id" in (?, ?, ?)'
        assert r.bindings == (1, 2, 3)

    def test_empty_list(self, pg):
        assert pg("t").where_in("id", []).to_sql().sql == 'select * from "t" where 1 = 0'
        assert pg("t").where_not_in("id", []).to_sql().sql == 'select * from "t" where 1 = 1'

    def test_multi_column(self, pg):
        r = pg("t").where_in(["a", "b"], [[1, 2], [3, 4]]).to_sql()
        assert r.sql == 'select * from "t" where ("a", "b") in ((?, ?), (?, ?))'
        assert r.bindings == (1, 2, 3, 4)

    def test_builder_subquery(self, pg):
        sub = pg("orders").select("user_id").where("total", ">", 100)
        r = pg("users").where_in("id", sub).to_sql()
        assert r.sql == 'select * from "users" where "id" in (select "user_id" from "orders" where "total" > ?)'
        assert r.bindings == (100,)

    def test_callback_subquery(self, pg):
        r = pg("users").where_in("id", lambda q: q.select("user_id").from_("orders")).to_sql()
        assert r.sql == 'select * from "users" where "id" in (select "user_id" from "orders")'

    def test_binding_order_with_subquery(self, pg):
        r = (
            pg("users")
            .where("a", 1)
            .where_in("id", lambda q: q.select("uid").from_("o").where("b", 2))
            .where("c", 3)
            .to_sql()
        )
        assert r.bindings == (1, 2, 3)
        assert _placeholders(r.sql) == 3


# ---------------------------------------------------------------------------
# Joins
# ---------------------------------------------------------------------------


class TestJoins:
    def test_inner_join(self, pg):
        r = pg("users").join("orders", "users.id", "orders.user_id").select("users.id").to_sql()
        assert r.sql == (
            'select "users"."id" from "users" inner join "orders" on "users"."id" = "orders"."user_id"'
        )

    def test_left_join_with_operator(self, pg):
        r = pg("users").left_join("orders", "users.id", "=", "orders.user_id").to_sql()
        assert r.sql == 'select * from "users" left join "orders" on "users"."id" = "orders"."user_id"'

    def test_callback_join_binds_values(self, pg):
        r = (
            pg("users")
            .join("accounts", lambda j: j.on("accounts.id", "users.account_id").or_on_val("accounts.kind", "admin"))
            .where("users.id", 5)
            .to_sql()
        )
        assert r.sql == (
            'select * from "users" inner join "accounts" on "accounts"."id" = "users"."account_id" '
            'or "accounts"."kind" = ? where "users"."id" = ?'
        )
        assert r.bindings == ("admin", 5)

    def test_using(self, pg):
        r = pg("a").join("b", lambda j: j.using("id")).to_sql()
        assert r.sql == 'select * from "a" inner join "b" using ("id")'

    def test_cross_join(self, pg):
        assert pg("a").cross_join("b").to_sql().sql == 'select * from "a" cross join "b"'

    def test_raw_join(self, pg):
        r = pg("a").join(pg.raw("natural join ??", ["b"])).to_sql()
        assert r.sql == 'select * from "a" natural join "b"'


# ---------------------------------------------------------------------------
# Grouping, ordering, aggregates
# ---------------------------------------------------------------------------


def test_group_having_order(pg):
    r = (
        pg("orders")
        .select("user_id")
        .sum("total as spent")
        .group_by("user_id")
        .having("spent", ">", 100)
        .order_by("spent", "desc")
        .to_sql()
    )
    assert r.sql == (
        'select "user_id", sum("total") as "spent" from "orders" '
        'group by "user_id" having "spent" > ? order by "spent" desc'
    )
    assert r.bindings == (100,)


def test_count_forms(pg):
    assert pg("users").count().to_sql().sql == 'select count(*) from "users"'
    assert pg("users").count("id as c").to_sql().sql == 'select count("id") as "c" from "users"'
    assert pg("users").count({"n": "id"}).to_sql().sql == 'select count("id") as "n" from "users"'
    assert pg("users").count_distinct("a", "b").to_sql().sql == 'select count(distinct "a", "b") from "users"'


def test_order_direction_is_sanitized(pg):
    assert pg("t").order_by("c", "drop table").to_sql().sql == 'select * from "t" order by "c" asc'


def test_order_nulls_native(pg):
    r = pg("t").order_by("c", "asc", nulls="first").to_sql()
    assert r.sql == 'select * from "t" order by "c" asc nulls first'


def test_order_nulls_emulated(my):
    r = my("t").order_by("c", "desc", nulls="last").to_sql()
    assert r.sql == "select * from `t` order by (`c` is null), `c` desc"


def test_order_by_list_of_dicts(pg):
    r = pg("t").order_by([{"column": "a", "order": "desc"}, "b"]).to_sql()
    assert r.sql == 'select * from "t" order by "a" desc, "b" asc'


def test_order_by_raw(pg):
    r = pg("t").order_by_raw("field(??, ?)", ["c", 1]).to_sql()
    assert r.sql == 'select * from "t" order by field("c", ?)'
    assert r.bindings == (1,)


def test_invalid_nulls(pg):
    with pytest.raises(ValidationError):
        pg("t").order_by("c", nulls="middle")


class TestAnalytic:
    def test_row_number_with_partition(self, pg):
        r = pg("emp").select("name").row_number("rn", "salary", "dept").to_sql()
        assert r.sql == (
            'select "name", row_number() over (partition by "dept" order by "salary") as "rn" from "emp"'
        )

    def test_callback(self, pg):
        r = pg("emp").rank("r", lambda a: a.order_by("salary", "desc").partition_by("dept")).to_sql()
        assert r.sql == 'select rank() over (partition by "dept" order by "salary" desc) as "r" from "emp"'

    def test_requires_order(self, pg):
        with pytest.raises(ValidationError) as exc:
            pg("emp").dense_rank("r")
        assert exc.value.code == "INVALID_ANALYTIC"


# ---------------------------------------------------------------------------
# Set operations and CTEs
# ---------------------------------------------------------------------------


def test_union(pg):
    r = pg("a").select("id").union(pg("b").select("id")).to_sql()
    assert r.sql == 'select "id" from "a" union select "id" from "b"'


def test_union_all_wrapped_callback(pg):
    r = pg("a").union_all(lambda q: q.from_("b").where("x", 1), wrap=True).to_sql()
    assert r.sql == 'select * from "a" union all (select * from "b" where "x" = ?)'
    assert r.bindings == (1,)


def test_cte(pg):
    r = (
        pg.query_builder()
        .with_("recent", pg("orders").where("total", ">", 10))
        .select("*")
        .from_("recent")
        .to_sql()
    )
    assert r.sql == 'with "recent" as (select * from "orders" where "total" > ?) select * from "recent"'
    assert r.bindings == (10,)


def test_recursive_cte_with_columns(pg):
    r = pg.query_builder().with_recursive("t", pg.raw("select 1"), ["n"]).from_("t").to_sql()
    assert r.sql == 'with recursive "t"("n") as (select 1) select * from "t"'


def test_materialized_cte(pg):
    r = pg.query_builder().with_materialized("c", pg("t")).from_("c").to_sql()
    assert r.sql == 'with "c" as materialized (select * from "t") select * from "c"'


def test_cte_rejects_plain_values(pg):
    with pytest.raises(ValidationError) as exc:
        pg.query_builder().with_("c", "select 1")
    assert exc.value.code == "INVALID_WITH"


# ---------------------------------------------------------------------------
# Paging
# ---------------------------------------------------------------------------


def test_limit_offset(pg):
    r = pg("t").limit(10).offset(5).to_sql()
    assert r.sql == 'select * from "t" limit ? offset ?'
    assert r.bindings == (10, 5)


def test_first(pg):
    r = pg("t").first("id").to_sql()
    assert r.sql == 'select "id" from "t" limit ?'
    assert r.bindings == (1,)
    assert r.method == "first"


@pytest.mark.parametrize("value", [-1, True, "10", 1.5])
def test_invalid_limit(pg, value):
    with pytest.raises(ValidationError) as exc:
        pg("t").limit(value)
    assert exc.value.code == "INVALID_PAGING"


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestInsert:
    def test_single_row(self, pg):
        r = pg("users").insert({"name": "a", "age": 3}).to_sql()
        assert r.sql == 'insert into "users" ("name", "age") values (?, ?)'
        assert r.bindings == ("a", 3)
        assert r.method == "insert"

    def test_heterogeneous_rows_use_default(self, pg):
        r = pg("t").insert([{"a": 1}, {"a": 2, "b": 3}]).to_sql()
        assert r.sql == 'insert into "t" ("a", "b") values (?, DEFAULT), (?, ?)'
        assert r.bindings == (1, 2, 3)

    def test_empty_row(self, pg):
        assert pg("t").insert({}).to_sql().sql == 'insert into "t" default values'

    def test_empty_list_compiles_to_nothing(self, pg):
        assert pg("t").insert([]).to_sql().sql == ""

    def test_json_values(self, pg):
        r = pg("t").insert({"data": {"a": 1}, "tags": ["x"]}).to_sql()
        assert r.bindings == ('{"a": 1}', '["x"]')

    def test_from_select(self, pg):
        r = pg("archive").insert(pg("users").select("id").where("old", True)).to_sql()
        assert r.sql == 'insert into "archive" select "id" from "users" where "old" = ?'
        assert r.bindings == (True,)

    def test_returning(self, pg):
        r = pg("t").insert({"a": 1}, returning="id").to_sql()
        assert r.sql == 'insert into "t" ("a") values (?) returning "id"'
        assert r.returning == ("id",)

    def test_rejects_non_mapping(self, pg):
        with pytest.raises(ValidationError) as exc:
            pg("t").insert(5).to_sql()
        assert exc.value.code == "INVALID_INSERT"

    def test_undefined_value(self, pg):
        with pytest.raises(BindingError) as exc:
            pg("t").insert({"a": UNDEFINED, "b": 1}).to_sql()
        assert exc.value.keys == ["a"]
        assert "Undefined column(s): [a]" in str(exc.value)


class TestOnConflict:
    def test_ignore(self, pg):
        r = pg("t").insert({"id": 1, "n": "x"}).on_conflict("id").ignore().to_sql()
        assert r.sql == 'insert into "t" ("id", "n") values (?, ?) on conflict ("id") do nothing'

    def test_merge_all(self, pg):
        r = pg("t").insert({"id": 1, "n": "x"}).on_conflict("id").merge().to_sql()
        assert r.sql == (
            'insert into "t" ("id", "n") values (?, ?) on conflict ("id") '
            'do update set "id" = excluded."id", "n" = excluded."n"'
        )

    def test_merge_subset(self, pg):
        r = pg("t").insert({"id": 1, "n": "x"}).on_conflict("id").merge(["n"]).to_sql()
        assert r.sql.endswith('do update set "n" = excluded."n"')

    def test_merge_values(self, pg):
        r = pg("t").insert({"id": 1, "n": "x"}).on_conflict("id").merge({"n": "y"}).to_sql()
        assert r.sql.endswith('on conflict ("id") do update set "n" = ?')
        assert r.bindings == (1, "x", "y")


class TestUpdate:
    def test_mapping(self, pg):
        r = pg("users").where("id", 1).update({"name": "x", "age": 2}).to_sql()
        assert r.sql == 'update "users" set "name" = ?, "age" = ? where "id" = ?'
        assert r.bindings == ("x", 2, 1)
        assert r.method == "update"

    def test_column_value_pair(self, pg):
        r = pg("users").update("name", "x").to_sql()
        assert r.sql == 'update "users" set "name" = ?'

    def test_increment(self, pg):
        r = pg("t").where("id", 1).increment("n", 5).to_sql()
        assert r.sql == 'update "t" set "n" = "n" + ? where "id" = ?'
        assert r.bindings == (5, 1)

    def test_update_and_decrement(self, pg):
        r = pg("t").update({"a": 1}).decrement({"n": 2}).to_sql()
        assert r.sql == 'update "t" set "a" = ?, "n" = "n" - ?'
        assert r.bindings == (1, 2)

    def test_increment_needs_number(self, pg):
        with pytest.raises(ValidationError) as exc:
            pg("t").increment("n", "5")
        assert exc.value.code == "INVALID_AMOUNT"

    def test_empty_update(self, pg):
        with pytest.raises(CompilationError):
            pg("t").update({}).to_sql()

    def test_returning(self, pg):
        r = pg("t").where("id", 1).update({"a": 1}, returning=["id", "a"]).to_sql()
        assert r.sql == 'update "t" set "a" = ? where "id" = ? returning "id", "a"'


def test_delete(pg):
    r = pg("t").where("id", 1).delete().to_sql()
    assert r.sql == 'delete from "t" where "id" = ?'
    assert r.method == "delete"


def test_delete_returning(pg):
    r = pg("t").where("id", 1).delete(returning="id").to_sql()
    assert r.sql == 'delete from "t" where "id" = ? returning "id"'


def test_undefined_in_where(pg):
    with pytest.raises(BindingError) as exc:
        pg("t").where("a", UNDEFINED).to_sql()
    assert exc.value.keys == ["a"]


# ---------------------------------------------------------------------------
# Metadata, housekeeping and output
# ---------------------------------------------------------------------------


def test_comment(pg):
    assert pg("t").comment("hello").to_sql().sql == '/* hello */ select * from "t"'


def test_comment_rejects_terminator(pg):
    with pytest.raises(ValidationError) as exc:
        pg("t").comment("x */ drop table t")
    assert exc.value.code == "INVALID_COMMENT"


def test_timeout_and_options(pg):
    r = pg("t").timeout(100, cancel=True).options({"nest": True}).to_sql()
    assert r.timeout == 100
    assert r.cancel_on_timeout is True
    assert r.options == {"nest": True}


def test_negative_timeout(pg):
    with pytest.raises(ValidationError):
        pg("t").timeout(-1)


def test_compile_is_repeatable(pg):
    builder = pg("t").where("a", 1).where_in("b", lambda q: q.select("c").from_("d").where("e", 2))
    assert builder.to_sql() == builder.to_sql()


def test_clone_is_independent(pg):
    original = pg("t").where("a", 1)
    copy = original.clone().where("b", 2).limit(3)
    assert original.to_sql().sql == 'select * from "t" where "a" = ?'
    assert copy.to_sql().sql == 'select * from "t" where "a" = ? and "b" = ? limit ?'


def test_clear(pg):
    builder = pg("t").select("a").where("a", 1).order_by("a").limit(5)
    builder.clear("select").clear_where().clear("order").clear("limit")
    assert builder.to_sql().sql == 'select * from "t"'


def test_clear_unknown(pg):
    with pytest.raises(ValidationError) as exc:
        pg("t").clear("bogus")
    assert exc.value.code == "INVALID_CLEAR"


def test_to_query_inlines_literals(pg, my):
    assert pg("users").where("name", "O'Brien").to_query() == """select * from "users" where "name" = 'O''Brien'"""
    assert my("users").where("name", "O'Brien").to_query() == "select * from `users` where `name` = 'O\\'Brien'"


def test_str_is_to_query(pg):
    builder = pg("t").where("a", 1)
    assert str(builder) == 'select * from "t" where "a" = 1'


def test_placeholder_parity_complex_query(pg):
    r = (
        pg("users as u")
        .with_("o", pg("orders").where("total", ">", 5))
        .join("o", lambda j: j.on("o.user_id", "u.id").on_val("o.status", "paid"))
        .where({"u.active": True})
        .where_in("u.role", ["a", "b"])
        .where_between("u.age", [1, 2])
        .having("n", ">", 1)
        .limit(10)
        .offset(20)
        .to_sql()
    )
    assert _placeholders(r.sql) == len(r.bindings) == 10
    assert r.bindings == (5, "paid", True, "a", "b", 1, 2, 1, 10, 20)


class TestExtensions:
    def test_registered_method(self, pg):
        def active(builder):
            return builder.where("active", True)

        QueryBuilder.extend("active_only", active)
        try:
            r = pg("users").active_only().to_sql()
            assert r.sql == 'select * from "users" where "active" = ?'
        finally:
            QueryBuilder.unregister("active_only")

    def test_builtin_collision(self):
        with pytest.raises(ValidationError) as exc:
            QueryBuilder.extend("where", lambda builder: builder)
        assert exc.value.code == "EXTENSION_CONFLICT"

    def test_duplicate_registration(self):
        QueryBuilder.extend("twice", lambda builder: builder)
        try:
            with pytest.raises(ValidationError):
                QueryBuilder.extend("twice", lambda builder: builder)
        finally:
            QueryBuilder.unregister("twice")

    def test_unknown_attribute(self, pg):
        with pytest.raises(AttributeError):
            pg("t").not_a_method()


def test_builder_without_dialect_fixture():
    db = Quarry("postgresql")
    assert db("t").where("a", 1).to_sql().sql == 'select * from "t" where "a" = ?'
