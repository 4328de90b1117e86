"""Fluent query builder.

Every public method mutates the builder's :class:`StatementModel` and
returns the builder itself, so calls chain::

    db("users").select("id", "name").where("active", True).order_by("name").limit(10)

Nothing is rendered until :meth:`QueryBuilder.to_sql` hands the model to
the dialect's compiler.  The builder is meant to be assembled by one caller;
it is not safe to mutate concurrently from several threads.

Extensions
----------
User-defined methods are registered on the class, never patched in::

    def active(builder):
        return builder.where("active", True)

    QueryBuilder.extend("active", active)
    db("users").active().to_sql()

Registering a name that collides with a built-in method raises
:class:`~quarry.errors.ValidationError`.
"""
from __future__ import annotations

import functools
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from quarry.errors import ValidationError
from quarry.helpers import NO_ARG, UNDEFINED, normalize_arr
from quarry.query.analytic import Analytic
from quarry.query.joinclause import JoinClause
from quarry.query.model import (
    Aggregate,
    Columns,
    Conflict,
    GroupBy,
    Grouping,
    JsonExtract,
    LockMode,
    OrderBy,
    StatementModel,
    Union,
    WaitMode,
    WhereBasic,
    WhereBetween,
    WhereColumn,
    WhereExists,
    WhereIn,
    WhereJsonPath,
    WhereLike,
    WhereNull,
    WhereRaw,
    WhereWrapped,
    With,
)
from quarry.raw import Raw

if TYPE_CHECKING:
    from quarry.client import Client
    from quarry.query.compiled import CompiledQuery, NativeQuery

_CLEARABLE = {
    "select": Grouping.COLUMNS,
    "columns": Grouping.COLUMNS,
    "where": Grouping.WHERE,
    "order": Grouping.ORDER,
    "having": Grouping.HAVING,
    "group": Grouping.GROUP,
    "union": Grouping.UNION,
    "with": Grouping.WITH,
    "join": Grouping.JOIN,
}


class OnConflictBuilder:
    """Returned by :meth:`QueryBuilder.on_conflict`; finish with ``merge`` or ``ignore``."""

    def __init__(self, builder: QueryBuilder, columns: list[Any]) -> None:
        self._builder = builder
        self._columns = columns

    def ignore(self) -> QueryBuilder:
        self._builder.model.conflict = Conflict(columns=self._columns, ignore=True)
        return self._builder

    def merge(self, updates: Any = None) -> QueryBuilder:
        """Update the conflicting row.

        Args:
            updates: None to merge every inserted column, a list of column
                names to merge a subset, or a mapping of explicit values.
        """
        self._builder.model.conflict = Conflict(
            columns=self._columns, merge=True, merge_values=updates
        )
        return self._builder


class QueryBuilder:
    """Accumulates one query's clauses.

    Args:
        client: The client whose dialect will compile this builder.
    """

    _extensions: ClassVar[dict[str, Callable[..., Any]]] = {}

    def __init__(self, client: Client) -> None:
        self.client = client
        self.model = StatementModel()
        self._options: dict[str, Any] = {}
        self._timeout: int | None = None
        self._cancel_on_timeout = False
        self._query_context: Any = None

    # ------------------------------------------------------------------
    # Extensions
    # ------------------------------------------------------------------

    @classmethod
    def extend(cls, name: str, fn: Callable[..., Any]) -> None:
        """Register ``fn(builder, *args, **kwargs)`` as ``builder.<name>(...)``.

        Raises:
            ValidationError: If ``name`` is a built-in attribute or already
                registered.
        """
        if hasattr(cls, name):
            raise ValidationError(
                f"Can't extend QueryBuilder with existing method ('{name}').",
                code="EXTENSION_CONFLICT",
                details={"name": name},
            )
        if name in cls._extensions:
            raise ValidationError(
                f"QueryBuilder extension '{name}' is already registered.",
                code="EXTENSION_CONFLICT",
                details={"name": name},
            )
        cls._extensions[name] = fn

    @classmethod
    def unregister(cls, name: str) -> None:
        cls._extensions.pop(name, None)

    def __getattr__(self, name: str) -> Any:
        extension = type(self)._extensions.get(name)
        if extension is None:
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")
        return functools.partial(extension, self)

    # ------------------------------------------------------------------
    # Projection and source
    # ------------------------------------------------------------------

    def select(self, *columns: Any) -> QueryBuilder:
        values = normalize_arr(columns)
        if values:
            self.model.add(Grouping.COLUMNS, Columns(values=values))
        return self

    column = select
    columns = select

    def distinct(self, *columns: Any) -> QueryBuilder:
        self.model.add(Grouping.COLUMNS, Columns(values=normalize_arr(columns), distinct=True))
        return self

    def distinct_on(self, *columns: Any) -> QueryBuilder:
        values = normalize_arr(columns)
        if not values:
            raise ValidationError("distinct_on requires at least one column", code="INVALID_COLUMNS")
        self.model.add(Grouping.COLUMNS, Columns(values=values, distinct_on=True))
        return self

    def from_(self, table: Any) -> QueryBuilder:
        self.model.table = table
        return self

    table = from_
    into = from_

    def with_schema(self, schema: str) -> QueryBuilder:
        self.model.schema = schema
        return self

    def as_(self, alias: str) -> QueryBuilder:
        self.model.alias = alias
        return self

    # ------------------------------------------------------------------
    # Common table expressions
    # ------------------------------------------------------------------

    def with_(self, alias: str, query: Any, columns: list[str] | None = None) -> QueryBuilder:
        return self._with(alias, query, columns)

    def with_recursive(self, alias: str, query: Any, columns: list[str] | None = None) -> QueryBuilder:
        return self._with(alias, query, columns, recursive=True)

    def with_materialized(self, alias: str, query: Any, columns: list[str] | None = None) -> QueryBuilder:
        return self._with(alias, query, columns, materialized=True)

    def with_not_materialized(self, alias: str, query: Any, columns: list[str] | None = None) -> QueryBuilder:
        return self._with(alias, query, columns, materialized=False)

    def _with(
        self,
        alias: str,
        query: Any,
        columns: list[str] | None,
        recursive: bool = False,
        materialized: bool | None = None,
    ) -> QueryBuilder:
        if not isinstance(alias, str):
            raise ValidationError("with() first argument must be a string", code="INVALID_ALIAS")
        if not (callable(query) or isinstance(query, (Raw, QueryBuilder))):
            raise ValidationError(
                "with() second argument must be a builder, raw or callback",
                code="INVALID_WITH",
            )
        self.model.add(
            Grouping.WITH,
            With(alias=alias, value=query, columns=columns, recursive=recursive, materialized=materialized),
        )
        return self

    # ------------------------------------------------------------------
    # Joins
    # ------------------------------------------------------------------

    def join(self, table: Any, first: Any = NO_ARG, operator: Any = NO_ARG, second: Any = NO_ARG) -> QueryBuilder:
        return self._join("inner", table, first, operator, second)

    inner_join = join

    def left_join(self, table: Any, first: Any = NO_ARG, operator: Any = NO_ARG, second: Any = NO_ARG) -> QueryBuilder:
        return self._join("left", table, first, operator, second)

    def left_outer_join(self, table: Any, first: Any = NO_ARG, operator: Any = NO_ARG, second: Any = NO_ARG) -> QueryBuilder:
        return self._join("left outer", table, first, operator, second)

    def right_join(self, table: Any, first: Any = NO_ARG, operator: Any = NO_ARG, second: Any = NO_ARG) -> QueryBuilder:
        return self._join("right", table, first, operator, second)

    def right_outer_join(self, table: Any, first: Any = NO_ARG, operator: Any = NO_ARG, second: Any = NO_ARG) -> QueryBuilder:
        return self._join("right outer", table, first, operator, second)

    def full_outer_join(self, table: Any, first: Any = NO_ARG, operator: Any = NO_ARG, second: Any = NO_ARG) -> QueryBuilder:
        return self._join("full outer", table, first, operator, second)

    def cross_join(self, table: Any, first: Any = NO_ARG, operator: Any = NO_ARG, second: Any = NO_ARG) -> QueryBuilder:
        return self._join("cross", table, first, operator, second)

    def _join(self, join_type: str, table: Any, first: Any, operator: Any, second: Any) -> QueryBuilder:
        if isinstance(table, Raw) and first is NO_ARG:
            self.model.add(Grouping.JOIN, table)
            return self
        join = JoinClause(table, join_type, self.model.schema)
        if callable(first) and not isinstance(first, Raw):
            first(join)
        elif first is not NO_ARG:
            join.on(first, operator, second)
        self.model.add(Grouping.JOIN, join)
        return self

    # ------------------------------------------------------------------
    # Where
    # ------------------------------------------------------------------

    def where(self, column: Any, operator: Any = NO_ARG, value: Any = NO_ARG) -> QueryBuilder:
        return self._where(Grouping.WHERE, column, operator, value)

    and_where = where

    def or_where(self, column: Any, operator: Any = NO_ARG, value: Any = NO_ARG) -> QueryBuilder:
        return self._where(Grouping.WHERE, column, operator, value, bool_="or")

    def where_not(self, column: Any, operator: Any = NO_ARG, value: Any = NO_ARG) -> QueryBuilder:
        return self._where(Grouping.WHERE, column, operator, value, not_=True)

    def or_where_not(self, column: Any, operator: Any = NO_ARG, value: Any = NO_ARG) -> QueryBuilder:
        return self._where(Grouping.WHERE, column, operator, value, bool_="or", not_=True)

    def where_column(self, column: Any, operator: Any, other: Any = NO_ARG) -> QueryBuilder:
        if other is NO_ARG:
            operator, other = "=", operator
        self.model.add(Grouping.WHERE, WhereColumn(column=column, operator=operator, value=other))
        return self

    def or_where_column(self, column: Any, operator: Any, other: Any = NO_ARG) -> QueryBuilder:
        if other is NO_ARG:
            operator, other = "=", operator
        self.model.add(Grouping.WHERE, WhereColumn(column=column, operator=operator, value=other, bool_="or"))
        return self

    def where_in(self, column: Any, values: Any) -> QueryBuilder:
        return self._add_in(Grouping.WHERE, column, values)

    def or_where_in(self, column: Any, values: Any) -> QueryBuilder:
        return self._add_in(Grouping.WHERE, column, values, bool_="or")

    def where_not_in(self, column: Any, values: Any) -> QueryBuilder:
        return self._add_in(Grouping.WHERE, column, values, not_=True)

    def or_where_not_in(self, column: Any, values: Any) -> QueryBuilder:
        return self._add_in(Grouping.WHERE, column, values, bool_="or", not_=True)

    def where_null(self, column: Any) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereNull(column=column))
        return self

    def or_where_null(self, column: Any) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereNull(column=column, bool_="or"))
        return self

    def where_not_null(self, column: Any) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereNull(column=column, not_=True))
        return self

    def or_where_not_null(self, column: Any) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereNull(column=column, bool_="or", not_=True))
        return self

    def where_between(self, column: Any, values: Any) -> QueryBuilder:
        return self._add_between(Grouping.WHERE, column, values)

    def or_where_between(self, column: Any, values: Any) -> QueryBuilder:
        return self._add_between(Grouping.WHERE, column, values, bool_="or")

    def where_not_between(self, column: Any, values: Any) -> QueryBuilder:
        return self._add_between(Grouping.WHERE, column, values, not_=True)

    def or_where_not_between(self, column: Any, values: Any) -> QueryBuilder:
        return self._add_between(Grouping.WHERE, column, values, bool_="or", not_=True)

    def where_exists(self, query: Any) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereExists(value=query))
        return self

    def or_where_exists(self, query: Any) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereExists(value=query, bool_="or"))
        return self

    def where_not_exists(self, query: Any) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereExists(value=query, not_=True))
        return self

    def or_where_not_exists(self, query: Any) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereExists(value=query, bool_="or", not_=True))
        return self

    def where_raw(self, sql: Any, bindings: Any = None) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereRaw(value=self._to_raw(sql, bindings)))
        return self

    def or_where_raw(self, sql: Any, bindings: Any = None) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereRaw(value=self._to_raw(sql, bindings), bool_="or"))
        return self

    def where_like(self, column: Any, value: Any) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereLike(column=column, value=value))
        return self

    def or_where_like(self, column: Any, value: Any) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereLike(column=column, value=value, bool_="or"))
        return self

    def where_ilike(self, column: Any, value: Any) -> QueryBuilder:
        self.model.add(Grouping.WHERE, WhereLike(column=column, value=value, case_insensitive=True))
        return self

    def or_where_ilike(self, column: Any, value: Any) -> QueryBuilder:
        self.model.add(
            Grouping.WHERE, WhereLike(column=column, value=value, case_insensitive=True, bool_="or")
        )
        return self

    def where_json_path(self, column: Any, path: str, operator: str, value: Any) -> QueryBuilder:
        self.model.add(
            Grouping.WHERE, WhereJsonPath(column=column, path=path, operator=operator, value=value)
        )
        return self

    def or_where_json_path(self, column: Any, path: str, operator: str, value: Any) -> QueryBuilder:
        self.model.add(
            Grouping.WHERE,
            WhereJsonPath(column=column, path=path, operator=operator, value=value, bool_="or"),
        )
        return self

    def _where(
        self,
        grouping: Grouping,
        column: Any,
        operator: Any,
        value: Any,
        bool_: str = "and",
        not_: bool = False,
    ) -> QueryBuilder:
        if operator is NO_ARG:
            if isinstance(column, bool):
                return self._where(grouping, Raw(self.client).set("1 = 1" if column else "1 = 0"), NO_ARG, NO_ARG, bool_, not_)
            if isinstance(column, Raw):
                self.model.add(grouping, WhereRaw(value=column, bool_=bool_, not_=not_))
                return self
            if isinstance(column, Mapping):
                items = list(column.items())
                if bool_ == "and" and not not_:
                    for key, item in items:
                        self._where(grouping, key, "=", item)
                    return self

                def where_pairs(builder: QueryBuilder) -> None:
                    for key, item in items:
                        builder._where(grouping, key, "=", item)

                self.model.add(grouping, WhereWrapped(value=where_pairs, bool_=bool_, not_=not_))
                return self
            if callable(column) and not isinstance(column, QueryBuilder):
                self.model.add(grouping, WhereWrapped(value=column, bool_=bool_, not_=not_))
                return self
            raise ValidationError(
                "where() with a single argument needs a mapping, callback, raw or boolean",
                code="INVALID_WHERE",
            )

        if value is NO_ARG:
            operator, value = "=", operator
            if value is None:
                self.model.add(grouping, WhereNull(column=column, bool_=bool_, not_=not_))
                return self

        token = str(operator).lower().strip() if isinstance(operator, str) else operator
        if token == "in":
            return self._add_in(grouping, column, value, bool_, not_)
        if token == "not in":
            return self._add_in(grouping, column, value, bool_, not not_)
        if token == "between":
            return self._add_between(grouping, column, value, bool_, not_)
        if token == "not between":
            return self._add_between(grouping, column, value, bool_, not not_)
        if value is None and token in ("is", "=", "is not", "!=", "<>"):
            negate = token in ("is not", "!=", "<>")
            self.model.add(grouping, WhereNull(column=column, bool_=bool_, not_=not_ != negate))
            return self
        self.model.add(
            grouping, WhereBasic(column=column, operator=operator, value=value, bool_=bool_, not_=not_)
        )
        return self

    def _add_in(self, grouping: Grouping, column: Any, values: Any, bool_: str = "and", not_: bool = False) -> QueryBuilder:
        if isinstance(values, (set, frozenset)):
            values = sorted(values, key=repr)
        self.model.add(grouping, WhereIn(column=column, values=values, bool_=bool_, not_=not_))
        return self

    def _add_between(self, grouping: Grouping, column: Any, values: Any, bool_: str = "and", not_: bool = False) -> QueryBuilder:
        if not isinstance(values, (list, tuple)) or len(values) != 2:
            raise ValidationError(
                "You must specify 2 values for the between clause",
                code="INVALID_BETWEEN",
                details={"column": str(column)},
            )
        self.model.add(grouping, WhereBetween(column=column, values=(values[0], values[1]), bool_=bool_, not_=not_))
        return self

    # ------------------------------------------------------------------
    # Group / order / having
    # ------------------------------------------------------------------

    def group_by(self, *columns: Any) -> QueryBuilder:
        values = normalize_arr(columns)
        if len(values) == 1 and isinstance(values[0], Raw):
            self.model.add(Grouping.GROUP, GroupBy(value=values, raw=True))
        else:
            self.model.add(Grouping.GROUP, GroupBy(value=values))
        return self

    def group_by_raw(self, sql: Any, bindings: Any = None) -> QueryBuilder:
        self.model.add(Grouping.GROUP, GroupBy(value=[self._to_raw(sql, bindings)], raw=True))
        return self

    def order_by(self, column: Any, direction: Any = None, nulls: str | None = None) -> QueryBuilder:
        """Order by a column, or a list of columns / ``{"column", "order", "nulls"}`` dicts."""
        if nulls is not None and nulls not in ("first", "last"):
            raise ValidationError("nulls must be 'first' or 'last'", code="INVALID_NULLS")
        if isinstance(column, (list, tuple)):
            for item in column:
                if isinstance(item, Mapping):
                    self.order_by(item["column"], item.get("order"), item.get("nulls"))
                else:
                    self.order_by(item, direction)
            return self
        self.model.add(Grouping.ORDER, OrderBy(value=column, direction=direction, nulls=nulls))
        return self

    def order_by_raw(self, sql: Any, bindings: Any = None) -> QueryBuilder:
        self.model.add(Grouping.ORDER, OrderBy(value=self._to_raw(sql, bindings), raw=True))
        return self

    def having(self, column: Any, operator: Any = NO_ARG, value: Any = NO_ARG) -> QueryBuilder:
        return self._where(Grouping.HAVING, column, operator, value)

    def or_having(self, column: Any, operator: Any = NO_ARG, value: Any = NO_ARG) -> QueryBuilder:
        return self._where(Grouping.HAVING, column, operator, value, bool_="or")

    def having_in(self, column: Any, values: Any) -> QueryBuilder:
        return self._add_in(Grouping.HAVING, column, values)

    def having_not_in(self, column: Any, values: Any) -> QueryBuilder:
        return self._add_in(Grouping.HAVING, column, values, not_=True)

    def having_null(self, column: Any) -> QueryBuilder:
        self.model.add(Grouping.HAVING, WhereNull(column=column))
        return self

    def having_not_null(self, column: Any) -> QueryBuilder:
        self.model.add(Grouping.HAVING, WhereNull(column=column, not_=True))
        return self

    def having_between(self, column: Any, values: Any) -> QueryBuilder:
        return self._add_between(Grouping.HAVING, column, values)

    def having_not_between(self, column: Any, values: Any) -> QueryBuilder:
        return self._add_between(Grouping.HAVING, column, values, not_=True)

    def having_raw(self, sql: Any, bindings: Any = None) -> QueryBuilder:
        self.model.add(Grouping.HAVING, WhereRaw(value=self._to_raw(sql, bindings)))
        return self

    def or_having_raw(self, sql: Any, bindings: Any = None) -> QueryBuilder:
        self.model.add(Grouping.HAVING, WhereRaw(value=self._to_raw(sql, bindings), bool_="or"))
        return self

    # ------------------------------------------------------------------
    # Set operations
    # ------------------------------------------------------------------

    def union(self, *queries: Any, wrap: bool = False) -> QueryBuilder:
        return self._set_operation("union", queries, wrap)

    def union_all(self, *queries: Any, wrap: bool = False) -> QueryBuilder:
        return self._set_operation("union all", queries, wrap)

    def intersect(self, *queries: Any, wrap: bool = False) -> QueryBuilder:
        return self._set_operation("intersect", queries, wrap)

    def except_(self, *queries: Any, wrap: bool = False) -> QueryBuilder:
        return self._set_operation("except", queries, wrap)

    def _set_operation(self, kind: str, queries: tuple[Any, ...], wrap: bool) -> QueryBuilder:
        for query in normalize_arr(queries):
            self.model.add(Grouping.UNION, Union(value=query, kind=kind, wrap=wrap))
        return self

    # ------------------------------------------------------------------
    # Paging
    # ------------------------------------------------------------------

    def limit(self, value: int) -> QueryBuilder:
        self.model.limit = _non_negative_int(value, "limit")
        return self

    def offset(self, value: int) -> QueryBuilder:
        self.model.offset = _non_negative_int(value, "offset")
        return self

    def first(self, *columns: Any) -> QueryBuilder:
        self.select(*columns)
        self.model.method = "first"
        self.model.limit = 1
        return self

    # ------------------------------------------------------------------
    # Aggregates and window functions
    # ------------------------------------------------------------------

    def count(self, column: Any = "*") -> QueryBuilder:
        return self._aggregate("count", column)

    def count_distinct(self, *columns: Any) -> QueryBuilder:
        values = normalize_arr(columns) or ["*"]
        return self._aggregate("count", values if len(values) > 1 else values[0], distinct=True)

    def min(self, column: Any) -> QueryBuilder:
        return self._aggregate("min", column)

    def max(self, column: Any) -> QueryBuilder:
        return self._aggregate("max", column)

    def sum(self, column: Any) -> QueryBuilder:
        return self._aggregate("sum", column)

    def sum_distinct(self, column: Any) -> QueryBuilder:
        return self._aggregate("sum", column, distinct=True)

    def avg(self, column: Any) -> QueryBuilder:
        return self._aggregate("avg", column)

    def avg_distinct(self, column: Any) -> QueryBuilder:
        return self._aggregate("avg", column, distinct=True)

    def _aggregate(self, function: str, column: Any, distinct: bool = False) -> QueryBuilder:
        if isinstance(column, Mapping):
            for alias, target in column.items():
                self.model.add(
                    Grouping.COLUMNS,
                    Aggregate(function=function, value=target, distinct=distinct, alias=alias),
                )
            return self
        self.model.add(Grouping.COLUMNS, Aggregate(function=function, value=column, distinct=distinct))
        return self

    def row_number(self, alias: str | None = None, order_by: Any = None, partition_by: Any = None) -> QueryBuilder:
        return self._analytic("row_number", alias, order_by, partition_by)

    def rank(self, alias: str | None = None, order_by: Any = None, partition_by: Any = None) -> QueryBuilder:
        return self._analytic("rank", alias, order_by, partition_by)

    def dense_rank(self, alias: str | None = None, order_by: Any = None, partition_by: Any = None) -> QueryBuilder:
        return self._analytic("dense_rank", alias, order_by, partition_by)

    def _analytic(self, function: str, alias: str | None, order_by: Any, partition_by: Any) -> QueryBuilder:
        analytic = Analytic(function=function, alias=alias)
        if isinstance(order_by, Raw):
            analytic.raw = order_by
        elif callable(order_by):
            order_by(analytic)
        else:
            if order_by is None:
                raise ValidationError(f"{function}() requires an order_by", code="INVALID_ANALYTIC")
            analytic.order_by(order_by)
            if partition_by is not None:
                analytic.partition_by(partition_by)
        self.model.add(Grouping.COLUMNS, analytic)
        return self

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    def json_extract(self, column: Any, path: str, alias: str | None = None) -> QueryBuilder:
        self.model.add(Grouping.COLUMNS, JsonExtract(column=column, path=path, alias=alias))
        return self

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def for_update(self, *tables: str) -> QueryBuilder:
        return self._lock(LockMode.FOR_UPDATE, tables)

    def for_share(self, *tables: str) -> QueryBuilder:
        return self._lock(LockMode.FOR_SHARE, tables)

    def for_no_key_update(self, *tables: str) -> QueryBuilder:
        return self._lock(LockMode.FOR_NO_KEY_UPDATE, tables)

    def for_key_share(self, *tables: str) -> QueryBuilder:
        return self._lock(LockMode.FOR_KEY_SHARE, tables)

    def skip_locked(self) -> QueryBuilder:
        return self._wait(WaitMode.SKIP_LOCKED)

    def no_wait(self) -> QueryBuilder:
        return self._wait(WaitMode.NO_WAIT)

    def _lock(self, mode: LockMode, tables: tuple[str, ...]) -> QueryBuilder:
        self.model.lock = mode
        self.model.lock_tables = normalize_arr(tables)
        return self

    def _wait(self, mode: WaitMode) -> QueryBuilder:
        if self.model.lock is None:
            raise ValidationError(
                f".{mode.value}() can be used only with a lock mode", code="INVALID_LOCK"
            )
        self.model.wait_mode = mode
        return self

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, values: Any, returning: Any = None) -> QueryBuilder:
        self.model.method = "insert"
        self.model.insert = values
        if returning is not None:
            self.returning(returning)
        return self

    def upsert(self, values: Any, returning: Any = None) -> QueryBuilder:
        self.model.method = "upsert"
        self.model.upsert = values
        if returning is not None:
            self.returning(returning)
        return self

    def update(self, values: Any, value: Any = NO_ARG, returning: Any = None) -> QueryBuilder:
        """Set columns from a mapping, or a single ``column, value`` pair."""
        if isinstance(values, str):
            if value is NO_ARG:
                raise ValidationError("update() with a column name needs a value", code="INVALID_UPDATE")
            values = {values: value}
        elif not isinstance(values, Mapping):
            raise ValidationError("update() expects a mapping of columns to values", code="INVALID_UPDATE")
        self.model.method = "update"
        self.model.update = {**(self.model.update or {}), **values}
        if returning is not None:
            self.returning(returning)
        return self

    def increment(self, column: Any, amount: Any = 1) -> QueryBuilder:
        return self._counter(column, amount, "+")

    def decrement(self, column: Any, amount: Any = 1) -> QueryBuilder:
        return self._counter(column, amount, "-")

    def _counter(self, column: Any, amount: Any, sign: str) -> QueryBuilder:
        pairs = column.items() if isinstance(column, Mapping) else [(column, amount)]
        for name, step in pairs:
            if not isinstance(name, str):
                raise ValidationError("increment/decrement column must be a string", code="INVALID_COLUMN")
            if isinstance(step, bool) or not isinstance(step, (int, float)):
                raise ValidationError(
                    f"increment/decrement amount for {name!r} must be a number",
                    code="INVALID_AMOUNT",
                )
            self.model.counter[name] = (sign, step)
        self.model.method = "update"
        return self

    def delete(self, returning: Any = None) -> QueryBuilder:
        self.model.method = "delete"
        if returning is not None:
            self.returning(returning)
        return self

    del_ = delete

    def truncate(self) -> QueryBuilder:
        self.model.method = "truncate"
        return self

    def returning(self, *columns: Any) -> QueryBuilder:
        self.model.returning = normalize_arr(columns)
        return self

    def on_conflict(self, *columns: Any) -> OnConflictBuilder:
        return OnConflictBuilder(self, normalize_arr(columns))

    # ------------------------------------------------------------------
    # Execution metadata
    # ------------------------------------------------------------------

    def comment(self, text: str) -> QueryBuilder:
        if not isinstance(text, str):
            raise ValidationError("Comment must be a string", code="INVALID_COMMENT")
        if "/*" in text or "*/" in text:
            raise ValidationError("Cannot include /* or */ in comment", code="INVALID_COMMENT")
        self.model.comments.append(text)
        return self

    def timeout(self, ms: int, cancel: bool = False) -> QueryBuilder:
        if isinstance(ms, bool) or not isinstance(ms, int) or ms < 0:
            raise ValidationError("timeout must be a non-negative integer (ms)", code="INVALID_TIMEOUT")
        if cancel:
            self.client.assert_can_cancel_query()
        self._timeout = ms
        self._cancel_on_timeout = cancel
        return self

    def options(self, opts: Mapping[str, Any]) -> QueryBuilder:
        self._options.update(opts)
        return self

    def query_context(self, context: Any = NO_ARG) -> Any:
        """Set the context passed to ``wrap_identifier``; without arguments, return it."""
        if context is NO_ARG:
            return self._query_context
        self._query_context = context
        return self

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def clone(self) -> QueryBuilder:
        duplicate = type(self)(self.client)
        duplicate.model = self.model.copy()
        duplicate._options = dict(self._options)
        duplicate._timeout = self._timeout
        duplicate._cancel_on_timeout = self._cancel_on_timeout
        duplicate._query_context = self._query_context
        return duplicate

    def clear(self, statement: str) -> QueryBuilder:
        """Remove a clause kind (``select``, ``where``, ``order`` ...) or single property."""
        grouping = _CLEARABLE.get(statement)
        if grouping is not None:
            self.model.clear(grouping)
        elif statement == "counter":
            self.model.counter = {}
        elif statement in ("limit", "offset"):
            setattr(self.model, statement, None)
        else:
            raise ValidationError(f"Clearing {statement!r} is not supported", code="INVALID_CLEAR")
        return self

    def clear_select(self) -> QueryBuilder:
        return self.clear("select")

    def clear_where(self) -> QueryBuilder:
        return self.clear("where")

    def clear_order(self) -> QueryBuilder:
        return self.clear("order")

    def clear_having(self) -> QueryBuilder:
        return self.clear("having")

    def clear_group(self) -> QueryBuilder:
        return self.clear("group")

    def clear_counters(self) -> QueryBuilder:
        return self.clear("counter")

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def to_sql(self) -> CompiledQuery:
        """Compile with a fresh formatter; repeatable and side-effect free."""
        return self.client.query_compiler(self).to_sql()

    def to_native(self) -> NativeQuery:
        return self.client.to_native(self.to_sql())

    def to_query(self) -> str:
        """Return the SQL with bindings inlined (debugging only)."""
        compiled = self.to_sql()
        return self.client.format_query(compiled.sql, compiled.bindings)

    def __str__(self) -> str:
        return self.to_query()

    def _to_raw(self, sql: Any, bindings: Any) -> Raw:
        if isinstance(sql, Raw):
            return sql
        return Raw(self.client).set(sql, bindings)


def _non_negative_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(
            f"A valid non-negative integer must be provided to {name}",
            code="INVALID_PAGING",
            details={name: repr(value)},
        )
    return value


__all__ = ["QueryBuilder", "OnConflictBuilder", "UNDEFINED"]
