"""Base query compiler: StatementModel → SQL text + ordered bindings.

``QueryCompiler`` walks a builder's :class:`~quarry.query.model.StatementModel`
in canonical clause order.  Every dialect uses this one class; the points
where SQL families differ are delegated to the client's
:class:`~quarry.dialects.capabilities.DialectCapabilities` strategies.

Canonical select order
----------------------
``with`` → ``select [distinct] [top] columns`` → ``from [lock hint]`` →
``join`` → ``where`` → ``group by`` → ``having`` → ``order by`` →
``limit/offset`` → ``union/intersect/except`` → ``lock suffix``

Binding order
-------------
Each clause is rendered strictly left to right through one
:class:`~quarry.formatter.Formatter`; a placeholder's value is appended at
the moment the placeholder is emitted.  Sub-selects built from callbacks
compile in place against the same accumulator.  Fragments are never
pre-rendered and stitched later.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog

from quarry.dialects.capabilities import unsupported_error
from quarry.errors import BindingError, CapabilityError, CompilationError, ValidationError
from quarry.formatter import MISSING, is_builder, is_deferred
from quarry.helpers import contains_undefined
from quarry.query.analytic import Analytic, WindowTerm
from quarry.query.compiled import CompiledQuery
from quarry.query.joinclause import JoinClause, OnWrapped, Using
from quarry.query.model import (
    Aggregate,
    Columns,
    Grouping,
    JsonExtract,
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
)
from quarry.raw import Raw

if TYPE_CHECKING:
    from quarry.client import Client
    from quarry.query.builder import QueryBuilder

logger = structlog.get_logger(__name__)

_METHODS = ("select", "first", "insert", "update", "delete", "upsert", "truncate")


class QueryCompiler:
    """Compiles one builder.

    A compiler instance is single-use: it owns the formatter (and so the
    binding accumulator) for exactly one compile pass.

    Args:
        client: Client supplying the dialect capabilities.
        builder: The builder whose model is compiled.
        bindings: Accumulator shared with a parent compile pass (callback
            sub-selects); a fresh list when omitted.
        query_context: Passed to a configured ``wrap_identifier`` hook.
    """

    def __init__(
        self,
        client: Client,
        builder: QueryBuilder,
        bindings: list[Any] | None = None,
        query_context: Any = None,
    ) -> None:
        self.client = client
        self.builder = builder
        self.model = builder.model
        self.capabilities = client.capabilities
        context = query_context if query_context is not None else builder.query_context()
        self.formatter = client.formatter(bindings, context)
        self._undefined_columns: list[str] = []
        self._table_name: str | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def to_sql(self, method: str | None = None) -> CompiledQuery:
        """Compile the model.

        Args:
            method: Entry point override; defaults to the model's method.

        Returns:
            An immutable :class:`CompiledQuery`.

        Raises:
            BindingError: If any bound value is ``UNDEFINED``.
            CapabilityError: If the dialect lacks a requested feature.
            InvalidOperatorError: If an operator is not whitelisted.
        """
        method = method or self.model.method
        if method not in _METHODS:
            raise CompilationError(f"Unknown query method {method!r}", clause="method")
        start = len(self.formatter.bindings)
        sql = getattr(self, method)()
        if self.model.comments:
            sql = " ".join(f"/* {comment} */" for comment in self.model.comments) + " " + sql

        bindings = tuple(self.formatter.bindings[start:])
        if self._undefined_columns or contains_undefined(bindings):
            columns = ", ".join(self._undefined_columns)
            raise BindingError(
                f"Undefined binding(s) detected when compiling {method.upper()}. "
                f"Undefined column(s): [{columns}] query: {sql}",
                keys=tuple(self._undefined_columns),
            )
        returning = self.model.returning
        return CompiledQuery(
            sql=sql,
            bindings=bindings,
            method=method,
            options=dict(self.builder._options),
            timeout=self.builder._timeout,
            cancel_on_timeout=self.builder._cancel_on_timeout,
            alias=self.model.alias,
            returning=tuple(returning) if returning else None,
            dialect=self.client.dialect_name,
        )

    def unsupported(self, feature: str, detail: str | None = None) -> CapabilityError:
        """Build the error raised when the dialect lacks ``feature``."""
        return unsupported_error(self.client.dialect_name, feature, detail)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def select(self) -> str:
        parts = [self.with_clause(), self.columns_clause()]
        if self.model.table is not None:
            parts.append(f"from {self.table_name}{self.capabilities.locking.table_hint(self)}")
        parts.append(self.join_clause())
        parts.append(self.where_clause(Grouping.WHERE, "where"))
        parts.append(self.group_clause())
        parts.append(self.where_clause(Grouping.HAVING, "having"))
        parts.append(self.order_clause())
        sql = " ".join(part for part in parts if part)
        sql += self.capabilities.paging.limit_offset(self)
        sql += self.union_clause()
        sql += self.capabilities.locking.suffix(self)
        return sql

    first = select

    def insert(self) -> str:
        with_sql = self.with_clause()
        keyword = self.capabilities.conflict.insert_keyword(self, self.model.conflict)
        return _prefixed(with_sql, self.insert_statement(keyword, self.model.insert))

    def upsert(self) -> str:
        if self.model.conflict is not None:
            raise self.unsupported("on_conflict", "with upsert")
        with_sql = self.with_clause()
        return _prefixed(with_sql, self.capabilities.upsert.compile_upsert(self))

    def update(self) -> str:
        with_sql = self.with_clause()
        table = self.table_name
        hint = self.capabilities.locking.table_hint(self)
        assignments = []
        if self.model.update:
            assignments.append(self.update_assignments(self.model.update))
        if self.model.counter:
            assignments.append(self._counter_assignments())
        if not assignments:
            raise CompilationError("Empty update: no columns to set", clause="update")
        sql = f"update {table}{hint} set {', '.join(assignments)}"
        sql += self.capabilities.returning.output_clause(self, "update")
        where = self.where_clause(Grouping.WHERE, "where")
        if where:
            sql += f" {where}"
        sql += self.capabilities.returning.returning_clause(self, "update")
        return _prefixed(with_sql, sql)

    def delete(self) -> str:
        with_sql = self.with_clause()
        sql = f"delete from {self.table_name}"
        sql += self.capabilities.returning.output_clause(self, "delete")
        where = self.where_clause(Grouping.WHERE, "where")
        if where:
            sql += f" {where}"
        sql += self.capabilities.returning.returning_clause(self, "delete")
        return _prefixed(with_sql, sql)

    def truncate(self) -> str:
        return self.capabilities.truncate.format(table=self.table_name)

    # ------------------------------------------------------------------
    # Insert helpers (also used by the upsert / conflict strategies)
    # ------------------------------------------------------------------

    def insert_statement(self, keyword: str, values: Any) -> str:
        """Render ``<keyword> <table> (...) values (...)`` plus conflict and returning.

        Args:
            keyword: Leading keyword, e.g. ``"insert into"`` or ``"upsert into"``.
            values: A row mapping, a list of row mappings, or a builder /
                raw / callback producing the rows.
        """
        table = self.table_name
        returning = self.capabilities.returning
        if isinstance(values, Raw) or is_deferred(values) or is_builder(values):
            body = self.formatter.raw_or_fn(values)
            return f"{keyword} {table}{returning.output_clause(self, 'insert')} {body}"

        if isinstance(values, Mapping):
            rows = [values]
        elif isinstance(values, (list, tuple)):
            rows = list(values)
        else:
            raise ValidationError(
                "insert() expects a mapping or a list of mappings",
                code="INVALID_INSERT",
            )
        if not rows:
            return ""
        for row in rows:
            if not isinstance(row, Mapping):
                raise ValidationError(
                    "insert() expects a mapping or a list of mappings",
                    code="INVALID_INSERT",
                )

        columns = _union_keys(rows)
        if not columns:
            return f"{keyword} {table}{returning.output_clause(self, 'insert')} {self.capabilities.empty_insert}"

        for column in columns:
            if any(contains_undefined(row.get(column)) for row in rows):
                self._undefined_columns.append(column)

        sql = f"{keyword} {table} ({self.formatter.columnize(columns)})"
        sql += returning.output_clause(self, "insert")
        not_set = self._default_marker(rows, columns)
        rendered = []
        for row in rows:
            rendered.append(
                f"({self.formatter.parameterize([row.get(c, MISSING) for c in columns], not_set)})"
            )
        sql += f" values {', '.join(rendered)}"
        if self.model.conflict is not None:
            sql += self.capabilities.conflict.render(self, self.model.conflict, columns)
        sql += returning.returning_clause(self, "insert")
        return sql

    def update_assignments(self, values: Mapping[str, Any]) -> str:
        """Render ``"col" = ?`` pairs in mapping order."""
        parts = []
        for column, value in values.items():
            if contains_undefined(value):
                self._undefined_columns.append(str(column))
            if isinstance(value, (Mapping, list, tuple)) and not contains_undefined(value):
                value = json.dumps(value, default=str)
            parts.append(f"{self.formatter.wrap(column)} = {self.formatter.parameter(value)}")
        return ", ".join(parts)

    def _counter_assignments(self) -> str:
        fmt = self.formatter
        parts = []
        for column, (sign, amount) in self.model.counter.items():
            wrapped = fmt.wrap(column)
            parts.append(f"{wrapped} = {wrapped} {sign} {fmt.parameter(amount)}")
        return ", ".join(parts)

    def _default_marker(self, rows: list[Mapping[str, Any]], columns: list[str]) -> Any:
        if self.client.config.use_null_as_default:
            return None
        if not self.capabilities.default_keyword:
            if any(column not in row for row in rows for column in columns):
                logger.warning(
                    "query.insert.null_default",
                    dialect=self.client.dialect_name,
                    hint="set use_null_as_default=True to silence this warning",
                )
            return None
        return Raw(self.client).set("DEFAULT")

    # ------------------------------------------------------------------
    # Table name
    # ------------------------------------------------------------------

    @property
    def table_name(self) -> str:
        """Wrapped target table, rendered once at its first position."""
        if self._table_name is None:
            table = self.model.table
            if table is None:
                raise CompilationError("No table specified for query", clause="table")
            if isinstance(table, str) and self.model.schema:
                table = f"{self.model.schema}.{table}"
            self._table_name = self.formatter.wrap(table)
        return self._table_name

    # ------------------------------------------------------------------
    # Clauses
    # ------------------------------------------------------------------

    def with_clause(self) -> str:
        entries = self.model.group(Grouping.WITH)
        if not entries:
            return ""
        recursive = any(entry.recursive for entry in entries)
        parts = []
        for entry in entries:
            name = self.formatter.wrap_string(entry.alias)
            if entry.columns:
                name += f"({self.formatter.columnize(entry.columns)})"
            materialized = ""
            if entry.materialized is not None:
                materialized = "materialized " if entry.materialized else "not materialized "
            parts.append(f"{name} as {materialized}({self.formatter.raw_or_fn(entry.value)})")
        return f"with {'recursive ' if recursive else ''}{', '.join(parts)}"

    def columns_clause(self) -> str:
        entries = self.model.group(Grouping.COLUMNS)
        distinct = ""
        if any(isinstance(e, Columns) and e.distinct for e in entries):
            distinct = "distinct "
        distinct_on = [e for e in entries if isinstance(e, Columns) and e.distinct_on]
        if distinct_on:
            if not self.capabilities.supports_distinct_on:
                raise self.unsupported("distinct_on")
            on_columns = [value for entry in distinct_on for value in entry.values]
            distinct = f"distinct on ({self.formatter.columnize(on_columns)}) "

        top = self.capabilities.paging.top(self)
        parts = []
        for entry in entries:
            if isinstance(entry, Columns):
                if entry.distinct_on:
                    continue
                parts.extend(self.formatter.wrap(value) for value in entry.values)
            elif isinstance(entry, Aggregate):
                parts.append(self._aggregate(entry))
            elif isinstance(entry, Analytic):
                parts.append(self._analytic(entry))
            elif isinstance(entry, JsonExtract):
                sql = self.capabilities.json_path.extract(self, entry.column, entry.path)
                if entry.alias:
                    sql = self.formatter.alias(sql, self.formatter.wrap_as_identifier(entry.alias))
                parts.append(sql)
            else:
                raise CompilationError(f"Unexpected column entry {entry!r}", clause="columns")
        return f"select {distinct}{top}{', '.join(parts) or '*'}"

    def _aggregate(self, entry: Aggregate) -> str:
        fmt = self.formatter
        distinct = "distinct " if entry.distinct else ""
        value, alias = entry.value, entry.alias
        if isinstance(value, str) and alias is None:
            index = value.lower().find(" as ")
            if index != -1:
                value, alias = value[:index], value[index + 4:]
        if isinstance(value, (list, tuple)):
            target = fmt.columnize(list(value))
        else:
            target = fmt.wrap(value)
        sql = f"{entry.function}({distinct}{target})"
        if alias:
            sql = fmt.alias(sql, fmt.wrap_as_identifier(alias))
        return sql

    def _analytic(self, entry: Analytic) -> str:
        fmt = self.formatter
        if entry.raw is not None:
            window = fmt.unwrap_raw(entry.raw) or ""
        else:
            window_parts = []
            if entry.partitions:
                window_parts.append(f"partition by {self._window_terms(entry.partitions)}")
            window_parts.append(f"order by {self._window_terms(entry.order)}")
            window = " ".join(window_parts)
        sql = f"{entry.function}() over ({window})"
        if entry.alias:
            sql = fmt.alias(sql, fmt.wrap_as_identifier(entry.alias))
        return sql

    def _window_terms(self, terms: list[WindowTerm]) -> str:
        fmt = self.formatter
        parts = []
        for term in terms:
            text = fmt.wrap(term.column)
            if term.direction:
                text += f" {fmt.direction(term.direction)}"
            parts.append(text)
        return ", ".join(parts)

    def join_clause(self) -> str:
        parts = []
        for entry in self.model.group(Grouping.JOIN):
            if isinstance(entry, Raw):
                parts.append(self.formatter.unwrap_raw(entry) or "")
                continue
            table = entry.table
            if isinstance(table, str) and entry.schema:
                table = f"{entry.schema}.{table}"
            sql = f"{entry.join_type} join {self.formatter.wrap(table)}"
            conditions = self._join_conditions(entry)
            if conditions:
                sql += conditions if conditions.startswith(" using") else f" on {conditions}"
            parts.append(sql)
        return " ".join(parts)

    def _join_conditions(self, join: JoinClause) -> str:
        if join.clauses and isinstance(join.clauses[0], Using):
            return f" using ({self.formatter.columnize(join.clauses[0].columns)})"
        return self._combine(join.clauses)

    def where_clause(self, grouping: Grouping, keyword: str) -> str:
        conditions = self.conditions(grouping)
        return f"{keyword} {conditions}" if conditions else ""

    def conditions(self, grouping: Grouping) -> str:
        """Render the predicates of ``grouping`` without the leading keyword."""
        return self._combine(self.model.group(grouping), grouping)

    def group_clause(self) -> str:
        entries = self.model.group(Grouping.GROUP)
        if not entries:
            return ""
        parts = []
        for entry in entries:
            if entry.raw:
                parts.extend(self.formatter.unwrap_raw(value) or "" for value in entry.value)
            else:
                parts.append(self.formatter.columnize(entry.value))
        return f"group by {', '.join(parts)}"

    def order_clause(self) -> str:
        entries = self.model.group(Grouping.ORDER)
        if not entries:
            return ""
        fmt = self.formatter
        parts = []
        for entry in entries:
            if entry.raw:
                parts.append(fmt.unwrap_raw(entry.value) or "")
                continue
            column = fmt.wrap(entry.value)
            direction = fmt.direction(entry.direction)
            if entry.nulls is None:
                parts.append(f"{column} {direction}")
            elif self.capabilities.native_nulls_ordering:
                parts.append(f"{column} {direction} nulls {entry.nulls}")
            else:
                null_order = "is not null" if entry.nulls == "first" else "is null"
                parts.append(f"({column} {null_order}), {column} {direction}")
        return f"order by {', '.join(parts)}"

    def union_clause(self) -> str:
        sql = ""
        for entry in self.model.group(Grouping.UNION):
            body = self.formatter.raw_or_fn(entry.value)
            if entry.wrap:
                body = f"({body})"
            sql += f" {entry.kind} {body}"
        return sql

    # ------------------------------------------------------------------
    # Predicates (shared by WHERE, HAVING and JOIN ... ON)
    # ------------------------------------------------------------------

    def _combine(self, entries: list[Any], grouping: Grouping | None = None) -> str:
        sql = ""
        for entry in entries:
            rendered = self._predicate(entry, grouping)
            if not rendered:
                continue
            sql += rendered if not sql else f" {entry.bool_} {rendered}"
        return sql

    def _predicate(self, entry: Any, grouping: Grouping | None) -> str:
        fmt = self.formatter
        not_ = "not " if entry.not_ else ""
        if isinstance(entry, WhereBasic):
            column = fmt.wrap(entry.column)
            self._track_undefined(entry.column, entry.value)
            return f"{not_}{column} {fmt.operator(entry.operator)} {fmt.parameter(entry.value)}"
        if isinstance(entry, WhereColumn):
            column = fmt.wrap(entry.column)
            return f"{not_}{column} {fmt.operator(entry.operator)} {fmt.wrap(entry.value)}"
        if isinstance(entry, WhereIn):
            return self._where_in(entry)
        if isinstance(entry, WhereNull):
            return f"{fmt.wrap(entry.column)} is {not_}null"
        if isinstance(entry, WhereBetween):
            column = fmt.wrap(entry.column)
            self._track_undefined(entry.column, entry.values)
            low = fmt.parameter(entry.values[0])
            high = fmt.parameter(entry.values[1])
            return f"{column} {not_}between {low} and {high}"
        if isinstance(entry, WhereExists):
            return f"{not_}exists ({fmt.raw_or_fn(entry.value)})"
        if isinstance(entry, WhereRaw):
            sql = fmt.unwrap_raw(entry.value) or ""
            return f"not ({sql})" if entry.not_ else sql
        if isinstance(entry, WhereLike):
            keyword = self.capabilities.ilike_operator if entry.case_insensitive else "like"
            column = fmt.wrap(entry.column)
            self._track_undefined(entry.column, entry.value)
            return f"{not_}{column} {keyword} {fmt.parameter(entry.value)}"
        if isinstance(entry, WhereJsonPath):
            self._track_undefined(entry.column, entry.value)
            sql = self.capabilities.json_path.compare(
                self, entry.column, entry.path, entry.operator, entry.value
            )
            return f"{not_}{sql}"
        if isinstance(entry, WhereWrapped):
            inner = self._wrapped(entry.value, grouping or Grouping.WHERE)
            return f"{not_}({inner})" if inner else ""
        if isinstance(entry, OnWrapped):
            join = JoinClause()
            entry.value(join)
            inner = self._combine(join.clauses)
            return f"{not_}({inner})" if inner else ""
        raise CompilationError(f"Unexpected predicate {entry!r}", clause=str(grouping))

    def _where_in(self, entry: WhereIn) -> str:
        fmt = self.formatter
        values = entry.values
        if isinstance(values, (list, tuple)) and not values:
            return "1 = 1" if entry.not_ else "1 = 0"
        not_ = "not " if entry.not_ else ""
        if isinstance(entry.column, (list, tuple)):
            column = f"({fmt.columnize(list(entry.column))})"
        else:
            column = fmt.wrap(entry.column)
        self._track_undefined(entry.column, values)
        return f"{column} {not_}in {fmt.values(values)}"

    def _wrapped(self, callback: Any, grouping: Grouping) -> str:
        builder = self.client.query_builder()
        callback(builder)
        compiler = type(self)(self.client, builder, self.formatter.bindings, self.formatter.query_context)
        sql = compiler.conditions(grouping)
        self._undefined_columns.extend(compiler._undefined_columns)
        return sql

    def _track_undefined(self, column: Any, value: Any) -> None:
        if contains_undefined(value):
            self._undefined_columns.append(str(column))


def _union_keys(rows: list[Mapping[str, Any]]) -> list[str]:
    """Union of row keys in first-seen order."""
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


def _prefixed(prefix: str, sql: str) -> str:
    return f"{prefix} {sql}" if prefix and sql else sql
