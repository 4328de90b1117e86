"""Named capability strategies composed into a dialect.

Rather than a deep chain of compiler subclasses, each dialect is assembled
from a :class:`DialectCapabilities` bundle.  The query compiler consults the
bundle at every decision point where SQL families differ:

``quoting``     identifier quote characters
``upsert``      ``UPSERT INTO`` or unsupported
``conflict``    ``ON CONFLICT`` / ``ON DUPLICATE KEY`` / unsupported
``returning``   ``RETURNING`` suffix / ``OUTPUT`` clause / unsupported
``locking``     ``FOR UPDATE`` suffix / ``WITH (UPDLOCK)`` hint / unsupported
``json_path``   extraction function and path shape
``paging``      ``LIMIT/OFFSET`` or ``OFFSET/FETCH`` (+ ``TOP``)

A dialect that is a delta over a relative is built with
:meth:`DialectCapabilities.derive`::

    COCKROACHDB = POSTGRES.derive(upsert=UpsertInto(), truncate="truncate {table}")

Unsupported capabilities always raise :class:`~quarry.errors.CapabilityError`
naming the dialect; they never degrade to a silent no-op.
"""
from __future__ import annotations

import dataclasses
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from quarry.errors import CapabilityError
from quarry.escape import EscapeFn, standard_escape
from quarry.query.model import Conflict, Grouping, LockMode, WaitMode

if TYPE_CHECKING:
    from quarry.query.compiler import QueryCompiler


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------

#: Operators every dialect accepts.
BASE_OPERATORS: frozenset[str] = frozenset({
    "=", "<", ">", "<=", ">=", "<>", "!=",
    "like", "not like", "between", "not between",
    "ilike", "not ilike", "exists", "not exists",
    "rlike", "not rlike", "regexp", "not regexp", "match",
    "in", "not in", "is", "is not",
    "&", "|", "^", "<<", ">>", "~",
})

#: Set-containment, pattern and range operators of the Postgres family.
POSTGRES_OPERATORS: frozenset[str] = frozenset({
    "~=", "~*", "!~", "!~*", "#", "&&", "@>", "<@", "||",
    "&<", "&>", "-|-", "@@", "!!", "?", "?|", "?&",
})

#: Operators whose text collides with the ``?`` placeholder.
ESCAPED_OPERATORS: Mapping[str, str] = {"?": "\\?", "?|": "\\?|", "?&": "\\?&"}


# ---------------------------------------------------------------------------
# Identifier quoting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IdentifierQuoting:
    """Wraps one identifier segment; the closing quote is doubled inside."""

    open_quote: str = '"'
    close_quote: str = '"'

    def quote(self, segment: str) -> str:
        if segment == "*":
            return segment
        escaped = segment.replace(self.close_quote, self.close_quote * 2)
        return f"{self.open_quote}{escaped}{self.close_quote}"

    def unquote(self, text: str) -> str:
        """Inverse of :meth:`quote` for a single quoted segment."""
        if text.startswith(self.open_quote) and text.endswith(self.close_quote):
            inner = text[len(self.open_quote):-len(self.close_quote)]
            return inner.replace(self.close_quote * 2, self.close_quote)
        return text


# ---------------------------------------------------------------------------
# Placeholders
# ---------------------------------------------------------------------------

PARAMSTYLES = ("qmark", "numeric", "format", "dollar", "atp")

_PLACEHOLDER_RE = re.compile(r"(\\*)(\?)")


def position_bindings(sql: str, paramstyle: str) -> str:
    """Convert ``?`` placeholders to the driver's paramstyle.

    An odd run of backslashes before ``?`` escapes it: one backslash is
    removed and the ``?`` is emitted literally without consuming a binding.

    Args:
        sql: Compiled SQL using ``?`` placeholders.
        paramstyle: One of :data:`PARAMSTYLES`.

    Returns:
        SQL ready for the driver.
    """
    if paramstyle == "format":
        sql = sql.replace("%", "%%")
    count = 0

    def replace(match: re.Match[str]) -> str:
        nonlocal count
        escapes = match.group(1)
        if len(escapes) % 2:
            return escapes[:-1] + "?"
        count += 1
        if paramstyle == "qmark":
            return f"{escapes}?"
        if paramstyle == "numeric":
            return f"{escapes}:{count}"
        if paramstyle == "dollar":
            return f"{escapes}${count}"
        if paramstyle == "atp":
            return f"{escapes}@p{count}"
        return f"{escapes}%s"

    return _PLACEHOLDER_RE.sub(replace, sql)


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------


class UpsertInto:
    """``upsert into "t" (...) values (...)``."""

    def compile_upsert(self, compiler: QueryCompiler) -> str:
        return compiler.insert_statement("upsert into", compiler.model.upsert)


class UnsupportedUpsert:
    def compile_upsert(self, compiler: QueryCompiler) -> str:
        raise compiler.unsupported("upsert")


# ---------------------------------------------------------------------------
# Insert conflicts
# ---------------------------------------------------------------------------


class OnConflictClause:
    """``on conflict ("id") do nothing`` / ``do update set ... = excluded....``."""

    def insert_keyword(self, compiler: QueryCompiler, conflict: Conflict | None) -> str:
        return "insert into"

    def render(self, compiler: QueryCompiler, conflict: Conflict, columns: list[str]) -> str:
        fmt = compiler.formatter
        target = f" ({fmt.columnize(conflict.columns)})" if conflict.columns else ""
        if conflict.ignore or not conflict.merge:
            return f" on conflict{target} do nothing"
        return f" on conflict{target} do update set {self._merge(compiler, conflict, columns)}"

    def _merge(self, compiler: QueryCompiler, conflict: Conflict, columns: list[str]) -> str:
        fmt = compiler.formatter
        values = conflict.merge_values
        if isinstance(values, Mapping):
            return compiler.update_assignments(values)
        merge_columns = list(values) if values else columns
        return ", ".join(
            f"{fmt.wrap(column)} = excluded.{fmt.wrap(column)}" for column in merge_columns
        )


class OnDuplicateKey:
    """MySQL: ``insert ignore into`` / ``on duplicate key update ...``."""

    def insert_keyword(self, compiler: QueryCompiler, conflict: Conflict | None) -> str:
        if conflict is not None and conflict.ignore:
            return "insert ignore into"
        return "insert into"

    def render(self, compiler: QueryCompiler, conflict: Conflict, columns: list[str]) -> str:
        if conflict.ignore or not conflict.merge:
            return ""
        fmt = compiler.formatter
        values = conflict.merge_values
        if isinstance(values, Mapping):
            return f" on duplicate key update {compiler.update_assignments(values)}"
        merge_columns = list(values) if values else columns
        assignments = ", ".join(
            f"{fmt.wrap(column)} = values({fmt.wrap(column)})" for column in merge_columns
        )
        return f" on duplicate key update {assignments}"


class UnsupportedConflict:
    def insert_keyword(self, compiler: QueryCompiler, conflict: Conflict | None) -> str:
        if conflict is not None:
            raise compiler.unsupported("on_conflict")
        return "insert into"

    def render(self, compiler: QueryCompiler, conflict: Conflict, columns: list[str]) -> str:
        raise compiler.unsupported("on_conflict")


# ---------------------------------------------------------------------------
# Returning
# ---------------------------------------------------------------------------


class ReturningSuffix:
    """``... returning "id"`` appended to the statement."""

    def output_clause(self, compiler: QueryCompiler, method: str) -> str:
        return ""

    def returning_clause(self, compiler: QueryCompiler, method: str) -> str:
        returning = compiler.model.returning
        if not returning:
            return ""
        return f" returning {compiler.formatter.columnize(returning)}"


class OutputClause:
    """MSSQL: ``output inserted."id"`` placed before VALUES / WHERE."""

    def output_clause(self, compiler: QueryCompiler, method: str) -> str:
        returning = compiler.model.returning
        if not returning:
            return ""
        source = "deleted" if method == "delete" else "inserted"
        columns = ", ".join(
            f"{source}.{compiler.formatter.wrap(column)}" for column in returning
        )
        return f" output {columns}"

    def returning_clause(self, compiler: QueryCompiler, method: str) -> str:
        return ""


class UnsupportedReturning:
    def output_clause(self, compiler: QueryCompiler, method: str) -> str:
        if compiler.model.returning:
            raise compiler.unsupported("returning")
        return ""

    def returning_clause(self, compiler: QueryCompiler, method: str) -> str:
        return ""


# ---------------------------------------------------------------------------
# Locking
# ---------------------------------------------------------------------------

_STANDARD_LOCKS: Mapping[LockMode, str] = {
    LockMode.FOR_UPDATE: "for update",
    LockMode.FOR_SHARE: "for share",
    LockMode.FOR_NO_KEY_UPDATE: "for no key update",
    LockMode.FOR_KEY_SHARE: "for key share",
}
_STANDARD_WAITS: Mapping[WaitMode, str] = {
    WaitMode.SKIP_LOCKED: "skip locked",
    WaitMode.NO_WAIT: "nowait",
}


@dataclass(frozen=True)
class ForClauseLocking:
    """Trailing ``for update [of ...] [skip locked | nowait]``."""

    modes: frozenset[LockMode] = frozenset(_STANDARD_LOCKS)
    wait_modes: frozenset[WaitMode] = frozenset(_STANDARD_WAITS)
    lock_of_tables: bool = True

    def table_hint(self, compiler: QueryCompiler) -> str:
        return ""

    def suffix(self, compiler: QueryCompiler) -> str:
        model = compiler.model
        if model.lock is None:
            return ""
        if model.lock not in self.modes:
            raise compiler.unsupported(model.lock.value)
        sql = f" {_STANDARD_LOCKS[model.lock]}"
        if model.lock_tables:
            if not self.lock_of_tables:
                raise compiler.unsupported("lock tables")
            sql += f" of {compiler.formatter.columnize(model.lock_tables)}"
        if model.wait_mode is not None:
            if model.wait_mode not in self.wait_modes:
                raise compiler.unsupported(model.wait_mode.value)
            sql += f" {_STANDARD_WAITS[model.wait_mode]}"
        return sql


class TableHintLocking:
    """MSSQL: ``from "t" with (UPDLOCK, ROWLOCK)``."""

    _HINTS: Mapping[LockMode, str] = {
        LockMode.FOR_UPDATE: "UPDLOCK",
        LockMode.FOR_SHARE: "HOLDLOCK",
    }
    _WAITS: Mapping[WaitMode, str] = {
        WaitMode.SKIP_LOCKED: "READPAST",
        WaitMode.NO_WAIT: "NOWAIT",
    }

    def table_hint(self, compiler: QueryCompiler) -> str:
        model = compiler.model
        if model.lock is None:
            return ""
        hint = self._HINTS.get(model.lock)
        if hint is None:
            raise compiler.unsupported(model.lock.value)
        hints = [hint, "ROWLOCK"]
        if model.wait_mode is not None:
            hints.append(self._WAITS[model.wait_mode])
        return f" with ({', '.join(hints)})"

    def suffix(self, compiler: QueryCompiler) -> str:
        return ""


class UnsupportedLocking:
    def table_hint(self, compiler: QueryCompiler) -> str:
        return ""

    def suffix(self, compiler: QueryCompiler) -> str:
        model = compiler.model
        if model.lock is not None:
            raise compiler.unsupported(model.lock.value)
        if model.wait_mode is not None:
            raise compiler.unsupported(model.wait_mode.value)
        return ""


# ---------------------------------------------------------------------------
# JSON paths
# ---------------------------------------------------------------------------

_PATH_SEGMENT_RE = re.compile(r"\[(\d+)\]|\[['\"]([^'\"]*)['\"]\]|([^.\[\]]+)")


def to_array_path(path: str) -> list[str]:
    """Convert a ``$.a.b[0]`` JSON path into its keys: ``["a", "b", "0"]``."""
    if path.startswith("$"):
        path = path[1:]
    segments: list[str] = []
    for index, quoted, plain in _PATH_SEGMENT_RE.findall(path):
        segments.append(index or quoted or plain)
    return segments


@dataclass(frozen=True)
class JsonPathStyle:
    """How a dialect extracts a value at a JSON path.

    Attributes:
        function: Extraction function name.
        array_path: Bind each path key separately instead of one path string.
        text_operator: Suffix turning the extracted JSON into text
            (e.g. ``" #>> '{}'"``); numeric comparisons add a cast on top.
        unquote_function: Wrapper that unquotes string results (MySQL).
    """

    function: str
    array_path: bool = False
    text_operator: str | None = None
    unquote_function: str | None = None

    def extract(self, compiler: QueryCompiler, column: Any, path: str) -> str:
        fmt = compiler.formatter
        column_sql = fmt.columnize(column)
        if self.array_path:
            args = ", ".join(fmt.parameter(key) for key in to_array_path(path))
        else:
            args = fmt.parameter(path)
        return f"{self.function}({column_sql}, {args})"

    def compare(
        self,
        compiler: QueryCompiler,
        column: Any,
        path: str,
        operator: str,
        value: Any,
    ) -> str:
        fmt = compiler.formatter
        expr = self.extract(compiler, column, path)
        if self.text_operator:
            expr = f"{expr}{self.text_operator}"
            if isinstance(value, int) and not isinstance(value, bool):
                expr = f"({expr})::int"
            elif isinstance(value, float):
                expr = f"({expr})::float"
        elif self.unquote_function and isinstance(value, str):
            expr = f"{self.unquote_function}({expr})"
        return f"{expr} {fmt.operator(operator)} {fmt.parameter(value)}"


# ---------------------------------------------------------------------------
# Paging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LimitOffsetPaging:
    """``limit ? offset ?``.

    Attributes:
        offset_only_limit: Literal limit emitted when only an offset is set,
            for dialects whose grammar requires LIMIT before OFFSET.
    """

    offset_only_limit: str | None = None

    def top(self, compiler: QueryCompiler) -> str:
        return ""

    def limit_offset(self, compiler: QueryCompiler) -> str:
        model = compiler.model
        fmt = compiler.formatter
        sql = ""
        if model.limit is not None:
            sql += f" limit {fmt.parameter(model.limit)}"
        elif model.offset is not None and self.offset_only_limit is not None:
            sql += f" limit {self.offset_only_limit}"
        if model.offset is not None:
            sql += f" offset {fmt.parameter(model.offset)}"
        return sql


@dataclass(frozen=True)
class OffsetFetchPaging:
    """``offset ? rows fetch next ? rows only`` (SQL:2008).

    Attributes:
        use_top: Render a bare limit as ``select top (?)`` (MSSQL).
        default_order: ORDER BY emitted when paging without one, for dialects
            that require it.
    """

    use_top: bool = False
    default_order: str | None = None

    def top(self, compiler: QueryCompiler) -> str:
        model = compiler.model
        if self.use_top and model.limit is not None and model.offset is None:
            return f"top ({compiler.formatter.parameter(model.limit)}) "
        return ""

    def implicit_order(self, compiler: QueryCompiler) -> str:
        model = compiler.model
        if self.default_order and model.offset is not None and not model.group(Grouping.ORDER):
            return f" order by {self.default_order}"
        return ""

    def limit_offset(self, compiler: QueryCompiler) -> str:
        model = compiler.model
        fmt = compiler.formatter
        if self.use_top and model.offset is None:
            return ""
        sql = self.implicit_order(compiler)
        if model.offset is not None:
            sql += f" offset {fmt.parameter(model.offset)} rows"
        elif model.limit is not None and not self.use_top:
            sql += " offset 0 rows"
        if model.limit is not None:
            sql += f" fetch next {fmt.parameter(model.limit)} rows only"
        return sql


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ViewCapabilities:
    """View DDL support.

    Attributes:
        create_or_replace: ``"or replace"``, ``"or alter"`` or ``"drop"``
            (drop-if-exists then create).
        rename_column: ``alter view ... rename column`` is available.
        default_to: ``alter view ... alter column ... set default`` is available.
        check_option: ``with [local|cascaded] check option`` is available.
        materialized: Materialized views are available.
    """

    create_or_replace: str = "or replace"
    rename_column: bool = False
    default_to: bool = False
    check_option: bool = False
    materialized: bool = False


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CatalogQueries:
    """Existence checks against the dialect's catalog.

    ``{schema}`` in the templates is replaced with either a bound schema
    placeholder or ``schema_default``.
    """

    has_table: str
    has_column: str
    schema_default: str = "current_schema()"


INFORMATION_SCHEMA = CatalogQueries(
    has_table="select * from information_schema.tables where table_name = ? and table_schema = {schema}",
    has_column=(
        "select * from information_schema.columns where table_name = ? "
        "and column_name = ? and table_schema = {schema}"
    ),
)


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DialectCapabilities:
    """Every per-dialect decision point, as composable parts.

    Attributes:
        paramstyle: Default driver placeholder style.
        alias_keyword: Text between an expression and its alias.
        empty_insert: Body used for an insert with no columns.
        default_keyword: VALUES accepts ``DEFAULT``; otherwise NULL is bound.
        ilike_operator: Keyword rendering a case-insensitive LIKE.
        operators: Whitelisted operator tokens.
        booleans_as_integers: Bind ``True``/``False`` as ``1``/``0``.
        can_cancel_query: The driver layer can cancel a running query.
        native_nulls_ordering: ``order by ... nulls first`` is supported.
        supports_distinct_on: ``select distinct on (...)`` is supported.
        truncate: Template for truncate, ``{table}`` replaced.
        deferrable: Deferred constraint checking is supported.
        alter_column_prelude: Statement that must precede ALTER COLUMN.
        begin_transaction: Statement opening an explicit transaction; None
            where one starts implicitly with the first statement.
        escape: Literal escaping function.
    """

    quoting: IdentifierQuoting = field(default_factory=IdentifierQuoting)
    paramstyle: str = "qmark"
    alias_keyword: str = " as "
    upsert: Any = field(default_factory=UnsupportedUpsert)
    conflict: Any = field(default_factory=OnConflictClause)
    returning: Any = field(default_factory=ReturningSuffix)
    locking: Any = field(default_factory=ForClauseLocking)
    json_path: JsonPathStyle = field(default_factory=lambda: JsonPathStyle("json_extract"))
    paging: Any = field(default_factory=LimitOffsetPaging)
    views: ViewCapabilities = field(default_factory=ViewCapabilities)
    catalog: CatalogQueries = INFORMATION_SCHEMA
    empty_insert: str = "default values"
    default_keyword: bool = True
    ilike_operator: str = "ilike"
    operators: frozenset[str] = BASE_OPERATORS
    booleans_as_integers: bool = False
    can_cancel_query: bool = False
    native_nulls_ordering: bool = False
    supports_distinct_on: bool = False
    truncate: str = "truncate {table}"
    deferrable: bool = True
    alter_column_prelude: str | None = None
    begin_transaction: str | None = "begin"
    escape: EscapeFn = standard_escape

    def derive(self, **changes: Any) -> DialectCapabilities:
        """Return a copy with ``changes`` applied (a dialect delta)."""
        return dataclasses.replace(self, **changes)


def unsupported_error(dialect: str, feature: str, detail: str | None = None) -> CapabilityError:
    suffix = f" {detail}" if detail else ""
    return CapabilityError(
        f"{feature}{suffix} is not supported by the {dialect} dialect",
        feature=feature,
        dialect=dialect,
    )
