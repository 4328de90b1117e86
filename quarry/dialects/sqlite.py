"""SQLite dialect (``sqlite3``).

Parameter style: ``?`` (``qmark``), the stdlib ``sqlite3`` driver's own.
SQLite has no ``DEFAULT`` keyword inside VALUES, no row locks and no
``upsert into``; keys are declared inline in ``create table``.

Table rebuilds
--------------
``alter table`` in SQLite cannot change a column, its nullability or the
table's constraints.  Those operations compile to a catalog read of the
table's stored DDL whose ``output`` is a :class:`TableRebuild`: given the
catalog rows it returns the follow-up statements (create a temporary copy
with the rewritten definition, copy the rows, drop the original, rename the
copy, recreate the indexes), which the runner executes on the same
connection.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

import structlog

from quarry.dialects.capabilities import (
    CatalogQueries,
    DialectCapabilities,
    IdentifierQuoting,
    JsonPathStyle,
    LimitOffsetPaging,
    UnsupportedLocking,
    ViewCapabilities,
)
from quarry.dialects.registry import Dialect, DialectRegistry
from quarry.errors import CompilationError
from quarry.query.compiled import CompiledQuery
from quarry.schema.columncompiler import ColumnCompiler
from quarry.schema.tablecompiler import TableCompiler

if TYPE_CHECKING:
    from quarry.schema.columnbuilder import ColumnBuilder, ForeignKey
    from quarry.schema.tablebuilder import CheckConstraint

logger = structlog.get_logger(__name__)

SQLITE_CAPABILITIES = DialectCapabilities(
    quoting=IdentifierQuoting("`", "`"),
    paramstyle="qmark",
    locking=UnsupportedLocking(),
    json_path=JsonPathStyle("json_extract"),
    paging=LimitOffsetPaging(offset_only_limit="-1"),
    views=ViewCapabilities(create_or_replace="drop"),
    catalog=CatalogQueries(
        has_table="select * from sqlite_master where type = 'table' and name = ?",
        has_column="select * from pragma_table_info(?) where name = ?",
    ),
    default_keyword=False,
    ilike_operator="like",
    truncate="delete from {table}",
)

_CONSTRAINT_RE = re.compile(r"^(constraint|primary\s+key|foreign\s+key|unique|check)\b", re.IGNORECASE)
_NOT_NULL_RE = re.compile(r"\s+not\s+null\b", re.IGNORECASE)

Transform = Callable[[list[str]], list[str]]


# ---------------------------------------------------------------------------
# Stored DDL parsing
# ---------------------------------------------------------------------------


def split_definitions(create_sql: str) -> tuple[str, list[str], str]:
    """Split ``create table t (a, b, ...) suffix`` into head, items and suffix.

    Commas inside parentheses or quotes do not split.
    """
    start = create_sql.find("(")
    if start == -1:
        raise CompilationError(f"Cannot parse table definition: {create_sql}", clause="rebuild")
    items: list[str] = []
    depth = 0
    quote: str | None = None
    current = ""
    for index in range(start + 1, len(create_sql)):
        char = create_sql[index]
        if quote:
            current += char
            if char == quote:
                quote = None
            continue
        if char in "'\"`[":
            quote = "]" if char == "[" else char
        elif char == "(":
            depth += 1
        elif char == ")":
            if depth == 0:
                items.append(current.strip())
                return create_sql[:start], [item for item in items if item], create_sql[index + 1:]
            depth -= 1
        elif char == "," and depth == 0:
            items.append(current.strip())
            current = ""
            continue
        current += char
    raise CompilationError(f"Unbalanced table definition: {create_sql}", clause="rebuild")


def definition_name(item: str) -> str | None:
    """Column name of a column definition, or None for a table constraint."""
    if _CONSTRAINT_RE.match(item):
        return None
    if item[0] in "`\"[":
        close = "]" if item[0] == "[" else item[0]
        end = item.index(close, 1)
        return item[1:end]
    return item.split()[0]


def _value(row: Any, key: str, index: int) -> Any:
    return row[key] if isinstance(row, Mapping) else row[index]


class TableRebuild:
    """Output hook turning the catalog rows into rebuild statements.

    Args:
        table: Unqualified table name.
        quote: Identifier quoting function.
        transform: Rewrites the list of column/constraint definitions.
    """

    def __init__(self, table: str, quote: Callable[[str], str], transform: Transform) -> None:
        self.table = table
        self.quote = quote
        self.transform = transform

    def __call__(self, result: Any) -> list[CompiledQuery]:
        rows = getattr(result, "rows", result)
        create_sql = None
        indexes: list[str] = []
        for row in rows:
            if _value(row, "type", 0) == "table":
                create_sql = _value(row, "sql", 1)
            else:
                indexes.append(_value(row, "sql", 1))
        if create_sql is None:
            raise CompilationError(f"Table {self.table!r} not found for rebuild", clause="rebuild")

        _, old_items, suffix = split_definitions(create_sql)
        new_items = self.transform(list(old_items))
        old_columns = {definition_name(item) for item in old_items} - {None}
        columns = [
            name for name in (definition_name(item) for item in new_items)
            if name is not None and name in old_columns
        ]
        table = self.quote(self.table)
        temp = self.quote(f"_quarry_tmp_{self.table}")
        column_list = ", ".join(self.quote(name) for name in columns)
        statements = [
            f"create table {temp} ({', '.join(new_items)}){suffix}",
            f"insert into {temp} ({column_list}) select {column_list} from {table}",
            f"drop table {table}",
            f"alter table {temp} rename to {table}",
            *indexes,
        ]
        return [CompiledQuery(sql=sql, method="alter", dialect="sqlite3") for sql in statements]


# ---------------------------------------------------------------------------
# DDL compilers
# ---------------------------------------------------------------------------


class SQLiteColumnCompiler(ColumnCompiler):
    def type_json(self) -> str:
        return "json"

    def type_timestamp(self, use_tz: bool = True, precision: int | None = None) -> str:
        return "datetime"

    def check_regex(self, pattern: str, constraint_name: str | None = None) -> str:
        literal = self.client.capabilities.escape(pattern, None)
        return self._check(f"{self.wrapped_name} regexp {literal}", constraint_name)


class SQLiteTableCompiler(TableCompiler):
    inline_statements = ("primary", "foreign")

    def inline_constraints_sql(self) -> str:
        sql = ""
        for statement in self.table_builder.statements:
            if statement.method == "primary":
                columns, constraint_name = statement.args[0], statement.args[1]
                name = self.formatter.wrap(constraint_name or f"{self.table_name_raw}_pkey")
                sql += f", constraint {name} primary key ({self.formatter.columnize(columns)})"
            elif statement.method == "foreign":
                sql += f", {self.foreign_sql(statement.args[0])}"
        return sql

    def table_comment(self) -> None:
        if "comment" in self.single:
            logger.warning("schema.comment.unsupported", dialect=self.client.dialect_name, table=self.table_name_raw)

    def unique(
        self,
        columns: list[Any],
        index_name: str | None = None,
        deferrable: str | None = None,
        predicate: Any = None,
        **options: Any,
    ) -> None:
        if deferrable:
            raise self.unsupported("deferrable unique indexes")
        name = self.index_name("unique", columns, index_name)
        self.push_query(
            f"create unique index {name} on {self.table_name()} "
            f"({self.formatter.columnize(columns)}){self.predicate_sql(predicate)}"
        )

    def drop_unique(self, columns: list[Any], index_name: str | None = None) -> None:
        self.push_query(f"drop index {self.index_name('unique', columns, index_name)}")

    def drop_index(self, columns: list[Any], index_name: str | None = None) -> None:
        self.push_query(f"drop index {self.index_name('index', columns, index_name)}")

    # ------------------------------------------------------------------
    # Rebuild-backed operations
    # ------------------------------------------------------------------

    def rebuild(self, transform: Transform) -> None:
        table = self.capabilities.escape(self.table_name_raw, None)
        sql = (
            "SELECT type, sql FROM sqlite_master WHERE (type='table' OR (type='index' AND sql IS NOT NULL)) "
            f"AND tbl_name={table}"
        )
        quote = self.capabilities.quoting.quote
        self.push_query(sql, output=TableRebuild(self.table_name_raw, quote, transform))

    def alter_column(self, column: ColumnBuilder) -> None:
        definition = self.column_compiler(column).compile_column()
        self.rebuild(_replace_column(column.name, lambda _item: definition))

    def set_nullable(self, column: str) -> None:
        self.rebuild(_replace_column(column, lambda item: _NOT_NULL_RE.sub("", item)))

    def drop_nullable(self, column: str) -> None:
        self.rebuild(_replace_column(column, lambda item: item if _NOT_NULL_RE.search(item) else f"{item} not null"))

    def primary(self, columns: list[Any], constraint_name: str | None = None, deferrable: str | None = None) -> None:
        name = self.formatter.wrap(constraint_name or f"{self.table_name_raw}_pkey")
        constraint = f"constraint {name} primary key ({self.formatter.columnize(columns)})"
        self.rebuild(lambda items: [*items, constraint])

    def foreign(self, foreign: ForeignKey) -> None:
        constraint = self.foreign_sql(foreign)
        self.rebuild(lambda items: [*items, constraint])

    def check(self, check: CheckConstraint) -> None:
        constraint = self.check_sql(check)
        self.rebuild(lambda items: [*items, constraint])

    def drop_primary(self, constraint_name: str | None = None) -> None:
        self.rebuild(_drop_constraints(r"(constraint\s+\S+\s+)?primary\s+key\b"))

    def drop_foreign(self, columns: list[Any], key_name: str | None = None) -> None:
        name = key_name or f"{self.table_name_raw}_{'_'.join(str(c) for c in columns)}_foreign".lower()
        self.rebuild(_drop_constraints(rf"constraint\s+[`\"\[]?{re.escape(name)}[`\"\]]?\s+foreign\s+key\b"))

    def drop_checks(self, *names: str) -> None:
        for name in names:
            self.rebuild(_drop_constraints(rf"constraint\s+[`\"\[]?{re.escape(name)}[`\"\]]?\s+check\b"))


def _replace_column(column: str, rewrite: Callable[[str], str]) -> Transform:
    def transform(items: list[str]) -> list[str]:
        found = False
        result = []
        for item in items:
            if definition_name(item) == column:
                found = True
                item = rewrite(item)
            result.append(item)
        if not found:
            raise CompilationError(f"Column {column!r} not found for rebuild", clause="rebuild")
        return result

    return transform


def _drop_constraints(pattern: str) -> Transform:
    regex = re.compile(pattern, re.IGNORECASE)

    def transform(items: list[str]) -> list[str]:
        return [item for item in items if definition_name(item) is not None or not regex.match(item)]

    return transform


@DialectRegistry.register("sqlite3")
def sqlite() -> Dialect:
    return Dialect(
        "sqlite3",
        SQLITE_CAPABILITIES,
        table_compiler=SQLiteTableCompiler,
        column_compiler=SQLiteColumnCompiler,
    )
