"""Schema compilers: shared statement sequencing plus ``db.schema`` operations.

Every DDL compiler derives from :class:`DDLCompiler`, which owns the output
sequence.  One schema operation may emit several statements (a table and its
indexes, a drop-then-create view, a SQLite table rebuild), so DDL compiles
to a ``list[CompiledQuery]``.  A fresh formatter is started for every pushed
statement, so each statement carries only its own bindings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from quarry.dialects.capabilities import unsupported_error
from quarry.errors import CapabilityError
from quarry.formatter import is_deferred
from quarry.query.compiled import CompiledQuery
from quarry.raw import Raw
from quarry.schema.tablebuilder import TableBuilder
from quarry.schema.viewbuilder import ViewBuilder

if TYPE_CHECKING:
    from collections.abc import Callable

    from quarry.client import Client
    from quarry.schema.builder import SchemaBuilder


def has_rows(result: Any) -> bool:
    """Decode a catalog-check response."""
    rows = getattr(result, "rows", result)
    return bool(rows)


class DDLCompiler:
    """Statement sequence shared by the schema, table, column and view compilers."""

    method = "create"

    def __init__(self, client: Client) -> None:
        self.client = client
        self.capabilities = client.capabilities
        self.sequence: list[CompiledQuery] = []
        self.formatter = self.new_formatter()

    def new_formatter(self) -> Any:
        return self.client.formatter()

    def push_query(
        self,
        sql: str,
        bindings: tuple[Any, ...] | None = None,
        output: Callable[..., Any] | None = None,
        method: str | None = None,
    ) -> None:
        """Append a statement, taking the current formatter's bindings by default."""
        if not sql:
            return
        self.sequence.append(
            CompiledQuery(
                sql=sql,
                bindings=tuple(self.formatter.bindings) if bindings is None else tuple(bindings),
                method=method or self.method,
                output=output,
                dialect=self.client.dialect_name,
            )
        )
        self.formatter = self.new_formatter()

    def unshift_query(self, sql: str) -> None:
        """Insert a statement before everything pushed so far."""
        self.sequence.insert(0, CompiledQuery(sql=sql, method=self.method, dialect=self.client.dialect_name))

    def inline(self, value: Any, bindings: Any = None) -> str:
        """Render a builder, raw or SQL string with its bindings inlined as literals.

        DDL cannot take placeholders in most positions (view bodies, check
        predicates, defaults), so values are escaped by the dialect escaper.
        """
        if isinstance(value, str):
            value = Raw(self.client).set(value, bindings)
        elif is_deferred(value):
            builder = self.client.query_builder()
            value(builder)
            value = builder
        if isinstance(value, Raw):
            compiled = value.to_sql(self.client)
        else:
            compiled = self.client.query_compiler(value).to_sql()
        return self.client.format_query(compiled.sql, compiled.bindings)

    def unsupported(self, feature: str, detail: str | None = None) -> CapabilityError:
        return unsupported_error(self.client.dialect_name, feature, detail)

    def qualified(self, name: str, schema: str | None) -> str:
        return self.formatter.wrap(f"{schema}.{name}" if schema else name)


class SchemaCompiler(DDLCompiler):
    """Compiles a :class:`~quarry.schema.builder.SchemaBuilder` sequence."""

    def __init__(self, client: Client, builder: SchemaBuilder) -> None:
        super().__init__(client)
        self.builder = builder
        self.schema = builder.schema

    def to_sql(self) -> list[CompiledQuery]:
        for operation in self.builder.sequence:
            getattr(self, operation.method)(*operation.args)
        return self.sequence

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _table(self, method: str, name: str, fn: Any, like: str | None = None) -> None:
        builder = TableBuilder(self.client, method, name, fn, schema=self.schema, table_name_like=like)
        self.sequence.extend(builder.to_sql())

    def create_table(self, name: str, fn: Any) -> None:
        self._table("create", name, fn)

    def create_table_if_not_exists(self, name: str, fn: Any) -> None:
        self._table("create_if_not_exists", name, fn)

    def create_table_like(self, name: str, like: str, fn: Any) -> None:
        self._table("create_like", name, fn, like)

    def alter_table(self, name: str, fn: Any) -> None:
        self._table("alter", name, fn)

    def rename_table(self, old: str, new: str) -> None:
        self.push_query(
            f"alter table {self.qualified(old, self.schema)} rename to {self.formatter.wrap(new)}",
            method="rename",
        )

    def drop_table(self, name: str) -> None:
        self.push_query(f"drop table {self.qualified(name, self.schema)}", method="drop")

    def drop_table_if_exists(self, name: str) -> None:
        self.push_query(f"drop table if exists {self.qualified(name, self.schema)}", method="drop")

    def has_table(self, name: str) -> None:
        self._catalog_check(self.capabilities.catalog.has_table, [name])

    def has_column(self, table: str, column: str) -> None:
        self._catalog_check(self.capabilities.catalog.has_column, [table, column])

    def _catalog_check(self, template: str, bindings: list[Any]) -> None:
        schema_sql = ""
        if "{schema}" in template:
            search_path = self.client.config.search_path
            schema = self.schema or (search_path[0] if search_path else None)
            if schema:
                schema_sql = "?"
                bindings.append(schema)
            else:
                schema_sql = self.capabilities.catalog.schema_default
        self.push_query(
            template.format(schema=schema_sql),
            bindings=tuple(bindings),
            output=has_rows,
            method="select",
        )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def _view(self, method: str, name: str, fn: Any) -> None:
        self.sequence.extend(ViewBuilder(self.client, method, name, fn, schema=self.schema).to_sql())

    def create_view(self, name: str, fn: Any) -> None:
        self._view("create", name, fn)

    def create_view_or_replace(self, name: str, fn: Any) -> None:
        self._view("create_or_replace", name, fn)

    def create_materialized_view(self, name: str, fn: Any) -> None:
        self._view("create_materialized", name, fn)

    def alter_view(self, name: str, fn: Any) -> None:
        self._view("alter", name, fn)

    def refresh_materialized_view(self, name: str, concurrently: bool = False) -> None:
        raise self.unsupported("refresh_materialized_view")

    def drop_view(self, name: str) -> None:
        self._drop_view(name, if_exists=False, materialized=False)

    def drop_view_if_exists(self, name: str) -> None:
        self._drop_view(name, if_exists=True, materialized=False)

    def drop_materialized_view(self, name: str) -> None:
        self._drop_view(name, if_exists=False, materialized=True)

    def drop_materialized_view_if_exists(self, name: str) -> None:
        self._drop_view(name, if_exists=True, materialized=True)

    def _drop_view(self, name: str, if_exists: bool, materialized: bool) -> None:
        if materialized and not self.capabilities.views.materialized:
            raise self.unsupported("materialized views")
        kind = "materialized view" if materialized else "view"
        exists = "if exists " if if_exists else ""
        self.push_query(f"drop {kind} {exists}{self.qualified(name, self.schema)}", method="drop")

    def rename_view(self, old: str, new: str) -> None:
        self.push_query(
            f"alter view {self.qualified(old, self.schema)} rename to {self.formatter.wrap(new)}",
            method="rename",
        )

    # ------------------------------------------------------------------
    # Schemas, extensions and raw statements
    # ------------------------------------------------------------------

    def create_schema(self, name: str) -> None:
        raise self.unsupported("create_schema")

    def create_schema_if_not_exists(self, name: str) -> None:
        raise self.unsupported("create_schema")

    def drop_schema(self, name: str, cascade: bool = False) -> None:
        raise self.unsupported("drop_schema")

    def drop_schema_if_exists(self, name: str, cascade: bool = False) -> None:
        raise self.unsupported("drop_schema")

    def create_extension(self, name: str) -> None:
        raise self.unsupported("create_extension")

    def create_extension_if_not_exists(self, name: str) -> None:
        raise self.unsupported("create_extension")

    def drop_extension(self, name: str) -> None:
        raise self.unsupported("drop_extension")

    def drop_extension_if_exists(self, name: str) -> None:
        raise self.unsupported("drop_extension")

    def raw(self, sql: str, bindings: Any = None) -> None:
        compiled = Raw(self.client).set(sql, bindings).to_sql()
        self.push_query(compiled.sql, bindings=compiled.bindings, method="raw")
