"""Schema builder: ``db.schema``.

Each call records one schema operation; nothing is rendered until
:meth:`SchemaBuilder.to_sql`, which returns the list of statements (one
operation may need several, e.g. a table plus its indexes)::

    db.schema.with_schema("app").create_table("users", lambda t: t.increments())
    db.schema.has_table("users").to_sql()[0].output   # decodes the catalog rows
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from quarry.client import Client
    from quarry.query.compiled import CompiledQuery


@dataclass
class SchemaOperation:
    method: str
    args: tuple[Any, ...]


class SchemaBuilder:
    """Records schema operations for the client's dialect.

    Args:
        client: Owning client.
    """

    def __init__(self, client: Client) -> None:
        self.client = client
        self.sequence: list[SchemaOperation] = []
        self.schema: str | None = None

    def _push(self, method: str, *args: Any) -> SchemaBuilder:
        self.sequence.append(SchemaOperation(method, args))
        return self

    def with_schema(self, schema: str) -> SchemaBuilder:
        self.schema = schema
        return self

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def create_table(self, name: str, fn: Callable[..., Any]) -> SchemaBuilder:
        return self._push("create_table", name, fn)

    def create_table_if_not_exists(self, name: str, fn: Callable[..., Any]) -> SchemaBuilder:
        return self._push("create_table_if_not_exists", name, fn)

    def create_table_like(self, name: str, like: str, fn: Callable[..., Any] | None = None) -> SchemaBuilder:
        return self._push("create_table_like", name, like, fn)

    def table(self, name: str, fn: Callable[..., Any]) -> SchemaBuilder:
        return self._push("alter_table", name, fn)

    alter_table = table

    def rename_table(self, old: str, new: str) -> SchemaBuilder:
        return self._push("rename_table", old, new)

    def drop_table(self, name: str) -> SchemaBuilder:
        return self._push("drop_table", name)

    def drop_table_if_exists(self, name: str) -> SchemaBuilder:
        return self._push("drop_table_if_exists", name)

    def has_table(self, name: str) -> SchemaBuilder:
        return self._push("has_table", name)

    def has_column(self, table: str, column: str) -> SchemaBuilder:
        return self._push("has_column", table, column)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def create_view(self, name: str, fn: Callable[..., Any]) -> SchemaBuilder:
        return self._push("create_view", name, fn)

    def create_view_or_replace(self, name: str, fn: Callable[..., Any]) -> SchemaBuilder:
        return self._push("create_view_or_replace", name, fn)

    def create_materialized_view(self, name: str, fn: Callable[..., Any]) -> SchemaBuilder:
        return self._push("create_materialized_view", name, fn)

    def refresh_materialized_view(self, name: str, concurrently: bool = False) -> SchemaBuilder:
        return self._push("refresh_materialized_view", name, concurrently)

    def drop_view(self, name: str) -> SchemaBuilder:
        return self._push("drop_view", name)

    def drop_view_if_exists(self, name: str) -> SchemaBuilder:
        return self._push("drop_view_if_exists", name)

    def drop_materialized_view(self, name: str) -> SchemaBuilder:
        return self._push("drop_materialized_view", name)

    def drop_materialized_view_if_exists(self, name: str) -> SchemaBuilder:
        return self._push("drop_materialized_view_if_exists", name)

    def rename_view(self, old: str, new: str) -> SchemaBuilder:
        return self._push("rename_view", old, new)

    def alter_view(self, name: str, fn: Callable[..., Any]) -> SchemaBuilder:
        return self._push("alter_view", name, fn)

    # ------------------------------------------------------------------
    # Schemas and extensions
    # ------------------------------------------------------------------

    def create_schema(self, name: str) -> SchemaBuilder:
        return self._push("create_schema", name)

    def create_schema_if_not_exists(self, name: str) -> SchemaBuilder:
        return self._push("create_schema_if_not_exists", name)

    def drop_schema(self, name: str, cascade: bool = False) -> SchemaBuilder:
        return self._push("drop_schema", name, cascade)

    def drop_schema_if_exists(self, name: str, cascade: bool = False) -> SchemaBuilder:
        return self._push("drop_schema_if_exists", name, cascade)

    def create_extension(self, name: str) -> SchemaBuilder:
        return self._push("create_extension", name)

    def create_extension_if_not_exists(self, name: str) -> SchemaBuilder:
        return self._push("create_extension_if_not_exists", name)

    def drop_extension(self, name: str) -> SchemaBuilder:
        return self._push("drop_extension", name)

    def drop_extension_if_exists(self, name: str) -> SchemaBuilder:
        return self._push("drop_extension_if_exists", name)

    def raw(self, sql: str, bindings: Any = None) -> SchemaBuilder:
        return self._push("raw", sql, bindings)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def to_sql(self) -> list[CompiledQuery]:
        return self.client.schema_compiler(self).to_sql()

    def to_query(self) -> str:
        return ";\n".join(
            self.client.format_query(query.sql, query.bindings) for query in self.to_sql()
        )

    def __str__(self) -> str:
        return self.to_query()
