"""PostgreSQL dialect.

Parameter style: ``%s`` (``format``), compatible with ``psycopg`` and
``psycopg2``.  The base table compiler already speaks Postgres DDL; this
module adds its column types, table options, schemas, extensions and
materialized-view refresh.
"""

from __future__ import annotations

from typing import Any

from quarry.dialects.capabilities import (
    BASE_OPERATORS,
    POSTGRES_OPERATORS,
    DialectCapabilities,
    JsonPathStyle,
    ViewCapabilities,
)
from quarry.dialects.registry import Dialect, DialectRegistry
from quarry.errors import ValidationError
from quarry.escape import postgres_escape
from quarry.schema.columncompiler import ColumnCompiler
from quarry.schema.compiler import SchemaCompiler
from quarry.schema.tablecompiler import TableCompiler

POSTGRES_CAPABILITIES = DialectCapabilities(
    paramstyle="format",
    json_path=JsonPathStyle("jsonb_extract_path", array_path=True, text_operator=" #>> '{}'"),
    views=ViewCapabilities(rename_column=True, default_to=True, check_option=True, materialized=True),
    operators=BASE_OPERATORS | POSTGRES_OPERATORS,
    can_cancel_query=True,
    native_nulls_ordering=True,
    supports_distinct_on=True,
    truncate="truncate {table} restart identity",
    escape=postgres_escape,
)


class PostgresColumnCompiler(ColumnCompiler):
    modifiers = ("nullable", "default_to", "comment", "collate")

    def type_increments(self, primary_key: bool = True) -> str:
        return "serial primary key" if primary_key else "serial"

    def type_big_increments(self, primary_key: bool = True) -> str:
        return "bigserial primary key" if primary_key else "bigserial"

    def type_tinyint(self, length: int | None = None) -> str:
        return "smallint"

    def type_datetime(self, use_tz: bool = True, precision: int | None = None) -> str:
        base = "timestamptz" if use_tz else "timestamp"
        return f"{base}({precision})" if precision is not None else base

    type_timestamp = type_datetime

    def type_binary(self, length: int | None = None) -> str:
        return "bytea"

    def type_enu(self, values: list[Any], use_native: bool = False, enum_name: str | None = None) -> str:
        if not use_native:
            return super().type_enu(values)
        if not enum_name:
            raise ValidationError("A native enum needs an enum_name", code="INVALID_COLUMN_TYPE")
        name = self.formatter.wrap(enum_name)
        self.table_compiler.unshift_query(f"create type {name} as enum ({self._literals(values)})")
        return name

    def type_json(self) -> str:
        return "json"

    def type_jsonb(self) -> str:
        return "jsonb"

    def type_uuid(self, use_binary_uuid: bool = False) -> str:
        return "uuid"

    def check_regex(self, pattern: str, constraint_name: str | None = None) -> str:
        literal = self.client.capabilities.escape(pattern, None)
        return self._check(f"{self.wrapped_name} ~ {literal}", constraint_name)


class PostgresTableCompiler(TableCompiler):
    def create_table_like(self) -> None:
        like = self.qualified(self.table_builder.table_name_like, self.schema_name)
        self.push_query(f"create table {self.table_name()} (like {like} including all)")

    def table_options(self) -> str:
        inherits = self.single.get("inherits")
        return f" inherits ({self.formatter.wrap(inherits)})" if inherits else ""

    def index_using(self, index_type: str | None) -> str:
        return f" using {index_type}" if index_type else ""


class PostgresSchemaCompiler(SchemaCompiler):
    def create_schema(self, name: str) -> None:
        self.push_query(f"create schema {self.formatter.wrap(name)}")

    def create_schema_if_not_exists(self, name: str) -> None:
        self.push_query(f"create schema if not exists {self.formatter.wrap(name)}")

    def drop_schema(self, name: str, cascade: bool = False) -> None:
        self._drop("schema", name, False, cascade)

    def drop_schema_if_exists(self, name: str, cascade: bool = False) -> None:
        self._drop("schema", name, True, cascade)

    def create_extension(self, name: str) -> None:
        self.push_query(f"create extension {self.formatter.wrap(name)}")

    def create_extension_if_not_exists(self, name: str) -> None:
        self.push_query(f"create extension if not exists {self.formatter.wrap(name)}")

    def drop_extension(self, name: str) -> None:
        self._drop("extension", name, False)

    def drop_extension_if_exists(self, name: str) -> None:
        self._drop("extension", name, True)

    def _drop(self, kind: str, name: str, if_exists: bool, cascade: bool = False) -> None:
        exists = "if exists " if if_exists else ""
        suffix = " cascade" if cascade else ""
        self.push_query(f"drop {kind} {exists}{self.formatter.wrap(name)}{suffix}", method="drop")

    def refresh_materialized_view(self, name: str, concurrently: bool = False) -> None:
        mode = "concurrently " if concurrently else ""
        self.push_query(f"refresh materialized view {mode}{self.qualified(name, self.schema)}", method="refresh")


@DialectRegistry.register("postgres")
def postgres() -> Dialect:
    return Dialect(
        "postgres",
        POSTGRES_CAPABILITIES,
        schema_compiler=PostgresSchemaCompiler,
        table_compiler=PostgresTableCompiler,
        column_compiler=PostgresColumnCompiler,
    )
