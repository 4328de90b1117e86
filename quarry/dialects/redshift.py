"""Amazon Redshift dialect: a delta over Postgres.

Redshift speaks the Postgres wire protocol but drops most of its write
extensions: no ``on conflict``, no ``returning``, no row locks, no
deferrable constraints and no secondary indexes.  Index requests are logged
and skipped instead of failing the whole migration.
"""

from __future__ import annotations

from typing import Any

import structlog

from quarry.dialects.capabilities import (
    JsonPathStyle,
    UnsupportedConflict,
    UnsupportedLocking,
    UnsupportedReturning,
    ViewCapabilities,
)
from quarry.dialects.postgres import (
    POSTGRES_CAPABILITIES,
    PostgresColumnCompiler,
    PostgresSchemaCompiler,
    PostgresTableCompiler,
)
from quarry.dialects.registry import Dialect, DialectRegistry
from quarry.schema.columnbuilder import ColumnBuilder

logger = structlog.get_logger(__name__)

REDSHIFT_CAPABILITIES = POSTGRES_CAPABILITIES.derive(
    conflict=UnsupportedConflict(),
    returning=UnsupportedReturning(),
    locking=UnsupportedLocking(),
    json_path=JsonPathStyle("json_extract_path_text", array_path=True),
    views=ViewCapabilities(materialized=True),
    supports_distinct_on=False,
    can_cancel_query=False,
    deferrable=False,
    truncate="truncate {table}",
)


class RedshiftColumnBuilder(ColumnBuilder):
    def primary(self, constraint_name: str | None = None) -> ColumnBuilder:
        # primary key columns must be not null
        self.not_nullable()
        return super().primary(constraint_name)


class RedshiftColumnCompiler(PostgresColumnCompiler):
    modifiers = ("nullable", "default_to", "comment")

    def type_increments(self, primary_key: bool = True) -> str:
        sql = "integer identity(1,1)"
        return f"{sql} primary key not null" if primary_key else f"{sql} not null"

    def type_big_increments(self, primary_key: bool = True) -> str:
        sql = "bigint identity(1,1)"
        return f"{sql} primary key not null" if primary_key else f"{sql} not null"

    def type_text(self, text_type: str | None = None) -> str:
        return "varchar(max)"

    def type_datetime(self, use_tz: bool = True, precision: int | None = None) -> str:
        return "timestamptz" if use_tz else "timestamp"

    type_timestamp = type_datetime

    def type_binary(self, length: int | None = None) -> str:
        return "varchar(max)"

    def type_enu(self, values: list[Any], use_native: bool = False, enum_name: str | None = None) -> str:
        return "varchar(255)"

    def type_json(self) -> str:
        return "varchar(max)"

    type_jsonb = type_json

    def type_uuid(self, use_binary_uuid: bool = False) -> str:
        return "char(36)"


class RedshiftTableCompiler(PostgresTableCompiler):
    partial_indexes = False

    def create_table_like(self) -> None:
        like = self.qualified(self.table_builder.table_name_like, self.schema_name)
        self.push_query(f"create table {self.table_name()} (like {like})")

    def table_options(self) -> str:
        return ""

    def index(self, columns: list[Any], index_name: str | None = None, **options: Any) -> None:
        logger.warning(
            "schema.index.unsupported",
            dialect=self.client.dialect_name,
            table=self.table_name_raw,
            columns=list(columns),
        )

    def alter_column(self, column: ColumnBuilder) -> None:
        compiler = self.column_compiler(column)
        self.push_query(
            f"alter table {self.table_name()} alter column {compiler.wrapped_name} type {compiler.column_type()}"
        )

    def set_nullable(self, column: str) -> None:
        raise self.unsupported("set_nullable")

    def drop_nullable(self, column: str) -> None:
        raise self.unsupported("drop_nullable")


@DialectRegistry.register("redshift")
def redshift() -> Dialect:
    return Dialect(
        "redshift",
        REDSHIFT_CAPABILITIES,
        schema_compiler=PostgresSchemaCompiler,
        table_compiler=RedshiftTableCompiler,
        column_compiler=RedshiftColumnCompiler,
        column_builder=RedshiftColumnBuilder,
    )
