"""Microsoft SQL Server dialect.

Parameter style: ``?`` (``qmark``) for ``pyodbc``; switch to ``atp``
(``@p1``) through ``ClientConfig.paramstyle`` for TDS drivers.  Identifiers
are bracketed, a bare limit becomes ``select top (?)``, ``returning``
becomes an ``output inserted.*`` clause and row locks are table hints.
Renames go through ``sp_rename`` with bound names.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

import structlog

from quarry.dialects.capabilities import (
    INFORMATION_SCHEMA,
    DialectCapabilities,
    IdentifierQuoting,
    JsonPathStyle,
    OffsetFetchPaging,
    OutputClause,
    TableHintLocking,
    UnsupportedConflict,
    ViewCapabilities,
)
from quarry.dialects.registry import Dialect, DialectRegistry
from quarry.escape import bit_escape
from quarry.schema.columncompiler import ColumnCompiler
from quarry.schema.compiler import SchemaCompiler
from quarry.schema.tablecompiler import TableCompiler
from quarry.schema.viewcompiler import ViewCompiler

if TYPE_CHECKING:
    from quarry.schema.columnbuilder import ColumnBuilder

logger = structlog.get_logger(__name__)

MSSQL_CAPABILITIES = DialectCapabilities(
    quoting=IdentifierQuoting("[", "]"),
    paramstyle="qmark",
    conflict=UnsupportedConflict(),
    returning=OutputClause(),
    locking=TableHintLocking(),
    json_path=JsonPathStyle("JSON_VALUE"),
    paging=OffsetFetchPaging(use_top=True, default_order="(select 0)"),
    views=ViewCapabilities(create_or_replace="or alter", rename_column=True),
    catalog=dataclasses.replace(INFORMATION_SCHEMA, schema_default="schema_name()"),
    ilike_operator="collate SQL_Latin1_General_CP1_CI_AS like",
    can_cancel_query=True,
    deferrable=False,
    truncate="truncate table {table}",
    begin_transaction="begin transaction",
    escape=bit_escape,
)


class MSSQLColumnCompiler(ColumnCompiler):
    modifiers = ("nullable", "default_to", "collate")

    def type_increments(self, primary_key: bool = True) -> str:
        return f"int identity(1,1) not null{' primary key' if primary_key else ''}"

    def type_big_increments(self, primary_key: bool = True) -> str:
        return f"bigint identity(1,1) not null{' primary key' if primary_key else ''}"

    def type_integer(self, length: int | None = None) -> str:
        return "int"

    def type_mediumint(self) -> str:
        return "int"

    def type_text(self, text_type: str | None = None) -> str:
        return "nvarchar(max)"

    def type_varchar(self, length: int = 255) -> str:
        return f"nvarchar({length})"

    def type_floating(self, precision: int | None = None, scale: int | None = None) -> str:
        return "float"

    def type_double(self, precision: int | None = None, scale: int | None = None) -> str:
        return "float"

    def type_bool(self) -> str:
        return "bit"

    def type_datetime(self, use_tz: bool = True, precision: int | None = None) -> str:
        base = "datetimeoffset" if use_tz else "datetime2"
        return f"{base}({precision})" if precision is not None else base

    type_timestamp = type_datetime

    def type_binary(self, length: int | None = None) -> str:
        return f"varbinary({length})" if length else "varbinary(max)"

    def type_enu(self, values: list[Any], use_native: bool = False, enum_name: str | None = None) -> str:
        return f"nvarchar(100) check ({self.wrapped_name} in ({self._literals(values)}))"

    def type_json(self) -> str:
        return "nvarchar(max)"

    def type_uuid(self, use_binary_uuid: bool = False) -> str:
        return "uniqueidentifier"

    def modifier_collate(self, collation: str) -> str:
        return f" collate {collation}"

    def length_function(self) -> str:
        return "len"


class MSSQLTableCompiler(TableCompiler):
    add_column_prefix = "add "

    def create_prefix(self) -> str:
        if self.table_builder.method == "create_if_not_exists":
            qualified = f"{self.schema_name}.{self.table_name_raw}" if self.schema_name else self.table_name_raw
            name = self.capabilities.escape(qualified, None)
            return f"if object_id({name}, 'U') is null create table {self.table_name()}"
        return f"create table {self.table_name()}"

    def create_table_like(self) -> None:
        like = self.qualified(self.table_builder.table_name_like, self.schema_name)
        self.push_query(f"select * into {self.table_name()} from {like} where 0=1")

    def table_comment(self) -> None:
        if "comment" in self.single:
            logger.warning("schema.comment.unsupported", dialect=self.client.dialect_name, table=self.table_name_raw)

    def alter_column(self, column: ColumnBuilder) -> None:
        compiler = self.column_compiler(column)
        name = compiler.wrapped_name
        sql = f"alter table {self.table_name()} alter column {name} {compiler.column_type()}"
        nullable = column.modifiers.get("nullable")
        if column.alters_nullable and nullable is not None:
            sql += compiler.modifier_nullable(*nullable)
        self.push_query(sql)
        default = compiler.default_value()
        if default is not None:
            self.push_query(f"alter table {self.table_name()} add default {default} for {name}")

    def rename_column(self, old: str, new: str) -> None:
        self.push_query(
            "exec sp_rename ?, ?, 'COLUMN'",
            bindings=(f"{self.table_name_raw}.{old}", new),
        )

    def set_nullable(self, column: str) -> None:
        raise self.unsupported("set_nullable", "without the column type, use alter()")

    def drop_nullable(self, column: str) -> None:
        raise self.unsupported("drop_nullable", "without the column type, use alter()")

    def drop_index(self, columns: list[Any], index_name: str | None = None) -> None:
        name = self.index_name("index", columns, index_name)
        self.push_query(f"drop index {name} on {self.table_name()}")


class MSSQLSchemaCompiler(SchemaCompiler):
    def rename_table(self, old: str, new: str) -> None:
        qualified = f"{self.schema}.{old}" if self.schema else old
        self.push_query("exec sp_rename ?, ?", bindings=(qualified, new), method="rename")

    rename_view = rename_table


class MSSQLViewCompiler(ViewCompiler):
    def rename_column(self, old: str, new: str) -> None:
        self.push_query(
            "exec sp_rename ?, ?, 'COLUMN'",
            bindings=(f"{self.view_builder.view_name}.{old}", new),
        )


@DialectRegistry.register("mssql")
def mssql() -> Dialect:
    return Dialect(
        "mssql",
        MSSQL_CAPABILITIES,
        schema_compiler=MSSQLSchemaCompiler,
        table_compiler=MSSQLTableCompiler,
        column_compiler=MSSQLColumnCompiler,
        view_compiler=MSSQLViewCompiler,
    )
