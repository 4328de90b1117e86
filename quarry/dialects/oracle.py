"""Oracle Database dialect (``oracledb``).

Parameter style: ``:1`` (``numeric``) for ``python-oracledb``.  Oracle has
no boolean bind type, so booleans are bound and inlined as ``1`` / ``0``;
aliases drop the ``as`` keyword; paging is SQL:2008 ``offset ... fetch``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from quarry.dialects.capabilities import (
    CatalogQueries,
    DialectCapabilities,
    ForClauseLocking,
    JsonPathStyle,
    OffsetFetchPaging,
    UnsupportedConflict,
    UnsupportedReturning,
)
from quarry.dialects.registry import Dialect, DialectRegistry
from quarry.escape import bit_escape
from quarry.query.model import LockMode
from quarry.schema.columncompiler import ColumnCompiler
from quarry.schema.compiler import SchemaCompiler
from quarry.schema.tablecompiler import TableCompiler

if TYPE_CHECKING:
    from quarry.schema.columnbuilder import ColumnBuilder

ORACLE_CAPABILITIES = DialectCapabilities(
    paramstyle="numeric",
    alias_keyword=" ",
    conflict=UnsupportedConflict(),
    returning=UnsupportedReturning(),
    locking=ForClauseLocking(modes=frozenset({LockMode.FOR_UPDATE}), lock_of_tables=False),
    json_path=JsonPathStyle("json_value"),
    paging=OffsetFetchPaging(),
    catalog=CatalogQueries(
        has_table="select table_name from all_tables where table_name = ? and owner = {schema}",
        has_column=(
            "select column_name from all_tab_columns where table_name = ? "
            "and column_name = ? and owner = {schema}"
        ),
        schema_default="sys_context('userenv', 'current_schema')",
    ),
    ilike_operator="like",
    booleans_as_integers=True,
    deferrable=False,
    truncate="truncate table {table}",
    begin_transaction=None,
    escape=bit_escape,
)


class OracleColumnCompiler(ColumnCompiler):
    # Oracle requires the default before the null constraint
    modifiers = ("default_to", "nullable", "comment")

    def type_increments(self, primary_key: bool = True) -> str:
        sql = "integer generated by default on null as identity"
        return f"{sql} primary key" if primary_key else sql

    def type_big_increments(self, primary_key: bool = True) -> str:
        sql = "number(20, 0) generated by default on null as identity"
        return f"{sql} primary key" if primary_key else sql

    def type_tinyint(self, length: int | None = None) -> str:
        return "smallint"

    def type_big_integer(self) -> str:
        return "number(20, 0)"

    def type_text(self, text_type: str | None = None) -> str:
        return "clob"

    def type_varchar(self, length: int = 255) -> str:
        return f"varchar2({length})"

    def type_floating(self, precision: int | None = None, scale: int | None = None) -> str:
        return "binary_float"

    def type_double(self, precision: int | None = None, scale: int | None = None) -> str:
        return "binary_double"

    def type_bool(self) -> str:
        return f"number(1, 0) check ({self.wrapped_name} in (0, 1))"

    def type_datetime(self, use_tz: bool = True, precision: int | None = None) -> str:
        base = f"timestamp({precision})" if precision is not None else "timestamp"
        return f"{base} with local time zone" if use_tz else base

    type_timestamp = type_datetime

    def type_time(self) -> str:
        return "timestamp with local time zone"

    def type_enu(self, values: list[Any], use_native: bool = False, enum_name: str | None = None) -> str:
        length = max((len(str(value)) for value in values), default=1)
        return f"varchar2({length}) check ({self.wrapped_name} in ({self._literals(values)}))"

    def type_json(self) -> str:
        return "clob"


class OracleTableCompiler(TableCompiler):
    partial_indexes = False

    def create_prefix(self) -> str:
        if self.table_builder.method == "create_if_not_exists":
            raise self.unsupported("create_table_if_not_exists")
        return super().create_prefix()

    def add_column(self, column: ColumnBuilder) -> None:
        compiler = self.column_compiler(column)
        self.push_query(f"alter table {self.table_name()} add ({compiler.compile_column()})")
        self.push_additional(compiler)

    def alter_column(self, column: ColumnBuilder) -> None:
        compiler = self.column_compiler(column)
        sql = f"{compiler.wrapped_name} {compiler.column_type()}"
        default = compiler.default_value()
        if default is not None:
            sql += f" default {default}"
        nullable = column.modifiers.get("nullable")
        if column.alters_nullable and nullable is not None:
            sql += " null" if nullable[0] else " not null"
        self.push_query(f"alter table {self.table_name()} modify ({sql})")

    def drop_column(self, *columns: str) -> None:
        self.push_query(f"alter table {self.table_name()} drop ({self.formatter.columnize(list(columns))})")

    def set_nullable(self, column: str) -> None:
        self.push_query(f"alter table {self.table_name()} modify ({self.formatter.wrap(column)} null)")

    def drop_nullable(self, column: str) -> None:
        self.push_query(f"alter table {self.table_name()} modify ({self.formatter.wrap(column)} not null)")


class OracleSchemaCompiler(SchemaCompiler):
    def rename_table(self, old: str, new: str) -> None:
        self.push_query(f"rename {self.qualified(old, self.schema)} to {self.formatter.wrap(new)}", method="rename")

    def drop_table_if_exists(self, name: str) -> None:
        # ORA-00942: table or view does not exist
        statement = f"drop table {self.qualified(name, self.schema)}".replace("'", "''")
        self.push_query(
            f"begin execute immediate '{statement}'; "
            "exception when others then if sqlcode != -942 then raise; end if; end;",
            method="drop",
        )


@DialectRegistry.register("oracledb")
def oracledb() -> Dialect:
    return Dialect(
        "oracledb",
        ORACLE_CAPABILITIES,
        schema_compiler=OracleSchemaCompiler,
        table_compiler=OracleTableCompiler,
        column_compiler=OracleColumnCompiler,
    )
