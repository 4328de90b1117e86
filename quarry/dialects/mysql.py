"""MySQL / MariaDB dialect.

Parameter style: ``%s`` (``format``) for ``mysqlclient`` and ``PyMySQL``.
Identifiers are quoted with backticks, strings are backslash-escaped, and
conflicts use ``insert ignore`` / ``on duplicate key update``.  Column and
table comments are rendered inline.
"""

from __future__ import annotations

import dataclasses
from typing import Any

from quarry.dialects.capabilities import (
    INFORMATION_SCHEMA,
    DialectCapabilities,
    ForClauseLocking,
    IdentifierQuoting,
    JsonPathStyle,
    LimitOffsetPaging,
    OnDuplicateKey,
    UnsupportedReturning,
    ViewCapabilities,
)
from quarry.dialects.registry import Dialect, DialectRegistry
from quarry.escape import default_escape
from quarry.query.model import LockMode
from quarry.schema.columnbuilder import ColumnBuilder
from quarry.schema.columncompiler import ColumnCompiler
from quarry.schema.compiler import SchemaCompiler
from quarry.schema.tablecompiler import TableCompiler

MYSQL_CAPABILITIES = DialectCapabilities(
    quoting=IdentifierQuoting("`", "`"),
    paramstyle="format",
    conflict=OnDuplicateKey(),
    returning=UnsupportedReturning(),
    locking=ForClauseLocking(modes=frozenset({LockMode.FOR_UPDATE, LockMode.FOR_SHARE})),
    json_path=JsonPathStyle("json_extract", unquote_function="json_unquote"),
    paging=LimitOffsetPaging(offset_only_limit="18446744073709551615"),
    views=ViewCapabilities(check_option=True),
    catalog=dataclasses.replace(INFORMATION_SCHEMA, schema_default="database()"),
    empty_insert="() values ()",
    ilike_operator="like",
    can_cancel_query=True,
    deferrable=False,
    escape=default_escape,
)

#: Rendered types that cannot carry a literal default.
_NO_DEFAULT_TYPES = ("text", "mediumtext", "longtext", "json", "blob")


class MySQLColumnCompiler(ColumnCompiler):
    modifiers = ("unsigned", "nullable", "default_to", "comment", "collate", "first", "after")

    def type_increments(self, primary_key: bool = True) -> str:
        return f"int unsigned not null auto_increment{' primary key' if primary_key else ''}"

    def type_big_increments(self, primary_key: bool = True) -> str:
        return f"bigint unsigned not null auto_increment{' primary key' if primary_key else ''}"

    def type_integer(self, length: int | None = None) -> str:
        return f"int({length})" if length else "int"

    def type_tinyint(self, length: int | None = None) -> str:
        return f"tinyint({length})" if length else "tinyint"

    def type_mediumint(self) -> str:
        return "mediumint"

    def type_text(self, text_type: str | None = None) -> str:
        if text_type in ("mediumtext", "longtext"):
            return text_type
        return "text"

    def type_floating(self, precision: int | None = None, scale: int | None = None) -> str:
        if precision is None:
            return "float"
        return f"float({precision}, {scale if scale is not None else 2})"

    def type_double(self, precision: int | None = None, scale: int | None = None) -> str:
        if precision is None:
            return "double"
        return f"double({precision}, {scale if scale is not None else 2})"

    def type_datetime(self, use_tz: bool = True, precision: int | None = None) -> str:
        return f"datetime({precision})" if precision is not None else "datetime"

    def type_timestamp(self, use_tz: bool = True, precision: int | None = None) -> str:
        return f"timestamp({precision})" if precision is not None else "timestamp"

    def type_binary(self, length: int | None = None) -> str:
        return f"varbinary({length})" if length else "blob"

    def type_enu(self, values: list[Any], use_native: bool = False, enum_name: str | None = None) -> str:
        return f"enum({self._literals(values)})"

    def type_json(self) -> str:
        return "json"

    def modifier_default_to(self, value: Any, options: dict[str, Any]) -> str:
        if self.column_type() in _NO_DEFAULT_TYPES:
            return ""
        return super().modifier_default_to(value, options)

    def modifier_comment(self, text: str) -> str:
        return f" comment {self.client.capabilities.escape(text, None)}"

    def modifier_collate(self, collation: str) -> str:
        return f" collate {self.client.capabilities.escape(collation, None)}"

    def check_regex(self, pattern: str, constraint_name: str | None = None) -> str:
        literal = self.client.capabilities.escape(pattern, None)
        return self._check(f"{self.wrapped_name} regexp {literal}", constraint_name)

    def length_function(self) -> str:
        return "char_length"


class MySQLTableCompiler(TableCompiler):
    add_column_prefix = "add "
    partial_indexes = False

    def create_table_like(self) -> None:
        like = self.qualified(self.table_builder.table_name_like, self.schema_name)
        self.push_query(f"create table {self.table_name()} like {like}")

    def table_options(self) -> str:
        sql = ""
        if "charset" in self.single:
            sql += f" default character set {self.single['charset']}"
        if "collate" in self.single:
            sql += f" collate {self.single['collate']}"
        if "engine" in self.single:
            sql += f" engine = {self.single['engine']}"
        if "comment" in self.single:
            sql += f" comment = {self.capabilities.escape(self.single['comment'], None)}"
        return sql

    def table_comment(self) -> None:
        if self.method == "alter" and "comment" in self.single:
            comment = self.capabilities.escape(self.single["comment"], None)
            self.push_query(f"alter table {self.table_name()} comment = {comment}")

    def alter_column(self, column: ColumnBuilder) -> None:
        compiler = self.column_compiler(column)
        self.push_query(f"alter table {self.table_name()} modify {compiler.compile_column()}")

    def set_nullable(self, column: str) -> None:
        raise self.unsupported("set_nullable", "without the column type, use alter()")

    def drop_nullable(self, column: str) -> None:
        raise self.unsupported("drop_nullable", "without the column type, use alter()")

    def index(
        self,
        columns: list[Any],
        index_name: str | None = None,
        index_type: str | None = None,
        predicate: Any = None,
        storage_engine_index_type: str | None = None,
        **options: Any,
    ) -> None:
        if predicate is not None:
            raise self.unsupported("partial indexes")
        name = self.index_name("index", columns, index_name)
        kind = f"{index_type} " if index_type else ""
        using = f" using {storage_engine_index_type}" if storage_engine_index_type else ""
        self.push_query(
            f"alter table {self.table_name()} add {kind}index {name}({self.formatter.columnize(columns)}){using}"
        )

    def unique(
        self,
        columns: list[Any],
        index_name: str | None = None,
        deferrable: str | None = None,
        **options: Any,
    ) -> None:
        self.deferrable_sql(deferrable)
        name = self.index_name("unique", columns, index_name)
        self.push_query(f"alter table {self.table_name()} add unique {name}({self.formatter.columnize(columns)})")

    def drop_index(self, columns: list[Any], index_name: str | None = None) -> None:
        name = self.index_name("index", columns, index_name)
        self.push_query(f"alter table {self.table_name()} drop index {name}")

    def drop_unique(self, columns: list[Any], index_name: str | None = None) -> None:
        name = self.index_name("unique", columns, index_name)
        self.push_query(f"alter table {self.table_name()} drop index {name}")

    def drop_primary(self, constraint_name: str | None = None) -> None:
        self.push_query(f"alter table {self.table_name()} drop primary key")

    def drop_foreign(self, columns: list[Any], key_name: str | None = None) -> None:
        name = self.index_name("foreign", columns, key_name)
        self.push_query(f"alter table {self.table_name()} drop foreign key {name}")

    def drop_checks(self, *names: str) -> None:
        for name in names:
            self.push_query(f"alter table {self.table_name()} drop check {self.formatter.wrap(name)}")


class MySQLSchemaCompiler(SchemaCompiler):
    def rename_table(self, old: str, new: str) -> None:
        self.push_query(
            f"rename table {self.qualified(old, self.schema)} to {self.formatter.wrap(new)}",
            method="rename",
        )

    rename_view = rename_table


@DialectRegistry.register("mysql", "mysql2")
def mysql() -> Dialect:
    return Dialect(
        "mysql",
        MYSQL_CAPABILITIES,
        schema_compiler=MySQLSchemaCompiler,
        table_compiler=MySQLTableCompiler,
        column_compiler=MySQLColumnCompiler,
    )
