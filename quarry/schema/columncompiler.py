"""Column compiler: renders one column definition.

A definition is ``<name> <type><modifiers><checks>``.  The type comes from
the method named after the (normalized) column type; each dialect subclass
overrides the types it spells differently and lists the modifiers it
understands in :attr:`ColumnCompiler.modifiers`.  Modifiers a dialect does
not list are ignored, the way ``unsigned`` means nothing outside MySQL.

Statements that cannot live inside the definition (Postgres column
comments, for one) are collected in :attr:`ColumnCompiler.additional` and
pushed by the table compiler right after the column.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from quarry.errors import ValidationError
from quarry.raw import Raw

if TYPE_CHECKING:
    from quarry.schema.columnbuilder import ColumnBuilder
    from quarry.schema.tablecompiler import TableCompiler

_CHECK_MODIFIERS = (
    "check_positive",
    "check_negative",
    "check_in",
    "check_not_in",
    "check_between",
    "check_length",
    "check_regex",
)


class ColumnCompiler:
    """Renders one :class:`~quarry.schema.columnbuilder.ColumnBuilder`.

    Args:
        table_compiler: The owning table compiler; supplies the formatter,
            the client and the table name.
        column: The column to render.
    """

    modifiers: tuple[str, ...] = ("nullable", "default_to")

    def __init__(self, table_compiler: TableCompiler, column: ColumnBuilder) -> None:
        self.table_compiler = table_compiler
        self.client = table_compiler.client
        self.column = column
        self.additional: list[str] = []

    @property
    def formatter(self) -> Any:
        return self.table_compiler.formatter

    @property
    def wrapped_name(self) -> str:
        return self.formatter.wrap(self.column.name)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def compile_column(self) -> str:
        return f"{self.wrapped_name} {self.column_type()}{self.modifiers_sql()}{self.checks_sql()}"

    def column_type(self) -> str:
        """Render the SQL type, or the explicit ``alter_type`` replacement."""
        if self.column.altered_type:
            return self.column.altered_type
        render = getattr(self, f"type_{self.column.type}", None)
        if render is None:
            raise ValidationError(
                f"Unknown column type {self.column.type!r}",
                code="INVALID_COLUMN_TYPE",
                details={"type": self.column.type},
            )
        return render(*self.column.args[1:])

    def modifiers_sql(self) -> str:
        sql = ""
        for name in self.modifiers:
            if name in self.column.modifiers:
                sql += getattr(self, f"modifier_{name}")(*self.column.modifiers[name])
        return sql

    def checks_sql(self) -> str:
        sql = ""
        for name in _CHECK_MODIFIERS:
            if name in self.column.modifiers:
                sql += getattr(self, name)(*self.column.modifiers[name])
        return sql

    def default_value(self) -> str | None:
        """The rendered default, or None when no default is set."""
        if "default_to" not in self.column.modifiers:
            return None
        value, _options = self.column.modifiers["default_to"]
        return self.format_default(value)

    def format_default(self, value: Any) -> str:
        if isinstance(value, Raw):
            return self.table_compiler.inline(value)
        if self.column.type in ("json", "jsonb") and isinstance(value, (dict, list)):
            value = json.dumps(value)
        return self.client.capabilities.escape(value, None)

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def type_increments(self, primary_key: bool = True) -> str:
        return "integer not null primary key autoincrement" if primary_key else "integer not null autoincrement"

    def type_big_increments(self, primary_key: bool = True) -> str:
        return self.type_increments(primary_key)

    def type_integer(self, length: int | None = None) -> str:
        return "integer"

    def type_tinyint(self, length: int | None = None) -> str:
        return "tinyint"

    def type_smallint(self) -> str:
        return "smallint"

    def type_mediumint(self) -> str:
        return "integer"

    def type_big_integer(self) -> str:
        return "bigint"

    def type_text(self, text_type: str | None = None) -> str:
        return "text"

    def type_varchar(self, length: int = 255) -> str:
        return f"varchar({_number(length, 255)})"

    def type_floating(self, precision: int | None = None, scale: int | None = None) -> str:
        return "real"

    def type_double(self, precision: int | None = None, scale: int | None = None) -> str:
        return "double precision"

    def type_decimal(self, precision: int | None = None, scale: int | None = None) -> str:
        if precision is None:
            return "decimal"
        return f"decimal({_number(precision, 8)}, {_number(scale, 2)})"

    def type_bool(self) -> str:
        return "boolean"

    def type_date(self) -> str:
        return "date"

    def type_datetime(self, use_tz: bool = True, precision: int | None = None) -> str:
        return "datetime"

    def type_time(self) -> str:
        return "time"

    def type_timestamp(self, use_tz: bool = True, precision: int | None = None) -> str:
        return "timestamp"

    def type_binary(self, length: int | None = None) -> str:
        return "blob"

    def type_enu(self, values: list[Any], use_native: bool = False, enum_name: str | None = None) -> str:
        return f"text check ({self.wrapped_name} in ({self._literals(values)}))"

    def type_json(self) -> str:
        return "text"

    def type_jsonb(self) -> str:
        return self.type_json()

    def type_uuid(self, use_binary_uuid: bool = False) -> str:
        return "binary(16)" if use_binary_uuid else "char(36)"

    def type_specific_type(self, column_type: str) -> str:
        return column_type

    # ------------------------------------------------------------------
    # Modifiers
    # ------------------------------------------------------------------

    def modifier_nullable(self, value: bool) -> str:
        return " null" if value else " not null"

    def modifier_default_to(self, value: Any, options: dict[str, Any]) -> str:
        return f" default {self.format_default(value)}"

    def modifier_comment(self, text: str) -> str:
        """``comment on column`` as a follow-up statement."""
        table = self.table_compiler.table_name()
        escaped = self.client.capabilities.escape(text, None)
        self.additional.append(f"comment on column {table}.{self.wrapped_name} is {escaped}")
        return ""

    def modifier_collate(self, collation: str) -> str:
        return f" collate {self.formatter.wrap(collation)}"

    def modifier_unsigned(self) -> str:
        return " unsigned"

    def modifier_first(self) -> str:
        return " first"

    def modifier_after(self, column: str) -> str:
        return f" after {self.formatter.wrap(column)}"

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check(self, predicate: str, constraint_name: str | None) -> str:
        name = f"constraint {self.formatter.wrap(constraint_name)} " if constraint_name else ""
        return f" {name}check ({predicate})"

    def check_positive(self, constraint_name: str | None = None) -> str:
        return self._check(f"{self.wrapped_name} > 0", constraint_name)

    def check_negative(self, constraint_name: str | None = None) -> str:
        return self._check(f"{self.wrapped_name} < 0", constraint_name)

    def check_in(self, values: list[Any], constraint_name: str | None = None) -> str:
        return self._check(f"{self.wrapped_name} in ({self._literals(values)})", constraint_name)

    def check_not_in(self, values: list[Any], constraint_name: str | None = None) -> str:
        return self._check(f"{self.wrapped_name} not in ({self._literals(values)})", constraint_name)

    def check_between(self, values: Any, constraint_name: str | None = None) -> str:
        ranges = values if values and isinstance(values[0], (list, tuple)) else [values]
        escape = self.client.capabilities.escape
        parts = []
        for low, high in ranges:
            parts.append(f"{self.wrapped_name} between {escape(low, None)} and {escape(high, None)}")
        return self._check(" or ".join(parts), constraint_name)

    def check_length(self, operator: str, length: int, constraint_name: str | None = None) -> str:
        op = self.formatter.operator(operator)
        return self._check(f"{self.length_function()}({self.wrapped_name}) {op} {_number(length, 0)}", constraint_name)

    def check_regex(self, pattern: str, constraint_name: str | None = None) -> str:
        raise self.table_compiler.unsupported("check_regex")

    def length_function(self) -> str:
        return "length"

    def _literals(self, values: list[Any]) -> str:
        escape = self.client.capabilities.escape
        return ", ".join(escape(value, None) for value in values)


def _number(value: Any, fallback: int) -> int:
    """Coerce a size argument, falling back for non-numeric input."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback
