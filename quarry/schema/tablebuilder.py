"""Table builder: the object handed to ``create_table`` / ``table`` callbacks.

::

    db.schema.create_table("users", lambda t: (
        t.increments("id"),
        t.string("email").not_nullable().unique(),
        t.timestamps(True, True),
    ))

Column-type methods return a :class:`~quarry.schema.columnbuilder.ColumnBuilder`;
index and constraint methods are recorded as table statements and rendered
after the columns.  Methods that only make sense on an existing table
(``rename_column``, ``drop_column`` ...) raise
:class:`~quarry.errors.ValidationError` inside ``create_table``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from quarry.errors import ValidationError
from quarry.helpers import normalize_arr
from quarry.schema.columnbuilder import ColumnBuilder, ForeignKey, ForeignKeyBuilder

if TYPE_CHECKING:
    from quarry.client import Client
    from quarry.query.compiled import CompiledQuery


@dataclass
class TableStatement:
    """An index, constraint or alter operation, rendered after the columns."""

    method: str
    args: tuple[Any, ...] = ()
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class CheckConstraint:
    predicate: Any
    bindings: Any = None
    name: str | None = None


class TableBuilder:
    """Collects one table's columns and statements.

    Args:
        client: Owning client.
        method: ``create``, ``create_if_not_exists``, ``create_like`` or ``alter``.
        table_name: Target table.
        fn: Callback receiving this builder; optional for ``create_like``.
        schema: Optional schema qualifying the table.
        table_name_like: Source table for ``create_like``.
    """

    def __init__(
        self,
        client: Client,
        method: str,
        table_name: str,
        fn: Callable[[TableBuilder], Any] | None = None,
        schema: str | None = None,
        table_name_like: str | None = None,
    ) -> None:
        if not isinstance(table_name, str):
            raise ValidationError("Table name must be a string", code="INVALID_TABLE")
        if fn is None and table_name_like is None:
            raise ValidationError(
                "A callback function must be supplied to calls against create_table and table",
                code="MISSING_CALLBACK",
            )
        self.client = client
        self.method = method
        self.table_name = table_name
        self.table_name_like = table_name_like
        self.schema = schema
        self.columns: list[ColumnBuilder] = []
        self.statements: list[TableStatement] = []
        self.checks: list[CheckConstraint] = []
        self.single: dict[str, Any] = {}
        self._fn = fn
        self._query_context: Any = None
        self._built = False

    def to_sql(self) -> list[CompiledQuery]:
        self.build()
        return self.client.table_compiler(self).to_sql()

    def build(self) -> None:
        """Run the callback once."""
        if not self._built and self._fn is not None:
            self._fn(self)
        self._built = True

    def query_context(self, context: Any = None) -> Any:
        if context is None:
            return self._query_context
        self._query_context = context
        return self

    # ------------------------------------------------------------------
    # Column types
    # ------------------------------------------------------------------

    def _column(self, column_type: str, *args: Any) -> ColumnBuilder:
        builder = self.client.column_builder(self, column_type, args)
        self.columns.append(builder)
        return builder

    def increments(self, name: str = "id", primary_key: bool = True) -> ColumnBuilder:
        return self._column("increments", name, primary_key)

    def big_increments(self, name: str = "id", primary_key: bool = True) -> ColumnBuilder:
        return self._column("big_increments", name, primary_key)

    def integer(self, name: str, length: int | None = None) -> ColumnBuilder:
        return self._column("integer", name, length)

    def tinyint(self, name: str, length: int | None = None) -> ColumnBuilder:
        return self._column("tinyint", name, length)

    def smallint(self, name: str) -> ColumnBuilder:
        return self._column("smallint", name)

    def mediumint(self, name: str) -> ColumnBuilder:
        return self._column("mediumint", name)

    def big_integer(self, name: str) -> ColumnBuilder:
        return self._column("bigint", name)

    bigint = big_integer

    def text(self, name: str, text_type: str | None = None) -> ColumnBuilder:
        return self._column("text", name, text_type)

    def string(self, name: str, length: int = 255) -> ColumnBuilder:
        return self._column("string", name, length)

    def float(self, name: str, precision: int = 8, scale: int = 2) -> ColumnBuilder:
        return self._column("float", name, precision, scale)

    def double(self, name: str, precision: int | None = None, scale: int | None = None) -> ColumnBuilder:
        return self._column("double", name, precision, scale)

    def decimal(self, name: str, precision: int | None = 8, scale: int = 2) -> ColumnBuilder:
        return self._column("decimal", name, precision, scale)

    def boolean(self, name: str) -> ColumnBuilder:
        return self._column("boolean", name)

    def date(self, name: str) -> ColumnBuilder:
        return self._column("date", name)

    def datetime(self, name: str, use_tz: bool = True, precision: int | None = None) -> ColumnBuilder:
        return self._column("datetime", name, use_tz, precision)

    def time(self, name: str) -> ColumnBuilder:
        return self._column("time", name)

    def timestamp(self, name: str, use_tz: bool = True, precision: int | None = None) -> ColumnBuilder:
        return self._column("timestamp", name, use_tz, precision)

    def binary(self, name: str, length: int | None = None) -> ColumnBuilder:
        return self._column("binary", name, length)

    def enu(self, name: str, values: list[Any], use_native: bool = False, enum_name: str | None = None) -> ColumnBuilder:
        return self._column("enum", name, list(values), use_native, enum_name)

    enum = enu

    def json(self, name: str) -> ColumnBuilder:
        return self._column("json", name)

    def jsonb(self, name: str) -> ColumnBuilder:
        return self._column("jsonb", name)

    def uuid(self, name: str, use_binary_uuid: bool = False) -> ColumnBuilder:
        return self._column("uuid", name, use_binary_uuid)

    def specific_type(self, name: str, column_type: str) -> ColumnBuilder:
        return self._column("specific_type", name, column_type)

    def timestamps(self, use_timestamps: bool = False, default_to_now: bool = False, use_camel_case: bool = False) -> None:
        """Add ``created_at`` / ``updated_at`` columns."""
        method = self.timestamp if use_timestamps else self.datetime
        created = method("createdAt" if use_camel_case else "created_at")
        updated = method("updatedAt" if use_camel_case else "updated_at")
        if default_to_now:
            now = self.client.raw("CURRENT_TIMESTAMP")
            created.not_nullable().default_to(now)
            updated.not_nullable().default_to(now)

    # ------------------------------------------------------------------
    # Indexes and constraints
    # ------------------------------------------------------------------

    def index(self, columns: Any, index_name: str | None = None, **options: Any) -> TableBuilder:
        self.statements.append(TableStatement("index", (_columns(columns), index_name), options))
        return self

    def unique(self, columns: Any, index_name: str | None = None, **options: Any) -> TableBuilder:
        self.statements.append(TableStatement("unique", (_columns(columns), index_name), options))
        return self

    def primary(self, columns: Any, constraint_name: str | None = None) -> TableBuilder:
        self.statements.append(TableStatement("primary", (_columns(columns), constraint_name)))
        return self

    def foreign(self, columns: Any, key_name: str | None = None) -> ForeignKeyBuilder:
        foreign = ForeignKey(column=_columns(columns), key_name=key_name)
        self.statements.append(TableStatement("foreign", (foreign,)))
        return ForeignKeyBuilder(self.client, foreign)

    def drop_index(self, columns: Any, index_name: str | None = None) -> TableBuilder:
        self.statements.append(TableStatement("drop_index", (_columns(columns), index_name)))
        return self

    def drop_unique(self, columns: Any, index_name: str | None = None) -> TableBuilder:
        self.statements.append(TableStatement("drop_unique", (_columns(columns), index_name)))
        return self

    def drop_primary(self, constraint_name: str | None = None) -> TableBuilder:
        self.statements.append(TableStatement("drop_primary", (constraint_name,)))
        return self

    def drop_foreign(self, columns: Any, key_name: str | None = None) -> TableBuilder:
        self.statements.append(TableStatement("drop_foreign", (_columns(columns), key_name)))
        return self

    def check(self, predicate: Any, bindings: Any = None, constraint_name: str | None = None) -> TableBuilder:
        check = CheckConstraint(predicate, bindings, constraint_name)
        if self.method == "alter":
            self.statements.append(TableStatement("check", (check,)))
        else:
            self.checks.append(check)
        return self

    # ------------------------------------------------------------------
    # Table options
    # ------------------------------------------------------------------

    def comment(self, value: str) -> TableBuilder:
        if not isinstance(value, str):
            raise ValidationError("Table comment must be string", code="INVALID_COMMENT")
        self.single["comment"] = value
        return self

    def engine(self, value: str) -> TableBuilder:
        return self._dialect_option("mysql", "engine", value)

    def charset(self, value: str) -> TableBuilder:
        return self._dialect_option("mysql", "charset", value)

    def collate(self, value: str) -> TableBuilder:
        return self._dialect_option("mysql", "collate", value)

    def inherits(self, value: str) -> TableBuilder:
        return self._dialect_option("postgres", "inherits", value)

    def _dialect_option(self, dialect: str, option: str, value: str) -> TableBuilder:
        if self.client.dialect_name != dialect:
            raise ValidationError(
                f"{option} is only supported with {dialect}.", code="UNSUPPORTED_OPTION"
            )
        if self.method == "alter":
            raise ValidationError(
                f"Altering the {option} outside of create table is not supported, use a raw statement.",
                code="UNSUPPORTED_OPTION",
            )
        self.single[option] = value
        return self

    # ------------------------------------------------------------------
    # Alter-only operations
    # ------------------------------------------------------------------

    def rename_column(self, old: str, new: str) -> TableBuilder:
        return self._alter_statement("rename_column", old, new)

    def drop_column(self, *columns: str) -> TableBuilder:
        return self._alter_statement("drop_column", *normalize_arr(columns))

    drop_columns = drop_column

    def drop_timestamps(self, use_camel_case: bool = False) -> TableBuilder:
        if use_camel_case:
            return self.drop_columns("createdAt", "updatedAt")
        return self.drop_columns("created_at", "updated_at")

    def set_nullable(self, column: str) -> TableBuilder:
        return self._alter_statement("set_nullable", column)

    def drop_nullable(self, column: str) -> TableBuilder:
        return self._alter_statement("drop_nullable", column)

    def drop_checks(self, *constraint_names: str) -> TableBuilder:
        return self._alter_statement("drop_checks", *normalize_arr(constraint_names))

    def _alter_statement(self, method: str, *args: Any) -> TableBuilder:
        if self.method != "alter":
            raise ValidationError(
                f"{method}() is only available when altering a table", code="INVALID_ALTER"
            )
        self.statements.append(TableStatement(method, args))
        return self


def _columns(columns: Any) -> list[Any]:
    return list(columns) if isinstance(columns, (list, tuple)) else [columns]
