"""Column definitions and the foreign-key chain.

A :class:`ColumnBuilder` is returned by every column-type method of
:class:`~quarry.schema.tablebuilder.TableBuilder`; its modifiers are recorded
in call order and rendered by the dialect's column compiler::

    t.string("email", 320).not_nullable().unique()
    t.integer("user_id").references("users.id").on_delete("CASCADE")

Foreign keys
------------
``references`` / ``in_table`` (alias ``on``) / ``on_update`` / ``on_delete`` /
``with_key_name`` / ``deferrable`` all mutate one :class:`ForeignKey`
descriptor, so the chain may be written in any order.  ``deferrable`` raises
:class:`~quarry.errors.CapabilityError` on dialects without deferred
constraint checking.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from quarry.errors import CapabilityError, ValidationError

if TYPE_CHECKING:
    from quarry.client import Client
    from quarry.schema.tablebuilder import TableBuilder

#: Column type names normalized before compiler dispatch.
COLUMN_ALIASES: dict[str, str] = {
    "float": "floating",
    "enum": "enu",
    "boolean": "bool",
    "string": "varchar",
    "bigint": "big_integer",
}

_MODIFIER_ALIASES = {"default": "default_to", "defaults_to": "default_to"}


# ---------------------------------------------------------------------------
# Foreign keys
# ---------------------------------------------------------------------------


@dataclass
class ForeignKey:
    """One ``foreign key (...) references ...`` constraint."""

    column: Any
    key_name: str | None = None
    references: Any = None
    in_table: str | None = None
    on_update: str | None = None
    on_delete: str | None = None
    deferrable: str | None = None


class ForeignKeyBuilder:
    """Chainable handle over a :class:`ForeignKey` descriptor."""

    def __init__(self, client: Client, foreign: ForeignKey) -> None:
        self.client = client
        self.foreign = foreign

    def references(self, column: Any) -> ForeignKeyBuilder:
        """Set the referenced column; ``"table.column"`` also sets the table."""
        if isinstance(column, str) and "." in column:
            table, _, column = column.rpartition(".")
            self.foreign.in_table = table
        self.foreign.references = column
        return self

    def in_table(self, table: str) -> ForeignKeyBuilder:
        if not isinstance(table, str):
            raise ValidationError(
                f"Expected tableName to be a string, got: {type(table).__name__}",
                code="INVALID_TABLE",
            )
        self.foreign.in_table = table
        return self

    on = in_table

    def on_update(self, action: str) -> ForeignKeyBuilder:
        self.foreign.on_update = action
        return self

    def on_delete(self, action: str) -> ForeignKeyBuilder:
        self.foreign.on_delete = action
        return self

    def with_key_name(self, name: str) -> ForeignKeyBuilder:
        self.foreign.key_name = name
        return self

    def deferrable(self, kind: str) -> ForeignKeyBuilder:
        """Set ``deferrable initially <kind>`` (``deferred`` / ``immediate``).

        Raises:
            CapabilityError: If the dialect has no deferred constraints.
        """
        if not self.client.capabilities.deferrable:
            dialect = self.client.dialect_name
            raise CapabilityError(
                f"{dialect} does not support deferrable", feature="deferrable", dialect=dialect
            )
        self.foreign.deferrable = kind
        return self


# ---------------------------------------------------------------------------
# Column builder
# ---------------------------------------------------------------------------


class ColumnBuilder:
    """One column of a create/alter table statement.

    Args:
        client: Owning client.
        table_builder: The table this column belongs to.
        column_type: Requested type name (aliases are normalized).
        args: Positional arguments of the type method; ``args[0]`` is the
            column name.
    """

    def __init__(self, client: Client, table_builder: TableBuilder, column_type: str, args: tuple[Any, ...]) -> None:
        self.client = client
        self.table_builder = table_builder
        self.type = COLUMN_ALIASES.get(column_type, column_type)
        self.args = args
        self.method = "add"
        self.modifiers: dict[str, tuple[Any, ...]] = {}
        self.dropped = False
        self.altered_type: str | None = None
        self.alters_nullable = True
        self.alters_type = True
        self._foreign: ForeignKeyBuilder | None = None

    @property
    def name(self) -> Any:
        return self.args[0] if self.args else None

    @property
    def is_increments(self) -> bool:
        return "increments" in self.type

    # ------------------------------------------------------------------
    # Modifiers
    # ------------------------------------------------------------------

    def _modifier(self, key: str, *args: Any) -> ColumnBuilder:
        self.modifiers[_MODIFIER_ALIASES.get(key, key)] = args
        return self

    def nullable(self, value: bool = True) -> ColumnBuilder:
        return self._modifier("nullable", value)

    def not_nullable(self) -> ColumnBuilder:
        return self.nullable(False)

    not_null = not_nullable

    def default_to(self, value: Any, options: dict[str, Any] | None = None) -> ColumnBuilder:
        return self._modifier("default_to", value, options or {})

    default = default_to
    defaults_to = default_to

    def unsigned(self) -> ColumnBuilder:
        return self._modifier("unsigned")

    def first(self) -> ColumnBuilder:
        return self._modifier("first")

    def after(self, column: str) -> ColumnBuilder:
        return self._modifier("after", column)

    def comment(self, text: str) -> ColumnBuilder:
        if not isinstance(text, str):
            raise ValidationError("Column comment must be a string", code="INVALID_COMMENT")
        return self._modifier("comment", text)

    def collate(self, collation: str) -> ColumnBuilder:
        return self._modifier("collate", collation)

    # check constraints

    def check_positive(self, constraint_name: str | None = None) -> ColumnBuilder:
        return self._modifier("check_positive", constraint_name)

    def check_negative(self, constraint_name: str | None = None) -> ColumnBuilder:
        return self._modifier("check_negative", constraint_name)

    def check_in(self, values: list[Any], constraint_name: str | None = None) -> ColumnBuilder:
        return self._modifier("check_in", list(values), constraint_name)

    def check_not_in(self, values: list[Any], constraint_name: str | None = None) -> ColumnBuilder:
        return self._modifier("check_not_in", list(values), constraint_name)

    def check_between(self, values: Any, constraint_name: str | None = None) -> ColumnBuilder:
        """Accept ``[low, high]`` or a list of such ranges (ORed)."""
        return self._modifier("check_between", values, constraint_name)

    def check_length(self, operator: str, length: int, constraint_name: str | None = None) -> ColumnBuilder:
        return self._modifier("check_length", operator, length, constraint_name)

    def check_regex(self, pattern: str, constraint_name: str | None = None) -> ColumnBuilder:
        return self._modifier("check_regex", pattern, constraint_name)

    # ------------------------------------------------------------------
    # Index shortcuts (delegate to the table)
    # ------------------------------------------------------------------

    def index(self, index_name: str | None = None, **options: Any) -> ColumnBuilder:
        if not self.is_increments:
            self.table_builder.index(self.name, index_name, **options)
        return self

    def primary(self, constraint_name: str | None = None) -> ColumnBuilder:
        if not self.is_increments:
            self.table_builder.primary(self.name, constraint_name)
        return self

    def unique(self, index_name: str | None = None, **options: Any) -> ColumnBuilder:
        if not self.is_increments:
            self.table_builder.unique(self.name, index_name, **options)
        return self

    # ------------------------------------------------------------------
    # Foreign key chain
    # ------------------------------------------------------------------

    def references(self, column: Any) -> ColumnBuilder:
        self._foreign = self.table_builder.foreign(self.name)
        self._foreign.references(column)
        return self

    def in_table(self, table: str) -> ColumnBuilder:
        self._require_foreign("in_table").in_table(table)
        return self

    on = in_table

    def on_update(self, action: str) -> ColumnBuilder:
        self._require_foreign("on_update").on_update(action)
        return self

    def on_delete(self, action: str) -> ColumnBuilder:
        self._require_foreign("on_delete").on_delete(action)
        return self

    def with_key_name(self, name: str) -> ColumnBuilder:
        self._require_foreign("with_key_name").with_key_name(name)
        return self

    def deferrable(self, kind: str) -> ColumnBuilder:
        self._require_foreign("deferrable").deferrable(kind)
        return self

    def _require_foreign(self, method: str) -> ForeignKeyBuilder:
        if self._foreign is None:
            raise ValidationError(f"{method}() must follow references()", code="INVALID_FOREIGN")
        return self._foreign

    # ------------------------------------------------------------------
    # Alter mode
    # ------------------------------------------------------------------

    def drop(self) -> ColumnBuilder:
        self._require_alter("drop")
        self.dropped = True
        return self

    def alter_type(self, column_type: str) -> ColumnBuilder:
        self._require_alter("alter_type")
        self.altered_type = column_type
        return self

    def alter(self, alter_nullable: bool = True, alter_type: bool = True) -> ColumnBuilder:
        """Change this existing column instead of adding a new one."""
        self._require_alter("alter")
        self.method = "alter"
        self.alters_nullable = alter_nullable
        self.alters_type = alter_type
        return self

    def _require_alter(self, method: str) -> None:
        if self.table_builder.method != "alter":
            raise ValidationError(
                f"{method}() is only available when altering a table", code="INVALID_ALTER"
            )
