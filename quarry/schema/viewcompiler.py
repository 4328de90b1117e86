"""View compiler: create / replace / materialize / alter a view."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from quarry.errors import CapabilityError, ValidationError
from quarry.raw import Raw
from quarry.schema.compiler import DDLCompiler

if TYPE_CHECKING:
    from quarry.client import Client
    from quarry.query.compiled import CompiledQuery
    from quarry.schema.viewbuilder import ViewBuilder

_CHECK_OPTIONS = {
    "default_option": " with check option",
    "local": " with local check option",
    "cascaded": " with cascaded check option",
}


class ViewCompiler(DDLCompiler):
    """Compiles one :class:`~quarry.schema.viewbuilder.ViewBuilder`."""

    def __init__(self, client: Client, view_builder: ViewBuilder) -> None:
        super().__init__(client)
        self.view_builder = view_builder
        self.method = "alter" if view_builder.method == "alter" else "create"

    def to_sql(self) -> list[CompiledQuery]:
        method = self.view_builder.method
        if method == "alter":
            for statement in self.view_builder.statements:
                getattr(self, statement.method)(*statement.args)
        elif method == "create_or_replace":
            self.create_or_replace()
        elif method == "create_materialized":
            if not self.capabilities.views.materialized:
                raise self.unsupported("materialized views")
            self.create_query(materialized=True)
        else:
            self.create_query()
        return self.sequence

    def view_name(self) -> str:
        return self.qualified(self.view_builder.view_name, self.view_builder.schema)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_or_replace(self) -> None:
        mode = self.capabilities.views.create_or_replace
        if mode == "drop":
            self.push_query(f"drop view if exists {self.view_name()}", method="drop")
            self.create_query()
        else:
            self.create_query(replace=mode)

    def create_query(self, materialized: bool = False, replace: str | None = None) -> None:
        select = self.view_builder.select_query
        if select is None:
            raise ValidationError("A view needs a query, set it with as_()", code="MISSING_VIEW_QUERY")
        sql = "create "
        if replace:
            sql += f"{replace} "
        if materialized:
            sql += "materialized "
        sql += f"view {self.view_name()}"
        if self.view_builder.column_names:
            sql += f" ({self.formatter.columnize(self.view_builder.column_names)})"
        sql += f" as {self.inline(select)}"
        kind = self.view_builder.check_option_kind
        if kind:
            sql += _CHECK_OPTIONS[kind]
        self.push_query(sql)

    # ------------------------------------------------------------------
    # Alter
    # ------------------------------------------------------------------

    def rename_column(self, old: str, new: str) -> None:
        if not self.capabilities.views.rename_column:
            raise CapabilityError(
                "rename column of views is not supported by this dialect.",
                feature="rename_column",
                dialect=self.client.dialect_name,
            )
        self.push_query(
            f"alter view {self.view_name()} rename {self.formatter.wrap(old)} to {self.formatter.wrap(new)}"
        )

    def default_to(self, column: str, value: Any) -> None:
        if not self.capabilities.views.default_to:
            raise CapabilityError(
                "change default values of views is not supported by this dialect.",
                feature="default_to",
                dialect=self.client.dialect_name,
            )
        default = self.inline(value) if isinstance(value, Raw) else self.capabilities.escape(value, None)
        self.push_query(
            f"alter view {self.view_name()} alter {self.formatter.wrap(column)} set default {default}"
        )
