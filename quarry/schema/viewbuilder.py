"""View builder: the object handed to ``create_view`` / ``alter_view`` callbacks.

::

    db.schema.create_view("active_users", lambda v: (
        v.columns(["id", "email"]),
        v.as_(db("users").select("id", "email").where("active", True)),
    ))

    db.schema.alter_view("active_users", lambda v: v.column("email").rename("mail"))
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from quarry.errors import CapabilityError, ValidationError
from quarry.schema.tablebuilder import TableStatement

if TYPE_CHECKING:
    from quarry.client import Client
    from quarry.query.compiled import CompiledQuery

_CHECK_OPTION_MESSAGE = "check option definition is not supported by this dialect."


class ViewColumn:
    """Alter-mode handle returned by :meth:`ViewBuilder.column`."""

    def __init__(self, view: ViewBuilder, column: str) -> None:
        self._view = view
        self._column = column

    def rename(self, new_name: str) -> ViewColumn:
        self._view.statements.append(TableStatement("rename_column", (self._column, new_name)))
        return self

    def default_to(self, value: Any) -> ViewColumn:
        self._view.statements.append(TableStatement("default_to", (self._column, value)))
        return self


class ViewBuilder:
    """Collects one view definition or alteration.

    Args:
        client: Owning client.
        method: ``create``, ``create_or_replace``, ``create_materialized``
            or ``alter``.
        view_name: Target view.
        fn: Callback receiving this builder.
        schema: Optional schema qualifying the view.
    """

    def __init__(
        self,
        client: Client,
        method: str,
        view_name: str,
        fn: Callable[[ViewBuilder], Any],
        schema: str | None = None,
    ) -> None:
        if not callable(fn):
            raise ValidationError("A callback function must be supplied to view calls", code="MISSING_CALLBACK")
        self.client = client
        self.method = method
        self.view_name = view_name
        self.schema = schema
        self.column_names: list[Any] | None = None
        self.select_query: Any = None
        self.check_option_kind: str | None = None
        self.statements: list[TableStatement] = []
        self._fn = fn
        self._built = False

    def to_sql(self) -> list[CompiledQuery]:
        self.build()
        return self.client.view_compiler(self).to_sql()

    def build(self) -> None:
        if not self._built:
            self._fn(self)
        self._built = True

    def columns(self, columns: list[Any]) -> ViewBuilder:
        self.column_names = list(columns)
        return self

    def as_(self, query: Any) -> ViewBuilder:
        self.select_query = query
        return self

    def check_option(self) -> ViewBuilder:
        return self._check_option("default_option")

    def local_check_option(self) -> ViewBuilder:
        return self._check_option("local")

    def cascaded_check_option(self) -> ViewBuilder:
        return self._check_option("cascaded")

    def _check_option(self, kind: str) -> ViewBuilder:
        if not self.client.capabilities.views.check_option:
            raise CapabilityError(
                _CHECK_OPTION_MESSAGE, feature="check_option", dialect=self.client.dialect_name
            )
        self.check_option_kind = kind
        return self

    def column(self, column: str) -> ViewColumn:
        if self.method != "alter":
            raise ValidationError("column() is only available when altering a view", code="INVALID_ALTER")
        return ViewColumn(self, column)
