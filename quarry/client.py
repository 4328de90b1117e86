"""Client: one configuration bound to one dialect.

The client is the factory every builder and compiler goes through.  It
owns no connection and no mutable compile state, so one client can serve
any number of concurrent compile passes::

    client = Client({"client": "pg"})
    client.query_builder().from_("users").where("id", 5).to_sql()

Dialect-specific behaviour is looked up once, at construction, from the
:class:`~quarry.dialects.registry.DialectRegistry`.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import structlog

from quarry.config import ClientConfig, resolve_config
from quarry.dialects.capabilities import position_bindings
from quarry.dialects.registry import DialectRegistry
from quarry.errors import CapabilityError
from quarry.formatter import Formatter
from quarry.query.builder import QueryBuilder
from quarry.query.compiled import CompiledQuery, NativeQuery
from quarry.raw import Raw
from quarry.schema.builder import SchemaBuilder

if TYPE_CHECKING:
    from quarry.dialects.capabilities import DialectCapabilities
    from quarry.dialects.registry import Dialect
    from quarry.query.compiler import QueryCompiler
    from quarry.schema.columnbuilder import ColumnBuilder
    from quarry.schema.columncompiler import ColumnCompiler
    from quarry.schema.compiler import SchemaCompiler
    from quarry.schema.tablebuilder import TableBuilder
    from quarry.schema.tablecompiler import TableCompiler
    from quarry.schema.viewbuilder import ViewBuilder
    from quarry.schema.viewcompiler import ViewCompiler

logger = structlog.get_logger(__name__)

_INLINE_PLACEHOLDER_RE = re.compile(r"\\\?|\?")


class Client:
    """Binds a :class:`~quarry.config.ClientConfig` to its dialect.

    Args:
        config: A config object, a mapping of its fields, a client name or
            a connection URL (see :func:`~quarry.config.resolve_config`).

    Raises:
        ConfigurationError: If the client is missing or not registered.
    """

    def __init__(self, config: ClientConfig | Mapping[str, Any] | str | None) -> None:
        self.config = resolve_config(config)
        self.dialect: Dialect = DialectRegistry.create(self.config.client)

    def __repr__(self) -> str:
        return f"Client(dialect={self.dialect_name!r})"

    @property
    def dialect_name(self) -> str:
        return self.dialect.name

    @property
    def capabilities(self) -> DialectCapabilities:
        return self.dialect.capabilities

    def with_config(self, **changes: Any) -> Client:
        """Return a new client over a copy of the config with ``changes`` applied."""
        return type(self)(self.config.model_copy(update=changes))

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    def formatter(self, bindings: list[Any] | None = None, query_context: Any = None) -> Formatter:
        return Formatter(self, bindings, query_context)

    def query_builder(self) -> QueryBuilder:
        return QueryBuilder(self)

    def query_compiler(
        self,
        builder: QueryBuilder,
        bindings: list[Any] | None = None,
        query_context: Any = None,
    ) -> QueryCompiler:
        return self.dialect.query_compiler(self, builder, bindings, query_context)

    def schema_builder(self) -> SchemaBuilder:
        return SchemaBuilder(self)

    def schema_compiler(self, builder: SchemaBuilder) -> SchemaCompiler:
        return self.dialect.schema_compiler(self, builder)

    def table_compiler(self, table_builder: TableBuilder) -> TableCompiler:
        return self.dialect.table_compiler(self, table_builder)

    def column_builder(self, table_builder: TableBuilder, column_type: str, args: tuple[Any, ...]) -> ColumnBuilder:
        return self.dialect.column_builder(self, table_builder, column_type, args)

    def column_compiler(self, table_compiler: TableCompiler, column: ColumnBuilder) -> ColumnCompiler:
        return self.dialect.column_compiler(table_compiler, column)

    def view_compiler(self, view_builder: ViewBuilder) -> ViewCompiler:
        return self.dialect.view_compiler(self, view_builder)

    def raw(self, sql: str, bindings: Any = None) -> Raw:
        return Raw(self).set(sql, bindings)

    # ------------------------------------------------------------------
    # Identifiers and values
    # ------------------------------------------------------------------

    def wrap_identifier(self, value: str, query_context: Any = None) -> str:
        """Quote one identifier segment, through the ``wrap_identifier`` hook if configured."""
        quote = self.capabilities.quoting.quote
        hook = self.config.wrap_identifier
        if hook is not None:
            return hook(value, quote, query_context)
        return quote(value)

    def format_query(self, sql: str, bindings: Sequence[Any] = (), time_zone: str | None = None) -> str:
        """Inline ``bindings`` into ``sql`` as escaped literals (debugging only).

        A ``\\?`` is emitted as a literal ``?`` and consumes no binding.
        """
        values = list(bindings or ())
        ctx = {"time_zone": time_zone} if time_zone else None
        escape = self.capabilities.escape
        index = 0

        def replace(match: re.Match[str]) -> str:
            nonlocal index
            if match.group(0) == "\\?":
                return "?"
            if index >= len(values):
                return "?"
            value = values[index]
            index += 1
            return escape(value, ctx)

        return _INLINE_PLACEHOLDER_RE.sub(replace, sql)

    def prep_bindings(self, bindings: Sequence[Any]) -> tuple[Any, ...]:
        if not self.capabilities.booleans_as_integers:
            return tuple(bindings)
        return tuple(int(value) if isinstance(value, bool) else value for value in bindings)

    def position_bindings(self, sql: str) -> str:
        """Rewrite ``?`` placeholders into the configured paramstyle."""
        return position_bindings(sql, self.config.paramstyle or self.capabilities.paramstyle)

    def to_native(self, compiled: CompiledQuery) -> NativeQuery:
        """Convert a compiled query into what the driver receives."""
        native = NativeQuery(
            sql=self.position_bindings(compiled.sql),
            bindings=self.prep_bindings(compiled.bindings),
        )
        if self.config.debug:
            logger.debug(
                "query.native",
                dialect=self.dialect_name,
                method=compiled.method,
                sql=native.sql,
                bindings=list(native.bindings),
            )
        return native

    # ------------------------------------------------------------------
    # Execution support
    # ------------------------------------------------------------------

    def post_process_response(self, result: Any, query_context: Any = None) -> Any:
        hook = self.config.post_process_response
        if hook is None:
            return result
        return hook(result, query_context)

    def assert_can_cancel_query(self) -> None:
        if not self.capabilities.can_cancel_query:
            raise CapabilityError(
                "Query cancelling not supported for this dialect",
                feature="cancel",
                dialect=self.dialect_name,
            )
