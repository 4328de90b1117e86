"""Dialect descriptors and their registry.

A :class:`Dialect` bundles a :class:`~quarry.dialects.capabilities.DialectCapabilities`
with the DDL compiler classes of one SQL family.  The query compiler is
shared by every dialect; everything that differs in DML is a capability.
DDL grammar differs too much for that, so each dialect may subclass the
schema, table, column and view compilers, at most one level below the base
(CockroachDB and Redshift derive from the Postgres classes).

Usage::

    from quarry.dialects.registry import DialectRegistry

    DialectRegistry.register_class(Dialect("duckdb", DUCKDB_CAPABILITIES))
    client = Client(ClientConfig(client="duckdb"))
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import ClassVar

from quarry.dialects.capabilities import DialectCapabilities
from quarry.errors import ConfigurationError
from quarry.query.compiler import QueryCompiler
from quarry.schema.columnbuilder import ColumnBuilder
from quarry.schema.columncompiler import ColumnCompiler
from quarry.schema.compiler import SchemaCompiler
from quarry.schema.tablecompiler import TableCompiler
from quarry.schema.viewcompiler import ViewCompiler

# ---------------------------------------------------------------------------
# Descriptor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Dialect:
    """Everything a client needs to compile for one SQL family.

    Attributes:
        name: Canonical client name (``"postgres"``, ``"sqlite3"`` ...).
        capabilities: DML decision points.
        query_compiler: Class compiling query builders.
        schema_compiler: Class compiling ``db.schema`` sequences.
        table_compiler: Class compiling create/alter table.
        column_compiler: Class rendering column definitions.
        view_compiler: Class compiling view DDL.
        column_builder: Class handed out by table column-type methods.
    """

    name: str
    capabilities: DialectCapabilities
    query_compiler: type[QueryCompiler] = QueryCompiler
    schema_compiler: type[SchemaCompiler] = SchemaCompiler
    table_compiler: type[TableCompiler] = TableCompiler
    column_compiler: type[ColumnCompiler] = ColumnCompiler
    view_compiler: type[ViewCompiler] = ViewCompiler
    column_builder: type[ColumnBuilder] = ColumnBuilder


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class DialectRegistry:
    """Registry mapping client names to :class:`Dialect` descriptors.

    Example::

        @DialectRegistry.register("mysql", "mysql2")
        def mysql() -> Dialect:
            return Dialect("mysql", MYSQL_CAPABILITIES, ...)

        dialect = DialectRegistry.create("mysql2")
    """

    _dialects: ClassVar[dict[str, Dialect]] = {}

    @classmethod
    def register(cls, *names: str) -> Callable[[Callable[[], Dialect]], Callable[[], Dialect]]:
        """Decorator registering the dialect returned by a factory under ``names``.

        Args:
            names: Client names (the first is usually the canonical one).

        Returns:
            A decorator that registers and returns the factory.
        """

        def decorator(factory: Callable[[], Dialect]) -> Callable[[], Dialect]:
            dialect = factory()
            for name in names or (dialect.name,):
                cls._dialects[name] = dialect
            return factory

        return decorator

    @classmethod
    def register_class(cls, dialect: Dialect, *aliases: str) -> None:
        """Register a dialect without using the decorator form."""
        for name in (dialect.name, *aliases):
            cls._dialects[name] = dialect

    @classmethod
    def create(cls, name: str) -> Dialect:
        """Return the dialect registered for ``name``.

        Raises:
            ConfigurationError: If no dialect is registered for ``name``.
        """
        dialect = cls._dialects.get(name)
        if dialect is None:
            raise ConfigurationError(
                f"Unsupported dialect target: '{name}'. Registered targets: {cls.registered_targets()}.",
                option="client",
            )
        return dialect

    @classmethod
    def registered_targets(cls) -> list[str]:
        """Return the sorted list of registered client names."""
        return sorted(cls._dialects)
