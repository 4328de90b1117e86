"""Quarry – cross-dialect SQL statement builder and compiler.

Build the statement, let the dialect write the SQL.

Public API
----------
``Quarry``
    The entry object: ``db("users")`` starts a query, ``db.schema`` a
    schema change, ``db.raw`` / ``db.ref`` / ``db.fn`` build expressions.

``Runner``
    Executes compiled statements through application-supplied pool and
    driver collaborators.

Re-exported types
-----------------
``Client``, ``ClientConfig``, ``QueryBuilder``, ``CompiledQuery``,
``NativeQuery``, ``Raw``, ``Ref``, the dialect registry types, and all
error classes.

Extensibility
-------------
New dialects are registered through the registry::

    from quarry import Dialect, DialectRegistry, DialectCapabilities

    @DialectRegistry.register("duckdb")
    def duckdb() -> Dialect:
        return Dialect("duckdb", DialectCapabilities(paramstyle="qmark"))

After registration, ``Quarry({"client": "duckdb"})`` picks it up.
"""

from __future__ import annotations

from quarry.client import Client
from quarry.config import CLIENT_ALIASES, ClientConfig, resolve_config
from quarry.dialects.capabilities import DialectCapabilities
from quarry.dialects.registry import Dialect, DialectRegistry
from quarry.errors import (
    BindingError,
    CapabilityError,
    CompilationError,
    ConfigurationError,
    ExecutionError,
    InvalidOperatorError,
    QuarryError,
    QuarryTimeoutError,
    ValidationError,
)
from quarry.execution import (
    BatchInsert,
    ConnectionPool,
    Driver,
    QueryResult,
    Runner,
    SQLAlchemyDriver,
    SQLAlchemyPool,
    Transaction,
)
from quarry.facade import Quarry
from quarry.functions import FunctionHelper
from quarry.helpers import UNDEFINED
from quarry.log import configure_logging
from quarry.query.builder import QueryBuilder
from quarry.query.compiled import CompiledQuery, NativeQuery
from quarry.raw import Raw, Ref

# ---------------------------------------------------------------------------
# Register built-in dialects with DialectRegistry (on import)
# ---------------------------------------------------------------------------

from quarry.dialects import (  # noqa: F401
    cockroachdb,
    mssql,
    mysql,
    oracle,
    postgres,
    redshift,
    sqlite,
)

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "Quarry",
    "Client",
    "FunctionHelper",
    # Configuration
    "ClientConfig",
    "CLIENT_ALIASES",
    "resolve_config",
    "configure_logging",
    # Building and compiling
    "QueryBuilder",
    "CompiledQuery",
    "NativeQuery",
    "Raw",
    "Ref",
    "UNDEFINED",
    # Dialects
    "Dialect",
    "DialectCapabilities",
    "DialectRegistry",
    # Execution
    "Runner",
    "ConnectionPool",
    "Driver",
    "QueryResult",
    "BatchInsert",
    "SQLAlchemyDriver",
    "SQLAlchemyPool",
    "Transaction",
    # Errors
    "QuarryError",
    "ConfigurationError",
    "ValidationError",
    "InvalidOperatorError",
    "BindingError",
    "CapabilityError",
    "CompilationError",
    "ExecutionError",
    "QuarryTimeoutError",
]
