"""User-facing entry object.

::

    from quarry import Quarry

    db = Quarry({"client": "pg"})
    db("users").where("id", 5).to_sql()
    db.schema.create_table("users", lambda t: t.increments())
    db.raw("select ?", [1])
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from quarry.client import Client
from quarry.execution.batch import BatchInsert
from quarry.functions import FunctionHelper
from quarry.raw import Raw, Ref

if TYPE_CHECKING:
    from quarry.config import ClientConfig
    from quarry.query.builder import QueryBuilder
    from quarry.schema.builder import SchemaBuilder


class Quarry:
    """Callable facade over a :class:`~quarry.client.Client`.

    Args:
        config: Anything :class:`~quarry.client.Client` accepts, or an
            existing client.
    """

    def __init__(self, config: Client | ClientConfig | Mapping[str, Any] | str) -> None:
        self.client = config if isinstance(config, Client) else Client(config)
        self.fn = FunctionHelper(self.client)

    def __call__(self, table: Any = None) -> QueryBuilder:
        """Start a query, on ``table`` if given."""
        builder = self.client.query_builder()
        return builder.table(table) if table is not None else builder

    def __repr__(self) -> str:
        return f"Quarry(client={self.client.dialect_name!r})"

    @property
    def schema(self) -> SchemaBuilder:
        """A fresh schema builder on every access."""
        return self.client.schema_builder()

    def query_builder(self) -> QueryBuilder:
        return self.client.query_builder()

    def raw(self, sql: str, bindings: Any = None) -> Raw:
        return self.client.raw(sql, bindings)

    def ref(self, ref: str) -> Ref:
        return Ref(self.client, ref)

    def batch_insert(self, table: str, rows: Sequence[Mapping[str, Any]], chunk_size: int = 1000) -> BatchInsert:
        return BatchInsert(self.client, table, rows, chunk_size)

    def without_processing(self) -> Quarry:
        """A facade whose identifiers and responses bypass the configured hooks.

        The current facade and its config are left untouched.
        """
        return type(self)(self.client.with_config(wrap_identifier=None, post_process_response=None))
