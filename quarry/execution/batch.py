"""Chunked batch insert.

::

    batch = db.batch_insert("events", rows, chunk_size=500).returning("id")
    batch.to_sql()             # one CompiledQuery per chunk
    await batch.run(runner)    # one transaction; flattened results of every chunk
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import structlog

from quarry.errors import ValidationError
from quarry.helpers import normalize_arr

if TYPE_CHECKING:
    from quarry.client import Client
    from quarry.execution.runner import Runner
    from quarry.query.builder import QueryBuilder
    from quarry.query.compiled import CompiledQuery

logger = structlog.get_logger(__name__)


class BatchInsert:
    """Splits ``rows`` into inserts of at most ``chunk_size`` rows.

    Args:
        client: Client compiling the inserts.
        table: Target table.
        rows: Row mappings.
        chunk_size: Maximum rows per statement.

    Raises:
        ValidationError: If ``chunk_size`` is not a positive integer or
            ``rows`` is not a sequence of mappings.
    """

    def __init__(self, client: Client, table: str, rows: Sequence[Mapping[str, Any]], chunk_size: int = 1000) -> None:
        if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
            raise ValidationError(f"Invalid chunkSize: {chunk_size}", code="INVALID_CHUNK_SIZE")
        if isinstance(rows, (str, bytes, Mapping)) or not isinstance(rows, Sequence):
            raise ValidationError(
                f"Invalid batch: Expected a sequence of rows, got {type(rows).__name__}",
                code="INVALID_BATCH",
            )
        if not all(isinstance(row, Mapping) for row in rows):
            raise ValidationError("Invalid batch: every row must be a mapping", code="INVALID_BATCH")
        self.client = client
        self.table = table
        self.rows = list(rows)
        self.chunk_size = chunk_size
        self._returning: list[Any] | None = None

    def returning(self, *columns: Any) -> BatchInsert:
        self._returning = normalize_arr(columns)
        return self

    def chunks(self) -> list[list[Mapping[str, Any]]]:
        return [self.rows[i:i + self.chunk_size] for i in range(0, len(self.rows), self.chunk_size)]

    def builders(self) -> list[QueryBuilder]:
        builders = []
        for chunk in self.chunks():
            builder = self.client.query_builder().table(self.table).insert(chunk)
            if self._returning:
                builder.returning(self._returning)
            builders.append(builder)
        return builders

    def to_sql(self) -> list[CompiledQuery]:
        return [builder.to_sql() for builder in self.builders()]

    async def run(self, runner: Runner) -> list[Any]:
        """Execute every chunk in one transaction and flatten the returned rows.

        A failing chunk rolls back the chunks before it.
        """
        compiled = self.to_sql()
        if not compiled:
            return []
        logger.debug(
            "batch.insert",
            table=self.table,
            rows=len(self.rows),
            chunks=len(compiled),
            chunk_size=self.chunk_size,
        )
        results: list[Any] = []
        async with runner.transaction() as trx:
            for query in compiled:
                result = await trx.run(query)
                rows = getattr(result, "rows", result)
                if isinstance(rows, list):
                    results.extend(rows)
                else:
                    results.append(rows)
        return results
