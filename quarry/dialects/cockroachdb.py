"""CockroachDB dialect: a delta over Postgres.

Differences: native ``upsert into``, ``json_extract_path`` instead of
``jsonb_extract_path``, no view check options, unique
constraints dropped through their backing index, and altering a column type
requires the experimental session flag, which is emitted before every
altered column.
"""

from __future__ import annotations

from typing import Any

from quarry.dialects.capabilities import JsonPathStyle, UpsertInto, ViewCapabilities
from quarry.dialects.postgres import (
    POSTGRES_CAPABILITIES,
    PostgresColumnCompiler,
    PostgresSchemaCompiler,
    PostgresTableCompiler,
)
from quarry.dialects.registry import Dialect, DialectRegistry

COCKROACHDB_CAPABILITIES = POSTGRES_CAPABILITIES.derive(
    upsert=UpsertInto(),
    json_path=JsonPathStyle("json_extract_path", array_path=True, text_operator=" #>> '{}'"),
    views=ViewCapabilities(materialized=True),
    truncate="truncate {table}",
    alter_column_prelude="SET enable_experimental_alter_column_type_general = true",
)


class CockroachTableCompiler(PostgresTableCompiler):
    def drop_unique(self, columns: list[Any], index_name: str | None = None) -> None:
        name = self.index_name("unique", columns, index_name)
        self.push_query(f"drop index {self.table_name()}@{name} cascade")


@DialectRegistry.register("cockroachdb")
def cockroachdb() -> Dialect:
    return Dialect(
        "cockroachdb",
        COCKROACHDB_CAPABILITIES,
        schema_compiler=PostgresSchemaCompiler,
        table_compiler=CockroachTableCompiler,
        column_compiler=PostgresColumnCompiler,
    )
