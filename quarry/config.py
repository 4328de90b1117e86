"""Client configuration.

:class:`ClientConfig` is a pydantic model; :func:`resolve_config` accepts the
forms applications actually pass around and returns a validated config::

    resolve_config("postgres")                               # dialect name only
    resolve_config({"client": "pg", "connection": {...}})    # mapping
    resolve_config("postgresql://user@host/db")              # connection URL

Client aliases (``pg``, ``postgresql``, ``sqlite``, ``mariadb`` ...) are
normalized to the registered dialect name.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

from quarry.errors import ConfigurationError

#: Alternative client names accepted in configuration.
CLIENT_ALIASES: Mapping[str, str] = {
    "pg": "postgres",
    "postgresql": "postgres",
    "pgnative": "postgres",
    "sqlite": "sqlite3",
    "better-sqlite3": "sqlite3",
    "mariadb": "mysql",
    "oracle": "oracledb",
    "tedious": "mssql",
}

Paramstyle = Literal["qmark", "numeric", "format", "dollar", "atp"]


class ClientConfig(BaseModel):
    """Validated configuration for one client.

    Attributes:
        client: Dialect name (aliases are normalized).
        version: Server version string, informational.
        connection: Driver connection settings or URL, passed through to
            the pool collaborator.
        search_path: Schemas for ``has_table`` / ``has_column`` when no
            schema is set; the first entry is used.
        use_null_as_default: Fill keys missing from multi-row inserts with
            ``NULL`` instead of ``DEFAULT``.
        paramstyle: Overrides the dialect's native placeholder style.
        wrap_identifier: ``(value, orig_impl, query_context) -> str`` hook
            replacing per-segment identifier quoting.
        post_process_response: ``(result, query_context) -> result`` hook
            applied by the runner.
        acquire_connection_timeout: Pool acquire timeout in milliseconds.
        debug: Log every compiled query at debug level.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    client: str
    version: str | None = None
    connection: dict[str, Any] | str | None = None
    search_path: list[str] | None = None
    use_null_as_default: bool = False
    paramstyle: Paramstyle | None = None
    wrap_identifier: Callable[..., str] | None = None
    post_process_response: Callable[..., Any] | None = None
    acquire_connection_timeout: int = Field(default=60000, ge=0)
    debug: bool = False

    @field_validator("client")
    @classmethod
    def _normalize_client(cls, value: str) -> str:
        name = value.strip().lower()
        return CLIENT_ALIASES.get(name, name)

    @field_validator("search_path", mode="before")
    @classmethod
    def _split_search_path(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


def resolve_config(config: ClientConfig | Mapping[str, Any] | str | None) -> ClientConfig:
    """Build a :class:`ClientConfig` from any accepted form.

    Args:
        config: A config object, a mapping of its fields, a dialect name, or
            a connection URL whose scheme names the dialect.

    Returns:
        The validated configuration.

    Raises:
        ConfigurationError: If no client can be determined.
    """
    if isinstance(config, ClientConfig):
        return config
    if config is None:
        raise ConfigurationError("Required configuration option 'client' is missing.", option="client")
    if isinstance(config, str):
        if "://" in config:
            scheme = urlsplit(config).scheme.split("+", 1)[0]
            return ClientConfig(client=scheme, connection=config)
        return ClientConfig(client=config)
    if not config.get("client"):
        raise ConfigurationError("Required configuration option 'client' is missing.", option="client")
    return ClientConfig(**dict(config))
