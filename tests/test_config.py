"""Unit tests for client configuration, the dialect registry and the client."""

from __future__ import annotations

import logging

import pydantic
import pytest
import structlog

from quarry import Quarry
from quarry.client import Client
from quarry.config import ClientConfig, resolve_config
from quarry.dialects.capabilities import DialectCapabilities
from quarry.dialects.registry import Dialect, DialectRegistry
from quarry.errors import CapabilityError, ConfigurationError


class TestResolveConfig:
    @pytest.mark.parametrize(
        ("value", "client"),
        [
            ("postgres", "postgres"),
            ("pg", "postgres"),
            ("PostgreSQL", "postgres"),
            ("sqlite", "sqlite3"),
            ("mariadb", "mysql"),
            ("oracle", "oracledb"),
            ("tedious", "mssql"),
        ],
    )
    def test_names_and_aliases(self, value, client):
        assert resolve_config(value).client == client

    def test_url(self):
        config = resolve_config("postgresql+psycopg://user@localhost/app")
        assert config.client == "postgres"
        assert config.connection == "postgresql+psycopg://user@localhost/app"

    def test_mapping(self):
        config = resolve_config({"client": "mysql", "connection": {"host": "db"}, "debug": True})
        assert config.client == "mysql"
        assert config.connection == {"host": "db"}
        assert config.debug is True

    def test_config_passthrough(self):
        config = ClientConfig(client="pg")
        assert resolve_config(config) is config

    @pytest.mark.parametrize("value", [None, {}, {"client": ""}])
    def test_missing_client(self, value):
        with pytest.raises(ConfigurationError) as exc:
            resolve_config(value)
        assert exc.value.option == "client"
        assert str(exc.value) == "Required configuration option 'client' is missing."

    def test_defaults(self):
        config = resolve_config("pg")
        assert config.acquire_connection_timeout == 60000
        assert config.use_null_as_default is False
        assert config.paramstyle is None
        assert config.search_path is None

    def test_search_path_string_is_split(self):
        assert resolve_config({"client": "pg", "search_path": "app, public"}).search_path == ["app", "public"]

    @pytest.mark.parametrize(
        "extra",
        [
            {"unknown_option": 1},
            {"acquire_connection_timeout": -1},
            {"paramstyle": "pyformat"},
            {"log_level": "debug"},
        ],
    )
    def test_invalid_fields(self, extra):
        with pytest.raises(pydantic.ValidationError):
            resolve_config({"client": "pg", **extra})


class TestRegistry:
    def test_unknown_target(self):
        with pytest.raises(ConfigurationError) as exc:
            Client({"client": "nope"})
        message = str(exc.value)
        assert message.startswith("Unsupported dialect target: 'nope'. Registered targets: [")
        assert "'postgres'" in message
        assert exc.value.option == "client"

    def test_registered_targets_sorted(self):
        targets = DialectRegistry.registered_targets()
        assert targets == sorted(targets)
        assert {"postgres", "mysql", "mysql2", "sqlite3", "mssql", "oracledb", "cockroachdb", "redshift"} <= set(
            targets
        )

    def test_alias_shares_descriptor(self):
        assert DialectRegistry.create("mysql2") is DialectRegistry.create("mysql")

    def test_register_class(self):
        dialect = Dialect("duckdb", DialectCapabilities(paramstyle="dollar"))
        DialectRegistry.register_class(dialect, "duck")
        try:
            db = Quarry("duck")
            assert db.client.dialect_name == "duckdb"
            assert db("t").where("a", 1).to_native().sql == 'select * from "t" where "a" = $1'
        finally:
            DialectRegistry._dialects.pop("duckdb", None)
            DialectRegistry._dialects.pop("duck", None)

    def test_register_decorator(self):
        @DialectRegistry.register("tiny", "tiny2")
        def tiny() -> Dialect:
            return Dialect("tiny", DialectCapabilities())

        try:
            assert DialectRegistry.create("tiny2").name == "tiny"
            assert callable(tiny)
        finally:
            DialectRegistry._dialects.pop("tiny", None)
            DialectRegistry._dialects.pop("tiny2", None)


class TestClient:
    def test_repr(self):
        assert repr(Client("pg")) == "Client(dialect='postgres')"

    def test_with_config_copies(self):
        client = Client("pg")
        dollar = client.with_config(paramstyle="dollar")
        assert dollar.position_bindings("a = ?") == "a = $1"
        assert client.position_bindings("a = ?") == "a = %s"
        assert client.config.paramstyle is None

    def test_search_path_used_for_catalog_checks(self):
        db = Quarry({"client": "pg", "search_path": "app,public"})
        assert db.schema.has_table("t").to_sql()[0].bindings == ("t", "app")

    def test_prep_bindings(self, ora, pg):
        assert ora.client.prep_bindings([True, False, 2]) == (1, 0, 2)
        assert pg.client.prep_bindings([True]) == (True,)

    def test_assert_can_cancel_query(self, pg, rs):
        pg.client.assert_can_cancel_query()
        with pytest.raises(CapabilityError) as exc:
            rs.client.assert_can_cancel_query()
        assert str(exc.value) == "Query cancelling not supported for this dialect"

    def test_post_process_response_hook(self):
        client = Client({"client": "pg", "post_process_response": lambda result, ctx: (result, ctx)})
        assert client.post_process_response([1], "ctx") == ([1], "ctx")
        assert Client("pg").post_process_response([1]) == [1]

    def test_format_query_time_zone(self, pg):
        from datetime import datetime, timezone

        value = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        assert pg.client.format_query("?", [value], time_zone="+02:00") == "'2024-01-01 14:00:00.000'"

    def test_creating_clients_leaves_logging_alone(self):
        quarry_logger = logging.getLogger("quarry")
        before = (list(quarry_logger.handlers), quarry_logger.level, structlog.is_configured())
        Client({"client": "pg", "debug": True})
        Client({"client": "mysql"})
        assert (list(quarry_logger.handlers), quarry_logger.level, structlog.is_configured()) == before
