"""Shared pytest fixtures for Quarry unit and integration tests."""
from __future__ import annotations

import pytest

from quarry import Quarry

ALL_DIALECTS = ["postgres", "cockroachdb", "redshift", "mysql", "sqlite3", "mssql", "oracledb"]


@pytest.fixture(scope="session")
def pg() -> Quarry:
    return Quarry("pg")


@pytest.fixture(scope="session")
def my() -> Quarry:
    return Quarry("mysql")


@pytest.fixture(scope="session")
def sq() -> Quarry:
    return Quarry("sqlite3")


@pytest.fixture(scope="session")
def ms() -> Quarry:
    return Quarry("mssql")


@pytest.fixture(scope="session")
def ora() -> Quarry:
    return Quarry("oracledb")


@pytest.fixture(scope="session")
def crdb() -> Quarry:
    return Quarry("cockroachdb")


@pytest.fixture(scope="session")
def rs() -> Quarry:
    return Quarry("redshift")


@pytest.fixture(params=ALL_DIALECTS)
def any_db(request: pytest.FixtureRequest) -> Quarry:
    """Every built-in dialect in turn."""
    return Quarry(request.param)
