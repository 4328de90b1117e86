"""Execution layer: the async runner, its collaborator contracts and batch inserts."""

from quarry.execution.batch import BatchInsert
from quarry.execution.runner import ConnectionPool, Driver, QueryResult, Runner, Transaction
from quarry.execution.sqlalchemy_driver import SQLAlchemyDriver, SQLAlchemyPool

__all__ = [
    "BatchInsert",
    "ConnectionPool",
    "Driver",
    "QueryResult",
    "Runner",
    "SQLAlchemyDriver",
    "SQLAlchemyPool",
    "Transaction",
]
