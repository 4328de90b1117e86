"""Join clause builder.

A :class:`JoinClause` is the handle passed to a join callback::

    db("users").join("accounts", lambda j: j.on("accounts.id", "users.account_id")
                                             .or_on_val("accounts.kind", "admin"))

Its conditions reuse the predicate entries of :mod:`quarry.query.model`;
``on`` compares two columns, ``on_val`` compares a column with a bound value.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from quarry.helpers import NO_ARG
from quarry.query.model import (
    Predicate,
    WhereBasic,
    WhereBetween,
    WhereColumn,
    WhereExists,
    WhereIn,
    WhereNull,
    WhereRaw,
)
from quarry.raw import Raw


@dataclass
class OnWrapped(Predicate):
    """A parenthesized group built by a callback receiving a fresh JoinClause."""

    value: Any = None


@dataclass
class Using:
    columns: list[Any]


class JoinClause:
    """Conditions of one join.

    Args:
        table: Joined table name, alias mapping, builder or raw.
        join_type: ``inner``, ``left``, ``left outer``, ``right``,
            ``right outer``, ``full outer`` or ``cross``.
        schema: Optional schema qualifying ``table``.
    """

    def __init__(self, table: Any = None, join_type: str = "inner", schema: str | None = None) -> None:
        self.table = table
        self.join_type = join_type
        self.schema = schema
        self.clauses: list[Any] = []

    # ------------------------------------------------------------------
    # Column-to-column conditions
    # ------------------------------------------------------------------

    def on(self, first: Any, operator: Any = NO_ARG, second: Any = NO_ARG, *, bool_: str = "and") -> JoinClause:
        if callable(first) and not isinstance(first, Raw):
            self.clauses.append(OnWrapped(value=first, bool_=bool_))
            return self
        if isinstance(first, Mapping):
            pairs = list(first.items())

            def on_pairs(join: JoinClause) -> None:
                for column, other in pairs:
                    join.on(column, "=", other)

            self.clauses.append(OnWrapped(value=on_pairs, bool_=bool_))
            return self
        if isinstance(first, Raw) and operator is NO_ARG:
            self.clauses.append(WhereRaw(value=first, bool_=bool_))
            return self
        if second is NO_ARG:
            operator, second = "=", operator
        self.clauses.append(WhereColumn(column=first, operator=operator, value=second, bool_=bool_))
        return self

    def and_on(self, first: Any, operator: Any = NO_ARG, second: Any = NO_ARG) -> JoinClause:
        return self.on(first, operator, second)

    def or_on(self, first: Any, operator: Any = NO_ARG, second: Any = NO_ARG) -> JoinClause:
        return self.on(first, operator, second, bool_="or")

    # ------------------------------------------------------------------
    # Column-to-value conditions
    # ------------------------------------------------------------------

    def on_val(self, column: Any, operator: Any = NO_ARG, value: Any = NO_ARG, *, bool_: str = "and") -> JoinClause:
        if value is NO_ARG:
            operator, value = "=", operator
        self.clauses.append(WhereBasic(column=column, operator=operator, value=value, bool_=bool_))
        return self

    def and_on_val(self, column: Any, operator: Any = NO_ARG, value: Any = NO_ARG) -> JoinClause:
        return self.on_val(column, operator, value)

    def or_on_val(self, column: Any, operator: Any = NO_ARG, value: Any = NO_ARG) -> JoinClause:
        return self.on_val(column, operator, value, bool_="or")

    def on_in(self, column: Any, values: Any) -> JoinClause:
        self.clauses.append(WhereIn(column=column, values=values))
        return self

    def on_not_in(self, column: Any, values: Any) -> JoinClause:
        self.clauses.append(WhereIn(column=column, values=values, not_=True))
        return self

    def or_on_in(self, column: Any, values: Any) -> JoinClause:
        self.clauses.append(WhereIn(column=column, values=values, bool_="or"))
        return self

    def on_null(self, column: Any) -> JoinClause:
        self.clauses.append(WhereNull(column=column))
        return self

    def on_not_null(self, column: Any) -> JoinClause:
        self.clauses.append(WhereNull(column=column, not_=True))
        return self

    def or_on_null(self, column: Any) -> JoinClause:
        self.clauses.append(WhereNull(column=column, bool_="or"))
        return self

    def on_between(self, column: Any, values: tuple[Any, Any] | list[Any]) -> JoinClause:
        self.clauses.append(WhereBetween(column=column, values=tuple(values)))
        return self

    def on_not_between(self, column: Any, values: tuple[Any, Any] | list[Any]) -> JoinClause:
        self.clauses.append(WhereBetween(column=column, values=tuple(values), not_=True))
        return self

    def on_exists(self, query: Any) -> JoinClause:
        self.clauses.append(WhereExists(value=query))
        return self

    def on_not_exists(self, query: Any) -> JoinClause:
        self.clauses.append(WhereExists(value=query, not_=True))
        return self

    def using(self, *columns: Any) -> JoinClause:
        if len(columns) == 1 and isinstance(columns[0], (list, tuple)):
            columns = tuple(columns[0])
        self.clauses.append(Using(columns=list(columns)))
        return self
