"""Window-function column entries (``row_number() over (...)``)."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class WindowTerm:
    column: Any
    direction: str | None = None


@dataclass
class Analytic:
    """``<function>() over (partition by ... order by ...) as alias``.

    Either pass ``order_by`` / ``partition_by`` up front or configure the
    instance in a callback::

        db("t").row_number("rn", lambda a: a.order_by("x", "desc").partition_by("g"))
    """

    function: str
    alias: str | None = None
    order: list[WindowTerm] = field(default_factory=list)
    partitions: list[WindowTerm] = field(default_factory=list)
    raw: Any = None

    def order_by(self, column: Any, direction: str | None = None) -> Analytic:
        self.order.extend(_terms(column, direction))
        return self

    def partition_by(self, column: Any, direction: str | None = None) -> Analytic:
        self.partitions.extend(_terms(column, direction))
        return self


def _terms(column: Any, direction: str | None) -> list[WindowTerm]:
    if isinstance(column, (list, tuple)):
        terms: list[WindowTerm] = []
        for item in column:
            if isinstance(item, dict):
                terms.append(WindowTerm(item["column"], item.get("order")))
            else:
                terms.append(WindowTerm(item))
        return terms
    return [WindowTerm(column, direction)]
