"""Statement model: the builder's accumulated, grouped clause state.

A :class:`StatementModel` holds

* ``method`` – which compiler entry point runs (``select``, ``insert`` ...),
* ``clauses`` – a mapping from :class:`Grouping` to an ordered list of clause
  entries (insertion order within a grouping is significant; the order
  *between* groupings is fixed by the compiler),
* single properties – at-most-one-per-statement facts such as the target
  table, limit/offset, lock mode and returning columns.

Clause entries are a closed set of dataclasses.  A value held by an entry
may be a plain value, a nested ``QueryBuilder``, a :class:`~quarry.raw.Raw`
or a callable evaluated against a fresh sub-builder at compile time.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Grouping(str, Enum):
    """Clause kinds held in :attr:`StatementModel.clauses`."""

    WITH = "with"
    COLUMNS = "columns"
    JOIN = "join"
    WHERE = "where"
    UNION = "union"
    GROUP = "group"
    ORDER = "order"
    HAVING = "having"


class LockMode(str, Enum):
    FOR_SHARE = "for_share"
    FOR_UPDATE = "for_update"
    FOR_NO_KEY_UPDATE = "for_no_key_update"
    FOR_KEY_SHARE = "for_key_share"


class WaitMode(str, Enum):
    SKIP_LOCKED = "skip_locked"
    NO_WAIT = "no_wait"


# ---------------------------------------------------------------------------
# Column entries
# ---------------------------------------------------------------------------


@dataclass
class Columns:
    """Plain projection list."""

    values: list[Any]
    distinct: bool = False
    distinct_on: bool = False


@dataclass
class Aggregate:
    """``count`` / ``min`` / ``max`` / ``sum`` / ``avg`` over a column."""

    function: str
    value: Any
    distinct: bool = False
    alias: str | None = None


@dataclass
class JsonExtract:
    column: Any
    path: str
    alias: str | None = None


# ---------------------------------------------------------------------------
# Predicate entries (shared by WHERE and HAVING)
# ---------------------------------------------------------------------------


@dataclass
class Predicate:
    """Common flags: ``bool_`` is ``"and"`` or ``"or"``; ``not_`` negates."""

    bool_: str = "and"
    not_: bool = False


@dataclass
class WhereBasic(Predicate):
    column: Any = None
    operator: str = "="
    value: Any = None


@dataclass
class WhereColumn(Predicate):
    column: Any = None
    operator: str = "="
    value: Any = None


@dataclass
class WhereIn(Predicate):
    column: Any = None
    values: Any = None


@dataclass
class WhereNull(Predicate):
    column: Any = None


@dataclass
class WhereBetween(Predicate):
    column: Any = None
    values: tuple[Any, Any] = (None, None)


@dataclass
class WhereExists(Predicate):
    value: Any = None


@dataclass
class WhereWrapped(Predicate):
    value: Any = None


@dataclass
class WhereRaw(Predicate):
    value: Any = None


@dataclass
class WhereLike(Predicate):
    column: Any = None
    value: Any = None
    case_insensitive: bool = False


@dataclass
class WhereJsonPath(Predicate):
    column: Any = None
    path: str = "$"
    operator: str = "="
    value: Any = None


# ---------------------------------------------------------------------------
# Other groupings
# ---------------------------------------------------------------------------


@dataclass
class GroupBy:
    value: list[Any]
    raw: bool = False


@dataclass
class OrderBy:
    value: Any
    direction: str | None = None
    nulls: str | None = None
    raw: bool = False


@dataclass
class Union:
    value: Any
    kind: str = "union"
    wrap: bool = False


@dataclass
class With:
    alias: str
    value: Any
    columns: list[str] | None = None
    recursive: bool = False
    materialized: bool | None = None


# ---------------------------------------------------------------------------
# Insert conflict handling
# ---------------------------------------------------------------------------


@dataclass
class Conflict:
    """``on_conflict(columns)`` followed by ``merge`` or ``ignore``."""

    columns: list[Any] = field(default_factory=list)
    ignore: bool = False
    merge: bool = False
    merge_values: Any = None


# ---------------------------------------------------------------------------
# Statement model
# ---------------------------------------------------------------------------


@dataclass
class StatementModel:
    method: str = "select"
    clauses: dict[Grouping, list[Any]] = field(default_factory=dict)

    # single properties
    table: Any = None
    schema: str | None = None
    alias: str | None = None
    limit: int | None = None
    offset: int | None = None
    lock: LockMode | None = None
    lock_tables: list[str] = field(default_factory=list)
    wait_mode: WaitMode | None = None
    insert: Any = None
    update: dict[str, Any] | None = None
    upsert: Any = None
    counter: dict[str, Any] = field(default_factory=dict)
    returning: list[Any] | None = None
    conflict: Conflict | None = None
    comments: list[str] = field(default_factory=list)

    def group(self, grouping: Grouping) -> list[Any]:
        """Return the (possibly empty) entry list for ``grouping``."""
        return self.clauses.get(grouping, [])

    def add(self, grouping: Grouping, entry: Any) -> None:
        self.clauses.setdefault(grouping, []).append(entry)

    def clear(self, grouping: Grouping) -> None:
        self.clauses.pop(grouping, None)

    def copy(self) -> StatementModel:
        """Copy with independent clause lists; entry values are shared."""
        duplicate = copy.copy(self)
        duplicate.clauses = {key: list(entries) for key, entries in self.clauses.items()}
        duplicate.lock_tables = list(self.lock_tables)
        duplicate.counter = dict(self.counter)
        duplicate.comments = list(self.comments)
        if self.returning is not None:
            duplicate.returning = list(self.returning)
        if self.conflict is not None:
            duplicate.conflict = copy.copy(self.conflict)
        return duplicate
