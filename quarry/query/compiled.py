"""Compiled result values."""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class CompiledQuery:
    """The output of a successful compilation.

    Owned by the caller and never mutated afterwards.  The number of
    unescaped ``?`` placeholders in ``sql`` always equals ``len(bindings)``.

    Attributes:
        sql: SQL text using ``?`` placeholders (``\\?`` marks a literal ``?``).
        bindings: Values for the placeholders, in emission order.
        method: The compiler entry point that produced it (``select``,
            ``insert``, ``raw``, ``create`` ...).
        options: Driver options attached via ``.options()``.
        timeout: Execution timeout in milliseconds, honored by the runner.
        cancel_on_timeout: Ask the driver to cancel the query on timeout.
        alias: Alias applied when this query is spliced as a subquery.
        returning: Columns requested via ``returning()``.
        output: Post-processing hook applied to the driver response
            (catalog checks, multi-step DDL).
        dialect: Name of the dialect that compiled it.
    """

    sql: str
    bindings: tuple[Any, ...] = ()
    method: str = "select"
    options: Mapping[str, Any] = field(default_factory=dict)
    timeout: int | None = None
    cancel_on_timeout: bool = False
    alias: str | None = None
    returning: tuple[Any, ...] | None = None
    output: Callable[..., Any] | None = None
    dialect: str | None = None


@dataclass(frozen=True)
class NativeQuery:
    """SQL and bindings converted to the driver's paramstyle."""

    sql: str
    bindings: tuple[Any, ...]
