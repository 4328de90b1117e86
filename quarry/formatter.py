"""Identifier formatter and binding accumulator.

One :class:`Formatter` is created per compile pass.  Every identifier and
value a compiler emits goes through it, and every placeholder it hands out
appends the bound value to :attr:`Formatter.bindings` at that moment.  As
long as compilers render strictly left to right, placeholder order in the
SQL text and binding order in the list cannot drift apart.

Nested values are rendered in place:

* a :class:`~quarry.raw.Raw` or ``QueryBuilder`` is compiled on its own and
  its bindings are appended where its SQL is spliced;
* a callable is a deferred sub-select: it receives a fresh sub-builder and
  is compiled immediately against *this* formatter's bindings.
"""
from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from quarry.dialects.capabilities import ESCAPED_OPERATORS
from quarry.errors import InvalidOperatorError
from quarry.helpers import contains_undefined, is_number
from quarry.query.builder import QueryBuilder
from quarry.query.compiled import CompiledQuery
from quarry.raw import Raw

if TYPE_CHECKING:
    from quarry.client import Client

_ORDER_DIRECTIONS = ("asc", "desc")

#: Placeholder for a key absent from one row of a multi-row insert.
MISSING: Any = object()


def is_builder(value: Any) -> bool:
    return isinstance(value, QueryBuilder)


def is_deferred(value: Any) -> bool:
    """A builder callback: any callable that is not a builder or raw."""
    return callable(value) and not isinstance(value, Raw) and not is_builder(value)


class Formatter:
    """Renders identifiers and values for a single compile pass.

    Args:
        client: Client supplying dialect quoting and capabilities.
        bindings: Shared accumulator; a fresh list when omitted.
        query_context: Passed through to a ``wrap_identifier`` hook.
    """

    def __init__(
        self,
        client: Client,
        bindings: list[Any] | None = None,
        query_context: Any = None,
    ) -> None:
        self.client = client
        self.bindings: list[Any] = bindings if bindings is not None else []
        self.query_context = query_context

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    def columnize(self, target: Any) -> str:
        """Wrap each column and join them with ``", "``."""
        columns = target if isinstance(target, (list, tuple)) else [target]
        parts: list[str] = []
        for column in columns:
            parts.append(self.wrap(column))
        return ", ".join(parts)

    def wrap(self, value: Any, is_parameter: bool = False) -> str:
        """Render an identifier, alias mapping, number or nested query.

        Args:
            value: String identifier (``"t.col as c"``), mapping of
                ``{alias: expression}``, number, raw, builder or callback.
            is_parameter: The value sits in a parameter position, so a
                nested select is parenthesized.
        """
        raw = self.unwrap_raw(value, is_parameter)
        if raw is not None:
            return raw
        if is_deferred(value):
            return self.output_query(self.compile_callback(value), True)
        if isinstance(value, Mapping):
            return self.parse_object(value)
        if is_number(value):
            return str(value)
        return self.wrap_string(str(value))

    def wrap_string(self, value: str) -> str:
        """Quote a dotted identifier, splitting a case-insensitive ``" as "`` alias."""
        as_index = value.lower().find(" as ")
        if as_index != -1:
            first = value[:as_index]
            second = value[as_index + 4:]
            return self.alias(self.wrap_string(first), self.wrap_as_identifier(second))
        segments = value.split(".")
        wrapped: list[str] = []
        for index, segment in enumerate(segments):
            if index == 0 and len(segments) > 1:
                wrapped.append(self.wrap_string(segment.strip()))
            else:
                wrapped.append(self.wrap_as_identifier(segment))
        return ".".join(wrapped)

    def wrap_as_identifier(self, value: str) -> str:
        return self.client.wrap_identifier((value or "").strip(), self.query_context)

    def parse_object(self, obj: Mapping[str, Any]) -> str:
        parts: list[str] = []
        for alias, target in obj.items():
            if is_deferred(target):
                compiled = self.compile_callback(target)
                parts.append(self.output_query(compiled, True, alias=alias))
            elif is_builder(target):
                compiled = self.client.query_compiler(target).to_sql()
                self.bindings.extend(compiled.bindings)
                parts.append(self.output_query(compiled, True, alias=alias))
            else:
                parts.append(self.alias(self.wrap(target), self.wrap_as_identifier(alias)))
        return ", ".join(parts)

    def alias(self, first: str, second: str) -> str:
        return f"{first}{self.client.capabilities.alias_keyword}{second}"

    # ------------------------------------------------------------------
    # Nested queries
    # ------------------------------------------------------------------

    def unwrap_raw(self, value: Any, is_parameter: bool = False) -> str | None:
        """Render a builder or raw in place, appending its bindings.

        Returns None for any other value; in a parameter position that value
        is bound instead.
        """
        if is_builder(value):
            compiled = self.client.query_compiler(value).to_sql()
            self.bindings.extend(compiled.bindings)
            return self.output_query(compiled, is_parameter)
        if isinstance(value, Raw):
            compiled = value.to_sql(self.client, self.query_context)
            self.bindings.extend(compiled.bindings)
            return compiled.sql
        if is_parameter:
            self.bindings.append(value)
        return None

    def compile_callback(self, callback: Callable[..., Any], method: str | None = None) -> CompiledQuery:
        """Run ``callback`` against a fresh sub-builder and compile it in place."""
        builder = self.client.query_builder()
        callback(builder)
        compiler = self.client.query_compiler(builder, self.bindings, self.query_context)
        return compiler.to_sql(method or builder.model.method)

    def output_query(
        self,
        compiled: CompiledQuery,
        is_parameter: bool = False,
        alias: str | None = None,
    ) -> str:
        sql = compiled.sql
        alias = alias or compiled.alias
        if sql and compiled.method in ("select", "first") and (is_parameter or alias):
            sql = f"({sql})"
            if alias:
                return self.alias(sql, self.wrap_string(alias))
        return sql

    def raw_or_fn(self, value: Any, method: str | None = None) -> str:
        if is_deferred(value):
            return self.output_query(self.compile_callback(value, method))
        return self.unwrap_raw(value) or ""

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def parameter(self, value: Any) -> str:
        """Bind ``value`` and return its placeholder (or nested SQL)."""
        if is_deferred(value):
            return self.output_query(self.compile_callback(value), True)
        raw = self.unwrap_raw(value, True)
        return "?" if raw is None else raw

    def parameterize(self, values: Any, not_set_value: Any = None) -> str:
        """Bind each value; ``MISSING`` entries render ``not_set_value``.

        Mappings and nested sequences are bound as JSON text.
        """
        if is_deferred(values):
            return self.parameter(values)
        values = values if isinstance(values, (list, tuple)) else [values]
        parts: list[str] = []
        for value in values:
            if value is MISSING:
                value = not_set_value
            elif isinstance(value, (Mapping, list, tuple)) and not contains_undefined(value):
                value = json.dumps(value, default=str)
            parts.append(self.parameter(value))
        return ", ".join(parts)

    def values(self, values: Any) -> str:
        """Render ``(?, ?)`` or ``((?, ?), (?, ?))`` for IN lists."""
        if isinstance(values, (list, tuple)):
            if values and isinstance(values[0], (list, tuple)):
                rows = [f"({self.parameterize(list(row))})" for row in values]
                return f"({', '.join(rows)})"
            return f"({self.parameterize(list(values))})"
        if isinstance(values, Raw):
            return f"({self.parameter(values)})"
        return self.parameter(values)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def operator(self, value: Any) -> str:
        """Return a whitelisted operator token.

        Raises:
            InvalidOperatorError: If the token is not permitted by the dialect.
        """
        raw = self.unwrap_raw(value)
        if raw is not None:
            return raw
        token = str(value or "").lower()
        if token not in self.client.capabilities.operators:
            raise InvalidOperatorError(str(value))
        return ESCAPED_OPERATORS.get(token, token)

    def direction(self, value: Any) -> str:
        raw = self.unwrap_raw(value)
        if raw is not None:
            return raw
        text = str(value or "").lower()
        return text if text in _ORDER_DIRECTIONS else "asc"
