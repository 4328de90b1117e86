"""Raw SQL expressions and column references.

A :class:`Raw` holds a SQL template plus its bindings.  Positional bindings
use ``?`` for values and ``??`` for identifiers; named bindings use ``:key``
for values and ``:key:`` for identifiers.  A backslash escapes a literal
``?`` (``\\?``) or ``:`` (``\\:key``)::

    db.raw("?? = ?", ["id", 5])             # "id" = ?      [5]
    db.raw(":col: = :val", {"col": "id", "val": 5})

A raw compiles independently of any enclosing builder; when spliced into a
query its bindings are appended at the position it is rendered.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from quarry.errors import BindingError, CompilationError, ConfigurationError
from quarry.helpers import UNDEFINED, contains_undefined, get_undefined_indices
from quarry.query.compiled import CompiledQuery

if TYPE_CHECKING:
    from quarry.client import Client

_POSITIONAL_RE = re.compile(r"\\?\?\??")
_NAMED_RE = re.compile(r"\\?(:(\w+):(?=::)|:(\w+):(?!:)|:(\w+))")


class Raw:
    """Literal SQL with its own bindings.

    Args:
        client: Client used to quote identifiers and check capabilities.  A
            raw created without one adopts the client of the query it is
            spliced into.
    """

    def __init__(self, client: Client | None = None) -> None:
        self.client = client
        self.sql: str = ""
        self.bindings: list[Any] | Mapping[str, Any] = []
        self._before: str | None = None
        self._after: str | None = None
        self._timeout: int | None = None
        self._cancel_on_timeout = False
        self._options: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Builder surface
    # ------------------------------------------------------------------

    def set(self, sql: str, bindings: Any = None) -> Raw:
        """Set the template and bindings.

        A mapping selects named bindings; a list or tuple positional ones;
        any other single value becomes a one-element positional list.
        """
        self.sql = sql
        if bindings is None:
            self.bindings = []
        elif isinstance(bindings, Mapping):
            self.bindings = dict(bindings)
        elif isinstance(bindings, (list, tuple)):
            self.bindings = list(bindings)
        else:
            self.bindings = [bindings]
        return self

    def wrap(self, before: str, after: str) -> Raw:
        """Surround the compiled SQL with ``before`` and ``after``."""
        self._before = before
        self._after = after
        return self

    def timeout(self, ms: int, cancel: bool = False) -> Raw:
        if cancel:
            self._require_client().assert_can_cancel_query()
        self._timeout = ms
        self._cancel_on_timeout = cancel
        return self

    def options(self, opts: Mapping[str, Any]) -> Raw:
        self._options.update(opts)
        return self

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def to_sql(self, client: Client | None = None, query_context: Any = None) -> CompiledQuery:
        """Compile to ``sql`` + ``bindings``.

        Args:
            client: Overrides the raw's own client (used when spliced).
            query_context: Passed to a configured ``wrap_identifier`` hook.

        Raises:
            BindingError: If a binding is ``UNDEFINED``.
            CompilationError: If the number of positional placeholders
                does not match the bindings.
        """
        client = client or self._require_client()
        if isinstance(self.bindings, Mapping):
            sql, bindings = _replace_key_bindings(self, client, query_context)
        elif self.bindings:
            sql, bindings = _replace_raw_arr_bindings(self, client, query_context)
        else:
            sql, bindings = self.sql, []

        if self._before:
            sql = self._before + sql
        if self._after:
            sql = sql + self._after

        if contains_undefined(self.bindings):
            keys = get_undefined_indices(self.bindings)
            raise BindingError(
                f"Undefined binding(s) detected for keys {keys} when compiling RAW query: {sql}",
                keys=keys,
            )
        return CompiledQuery(
            sql=sql,
            bindings=tuple(bindings),
            method="raw",
            options=dict(self._options),
            timeout=self._timeout,
            cancel_on_timeout=self._cancel_on_timeout,
            dialect=client.dialect_name,
        )

    def to_query(self) -> str:
        """Return the SQL with bindings inlined (debugging only)."""
        compiled = self.to_sql()
        return self._require_client().format_query(compiled.sql, compiled.bindings)

    def __str__(self) -> str:
        return self.to_query()

    def _require_client(self) -> Client:
        if self.client is None:
            raise ConfigurationError(
                "A raw expression needs a client to compile; create it with db.raw() "
                "or splice it into a query.",
                option="client",
            )
        return self.client


class Ref(Raw):
    """A column or table reference rendered as a quoted identifier.

    ::

        db.ref("users.id").with_schema("public").as_("uid")
        # "public"."users"."id" as "uid"
    """

    def __init__(self, client: Client | None, ref: str) -> None:
        super().__init__(client)
        self.ref = ref
        self._schema: str | None = None
        self._alias: str | None = None

    def with_schema(self, schema: str) -> Ref:
        self._schema = schema
        return self

    def as_(self, alias: str) -> Ref:
        self._alias = alias
        return self

    def to_sql(self, client: Client | None = None, query_context: Any = None) -> CompiledQuery:
        ref = f"{self._schema}.{self.ref}" if self._schema else self.ref
        target = f"{ref} as {self._alias}" if self._alias else ref
        raw = Raw(self.client).set("??", [target])
        return raw.to_sql(client, query_context)


# ---------------------------------------------------------------------------
# Placeholder replacement
# ---------------------------------------------------------------------------


def _replace_raw_arr_bindings(
    raw: Raw, client: Client, query_context: Any
) -> tuple[str, list[Any]]:
    formatter = client.formatter(query_context=query_context)
    values = list(raw.bindings)
    index = 0

    def replace(match: re.Match[str]) -> str:
        nonlocal index
        token = match.group(0)
        if token == "\\?":
            return token
        if index >= len(values):
            index += 1
            return token
        value = values[index]
        index += 1
        if token == "??":
            return formatter.columnize(value)
        return formatter.parameter(value)

    sql = _POSITIONAL_RE.sub(replace, raw.sql)
    if index != len(values):
        raise CompilationError(f"Expected {len(values)} bindings, saw {index}", clause="raw")
    return sql, formatter.bindings


def _replace_key_bindings(
    raw: Raw, client: Client, query_context: Any
) -> tuple[str, list[Any]]:
    formatter = client.formatter(query_context=query_context)
    values: Mapping[str, Any] = raw.bindings  # type: ignore[assignment]

    def replace(match: re.Match[str]) -> str:
        token, p1 = match.group(0), match.group(1)
        if token != p1:
            return p1
        part = match.group(2) or match.group(3) or match.group(4)
        if part not in values:
            return token
        value = values[part]
        if value is UNDEFINED:
            formatter.bindings.append(value)
            return token
        if token.strip().endswith(":"):
            return token.replace(p1, formatter.columnize(value))
        return token.replace(p1, formatter.parameter(value))

    sql = _NAMED_RE.sub(replace, raw.sql)
    return sql, formatter.bindings
