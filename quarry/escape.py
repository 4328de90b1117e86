"""Value / escape formatter.

Renders Python values as dialect-safe SQL literal text.  This is only used
where a value must be inlined rather than bound: ``to_query()`` debug output,
view definitions, column defaults and error annotation.  The default query
path always parameterizes.

``make_escape`` assembles an escape function from independently overridable
pieces::

    escape = make_escape(escape_string=double_quote_string)
    escape("it's")            # "'it''s'"
    escape([1, [2, 3]])       # "1, (2, 3)"
"""
from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any

from quarry.helpers import UNDEFINED

#: ``(value, ctx) -> literal``
EscapeFn = Callable[[Any, Mapping[str, Any] | None], str]

_CHARS_RE = re.compile(r"[\0\b\t\n\r\x1a\"'\\]")
_CHARS_MAP = {
    "\0": "\\0",
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\r": "\\r",
    "\x1a": "\\Z",
    '"': '\\"',
    "'": "\\'",
    "\\": "\\\\",
}
_TZ_RE = re.compile(r"([+\-\s])(\d\d):?(\d\d)?")


# ---------------------------------------------------------------------------
# Default pieces
# ---------------------------------------------------------------------------


def escape_string(value: str, final_escape: EscapeFn | None = None, ctx: Any = None) -> str:
    """Backslash-escape control characters and quotes, then single-quote."""
    return "'" + _CHARS_RE.sub(lambda m: _CHARS_MAP[m.group(0)], value) + "'"


def double_quote_string(value: str, final_escape: EscapeFn | None = None, ctx: Any = None) -> str:
    """Standard SQL string literal: single quotes doubled."""
    return "'" + value.replace("'", "''") + "'"


def array_to_list(values: Any, final_escape: EscapeFn, ctx: Any = None) -> str:
    """Comma-join escaped items; nested sequences become parenthesized tuples."""
    parts: list[str] = []
    for item in values:
        if isinstance(item, (list, tuple)):
            parts.append("(" + array_to_list(item, final_escape, ctx) + ")")
        else:
            parts.append(final_escape(item, ctx))
    return ", ".join(parts)


def buffer_to_string(value: bytes | bytearray | memoryview, ctx: Any = None) -> str:
    return "X" + escape_string(bytes(value).hex())


def escape_object(value: Any, final_escape: EscapeFn, ctx: Any = None) -> str:
    """Delegate to ``value.to_sql()`` when available, else escape its JSON text."""
    to_sql = getattr(value, "to_sql", None)
    if callable(to_sql):
        compiled = to_sql()
        return getattr(compiled, "sql", compiled)
    return final_escape(json.dumps(value, default=str), ctx)


def convert_timezone(tz: str) -> float | None:
    """Return the offset in minutes for ``'Z'`` or ``'+HH:MM'``, or None if unparsable."""
    if tz == "Z":
        return 0
    match = _TZ_RE.match(tz)
    if match is None:
        return None
    sign = -1 if match.group(1) == "-" else 1
    hours = int(match.group(2))
    minutes = int(match.group(3)) if match.group(3) else 0
    return sign * (hours * 60 + minutes)


def date_to_string(value: date, final_escape: EscapeFn | None = None, ctx: Any = None) -> str:
    """Format as ``YYYY-MM-DD HH:MM:SS.mmm`` in local time or a given offset.

    ``ctx["time_zone"]`` is ``"local"`` (default), ``"Z"`` or ``"+HH:MM"``.
    Naive datetimes are assumed to already be in the target zone.
    """
    time_zone = (ctx or {}).get("time_zone") or "local"
    if isinstance(value, datetime):
        moment = value
    else:
        moment = datetime.combine(value, time())
    if moment.tzinfo is not None:
        if time_zone == "local":
            moment = moment.astimezone()
        else:
            offset = convert_timezone(time_zone)
            moment = moment.astimezone(timezone.utc)
            if offset:
                moment = moment + timedelta(minutes=offset)
    return (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d} "
        f"{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}."
        f"{moment.microsecond // 1000:03d}"
    )


_default_escape_string = escape_string
_default_escape_object = escape_object


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def make_escape(
    *,
    escape_date: Callable[..., str] | None = None,
    escape_array: Callable[..., str] | None = None,
    escape_buffer: Callable[..., str] | None = None,
    escape_string: Callable[..., str] | None = None,
    escape_object: Callable[..., str] | None = None,
    wrap: Callable[[EscapeFn], EscapeFn] | None = None,
) -> EscapeFn:
    """Build an escape function, overriding any piece independently.

    Args:
        escape_date: ``(date, final_escape, ctx) -> str`` (unquoted text).
        escape_array: ``(sequence, final_escape, ctx) -> str``.
        escape_buffer: ``(bytes, ctx) -> str``.
        escape_string: ``(str, final_escape, ctx) -> str``.
        escape_object: ``(obj, final_escape, ctx) -> str``.
        wrap: Decorator applied to the assembled function.

    Returns:
        ``escape(value, ctx=None) -> str``.
    """
    final_escape_date = escape_date or date_to_string
    final_escape_array = escape_array or array_to_list
    final_escape_buffer = escape_buffer or buffer_to_string
    final_escape_string = escape_string or _default_escape_string
    final_escape_object = escape_object or _default_escape_object

    def escape_fn(value: Any, ctx: Mapping[str, Any] | None = None) -> str:
        if value is None or value is UNDEFINED:
            return "NULL"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        if isinstance(value, (datetime, date)):
            value = final_escape_date(value, final_fn, ctx)
        elif isinstance(value, (list, tuple)):
            return final_escape_array(value, final_fn, ctx)
        elif isinstance(value, (bytes, bytearray, memoryview)):
            return final_escape_buffer(value, ctx)
        elif not isinstance(value, str):
            return final_escape_object(value, final_fn, ctx)
        return final_escape_string(value, final_fn, ctx)

    final_fn: EscapeFn = wrap(escape_fn) if wrap else escape_fn
    return final_fn


#: Backslash-escaping function (MySQL family).
default_escape = make_escape()

#: Standard SQL escaping, quotes doubled.
standard_escape = make_escape(escape_string=double_quote_string)


def _pg_array(values: Any, final_escape: EscapeFn, ctx: Any = None) -> str:
    return double_quote_string("{" + ",".join(_pg_array_item(v, final_escape, ctx) for v in values) + "}")


def _pg_array_item(value: Any, final_escape: EscapeFn, ctx: Any) -> str:
    if isinstance(value, (list, tuple)):
        return "{" + ",".join(_pg_array_item(v, final_escape, ctx) for v in value) + "}"
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    text = value if isinstance(value, str) else str(value)
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


#: Postgres escaping: arrays become ``'{...}'`` literals.
postgres_escape = make_escape(escape_string=double_quote_string, escape_array=_pg_array)


def bit_booleans(escape_fn: EscapeFn) -> EscapeFn:
    """``wrap`` piece rendering booleans as ``1`` / ``0``."""

    def escape(value: Any, ctx: Mapping[str, Any] | None = None) -> str:
        if isinstance(value, bool):
            return "1" if value else "0"
        return escape_fn(value, ctx)

    return escape


#: MSSQL / Oracle escaping: booleans are bits.
bit_escape = make_escape(escape_string=double_quote_string, wrap=bit_booleans)
