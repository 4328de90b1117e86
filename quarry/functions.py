"""Function helper: ``db.fn``.

::

    t.timestamp("created_at").default_to(db.fn.now())
    db("users").insert({"id": db.fn.uuid_to_bin(user_id)})
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quarry.errors import ValidationError
from quarry.raw import Raw

if TYPE_CHECKING:
    from quarry.client import Client


class FunctionHelper:
    """SQL functions and value helpers bound to a client."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def now(self, precision: int | None = None) -> Raw:
        """``CURRENT_TIMESTAMP``, with fractional-second ``precision`` if given."""
        if isinstance(precision, int) and not isinstance(precision, bool):
            return self.client.raw(f"CURRENT_TIMESTAMP({precision})")
        return self.client.raw("CURRENT_TIMESTAMP")

    def uuid_to_bin(self, uuid: str, ordered: bool = True) -> bytes:
        """Pack a textual UUID into 16 bytes.

        Args:
            uuid: Canonical ``8-4-4-4-12`` text (dashes optional).
            ordered: Swap the time-high and time-low groups so that
                version-1 UUIDs sort by creation time.
        """
        buf = _hex_bytes(uuid.replace("-", ""))
        if ordered:
            return buf[6:8] + buf[4:6] + buf[0:4] + buf[8:16]
        return buf

    def bin_to_uuid(self, value: bytes | str, ordered: bool = True) -> str:
        """Inverse of :meth:`uuid_to_bin`; ``value`` may be bytes or hex text."""
        buf = _hex_bytes(value) if isinstance(value, str) else bytes(value)
        if len(buf) != 16:
            raise ValidationError(
                f"Expected 16 bytes for a binary UUID, got {len(buf)}",
                code="INVALID_UUID",
            )
        if ordered:
            groups = (buf[4:8], buf[2:4], buf[0:2], buf[8:10], buf[10:16])
        else:
            groups = (buf[0:4], buf[4:6], buf[6:8], buf[8:10], buf[10:16])
        return "-".join(group.hex() for group in groups)


def _hex_bytes(text: str) -> bytes:
    try:
        buf = bytes.fromhex(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid UUID: {text!r}", code="INVALID_UUID") from exc
    if len(buf) != 16:
        raise ValidationError(f"Invalid UUID: {text!r}", code="INVALID_UUID")
    return buf
