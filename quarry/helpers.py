"""Small shared helpers: the ``UNDEFINED`` sentinel and its detection.

``None`` always means SQL ``NULL``.  ``UNDEFINED`` marks a value that was
never supplied (for example a key computed from a lookup that missed); any
``UNDEFINED`` that reaches a placeholder is a :class:`~quarry.errors.BindingError`.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class _Undefined:
    """Singleton type for :data:`UNDEFINED`."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Undefined:
        return self

    def __deepcopy__(self, memo: dict) -> _Undefined:
        return self


#: Marker for a value that was never supplied.
UNDEFINED: Any = _Undefined()

#: Default for optional positional arguments where None is a meaningful value.
NO_ARG: Any = object()


def is_undefined(value: Any) -> bool:
    return value is UNDEFINED


def contains_undefined(value: Any) -> bool:
    """Return True when ``value`` is, or structurally contains, ``UNDEFINED``.

    Builders and raw expressions are opaque: their own compile pass checks
    their bindings.
    """
    if value is UNDEFINED:
        return True
    if isinstance(value, (list, tuple)):
        return any(contains_undefined(item) for item in value)
    if isinstance(value, Mapping):
        return any(contains_undefined(item) for item in value.values())
    return False


def get_undefined_indices(bindings: Any) -> list[Any]:
    """Return the indices (or keys) of ``bindings`` entries containing ``UNDEFINED``.

    Args:
        bindings: A sequence or mapping of binding values.

    Returns:
        Positions for a sequence, keys for a mapping, in iteration order.
    """
    if isinstance(bindings, Mapping):
        return [key for key, item in bindings.items() if contains_undefined(item)]
    if isinstance(bindings, (list, tuple)):
        return [index for index, item in enumerate(bindings) if contains_undefined(item)]
    return [0] if contains_undefined(bindings) else []


def normalize_arr(args: tuple[Any, ...]) -> list[Any]:
    """Flatten a single list/tuple argument, otherwise return ``args`` as a list.

    ``select("a", "b")`` and ``select(["a", "b"])`` are equivalent.
    """
    if len(args) == 1 and isinstance(args[0], (list, tuple)):
        return list(args[0])
    return list(args)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_plain_mapping(value: Any) -> bool:
    return isinstance(value, Mapping)
