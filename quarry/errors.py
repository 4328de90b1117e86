"""Custom exception hierarchy for Quarry.

All public errors inherit from QuarryError so callers can catch the base
class for any Quarry-specific failure.  None of them are retried by the
compiler; retry policy belongs to the execution / pool layer.
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class QuarryError(Exception):
    """Base exception for all Quarry errors."""


class ConfigurationError(QuarryError):
    """Raised when the client configuration is missing required information.

    Args:
        message: Human-readable description.
        option: The configuration option at fault (e.g. ``"client"``).
    """

    def __init__(self, message: str, option: str | None = None) -> None:
        super().__init__(message)
        self.option = option


class ValidationError(QuarryError):
    """Raised when a builder call or compile pass receives invalid input.

    Args:
        message: Human-readable description.
        code: Machine-readable error code (e.g. ``INVALID_OPERATOR``).
        details: Extra structured context.
    """

    def __init__(
        self,
        message: str,
        code: str = "INVALID_INPUT",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details: dict[str, Any] = details or {}

    def to_error_response(self) -> dict[str, Any]:
        """Returns a structured error response."""
        return {
            "error": self.code,
            "message": str(self),
            "details": self.details,
        }


class InvalidOperatorError(ValidationError):
    """Raised when an operator token is not in the dialect's whitelist."""

    def __init__(self, operator: str) -> None:
        super().__init__(
            f"The operator {operator!r} is not permitted",
            code="INVALID_OPERATOR",
            details={"operator": operator},
        )


class BindingError(QuarryError):
    """Raised when a value destined for a placeholder is unresolved.

    Args:
        message: Human-readable description naming the offending keys.
        keys: Column names, binding indices or raw binding keys at fault.
    """

    def __init__(self, message: str, keys: Sequence[Any] = ()) -> None:
        super().__init__(message)
        self.keys = list(keys)


class CapabilityError(QuarryError):
    """Raised when the target dialect lacks a requested feature.

    Args:
        message: Human-readable description naming the dialect.
        feature: The feature that was requested (e.g. ``"upsert"``).
        dialect: The dialect name.
    """

    def __init__(
        self,
        message: str,
        feature: str | None = None,
        dialect: str | None = None,
    ) -> None:
        super().__init__(message)
        self.feature = feature
        self.dialect = dialect


class CompilationError(QuarryError):
    """Raised when SQL compilation fails for an unexpected reason.

    Args:
        message: Human-readable description.
        clause: The clause being compiled when the error occurred.
    """

    def __init__(self, message: str, clause: str | None = None) -> None:
        super().__init__(message)
        self.clause = clause


class ExecutionError(QuarryError):
    """Raised when the driver or pool collaborator fails while running a query.

    The message is prefixed with the formatted query so the failing
    statement can be diagnosed from the error alone.

    Args:
        message: Human-readable description.
        sql: The native SQL sent to the driver.
        bindings: The bindings sent with it.
    """

    def __init__(
        self,
        message: str,
        sql: str | None = None,
        bindings: Sequence[Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.sql = sql
        self.bindings = list(bindings or [])


class QuarryTimeoutError(ExecutionError):
    """Raised when acquiring a connection or running a query times out."""
