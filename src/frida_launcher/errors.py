"""
Error types and tagged outcomes for frida-launcher.

Components raise LauncherError subclasses internally. At every public
operation boundary the error is converted into a sentinel value (empty list,
None, False) or a result carrying the FailureKind (Outcome in components,
OperationResult in the service), so no exception crosses into the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class FailureKind(str, Enum):
    """Categories of failure reported at component boundaries."""

    NETWORK_FAILURE = "network_failure"
    PARSE_FAILURE = "parse_failure"
    DECOMPRESSION_FAILURE = "decompression_failure"
    PRIVILEGE_UNAVAILABLE = "privilege_unavailable"
    COMMAND_FAILURE = "command_failure"
    STATE_MISMATCH = "state_mismatch"
    INVALID_ARGUMENT = "invalid_argument"
    STORAGE_FAILURE = "storage_failure"


class LauncherError(Exception):
    """
    Base exception class for frida-launcher errors.

    LauncherError instances never escape a public operation. They are caught
    where the operation ends and turned into a failed Outcome or a sentinel.

    Attributes:
        failure: FailureKind identifying the error category.
        message: Human-readable error message.
        details: Optional structured details (e.g., URL, status code).

    Example:
        >>> raise LauncherError(
        ...     FailureKind.NETWORK_FAILURE,
        ...     "Release index returned HTTP 503",
        ...     details={"status_code": 503},
        ... )
    """

    def __init__(
        self,
        failure: FailureKind,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.failure = failure
        self.message = message
        self.details = details or {}

    @property
    def error_code(self) -> str:
        """Return the failure kind as a plain string."""
        return self.failure.value

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"failure={self.failure.value!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def log_extra(self) -> dict[str, Any]:
        """Fields for the ``extra`` argument of a logging call."""
        return {
            "error_code": self.error_code,
            "error": self.message,
            "details": self.details,
        }


class NetworkFailureError(LauncherError):
    """Release index or download unreachable, or non-success HTTP status."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(FailureKind.NETWORK_FAILURE, message, details)


class ParseFailureError(LauncherError):
    """Malformed release index payload or catalog entry."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(FailureKind.PARSE_FAILURE, message, details)


class DecompressionFailureError(LauncherError):
    """Corrupt archive, or an archive without a usable binary."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(FailureKind.DECOMPRESSION_FAILURE, message, details)


class PrivilegeUnavailableError(LauncherError):
    """No elevated shell could be obtained."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(FailureKind.PRIVILEGE_UNAVAILABLE, message, details)


class CommandFailureError(LauncherError):
    """A privileged command produced no output or unexpected output."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(FailureKind.COMMAND_FAILURE, message, details)


class StateMismatchError(LauncherError):
    """A post-operation re-probe disagrees with the expected outcome."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(FailureKind.STATE_MISMATCH, message, details)


class InvalidArgumentError(LauncherError):
    """A caller supplied a malformed version, architecture or path."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(FailureKind.INVALID_ARGUMENT, message, details)


class StorageFailureError(LauncherError):
    """The local work directory could not be written."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(FailureKind.STORAGE_FAILURE, message, details)


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Tagged result of a component operation.

    Attributes:
        value: The produced value, or None on failure.
        failure: FailureKind when the operation failed, else None.
        message: Short description of what happened.
    """

    value: T | None = None
    failure: FailureKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        """True when the operation produced its value."""
        return self.failure is None

    @classmethod
    def success(cls, value: T, message: str = "") -> Outcome[T]:
        return cls(value=value, message=message)

    @classmethod
    def failed(cls, failure: FailureKind, message: str) -> Outcome[T]:
        return cls(failure=failure, message=message)

    @classmethod
    def from_error(cls, error: LauncherError) -> Outcome[T]:
        return cls(failure=error.failure, message=error.message)
