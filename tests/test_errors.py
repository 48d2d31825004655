"""
Tests for the errors module.

This test module validates:
- LauncherError base class functionality
- Error subclasses and their failure kinds
- Outcome construction
"""

from __future__ import annotations

import pytest

from frida_launcher.errors import (
    CommandFailureError,
    DecompressionFailureError,
    FailureKind,
    InvalidArgumentError,
    LauncherError,
    NetworkFailureError,
    Outcome,
    ParseFailureError,
    PrivilegeUnavailableError,
    StateMismatchError,
    StorageFailureError,
)

# =============================================================================
# Tests for LauncherError
# =============================================================================


class TestLauncherError:
    """Tests for LauncherError base class."""

    def test_init(self) -> None:
        error = LauncherError(
            FailureKind.NETWORK_FAILURE,
            "Release index returned HTTP 503",
            details={"status_code": 503},
        )

        assert str(error) == "Release index returned HTTP 503"
        assert error.error_code == "network_failure"
        assert error.details == {"status_code": 503}

    def test_details_default(self) -> None:
        assert LauncherError(FailureKind.PARSE_FAILURE, "bad").details == {}

    def test_log_extra_avoids_reserved_keys(self) -> None:
        """Test the logging fields never include 'message'."""
        extra = LauncherError(FailureKind.COMMAND_FAILURE, "no output").log_extra()

        assert "message" not in extra
        assert extra["error"] == "no output"

    def test_repr(self) -> None:
        error = LauncherError(FailureKind.STATE_MISMATCH, "still running")
        assert repr(error) == (
            "LauncherError(failure='state_mismatch', "
            "message='still running', details={})"
        )


class TestSubclasses:
    """Tests for the concrete error classes."""

    @pytest.mark.parametrize(
        ("cls", "kind"),
        [
            (NetworkFailureError, FailureKind.NETWORK_FAILURE),
            (ParseFailureError, FailureKind.PARSE_FAILURE),
            (DecompressionFailureError, FailureKind.DECOMPRESSION_FAILURE),
            (PrivilegeUnavailableError, FailureKind.PRIVILEGE_UNAVAILABLE),
            (CommandFailureError, FailureKind.COMMAND_FAILURE),
            (StateMismatchError, FailureKind.STATE_MISMATCH),
            (InvalidArgumentError, FailureKind.INVALID_ARGUMENT),
            (StorageFailureError, FailureKind.STORAGE_FAILURE),
        ],
    )
    def test_failure_kind(self, cls: type[LauncherError], kind: FailureKind) -> None:
        error = cls("msg", details={"k": "v"})

        assert isinstance(error, LauncherError)
        assert error.failure == kind
        assert error.details == {"k": "v"}


# =============================================================================
# Tests for Outcome
# =============================================================================


class TestOutcome:
    """Tests for the tagged Outcome."""

    def test_success(self) -> None:
        outcome = Outcome.success([1, 2], "Found 2")

        assert outcome.ok is True
        assert outcome.value == [1, 2]
        assert outcome.failure is None

    def test_failed(self) -> None:
        outcome: Outcome[int] = Outcome.failed(FailureKind.NETWORK_FAILURE, "down")

        assert outcome.ok is False
        assert outcome.value is None
        assert outcome.message == "down"

    def test_from_error(self) -> None:
        outcome: Outcome[str] = Outcome.from_error(DecompressionFailureError("corrupt"))

        assert outcome.failure == FailureKind.DECOMPRESSION_FAILURE
        assert outcome.message == "corrupt"

    def test_frozen(self) -> None:
        outcome = Outcome.success(1)
        with pytest.raises(AttributeError):
            outcome.value = 2  # type: ignore[misc]
