"""Tests for errors module."""

import pytest

from callguard.context import CancelReason
from callguard.errors import (
    CallGuardError,
    CircuitOpenError,
    ConfigurationError,
    ContextCancelledError,
    DeadlineExceededError,
    ErrorClass,
    ErrorContext,
    RateLimitedError,
    classify_error,
    is_short_circuit,
)


class TestErrorHierarchy:
    """Tests for the error classes."""

    def test_messages(self) -> None:
        """Test the default messages."""
        assert ContextCancelledError().message == "context canceled"
        assert DeadlineExceededError().message == "context deadline exceeded"
        assert RateLimitedError().message == "too many calls"
        assert CircuitOpenError().message == "service unreachable"

    def test_all_derive_from_base(self) -> None:
        """Test every synthesized error is a CallGuardError."""
        for error in (
            ContextCancelledError(),
            DeadlineExceededError(),
            RateLimitedError(),
            CircuitOpenError(),
            ConfigurationError("bad"),
        ):
            assert isinstance(error, CallGuardError)

    def test_deadline_is_a_cancellation(self) -> None:
        """Test deadline errors can be caught as cancellations."""
        with pytest.raises(ContextCancelledError):
            raise DeadlineExceededError(CancelReason.DEADLINE_EXCEEDED)

    def test_cancel_reason_kept(self) -> None:
        """Test the reason travels with the error."""
        error = ContextCancelledError(CancelReason.SHUTDOWN)
        assert error.reason == CancelReason.SHUTDOWN

    def test_rate_limited_details(self) -> None:
        """Test RateLimitedError carries the pool size."""
        error = RateLimitedError(max_tokens=3)
        assert error.max_tokens == 3
        assert error.context.details == {"max_tokens": 3}
        assert "[throttle]" in str(error)

    def test_circuit_open_details(self) -> None:
        """Test CircuitOpenError carries retry timing."""
        error = CircuitOpenError(retry_at=12.0, time_until_retry=1.5)
        assert error.retry_at == 12.0
        assert error.time_until_retry == 1.5
        assert error.context.source == "breaker"

    def test_configuration_error_path(self) -> None:
        """Test ConfigurationError records the offending file."""
        error = ConfigurationError("broken", path="/tmp/guards.yaml")
        assert error.path == "/tmp/guards.yaml"
        assert error.context.details["path"] == "/tmp/guards.yaml"

    def test_with_hint(self) -> None:
        """Test hints are appended to the message."""
        error = ConfigurationError("missing").with_hint("export CALLGUARD_PROFILE")
        assert "hint: export CALLGUARD_PROFILE" in str(error)

    def test_error_context_str(self) -> None:
        """Test ErrorContext formatting."""
        assert str(ErrorContext()) == ""
        assert str(ErrorContext(source="x", hint="y")) == "[x] (hint: y)"


class TestClassification:
    """Tests for classify_error."""

    def test_classify(self) -> None:
        """Test each error maps to its class."""
        assert classify_error(ValueError("x")) == ErrorClass.UPSTREAM
        assert classify_error(ContextCancelledError()) == ErrorClass.CANCELLED
        assert classify_error(DeadlineExceededError()) == ErrorClass.CANCELLED
        assert classify_error(RateLimitedError()) == ErrorClass.RATE_LIMITED
        assert classify_error(CircuitOpenError()) == ErrorClass.CIRCUIT_OPEN

    def test_configuration_error_is_not_synthesized(self) -> None:
        """Test library errors outside the taxonomy count as upstream."""
        assert classify_error(ConfigurationError("x")) == ErrorClass.UPSTREAM

    def test_is_short_circuit(self) -> None:
        """Test only rejections are short circuits."""
        assert is_short_circuit(ErrorClass.RATE_LIMITED) is True
        assert is_short_circuit(ErrorClass.CIRCUIT_OPEN) is True
        assert is_short_circuit(ErrorClass.UPSTREAM) is False
        assert is_short_circuit(ErrorClass.CANCELLED) is False
