"""
Error classification for decorated calls.

Maps any exception that comes out of a decorated call onto the four-way
taxonomy used across the library.
"""

from __future__ import annotations

from enum import Enum

from callguard.errors.base import (
    CircuitOpenError,
    ContextCancelledError,
    RateLimitedError,
)


class ErrorClass(str, Enum):
    """Standard error classification."""

    UPSTREAM = "upstream"
    """The wrapped call itself failed; passed through verbatim."""

    CANCELLED = "cancelled"
    """The governing context ended (deadline or explicit cancellation)."""

    RATE_LIMITED = "rate_limited"
    """Throttle rejected the call because its token pool was empty."""

    CIRCUIT_OPEN = "circuit_open"
    """Breaker rejected the call during its backoff window."""


# Classes synthesized before the wrapped call was invoked
_SHORT_CIRCUIT_CLASSES: set[ErrorClass] = {
    ErrorClass.RATE_LIMITED,
    ErrorClass.CIRCUIT_OPEN,
}


def classify_error(error: BaseException) -> ErrorClass:
    """Classify an exception raised by a decorated call.

    Args:
        error: The exception to classify

    Returns:
        ErrorClass for the exception
    """
    if isinstance(error, ContextCancelledError):
        return ErrorClass.CANCELLED
    if isinstance(error, RateLimitedError):
        return ErrorClass.RATE_LIMITED
    if isinstance(error, CircuitOpenError):
        return ErrorClass.CIRCUIT_OPEN
    return ErrorClass.UPSTREAM


def is_short_circuit(error_class: ErrorClass) -> bool:
    """Check whether an error class means the wrapped call never ran.

    Args:
        error_class: The error class to check

    Returns:
        True for rate_limited and circuit_open
    """
    return error_class in _SHORT_CIRCUIT_CLASSES
