"""
Error hierarchy for callguard.

Provides the cancellation, rate-limit and circuit-open errors synthesized by
the decorators, plus a classifier for everything a decorated call can raise.
"""

from callguard.errors.base import (
    CallGuardError,
    CircuitOpenError,
    ConfigurationError,
    ContextCancelledError,
    DeadlineExceededError,
    ErrorContext,
    RateLimitedError,
)
from callguard.errors.classification import (
    ErrorClass,
    classify_error,
    is_short_circuit,
)

__all__ = [
    # Base errors
    "CallGuardError",
    "CircuitOpenError",
    "ConfigurationError",
    "ContextCancelledError",
    "DeadlineExceededError",
    # Classification
    "ErrorClass",
    "ErrorContext",
    "RateLimitedError",
    "classify_error",
    "is_short_circuit",
]
