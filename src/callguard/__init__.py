"""callguard: composable guards for calls to unreliable dependencies.

Retry, timeout, throttle, circuit breaker and debounce decorators around a
single call shape, ``async def call(ctx, *args, **kwargs)``, where ``ctx`` is
a CancelContext carrying the caller's deadline and cancellation signal.
"""
from __future__ import annotations

from callguard.call import Call, Outcome, capture, compose
from callguard.context import CancelContext, CancelReason, create_cancel_pair
from callguard.errors import (
    CallGuardError,
    CircuitOpenError,
    ConfigurationError,
    ContextCancelledError,
    DeadlineExceededError,
    ErrorClass,
    RateLimitedError,
    classify_error,
)
from callguard.resilience import (
    GuardedCall,
    breaker,
    build_stack,
    debounce_first,
    debounce_last,
    retry,
    throttle,
    timeout,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "Call",
    # Errors
    "CallGuardError",
    # Context
    "CancelContext",
    "CancelReason",
    "CircuitOpenError",
    "ConfigurationError",
    "ContextCancelledError",
    "DeadlineExceededError",
    "ErrorClass",
    # Stack
    "GuardedCall",
    "Outcome",
    "RateLimitedError",
    # Version
    "__version__",
    # Decorators
    "breaker",
    "build_stack",
    "capture",
    "classify_error",
    "compose",
    "create_cancel_pair",
    "debounce_first",
    "debounce_last",
    "retry",
    "throttle",
    "timeout",
]
