"""
Resilience layer - Retry, timeout, throttle, circuit breaker and debounce.

Every decorator takes a call ``async def call(ctx, *args, **kwargs)`` and
returns a call with the same signature:
- Retry: Fixed-delay retries, cancellable through the context
- Timeout: Races an uncancellable call against the context
- Throttle: Refillable token pool
- CircuitBreaker: Consecutive-failure breaker with exponential backoff
- DebounceCache / DebounceDeferred: Leading and trailing-edge debounce
- SignalsSnapshot: Aggregated decorator state
- build_stack: Composes the usual stack from a profile
"""

from callguard.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    CircuitStats,
    breaker,
)
from callguard.resilience.debounce import (
    DebounceCache,
    DebounceConfig,
    DebounceDeferred,
    debounce_first,
    debounce_last,
)
from callguard.resilience.locks import ReadWriteLock
from callguard.resilience.retry import Retry, RetryConfig, retry
from callguard.resilience.signals import (
    CircuitBreakerSnapshot,
    DebounceSnapshot,
    SignalsSnapshot,
    ThrottleSnapshot,
)
from callguard.resilience.stack import GuardedCall, build_stack
from callguard.resilience.throttle import Throttle, ThrottleConfig, throttle
from callguard.resilience.timeout import Timeout, TimeoutConfig, timeout

__all__ = [
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerSnapshot",
    "CircuitState",
    "CircuitStats",
    # Debounce
    "DebounceCache",
    "DebounceConfig",
    "DebounceDeferred",
    "DebounceSnapshot",
    # Stack
    "GuardedCall",
    "ReadWriteLock",
    # Retry
    "Retry",
    "RetryConfig",
    "SignalsSnapshot",
    # Throttle
    "Throttle",
    "ThrottleConfig",
    "ThrottleSnapshot",
    # Timeout
    "Timeout",
    "TimeoutConfig",
    "breaker",
    "build_stack",
    "debounce_first",
    "debounce_last",
    "retry",
    "throttle",
    "timeout",
]
