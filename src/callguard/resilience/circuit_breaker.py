"""
Circuit breaker with exponential backoff.

Implements the circuit breaker pattern with three states:
- Closed: fewer consecutive failures than the threshold, calls pass through
- Open: threshold reached and the backoff window has not passed, calls fail fast
- Half-Open: threshold reached but the window has passed, the next call is a trial

The backoff window is ``backoff_base * 2 ** (failures - threshold)`` seconds
after the last attempt: 2s, 4s, 8s, ... with the default base.
"""

from __future__ import annotations

import functools
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from callguard.errors import CircuitOpenError, ConfigurationError
from callguard.resilience.locks import ReadWriteLock
from callguard.resilience.signals import CircuitBreakerSnapshot
from callguard.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from callguard.call import Call
    from callguard.context import CancelContext

logger = get_logger("callguard.breaker")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures that open the circuit
        backoff_base: Length of the first backoff window in seconds
    """

    failure_threshold: int = 5
    backoff_base: float = 2.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ConfigurationError(
                f"failure_threshold must be >= 1, got {self.failure_threshold}"
            )
        if self.backoff_base <= 0:
            raise ConfigurationError(
                f"backoff_base must be > 0, got {self.backoff_base}"
            )

    @classmethod
    def from_env(cls) -> CircuitBreakerConfig:
        """Create configuration from environment variables."""
        return cls(
            failure_threshold=int(os.getenv("CALLGUARD_BREAKER_THRESHOLD", "5")),
            backoff_base=float(os.getenv("CALLGUARD_BREAKER_BACKOFF", "2.0")),
        )


@dataclass
class CircuitStats:
    """Statistics for circuit breaker."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    times_opened: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None


class CircuitBreaker:
    """Circuit breaker for fault isolation.

    The open/closed decision is taken under the read lock and the post-call
    update under the write lock; the call itself runs unlocked. Two callers
    arriving right as the window expires may therefore both be admitted as
    trial calls.

    Example:
        >>> guarded = CircuitBreaker(fetch, CircuitBreakerConfig(failure_threshold=3))
        >>> try:
        ...     result = await guarded(ctx)
        ... except CircuitOpenError as e:
        ...     print(f"Retry in {e.time_until_retry:.1f}s")
    """

    def __init__(
        self,
        call: Call,
        config: CircuitBreakerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            call: The call to wrap
            config: Circuit breaker configuration
            clock: Monotonic clock in seconds
        """
        self._call = call
        self._config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = ReadWriteLock()

        # Failure tracking
        self._consecutive_failures = 0
        self._last_attempt = clock()

        # Statistics
        self._stats = CircuitStats()
        functools.update_wrapper(self, call, updated=())

    @property
    def consecutive_failures(self) -> int:
        """Current consecutive failure count."""
        return self._consecutive_failures

    @property
    def config(self) -> CircuitBreakerConfig:
        """Get circuit breaker configuration."""
        return self._config

    def _retry_at(self) -> float | None:
        """Time after which a trial call is admitted, or None when closed."""
        d = self._consecutive_failures - self._config.failure_threshold
        if d < 0:
            return None
        return self._last_attempt + self._config.backoff_base * (2**d)

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        retry_at = self._retry_at()
        if retry_at is None:
            return CircuitState.CLOSED
        if self._clock() <= retry_at:
            return CircuitState.OPEN
        return CircuitState.HALF_OPEN

    def get_time_until_retry(self) -> float | None:
        """Seconds until a trial call is admitted, or None if not open."""
        retry_at = self._retry_at()
        if retry_at is None:
            return None
        return max(0.0, retry_at - self._clock())

    async def __call__(self, ctx: CancelContext, *args: Any, **kwargs: Any) -> Any:
        async with self._lock.read():
            retry_at = self._retry_at()
            rejected = retry_at is not None and self._clock() <= retry_at

        if rejected:
            async with self._lock.write():
                self._stats.total_requests += 1
                self._stats.rejected_requests += 1
            logger.debug(
                "Call rejected, circuit open",
                consecutive_failures=self._consecutive_failures,
            )
            raise CircuitOpenError(
                retry_at=retry_at,
                time_until_retry=max(0.0, retry_at - self._clock()),  # type: ignore[operator]
            )

        try:
            result = await self._call(ctx, *args, **kwargs)
        except Exception:
            async with self._lock.write():
                self._record_failure()
            raise

        async with self._lock.write():
            self._record_success()
        return result

    def _record_failure(self) -> None:
        """Record a failed attempt. Caller must hold the write lock."""
        now = self._clock()
        self._last_attempt = now
        self._consecutive_failures += 1
        self._stats.total_requests += 1
        self._stats.failed_requests += 1
        self._stats.last_failure_time = now

        if self._consecutive_failures == self._config.failure_threshold:
            self._stats.times_opened += 1
            logger.warning(
                "Circuit opened",
                consecutive_failures=self._consecutive_failures,
                backoff=self._config.backoff_base,
            )

    def _record_success(self) -> None:
        """Record a successful attempt. Caller must hold the write lock."""
        now = self._clock()
        if self._consecutive_failures >= self._config.failure_threshold:
            logger.info(
                "Circuit closed after trial call",
                consecutive_failures=self._consecutive_failures,
            )
        self._last_attempt = now
        self._consecutive_failures = 0
        self._stats.total_requests += 1
        self._stats.successful_requests += 1
        self._stats.last_success_time = now

    async def reset(self) -> None:
        """Reset circuit breaker to closed state."""
        async with self._lock.write():
            self._consecutive_failures = 0
            self._last_attempt = self._clock()

    def get_stats(self) -> CircuitStats:
        """Get circuit breaker statistics.

        Returns:
            CircuitStats with current statistics
        """
        return CircuitStats(
            total_requests=self._stats.total_requests,
            successful_requests=self._stats.successful_requests,
            failed_requests=self._stats.failed_requests,
            rejected_requests=self._stats.rejected_requests,
            times_opened=self._stats.times_opened,
            last_failure_time=self._stats.last_failure_time,
            last_success_time=self._stats.last_success_time,
        )

    def snapshot(self) -> CircuitBreakerSnapshot:
        """Get a snapshot of the breaker state."""
        return CircuitBreakerSnapshot(
            state=self.state.value,
            consecutive_failures=self._consecutive_failures,
            failure_threshold=self._config.failure_threshold,
            last_attempt=self._last_attempt,
            time_until_retry=self.get_time_until_retry(),
        )

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(state={self.state.value}, "
            f"failures={self._consecutive_failures}/{self._config.failure_threshold})"
        )


def breaker(
    call: Call | None = None,
    *,
    failure_threshold: int = 5,
    backoff_base: float = 2.0,
    clock: Callable[[], float] = time.monotonic,
) -> CircuitBreaker | Callable[[Call], CircuitBreaker]:
    """Wrap a call with a circuit breaker, or return a decorator.

    Args:
        call: The call to wrap
        failure_threshold: Consecutive failures that open the circuit
        backoff_base: Length of the first backoff window in seconds
        clock: Monotonic clock in seconds

    Returns:
        The wrapped call, or a decorator
    """
    config = CircuitBreakerConfig(
        failure_threshold=failure_threshold, backoff_base=backoff_base
    )

    def wrap(inner: Call) -> CircuitBreaker:
        return CircuitBreaker(inner, config, clock=clock)

    if call is None:
        return wrap
    return wrap(call)
