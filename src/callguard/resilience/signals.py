"""
Decorator state snapshots.

Point-in-time copies of the shared state each stateful decorator owns, for
health endpoints and tests. Snapshots are detached: mutating one never
touches the decorator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from callguard.resilience.circuit_breaker import CircuitBreaker
    from callguard.resilience.debounce import DebounceCache, DebounceDeferred
    from callguard.resilience.throttle import Throttle


@dataclass
class ThrottleSnapshot:
    """Snapshot of a throttle's token pool.

    Attributes:
        tokens: Tokens currently available
        max_tokens: Pool capacity
        refill_amount: Tokens added per refill tick
        refill_period: Seconds between refill ticks
        refill_started: Whether the refill task has been started
        rejected: Calls rejected since construction
    """

    tokens: int
    max_tokens: int
    refill_amount: int
    refill_period: float
    refill_started: bool = False
    rejected: int = 0

    @property
    def utilization(self) -> float:
        """Get utilization ratio (0.0 to 1.0)."""
        if self.max_tokens == 0:
            return 0.0
        return 1.0 - (self.tokens / self.max_tokens)

    @property
    def is_exhausted(self) -> bool:
        """Whether the next call would be rejected."""
        return self.tokens <= 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "tokens": self.tokens,
            "max_tokens": self.max_tokens,
            "refill_amount": self.refill_amount,
            "refill_period": self.refill_period,
            "refill_started": self.refill_started,
            "rejected": self.rejected,
            "utilization": self.utilization,
        }


@dataclass
class CircuitBreakerSnapshot:
    """Snapshot of circuit breaker state.

    Attributes:
        state: Current state (closed, open, half_open)
        consecutive_failures: Current consecutive failure count
        failure_threshold: Threshold for opening
        last_attempt: Monotonic time of the last completed attempt
        time_until_retry: Seconds left in the backoff window, if open
    """

    state: str
    consecutive_failures: int
    failure_threshold: int
    last_attempt: float
    time_until_retry: float | None = None

    @property
    def is_open(self) -> bool:
        """Check if circuit is open."""
        return self.state == "open"

    @property
    def is_closed(self) -> bool:
        """Check if circuit is closed."""
        return self.state == "closed"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "state": self.state,
            "consecutive_failures": self.consecutive_failures,
            "failure_threshold": self.failure_threshold,
            "last_attempt": self.last_attempt,
            "time_until_retry": self.time_until_retry,
        }


@dataclass
class DebounceSnapshot:
    """Snapshot of a debouncer.

    Attributes:
        variant: "cache" or "deferred"
        cooldown: Cooldown in seconds
        has_result: Whether a cached outcome exists
        cached_ok: Whether the cached outcome is a success (None if empty)
        executions: Underlying executions since construction
        polling: Whether a deferred poller is active
    """

    variant: str
    cooldown: float
    has_result: bool
    cached_ok: bool | None = None
    executions: int = 0
    polling: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "variant": self.variant,
            "cooldown": self.cooldown,
            "has_result": self.has_result,
            "cached_ok": self.cached_ok,
            "executions": self.executions,
            "polling": self.polling,
        }


@dataclass
class SignalsSnapshot:
    """Aggregated snapshot of a guarded call-site.

    Attributes:
        throttle: Throttle snapshot, if configured
        circuit_breaker: Breaker snapshot, if configured
        debounce: Debounce snapshot, if configured
        metadata: Extra fields supplied by the caller
    """

    throttle: ThrottleSnapshot | None = None
    circuit_breaker: CircuitBreakerSnapshot | None = None
    debounce: DebounceSnapshot | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_healthy(self) -> bool:
        """True when no configured component would currently reject a call."""
        if self.circuit_breaker is not None and self.circuit_breaker.is_open:
            return False
        return not (self.throttle is not None and self.throttle.is_exhausted)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {"healthy": self.is_healthy}
        if self.throttle is not None:
            result["throttle"] = self.throttle.to_dict()
        if self.circuit_breaker is not None:
            result["circuit_breaker"] = self.circuit_breaker.to_dict()
        if self.debounce is not None:
            result["debounce"] = self.debounce.to_dict()
        if self.metadata:
            result["metadata"] = self.metadata
        return result

    @classmethod
    def collect(
        cls,
        throttle: Throttle | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        debounce: DebounceCache | DebounceDeferred | None = None,
        **metadata: Any,
    ) -> SignalsSnapshot:
        """Collect snapshots from live decorators.

        Args:
            throttle: Optional throttle
            circuit_breaker: Optional circuit breaker
            debounce: Optional debouncer
            **metadata: Extra fields

        Returns:
            SignalsSnapshot
        """
        return cls(
            throttle=throttle.snapshot() if throttle else None,
            circuit_breaker=circuit_breaker.snapshot() if circuit_breaker else None,
            debounce=debounce.snapshot() if debounce else None,
            metadata=metadata,
        )
