"""
Stack profile models.

A profile describes which decorators guard a call-site and with which
parameters. Every section is optional; a missing section means the
corresponding decorator is left out of the stack.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from callguard.resilience.circuit_breaker import CircuitBreakerConfig
from callguard.resilience.debounce import DebounceConfig
from callguard.resilience.retry import RetryConfig
from callguard.resilience.throttle import ThrottleConfig
from callguard.resilience.timeout import TimeoutConfig


class RetrySection(BaseModel):
    """Retry parameters."""

    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    delay: float = Field(default=1.0, ge=0, description="Fixed delay between attempts in seconds")

    def to_config(self) -> RetryConfig:
        return RetryConfig(max_retries=self.max_retries, delay=self.delay)


class TimeoutSection(BaseModel):
    """Timeout parameters."""

    model_config = ConfigDict(extra="forbid")

    seconds: float | None = Field(
        default=None, gt=0, description="Per-call budget in seconds"
    )

    def to_config(self) -> TimeoutConfig:
        # Inside a stack the wrapped call is a regular call taking a context
        return TimeoutConfig(seconds=self.seconds, forward_context=True)


class ThrottleSection(BaseModel):
    """Throttle parameters."""

    model_config = ConfigDict(extra="forbid")

    max_tokens: int = Field(ge=0, description="Pool capacity")
    refill_amount: int = Field(default=1, ge=0, description="Tokens added per tick")
    refill_period: float = Field(default=1.0, gt=0, description="Seconds between ticks")
    bind_to_caller: bool = Field(
        default=False, description="Stop refilling when the first caller's context ends"
    )

    def to_config(self) -> ThrottleConfig:
        return ThrottleConfig(
            max_tokens=self.max_tokens,
            refill_amount=self.refill_amount,
            refill_period=self.refill_period,
            bind_to_caller=self.bind_to_caller,
        )


class BreakerSection(BaseModel):
    """Circuit breaker parameters."""

    model_config = ConfigDict(extra="forbid")

    failure_threshold: int = Field(ge=1, description="Consecutive failures that open the circuit")
    backoff_base: float = Field(default=2.0, gt=0, description="First backoff window in seconds")

    def to_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            backoff_base=self.backoff_base,
        )


class DebounceSection(BaseModel):
    """Debounce parameters."""

    model_config = ConfigDict(extra="forbid")

    mode: Literal["first", "last"] = Field(
        default="first", description="first: cache variant, last: deferred variant"
    )
    cooldown: float = Field(ge=0, description="Cooldown in seconds")
    poll_interval: float = Field(
        default=0.05, gt=0, description="Poller interval for the deferred variant"
    )

    def to_config(self) -> DebounceConfig:
        return DebounceConfig(cooldown=self.cooldown, poll_interval=self.poll_interval)


class StackProfile(BaseModel):
    """Decorator stack for one call-site.

    Example (YAML):
        name: inventory-lookup
        retry: {max_retries: 2, delay: 0.5}
        breaker: {failure_threshold: 3}
        timeout: {seconds: 2.0}
        throttle: {max_tokens: 10, refill_amount: 1, refill_period: 1.0}
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(default="default", description="Call-site name used in logs")
    retry: RetrySection | None = None
    breaker: BreakerSection | None = None
    timeout: TimeoutSection | None = None
    throttle: ThrottleSection | None = None
    debounce: DebounceSection | None = None

    @property
    def is_empty(self) -> bool:
        """Whether the profile configures no decorator at all."""
        return not any(
            (self.retry, self.breaker, self.timeout, self.throttle, self.debounce)
        )
