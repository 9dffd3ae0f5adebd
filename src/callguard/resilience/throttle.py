"""
Throttle using a refillable token pool.

The pool starts full. Every call takes one token; a call finding the pool
empty is rejected with RateLimitedError without reaching the wrapped call.
A background task started on the first call tops the pool up by a fixed
amount every period.
"""

from __future__ import annotations

import asyncio
import functools
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from callguard.context import CancelContext, CancelReason
from callguard.errors import ConfigurationError, RateLimitedError
from callguard.resilience.signals import ThrottleSnapshot
from callguard.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from callguard.call import Call

logger = get_logger("callguard.throttle")


@dataclass
class ThrottleConfig:
    """Configuration for the throttle decorator.

    Attributes:
        max_tokens: Pool capacity, also the initial token count
        refill_amount: Tokens added on each refill tick
        refill_period: Seconds between refill ticks
        bind_to_caller: Also stop refilling when the context of the call that
            started the refill task ends
    """

    max_tokens: int = 10
    refill_amount: int = 1
    refill_period: float = 1.0
    bind_to_caller: bool = False

    def __post_init__(self) -> None:
        if self.max_tokens < 0:
            raise ConfigurationError(f"max_tokens must be >= 0, got {self.max_tokens}")
        if self.refill_amount < 0:
            raise ConfigurationError(
                f"refill_amount must be >= 0, got {self.refill_amount}"
            )
        if self.refill_period <= 0:
            raise ConfigurationError(
                f"refill_period must be > 0, got {self.refill_period}"
            )

    @classmethod
    def from_env(cls) -> ThrottleConfig:
        """Create configuration from environment variables."""
        return cls(
            max_tokens=int(os.getenv("CALLGUARD_THROTTLE_MAX", "10")),
            refill_amount=int(os.getenv("CALLGUARD_THROTTLE_REFILL", "1")),
            refill_period=float(os.getenv("CALLGUARD_THROTTLE_PERIOD", "1.0")),
        )


class Throttle:
    """Token pool rate limiter around a call.

    The refill task belongs to the throttle itself and runs until
    ``aclose()``. With ``bind_to_caller`` it also stops as soon as the
    context of the call that started it ends.

    Example:
        >>> async with Throttle(fetch, ThrottleConfig(max_tokens=3)) as guarded:
        ...     await guarded(ctx)
    """

    def __init__(self, call: Call, config: ThrottleConfig | None = None) -> None:
        """Initialize throttle.

        Args:
            call: The call to wrap
            config: Throttle configuration
        """
        self._call = call
        self._config = config or ThrottleConfig()
        self._lock = asyncio.Lock()

        # Token pool state
        self._tokens = self._config.max_tokens
        self._refill_started = False
        self._refill_task: asyncio.Task[None] | None = None
        self._lifetime = CancelContext.background()

        # Statistics
        self._rejected = 0
        functools.update_wrapper(self, call, updated=())

    @property
    def tokens(self) -> int:
        """Tokens currently available."""
        return self._tokens

    @property
    def refill_started(self) -> bool:
        """Whether the refill task has been started."""
        return self._refill_started

    @property
    def config(self) -> ThrottleConfig:
        """Get throttle configuration."""
        return self._config

    def _start_refill(self, caller_ctx: CancelContext) -> None:
        """Start the refill task. Caller must hold the lock."""
        self._refill_started = True
        if self._config.bind_to_caller:
            refill_ctx = CancelContext.with_cancel(caller_ctx)
            self._lifetime.on_cancel(
                lambda _: refill_ctx.cancel(CancelReason.SHUTDOWN)
            )
        else:
            refill_ctx = self._lifetime
        self._refill_task = asyncio.get_running_loop().create_task(
            self._refill_loop(refill_ctx)
        )

    async def _refill_loop(self, refill_ctx: CancelContext) -> None:
        logger.debug(
            "Refill task started",
            refill_amount=self._config.refill_amount,
            refill_period=self._config.refill_period,
        )
        try:
            while await refill_ctx.sleep(self._config.refill_period):
                async with self._lock:
                    self._tokens = min(
                        self._tokens + self._config.refill_amount,
                        self._config.max_tokens,
                    )
        finally:
            logger.debug("Refill task stopped", reason=str(refill_ctx.reason))

    async def __call__(self, ctx: CancelContext, *args: Any, **kwargs: Any) -> Any:
        async with self._lock:
            if not self._refill_started:
                self._start_refill(ctx)

            ctx.raise_if_cancelled()

            if self._tokens <= 0:
                self._rejected += 1
                logger.debug("Call rejected, token pool empty", rejected=self._rejected)
                raise RateLimitedError(max_tokens=self._config.max_tokens)

            self._tokens -= 1

        return await self._call(ctx, *args, **kwargs)

    def snapshot(self) -> ThrottleSnapshot:
        """Get a snapshot of the token pool."""
        return ThrottleSnapshot(
            tokens=self._tokens,
            max_tokens=self._config.max_tokens,
            refill_amount=self._config.refill_amount,
            refill_period=self._config.refill_period,
            refill_started=self._refill_started,
            rejected=self._rejected,
        )

    async def aclose(self) -> None:
        """Stop the refill task and wait for it to exit."""
        self._lifetime.cancel(CancelReason.SHUTDOWN)
        if self._refill_task is not None:
            await self._refill_task

    async def __aenter__(self) -> Throttle:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return (
            f"Throttle(tokens={self._tokens}/{self._config.max_tokens}, "
            f"refill={self._config.refill_amount}/{self._config.refill_period}s)"
        )


def throttle(
    call: Call | None = None,
    *,
    max_tokens: int = 10,
    refill_amount: int = 1,
    refill_period: float = 1.0,
    bind_to_caller: bool = False,
) -> Throttle | Callable[[Call], Throttle]:
    """Wrap a call with a throttle, or return a decorator.

    Args:
        call: The call to wrap
        max_tokens: Pool capacity
        refill_amount: Tokens added on each refill tick
        refill_period: Seconds between refill ticks
        bind_to_caller: Tie the refill task to the first caller's context too

    Returns:
        The wrapped call, or a decorator
    """
    config = ThrottleConfig(
        max_tokens=max_tokens,
        refill_amount=refill_amount,
        refill_period=refill_period,
        bind_to_caller=bind_to_caller,
    )

    def wrap(inner: Call) -> Throttle:
        return Throttle(inner, config)

    if call is None:
        return wrap
    return wrap(call)
