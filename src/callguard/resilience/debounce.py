"""
Debounce: collapse bursts of calls into at most one execution per cooldown.

Two variants:
- DebounceCache: the first call of a burst executes, the rest replay its
  outcome until the cooldown (measured from completion) has passed.
- DebounceDeferred: calls during a burst return the last settled outcome and
  push the deadline out; the call executes once, on a background poller,
  after the burst has been quiet for a whole cooldown.
"""

from __future__ import annotations

import asyncio
import functools
import os
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from callguard.call import Outcome, capture
from callguard.context import CancelContext, CancelReason
from callguard.errors import ConfigurationError
from callguard.resilience.signals import DebounceSnapshot
from callguard.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from callguard.call import Call

logger = get_logger("callguard.debounce")

_Burst = tuple[CancelContext, tuple[Any, ...], dict[str, Any]]


@dataclass
class DebounceConfig:
    """Configuration for the debounce decorators.

    Attributes:
        cooldown: Minimum spacing between executions in seconds
        poll_interval: Poller wake-up interval for the deferred variant
    """

    cooldown: float = 1.0
    poll_interval: float = 0.05

    def __post_init__(self) -> None:
        if self.cooldown < 0:
            raise ConfigurationError(f"cooldown must be >= 0, got {self.cooldown}")
        if self.poll_interval <= 0:
            raise ConfigurationError(
                f"poll_interval must be > 0, got {self.poll_interval}"
            )

    @classmethod
    def from_env(cls) -> DebounceConfig:
        """Create configuration from environment variables."""
        return cls(
            cooldown=float(os.getenv("CALLGUARD_DEBOUNCE_COOLDOWN", "1.0")),
            poll_interval=float(os.getenv("CALLGUARD_DEBOUNCE_POLL", "0.05")),
        )


class DebounceCache:
    """Leading-edge debounce that replays the cached outcome.

    The lock is held across the call, so concurrent callers are serialized
    and a slow call extends the effective cooldown by its own latency.
    Arguments of replayed calls are ignored.

    Example:
        >>> guarded = DebounceCache(search, DebounceConfig(cooldown=0.1))
        >>> first = await guarded(ctx, "py")
        >>> second = await guarded(ctx, "pyt")  # replays ``first``
    """

    def __init__(
        self,
        call: Call,
        config: DebounceConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize cache debouncer.

        Args:
            call: The call to wrap
            config: Debounce configuration
            clock: Monotonic clock in seconds
        """
        self._call = call
        self._config = config or DebounceConfig()
        self._clock = clock
        self._lock = asyncio.Lock()

        # Zero means "already expired", so the first call always executes
        self._next_allowed = 0.0
        self._cached: Outcome[Any] | None = None
        self._executions = 0
        functools.update_wrapper(self, call, updated=())

    @property
    def cached(self) -> Outcome[Any] | None:
        """The outcome of the most recent execution, if any."""
        return self._cached

    async def __call__(self, ctx: CancelContext, *args: Any, **kwargs: Any) -> Any:
        async with self._lock:
            if self._cached is not None and self._clock() < self._next_allowed:
                return self._cached.unwrap()

            self._cached = await capture(self._call, ctx, *args, **kwargs)
            self._executions += 1
            self._next_allowed = self._clock() + self._config.cooldown
            return self._cached.unwrap()

    def snapshot(self) -> DebounceSnapshot:
        """Get a snapshot of the debouncer."""
        return DebounceSnapshot(
            variant="cache",
            cooldown=self._config.cooldown,
            has_result=self._cached is not None,
            cached_ok=self._cached.ok if self._cached is not None else None,
            executions=self._executions,
        )

    def __repr__(self) -> str:
        return f"DebounceCache(cooldown={self._config.cooldown})"


class DebounceDeferred:
    """Trailing-edge debounce that executes once the burst has settled.

    Every call moves the deadline to ``now + cooldown`` and returns the last
    settled outcome (None before the first execution). The first call after
    an idle period starts a poller, bound to that call's context and
    arguments, which executes the call once the deadline has passed. A call
    that arrives while the poller is executing is remembered, newest
    arguments winning, and settled as a new burst right after.

    Example:
        >>> guarded = DebounceDeferred(save_draft, DebounceConfig(cooldown=0.5))
        >>> for text in keystrokes:
        ...     await guarded(ctx, text)
        >>> outcome = await guarded.flush()
    """

    def __init__(
        self,
        call: Call,
        config: DebounceConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize deferred debouncer.

        Args:
            call: The call to wrap
            config: Debounce configuration
            clock: Monotonic clock in seconds
        """
        self._call = call
        self._config = config or DebounceConfig()
        self._clock = clock
        self._lock = asyncio.Lock()

        self._deadline = 0.0
        self._cached: Outcome[Any] | None = None
        self._polling = False
        self._executing = False
        self._pending: _Burst | None = None
        self._poller: asyncio.Task[None] | None = None
        self._lifetime = CancelContext.background()
        self._executions = 0
        functools.update_wrapper(self, call, updated=())

    @property
    def cached(self) -> Outcome[Any] | None:
        """The outcome of the most recent settled execution, if any."""
        return self._cached

    @property
    def polling(self) -> bool:
        """Whether a poller is currently waiting for the burst to settle."""
        return self._polling

    async def __call__(self, ctx: CancelContext, *args: Any, **kwargs: Any) -> Any:
        async with self._lock:
            self._deadline = self._clock() + self._config.cooldown
            if self._executing:
                # Newest call wins; it runs once the current execution is done
                self._pending = (ctx, args, kwargs)
            elif not self._polling:
                self._polling = True
                self._poller = asyncio.get_running_loop().create_task(
                    self._poll(ctx, args, kwargs)
                )
            previous = self._cached

        if previous is None:
            return None
        return previous.unwrap()

    async def _poll(
        self,
        ctx: CancelContext,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        logger.debug("Poller started", cooldown=self._config.cooldown)
        burst: _Burst | None = (ctx, args, kwargs)
        try:
            while burst is not None:
                burst = await self._settle(*burst)
        except asyncio.CancelledError:
            self._polling = False
            self._executing = False
            self._pending = None
            raise

    async def _settle(
        self,
        ctx: CancelContext,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> _Burst | None:
        """Wait out one burst and execute it.

        Returns:
            The call that arrived during execution, if any, to settle next
        """
        watch = CancelContext.with_cancel(ctx)

        def stop(_: CancelContext) -> None:
            watch.cancel(CancelReason.SHUTDOWN)

        self._lifetime.on_cancel(stop)
        try:
            while True:
                if not await watch.sleep(self._config.poll_interval):
                    async with self._lock:
                        # Shutdown leaves the cache as it was
                        if ctx.is_cancelled:
                            self._cached = Outcome.failure(ctx.err)  # type: ignore[arg-type]
                        self._polling = False
                    logger.debug("Poller stopped by cancellation", reason=str(watch.reason))
                    return None

                async with self._lock:
                    settled = self._clock() > self._deadline
                    if settled:
                        self._executing = True
                if settled:
                    break

            outcome = await capture(self._call, ctx, *args, **kwargs)
            async with self._lock:
                self._cached = outcome
                self._executions += 1
                self._executing = False
                pending, self._pending = self._pending, None
                if pending is None:
                    self._polling = False
            logger.debug("Poller executed call", ok=outcome.ok, rearmed=pending is not None)
            return pending
        finally:
            self._lifetime.remove_callback(stop)
            watch.cancel()

    async def flush(self) -> Outcome[Any] | None:
        """Wait for an active poller to finish.

        Returns:
            The cached outcome after the poller has settled
        """
        poller = self._poller
        if poller is not None and not poller.done():
            await poller
        return self._cached

    def snapshot(self) -> DebounceSnapshot:
        """Get a snapshot of the debouncer."""
        return DebounceSnapshot(
            variant="deferred",
            cooldown=self._config.cooldown,
            has_result=self._cached is not None,
            cached_ok=self._cached.ok if self._cached is not None else None,
            executions=self._executions,
            polling=self._polling,
        )

    async def aclose(self) -> None:
        """Stop any active poller and wait for it to exit.

        A poller stopped this way leaves the cached outcome untouched, so
        later callers never replay a shutdown error.
        """
        self._lifetime.cancel(CancelReason.SHUTDOWN)
        if self._poller is not None and not self._poller.done():
            await self._poller

    async def __aenter__(self) -> DebounceDeferred:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return (
            f"DebounceDeferred(cooldown={self._config.cooldown}, "
            f"polling={self._polling})"
        )


def debounce_first(
    call: Call | None = None,
    *,
    cooldown: float = 1.0,
    clock: Callable[[], float] = time.monotonic,
) -> DebounceCache | Callable[[Call], DebounceCache]:
    """Wrap a call with the cache debouncer, or return a decorator.

    Args:
        call: The call to wrap
        cooldown: Minimum spacing between executions in seconds
        clock: Monotonic clock in seconds

    Returns:
        The wrapped call, or a decorator
    """
    config = DebounceConfig(cooldown=cooldown)

    def wrap(inner: Call) -> DebounceCache:
        return DebounceCache(inner, config, clock=clock)

    if call is None:
        return wrap
    return wrap(call)


def debounce_last(
    call: Call | None = None,
    *,
    cooldown: float = 1.0,
    poll_interval: float = 0.05,
    clock: Callable[[], float] = time.monotonic,
) -> DebounceDeferred | Callable[[Call], DebounceDeferred]:
    """Wrap a call with the deferred debouncer, or return a decorator.

    Args:
        call: The call to wrap
        cooldown: Quiet period required before executing, in seconds
        poll_interval: Poller wake-up interval in seconds
        clock: Monotonic clock in seconds

    Returns:
        The wrapped call, or a decorator
    """
    config = DebounceConfig(cooldown=cooldown, poll_interval=poll_interval)

    def wrap(inner: Call) -> DebounceDeferred:
        return DebounceDeferred(inner, config, clock=clock)

    if call is None:
        return wrap
    return wrap(call)
