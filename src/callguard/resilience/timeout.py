"""
Timeout for calls that cannot be cancelled themselves.

The slow call runs on an independent task (or executor thread, for blocking
functions) and is raced against the caller's CancelContext. If the context
wins, the caller gets the context's error right away and the slow call is
abandoned, not killed: it keeps running and eventually drops its outcome
into a single-slot holder that nobody reads.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from callguard.call import Outcome
from callguard.context import CancelContext
from callguard.errors import ConfigurationError
from callguard.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("callguard.timeout")


@dataclass
class TimeoutConfig:
    """Configuration for the timeout decorator.

    Attributes:
        seconds: Optional per-call budget; None relies on the caller's context
        forward_context: Pass the context to the slow call as first argument
    """

    seconds: float | None = None
    forward_context: bool = False

    def __post_init__(self) -> None:
        if self.seconds is not None and self.seconds <= 0:
            raise ConfigurationError(f"seconds must be > 0, got {self.seconds}")

    @classmethod
    def from_env(cls) -> TimeoutConfig:
        """Create configuration from environment variables."""
        seconds_str = os.getenv("CALLGUARD_TIMEOUT_SECONDS")
        return cls(seconds=float(seconds_str) if seconds_str else None)


def _is_async_callable(fn: Any) -> bool:
    if inspect.iscoroutinefunction(fn):
        return True
    return inspect.iscoroutinefunction(getattr(fn, "__call__", None))  # noqa: B004


def _deliver(slot: asyncio.Future[Outcome[Any]], done: asyncio.Future[Any]) -> None:
    """Move a finished task's outcome into the result slot without blocking."""
    if slot.done():
        return
    if done.cancelled():
        slot.set_result(Outcome.failure(asyncio.CancelledError()))
        return
    error = done.exception()
    if error is not None:
        slot.set_result(Outcome.failure(error))
    else:
        slot.set_result(Outcome.success(done.result()))


class Timeout:
    """Bound a slow call by racing it against the caller's context.

    Coroutine functions run as independent tasks; plain functions run on the
    event loop's default executor. Either way the slow call is never
    cancelled by this decorator.

    Example:
        >>> guarded = Timeout(legacy_lookup)
        >>> value = await guarded(CancelContext.with_timeout(2.0), "key")
    """

    def __init__(
        self,
        slow: Callable[..., Any],
        config: TimeoutConfig | None = None,
    ) -> None:
        """Initialize timeout decorator.

        Args:
            slow: Coroutine function or blocking function to bound
            config: Timeout configuration
        """
        self._slow = slow
        self._config = config or TimeoutConfig()
        self._is_async = _is_async_callable(slow)
        # Strong references to running slow calls; asyncio only keeps weak ones
        self._inflight: set[asyncio.Future[Any]] = set()
        functools.update_wrapper(self, slow, updated=())

    @property
    def abandoned_count(self) -> int:
        """Number of slow calls still running."""
        return len(self._inflight)

    def _start(
        self,
        loop: asyncio.AbstractEventLoop,
        slot: asyncio.Future[Outcome[Any]],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        if self._is_async:
            running: asyncio.Future[Any] = loop.create_task(self._slow(*args, **kwargs))
        else:
            running = loop.run_in_executor(
                None, functools.partial(self._slow, *args, **kwargs)
            )
        self._inflight.add(running)
        running.add_done_callback(self._inflight.discard)
        running.add_done_callback(functools.partial(_deliver, slot))

    async def __call__(self, ctx: CancelContext, *args: Any, **kwargs: Any) -> Any:
        derived = self._config.seconds is not None
        if derived:
            ctx = CancelContext.with_timeout(self._config.seconds, parent=ctx)  # type: ignore[arg-type]

        try:
            ctx.raise_if_cancelled()

            loop = asyncio.get_running_loop()
            slot: asyncio.Future[Outcome[Any]] = loop.create_future()
            call_args = (ctx, *args) if self._config.forward_context else args
            self._start(loop, slot, call_args, kwargs)

            waiter = asyncio.ensure_future(ctx.wait())
            try:
                await asyncio.wait({slot, waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                if not waiter.done():
                    waiter.cancel()

            if slot.done():
                return slot.result().unwrap()

            logger.debug(
                "Context ended before slow call finished, abandoning it",
                call=getattr(self._slow, "__name__", repr(self._slow)),
                abandoned=self.abandoned_count,
            )
            raise waiter.result().with_traceback(None)
        finally:
            if derived:
                ctx.cancel()

    def __repr__(self) -> str:
        return f"Timeout(seconds={self._config.seconds})"


def timeout(
    slow: Callable[..., Any] | None = None,
    *,
    seconds: float | None = None,
    forward_context: bool = False,
) -> Timeout | Callable[[Callable[..., Any]], Timeout]:
    """Wrap a slow call with a timeout, or return a decorator.

    Args:
        slow: Coroutine function or blocking function to bound
        seconds: Optional per-call budget on top of the caller's context
        forward_context: Pass the context to the slow call as first argument

    Returns:
        The wrapped call, or a decorator
    """
    config = TimeoutConfig(seconds=seconds, forward_context=forward_context)

    def wrap(inner: Callable[..., Any]) -> Timeout:
        return Timeout(inner, config)

    if slow is None:
        return wrap
    return wrap(slow)
