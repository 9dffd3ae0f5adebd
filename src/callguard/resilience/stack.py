"""
Compose the typical decorator stack from a profile.

The stack is ``Retry(Breaker(Timeout(Throttle(call))))``. Sections missing
from the profile are skipped. A debounce section wraps the whole stack, so
replayed outcomes consume no tokens and trigger no retries.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from callguard.resilience.circuit_breaker import CircuitBreaker
from callguard.resilience.debounce import DebounceCache, DebounceDeferred
from callguard.resilience.retry import Retry
from callguard.resilience.signals import SignalsSnapshot
from callguard.resilience.throttle import Throttle
from callguard.resilience.timeout import Timeout
from callguard.telemetry.logger import bind_log_context, get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from callguard.call import Call
    from callguard.config.profile import StackProfile
    from callguard.context import CancelContext

logger = get_logger("callguard.stack")


class GuardedCall:
    """A call wrapped in the decorators a profile asks for.

    Keeps handles on the stateful layers for snapshots and shutdown.

    Example:
        >>> async with build_stack(fetch, profile) as guarded:
        ...     value = await guarded(ctx, item_id)
        ...     print(guarded.signals().to_dict())
    """

    def __init__(
        self,
        call: Call,
        profile: StackProfile,
        *,
        throttle: Throttle | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        debounce: DebounceCache | DebounceDeferred | None = None,
    ) -> None:
        self._call = call
        self._profile = profile
        self.throttle = throttle
        self.circuit_breaker = circuit_breaker
        self.debounce = debounce

    @property
    def name(self) -> str:
        """Call-site name from the profile."""
        return self._profile.name

    @property
    def profile(self) -> StackProfile:
        """The profile this stack was built from."""
        return self._profile

    @property
    def layers(self) -> list[str]:
        """Layer type names from outermost to the base call."""
        return [type(layer).__name__ for layer in _layers(self._call)]

    async def __call__(self, ctx: CancelContext, *args: Any, **kwargs: Any) -> Any:
        with bind_log_context(call_name=self._profile.name):
            return await self._call(ctx, *args, **kwargs)

    def signals(self) -> SignalsSnapshot:
        """Snapshot of every stateful layer."""
        return SignalsSnapshot.collect(
            throttle=self.throttle,
            circuit_breaker=self.circuit_breaker,
            debounce=self.debounce,
            name=self._profile.name,
        )

    async def aclose(self) -> None:
        """Stop background tasks owned by the stack."""
        if isinstance(self.debounce, DebounceDeferred):
            await self.debounce.aclose()
        if self.throttle is not None:
            await self.throttle.aclose()

    async def __aenter__(self) -> GuardedCall:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"GuardedCall(name={self._profile.name!r}, call={self._call!r})"


def build_stack(
    call: Call,
    profile: StackProfile,
    *,
    clock: Callable[[], float] = time.monotonic,
) -> GuardedCall:
    """Wrap a call in the decorators configured by ``profile``.

    Args:
        call: The base call
        profile: Stack profile
        clock: Monotonic clock for the breaker and debouncers

    Returns:
        GuardedCall with the composed call
    """
    guarded: Call = call
    throttle: Throttle | None = None
    circuit_breaker: CircuitBreaker | None = None
    debounce: DebounceCache | DebounceDeferred | None = None

    if profile.throttle is not None:
        throttle = Throttle(guarded, profile.throttle.to_config())
        guarded = throttle
    if profile.timeout is not None:
        guarded = Timeout(guarded, profile.timeout.to_config())
    if profile.breaker is not None:
        circuit_breaker = CircuitBreaker(guarded, profile.breaker.to_config(), clock=clock)
        guarded = circuit_breaker
    if profile.retry is not None:
        guarded = Retry(guarded, profile.retry.to_config())
    if profile.debounce is not None:
        config = profile.debounce.to_config()
        if profile.debounce.mode == "last":
            debounce = DebounceDeferred(guarded, config, clock=clock)
        else:
            debounce = DebounceCache(guarded, config, clock=clock)
        guarded = debounce

    result = GuardedCall(
        guarded,
        profile,
        throttle=throttle,
        circuit_breaker=circuit_breaker,
        debounce=debounce,
    )
    logger.debug("Built guarded call", name=profile.name, layers=result.layers)
    return result


def _layers(call: Any) -> list[Any]:
    """Decorator layers from outermost to the base call."""
    layers = []
    while call is not None:
        layers.append(call)
        call = getattr(call, "__wrapped__", None)
    return layers
