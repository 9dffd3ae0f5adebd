"""
The Call abstraction shared by every decorator.

A Call is an async callable taking a CancelContext as its first argument
(plus any arguments of its own) and either returning a value or raising.
Decorators take a Call and return a new Call with the same signature.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from types import TracebackType

    from callguard.context import CancelContext

T = TypeVar("T")

Call = Callable[..., Awaitable[Any]]
"""Type of a guarded call: ``async def call(ctx, *args, **kwargs)``."""


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """A matched value/error pair from one completed execution.

    Attributes:
        value: The returned value (None when the call raised)
        error: The raised exception (None when the call returned)
        traceback: The error's traceback as it was when captured
    """

    value: T | None = None
    error: BaseException | None = None
    traceback: TracebackType | None = field(default=None, compare=False, repr=False)

    @property
    def ok(self) -> bool:
        """Whether the execution succeeded."""
        return self.error is None

    def unwrap(self) -> T | None:
        """Return the value or re-raise the stored error.

        The error is raised on top of its captured traceback, so replaying
        one outcome many times does not keep growing it.
        """
        if self.error is not None:
            raise self.error.with_traceback(self.traceback)
        return self.value

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        """Create a successful outcome."""
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> Outcome[T]:
        """Create a failed outcome."""
        return cls(error=error, traceback=error.__traceback__)


async def capture(
    call: Callable[..., Awaitable[T]],
    ctx: CancelContext,
    *args: Any,
    **kwargs: Any,
) -> Outcome[T]:
    """Run a call and fold its result into an Outcome.

    ``asyncio.CancelledError`` is not an ``Exception`` and still propagates.

    Args:
        call: The call to run
        ctx: Cancellation context passed to the call
        *args: Positional arguments forwarded to the call
        **kwargs: Keyword arguments forwarded to the call

    Returns:
        Outcome holding the value or the raised exception
    """
    try:
        return Outcome.success(await call(ctx, *args, **kwargs))
    except Exception as e:
        return Outcome.failure(e)


def compose(
    call: Call,
    *decorators: Callable[[Call], Call],
) -> Call:
    """Apply decorators innermost-first.

    ``compose(call, a, b)`` is ``b(a(call))``.

    Example:
        >>> guarded = compose(
        ...     fetch,
        ...     lambda c: throttle(c, max_tokens=10, refill_amount=1, refill_period=1.0),
        ...     lambda c: breaker(c, failure_threshold=3),
        ...     lambda c: retry(c, max_retries=2, delay=0.5),
        ... )
    """
    for decorator in decorators:
        call = decorator(call)
    return call
