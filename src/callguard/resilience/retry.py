"""
Retry with a fixed, cancellable delay between attempts.

Attempts are strictly sequential. The delay between attempts is observed
through the caller's CancelContext, so cancelling the context stops the
retry loop immediately with the context's own error.
"""

from __future__ import annotations

import functools
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from callguard.errors import ConfigurationError
from callguard.telemetry.logger import bind_log_context, get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from callguard.call import Call
    from callguard.context import CancelContext

logger = get_logger("callguard.retry")


@dataclass
class RetryConfig:
    """Configuration for the retry decorator.

    Attributes:
        max_retries: Maximum number of retry attempts (0 = no retries)
        delay: Fixed delay between attempts in seconds
    """

    max_retries: int = 3
    delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError(
                f"max_retries must be >= 0, got {self.max_retries}"
            )
        if self.delay < 0:
            raise ConfigurationError(f"delay must be >= 0, got {self.delay}")

    @classmethod
    def from_env(cls) -> RetryConfig:
        """Create configuration from environment variables."""
        return cls(
            max_retries=int(os.getenv("CALLGUARD_RETRY_MAX", "3")),
            delay=float(os.getenv("CALLGUARD_RETRY_DELAY", "1.0")),
        )

    @classmethod
    def no_retry(cls) -> RetryConfig:
        """Create a config that disables retries."""
        return cls(max_retries=0)


def _retry_everything(error: Exception) -> bool:
    return True


class Retry:
    """Re-invoke a failing call up to ``max_retries`` times.

    A call that always fails is invoked exactly ``max_retries + 1`` times and
    its last exception is re-raised unchanged. If the context ends during the
    delay, the context's error is raised instead and no further attempts are
    made.

    Example:
        >>> guarded = Retry(fetch, RetryConfig(max_retries=3, delay=0.5))
        >>> value = await guarded(ctx)
    """

    def __init__(
        self,
        call: Call,
        config: RetryConfig | None = None,
        *,
        retry_on: Callable[[Exception], bool] | None = None,
        on_retry: Callable[[int, Exception, float], None] | None = None,
    ) -> None:
        """Initialize retry decorator.

        Args:
            call: The call to wrap
            config: Retry configuration
            retry_on: Predicate deciding whether an error is worth retrying
            on_retry: Optional callback called before each retry
        """
        self._call = call
        self._config = config or RetryConfig()
        self._retry_on = retry_on or _retry_everything
        self._on_retry = on_retry
        functools.update_wrapper(self, call, updated=())

    @property
    def config(self) -> RetryConfig:
        """Get retry configuration."""
        return self._config

    async def __call__(self, ctx: CancelContext, *args: Any, **kwargs: Any) -> Any:
        attempt = 0
        delay = self._config.delay
        while True:
            try:
                with bind_log_context(attempt=attempt + 1):
                    return await self._call(ctx, *args, **kwargs)
            except Exception as e:
                if attempt >= self._config.max_retries or not self._retry_on(e):
                    raise

                attempt += 1
                logger.warning(
                    f"Attempt {attempt} failed, retrying in {delay}s",
                    attempt=attempt,
                    delay=delay,
                    error=repr(e),
                )
                if self._on_retry:
                    self._on_retry(attempt, e, delay)

            # Outside the handler, so the shared context error gets no __context__
            if not await ctx.sleep(delay):
                raise ctx.err.with_traceback(None) from None  # type: ignore[union-attr]

    def __repr__(self) -> str:
        return (
            f"Retry(max_retries={self._config.max_retries}, "
            f"delay={self._config.delay})"
        )


def retry(
    call: Call | None = None,
    *,
    max_retries: int = 3,
    delay: float = 1.0,
    retry_on: Callable[[Exception], bool] | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> Retry | Callable[[Call], Retry]:
    """Wrap a call with retry, or return a decorator when ``call`` is omitted.

    Args:
        call: The call to wrap
        max_retries: Maximum number of retry attempts
        delay: Fixed delay between attempts in seconds
        retry_on: Predicate deciding whether an error is worth retrying
        on_retry: Optional callback called before each retry

    Returns:
        The wrapped call, or a decorator

    Example:
        >>> @retry(max_retries=2, delay=0.1)
        ... async def fetch(ctx):
        ...     ...
    """
    config = RetryConfig(max_retries=max_retries, delay=delay)

    def wrap(inner: Call) -> Retry:
        return Retry(inner, config, retry_on=retry_on, on_retry=on_retry)

    if call is None:
        return wrap
    return wrap(call)
