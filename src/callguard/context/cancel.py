"""
Cancellation contexts for decorated calls.

A CancelContext carries an optional monotonic deadline, a cancellation flag
settable by its owner, and the terminal error describing why it ended. Every
decorator observes the context it is handed and stops waiting as soon as the
context ends.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from callguard.errors import ContextCancelledError, DeadlineExceededError
from callguard.telemetry.logger import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("callguard.context")


class CancelReason(str, Enum):
    """Reasons for cancellation."""

    USER_REQUEST = "user_request"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    PARENT_CANCELLED = "parent_cancelled"
    SHUTDOWN = "shutdown"


@dataclass
class CancelState:
    """State of a cancellation context.

    Attributes:
        cancelled: Whether the context has ended
        reason: Reason for cancellation
        error: Terminal error, fixed at the moment of cancellation
        timestamp: Wall-clock time of cancellation
    """

    cancelled: bool = False
    reason: CancelReason | None = None
    error: ContextCancelledError | None = None
    timestamp: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class CancelContext:
    """Cancellation context passed to every call.

    Cancellation is one-way: once the context has ended it stays ended and
    ``err`` returns the same error object on every read. A context whose
    deadline has passed counts as cancelled even if nobody called ``cancel``.

    Example:
        >>> ctx = CancelContext.with_timeout(2.0)
        >>> try:
        ...     value = await guarded(ctx)
        ... except DeadlineExceededError:
        ...     print("gave up waiting")
    """

    def __init__(
        self,
        deadline: float | None = None,
        parent: CancelContext | None = None,
    ) -> None:
        """Initialize cancellation context.

        Args:
            deadline: Absolute deadline on the ``time.monotonic`` clock
            parent: Optional parent; this context ends when the parent does
        """
        self._state = CancelState()
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[CancelContext], Any]] = []
        self._parent = parent
        self._parent_callback: Callable[[CancelContext], Any] | None = None

        if parent is not None and parent.deadline is not None:
            deadline = (
                parent.deadline if deadline is None else min(deadline, parent.deadline)
            )
        self._deadline = deadline

        if parent is not None:
            self._parent_callback = self._on_parent_cancel
            parent.on_cancel(self._parent_callback)

    @classmethod
    def background(cls) -> CancelContext:
        """Create a context that never expires on its own."""
        return cls()

    @classmethod
    def with_timeout(
        cls, seconds: float, parent: CancelContext | None = None
    ) -> CancelContext:
        """Create a context that expires ``seconds`` from now.

        Args:
            seconds: Time budget in seconds
            parent: Optional parent context

        Returns:
            New child context
        """
        return cls(deadline=time.monotonic() + seconds, parent=parent)

    @classmethod
    def with_cancel(cls, parent: CancelContext | None = None) -> CancelContext:
        """Create a cancellable child of ``parent``."""
        return cls(parent=parent)

    def _on_parent_cancel(self, parent: CancelContext) -> None:
        err = parent.err
        if isinstance(err, DeadlineExceededError):
            self._finish(CancelReason.DEADLINE_EXCEEDED, DeadlineExceededError(
                CancelReason.DEADLINE_EXCEEDED
            ))
        else:
            self._finish(
                CancelReason.PARENT_CANCELLED,
                ContextCancelledError(CancelReason.PARENT_CANCELLED),
            )

    def _finish(
        self,
        reason: CancelReason,
        error: ContextCancelledError,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        if self._state.cancelled:
            return False

        self._state.cancelled = True
        self._state.reason = reason
        self._state.error = error
        self._state.timestamp = time.time()
        if metadata:
            self._state.metadata.update(metadata)

        self._event.set()

        if self._parent is not None and self._parent_callback is not None:
            self._parent.remove_callback(self._parent_callback)
            self._parent_callback = None

        for callback in list(self._callbacks):
            self._run_callback(callback)
        self._callbacks.clear()

        return True

    def _run_callback(self, callback: Callable[[CancelContext], Any]) -> None:
        try:
            result = callback(self)
            if asyncio.iscoroutine(result):
                _ = asyncio.ensure_future(result)  # noqa: RUF006
        except Exception:
            logger.exception("Cancellation callback failed")

    def cancel(
        self,
        reason: CancelReason = CancelReason.USER_REQUEST,
        **metadata: Any,
    ) -> bool:
        """Request cancellation.

        Args:
            reason: Reason for cancellation
            **metadata: Additional metadata

        Returns:
            True if cancellation was newly requested, False if already ended
        """
        if self.is_cancelled:
            return False
        if reason == CancelReason.DEADLINE_EXCEEDED:
            error: ContextCancelledError = DeadlineExceededError(reason)
        else:
            error = ContextCancelledError(reason)
        return self._finish(reason, error, metadata)

    @property
    def is_cancelled(self) -> bool:
        """Check whether the context has ended (cancelled or expired)."""
        if self._state.cancelled:
            return True
        if self._parent is not None and self._parent.is_cancelled:
            self._on_parent_cancel(self._parent)
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._finish(
                CancelReason.DEADLINE_EXCEEDED,
                DeadlineExceededError(CancelReason.DEADLINE_EXCEEDED),
            )
            return True
        return False

    @property
    def err(self) -> ContextCancelledError | None:
        """Terminal error, or None while the context is live."""
        if not self.is_cancelled:
            return None
        return self._state.error

    @property
    def reason(self) -> CancelReason | None:
        """Get cancellation reason."""
        if not self.is_cancelled:
            return None
        return self._state.reason

    @property
    def deadline(self) -> float | None:
        """Absolute deadline on the monotonic clock, if any."""
        return self._deadline

    @property
    def state(self) -> CancelState:
        """Get full cancellation state."""
        return self._state

    def remaining(self) -> float | None:
        """Seconds left until the deadline, or None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    async def wait(self) -> ContextCancelledError:
        """Wait until the context ends.

        Returns:
            The terminal error
        """
        while not self.is_cancelled:
            try:
                await asyncio.wait_for(self._event.wait(), timeout=self.remaining())
            except asyncio.TimeoutError:
                pass
        return self._state.error  # type: ignore[return-value]

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds unless the context ends first.

        Args:
            delay: Sleep duration in seconds

        Returns:
            True if the full delay elapsed, False if the context ended
        """
        if self.is_cancelled:
            return False
        try:
            await asyncio.wait_for(self.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return not self.is_cancelled
        return False

    def on_cancel(self, callback: Callable[[CancelContext], Any]) -> CancelContext:
        """Register a callback to be called on cancellation.

        Args:
            callback: Callback receiving this context

        Returns:
            Self for chaining
        """
        if self._state.cancelled:
            self._run_callback(callback)
        else:
            self._callbacks.append(callback)
        return self

    def remove_callback(self, callback: Callable[[CancelContext], Any]) -> None:
        """Unregister a callback added with ``on_cancel``."""
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def raise_if_cancelled(self) -> None:
        """Raise the terminal error if the context has ended.

        Raises:
            ContextCancelledError: If the context has ended
        """
        err = self.err
        if err is not None:
            # Shared by every caller; start each raise from a clean traceback
            raise err.with_traceback(None)

    def __enter__(self) -> CancelContext:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()

    def __repr__(self) -> str:
        return (
            f"CancelContext(cancelled={self._state.cancelled}, "
            f"deadline={self._deadline})"
        )


class CancelHandle:
    """Owner-side handle for cancelling a context.

    Lets the owner cancel while consumers only receive the context.

    Example:
        >>> handle, ctx = create_cancel_pair(timeout=5.0)
        >>> task = asyncio.create_task(guarded(ctx))
        >>> handle.cancel()
    """

    def __init__(self, context: CancelContext) -> None:
        """Initialize cancel handle.

        Args:
            context: Associated cancel context
        """
        self._context = context

    def cancel(
        self,
        reason: CancelReason = CancelReason.USER_REQUEST,
        **metadata: Any,
    ) -> bool:
        """Request cancellation.

        Args:
            reason: Reason for cancellation
            **metadata: Additional metadata

        Returns:
            True if cancellation was newly requested
        """
        return self._context.cancel(reason, **metadata)

    @property
    def is_cancelled(self) -> bool:
        """Check if the context has ended."""
        return self._context.is_cancelled


def create_cancel_pair(
    timeout: float | None = None,
    parent: CancelContext | None = None,
) -> tuple[CancelHandle, CancelContext]:
    """Create a cancel handle and context pair.

    Args:
        timeout: Optional timeout in seconds
        parent: Optional parent context

    Returns:
        Tuple of (CancelHandle, CancelContext)
    """
    if timeout is not None:
        context = CancelContext.with_timeout(timeout, parent=parent)
    else:
        context = CancelContext.with_cancel(parent)
    return CancelHandle(context), context
