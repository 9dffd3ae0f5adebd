"""
Base error classes for callguard.

Provides a layered error hierarchy:
- CallGuardError: Base class for all library errors
- ContextCancelledError: The governing context was cancelled
- DeadlineExceededError: The governing context passed its deadline
- RateLimitedError: Throttle rejected a call (token pool empty)
- CircuitOpenError: Circuit breaker rejected a call (backoff window)
- ConfigurationError: Invalid decorator parameters or profile files

Failures raised by the wrapped call itself are never wrapped in one of these
classes; they propagate as the original exception object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from callguard.context.cancel import CancelReason


@dataclass
class ErrorContext:
    """Structured error context for diagnostics."""

    details: dict[str, Any] = field(default_factory=dict)
    """Additional details about the error"""

    source: str | None = None
    """Error source (e.g., 'throttle', 'breaker', 'config')"""

    hint: str | None = None
    """Actionable hint for resolving the error"""

    def __str__(self) -> str:
        parts = []
        if self.source:
            parts.append(f"[{self.source}]")
        if self.hint:
            parts.append(f"(hint: {self.hint})")
        return " ".join(parts)


class CallGuardError(Exception):
    """Base class for all callguard errors.

    Attributes:
        message: Human-readable error message
        context: Optional structured error context
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
    ) -> None:
        self.message = message
        self.context = context or ErrorContext()
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the full error message."""
        ctx_str = str(self.context)
        if ctx_str:
            return f"{self.message} {ctx_str}"
        return self.message

    def with_hint(self, hint: str) -> CallGuardError:
        """Add a hint to this error."""
        self.context.hint = hint
        self.args = (self._format_message(),)
        return self


class ContextCancelledError(CallGuardError):
    """The governing cancellation context ended.

    This is the terminal error stored on a CancelContext. It is distinct from
    any failure produced by a wrapped call, so callers can tell "I stopped
    waiting" apart from "the call failed".
    """

    default_message = "context canceled"

    def __init__(
        self,
        reason: CancelReason | None = None,
        message: str | None = None,
    ) -> None:
        super().__init__(
            message or self.default_message,
            ErrorContext(source="context"),
        )
        self.reason = reason


class DeadlineExceededError(ContextCancelledError):
    """The governing context passed its deadline."""

    default_message = "context deadline exceeded"


class RateLimitedError(CallGuardError):
    """Raised by Throttle when the token pool is empty."""

    def __init__(
        self,
        message: str = "too many calls",
        *,
        max_tokens: int | None = None,
    ) -> None:
        ctx = ErrorContext(source="throttle")
        if max_tokens is not None:
            ctx.details["max_tokens"] = max_tokens
        super().__init__(message, ctx)
        self.max_tokens = max_tokens


class CircuitOpenError(CallGuardError):
    """Raised by the circuit breaker while it is inside its backoff window."""

    def __init__(
        self,
        message: str = "service unreachable",
        *,
        retry_at: float | None = None,
        time_until_retry: float | None = None,
    ) -> None:
        ctx = ErrorContext(source="breaker")
        if time_until_retry is not None:
            ctx.details["time_until_retry"] = time_until_retry
        super().__init__(message, ctx)
        self.retry_at = retry_at
        self.time_until_retry = time_until_retry


class ConfigurationError(CallGuardError):
    """Invalid decorator parameters or an unreadable profile.

    Raised when:
    - A decorator is constructed with out-of-range parameters
    - A profile file is missing or malformed
    - A profile fails schema validation
    """

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        path: str | None = None,
    ) -> None:
        ctx = context or ErrorContext(source="config")
        if path:
            ctx.details["path"] = path
        super().__init__(message, ctx)
        self.path = path
