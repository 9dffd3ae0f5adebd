"""
Cancellation contexts.

Carries deadlines and cancellation signals into decorated calls.
"""

from callguard.context.cancel import (
    CancelContext,
    CancelHandle,
    CancelReason,
    CancelState,
    create_cancel_pair,
)

__all__ = [
    "CancelContext",
    "CancelHandle",
    "CancelReason",
    "CancelState",
    "create_cancel_pair",
]
