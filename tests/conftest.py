"""Root pytest fixtures for callguard tests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from callguard.context import CancelContext

if TYPE_CHECKING:
    from collections.abc import Callable


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CallRecorder:
    """Async call that records invocations and plays back scripted results.

    Each entry in ``script`` is either a value to return or an exception to
    raise; the last entry repeats once the script runs out.
    """

    def __init__(self, *script: object, delay: float = 0.0) -> None:
        self.script = list(script) or [None]
        self.delay = delay
        self.calls: list[tuple[tuple[object, ...], dict[str, object]]] = []
        self.contexts: list[CancelContext] = []
        self.__name__ = "recorded_call"

    @property
    def count(self) -> int:
        return len(self.calls)

    async def __call__(self, ctx: CancelContext, *args: object, **kwargs: object) -> object:
        self.contexts.append(ctx)
        self.calls.append((args, kwargs))
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.script[min(len(self.calls), len(self.script)) - 1]
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def clock() -> FakeClock:
    """A fake monotonic clock starting at t=1000."""
    return FakeClock()


@pytest.fixture
def ctx() -> CancelContext:
    """A fresh background context."""
    return CancelContext.background()


@pytest.fixture
def recorder() -> Callable[..., CallRecorder]:
    """Factory for scripted recording calls."""
    return CallRecorder
