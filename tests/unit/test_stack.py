"""Tests for profile-driven stack composition."""

import pytest

from callguard.config import (
    BreakerSection,
    DebounceSection,
    RetrySection,
    StackProfile,
    ThrottleSection,
    TimeoutSection,
)
from callguard.context import CancelContext
from callguard.errors import CircuitOpenError, RateLimitedError
from callguard.resilience import (
    CircuitBreaker,
    DebounceCache,
    DebounceDeferred,
    GuardedCall,
    Throttle,
    build_stack,
)
from callguard.telemetry import get_log_context

FULL_PROFILE = StackProfile(
    name="inventory",
    retry=RetrySection(max_retries=2, delay=0),
    breaker=BreakerSection(failure_threshold=5),
    timeout=TimeoutSection(seconds=1.0),
    throttle=ThrottleSection(max_tokens=10, refill_period=60),
)


class TestBuildStack:
    """Tests for build_stack."""

    @pytest.mark.asyncio
    async def test_layer_order(self, clock, recorder) -> None:
        """Test the stack is Retry(Breaker(Timeout(Throttle(call))))."""
        async with build_stack(recorder(), FULL_PROFILE, clock=clock) as guarded:
            assert isinstance(guarded, GuardedCall)
            assert guarded.layers == [
                "Retry",
                "CircuitBreaker",
                "Timeout",
                "Throttle",
                "CallRecorder",
            ]
            assert isinstance(guarded.throttle, Throttle)
            assert isinstance(guarded.circuit_breaker, CircuitBreaker)
            assert guarded.debounce is None

    @pytest.mark.asyncio
    async def test_debounce_wraps_everything(self, clock, recorder) -> None:
        """Test debounce is the outermost layer."""
        profile = FULL_PROFILE.model_copy(
            update={"debounce": DebounceSection(mode="first", cooldown=1.0)}
        )
        async with build_stack(recorder(), profile, clock=clock) as guarded:
            assert guarded.layers[0] == "DebounceCache"
            assert isinstance(guarded.debounce, DebounceCache)

    @pytest.mark.asyncio
    async def test_deferred_mode(self, recorder) -> None:
        """Test mode=last builds the deferred debouncer."""
        profile = StackProfile(debounce=DebounceSection(mode="last", cooldown=0.1))
        async with build_stack(recorder(), profile) as guarded:
            assert isinstance(guarded.debounce, DebounceDeferred)
            assert guarded.layers == ["DebounceDeferred", "CallRecorder"]

    @pytest.mark.asyncio
    async def test_empty_profile_is_passthrough(self, ctx, recorder) -> None:
        """Test a profile without sections leaves the call alone."""
        call = recorder("ok")
        async with build_stack(call, StackProfile()) as guarded:
            assert guarded.layers == ["CallRecorder"]
            assert await guarded(ctx, 1) == "ok"
        assert call.calls == [((1,), {})]

    @pytest.mark.asyncio
    async def test_retries_consume_tokens(self, ctx, clock, recorder) -> None:
        """Test every attempt passes through the throttle."""
        call = recorder(RuntimeError("a"), RuntimeError("b"), "ok")
        async with build_stack(call, FULL_PROFILE, clock=clock) as guarded:
            assert await guarded(ctx, "sku-1") == "ok"
            assert guarded.throttle.tokens == 7
            assert guarded.circuit_breaker.consecutive_failures == 0
        assert call.count == 3

    @pytest.mark.asyncio
    async def test_timeout_forwards_context(self, ctx, clock, recorder) -> None:
        """Test the wrapped call receives a deadline-bound child context."""
        call = recorder("ok")
        async with build_stack(call, FULL_PROFILE, clock=clock) as guarded:
            await guarded(ctx)
        forwarded = call.contexts[0]
        assert isinstance(forwarded, CancelContext)
        assert forwarded is not ctx
        assert forwarded.deadline is not None

    @pytest.mark.asyncio
    async def test_breaker_rejections_are_retried(self, ctx, clock, recorder) -> None:
        """Test retry sees breaker rejections as failures."""
        profile = StackProfile(
            retry=RetrySection(max_retries=3, delay=0),
            breaker=BreakerSection(failure_threshold=1),
        )
        call = recorder(RuntimeError("down"))
        async with build_stack(call, profile, clock=clock) as guarded:
            with pytest.raises(CircuitOpenError):
                await guarded(ctx)
        assert call.count == 1

    @pytest.mark.asyncio
    async def test_replays_skip_the_throttle(self, ctx, clock, recorder) -> None:
        """Test debounced replays consume no tokens."""
        profile = StackProfile(
            throttle=ThrottleSection(max_tokens=1, refill_period=60),
            debounce=DebounceSection(mode="first", cooldown=10),
        )
        call = recorder("ok")
        async with build_stack(call, profile, clock=clock) as guarded:
            for _ in range(5):
                assert await guarded(ctx) == "ok"
            assert guarded.throttle.tokens == 0

            clock.advance(11)
            with pytest.raises(RateLimitedError):
                await guarded(ctx)
        assert call.count == 1

    @pytest.mark.asyncio
    async def test_sets_log_context(self, ctx) -> None:
        """Test the call runs with the profile name in the log context."""
        seen: list[str | None] = []

        async def lookup(ctx: CancelContext) -> None:
            seen.append(get_log_context().call_name)

        async with build_stack(lookup, StackProfile(name="inventory")) as guarded:
            await guarded(ctx)

        assert seen == ["inventory"]
        assert get_log_context().call_name is None

    @pytest.mark.asyncio
    async def test_signals(self, ctx, clock, recorder) -> None:
        """Test signals() aggregates the stateful layers."""
        async with build_stack(recorder("ok"), FULL_PROFILE, clock=clock) as guarded:
            await guarded(ctx)
            data = guarded.signals().to_dict()

        assert data["healthy"] is True
        assert data["throttle"]["tokens"] == 9
        assert data["circuit_breaker"]["state"] == "closed"
        assert data["metadata"] == {"name": "inventory"}
        assert "debounce" not in data

    @pytest.mark.asyncio
    async def test_aclose_stops_refill(self, ctx, clock, recorder) -> None:
        """Test aclose stops the throttle's refill task."""
        guarded = build_stack(recorder(), FULL_PROFILE, clock=clock)
        await guarded(ctx)
        task = guarded.throttle._refill_task

        await guarded.aclose()
        assert task.done()
