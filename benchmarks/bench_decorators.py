#!/usr/bin/env python3
"""
Decorator overhead benchmarks.

Measures the per-call cost each decorator adds on the happy path.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

from callguard import CancelContext
from callguard.config import (
    BreakerSection,
    RetrySection,
    StackProfile,
    ThrottleSection,
    TimeoutSection,
)
from callguard.resilience import (
    CircuitBreaker,
    DebounceCache,
    DebounceConfig,
    Retry,
    RetryConfig,
    Throttle,
    ThrottleConfig,
    Timeout,
    TimeoutConfig,
    build_stack,
)


async def noop_call(ctx: CancelContext) -> str:
    """No-op call for overhead measurement."""
    return "result"


async def _measure(name: str, call: Callable[..., Any], iterations: int) -> dict[str, Any]:
    ctx = CancelContext.background()
    start = time.perf_counter()
    for _ in range(iterations):
        await call(ctx)
    elapsed = time.perf_counter() - start

    return {
        "name": name,
        "iterations": iterations,
        "elapsed_seconds": elapsed,
        "throughput_ops": iterations / elapsed,
        "latency_us": (elapsed / iterations) * 1_000_000,
    }


async def benchmark_baseline(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark the bare call."""
    return await _measure("Baseline (no decorators)", noop_call, iterations)


async def benchmark_retry(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark retry overhead (no retries triggered)."""
    return await _measure(
        "Retry (no retries)", Retry(noop_call, RetryConfig(max_retries=3)), iterations
    )


async def benchmark_timeout(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark timeout overhead (one task per call)."""
    guarded = Timeout(noop_call, TimeoutConfig(forward_context=True))
    return await _measure("Timeout", guarded, iterations)


async def benchmark_throttle(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark throttle overhead with a pool that never runs dry."""
    async with Throttle(noop_call, ThrottleConfig(max_tokens=iterations)) as guarded:
        return await _measure("Throttle", guarded, iterations)


async def benchmark_circuit_breaker(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark circuit breaker overhead (closed)."""
    return await _measure("CircuitBreaker (closed)", CircuitBreaker(noop_call), iterations)


async def benchmark_debounce_replay(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark debounce cache replays."""
    guarded = DebounceCache(noop_call, DebounceConfig(cooldown=3600))
    return await _measure("DebounceCache (replay)", guarded, iterations)


async def benchmark_full_stack(iterations: int = 5000) -> dict[str, Any]:
    """Benchmark the profile-built stack."""
    profile = StackProfile(
        name="bench",
        retry=RetrySection(max_retries=3),
        breaker=BreakerSection(failure_threshold=5),
        timeout=TimeoutSection(seconds=10.0),
        throttle=ThrottleSection(max_tokens=iterations),
    )
    async with build_stack(noop_call, profile) as guarded:
        return await _measure("Full stack", guarded, iterations)


async def benchmark_concurrent_stack(
    concurrency: int = 100, iterations: int = 1000
) -> dict[str, Any]:
    """Benchmark the full stack under concurrent callers."""
    profile = StackProfile(
        breaker=BreakerSection(failure_threshold=5),
        throttle=ThrottleSection(max_tokens=concurrency * iterations),
    )
    ctx = CancelContext.background()

    async with build_stack(noop_call, profile) as guarded:

        async def worker() -> None:
            for _ in range(iterations // concurrency):
                await guarded(ctx)

        start = time.perf_counter()
        await asyncio.gather(*(worker() for _ in range(concurrency)))
        elapsed = time.perf_counter() - start

    return {
        "name": f"Concurrent ({concurrency})",
        "iterations": iterations,
        "elapsed_seconds": elapsed,
        "throughput_ops": iterations / elapsed,
    }


async def run_benchmarks() -> None:
    """Run all benchmarks and print results."""
    print("=" * 60)
    print("Decorator Benchmarks")
    print("=" * 60)
    print()

    benchmarks = [
        benchmark_baseline,
        benchmark_retry,
        benchmark_timeout,
        benchmark_throttle,
        benchmark_circuit_breaker,
        benchmark_debounce_replay,
        benchmark_full_stack,
    ]

    baseline_latency = 0.0

    for bench in benchmarks:
        result = await bench()
        if result["name"].startswith("Baseline"):
            baseline_latency = result["latency_us"]

        overhead = ""
        if baseline_latency > 0 and not result["name"].startswith("Baseline"):
            overhead_us = result["latency_us"] - baseline_latency
            overhead = f" (+{overhead_us:.2f}µs)"

        print(f"{result['name']}:")
        print(f"  Throughput: {result['throughput_ops']:.0f} ops/sec")
        print(f"  Latency: {result['latency_us']:.2f} µs/op{overhead}")
        print()

    print("Concurrent Execution:")
    for concurrency in [10, 50, 100]:
        result = await benchmark_concurrent_stack(concurrency=concurrency)
        print(f"  {concurrency} parallel: {result['throughput_ops']:.0f} ops/sec")


if __name__ == "__main__":
    asyncio.run(run_benchmarks())
