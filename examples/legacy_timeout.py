#!/usr/bin/env python3
"""
Timeout example.

Bounds a blocking function that cannot be interrupted. The caller gets the
deadline error on time; the blocking call is abandoned and finishes in the
background.

Usage:
    python examples/legacy_timeout.py
"""

import asyncio
import time

from callguard import CancelContext, DeadlineExceededError, retry, timeout


def legacy_lookup(key: str) -> str:
    """A blocking client call with no timeout of its own."""
    time.sleep(1.0)
    return key.upper()


async def main() -> None:
    guarded = retry(
        timeout(legacy_lookup, seconds=0.2),
        max_retries=1,
        delay=0.1,
    )

    start = time.monotonic()
    try:
        print(await guarded(CancelContext.background(), "sku-1"))
    except DeadlineExceededError as e:
        print(f"gave up after {time.monotonic() - start:.2f}s: {e}")


if __name__ == "__main__":
    asyncio.run(main())
