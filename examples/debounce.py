#!/usr/bin/env python3
"""
Debounce example.

Shows both debounce variants on a simulated burst of keystrokes:
- debounce_first: the first keystroke queries, the rest replay its result
- debounce_last: nothing is saved until typing pauses, then one save runs

Usage:
    python examples/debounce.py
"""

import asyncio

from callguard import CancelContext, debounce_first, debounce_last


async def suggest(ctx: CancelContext, prefix: str) -> list[str]:
    print(f"  -> querying suggestions for {prefix!r}")
    await asyncio.sleep(0.01)
    return [f"{prefix}thon", f"{prefix}torch"]


async def save_draft(ctx: CancelContext, text: str) -> int:
    print(f"  -> saving draft {text!r}")
    return len(text)


async def main() -> None:
    ctx = CancelContext.background()
    keystrokes = ["p", "py", "pyt", "pyth"]

    print("debounce_first (cooldown 100ms):")
    guarded_suggest = debounce_first(suggest, cooldown=0.1)
    for prefix in keystrokes:
        print(f"  {prefix!r}: {await guarded_suggest(ctx, prefix)}")
        await asyncio.sleep(0.02)
    print()

    print("debounce_last (cooldown 100ms):")
    async with debounce_last(save_draft, cooldown=0.1, poll_interval=0.02) as autosave:
        for text in keystrokes:
            print(f"  {text!r}: previous result {await autosave(ctx, text)}")
            await asyncio.sleep(0.02)
        outcome = await autosave.flush()
        print(f"  settled: {outcome}")


if __name__ == "__main__":
    asyncio.run(main())
