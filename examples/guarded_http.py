#!/usr/bin/env python3
"""
Guarded HTTP example.

This example builds a retry/breaker/timeout/throttle stack around an HTTP
lookup from a YAML profile and prints the stack's signals after a few calls.

Usage:
    export INVENTORY_URL="https://inventory.example.com"
    python examples/guarded_http.py
"""

import asyncio
import os
from pathlib import Path

import httpx

from callguard import CancelContext, CallGuardError, build_stack, classify_error
from callguard.config import load_profile
from callguard.telemetry import configure_logging
from callguard.transport import http_call

PROFILES = Path(__file__).with_name("guards.yaml")


async def main() -> None:
    configure_logging(level="DEBUG", format="text")

    base_url = os.getenv("INVENTORY_URL", "https://httpbin.org")
    profile = load_profile(PROFILES, "inventory-lookup")

    async with httpx.AsyncClient(base_url=base_url) as client:
        lookup = http_call(client, "GET", "/get")
        async with build_stack(lookup, profile) as guarded:
            print(f"Stack: {' -> '.join(guarded.layers)}")
            print()

            for item_id in range(3):
                ctx = CancelContext.with_timeout(5.0)
                try:
                    response = await guarded(ctx, params={"id": item_id})
                    print(f"item {item_id}: HTTP {response.status_code}")
                except (CallGuardError, httpx.HTTPError) as e:
                    print(f"item {item_id}: {classify_error(e).value}: {e}")

            print()
            print("Signals:")
            for key, value in guarded.signals().to_dict().items():
                print(f"  {key}: {value}")


if __name__ == "__main__":
    asyncio.run(main())
