"""
Integration test fixtures.

Shared fixtures for tests that drive real decorator stacks end to end.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest_asyncio

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

BASE_URL = "https://inventory.test"


@pytest_asyncio.fixture
async def http_client() -> AsyncIterator[httpx.AsyncClient]:
    """An httpx client pointed at the mocked inventory service."""
    async with httpx.AsyncClient(base_url=BASE_URL) as client:
        yield client
