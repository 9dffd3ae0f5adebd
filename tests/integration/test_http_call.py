"""Integration tests for the httpx-backed call."""

import asyncio
import json

import httpx
import pytest
from pytest_httpx import HTTPXMock

from callguard.context import CancelContext
from callguard.errors import CircuitOpenError, ContextCancelledError, DeadlineExceededError
from callguard.resilience import breaker, retry
from callguard.transport import HttpCall, http_call

ITEMS_URL = "https://inventory.test/items"


class TestHttpCall:
    """Tests for HttpCall against a mocked service."""

    @pytest.mark.asyncio
    async def test_success(self, http_client, httpx_mock: HTTPXMock) -> None:
        """Test a 200 response is returned as-is."""
        httpx_mock.add_response(url=ITEMS_URL, json={"id": 42, "stock": 7})

        call = http_call(http_client, "GET", "/items")
        response = await call(CancelContext.background())

        assert response.status_code == 200
        assert response.json() == {"id": 42, "stock": 7}

    @pytest.mark.asyncio
    async def test_error_status_raises(self, http_client, httpx_mock: HTTPXMock) -> None:
        """Test error statuses surface as HTTPStatusError."""
        httpx_mock.add_response(url=ITEMS_URL, status_code=503)

        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await http_call(http_client, "GET", "/items")(CancelContext.background())
        assert exc_info.value.response.status_code == 503

    @pytest.mark.asyncio
    async def test_request_kwargs_merge(self, http_client, httpx_mock: HTTPXMock) -> None:
        """Test call-time keyword arguments override construction ones."""
        httpx_mock.add_response(method="POST", url=ITEMS_URL, status_code=201)

        call = HttpCall(http_client, "POST", "/items", json={"sku": "old"})
        await call(CancelContext.background(), json={"sku": "new"})

        request = httpx_mock.get_requests()[0]
        assert json.loads(request.content) == {"sku": "new"}

    @pytest.mark.asyncio
    async def test_deadline_becomes_request_timeout(
        self, http_client, httpx_mock: HTTPXMock
    ) -> None:
        """Test the context's remaining time is used as the request timeout."""
        httpx_mock.add_response(url=ITEMS_URL)

        await http_call(http_client, "GET", "/items")(CancelContext.with_timeout(2.0))

        timeout = httpx_mock.get_requests()[0].extensions["timeout"]
        assert 0 < timeout["read"] <= 2.0

    @pytest.mark.asyncio
    async def test_default_timeout_from_env(
        self, http_client, httpx_mock: HTTPXMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test CALLGUARD_HTTP_TIMEOUT applies without a deadline."""
        monkeypatch.setenv("CALLGUARD_HTTP_TIMEOUT", "4.5")
        httpx_mock.add_response(url=ITEMS_URL)

        await http_call(http_client, "GET", "/items")(CancelContext.background())

        assert httpx_mock.get_requests()[0].extensions["timeout"]["read"] == 4.5

    @pytest.mark.asyncio
    async def test_context_ends_first(self, http_client, httpx_mock: HTTPXMock) -> None:
        """Test a slow response is abandoned when the context ends."""

        async def slow_response(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1.0)
            return httpx.Response(200)

        httpx_mock.add_callback(slow_response, url=ITEMS_URL)

        ctx = CancelContext.background()
        asyncio.get_running_loop().call_later(0.02, ctx.cancel)
        with pytest.raises(ContextCancelledError) as exc_info:
            await http_call(http_client, "GET", "/items")(ctx)
        assert exc_info.value is ctx.err

    @pytest.mark.asyncio
    async def test_cancelled_context_sends_nothing(self, http_client) -> None:
        """Test an ended context fails before any request is made."""
        ctx = CancelContext.background()
        ctx.cancel()
        with pytest.raises(ContextCancelledError):
            await http_call(http_client, "GET", "/items")(ctx)

    @pytest.mark.asyncio
    async def test_transport_error_passes_through(
        self, http_client, httpx_mock: HTTPXMock
    ) -> None:
        """Test httpx transport errors reach the caller unchanged."""
        httpx_mock.add_exception(httpx.ConnectError("refused"), url=ITEMS_URL)

        with pytest.raises(httpx.ConnectError):
            await http_call(http_client, "GET", "/items")(CancelContext.background())


class TestGuardedHttpCall:
    """Tests for decorated HTTP calls."""

    @pytest.mark.asyncio
    async def test_retry_recovers_from_503(self, http_client, httpx_mock: HTTPXMock) -> None:
        """Test retry rides out transient server errors."""
        httpx_mock.add_response(url=ITEMS_URL, status_code=503)
        httpx_mock.add_response(url=ITEMS_URL, status_code=503)
        httpx_mock.add_response(url=ITEMS_URL, json={"stock": 3})

        guarded = retry(http_call(http_client, "GET", "/items"), max_retries=3, delay=0)
        response = await guarded(CancelContext.background())

        assert response.json() == {"stock": 3}
        assert len(httpx_mock.get_requests()) == 3

    @pytest.mark.asyncio
    async def test_breaker_stops_hammering(self, http_client, httpx_mock: HTTPXMock) -> None:
        """Test an open breaker keeps requests off a failing service."""
        for _ in range(2):
            httpx_mock.add_response(url=ITEMS_URL, status_code=500)

        guarded = breaker(http_call(http_client, "GET", "/items"), failure_threshold=2)
        ctx = CancelContext.background()
        for _ in range(2):
            with pytest.raises(httpx.HTTPStatusError):
                await guarded(ctx)
        with pytest.raises(CircuitOpenError):
            await guarded(ctx)

        assert len(httpx_mock.get_requests()) == 2

    @pytest.mark.asyncio
    async def test_deadline_across_retries(self, http_client, httpx_mock: HTTPXMock) -> None:
        """Test a deadline bounds the whole retry loop."""
        httpx_mock.add_response(url=ITEMS_URL, status_code=503)

        guarded = retry(http_call(http_client, "GET", "/items"), max_retries=5, delay=10.0)
        with pytest.raises(DeadlineExceededError):
            await guarded(CancelContext.with_timeout(0.05))
        assert len(httpx_mock.get_requests()) == 1
