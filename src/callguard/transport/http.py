"""
HTTP calls backed by httpx.

Turns a request description into a Call, so it can be guarded like any
other call. The context's remaining time becomes the request timeout and
the request is abandoned as soon as the context ends.
"""

from __future__ import annotations

import asyncio
import os
from contextlib import suppress
from typing import TYPE_CHECKING, Any

from callguard.telemetry.logger import get_logger

if TYPE_CHECKING:
    import httpx

    from callguard.context import CancelContext

logger = get_logger("callguard.transport.http")

# Used when the context carries no deadline
_DEFAULT_TIMEOUT = 30.0


def _default_timeout() -> float:
    env_timeout = os.getenv("CALLGUARD_HTTP_TIMEOUT")
    if env_timeout:
        with suppress(ValueError):
            return float(env_timeout)
    return _DEFAULT_TIMEOUT


class HttpCall:
    """A single HTTP request shaped as a Call.

    Error statuses raise ``httpx.HTTPStatusError`` and transport failures
    raise the usual ``httpx`` exceptions; both pass through the decorators
    untouched. Keyword arguments given at call time are merged over the
    ones given at construction.

    Example:
        >>> async with httpx.AsyncClient(base_url="https://inventory") as client:
        ...     lookup = HttpCall(client, "GET", "/items")
        ...     guarded = retry(breaker(lookup, failure_threshold=3), max_retries=2)
        ...     response = await guarded(ctx, params={"id": 42})
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        *,
        timeout: float | None = None,
        **request_kwargs: Any,
    ) -> None:
        """Initialize HTTP call.

        Args:
            client: Shared httpx client
            method: HTTP method
            url: Request URL (relative to the client's base URL, if any)
            timeout: Request timeout when the context has no deadline
            **request_kwargs: Extra arguments for ``client.request``
        """
        self._client = client
        self._method = method
        self._url = url
        self._timeout = timeout if timeout is not None else _default_timeout()
        self._request_kwargs = request_kwargs
        self.__name__ = f"{method} {url}"

    async def __call__(self, ctx: CancelContext, **overrides: Any) -> httpx.Response:
        ctx.raise_if_cancelled()

        remaining = ctx.remaining()
        request = asyncio.ensure_future(
            self._client.request(
                self._method,
                self._url,
                timeout=remaining if remaining is not None else self._timeout,
                **{**self._request_kwargs, **overrides},
            )
        )
        waiter = asyncio.ensure_future(ctx.wait())
        abandoned = False
        try:
            await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not waiter.done():
                waiter.cancel()
            if not request.done():
                abandoned = True
                request.cancel()

        if abandoned:
            logger.debug(
                "Context ended before response, request abandoned",
                method=self._method,
                url=self._url,
            )
            raise waiter.result().with_traceback(None)

        response = request.result()
        if response.is_error:
            logger.debug(
                "HTTP error status",
                method=self._method,
                url=self._url,
                status=response.status_code,
            )
        response.raise_for_status()
        return response

    def __repr__(self) -> str:
        return f"HttpCall({self._method} {self._url})"


def http_call(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **request_kwargs: Any,
) -> HttpCall:
    """Create a Call that performs one HTTP request.

    Args:
        client: Shared httpx client
        method: HTTP method
        url: Request URL
        **request_kwargs: Extra arguments for ``client.request``

    Returns:
        HttpCall
    """
    return HttpCall(client, method, url, **request_kwargs)
