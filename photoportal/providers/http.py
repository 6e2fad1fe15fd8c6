from __future__ import annotations
from typing import Any

import httpx

from photoportal.core.errors import RequestTimeoutError, UpstreamError


async def send(
    method: str,
    url: str,
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
    **kwargs: Any,
) -> httpx.Response:
    """
    One request with its own client and timeout. Timeouts become
    RequestTimeoutError and connection failures UpstreamError; the status code is
    left for the caller, since every provider reads it differently.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
            return await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise RequestTimeoutError(f"request timed out after {timeout:g}s: {httpx.URL(url).host}") from e
    except httpx.HTTPError as e:
        raise UpstreamError(f"request failed: {e}") from e


def read_json(r: httpx.Response, expect: type | tuple = dict) -> Any:
    """
    Parsed body of a successful response. A body that is not JSON, or not of
    the `expect` shape, is an UpstreamError like any other bad answer.
    """
    try:
        data = r.json()
    except ValueError as e:
        raise UpstreamError(f"unreadable response body: {r.text[:100]!r}") from e
    if not isinstance(data, expect):
        raise UpstreamError(f"unexpected response shape: {type(data).__name__}")
    return data


def dict_entries(entries: Any) -> list:
    """Only the object entries of a listing; anything else is dropped."""
    if not isinstance(entries, list):
        return []
    return [e for e in entries if isinstance(e, dict)]
