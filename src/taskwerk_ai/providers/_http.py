"""HTTP plumbing shared by adapters.

Stateless helpers only: each adapter owns its own ``httpx.AsyncClient``.
Every call carries a deadline; there are no automatic retries.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import httpx

from taskwerk_ai.errors import ProviderAPIError
from taskwerk_ai.providers._errors import raise_for_status, wrap_network_error

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Mapping

    from taskwerk_ai.config import Settings

DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


def build_timeout(settings: Settings | None) -> httpx.Timeout:
    """Translate Settings deadlines into an httpx.Timeout."""
    if settings is None:
        return DEFAULT_TIMEOUT
    return httpx.Timeout(settings.request_timeout_s, connect=settings.connect_timeout_s)


def make_client(
    base_url: str,
    *,
    headers: Mapping[str, str] | None = None,
    timeout: httpx.Timeout | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build an AsyncClient rooted at *base_url*."""
    return httpx.AsyncClient(
        base_url=base_url.rstrip("/") + "/",
        headers=dict(headers or {}),
        timeout=timeout or DEFAULT_TIMEOUT,
        transport=transport,
    )


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    provider: str,
    parse_error: Callable[[str], str],
    network_message: str,
    network_hint: str | None = None,
    payload: dict[str, Any] | None = None,
) -> Any:
    """Issue one request and return its decoded JSON body."""
    try:
        response = await client.request(method, path.lstrip("/"), json=payload)
    except httpx.TransportError as e:
        raise wrap_network_error(
            e, provider=provider, message=network_message, hint=network_hint
        ) from e
    await raise_for_status(response, provider=provider, parse_error=parse_error)
    try:
        return response.json()
    except ValueError as e:
        raise ProviderAPIError(
            f"{provider} returned a response that is not JSON",
            status_code=response.status_code,
            provider=provider,
        ) from e


@asynccontextmanager
async def open_stream(
    client: httpx.AsyncClient,
    path: str,
    payload: dict[str, Any],
    *,
    provider: str,
    parse_error: Callable[[str], str],
    network_message: str,
    network_hint: str | None = None,
) -> AsyncIterator[httpx.Response]:
    """POST *payload* and yield the response with its body still unread.

    The response is closed when the context exits, including when the
    consumer abandons the stream early or is cancelled.
    """
    try:
        async with client.stream("POST", path.lstrip("/"), json=payload) as response:
            await raise_for_status(response, provider=provider, parse_error=parse_error)
            yield response
    except httpx.TransportError as e:
        raise wrap_network_error(
            e, provider=provider, message=network_message, hint=network_hint
        ) from e
