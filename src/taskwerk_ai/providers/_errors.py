"""Shared provider-side error helpers.

Adapters turn raw httpx failures into the typed errors in
``taskwerk_ai.errors`` here, so the per-backend modules only declare their
hint tables.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
import json
from typing import TYPE_CHECKING, Any

import httpx

from taskwerk_ai.errors import (
    NetworkError,
    ProviderAPIError,
    RateLimitError,
    _walk_exception_chain,
)

if TYPE_CHECKING:
    from collections.abc import Callable

#: ``(needles, message)`` pairs; the first rule with any needle found in the
#: lower-cased raw text wins.
ErrorRules = Sequence[tuple[tuple[str, ...], str]]


def error_text(raw: str | BaseException) -> str:
    """Return the backend's own wording for a failure."""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, ProviderAPIError):
        return raw.raw_message
    messages = [str(e) for e in _walk_exception_chain(raw) if str(e)]
    return " | ".join(messages) if messages else type(raw).__name__


def match_error_rules(raw: str | BaseException, rules: ErrorRules) -> str:
    """Map *raw* through *rules*; unmatched text passes through unchanged."""
    text = error_text(raw)
    lowered = text.lower()
    for needles, message in rules:
        if any(needle in lowered for needle in needles):
            return message
    return text or "Unknown error occurred"


def extract_retry_after_s(response: httpx.Response) -> float | None:
    """Read a ``Retry-After`` header expressed in seconds."""
    raw = response.headers.get("Retry-After")
    if not raw or not raw.strip():
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def extract_error_message(response: httpx.Response) -> str:
    """Pull the most specific error message out of a non-2xx response body.

    Handles ``{"error": {"message": ...}}`` (OpenAI, Anthropic, xAI),
    ``{"message": ...}`` (Mistral), ``{"error": "..."}`` (Ollama) and
    ``{"detail": ...}``; falls back to the raw body, then the reason phrase.
    """
    text = response.text
    body: Any = None
    if text:
        try:
            body = json.loads(text)
        except ValueError:
            body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message:
                return message
            kind = error.get("type")
            if isinstance(kind, str) and kind:
                return kind
        if isinstance(error, str) and error:
            return error
        for key in ("message", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if value:
                return json.dumps(value)

    if text and text.strip():
        return text.strip()[:500]
    return response.reason_phrase or f"HTTP {response.status_code}"


async def raise_for_status(
    response: httpx.Response,
    *,
    provider: str,
    parse_error: Callable[[str], str],
) -> None:
    """Raise ProviderAPIError (or RateLimitError) for non-2xx responses.

    Safe on streamed responses: the body is read before it is inspected.
    """
    if response.is_success:
        return
    await response.aread()
    raw = extract_error_message(response)
    err_cls: type[ProviderAPIError] = (
        RateLimitError if response.status_code == 429 else ProviderAPIError
    )
    raise err_cls(
        parse_error(raw),
        status_code=response.status_code,
        provider=provider,
        raw_message=raw,
        retry_after_s=extract_retry_after_s(response),
    )


def wrap_network_error(
    exc: BaseException,
    *,
    provider: str,
    message: str,
    hint: str | None = None,
) -> NetworkError:
    """Map a transport failure into NetworkError, keeping cancellation intact."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc
    if isinstance(exc, httpx.TimeoutException):
        return NetworkError(
            f"{message}: request timed out",
            hint=hint or "Raise TASKWERK_AI_TIMEOUT_S or try a smaller request.",
            provider=provider,
        )
    cause = str(exc)
    return NetworkError(
        f"{message}: {cause}" if cause else message,
        hint=hint,
        provider=provider,
    )
