"""Incremental stream decoding shared by all adapters.

Bytes arrive in arbitrary chunks. ``iter_lines`` turns them into complete
lines, keeping any trailing partial line buffered until its newline shows
up. The envelope helpers then parse SSE ``data:`` frames or bare NDJSON and
skip anything that does not decode, since backends interleave keep-alives
and comments with real payloads.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import TYPE_CHECKING, Any

from taskwerk_ai.errors import StreamDecodeError
from taskwerk_ai.providers.models import (
    CompletionResult,
    TextDelta,
    ToolCall,
    ToolCallDelta,
    Usage,
    UsageUpdate,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator

    from taskwerk_ai.providers.models import ChunkCallback, StreamEvent

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield complete lines from a byte stream, without their terminators.

    Multi-byte UTF-8 sequences split across chunks are reassembled. A final
    line lacking a newline is yielded once the stream ends.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        lines = buffer.split("\n")
        buffer = lines.pop()
        for line in lines:
            yield line.removesuffix("\r")
    buffer += decoder.decode(b"", final=True)
    if buffer:
        yield buffer.removesuffix("\r")


def decode_json_line(text: str) -> dict[str, Any]:
    """Parse one JSON object, raising StreamDecodeError on anything else."""
    try:
        value = json.loads(text)
    except ValueError as e:
        raise StreamDecodeError(f"Malformed stream payload: {text[:80]!r}") from e
    if not isinstance(value, dict):
        raise StreamDecodeError(f"Stream payload is not an object: {text[:80]!r}")
    return value


async def iter_sse_payloads(
    chunks: AsyncIterable[bytes],
) -> AsyncIterator[dict[str, Any]]:
    """Yield decoded JSON objects from SSE ``data:`` frames.

    Stops at the literal ``[DONE]`` marker without parsing it. Lines that are
    not data frames (``event:``, comments, blanks) are ignored.
    """
    async for line in iter_lines(chunks):
        if not line.startswith(SSE_DATA_PREFIX):
            continue
        data = line[len(SSE_DATA_PREFIX) :].strip()
        if data == SSE_DONE:
            return
        if not data:
            continue
        try:
            yield decode_json_line(data)
        except StreamDecodeError as e:
            logger.debug("Skipping undecodable SSE line: %s", e)


async def iter_ndjson_payloads(
    chunks: AsyncIterable[bytes],
) -> AsyncIterator[dict[str, Any]]:
    """Yield decoded JSON objects from a newline-delimited JSON stream."""
    async for line in iter_lines(chunks):
        if not line.strip():
            continue
        try:
            yield decode_json_line(line)
        except StreamDecodeError as e:
            logger.debug("Skipping undecodable NDJSON line: %s", e)


async def collect_stream(
    events: AsyncIterator[StreamEvent],
    on_chunk: ChunkCallback | None = None,
) -> CompletionResult:
    """Fold stream events into a CompletionResult.

    Each text delta is appended to the content and handed to *on_chunk*
    immediately, so the concatenation of delivered chunks equals the final
    content.
    """
    parts: list[str] = []
    calls: dict[int, dict[str, Any]] = {}
    prompt_tokens = 0
    completion_tokens = 0

    try:
        async for event in events:
            if isinstance(event, TextDelta):
                if not event.text:
                    continue
                parts.append(event.text)
                if on_chunk is not None:
                    on_chunk(event.text)
            elif isinstance(event, ToolCallDelta):
                slot = calls.setdefault(
                    event.index, {"id": None, "name": None, "arguments": []}
                )
                if event.id:
                    slot["id"] = event.id
                if event.name:
                    slot["name"] = event.name
                if event.arguments:
                    slot["arguments"].append(event.arguments)
            elif isinstance(event, UsageUpdate):
                if event.prompt_tokens:
                    prompt_tokens = event.prompt_tokens
                if event.completion_tokens:
                    completion_tokens = event.completion_tokens
    finally:
        aclose = getattr(events, "aclose", None)
        if callable(aclose):
            await aclose()

    tool_calls: list[ToolCall] = []
    for index in sorted(calls):
        slot = calls[index]
        if not slot["name"]:
            logger.debug("Dropping streamed tool call %d without a name", index)
            continue
        tool_calls.append(
            ToolCall(
                id=slot["id"] or f"call_{index}",
                name=slot["name"],
                arguments="".join(slot["arguments"]) or "{}",
            )
        )

    return CompletionResult(
        content="".join(parts),
        tool_calls=tuple(tool_calls),
        usage=Usage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )
