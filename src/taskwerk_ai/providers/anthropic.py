"""Anthropic Messages API provider implementation."""

from __future__ import annotations

from dataclasses import replace
import json
import logging
from typing import TYPE_CHECKING, Any

from taskwerk_ai.config import CONFIGURE_HINT
from taskwerk_ai.errors import ConfigurationError, NetworkError, ProviderAPIError
from taskwerk_ai.providers._errors import match_error_rules
from taskwerk_ai.providers._http import make_client, open_stream, request_json
from taskwerk_ai.providers._stream import collect_stream, iter_sse_payloads
from taskwerk_ai.providers.base import ProviderCapabilities
from taskwerk_ai.providers.models import (
    CompletionResult,
    ConfigField,
    ConnectionStatus,
    Model,
    TextDelta,
    ToolCall,
    ToolCallDelta,
    Usage,
    UsageUpdate,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator, Sequence

    import httpx

    from taskwerk_ai.providers.models import (
        CompletionRequest,
        Message,
        StreamEvent,
        ToolSpec,
    )

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 2000
CONNECTION_CHECK_MODEL = "claude-3-haiku-20240307"

MODELS: tuple[Model, ...] = (
    Model(
        "claude-3-opus-20240229",
        "Claude 3 Opus",
        "Most capable model, best for complex tasks",
    ),
    Model("claude-3-sonnet-20240229", "Claude 3 Sonnet", "Balanced performance and speed"),
    Model(
        "claude-3-haiku-20240307",
        "Claude 3 Haiku",
        "Fastest model, best for simple tasks",
    ),
    Model("claude-2.1", "Claude 2.1", "Previous generation model"),
    Model("claude-2.0", "Claude 2.0", "Legacy model"),
)


def _blocks_for(message: Message) -> tuple[str, list[dict[str, Any]]]:
    """Map one normalized message to an Anthropic role and content blocks."""
    if message.role == "tool":
        return "user", [
            {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id or "",
                "content": message.content,
            }
        ]

    blocks: list[dict[str, Any]] = []
    if message.content:
        blocks.append({"type": "text", "text": message.content})
    if message.role == "assistant":
        for tc in message.tool_calls:
            try:
                tool_input = json.loads(tc.arguments) if tc.arguments else {}
            except ValueError:
                tool_input = {}
            blocks.append(
                {
                    "type": "tool_use",
                    "id": tc.id,
                    "name": tc.name,
                    "input": tool_input if isinstance(tool_input, dict) else {},
                }
            )
    return message.role, blocks


def _collapse(blocks: list[dict[str, Any]]) -> str | list[dict[str, Any]]:
    if all(b["type"] == "text" for b in blocks):
        return "\n\n".join(b["text"] for b in blocks)
    return blocks


def format_messages(
    messages: Sequence[Message],
) -> tuple[str | None, list[dict[str, Any]]]:
    """Split out the system prompt and enforce user/assistant alternation.

    System messages become the top-level ``system`` field. Consecutive turns
    from the same role are merged, the conversation is made to start and end
    with a user turn, and tool results travel as ``tool_result`` blocks in a
    user turn.
    """
    system_parts = [m.content for m in messages if m.role == "system" and m.content]

    turns: list[tuple[str, list[dict[str, Any]]]] = []
    for m in messages:
        if m.role == "system":
            continue
        role, blocks = _blocks_for(m)
        if not blocks:
            continue
        if turns and turns[-1][0] == role:
            turns[-1][1].extend(blocks)
        else:
            turns.append((role, blocks))

    formatted = [{"role": role, "content": _collapse(blocks)} for role, blocks in turns]
    if formatted and formatted[0]["role"] != "user":
        formatted.insert(0, {"role": "user", "content": "Continue the conversation"})
    if formatted and formatted[-1]["role"] != "user":
        formatted.append({"role": "user", "content": "Please respond"})

    system = "\n\n".join(system_parts) if system_parts else None
    return system, formatted


def to_tool_specs(tools: Sequence[ToolSpec]) -> list[dict[str, Any]]:
    return [
        {"name": t.name, "description": t.description, "input_schema": t.parameters}
        for t in tools
    ]


def build_payload(request: CompletionRequest) -> dict[str, Any]:
    system, messages = format_messages(request.messages)
    payload: dict[str, Any] = {
        "model": request.model,
        "messages": messages,
        "temperature": request.temperature,
        "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
        "stream": request.stream,
    }
    if system:
        payload["system"] = system
    if request.tools:
        payload["tools"] = to_tool_specs(request.tools)
    return payload


def _usage(raw: Any) -> Usage:
    if not isinstance(raw, dict):
        return Usage()
    return Usage(
        prompt_tokens=int(raw.get("input_tokens") or 0),
        completion_tokens=int(raw.get("output_tokens") or 0),
    )


def parse_response(data: Any) -> CompletionResult:
    """Parse a non-streaming Messages API response."""
    if not isinstance(data, dict):
        return CompletionResult()
    text: list[str] = []
    tool_calls: list[ToolCall] = []
    for block in data.get("content") or []:
        if not isinstance(block, dict):
            continue
        if block.get("type") == "text":
            text.append(str(block.get("text") or ""))
        elif block.get("type") == "tool_use" and block.get("name"):
            tool_calls.append(
                ToolCall(
                    id=str(block.get("id") or f"call_{len(tool_calls)}"),
                    name=str(block["name"]),
                    arguments=json.dumps(block.get("input") or {}),
                )
            )
    return CompletionResult(
        content="".join(text),
        tool_calls=tuple(tool_calls),
        usage=_usage(data.get("usage")),
    )


class AnthropicProvider:
    """Anthropic Claude provider (``x-api-key`` auth, SSE event stream)."""

    name = "anthropic"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize from a provider config mapping."""
        self.config = dict(config or {})
        self.base_url: str = self.config.get("base_url") or DEFAULT_BASE_URL
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(requires_api_key=True, model_discovery=False)

    def is_configured(self) -> bool:
        return bool(self.config.get("api_key"))

    def required_config(self) -> list[ConfigField]:
        return [
            ConfigField("api_key", "Anthropic API key (starts with sk-ant-)", required=True),
        ]

    def _get_client(self) -> httpx.AsyncClient:
        if not self.is_configured():
            raise ConfigurationError(
                "Anthropic provider not configured",
                hint=f"Set ANTHROPIC_API_KEY or ai.providers.anthropic.api_key. {CONFIGURE_HINT}",
            )
        if self._client is None:
            self._client = make_client(
                self.base_url,
                headers={
                    "x-api-key": str(self.config["api_key"]),
                    "anthropic-version": ANTHROPIC_VERSION,
                },
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def _post_messages(self, payload: dict[str, Any]) -> Any:
        return await request_json(
            self._get_client(),
            "POST",
            "messages",
            payload=payload,
            provider=self.name,
            parse_error=self.parse_error,
            network_message="Anthropic request failed",
            network_hint="Check your network connection.",
        )

    async def test_connection(self) -> ConnectionStatus:
        """Send a one-token completion to the smallest model."""
        if not self.is_configured():
            return ConnectionStatus(False, "API key not configured")
        try:
            await self._post_messages(
                {
                    "model": CONNECTION_CHECK_MODEL,
                    "messages": [{"role": "user", "content": "Hi"}],
                    "max_tokens": 1,
                }
            )
        except ProviderAPIError as e:
            return ConnectionStatus(False, e.raw_message or "Connection failed")
        except NetworkError as e:
            return ConnectionStatus(False, f"Connection error: {e}")
        return ConnectionStatus(True, "Connection successful")

    async def list_models(self) -> list[Model]:
        """Return the static model list once a key is configured."""
        if not self.is_configured():
            return []
        return list(MODELS)

    fetch_models = list_models

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        if request.stream:
            return await collect_stream(self.stream(request), request.on_chunk)
        return parse_response(await self._post_messages(build_payload(request)))

    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        if not request.stream:
            request = replace(request, stream=True)
        return self._stream_events(self._get_client(), build_payload(request))

    async def _stream_events(
        self, client: httpx.AsyncClient, payload: dict[str, Any]
    ) -> AsyncIterator[StreamEvent]:
        async with open_stream(
            client,
            "messages",
            payload,
            provider=self.name,
            parse_error=self.parse_error,
            network_message="Anthropic request failed",
            network_hint="Check your network connection.",
        ) as response:
            async for event in iter_sse_payloads(response.aiter_bytes()):
                if event.get("type") == "message_stop":
                    return
                for item in self._translate(event):
                    yield item

    def _translate(self, event: dict[str, Any]) -> Iterator[StreamEvent]:
        """Map one Anthropic stream event to zero or more stream events."""
        kind = event.get("type")
        index = event.get("index") if isinstance(event.get("index"), int) else 0

        if kind == "message_start":
            usage = _usage((event.get("message") or {}).get("usage"))
            yield UsageUpdate(usage.prompt_tokens, usage.completion_tokens)
        elif kind == "content_block_start":
            block = event.get("content_block") or {}
            if block.get("type") == "tool_use":
                yield ToolCallDelta(index=index, id=block.get("id"), name=block.get("name"))
            elif block.get("type") == "text" and block.get("text"):
                yield TextDelta(str(block["text"]))
        elif kind == "content_block_delta":
            delta = event.get("delta") or {}
            if delta.get("type") == "input_json_delta":
                yield ToolCallDelta(index=index, arguments=str(delta.get("partial_json") or ""))
            elif delta.get("text"):
                yield TextDelta(str(delta["text"]))
        elif kind == "message_delta":
            usage = _usage(event.get("usage"))
            yield UsageUpdate(usage.prompt_tokens, usage.completion_tokens)
        elif kind == "error":
            error = event.get("error") or {}
            raw = str(error.get("message") or error.get("type") or "Stream error")
            raise ProviderAPIError(
                self.parse_error(raw), provider=self.name, raw_message=raw
            )

    def parse_error(self, raw: str | BaseException) -> str:
        return match_error_rules(
            raw,
            (
                (
                    ("api_key", "api key", "x-api-key", "authentication"),
                    "Invalid API key. Please check your Anthropic API key.",
                ),
                (("rate_limit", "rate limit"), "Rate limit exceeded. Please try again later."),
                (("model",), "Invalid model selected. Please choose a valid Claude model."),
                (
                    ("connection refused", "econnrefused"),
                    f"Cannot connect to Anthropic at {self.base_url}.",
                ),
            ),
        )

    async def aclose(self) -> None:
        """Close the HTTP client if one was opened."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
