"""Wire translation for OpenAI-shaped ``/chat/completions`` backends.

OpenAI, xAI Grok, Mistral and LM Studio speak the same request and stream
format. The translation is plain functions over an immutable ``ChatWire``
profile; ``ChatCompletionsProvider`` wires them to a lazily built client so
each backend only declares its identity, headers, model tables and error
rules.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import json
import logging
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

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
    from collections.abc import AsyncIterator, Callable, Iterator, Sequence

    import httpx

    from taskwerk_ai.providers._errors import ErrorRules
    from taskwerk_ai.providers.models import (
        CompletionRequest,
        Message,
        StreamEvent,
        ToolSpec,
    )

logger = logging.getLogger(__name__)

CHAT_PATH = "chat/completions"
MODELS_PATH = "models"


@dataclass(frozen=True)
class ChatWire:
    """Per-backend knobs for the shared chat-completions protocol."""

    provider: str
    default_max_tokens: int = 8192
    #: Ask for a trailing usage chunk (``stream_options.include_usage``).
    stream_usage: bool = False
    #: Send the tool name on ``tool`` messages.
    tool_message_name: bool = False
    network_message: str = "Request failed"
    network_hint: str | None = None


def to_chat_messages(
    messages: Sequence[Message], *, tool_message_name: bool = False
) -> list[dict[str, Any]]:
    """Convert normalized messages into chat-completions message dicts."""
    out: list[dict[str, Any]] = []
    for m in messages:
        if m.role == "tool":
            item: dict[str, Any] = {
                "role": "tool",
                "tool_call_id": m.tool_call_id or "",
                "content": m.content,
            }
            if tool_message_name and m.name:
                item["name"] = m.name
            out.append(item)
            continue

        item = {"role": m.role, "content": m.content}
        if m.role == "assistant" and m.tool_calls:
            item["content"] = m.content or None
            item["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments},
                }
                for tc in m.tool_calls
            ]
        out.append(item)
    return out


def to_tool_specs(tools: Sequence[ToolSpec]) -> list[dict[str, Any]]:
    """Convert ToolSpecs into ``{"type": "function", ...}`` entries."""
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameters,
            },
        }
        for t in tools
    ]


def build_chat_payload(request: CompletionRequest, wire: ChatWire) -> dict[str, Any]:
    """Build the JSON body for one chat-completions call."""
    payload: dict[str, Any] = {
        "model": request.model,
        "messages": to_chat_messages(
            request.messages, tool_message_name=wire.tool_message_name
        ),
        "temperature": request.temperature,
        "max_tokens": request.max_tokens or wire.default_max_tokens,
        "stream": request.stream,
    }
    if request.tools:
        payload["tools"] = to_tool_specs(request.tools)
    if request.stream and wire.stream_usage:
        payload["stream_options"] = {"include_usage": True}
    return payload


def _arguments_text(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    return json.dumps(raw)


def _content_text(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list):
        return "".join(
            str(part.get("text", ""))
            for part in raw
            if isinstance(part, dict) and part.get("type", "text") == "text"
        )
    return ""


def parse_usage(raw: Any) -> Usage:
    """Normalize a ``usage`` object; absent fields count as zero."""
    if not isinstance(raw, dict):
        return Usage()
    return Usage(
        prompt_tokens=int(raw.get("prompt_tokens") or 0),
        completion_tokens=int(raw.get("completion_tokens") or 0),
    )


def parse_chat_response(data: Any) -> CompletionResult:
    """Parse a non-streaming chat-completions response."""
    if not isinstance(data, dict):
        return CompletionResult()
    choices = data.get("choices") or []
    message: dict[str, Any] = {}
    if choices and isinstance(choices[0], dict):
        message = choices[0].get("message") or {}

    tool_calls: list[ToolCall] = []
    for i, tc in enumerate(message.get("tool_calls") or []):
        if not isinstance(tc, dict):
            continue
        fn = tc.get("function") or {}
        name = fn.get("name")
        if not isinstance(name, str) or not name:
            continue
        tool_calls.append(
            ToolCall(
                id=str(tc.get("id") or f"call_{i}"),
                name=name,
                arguments=_arguments_text(fn.get("arguments")) or "{}",
            )
        )

    return CompletionResult(
        content=_content_text(message.get("content")),
        tool_calls=tuple(tool_calls),
        usage=parse_usage(data.get("usage")),
    )


def chunk_events(chunk: dict[str, Any]) -> Iterator[StreamEvent]:
    """Translate one streamed chunk into stream events."""
    for choice in chunk.get("choices") or []:
        if not isinstance(choice, dict):
            continue
        delta = choice.get("delta") or {}
        text = _content_text(delta.get("content"))
        if text:
            yield TextDelta(text)
        for i, tc in enumerate(delta.get("tool_calls") or []):
            if not isinstance(tc, dict):
                continue
            fn = tc.get("function") or {}
            index = tc.get("index")
            yield ToolCallDelta(
                index=index if isinstance(index, int) else i,
                id=tc.get("id"),
                name=fn.get("name"),
                arguments=_arguments_text(fn.get("arguments")),
            )
    usage = chunk.get("usage")
    if isinstance(usage, dict):
        parsed = parse_usage(usage)
        yield UsageUpdate(parsed.prompt_tokens, parsed.completion_tokens)


async def chat_complete(
    client: httpx.AsyncClient,
    request: CompletionRequest,
    wire: ChatWire,
    parse_error: Callable[[str], str],
) -> CompletionResult:
    """Run one non-streaming chat completion."""
    data = await request_json(
        client,
        "POST",
        CHAT_PATH,
        payload=build_chat_payload(request, wire),
        provider=wire.provider,
        parse_error=parse_error,
        network_message=wire.network_message,
        network_hint=wire.network_hint,
    )
    return parse_chat_response(data)


async def chat_stream(
    client: httpx.AsyncClient,
    request: CompletionRequest,
    wire: ChatWire,
    parse_error: Callable[[str], str],
) -> AsyncIterator[StreamEvent]:
    """Stream one chat completion as events, ending at ``[DONE]``."""
    if not request.stream:
        request = replace(request, stream=True)
    async with open_stream(
        client,
        CHAT_PATH,
        build_chat_payload(request, wire),
        provider=wire.provider,
        parse_error=parse_error,
        network_message=wire.network_message,
        network_hint=wire.network_hint,
    ) as response:
        async for chunk in iter_sse_payloads(response.aiter_bytes()):
            for event in chunk_events(chunk):
                yield event


async def fetch_model_ids(
    client: httpx.AsyncClient,
    wire: ChatWire,
    parse_error: Callable[[str], str],
) -> list[str]:
    """Return model ids from ``GET /models``."""
    data = await request_json(
        client,
        "GET",
        MODELS_PATH,
        provider=wire.provider,
        parse_error=parse_error,
        network_message=wire.network_message,
        network_hint=wire.network_hint,
    )
    entries = data.get("data") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        return []
    return [
        str(entry["id"])
        for entry in entries
        if isinstance(entry, dict) and entry.get("id")
    ]


T = TypeVar("T")


def first_match(model_id: str, table: Sequence[tuple[str, T]], default: T) -> T:
    """Return the value of the first keyword contained in *model_id*."""
    lowered = model_id.lower()
    for keyword, value in table:
        if keyword in lowered:
            return value
    return default


class ChatCompletionsProvider:
    """Adapter base for backends that speak ``/chat/completions``.

    Subclasses set the class attributes and override ``select_models`` and
    ``error_rules``; the HTTP client is built on first use and reused until
    ``aclose``.
    """

    name: ClassVar[str]
    display_name: ClassVar[str]
    default_base_url: ClassVar[str]
    config_fields: ClassVar[tuple[ConfigField, ...]] = ()
    #: Credential variable named in the missing-key hint; ``None`` means keyless.
    api_key_env: ClassVar[str | None] = None
    stream_usage: ClassVar[bool] = False
    tool_message_name: ClassVar[bool] = False

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize from a provider config mapping."""
        self.config = dict(config or {})
        self.base_url: str = self.config.get("base_url") or self.default_base_url
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._wire = self._build_wire()

    def _build_wire(self) -> ChatWire:
        return ChatWire(
            provider=self.name,
            stream_usage=self.stream_usage,
            tool_message_name=self.tool_message_name,
            network_message=f"{self.display_name} request failed",
            network_hint=f"Check your network connection and the {self.display_name} base_url.",
        )

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(requires_api_key=self.api_key_env is not None)

    def is_configured(self) -> bool:
        return self.api_key_env is None or bool(self.config.get("api_key"))

    def required_config(self) -> list[ConfigField]:
        return list(self.config_fields)

    def _headers(self) -> dict[str, str]:
        if self.api_key_env is None:
            return {}
        return {"Authorization": f"Bearer {self.config['api_key']}"}

    def _get_client(self) -> httpx.AsyncClient:
        if not self.is_configured():
            raise ConfigurationError(
                f"{self.display_name} provider not configured",
                hint=f"Set {self.api_key_env} or ai.providers.{self.name}.api_key. {CONFIGURE_HINT}",
            )
        if self._client is None:
            self._client = make_client(
                self.base_url,
                headers=self._headers(),
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def _model_ids(self) -> list[str]:
        return await fetch_model_ids(self._get_client(), self._wire, self.parse_error)

    async def test_connection(self) -> ConnectionStatus:
        """Check ``GET /models``."""
        if not self.is_configured():
            return ConnectionStatus(False, "API key not configured")
        try:
            await self._model_ids()
        except ProviderAPIError as e:
            return ConnectionStatus(False, e.raw_message or "Connection failed")
        except NetworkError as e:
            return ConnectionStatus(False, f"Connection error: {e}")
        return ConnectionStatus(True, "Connection successful")

    async def fetch_models(self) -> list[Model]:
        """List models, raising on transport or API failure."""
        return self.select_models(await self._model_ids())

    async def list_models(self) -> list[Model]:
        """List models; failures degrade to an empty list."""
        if not self.is_configured():
            return []
        try:
            return await self.fetch_models()
        except (NetworkError, ProviderAPIError) as e:
            logger.debug("%s model listing failed: %s", self.display_name, e)
            return []

    def select_models(self, ids: Sequence[str]) -> list[Model]:
        """Filter and rank raw model ids."""
        return [Model(id=model_id, name=model_id) for model_id in ids]

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Run one completion, streaming when ``request.stream`` is set."""
        if request.stream:
            return await collect_stream(self.stream(request), request.on_chunk)
        return await chat_complete(
            self._get_client(), request, self._wire, self.parse_error
        )

    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        return chat_stream(self._get_client(), request, self._wire, self.parse_error)

    def error_rules(self) -> ErrorRules:
        return ()

    def parse_error(self, raw: str | BaseException) -> str:
        return match_error_rules(raw, self.error_rules())

    async def aclose(self) -> None:
        """Close the HTTP client if one was opened."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
