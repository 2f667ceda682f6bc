"""Ollama provider: local ``/api/chat`` server with NDJSON streaming."""

from __future__ import annotations

from dataclasses import replace
import json
import logging
from typing import TYPE_CHECKING, Any

from taskwerk_ai.errors import NetworkError, ProviderAPIError
from taskwerk_ai.providers._errors import match_error_rules
from taskwerk_ai.providers._http import make_client, open_stream, request_json
from taskwerk_ai.providers._openai_compat import first_match, to_tool_specs
from taskwerk_ai.providers._stream import collect_stream, iter_ndjson_payloads
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
    from collections.abc import AsyncIterator, Sequence

    import httpx

    from taskwerk_ai.providers.models import CompletionRequest, Message, StreamEvent

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"

_FAMILIES = (
    ("llama", "Llama family model"),
    ("gemma", "Google Gemma model"),
    ("mistral", "Mistral model"),
    ("phi", "Microsoft Phi model"),
    ("qwen", "Alibaba Qwen model"),
    ("codellama", "Code-specialized Llama"),
)
_RANKS = (
    ("llama3.2", 100),
    ("llama3.1", 95),
    ("llama3", 90),
    ("gemma2", 85),
    ("qwen2.5", 80),
    ("mistral", 75),
    ("phi3", 70),
    ("codellama", 65),
)


def format_size(size: int) -> str:
    """Render a byte count as ``"1.50 GB"``."""
    if size <= 0:
        return "0 B"
    units = ("B", "KB", "MB", "GB")
    value = float(size)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{value:.2f} {units[i]}"


def _as_int(raw: Any) -> int:
    try:
        return int(raw or 0)
    except (TypeError, ValueError):
        return 0


def _describe(entry: dict[str, Any]) -> Model:
    full_name = str(entry.get("name") or entry.get("model") or "")
    base_name, _, tag = full_name.partition(":")
    display = base_name if tag in ("", "latest") else full_name

    parts = [f"Size: {format_size(_as_int(entry.get('size')))}"]
    family = first_match(base_name, _FAMILIES, None)
    if family:
        parts.append(family)
    modified = entry.get("modified_at")
    if isinstance(modified, str) and modified:
        parts.append(f"Modified: {modified[:10]}")
    return Model(id=full_name, name=display, description=" • ".join(parts))


def to_ollama_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert normalized messages into ``/api/chat`` messages."""
    out: list[dict[str, Any]] = []
    for m in messages:
        item: dict[str, Any] = {"role": m.role, "content": m.content}
        if m.role == "tool" and m.name:
            item["tool_name"] = m.name
        if m.role == "assistant" and m.tool_calls:
            calls = []
            for tc in m.tool_calls:
                try:
                    arguments = json.loads(tc.arguments) if tc.arguments else {}
                except ValueError:
                    arguments = {}
                calls.append({"function": {"name": tc.name, "arguments": arguments}})
            item["tool_calls"] = calls
        out.append(item)
    return out


def build_payload(request: CompletionRequest) -> dict[str, Any]:
    options: dict[str, Any] = {"temperature": request.temperature}
    if request.max_tokens is not None:
        options["num_predict"] = request.max_tokens
    payload: dict[str, Any] = {
        "model": request.model,
        "messages": to_ollama_messages(request.messages),
        "stream": request.stream,
        "options": options,
    }
    if request.tools:
        payload["tools"] = to_tool_specs(request.tools)
    return payload


def _tool_call(raw: Any, ordinal: int) -> ToolCall | None:
    if not isinstance(raw, dict):
        return None
    fn = raw.get("function") or {}
    name = fn.get("name")
    if not isinstance(name, str) or not name:
        return None
    arguments = fn.get("arguments")
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments or {})
    # Ollama does not always assign call ids.
    return ToolCall(id=str(raw.get("id") or f"call_{ordinal}"), name=name, arguments=arguments)


def parse_response(data: Any) -> CompletionResult:
    if not isinstance(data, dict):
        return CompletionResult()
    message = data.get("message") or {}
    calls: list[ToolCall] = []
    for raw in message.get("tool_calls") or []:
        call = _tool_call(raw, len(calls))
        if call is not None:
            calls.append(call)
    return CompletionResult(
        content=str(message.get("content") or ""),
        tool_calls=tuple(calls),
        usage=Usage(
            prompt_tokens=_as_int(data.get("prompt_eval_count")),
            completion_tokens=_as_int(data.get("eval_count")),
        ),
    )


class OllamaProvider:
    """Ollama local server provider."""

    name = "ollama"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        timeout: httpx.Timeout | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = dict(config or {})
        self.base_url: str = self.config.get("base_url") or DEFAULT_BASE_URL
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(requires_api_key=False)

    def is_configured(self) -> bool:
        return True

    def required_config(self) -> list[ConfigField]:
        return [
            ConfigField("base_url", f"Ollama API URL (default: {DEFAULT_BASE_URL})"),
        ]

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = make_client(
                self.base_url, timeout=self._timeout, transport=self._transport
            )
        return self._client

    def _unreachable(self) -> str:
        return f"Cannot connect to Ollama at {self.base_url}. Is Ollama running?"

    async def _get(self, path: str) -> Any:
        return await request_json(
            self._get_client(),
            "GET",
            path,
            provider=self.name,
            parse_error=self.parse_error,
            network_message=f"Cannot connect to Ollama at {self.base_url}",
            network_hint="Start it with `ollama serve`.",
        )

    async def test_connection(self) -> ConnectionStatus:
        """Check ``GET /api/version``."""
        try:
            data = await self._get("api/version")
        except ProviderAPIError:
            return ConnectionStatus(False, "Ollama server not responding")
        except NetworkError:
            return ConnectionStatus(False, self._unreachable())
        version = data.get("version", "") if isinstance(data, dict) else ""
        return ConnectionStatus(True, f"Connected to Ollama {version}".rstrip())

    async def fetch_models(self) -> list[Model]:
        """List pulled models, preferred families first; raises on failure.

        An empty inventory yields a ``no-models`` entry.
        """
        data = await self._get("api/tags")
        entries = data.get("models") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            entries = []
        models = [_describe(e) for e in entries if isinstance(e, dict)]
        if not models:
            return [
                Model(
                    "no-models",
                    "No models available",
                    'Run "ollama pull <model>" to download models',
                )
            ]
        models.sort(key=lambda m: first_match(m.name, _RANKS, 50), reverse=True)
        return models

    async def list_models(self) -> list[Model]:
        """List pulled models, or a sentinel entry explaining why there are none.

        An unreachable server yields a ``connection-error`` entry so pickers
        can explain themselves.
        """
        try:
            return await self.fetch_models()
        except NetworkError as e:
            logger.debug("Ollama unreachable: %s", e)
            return [Model("connection-error", "Connection Error", self._unreachable())]
        except ProviderAPIError as e:
            logger.debug("Ollama model listing failed: %s", e)
            return []

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        if request.stream:
            return await collect_stream(self.stream(request), request.on_chunk)
        data = await request_json(
            self._get_client(),
            "POST",
            "api/chat",
            payload=build_payload(request),
            provider=self.name,
            parse_error=self.parse_error,
            network_message=f"Cannot connect to Ollama at {self.base_url}",
            network_hint="Start it with `ollama serve`.",
        )
        return parse_response(data)

    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        if not request.stream:
            request = replace(request, stream=True)
        return self._stream_events(self._get_client(), build_payload(request))

    async def _stream_events(
        self, client: httpx.AsyncClient, payload: dict[str, Any]
    ) -> AsyncIterator[StreamEvent]:
        n_calls = 0
        async with open_stream(
            client,
            "api/chat",
            payload,
            provider=self.name,
            parse_error=self.parse_error,
            network_message=f"Cannot connect to Ollama at {self.base_url}",
            network_hint="Start it with `ollama serve`.",
        ) as response:
            async for chunk in iter_ndjson_payloads(response.aiter_bytes()):
                if chunk.get("error"):
                    raw = str(chunk["error"])
                    raise ProviderAPIError(
                        self.parse_error(raw), provider=self.name, raw_message=raw
                    )
                message = chunk.get("message") or {}
                content = message.get("content")
                if isinstance(content, str) and content:
                    yield TextDelta(content)
                for raw in message.get("tool_calls") or []:
                    call = _tool_call(raw, n_calls)
                    if call is None:
                        continue
                    yield ToolCallDelta(
                        index=n_calls, id=call.id, name=call.name, arguments=call.arguments
                    )
                    n_calls += 1
                if chunk.get("prompt_eval_count") or chunk.get("eval_count"):
                    yield UsageUpdate(
                        _as_int(chunk.get("prompt_eval_count")),
                        _as_int(chunk.get("eval_count")),
                    )
                if chunk.get("done"):
                    return

    def parse_error(self, raw: str | BaseException) -> str:
        return match_error_rules(
            raw,
            (
                (
                    ("econnrefused", "connection refused", "cannot connect"),
                    f"Cannot connect to Ollama. Please ensure Ollama is running at {self.base_url}",
                ),
                (
                    ("model",),
                    "Model not found. Please pull the model first using: ollama pull <model>",
                ),
            ),
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
