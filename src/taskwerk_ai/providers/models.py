"""Domain models for the provider transport layer."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["system", "user", "assistant", "tool"]
ChunkCallback = Callable[[str], None]


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the model.

    ``arguments`` is the backend's raw encoding (a JSON string); the id must
    be echoed back on the matching tool result.
    """

    id: str
    name: str
    arguments: str = "{}"


@dataclass(frozen=True)
class ToolSpec:
    """A tool advertised to the model."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=lambda: {"type": "object"})


@dataclass(frozen=True)
class Message:
    """A standard conversational message turn."""

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    #: Tool name on ``tool`` messages; some backends correlate by name.
    name: str | None = None


@dataclass(frozen=True)
class Usage:
    """Token counters normalized across backends."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


@dataclass(frozen=True)
class CompletionRequest:
    """A unified request payload for one completion call."""

    messages: tuple[Message, ...]
    model: str = ""
    temperature: float = 0.7
    #: ``None`` lets the adapter apply its backend default.
    max_tokens: int | None = None
    stream: bool = False
    on_chunk: ChunkCallback | None = field(default=None, compare=False)
    tools: tuple[ToolSpec, ...] = ()


@dataclass(frozen=True)
class CompletionResult:
    """A normalized response from one completion call."""

    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    usage: Usage = field(default_factory=Usage)


@dataclass(frozen=True)
class Model:
    """A model a backend can serve."""

    id: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class ConfigField:
    """One configuration key a provider understands."""

    key: str
    description: str
    required: bool = False


@dataclass(frozen=True)
class ConnectionStatus:
    """Outcome of a provider connectivity check."""

    success: bool
    message: str


# --- Stream events ---


@dataclass(frozen=True)
class TextDelta:
    """An incremental piece of assistant text."""

    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    """A fragment of a streamed tool call.

    Fragments sharing an ``index`` belong to the same call; ``arguments``
    fragments are concatenated in arrival order.
    """

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass(frozen=True)
class UsageUpdate:
    """Usage counters reported mid-stream; zero fields leave prior values."""

    prompt_tokens: int = 0
    completion_tokens: int = 0


StreamEvent = TextDelta | ToolCallDelta | UsageUpdate
