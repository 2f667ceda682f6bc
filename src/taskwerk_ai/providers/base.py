"""Provider protocol: minimal interface every backend adapter satisfies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from taskwerk_ai.providers.models import (
        CompletionRequest,
        CompletionResult,
        ConfigField,
        ConnectionStatus,
        Model,
        StreamEvent,
    )


@dataclass(frozen=True)
class ProviderCapabilities:
    """Feature flags exposed by providers."""

    requires_api_key: bool
    tools: bool = True
    streaming: bool = True
    #: Backend serves a live model inventory (vs a static list).
    model_discovery: bool = True


@runtime_checkable
class Provider(Protocol):
    """Backend adapter: configuration surface, discovery, and completion."""

    name: str
    base_url: str

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Feature flags for this backend."""
        ...

    def is_configured(self) -> bool:
        """Whether the mandatory credential (if any) is present."""
        ...

    def required_config(self) -> list[ConfigField]:
        """Configuration keys this backend understands."""
        ...

    async def test_connection(self) -> ConnectionStatus:
        """Check the backend with a minimal request; never raises."""
        ...

    async def list_models(self) -> list[Model]:
        """List models, degrading to an empty or sentinel list on failure."""
        ...

    async def fetch_models(self) -> list[Model]:
        """List models, raising the underlying error on failure."""
        ...

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Run one completion, streaming when ``request.stream`` is set."""
        ...

    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        """Yield stream events lazily for one streamed completion."""
        ...

    def parse_error(self, raw: str | BaseException) -> str:
        """Map a raw failure into actionable text."""
        ...

    async def aclose(self) -> None:
        """Release the underlying HTTP client."""
        ...
