"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, marker handling,
and automatic API test skipping. All fixtures here are autouse unless noted.
"""

from __future__ import annotations

from contextlib import suppress
from dataclasses import dataclass, field
import logging
import os
from typing import TYPE_CHECKING, Any

import pytest

from taskwerk_ai.config import MemoryConfigStore
from taskwerk_ai.providers.base import ProviderCapabilities
from taskwerk_ai.providers.models import (
    CompletionResult,
    ConfigField,
    ConnectionStatus,
    Model,
    TextDelta,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from taskwerk_ai.providers.models import CompletionRequest, StreamEvent

OPENAI_MODEL = "gpt-4o-mini"
ANTHROPIC_MODEL = "claude-3-haiku-20240307"
OLLAMA_MODEL = "llama3.2:latest"

# =============================================================================
# Test Doubles
# =============================================================================


@dataclass
class ScriptedProvider:
    """Provider double that returns a scripted sequence of results/exceptions.

    Records every request so tests can assert on what the orchestrator or
    registry sent. When the script runs dry it answers ``"ok"``.
    """

    name: str = "scripted"
    base_url: str = "mock://scripted"
    script: list[CompletionResult | BaseException] = field(default_factory=list)
    models: list[Model] = field(default_factory=list)
    #: Raised by ``fetch_models``; ``list_models`` degrades to ``[]`` instead.
    models_error: BaseException | None = None
    configured: bool = True
    requests: list[CompletionRequest] = field(default_factory=list)
    list_calls: int = 0
    closed: bool = False

    @property
    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(requires_api_key=True)

    def is_configured(self) -> bool:
        return self.configured

    def required_config(self) -> list[ConfigField]:
        return [ConfigField("api_key", "Scripted API key", required=True)]

    async def test_connection(self) -> ConnectionStatus:
        return ConnectionStatus(True, "Connection successful")

    async def fetch_models(self) -> list[Model]:
        self.list_calls += 1
        if self.models_error is not None:
            raise self.models_error
        return list(self.models)

    async def list_models(self) -> list[Model]:
        try:
            return await self.fetch_models()
        except Exception:
            return []

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        self.requests.append(request)
        item = self.script.pop(0) if self.script else CompletionResult(content="ok")
        if isinstance(item, BaseException):
            raise item
        if request.stream and request.on_chunk is not None and item.content:
            request.on_chunk(item.content)
        return item

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamEvent]:
        result = await self.complete(request)
        yield TextDelta(result.content)

    def parse_error(self, raw: str | BaseException) -> str:
        return str(raw)

    async def aclose(self) -> None:
        self.closed = True


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================

_PROVIDER_ENV_PREFIXES = ("ANTHROPIC_", "OPENAI_", "XAI_", "MISTRAL_", "TASKWERK_AI_")


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Ensure a clean provider environment for each test.

    Clears credential and TASKWERK_AI_* env vars to prevent test pollution.
    Live API tests keep the real environment.
    """
    if "api" in request.node.keywords:
        return

    for key in list(os.environ.keys()):
        if key.startswith(_PROVIDER_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Shared Fixtures (opt-in)
# =============================================================================


@pytest.fixture
def config_store() -> MemoryConfigStore:
    """Config store with OpenAI selected and keyed."""
    return MemoryConfigStore(
        {
            "ai": {
                "current_provider": "openai",
                "current_model": OPENAI_MODEL,
                "providers": {"openai": {"api_key": "sk-test-0123456789abcdef"}},
            }
        }
    )


@pytest.fixture
def fake_clock() -> dict[str, Any]:
    """Mutable clock: advance with ``clock["now"] += seconds``."""
    return {"now": 1000.0}


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)
