"""Live smoke tests against real backends.

Skipped unless ENABLE_API_TESTS=1. Cloud cases also need the provider's
credential in the environment; local cases skip when the server is down.
"""

from __future__ import annotations

import os

import pytest

from taskwerk_ai.config import MemoryConfigStore, Settings
from taskwerk_ai.providers.models import CompletionRequest, Message
from taskwerk_ai.registry import build_default_registry

pytestmark = pytest.mark.api

CLOUD = [
    ("openai", "OPENAI_API_KEY", "gpt-4o-mini"),
    ("anthropic", "ANTHROPIC_API_KEY", "claude-3-5-haiku-latest"),
    ("mistral", "MISTRAL_API_KEY", "mistral-small-latest"),
    ("grok", "XAI_API_KEY", "grok-2-latest"),
]


@pytest.fixture
def registry():
    return build_default_registry(MemoryConfigStore(), Settings.from_env())


@pytest.mark.asyncio
@pytest.mark.parametrize(("provider", "env_var", "model"), CLOUD)
async def test_cloud_provider_connects_lists_and_completes(
    registry, provider: str, env_var: str, model: str
) -> None:
    if not os.getenv(env_var):
        pytest.skip(f"{env_var} not set")

    status = await registry.get(provider).test_connection()
    assert status.success, status.message

    models = await registry.list_models(provider)
    assert models

    result = await registry.complete(
        CompletionRequest(
            messages=(Message("user", "Reply with the single word: pong"),),
            max_tokens=16,
        ),
        provider=provider,
        model=model,
    )
    assert "pong" in result.content.lower()
    await registry.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("provider", ["ollama", "lmstudio"])
async def test_local_server_lists_models_when_running(registry, provider: str) -> None:
    status = await registry.get(provider).test_connection()
    if not status.success:
        pytest.skip(status.message)

    found = await registry.discover_models()

    assert found[provider].error is None
    assert found[provider].models
    await registry.aclose()
