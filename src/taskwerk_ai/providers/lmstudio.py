"""LM Studio provider: local OpenAI-compatible server, no credentials."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from taskwerk_ai.errors import NetworkError, ProviderAPIError
from taskwerk_ai.providers._openai_compat import (
    ChatCompletionsProvider,
    ChatWire,
    first_match,
)
from taskwerk_ai.providers.models import ConfigField, ConnectionStatus, Model

if TYPE_CHECKING:
    from collections.abc import Sequence

    from taskwerk_ai.providers._errors import ErrorRules

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:1234/v1"

# Checked in order; the first keyword found wins.
_FAMILIES = (
    ("llama", "Llama family model"),
    ("gemma", "Google Gemma model"),
    ("mistral", "Mistral model"),
    ("phi", "Microsoft Phi model"),
    ("qwen", "Alibaba Qwen model"),
    ("codellama", "Code-specialized Llama"),
    ("yi", "01-ai Yi model"),
    ("deepseek", "DeepSeek model"),
)


class LMStudioProvider(ChatCompletionsProvider):
    """LM Studio local server provider."""

    name = "lmstudio"
    display_name = "LMStudio"
    default_base_url = DEFAULT_BASE_URL
    config_fields = (
        ConfigField("base_url", f"LMStudio API URL (default: {DEFAULT_BASE_URL})"),
    )

    def _build_wire(self) -> ChatWire:
        return ChatWire(
            provider=self.name,
            network_message=f"Cannot connect to LMStudio at {self.base_url}",
            network_hint="Is LMStudio running with its local server started?",
        )

    def _unreachable(self) -> str:
        return f"Cannot connect to LMStudio at {self.base_url}. Is LMStudio running?"

    async def test_connection(self) -> ConnectionStatus:
        """Check ``GET /models`` and report how many models are loaded."""
        try:
            ids = await self._model_ids()
        except ProviderAPIError:
            return ConnectionStatus(False, "LMStudio server not responding")
        except NetworkError:
            return ConnectionStatus(False, self._unreachable())
        return ConnectionStatus(True, f"Connected to LMStudio ({len(ids)} models loaded)")

    async def list_models(self) -> list[Model]:
        """List loaded models, or a sentinel entry explaining why there are none."""
        try:
            return await self.fetch_models()
        except NetworkError as e:
            logger.debug("LMStudio unreachable: %s", e)
            return [Model("connection-error", "Connection Error", self._unreachable())]
        except ProviderAPIError as e:
            logger.debug("LMStudio model listing failed: %s", e)
            return []

    def select_models(self, ids: Sequence[str]) -> list[Model]:
        if not ids:
            return [Model("no-models", "No models loaded", "Load a model in LMStudio first")]
        return [
            Model(
                id=model_id,
                name=model_id,
                description=first_match(model_id, _FAMILIES, "LMStudio model"),
            )
            for model_id in ids
        ]

    def error_rules(self) -> ErrorRules:
        return (
            (
                ("econnrefused", "connection refused", "cannot connect"),
                f"Cannot connect to LMStudio. Please ensure LMStudio is running at {self.base_url}",
            ),
            (("model",), "Model not loaded. Please load a model in LMStudio first"),
        )
