"""Mistral provider implementation.

Mistral speaks the chat-completions format but reports errors as a
top-level ``{"message": ...}`` and correlates tool results by name as well
as id, so tool messages carry the tool name.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from taskwerk_ai.providers._openai_compat import ChatCompletionsProvider, first_match
from taskwerk_ai.providers.models import ConfigField, Model

if TYPE_CHECKING:
    from collections.abc import Sequence

    from taskwerk_ai.providers._errors import ErrorRules

DEFAULT_BASE_URL = "https://api.mistral.ai/v1"

_DESCRIPTIONS = (
    ("large", "Mistral Large - Most capable model"),
    ("medium", "Mistral Medium - Balanced performance"),
    ("small", "Mistral Small - Fast and efficient"),
    ("tiny", "Mistral Tiny - Lightweight model"),
    ("nemo", "Mistral Nemo - Latest model"),
    ("codestral", "Codestral - Code-specialized model"),
    ("mixtral", "Mixtral - Mixture of experts model"),
)
_RANKS = (
    ("large", 100),
    ("nemo", 95),
    ("medium", 90),
    ("mixtral", 85),
    ("codestral", 80),
    ("small", 70),
    ("tiny", 60),
)


class MistralProvider(ChatCompletionsProvider):
    """Mistral AI provider."""

    name = "mistral"
    display_name = "Mistral"
    default_base_url = DEFAULT_BASE_URL
    api_key_env = "MISTRAL_API_KEY"
    tool_message_name = True
    config_fields = (
        ConfigField("api_key", "Mistral API key", required=True),
        ConfigField("base_url", "API base URL (optional)"),
    )

    def select_models(self, ids: Sequence[str]) -> list[Model]:
        """Chat models (embedding models excluded), largest first."""
        models = [
            Model(
                id=model_id,
                name=model_id,
                description=first_match(model_id, _DESCRIPTIONS, "Mistral model"),
            )
            for model_id in ids
            if "embed" not in model_id.lower()
        ]
        models.sort(key=lambda m: first_match(m.id, _RANKS, 50), reverse=True)
        return models

    def error_rules(self) -> ErrorRules:
        return (
            (
                ("api_key", "api key", "unauthorized"),
                "Invalid API key. Please check your Mistral API key.",
            ),
            (("rate_limit", "rate limit"), "Rate limit exceeded. Please try again later."),
            (("model",), "Invalid model selected. Please choose a valid Mistral model."),
            (
                ("connection refused", "econnrefused"),
                f"Cannot connect to Mistral at {self.base_url}.",
            ),
        )
