"""xAI Grok provider implementation (OpenAI-compatible wire format)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from taskwerk_ai.providers._openai_compat import ChatCompletionsProvider, first_match
from taskwerk_ai.providers.models import ConfigField, Model

if TYPE_CHECKING:
    from collections.abc import Sequence

    from taskwerk_ai.providers._errors import ErrorRules

DEFAULT_BASE_URL = "https://api.x.ai/v1"

_DESCRIPTIONS = (
    ("grok-vision-beta", "Grok Vision Beta - Multimodal model"),
    ("grok-beta", "Grok Beta - Latest version"),
)
_RANKS = (("vision", 100), ("beta", 90))


class GrokProvider(ChatCompletionsProvider):
    """xAI Grok provider."""

    name = "grok"
    display_name = "Grok"
    default_base_url = DEFAULT_BASE_URL
    api_key_env = "XAI_API_KEY"
    config_fields = (
        ConfigField("api_key", "Grok API key (from x.ai platform)", required=True),
        ConfigField("base_url", "API base URL (optional)"),
    )

    def select_models(self, ids: Sequence[str]) -> list[Model]:
        """Grok models; vision variants first, then betas."""
        models = [
            Model(
                id=model_id,
                name=model_id,
                description=first_match(model_id, _DESCRIPTIONS, "Grok model by xAI"),
            )
            for model_id in ids
            if "grok" in model_id.lower()
        ]
        models.sort(key=lambda m: first_match(m.id, _RANKS, 50), reverse=True)
        return models

    def error_rules(self) -> ErrorRules:
        return (
            (("api_key", "api key"), "Invalid API key. Please check your Grok API key."),
            (("rate_limit", "rate limit"), "Rate limit exceeded. Please try again later."),
            (("model",), "Invalid model selected. Please choose a valid Grok model."),
            (
                ("connection refused", "econnrefused"),
                f"Cannot connect to xAI at {self.base_url}.",
            ),
        )
