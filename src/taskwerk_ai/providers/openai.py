"""OpenAI provider implementation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from taskwerk_ai.providers._openai_compat import ChatCompletionsProvider, first_match
from taskwerk_ai.providers.models import ConfigField, Model

if TYPE_CHECKING:
    from collections.abc import Sequence

    from taskwerk_ai.providers._errors import ErrorRules

DEFAULT_BASE_URL = "https://api.openai.com/v1"

_CHAT_FAMILIES = ("gpt-4", "gpt-3.5", "o1")
_EXCLUDED = (
    "instruct",
    "edit",
    "search",
    "similarity",
    "ada",
    "babbage",
    "curie",
    "davinci",
)
_DESCRIPTIONS = (
    ("o1-preview", "Latest reasoning model (preview)"),
    ("o1-mini", "Fast reasoning model"),
    ("gpt-4o", "Latest multimodal GPT-4 model"),
    ("gpt-4-turbo", "Latest GPT-4 with enhanced capabilities"),
    ("gpt-4-32k", "GPT-4 with 32K context window"),
    ("gpt-4", "Most capable GPT-4 model"),
    ("gpt-3.5-turbo-16k", "GPT-3.5 with 16K context window"),
    ("gpt-3.5-turbo", "Fast and efficient model"),
)
_RANKS = (
    ("o1-preview", 100),
    ("o1-mini", 90),
    ("gpt-4o", 80),
    ("gpt-4-turbo", 70),
    ("gpt-4", 60),
    ("gpt-3.5", 50),
)


def _is_chat_model(model_id: str) -> bool:
    lowered = model_id.lower()
    return any(f in lowered for f in _CHAT_FAMILIES) and not any(
        x in lowered for x in _EXCLUDED
    )


class OpenAIProvider(ChatCompletionsProvider):
    """OpenAI chat-completions provider (bearer auth, SSE streaming)."""

    name = "openai"
    display_name = "OpenAI"
    default_base_url = DEFAULT_BASE_URL
    api_key_env = "OPENAI_API_KEY"
    stream_usage = True
    config_fields = (
        ConfigField("api_key", "OpenAI API key (starts with sk-)", required=True),
        ConfigField("base_url", "API base URL (optional, for custom endpoints)"),
        ConfigField("organization", "OpenAI organization ID (optional)"),
    )

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self.config.get("organization"):
            headers["OpenAI-Organization"] = str(self.config["organization"])
        return headers

    def select_models(self, ids: Sequence[str]) -> list[Model]:
        """Chat-capable models, most capable first."""
        models = [
            Model(
                id=model_id,
                name=model_id,
                description=first_match(model_id, _DESCRIPTIONS, "OpenAI model"),
            )
            for model_id in ids
            if _is_chat_model(model_id)
        ]
        models.sort(key=lambda m: first_match(m.id, _RANKS, 0), reverse=True)
        return models

    def error_rules(self) -> ErrorRules:
        return (
            (("api_key", "api key"), "Invalid API key. Please check your OpenAI API key."),
            (("rate_limit", "rate limit"), "Rate limit exceeded. Please try again later."),
            (("quota",), "Quota exceeded. Please check your OpenAI account."),
            (("model",), "Invalid model selected. Please choose a valid OpenAI model."),
            (
                ("connection refused", "econnrefused"),
                f"Cannot connect to OpenAI at {self.base_url}.",
            ),
        )
