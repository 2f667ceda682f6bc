"""Configuration: frozen runtime Settings and the key-value store seam."""

from __future__ import annotations

import copy
from dataclasses import dataclass
import os
from typing import Any, Protocol, runtime_checkable

from taskwerk_ai.errors import ConfigurationError

CONFIGURE_HINT = 'Run "taskwerk aiconfig --choose" to select a provider and model.'

_DOTENV_LOADED = False

#: Environment fallbacks for provider credentials, consulted when the
#: configuration store has no ``api_key`` for the provider.
API_KEY_ENV_VARS: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "grok": "XAI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
}


@runtime_checkable
class ConfigStore(Protocol):
    """Key-value configuration store addressed by dotted paths."""

    def get(self, path: str, default: Any = None) -> Any: ...  # noqa: D102
    def set(self, path: str, value: Any) -> None: ...  # noqa: D102


class MemoryConfigStore:
    """In-memory ConfigStore backed by a nested dict.

    ``get("ai.providers.openai", {})`` walks nested mappings; ``set`` creates
    intermediate mappings as needed. Values handed out by ``get`` are copies
    so callers cannot mutate the store behind its back.
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(data) if data else {}

    def get(self, path: str, default: Any = None) -> Any:
        node: Any = self._data
        for part in path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return copy.deepcopy(node)

    def set(self, path: str, value: Any) -> None:
        parts = path.split(".")
        node = self._data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

    def as_dict(self) -> dict[str, Any]:
        """Return a deep copy of the whole store."""
        return copy.deepcopy(self._data)


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings for provider calls and turns.

    Example:
        settings = Settings.from_env()
        registry = build_default_registry(store, settings)
    """

    #: Deadline for a whole request, including each streaming read.
    request_timeout_s: float = 60.0
    connect_timeout_s: float = 10.0
    model_cache_ttl_s: float = 300.0
    max_tool_rounds: int = 1
    default_temperature: float = 0.7

    def __post_init__(self) -> None:
        """Validate numeric fields early for clear errors."""
        if self.request_timeout_s <= 0:
            raise ConfigurationError(
                f"request_timeout_s must be > 0, got {self.request_timeout_s}",
                hint="Set TASKWERK_AI_TIMEOUT_S to a positive number of seconds.",
            )
        if self.connect_timeout_s <= 0:
            raise ConfigurationError(
                f"connect_timeout_s must be > 0, got {self.connect_timeout_s}",
                hint="Set TASKWERK_AI_CONNECT_TIMEOUT_S to a positive number of seconds.",
            )
        if self.model_cache_ttl_s < 0:
            raise ConfigurationError(
                f"model_cache_ttl_s must be ≥ 0, got {self.model_cache_ttl_s}",
                hint="0 disables model-list caching.",
            )
        if self.max_tool_rounds < 1:
            raise ConfigurationError(
                f"max_tool_rounds must be ≥ 1, got {self.max_tool_rounds}",
                hint="This bounds how many rounds of tool calls one turn may run.",
            )
        if not 0 <= self.default_temperature <= 2:
            raise ConfigurationError(
                f"default_temperature must be within [0, 2], got {self.default_temperature}",
            )

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from ``TASKWERK_AI_*`` environment variables."""
        _try_load_dotenv()
        return cls(
            request_timeout_s=_env_float("TASKWERK_AI_TIMEOUT_S", 60.0),
            connect_timeout_s=_env_float("TASKWERK_AI_CONNECT_TIMEOUT_S", 10.0),
            model_cache_ttl_s=_env_float("TASKWERK_AI_MODEL_CACHE_TTL_S", 300.0),
            max_tool_rounds=int(_env_float("TASKWERK_AI_MAX_TOOL_ROUNDS", 1)),
            default_temperature=_env_float("TASKWERK_AI_TEMPERATURE", 0.7),
        )


def resolve_provider_config(
    name: str, raw: dict[str, Any] | None
) -> dict[str, Any]:
    """Merge stored provider config with credential environment fallbacks."""
    _try_load_dotenv()
    resolved = dict(raw or {})
    env_var = API_KEY_ENV_VARS.get(name)
    if env_var and not resolved.get("api_key"):
        env_value = os.environ.get(env_var)
        if env_value:
            resolved["api_key"] = env_value
    return resolved


def mask_secret(value: str) -> str:
    """Mask a credential for display, keeping a short prefix and suffix."""
    if len(value) <= 12:
        return "***"
    return f"{value[:8]}...{value[-4:]}"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return float(default)
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{name} must be a number, got {raw!r}",
            hint=f"Unset {name} or give it a numeric value.",
        ) from e


def _try_load_dotenv() -> None:
    """Load a ``.env`` found from the working directory, once per process.

    Variables already present in the environment win over the file.
    """
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    from dotenv import find_dotenv, load_dotenv

    load_dotenv(find_dotenv(usecwd=True))
    _DOTENV_LOADED = True
