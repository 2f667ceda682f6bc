"""Provider registry: adapter factories, configuration lookup and discovery.

The registry is the only long-lived object in a session. It builds adapters
lazily from the configuration store, rebuilds them when their configuration
changes, and owns the model-list cache.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
import functools
import logging
from typing import TYPE_CHECKING, Any

from taskwerk_ai.cache import ModelListCache
from taskwerk_ai.config import (
    CONFIGURE_HINT,
    Settings,
    mask_secret,
    resolve_provider_config,
)
from taskwerk_ai.errors import ConfigurationError, TaskwerkAIError
from taskwerk_ai.providers import BUILTIN_PROVIDERS
from taskwerk_ai.providers._http import build_timeout

if TYPE_CHECKING:
    import httpx

    from taskwerk_ai.config import ConfigStore
    from taskwerk_ai.providers.base import Provider
    from taskwerk_ai.providers.models import CompletionRequest, CompletionResult, Model

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[dict[str, Any]], "Provider"]


@dataclass(frozen=True)
class ProviderStatus:
    """Whether a registered provider is configured and enabled."""

    name: str
    configured: bool
    enabled: bool


@dataclass(frozen=True)
class ModelDiscovery:
    """Models found for one provider, or why none could be listed."""

    models: tuple[Model, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class ProviderTestResult:
    """Outcome of testing one provider's connection."""

    name: str
    success: bool
    message: str


class ProviderRegistry:
    """Maps provider names to adapters built from the configuration store."""

    def __init__(
        self,
        config: ConfigStore,
        settings: Settings | None = None,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize with a config store and runtime settings.

        Args:
            config: Store holding ``ai.*`` keys.
            settings: Deadlines and cache TTL; defaults apply when omitted.
            clock: Monotonic clock for model-list expiry (tests inject one).
        """
        self.config = config
        self.settings = settings or Settings()
        self.model_cache = (
            ModelListCache(ttl_s=self.settings.model_cache_ttl_s, clock=clock)
            if clock is not None
            else ModelListCache(ttl_s=self.settings.model_cache_ttl_s)
        )
        self._factories: dict[str, ProviderFactory] = {}
        self._adapters: dict[str, tuple[dict[str, Any], Provider]] = {}
        self._retired: list[Provider] = []

    # --- Registration & lookup ---

    def register(self, name: str, factory: ProviderFactory) -> None:
        """Register (or replace) the factory for *name*."""
        if name in self._factories:
            logger.debug("Replacing provider factory for %s", name)
        self._factories[name] = factory
        self._retire(name)

    @property
    def names(self) -> list[str]:
        """Registered provider names in registration order."""
        return list(self._factories)

    def _raw_config(self, name: str) -> dict[str, Any]:
        raw = self.config.get(f"ai.providers.{name}", {})
        return dict(raw) if isinstance(raw, dict) else {}

    def _require_known(self, name: str) -> None:
        if name not in self._factories:
            raise ConfigurationError(
                f"Unknown provider: {name}",
                hint=f"Available providers: {', '.join(self._factories) or 'none'}",
            )

    def _retire(self, name: str) -> None:
        entry = self._adapters.pop(name, None)
        if entry is not None:
            self._retired.append(entry[1])
        self.model_cache.invalidate(name)

    def get(self, name: str) -> Provider:
        """Return the adapter for *name*, rebuilding it if its config changed."""
        self._require_known(name)
        resolved = resolve_provider_config(name, self._raw_config(name))
        entry = self._adapters.get(name)
        if entry is not None:
            if entry[0] == resolved:
                return entry[1]
            logger.debug("Configuration for %s changed; rebuilding adapter", name)
            self._retire(name)
        adapter = self._factories[name](resolved)
        self._adapters[name] = (resolved, adapter)
        return adapter

    def current_provider(self) -> Provider:
        """Return the adapter named by ``ai.current_provider``."""
        name = self.config.get("ai.current_provider")
        if not name:
            raise ConfigurationError("No AI provider configured.", hint=CONFIGURE_HINT)
        return self.get(str(name))

    def current_model(self) -> str:
        """Return ``ai.current_model``."""
        model = self.config.get("ai.current_model")
        if not model:
            raise ConfigurationError("No model selected.", hint=CONFIGURE_HINT)
        return str(model)

    # --- Inventory ---

    def list_providers(self) -> list[ProviderStatus]:
        """Report every registered provider's configured/enabled state."""
        return [
            ProviderStatus(
                name=name,
                configured=self.get(name).is_configured(),
                enabled=self._raw_config(name).get("enabled") is not False,
            )
            for name in self._factories
        ]

    async def list_models(self, name: str) -> list[Model]:
        """List models for *name*, served from cache within the TTL."""
        adapter = self.get(name)
        return await self.model_cache.get_or_fetch(name, adapter.list_models)

    async def discover_models(self) -> dict[str, ModelDiscovery]:
        """List models for every enabled, configured provider.

        A provider that fails contributes no models and its failure reason
        instead of aborting discovery.
        """
        found: dict[str, ModelDiscovery] = {}
        for status in self.list_providers():
            if not status.enabled or not status.configured:
                continue
            logger.info("Discovering models from %s", status.name)
            adapter = self.get(status.name)
            try:
                models = await self.model_cache.get_or_fetch(
                    status.name, adapter.fetch_models
                )
            except Exception as e:
                logger.warning("Failed to list models from %s: %s", status.name, e)
                found[status.name] = ModelDiscovery(error=str(e))
                continue
            found[status.name] = ModelDiscovery(models=tuple(models))
        return found

    async def test_all_providers(self) -> list[ProviderTestResult]:
        """Test every enabled provider; unconfigured ones are reported, not contacted."""
        results: list[ProviderTestResult] = []
        for status in self.list_providers():
            if not status.enabled:
                continue
            if not status.configured:
                results.append(ProviderTestResult(status.name, False, "Not configured"))
                continue
            logger.info("Testing %s provider", status.name)
            try:
                outcome = await self.get(status.name).test_connection()
            except Exception as e:
                logger.warning("Connection test for %s failed: %s", status.name, e)
                results.append(ProviderTestResult(status.name, False, str(e)))
                continue
            results.append(ProviderTestResult(status.name, outcome.success, outcome.message))
        return results

    # --- Completion ---

    async def complete(
        self,
        request: CompletionRequest,
        *,
        provider: str | None = None,
        model: str | None = None,
    ) -> CompletionResult:
        """Run *request* on the named (or current) provider and model."""
        adapter = self.get(provider) if provider else self.current_provider()
        model_id = model or request.model or self.current_model()
        if request.model != model_id:
            request = replace(request, model=model_id)

        logger.debug("Completing with %s using model %s", adapter.name, model_id)
        try:
            result = await adapter.complete(request)
        except ConfigurationError:
            raise
        except TaskwerkAIError as e:
            logger.error("Completion failed via %s: %s", adapter.name, e)
            raise
        logger.debug(
            "Token usage - prompt: %d, completion: %d",
            result.usage.prompt_tokens,
            result.usage.completion_tokens,
        )
        return result

    # --- Configuration ---

    def set_current(self, provider: str, model: str) -> None:
        """Select the default provider and model."""
        self._require_known(provider)
        self.config.set("ai.current_provider", provider)
        self.config.set("ai.current_model", model)
        logger.info("Set current provider to %s with model %s", provider, model)

    def configure_provider(self, name: str, key: str, value: Any) -> None:
        """Set one provider config key; ``enabled`` accepts ``"true"``/``"false"``."""
        self._require_known(name)
        if key == "enabled":
            value = value is True or (isinstance(value, str) and value.lower() == "true")
        self.config.set(f"ai.providers.{name}.{key}", value)
        self._retire(name)
        logger.info("Set %s.%s = %s", name, key, "***" if "key" in key else value)

    def provider_config(self, name: str) -> dict[str, Any]:
        """Return the stored config for *name* with credential fields masked."""
        raw = self._raw_config(name)
        for config_field in self.get(name).required_config():
            value = raw.get(config_field.key)
            if "key" in config_field.key and value:
                raw[config_field.key] = mask_secret(str(value))
        return raw

    def config_summary(self) -> dict[str, Any]:
        """Summarize the current selection and every provider's state."""
        ai = self.config.get("ai", {}) or {}
        return {
            "current_provider": ai.get("current_provider") or "none",
            "current_model": ai.get("current_model") or "none",
            "providers": [
                {
                    "name": s.name,
                    "configured": s.configured,
                    "enabled": s.enabled,
                    "config": self.provider_config(s.name) if s.configured else {},
                }
                for s in self.list_providers()
            ],
            "defaults": ai.get("defaults") or {},
        }

    async def aclose(self) -> None:
        """Close every adapter this registry built."""
        adapters = [entry[1] for entry in self._adapters.values()] + self._retired
        self._adapters.clear()
        self._retired = []
        for adapter in adapters:
            await adapter.aclose()


def build_default_registry(
    config: ConfigStore,
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Callable[[], float] | None = None,
) -> ProviderRegistry:
    """Build a registry with every built-in provider registered.

    Example:
        registry = build_default_registry(MemoryConfigStore(), Settings.from_env())
        result = await registry.complete(CompletionRequest(messages=(Message("user", "Hi"),)))
    """
    settings = settings or Settings()
    registry = ProviderRegistry(config, settings, clock=clock)
    timeout = build_timeout(settings)
    for name, cls in BUILTIN_PROVIDERS.items():
        registry.register(
            name, functools.partial(cls, timeout=timeout, transport=transport)
        )
    return registry
