"""Provider implementations."""

from .anthropic import AnthropicProvider
from .base import Provider, ProviderCapabilities
from .grok import GrokProvider
from .lmstudio import LMStudioProvider
from .mistral import MistralProvider
from .ollama import OllamaProvider
from .openai import OpenAIProvider

#: Built-in adapters in display order.
BUILTIN_PROVIDERS = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "grok": GrokProvider,
    "mistral": MistralProvider,
    "ollama": OllamaProvider,
    "lmstudio": LMStudioProvider,
}

__all__ = [
    "BUILTIN_PROVIDERS",
    "AnthropicProvider",
    "GrokProvider",
    "LMStudioProvider",
    "MistralProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "Provider",
    "ProviderCapabilities",
]
