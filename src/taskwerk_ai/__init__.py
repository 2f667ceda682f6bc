"""taskwerk-ai: one completion interface over several LLM backends, plus
permissioned tool execution.

Public API:
    - build_default_registry(): ProviderRegistry with every built-in backend
    - build_default_tools(): ToolRegistry with the built-in tools
    - CompletionOrchestrator: runs one turn, including tool rounds
    - Settings / MemoryConfigStore: configuration
"""

from __future__ import annotations

import logging

from taskwerk_ai.cache import ModelListCache
from taskwerk_ai.config import ConfigStore, MemoryConfigStore, Settings
from taskwerk_ai.errors import (
    ConfigurationError,
    NetworkError,
    PermissionDeniedError,
    ProviderAPIError,
    RateLimitError,
    SandboxViolationError,
    StreamDecodeError,
    TaskwerkAIError,
    ToolError,
    ToolNotFoundError,
    ToolValidationError,
)
from taskwerk_ai.orchestrator import CompletionOrchestrator, TurnResult
from taskwerk_ai.providers.models import (
    CompletionRequest,
    CompletionResult,
    Message,
    Model,
    ToolCall,
    ToolSpec,
    Usage,
)
from taskwerk_ai.registry import (
    ModelDiscovery,
    ProviderRegistry,
    ProviderStatus,
    ProviderTestResult,
    build_default_registry,
)
from taskwerk_ai.tools import (
    Capability,
    ExecutionContext,
    ExecutionMode,
    PermissionGate,
    TaskAPI,
    ToolDefinition,
    ToolExecutor,
    ToolRegistry,
    ToolResult,
    build_default_tools,
)

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("taskwerk-ai")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("taskwerk_ai").addHandler(logging.NullHandler())

__all__ = [
    "Capability",
    "CompletionOrchestrator",
    "CompletionRequest",
    "CompletionResult",
    "ConfigStore",
    "ConfigurationError",
    "ExecutionContext",
    "ExecutionMode",
    "MemoryConfigStore",
    "Message",
    "Model",
    "ModelDiscovery",
    "ModelListCache",
    "NetworkError",
    "PermissionDeniedError",
    "PermissionGate",
    "ProviderAPIError",
    "ProviderRegistry",
    "ProviderStatus",
    "ProviderTestResult",
    "RateLimitError",
    "SandboxViolationError",
    "Settings",
    "StreamDecodeError",
    "TaskAPI",
    "TaskwerkAIError",
    "ToolCall",
    "ToolDefinition",
    "ToolError",
    "ToolExecutor",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
    "ToolSpec",
    "ToolValidationError",
    "TurnResult",
    "Usage",
    "__version__",
    "build_default_registry",
    "build_default_tools",
]
