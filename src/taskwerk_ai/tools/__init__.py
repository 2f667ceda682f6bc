"""Tool registry, permission gate, executor and built-in tools."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import Capability, ExecutionContext, ExecutionMode, ToolDefinition
from .executor import ToolExecutor
from .filesystem import build_filesystem_tools
from .outcome import (
    ToolDenied,
    ToolFault,
    ToolInvalid,
    ToolOutcome,
    ToolResult,
    ToolSuccess,
)
from .permissions import (
    ASK_CAPABILITIES,
    Allow,
    Deny,
    PermissionDecision,
    PermissionGate,
    RequiresConfirmation,
)
from .registry import ToolRegistry
from .tasks import TaskAPI, build_task_tools

if TYPE_CHECKING:
    from collections.abc import Iterable


def build_default_tools(
    task_api: TaskAPI | None = None,
    *,
    extra: Iterable[ToolDefinition] = (),
) -> ToolRegistry:
    """Registry with the filesystem tools, plus task tools when *task_api* is given."""
    registry = ToolRegistry(build_filesystem_tools())
    if task_api is not None:
        for tool in build_task_tools(task_api):
            registry.register(tool)
    for tool in extra:
        registry.register(tool)
    return registry


__all__ = [
    "ASK_CAPABILITIES",
    "Allow",
    "Capability",
    "Deny",
    "ExecutionContext",
    "ExecutionMode",
    "PermissionDecision",
    "PermissionGate",
    "RequiresConfirmation",
    "TaskAPI",
    "ToolDefinition",
    "ToolDenied",
    "ToolExecutor",
    "ToolFault",
    "ToolInvalid",
    "ToolOutcome",
    "ToolRegistry",
    "ToolResult",
    "ToolSuccess",
    "build_default_tools",
    "build_filesystem_tools",
    "build_task_tools",
]
