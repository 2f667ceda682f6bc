"""Tool executor: validate, authorize, run, and package tool calls.

Every call produces exactly one ToolResult, in input order, carrying the
call's id. Tool-level problems become outcomes; nothing here raises to the
orchestrator.
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING

from taskwerk_ai.errors import (
    PermissionDeniedError,
    ToolNotFoundError,
    ToolValidationError,
)
from taskwerk_ai.tools.outcome import (
    ToolDenied,
    ToolFault,
    ToolInvalid,
    ToolResult,
    ToolSuccess,
)
from taskwerk_ai.tools.permissions import Deny, PermissionGate

if TYPE_CHECKING:
    from collections.abc import Sequence

    from taskwerk_ai.providers.models import ToolCall, ToolSpec
    from taskwerk_ai.tools.base import ExecutionContext, ExecutionMode
    from taskwerk_ai.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Runs model-issued tool calls against a registry under a permission gate."""

    def __init__(self, registry: ToolRegistry, gate: PermissionGate | None = None) -> None:
        self.registry = registry
        self.gate = gate or PermissionGate()

    def tool_specs(self, mode: ExecutionMode) -> tuple[ToolSpec, ...]:
        """Specs for the tools visible under *mode*."""
        return tuple(
            tool.to_spec() for tool in self.registry if self.gate.is_visible(tool, mode)
        )

    async def execute_tool(self, call: ToolCall, context: ExecutionContext) -> ToolResult:
        """Run one call to completion; never raises for tool-level problems."""
        try:
            tool = self.registry.get(call.name)
            params = tool.parse_arguments(call.arguments)
        except (ToolNotFoundError, ToolValidationError) as e:
            logger.info("Rejected tool call %s (%s): %s", call.id, call.name, e)
            return ToolResult(call, ToolInvalid(str(e)))

        decision = await self.gate.authorize(tool, params, context)
        if isinstance(decision, Deny):
            logger.info("Denied tool call %s (%s): %s", call.id, call.name, decision.reason)
            return ToolResult(call, ToolDenied(decision.reason))

        logger.debug("Executing tool %s (%s)", call.name, call.id)
        try:
            value = tool.execute(params, context)
            if inspect.isawaitable(value):
                value = await value
        except PermissionDeniedError as e:
            logger.info("Tool %s refused: %s", call.name, e)
            return ToolResult(call, ToolDenied(str(e)))
        except Exception as e:
            logger.warning("Tool %s execution failed: %s", call.name, e)
            return ToolResult(call, ToolFault(e))
        return ToolResult(call, ToolSuccess(value))

    async def execute_tools(
        self, calls: Sequence[ToolCall], context: ExecutionContext
    ) -> list[ToolResult]:
        """Run *calls* sequentially, one result per call in the same order."""
        return [await self.execute_tool(call, context) for call in calls]
