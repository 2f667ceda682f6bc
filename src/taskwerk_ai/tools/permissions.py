"""Permission gate: mode-based tool visibility and per-call confirmation."""

from __future__ import annotations

from dataclasses import dataclass
import inspect
import logging
from typing import TYPE_CHECKING

from taskwerk_ai.errors import PermissionDeniedError
from taskwerk_ai.tools.base import Capability, ExecutionMode

if TYPE_CHECKING:
    from pydantic import BaseModel

    from taskwerk_ai.tools.base import ExecutionContext, ToolDefinition

logger = logging.getLogger(__name__)

#: Capabilities a tool may need and still be offered in ``ask`` mode.
ASK_CAPABILITIES = frozenset({Capability.READ_FILES, Capability.READ_TASKS})


@dataclass(frozen=True)
class Allow:
    """Proceed."""


@dataclass(frozen=True)
class Deny:
    reason: str


@dataclass(frozen=True)
class RequiresConfirmation:
    """Proceed only if the user approves ``description``."""

    description: str


PermissionDecision = Allow | Deny | RequiresConfirmation


class PermissionGate:
    """Decides which tools a mode exposes and whether a call may run."""

    def __init__(self, ask_capabilities: frozenset[Capability] = ASK_CAPABILITIES) -> None:
        self.ask_capabilities = ask_capabilities

    def is_visible(self, tool: ToolDefinition, mode: ExecutionMode) -> bool:
        """Whether *tool* is offered to the model under *mode*."""
        if ExecutionMode(mode) is ExecutionMode.ASK:
            return tool.capabilities <= self.ask_capabilities
        return True

    def decide(
        self, tool: ToolDefinition, params: BaseModel, context: ExecutionContext
    ) -> PermissionDecision:
        """Static decision for one call, before any user interaction.

        A describer that refuses the call (a path outside the sandbox, say)
        denies it outright instead of asking the user.
        """
        if not self.is_visible(tool, context.mode):
            return Deny(f"Tool {tool.name} is not available in {context.mode.value} mode")
        if context.mode is ExecutionMode.YOLO:
            return Allow()
        try:
            description = tool.requires_permission(params, context)
        except PermissionDeniedError as e:
            return Deny(str(e))
        if description is None:
            return Allow()
        return RequiresConfirmation(description)

    async def authorize(
        self, tool: ToolDefinition, params: BaseModel, context: ExecutionContext
    ) -> Allow | Deny:
        """Resolve confirmation requests through ``context.confirm``.

        A missing callback denies, as does a callback that raises.
        """
        decision = self.decide(tool, params, context)
        if not isinstance(decision, RequiresConfirmation):
            return decision
        if context.confirm is None:
            return Deny(
                f"Permission required ({decision.description}) but no confirmation handler is available"
            )
        try:
            approved = context.confirm(tool.name, decision.description, params.model_dump())
            if inspect.isawaitable(approved):
                approved = await approved
        except Exception as e:
            logger.warning("Confirmation for %s failed: %s", tool.name, e)
            return Deny(f"Confirmation failed: {e}")
        if approved is True:
            return Allow()
        return Deny(f"Permission denied by user: {decision.description}")
