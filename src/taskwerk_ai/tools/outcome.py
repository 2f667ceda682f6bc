"""Tool outcomes as a tagged union, and their tool-message encoding.

Executing a tool never raises to the caller: every call ends in exactly one
of these variants, which the orchestrator feeds back to the model.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from taskwerk_ai.providers.models import Message

if TYPE_CHECKING:
    from taskwerk_ai.providers.models import ToolCall

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ToolSuccess(Generic[T]):
    """The tool ran and returned a value."""

    value: T


@dataclass(frozen=True, slots=True)
class ToolInvalid:
    """Unknown tool or arguments that failed validation; nothing ran."""

    message: str


@dataclass(frozen=True, slots=True)
class ToolDenied:
    """Refused by the permission gate, the user, or the sandbox."""

    reason: str


@dataclass(frozen=True, slots=True)
class ToolFault:
    """The tool raised while running."""

    error: Exception

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__


ToolOutcome = ToolSuccess[Any] | ToolInvalid | ToolDenied | ToolFault


@dataclass(frozen=True)
class ToolResult:
    """One tool call paired with its outcome."""

    call: ToolCall
    outcome: ToolOutcome

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, ToolSuccess)

    @property
    def denied(self) -> bool:
        return isinstance(self.outcome, ToolDenied)

    def payload(self) -> dict[str, Any]:
        """Outcome as the ``{"success": ..., ...}`` object sent to the model."""
        outcome = self.outcome
        if isinstance(outcome, ToolSuccess):
            return {"success": True, "result": outcome.value}
        if isinstance(outcome, ToolDenied):
            return {"success": False, "error": outcome.reason, "denied": True}
        if isinstance(outcome, ToolInvalid):
            return {"success": False, "error": outcome.message}
        return {"success": False, "error": outcome.message}

    def to_message(self) -> Message:
        """Encode as a ``tool`` message echoing the call id."""
        return Message(
            role="tool",
            content=json.dumps(self.payload(), default=str),
            tool_call_id=self.call.id,
            name=self.call.name,
        )
