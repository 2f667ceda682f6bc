"""Tool definitions, capability tokens and the per-call execution context."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from taskwerk_ai.errors import ToolValidationError
from taskwerk_ai.providers.models import ToolSpec


class Capability(str, Enum):
    """Named permission a tool declares it needs."""

    READ_FILES = "read_files"
    WRITE_FILES = "write_files"
    DELETE_FILES = "delete_files"
    EXECUTE_COMMANDS = "execute_commands"
    READ_TASKS = "read_tasks"
    MODIFY_TASKS = "modify_tasks"
    NETWORK_ACCESS = "network_access"
    MCP_ACCESS = "mcp_access"


class ExecutionMode(str, Enum):
    """How much latitude the model has during a turn."""

    #: Read-only tools only.
    ASK = "ask"
    #: Every tool; side effects need user confirmation.
    AGENT = "agent"
    #: Every tool, no confirmation.
    YOLO = "yolo"


#: ``(tool_name, description, params) -> bool``, sync or async.
ConfirmCallback = Callable[[str, str, dict[str, Any]], bool | Awaitable[bool]]


@dataclass(frozen=True)
class ExecutionContext:
    """Mode, sandbox root and confirmation hook for one turn."""

    mode: ExecutionMode = ExecutionMode.ASK
    work_dir: Path = field(default_factory=Path.cwd)
    confirm: ConfirmCallback | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", ExecutionMode(self.mode))
        object.__setattr__(self, "work_dir", Path(self.work_dir).resolve())


def _no_permission_needed(params: Any, context: ExecutionContext) -> str | None:
    return None


@dataclass(frozen=True)
class ToolDefinition:
    """A named tool: parameter model, capabilities and executor.

    ``params_model`` is a pydantic model; its JSON Schema is what the model
    sees, and incoming arguments are validated against it before anything
    runs. ``requires_permission`` returns a human-readable description of the
    side effect when confirmation is needed, else None.
    """

    name: str
    description: str
    params_model: type[BaseModel]
    capabilities: frozenset[Capability]
    execute: Callable[[Any, ExecutionContext], Any]
    requires_permission: Callable[[Any, ExecutionContext], str | None] = (
        _no_permission_needed
    )

    def parameter_schema(self) -> dict[str, Any]:
        """JSON Schema for the tool's arguments."""
        schema = self.params_model.model_json_schema()
        schema.pop("title", None)
        return schema

    def to_spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=self.parameter_schema(),
        )

    def parse_arguments(self, raw: str) -> BaseModel:
        """Decode and validate a raw JSON argument string."""
        try:
            data = json.loads(raw) if raw and raw.strip() else {}
        except ValueError as e:
            raise ToolValidationError(
                f"Invalid arguments for {self.name}: not valid JSON ({e.msg})"
            ) from e
        if not isinstance(data, dict):
            raise ToolValidationError(
                f"Invalid arguments for {self.name}: expected a JSON object"
            )
        try:
            return self.params_model.model_validate(data)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            raise ToolValidationError(
                f"Invalid arguments for {self.name}: {problems}"
            ) from e
