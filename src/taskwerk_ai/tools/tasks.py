"""Task tools backed by the host application's task API."""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from taskwerk_ai.tools.base import Capability, ToolDefinition

if TYPE_CHECKING:
    from taskwerk_ai.tools.base import ExecutionContext

TaskStatus = Literal["todo", "in-progress", "done", "blocked", "cancelled"]
TaskPriority = Literal["high", "medium", "low"]


@runtime_checkable
class TaskAPI(Protocol):
    """Task query/mutation surface; methods may be sync or async.

    Tasks come back as mappings or as objects exposing the same attributes
    (``id``, ``name``, ``status``, ``priority`` and so on).
    """

    def list_tasks(self, **filters: Any) -> Any: ...  # noqa: D102
    def create_task(self, **fields: Any) -> Any: ...  # noqa: D102
    def update_task(self, task_id: str, **fields: Any) -> Any: ...  # noqa: D102
    def get_task(self, task_id: str) -> Any: ...  # noqa: D102
    def add_tags(self, task_id: str, tags: list[str]) -> Any: ...  # noqa: D102
    def remove_tags(self, task_id: str, tags: list[str]) -> Any: ...  # noqa: D102
    def add_note(self, task_id: str, note: str) -> Any: ...  # noqa: D102


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _field(task: Any, key: str, default: Any = None) -> Any:
    if isinstance(task, dict):
        return task.get(key, default)
    return getattr(task, key, default)


# --- Parameter models ---


class ListTasksParams(BaseModel):
    status: list[TaskStatus] | None = Field(None, description="Filter by status")
    priority: list[TaskPriority] | None = Field(None, description="Filter by priority")
    assignee: str | None = Field(None, description="Filter by assignee")
    category: str | None = Field(None, description="Filter by category")
    tags: list[str] | None = Field(None, description="Filter by tags")
    limit: int = Field(20, ge=1, le=100, description="Maximum number of results")


class AddTaskParams(BaseModel):
    name: str = Field(min_length=1, description="Task name/description")
    priority: TaskPriority = Field("medium", description="Task priority")
    assignee: str | None = Field(None, description="Person assigned to the task")
    category: str | None = Field(None, description="Task category")
    tags: list[str] | None = Field(None, description="Task tags")
    parent_id: str | None = Field(None, description="Parent task ID for subtasks")
    notes: list[str] | None = Field(None, description="Initial notes for the task")


class UpdateTaskParams(BaseModel):
    id: str = Field(description="Task ID to update")
    name: str | None = Field(None, description="New task name")
    status: TaskStatus | None = Field(None, description="New status")
    priority: TaskPriority | None = Field(None, description="New priority")
    assignee: str | None = Field(None, description="New assignee")
    category: str | None = Field(None, description="New category")
    add_tags: list[str] | None = Field(None, description="Tags to add")
    remove_tags: list[str] | None = Field(None, description="Tags to remove")
    add_note: str | None = Field(None, description="Note to add to the task")


def describe_update(params: UpdateTaskParams, context: ExecutionContext) -> str:
    """Summarize the requested changes for the confirmation prompt."""
    actions: list[str] = []
    if params.name:
        actions.append("rename")
    if params.status:
        actions.append(f"change status to {params.status}")
    if params.priority:
        actions.append(f"change priority to {params.priority}")
    if params.assignee:
        actions.append(f"assign to {params.assignee}")
    if params.category:
        actions.append(f"change category to {params.category}")
    if params.add_tags:
        actions.append(f"add tags {', '.join(params.add_tags)}")
    if params.remove_tags:
        actions.append(f"remove tags {', '.join(params.remove_tags)}")
    if params.add_note:
        actions.append("add a note")
    if not actions:
        return f"Update task {params.id}"
    return f"Update task {params.id}: {', '.join(actions)}"


def build_task_tools(api: TaskAPI) -> list[ToolDefinition]:
    """Definitions for ``list_tasks``, ``add_task`` and ``update_task`` bound to *api*."""

    async def list_tasks(
        params: ListTasksParams, context: ExecutionContext
    ) -> list[dict[str, Any]]:
        filters = params.model_dump(exclude_none=True)
        tasks = await _resolve(
            api.list_tasks(**filters, order_by="created_at", order_dir="DESC")
        )
        return [
            {
                "id": _field(t, "id"),
                "name": _field(t, "name"),
                "status": _field(t, "status"),
                "priority": _field(t, "priority"),
                "assignee": _field(t, "assignee"),
                "category": _field(t, "category"),
                "tags": list(_field(t, "tags") or []),
                "created": _field(t, "created_at"),
                "updated": _field(t, "updated_at"),
            }
            for t in tasks or []
        ]

    async def add_task(params: AddTaskParams, context: ExecutionContext) -> dict[str, Any]:
        task = await _resolve(
            api.create_task(
                name=params.name,
                priority=params.priority,
                assignee=params.assignee,
                category=params.category,
                parent_id=params.parent_id,
            )
        )
        task_id = str(_field(task, "id"))
        if params.tags:
            await _resolve(api.add_tags(task_id, params.tags))
        for note in params.notes or []:
            await _resolve(api.add_note(task_id, note))
        return {
            "id": task_id,
            "name": _field(task, "name"),
            "status": _field(task, "status"),
            "priority": _field(task, "priority"),
            "created": True,
        }

    async def update_task(
        params: UpdateTaskParams, context: ExecutionContext
    ) -> dict[str, Any]:
        updates = params.model_dump(
            include={"name", "status", "priority", "assignee", "category"},
            exclude_none=True,
        )
        if updates:
            await _resolve(api.update_task(params.id, **updates))
        if params.add_tags:
            await _resolve(api.add_tags(params.id, params.add_tags))
        if params.remove_tags:
            await _resolve(api.remove_tags(params.id, params.remove_tags))
        if params.add_note:
            await _resolve(api.add_note(params.id, params.add_note))
        task = await _resolve(api.get_task(params.id))
        return {
            "id": _field(task, "id"),
            "name": _field(task, "name"),
            "status": _field(task, "status"),
            "priority": _field(task, "priority"),
            "updated": True,
        }

    return [
        ToolDefinition(
            name="list_tasks",
            description="List tasks with optional filters",
            params_model=ListTasksParams,
            capabilities=frozenset({Capability.READ_TASKS}),
            execute=list_tasks,
        ),
        ToolDefinition(
            name="add_task",
            description="Create a new task",
            params_model=AddTaskParams,
            capabilities=frozenset({Capability.MODIFY_TASKS}),
            execute=add_task,
            requires_permission=lambda params, context: f'Create task: "{params.name}"',
        ),
        ToolDefinition(
            name="update_task",
            description="Update an existing task",
            params_model=UpdateTaskParams,
            capabilities=frozenset({Capability.MODIFY_TASKS}),
            execute=update_task,
            requires_permission=describe_update,
        ),
    ]
