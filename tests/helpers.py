"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: a recording HTTP backend for adapter
tests, stream-body builders, and an in-memory task API for the task tools.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import itertools
import json
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable


# =============================================================================
# HTTP backend double
# =============================================================================


@dataclass
class RecordingBackend:
    """Routes requests by ``(method, path)`` and records everything sent.

    Unrouted requests get a 404 so a typo in a path fails loudly.
    """

    routes: dict[tuple[str, str], Any] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    def route(self, method: str, path: str, handler: Any) -> RecordingBackend:
        self.routes[(method, path)] = handler
        return self

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(
                404, json={"error": {"message": f"no route {request.url.path}"}}
            )
        if isinstance(handler, httpx.Response):
            # Fresh copy per request; a Response object can only be sent once.
            return httpx.Response(
                handler.status_code, headers=handler.headers, content=handler.content
            )
        return handler(request)

    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if r.content]

    def last_body(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


def failing_transport(exc: Exception) -> httpx.MockTransport:
    """Transport whose every request raises *exc*."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise exc

    return httpx.MockTransport(handler)


# =============================================================================
# Stream bodies
# =============================================================================


def sse_lines(*payloads: dict[str, Any] | str, done: bool = True) -> bytes:
    """Encode payloads as SSE ``data:`` frames; strings are sent verbatim."""
    out = []
    for p in payloads:
        data = p if isinstance(p, str) else json.dumps(p)
        out.append(f"data: {data}\n\n")
    if done:
        out.append("data: [DONE]\n\n")
    return "".join(out).encode()


def ndjson_lines(*payloads: dict[str, Any] | str) -> bytes:
    return "".join(
        (p if isinstance(p, str) else json.dumps(p)) + "\n" for p in payloads
    ).encode()


def split_every(data: bytes, size: int) -> list[bytes]:
    """Cut *data* into fixed-size pieces, ignoring UTF-8 boundaries."""
    return [data[i : i + size] for i in range(0, len(data), size)]


async def aiter_chunks(chunks: Iterable[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


def stream_response(body: bytes, *, chunk_size: int = 7, status: int = 200) -> httpx.Response:
    """A streamed response delivering *body* in awkward small pieces."""
    return httpx.Response(status, content=aiter_chunks(split_every(body, chunk_size)))


# =============================================================================
# Task API double
# =============================================================================


@dataclass
class InMemoryTaskAPI:
    """Dict-backed task store with the TaskAPI surface; records calls."""

    tasks: dict[str, dict[str, Any]] = field(default_factory=dict)
    calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = field(default_factory=list)
    _ids: Any = field(default_factory=lambda: itertools.count(1))

    def _record(self, _method: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((_method, args, kwargs))

    def list_tasks(self, **filters: Any) -> list[dict[str, Any]]:
        self._record("list_tasks", **filters)
        found = list(self.tasks.values())
        if filters.get("status"):
            found = [t for t in found if t["status"] in filters["status"]]
        if filters.get("priority"):
            found = [t for t in found if t["priority"] in filters["priority"]]
        if filters.get("assignee"):
            found = [t for t in found if t.get("assignee") == filters["assignee"]]
        return found[: filters.get("limit", 20)]

    def create_task(self, **fields: Any) -> dict[str, Any]:
        self._record("create_task", **fields)
        task_id = f"TASK-{next(self._ids):03d}"
        task = {
            "id": task_id,
            "status": "todo",
            "tags": [],
            "notes": [],
            "created_at": "2024-01-01T00:00:00Z",
            "updated_at": "2024-01-01T00:00:00Z",
            **{k: v for k, v in fields.items() if v is not None},
        }
        self.tasks[task_id] = task
        return dict(task)

    def update_task(self, task_id: str, **fields: Any) -> dict[str, Any]:
        self._record("update_task", task_id, **fields)
        self.tasks[task_id].update(fields)
        return dict(self.tasks[task_id])

    def get_task(self, task_id: str) -> dict[str, Any]:
        self._record("get_task", task_id)
        return dict(self.tasks[task_id])

    def add_tags(self, task_id: str, tags: list[str]) -> None:
        self._record("add_tags", task_id, tags)
        self.tasks[task_id]["tags"].extend(t for t in tags if t not in self.tasks[task_id]["tags"])

    def remove_tags(self, task_id: str, tags: list[str]) -> None:
        self._record("remove_tags", task_id, tags)
        self.tasks[task_id]["tags"] = [t for t in self.tasks[task_id]["tags"] if t not in tags]

    def add_note(self, task_id: str, note: str) -> None:
        self._record("add_note", task_id, note)
        self.tasks[task_id]["notes"].append(note)
