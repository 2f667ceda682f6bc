"""Built-in tool behaviour: filesystem tools, task tools, and schemas."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from taskwerk_ai.errors import SandboxViolationError, ToolValidationError
from taskwerk_ai.tools import ExecutionContext, build_default_tools
from taskwerk_ai.tools.filesystem import (
    ListFilesParams,
    ReadFileParams,
    SearchCodeParams,
    WriteFileParams,
    list_files,
    read_file,
    search_code,
    write_file,
)
from taskwerk_ai.tools.tasks import UpdateTaskParams, build_task_tools, describe_update
from tests.helpers import InMemoryTaskAPI

pytestmark = pytest.mark.unit


@pytest.fixture
def project(tmp_path: Path) -> ExecutionContext:
    """A small tree: src/app.py, src/util.py, README.md, .git/config, docs/."""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text("import util\n\ndef main():\n    return util.TODO\n")
    (tmp_path / "src" / "util.py").write_text("TODO = 'later'\n# todo: lowercase\n")
    (tmp_path / "README.md").write_text("# Demo\nTODO: write docs\n")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "config").write_text("TODO hidden\n")
    (tmp_path / "docs").mkdir()
    return ExecutionContext(mode="agent", work_dir=tmp_path)


# =============================================================================
# list_files
# =============================================================================


def test_list_files_top_level_sorted_without_hidden(project: ExecutionContext) -> None:
    entries = list_files(ListFilesParams(), project)

    assert [(e["name"], e["type"]) for e in entries] == [
        ("README.md", "file"),
        ("docs", "directory"),
        ("src", "directory"),
    ]
    readme = entries[0]
    assert readme["path"] == "README.md"
    assert readme["size"] == len("# Demo\nTODO: write docs\n")
    assert readme["modified"].endswith("+00:00")


def test_list_files_recursive_with_pattern(project: ExecutionContext) -> None:
    entries = list_files(ListFilesParams(recursive=True, pattern="*.py"), project)
    assert [e["path"] for e in entries] == ["src/app.py", "src/util.py"]


def test_list_files_include_hidden(project: ExecutionContext) -> None:
    names = [e["name"] for e in list_files(ListFilesParams(include_hidden=True), project)]
    assert names[0] == ".git"


def test_list_files_does_not_recurse_into_symlinked_dirs(project: ExecutionContext) -> None:
    (project.work_dir / "mirror").symlink_to(project.work_dir / "src", target_is_directory=True)

    paths = [e["path"] for e in list_files(ListFilesParams(recursive=True), project)]

    assert "mirror" in paths
    assert not any(p.startswith("mirror/") for p in paths)


def test_list_files_errors(project: ExecutionContext) -> None:
    with pytest.raises(FileNotFoundError, match="Directory not found: nope"):
        list_files(ListFilesParams(path="nope"), project)
    with pytest.raises(NotADirectoryError):
        list_files(ListFilesParams(path="README.md"), project)
    with pytest.raises(SandboxViolationError):
        list_files(ListFilesParams(path=".."), project)


# =============================================================================
# read_file / write_file
# =============================================================================


def test_read_file(project: ExecutionContext) -> None:
    result = read_file(ReadFileParams(path="src/util.py"), project)

    assert result == {
        "path": "src/util.py",
        "content": "TODO = 'later'\n# todo: lowercase\n",
        "size": 33,
    }


def test_read_file_errors(project: ExecutionContext) -> None:
    with pytest.raises(FileNotFoundError):
        read_file(ReadFileParams(path="missing.txt"), project)
    with pytest.raises(IsADirectoryError):
        read_file(ReadFileParams(path="src"), project)


def test_write_file_modes(project: ExecutionContext) -> None:
    created = write_file(WriteFileParams(path="out/notes.txt", content="one\n", mode="create"), project)
    write_file(WriteFileParams(path="out/notes.txt", content="two\n", mode="append"), project)

    assert created == {"path": "out/notes.txt", "written": 4, "mode": "create"}
    assert (project.work_dir / "out" / "notes.txt").read_text() == "one\ntwo\n"

    write_file(WriteFileParams(path="out/notes.txt", content="fresh"), project)
    assert (project.work_dir / "out" / "notes.txt").read_text() == "fresh"

    with pytest.raises(FileExistsError):
        write_file(WriteFileParams(path="out/notes.txt", content="x", mode="create"), project)


def test_write_file_outside_root_touches_nothing(project: ExecutionContext, tmp_path: Path) -> None:
    with pytest.raises(SandboxViolationError):
        write_file(WriteFileParams(path="../escape.txt", content="x"), project)
    assert not (tmp_path.parent / "escape.txt").exists()


# =============================================================================
# search_code
# =============================================================================


def test_search_code_reports_relative_files_and_lines(project: ExecutionContext) -> None:
    result = search_code(SearchCodeParams(pattern="TODO"), project)

    assert result["match_count"] == 3
    assert [(m["file"], m["line"]) for m in result["matches"]] == [
        ("README.md", 2),
        ("src/app.py", 4),
        ("src/util.py", 1),
    ]
    assert result["matches"][1]["content"] == "return util.TODO"
    assert result["truncated"] is False


def test_search_code_case_insensitive_with_file_filter(project: ExecutionContext) -> None:
    result = search_code(
        SearchCodeParams(pattern="todo", path="src", file_pattern="util.py", case_sensitive=False),
        project,
    )
    assert [m["line"] for m in result["matches"]] == [1, 2]


def test_search_code_truncates_at_max_results(project: ExecutionContext) -> None:
    result = search_code(SearchCodeParams(pattern="TODO", max_results=2), project)

    assert result["match_count"] == 2
    assert result["truncated"] is True


def test_search_code_skips_binary_files(project: ExecutionContext) -> None:
    (project.work_dir / "blob.bin").write_bytes(b"\xff\xfeTODO\x00\x81")
    result = search_code(SearchCodeParams(pattern="TODO"), project)
    assert "blob.bin" not in {m["file"] for m in result["matches"]}


def test_search_code_single_file(project: ExecutionContext) -> None:
    result = search_code(SearchCodeParams(pattern="main", path="src/app.py"), project)
    assert result["matches"] == [{"file": "src/app.py", "line": 3, "content": "def main():"}]


def test_search_code_rejects_invalid_regex() -> None:
    tool = build_default_tools().get("search_code")
    with pytest.raises(ToolValidationError, match="pattern"):
        tool.parse_arguments('{"pattern": "(unclosed"}')


# =============================================================================
# Schemas and argument parsing
# =============================================================================


def test_parameter_schema_is_plain_json_schema() -> None:
    schema = build_default_tools().get("read_file").parameter_schema()

    assert "title" not in schema
    assert schema["type"] == "object"
    assert schema["required"] == ["path"]
    assert schema["properties"]["encoding"]["default"] == "utf-8"


def test_to_spec_carries_name_and_description() -> None:
    spec = build_default_tools().get("write_file").to_spec()
    assert spec.name == "write_file"
    assert spec.description.startswith("Write or create a file")
    assert set(spec.parameters["properties"]) == {"path", "content", "encoding", "mode"}


@pytest.mark.parametrize(
    ("raw", "fragment"),
    [
        ("{not json", "not valid JSON"),
        ("[1, 2]", "expected a JSON object"),
        ("{}", "path"),
        ('{"path": "a", "content": "b", "mode": "truncate"}', "mode"),
    ],
)
def test_parse_arguments_rejections(raw: str, fragment: str) -> None:
    tool = build_default_tools().get("write_file")
    with pytest.raises(ToolValidationError, match=fragment):
        tool.parse_arguments(raw)


def test_parse_arguments_blank_means_no_arguments() -> None:
    params = build_default_tools().get("list_files").parse_arguments("  ")
    assert params == ListFilesParams()


def test_default_tools_registry_contents() -> None:
    assert build_default_tools().names() == ["list_files", "read_file", "search_code", "write_file"]
    with_tasks = build_default_tools(InMemoryTaskAPI())
    assert len(with_tasks) == 7
    assert "update_task" in with_tasks


# =============================================================================
# Task tools
# =============================================================================


def _task_tools(api: Any) -> dict[str, Any]:
    return {t.name: t for t in build_task_tools(api)}


@pytest.mark.asyncio
async def test_list_tasks_passes_filters_and_ordering(tmp_path: Path) -> None:
    api = InMemoryTaskAPI()
    api.create_task(name="Ship it", priority="high")
    api.create_task(name="Later", priority="low")
    tool = _task_tools(api)["list_tasks"]

    rows = await tool.execute(
        tool.parse_arguments('{"priority": ["high"], "limit": 5}'), ExecutionContext(work_dir=tmp_path)
    )

    name, _args, kwargs = api.calls[-1]
    assert name == "list_tasks"
    assert kwargs == {"priority": ["high"], "limit": 5, "order_by": "created_at", "order_dir": "DESC"}
    assert [(r["id"], r["name"], r["priority"]) for r in rows] == [("TASK-001", "Ship it", "high")]
    assert rows[0]["created"] == "2024-01-01T00:00:00Z"


@pytest.mark.asyncio
async def test_add_task_applies_tags_and_notes(tmp_path: Path) -> None:
    api = InMemoryTaskAPI()
    tool = _task_tools(api)["add_task"]
    params = tool.parse_arguments(
        '{"name": "Write release notes", "tags": ["docs"], "notes": ["draft first", "then review"]}'
    )

    result = await tool.execute(params, ExecutionContext(work_dir=tmp_path))

    assert result == {
        "id": "TASK-001",
        "name": "Write release notes",
        "status": "todo",
        "priority": "medium",
        "created": True,
    }
    assert api.tasks["TASK-001"]["tags"] == ["docs"]
    assert api.tasks["TASK-001"]["notes"] == ["draft first", "then review"]
    assert tool.requires_permission(params, ExecutionContext(work_dir=tmp_path)) == (
        'Create task: "Write release notes"'
    )


@pytest.mark.asyncio
async def test_update_task_with_async_api(tmp_path: Path) -> None:
    store = InMemoryTaskAPI()
    store.create_task(name="Fix login", tags=["bug", "auth"])

    class AsyncAPI:
        def __getattr__(self, name: str) -> Any:
            method = getattr(store, name)

            async def call(*args: Any, **kwargs: Any) -> Any:
                await asyncio.sleep(0)
                return method(*args, **kwargs)

            return call

    tool = _task_tools(AsyncAPI())["update_task"]
    result = await tool.execute(
        tool.parse_arguments(
            '{"id": "TASK-001", "status": "done", "remove_tags": ["bug"], "add_note": "fixed in 1.2"}'
        ),
        ExecutionContext(work_dir=tmp_path),
    )

    assert result == {
        "id": "TASK-001",
        "name": "Fix login",
        "status": "done",
        "priority": None,
        "updated": True,
    }
    assert store.tasks["TASK-001"]["tags"] == ["auth"]
    assert store.tasks["TASK-001"]["notes"] == ["fixed in 1.2"]


def test_describe_update(tmp_path: Path) -> None:
    ctx = ExecutionContext(work_dir=tmp_path)

    assert describe_update(UpdateTaskParams(id="T-1"), ctx) == "Update task T-1"
    assert describe_update(
        UpdateTaskParams(id="T-1", status="blocked", assignee="sam", add_tags=["a", "b"]), ctx
    ) == "Update task T-1: change status to blocked, assign to sam, add tags a, b"
