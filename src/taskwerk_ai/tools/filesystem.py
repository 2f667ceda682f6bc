"""Filesystem tools: ``list_files``, ``read_file``, ``search_code``, ``write_file``.

Every path argument is resolved through ``resolve_within`` before any I/O,
so the sandbox holds no matter what the permission gate decided.
"""

from __future__ import annotations

from datetime import UTC, datetime
from fnmatch import fnmatchcase
import os
from pathlib import Path
import re
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field, field_validator

from taskwerk_ai.errors import SandboxViolationError
from taskwerk_ai.tools.base import Capability, ToolDefinition
from taskwerk_ai.tools.sandbox import display_path, resolve_within

if TYPE_CHECKING:
    from collections.abc import Iterator

    from taskwerk_ai.tools.base import ExecutionContext


# --- list_files ---


class ListFilesParams(BaseModel):
    path: str = Field(".", description="Directory path relative to working directory")
    recursive: bool = Field(False, description="List files recursively")
    include_hidden: bool = Field(False, description="Include hidden files (starting with .)")
    pattern: str | None = Field(None, description='Filter pattern (glob-like, e.g. "*.py")')


def _entry(work_dir: Path, path: Path) -> dict[str, Any]:
    try:
        st = path.stat()
    except OSError:
        st = path.lstat()
    return {
        "name": path.name,
        "path": display_path(work_dir, path.parent.resolve() / path.name),
        "type": "directory" if path.is_dir() else "file",
        "size": st.st_size,
        "modified": datetime.fromtimestamp(st.st_mtime, tz=UTC).isoformat(),
    }


def list_files(params: ListFilesParams, context: ExecutionContext) -> list[dict[str, Any]]:
    """List directory entries; recursion does not follow symlinked directories."""
    root = resolve_within(context.work_dir, params.path)
    if not root.exists():
        raise FileNotFoundError(f"Directory not found: {params.path}")
    if not root.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {params.path}")

    results: list[dict[str, Any]] = []
    pending = [root]
    while pending:
        directory = pending.pop(0)
        for child in sorted(directory.iterdir(), key=lambda p: p.name):
            if not params.include_hidden and child.name.startswith("."):
                continue
            if params.pattern is None or fnmatchcase(child.name, params.pattern):
                results.append(_entry(context.work_dir, child))
            if params.recursive and child.is_dir() and not child.is_symlink():
                pending.append(child)
    return results


# --- read_file ---


class ReadFileParams(BaseModel):
    path: str = Field(description="File path relative to working directory")
    encoding: str = Field("utf-8", description="File encoding")


def read_file(params: ReadFileParams, context: ExecutionContext) -> dict[str, Any]:
    target = resolve_within(context.work_dir, params.path)
    if not target.exists():
        raise FileNotFoundError(f"File not found: {params.path}")
    if target.is_dir():
        raise IsADirectoryError(f"Path is a directory: {params.path}")
    content = target.read_text(encoding=params.encoding)
    return {"path": params.path, "content": content, "size": len(content)}


# --- search_code ---


class SearchCodeParams(BaseModel):
    pattern: str = Field(description="The pattern to search for (regular expression)")
    path: str = Field(".", description="Path to search in, relative to working directory")
    file_pattern: str = Field("*", description='File name pattern to filter (e.g. "*.py")')
    case_sensitive: bool = Field(True, description="Whether the search is case sensitive")
    max_results: int = Field(20, ge=1, le=500, description="Maximum number of matches")

    @field_validator("pattern")
    @classmethod
    def _must_compile(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"invalid regular expression: {e}") from e
        return value


def _iter_files(root: Path) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        for name in sorted(filenames):
            yield Path(dirpath) / name


def search_code(params: SearchCodeParams, context: ExecutionContext) -> dict[str, Any]:
    """Regex search over text files; binary and unreadable files are skipped."""
    root = resolve_within(context.work_dir, params.path)
    if not root.exists():
        raise FileNotFoundError(f"Path not found: {params.path}")
    regex = re.compile(params.pattern, 0 if params.case_sensitive else re.IGNORECASE)
    files = [root] if root.is_file() else _iter_files(root)

    matches: list[dict[str, Any]] = []
    truncated = False
    for file in files:
        if truncated:
            break
        if not fnmatchcase(file.name, params.file_pattern):
            continue
        try:
            resolved = resolve_within(context.work_dir, file)
            text = resolved.read_text(encoding="utf-8")
        except (SandboxViolationError, UnicodeDecodeError, OSError):
            continue
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not regex.search(line):
                continue
            if len(matches) >= params.max_results:
                truncated = True
                break
            matches.append(
                {
                    "file": display_path(context.work_dir, resolved),
                    "line": lineno,
                    "content": line.strip(),
                }
            )

    return {
        "pattern": params.pattern,
        "path": params.path,
        "match_count": len(matches),
        "matches": matches,
        "truncated": truncated,
    }


# --- write_file ---


class WriteFileParams(BaseModel):
    path: str = Field(description="File path relative to working directory")
    content: str = Field(description="Content to write to the file")
    encoding: str = Field("utf-8", description="File encoding")
    mode: Literal["overwrite", "append", "create"] = Field(
        "overwrite", description="Write mode"
    )


def write_file(params: WriteFileParams, context: ExecutionContext) -> dict[str, Any]:
    target = resolve_within(context.work_dir, params.path)
    if target.is_dir():
        raise IsADirectoryError(f"Path is a directory: {params.path}")
    if params.mode == "create" and target.exists():
        raise FileExistsError(f"File already exists: {params.path}")
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("a" if params.mode == "append" else "w", encoding=params.encoding) as f:
        f.write(params.content)
    return {"path": params.path, "written": len(params.content), "mode": params.mode}


def describe_write(params: WriteFileParams, context: ExecutionContext) -> str:
    exists = resolve_within(context.work_dir, params.path).exists()
    if exists and params.mode == "append":
        return f"Append to file: {params.path}"
    return f"Overwrite file: {params.path}" if exists else f"Create file: {params.path}"


def build_filesystem_tools() -> list[ToolDefinition]:
    """Definitions for the built-in filesystem tools."""
    return [
        ToolDefinition(
            name="list_files",
            description="List files and directories in the working directory",
            params_model=ListFilesParams,
            capabilities=frozenset({Capability.READ_FILES}),
            execute=list_files,
        ),
        ToolDefinition(
            name="read_file",
            description="Read contents of a file in the working directory",
            params_model=ReadFileParams,
            capabilities=frozenset({Capability.READ_FILES}),
            execute=read_file,
        ),
        ToolDefinition(
            name="search_code",
            description="Search for a regular expression in files under the working directory",
            params_model=SearchCodeParams,
            capabilities=frozenset({Capability.READ_FILES}),
            execute=search_code,
        ),
        ToolDefinition(
            name="write_file",
            description="Write or create a file in the working directory",
            params_model=WriteFileParams,
            capabilities=frozenset({Capability.WRITE_FILES}),
            execute=write_file,
            requires_permission=describe_write,
        ),
    ]
