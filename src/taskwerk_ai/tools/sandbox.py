"""Working-directory containment for filesystem tools."""

from __future__ import annotations

from pathlib import Path

from taskwerk_ai.errors import SandboxViolationError


def resolve_within(work_dir: Path | str, target: Path | str) -> Path:
    """Resolve *target* against *work_dir* and insist it stays inside.

    Symlinks are resolved before the check, so a link pointing out of the
    root is rejected just like ``..`` traversal or an absolute path elsewhere.
    The root itself is allowed.
    """
    root = Path(work_dir).resolve()
    try:
        candidate = Path(target)
        if not candidate.is_absolute():
            candidate = root / candidate
        resolved = candidate.resolve()
    except (ValueError, OSError) as e:
        raise SandboxViolationError(f"Invalid path: {target!r}") from e

    if not resolved.is_relative_to(root):
        raise SandboxViolationError(
            f"Path is outside the working directory: {target}",
            hint=f"Tools may only touch files under {root}.",
        )
    return resolved


def display_path(work_dir: Path | str, path: Path) -> str:
    """Render *path* relative to the sandbox root with forward slashes."""
    rel = path.relative_to(Path(work_dir).resolve())
    return rel.as_posix() or "."
