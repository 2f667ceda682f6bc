"""Working-directory containment: traversal, absolute paths, and symlinks."""

from __future__ import annotations

from pathlib import Path

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
import pytest

from taskwerk_ai.errors import PermissionDeniedError, SandboxViolationError
from taskwerk_ai.tools.sandbox import display_path, resolve_within

pytestmark = pytest.mark.unit


def _escapes(segments: list[str]) -> bool:
    depth = 0
    for seg in segments:
        if seg == "..":
            depth -= 1
        elif seg != ".":
            depth += 1
        if depth < 0:
            return True
    return False


@given(segments=st.lists(st.sampled_from(["..", ".", "a", "b"]), min_size=1, max_size=8))
@settings(
    max_examples=60,
    deadline=None,
    derandomize=True,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
def test_relative_paths_are_contained_or_rejected(tmp_path: Path, segments: list[str]) -> None:
    """Property: a path is accepted iff no prefix of it climbs above the root."""
    root = tmp_path / "root"
    root.mkdir(exist_ok=True)
    target = "/".join(segments)

    if _escapes(segments):
        with pytest.raises(SandboxViolationError):
            resolve_within(root, target)
    else:
        resolved = resolve_within(root, target)
        assert resolved.is_relative_to(root.resolve())


def test_root_itself_is_allowed(tmp_path: Path) -> None:
    assert resolve_within(tmp_path, ".") == tmp_path.resolve()
    assert display_path(tmp_path, tmp_path.resolve()) == "."


def test_absolute_paths(tmp_path: Path) -> None:
    inside = tmp_path / "docs" / "a.md"

    assert resolve_within(tmp_path, inside) == inside.resolve()
    with pytest.raises(SandboxViolationError) as exc:
        resolve_within(tmp_path, "/etc/passwd")
    assert exc.value.hint is not None


def test_sibling_with_shared_prefix_is_outside(tmp_path: Path) -> None:
    root = tmp_path / "proj"
    sibling = tmp_path / "proj-secrets"
    root.mkdir()
    sibling.mkdir()

    with pytest.raises(SandboxViolationError):
        resolve_within(root, sibling / "key.pem")


def test_symlink_pointing_outside_is_rejected(tmp_path: Path) -> None:
    root = tmp_path / "root"
    outside = tmp_path / "outside"
    root.mkdir()
    outside.mkdir()
    (outside / "secret.txt").write_text("s3cret")
    (root / "link").symlink_to(outside, target_is_directory=True)

    with pytest.raises(SandboxViolationError):
        resolve_within(root, "link/secret.txt")


def test_symlink_within_root_is_followed(tmp_path: Path) -> None:
    (tmp_path / "real").mkdir()
    (tmp_path / "alias").symlink_to(tmp_path / "real", target_is_directory=True)

    resolved = resolve_within(tmp_path, "alias/file.txt")

    assert resolved == (tmp_path / "real" / "file.txt").resolve()
    assert display_path(tmp_path, resolved) == "real/file.txt"


def test_violation_is_a_permission_denial() -> None:
    assert issubclass(SandboxViolationError, PermissionDeniedError)
