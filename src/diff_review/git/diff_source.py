"""Collect file snapshots for review from a git repository.

Two modes are supported:
- working tree: uncommitted and untracked changes against HEAD
- base: committed changes between merge-base(base, HEAD) and HEAD
"""

import logging
import subprocess
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from diff_review.models.session import FileSnapshot, FileStatus

logger = logging.getLogger(__name__)


class DiffSourceError(Exception):
    """Raised when the diff to review cannot be produced."""

    pass


class NotARepositoryError(DiffSourceError):
    """Raised outside of a git work tree."""

    pass


class BaseRefError(DiffSourceError):
    """Raised when the base ref cannot be resolved."""

    pass


class NoChangesError(DiffSourceError):
    """Raised when there is nothing to review."""

    pass


def _run(cwd: Path, args: list[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=False,
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
    )


def _error_text(result: subprocess.CompletedProcess[str], fallback: str) -> str:
    return result.stderr.strip() or result.stdout.strip() or fallback


def _split(text: str) -> list[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def _line_count(text: str) -> int:
    if not text:
        return 0
    lines = text.split("\n")
    return len(lines) - 1 if text.endswith("\n") else len(lines)


def _as_text(content: str) -> str:
    # NUL bytes mean binary content; there is nothing to anchor on
    return "" if "\x00" in content else content


def resolve_repo_root(start: Path) -> Path:
    """Return the top-level directory of the repository containing ``start``.

    Raises:
        NotARepositoryError: If ``start`` is not inside a git work tree
    """
    try:
        result = _run(start, ["rev-parse", "--show-toplevel"])
    except OSError as e:
        raise NotARepositoryError(f"Failed to run git: {e}") from e
    root = result.stdout.strip()
    if result.returncode != 0 or not root:
        raise NotARepositoryError(
            "Current directory is not a git repository. "
            + _error_text(result, "failed to resolve git root")
        )
    return Path(root)


def _is_inside_work_tree(root: Path) -> bool:
    result = _run(root, ["rev-parse", "--is-inside-work-tree"])
    return result.returncode == 0 and result.stdout.strip() == "true"


def _has_head(root: Path) -> bool:
    return _run(root, ["rev-parse", "--verify", "HEAD"]).returncode == 0


def scope_path(repo_root: Path, scope_root: Path) -> str:
    """Pathspec restricting the diff to ``scope_root`` within the repository."""
    try:
        rel = Path(scope_root).resolve().relative_to(Path(repo_root).resolve())
    except ValueError:
        return "."
    text = rel.as_posix()
    return text if text and text != "." else "."


def is_excluded(path: str, exclude: Iterable[str]) -> bool:
    """Check whether ``path`` lies under one of the excluded directories."""
    for prefix in exclude:
        clean = PurePosixPath(prefix.replace("\\", "/")).as_posix().strip("/")
        if not clean or clean == ".":
            continue
        if path.startswith(f"{clean}/") or f"/{clean}/" in path:
            return True
    return False


def _parse_numstat(output: str) -> dict[str, tuple[int, int]]:
    stats: dict[str, tuple[int, int]] = {}
    for row in _split(output):
        parts = row.split("\t")
        if len(parts) < 3:
            continue
        adds, dels = parts[0], parts[1]
        path = "\t".join(parts[2:])
        # Binary files report "-" for both counts
        stats[path] = (
            int(adds) if adds.isdigit() else 0,
            int(dels) if dels.isdigit() else 0,
        )
    return stats


def _snapshot(
    path: str, before: str, after: str, stats: dict[str, tuple[int, int]]
) -> FileSnapshot:
    if before and not after:
        status = FileStatus.DELETED
    elif not before and after:
        status = FileStatus.ADDED
    else:
        status = FileStatus.MODIFIED

    if path in stats:
        additions, deletions = stats[path]
    else:
        old, new = _line_count(before), _line_count(after)
        additions = max(0, new - old) if before else new
        deletions = max(0, old - new)

    return FileSnapshot(
        path=path,
        status=status,
        before=before,
        after=after,
        additions=additions,
        deletions=deletions,
    )


def _show(root: Path, rev: str, path: str) -> str:
    result = _run(root, ["show", f"{rev}:{path}"])
    if result.returncode != 0:
        return ""
    return _as_text(result.stdout)


def _read_worktree(root: Path, path: str) -> str:
    target = root / path
    if not target.is_file():
        return ""
    try:
        return _as_text(target.read_text(encoding="utf-8", errors="replace"))
    except OSError as e:
        logger.debug(f"Could not read {target}: {e}")
        return ""


def _collect_working(root: Path, area: str, exclude: Iterable[str]) -> list[FileSnapshot]:
    with_head = _has_head(root)
    if with_head:
        tracked = _run(root, ["diff", "--name-only", "--no-renames", "HEAD", "--", area])
    else:
        tracked = _run(root, ["ls-files", "--cached", "--", area])
    if tracked.returncode != 0:
        raise DiffSourceError(
            f"Failed to read git diff: {_error_text(tracked, 'failed to list tracked changes')}"
        )

    untracked = _run(root, ["ls-files", "--others", "--exclude-standard", "--", area])
    if untracked.returncode != 0:
        raise DiffSourceError(
            f"Failed to read git diff: {_error_text(untracked, 'failed to list untracked files')}"
        )

    names = dict.fromkeys(_split(tracked.stdout) + _split(untracked.stdout))
    paths = [p for p in names if not is_excluded(p, exclude)]
    if not paths:
        return []

    stats: dict[str, tuple[int, int]] = {}
    if with_head:
        numstat = _run(root, ["diff", "--numstat", "--no-renames", "HEAD", "--", area])
        if numstat.returncode == 0:
            stats = _parse_numstat(numstat.stdout)

    return [
        _snapshot(
            path,
            _show(root, "HEAD", path) if with_head else "",
            _read_worktree(root, path),
            stats,
        )
        for path in paths
    ]


def _collect_base(
    root: Path, area: str, base: str, exclude: Iterable[str]
) -> list[FileSnapshot]:
    merged = _run(root, ["merge-base", base, "HEAD"])
    rev = merged.stdout.strip()
    if merged.returncode != 0 or not rev:
        detail = _error_text(merged, f"failed to resolve merge-base for {base}")
        raise BaseRefError(f"Failed to resolve --base {base}: {detail}")

    listed = _run(root, ["diff", "--name-only", "--no-renames", f"{rev}..HEAD", "--", area])
    if listed.returncode != 0:
        detail = _error_text(listed, "failed to list branch changes")
        raise DiffSourceError(f"Failed to read git diff for --base {base}: {detail}")

    paths = [p for p in _split(listed.stdout) if not is_excluded(p, exclude)]
    if not paths:
        return []

    stats: dict[str, tuple[int, int]] = {}
    numstat = _run(root, ["diff", "--numstat", "--no-renames", f"{rev}..HEAD", "--", area])
    if numstat.returncode == 0:
        stats = _parse_numstat(numstat.stdout)

    return [
        _snapshot(path, _show(root, rev, path), _show(root, "HEAD", path), stats)
        for path in paths
    ]


def collect_snapshots(
    repo_root: Path,
    scope_root: Path | None = None,
    base: str | None = None,
    exclude: Iterable[str] = (),
) -> list[FileSnapshot]:
    """Collect the files to review.

    Args:
        repo_root: Repository top-level directory
        scope_root: Directory to restrict the diff to (default: whole repo)
        base: Optional base ref; when set, review the branch against it
        exclude: Directory prefixes to leave out (e.g. the review output dir)

    Returns:
        Snapshots of all changed files

    Raises:
        NotARepositoryError: If ``repo_root`` is not a git work tree
        BaseRefError: If ``base`` cannot be resolved
        NoChangesError: If nothing changed
        DiffSourceError: If git fails to list the changes
    """
    root = Path(repo_root)
    if not _is_inside_work_tree(root):
        raise NotARepositoryError("Current directory is not a git repository.")

    area = scope_path(root, scope_root) if scope_root is not None else "."
    exclude = list(exclude)
    if base:
        files = _collect_base(root, area, base, exclude)
        if not files:
            raise NoChangesError(f"No changes found for --base {base}.")
    else:
        files = _collect_working(root, area, exclude)
        if not files:
            raise NoChangesError("No git working-tree changes found yet.")

    logger.debug(f"Collected {len(files)} changed files from {root} ({area})")
    return files


def filter_snapshots(files: list[FileSnapshot], patterns: list[str] | None) -> list[FileSnapshot]:
    """Keep files whose path equals or ends with one of ``patterns``."""
    if not patterns:
        return list(files)
    return [f for f in files if any(f.path == p or f.path.endswith(p) for p in patterns)]
