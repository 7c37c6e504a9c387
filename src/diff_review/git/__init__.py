"""Git integration for Diff Review."""

from diff_review.git.diff_source import (
    BaseRefError,
    DiffSourceError,
    NoChangesError,
    NotARepositoryError,
    collect_snapshots,
    filter_snapshots,
    resolve_repo_root,
)

__all__ = [
    "BaseRefError",
    "DiffSourceError",
    "NoChangesError",
    "NotARepositoryError",
    "collect_snapshots",
    "filter_snapshots",
    "resolve_repo_root",
]
