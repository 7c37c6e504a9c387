"""Data models for Diff Review."""

from diff_review.models.findings import (
    TAXONOMY,
    Anchor,
    Category,
    CloseReason,
    Finding,
    FindingStatus,
    LineRange,
    Severity,
    Side,
)
from diff_review.models.session import Draft, FileSnapshot, FileStatus, SessionState

__all__ = [
    "TAXONOMY",
    "Anchor",
    "Category",
    "CloseReason",
    "Draft",
    "FileSnapshot",
    "FileStatus",
    "Finding",
    "FindingStatus",
    "LineRange",
    "SessionState",
    "Severity",
    "Side",
]
