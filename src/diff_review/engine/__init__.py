"""Finding lifecycle engine: anchoring, reconciliation, sanitizing and rounds."""

from diff_review.engine.anchor import capture, locate
from diff_review.engine.reconciler import reconcile
from diff_review.engine.rounds import (
    FindingNotFoundError,
    LaunchData,
    ReviewRound,
    RoundPhase,
    RoundResult,
    RoundStateError,
)
from diff_review.engine.sanitizer import SanitizeResult, SkippedItem, sanitize
from diff_review.engine.store import closed_findings, find_open, open_findings

__all__ = [
    "FindingNotFoundError",
    "LaunchData",
    "ReviewRound",
    "RoundPhase",
    "RoundResult",
    "RoundStateError",
    "SanitizeResult",
    "SkippedItem",
    "capture",
    "closed_findings",
    "find_open",
    "locate",
    "open_findings",
    "reconcile",
    "sanitize",
]
