"""Finding models for diff review sessions."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class Category(Enum):
    """Categories a reviewer can assign to a finding."""

    BUG = "bug"
    STYLE = "style"
    PERF = "perf"
    QUESTION = "question"


class Severity(Enum):
    """Severity levels for findings, most severe first."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Side(Enum):
    """Which half of a diff a line range belongs to.

    - ADDITIONS: matched against the "after" text of a file.
    - DELETIONS: matched against the "before" text of a file.
    """

    ADDITIONS = "additions"
    DELETIONS = "deletions"


class FindingStatus(Enum):
    """Lifecycle status of a finding."""

    OPEN = "open"
    CLOSED_AUTO = "closed_auto"  # Closed by reconciliation after drift
    RESOLVED = "resolved"  # Closed by explicit reviewer action


class CloseReason(Enum):
    """Why reconciliation closed a finding."""

    FILE_REMOVED = "file_removed"
    ANCHOR_MISSING = "anchor_missing"


TAXONOMY = {
    "categories": [c.value for c in Category],
    "severities": [s.value for s in Severity],
}


@dataclass(frozen=True)
class LineRange:
    """An inclusive, 1-based line range."""

    start_line: int
    end_line: int


@dataclass(frozen=True)
class Anchor:
    """Content fingerprint of a line range.

    ``selected`` is the exact text that must be found again to relocate the
    range. ``before`` and ``after`` hold the neighbouring lines for display.
    """

    before: str
    selected: str
    after: str

    def to_dict(self) -> dict[str, str]:
        return {"before": self.before, "selected": self.selected, "after": self.after}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Anchor":
        if not isinstance(data, dict):
            raise TypeError(f"Anchor must be an object, got {type(data).__name__}")
        return cls(
            before=str(data.get("before", "")),
            selected=str(data.get("selected", "")),
            after=str(data.get("after", "")),
        )


@dataclass(frozen=True)
class Finding:
    """A reviewer finding anchored to a line range of one file.

    Instances are immutable; status transitions return new findings. Only open
    findings can transition, so closed and resolved findings never change.
    """

    id: str
    round: int
    file: str
    side: Side
    start_line: int
    end_line: int
    category: Category
    severity: Severity
    comment: str
    status: FindingStatus
    anchor: Anchor
    created_at: int  # epoch milliseconds
    updated_at: int
    closed_at: int | None = None
    close_reason: CloseReason | None = None

    def __post_init__(self) -> None:
        """Validate finding data."""
        if self.start_line < 1:
            raise ValueError(f"start_line must be >= 1, got {self.start_line}")
        if self.end_line < self.start_line:
            raise ValueError(
                f"end_line ({self.end_line}) must be >= start_line ({self.start_line})"
            )

    @property
    def is_open(self) -> bool:
        return self.status == FindingStatus.OPEN

    def relocate(self, line_range: LineRange, now: int) -> "Finding":
        """Move the finding to a new line range, keeping its original anchor."""
        self._require_open("relocate")
        return replace(
            self,
            start_line=line_range.start_line,
            end_line=line_range.end_line,
            updated_at=now,
        )

    def close(self, reason: CloseReason, now: int) -> "Finding":
        """Auto-close the finding because its file or anchor disappeared."""
        self._require_open("close")
        return replace(
            self,
            status=FindingStatus.CLOSED_AUTO,
            close_reason=reason,
            closed_at=now,
            updated_at=now,
        )

    def resolve(self, now: int) -> "Finding":
        """Mark the finding resolved by the reviewer."""
        self._require_open("resolve")
        return replace(self, status=FindingStatus.RESOLVED, closed_at=now, updated_at=now)

    def _require_open(self, action: str) -> None:
        if not self.is_open:
            raise ValueError(f"Cannot {action} finding {self.id} with status {self.status.value}")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "round": self.round,
            "file": self.file,
            "side": self.side.value,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "category": self.category.value,
            "severity": self.severity.value,
            "comment": self.comment,
            "status": self.status.value,
            "anchor": self.anchor.to_dict(),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.closed_at is not None:
            data["closed_at"] = self.closed_at
        if self.close_reason is not None:
            data["close_reason"] = self.close_reason.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Finding":
        """Rebuild a finding from its persisted form.

        Raises:
            KeyError, ValueError, TypeError: If the record is malformed
        """
        if not isinstance(data, dict):
            raise TypeError(f"Finding must be an object, got {type(data).__name__}")
        close_reason = data.get("close_reason")
        closed_at = data.get("closed_at")
        return cls(
            id=str(data["id"]),
            round=int(data["round"]),
            file=str(data["file"]),
            side=Side(data["side"]),
            start_line=int(data["start_line"]),
            end_line=int(data["end_line"]),
            category=Category(data["category"]),
            severity=Severity(data["severity"]),
            comment=str(data["comment"]),
            status=FindingStatus(data["status"]),
            anchor=Anchor.from_dict(data["anchor"]),
            created_at=int(data["created_at"]),
            updated_at=int(data["updated_at"]),
            closed_at=int(closed_at) if closed_at is not None else None,
            close_reason=CloseReason(close_reason) if close_reason else None,
        )
