"""Session state and diff input models."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from diff_review.models.findings import Finding, Side


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


class FileStatus(Enum):
    """How a file changed in the diff under review."""

    ADDED = "added"
    DELETED = "deleted"
    MODIFIED = "modified"


@dataclass(frozen=True)
class FileSnapshot:
    """Full before/after content of one changed file."""

    path: str
    status: FileStatus
    before: str
    after: str
    additions: int = 0
    deletions: int = 0

    def text_for(self, side: Side) -> str:
        """Text that findings on ``side`` are anchored against."""
        return self.before if side == Side.DELETIONS else self.after

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "status": self.status.value,
            "additions": self.additions,
            "deletions": self.deletions,
            "before": self.before,
            "after": self.after,
        }


@dataclass
class Draft:
    """Unvalidated reviewer scratch space saved between interactions."""

    notes: str = ""
    new_findings: list[Any] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Any) -> "Draft":
        """Build a draft from a request body, keeping items verbatim."""
        if not isinstance(payload, dict):
            return cls()
        notes = payload.get("notes")
        items = payload.get("new_findings")
        return cls(
            notes=notes if isinstance(notes, str) else "",
            new_findings=list(items) if isinstance(items, list) else [],
        )

    def to_dict(self) -> dict[str, Any]:
        return {"notes": self.notes, "new_findings": list(self.new_findings)}


@dataclass
class SessionState:
    """Durable record of one review session across all rounds.

    ``round`` is the last completed round. ``version`` is bumped by the store
    on every save and used to reject writes based on a stale copy.
    """

    session_id: str
    round: int = 0
    findings: list[Finding] = field(default_factory=list)
    draft: Draft | None = None
    updated_at: int = field(default_factory=now_ms)
    version: int = 0

    @classmethod
    def default(cls, session_id: str) -> "SessionState":
        return cls(session_id=session_id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "session_id": self.session_id,
            "round": self.round,
            "findings": [f.to_dict() for f in self.findings],
            "updated_at": self.updated_at,
            "version": self.version,
        }
        if self.draft is not None:
            data["draft"] = self.draft.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionState":
        """Rebuild state from its persisted form.

        Raises:
            KeyError, ValueError, TypeError: If the record is malformed
        """
        if not isinstance(data, dict):
            raise TypeError(f"Session state must be an object, got {type(data).__name__}")
        findings = data.get("findings", [])
        if not isinstance(findings, list):
            raise TypeError("Session state findings must be a list")
        draft_raw = data.get("draft")
        return cls(
            session_id=str(data["session_id"]),
            round=int(data.get("round", 0)),
            findings=[Finding.from_dict(item) for item in findings],
            draft=Draft.from_payload(draft_raw) if draft_raw is not None else None,
            updated_at=int(data.get("updated_at", 0)),
            version=int(data.get("version", 0)),
        )
