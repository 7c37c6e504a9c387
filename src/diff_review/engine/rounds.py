"""Round controller: one review round from reconciliation to submission."""

import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from diff_review.engine.reconciler import reconcile
from diff_review.engine.sanitizer import SanitizeResult, SkippedItem, sanitize
from diff_review.engine.store import closed_findings, find_open, open_findings
from diff_review.formatter import build_export_payload, format_round_markdown
from diff_review.models.findings import TAXONOMY, Finding
from diff_review.models.session import Draft, FileSnapshot, SessionState, now_ms
from diff_review.storage import BaseSessionStore

logger = logging.getLogger(__name__)


class RoundStateError(Exception):
    """Raised when an operation is not valid in the round's current phase."""

    pass


class FindingNotFoundError(LookupError):
    """Raised when resolving an unknown or no longer open finding."""

    pass


class RoundPhase(Enum):
    """Phases of a review round."""

    IDLE = "idle"
    AWAITING_REVIEW = "awaiting_review"
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"


@dataclass
class LaunchData:
    """Everything the interactive session needs to render a round."""

    review_id: str
    session_id: str
    round: int  # prospective round number
    files: list[FileSnapshot]
    existing_findings: list[Finding]
    draft: Draft
    repo_root: str = ""
    scope_root: str = ""
    filter: list[str] | None = None
    base: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.review_id,
            "session_id": self.session_id,
            "repo_root": self.repo_root,
            "scope_root": self.scope_root,
            "round": self.round,
            "files": [f.to_dict() for f in self.files],
            "existing_findings": [f.to_dict() for f in self.existing_findings],
            "draft": self.draft.to_dict(),
            "taxonomy": {k: list(v) for k, v in TAXONOMY.items()},
            "filter": self.filter,
            "base": self.base,
        }


@dataclass
class RoundResult:
    """Outcome of a round, submitted or cancelled."""

    cancelled: bool
    round: int
    notes: str
    findings: list[Finding]
    json_path: str = ""
    md_path: str = ""
    skipped: list[SkippedItem] = field(default_factory=list)


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while True:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
        if value == 0:
            return out


class ReviewRound:
    """Drives a single review round for one session.

    Phases: IDLE -> AWAITING_REVIEW -> SUBMITTED | CANCELLED. Draft saves and
    resolves are only valid while awaiting review. The caller must make sure
    only one round per session is active at a time.
    """

    def __init__(
        self,
        store: BaseSessionStore,
        session_id: str,
        files: Iterable[FileSnapshot],
        *,
        filter: list[str] | None = None,
        base: str | None = None,
        repo_root: str = "",
        scope_root: str = "",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the round.

        Args:
            store: Session persistence backend
            session_id: Session the round belongs to
            files: File snapshots of the current diff
            filter: Optional file filter, recorded in exports
            base: Optional base ref, recorded in exports
            repo_root: Repository root, passed through to the UI
            scope_root: Directory the review was launched from
            clock: Source of epoch-millisecond timestamps
        """
        self.store = store
        self.session_id = session_id
        self.files = list(files)
        self.filter = filter
        self.base = base
        self.repo_root = repo_root
        self.scope_root = scope_root
        self._clock = clock
        self._file_index = {f.path: f for f in self.files}
        self._state: SessionState | None = None
        self.phase = RoundPhase.IDLE
        self.launch: LaunchData | None = None
        self.result: RoundResult | None = None

    @property
    def state(self) -> SessionState:
        if self._state is None:
            raise RoundStateError("Round has not been started")
        return self._state

    @property
    def prospective_round(self) -> int:
        return self.state.round + 1

    def _require(self, phase: RoundPhase) -> None:
        if self.phase != phase:
            raise RoundStateError(
                f"Round is {self.phase.value}, expected {phase.value}"
            )

    def _save(self, state: SessionState) -> None:
        self._state = self.store.save(state)

    def begin(self) -> LaunchData:
        """Reconcile stored findings and open the round for review.

        The reconciled state is persisted before anything is shown, so it
        survives an abandoned session.
        """
        self._require(RoundPhase.IDLE)
        now = self._clock()
        stored = self.store.load(self.session_id)
        findings = reconcile(self.files, stored.findings, now=now)
        self._save(replace(stored, findings=findings, updated_at=now))

        self.launch = LaunchData(
            review_id=f"review_{_base36(now)}_{uuid.uuid4().hex[:6]}",
            session_id=self.session_id,
            round=self.prospective_round,
            files=self.files,
            existing_findings=open_findings(findings),
            draft=self.state.draft or Draft(),
            repo_root=self.repo_root,
            scope_root=self.scope_root,
            filter=self.filter,
            base=self.base,
        )
        self.phase = RoundPhase.AWAITING_REVIEW
        logger.info(
            f"Round {self.launch.round} of session {self.session_id}: "
            f"{len(self.files)} files, {len(self.launch.existing_findings)} open findings"
        )
        return self.launch

    def save_draft(self, payload: Any) -> Draft:
        """Store the reviewer's scratch notes and findings verbatim."""
        self._require(RoundPhase.AWAITING_REVIEW)
        draft = Draft.from_payload(payload)
        self._save(replace(self.state, draft=draft, updated_at=self._clock()))
        return draft

    def resolve(self, finding_id: str) -> Finding:
        """Mark an open finding as resolved.

        Raises:
            FindingNotFoundError: If no open finding has this id
        """
        self._require(RoundPhase.AWAITING_REVIEW)
        target = find_open(self.state.findings, finding_id)
        if target is None:
            raise FindingNotFoundError(f"finding not found or already resolved: {finding_id}")

        now = self._clock()
        resolved = target.resolve(now)
        findings = [resolved if f is target else f for f in self.state.findings]
        self._save(replace(self.state, findings=findings, updated_at=now))

        if self.launch is not None:
            self.launch.existing_findings = [
                f for f in self.launch.existing_findings if f.id != finding_id
            ]
        logger.info(f"Resolved finding {finding_id}")
        return resolved

    def submit(self, payload: Any) -> RoundResult:
        """Accept the reviewer's submission and complete the round.

        Exports are written before the state is saved, so a failed write leaves
        the stored round untouched and the round still awaiting review.

        Raises:
            OSError: If the exports or the state cannot be written
        """
        self._require(RoundPhase.AWAITING_REVIEW)
        body = payload if isinstance(payload, dict) else {}
        notes = body.get("notes")
        notes = notes.strip() if isinstance(notes, str) else ""
        fresh = body.get("new_findings")
        fresh = fresh if isinstance(fresh, list) else []

        now = self._clock()
        round_number = self.prospective_round
        current = self.state.findings
        created: SanitizeResult = sanitize(
            fresh,
            round_number,
            self._file_index,
            existing_ids={f.id for f in current},
            now=now,
        )
        findings = closed_findings(current) + open_findings(current) + created.findings

        export = build_export_payload(
            self.session_id, round_number, notes, findings, self.filter, self.base, now
        )
        markdown = format_round_markdown(
            self.session_id, round_number, notes, findings, self.filter, self.base
        )
        json_path, md_path = self.store.write_exports(
            self.session_id, round_number, export, markdown
        )
        self._save(
            replace(self.state, round=round_number, findings=findings, draft=None, updated_at=now)
        )
        self.phase = RoundPhase.SUBMITTED
        logger.info(
            f"Submitted round {round_number}: {len(created.findings)} new findings, "
            f"{len(created.skipped)} skipped"
        )
        self.result = RoundResult(
            cancelled=False,
            round=round_number,
            notes=notes,
            findings=findings,
            json_path=json_path,
            md_path=md_path,
            skipped=created.skipped,
        )
        return self.result

    def cancel(self) -> RoundResult:
        """Abandon the round; only the reconciliation stays persisted."""
        self._require(RoundPhase.AWAITING_REVIEW)
        self.phase = RoundPhase.CANCELLED
        logger.info(f"Round {self.prospective_round} of session {self.session_id} cancelled")
        self.result = RoundResult(
            cancelled=True,
            round=self.prospective_round,
            notes="",
            findings=list(self.state.findings),
        )
        return self.result
