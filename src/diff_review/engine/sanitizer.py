"""Validation of reviewer-submitted findings."""

import logging
import math
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from diff_review.engine.anchor import capture
from diff_review.models.findings import Category, Finding, FindingStatus, Severity, Side
from diff_review.models.session import FileSnapshot, now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SkippedItem:
    """A draft item that was dropped, with the reason."""

    index: int
    reason: str


@dataclass
class SanitizeResult:
    """Accepted findings plus the items that were skipped."""

    findings: list[Finding] = field(default_factory=list)
    skipped: list[SkippedItem] = field(default_factory=list)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _check(item: Any, file_index: Mapping[str, FileSnapshot]) -> str | None:
    """Return why ``item`` is invalid, or None if it passes."""
    if not isinstance(item, Mapping):
        return "not an object"

    file = item.get("file")
    if not isinstance(file, str) or not file:
        return "missing file"
    if file not in file_index:
        return f"file not in review: {file}"

    comment = item.get("comment")
    if not isinstance(comment, str) or not comment.strip():
        return "empty comment"

    if item.get("side") not in {s.value for s in Side}:
        return f"invalid side: {item.get('side')!r}"
    if item.get("category") not in {c.value for c in Category}:
        return f"invalid category: {item.get('category')!r}"
    if item.get("severity") not in {s.value for s in Severity}:
        return f"invalid severity: {item.get('severity')!r}"

    if not _is_number(item.get("start_line")) or not _is_number(item.get("end_line")):
        return "line numbers must be finite numbers"
    return None


def sanitize(
    raw_items: Iterable[Any],
    round_number: int,
    file_index: Mapping[str, FileSnapshot],
    *,
    existing_ids: Iterable[str] = (),
    now: int | None = None,
) -> SanitizeResult:
    """Turn raw draft items into anchored, open findings.

    Each item is checked on its own; an invalid item is skipped and recorded
    in ``SanitizeResult.skipped`` without affecting the rest of the batch.

    Args:
        raw_items: Unvalidated finding payloads from the reviewer
        round_number: Round the new findings belong to
        file_index: Current file snapshots keyed by path
        existing_ids: Ids already used in the session
        now: Creation timestamp (defaults to current time)

    Returns:
        SanitizeResult with accepted findings in input order
    """
    stamp = now if now is not None else now_ms()
    used = set(existing_ids)
    result = SanitizeResult()

    for index, item in enumerate(raw_items):
        reason = _check(item, file_index)
        if reason is None:
            finding = _build(item, index, round_number, file_index, stamp)
            if finding is None:
                reason = "selected range is empty"
            elif finding.id in used:
                reason = f"duplicate id: {finding.id}"
            else:
                used.add(finding.id)
                result.findings.append(finding)
                continue

        logger.debug(f"Skipping draft finding #{index + 1}: {reason}")
        result.skipped.append(SkippedItem(index=index, reason=reason))

    return result


def _build(
    item: Mapping[str, Any],
    index: int,
    round_number: int,
    file_index: Mapping[str, FileSnapshot],
    stamp: int,
) -> Finding | None:
    low = min(item["start_line"], item["end_line"])
    high = max(item["start_line"], item["end_line"])
    start_line = max(1, math.floor(low))
    end_line = max(start_line, math.floor(high))

    side = Side(item["side"])
    snapshot = file_index[item["file"]]
    anchor = capture(snapshot.text_for(side), start_line, end_line)
    if not anchor.selected.strip():
        return None

    raw_id = item.get("id")
    finding_id = raw_id.strip() if isinstance(raw_id, str) else ""
    if not finding_id:
        finding_id = f"finding_{round_number}_{index + 1}_{uuid.uuid4().hex[:6]}"

    return Finding(
        id=finding_id,
        round=round_number,
        file=item["file"],
        side=side,
        start_line=start_line,
        end_line=end_line,
        category=Category(item["category"]),
        severity=Severity(item["severity"]),
        comment=item["comment"].strip(),
        status=FindingStatus.OPEN,
        anchor=anchor,
        created_at=stamp,
        updated_at=stamp,
    )
