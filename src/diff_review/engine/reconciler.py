"""Reconcile stored findings with a freshly computed diff."""

import logging
from collections.abc import Iterable

from diff_review.engine.anchor import locate
from diff_review.models.findings import CloseReason, Finding
from diff_review.models.session import FileSnapshot, now_ms

logger = logging.getLogger(__name__)


def reconcile(
    files: Iterable[FileSnapshot],
    findings: Iterable[Finding],
    now: int | None = None,
) -> list[Finding]:
    """Relocate or auto-close every open finding against the current files.

    Algorithm:
    1. Findings that are not open pass through unchanged
    2. Open findings whose file is gone close with FILE_REMOVED
    3. Otherwise the original anchor is searched in the side's text
    4. Found anchors update the line range, missing ones close with ANCHOR_MISSING

    The anchor is never recaptured, so later rounds keep matching against the
    text the reviewer originally selected.

    Args:
        files: File snapshots of the current diff
        findings: All findings of the session
        now: Timestamp to stamp on changed findings (defaults to current time)

    Returns:
        New list with one entry per input finding, in the same order
    """
    stamp = now if now is not None else now_ms()
    by_path = {f.path: f for f in files}

    result: list[Finding] = []
    moved = closed = 0
    for finding in findings:
        if not finding.is_open:
            result.append(finding)
            continue

        snapshot = by_path.get(finding.file)
        if snapshot is None:
            result.append(finding.close(CloseReason.FILE_REMOVED, stamp))
            closed += 1
            continue

        line_range = locate(finding.anchor, snapshot.text_for(finding.side))
        if line_range is None:
            result.append(finding.close(CloseReason.ANCHOR_MISSING, stamp))
            closed += 1
            continue

        if (line_range.start_line, line_range.end_line) != (finding.start_line, finding.end_line):
            moved += 1
        result.append(finding.relocate(line_range, stamp))

    if moved or closed:
        logger.info(f"Reconciled findings: {moved} moved, {closed} auto-closed")
    return result
