"""Queries over a session's finding collection."""

from collections.abc import Iterable

from diff_review.models.findings import Finding


def open_findings(findings: Iterable[Finding]) -> list[Finding]:
    """Findings still awaiting attention."""
    return [f for f in findings if f.is_open]


def closed_findings(findings: Iterable[Finding]) -> list[Finding]:
    """Auto-closed and resolved findings, kept for the audit trail."""
    return [f for f in findings if not f.is_open]


def find_open(findings: Iterable[Finding], finding_id: str) -> Finding | None:
    """Return the open finding with ``finding_id``, if any."""
    for finding in findings:
        if finding.id == finding_id and finding.is_open:
            return finding
    return None
