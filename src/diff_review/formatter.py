"""Formatting of round exports and the summary handed back to the caller."""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from diff_review.models.findings import Finding
from diff_review.models.session import now_ms

if TYPE_CHECKING:
    from diff_review.engine.rounds import RoundResult

COMMAND = "diff-review"


def _finding_line(finding: Finding, with_status: bool = False) -> str:
    status = f"[{finding.status.value}] " if with_status else ""
    return (
        f"- {status}[{finding.severity.value}] [{finding.category.value}] "
        f"{finding.file}:{finding.start_line}-{finding.end_line} "
        f"({finding.side.value}) - {finding.comment}"
    )


def describe_source(base: str | None) -> str:
    """Human-readable description of what the diff was taken against."""
    return f"{base}...HEAD" if base else "working tree"


def describe_scope(filter: list[str] | None) -> str:
    return ", ".join(filter) if filter else "all changed files"


def build_export_payload(
    session_id: str,
    round_number: int,
    notes: str,
    findings: list[Finding],
    filter: list[str] | None = None,
    base: str | None = None,
    generated_at: int | None = None,
) -> dict[str, Any]:
    """Build the JSON export for a completed round."""
    return {
        "session_id": session_id,
        "round": round_number,
        "notes": notes,
        "findings": [f.to_dict() for f in findings],
        "filter": filter,
        "base": base,
        "generated_at": generated_at if generated_at is not None else now_ms(),
    }


def format_round_markdown(
    session_id: str,
    round_number: int,
    notes: str,
    findings: list[Finding],
    filter: list[str] | None = None,
    base: str | None = None,
    timestamp: datetime | None = None,
) -> str:
    """Render the full finding set of a round as Markdown."""
    stamp = (timestamp or datetime.now(timezone.utc)).isoformat()
    rows = [_finding_line(f, with_status=True) for f in findings]

    lines = [
        f"# Diff Review Round {round_number}",
        "",
        f"- Session: {session_id}",
        f"- Diff source: {describe_source(base)}",
        f"- Scope: {describe_scope(filter)}",
        f"- Timestamp: {stamp}",
        "",
        "## Notes",
        notes or "(none)",
        "",
        "## Findings",
        "\n".join(rows) if rows else "- none",
    ]
    return "\n".join(lines)


def format_round_summary(result: "RoundResult", url: str = "", opened: bool = False) -> str:
    """Summarize a finished round for the automated caller.

    Only open findings are listed; the exports carry the full history.
    """
    if result.cancelled:
        return "\n".join(
            [
                "Diff review was cancelled before submission.",
                f"You can relaunch with {COMMAND} review.",
                f"Last opened URL: {url}",
            ]
        )

    active = [f for f in result.findings if f.is_open]
    rows = [_finding_line(f) for f in active]

    lines = [
        f"# Diff Review Round {result.round}",
        "",
        f"- Open findings: {len(active)}",
        f"- JSON export: {result.json_path}",
        f"- Markdown export: {result.md_path}",
        f"- Review URL: {url}",
        f"- Browser opened: {'yes' if opened else 'no'}",
    ]
    if result.skipped:
        lines.append(f"- Skipped draft findings: {len(result.skipped)}")
    lines += [
        "",
        "## Reviewer Notes",
        result.notes or "(none)",
        "",
        "## Findings",
        "\n".join(rows) if rows else "- No open findings",
        "",
        "Use this review to propose and discuss a fix plan only.",
        "Do not edit files yet.",
    ]
    return "\n".join(lines)
