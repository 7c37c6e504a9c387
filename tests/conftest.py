"""Pytest configuration and shared fixtures."""

import pytest

# Line numbers matter for the tests below:
#  1 import, 3 load(), 11 save(), 12 db.open(), 13 handle.write, 14 return true
SAMPLE_TS = """\
import { db } from "./db"

export function load(id: string) {
  const row = db.get(id)
  if (!row) {
    return null
  }
  return row
}

export function save(id: string, value: unknown) {
  const handle = db.open()
  handle.write(id, value)
  return true
}
"""

SAMPLE_TS_PREVIOUS = """\
import { db } from "./db"

export function load(id: string) {
  return db.get(id)
}
"""

SAMPLE_PY = """\
def greet(name):
    return f"hello {name}"
"""


@pytest.fixture
def sample_ts() -> str:
    """Current version of a.ts."""
    return SAMPLE_TS


@pytest.fixture
def snapshots():
    """File snapshots for a two-file working-tree diff."""
    from diff_review.models.session import FileSnapshot, FileStatus

    return [
        FileSnapshot(
            path="a.ts",
            status=FileStatus.MODIFIED,
            before=SAMPLE_TS_PREVIOUS,
            after=SAMPLE_TS,
            additions=12,
            deletions=1,
        ),
        FileSnapshot(
            path="x.ts",
            status=FileStatus.ADDED,
            before="",
            after="\n".join(f"const v{i} = {i}" for i in range(1, 11)) + "\n",
            additions=10,
            deletions=0,
        ),
    ]


@pytest.fixture
def file_index(snapshots):
    """Snapshots keyed by path."""
    return {s.path: s for s in snapshots}


@pytest.fixture
def make_finding():
    """Factory for open findings anchored in a given text."""
    from diff_review.engine.anchor import capture
    from diff_review.models.findings import Category, Finding, FindingStatus, Severity, Side

    def _make(
        content: str = SAMPLE_TS,
        start_line: int = 12,
        end_line: int = 13,
        file: str = "a.ts",
        side: Side = Side.ADDITIONS,
        finding_id: str = "f1",
        round_number: int = 1,
        status: FindingStatus = FindingStatus.OPEN,
    ) -> Finding:
        return Finding(
            id=finding_id,
            round=round_number,
            file=file,
            side=side,
            start_line=start_line,
            end_line=end_line,
            category=Category.BUG,
            severity=Severity.HIGH,
            comment="handle is never closed",
            status=status,
            anchor=capture(content, start_line, end_line),
            created_at=1_000,
            updated_at=1_000,
        )

    return _make


@pytest.fixture
def memory_store():
    """Empty in-memory session store."""
    from diff_review.storage import InMemorySessionStore

    return InMemorySessionStore()


@pytest.fixture
def draft_item() -> dict:
    """A well-formed draft finding for a.ts."""
    return {
        "file": "a.ts",
        "side": "additions",
        "start_line": 12,
        "end_line": 13,
        "category": "bug",
        "severity": "high",
        "comment": "  handle is never closed  ",
    }
