"""Session persistence.

The store holds one cumulative state record per session plus per-round
exports. The round controller depends on BaseSessionStore, not on a concrete
backend, so tests and embedders can swap in the in-memory store.

Saves are compare-and-swap on ``SessionState.version``: a write based on a
stale copy raises StaleStateError instead of silently dropping another
writer's changes.
"""

import contextlib
import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path
from typing import Any

from diff_review.config import session_id_problem
from diff_review.models.session import SessionState

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"


class StaleStateError(Exception):
    """Raised when saving a state whose version no longer matches the store."""

    pass


def export_stem(round_number: int) -> str:
    """File stem used for a round's exports, e.g. ``round-003``."""
    return f"round-{round_number:03d}"


class BaseSessionStore(ABC):
    """Pluggable persistence for session state and round exports."""

    @abstractmethod
    def load(self, session_id: str) -> SessionState:
        """Return the stored state, or a fresh default state.

        Missing or corrupt records are treated as a new session; never raises
        for read problems.
        """

    @abstractmethod
    def save(self, state: SessionState) -> SessionState:
        """Persist ``state`` and return it with its version bumped.

        Raises:
            StaleStateError: If the stored version differs from ``state.version``
            OSError: If the record cannot be written
        """

    @abstractmethod
    def write_exports(
        self,
        session_id: str,
        round_number: int,
        payload: dict[str, Any],
        markdown: str,
    ) -> tuple[str, str]:
        """Persist a round's JSON and Markdown exports.

        Returns:
            Locations of the JSON and Markdown exports
        """

    def _check_version(self, state: SessionState) -> None:
        current = self.load(state.session_id).version
        if current != state.version:
            raise StaleStateError(
                f"Session {state.session_id} changed since it was loaded "
                f"(stored version {current}, expected {state.version})"
            )


class JsonSessionStore(BaseSessionStore):
    """Stores each session in its own directory of JSON/Markdown files.

    Layout::

        <root>/<session_id>/state.json
        <root>/<session_id>/round-001.json
        <root>/<session_id>/round-001.md
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def session_dir(self, session_id: str) -> Path:
        problem = session_id_problem(session_id)
        if problem:
            raise ValueError(problem)
        return self.root / session_id

    def state_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / STATE_FILENAME

    def load(self, session_id: str) -> SessionState:
        path = self.state_path(session_id)
        if not path.exists():
            return SessionState.default(session_id)

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return SessionState.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable session state {path}: {e}")
            return SessionState.default(session_id)

    def save(self, state: SessionState) -> SessionState:
        self._check_version(state)
        saved = replace(state, version=state.version + 1)
        _write_atomic(self.state_path(state.session_id), json.dumps(saved.to_dict(), indent=2))
        return saved

    def write_exports(
        self,
        session_id: str,
        round_number: int,
        payload: dict[str, Any],
        markdown: str,
    ) -> tuple[str, str]:
        stem = export_stem(round_number)
        json_path = self.session_dir(session_id) / f"{stem}.json"
        md_path = self.session_dir(session_id) / f"{stem}.md"
        _write_atomic(json_path, json.dumps(payload, indent=2))
        _write_atomic(md_path, markdown)
        return str(json_path), str(md_path)


class InMemorySessionStore(BaseSessionStore):
    """Keeps sessions in process memory. Nothing survives the process."""

    def __init__(self) -> None:
        self._states: dict[str, SessionState] = {}
        self.exports: dict[tuple[str, int], tuple[dict[str, Any], str]] = {}

    def load(self, session_id: str) -> SessionState:
        state = self._states.get(session_id)
        if state is None:
            return SessionState.default(session_id)
        return copy.deepcopy(state)

    def save(self, state: SessionState) -> SessionState:
        self._check_version(state)
        saved = replace(state, version=state.version + 1)
        self._states[state.session_id] = copy.deepcopy(saved)
        return saved

    def write_exports(
        self,
        session_id: str,
        round_number: int,
        payload: dict[str, Any],
        markdown: str,
    ) -> tuple[str, str]:
        self.exports[(session_id, round_number)] = (copy.deepcopy(payload), markdown)
        stem = export_stem(round_number)
        return f"memory://{session_id}/{stem}.json", f"memory://{session_id}/{stem}.md"


def _write_atomic(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise
