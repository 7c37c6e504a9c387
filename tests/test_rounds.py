"""Tests for the review round controller."""

import pytest


@pytest.fixture
def make_round(memory_store, snapshots):
    """Factory for rounds on the shared in-memory store."""
    from diff_review.engine.rounds import ReviewRound

    ticks = iter(range(10_000, 10_000_000, 1_000))

    def _make(files=None, session_id="s1", **kwargs):
        return ReviewRound(
            memory_store,
            session_id,
            snapshots if files is None else files,
            clock=lambda: next(ticks),
            **kwargs,
        )

    return _make


class TestBegin:
    """Tests for ReviewRound.begin()."""

    def test_fresh_session_launch(self, make_round):
        """Test launching the first round of a new session."""
        from diff_review.engine.rounds import RoundPhase

        controller = make_round()

        launch = controller.begin()

        assert controller.phase == RoundPhase.AWAITING_REVIEW
        assert launch.round == 1
        assert launch.review_id.startswith("review_")
        assert launch.existing_findings == []
        assert [f.path for f in launch.files] == ["a.ts", "x.ts"]
        assert launch.to_dict()["taxonomy"]["categories"] == ["bug", "style", "perf", "question"]

    def test_reconciliation_is_persisted(self, make_round, memory_store, make_finding):
        """Test that auto-closures are saved before the reviewer does anything."""
        from diff_review.models.findings import FindingStatus
        from diff_review.models.session import SessionState

        memory_store.save(
            SessionState(
                session_id="s1",
                round=1,
                findings=[make_finding(finding_id="keep"), make_finding(finding_id="gone", file="old.ts")],
            )
        )

        launch = make_round().begin()

        assert [f.id for f in launch.existing_findings] == ["keep"]
        stored = {f.id: f for f in memory_store.load("s1").findings}
        assert stored["gone"].status == FindingStatus.CLOSED_AUTO
        assert stored["keep"].status == FindingStatus.OPEN

    def test_draft_is_restored(self, make_round, memory_store):
        """Test that a saved draft is offered again on launch."""
        from diff_review.models.session import Draft, SessionState

        memory_store.save(SessionState(session_id="s1", draft=Draft(notes="later")))

        launch = make_round().begin()

        assert launch.draft.notes == "later"

    def test_begin_twice_fails(self, make_round):
        """Test that a round can only be started once."""
        from diff_review.engine.rounds import RoundStateError

        controller = make_round()
        controller.begin()

        with pytest.raises(RoundStateError):
            controller.begin()


class TestSubmit:
    """Tests for ReviewRound.submit()."""

    def test_submit_increments_round_and_clears_draft(self, make_round, memory_store, draft_item):
        """Test a successful submission."""
        from diff_review.engine.rounds import RoundPhase

        controller = make_round()
        controller.begin()
        controller.save_draft({"notes": "wip", "new_findings": [draft_item]})

        result = controller.submit({"notes": "  looks risky  ", "new_findings": [draft_item, {"bad": 1}]})

        assert controller.phase == RoundPhase.SUBMITTED
        assert result.cancelled is False
        assert result.round == 1
        assert result.notes == "looks risky"
        assert len(result.findings) == 1
        assert [s.index for s in result.skipped] == [1]

        state = memory_store.load("s1")
        assert state.round == 1
        assert state.draft is None
        assert len(state.findings) == 1

    def test_exports_are_written(self, make_round, memory_store, draft_item):
        """Test that the round's exports carry every finding."""
        controller = make_round(filter=["a.ts"], base="main")
        controller.begin()

        result = controller.submit({"notes": "", "new_findings": [draft_item]})

        assert result.json_path == "memory://s1/round-001.json"
        payload, markdown = memory_store.exports[("s1", 1)]
        assert payload["round"] == 1
        assert payload["filter"] == ["a.ts"]
        assert payload["base"] == "main"
        assert len(payload["findings"]) == 1
        assert "# Diff Review Round 1" in markdown
        assert "main...HEAD" in markdown

    def test_closed_findings_precede_open(self, make_round, memory_store, make_finding, draft_item):
        """Test ordering of closed, carried-over and new findings."""
        from diff_review.models.session import SessionState

        memory_store.save(
            SessionState(
                session_id="s1",
                round=1,
                findings=[make_finding(finding_id="old"), make_finding(finding_id="gone", file="old.ts")],
            )
        )
        controller = make_round()
        controller.begin()

        result = controller.submit({"new_findings": [dict(draft_item, id="new")]})

        assert result.round == 2
        assert [f.id for f in result.findings] == ["gone", "old", "new"]

    def test_submit_with_garbage_payload(self, make_round):
        """Test that a non-object body still completes the round."""
        controller = make_round()
        controller.begin()

        result = controller.submit("garbage")

        assert result.round == 1
        assert result.findings == []
        assert result.notes == ""


class TestSubmitWriteFailures:
    """Tests for submit() when the store cannot write."""

    @staticmethod
    def _flaky_store(method):
        """In-memory store whose ``method`` raises OSError on its first call only."""
        from diff_review.storage import InMemorySessionStore

        class FlakyStore(InMemorySessionStore):
            failures = 0

            def _fail_once(self):
                if self.failures == 0:
                    self.failures += 1
                    raise OSError("disk full")

            def write_exports(self, *args, **kwargs):
                if method == "write_exports":
                    self._fail_once()
                return super().write_exports(*args, **kwargs)

            def save(self, state):
                # begin() saves too, so only fail once the round has started
                if method == "save" and state.draft is None and state.round > 0:
                    self._fail_once()
                return super().save(state)

        return FlakyStore()

    def _start(self, store, snapshots):
        from diff_review.engine.rounds import ReviewRound

        controller = ReviewRound(store, "s1", snapshots, clock=lambda: 1_000)
        controller.begin()
        return controller

    def test_export_failure_leaves_round_retryable(self, snapshots, draft_item):
        """Test that a failed export write neither saves state nor advances the round."""
        from diff_review.engine.rounds import RoundPhase

        store = self._flaky_store("write_exports")
        controller = self._start(store, snapshots)

        with pytest.raises(OSError, match="disk full"):
            controller.submit({"notes": "first", "new_findings": [draft_item]})

        assert controller.phase == RoundPhase.AWAITING_REVIEW
        assert controller.result is None
        assert store.load("s1").round == 0
        assert store.exports == {}

        result = controller.submit({"notes": "again", "new_findings": [draft_item]})

        assert result.round == 1
        assert result.json_path == "memory://s1/round-001.json"
        assert list(store.exports) == [("s1", 1)]
        assert store.load("s1").round == 1

    def test_cancel_after_export_failure(self, snapshots, draft_item):
        """Test that cancelling after a failed submit reports the same round."""
        store = self._flaky_store("write_exports")
        controller = self._start(store, snapshots)

        with pytest.raises(OSError):
            controller.submit({"notes": "", "new_findings": [draft_item]})
        result = controller.cancel()

        assert result.cancelled is True
        assert result.round == 1
        assert store.load("s1").round == 0

    def test_save_failure_propagates(self, snapshots, draft_item):
        """Test that a failed state save surfaces and a retry rewrites the same round."""
        from diff_review.engine.rounds import RoundPhase

        store = self._flaky_store("save")
        controller = self._start(store, snapshots)

        with pytest.raises(OSError, match="disk full"):
            controller.submit({"notes": "", "new_findings": [draft_item]})

        assert controller.phase == RoundPhase.AWAITING_REVIEW
        assert store.load("s1").round == 0
        assert list(store.exports) == [("s1", 1)]

        result = controller.submit({"notes": "", "new_findings": [draft_item]})

        assert result.round == 1
        assert list(store.exports) == [("s1", 1)]
        assert store.load("s1").round == 1


class TestResolve:
    """Tests for ReviewRound.resolve()."""

    def test_resolve_open_finding(self, make_round, memory_store, make_finding):
        """Test resolving removes the finding from the open set."""
        from diff_review.models.findings import FindingStatus
        from diff_review.models.session import SessionState

        memory_store.save(SessionState(session_id="s1", round=1, findings=[make_finding()]))
        controller = make_round()
        launch = controller.begin()

        resolved = controller.resolve("f1")

        assert resolved.status == FindingStatus.RESOLVED
        assert launch.existing_findings == []
        assert memory_store.load("s1").findings[0].status == FindingStatus.RESOLVED

    def test_resolve_unknown_or_closed(self, make_round, memory_store, make_finding):
        """Test that only open findings can be resolved."""
        from diff_review.engine.rounds import FindingNotFoundError
        from diff_review.models.session import SessionState

        memory_store.save(
            SessionState(session_id="s1", round=1, findings=[make_finding(finding_id="gone", file="old.ts")])
        )
        controller = make_round()
        controller.begin()

        with pytest.raises(FindingNotFoundError):
            controller.resolve("gone")
        with pytest.raises(FindingNotFoundError):
            controller.resolve("missing")

    def test_resolved_finding_not_relaunched(self, make_round, memory_store, make_finding):
        """Test that a resolved finding is not offered in the next round."""
        from diff_review.models.session import SessionState

        memory_store.save(SessionState(session_id="s1", round=1, findings=[make_finding()]))
        first = make_round()
        first.begin()
        first.resolve("f1")
        first.cancel()

        launch = make_round().begin()

        assert launch.existing_findings == []


class TestCancel:
    """Tests for ReviewRound.cancel()."""

    def test_cancel_keeps_round_and_writes_nothing(self, make_round, memory_store):
        """Test that cancelling leaves the round number unchanged."""
        from diff_review.engine.rounds import RoundPhase

        controller = make_round()
        controller.begin()
        controller.save_draft({"notes": "keep me", "new_findings": [{"junk": True}]})

        result = controller.cancel()

        assert controller.phase == RoundPhase.CANCELLED
        assert result.cancelled is True
        assert result.round == 1
        assert memory_store.exports == {}
        state = memory_store.load("s1")
        assert state.round == 0
        assert state.draft.new_findings == [{"junk": True}]

    def test_operations_after_cancel_fail(self, make_round):
        """Test that a finished round refuses further actions."""
        from diff_review.engine.rounds import RoundStateError

        controller = make_round()
        controller.begin()
        controller.cancel()

        with pytest.raises(RoundStateError):
            controller.save_draft({})
        with pytest.raises(RoundStateError):
            controller.submit({})
        with pytest.raises(RoundStateError):
            controller.cancel()

    def test_actions_before_begin_fail(self, make_round):
        """Test that an idle round accepts nothing but begin()."""
        from diff_review.engine.rounds import RoundStateError

        controller = make_round()

        with pytest.raises(RoundStateError):
            controller.resolve("f1")
        with pytest.raises(RoundStateError):
            _ = controller.prospective_round
