"""Tests for anchor capture and relocation."""

import pytest


class TestCapture:
    """Tests for capture()."""

    def test_captures_selected_and_context(self, sample_ts):
        """Test capturing a range with its neighbouring lines."""
        from diff_review.engine.anchor import capture

        anchor = capture(sample_ts, 12, 13)

        assert anchor.selected == "  const handle = db.open()\n  handle.write(id, value)"
        assert anchor.before == "export function save(id: string, value: unknown) {"
        assert anchor.after == "  return true"

    def test_inverted_range_is_normalized(self, sample_ts):
        """Test that start > end captures the same range."""
        from diff_review.engine.anchor import capture

        assert capture(sample_ts, 13, 12) == capture(sample_ts, 12, 13)

    def test_first_line_has_empty_before(self, sample_ts):
        """Test that a range starting at line 1 has no before context."""
        from diff_review.engine.anchor import capture

        anchor = capture(sample_ts, 1, 1)

        assert anchor.before == ""
        assert anchor.selected == 'import { db } from "./db"'
        assert anchor.after == ""

    def test_range_is_clamped_to_document(self):
        """Test that out-of-range lines clamp to the last line."""
        from diff_review.engine.anchor import capture

        anchor = capture("one\ntwo\nthree", 2, 99)

        assert anchor.selected == "two\nthree"
        assert anchor.before == "one"
        assert anchor.after == ""

    def test_past_end_with_trailing_newline_is_blank(self, sample_ts):
        """Test that a range past the end resolves to the blank last line."""
        from diff_review.engine.anchor import capture

        anchor = capture(sample_ts, 40, 45)

        assert anchor.selected.strip() == ""

    def test_empty_document(self):
        """Test that an empty document counts as one empty line."""
        from diff_review.engine.anchor import capture

        anchor = capture("", 1, 3)

        assert anchor.selected == ""
        assert anchor.before == ""
        assert anchor.after == ""

    def test_zero_and_negative_lines_clamp_to_first(self):
        """Test that lines below 1 clamp to the first line."""
        from diff_review.engine.anchor import capture

        assert capture("a\nb", -4, 0).selected == "a"


class TestLocate:
    """Tests for locate()."""

    @pytest.mark.parametrize("start,end", [(1, 1), (3, 9), (10, 12), (12, 13), (14, 14)])
    def test_locates_unchanged_range(self, sample_ts, start, end):
        """Test that capture then locate on the same text recovers the range."""
        from diff_review.engine.anchor import capture, locate
        from diff_review.models.findings import LineRange

        found = locate(capture(sample_ts, start, end), sample_ts)

        assert found == LineRange(start_line=start, end_line=end)

    def test_follows_lines_inserted_above(self, sample_ts):
        """Test that the range shifts when lines are inserted above it."""
        from diff_review.engine.anchor import capture, locate

        anchor = capture(sample_ts, 12, 13)
        edited = "// header\n// another\n" + sample_ts

        found = locate(anchor, edited)

        assert (found.start_line, found.end_line) == (14, 15)

    def test_missing_text_returns_none(self, sample_ts):
        """Test that edited selected text is not found."""
        from diff_review.engine.anchor import capture, locate

        anchor = capture(sample_ts, 12, 12)
        edited = sample_ts.replace("db.open()", "db.connect()")

        assert locate(anchor, edited) is None

    def test_empty_selected_returns_none(self, sample_ts):
        """Test that an empty anchor never matches."""
        from diff_review.engine.anchor import locate
        from diff_review.models.findings import Anchor

        assert locate(Anchor(before="", selected="", after=""), sample_ts) is None

    def test_uses_first_occurrence(self):
        """Test that duplicated text resolves to the first occurrence."""
        from diff_review.engine.anchor import capture, locate

        content = "a\nrepeat\nb\nrepeat\nc"
        anchor = capture(content, 4, 4)

        found = locate(anchor, content)

        assert (found.start_line, found.end_line) == (2, 2)

    def test_range_starting_with_blank_line(self, sample_ts):
        """Test that a range beginning with an empty line relocates correctly."""
        from diff_review.engine.anchor import capture, locate

        anchor = capture(sample_ts, 10, 12)
        found = locate(anchor, "\n" + sample_ts)

        assert (found.start_line, found.end_line) == (11, 13)
