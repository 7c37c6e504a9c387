"""Anchor capture and relocation.

A finding is anchored by the literal text of its line range rather than by
line numbers, so it survives edits elsewhere in the file. Relocation uses the
first exact occurrence of that text; the surrounding context lines are kept
for display only.
"""

from diff_review.models.findings import Anchor, LineRange


def capture(content: str, start_line: int, end_line: int) -> Anchor:
    """Capture the anchor for a line range of ``content``.

    The range is normalized so start <= end and clamped to the document. An
    empty document counts as a single empty line. Callers must reject the
    anchor when ``selected`` is blank.

    Args:
        content: Full file text
        start_line: 1-based first line (may be greater than end_line)
        end_line: 1-based last line

    Returns:
        Anchor with the selected text and its neighbouring lines
    """
    if start_line > end_line:
        start_line, end_line = end_line, start_line

    lines = content.split("\n")
    count = len(lines)
    begin = max(1, min(start_line, count))
    finish = max(begin, min(end_line, count))

    return Anchor(
        before=lines[begin - 2] if begin >= 2 else "",
        selected="\n".join(lines[begin - 1 : finish]),
        after=lines[finish] if finish < count else "",
    )


def locate(anchor: Anchor, content: str) -> LineRange | None:
    """Find the anchored text in ``content``.

    Returns:
        Line range of the first occurrence, or None if the selected text is
        empty or no longer present verbatim
    """
    if not anchor.selected:
        return None

    index = content.find(anchor.selected)
    if index < 0:
        return None

    start = content.count("\n", 0, index) + 1
    end = start + anchor.selected.count("\n")
    return LineRange(start_line=start, end_line=end)
