"""Tests for the Myers diff and three-way merge engine."""

import pytest

from wikidelta.diff_engine import (
    CONFLICT_END,
    CONFLICT_SEPARATOR,
    CONFLICT_START,
    MyersDiff,
    diff_stats,
)


@pytest.fixture
def engine() -> MyersDiff:
    return MyersDiff()


BASE = "\n".join(["alpha", "beta", "gamma", "delta", "epsilon", "zeta", "eta", "theta"])


class TestDiff:
    """Tests for line diffs."""

    def test_identical_texts_have_no_changes(self, engine: MyersDiff):
        """Diffing a text with itself yields no additions or deletions."""
        result = engine.diff(BASE, BASE)

        assert result.additions == 0
        assert result.deletions == 0
        assert result.hunks == []

    def test_counts_single_replacement(self, engine: MyersDiff):
        """Replacing one line is one deletion plus one addition."""
        result = engine.diff("a\nb\nc", "a\nB\nc")

        assert result.additions == 1
        assert result.deletions == 1
        assert len(result.hunks) == 1

    def test_shortest_edit_script(self, engine: MyersDiff):
        """Myers finds the minimal script for the classic ABCABBA / CBABAC pair."""
        edits = engine.compute_edit_script(list("ABCABBA"), list("CBABAC"))
        changed = [e for e in edits if e.type != "equal"]

        assert len(changed) == 5

    def test_empty_texts(self, engine: MyersDiff):
        """Two empty texts differ in nothing."""
        result = engine.diff("", "")
        assert result.hunks == []

    def test_none_input_raises(self, engine: MyersDiff):
        """A missing text is a programming error, not an empty diff."""
        with pytest.raises(ValueError):
            engine.diff(None, "text")
        with pytest.raises(ValueError):
            engine.diff("text", None)

    def test_hunk_closes_after_three_unchanged_lines(self, engine: MyersDiff):
        """Changes separated by enough unchanged lines land in separate hunks."""
        new = BASE.replace("alpha", "ALPHA").replace("theta", "THETA")
        result = engine.diff(BASE, new)

        assert len(result.hunks) == 2
        first = result.hunks[0]
        assert first.old_start == 1
        assert [line.type for line in first.lines] == ["removed", "added", "unchanged", "unchanged", "unchanged"]
        assert first.old_lines == 4
        assert first.new_lines == 4

    def test_line_numbers(self, engine: MyersDiff):
        """Diff lines carry 1-based line numbers on the sides they exist on."""
        result = engine.diff("a\nb", "a\nx\nb")
        added = [line for line in result.hunks[0].lines if line.type == "added"][0]

        assert added.content == "x"
        assert added.new_line_number == 2
        assert added.old_line_number is None

    def test_diff_stats(self):
        """diff_stats mirrors the tallies of a full diff."""
        additions, deletions, unchanged = diff_stats("a\nb\nc", "a\nc\nd")
        assert additions == 1
        assert deletions == 1
        assert unchanged >= 1


class TestApplyDiff:
    """Applying a computed diff reproduces the new text."""

    @pytest.mark.parametrize(
        "old, new",
        [
            (BASE, BASE.replace("delta", "DELTA")),
            (BASE, "prefix\n" + BASE + "\nsuffix"),
            (BASE, "\n".join(BASE.split("\n")[2:6])),
            ("", "one\ntwo"),
            ("one\ntwo", ""),
            ("a\nb\nc\nd\ne\nf\ng\nh\ni\nj", "a\nX\nc\nd\ne\nf\ng\nh\nY\nj\nk"),
            ("same\nsame\nsame", "same\nother\nsame\nsame"),
        ],
    )
    def test_round_trip(self, engine: MyersDiff, old: str, new: str):
        """apply_diff(old, diff(old, new)) == new."""
        assert engine.apply_diff(old, engine.diff(old, new)) == new


class TestUnifiedDiff:
    """Tests for unified diff rendering."""

    def test_renders_header_and_prefixes(self, engine: MyersDiff):
        """Hunks render with @@ headers and +/-/space prefixes."""
        output = engine.generate_unified_diff("a\nb\nc", "a\nB\nc")
        lines = output.split("\n")

        assert lines[0] == "@@ -2,2 +2,2 @@"
        assert "-b" in lines
        assert "+B" in lines
        assert " c" in lines

    def test_no_output_for_identical_texts(self, engine: MyersDiff):
        assert engine.generate_unified_diff(BASE, BASE) == ""


class TestMerge:
    """Tests for three-way merge."""

    def test_disjoint_edits_merge_cleanly(self, engine: MyersDiff):
        """Edits to different regions are both kept without conflicts."""
        ours = BASE.replace("beta", "BETA")
        theirs = BASE.replace("\neta\n", "\nETA\n")

        result = engine.merge(BASE, ours, theirs)

        assert result.resolved
        assert result.conflicts == []
        assert "BETA" in result.content
        assert "ETA\ntheta" in result.content

    def test_adjacent_edits_merge_cleanly(self, engine: MyersDiff):
        """Touching but non-overlapping line edits do not conflict."""
        result = engine.merge("a\nb\nc\nd", "a\nB\nc\nd", "a\nb\nC\nd")

        assert result.resolved
        assert result.content == "a\nB\nC\nd"

    def test_same_region_different_content_conflicts(self, engine: MyersDiff):
        """Both sides rewriting the same line yields exactly one conflict."""
        result = engine.merge("a\nb\nc\nd", "a\nb\nOURS\nd", "a\nb\nTHEIRS\nd")

        assert not result.resolved
        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.ours == "OURS"
        assert conflict.theirs == "THEIRS"
        assert conflict.base == "c"

        lines = result.content.split("\n")
        assert lines == ["a", "b", CONFLICT_START, "OURS", CONFLICT_SEPARATOR, "THEIRS", CONFLICT_END, "d"]
        assert lines[conflict.start_line - 1] == "OURS"
        assert conflict.end_line == conflict.start_line

    def test_identical_edits_are_taken_once(self, engine: MyersDiff):
        """Both sides making the same change is not a conflict."""
        edited = BASE.replace("gamma", "GAMMA")
        result = engine.merge(BASE, edited, edited)

        assert result.resolved
        assert result.content == edited

    def test_one_sided_edit(self, engine: MyersDiff):
        """Only theirs changed: the result is theirs."""
        theirs = BASE + "\nappended"
        result = engine.merge(BASE, BASE, theirs)

        assert result.resolved
        assert result.content == theirs

    def test_insert_and_rewrite_at_same_position_conflict(self, engine: MyersDiff):
        """An insertion at the start of a region the other side rewrote conflicts."""
        result = engine.merge("a\nb\nc", "a\nnew\nb\nc", "a\nB\nc")

        assert not result.resolved
        assert len(result.conflicts) == 1

    def test_none_input_raises(self, engine: MyersDiff):
        with pytest.raises(ValueError):
            engine.merge(None, "a", "b")
