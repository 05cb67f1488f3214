"""Line-level Myers diff and three-way merge for reconciling artifact text."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .models import DiffHunk, DiffLine, DiffResult, MergeConflict, MergeResult

logger = logging.getLogger(__name__)

CONFLICT_START = "<<<<<<< OURS"
CONFLICT_SEPARATOR = "======="
CONFLICT_END = ">>>>>>> THEIRS"

# Number of consecutive unchanged lines that closes an open hunk.
HUNK_CONTEXT = 3


@dataclass
class Edit:
    type: str  # "equal" | "insert" | "delete"
    old_index: int
    new_index: int


@dataclass
class ChangeRegion:
    """Base lines ``[start, end)`` replaced by ``lines`` on one side of a merge."""
    start: int
    end: int
    lines: List[str] = field(default_factory=list)


class MyersDiff:
    """Computes shortest edit scripts between line sequences and merges revisions."""

    def diff(self, old_content: str, new_content: str) -> DiffResult:
        """Diff two texts line by line.

        Args:
            old_content: Original text
            new_content: Modified text

        Returns:
            DiffResult with hunks and per-tag line tallies

        Raises:
            ValueError: If either text is ``None``
        """
        _require_text(old_content, "old_content")
        _require_text(new_content, "new_content")

        old_lines = old_content.split("\n")
        new_lines = new_content.split("\n")

        edits = self.compute_edit_script(old_lines, new_lines)
        hunks = self._build_hunks(edits, old_lines, new_lines)

        additions = deletions = unchanged = 0
        for hunk in hunks:
            for line in hunk.lines:
                if line.type == "added":
                    additions += 1
                elif line.type == "removed":
                    deletions += 1
                else:
                    unchanged += 1

        return DiffResult(hunks=hunks, additions=additions, deletions=deletions, unchanged=unchanged)

    def apply_diff(self, content: str, diff: DiffResult) -> str:
        """Replay *diff* on top of *content* and return the patched text."""
        _require_text(content, "content")
        lines = content.split("\n")
        result: List[str] = []
        index = 0

        for hunk in diff.hunks:
            while index < hunk.old_start - 1:
                result.append(lines[index])
                index += 1

            for diff_line in hunk.lines:
                if diff_line.type == "unchanged":
                    result.append(lines[index])
                    index += 1
                elif diff_line.type == "removed":
                    index += 1
                else:
                    result.append(diff_line.content)

        result.extend(lines[index:])
        return "\n".join(result)

    def generate_unified_diff(self, old_content: str, new_content: str) -> str:
        """Render the diff of two texts with ``@@ -a,b +c,d @@`` hunk headers."""
        result = self.diff(old_content, new_content)
        output: List[str] = []

        for hunk in result.hunks:
            output.append(f"@@ -{hunk.old_start},{hunk.old_lines} +{hunk.new_start},{hunk.new_lines} @@")
            for line in hunk.lines:
                if line.type == "added":
                    output.append(f"+{line.content}")
                elif line.type == "removed":
                    output.append(f"-{line.content}")
                else:
                    output.append(f" {line.content}")

        return "\n".join(output)

    def merge(self, base_content: str, ours_content: str, theirs_content: str) -> MergeResult:
        """Three-way merge of two revisions that share *base_content*.

        Regions changed by one side only are taken from that side. Regions
        changed by both sides are taken once when both produce the same
        lines, and otherwise become a :class:`MergeConflict` rendered with
        ``<<<<<<< OURS`` / ``=======`` / ``>>>>>>> THEIRS`` markers.

        Args:
            base_content: Common ancestor text
            ours_content: Our revision (e.g. regenerated content)
            theirs_content: Their revision (e.g. hand-edited content)

        Returns:
            MergeResult; ``resolved`` is False whenever conflicts exist
        """
        _require_text(base_content, "base_content")
        _require_text(ours_content, "ours_content")
        _require_text(theirs_content, "theirs_content")

        base_lines = base_content.split("\n")
        ours_lines = ours_content.split("\n")
        theirs_lines = theirs_content.split("\n")

        ours_regions = _regions(self.compute_edit_script(base_lines, ours_lines), ours_lines)
        theirs_regions = _regions(self.compute_edit_script(base_lines, theirs_lines), theirs_lines)

        result: List[str] = []
        conflicts: List[MergeConflict] = []
        position = 0
        oi = ti = 0

        while oi < len(ours_regions) or ti < len(theirs_regions):
            candidates = []
            if oi < len(ours_regions):
                candidates.append(ours_regions[oi].start)
            if ti < len(theirs_regions):
                candidates.append(theirs_regions[ti].start)
            start = min(candidates)

            result.extend(base_lines[position:start])

            # Grow the group until no region of either side touches it.
            end = start
            group_ours: List[ChangeRegion] = []
            group_theirs: List[ChangeRegion] = []
            grown = True
            while grown:
                grown = False
                while oi < len(ours_regions) and _joins(ours_regions[oi], start, end):
                    group_ours.append(ours_regions[oi])
                    end = max(end, ours_regions[oi].end)
                    oi += 1
                    grown = True
                while ti < len(theirs_regions) and _joins(theirs_regions[ti], start, end):
                    group_theirs.append(theirs_regions[ti])
                    end = max(end, theirs_regions[ti].end)
                    ti += 1
                    grown = True

            ours_block = _render(base_lines, group_ours, start, end)
            theirs_block = _render(base_lines, group_theirs, start, end)

            if not group_theirs:
                result.extend(ours_block)
            elif not group_ours:
                result.extend(theirs_block)
            elif ours_block == theirs_block:
                result.extend(ours_block)
            else:
                result.append(CONFLICT_START)
                start_line = len(result) + 1
                result.extend(ours_block)
                end_line = max(start_line, len(result))
                result.append(CONFLICT_SEPARATOR)
                result.extend(theirs_block)
                result.append(CONFLICT_END)
                conflicts.append(MergeConflict(
                    start_line=start_line,
                    end_line=end_line,
                    ours="\n".join(ours_block),
                    theirs="\n".join(theirs_block),
                    base="\n".join(base_lines[start:end]),
                ))

            position = end

        result.extend(base_lines[position:])

        if conflicts:
            logger.info("Three-way merge produced %d conflict(s)", len(conflicts))

        return MergeResult(content="\n".join(result), conflicts=conflicts, resolved=not conflicts)

    # ------------------------------------------------------------------
    # Edit script
    # ------------------------------------------------------------------

    def compute_edit_script(self, old_lines: Sequence[str], new_lines: Sequence[str]) -> List[Edit]:
        """Return the ordered ``equal``/``insert``/``delete`` edits of a shortest edit script."""
        m = len(old_lines)
        n = len(new_lines)
        max_d = m + n
        if max_d == 0:
            return []

        offset = max_d
        v = [0] * (2 * max_d + 2)
        trace: List[List[int]] = []

        for d in range(max_d + 1):
            trace.append(list(v))
            for k in range(-d, d + 1, 2):
                if k == -d or (k != d and v[k - 1 + offset] < v[k + 1 + offset]):
                    x = v[k + 1 + offset]
                else:
                    x = v[k - 1 + offset] + 1
                y = x - k

                while x < m and y < n and old_lines[x] == new_lines[y]:
                    x += 1
                    y += 1

                v[k + offset] = x

                if x >= m and y >= n:
                    return self._backtrack(trace, m, n, offset)

        return []

    @staticmethod
    def _backtrack(trace: List[List[int]], m: int, n: int, offset: int) -> List[Edit]:
        edits: List[Edit] = []
        x, y = m, n

        for d in range(len(trace) - 1, -1, -1):
            v = trace[d]
            k = x - y

            if k == -d or (k != d and v[k - 1 + offset] < v[k + 1 + offset]):
                prev_k = k + 1
            else:
                prev_k = k - 1

            prev_x = v[prev_k + offset]
            prev_y = prev_x - prev_k

            while x > prev_x and y > prev_y:
                edits.append(Edit("equal", x - 1, y - 1))
                x -= 1
                y -= 1

            if d > 0:
                if x == prev_x:
                    edits.append(Edit("insert", x, y - 1))
                    y -= 1
                else:
                    edits.append(Edit("delete", x - 1, y))
                    x -= 1

        edits.reverse()
        return edits

    # ------------------------------------------------------------------
    # Hunks
    # ------------------------------------------------------------------

    @staticmethod
    def _build_hunks(edits: List[Edit], old_lines: Sequence[str], new_lines: Sequence[str]) -> List[DiffHunk]:
        hunks: List[DiffHunk] = []
        current: Optional[DiffHunk] = None
        trailing_unchanged = 0
        old_line = 1
        new_line = 1

        for edit in edits:
            if edit.type == "equal":
                if current is not None:
                    current.lines.append(DiffLine(
                        type="unchanged",
                        content=old_lines[edit.old_index],
                        old_line_number=old_line,
                        new_line_number=new_line,
                    ))
                    current.old_lines += 1
                    current.new_lines += 1
                    trailing_unchanged += 1
                    if trailing_unchanged >= HUNK_CONTEXT:
                        hunks.append(current)
                        current = None
                old_line += 1
                new_line += 1
                continue

            if current is None:
                current = DiffHunk(old_start=old_line, old_lines=0, new_start=new_line, new_lines=0)
            trailing_unchanged = 0

            if edit.type == "delete":
                current.lines.append(DiffLine(
                    type="removed",
                    content=old_lines[edit.old_index],
                    old_line_number=old_line,
                ))
                current.old_lines += 1
                old_line += 1
            else:
                current.lines.append(DiffLine(
                    type="added",
                    content=new_lines[edit.new_index],
                    new_line_number=new_line,
                ))
                current.new_lines += 1
                new_line += 1

        if current is not None:
            hunks.append(current)

        return hunks


def _require_text(value: Optional[str], name: str) -> None:
    if value is None:
        raise ValueError(f"Cannot diff undefined content: {name} is None")


def _regions(edits: List[Edit], new_lines: Sequence[str]) -> List[ChangeRegion]:
    """Collapse runs of non-equal edits into base-indexed change regions."""
    regions: List[ChangeRegion] = []
    current: Optional[ChangeRegion] = None
    base_pos = 0

    for edit in edits:
        if edit.type == "equal":
            if current is not None:
                regions.append(current)
                current = None
            base_pos += 1
            continue

        if current is None:
            current = ChangeRegion(start=base_pos, end=base_pos)
        if edit.type == "delete":
            base_pos += 1
            current.end = base_pos
        else:
            current.lines.append(new_lines[edit.new_index])

    if current is not None:
        regions.append(current)

    return regions


def _joins(region: ChangeRegion, start: int, end: int) -> bool:
    return region.start == start or region.start < end


def _render(base_lines: Sequence[str], regions: List[ChangeRegion], start: int, end: int) -> List[str]:
    out: List[str] = []
    position = start
    for region in regions:
        out.extend(base_lines[position:region.start])
        out.extend(region.lines)
        position = region.end
    out.extend(base_lines[position:end])
    return out


def diff_stats(old_content: str, new_content: str) -> Tuple[int, int, int]:
    """Return ``(additions, deletions, unchanged)`` for two texts."""
    result = MyersDiff().diff(old_content, new_content)
    return result.additions, result.deletions, result.unchanged
