"""Line-based three-way merge of document Markdown.

Uses the ``merge3`` library (the Bazaar/Breezy algorithm) to find the
regions where ``current`` and ``incoming`` both departed from ``base``.
``merge3`` reports any such region as a conflict, even when the two sides
edited different lines that merely sit next to each other. Each of those
regions is therefore refined hunk by hunk with ``difflib``:

* hunks from the two sides that do not overlap are applied together;
* a hunk made identically on both sides is applied once;
* only genuinely overlapping hunks become a conflict.

The result is a tagged union. Conflict markers exist only inside
``ConflictingMerge.text``; callers decide what, if anything, to store.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass

from merge3 import Merge3

START_MARKER = "<<<<<<< current"
MID_MARKER = "======="
END_MARKER = ">>>>>>> incoming"


@dataclass(frozen=True)
class CleanMerge:
    """Both sides' edits combined without overlap."""

    text: str


@dataclass(frozen=True)
class ConflictingMerge:
    """At least one region was edited differently on both sides.

    Attributes:
        text: Merge with conflict markers; never written as live content.
        conflict_count: Number of conflicting regions.
    """

    text: str
    conflict_count: int


MergeResult = CleanMerge | ConflictingMerge


@dataclass(frozen=True)
class _Hunk:
    """Replace ``base[start:end]`` with ``lines``; ``start == end`` inserts."""

    start: int
    end: int
    lines: tuple[str, ...]

    @property
    def is_insert(self) -> bool:
        return self.start == self.end


def _split(text: str) -> list[str]:
    return text.split("\n")


def _hunks(base: list[str], side: list[str]) -> list[_Hunk]:
    matcher = difflib.SequenceMatcher(None, base, side, autojunk=False)
    return [
        _Hunk(i1, i2, tuple(side[j1:j2]))
        for tag, i1, i2, j1, j2 in matcher.get_opcodes()
        if tag != "equal"
    ]


def _overlaps(a: _Hunk, b: _Hunk) -> bool:
    match (a.is_insert, b.is_insert):
        case (True, True):
            return a.start == b.start and a.lines != b.lines
        case (True, False):
            return b.start < a.start < b.end
        case (False, True):
            return a.start < b.start < a.end
        case _:
            return max(a.start, b.start) < min(a.end, b.end)


def _within(hunk: _Hunk, start: int, end: int) -> bool:
    """True when ``hunk`` must be resolved together with span [start, end)."""
    if start == end:
        return hunk.is_insert and hunk.start == start
    if hunk.is_insert:
        return start < hunk.start < end
    return max(start, hunk.start) < min(end, hunk.end)


def _apply(
    base: list[str], start: int, end: int, hunks: list[_Hunk]
) -> list[str]:
    out: list[str] = []
    pos = start
    for hunk in sorted(hunks, key=lambda h: (h.start, h.end)):
        out.extend(base[pos : hunk.start])
        out.extend(hunk.lines)
        pos = hunk.end
    out.extend(base[pos:end])
    return out


def _conflict_spans(
    ours: list[_Hunk], theirs: list[_Hunk]
) -> list[tuple[int, int]]:
    """Grow spans around overlapping hunk pairs until no hunk straddles one."""
    spans = [
        (min(a.start, b.start), max(a.end, b.end))
        for a in ours
        for b in theirs
        if _overlaps(a, b)
    ]
    everything = ours + theirs
    changed = True
    while changed:
        changed = False
        spans.sort()
        merged: list[tuple[int, int]] = []
        for start, end in spans:
            if merged and start < merged[-1][1]:
                merged[-1] = (merged[-1][0], max(merged[-1][1], end))
                changed = True
            else:
                merged.append((start, end))
        spans = merged
        for i, (start, end) in enumerate(spans):
            for hunk in everything:
                if _within(hunk, start, end) and (
                    hunk.start < start or hunk.end > end
                ):
                    spans[i] = (min(start, hunk.start), max(end, hunk.end))
                    start, end = spans[i]
                    changed = True
    return spans


def _refine(
    base: list[str], current: list[str], incoming: list[str]
) -> tuple[list[str], int]:
    """Resolve one region ``merge3`` flagged; returns (lines, conflicts)."""
    ours = _hunks(base, current)
    theirs = [h for h in _hunks(base, incoming) if h not in ours]
    shared = [h for h in _hunks(base, incoming) if h in ours]
    spans = _conflict_spans(ours, theirs)

    events: list[tuple[int, int, _Hunk | None]] = [
        (start, end, None) for start, end in spans
    ]
    for hunk in ours + theirs:
        if not any(_within(hunk, s, e) for s, e in spans):
            events.append((hunk.start, hunk.end, hunk))
    events.sort(key=lambda ev: (ev[0], ev[1]))

    out: list[str] = []
    pos = 0
    for start, end, hunk in events:
        out.extend(base[pos:start])
        if hunk is not None:
            out.extend(hunk.lines)
        else:
            inside_ours = [h for h in ours if _within(h, start, end)]
            inside_theirs = [
                h for h in theirs + shared if _within(h, start, end)
            ]
            out.append(START_MARKER)
            out.extend(_apply(base, start, end, inside_ours))
            out.append(MID_MARKER)
            out.extend(_apply(base, start, end, inside_theirs))
            out.append(END_MARKER)
        pos = end
    out.extend(base[pos:])
    return out, len(spans)


def three_way_merge(base: str, current: str, incoming: str) -> MergeResult:
    """Merge ``incoming`` into ``current`` relative to their ancestor ``base``.

    Args:
        base: Common ancestor (last AI-produced content, or "").
        current: Live content, possibly edited by people ("ours").
        incoming: Newly proposed content ("theirs").

    Returns:
        ``CleanMerge`` when no region was edited differently on both sides,
        otherwise ``ConflictingMerge`` with markers and a conflict count.
    """
    if current == incoming or incoming == base:
        return CleanMerge(current)
    if current == base:
        return CleanMerge(incoming)

    base_lines = _split(base)
    current_lines = _split(current)
    incoming_lines = _split(incoming)

    merged: list[str] = []
    conflicts = 0
    m3 = Merge3(base_lines, current_lines, incoming_lines)
    for region in m3.merge_regions():
        match region:
            case ("unchanged", zstart, zend):
                merged.extend(base_lines[zstart:zend])
            case ("a" | "same", astart, aend):
                merged.extend(current_lines[astart:aend])
            case ("b", bstart, bend):
                merged.extend(incoming_lines[bstart:bend])
            case ("conflict", zstart, zend, astart, aend, bstart, bend):
                lines, count = _refine(
                    base_lines[zstart:zend],
                    current_lines[astart:aend],
                    incoming_lines[bstart:bend],
                )
                merged.extend(lines)
                conflicts += count
            case _:
                raise ValueError(f"Unexpected merge region: {region!r}")

    text = "\n".join(merged)
    if conflicts:
        return ConflictingMerge(text=text, conflict_count=conflicts)
    return CleanMerge(text)


def generate_diff(
    old_content: str,
    new_content: str,
    label_old: str = "old",
    label_new: str = "new",
) -> str:
    """Unified diff of two texts; empty when they are identical."""
    return "".join(
        difflib.unified_diff(
            old_content.splitlines(True),
            new_content.splitlines(True),
            fromfile=label_old,
            tofile=label_new,
        )
    )
