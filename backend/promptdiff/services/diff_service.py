"""
Line diff service

Turns two prompt texts into rows for a two-column diff table:

- compute_line_diff: line-level parts (unchanged / removed / added)
- group_changes: pairs a removal with the addition that follows it
- build_rows: numbered left/right lines, with word segments on change rows
- summarize: "N lines added, M removed"
"""
import difflib
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


# Row kinds
UNCHANGED = "unchanged"
CHANGE = "change"
REMOVED = "removed"
ADDED = "added"

# Line kinds (per column)
LINE_CONTEXT = "context"
LINE_REMOVED = "removed"
LINE_ADDED = "added"
LINE_EMPTY = "empty"

_WORD_RE = re.compile(r"\s+|\w+|[^\w\s]")
_LINE_RE = re.compile(r"[^\n]*\n|[^\n]+$")


@dataclass
class DiffPart:
    """A run of whole lines, newline-terminated except possibly the last"""
    value: str
    added: bool = False
    removed: bool = False

    @property
    def count(self) -> int:
        return len(split_lines(self.value))


@dataclass
class DiffGroup:
    """Consecutive parts rendered together"""
    kind: str
    old_text: str = ""
    new_text: str = ""


@dataclass
class WordSegment:
    text: str
    changed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "changed": self.changed}


@dataclass
class DiffLine:
    """One cell of the diff table; number is None for empty cells"""
    number: Optional[int]
    text: str
    kind: str
    segments: Optional[List[WordSegment]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"number": self.number, "text": self.text, "kind": self.kind}
        if self.segments is not None:
            data["segments"] = [s.to_dict() for s in self.segments]
        return data


@dataclass
class DiffRow:
    kind: str
    left: DiffLine
    right: DiffLine

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "left": self.left.to_dict(), "right": self.right.to_dict()}


@dataclass
class DiffSummary:
    added: int = 0
    removed: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed)

    @property
    def text(self) -> str:
        if not self.has_changes:
            return "No differences"
        return f"{self.added} line{'s' if self.added != 1 else ''} added, {self.removed} removed"

    def to_dict(self) -> Dict[str, Any]:
        return {"added": self.added, "removed": self.removed, "text": self.text}


@dataclass
class DiffResult:
    rows: List[DiffRow] = field(default_factory=list)
    summary: DiffSummary = field(default_factory=DiffSummary)


def split_lines(value: str) -> List[str]:
    """Lines of a part; the empty piece after a final newline is not a line"""
    lines = value.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def compute_line_diff(old: str, new: str) -> List[DiffPart]:
    """
    Line-level diff of two texts.

    Only a newline ends a line, as in split_lines. Lines keep their
    newline, so a last line without one differs from the same text followed
    by a newline. A replaced run yields its removed part before its added
    part.
    """
    old_lines = _LINE_RE.findall(old)
    new_lines = _LINE_RE.findall(new)
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)

    parts: List[DiffPart] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            parts.append(DiffPart("".join(old_lines[i1:i2])))
            continue
        if tag in ("replace", "delete"):
            parts.append(DiffPart("".join(old_lines[i1:i2]), removed=True))
        if tag in ("replace", "insert"):
            parts.append(DiffPart("".join(new_lines[j1:j2]), added=True))
    return parts


def group_changes(parts: List[DiffPart]) -> List[DiffGroup]:
    """A removed part directly followed by an added part becomes one change group"""
    groups: List[DiffGroup] = []
    i = 0
    while i < len(parts):
        part = parts[i]
        if part.removed:
            if i + 1 < len(parts) and parts[i + 1].added:
                groups.append(DiffGroup(CHANGE, old_text=part.value, new_text=parts[i + 1].value))
                i += 2
                continue
            groups.append(DiffGroup(REMOVED, old_text=part.value))
        elif part.added:
            groups.append(DiffGroup(ADDED, new_text=part.value))
        else:
            groups.append(DiffGroup(UNCHANGED, old_text=part.value, new_text=part.value))
        i += 1
    return groups


def word_segments(old_line: str, new_line: str) -> Tuple[List[WordSegment], List[WordSegment]]:
    """Word-level segments of a changed line pair, one list per side"""
    old_words = _WORD_RE.findall(old_line)
    new_words = _WORD_RE.findall(new_line)
    matcher = difflib.SequenceMatcher(None, old_words, new_words, autojunk=False)

    left: List[WordSegment] = []
    right: List[WordSegment] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if i2 > i1:
            left.append(WordSegment("".join(old_words[i1:i2]), changed=tag != "equal"))
        if j2 > j1:
            right.append(WordSegment("".join(new_words[j1:j2]), changed=tag != "equal"))
    return left, right


def _empty() -> DiffLine:
    return DiffLine(number=None, text="", kind=LINE_EMPTY)


def build_rows(groups: List[DiffGroup]) -> List[DiffRow]:
    """
    Two-column rows with independent line numbers per side.

    Lines of a change group are paired by position; whichever side has
    more lines renders the remainder as pure removed or added rows.
    """
    rows: List[DiffRow] = []
    left_no = 1
    right_no = 1

    for group in groups:
        if group.kind == UNCHANGED:
            for text in split_lines(group.old_text):
                rows.append(DiffRow(
                    UNCHANGED,
                    DiffLine(left_no, text, LINE_CONTEXT),
                    DiffLine(right_no, text, LINE_CONTEXT),
                ))
                left_no += 1
                right_no += 1

        elif group.kind == CHANGE:
            removed = split_lines(group.old_text)
            added = split_lines(group.new_text)
            for i in range(max(len(removed), len(added))):
                if i < len(removed) and i < len(added):
                    left_segments, right_segments = word_segments(removed[i], added[i])
                    rows.append(DiffRow(
                        CHANGE,
                        DiffLine(left_no, removed[i], LINE_REMOVED, left_segments),
                        DiffLine(right_no, added[i], LINE_ADDED, right_segments),
                    ))
                    left_no += 1
                    right_no += 1
                elif i < len(removed):
                    rows.append(DiffRow(REMOVED, DiffLine(left_no, removed[i], LINE_REMOVED), _empty()))
                    left_no += 1
                else:
                    rows.append(DiffRow(ADDED, _empty(), DiffLine(right_no, added[i], LINE_ADDED)))
                    right_no += 1

        elif group.kind == REMOVED:
            for text in split_lines(group.old_text):
                rows.append(DiffRow(REMOVED, DiffLine(left_no, text, LINE_REMOVED), _empty()))
                left_no += 1

        elif group.kind == ADDED:
            for text in split_lines(group.new_text):
                rows.append(DiffRow(ADDED, _empty(), DiffLine(right_no, text, LINE_ADDED)))
                right_no += 1

    return rows


def summarize(rows: List[DiffRow]) -> DiffSummary:
    """
    Count added and removed lines as displayed.

    A changed line shows up on both sides, so a one-line substitution
    counts as one added and one removed.
    """
    return DiffSummary(
        added=sum(1 for row in rows if row.right.kind == LINE_ADDED),
        removed=sum(1 for row in rows if row.left.kind == LINE_REMOVED),
    )


def diff_texts(old: str, new: str) -> DiffResult:
    """Full pipeline: parts, groups, rows and summary"""
    rows = build_rows(group_changes(compute_line_diff(old, new)))
    return DiffResult(rows=rows, summary=summarize(rows))
