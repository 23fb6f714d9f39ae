"""
Unified diff parsing and hunk application

Only hunk application is implemented here; computing diffs is left to
the tools that author the patch files.
"""

import re
from typing import List, Optional, Sequence, Tuple

from asar_patcher.errors import DiffParseError, PatchDidNotApply
from asar_patcher.models import FilePatch, Hunk, HunkLineType

HUNK_HEADER = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@"
)
NO_NEWLINE_MARKER = "\\"
DEV_NULL = "/dev/null"


def split_lines(text: str) -> List[str]:
    """
    Split text on "\\n" only, keeping line endings.

    str.splitlines() also breaks on characters such as U+2028 that are
    common inside bundled JavaScript strings, which would shift line numbers.
    """
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def strip_line_ending(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


def _parse_file_name(value: str) -> str:
    """Take a ---/+++ header value up to the timestamp tab, unquoting if needed."""
    name = value.split("\t", 1)[0].rstrip()
    if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
        name = name[1:-1]
    return name


def _strip_git_prefixes(old: str, new: str) -> Tuple[str, str]:
    """Drop a/ and b/ prefixes when both sides use them (or one side is /dev/null)."""
    old_prefixed = old.startswith("a/") or old == DEV_NULL
    new_prefixed = new.startswith("b/") or new == DEV_NULL
    if old_prefixed and new_prefixed and not (old == DEV_NULL and new == DEV_NULL):
        if old != DEV_NULL:
            old = old[2:]
        if new != DEV_NULL:
            new = new[2:]
    return old, new


def _parse_hunk(lines: Sequence[str], index: int, match: "re.Match") -> Tuple[Hunk, int]:
    old_count = int(match.group("old_count")) if match.group("old_count") is not None else 1
    new_count = int(match.group("new_count")) if match.group("new_count") is not None else 1
    hunk = Hunk(
        old_start=int(match.group("old_start")),
        old_lines=old_count,
        new_start=int(match.group("new_start")),
        new_lines=new_count,
    )

    header_line = index + 1
    remaining_old, remaining_new = old_count, new_count
    index += 1
    while index < len(lines) and (remaining_old > 0 or remaining_new > 0):
        line = lines[index]
        # Some editors strip the single space of empty context lines
        prefix = line[0] if line else " "
        text = line[1:]
        if prefix == " ":
            hunk.lines.append((HunkLineType.CONTEXT, text))
            remaining_old -= 1
            remaining_new -= 1
        elif prefix == "-":
            hunk.lines.append((HunkLineType.REMOVED, text))
            remaining_old -= 1
        elif prefix == "+":
            hunk.lines.append((HunkLineType.ADDED, text))
            remaining_new -= 1
        elif prefix == NO_NEWLINE_MARKER:
            _mark_no_newline(hunk)
        else:
            break
        index += 1

    if index < len(lines) and lines[index].startswith(NO_NEWLINE_MARKER):
        _mark_no_newline(hunk)
        index += 1

    if remaining_old != 0 or remaining_new != 0:
        raise DiffParseError(f"Hunk at line {header_line}: line counts do not match its header")
    return hunk, index


def _mark_no_newline(hunk: Hunk) -> None:
    if not hunk.lines:
        return
    kind = hunk.lines[-1][0]
    if kind != HunkLineType.ADDED:
        hunk.old_eof_newline = False
    if kind != HunkLineType.REMOVED:
        hunk.new_eof_newline = False


def parse_patch(text: str) -> List[FilePatch]:
    """
    Parse unified diff text into per-file patches.

    Preamble lines (``diff --git``, ``index``, ``Index:``, separators) are
    ignored.

    Args:
        text: Unified diff text, possibly covering several files

    Returns:
        List of FilePatch, in file order

    Raises:
        DiffParseError: On a hunk outside a file section or with bad line counts
    """
    lines = [strip_line_ending(line) for line in split_lines(text)]
    patches: List[FilePatch] = []
    current: Optional[FilePatch] = None

    index = 0
    while index < len(lines):
        line = lines[index]
        if line.startswith("--- ") and index + 1 < len(lines) and lines[index + 1].startswith("+++ "):
            old, new = _strip_git_prefixes(_parse_file_name(line[4:]), _parse_file_name(lines[index + 1][4:]))
            current = FilePatch(old_file_name=old, new_file_name=new)
            patches.append(current)
            index += 2
            continue

        match = HUNK_HEADER.match(line)
        if match:
            if current is None:
                raise DiffParseError(f"Hunk at line {index + 1} has no file header")
            hunk, index = _parse_hunk(lines, index, match)
            current.hunks.append(hunk)
            continue

        index += 1

    return patches


def _locate(source: Sequence[str], expected_lines: Sequence[str], expected: int, lower_bound: int) -> Optional[int]:
    """Find expected_lines in source, searching outwards from the expected index."""
    length = len(expected_lines)
    max_pos = len(source) - length
    if max_pos < lower_bound:
        return None
    expected = min(max(expected, lower_bound), max_pos)

    reach = max(expected - lower_bound, max_pos - expected)
    for distance in range(reach + 1):
        candidates = (expected,) if distance == 0 else (expected + distance, expected - distance)
        for candidate in candidates:
            if lower_bound <= candidate <= max_pos and list(source[candidate:candidate + length]) == list(expected_lines):
                return candidate
    return None


def _line_ending(text: str) -> str:
    return "\r\n" if "\r\n" in text else "\n"


def apply_hunks(text: str, patch: FilePatch) -> str:
    """
    Apply every hunk of a patch to a text in memory.

    Hunks are applied in order and may not overlap. A hunk is looked for at
    its declared position, adjusted by how far earlier hunks drifted, then
    at increasing distance from there.

    Args:
        text: Original file content
        patch: Parsed file patch

    Returns:
        Patched content

    Raises:
        PatchDidNotApply: If any hunk's context and removed lines cannot be found
    """
    source_lines = split_lines(text)
    bare = [strip_line_ending(line) for line in source_lines]
    eol = _line_ending(text)

    result: List[str] = []
    cursor = 0
    drift = 0
    for hunk_index, hunk in enumerate(patch.hunks):
        declared = hunk.old_start - 1 if hunk.old_lines else hunk.old_start
        position = _locate(bare, hunk.old_text_lines, declared + drift, cursor)
        if position is None:
            raise PatchDidNotApply(patch.old_file_name, hunk_index)
        drift = position - declared

        result.extend(source_lines[cursor:position])
        source_index = position
        emitted: List[str] = []
        for kind, line in hunk.lines:
            if kind == HunkLineType.CONTEXT:
                emitted.append(source_lines[source_index])
                source_index += 1
            elif kind == HunkLineType.REMOVED:
                source_index += 1
            else:
                emitted.append(line + eol)

        if source_index == len(source_lines) and emitted:
            if not hunk.new_eof_newline:
                emitted[-1] = emitted[-1].rstrip("\r\n")
            elif not emitted[-1].endswith("\n"):
                emitted[-1] += eol

        result.extend(emitted)
        cursor = source_index

    result.extend(source_lines[cursor:])
    return "".join(result)
