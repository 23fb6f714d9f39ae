"""Tests for unified diff parsing and in-memory hunk application."""

import pytest

from asar_patcher.diff import apply_hunks, parse_patch, split_lines
from asar_patcher.errors import DiffParseError, PatchDidNotApply
from asar_patcher.models import HunkLineType

SIMPLE_DIFF = """\
diff --git a/src/main.js b/src/main.js
index 83db48f..bf269f4 100644
--- a/src/main.js
+++ b/src/main.js
@@ -1,3 +1,3 @@
 line one
-line two
+line 2
 line three
"""


class TestSplitLines:

    def test_keeps_endings(self):
        assert split_lines("a\r\nb\nc") == ["a\r\n", "b\n", "c"]

    def test_ignores_unicode_line_separators(self):
        assert split_lines("x\u2028y\u2029z\n") == ["x\u2028y\u2029z\n"]

    def test_empty(self):
        assert split_lines("") == []


class TestParsePatch:

    def test_file_names_and_hunk(self):
        patches = parse_patch(SIMPLE_DIFF)

        assert len(patches) == 1
        patch = patches[0]
        assert patch.old_file_name == "src/main.js"
        assert patch.new_file_name == "src/main.js"
        assert not patch.is_rename

        hunk = patch.hunks[0]
        assert (hunk.old_start, hunk.old_lines, hunk.new_start, hunk.new_lines) == (1, 3, 1, 3)
        assert [kind for kind, _text in hunk.lines] == [
            HunkLineType.CONTEXT, HunkLineType.REMOVED, HunkLineType.ADDED, HunkLineType.CONTEXT,
        ]
        assert hunk.old_text_lines == ["line one", "line two", "line three"]
        assert hunk.new_text_lines == ["line one", "line 2", "line three"]

    def test_names_without_prefix_and_with_timestamps(self):
        text = (
            "--- src/x.js\t2020-01-01 00:00:00.000000000 +0000\n"
            "+++ src/x.js\t2020-01-02 00:00:00.000000000 +0000\n"
            "@@ -1 +1 @@\n"
            "-a\n"
            "+b\n"
        )
        patch = parse_patch(text)[0]

        assert patch.old_file_name == "src/x.js"
        assert patch.new_file_name == "src/x.js"
        assert patch.hunks[0].old_lines == 1
        assert patch.hunks[0].new_lines == 1

    def test_new_file_from_dev_null(self):
        text = "--- /dev/null\n+++ b/new.js\n@@ -0,0 +1,2 @@\n+one\n+two\n"
        patch = parse_patch(text)[0]

        assert patch.old_file_name == "/dev/null"
        assert patch.new_file_name == "new.js"
        assert apply_hunks("", patch) == "one\ntwo\n"

    def test_several_files(self):
        text = SIMPLE_DIFF + "--- a/other.js\n+++ b/other.js\n@@ -1 +1 @@\n-x\n+y\n"
        patches = parse_patch(text)

        assert [p.old_file_name for p in patches] == ["src/main.js", "other.js"]

    def test_no_newline_markers(self):
        text = (
            "--- a/f.txt\n"
            "+++ b/f.txt\n"
            "@@ -1,2 +1,2 @@\n"
            " first\n"
            "-second\n"
            "\\ No newline at end of file\n"
            "+SECOND\n"
            "\\ No newline at end of file\n"
        )
        hunk = parse_patch(text)[0].hunks[0]

        assert not hunk.old_eof_newline
        assert not hunk.new_eof_newline

    def test_count_mismatch(self):
        text = "--- a/f\n+++ b/f\n@@ -1,3 +1,3 @@\n line one\n-line two\n"
        with pytest.raises(DiffParseError):
            parse_patch(text)

    def test_hunk_without_file_header(self):
        with pytest.raises(DiffParseError):
            parse_patch("@@ -1 +1 @@\n-a\n+b\n")


class TestApplyHunks:

    def test_simple(self):
        patch = parse_patch(SIMPLE_DIFF)[0]
        assert apply_hunks("line one\nline two\nline three\n", patch) == "line one\nline 2\nline three\n"

    def test_offset_drift(self):
        patch = parse_patch(SIMPLE_DIFF)[0]
        source = "banner\nbanner\nline one\nline two\nline three\ntrailer\n"

        assert apply_hunks(source, patch) == "banner\nbanner\nline one\nline 2\nline three\ntrailer\n"

    def test_drift_carries_to_later_hunks(self):
        text = (
            "--- a/f\n+++ b/f\n"
            "@@ -1,2 +1,2 @@\n a\n-b\n+B\n"
            "@@ -5,2 +5,2 @@\n e\n-f\n+F\n"
        )
        patch = parse_patch(text)[0]
        source = "x\na\nb\nc\nd\ne\nf\n"

        assert apply_hunks(source, patch) == "x\na\nB\nc\nd\ne\nF\n"

    def test_crlf_is_preserved(self):
        patch = parse_patch(SIMPLE_DIFF)[0]
        source = "line one\r\nline two\r\nline three\r\n"

        assert apply_hunks(source, patch) == "line one\r\nline 2\r\nline three\r\n"

    def test_unicode_line_separator_in_context(self):
        text = (
            "--- a/bundle.js\n+++ b/bundle.js\n"
            "@@ -1,2 +1,2 @@\n"
            ' var s = "a\u2028b";\n'
            "-line two\n"
            "+line 2\n"
        )
        patch = parse_patch(text)[0]
        source = 'var s = "a\u2028b";\nline two\n'

        assert apply_hunks(source, patch) == 'var s = "a\u2028b";\nline 2\n'

    def test_missing_final_newline(self):
        text = (
            "--- a/f.txt\n+++ b/f.txt\n"
            "@@ -1,2 +1,2 @@\n"
            " first\n"
            "-second\n"
            "\\ No newline at end of file\n"
            "+SECOND\n"
            "\\ No newline at end of file\n"
        )
        patch = parse_patch(text)[0]

        assert apply_hunks("first\nsecond", patch) == "first\nSECOND"

    def test_unmatched_hunk(self):
        patch = parse_patch(SIMPLE_DIFF)[0]

        with pytest.raises(PatchDidNotApply) as excinfo:
            apply_hunks("something\nelse\nentirely\n", patch)
        assert excinfo.value.hunk_index == 0
        assert "src/main.js" in str(excinfo.value)

    def test_second_hunk_fails(self):
        text = (
            "--- a/f\n+++ b/f\n"
            "@@ -1,2 +1,2 @@\n a\n-b\n+B\n"
            "@@ -4,2 +4,2 @@\n d\n-nope\n+X\n"
        )
        patch = parse_patch(text)[0]

        with pytest.raises(PatchDidNotApply, match=r"hunk 2"):
            apply_hunks("a\nb\nc\nd\ne\n", patch)
