"""Tests for diff indexing, anchor validation and partitioning."""

from prpanel_core.diff import (
    build_index,
    format_unmapped_comments,
    normalize_path,
    partition,
    validate,
    validate_comment,
)
from prpanel_core.models import Comment, IdentifiedComment, Side

# src/auth.ts gains lines 11-13 after ten unchanged lines.
AUTH_DIFF = """diff --git a/src/auth.ts b/src/auth.ts
index 1111111..2222222 100644
--- a/src/auth.ts
+++ b/src/auth.ts
@@ -9,2 +9,5 @@ export function login() {
 const a = 1
 const b = 2
+if (!user) {
+  throw new Error("no user")
+}
"""

MIXED_DIFF = """diff --git a/app/models.py b/app/models.py
--- a/app/models.py
+++ b/app/models.py
@@ -1,4 +1,4 @@
 import os
-import sys
+import json
 
 def load():
@@ -20,3 +20,2 @@ def save():
     x = 1
---- not a header, a removed line starting with dashes
     return x
diff --git a/new.txt b/new.txt
new file mode 100644
--- /dev/null
+++ b/new.txt
@@ -0,0 +1,2 @@
+hello
+world
\\ No newline at end of file
diff --git a/gone.txt b/gone.txt
deleted file mode 100644
--- a/gone.txt
+++ /dev/null
@@ -1,2 +0,0 @@
-bye
-now
"""

RENAME_DIFF = """diff --git a/old/name.py b/new/name.py
similarity index 90%
rename from old/name.py
rename to new/name.py
--- a/old/name.py
+++ b/new/name.py
@@ -3,2 +3,3 @@
 keep = True
+added = True
 end = True
"""


# ---------------------------------------------------------------------------
# normalize_path
# ---------------------------------------------------------------------------


class TestNormalizePath:
    def test_strips_a_and_b_prefixes(self):
        assert normalize_path("a/src/x.py") == "src/x.py"
        assert normalize_path("b/src/x.py") == "src/x.py"

    def test_dev_null_is_none(self):
        assert normalize_path("/dev/null") is None

    def test_drops_trailing_timestamp(self):
        assert normalize_path("b/src/x.py\t2024-01-01 00:00:00") == "src/x.py"

    def test_plain_path_unchanged(self):
        assert normalize_path("src/x.py") == "src/x.py"


# ---------------------------------------------------------------------------
# build_index
# ---------------------------------------------------------------------------


class TestBuildIndex:
    def test_added_lines_are_right_only(self):
        entry = build_index(AUTH_DIFF).find_file("src/auth.ts")
        assert {11, 12, 13} <= entry.right_lines
        assert 11 not in entry.left_lines

    def test_context_lines_are_on_both_sides(self):
        entry = build_index(AUTH_DIFF).find_file("src/auth.ts")
        assert {9, 10} <= entry.right_lines
        assert {9, 10} <= entry.left_lines

    def test_deleted_lines_are_left_only(self):
        entry = build_index(MIXED_DIFF).find_file("app/models.py")
        assert 2 in entry.left_lines
        assert 2 in entry.right_lines  # "+import json" replaces it on the new side
        assert 21 in entry.left_lines
        assert 22 not in entry.right_lines

    def test_removed_line_starting_with_dashes_is_not_a_header(self):
        doc = build_index(MIXED_DIFF)
        entry = doc.find_file("app/models.py")
        assert entry.left_lines == frozenset({1, 2, 3, 4, 20, 21, 22})
        assert entry.right_lines == frozenset({1, 2, 3, 4, 20, 21})

    def test_blank_context_line_counts(self):
        entry = build_index(MIXED_DIFF).find_file("app/models.py")
        assert 3 in entry.right_lines

    def test_added_file(self):
        entry = build_index(MIXED_DIFF).find_file("new.txt")
        assert entry.old_path is None
        assert entry.right_lines == frozenset({1, 2})
        assert entry.left_lines == frozenset()

    def test_deleted_file_indexed_by_old_path(self):
        entry = build_index(MIXED_DIFF).find_file("gone.txt")
        assert entry.new_path is None
        assert entry.left_lines == frozenset({1, 2})

    def test_rename_matches_either_path(self):
        doc = build_index(RENAME_DIFF)
        assert doc.find_file("new/name.py") is doc.find_file("old/name.py")
        assert 4 in doc.find_file("new/name.py").right_lines

    def test_diff_without_git_headers(self):
        doc = build_index("--- a/f.py\n+++ b/f.py\n@@ -1 +1 @@\n-x\n+y\n")
        assert doc.find_file("f.py").right_lines == frozenset({1})
        assert doc.find_file("f.py").left_lines == frozenset({1})

    def test_empty_diff(self):
        assert build_index("").paths == []

    def test_paths_lists_every_file(self):
        assert build_index(MIXED_DIFF).paths == ["app/models.py", "new.txt", "gone.txt"]


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


class TestValidate:
    def test_added_line_is_valid(self):
        assert validate(build_index(AUTH_DIFF), "src/auth.ts", 12, Side.RIGHT).valid

    def test_line_outside_diff_is_invalid(self):
        result = validate(build_index(AUTH_DIFF), "src/auth.ts", 100, Side.RIGHT)
        assert not result.valid
        assert "not found in diff" in result.reason

    def test_unknown_file(self):
        result = validate(build_index(AUTH_DIFF), "src/other.ts", 12)
        assert not result.valid
        assert result.reason == "File src/other.ts not found in diff"

    def test_prefixed_path_is_accepted(self):
        assert validate(build_index(AUTH_DIFF), "b/src/auth.ts", 12).valid

    def test_added_line_invalid_on_left_side(self):
        result = validate(build_index(AUTH_DIFF), "src/auth.ts", 12, Side.LEFT)
        assert not result.valid
        assert "LEFT side" in result.reason

    def test_side_given_as_string(self):
        assert validate(build_index(MIXED_DIFF), "app/models.py", 21, "LEFT").valid

    def test_range_checks_start_line(self):
        doc = build_index(AUTH_DIFF)
        assert validate(doc, "src/auth.ts", 13, Side.RIGHT, start_line=11).valid
        result = validate(doc, "src/auth.ts", 13, Side.RIGHT, start_line=2)
        assert not result.valid
        assert result.reason.startswith("Start line 2")

    def test_start_side_defaults_to_side(self):
        doc = build_index(AUTH_DIFF)
        assert not validate(doc, "src/auth.ts", 13, Side.RIGHT, start_line=12, start_side=Side.LEFT).valid
        assert validate(doc, "src/auth.ts", 13, Side.RIGHT, start_line=12).valid

    def test_is_deterministic(self):
        doc = build_index(AUTH_DIFF)
        comment = Comment(path="src/auth.ts", line=100, body="x")
        assert validate_comment(doc, comment) == validate_comment(doc, comment)
        assert validate_comment(build_index(AUTH_DIFF), comment) == validate_comment(doc, comment)


# ---------------------------------------------------------------------------
# partition
# ---------------------------------------------------------------------------


class TestPartition:
    def test_scenario_split(self):
        doc = build_index(AUTH_DIFF)
        inside = Comment(path="src/auth.ts", line=12, body="check this")
        outside = Comment(path="src/auth.ts", line=100, body="far away")
        result = partition(doc, [inside, outside])
        assert result.mapped == [inside]
        assert len(result.unmapped) == 1
        assert result.unmapped[0].item is outside
        assert "not found in diff" in result.unmapped[0].reason

    def test_nothing_is_dropped_and_order_kept(self):
        doc = build_index(MIXED_DIFF)
        comments = [Comment(path="app/models.py", line=n, body=str(n)) for n in (1, 50, 2, 60, 21)]
        result = partition(doc, comments)
        assert [c.line for c in result.mapped] == [1, 2, 21]
        assert [u.item.line for u in result.unmapped] == [50, 60]

    def test_mapped_comments_are_members_of_their_side(self):
        doc = build_index(MIXED_DIFF)
        comments = [
            Comment(path=path, line=line, body="b", side=side)
            for path in ("app/models.py", "new.txt", "gone.txt", "missing.py")
            for line in range(0, 25)
            for side in (Side.LEFT, Side.RIGHT)
        ]
        result = partition(doc, comments)
        for c in result.mapped:
            assert c.line in doc.find_file(c.path).lines_for(c.side)
        for u in result.unmapped:
            entry = doc.find_file(u.item.path)
            assert entry is None or u.item.line not in entry.lines_for(u.item.side)

    def test_accepts_wrapped_comments(self):
        doc = build_index(AUTH_DIFF)
        wrapped = IdentifiedComment(comment=Comment(path="src/auth.ts", line=11, body="x"), reviewers=("r",), id="C1")
        assert partition(doc, [wrapped]).mapped == [wrapped]


class TestFormatUnmapped:
    def test_empty_is_blank(self):
        assert format_unmapped_comments([]) == ""

    def test_renders_path_and_range(self):
        doc = build_index(AUTH_DIFF)
        comment = Comment(path="src/auth.ts", line=105, start_line=100, body="Consider caching")
        text = format_unmapped_comments(partition(doc, [comment]).unmapped)
        assert "Additional Notes (1 comments for lines not in diff)" in text
        assert "### `src/auth.ts:100-105`" in text
        assert "Consider caching" in text
        assert text.strip().endswith("</details>")

    def test_custom_renderer(self):
        doc = build_index(AUTH_DIFF)
        unmapped = partition(doc, [Comment(path="x.py", line=1, body="raw")]).unmapped
        assert "RENDERED" in format_unmapped_comments(unmapped, render=lambda c: "RENDERED")
