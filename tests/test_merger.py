"""Tests for diff and merge previews."""

from __future__ import annotations

from leyline.sync.merger import (
    END_MARKER,
    MID_MARKER,
    START_MARKER,
    attempt_merge,
    build_file_diff,
    generate_diff,
)
from leyline.sync.models import ThreeWayAction

BASE = "# Title\n\nline one\nline two\nline three\n"


class TestAttemptMerge:
    """Tests for attempt_merge()."""

    def test_non_overlapping_edits_merge_cleanly(self):
        local = BASE.replace("line one", "line one (local)")
        remote = BASE.replace("line three", "line three (upstream)")

        merged, has_conflicts = attempt_merge(BASE, local, remote)

        assert not has_conflicts
        assert "line one (local)" in merged
        assert "line three (upstream)" in merged

    def test_overlapping_edits_produce_markers(self):
        local = BASE.replace("line two", "line two (local)")
        remote = BASE.replace("line two", "line two (upstream)")

        merged, has_conflicts = attempt_merge(BASE, local, remote)

        assert has_conflicts
        lines = merged.splitlines()
        assert START_MARKER in lines
        assert MID_MARKER in lines
        assert END_MARKER in lines
        assert lines.index(START_MARKER) < lines.index("line two (local)")
        assert lines.index("line two (upstream)") < lines.index(END_MARKER)

    def test_identical_edits_do_not_conflict(self):
        edited = BASE.replace("line two", "line 2")
        merged, has_conflicts = attempt_merge(BASE, edited, edited)
        assert merged == edited
        assert not has_conflicts


class TestGenerateDiff:
    """Tests for generate_diff()."""

    def test_identical_content_has_empty_diff(self):
        assert generate_diff(BASE, BASE) == ""

    def test_unified_diff_labels(self):
        diff = generate_diff("a\n", "b\n", "local/x.md", "upstream/x.md")
        assert diff.startswith("--- local/x.md\n+++ upstream/x.md\n")
        assert "-a\n" in diff
        assert "+b\n" in diff


class TestBuildFileDiff:
    """Tests for build_file_diff()."""

    def test_added_file_diffs_from_dev_null(self):
        item = build_file_diff(
            "tenets/new.md", ThreeWayAction.ADDED, None, None, b"# New\n"
        )
        assert "--- /dev/null" in item.diff
        assert "+++ upstream/tenets/new.md" in item.diff
        assert item.merge_preview is None

    def test_removed_file_diffs_to_dev_null(self):
        item = build_file_diff(
            "tenets/old.md", ThreeWayAction.REMOVED, b"# Old\n", b"# Old\n", None
        )
        assert "+++ /dev/null" in item.diff
        assert "-# Old" in item.diff

    def test_conflict_gets_merge_preview(self):
        local = BASE.replace("line two", "mine").encode()
        remote = BASE.replace("line two", "theirs").encode()
        item = build_file_diff(
            "tenets/a.md", ThreeWayAction.CONFLICT, BASE.encode(), local, remote
        )
        assert item.merge_preview is not None
        assert item.has_markers

    def test_conflict_without_base_has_no_preview(self):
        item = build_file_diff(
            "tenets/a.md", ThreeWayAction.CONFLICT, None, b"mine\n", b"theirs\n"
        )
        assert item.merge_preview is None
        assert not item.has_markers
        assert item.diff
