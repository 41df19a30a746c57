"""Tests for file_handler module: encoding-aware reads, atomic writes, pruning removal."""

import os
from unittest.mock import patch

import pytest

from leyline.file_handler import (
    decode_bytes,
    read_file_with_encoding,
    remove_file,
    write_bytes_atomic,
    write_file,
)

# =============================================================================
# decode_bytes / read_file_with_encoding
# =============================================================================


class TestDecodeBytes:
    """Tests for decode_bytes(raw)."""

    def test_empty_is_utf8(self):
        assert decode_bytes(b"") == ("", "utf-8")

    def test_ascii_reported_as_utf8(self):
        content, encoding = decode_bytes(b"# Plain heading\n\nJust ascii text.\n")
        assert content == "# Plain heading\n\nJust ascii text.\n"
        assert encoding == "utf-8"

    def test_utf8_round_trip(self):
        text = "# Überschrift\n\nNaïve café résumé, ünïcödé everywhere.\n"
        content, encoding = decode_bytes(text.encode("utf-8"))
        assert content == text
        assert encoding.replace("-", "_") == "utf_8"

    def test_read_file_with_encoding(self, tmp_path):
        f = tmp_path / "doc.md"
        f.write_bytes(b"hello world\n")
        assert read_file_with_encoding(f) == ("hello world\n", "utf-8")


# =============================================================================
# write_bytes_atomic / write_file
# =============================================================================


class TestWriteBytesAtomic:
    """Tests for write_bytes_atomic(path, data)."""

    def test_creates_parents_and_writes(self, tmp_path):
        target = tmp_path / "docs" / "leyline" / "tenets" / "a.md"
        written = write_bytes_atomic(target, b"# A\n")

        assert written == 4
        assert target.read_bytes() == b"# A\n"

    def test_overwrites_existing(self, tmp_path):
        target = tmp_path / "a.md"
        target.write_bytes(b"old")
        write_bytes_atomic(target, b"new")
        assert target.read_bytes() == b"new"

    def test_no_temp_files_left(self, tmp_path):
        write_bytes_atomic(tmp_path / "a.md", b"x")
        assert [p.name for p in tmp_path.iterdir()] == ["a.md"]

    def test_failed_rename_keeps_original_and_cleans_up(self, tmp_path):
        target = tmp_path / "a.md"
        target.write_bytes(b"original")

        with patch("leyline.file_handler.os.replace", side_effect=OSError("EXDEV")):
            with pytest.raises(OSError, match="EXDEV"):
                write_bytes_atomic(target, b"replacement")

        assert target.read_bytes() == b"original"
        assert [p.name for p in tmp_path.iterdir()] == ["a.md"]

    def test_interrupt_cleans_up(self, tmp_path):
        target = tmp_path / "a.md"

        with patch("leyline.file_handler.os.fsync", side_effect=KeyboardInterrupt):
            with pytest.raises(KeyboardInterrupt):
                write_bytes_atomic(target, b"data")

        assert not target.exists()
        assert list(tmp_path.iterdir()) == []

    def test_write_file_encodes(self, tmp_path):
        target = tmp_path / "a.md"
        assert write_file(target, "é") == 2
        assert target.read_bytes() == "é".encode("utf-8")


# =============================================================================
# remove_file
# =============================================================================


class TestRemoveFile:
    """Tests for remove_file(path, stop_at)."""

    def test_missing_file_returns_false(self, tmp_path):
        assert remove_file(tmp_path / "nope.md") is False

    def test_removes_without_pruning(self, tmp_path):
        target = tmp_path / "sub" / "a.md"
        target.parent.mkdir()
        target.write_text("x")

        assert remove_file(target) is True
        assert not target.exists()
        assert target.parent.is_dir()

    def test_prunes_empty_parents_up_to_stop(self, tmp_path):
        root = tmp_path / "docs" / "leyline"
        target = root / "bindings" / "categories" / "go" / "a.md"
        target.parent.mkdir(parents=True)
        target.write_text("x")

        assert remove_file(target, stop_at=root) is True
        assert not (root / "bindings").exists()
        assert root.is_dir()

    def test_stops_at_non_empty_parent(self, tmp_path):
        root = tmp_path / "docs"
        target = root / "bindings" / "go" / "a.md"
        target.parent.mkdir(parents=True)
        target.write_text("x")
        (root / "bindings" / "keep.md").write_text("keep")

        remove_file(target, stop_at=root)

        assert not (root / "bindings" / "go").exists()
        assert (root / "bindings" / "keep.md").is_file()

    def test_path_outside_stop_is_not_pruned(self, tmp_path):
        outside = tmp_path / "elsewhere" / "a.md"
        outside.parent.mkdir()
        outside.write_text("x")

        remove_file(outside, stop_at=tmp_path / "docs")

        assert outside.parent.is_dir()
        assert os.path.isdir(tmp_path)
