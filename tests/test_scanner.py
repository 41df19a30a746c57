"""Tests for the front-matter document scanner."""

from __future__ import annotations

from leyline.cache import hash_content
from leyline.discovery.scanner import (
    MAX_FRONT_MATTER_SIZE,
    DocumentScanner,
    extract_preview,
    extract_title,
    fallback_title,
)

from conftest import GO_ERROR_WRAPPING, SIMPLICITY


class TestScan:
    """Tests for DocumentScanner.scan()."""

    def test_parses_front_matter_and_body(self):
        raw = SIMPLICITY.encode()
        doc = DocumentScanner().scan(raw, "tenets/simplicity.md")

        assert doc.id == "simplicity"
        assert doc.title == "Simplicity Above All"
        assert doc.type == "tenet"
        assert doc.category == "tenets"
        assert doc.metadata["last_modified"] == "2025-01-01"
        assert doc.content.startswith("# Simplicity Above All")
        assert doc.content_hash == hash_content(raw)
        assert doc.size == len(raw)

    def test_binding_category_from_path(self):
        doc = DocumentScanner().scan(
            GO_ERROR_WRAPPING.encode(), "bindings/categories/go/error-wrapping.md"
        )
        assert doc.type == "binding"
        assert doc.category == "go"
        assert doc.metadata["derived_from"] == "explicit-over-implicit"

    def test_file_without_front_matter_is_skipped(self):
        scanner = DocumentScanner()
        assert scanner.scan(b"# Just a heading\n", "tenets/x.md") is None
        assert scanner.statistics()["files_scanned"] == 0

    def test_unterminated_front_matter_is_skipped(self):
        assert DocumentScanner().scan(b"---\nid: x\n# Title\n", "tenets/x.md") is None

    def test_invalid_yaml_counts_parse_error(self):
        scanner = DocumentScanner()
        raw = b"---\nid: [unclosed\n---\n# Title\n"
        assert scanner.scan(raw, "tenets/x.md") is None
        assert scanner.statistics()["yaml_parse_errors"] == 1

    def test_non_mapping_front_matter_is_skipped(self):
        assert DocumentScanner().scan(b"---\n- a\n- b\n---\n# T\n", "tenets/x.md") is None

    def test_oversized_front_matter_is_skipped(self):
        padding = "x" * (MAX_FRONT_MATTER_SIZE + 1)
        raw = f"---\nid: big\nnote: {padding}\n---\n# Big\n".encode()
        assert DocumentScanner().scan(raw, "tenets/big.md") is None

    def test_bom_and_crlf_are_normalized(self):
        raw = "\ufeff---\r\nid: crlf\r\n---\r\n# Windows Doc\r\n\r\nBody.\r\n".encode()
        doc = DocumentScanner().scan(raw, "tenets/crlf.md")
        assert doc.id == "crlf"
        assert doc.title == "Windows Doc"
        assert "\r" not in doc.content

    def test_date_keys_become_strings(self):
        raw = b"---\nid: dated\n2024-01-01: released\nhistory:\n  - 2023-06-01: draft\n---\n# Dated\n"
        doc = DocumentScanner().scan(raw, "tenets/dated.md")
        assert doc.id == "dated"
        assert doc.metadata["2024-01-01"] == "released"
        assert doc.metadata["history"] == [{"2023-06-01": "draft"}]

    def test_missing_id_falls_back_to_stem(self):
        doc = DocumentScanner().scan(b"---\nversion: 1\n---\nBody only.\n", "tenets/no-id-here.md")
        assert doc.id == "no-id-here"
        assert doc.title == "No id here"

    def test_statistics_track_bytes(self):
        scanner = DocumentScanner()
        raw = SIMPLICITY.encode()
        scanner.scan(raw, "tenets/simplicity.md")
        stats = scanner.statistics()
        assert stats["files_scanned"] == 1
        assert stats["total_bytes_processed"] == len(raw)


class TestBodyHelpers:
    """Tests for extract_title(), fallback_title() and extract_preview()."""

    def test_extract_title_skips_blank_lines(self):
        assert extract_title("\n\n## Second Level\ntext") == "Second Level"

    def test_extract_title_none_without_heading(self):
        assert extract_title("plain text") is None

    def test_fallback_title(self):
        assert fallback_title("dry-principle") == "Dry principle"

    def test_preview_skips_headings(self):
        assert extract_preview("# Title\n\nFirst line.\nSecond line.\n") == (
            "First line. Second line."
        )

    def test_preview_cut_at_word_boundary(self):
        body = " ".join(["word"] * 100)
        preview = extract_preview(body, limit=30)
        assert preview.endswith("...")
        assert len(preview) <= 33
        assert "wor..." not in preview
