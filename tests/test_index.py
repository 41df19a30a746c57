"""Tests for MetadataIndex.

Covers:
- COLD -> WARMING -> WARM lifecycle and synchronous fallback
- Category listing and grouping
- Ranking determinism and star ratings
- "Did you mean" suggestions
- invalidate() / refresh_if_stale()
- Snapshot reuse across index instances
"""

from __future__ import annotations

import os
import threading
import time
from unittest.mock import patch

import pytest

from leyline.cache import ContentCache, Operation
from leyline.discovery import IndexState, MetadataIndex, levenshtein, stars
from leyline.discovery.index import score_document
from leyline.discovery.scanner import DocumentScanner

from conftest import CORPUS_FILES, write_tree


@pytest.fixture
def index(corpus_docs, cache):
    idx = MetadataIndex(corpus_docs, cache, snapshot_dir=cache.cache_root / "index")
    yield idx
    idx.close()


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    """State transitions."""

    def test_starts_cold(self, index):
        assert index.state is IndexState.COLD

    def test_warm_async_reaches_warm(self, index):
        index.warm_async().result(timeout=10)
        assert index.state is IndexState.WARM

    def test_warm_async_when_warm_returns_completed_future(self, index):
        index.warm_async().result(timeout=10)
        future = index.warm_async()
        assert future.done()

    def test_query_while_cold_scans_synchronously(self, index):
        assert index.category_counts() == {"core": 1, "go": 1, "tenets": 2}
        assert index.state is IndexState.WARM

    def test_query_during_warming_waits_for_full_index(self, index):
        release = threading.Event()
        real_discover = index._discover_paths

        def _gated():
            release.wait(timeout=10)
            return real_discover()

        results = []
        with patch.object(index, "_discover_paths", side_effect=_gated):
            index.warm_async()
            assert index.state is IndexState.WARMING

            reader = threading.Thread(target=lambda: results.append(index.documents()))
            reader.start()
            reader.join(timeout=0.2)
            assert reader.is_alive()
            assert results == []

            release.set()
            reader.join(timeout=10)

        assert not reader.is_alive()
        assert len(results[0]) == len(CORPUS_FILES)
        assert index.state is IndexState.WARM

    def test_invalidate_during_warming_discards_stale_scan(self, index, corpus_docs):
        release = threading.Event()
        real_discover = index._discover_paths
        calls = []

        def _gated():
            calls.append(1)
            if len(calls) == 1:
                release.wait(timeout=10)
            return real_discover()

        with patch.object(index, "_discover_paths", side_effect=_gated):
            future = index.warm_async()
            assert index.state is IndexState.WARMING

            index.invalidate()
            write_tree(corpus_docs, {"tenets/late.md": "---\nid: late\n---\n# Late\n"})
            release.set()
            future.result(timeout=10)

            # The superseded scan must not publish its results
            assert index.state is IndexState.COLD
            ids = {d.id for d in index.documents()}

        assert "late" in ids
        assert len(calls) == 2
        assert index.state is IndexState.WARM

    def test_close_is_idempotent(self, index):
        index.warm_async().result(timeout=10)
        index.close()
        index.close()


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    """categories(), documents_for_category() and documents()."""

    def test_categories_sorted(self, index):
        assert index.categories() == ["core", "go", "tenets"]

    def test_documents_for_category_sorted_by_title(self, index):
        docs = index.documents_for_category("TENETS")
        assert [d.title for d in docs] == [
            "Design for Testability",
            "Simplicity Above All",
        ]

    def test_unknown_category_is_empty(self, index):
        assert index.documents_for_category("cobol") == []

    def test_index_files_are_skipped(self, corpus_docs, cache):
        write_tree(
            corpus_docs,
            {
                "tenets/00-index.md": "---\nid: idx\n---\n# Index\n",
                "tenets/glance.md": "---\nid: glance\n---\n# Glance\n",
            },
        )
        idx = MetadataIndex(corpus_docs, cache)
        try:
            ids = {d.id for d in idx.documents()}
        finally:
            idx.close()
        assert "idx" not in ids
        assert "glance" not in ids

    def test_files_without_front_matter_are_not_documents(self, corpus_docs, cache):
        write_tree(corpus_docs, {"tenets/README.md": "# Readme\n"})
        idx = MetadataIndex(corpus_docs, cache)
        try:
            paths = [d.path for d in idx.documents()]
        finally:
            idx.close()
        assert "tenets/README.md" not in paths

    def test_date_keyed_front_matter_is_indexed(self, corpus_docs, cache):
        write_tree(
            corpus_docs,
            {"tenets/dated.md": "---\nid: dated\n2024-01-01: released\n---\n# Dated\n"},
        )
        idx = MetadataIndex(corpus_docs, cache)
        try:
            assert idx.search("simplicity")
            dated = [d for d in idx.documents() if d.id == "dated"]
        finally:
            idx.close()
        assert dated[0].metadata["2024-01-01"] == "released"

    def test_scan_failure_skips_only_that_file(self, index):
        real_scan = index.scanner.scan

        def _scan(raw, rel):
            if rel == "tenets/testability.md":
                raise ValueError("unparseable")
            return real_scan(raw, rel)

        with patch.object(index.scanner, "scan", side_effect=_scan):
            paths = [d.path for d in index.documents()]

        assert "tenets/testability.md" not in paths
        assert len(paths) == len(CORPUS_FILES) - 1
        assert index.performance_stats()["scanner"]["yaml_parse_errors"] == 1

    def test_hashing_goes_through_cache(self, index, cache):
        index.documents()
        assert cache.stats.misses(Operation.INDEX) == len(CORPUS_FILES)
        assert cache.stats.puts(Operation.INDEX) == len(CORPUS_FILES)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class TestSearch:
    """Ranking, determinism and star ratings."""

    def test_exact_title_ranks_first(self, index):
        results = index.search("Simplicity Above All")
        assert results[0].document.id == "simplicity"
        assert results[0].score >= 1000
        assert results[0].stars == 5

    def test_results_are_deterministic(self, index):
        first = [(r.document.path, r.score) for r in index.search("binding")]
        second = [(r.document.path, r.score) for r in index.search("binding")]
        assert first == second
        assert len(first) == 2

    def test_ties_break_on_title(self, index):
        results = index.search("binding")
        assert [r.document.title for r in results] == [
            "Binding: Error Wrapping in Go",
            "Binding: No Lint Suppression",
        ]
        assert results[0].score == results[1].score

    def test_multi_term_bonus(self, index):
        single = index.search("error")[0].score
        multi = index.search("error wrapping")[0].score
        assert multi > single

    def test_limit(self, index):
        assert len(index.search("e", limit=2)) == 2

    def test_blank_query_returns_nothing(self, index):
        assert index.search("   ") == []

    def test_no_match(self, index):
        assert index.search("kubernetes") == []

    def test_score_weights(self):
        doc = DocumentScanner().scan(
            CORPUS_FILES["tenets/simplicity.md"].encode(), "tenets/simplicity.md"
        )
        # title 50 + id 30 + content 10
        assert score_document(doc, "simplicity") == 90
        # category only
        assert score_document(doc, "tenets") == 5

    @pytest.mark.parametrize(
        ("score", "expected"),
        [(1000, 5), (100, 5), (99, 4), (75, 4), (50, 3), (25, 2), (24, 1), (0, 1)],
    )
    def test_stars(self, score, expected):
        assert stars(score) == expected


class TestSuggestions:
    """"Did you mean" suggestions."""

    def test_levenshtein(self):
        assert levenshtein("kitten", "sitting") == 3
        assert levenshtein("", "abc") == 3
        assert levenshtein("same", "same") == 0

    def test_suggests_category_for_typo(self, index):
        assert "tenets" in index.suggest("tenest")

    def test_suggests_title_word(self, index):
        assert "simplicity" in index.suggest("simplicty")

    def test_distant_query_has_no_suggestions(self, index):
        assert index.suggest("zzzzzzzzzzzzzzzz") == []

    def test_limit(self, index):
        assert len(index.suggest("go", limit=1)) <= 1


# ---------------------------------------------------------------------------
# Invalidation
# ---------------------------------------------------------------------------


class TestInvalidation:
    """invalidate() and refresh_if_stale()."""

    def test_invalidate_returns_to_cold(self, index):
        index.documents()
        index.invalidate()
        assert index.state is IndexState.COLD

    def test_invalidate_then_query_sees_new_file(self, index, corpus_docs):
        index.documents()
        write_tree(
            corpus_docs, {"tenets/modularity.md": "---\nid: modularity\n---\n# Modularity\n"}
        )
        index.invalidate()
        assert "modularity" in {d.id for d in index.documents()}

    def test_refresh_if_stale_detects_modification(self, index, corpus_docs):
        index.documents()
        path = corpus_docs / "tenets" / "simplicity.md"
        path.write_text(
            "---\nid: simplicity\n---\n# Keep It Simple\n", encoding="utf-8"
        )
        # Ensure the mtime differs even on coarse-grained filesystems
        later = time.time() + 10
        os.utime(path, (later, later))

        assert index.refresh_if_stale() is True
        titles = {d.title for d in index.documents()}
        assert "Keep It Simple" in titles

    def test_refresh_if_stale_unchanged(self, index):
        index.documents()
        assert index.refresh_if_stale() is False

    def test_refresh_if_stale_when_cold(self, index):
        assert index.refresh_if_stale() is False


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class TestSnapshot:
    """Parsed documents persist across index instances."""

    def test_snapshot_written(self, index):
        index.documents()
        assert index.snapshot_path.is_file()

    def test_second_instance_reuses_snapshot(self, corpus_docs, cache_dir):
        snapshot_dir = cache_dir / "index"
        first = MetadataIndex(corpus_docs, ContentCache(cache_dir), snapshot_dir)
        first.documents()
        first.close()

        second = MetadataIndex(corpus_docs, ContentCache(cache_dir), snapshot_dir)
        try:
            second.documents()
            stats = second.performance_stats()
        finally:
            second.close()

        assert stats["documents_reused"] == len(CORPUS_FILES)
        assert stats["documents_parsed"] == 0
        assert stats["hit_ratio"] == 1.0

    def test_changed_file_is_reparsed(self, corpus_docs, cache_dir):
        snapshot_dir = cache_dir / "index"
        first = MetadataIndex(corpus_docs, ContentCache(cache_dir), snapshot_dir)
        first.documents()
        first.close()

        (corpus_docs / "tenets" / "testability.md").write_text(
            "---\nid: testability\n---\n# Testable Code\n", encoding="utf-8"
        )
        second = MetadataIndex(corpus_docs, ContentCache(cache_dir), snapshot_dir)
        try:
            titles = {d.title for d in second.documents()}
            stats = second.performance_stats()
        finally:
            second.close()

        assert "Testable Code" in titles
        assert stats["documents_parsed"] == 1

    def test_corrupt_snapshot_is_ignored(self, corpus_docs, cache_dir):
        snapshot_dir = cache_dir / "index"
        idx = MetadataIndex(corpus_docs, ContentCache(cache_dir), snapshot_dir)
        idx.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        idx.snapshot_path.write_text("{not json", encoding="utf-8")
        try:
            assert len(idx.documents()) == len(CORPUS_FILES)
        finally:
            idx.close()

    def test_performance_stats(self, index):
        index.documents()
        stats = index.performance_stats()
        assert stats["state"] == "warm"
        assert stats["document_count"] == len(CORPUS_FILES)
        assert stats["scan_count"] == 1
        assert stats["scanner"]["files_scanned"] == len(CORPUS_FILES)
