"""Cache-backed, searchable index of the documents in a corpus tree.

State machine::

    COLD --warm_async()--> WARMING --scan done--> WARM
      ^                                             |
      +------ invalidate() / refresh_if_stale() ----+

A query issued while COLD scans synchronously; a query issued while
WARMING blocks on the background scan.  Queries never see a partial index.

Each document is hashed through ``FileComparator`` (which stores its bytes
in ``ContentCache`` under the ``index`` operation) and is only re-parsed
when no parsed document exists for that path and hash, either in memory
or in the persisted snapshot under ``<cache_root>/index/``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ValidationError

from ..cache.content_cache import ContentCache
from ..cache.stats import Operation
from ..errors import ComparisonFailedError
from ..file_handler import write_bytes_atomic
from ..sync.comparator import FileComparator
from .scanner import DocumentScanner, IndexedDocument

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
DOCUMENT_ROOTS = ("tenets", "bindings")
SKIPPED_NAMES = frozenset({"index.md", "glance.md", "00-index.md"})

# Relevance weights
EXACT_TITLE_SCORE = 1000
ALL_TERMS_SCORE = 100
TITLE_TERM_SCORE = 50
ID_TERM_SCORE = 30
CONTENT_TERM_SCORE = 10
CATEGORY_TERM_SCORE = 5


class IndexState(str, Enum):
    COLD = "cold"
    WARMING = "warming"
    WARM = "warm"


class SearchResult(BaseModel):
    """A ranked search hit."""

    document: IndexedDocument
    score: int

    model_config = {"frozen": True}

    @property
    def stars(self) -> int:
        return stars(self.score)


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------


def score_document(document: IndexedDocument, query: str) -> int:
    """Relevance of *document* for *query* (0 = no match)."""
    normalized = " ".join(query.lower().split())
    terms = normalized.split()
    if not terms:
        return 0

    title = document.title.lower()
    doc_id = document.id.lower()
    preview = document.content_preview.lower()
    content = document.content.lower()
    category = document.category.lower()

    score = 0
    if title == normalized:
        score += EXACT_TITLE_SCORE
    if len(terms) > 1 and all(t in title or t in content for t in terms):
        score += ALL_TERMS_SCORE * len(terms)

    for term in terms:
        if term in title:
            score += TITLE_TERM_SCORE
        if term in doc_id:
            score += ID_TERM_SCORE
        if term in preview or term in content:
            score += CONTENT_TERM_SCORE
        if term in category:
            score += CATEGORY_TERM_SCORE
    return score


def stars(score: int) -> int:
    """Map a relevance score to a 1-5 star rating."""
    if score >= 100:
        return 5
    if score >= 75:
        return 4
    if score >= 50:
        return 3
    if score >= 25:
        return 2
    return 1


def levenshtein(a: str, b: str) -> int:
    """Edit distance between *a* and *b* (insert, delete, substitute)."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------


class MetadataIndex:
    """Searchable index over the documents below *root*.

    Args:
        root: Corpus tree (contains ``tenets/`` and ``bindings/``).
        cache: Content cache shared with the sync engine.
        snapshot_dir: Where parsed documents are persisted between runs.
    """

    def __init__(
        self,
        root: Path,
        cache: ContentCache | None = None,
        snapshot_dir: Path | None = None,
    ) -> None:
        self.root = Path(root)
        self.cache = cache
        self.snapshot_dir = snapshot_dir
        self.scanner = DocumentScanner()
        self._comparator = FileComparator(cache)

        self._lock = threading.RLock()
        self._executor: ThreadPoolExecutor | None = None
        self._future: Future | None = None
        self._state = IndexState.COLD
        self._generation = 0

        self._documents: dict[str, IndexedDocument] = {}
        self._by_category: dict[str, list[IndexedDocument]] = {}
        self._fingerprint: tuple = ()

        self._scan_count = 0
        self._reused = 0
        self._parsed = 0
        self._last_scan: float | None = None
        self._last_scan_ms = 0

    @property
    def state(self) -> IndexState:
        return self._state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def warm_async(self) -> Future:
        """Start the background scan unless one is running or done.

        Returns:
            A future that completes when the index is WARM.
        """
        with self._lock:
            if self._state == IndexState.WARM:
                done: Future = Future()
                done.set_result(None)
                return done
            if self._state == IndexState.WARMING and self._future is not None:
                return self._future

            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="leyline-index"
                )
            self._state = IndexState.WARMING
            self._future = self._executor.submit(
                self._scan_and_publish, self._generation
            )
            logger.debug("Index warming started for %s", self.root)
            return self._future

    def wait(self) -> None:
        """Block until the index is WARM (scanning now if it is COLD)."""
        with self._lock:
            state = self._state
            future = self._future
            generation = self._generation

        if state == IndexState.WARM:
            return
        if state == IndexState.WARMING and future is not None:
            future.result()
            with self._lock:
                if self._state == IndexState.WARM:
                    return
                # invalidate() ran while the background scan was in flight
                generation = self._generation
        self._scan_and_publish(generation)

    def invalidate(self) -> None:
        """Drop the in-memory index; the next query rescans."""
        with self._lock:
            self._generation += 1
            self._state = IndexState.COLD
            self._future = None
            self._documents = {}
            self._by_category = {}
            self._fingerprint = ()
        logger.debug("Index invalidated for %s", self.root)

    def refresh_if_stale(self) -> bool:
        """Invalidate when files were added, removed or modified.

        Returns:
            ``True`` if the index was invalidated.
        """
        with self._lock:
            if self._state != IndexState.WARM:
                return False
            known = self._fingerprint
        if self._compute_fingerprint(self._discover_paths()) == known:
            return False
        self.invalidate()
        return True

    def close(self) -> None:
        """Cancel a pending scan and stop the worker thread."""
        with self._lock:
            executor, self._executor = self._executor, None
            future = self._future
        if future is not None:
            future.cancel()
        if executor is not None:
            executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def categories(self) -> list[str]:
        self.wait()
        return sorted(self._by_category)

    def category_counts(self) -> dict[str, int]:
        self.wait()
        return {c: len(docs) for c, docs in sorted(self._by_category.items())}

    def documents_for_category(self, category: str) -> list[IndexedDocument]:
        self.wait()
        return list(self._by_category.get(category.lower(), []))

    def documents(self) -> list[IndexedDocument]:
        self.wait()
        return [self._documents[p] for p in sorted(self._documents)]

    def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        """Rank documents for *query*; ties break on title then path."""
        self.wait()
        if not query or not query.strip():
            return []

        results = []
        for document in self._documents.values():
            score = score_document(document, query)
            if score > 0:
                results.append(SearchResult(document=document, score=score))

        results.sort(
            key=lambda r: (-r.score, r.document.title.lower(), r.document.path)
        )
        return results[:limit] if limit > 0 else results

    def suggest(self, query: str, limit: int = 5) -> list[str]:
        """Known terms within edit distance of *query* ("did you mean")."""
        self.wait()
        needle = " ".join(query.lower().split())
        if not needle:
            return []
        threshold = max(2, len(needle) // 3)

        vocabulary: dict[str, str] = {}
        for category in self._by_category:
            vocabulary.setdefault(category.lower(), category)
        for document in self._documents.values():
            vocabulary.setdefault(document.title.lower(), document.title)
            for word in document.title.lower().split():
                word = word.strip(".,:;!?()[]\"'")
                if len(word) >= 3:
                    vocabulary.setdefault(word, word)

        scored = []
        for term, display in vocabulary.items():
            if term == needle:
                continue
            distance = levenshtein(needle, term)
            if distance <= threshold:
                scored.append((distance, term, display))
        scored.sort()
        return [display for _d, _t, display in scored[:limit]]

    def performance_stats(self) -> dict:
        with self._lock:
            lookups = self._reused + self._parsed
            return {
                "state": self._state.value,
                "document_count": len(self._documents),
                "category_count": len(self._by_category),
                "scan_count": self._scan_count,
                "documents_reused": self._reused,
                "documents_parsed": self._parsed,
                "hit_ratio": self._reused / lookups if lookups else 0.0,
                "last_scan_ms": self._last_scan_ms,
                "scanner": self.scanner.statistics(),
            }

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def _scan_and_publish(self, generation: int) -> None:
        try:
            documents, fingerprint, elapsed_ms = self._scan()
        except BaseException:
            with self._lock:
                if generation == self._generation:
                    self._state = IndexState.COLD
            raise

        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding scan superseded by invalidate()")
                return
            self._documents = documents
            self._by_category = _group_by_category(documents)
            self._fingerprint = fingerprint
            self._state = IndexState.WARM
            self._scan_count += 1
            self._last_scan = time.time()
            self._last_scan_ms = elapsed_ms

    def _scan(self) -> tuple[dict[str, IndexedDocument], tuple, int]:
        started = time.monotonic()
        paths = self._discover_paths()
        fingerprint = self._compute_fingerprint(paths)
        with self._lock:
            known = dict(self._documents)
        known.update(
            {p: d for p, d in self._load_snapshot().items() if p not in known}
        )

        documents: dict[str, IndexedDocument] = {}
        for rel in paths:
            try:
                raw, digest = self._comparator.read_and_hash(
                    self.root / rel, Operation.INDEX
                )
            except ComparisonFailedError as exc:
                logger.warning("Skipping %s while indexing: %s", rel, exc.message)
                continue

            previous = known.get(rel)
            if previous is not None and previous.content_hash == digest:
                documents[rel] = previous
                self._reused += 1
                continue

            self._parsed += 1
            try:
                document = self.scanner.scan(raw, rel)
            except (TypeError, ValueError) as exc:
                self.scanner.parse_errors += 1
                logger.warning("Skipping %s while indexing: %s", rel, exc)
                continue
            if document is not None:
                documents[rel] = document

        self._save_snapshot(documents)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.debug(
            "Indexed %d documents under %s in %d ms",
            len(documents),
            self.root,
            elapsed_ms,
        )
        return documents, fingerprint, elapsed_ms

    def _discover_paths(self) -> list[str]:
        paths = []
        for top in DOCUMENT_ROOTS:
            base = self.root / top
            if not base.is_dir():
                continue
            for path in base.rglob("*.md"):
                if path.is_file() and path.name not in SKIPPED_NAMES:
                    paths.append(path.relative_to(self.root).as_posix())
        return sorted(paths)

    def _compute_fingerprint(self, paths: list[str]) -> tuple:
        entries = []
        for rel in paths:
            try:
                st = (self.root / rel).stat()
            except OSError:
                continue
            entries.append((rel, st.st_mtime_ns, st.st_size))
        return tuple(entries)

    # ------------------------------------------------------------------
    # Snapshot persistence
    # ------------------------------------------------------------------

    @property
    def snapshot_path(self) -> Path | None:
        if self.snapshot_dir is None:
            return None
        key = hashlib.sha256(str(self.root.resolve()).encode("utf-8")).hexdigest()
        return self.snapshot_dir / f"{key[:16]}.json"

    def _load_snapshot(self) -> dict[str, IndexedDocument]:
        path = self.snapshot_path
        if path is None or not path.is_file():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if data.get("version") != SNAPSHOT_VERSION:
                return {}
            return {
                rel: IndexedDocument.model_validate(doc)
                for rel, doc in data.get("documents", {}).items()
            }
        except (OSError, ValueError, AttributeError, ValidationError) as exc:
            logger.warning("Ignoring unreadable index snapshot %s: %s", path, exc)
            return {}

    def _save_snapshot(self, documents: dict[str, IndexedDocument]) -> None:
        path = self.snapshot_path
        if path is None:
            return
        payload = {
            "version": SNAPSHOT_VERSION,
            "root": str(self.root),
            "documents": {
                rel: doc.model_dump(mode="json")
                for rel, doc in sorted(documents.items())
            },
        }
        try:
            write_bytes_atomic(
                path, json.dumps(payload, sort_keys=True).encode("utf-8")
            )
        except OSError as exc:
            logger.warning("Could not persist index snapshot %s: %s", path, exc)


def _group_by_category(
    documents: dict[str, IndexedDocument],
) -> dict[str, list[IndexedDocument]]:
    grouped: dict[str, list[IndexedDocument]] = {}
    for document in documents.values():
        grouped.setdefault(document.category, []).append(document)
    for docs in grouped.values():
        docs.sort(key=lambda d: (d.title.lower(), d.path))
    return grouped
