"""Content-addressable on-disk store keyed by SHA-256.

Layout::

    <cache_root>/content/<first two hex chars>/<full hex digest>

The key is always derived from the bytes, never supplied by the caller, so
``sha256(get(h)) == h`` for every entry that is returned.  Entries are
never updated in place: a ``put`` either finds the entry already present
or writes a new file via temp-file-and-rename.  The store is bounded by
``max_size_bytes``; crossing the bound evicts the oldest entries (by mtime)
down to 80% of it.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import threading
from pathlib import Path

from ..errors import CacheOperationError
from ..file_handler import write_bytes_atomic
from .stats import CacheStats, Operation

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE_BYTES = 50 * 1024 * 1024
EVICTION_TARGET_RATIO = 0.8

HASH_PATTERN = re.compile(r"^[a-f0-9]{64}$")


def hash_content(content: bytes) -> str:
    """Return the lowercase SHA-256 hex digest of *content*."""
    return hashlib.sha256(content).hexdigest()


def is_valid_hash(value: object) -> bool:
    return isinstance(value, str) and bool(HASH_PATTERN.match(value))


class ContentCache:
    """Bounded SHA-256 content store with per-operation hit accounting.

    Args:
        cache_root: Cache root directory; entries live under ``content/``.
        max_size_bytes: Upper bound for the sum of entry sizes.
        stats: Shared counters (a fresh ``CacheStats`` if omitted).
    """

    def __init__(
        self,
        cache_root: Path,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        stats: CacheStats | None = None,
    ) -> None:
        self.cache_root = Path(cache_root)
        self.content_dir = self.cache_root / "content"
        self.max_size_bytes = max_size_bytes
        self.stats = stats or CacheStats()
        self._lock = threading.Lock()
        self._size_bytes: int | None = None

        try:
            self.content_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            # Reported by health_status(); put() raises on first use.
            logger.warning(
                "Cannot create cache directory %s: %s", self.content_dir, exc
            )

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def put(self, content: bytes, operation: Operation = Operation.SYNC) -> str:
        """Store *content* and return its hash.

        Idempotent: storing identical bytes twice returns the same hash and
        leaves a single entry on disk.

        Raises:
            CacheOperationError: If the entry cannot be written.
        """
        digest = hash_content(content)
        path = self.entry_path(digest)

        with self._lock:
            if path.is_file():
                return digest
            try:
                write_bytes_atomic(path, content)
            except OSError as exc:
                raise CacheOperationError(
                    f"Failed to write cache entry {digest}: {exc}",
                    cache_path=str(path),
                    operation_type="write",
                ) from exc

            self.stats.record_put(operation)
            if self._size_bytes is not None:
                self._size_bytes += len(content)
            self._enforce_bound()

        logger.debug("Cached %s (%d bytes)", digest, len(content))
        return digest

    def get(
        self, digest: str, operation: Operation = Operation.SYNC
    ) -> bytes | None:
        """Return the bytes stored under *digest*, or ``None`` on a miss.

        An entry whose bytes no longer hash to *digest* is deleted and
        reported as a miss.

        Raises:
            CacheOperationError: If an existing entry cannot be read.
        """
        if not is_valid_hash(digest):
            self.stats.record_miss(operation)
            return None

        path = self.entry_path(digest)
        try:
            content = path.read_bytes()
        except FileNotFoundError:
            self.stats.record_miss(operation)
            return None
        except OSError as exc:
            raise CacheOperationError(
                f"Failed to read cache entry {digest}: {exc}",
                cache_path=str(path),
                operation_type="read",
            ) from exc

        if hash_content(content) != digest:
            logger.warning("Corrupt cache entry %s, discarding", path)
            with self._lock:
                self._discard(path)
                self._size_bytes = None
            self.stats.record_miss(operation)
            return None

        self.stats.record_hit(operation)
        return content

    def contains(
        self, digest: str, operation: Operation = Operation.SYNC
    ) -> bool:
        """Return whether *digest* is stored, recording a hit or miss."""
        present = is_valid_hash(digest) and self.entry_path(digest).is_file()
        if present:
            self.stats.record_hit(operation)
        else:
            self.stats.record_miss(operation)
        return present

    def delete(self, digest: str) -> bool:
        """Remove a single entry.  Returns ``False`` if it was not stored.

        Raises:
            CacheOperationError: If the entry exists but cannot be removed.
        """
        if not is_valid_hash(digest):
            return False
        path = self.entry_path(digest)
        with self._lock:
            try:
                size = path.stat().st_size
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                raise CacheOperationError(
                    f"Failed to delete cache entry {digest}: {exc}",
                    cache_path=str(path),
                    operation_type="delete",
                ) from exc
            if self._size_bytes is not None:
                self._size_bytes -= size
        return True

    def clear(self) -> int:
        """Remove every entry and return how many were deleted.

        Raises:
            CacheOperationError: If an entry cannot be removed.
        """
        removed = 0
        with self._lock:
            for path in self._iter_entries():
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as exc:
                    raise CacheOperationError(
                        f"Failed to clear cache entry {path.name}: {exc}",
                        cache_path=str(path),
                        operation_type="delete",
                    ) from exc
                removed += 1
            self._size_bytes = 0
        logger.info("Cleared %d cache entries from %s", removed, self.content_dir)
        return removed

    def entry_path(self, digest: str) -> Path:
        return self.content_dir / digest[:2] / digest

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def health_status(self) -> dict:
        """Check that the store is usable.

        Returns:
            ``{"healthy": bool, "issues": [{"type": ..., ...}], "cache_dir": str}``
        """
        issues: list[dict] = []
        directory = self.content_dir

        if not directory.is_dir():
            issues.append({"type": "missing_directory", "path": str(directory)})
        else:
            if not os.access(directory, os.R_OK):
                issues.append({"type": "not_readable", "path": str(directory)})
            if not os.access(directory, os.W_OK):
                issues.append({"type": "not_writable", "path": str(directory)})
            size = self._current_size()
            if size > self.max_size_bytes:
                issues.append(
                    {
                        "type": "over_capacity",
                        "size": size,
                        "max_size": self.max_size_bytes,
                    }
                )

        return {
            "healthy": not issues,
            "issues": issues,
            "cache_dir": str(directory),
        }

    def directory_stats(self) -> dict:
        """Return on-disk usage of the store."""
        entries = list(self._iter_entries())
        size = sum(_safe_size(p) for p in entries)
        utilization = (
            round(size / self.max_size_bytes * 100, 1)
            if self.max_size_bytes
            else 0.0
        )
        return {
            "path": str(self.content_dir),
            "size": size,
            "file_count": len(entries),
            "max_size": self.max_size_bytes,
            "utilization_percent": utilization,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _iter_entries(self):
        if not self.content_dir.is_dir():
            return
        for shard in self.content_dir.iterdir():
            if not shard.is_dir():
                continue
            for path in shard.iterdir():
                if path.is_file() and not path.name.startswith("."):
                    yield path

    def _current_size(self) -> int:
        if self._size_bytes is None:
            self._size_bytes = sum(_safe_size(p) for p in self._iter_entries())
        return self._size_bytes

    def _enforce_bound(self) -> None:
        """Evict oldest entries once the bound is crossed.  Caller holds the lock."""
        if self._current_size() <= self.max_size_bytes:
            return

        target = int(self.max_size_bytes * EVICTION_TARGET_RATIO)
        entries = []
        for path in self._iter_entries():
            try:
                st = path.stat()
            except OSError:
                continue
            entries.append((st.st_mtime, path, st.st_size))
        entries.sort(key=lambda item: (item[0], item[1].name))

        size = sum(item[2] for item in entries)
        evicted = 0
        for _mtime, path, entry_size in entries:
            if size <= target:
                break
            if self._discard(path):
                size -= entry_size
                evicted += 1

        self._size_bytes = size
        logger.info(
            "Evicted %d cache entries, %d bytes remain", evicted, size
        )

    def _discard(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Could not remove cache entry %s: %s", path, exc)
            return False
        return True


def _safe_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0
