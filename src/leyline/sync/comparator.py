"""Manifest comparison, three-way reconciliation and file hashing.

``compare`` and ``three_way`` are pure functions over manifests
(``dict[path, sha256]``); they never touch the filesystem.  Hashing goes
through the optional ``ContentCache`` so that bytes read once are
available later by hash (the apply step reads from the cache rather than
re-reading a file that may have changed since it was hashed).

Three-way reconciliation
------------------------
Each path is classified from its base (last synced), local and remote
hash, where an absent file is ``None``:

==========================================  ==================
condition                                   action
==========================================  ==================
local == remote                             CONVERGENT
local == base, base absent                  ADDED
local == base, remote absent                REMOVED
local == base                               FAST_FORWARD
remote == base, base absent                 LOCAL_CREATED
remote == base                              LOCAL_CHANGE
otherwise                                   CONFLICT
==========================================  ==================
"""

from __future__ import annotations

import errno
import logging
import os
from pathlib import Path

from ..cache.content_cache import ContentCache, hash_content
from ..cache.stats import Operation
from ..errors import CacheOperationError, ComparisonFailedError, FailureReason
from .models import (
    ComparisonResult,
    ConflictRecord,
    Manifest,
    ThreeWayAction,
    ThreeWayResult,
)

logger = logging.getLogger(__name__)


def failure_reason(exc: BaseException) -> FailureReason:
    """Map an exception raised while reading a file to a reason tag."""
    if isinstance(exc, FileNotFoundError):
        return FailureReason.FILE_NOT_FOUND
    if isinstance(exc, PermissionError):
        return FailureReason.PERMISSION_DENIED
    if isinstance(exc, UnicodeError):
        return FailureReason.ENCODING_ERROR
    if isinstance(exc, OSError) and exc.errno in (errno.EMFILE, errno.ENFILE):
        return FailureReason.TOO_MANY_FILES
    return FailureReason.IO_ERROR


class FileComparator:
    """Hash files and classify manifests.

    Args:
        cache: Content cache used to record and reuse hashed bytes.
        case_insensitive: Treat paths differing only in case as the same
            file in ``files_identical``.
    """

    def __init__(
        self,
        cache: ContentCache | None = None,
        case_insensitive: bool = False,
    ) -> None:
        self.cache = cache
        self.case_insensitive = case_insensitive

    # ------------------------------------------------------------------
    # Manifest classification
    # ------------------------------------------------------------------

    @staticmethod
    def compare(a: Manifest, b: Manifest) -> ComparisonResult:
        """Classify every path of ``a`` and ``b`` in a single pass.

        The four result sets partition ``keys(a) | keys(b)``.
        """
        added: set[str] = set()
        removed: set[str] = set()
        modified: set[str] = set()
        unchanged: set[str] = set()

        for path in a.keys() | b.keys():
            if path not in a:
                added.add(path)
            elif path not in b:
                removed.add(path)
            elif a[path] != b[path]:
                modified.add(path)
            else:
                unchanged.add(path)

        return ComparisonResult(
            added=frozenset(added),
            removed=frozenset(removed),
            modified=frozenset(modified),
            unchanged=frozenset(unchanged),
        )

    @staticmethod
    def classify(
        base: str | None, local: str | None, remote: str | None
    ) -> ThreeWayAction:
        """Reconcile one path from its three hashes (``None`` = absent)."""
        if local == remote:
            return ThreeWayAction.CONVERGENT

        if local == base:
            if base is None:
                return ThreeWayAction.ADDED
            if remote is None:
                return ThreeWayAction.REMOVED
            return ThreeWayAction.FAST_FORWARD

        if remote == base:
            if base is None:
                return ThreeWayAction.LOCAL_CREATED
            return ThreeWayAction.LOCAL_CHANGE

        # Both sides diverged from base and disagree with each other
        return ThreeWayAction.CONFLICT

    @classmethod
    def three_way(
        cls, base: Manifest, local: Manifest, remote: Manifest
    ) -> ThreeWayResult:
        """Reconcile every path present in any of the three manifests."""
        actions: dict[str, ThreeWayAction] = {}
        conflicts: list[ConflictRecord] = []

        for path in sorted(base.keys() | local.keys() | remote.keys()):
            b_hash = base.get(path)
            l_hash = local.get(path)
            r_hash = remote.get(path)
            action = cls.classify(b_hash, l_hash, r_hash)
            actions[path] = action
            if action == ThreeWayAction.CONFLICT:
                conflicts.append(
                    ConflictRecord(
                        path=path,
                        base_hash=b_hash,
                        local_hash=l_hash,
                        remote_hash=r_hash,
                    )
                )

        return ThreeWayResult(actions=actions, conflicts=conflicts)

    # ------------------------------------------------------------------
    # Hashing
    # ------------------------------------------------------------------

    def read_and_hash(
        self, path: Path, operation: Operation = Operation.COMPARE
    ) -> tuple[bytes, str]:
        """Read *path* once and return ``(bytes, sha256)``.

        Bytes not yet in the cache are stored so they can be retrieved by
        hash later.  A cache failure is logged and does not fail hashing.

        Raises:
            ComparisonFailedError: If the file cannot be read, or its size
                changed while it was being read.
        """
        try:
            expected = os.stat(path).st_size
            data = Path(path).read_bytes()
        except (OSError, UnicodeError) as exc:
            raise ComparisonFailedError(
                str(path), reason=failure_reason(exc), detail=str(exc)
            ) from exc

        if len(data) != expected:
            raise ComparisonFailedError(
                str(path),
                reason=FailureReason.CONCURRENT_MODIFICATION,
                detail=f"size changed from {expected} to {len(data)} bytes",
            )

        digest = hash_content(data)
        if self.cache is not None:
            try:
                if not self.cache.contains(digest, operation):
                    self.cache.put(data, operation)
            except CacheOperationError as exc:
                logger.warning("Cache unavailable for %s: %s", path, exc)
        return data, digest

    def hash_file(
        self, path: Path, operation: Operation = Operation.COMPARE
    ) -> str:
        """Return the SHA-256 of *path* (see ``read_and_hash``)."""
        return self.read_and_hash(path, operation)[1]

    def build_manifest(
        self,
        root: Path,
        paths: list[str],
        strict: bool = True,
        operation: Operation = Operation.COMPARE,
    ) -> Manifest:
        """Hash each relative path under *root*.

        Args:
            root: Directory the relative paths are resolved against.
            paths: Relative POSIX paths.
            strict: Propagate hashing failures.  When ``False`` a failing
                file is logged and left out of the manifest.
            operation: Cache accounting bucket.

        Raises:
            ComparisonFailedError: If *strict* and a file cannot be hashed.
        """
        manifest: Manifest = {}
        for rel in paths:
            try:
                manifest[rel] = self.hash_file(root / rel, operation)
            except ComparisonFailedError as exc:
                if strict:
                    raise
                logger.warning("Skipping %s: %s", rel, exc.message)
        return manifest

    # ------------------------------------------------------------------
    # File identity
    # ------------------------------------------------------------------

    def files_identical(self, file_a: Path, file_b: Path) -> bool:
        """Return whether two files hold the same bytes.

        Checks, cheapest first: same path, same path ignoring case (only
        in case-insensitive mode), size, then content hash.

        Raises:
            ComparisonFailedError: If either file cannot be read.
        """
        path_a = os.path.abspath(file_a)
        path_b = os.path.abspath(file_b)
        if path_a == path_b:
            return True
        if self.case_insensitive and path_a.casefold() == path_b.casefold():
            return True

        if self._size(file_a, file_b) != self._size(file_b, file_a):
            return False

        try:
            return self.hash_file(Path(file_a)) == self.hash_file(Path(file_b))
        except ComparisonFailedError as exc:
            raise ComparisonFailedError(
                str(file_a), str(file_b), reason=exc.reason,
                detail=exc.context.get("detail"),
            ) from exc

    def diff_data(self, file_a: Path, file_b: Path) -> dict:
        """Sizes, hashes and identity of two files, for reports."""
        hash_a = self.hash_file(Path(file_a))
        hash_b = self.hash_file(Path(file_b))
        return {
            "file_a": str(file_a),
            "file_b": str(file_b),
            "size_a": self._size(file_a, file_b),
            "size_b": self._size(file_b, file_a),
            "hash_a": hash_a,
            "hash_b": hash_b,
            "identical": hash_a == hash_b,
        }

    @staticmethod
    def _size(path: Path, other: Path) -> int:
        try:
            return os.stat(path).st_size
        except OSError as exc:
            raise ComparisonFailedError(
                str(path), str(other), reason=failure_reason(exc),
                detail=str(exc),
            ) from exc
