"""Sync orchestrator: fetch, compare, apply, persist.

The ``SyncOrchestrator`` ties together the fetch provider, content cache,
comparator, state store and metadata index.  For ``sync`` and ``update``
it:

1. Loads the last sync record (an invalid record means "no prior state").
2. Fetches the upstream corpus and hashes it (the remote manifest).
3. Hashes the local copy under ``<project>/docs/leyline`` (local manifest).
4. Reconciles base, local and remote per path.
5. Applies remote additions, updates and removals; conflicts and local
   edits are left alone unless ``force`` (remote wins).
6. Persists a new record, but only when no path failed.

Error handling is per-path during apply: a single file failure does not
abort the run, but it does prevent the state write.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from concurrent.futures import Future
from datetime import datetime, timezone
from pathlib import Path

from .cache import ContentCache, Operation, hash_content
from .config import Settings, normalize_categories
from .discovery import IndexedDocument, MetadataIndex, SearchResult
from .errors import (
    ComparisonFailedError,
    ConflictDetectedError,
    ErrorKind,
    FailureReason,
    FileSystemError,
    LeylineError,
)
from .file_handler import remove_file, write_bytes_atomic
from .sync.categories import in_scope, select_paths
from .sync.comparator import FileComparator, failure_reason
from .sync.fetch import FetchProvider, create_fetch_provider
from .sync.merger import build_file_diff
from .sync.models import (
    AUTO_APPLY,
    DiffReport,
    FileDiff,
    Manifest,
    StatusReport,
    SyncError,
    SyncOutcome,
    SyncStateRecord,
    SyncStats,
    ThreeWayAction,
    ThreeWayResult,
)
from .sync.state import (
    SCHEMA_VERSION,
    SyncStateStore,
    parse_timestamp,
    utc_timestamp,
)

logger = logging.getLogger(__name__)

_DIVERGED = (ThreeWayAction.CONFLICT, ThreeWayAction.LOCAL_CHANGE)


class SyncOrchestrator:
    """Coordinate a sync run for one consumer project.

    Args:
        settings: Immutable settings resolved at startup.
        fetcher: Provider of the upstream corpus (derived from settings
            when omitted).
        cache: Content cache (created under ``settings.cache_dir``).
        state_store: Sync record store (created under ``settings.cache_dir``).
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: FetchProvider | None = None,
        cache: ContentCache | None = None,
        state_store: SyncStateStore | None = None,
    ) -> None:
        self.settings = settings
        self.cache = cache or ContentCache(
            settings.cache_dir, settings.max_cache_bytes
        )
        self.state_store = state_store or SyncStateStore(settings.cache_dir)
        self.comparator = FileComparator(
            self.cache, case_insensitive=settings.case_insensitive_paths
        )
        self.fetcher = fetcher or create_fetch_provider(settings)
        self._index: MetadataIndex | None = None

    def __enter__(self) -> SyncOrchestrator:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Stop background index warming and release fetched files."""
        if self._index is not None:
            self._index.close()
        self.fetcher.cleanup()

    # ------------------------------------------------------------------
    # Sync / update
    # ------------------------------------------------------------------

    def sync(
        self,
        categories: Iterable[str] | None = None,
        force: bool | None = None,
        dry_run: bool | None = None,
    ) -> SyncOutcome:
        """Bring the local copy up to date, skipping conflicted paths.

        Args:
            categories: Category selection (settings default when omitted).
            force: Overwrite conflicts and local edits with upstream.
            dry_run: Compute the plan without touching any file.
        """
        return self._run("sync", categories, force, dry_run)

    def update(
        self,
        categories: Iterable[str] | None = None,
        force: bool | None = None,
        dry_run: bool | None = None,
    ) -> SyncOutcome:
        """Like ``sync`` but refuses to proceed while conflicts exist.

        Raises:
            ConflictDetectedError: If conflicts exist and *force* is off.
        """
        return self._run("update", categories, force, dry_run)

    def _run(
        self,
        operation: str,
        categories: Iterable[str] | None,
        force: bool | None,
        dry_run: bool | None,
    ) -> SyncOutcome:
        force = self.settings.force if force is None else force
        dry_run = self.settings.dry_run if dry_run is None else dry_run
        started_at = utc_timestamp()
        started = time.monotonic()
        self.cache.stats.reset(Operation.SYNC)

        selected = self._resolve_categories(categories)
        record = self.state_store.load()
        base = self._base_manifest(record, selected)

        try:
            remote_root, remote = self._fetch_remote(selected)
            local = self._local_manifest(selected, Operation.SYNC)
            plan = self.comparator.three_way(base, local, remote)
            comparison = self.comparator.compare(base, remote)

            if operation == "update" and plan.conflicts and not force:
                logger.warning(
                    "Update aborted: %d conflicted path(s)", len(plan.conflicts)
                )
                raise ConflictDetectedError(plan.conflicts)

            copied, removed, skipped, errors = self._apply(
                plan, remote_root, remote, force, dry_run
            )
        finally:
            self.fetcher.cleanup()

        manifest = self._next_manifest(plan, base, remote, force)
        stats = SyncStats(
            total_files=len(manifest),
            cache_hit_ratio=round(self.cache.stats.hit_ratio(Operation.SYNC), 4),
            duration_ms=int((time.monotonic() - started) * 1000),
            cache_hits=self.cache.stats.hits(Operation.SYNC),
            cache_misses=self.cache.stats.misses(Operation.SYNC),
            cache_puts=self.cache.stats.puts(Operation.SYNC),
        )

        state_saved = False
        if not errors and not dry_run:
            self._save_record(selected, manifest, stats)
            state_saved = True
        elif errors:
            logger.error(
                "%d path(s) failed; sync state not updated", len(errors)
            )

        if (copied or removed) and not dry_run and self._index is not None:
            self._index.invalidate()

        return SyncOutcome(
            operation=operation,
            categories=list(selected),
            dry_run=dry_run,
            forced=force,
            copied=copied,
            removed=removed,
            skipped=skipped,
            conflicts=plan.conflicts,
            errors=errors,
            comparison=comparison,
            plan=plan,
            stats=stats,
            state_saved=state_saved,
            started_at=started_at,
            completed_at=utc_timestamp(),
        )

    def _apply(
        self,
        plan: ThreeWayResult,
        remote_root: Path,
        remote: Manifest,
        force: bool,
        dry_run: bool,
    ) -> tuple[list[str], list[str], list[str], list[SyncError]]:
        copied: list[str] = []
        removed: list[str] = []
        skipped: list[str] = []
        errors: list[SyncError] = []
        target_dir = self.settings.target_dir

        for path, action in sorted(plan.actions.items()):
            if action in (ThreeWayAction.CONVERGENT, ThreeWayAction.LOCAL_CREATED):
                continue
            if action in _DIVERGED and not force:
                logger.info("Keeping local %s (%s)", path, action.value)
                skipped.append(path)
                continue

            remote_hash = remote.get(path)
            if dry_run:
                (copied if remote_hash else removed).append(path)
                continue

            try:
                if remote_hash is None:
                    remove_file(target_dir / path, stop_at=target_dir)
                    removed.append(path)
                else:
                    data = self._snapshot_bytes(remote_root, path, remote_hash)
                    write_bytes_atomic(target_dir / path, data)
                    copied.append(path)
            except LeylineError as exc:
                logger.error("Failed to apply %s: %s", path, exc.message)
                errors.append(
                    SyncError(path=path, kind=exc.kind.value, message=exc.message)
                )
            except OSError as exc:
                logger.error("Failed to apply %s: %s", path, exc)
                errors.append(
                    SyncError(
                        path=path,
                        kind=ErrorKind.FILE_SYSTEM.value,
                        message=str(exc),
                    )
                )

        return copied, removed, skipped, errors

    def _snapshot_bytes(self, remote_root: Path, path: str, digest: str) -> bytes:
        """Bytes of *path* as they were when hashed.

        Raises:
            ComparisonFailedError: If the cache lost the entry and the
                fetched file no longer matches *digest*.
        """
        data = self.cache.get(digest, Operation.SYNC)
        if data is not None:
            return data

        source = remote_root / path
        try:
            data = source.read_bytes()
        except OSError as exc:
            raise ComparisonFailedError(
                str(source), reason=failure_reason(exc), detail=str(exc)
            ) from exc
        if hash_content(data) != digest:
            raise ComparisonFailedError(
                str(source),
                reason=FailureReason.CONCURRENT_MODIFICATION,
                detail="content changed after it was hashed",
            )
        return data

    @staticmethod
    def _next_manifest(
        plan: ThreeWayResult, base: Manifest, remote: Manifest, force: bool
    ) -> Manifest:
        manifest: Manifest = {}
        for path, action in plan.actions.items():
            if (
                action in AUTO_APPLY
                or action == ThreeWayAction.CONVERGENT
                or (force and action in _DIVERGED)
            ):
                digest = remote.get(path)
            elif action in _DIVERGED:
                digest = base.get(path)
            else:
                digest = None
            if digest is not None:
                manifest[path] = digest
        return manifest

    def _save_record(
        self, selected: tuple[str, ...], manifest: Manifest, stats: SyncStats
    ) -> None:
        record = SyncStateRecord(
            schema_version=SCHEMA_VERSION,
            timestamp=utc_timestamp(),
            corpus_version=self.fetcher.corpus_version,
            categories=list(selected),
            manifest=manifest,
            stats=stats,
        )
        if not self.state_store.save(record):
            raise FileSystemError(
                "Failed to save sync state",
                path=str(self.state_store.state_file_path),
                reason="write_failed",
            )

    # ------------------------------------------------------------------
    # Status / diff
    # ------------------------------------------------------------------

    def status(self, categories: Iterable[str] | None = None) -> StatusReport:
        """Compare the local copy with the last sync record (no fetch)."""
        record = self.state_store.load()
        if categories:
            selected = normalize_categories(categories)
        elif record is not None:
            selected = normalize_categories(record.categories)
        else:
            selected = self.settings.categories

        local = self._local_manifest(selected, Operation.COMPARE)
        comparison = None
        age = None
        if record is not None:
            comparison = self.comparator.compare(
                self._base_manifest(record, selected), local
            )
            written = parse_timestamp(record.timestamp)
            age = (datetime.now(timezone.utc) - written).total_seconds()

        return StatusReport(
            categories=list(selected),
            record=record,
            comparison=comparison,
            local_files=len(local),
            state_age_seconds=age,
        )

    def diff(
        self,
        categories: Iterable[str] | None = None,
        with_content: bool = False,
    ) -> DiffReport:
        """Compare the local copy with a freshly fetched corpus.

        Args:
            categories: Category selection.
            with_content: Include unified diffs and merge previews.

        Raises:
            ComparisonFailedError: If any file cannot be hashed.
        """
        selected = self._resolve_categories(categories)
        base = self._base_manifest(self.state_store.load(), selected)

        try:
            remote_root, remote = self._fetch_remote(selected, Operation.COMPARE)
            local = self._local_manifest(selected, Operation.COMPARE)
            plan = self.comparator.three_way(base, local, remote)
            files = []
            for path, action in sorted(plan.actions.items()):
                if action == ThreeWayAction.CONVERGENT:
                    continue
                if not with_content:
                    files.append(FileDiff(path=path, action=action))
                    continue
                files.append(
                    build_file_diff(
                        path,
                        action,
                        self._cached(base.get(path)),
                        self._cached(local.get(path))
                        or self._read_optional(self.settings.target_dir, path, local),
                        self._cached(remote.get(path))
                        or self._read_optional(remote_root, path, remote),
                    )
                )
        finally:
            self.fetcher.cleanup()

        return DiffReport(
            categories=list(selected),
            comparison=self.comparator.compare(local, remote),
            plan=plan,
            files=files,
        )

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @property
    def index(self) -> MetadataIndex:
        if self._index is None:
            self._index = MetadataIndex(
                self.settings.target_dir,
                self.cache,
                snapshot_dir=self.settings.cache_dir / "index",
            )
        return self._index

    def warm_index(self) -> Future:
        """Start indexing the local copy in the background."""
        return self.index.warm_async()

    def categories(self) -> dict[str, int]:
        """Document count per category in the local copy."""
        self.index.refresh_if_stale()
        return self.index.category_counts()

    def show(self, category: str) -> list[IndexedDocument]:
        self.index.refresh_if_stale()
        return self.index.documents_for_category(category.strip().lower())

    def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        self.index.refresh_if_stale()
        return self.index.search(query, limit)

    def suggest(self, query: str) -> list[str]:
        return self.index.suggest(query)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_categories(
        self, categories: Iterable[str] | None
    ) -> tuple[str, ...]:
        if categories:
            return normalize_categories(categories)
        return self.settings.categories

    @staticmethod
    def _base_manifest(
        record: SyncStateRecord | None, selected: tuple[str, ...]
    ) -> Manifest:
        if record is None:
            return {}
        return {
            path: digest
            for path, digest in record.manifest.items()
            if in_scope(path, selected)
        }

    def _fetch_remote(
        self, selected: tuple[str, ...], operation: Operation = Operation.SYNC
    ) -> tuple[Path, Manifest]:
        remote_root = self.fetcher.fetch(selected)
        paths = select_paths(remote_root, selected)
        manifest = self.comparator.build_manifest(
            remote_root, paths, strict=True, operation=operation
        )
        logger.debug("Remote manifest: %d files", len(manifest))
        return remote_root, manifest

    def _local_manifest(
        self, selected: tuple[str, ...], operation: Operation
    ) -> Manifest:
        target_dir = self.settings.target_dir
        return self.comparator.build_manifest(
            target_dir,
            select_paths(target_dir, selected),
            strict=True,
            operation=operation,
        )

    def _cached(self, digest: str | None) -> bytes | None:
        if digest is None:
            return None
        return self.cache.get(digest, Operation.COMPARE)

    @staticmethod
    def _read_optional(root: Path, path: str, manifest: Manifest) -> bytes | None:
        if path not in manifest:
            return None
        try:
            return (root / path).read_bytes()
        except OSError as exc:
            raise ComparisonFailedError(
                str(root / path), reason=failure_reason(exc), detail=str(exc)
            ) from exc
