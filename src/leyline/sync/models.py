"""Pydantic models for the sync engine.

Defines the data contracts shared by the comparator, state store and
orchestrator:

- ``ComparisonResult``: two-way classification of two manifests.
- ``ThreeWayAction``: per-path outcome of base/local/remote reconciliation.
- ``ConflictRecord``: a path where local and remote both diverged.
- ``ThreeWayResult``: the full reconciliation plan.
- ``SyncStateRecord``: the persisted record of the last successful sync.
- ``SyncOutcome``, ``StatusReport``, ``DiffReport``: command results.

All models are frozen (immutable).  A manifest is a plain
``dict[str, str]`` of relative POSIX path to SHA-256 hex digest; every
transition builds a new dict.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

Manifest = dict[str, str]


class ComparisonResult(BaseModel):
    """Partition of the union of two manifests' paths.

    Attributes:
        added: Paths only in the second manifest.
        removed: Paths only in the first manifest.
        modified: Paths in both with different hashes.
        unchanged: Paths in both with the same hash.
    """

    added: frozenset[str] = frozenset()
    removed: frozenset[str] = frozenset()
    modified: frozenset[str] = frozenset()
    unchanged: frozenset[str] = frozenset()

    model_config = {"frozen": True}

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)

    @property
    def changed_paths(self) -> list[str]:
        return sorted(self.added | self.removed | self.modified)

    @property
    def all_paths(self) -> frozenset[str]:
        return self.added | self.removed | self.modified | self.unchanged

    def to_dict(self) -> dict:
        return {
            "added": sorted(self.added),
            "removed": sorted(self.removed),
            "modified": sorted(self.modified),
            "unchanged": sorted(self.unchanged),
        }


class ThreeWayAction(str, Enum):
    """Reconciliation outcome for one path."""

    CONVERGENT = "convergent"
    ADDED = "added"
    FAST_FORWARD = "fast_forward"
    REMOVED = "removed"
    LOCAL_CHANGE = "local_change"
    LOCAL_CREATED = "local_created"
    CONFLICT = "conflict"


#: Actions that are applied without operator input.
AUTO_APPLY = frozenset(
    {ThreeWayAction.ADDED, ThreeWayAction.FAST_FORWARD, ThreeWayAction.REMOVED}
)


class ConflictRecord(BaseModel):
    """Base, local and remote hashes of a conflicted path (``None`` = absent)."""

    path: str
    base_hash: str | None = None
    local_hash: str | None = None
    remote_hash: str | None = None

    model_config = {"frozen": True}


class ThreeWayResult(BaseModel):
    """Per-path actions plus the conflicts among them."""

    actions: dict[str, ThreeWayAction] = {}
    conflicts: list[ConflictRecord] = []

    model_config = {"frozen": True}

    def paths_with(self, *actions: ThreeWayAction) -> list[str]:
        """Sorted paths whose action is one of *actions*."""
        wanted = set(actions)
        return sorted(p for p, a in self.actions.items() if a in wanted)

    @property
    def to_apply(self) -> list[str]:
        return self.paths_with(*AUTO_APPLY)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def counts(self) -> dict[str, int]:
        totals = {action.value: 0 for action in ThreeWayAction}
        for action in self.actions.values():
            totals[action.value] += 1
        return totals


class SyncStats(BaseModel):
    """Optional statistics stored alongside a sync record.

    The cache counters cover lookups made by that run only, so a later
    ``leyline cache stats`` can report them from a fresh process.
    """

    total_files: int = 0
    cache_hit_ratio: float = 0.0
    duration_ms: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_puts: int = 0

    model_config = {"frozen": True}


class SyncStateRecord(BaseModel):
    """The persisted outcome of the last successful sync.

    Attributes:
        schema_version: Layout version of the record.
        timestamp: RFC3339 UTC time the record was created.
        corpus_version: Upstream ref or revision the manifest came from.
        categories: Category selection the manifest covers.
        manifest: Relative path to SHA-256 hex digest.
        stats: Optional run statistics.
    """

    schema_version: int
    timestamp: str
    corpus_version: str
    categories: list[str]
    manifest: dict[str, str]
    stats: SyncStats | None = None

    model_config = {"frozen": True}


class SyncError(BaseModel):
    """A per-path failure collected during apply."""

    path: str
    kind: str
    message: str

    model_config = {"frozen": True}


class SyncOutcome(BaseModel):
    """Result of a ``sync`` or ``update`` run.

    Attributes:
        operation: ``"sync"`` or ``"update"``.
        categories: Effective category selection.
        dry_run: Whether changes were only computed.
        forced: Whether conflicts were resolved with the remote side.
        copied: Paths written from the fetched corpus.
        removed: Paths deleted because upstream removed them.
        skipped: Paths left untouched (conflicts, local edits).
        conflicts: Conflicts found during reconciliation.
        errors: Per-path failures; any error prevents the state write.
        comparison: Stored manifest vs fetched manifest.
        plan: Three-way reconciliation plan.
        stats: Run statistics.
        state_saved: Whether a new sync record was persisted.
        started_at: ISO 8601 start time.
        completed_at: ISO 8601 end time.
    """

    operation: str = "sync"
    categories: list[str] = []
    dry_run: bool = False
    forced: bool = False
    copied: list[str] = []
    removed: list[str] = []
    skipped: list[str] = []
    conflicts: list[ConflictRecord] = []
    errors: list[SyncError] = []
    comparison: ComparisonResult = ComparisonResult()
    plan: ThreeWayResult = ThreeWayResult()
    stats: SyncStats = SyncStats()
    state_saved: bool = False
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        return not self.errors


class StatusReport(BaseModel):
    """Local tree compared against the stored manifest (no fetch).

    ``comparison`` is ``None`` when no sync record exists yet.
    """

    categories: list[str] = []
    record: SyncStateRecord | None = None
    comparison: ComparisonResult | None = None
    local_files: int = 0
    state_age_seconds: float | None = None

    model_config = {"frozen": True}

    @property
    def has_state(self) -> bool:
        return self.record is not None


class FileDiff(BaseModel):
    """Textual detail for one changed path.

    Attributes:
        path: Relative path.
        action: Reconciliation outcome for the path.
        diff: Unified diff local -> remote (empty when not textual).
        merge_preview: Three-way merge result for conflicts, if computable.
        has_markers: Whether the merge preview contains conflict markers.
    """

    path: str
    action: ThreeWayAction
    diff: str = ""
    merge_preview: str | None = None
    has_markers: bool = False

    model_config = {"frozen": True}


class DiffReport(BaseModel):
    """Local tree compared against a freshly fetched corpus."""

    categories: list[str] = []
    comparison: ComparisonResult = ComparisonResult()
    plan: ThreeWayResult = ThreeWayResult()
    files: list[FileDiff] = []

    model_config = {"frozen": True}

    @property
    def conflicts(self) -> list[ConflictRecord]:
        return self.plan.conflicts
