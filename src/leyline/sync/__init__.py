"""Corpus sync engine building blocks.

Architecture
------------
Sync uses **archive-based three-way reconciliation**: the manifest stored
after the last successful sync is the common ancestor, the local copy is
hashed as-is, and the freshly fetched corpus is hashed as the remote side.
Only paths where the remote diverged and the local copy did not are
applied automatically.

Modules:

- ``comparator`` -- ``FileComparator``: hashing, two-way and three-way
  classification, file identity.
- ``state``      -- ``SyncStateStore``: load/save/validate the sync record.
- ``categories`` -- corpus layout and category selection.
- ``fetch``      -- ``GitFetchProvider``, ``DirectoryFetchProvider``.
- ``merger``     -- unified diffs and ``merge3`` merge previews.
- ``models``     -- ``ComparisonResult``, ``ConflictRecord``,
  ``ThreeWayResult``, ``SyncStateRecord``, ``SyncOutcome`` and friends.
- ``reporter``   -- Human-readable and JSON report formatting.

The orchestrator that drives a full run lives in ``leyline.orchestrator``.
"""

from .comparator import FileComparator
from .fetch import DirectoryFetchProvider, FetchProvider, GitFetchProvider
from .models import (
    ComparisonResult,
    ConflictRecord,
    DiffReport,
    StatusReport,
    SyncOutcome,
    SyncStateRecord,
    ThreeWayAction,
    ThreeWayResult,
)
from .reporter import (
    format_diff,
    format_status,
    format_sync_outcome,
    outcome_to_json,
)
from .state import SCHEMA_VERSION, SyncStateStore

__all__ = [
    "SCHEMA_VERSION",
    "ComparisonResult",
    "ConflictRecord",
    "DiffReport",
    "DirectoryFetchProvider",
    "FetchProvider",
    "FileComparator",
    "GitFetchProvider",
    "StatusReport",
    "SyncOutcome",
    "SyncStateRecord",
    "SyncStateStore",
    "ThreeWayAction",
    "ThreeWayResult",
    "format_diff",
    "format_status",
    "format_sync_outcome",
    "outcome_to_json",
]
