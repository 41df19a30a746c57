"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync commands:

- ``format_sync_outcome`` -- post-sync/update summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by action.
- ``format_status`` -- local copy vs last sync record.
- ``format_diff`` -- local copy vs upstream, optionally with diffs.
- ``format_conflicts`` -- conflicted paths with their three hashes.
- ``*_to_json`` -- structured dicts for ``--json`` output.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from .models import ThreeWayAction

if TYPE_CHECKING:
    from ..cache.stats import CacheStats
    from .models import (
        ComparisonResult,
        ConflictRecord,
        DiffReport,
        StatusReport,
        SyncOutcome,
        SyncStats,
    )

_ACTION_LABELS = {
    ThreeWayAction.ADDED: "New upstream",
    ThreeWayAction.FAST_FORWARD: "Updated upstream",
    ThreeWayAction.REMOVED: "Removed upstream",
    ThreeWayAction.LOCAL_CHANGE: "Local changes (preserved)",
    ThreeWayAction.LOCAL_CREATED: "Local only",
    ThreeWayAction.CONFLICT: "Conflicts",
}


def _short(digest: str | None) -> str:
    return digest[:12] if digest else "(absent)"


def _format_age(seconds: float | None) -> str:
    if seconds is None:
        return "unknown"
    if seconds < 60:
        return f"{int(seconds)}s ago"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    if seconds < 86400:
        return f"{int(seconds // 3600)}h ago"
    return f"{int(seconds // 86400)}d ago"


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.1f} GB"


# ------------------------------------------------------------------
# Sync / update
# ------------------------------------------------------------------


def format_sync_outcome(outcome: SyncOutcome, verbose: bool = False) -> str:
    """Format a completed sync or update run.

    Skipped paths are listed only in verbose mode.
    """
    if outcome.dry_run:
        return format_dry_run_preview(outcome)

    lines = [
        f"{outcome.operation.capitalize()} completed: "
        f"{len(outcome.copied)} files copied, "
        f"{len(outcome.removed)} removed, "
        f"{len(outcome.skipped)} skipped"
    ]
    lines.append(f"Categories: {', '.join(outcome.categories)}")
    if outcome.forced and outcome.conflicts:
        lines.append(
            f"Overwrote {len(outcome.conflicts)} conflicted files with upstream"
        )
    lines.append("")

    if verbose and outcome.copied:
        lines.append("Copied:")
        lines.extend(f"  + {p}" for p in outcome.copied)
        lines.append("")
    if outcome.removed:
        lines.append("Removed:")
        lines.extend(f"  - {p}" for p in outcome.removed)
        lines.append("")
    if outcome.conflicts and not outcome.forced:
        lines.append(format_conflicts(outcome.conflicts))
        lines.append("")
    if verbose and outcome.skipped:
        lines.append("Skipped (use --force to overwrite):")
        lines.extend(f"  ~ {p}" for p in outcome.skipped)
        lines.append("")
    if outcome.errors:
        lines.append(f"{len(outcome.errors)} errors occurred:")
        lines.extend(f"  ! {e.path}: {e.message}" for e in outcome.errors)
        lines.append("Sync state was not updated.")
        lines.append("")

    if verbose:
        lines.append(
            f"Cache hit ratio: {outcome.stats.cache_hit_ratio * 100:.1f}% "
            f"({outcome.stats.duration_ms} ms)"
        )

    return "\n".join(lines).rstrip()


def format_dry_run_preview(outcome: SyncOutcome) -> str:
    """Format a dry-run preview grouped by action."""
    lines = ["DRY RUN -- No changes will be made"]
    lines.append(f"Categories: {', '.join(outcome.categories)}")
    lines.append("")

    groups: dict[ThreeWayAction, list[str]] = defaultdict(list)
    for path, action in sorted(outcome.plan.actions.items()):
        groups[action].append(path)

    for action, label in _ACTION_LABELS.items():
        if action not in groups:
            continue
        lines.append(f"[{label.upper()}]")
        lines.extend(f"  {p}" for p in groups[action])
        lines.append("")

    unchanged = len(groups.get(ThreeWayAction.CONVERGENT, []))
    if unchanged:
        lines.append(f"Unchanged: {unchanged} files")
        lines.append("")

    if not outcome.copied and not outcome.removed:
        lines.append("No changes would be applied.")
    else:
        lines.append(
            f"Would copy {len(outcome.copied)} and remove "
            f"{len(outcome.removed)} files."
        )
    return "\n".join(lines).rstrip()


def format_conflicts(conflicts: list[ConflictRecord]) -> str:
    lines = [f"Conflicts ({len(conflicts)}):"]
    for c in conflicts:
        lines.append(
            f"  ! {c.path}  base={_short(c.base_hash)} "
            f"local={_short(c.local_hash)} upstream={_short(c.remote_hash)}"
        )
    return "\n".join(lines)


# ------------------------------------------------------------------
# Status / diff
# ------------------------------------------------------------------


def _comparison_lines(
    comparison: ComparisonResult, labels: dict[str, str]
) -> list[str]:
    lines = []
    for field, label in labels.items():
        paths = sorted(getattr(comparison, field))
        if not paths:
            continue
        lines.append(f"{label} ({len(paths)}):")
        lines.extend(f"  {p}" for p in paths)
        lines.append("")
    return lines


def format_status(report: StatusReport, verbose: bool = False) -> str:
    lines = [f"Categories: {', '.join(report.categories)}"]
    if report.record is None:
        lines.append("No sync state found. Run 'leyline sync' first.")
        lines.append(f"Local files: {report.local_files}")
        return "\n".join(lines)

    lines.append(
        f"Last sync: {report.record.timestamp} "
        f"({_format_age(report.state_age_seconds)}), "
        f"corpus version {report.record.corpus_version}"
    )
    lines.append(f"Local files: {report.local_files}")
    lines.append("")

    comparison = report.comparison
    if comparison is None or not comparison.has_changes:
        lines.append("Local copy matches the last sync.")
        return "\n".join(lines).rstrip()

    lines.extend(
        _comparison_lines(
            comparison,
            {
                "modified": "Modified locally",
                "removed": "Deleted locally",
                "added": "Added locally",
            },
        )
    )
    if verbose:
        lines.append(f"Unchanged: {len(comparison.unchanged)} files")
    return "\n".join(lines).rstrip()


def format_diff(report: DiffReport) -> str:
    lines = [f"Categories: {', '.join(report.categories)}"]
    if not report.files:
        lines.append("Local copy matches upstream.")
        return "\n".join(lines)

    counts = report.plan.counts()
    lines.append(
        "Changes: "
        + ", ".join(
            f"{counts[a.value]} {_ACTION_LABELS[a].lower()}"
            for a in _ACTION_LABELS
            if counts[a.value]
        )
    )
    lines.append("")

    for item in report.files:
        lines.append(f"[{item.action.value}] {item.path}")
        if item.diff:
            lines.append(item.diff.rstrip())
        if item.merge_preview is not None:
            lines.append("--- Merge result preview ---")
            merged = item.merge_preview.splitlines()
            lines.extend(f"  {ml}" for ml in merged[:20])
            if len(merged) > 20:
                lines.append(f"  ... ({len(merged) - 20} more lines)")
            if item.has_markers:
                lines.append("WARNING: Merged content contains conflict markers.")
        lines.append("")

    if report.conflicts:
        lines.append(format_conflicts(report.conflicts))
    return "\n".join(lines).rstrip()


def format_cache_stats(
    stats: CacheStats, directory: dict, last_sync: SyncStats | None = None
) -> str:
    """Render cache counters and directory usage.

    With *last_sync*, the counters persisted by the last saved sync are
    shown instead of the (usually empty) counters of this process.
    """
    if last_sync is not None:
        lines = ["Cache Performance (last sync):"]
        lines.append(f"  Cache hits: {last_sync.cache_hits}")
        lines.append(f"  Cache misses: {last_sync.cache_misses}")
        lines.append(f"  Cache puts: {last_sync.cache_puts}")
        lines.append(f"  Hit ratio: {last_sync.cache_hit_ratio * 100:.1f}%")
        lines.append(f"  Files tracked: {last_sync.total_files}")
        lines.append(f"  Duration: {last_sync.duration_ms} ms")
    else:
        lines = ["Cache Performance:"]
        lines.append(f"  Cache hits: {stats.hits()}")
        lines.append(f"  Cache misses: {stats.misses()}")
        lines.append(f"  Cache puts: {stats.puts()}")
        lines.append(f"  Hit ratio: {stats.hit_ratio() * 100:.1f}%")
    lines.append("")
    lines.append("Cache Directory:")
    lines.append(f"  Location: {directory['path']}")
    lines.append(f"  Size: {format_bytes(directory['size'])}")
    lines.append(f"  Files: {directory['file_count']}")
    lines.append(f"  Utilization: {directory['utilization_percent']}%")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def outcome_to_json(outcome: SyncOutcome) -> dict:
    return {
        "operation": outcome.operation,
        "categories": outcome.categories,
        "dry_run": outcome.dry_run,
        "forced": outcome.forced,
        "started_at": outcome.started_at,
        "completed_at": outcome.completed_at,
        "copied": outcome.copied,
        "removed": outcome.removed,
        "skipped": outcome.skipped,
        "conflicts": [c.model_dump() for c in outcome.conflicts],
        "errors": [e.model_dump() for e in outcome.errors],
        "comparison": outcome.comparison.to_dict(),
        "plan": outcome.plan.counts(),
        "stats": outcome.stats.model_dump(),
        "state_saved": outcome.state_saved,
    }


def status_to_json(report: StatusReport) -> dict:
    return {
        "categories": report.categories,
        "has_state": report.has_state,
        "last_sync": report.record.timestamp if report.record else None,
        "corpus_version": report.record.corpus_version if report.record else None,
        "state_age_seconds": report.state_age_seconds,
        "local_files": report.local_files,
        "comparison": report.comparison.to_dict() if report.comparison else None,
    }


def diff_to_json(report: DiffReport) -> dict:
    return {
        "categories": report.categories,
        "comparison": report.comparison.to_dict(),
        "plan": report.plan.counts(),
        "conflicts": [c.model_dump() for c in report.conflicts],
        "files": [f.model_dump(mode="json") for f in report.files],
    }
