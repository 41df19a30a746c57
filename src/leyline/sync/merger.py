"""Diff and merge previews for changed corpus files.

Uses ``difflib`` for unified diffs and the ``merge3`` library for
three-way merge previews of conflicted documents.  Nothing here writes to
disk: a merge preview shows the operator what combining both sides would
look like, it is never applied automatically.

Conflict markers follow Git convention with custom labels:
``<<<<<<< LOCAL``, ``=======``, ``>>>>>>> UPSTREAM``.
"""

from __future__ import annotations

import difflib

from merge3 import Merge3

from ..file_handler import decode_bytes
from .models import FileDiff, ThreeWayAction

START_MARKER = "<<<<<<< LOCAL"
MID_MARKER = "======="
END_MARKER = ">>>>>>> UPSTREAM"


def attempt_merge(
    base_content: str,
    local_content: str,
    remote_content: str,
) -> tuple[str, bool]:
    """Three-way merge of local and upstream edits against their base.

    Returns:
        ``(merged_text, has_conflicts)``; *merged_text* may contain
        conflict markers.
    """
    m3 = Merge3(
        base_content.splitlines(True),
        local_content.splitlines(True),
        remote_content.splitlines(True),
    )
    # merge3 appends " <name>" to the start and end markers
    merged_text = "".join(
        m3.merge_lines(
            name_a="LOCAL",
            name_b="UPSTREAM",
            start_marker="<<<<<<<",
            mid_marker=MID_MARKER,
            end_marker=">>>>>>>",
        )
    )
    return merged_text, START_MARKER in merged_text


def generate_diff(
    old_content: str,
    new_content: str,
    label_old: str = "old",
    label_new: str = "new",
) -> str:
    """Unified diff between two strings ("" when identical)."""
    return "".join(
        difflib.unified_diff(
            old_content.splitlines(True),
            new_content.splitlines(True),
            fromfile=label_old,
            tofile=label_new,
        )
    )


def build_file_diff(
    path: str,
    action: ThreeWayAction,
    base: bytes | None,
    local: bytes | None,
    remote: bytes | None,
) -> FileDiff:
    """Describe how *path* differs between the local and upstream side.

    Absent sides diff as empty text.  A merge preview is attempted for
    conflicts whose three sides are all available.
    """
    local_text = decode_bytes(local)[0] if local is not None else ""
    remote_text = decode_bytes(remote)[0] if remote is not None else ""
    diff = generate_diff(
        local_text,
        remote_text,
        label_old=f"local/{path}" if local is not None else "/dev/null",
        label_new=f"upstream/{path}" if remote is not None else "/dev/null",
    )

    merge_preview = None
    has_markers = False
    if (
        action == ThreeWayAction.CONFLICT
        and base is not None
        and local is not None
        and remote is not None
    ):
        merge_preview, has_markers = attempt_merge(
            decode_bytes(base)[0], local_text, remote_text
        )

    return FileDiff(
        path=path,
        action=action,
        diff=diff,
        merge_preview=merge_preview,
        has_markers=has_markers,
    )
