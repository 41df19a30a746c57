"""Sync state persistence layer.

Manages the JSON record of the last successful sync, stored at
``<cache_root>/sync_state.json``.  The record holds the schema version,
an RFC3339 UTC timestamp, the corpus version, the category selection and
the manifest (relative path to SHA-256) used as the common ancestor for
three-way comparison.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file in the same
  directory then calls ``os.replace()`` so readers never see partial data.
  A failed write leaves the previous record untouched.
* **Strict schema** -- ``validate()`` rejects future schema versions and
  malformed hashes instead of guessing their meaning.
* **Soft load** -- an unreadable record is treated as "no prior state"
  (a full resync follows) unless the caller asks for strict loading.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from ..cache.content_cache import is_valid_hash
from ..errors import InvalidSyncStateError
from .comparator import FileComparator
from .models import ComparisonResult, Manifest, SyncStateRecord

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
STATE_FILENAME = "sync_state.json"

_REQUIRED_FIELDS = (
    "schema_version",
    "timestamp",
    "corpus_version",
    "categories",
    "manifest",
)


def utc_timestamp() -> str:
    """Current time as an RFC3339 UTC string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SyncStateStore:
    """Load, save, and query the persisted sync record.

    Args:
        cache_root: Directory holding the state file (the cache root).
    """

    def __init__(self, cache_root: Path) -> None:
        self._state_dir = Path(cache_root)

    @property
    def state_file_path(self) -> Path:
        return self._state_dir / STATE_FILENAME

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, record: SyncStateRecord) -> bool:
        """Persist *record* atomically.

        Returns:
            ``True`` on success.  ``False`` if the record is invalid or the
            write failed; the previous state file is left untouched.
        """
        data = record.model_dump(mode="json")
        problems = self.validate(data)
        if problems:
            logger.error("Refusing to save invalid sync state: %s", problems)
            return False

        target = self.state_file_path
        try:
            self._state_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self._state_dir), prefix=".sync_state.", suffix=".tmp"
            )
        except OSError as exc:
            logger.error("Cannot create sync state in %s: %s", self._state_dir, exc)
            return False

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, target)
        except OSError as exc:
            _unlink_quietly(tmp_path)
            logger.error("Failed to save sync state to %s: %s", target, exc)
            return False
        except BaseException:
            _unlink_quietly(tmp_path)
            raise

        logger.debug(
            "Saved sync state (%d files) to %s", len(record.manifest), target
        )
        return True

    def load(self, strict: bool = False) -> SyncStateRecord | None:
        """Load the persisted record.

        Args:
            strict: Raise instead of degrading to "no prior state".

        Returns:
            The record, or ``None`` when no state exists (or, unless
            *strict*, when the stored state is unreadable).

        Raises:
            InvalidSyncStateError: If *strict* and the state is invalid.
        """
        path = self.state_file_path
        if not path.exists():
            return None

        try:
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            return self._reject(strict, [f"unreadable state file: {exc}"])

        problems = self.validate(data)
        if problems:
            return self._reject(strict, problems)

        try:
            return SyncStateRecord.model_validate(data)
        except ValidationError as exc:
            return self._reject(
                strict, [err["msg"] for err in exc.errors()]
            )

    @staticmethod
    def validate(data: object) -> list[str]:
        """Return a list of problems with *data* (empty when valid)."""
        if not isinstance(data, dict):
            return ["state must be a JSON object"]

        problems = [
            f"missing field '{name}'"
            for name in _REQUIRED_FIELDS
            if name not in data
        ]
        if problems:
            return problems

        version = data["schema_version"]
        if (
            not isinstance(version, int)
            or isinstance(version, bool)
            or not 1 <= version <= SCHEMA_VERSION
        ):
            problems.append(
                f"unsupported schema_version {version!r} "
                f"(supported: 1..{SCHEMA_VERSION})"
            )

        if not isinstance(data["timestamp"], str):
            problems.append("timestamp must be a string")
        else:
            try:
                parse_timestamp(data["timestamp"])
            except ValueError:
                problems.append(f"invalid timestamp {data['timestamp']!r}")

        if not isinstance(data["corpus_version"], str):
            problems.append("corpus_version must be a string")

        categories = data["categories"]
        if not isinstance(categories, list) or not all(
            isinstance(c, str) for c in categories
        ):
            problems.append("categories must be a list of strings")

        manifest = data["manifest"]
        if not isinstance(manifest, dict):
            problems.append("manifest must be an object")
        else:
            for path, digest in manifest.items():
                if not is_valid_hash(digest):
                    problems.append(f"invalid hash for '{path}'")

        stats = data.get("stats")
        if stats is not None and not isinstance(stats, dict):
            problems.append("stats must be an object")

        return problems

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def compare_with_current(
        self, current_manifest: Manifest
    ) -> ComparisonResult | None:
        """Compare the stored manifest with *current_manifest*.

        Returns ``None`` when there is no prior state.
        """
        record = self.load()
        if record is None:
            return None
        return FileComparator.compare(record.manifest, current_manifest)

    def state_exists(self) -> bool:
        return self.state_file_path.is_file()

    def state_age_seconds(self) -> float | None:
        """Seconds since the stored record was written, ``None`` if absent."""
        record = self.load()
        if record is None:
            return None
        written = parse_timestamp(record.timestamp)
        return (datetime.now(timezone.utc) - written).total_seconds()

    def clear(self) -> bool:
        """Delete the state file.  Returns ``False`` if there was none."""
        try:
            self.state_file_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.error("Failed to clear sync state: %s", exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _reject(self, strict: bool, problems: list[str]) -> None:
        if strict:
            raise InvalidSyncStateError(
                f"Sync state at {self.state_file_path} is invalid",
                state_file=str(self.state_file_path),
                validation_errors=problems,
            )
        logger.warning(
            "Ignoring invalid sync state %s (%s); a full resync will follow",
            self.state_file_path,
            "; ".join(problems),
        )
        return None


def _unlink_quietly(path: str) -> None:
    try:
        os.unlink(path)
    except OSError:
        pass
