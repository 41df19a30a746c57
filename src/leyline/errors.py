"""Typed errors raised by the sync-and-cache engine.

Every error carries an ``ErrorKind`` tag plus a flat ``context`` dict with
machine-readable details (path, operation, reason).  Nothing in here knows
how to talk to a human: the CLI maps ``ErrorKind`` to recovery text via
``leyline.suggestions``.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .sync.models import ConflictRecord


class ErrorKind(str, Enum):
    """Error categories surfaced by the core."""

    CACHE_OPERATION = "cache_operation"
    INVALID_SYNC_STATE = "invalid_sync_state"
    COMPARISON_FAILED = "comparison_failed"
    CONFLICT_DETECTED = "conflict_detected"
    REMOTE_ACCESS = "remote_access"
    FILE_SYSTEM = "file_system"
    CONFIGURATION = "configuration"


class FailureReason(str, Enum):
    """Reason tags attached to ``ComparisonFailedError``."""

    FILE_NOT_FOUND = "file_not_found"
    PERMISSION_DENIED = "permission_denied"
    TOO_MANY_FILES = "too_many_files"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    ENCODING_ERROR = "encoding_error"
    IO_ERROR = "io_error"


class LeylineError(Exception):
    """Base class for every error raised by leyline.

    Args:
        kind: Error category.
        message: Short human-readable description.
        context: Machine-readable details.  ``None`` values are dropped.
    """

    kind: ErrorKind = ErrorKind.FILE_SYSTEM

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.message = message
        self.context = {
            k: v for k, v in (context or {}).items() if v is not None
        }

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable description of the error."""
        return {
            "kind": self.kind.value,
            "error": type(self).__name__,
            "message": self.message,
            "context": {
                k: v.value if isinstance(v, Enum) else v
                for k, v in self.context.items()
            },
        }


class CacheOperationError(LeylineError):
    """A cache read, write or delete failed (disk or permission issue)."""

    kind = ErrorKind.CACHE_OPERATION

    def __init__(
        self,
        message: str,
        *,
        cache_path: str | None = None,
        operation_type: str | None = None,
    ) -> None:
        super().__init__(
            message,
            context={
                "cache_path": cache_path,
                "operation_type": operation_type,
            },
        )
        self.cache_path = cache_path
        self.operation_type = operation_type


class InvalidSyncStateError(LeylineError):
    """The sync state file is corrupt or uses an unsupported schema."""

    kind = ErrorKind.INVALID_SYNC_STATE

    def __init__(
        self,
        message: str = "Sync state is invalid or corrupted",
        *,
        state_file: str | None = None,
        validation_errors: list[str] | None = None,
    ) -> None:
        self.state_file = state_file
        self.validation_errors = list(validation_errors or [])
        super().__init__(
            message,
            context={
                "state_file": state_file,
                "validation_errors": self.validation_errors or None,
            },
        )


class ComparisonFailedError(LeylineError):
    """Hashing or comparing a specific file failed."""

    kind = ErrorKind.COMPARISON_FAILED

    def __init__(
        self,
        file_a: str,
        file_b: str | None = None,
        *,
        reason: FailureReason = FailureReason.IO_ERROR,
        detail: str | None = None,
    ) -> None:
        self.file_a = file_a
        self.file_b = file_b
        self.reason = reason
        target = file_a if file_b is None else f"{file_a} and {file_b}"
        message = f"Failed to compare {target} ({reason.value})"
        super().__init__(
            message,
            context={
                "file_a": file_a,
                "file_b": file_b,
                "reason": reason,
                "detail": detail,
            },
        )


class ConflictDetectedError(LeylineError):
    """Local and remote both diverged from the last synced version."""

    kind = ErrorKind.CONFLICT_DETECTED

    def __init__(self, conflicts: list[ConflictRecord]) -> None:
        self.conflicts = list(conflicts)
        paths = self.conflicted_paths
        count = len(paths)
        message = f"{count} conflict{'s' if count != 1 else ''} detected"
        if paths:
            message += " in: " + ", ".join(paths[:3])
        if count > 3:
            message += f" and {count - 3} more"
        super().__init__(message, context={"paths": paths})

    @property
    def conflicted_paths(self) -> list[str]:
        return [c.path for c in self.conflicts]


class RemoteAccessError(LeylineError):
    """The fetch provider could not retrieve the upstream corpus."""

    kind = ErrorKind.REMOTE_ACCESS

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        command: str | None = None,
        exit_status: int | None = None,
        retryable: bool = False,
    ) -> None:
        self.url = url
        self.retryable = retryable
        super().__init__(
            message,
            context={
                "url": url,
                "command": command,
                "exit_status": exit_status,
                "retryable": retryable,
            },
        )


class FileSystemError(LeylineError):
    """Generic path-level failure (read-only fs, disk full, ...)."""

    kind = ErrorKind.FILE_SYSTEM

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.path = path
        self.reason = reason
        super().__init__(message, context={"path": path, "reason": reason})


class ConfigurationError(LeylineError):
    """Invalid settings (unknown category, bad cache size, ...)."""

    kind = ErrorKind.CONFIGURATION
