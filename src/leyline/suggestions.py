"""Recovery guidance for typed errors.

Maps ``ErrorKind`` (plus a few context fields) to the steps printed by the
CLI under a failing command.  Templates are formatted with the error's
``context`` dict; placeholders whose key is missing are dropped along with
their line.
"""

from __future__ import annotations

import string

from .errors import ErrorKind, LeylineError

# ---------------------------------------------------------------------------
# Kind-specific recovery templates
# ---------------------------------------------------------------------------

_KIND_MESSAGES: dict[ErrorKind, dict[str, list[str]]] = {
    ErrorKind.CACHE_OPERATION: {
        "default": [
            "Check cache directory permissions and available disk space",
            "Clear the cache: leyline cache clear",
        ],
        "write": [
            "Check available disk space",
            "Verify cache directory permissions: ls -la '{cache_path}'",
        ],
        "read": ["Remove the unreadable entry: rm '{cache_path}'"],
    },
    ErrorKind.INVALID_SYNC_STATE: {
        "default": [
            "Run 'leyline sync --force' to rebuild sync state from scratch",
            "Delete the corrupted state file: rm '{state_file}'",
            "Verify cache directory permissions are correct",
        ],
    },
    ErrorKind.COMPARISON_FAILED: {
        "default": ["Verify the file exists and is readable: {file_a}"],
        "permission_denied": [
            "Check file permissions: ls -la '{file_a}'",
            "Ensure you have read access to the file",
        ],
        "encoding_error": [
            "The file may have encoding issues; ensure it is UTF-8",
        ],
        "too_many_files": [
            "Raise the open file limit: ulimit -n 4096",
            "Close other programs holding many files open",
        ],
        "concurrent_modification": [
            "A file changed while it was being read; re-run the command",
        ],
        "file_not_found": [
            "The file disappeared during the run; re-run the command",
        ],
    },
    ErrorKind.CONFLICT_DETECTED: {
        "default": [
            "Use 'leyline diff --content' to see exact differences",
            "Back up important local modifications",
            "Use --force to overwrite local changes with upstream versions",
            "Use --dry-run to preview changes without applying them",
        ],
    },
    ErrorKind.REMOTE_ACCESS: {
        "default": [
            "Verify the repository URL is correct: {url}",
            "Check git credentials and repository access",
        ],
        "retryable": [
            "Check your network connection and retry",
            "Use --source-dir with a local checkout to work offline",
        ],
    },
    ErrorKind.FILE_SYSTEM: {
        "default": [
            "Ensure you have write access to: {path}",
            "Check available disk space",
        ],
    },
    ErrorKind.CONFIGURATION: {
        "default": [
            "Run 'leyline categories' to list valid categories",
            "Check .leyline.yml and LEYLINE_* environment variables",
        ],
    },
}


def _variant(error: LeylineError) -> str:
    context = error.context
    match error.kind:
        case ErrorKind.CACHE_OPERATION:
            return str(context.get("operation_type", "default"))
        case ErrorKind.COMPARISON_FAILED:
            reason = context.get("reason")
            return getattr(reason, "value", reason) or "default"
        case ErrorKind.REMOTE_ACCESS if context.get("retryable"):
            return "retryable"
        case _:
            return "default"


def _render(template: str, context: dict) -> str | None:
    fields = [
        name for _, name, _, _ in string.Formatter().parse(template) if name
    ]
    if any(name not in context for name in fields):
        return None
    return template.format(**context)


def recovery_suggestions(error: LeylineError) -> list[str]:
    """Ordered recovery steps for *error*.

    Variant-specific steps (by operation, reason or retryability) come
    first, followed by the kind's generic steps.
    """
    messages = _KIND_MESSAGES.get(error.kind, {})
    variant = _variant(error)
    templates = list(messages.get(variant, [])) if variant != "default" else []
    templates += messages.get("default", [])

    suggestions = []
    for template in templates:
        line = _render(template, error.context)
        if line and line not in suggestions:
            suggestions.append(line)
    return suggestions
