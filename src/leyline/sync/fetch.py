"""Fetch providers: materialise the upstream corpus in a local directory.

The orchestrator only needs a directory whose relative paths mirror the
consumer layout (``tenets/...``, ``bindings/...``).  How it gets there is
up to the provider:

- ``GitFetchProvider``: sparse checkout of the upstream repository into a
  temporary directory via the ``git`` executable.
- ``DirectoryFetchProvider``: an existing local checkout (offline use,
  tests, vendored corpora).

``create_fetch_provider()`` picks one from ``Settings``.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from ..errors import RemoteAccessError
from .categories import sparse_paths

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 120

# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class FetchProvider(Protocol):
    """Protocol that all fetch providers must satisfy."""

    corpus_version: str

    def fetch(self, categories: Sequence[str]) -> Path:
        """Retrieve the documents of *categories*.

        Returns:
            Directory containing ``tenets/`` and ``bindings/``.

        Raises:
            RemoteAccessError: If the corpus cannot be retrieved.
        """
        ...  # pragma: no cover

    def cleanup(self) -> None:
        """Release anything ``fetch`` created (temporary checkouts)."""
        ...  # pragma: no cover


def corpus_root(directory: Path) -> Path:
    """Return the directory holding ``tenets/`` and ``bindings/``.

    Accepts either a repository checkout (documents under ``docs/``) or
    the documents directory itself.
    """
    docs = directory / "docs"
    if (docs / "tenets").is_dir() or (docs / "bindings").is_dir():
        return docs
    return directory


# ---------------------------------------------------------------------------
# Local directory
# ---------------------------------------------------------------------------


class DirectoryFetchProvider:
    """Serve the corpus from an existing local directory.

    Args:
        source_dir: Repository checkout or documents directory.
    """

    def __init__(self, source_dir: Path) -> None:
        self.source_dir = Path(source_dir)
        self.corpus_version = "local"

    def fetch(self, categories: Sequence[str]) -> Path:
        if not self.source_dir.is_dir():
            raise RemoteAccessError(
                f"Corpus directory not found: {self.source_dir}",
                url=str(self.source_dir),
                retryable=False,
            )
        version_file = self.source_dir / "VERSION"
        if version_file.is_file():
            self.corpus_version = version_file.read_text(encoding="utf-8").strip()
        root = corpus_root(self.source_dir)
        logger.debug("Using local corpus at %s", root)
        return root

    def cleanup(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Git sparse checkout
# ---------------------------------------------------------------------------

_REMOTE_URL_PATTERNS = (
    re.compile(r"\A(https?://|git@)[\w\-.]+[\w\-]+([/:][\w\-.]+)*\.git\Z"),
    re.compile(r"\Afile://.+\Z"),
)

# stderr fragments that indicate a transient network problem
_RETRYABLE_MARKERS = (
    "could not resolve host",
    "connection timed out",
    "connection refused",
    "connection reset",
    "operation timed out",
    "early eof",
    "temporary failure",
    "unable to access",
    "the remote end hung up",
)


def validate_sparse_path(path: str) -> None:
    """Reject sparse-checkout patterns that could escape the checkout."""
    if " " in path:
        reason = "paths cannot contain spaces"
    elif path.startswith("/"):
        reason = "absolute paths not allowed"
    elif "../" in path:
        reason = "parent directory traversal not allowed"
    else:
        return
    raise RemoteAccessError(
        f"Invalid sparse-checkout path '{path}': {reason}", retryable=False
    )


def validate_remote_url(url: str) -> None:
    if not any(p.match(url) for p in _REMOTE_URL_PATTERNS):
        raise RemoteAccessError(
            f"Invalid remote URL format: {url}", url=url, retryable=False
        )


def validate_ref(ref: str) -> None:
    if not ref or ".." in ref or " " in ref or ref.startswith("-"):
        raise RemoteAccessError(
            f"Invalid version reference: {ref!r}", retryable=False
        )


def is_retryable(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _RETRYABLE_MARKERS)


class GitFetchProvider:
    """Sparse-checkout the upstream repository into a temp directory.

    Args:
        repository: Remote URL (https, ssh ``git@`` or ``file://``).
        ref: Branch, tag or commit to check out.
        timeout: Seconds allowed per git command.
    """

    def __init__(
        self,
        repository: str,
        ref: str = "master",
        timeout: int = GIT_TIMEOUT_SECONDS,
    ) -> None:
        self.repository = repository
        self.ref = ref
        self.timeout = timeout
        self.corpus_version = ref
        self._workdir: Path | None = None

    def fetch(self, categories: Sequence[str]) -> Path:
        if shutil.which("git") is None:
            raise RemoteAccessError(
                "Git binary not found. Install git and ensure it is in your PATH.",
                url=self.repository,
                retryable=False,
            )
        validate_remote_url(self.repository)
        validate_ref(self.ref)
        patterns = sparse_paths(categories)
        for pattern in patterns:
            validate_sparse_path(pattern)

        self.cleanup()
        self._workdir = Path(tempfile.mkdtemp(prefix="leyline-sync-"))
        try:
            self._run_git("init", "--quiet")
            self._run_git("config", "core.sparseCheckout", "true")
            info_dir = self._workdir / ".git" / "info"
            info_dir.mkdir(parents=True, exist_ok=True)
            (info_dir / "sparse-checkout").write_text(
                "".join(f"{p}\n" for p in patterns), encoding="utf-8"
            )
            self._run_git("remote", "add", "origin", self.repository)
            self._run_git("fetch", "--depth", "1", "origin", self.ref)
            self._run_git("checkout", "--quiet", "FETCH_HEAD")
            revision = self._run_git("rev-parse", "HEAD").strip()
        except BaseException:
            self.cleanup()
            raise

        self.corpus_version = revision or self.ref
        logger.info(
            "Fetched %s@%s (%s) into %s",
            self.repository,
            self.ref,
            self.corpus_version,
            self._workdir,
        )
        return corpus_root(self._workdir)

    def cleanup(self) -> None:
        if self._workdir is None:
            return
        shutil.rmtree(self._workdir, ignore_errors=True)
        self._workdir = None

    def _run_git(self, *args: str) -> str:
        command = " ".join(("git",) + args)
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=str(self._workdir),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise RemoteAccessError(
                f"Git command timed out after {self.timeout}s: {command}",
                url=self.repository,
                command=command,
                retryable=True,
            ) from exc
        except OSError as exc:
            raise RemoteAccessError(
                f"Git command could not be started: {command} ({exc})",
                url=self.repository,
                command=command,
                retryable=False,
            ) from exc

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            logger.debug("%s failed: %s", command, stderr)
            raise RemoteAccessError(
                f"Git command failed: {command} "
                f"(exit status: {result.returncode})",
                url=self.repository,
                command=command,
                exit_status=result.returncode,
                retryable=is_retryable(stderr),
            )
        return result.stdout


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_fetch_provider(settings: Settings) -> FetchProvider:
    """Local directory provider when ``source_dir`` is set, git otherwise."""
    if settings.source_dir is not None:
        return DirectoryFetchProvider(settings.source_dir)
    return GitFetchProvider(settings.repository, settings.ref)
