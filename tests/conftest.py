"""Shared pytest fixtures for leyline tests."""

from pathlib import Path

import pytest

from leyline.cache import ContentCache
from leyline.config import Settings
from leyline.orchestrator import SyncOrchestrator
from leyline.sync.fetch import DirectoryFetchProvider
from leyline.sync.state import SyncStateStore

SIMPLICITY = """---
id: simplicity
last_modified: '2025-01-01'
---
# Simplicity Above All

Prefer the simplest design that solves the problem at hand.
Complexity is the enemy of reliability.
"""

TESTABILITY = """---
id: testability
last_modified: '2025-01-02'
---
# Design for Testability

Structure code so that every behaviour can be verified in isolation.
"""

NO_LINTER_SUPPRESSION = """---
id: no-lint-suppression
derived_from: simplicity
enforced_by: code review
---
# Binding: No Lint Suppression

Fix the warning instead of silencing it.
"""

GO_ERROR_WRAPPING = """---
id: error-wrapping
derived_from: explicit-over-implicit
---
# Binding: Error Wrapping in Go

Wrap errors with context using fmt.Errorf and the %w verb.
"""

CORPUS_FILES = {
    "tenets/simplicity.md": SIMPLICITY,
    "tenets/testability.md": TESTABILITY,
    "bindings/core/no-lint-suppression.md": NO_LINTER_SUPPRESSION,
    "bindings/categories/go/error-wrapping.md": GO_ERROR_WRAPPING,
}


def write_tree(root: Path, files: dict[str, str]) -> Path:
    """Write ``{relative_path: text}`` under *root* and return *root*."""
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep user config and env vars out of every test."""
    for name in ("LEYLINE_CACHE_DIR", "LEYLINE_CONFIG", "LEYLINE_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def corpus_dir(tmp_path):
    """Upstream checkout with documents under ``docs/``."""
    write_tree(tmp_path / "upstream" / "docs", CORPUS_FILES)
    return tmp_path / "upstream"


@pytest.fixture
def corpus_docs(corpus_dir):
    """The ``docs/`` directory of the upstream checkout."""
    return corpus_dir / "docs"


@pytest.fixture
def project_dir(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache"


@pytest.fixture
def cache(cache_dir):
    return ContentCache(cache_dir)


@pytest.fixture
def state_store(cache_dir):
    return SyncStateStore(cache_dir)


@pytest.fixture
def settings(project_dir, cache_dir, corpus_dir):
    return Settings(
        project_dir=project_dir,
        cache_dir=cache_dir,
        source_dir=corpus_dir,
    )


@pytest.fixture
def orchestrator(settings):
    orch = SyncOrchestrator(
        settings, fetcher=DirectoryFetchProvider(settings.source_dir)
    )
    yield orch
    orch.close()
