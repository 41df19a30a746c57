"""Runtime settings for a single leyline invocation.

``Settings`` is resolved once at startup and then passed by value into the
orchestrator and every component it builds.  Nothing below this module
reads the environment.

Precedence (highest to lowest):
    CLI args > Environment variables (.env included) > YAML config > defaults

Environment variables:
    LEYLINE_CACHE_DIR: Cache root (default: ~/.cache/leyline)
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterable
from dataclasses import dataclass, replace
from pathlib import Path

from .config_schema import VALID_CATEGORIES, LeylineConfig
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = "~/.cache/leyline"


@dataclass(frozen=True)
class Settings:
    project_dir: Path
    cache_dir: Path
    categories: tuple[str, ...] = ("core",)
    docs_path: str = "docs/leyline"
    repository: str = ""
    ref: str = "master"
    source_dir: Path | None = None
    max_cache_bytes: int = 50 * 1024 * 1024
    case_insensitive_paths: bool = False
    force: bool = False
    dry_run: bool = False

    @property
    def target_dir(self) -> Path:
        """Directory that receives the synced corpus."""
        return self.project_dir / self.docs_path

    def with_overrides(self, **changes) -> Settings:
        """Return a copy with *changes* applied (settings stay immutable)."""
        if "categories" in changes:
            changes["categories"] = normalize_categories(changes["categories"])
        return replace(self, **changes)


def normalize_categories(categories: Iterable[str] | None) -> tuple[str, ...]:
    """Split comma-separated entries, lower-case, dedupe and validate.

    Raises:
        ConfigurationError: If an unknown category is requested.
    """
    names: set[str] = set()
    for item in categories or ():
        for part in item.split(","):
            part = part.strip().lower()
            if part:
                names.add(part)
    if not names:
        return ("core",)

    unknown = sorted(names - VALID_CATEGORIES)
    if unknown:
        raise ConfigurationError(
            f"Invalid categories: {', '.join(unknown)}",
            context={
                "categories": unknown,
                "valid_categories": sorted(VALID_CATEGORIES),
            },
        )
    return tuple(sorted(names))


def default_case_insensitive() -> bool:
    """Windows and macOS default to case-insensitive filesystems."""
    return sys.platform in ("win32", "darwin", "cygwin")


def load_settings(
    project_dir: str | Path | None = None,
    cache_dir: str | None = None,
    categories: Iterable[str] | None = None,
    source_dir: str | None = None,
    force: bool = False,
    dry_run: bool = False,
    file_config: LeylineConfig | None = None,
) -> Settings:
    """Resolve settings from CLI arguments, environment and config file.

    The caller is responsible for ``load_dotenv()`` so that .env values are
    visible through ``os.getenv()``.

    Args:
        project_dir: Consumer project root (default: CWD).
        cache_dir: CLI override for the cache root.
        categories: CLI category selection; falls back to the config file.
        source_dir: Local corpus checkout to sync from instead of git.
        force: Remote wins on conflicts.
        dry_run: Compute but do not apply.
        file_config: Parsed config file (``LeylineConfig()`` if omitted).

    Returns:
        Validated, immutable ``Settings``.

    Raises:
        ConfigurationError: If a value is invalid.
    """
    fc = file_config or LeylineConfig()

    root = Path(project_dir or Path.cwd()).expanduser().resolve()

    raw_cache = (
        cache_dir
        or os.getenv("LEYLINE_CACHE_DIR")
        or fc.cache.dir
        or DEFAULT_CACHE_DIR
    )
    resolved_cache = Path(raw_cache).expanduser().resolve()

    selected = normalize_categories(
        list(categories) if categories else fc.sync.categories
    )

    raw_source = source_dir or fc.sync.source_dir
    resolved_source = (
        Path(raw_source).expanduser().resolve() if raw_source else None
    )

    docs_path = fc.sync.docs_path.strip().strip("/")
    if not docs_path or docs_path.startswith("-") or ".." in docs_path.split("/"):
        raise ConfigurationError(
            f"Invalid docs_path '{fc.sync.docs_path}'",
            context={"docs_path": fc.sync.docs_path},
        )

    settings = Settings(
        project_dir=root,
        cache_dir=resolved_cache,
        categories=selected,
        docs_path=docs_path,
        repository=fc.sync.repository,
        ref=fc.sync.ref,
        source_dir=resolved_source,
        max_cache_bytes=fc.cache.max_size_mb * 1024 * 1024,
        case_insensitive_paths=default_case_insensitive(),
        force=force,
        dry_run=dry_run,
    )
    logger.debug("Resolved settings: %s", settings)
    return settings
