"""Configuration file schema for leyline.

Defines Pydantic models for the YAML config structure with dedicated
sections for the cache, the upstream corpus, and logging.  Every section
has defaults so that an absent or empty config file is valid.

Usage:
    from leyline.config_loader import load_hierarchical_config
    from leyline.config_schema import build_config

    raw = load_hierarchical_config()
    file_config = build_config(raw)
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_REPOSITORY = "https://github.com/phrazzld/leyline.git"

# Categories published by the upstream corpus.  "core" and "tenets" are
# always synced; the rest select bindings/categories/<name>/.
VALID_CATEGORIES: frozenset[str] = frozenset(
    {
        "api",
        "browser-extensions",
        "cli",
        "core",
        "csharp",
        "database",
        "git",
        "go",
        "python",
        "react",
        "ruby",
        "rust",
        "security",
        "tenets",
        "typescript",
        "web",
    }
)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class CacheConfig(BaseModel):
    """Content cache settings."""

    dir: str | None = Field(
        default=None,
        description="Cache root (default: ~/.cache/leyline)",
    )
    max_size_mb: int = Field(
        default=50,
        ge=1,
        le=10_000,
        description="Upper bound for the content store in MiB",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Upstream corpus and local layout settings."""

    repository: str = Field(
        default=DEFAULT_REPOSITORY, description="Upstream git URL"
    )
    ref: str = Field(default="master", description="Branch, tag or commit")
    categories: list[str] = Field(
        default_factory=lambda: ["core"],
        description="Binding categories to sync",
    )
    docs_path: str = Field(
        default="docs/leyline",
        description="Target directory relative to the project root",
    )
    source_dir: str | None = Field(
        default=None,
        description="Local corpus checkout to sync from instead of git",
    )

    model_config = {"frozen": True}

    @field_validator("categories")
    @classmethod
    def _check_categories(cls, value: list[str]) -> list[str]:
        # Same spelling rules as --categories: comma lists, any case
        names: list[str] = []
        for item in value:
            for part in item.split(","):
                part = part.strip().lower()
                if part and part not in names:
                    names.append(part)
        unknown = sorted(set(names) - VALID_CATEGORIES)
        if unknown:
            raise ValueError(
                f"Unknown categories {unknown}. Valid categories: "
                f"{sorted(VALID_CATEGORIES)}"
            )
        return names


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="WARNING", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


class LeylineConfig(BaseModel):
    """Top-level config file model.

    Aggregates all config sections. ``LeylineConfig()`` (zero-config) is
    always valid.
    """

    cache: CacheConfig = Field(default_factory=CacheConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> LeylineConfig:
    """Construct a ``LeylineConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    A bare ``categories`` list at the root (the project ``.leyline`` file
    format) is folded into the ``sync`` section.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``LeylineConfig`` instance.
    """
    if not raw_data:
        return LeylineConfig()

    data = dict(raw_data)
    if "categories" in data:
        sync_section = dict(data.get("sync") or {})
        sync_section.setdefault("categories", data.pop("categories"))
        data["sync"] = sync_section
    if "docs_path" in data:
        sync_section = dict(data.get("sync") or {})
        sync_section.setdefault("docs_path", data.pop("docs_path"))
        data["sync"] = sync_section

    return LeylineConfig(**data)
