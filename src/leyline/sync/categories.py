"""Corpus layout: which relative paths belong to a category selection.

The upstream repository keeps documents under ``docs/``::

    docs/tenets/**.md                       always synced
    docs/bindings/core/**.md                always synced
    docs/bindings/categories/<name>/**.md   synced per selected category

Relative paths in manifests are taken below ``docs/`` (``tenets/x.md``,
``bindings/core/y.md``) and mirror the consumer's ``docs/leyline/`` tree.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

ALWAYS_INCLUDED = ("tenets/", "bindings/core/")
CATEGORY_ROOT = "bindings/categories/"

# Categories that select nothing beyond the always-included prefixes.
_IMPLICIT = frozenset({"core", "tenets"})


def extra_categories(categories: Iterable[str]) -> list[str]:
    return sorted(set(categories) - _IMPLICIT)


def include_prefixes(categories: Iterable[str]) -> tuple[str, ...]:
    """Relative path prefixes covered by *categories*."""
    return ALWAYS_INCLUDED + tuple(
        f"{CATEGORY_ROOT}{name}/" for name in extra_categories(categories)
    )


def sparse_paths(categories: Iterable[str]) -> list[str]:
    """Sparse-checkout patterns for the upstream repository."""
    return [f"docs/{prefix}" for prefix in include_prefixes(categories)]


def in_scope(relative_path: str, categories: Iterable[str]) -> bool:
    return relative_path.endswith(".md") and relative_path.startswith(
        include_prefixes(categories)
    )


def select_paths(root: Path, categories: Iterable[str]) -> list[str]:
    """Sorted relative POSIX paths of in-scope Markdown files under *root*.

    Missing prefixes are ignored, so an empty or absent *root* yields ``[]``.
    """
    selected: set[str] = set()
    for prefix in include_prefixes(categories):
        base = root / prefix
        if not base.is_dir():
            continue
        for path in base.rglob("*.md"):
            if path.is_file():
                selected.add(path.relative_to(root).as_posix())
    return sorted(selected)


def category_for_path(relative_path: str) -> str:
    """Category a document belongs to, derived from its location."""
    parts = relative_path.split("/")
    if "categories" in parts:
        idx = parts.index("categories")
        if idx + 1 < len(parts) - 1:
            return parts[idx + 1]
    if "core" in parts[:-1]:
        return "core"
    if "tenets" in parts[:-1]:
        return "tenets"
    return "unknown"


def document_type_for_path(relative_path: str) -> str:
    parts = relative_path.split("/")[:-1]
    if "tenets" in parts:
        return "tenet"
    if "bindings" in parts:
        return "binding"
    return "unknown"
