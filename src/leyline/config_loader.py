"""
Hierarchical configuration loader for leyline.

Finds config files by convention, supports YAML ``!include`` and
``${VAR}`` interpolation, and merges files with "project wins" semantics.

Usage:
    from leyline.config_loader import load_hierarchical_config

    raw = load_hierarchical_config(project_dir)
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

PROJECT_CONFIG_NAMES = (".leyline.yml", ".leyline")

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    An unset or empty VAR yields *default* when one is given, otherwise
    the empty string.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. YAML !include support
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader subclass that understands ``!include``.

    A dedicated subclass keeps the global ``yaml.SafeLoader`` untouched.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Handle ``!include path/to/file.yml`` relative to the including file."""
    target = Path(loader.construct_scalar(node))
    if not target.is_absolute():
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    stack: list[Path] = getattr(loader, "_include_stack", [])
    if target in stack:
        chain = " -> ".join(str(p) for p in stack + [target])
        raise ValueError(f"Circular include detected: {chain}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} "
            f"(referenced from {Path(loader.name).resolve()})"
        )
    return _load_yaml(target, include_stack=stack + [target])


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml(path: Path, *, include_stack: list[Path] | None = None) -> Any:
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Convention-based discovery
# ---------------------------------------------------------------------------


def discover_config_files(project_dir: Path | None = None) -> list[Path]:
    """Return existing config files in precedence order (highest first).

    Search order:
        1. ``LEYLINE_CONFIG`` env var (explicit single path).
        2. ``.leyline.yml`` then ``.leyline`` in the project directory.
        3. ``~/.config/leyline/config.yml`` (XDG global).
    """
    candidates: list[Path] = []

    env_path = os.environ.get("LEYLINE_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    root = project_dir or Path.cwd()
    candidates.extend(root / name for name in PROJECT_CONFIG_NAMES)
    candidates.append(Path.home() / ".config" / "leyline" / "config.yml")

    return [p for p in candidates if p.is_file()]


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config(project_dir: Path | None = None) -> dict[str, Any]:
    """Load and merge every discovered config file.

    Files are applied from lowest to highest precedence; top-level keys of
    a higher-precedence file replace those of lower ones (no deep merge).
    Env var interpolation runs once on the merged result.

    Returns an empty dict when no config file exists.
    """
    paths = discover_config_files(project_dir)
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
