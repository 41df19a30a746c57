"""Command-line interface for leyline.

Every command prints its result to stdout (plain text, or JSON with
``--json``) and logs to stderr.  Exit codes:

    0  success
    1  a typed error was raised, or a path failed to sync
    2  unresolved conflicts were found
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from . import __version__
from .cache import ContentCache
from .config import Settings, load_settings
from .config_loader import load_hierarchical_config
from .config_schema import LeylineConfig, build_config
from .discovery.reporter import (
    document_to_json,
    format_categories,
    format_documents,
    format_search,
    search_to_json,
)
from .errors import ConfigurationError, ConflictDetectedError, LeylineError
from .logger import setup_logging
from .orchestrator import SyncOrchestrator
from .suggestions import recovery_suggestions
from .sync.reporter import (
    diff_to_json,
    format_cache_stats,
    format_diff,
    format_status,
    format_sync_outcome,
    outcome_to_json,
    status_to_json,
)
from .sync.state import SyncStateStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFLICT = 2


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--json", action="store_true", help="Emit machine-readable JSON"
    )
    common.add_argument(
        "-v", "--verbose", action="store_true", help="Show per-file detail"
    )
    common.add_argument(
        "--project-dir",
        help="Consumer project root (default: current directory)",
    )
    common.add_argument(
        "--cache-dir",
        help="Cache root (takes precedence over LEYLINE_CACHE_DIR and config files)",
    )
    common.add_argument(
        "--source-dir",
        help="Sync from a local corpus checkout instead of the git repository",
    )
    common.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    common.add_argument("--log-file", help="Also write log records to this file")

    selection = argparse.ArgumentParser(add_help=False)
    selection.add_argument(
        "-c",
        "--categories",
        action="append",
        help="Categories to sync (repeatable or comma-separated; default: core)",
    )

    apply_opts = argparse.ArgumentParser(add_help=False)
    apply_opts.add_argument(
        "--force",
        action="store_true",
        help="Overwrite conflicts and local edits with upstream versions",
    )
    apply_opts.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without modifying files",
    )

    parser = argparse.ArgumentParser(
        prog="leyline",
        description="Sync and search shared development standards",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sync core tenets and bindings into docs/leyline
  leyline sync

  # Add language bindings
  leyline sync -c typescript,python

  # What changed locally since the last sync?
  leyline status

  # Compare with upstream, including unified diffs
  leyline diff --content

  # Apply upstream changes, refusing on conflicts
  leyline update

  # Find standards mentioning testing
  leyline search testing
        """,
    )
    parser.add_argument(
        "--version", action="version", version=f"leyline {__version__}"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser(
        "sync",
        parents=[common, selection, apply_opts],
        help="Download standards into the project",
    )
    sub.add_parser(
        "status",
        parents=[common, selection],
        help="Show local changes since the last sync",
    )
    diff = sub.add_parser(
        "diff",
        parents=[common, selection],
        help="Compare the local copy with upstream",
    )
    diff.add_argument(
        "--content", action="store_true", help="Include unified diffs"
    )
    sub.add_parser(
        "update",
        parents=[common, selection, apply_opts],
        help="Apply upstream changes, stopping on conflicts",
    )
    sub.add_parser(
        "categories", parents=[common], help="List available categories"
    )
    show = sub.add_parser(
        "show", parents=[common], help="List the documents of a category"
    )
    show.add_argument("category")
    search = sub.add_parser(
        "search", parents=[common], help="Search document titles and content"
    )
    search.add_argument("query", nargs="+")
    search.add_argument(
        "--limit", type=int, default=10, help="Maximum results (default: 10)"
    )
    cache = sub.add_parser(
        "cache", parents=[common], help="Inspect or clear the content cache"
    )
    cache.add_argument("action", choices=["health", "stats", "clear"])
    cache.add_argument(
        "--state",
        action="store_true",
        help="With 'clear': also delete the sync state",
    )
    return parser


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_file_config(project_dir: str | None) -> LeylineConfig:
    root = Path(project_dir).expanduser() if project_dir else None
    try:
        return build_config(load_hierarchical_config(root))
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {exc.error_count()} error(s)",
            context={"errors": [e["msg"] for e in exc.errors()]},
        ) from exc
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot load configuration: {exc}") from exc


def _settings_from_args(
    args: argparse.Namespace, file_config: LeylineConfig
) -> Settings:
    return load_settings(
        project_dir=args.project_dir,
        cache_dir=args.cache_dir,
        categories=getattr(args, "categories", None),
        source_dir=args.source_dir,
        force=getattr(args, "force", False),
        dry_run=getattr(args, "dry_run", False),
        file_config=file_config,
    )


def _emit(args: argparse.Namespace, text: str, data: dict) -> None:
    if args.json:
        print(json.dumps(data, indent=2, default=str))
    else:
        print(text)


def _report_error(args: argparse.Namespace, exc: LeylineError) -> None:
    suggestions = recovery_suggestions(exc)
    if getattr(args, "json", False):
        print(
            json.dumps(
                {"error": exc.to_dict(), "suggestions": suggestions},
                indent=2,
                default=str,
            )
        )
        return
    print(f"Error: {exc.message}", file=sys.stderr)
    if suggestions:
        print("\nRecovery steps:", file=sys.stderr)
        for number, line in enumerate(suggestions, start=1):
            print(f"  {number}. {line}", file=sys.stderr)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_sync(orch: SyncOrchestrator, args: argparse.Namespace) -> int:
    if args.command == "update":
        outcome = orch.update()
    else:
        outcome = orch.sync()
    _emit(args, format_sync_outcome(outcome, args.verbose), outcome_to_json(outcome))
    if outcome.errors:
        return EXIT_ERROR
    if outcome.conflicts and not outcome.forced:
        return EXIT_CONFLICT
    return EXIT_OK


def _cmd_status(orch: SyncOrchestrator, args: argparse.Namespace) -> int:
    report = orch.status(args.categories)
    _emit(args, format_status(report, args.verbose), status_to_json(report))
    return EXIT_OK


def _cmd_diff(orch: SyncOrchestrator, args: argparse.Namespace) -> int:
    report = orch.diff(with_content=args.content)
    _emit(args, format_diff(report), diff_to_json(report))
    return EXIT_CONFLICT if report.conflicts else EXIT_OK


def _cmd_categories(orch: SyncOrchestrator, args: argparse.Namespace) -> int:
    orch.warm_index()
    counts = orch.categories()
    _emit(args, format_categories(counts), {"categories": counts})
    return EXIT_OK


def _cmd_show(orch: SyncOrchestrator, args: argparse.Namespace) -> int:
    orch.warm_index()
    category = args.category.strip().lower()
    documents = orch.show(category)
    if not documents:
        available = sorted(orch.categories())
        message = f"No documents in category '{category}'."
        if available:
            message += f" Available: {', '.join(available)}"
        _emit(
            args,
            message,
            {"category": category, "documents": [], "available": available},
        )
        return EXIT_ERROR
    _emit(
        args,
        format_documents(category, documents, args.verbose),
        {
            "category": category,
            "documents": [document_to_json(d) for d in documents],
        },
    )
    return EXIT_OK


def _cmd_search(orch: SyncOrchestrator, args: argparse.Namespace) -> int:
    orch.warm_index()
    query = " ".join(args.query)
    results = orch.search(query, args.limit)
    suggestions = [] if results else orch.suggest(query)
    _emit(
        args,
        format_search(query, results, suggestions),
        search_to_json(query, results, suggestions),
    )
    return EXIT_OK


def _cmd_cache(settings: Settings, args: argparse.Namespace) -> int:
    cache = ContentCache(settings.cache_dir, settings.max_cache_bytes)
    state_store = SyncStateStore(settings.cache_dir)

    match args.action:
        case "health":
            health = cache.health_status()
            lines = [
                "Cache is healthy" if health["healthy"] else "Cache has issues:"
            ]
            lines.extend(
                f"  - {issue['type']}: {issue.get('path', issue.get('size', ''))}"
                for issue in health["issues"]
            )
            _emit(args, "\n".join(lines), health)
            return EXIT_OK if health["healthy"] else EXIT_ERROR
        case "stats":
            directory = cache.directory_stats()
            record = state_store.load()
            last_sync = record.stats if record is not None else None
            text = format_cache_stats(cache.stats, directory, last_sync)
            if record is not None:
                text += (
                    f"\n\nSync state: {state_store.state_file_path}"
                    f" (last sync {record.timestamp})"
                )
            _emit(
                args,
                text,
                {
                    "directory": directory,
                    "counters": cache.stats.to_dict(),
                    "last_sync": last_sync.model_dump() if last_sync else None,
                    "state_file": str(state_store.state_file_path)
                    if record is not None
                    else None,
                },
            )
            return EXIT_OK
        case _:
            removed = cache.clear()
            state_cleared = state_store.clear() if args.state else False
            text = f"Removed {removed} cache entries"
            if state_cleared:
                text += " and the sync state"
            _emit(
                args,
                text,
                {"removed": removed, "state_cleared": state_cleared},
            )
            return EXIT_OK


_COMMANDS = {
    "sync": _cmd_sync,
    "update": _cmd_sync,
    "status": _cmd_status,
    "diff": _cmd_diff,
    "categories": _cmd_categories,
    "show": _cmd_show,
    "search": _cmd_search,
}


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return its exit code."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        file_config = _load_file_config(args.project_dir)
    except ConfigurationError as exc:
        setup_logging(debug=args.debug, log_file=args.log_file)
        _report_error(args, exc)
        return EXIT_ERROR

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or file_config.logging.file,
        level=file_config.logging.level,
    )

    try:
        settings = _settings_from_args(args, file_config)
        if args.command == "cache":
            return _cmd_cache(settings, args)
        with SyncOrchestrator(settings) as orch:
            return _COMMANDS[args.command](orch, args)
    except ConflictDetectedError as exc:
        _report_error(args, exc)
        return EXIT_CONFLICT
    except LeylineError as exc:
        logger.debug("Command failed", exc_info=True)
        _report_error(args, exc)
        return EXIT_ERROR


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
