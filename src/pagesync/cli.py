"""Command line entry point for pagesync.

Commands:
    plan MANIFEST   Dry-run plan for a manifest of parsed documents
    tree MANIFEST   Print the hierarchy built from a manifest
    status          Show the persisted sync state
    init            Write a starter ``pagesync.yml`` into the docs root

A manifest is the JSON output of the parsing layer: either a list of
document records or an object with a ``documents`` list.  Each record
carries ``relative_path``, ``title`` and optionally ``weight``,
``is_index``, ``content_hash`` and ``remote_id_hint``.
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
from .config import Settings, load_settings
from .config_loader import ensure_config, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config
from .errors import PageSyncError
from .hierarchy import resolver
from .hierarchy.builder import HierarchyBuilder
from .hierarchy.models import DocumentRecord, HierarchyResult
from .logger import setup_logging
from .sync.planner import SyncPlanner
from .sync.reporter import format_dry_run_preview, plan_to_json
from .sync.state import SyncStateStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


# ---------------------------------------------------------------------------
# Manifest loading
# ---------------------------------------------------------------------------


def load_manifest(path: Path) -> list[DocumentRecord]:
    """Read document records from a JSON manifest.

    Raises:
        OSError: The file cannot be read.
        ValueError: The file is not valid JSON or has the wrong shape
            (pydantic ``ValidationError`` is a ``ValueError``).
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("documents")
    if not isinstance(data, list):
        raise ValueError(
            f"Manifest {path} must be a list of documents or an object "
            "with a 'documents' list"
        )
    return [DocumentRecord.model_validate(item) for item in data]


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pagesync",
        description="Plan the sync of a local document tree to a remote page hierarchy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show what a sync would change
  pagesync --space DOCS plan build/manifest.json

  # Same, as JSON, ignoring content hashes
  pagesync --space DOCS plan build/manifest.json --force --json

  # Inspect the hierarchy built from a manifest
  pagesync tree build/manifest.json

  # Show the persisted state
  pagesync --space DOCS status

Settings can also come from PAGESYNC_* environment variables, a .env file,
or pagesync.yml in the docs root.
        """,
    )
    parser.add_argument(
        "--docs-root",
        default=".",
        help="Documentation root; the state file and pagesync.yml live here (default: .)",
    )
    parser.add_argument(
        "--space",
        help="Remote space key (takes precedence over PAGESYNC_SPACE_KEY and config files)",
    )
    parser.add_argument(
        "--root-page-id",
        help="Remote page the tree is published under (takes precedence over PAGESYNC_ROOT_PAGE_ID)",
    )
    parser.add_argument(
        "--state-file",
        help="State file path, relative to the docs root (default: .pagesync/state.json)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also write log records to this file")
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        help="Log record format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"pagesync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    plan_parser = sub.add_parser("plan", help="Show the sync plan (dry run)")
    plan_parser.add_argument("manifest", type=Path, help="JSON document manifest")
    plan_parser.add_argument(
        "--force",
        action="store_true",
        help="Update every tracked page regardless of content hash",
    )
    plan_parser.add_argument(
        "--json", action="store_true", help="Print the plan as JSON"
    )
    plan_parser.add_argument(
        "--no-delete",
        action="store_true",
        help="Keep remote pages whose document disappeared",
    )

    tree_parser = sub.add_parser("tree", help="Print the page hierarchy")
    tree_parser.add_argument("manifest", type=Path, help="JSON document manifest")

    status_parser = sub.add_parser("status", help="Show the persisted sync state")
    status_parser.add_argument(
        "--json", action="store_true", help="Print the state as JSON"
    )

    sub.add_parser("init", help="Write a starter pagesync.yml")

    return parser


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _settings(args: argparse.Namespace, unified: UnifiedConfig) -> Settings:
    return load_settings(
        docs_root=Path(args.docs_root),
        space_key=args.space,
        root_page_id=args.root_page_id,
        state_file=args.state_file,
        delete_orphans=False if getattr(args, "no_delete", False) else None,
        unified=unified,
    )


def _build_hierarchy(
    manifest: Path, root_title: str, index_file_name: str
) -> HierarchyResult:
    documents = load_manifest(manifest)
    builder = HierarchyBuilder(
        root_title=root_title, index_file_name=index_file_name
    )
    return builder.build(documents)


def cmd_plan(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    settings = _settings(args, unified)
    hierarchy = _build_hierarchy(
        args.manifest, settings.default_root_title, settings.index_file_name
    )

    store = SyncStateStore(settings.state_path)
    state = store.load(settings.space_key, settings.root_page_id)

    planner = SyncPlanner(delete_orphans=settings.delete_orphans)
    plan = planner.plan(
        hierarchy, state, root_remote_id=settings.root_page_id, force=args.force
    )

    if args.json:
        print(json.dumps(plan_to_json(plan), indent=2))
    else:
        print(format_dry_run_preview(plan))
        for orphan in hierarchy.orphans:
            print(
                f"warning: {orphan.document.relative_path} not placed: "
                f"{orphan.reason}",
                file=sys.stderr,
            )
    return EXIT_OK


def cmd_tree(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    # No space key needed here, so the config file is read directly.
    hierarchy = _build_hierarchy(
        args.manifest,
        unified.sync.default_root_title,
        unified.sync.index_file_name,
    )
    stats = resolver.statistics(hierarchy)

    print(hierarchy.print_tree())
    print("")
    print(
        f"Nodes: {stats.total_nodes} ({stats.real_nodes} pages, "
        f"{stats.virtual_nodes} virtual)"
    )
    print(f"Max depth: {stats.max_depth}")

    if hierarchy.orphans:
        print("")
        print("Orphaned documents:")
        for orphan in hierarchy.orphans:
            print(f"  {orphan.document.relative_path}: {orphan.reason}")

    problems = resolver.validate(hierarchy)
    if problems:
        print("")
        print("Validation problems:")
        for problem in problems:
            print(f"  {problem}")
        return EXIT_FAILURE
    return EXIT_OK


def cmd_status(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    settings = _settings(args, unified)
    store = SyncStateStore(settings.state_path)
    if not store.exists():
        print(f"No sync state at {settings.state_path}")
        return EXIT_OK

    state = store.load(settings.space_key, settings.root_page_id)
    if args.json:
        print(state.to_json())
        return EXIT_OK

    root = state.root_page_id or "(space root)"
    if unified.space.root_page_title:
        root += f" ({unified.space.root_page_title})"
    print(f"Space: {state.space_key}")
    print(f"Root page: {root}")
    print(f"Last sync: {state.last_sync or 'never'}")
    print(f"Tracked pages: {len(state.pages)}")
    for path in state.tracked_paths():
        page = state.pages[path]
        print(f"  {path} -> {page.remote_id or '?'} (v{page.version})")
    return EXIT_OK


def cmd_init(args: argparse.Namespace, unified: UnifiedConfig) -> int:
    path = ensure_config(Path(args.docs_root))
    print(f"Config: {path}")
    return EXIT_OK


_COMMANDS = {
    "plan": cmd_plan,
    "tree": cmd_tree,
    "status": cmd_status,
    "init": cmd_init,
}


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the exit code."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        unified = build_config(load_hierarchical_config(Path(args.docs_root)))
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        log_format=args.log_format or unified.logging.format,
        level=unified.logging.level,
    )

    try:
        return _COMMANDS[args.command](args, unified)
    except ValidationError as exc:
        print(f"Error: invalid manifest: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    except PageSyncError as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
