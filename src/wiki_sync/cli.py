"""Command-line interface: ``wiki-sync``.

Commands:

- ``run [--scheduled] [--stream]`` -- run a sync (optionally cron-gated).
- ``status`` -- active run, recent runs, schedule.
- ``unlock`` -- fail a run left ``running`` by a crashed process.
- ``include add|remove|list`` -- manage the inclusion allow-list.
- ``tree`` -- show the included part of the repository tree.
- ``settings get|set|list`` -- per-installation settings (secrets masked).
- ``seed-prompts [--force]`` -- store the default prompts as settings.
- ``init-config`` -- write a starter YAML config file.

Exit codes: 0 success, 1 failure, 2 refused (another run holds the lock).
"""

import argparse
import asyncio
import logging
import sys

from . import __version__
from .config import Config
from .config_loader import ensure_config, load_runtime_config
from .core.async_utils import run_sync
from .core.errors import WikiSyncError
from .core.retry import with_retry
from .logger import setup_logging
from .settings import (
    SettingKey,
    mask_secret,
    resolve_sync_settings,
    seed_default_prompts,
)
from .source.tree import format_tree
from .storage import SqliteStore
from .sync.engine import SyncEngine, default_source_factory
from .sync.models import SyncStatus, TriggerType
from .sync.reporter import format_run_history, format_run_report
from .validators import validate_inclusion_pattern

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_REFUSED = 2


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace, store: SqliteStore, config: Config) -> int:
    engine = SyncEngine(store, config)
    trigger = TriggerType.MANUAL
    if args.scheduled:
        if not engine.is_due():
            print("Scheduled sync is not due (or no schedule is configured).")
            return EXIT_OK
        trigger = TriggerType.SCHEDULED

    def stream(line: str) -> None:
        print(line, flush=True)

    run = asyncio.run(engine.run(trigger, on_log=stream if args.stream else None))
    if run is None:
        print("A sync run is already in progress.", file=sys.stderr)
        return EXIT_REFUSED
    print(format_run_report(run))
    return EXIT_OK if run.status == SyncStatus.COMPLETED else EXIT_FAILED


def _cmd_status(args: argparse.Namespace, store: SqliteStore, config: Config) -> int:
    running = store.get_running_run()
    schedule = resolve_sync_settings(store, config).cron_schedule
    if running:
        print(
            f"Active run: #{running.id} ({running.trigger_type.value}) "
            f"since {running.started_at.isoformat(timespec='seconds')}"
        )
    else:
        print("Active run: none")
    print(f"Schedule:   {schedule or 'not configured'}")
    if schedule:
        print(f"Due:        {'yes' if SyncEngine(store, config).is_due() else 'no'}")
    print("")
    print(format_run_history(store.list_runs(args.limit)))
    return EXIT_OK


def _cmd_unlock(args: argparse.Namespace, store: SqliteStore, config: Config) -> int:
    run_id = store.fail_running_run(args.message)
    if run_id is None:
        print("No run is in progress.")
    else:
        print(f"Marked run #{run_id} as failed; the sync lock is free.")
    return EXIT_OK


def _cmd_include(args: argparse.Namespace, store: SqliteStore, config: Config) -> int:
    match args.include_command:
        case "add":
            is_valid, error = validate_inclusion_pattern(args.pattern)
            if not is_valid:
                print(error, file=sys.stderr)
                return EXIT_FAILED
            store.add_inclusion_pattern(args.pattern)
            print(f"Included: {args.pattern}")
        case "remove":
            if not store.remove_inclusion_pattern(args.pattern):
                print(f"Not included: {args.pattern}", file=sys.stderr)
                return EXIT_FAILED
            print(f"Removed: {args.pattern}")
        case _:
            patterns = store.get_inclusion_patterns()
            if not patterns:
                print("No inclusion patterns; nothing is synchronized.")
            for pattern in patterns:
                print(pattern)
    return EXIT_OK


def _cmd_tree(args: argparse.Namespace, store: SqliteStore, config: Config) -> int:
    settings = resolve_sync_settings(store, config)
    client = default_source_factory(settings)
    entries = asyncio.run(run_sync(with_retry, client.fetch_tree))
    patterns = store.get_inclusion_patterns()
    if not patterns:
        print("No inclusion patterns; nothing is synchronized.")
        return EXIT_OK
    print(format_tree(entries, patterns))
    return EXIT_OK


def _cmd_settings(args: argparse.Namespace, store: SqliteStore, config: Config) -> int:
    match args.settings_command:
        case "set":
            store.set_setting(SettingKey(args.key).value, args.value)
            print(f"Set {args.key}")
        case "get":
            value = store.get_setting(SettingKey(args.key).value)
            if value is None:
                print(f"{args.key} is not set", file=sys.stderr)
                return EXIT_FAILED
            print(mask_secret(args.key, value))
        case _:
            for key in SettingKey:
                value = store.get_setting(key.value)
                if value is None:
                    continue
                shown = mask_secret(key.value, value)
                if "\n" in shown:
                    shown = shown.splitlines()[0] + " ..."
                print(f"{key.value} = {shown}")
    return EXIT_OK


def _cmd_seed_prompts(
    args: argparse.Namespace, store: SqliteStore, config: Config
) -> int:
    written = seed_default_prompts(store, overwrite=args.force)
    if written:
        print("Seeded: " + ", ".join(written))
    else:
        print("All prompts already set; use --force to overwrite.")
    return EXIT_OK


COMMANDS = {
    "run": _cmd_run,
    "status": _cmd_status,
    "unlock": _cmd_unlock,
    "include": _cmd_include,
    "tree": _cmd_tree,
    "settings": _cmd_settings,
    "seed-prompts": _cmd_seed_prompts,
}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wiki-sync",
        description="Keep an internal wiki in sync with a source repository",
    )
    parser.add_argument(
        "--db",
        help="SQLite database path (takes precedence over WIKI_SYNC_DB and config files)",
    )
    parser.add_argument(
        "--repo-url", help="Repository URL or owner/repo (overrides GITHUB_REPO_URL)"
    )
    parser.add_argument("--branch", help="Branch to sync")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--version", action="version", version=f"wiki-sync version {__version__}"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a sync now")
    run.add_argument(
        "--scheduled",
        action="store_true",
        help="Only run if the cron schedule (sync_cron_schedule) is due",
    )
    run.add_argument(
        "--stream", action="store_true", help="Print progress lines as the run advances"
    )

    status = sub.add_parser("status", help="Show the active run and recent runs")
    status.add_argument("--limit", type=int, default=10, help="Runs to list")

    unlock = sub.add_parser(
        "unlock", help="Fail a run left running by a crashed process"
    )
    unlock.add_argument(
        "--message",
        default="Released manually after an interrupted run",
        help="Error message recorded on the released run",
    )

    include = sub.add_parser("include", help="Manage the inclusion allow-list")
    include_sub = include.add_subparsers(dest="include_command", required=True)
    include_sub.add_parser("list", help="List inclusion patterns")
    for action in ("add", "remove"):
        cmd = include_sub.add_parser(action, help=f"{action.capitalize()} a pattern")
        cmd.add_argument("pattern", help="Path or directory, e.g. src/billing")

    sub.add_parser("tree", help="Show the included part of the repository tree")

    settings = sub.add_parser("settings", help="Per-installation settings")
    settings_sub = settings.add_subparsers(dest="settings_command", required=True)
    settings_sub.add_parser("list", help="List settings (secrets masked)")
    keys = [k.value for k in SettingKey]
    get = settings_sub.add_parser("get", help="Show one setting")
    get.add_argument("key", choices=keys)
    set_ = settings_sub.add_parser("set", help="Store one setting")
    set_.add_argument("key", choices=keys)
    set_.add_argument("value")

    seed = sub.add_parser("seed-prompts", help="Store the default prompts")
    seed.add_argument(
        "--force", action="store_true", help="Overwrite prompts that are already set"
    )

    sub.add_parser("init-config", help="Write a starter config file if none exists")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point; returns the process exit code."""
    args = build_parser().parse_args(argv)
    setup_logging(mode="cli", debug=args.debug, log_file=args.log_file)

    if args.command == "init-config":
        print(f"Config file: {ensure_config()}")
        return EXIT_OK

    try:
        config, sources = load_runtime_config(
            {
                "db_path": args.db,
                "repo_url": args.repo_url,
                "branch": args.branch,
                "debug": args.debug,
            }
        )
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_FAILED
    logger.debug("Configuration loaded from: %s", ", ".join(sources))

    store = SqliteStore(config.db_path)
    try:
        return COMMANDS[args.command](args, store, config)
    except WikiSyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
