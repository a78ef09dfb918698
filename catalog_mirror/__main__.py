"""Command line interface for the catalog mirror.

Usage:
    python -m catalog_mirror sync daily
    python -m catalog_mirror sync monthly --skip-characters
    python -m catalog_mirror sync full --batch-size 100
    python -m catalog_mirror rotation status
    python -m catalog_mirror rotation reset 0
    python -m catalog_mirror strategy list
    python -m catalog_mirror stats
    python -m catalog_mirror config show

Exit codes:
    0   success
    1   invalid arguments, configuration or unexpected failure
    2   run completed but recorded errors
    130 interrupted
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Callable, Dict, List, Optional

from catalog_mirror import __version__
from catalog_mirror.engine import STRATEGY_ALIASES, MirrorEngine, create_engine
from catalog_mirror.lib.config import MirrorConfig, load_config
from catalog_mirror.lib.env import load_env_file
from catalog_mirror.lib.errors import MirrorError
from catalog_mirror.lib.observability import setup_logging
from catalog_mirror.models import SyncOptions, SyncResult
from catalog_mirror.strategies.monthly_rotation import (
    ROTATION_BUCKETS,
    get_rotation_status,
    reset_rotation_month,
)

logger = logging.getLogger("catalog_mirror")

EngineFactory = Callable[[MirrorConfig], MirrorEngine]

MAX_PRINTED_ERRORS = 10


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-mirror",
        description="Mirror the Bangumi catalog into a local document store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Pick up subjects added since the last run
    catalog-mirror sync daily

    # Refresh this year's and next year's subjects, metadata only
    catalog-mirror sync yearly --skip-characters

    # Show and move the monthly rotation cursor
    catalog-mirror rotation status
    catalog-mirror rotation reset 3
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", "-c", help="YAML configuration file")
    parser.add_argument("--env-file", help="Load environment variables from this .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument("--log-file", help="Write logs to a file in addition to console")

    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser("sync", help="Run a sync strategy")
    sync.add_argument("strategy", choices=sorted(STRATEGY_ALIASES), help="Strategy to run")
    sync.add_argument("--cooldown-days", type=int, help="Override the character refresh cooldown")
    sync.add_argument("--batch-size", type=int, help="Override the listing page size")
    sync.add_argument(
        "--skip-characters",
        action="store_true",
        help="Only update subject metadata",
    )

    rotation = commands.add_parser("rotation", help="Inspect or move the monthly rotation cursor")
    rotation_commands = rotation.add_subparsers(dest="rotation_command", required=True)
    rotation_commands.add_parser("status", help="Show the current rotation month")
    reset = rotation_commands.add_parser("reset", help="Set the rotation month")
    reset.add_argument("month", type=int, help="0 for undated subjects, 1-12 for a month")

    strategy = commands.add_parser("strategy", help="Inspect or stop strategies")
    strategy_commands = strategy.add_subparsers(dest="strategy_command", required=True)
    strategy_commands.add_parser("list", help="List registered strategies")
    stop = strategy_commands.add_parser("stop", help="Request a strategy to stop")
    stop.add_argument("name", help="Strategy name, e.g. DailyIncremental")
    strategy_commands.add_parser("stop-all", help="Request every running strategy to stop")

    commands.add_parser("stats", help="Show document store statistics")

    config = commands.add_parser("config", help="Configuration commands")
    config_commands = config.add_subparsers(dest="config_command", required=True)
    config_commands.add_parser("show", help="Print the resolved configuration")

    return parser


def print_result(name: str, result: SyncResult) -> None:
    """Print a sync result in a readable format."""
    print()
    print("=" * 60)
    print(f"Strategy: {name}")
    print("=" * 60)
    print(f"Subjects processed:   {result.subjects_processed}")
    print(f"Characters processed: {result.characters_processed}")
    print(f"Duration:             {result.duration_ms / 1000:.2f}s")
    if result.errors:
        print(f"Errors:               {len(result.errors)}")
        for record in result.errors[:MAX_PRINTED_ERRORS]:
            print(f"  [{record.id}] {record.error}")
        if len(result.errors) > MAX_PRINTED_ERRORS:
            print(f"  ... and {len(result.errors) - MAX_PRINTED_ERRORS} more")
    print("=" * 60)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def cmd_sync(engine: MirrorEngine, args: argparse.Namespace) -> int:
    name = STRATEGY_ALIASES[args.strategy]
    options = SyncOptions(
        cooldown_days=args.cooldown_days,
        batch_size=args.batch_size,
        skip_characters=args.skip_characters,
    )
    result = engine.manager.execute_strategy(name, options)
    print_result(name, result)
    return 0 if result.succeeded else 2


def cmd_rotation(engine: MirrorEngine, args: argparse.Namespace) -> int:
    if args.rotation_command == "reset":
        reset_rotation_month(engine.rotation_cursor, args.month)
        print(f"Rotation month reset to {engine.rotation_cursor.status().display_name}")
        return 0

    status = get_rotation_status(engine.rotation_cursor)
    print(f"Current month: {status.display_name} ({status.current_month})")
    print(f"Next month:    {status.next_display_name} ({status.next_month})")
    print(f"Progress:      {status.current_month}/{ROTATION_BUCKETS}")
    return 0


def cmd_strategy(engine: MirrorEngine, args: argparse.Namespace) -> int:
    manager = engine.manager
    if args.strategy_command == "stop":
        if not manager.stop_strategy(args.name):
            print(f"Strategy {args.name} not found")
            return 1
        print(f"Stop requested for {args.name}")
        return 0

    if args.strategy_command == "stop-all":
        manager.stop_all_strategies()
        print("Stop requested for all running strategies")
        return 0

    infos: List[Dict[str, Any]] = manager.get_all_strategy_info()
    for info in infos:
        state = "running" if info["is_running"] else "idle"
        progress = info["progress"]
        print(f"{info['name']:<18} {state:<8} {progress['percentage']:>3}%  {info['description']}")
    return 0


def cmd_stats(engine: MirrorEngine, args: argparse.Namespace) -> int:
    _print_json(engine.store.statistics())
    return 0


COMMANDS: Dict[str, Callable[[MirrorEngine, argparse.Namespace], int]] = {
    "sync": cmd_sync,
    "rotation": cmd_rotation,
    "strategy": cmd_strategy,
    "stats": cmd_stats,
}


def main(argv: Optional[List[str]] = None, *, engine_factory: EngineFactory = create_engine) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, json_format=args.json_logs, log_file=args.log_file)

    if args.env_file:
        load_env_file(args.env_file, override=True)
    else:
        load_env_file()

    try:
        config = load_config(args.config)
    except MirrorError as e:
        logger.error("%s", e)
        return 1

    if args.command == "config":
        _print_json(config.to_display_dict())
        return 0

    engine: Optional[MirrorEngine] = None
    try:
        engine = engine_factory(config)
        return COMMANDS[args.command](engine, args)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except MirrorError as e:
        logger.error("%s", e)
        return 1
    except Exception as e:
        logger.exception("Command failed: %s", e)
        return 1
    finally:
        if engine is not None:
            engine.close()


if __name__ == "__main__":
    sys.exit(main())
