"""CLI entrypoint for sms-patrol."""

from __future__ import annotations

import argparse
import logging
import os
import threading
from collections.abc import Sequence

from .config import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PROXY_TEMPLATE,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_STORAGE_PATH,
    PatrolConfig,
)
from .errors import ConfigError, StorageError
from .io_csv import write_records
from .io_json import export_backup, import_backup
from .logging_utils import configure_logging, get_logger
from .pipeline import build_orchestrator
from .scheduler import Scheduler, format_time_remaining
from .storage import JsonFileStorage
from .validation import ALLOWED_INTERVALS, load_lines_from_file


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description="SMS Patrol - collect phone numbers published on disposable-SMS websites."
    )
    parser.add_argument(
        "--storage", help="Path to the JSON storage file (or set SMS_PATROL_STORAGE)."
    )
    parser.add_argument(
        "--proxy-template",
        help="Proxy relay URL with a {url} placeholder (or set SMS_PATROL_PROXY).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help="Timeout in seconds for each request attempt.",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help="Seconds between scheduler countdown checks.",
    )
    parser.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars.")
    parser.add_argument("--log-file", help="Also write logs to this file.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")

    commands = parser.add_subparsers(dest="command", required=True)

    sources = commands.add_parser("sources", help="Manage scraped websites.")
    source_actions = sources.add_subparsers(dest="action", required=True)
    source_actions.add_parser("list", help="List websites.")
    add = source_actions.add_parser("add", help="Add websites.")
    add.add_argument("urls", nargs="*", help="Website URLs including http:// or https://.")
    add.add_argument("--file", help="Path to URL file (one URL per line).")
    for name in ("remove", "enable", "disable"):
        action = source_actions.add_parser(name, help=f"{name.capitalize()} a website.")
        action.add_argument("url")
    source_actions.add_parser("import-defaults", help="Add the built-in website list.")

    commands.add_parser("scrape", help="Scrape all enabled websites once.")
    probe = commands.add_parser("probe", help="Test one URL without storing results.")
    probe.add_argument("url")

    schedule = commands.add_parser("schedule", help="Configure recurring scrapes.")
    schedule_actions = schedule.add_subparsers(dest="action", required=True)
    schedule_actions.add_parser("status", help="Show scheduler settings.")
    schedule_actions.add_parser("on", help="Activate the scheduler.")
    schedule_actions.add_parser("off", help="Deactivate the scheduler.")
    interval = schedule_actions.add_parser("interval", help="Set the interval in minutes.")
    interval.add_argument("minutes", type=int, choices=ALLOWED_INTERVALS)

    commands.add_parser("run", help="Run the scheduler loop until interrupted.")
    commands.add_parser("stats", help="Show collection statistics.")
    export_csv = commands.add_parser("export-csv", help="Export phone numbers to CSV.")
    export_csv.add_argument("path")
    export_json = commands.add_parser("export-json", help="Export a full JSON backup.")
    export_json.add_argument("path")
    import_json = commands.add_parser("import-json", help="Replace data with a JSON backup.")
    import_json.add_argument("path")
    reset = commands.add_parser("reset", help="Delete all websites and phone numbers.")
    reset.add_argument("--yes", action="store_true", help="Confirm the reset.")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse and pre-validate CLI input."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "sources" and args.action == "add" and not (args.urls or args.file):
        parser.error("Provide at least one URL or --file.")
    if args.command == "reset" and not args.yes:
        parser.error("Refusing to reset without --yes.")
    return args


def namespace_to_config(args: argparse.Namespace) -> PatrolConfig:
    """Convert CLI args to validated PatrolConfig."""
    return PatrolConfig(
        storage_path=args.storage or os.getenv("SMS_PATROL_STORAGE") or DEFAULT_STORAGE_PATH,
        proxy_template=(
            args.proxy_template or os.getenv("SMS_PATROL_PROXY") or DEFAULT_PROXY_TEMPLATE
        ),
        request_timeout=args.timeout,
        poll_interval=args.poll_interval,
        show_progress=not args.no_progress,
    )


def _run_sources(args: argparse.Namespace, storage: JsonFileStorage, logger: logging.Logger) -> int:
    if args.action == "list":
        for source in storage.get_sources():
            state = "enabled" if source.enabled else "disabled"
            last = source.last_scraped_at.isoformat() if source.last_scraped_at else "never"
            print(f"{source.url}\t{state}\tlast scraped: {last}")
        return 0
    if args.action == "add":
        urls = list(args.urls)
        if args.file:
            urls.extend(load_lines_from_file(args.file))
        failed = 0
        for url in urls:
            try:
                storage.add_source(url)
            except ConfigError as exc:
                failed += 1
                logger.warning("%s", exc)
        return 2 if failed == len(urls) else 0
    if args.action == "import-defaults":
        added = storage.import_default_sources()
        logger.info("Imported %d default websites", len(added))
        return 0
    if args.action == "remove":
        found = storage.remove_source(args.url)
    else:
        found = storage.set_source_enabled(args.url, args.action == "enable")
    if not found:
        logger.error("Unknown website: %s", args.url)
        return 2
    return 0


def _run_schedule(args: argparse.Namespace, scheduler: Scheduler) -> int:
    if args.action == "on":
        scheduler.set_active(True)
    elif args.action == "off":
        scheduler.set_active(False)
    elif args.action == "interval":
        scheduler.set_interval(args.minutes)
    state = scheduler.state
    print(f"active: {'yes' if state.active else 'no'}")
    print(f"interval: {state.interval_minutes} minutes")
    if state.next_run_at:
        print(f"next run: {state.next_run_at.isoformat()}")
        print(f"time remaining: {format_time_remaining(scheduler.get_time_remaining())}")
    return 0


def run_command(args: argparse.Namespace, config: PatrolConfig, logger: logging.Logger) -> int:
    """Dispatch one parsed subcommand against the configured storage."""
    storage = JsonFileStorage(config.storage_path, logger=logger)

    if args.command == "sources":
        return _run_sources(args, storage, logger)
    if args.command == "stats":
        stats = storage.get_stats()
        last = stats.last_scraped.isoformat() if stats.last_scraped else "never"
        print(f"total numbers: {stats.total_numbers}")
        print(f"unique numbers: {stats.unique_numbers}")
        print(f"active sources: {stats.active_sources}/{stats.total_sources}")
        print(f"last scraped: {last}")
        return 0
    if args.command == "export-csv":
        count = write_records(args.path, storage.get_phone_records())
        logger.info("Wrote %d phone numbers to %s", count, args.path)
        return 0
    if args.command == "export-json":
        export_backup(storage, args.path)
        logger.info("Wrote backup to %s", args.path)
        return 0
    if args.command == "import-json":
        sources, records = import_backup(storage, args.path)
        logger.info("Imported %d phone numbers and %d websites", records, sources)
        return 0
    if args.command == "reset":
        storage.reset()
        return 0

    orchestrator = build_orchestrator(config, storage=storage, logger=logger)
    if args.command == "probe":
        result = orchestrator.probe_source(args.url)
        logger.info(
            "Strategy %s finished in %d ms", result.strategy, result.timing.duration_ms
        )
        if not result.success:
            logger.error("Probe failed: %s", result.error)
            return 1
        if result.placeholder:
            logger.warning("Source unreachable; these are placeholder numbers")
        for number in result.phone_numbers:
            print(number)
        return 0

    scheduler = Scheduler(
        storage=storage,
        orchestrator=orchestrator,
        logger=logger,
        run_lock_path=storage.run_lock_path,
    )
    if args.command == "schedule":
        return _run_schedule(args, scheduler)
    if args.command == "scrape":
        outcome = scheduler.trigger_manual()
        if outcome is None:
            return 1
        logger.info(outcome.message)
        return 0 if outcome.success else 1
    if args.command == "run":
        stop_event = threading.Event()
        try:
            scheduler.run_forever(stop_event, poll_interval=config.poll_interval)
        except KeyboardInterrupt:
            stop_event.set()
            logger.info("Interrupted")
        return 0
    raise ConfigError(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose, args.log_file)
    logger = get_logger()
    try:
        config = namespace_to_config(args)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    try:
        return run_command(args, config, logger)
    except (ConfigError, StorageError) as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
