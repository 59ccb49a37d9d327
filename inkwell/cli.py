"""
Inkwell CLI — database bootstrap and maintenance commands.

Commands:
- inkwell init      — Create the database tables
- inkwell sweep     — Run the version retention sweep once
- inkwell schedule  — Show the Celery Beat maintenance schedule
- inkwell logs      — Read back structured log entries
"""

from __future__ import annotations

import argparse
import json
import logging
from typing import Optional

from inkwell.engine.errors import InkwellConfigError

logger = logging.getLogger("inkwell.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="inkwell",
        description="Inkwell — document persistence & version history",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # inkwell init
    init_parser = subparsers.add_parser("init", help="Create database tables")
    init_parser.add_argument("--config", help="Path to inkwell.yaml (default: auto-discover)")

    # inkwell sweep
    sweep_parser = subparsers.add_parser("sweep", help="Run the retention sweep once")
    sweep_parser.add_argument("--config", help="Path to inkwell.yaml (default: auto-discover)")

    # inkwell schedule
    schedule_parser = subparsers.add_parser("schedule", help="Show the Celery Beat schedule")
    schedule_parser.add_argument("--config", help="Path to inkwell.yaml (default: auto-discover)")

    # inkwell logs
    logs_parser = subparsers.add_parser("logs", help="Show structured log entries, newest first")
    logs_parser.add_argument("object_type", help="documents, blocks, versions, retention, comments or system")
    logs_parser.add_argument("--category", default="execution", help="Log category (default: execution)")
    logs_parser.add_argument("--days", type=int, default=7, help="How many days back to read (default: 7)")
    logs_parser.add_argument("--document", type=int, help="Only entries for this document id")
    logs_parser.add_argument("--event", help="Only entries with this event name")
    logs_parser.add_argument("--limit", type=int, default=50, help="Maximum entries (default: 50)")
    logs_parser.add_argument("--config", help="Path to inkwell.yaml (default: auto-discover)")

    args = parser.parse_args(argv)

    if args.command == "init":
        return cmd_init(args)
    elif args.command == "sweep":
        return cmd_sweep(args)
    elif args.command == "schedule":
        return cmd_schedule(args)
    elif args.command == "logs":
        return cmd_logs(args)
    else:
        parser.print_help()
        return 0


def _load_config(path: Optional[str]):
    from inkwell.engine.config import load_platform_config

    try:
        config = load_platform_config(path)
    except InkwellConfigError as e:
        print(f"[ERROR] Failed to load config: {e}")
        return None
    logging.basicConfig(level=config.logging.level)
    return config


def _init_database(config, create_tables: bool) -> bool:
    from sqlalchemy.exc import SQLAlchemyError

    from inkwell.db.session import init_db

    db = config.database
    try:
        init_db(
            db.url,
            create_tables=create_tables,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            pool_pre_ping=db.pool_pre_ping,
        )
    except SQLAlchemyError as e:
        print(f"[ERROR] Database initialization failed: {e}")
        return False
    return True


def cmd_init(args: argparse.Namespace) -> int:
    """Load config and create all tables."""
    config = _load_config(args.config)
    if config is None:
        return 1
    print(f"[OK] Loaded config ({config.environment})")

    if not _init_database(config, create_tables=True):
        return 1
    print("[OK] Database tables created")
    return 0


def cmd_sweep(args: argparse.Namespace) -> int:
    """Run the retention sweep in-process and print its report."""
    config = _load_config(args.config)
    if config is None:
        return 1
    if not _init_database(config, create_tables=False):
        return 1

    from inkwell.db.session import close_all_sessions
    from inkwell.documents.retention import RetentionService
    from inkwell.engine.logging import init_logging, shutdown_logging

    queue_cfg = config.logging.async_queue
    init_logging(
        log_dir=config.logging.directory,
        flush_interval_ms=queue_cfg.flush_interval_ms,
        flush_batch_size=queue_cfg.flush_batch_size,
        max_queue_size=queue_cfg.max_queue_size,
    )
    try:
        report = RetentionService(config=config).sweep_all(trigger="cli")
    finally:
        shutdown_logging()
        close_all_sessions()

    print(json.dumps(report.to_dict(), indent=2))
    return 1 if report.failures else 0


def cmd_schedule(args: argparse.Namespace) -> int:
    """Print each Celery Beat entry with its cron expression."""
    config = _load_config(args.config)
    if config is None:
        return 1

    from inkwell.process.scheduler import MaintenanceScheduler

    scheduler = MaintenanceScheduler()
    scheduler.initialize(config)
    beat = scheduler.configure_celery_beat()
    for sched in scheduler.registry.get_enabled_schedules():
        if sched["name"] in beat:
            print(f"{sched['name']}: {sched['cron']} ({sched['timezone']}) → {sched['task']}")
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    """Print matching JSONL log entries from the configured log directory."""
    config = _load_config(args.config)
    if config is None:
        return 1

    from datetime import date, timedelta

    from inkwell.engine.logging import OBJECT_TYPE_CATEGORIES, FileLogger

    categories = OBJECT_TYPE_CATEGORIES.get(args.object_type)
    if categories is None:
        print(f"[ERROR] Unknown object type '{args.object_type}'. Choose from: {', '.join(OBJECT_TYPE_CATEGORIES)}")
        return 1
    if args.category not in categories:
        print(f"[ERROR] '{args.object_type}' has no '{args.category}' logs. Choose from: {', '.join(categories)}")
        return 1

    filters = {}
    if args.document is not None:
        filters["document_id"] = args.document
    if args.event:
        filters["event"] = args.event

    today = date.today()
    entries = FileLogger(log_dir=config.logging.directory).query(
        args.object_type,
        args.category,
        start_date=today - timedelta(days=max(args.days, 1) - 1),
        end_date=today,
        filters=filters or None,
        limit=args.limit,
    )
    for entry in entries:
        print(json.dumps(entry, default=str))
    if not entries:
        print("No matching log entries.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
