"""Operator commands for the benefit cycle engine.

    benefit-cycles reconcile [--user-id N ...]
    benefit-cycles repair-duplicates [--force] [--batch-size N]
    benefit-cycles migrate PLAN.yaml [--apply]
    benefit-cycles upgrade-db
"""
import argparse
import json
import logging
import signal
import sys

from benefit_cycles.config import settings
from benefit_cycles.database import SessionLocal, run_migrations
from benefit_cycles.services.benefit_migration import load_migration_plan, run_benefit_migration
from benefit_cycles.services.duplicate_repair import repair_duplicate_statuses
from benefit_cycles.services.status_reconciler import reconcile_benefit_statuses

logger = logging.getLogger(__name__)


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_reconcile(args) -> int:
    db = SessionLocal()
    try:
        summary = reconcile_benefit_statuses(db, user_ids=args.user_id)
    finally:
        db.close()
    _print_json(summary)
    return 1 if summary["cards_failed"] or summary["benefits_failed"] else 0


def cmd_repair_duplicates(args) -> int:
    stop_requested = False

    def _request_stop(signum, frame):
        nonlocal stop_requested
        stop_requested = True
        logger.warning("Stop requested; finishing the current batch")

    previous = signal.signal(signal.SIGINT, _request_stop)
    db = SessionLocal()
    try:
        report = repair_duplicate_statuses(
            db,
            dry_run=not args.force,
            confirm=args.force,
            batch_size=args.batch_size,
            should_stop=lambda: stop_requested,
        )
    finally:
        db.close()
        signal.signal(signal.SIGINT, previous)

    print(report.model_dump_json(indent=2))
    if report.dry_run and (report.rows_to_delete or report.rows_to_normalize):
        print("Dry run only. Re-run with --force to apply.", file=sys.stderr)
    return 1 if report.cancelled else 0


def cmd_migrate(args) -> int:
    plan = load_migration_plan(args.plan)
    db = SessionLocal()
    try:
        summary = run_benefit_migration(db, plan, dry_run=not args.apply)
    finally:
        db.close()
    _print_json(summary)
    return 0


def cmd_upgrade_db(args) -> int:
    run_migrations()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="benefit-cycles",
        description="Maintain credit card benefit cycles and their status records",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Create missing current-cycle status records")
    reconcile.add_argument(
        "--user-id",
        type=int,
        action="append",
        help="Only reconcile this user (repeatable)",
    )
    reconcile.set_defaults(func=cmd_reconcile)

    repair = subparsers.add_parser("repair-duplicates", help="Find and remove duplicate cycle records")
    repair.add_argument(
        "--force",
        action="store_true",
        help="Apply deletions and normalization (default is a dry run)",
    )
    repair.add_argument(
        "--batch-size",
        type=int,
        default=settings.repair_batch_size,
        help="Rows per committed batch",
    )
    repair.set_defaults(func=cmd_repair_duplicates)

    migrate = subparsers.add_parser("migrate", help="Roll out new catalog benefits from a YAML plan")
    migrate.add_argument("plan", help="Path to the migration plan YAML file")
    migrate.add_argument(
        "--apply",
        action="store_true",
        help="Commit the changes (default is a dry run)",
    )
    migrate.set_defaults(func=cmd_migrate)

    upgrade = subparsers.add_parser("upgrade-db", help="Apply database migrations")
    upgrade.set_defaults(func=cmd_upgrade_db)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except Exception:
        logger.exception("Command %s failed", args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
