"""Command-line entry point for scheduled and ad-hoc runs.

Usage:
    deposit-reconciler run --time-budget 600
    deposit-reconciler fetch --date-from 2024-01-01 --date-to 2024-01-07
    deposit-reconciler fetch --date-from 2024-01-01 --date-to 2024-01-07 \
        --configuration-id 7d0c...
"""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from datetime import date
from typing import Optional

from deposit_reconciler import models  # noqa: F401  (registers tables)
from deposit_reconciler.core.config import Settings, settings
from deposit_reconciler.core.database import Base, engine, session_scope
from deposit_reconciler.core.exceptions import ConfigurationError
from deposit_reconciler.core.logging import get_logger, setup_logging
from deposit_reconciler.services.ledger.store import SqlLedgerStore
from deposit_reconciler.services.notifications.sender import notifier_from_settings
from deposit_reconciler.services.reconciliation.coordinator import BatchCoordinator
from deposit_reconciler.services.reconciliation.results import RunSummary
from deposit_reconciler.services.reconciliation.schedule import DeadlineBudget

logger = get_logger(__name__)


def parse_date(value: str) -> date:
    """argparse type for YYYY-MM-DD dates."""
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got {value!r}")


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deposit-reconciler",
        description="Reconcile processor settlements against the ledger.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run", help="Process every configuration whose schedule is due now"
    )
    run_parser.add_argument(
        "--time-budget",
        type=float,
        default=None,
        help="Seconds available to this run (default: RUN_TIME_BUDGET_SECONDS)",
    )

    fetch_parser = subparsers.add_parser(
        "fetch", help="Fetch and reconcile an explicit date range"
    )
    fetch_parser.add_argument("--date-from", type=parse_date, required=True)
    fetch_parser.add_argument("--date-to", type=parse_date, required=True)
    fetch_parser.add_argument(
        "--configuration-id",
        type=uuid.UUID,
        default=None,
        help="Limit the fetch to one configuration (default: all active)",
    )
    return parser


def _print_summary(summary: RunSummary) -> None:
    print(json.dumps(summary.to_dict(), indent=2, default=str))


def main(argv: Optional[list[str]] = None, config: Settings = settings) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(config.log_level)

    if args.command == "fetch" and args.date_from > args.date_to:
        logger.error("--date-from must not be after --date-to")
        return 2

    Base.metadata.create_all(bind=engine)
    try:
        with session_scope() as db:
            coordinator = BatchCoordinator(
                db=db,
                config=config,
                ledger=SqlLedgerStore(db),
                notifier=notifier_from_settings(config),
            )
            if args.command == "run":
                budget = DeadlineBudget(
                    args.time_budget or config.run_time_budget_seconds
                )
                summary = coordinator.run_scheduled(budget=budget)
            else:
                summary = coordinator.run_adhoc(
                    args.date_from, args.date_to, configuration_id=args.configuration_id
                )
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 2

    _print_summary(summary)
    return 1 if summary.all_errors() else 0


if __name__ == "__main__":
    sys.exit(main())
