"""Batch coordinator: drives scheduled and ad-hoc settlement runs.

For every configuration that is due (scheduled runs) or selected (ad-hoc
runs) the coordinator lists settlements in the lookback window, skips the
ones that are not settled yet or were already recorded, and for the rest:

  1. fetches the transaction lines,
  2. persists the settlement batch,
  3. matches the lines against the ledger,
  4. deposits the matched entries of credit settlements,
  5. writes the statistics back and commits.

Each settlement is committed on its own, so a failure or an early stop keeps
the work already done and the next run resumes where this one left off.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from deposit_reconciler.core.config import Settings
from deposit_reconciler.core.constants import (
    LOW_BUDGET,
    CreditDebit,
    SettlementStatus,
)
from deposit_reconciler.core.exceptions import (
    NoActiveConfigurationError,
    SettlementSourceError,
)
from deposit_reconciler.core.logging import get_logger
from deposit_reconciler.models.configuration import ReconciliationConfiguration
from deposit_reconciler.repositories import (
    ConfigurationRepository,
    SettlementRepository,
)
from deposit_reconciler.schemas.source import SourceSettlement
from deposit_reconciler.services.ingestion.settlement_client import (
    SettlementSourceClient,
)
from deposit_reconciler.services.ledger.store import LedgerStore
from deposit_reconciler.services.notifications.sender import Notifier
from deposit_reconciler.services.notifications.summary import (
    summary_body,
    summary_subject,
)
from deposit_reconciler.services.reconciliation.deposits import DepositGrouper
from deposit_reconciler.services.reconciliation.engine import ReconciliationEngine
from deposit_reconciler.services.reconciliation.results import (
    ConfigurationRunResult,
    RunSummary,
    SettlementOutcome,
)
from deposit_reconciler.services.reconciliation.schedule import (
    ProcessingBudget,
    UnlimitedBudget,
    lookback_window,
    should_run,
)

logger = get_logger(__name__)

ClientFactory = Callable[[ReconciliationConfiguration], SettlementSourceClient]
DateWindow = Callable[[ReconciliationConfiguration], tuple[date, date]]


class _BudgetExhausted(Exception):
    """Internal signal: stop the remainder of the run."""


class BatchCoordinator:
    """Runs settlement processing across configurations."""

    def __init__(
        self,
        db: Session,
        config: Settings,
        ledger: LedgerStore,
        client_factory: Optional[ClientFactory] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.db = db
        self.config = config
        self.ledger = ledger
        self.client_factory = client_factory or (
            lambda configuration: SettlementSourceClient.for_configuration(
                configuration, config
            )
        )
        self.notifier = notifier
        self.clock = clock
        self.configurations = ConfigurationRepository(db)
        self.settlements = SettlementRepository(db)
        self.engine = ReconciliationEngine(db, config, ledger)
        self.grouper = DepositGrouper(db, ledger)

    # ── Public API ───────────────────────────────────────────────────

    def run_scheduled(self, budget: Optional[ProcessingBudget] = None) -> RunSummary:
        """Process every active configuration whose schedule is due now.

        Records last-run status on each configuration that ran and sends one
        summary per distinct notification address.
        """
        summary = RunSummary(started_at=self.clock())
        try:
            configurations = self.configurations.list_active()
        except NoActiveConfigurationError as exc:
            logger.error("Scheduled run aborted: %s", exc)
            summary.errors.append(str(exc))
            summary.finished_at = self.clock()
            return summary

        now = summary.started_at
        interval = timedelta(minutes=self.config.min_rerun_interval_minutes)
        due = []
        for configuration in configurations:
            if should_run(configuration, now, interval):
                due.append(configuration)
            else:
                logger.info(
                    "Configuration %s is not scheduled for %s; skipped",
                    configuration.name,
                    now.strftime("%Y-%m-%d %H:00"),
                )

        today = now.date()
        self._run(
            due,
            lambda configuration: lookback_window(configuration, today),
            budget or UnlimitedBudget(),
            summary,
            record_status=True,
        )
        summary.finished_at = self.clock()
        self._log_summary(summary)
        self._notify(summary)
        return summary

    def run_adhoc(
        self,
        date_from: date,
        date_to: date,
        configuration_id: Optional[uuid.UUID] = None,
        budget: Optional[ProcessingBudget] = None,
    ) -> RunSummary:
        """Fetch and process settlements for an explicit date range.

        Ignores schedules and sends no notification. ``configuration_id``
        selects a single configuration; None processes every active one.
        """
        summary = RunSummary(started_at=self.clock())
        if configuration_id is not None:
            configurations = [self.configurations.require(configuration_id)]
        else:
            configurations = self.configurations.list_active()

        logger.info(
            "Ad-hoc fetch %s..%s for %d configuration(s)",
            date_from,
            date_to,
            len(configurations),
        )
        self._run(
            configurations,
            lambda configuration: (date_from, date_to),
            budget or UnlimitedBudget(),
            summary,
            record_status=False,
        )
        summary.finished_at = self.clock()
        self._log_summary(summary)
        return summary

    def process_settlement(
        self,
        client: SettlementSourceClient,
        source: SourceSettlement,
        configuration: ReconciliationConfiguration,
    ) -> SettlementOutcome:
        """Fetch, persist, match and deposit one settled batch (not committed)."""
        detail = client.get_settlement_detail(source.id)
        batch = self.settlements.create_batch(detail, configuration.id)
        logger.info(
            "Processing settlement %s: %d transactions, %s %s %s",
            batch.external_id,
            len(detail.transactions),
            batch.amount,
            batch.currency,
            batch.credit_debit,
        )

        outcome = self.engine.match(detail.transactions, batch)
        deposit_reference = self.grouper.create_deposit(
            batch, outcome.matched, configuration.deposit_account
        )

        notes = []
        if outcome.unmatched:
            notes.append(outcome.error_note())
        is_credit = batch.credit_debit == CreditDebit.CREDIT.value
        if is_credit and outcome.matched and deposit_reference is None:
            notes.append(
                "Deposit not created: matched payments are no longer in undeposited funds"
            )

        batch.matched_count = len(outcome.matched)
        batch.unmatched_count = len(outcome.unmatched)
        batch.matched_amount = outcome.matched_amount
        batch.deposit_reference = deposit_reference
        batch.error_message = "\n".join(notes) if notes else None
        batch.processed = True
        batch.processed_at = self.clock()
        self.db.flush()

        return SettlementOutcome(
            external_id=batch.external_id,
            matched=len(outcome.matched),
            unmatched=len(outcome.unmatched),
            matched_amount=outcome.matched_amount,
            deposit_reference=deposit_reference,
        )

    # ── Private helpers ──────────────────────────────────────────────

    def _run(
        self,
        configurations: list[ReconciliationConfiguration],
        window: DateWindow,
        budget: ProcessingBudget,
        summary: RunSummary,
        record_status: bool,
    ) -> None:
        for configuration in configurations:
            if budget.remaining() < self.config.budget_configuration_threshold:
                self._stop_for_budget(summary)
                break

            result = ConfigurationRunResult.for_configuration(configuration)
            summary.configurations.append(result)
            date_from, date_to = window(configuration)

            try:
                self._process_configuration(
                    configuration, date_from, date_to, result, budget
                )
            except _BudgetExhausted:
                self._stop_for_budget(summary)
            except Exception as exc:
                self.db.rollback()
                logger.exception(
                    "Configuration %s failed: %s", configuration.name, exc
                )
                result.errors.append(str(exc))
                result.failed = True

            if record_status:
                self.configurations.record_run(
                    configuration, result.status_line(), self.clock()
                )
                self.db.commit()

            if summary.stopped_early:
                break

    def _process_configuration(
        self,
        configuration: ReconciliationConfiguration,
        date_from: date,
        date_to: date,
        result: ConfigurationRunResult,
        budget: ProcessingBudget,
    ) -> None:
        logger.info(
            "Configuration %s: fetching settlements %s..%s",
            configuration.name,
            date_from,
            date_to,
        )
        with self.client_factory(configuration) as client:
            settlements = client.list_settlements(date_from, date_to)
            result.settlements_found = len(settlements)

            for source in settlements:
                if budget.remaining() < self.config.budget_settlement_threshold:
                    raise _BudgetExhausted()

                if source.status != SettlementStatus.DONE.value:
                    logger.info(
                        "Settlement %s is %s; skipped", source.id, source.status
                    )
                    result.settlements_skipped += 1
                    continue
                if self.settlements.exists(source.id):
                    logger.debug("Settlement %s already processed; skipped", source.id)
                    result.settlements_skipped += 1
                    continue

                try:
                    outcome = self.process_settlement(client, source, configuration)
                    self.db.commit()
                except SettlementSourceError:
                    self.db.rollback()
                    raise
                except Exception as exc:
                    self.db.rollback()
                    logger.exception("Settlement %s failed: %s", source.id, exc)
                    result.errors.append(f"Settlement {source.id}: {exc}")
                    continue

                result.absorb(outcome)

    def _stop_for_budget(self, summary: RunSummary) -> None:
        logger.warning(LOW_BUDGET)
        summary.stopped_early = True
        summary.errors.append(LOW_BUDGET)

    def _log_summary(self, summary: RunSummary) -> None:
        logger.info(
            "Run complete: configurations=%d processed=%d skipped=%d "
            "matched=%d unmatched=%d deposits=%d errors=%d",
            len(summary.configurations),
            summary.settlements_processed,
            summary.settlements_skipped,
            summary.transactions_matched,
            summary.transactions_unmatched,
            summary.deposits_created,
            len(summary.all_errors()),
        )

    def _notify(self, summary: RunSummary) -> None:
        if self.notifier is None:
            return
        recipients = summary.recipients()
        if not recipients:
            return

        subject = summary_subject(summary)
        body = summary_body(summary)
        for recipient in recipients:
            try:
                self.notifier.send(recipient, subject, body)
            except Exception:
                logger.exception("Failed to send run summary to %s", recipient)
