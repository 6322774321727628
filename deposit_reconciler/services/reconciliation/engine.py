"""Reconciliation engine: matches one settlement's lines to ledger entries.

For a settlement batch the engine:
  1. Persists every incoming line as an ``ExternalTransaction`` so each one
     is auditable whatever its outcome.
  2. Sends refunds straight to the unmatched pile.
  3. Locates a candidate ledger entry for every other line and validates it.
  4. Writes the verdict (link or reason) back onto the line.

Lines are handled one at a time, so two lines of the same batch can never
race for the same ledger entry. Calling ``match`` twice on one batch would
duplicate lines; the coordinator's at-most-once check prevents that.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from deposit_reconciler.core.config import Settings
from deposit_reconciler.core.constants import REFUND_REQUIRES_MANUAL, TransactionType
from deposit_reconciler.core.logging import get_logger
from deposit_reconciler.models.settlement import SettlementBatch
from deposit_reconciler.models.transaction import ExternalTransaction
from deposit_reconciler.repositories import SettlementRepository
from deposit_reconciler.schemas.ledger import LedgerEntryRecord
from deposit_reconciler.schemas.source import SourceTransaction
from deposit_reconciler.services.ledger.store import LedgerStore
from deposit_reconciler.services.reconciliation.locator import EntryLocator
from deposit_reconciler.services.reconciliation.validator import validate

logger = get_logger(__name__)


@dataclass
class MatchResult:
    """A settlement line paired with the ledger entry it pays."""

    transaction: ExternalTransaction
    entry: LedgerEntryRecord


@dataclass
class UnmatchResult:
    """A settlement line that could not be matched, and why."""

    transaction: ExternalTransaction
    reason: str


@dataclass
class MatchOutcome:
    """Matched and unmatched partitions of one settlement batch."""

    matched: list[MatchResult] = field(default_factory=list)
    unmatched: list[UnmatchResult] = field(default_factory=list)

    @property
    def matched_amount(self) -> Decimal:
        return sum((m.transaction.amount for m in self.matched), Decimal("0"))

    def error_note(self) -> Optional[str]:
        """Per-line reasons in the form stored on the settlement."""
        if not self.unmatched:
            return None
        lines = [
            f"Txn {u.transaction.external_id}: {u.reason}" for u in self.unmatched
        ]
        return "Unmatched transactions:\n" + "\n".join(lines)


def is_refund(transaction) -> bool:
    return (transaction.type or "").strip().lower() == TransactionType.REFUND.value.lower()


class ReconciliationEngine:
    """Matches the lines of one settlement batch against the ledger."""

    def __init__(self, db: Session, config: Settings, ledger: LedgerStore) -> None:
        self.db = db
        self.config = config
        self.ledger = ledger
        self.settlements = SettlementRepository(db)
        self.locator = EntryLocator(
            ledger,
            reference_limit=config.reference_lookup_limit,
            auth_limit=config.auth_lookup_limit,
        )

    # ── Public API ───────────────────────────────────────────────────

    def match(
        self,
        transactions: Iterable[SourceTransaction],
        batch: SettlementBatch,
    ) -> MatchOutcome:
        """Persist and match every line of ``batch``.

        Args:
            transactions: Lines as reported by the settlement source.
            batch: The already-persisted settlement they belong to.

        Returns:
            A ``MatchOutcome`` whose partitions cover every input line.
        """
        outcome = MatchOutcome()

        for source in transactions:
            txn = self.settlements.add_transaction(batch, source)

            if is_refund(txn):
                self._record_unmatched(txn, REFUND_REQUIRES_MANUAL, outcome)
                continue

            entry = self.locator.locate(txn)
            verdict = validate(entry, txn)
            if verdict.valid:
                self._record_matched(txn, entry, outcome)
            else:
                self._record_unmatched(txn, verdict.reason, outcome)

        self.db.flush()
        logger.info(
            "Settlement %s matched: %d matched, %d unmatched",
            batch.external_id,
            len(outcome.matched),
            len(outcome.unmatched),
        )
        return outcome

    # ── Private helpers ──────────────────────────────────────────────

    @staticmethod
    def _record_matched(
        txn: ExternalTransaction,
        entry: LedgerEntryRecord,
        outcome: MatchOutcome,
    ) -> None:
        txn.matched = True
        txn.ledger_entry_id = entry.id
        txn.match_error = None
        outcome.matched.append(MatchResult(transaction=txn, entry=entry))

    @staticmethod
    def _record_unmatched(
        txn: ExternalTransaction,
        reason: str,
        outcome: MatchOutcome,
    ) -> None:
        txn.matched = False
        txn.match_error = reason
        outcome.unmatched.append(UnmatchResult(transaction=txn, reason=reason))
        logger.debug("Txn %s unmatched: %s", txn.external_id, reason)
