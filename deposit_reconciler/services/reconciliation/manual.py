"""Operator-driven matching of lines the engine left unmatched."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from deposit_reconciler.core.constants import LedgerEntryKind
from deposit_reconciler.core.exceptions import RecordNotFoundError
from deposit_reconciler.core.logging import get_logger
from deposit_reconciler.models.settlement import SettlementBatch
from deposit_reconciler.models.transaction import ExternalTransaction
from deposit_reconciler.repositories import SettlementRepository
from deposit_reconciler.schemas.ledger import LedgerEntryRecord
from deposit_reconciler.services.ledger.store import LedgerStore
from deposit_reconciler.services.reconciliation.validator import validate

logger = get_logger(__name__)


@dataclass
class ManualMatchResult:
    success: bool
    transaction: ExternalTransaction
    settlement: SettlementBatch
    error: Optional[str] = None


class ManualMatcher:
    """Binds one external transaction to an operator-chosen ledger entry."""

    def __init__(self, db: Session, ledger: LedgerStore) -> None:
        self.db = db
        self.ledger = ledger
        self.settlements = SettlementRepository(db)

    def match(self, transaction_id: uuid.UUID, ledger_entry_id: str) -> ManualMatchResult:
        """Validate and persist a manual match, then recompute the settlement.

        ``ledger_entry_id`` may be the entry's internal id or its document
        number. Validation is the same as for automatic matches.

        Raises:
            RecordNotFoundError: If the transaction does not exist.
        """
        txn = self.settlements.get_transaction(transaction_id)
        if txn is None:
            raise RecordNotFoundError(f"External transaction not found: {transaction_id}")
        batch = txn.settlement

        if txn.matched:
            return ManualMatchResult(
                success=False,
                transaction=txn,
                settlement=batch,
                error=f"Transaction is already matched to ledger entry {txn.ledger_entry_id}",
            )

        entry = self._resolve_entry(ledger_entry_id.strip())
        if entry is None:
            return ManualMatchResult(
                success=False,
                transaction=txn,
                settlement=batch,
                error=f"Ledger entry not found: {ledger_entry_id}",
            )

        verdict = validate(entry, txn)
        if not verdict.valid:
            return ManualMatchResult(
                success=False, transaction=txn, settlement=batch, error=verdict.reason
            )

        txn.matched = True
        txn.ledger_entry_id = entry.id
        txn.match_error = None
        self.settlements.recompute_counts(batch)
        self.db.commit()

        logger.info(
            "Manual match: txn %s -> ledger entry %s (settlement %s)",
            txn.external_id,
            entry.id,
            batch.external_id,
        )
        return ManualMatchResult(success=True, transaction=txn, settlement=batch)

    def _resolve_entry(self, key: str) -> Optional[LedgerEntryRecord]:
        entry = self.ledger.get(key)
        if entry is not None:
            return entry
        for kind in (LedgerEntryKind.CUSTOMER_PAYMENT, LedgerEntryKind.CASH_SALE):
            rows = self.ledger.find_by_document_number(key, kind, limit=1)
            if rows:
                return rows[0]
        return None
