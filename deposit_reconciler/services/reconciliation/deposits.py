"""Deposit grouper: turns matched lines into ledger deposits.

The ledger's undeposited set can shrink between matching and grouping
(entries get deposited through other channels), so every deposit is built
from a fresh read of that set intersected with the matched entries. An empty
intersection means nothing is deposited and no line is touched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from deposit_reconciler.core.constants import (
    NO_PENDING_DEPOSIT,
    NO_UNDEPOSITED_PAYMENTS,
    CreditDebit,
)
from deposit_reconciler.core.logging import get_logger
from deposit_reconciler.models.settlement import SettlementBatch
from deposit_reconciler.models.transaction import ExternalTransaction
from deposit_reconciler.repositories import SettlementRepository
from deposit_reconciler.services.ledger.store import LedgerStore
from deposit_reconciler.services.reconciliation.engine import MatchResult

logger = get_logger(__name__)


@dataclass(frozen=True)
class DepositAttempt:
    """Result of an operator-invoked supplementary deposit."""

    deposit_reference: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.deposit_reference is not None


def deposit_memo(batch: SettlementBatch, supplementary: bool = False) -> str:
    if batch.reference_number:
        memo = f"Settlement {batch.reference_number} ({batch.external_id})"
    else:
        memo = f"Settlement {batch.external_id}"
    if supplementary:
        memo += " - Supplementary Deposit"
    return memo


class DepositGrouper:
    """Creates initial and supplementary deposits for a settlement."""

    def __init__(self, db: Session, ledger: LedgerStore) -> None:
        self.db = db
        self.ledger = ledger
        self.settlements = SettlementRepository(db)

    # ── Public API ───────────────────────────────────────────────────

    def create_deposit(
        self,
        batch: SettlementBatch,
        matched: list[MatchResult],
        target_account: str,
    ) -> Optional[str]:
        """Deposit the matched entries of a credit settlement.

        Returns:
            The deposit reference, or None when nothing was deposited: a
            debit settlement, no matches, or no matched entry still
            undeposited.
        """
        if batch.credit_debit != CreditDebit.CREDIT.value:
            logger.info(
                "Settlement %s is %s; requires manual handling, no deposit created",
                batch.external_id,
                batch.credit_debit,
            )
            return None
        if not matched:
            return None

        reference = self._deposit(
            batch,
            [m.transaction for m in matched],
            target_account,
            deposit_memo(batch),
        )
        if reference is None:
            logger.warning(
                "Settlement %s: matched entries are no longer undeposited; "
                "deposit not created",
                batch.external_id,
            )
        return reference

    def create_supplementary_deposit(
        self,
        batch: SettlementBatch,
        target_account: str,
    ) -> DepositAttempt:
        """Deposit lines matched after the settlement's initial deposit."""
        pending = self.settlements.pending_deposit(batch)
        if not pending:
            return DepositAttempt(error=NO_PENDING_DEPOSIT)

        reference = self._deposit(
            batch,
            pending,
            target_account,
            deposit_memo(batch, supplementary=True),
        )
        if reference is None:
            return DepositAttempt(error=NO_UNDEPOSITED_PAYMENTS)

        batch.deposit_reference = reference
        self.db.flush()
        return DepositAttempt(deposit_reference=reference)

    # ── Private helpers ──────────────────────────────────────────────

    def _deposit(
        self,
        batch: SettlementBatch,
        transactions: Iterable[ExternalTransaction],
        target_account: str,
        memo: str,
    ) -> Optional[str]:
        by_entry: dict[str, list[ExternalTransaction]] = {}
        for txn in transactions:
            if txn.ledger_entry_id:
                by_entry.setdefault(txn.ledger_entry_id, []).append(txn)

        undeposited = {e.id for e in self.ledger.list_undeposited(target_account)}
        included = [entry_id for entry_id in by_entry if entry_id in undeposited]
        if not included:
            return None

        reference = self.ledger.create_deposit(
            account=target_account,
            deposit_date=batch.settlement_date,
            memo=memo,
            entry_ids=included,
        )
        self.settlements.mark_in_deposit(
            (txn for entry_id in included for txn in by_entry[entry_id]),
            reference,
        )
        logger.info(
            "Settlement %s: deposit %s created with %d of %d entries",
            batch.external_id,
            reference,
            len(included),
            len(by_entry),
        )
        return reference
