"""SQLAlchemy models for the settlement deposit reconciler."""

from deposit_reconciler.models.configuration import ReconciliationConfiguration
from deposit_reconciler.models.settlement import SettlementBatch
from deposit_reconciler.models.transaction import ExternalTransaction
from deposit_reconciler.models.ledger import DepositBatch, LedgerEntry

__all__ = [
    "ReconciliationConfiguration",
    "SettlementBatch",
    "ExternalTransaction",
    "LedgerEntry",
    "DepositBatch",
]
