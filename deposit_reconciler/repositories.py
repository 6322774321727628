"""Repository layer for configuration and settlement persistence."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from deposit_reconciler.core.constants import NO_ACTIVE_CONFIGURATION
from deposit_reconciler.core.exceptions import (
    ConfigurationError,
    NoActiveConfigurationError,
)
from deposit_reconciler.core.logging import get_logger
from deposit_reconciler.models.configuration import ReconciliationConfiguration
from deposit_reconciler.models.settlement import SettlementBatch
from deposit_reconciler.models.transaction import ExternalTransaction
from deposit_reconciler.schemas.source import SourceSettlement, SourceTransaction
from deposit_reconciler.services.ingestion.normalizer import (
    settlement_fields,
    transaction_fields,
)

logger = get_logger(__name__)


class ConfigurationRepository:
    """CRUD and run bookkeeping for ``ReconciliationConfiguration``."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, configuration_id: uuid.UUID) -> Optional[ReconciliationConfiguration]:
        return self.db.get(ReconciliationConfiguration, configuration_id)

    def require(self, configuration_id: uuid.UUID) -> ReconciliationConfiguration:
        """Load a configuration or raise ``ConfigurationError``."""
        configuration = self.get(configuration_id)
        if configuration is None:
            raise ConfigurationError(
                f"Reconciliation configuration record not found: {configuration_id}"
            )
        return configuration

    def list_all(self) -> list[ReconciliationConfiguration]:
        return (
            self.db.query(ReconciliationConfiguration)
            .order_by(ReconciliationConfiguration.name)
            .all()
        )

    def list_active(self) -> list[ReconciliationConfiguration]:
        """Active configurations; at least one must exist to process anything."""
        configurations = (
            self.db.query(ReconciliationConfiguration)
            .filter(ReconciliationConfiguration.is_active.is_(True))
            .order_by(ReconciliationConfiguration.name)
            .all()
        )
        if not configurations:
            raise NoActiveConfigurationError(NO_ACTIVE_CONFIGURATION)
        return configurations

    def create(self, **fields: Any) -> ReconciliationConfiguration:
        configuration = ReconciliationConfiguration(**fields)
        self.db.add(configuration)
        self.db.flush()
        return configuration

    def update(
        self,
        configuration: ReconciliationConfiguration,
        **fields: Any,
    ) -> ReconciliationConfiguration:
        for name, value in fields.items():
            setattr(configuration, name, value)
        self.db.flush()
        return configuration

    def record_run(
        self,
        configuration: ReconciliationConfiguration,
        status: str,
        at: datetime,
    ) -> None:
        configuration.last_run_at = at
        configuration.last_run_status = status
        self.db.flush()
        logger.info("Configuration %s last run: %s", configuration.name, status)


class SettlementRepository:
    """Persistence for settlement batches and their transaction lines."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Settlement batches ───────────────────────────────────────────

    def exists(self, external_id: str) -> bool:
        """Whether a settlement with this external id was already recorded."""
        return (
            self.db.query(SettlementBatch.id)
            .filter(SettlementBatch.external_id == external_id.strip())
            .first()
            is not None
        )

    def get(self, settlement_id: uuid.UUID) -> Optional[SettlementBatch]:
        return self.db.get(SettlementBatch, settlement_id)

    def create_batch(
        self,
        source: SourceSettlement,
        configuration_id: Optional[uuid.UUID] = None,
    ) -> SettlementBatch:
        batch = SettlementBatch(
            **settlement_fields(source),
            configuration_id=configuration_id,
            matched_count=0,
            unmatched_count=0,
            matched_amount=Decimal("0"),
            processed=False,
        )
        self.db.add(batch)
        self.db.flush()
        return batch

    def list_by_date_range(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 100,
    ) -> list[SettlementBatch]:
        """Settlements newest first, optionally bounded by settlement date."""
        query = self.db.query(SettlementBatch)
        if date_from is not None:
            query = query.filter(SettlementBatch.settlement_date >= date_from)
        if date_to is not None:
            query = query.filter(SettlementBatch.settlement_date <= date_to)
        return (
            query.order_by(
                SettlementBatch.settlement_date.desc(),
                SettlementBatch.created_at.desc(),
            )
            .limit(limit)
            .all()
        )

    def recompute_counts(self, batch: SettlementBatch) -> SettlementBatch:
        """Rewrite the match statistics from a fresh scan of the children."""
        self.db.flush()
        rows = self.transactions(batch)
        matched = [t for t in rows if t.matched]
        batch.matched_count = len(matched)
        batch.unmatched_count = len(rows) - len(matched)
        batch.matched_amount = sum((t.amount for t in matched), Decimal("0"))
        batch.error_message = (
            f"Unmatched: {batch.unmatched_count} transactions"
            if batch.unmatched_count
            else None
        )
        self.db.flush()
        return batch

    # ── Transactions ─────────────────────────────────────────────────

    def add_transaction(
        self,
        batch: SettlementBatch,
        source: SourceTransaction,
    ) -> ExternalTransaction:
        txn = ExternalTransaction(
            **transaction_fields(source),
            settlement_id=batch.id,
            matched=False,
            in_deposit=False,
        )
        self.db.add(txn)
        self.db.flush()
        return txn

    def get_transaction(self, transaction_id: uuid.UUID) -> Optional[ExternalTransaction]:
        return self.db.get(ExternalTransaction, transaction_id)

    def transactions(self, batch: SettlementBatch) -> list[ExternalTransaction]:
        return (
            self.db.query(ExternalTransaction)
            .filter(ExternalTransaction.settlement_id == batch.id)
            .order_by(ExternalTransaction.created_at, ExternalTransaction.external_id)
            .all()
        )

    def pending_deposit(self, batch: SettlementBatch) -> list[ExternalTransaction]:
        """Matched lines that have not been grouped into a deposit yet."""
        return (
            self.db.query(ExternalTransaction)
            .filter(
                ExternalTransaction.settlement_id == batch.id,
                ExternalTransaction.matched.is_(True),
                ExternalTransaction.in_deposit.is_(False),
            )
            .all()
        )

    def mark_in_deposit(
        self,
        transactions: Iterable[ExternalTransaction],
        deposit_reference: str,
    ) -> int:
        count = 0
        for txn in transactions:
            txn.in_deposit = True
            txn.deposit_reference = deposit_reference
            count += 1
        self.db.flush()
        return count

    def deposits_for_settlement(self, batch: SettlementBatch) -> list[dict[str, Any]]:
        """Deposited lines grouped by deposit reference."""
        rows = (
            self.db.query(
                ExternalTransaction.deposit_reference,
                func.sum(ExternalTransaction.amount),
                func.count(ExternalTransaction.id),
            )
            .filter(
                ExternalTransaction.settlement_id == batch.id,
                ExternalTransaction.in_deposit.is_(True),
                ExternalTransaction.deposit_reference.isnot(None),
            )
            .group_by(ExternalTransaction.deposit_reference)
            .all()
        )
        return [
            {
                "deposit_reference": reference,
                "amount": Decimal(str(total or 0)).quantize(Decimal("0.01")),
                "transaction_count": count,
            }
            for reference, total, count in rows
        ]
