"""External transaction model: one line within a settlement batch."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deposit_reconciler.core.database import Base


class ExternalTransaction(Base):
    """A settlement line and its reconciliation outcome.

    Every line is stored before matching so unmatched lines stay auditable.
    ``matched`` implies ``ledger_entry_id``; ``in_deposit`` implies
    ``matched`` and ``deposit_reference``.
    """

    __tablename__ = "external_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    settlement_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("settlement_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    merchant_reference: Mapped[Optional[str]] = mapped_column(
        String(255),
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    currency: Mapped[Optional[str]] = mapped_column(
        String(3),
    )
    type: Mapped[Optional[str]] = mapped_column(
        String(20),
        comment="Purchase | Refund | Auth | Complete | Void",
    )
    method: Mapped[Optional[str]] = mapped_column(
        String(50),
    )
    auth_code: Mapped[Optional[str]] = mapped_column(
        String(50),
    )
    username: Mapped[Optional[str]] = mapped_column(
        String(100),
    )
    transacted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )

    # -- Reconciliation outcome --
    matched: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )
    match_error: Mapped[Optional[str]] = mapped_column(
        Text,
    )
    ledger_entry_id: Mapped[Optional[str]] = mapped_column(
        String(64),
    )
    in_deposit: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )
    deposit_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    settlement: Mapped[SettlementBatch] = relationship(
        "SettlementBatch",
        back_populates="transactions",
    )

    __table_args__ = (
        Index("ix_external_txn_pending", "settlement_id", "matched", "in_deposit"),
    )

    def __repr__(self) -> str:
        return (
            f"<ExternalTransaction(external_id={self.external_id!r}, "
            f"amount={self.amount}, matched={self.matched})>"
        )
