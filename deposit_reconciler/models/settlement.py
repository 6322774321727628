"""Settlement batch model: one payout reported by the settlement source."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deposit_reconciler.core.database import Base


class SettlementBatch(Base):
    """A settlement observed at the source with status ``Done``.

    The source columns are written once. The match statistics, processed
    flag, error note and deposit reference are derived from the child
    transactions and rewritten after matching, grouping or a manual match.
    """

    __tablename__ = "settlement_batches"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    external_id: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    settlement_date: Mapped[Optional[date]] = mapped_column(
        Date,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        default=Decimal("0"),
    )
    currency: Mapped[Optional[str]] = mapped_column(
        String(3),
    )
    status: Mapped[str] = mapped_column(
        String(20),
        comment="Pending | Done | Void",
    )
    credit_debit: Mapped[Optional[str]] = mapped_column(
        String(2),
        comment="CR | DR",
    )
    reference_number: Mapped[Optional[str]] = mapped_column(
        String(100),
    )
    merchant_id: Mapped[Optional[str]] = mapped_column(
        String(100),
    )
    customer_id: Mapped[Optional[str]] = mapped_column(
        String(100),
    )
    configuration_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("reconciliation_configurations.id"),
        nullable=True,
    )

    # -- Derived fields --
    matched_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    unmatched_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
    )
    matched_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        default=Decimal("0"),
    )
    processed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )
    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
    )
    deposit_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    # -- Relationships --
    transactions: Mapped[list[ExternalTransaction]] = relationship(
        "ExternalTransaction",
        back_populates="settlement",
        cascade="all, delete-orphan",
        lazy="select",
    )

    __table_args__ = (Index("ix_settlement_batch_date", "settlement_date"),)

    def __repr__(self) -> str:
        return (
            f"<SettlementBatch(external_id={self.external_id!r}, "
            f"amount={self.amount}, status={self.status!r})>"
        )
