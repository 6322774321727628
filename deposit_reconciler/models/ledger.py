"""Host ledger tables: payment-like entries and the deposits grouping them.

These stand in for the accounting system the reconciler posts into. Only
``SqlLedgerStore`` reads or writes them; the reconciliation services see
``LedgerEntryRecord`` values instead.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Index, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deposit_reconciler.core.database import Base


class LedgerEntry(Base):
    """A customer payment or cash sale recorded in the ledger."""

    __tablename__ = "ledger_entries"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    document_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    kind: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="customer_payment | cash_sale",
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    currency: Mapped[Optional[str]] = mapped_column(
        String(3),
    )
    status: Mapped[Optional[str]] = mapped_column(
        String(50),
    )
    account: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Account the entry currently sits in, e.g. 'Undeposited Funds'",
    )
    auth_code: Mapped[Optional[str]] = mapped_column(
        String(50),
    )
    processor_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
    )
    customer_name: Mapped[Optional[str]] = mapped_column(
        String(255),
    )
    entry_date: Mapped[Optional[date]] = mapped_column(
        Date,
    )
    deposit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("deposit_batches.id"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    deposit: Mapped[Optional[DepositBatch]] = relationship(
        "DepositBatch",
        back_populates="entries",
    )

    __table_args__ = (
        Index("ix_ledger_auth_code", "auth_code"),
        Index("ix_ledger_processor_reference", "processor_reference"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(document_number={self.document_number!r}, "
            f"amount={self.amount}, account={self.account!r})>"
        )


class DepositBatch(Base):
    """A bank deposit grouping ledger entries. Immutable once created."""

    __tablename__ = "deposit_batches"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    account: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    deposit_date: Mapped[Optional[date]] = mapped_column(
        Date,
    )
    memo: Mapped[Optional[str]] = mapped_column(
        Text,
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        default=Decimal("0"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    entries: Mapped[list[LedgerEntry]] = relationship(
        "LedgerEntry",
        back_populates="deposit",
        lazy="select",
    )

    def __repr__(self) -> str:
        return (
            f"<DepositBatch(id={self.id!r}, account={self.account!r}, "
            f"total_amount={self.total_amount})>"
        )
