"""Reconciliation configuration model: one per merchant credential set."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from deposit_reconciler.core.database import Base


class ReconciliationConfiguration(Base):
    """Credentials, filters and schedule for one settlement source account.

    Operators create and edit these; the batch coordinator only writes the
    ``last_run_*`` bookkeeping columns.
    """

    __tablename__ = "reconciliation_configurations"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    api_username: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    api_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    environment: Mapped[str] = mapped_column(
        String(20),
        default="production",
        comment="production | uat",
    )
    merchant_id: Mapped[Optional[str]] = mapped_column(
        String(100),
    )
    customer_id: Mapped[Optional[str]] = mapped_column(
        String(100),
    )
    deposit_account: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    lookback_days: Mapped[int] = mapped_column(
        Integer,
        default=1,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        index=True,
    )
    notification_email: Mapped[Optional[str]] = mapped_column(
        String(255),
    )
    send_email: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )
    schedule_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
    )
    schedule_frequency: Mapped[str] = mapped_column(
        String(10),
        default="daily",
        comment="daily | weekly",
    )
    schedule_day: Mapped[int] = mapped_column(
        Integer,
        default=1,
        comment="ISO weekday, 1=Monday",
    )
    schedule_hour: Mapped[int] = mapped_column(
        Integer,
        default=6,
    )
    last_run_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )
    last_run_status: Mapped[Optional[str]] = mapped_column(
        Text,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<ReconciliationConfiguration(name={self.name!r}, "
            f"active={self.is_active}, account={self.deposit_account!r})>"
        )
