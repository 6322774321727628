"""Typed view of ledger entries as seen by the reconciliation services."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class LedgerEntryRecord(BaseModel):
    """A ledger entry with its deposit availability resolved to a boolean."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    document_number: str
    kind: str
    amount: Decimal
    currency: Optional[str] = None
    status: Optional[str] = None
    account: Optional[str] = None
    available_for_deposit: bool
    customer_name: Optional[str] = None
    entry_date: Optional[date] = None
