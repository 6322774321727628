"""Ledger search used when matching a transaction by hand."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query

from deposit_reconciler.api.dependencies import get_ledger_store, get_settings
from deposit_reconciler.core.config import Settings
from deposit_reconciler.schemas.ledger import LedgerEntryRecord
from deposit_reconciler.services.ledger.store import LedgerStore

router = APIRouter()


@router.get("/entries", response_model=list[LedgerEntryRecord])
def search_entries(
    search: Optional[str] = Query(None, description="Document number or id fragment"),
    amount: Optional[Decimal] = Query(None, description="Amount to match"),
    tolerance: Decimal = Query(Decimal("0.01"), ge=0, description="Amount +/- range"),
    ledger: LedgerStore = Depends(get_ledger_store),
    config: Settings = Depends(get_settings),
) -> list[LedgerEntryRecord]:
    """Undeposited payments and cash sales that could still be matched."""
    return ledger.search(
        text=search,
        amount=amount,
        tolerance=tolerance,
        limit=config.ledger_search_limit,
    )
