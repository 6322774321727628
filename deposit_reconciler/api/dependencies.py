"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from deposit_reconciler.core.config import Settings, settings
from deposit_reconciler.core.database import get_db
from deposit_reconciler.services.ledger.store import LedgerStore, SqlLedgerStore
from deposit_reconciler.services.notifications.sender import (
    Notifier,
    notifier_from_settings,
)
from deposit_reconciler.services.reconciliation.coordinator import BatchCoordinator


def get_settings() -> Settings:
    return settings


def get_ledger_store(db: Session = Depends(get_db)) -> LedgerStore:
    return SqlLedgerStore(db)


def get_notifier(config: Settings = Depends(get_settings)) -> Notifier:
    return notifier_from_settings(config)


def get_coordinator(
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
    ledger: LedgerStore = Depends(get_ledger_store),
    notifier: Notifier = Depends(get_notifier),
) -> BatchCoordinator:
    return BatchCoordinator(db=db, config=config, ledger=ledger, notifier=notifier)
