"""Settlement query and operator action endpoints.

Lists recorded settlements, shows one settlement with its lines and
deposits, and exposes the manual actions an operator uses to finish a
settlement: matching a line by hand and grouping late matches into a
supplementary deposit.
"""

from __future__ import annotations

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from deposit_reconciler.api.dependencies import get_ledger_store, get_settings
from deposit_reconciler.core.config import Settings
from deposit_reconciler.core.database import get_db
from deposit_reconciler.core.exceptions import RecordNotFoundError
from deposit_reconciler.core.logging import get_logger
from deposit_reconciler.models.settlement import SettlementBatch
from deposit_reconciler.repositories import (
    ConfigurationRepository,
    SettlementRepository,
)
from deposit_reconciler.schemas.settlement import (
    DepositSummary,
    ManualMatchRequest,
    ManualMatchResponse,
    SettlementDetailResponse,
    SettlementResponse,
    SupplementaryDepositRequest,
    SupplementaryDepositResponse,
    TransactionResponse,
)
from deposit_reconciler.services.ledger.store import LedgerStore
from deposit_reconciler.services.reconciliation.deposits import DepositGrouper
from deposit_reconciler.services.reconciliation.manual import ManualMatcher

logger = get_logger(__name__)

router = APIRouter()


def _load(settlement_id: UUID, db: Session) -> SettlementBatch:
    batch = SettlementRepository(db).get(settlement_id)
    if batch is None:
        raise HTTPException(
            status_code=404, detail=f"Settlement {settlement_id} not found"
        )
    return batch


@router.get("", response_model=list[SettlementResponse])
def list_settlements(
    date_from: Optional[date] = Query(None, description="Settlement date >= (YYYY-MM-DD)"),
    date_to: Optional[date] = Query(None, description="Settlement date <= (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
) -> list:
    """Recorded settlements, newest first."""
    if date_from and date_to and date_from > date_to:
        raise HTTPException(
            status_code=400, detail="date_from must not be after date_to"
        )
    return SettlementRepository(db).list_by_date_range(
        date_from, date_to, limit=config.settlement_list_limit
    )


@router.get("/{settlement_id}", response_model=SettlementDetailResponse)
def get_settlement(
    settlement_id: UUID,
    db: Session = Depends(get_db),
) -> SettlementDetailResponse:
    """One settlement with its lines, deposits and lines awaiting deposit."""
    repo = SettlementRepository(db)
    batch = _load(settlement_id, db)
    return SettlementDetailResponse(
        settlement=SettlementResponse.model_validate(batch),
        transactions=[
            TransactionResponse.model_validate(t) for t in repo.transactions(batch)
        ],
        deposits=[DepositSummary(**d) for d in repo.deposits_for_settlement(batch)],
        pending_deposit=[
            TransactionResponse.model_validate(t) for t in repo.pending_deposit(batch)
        ],
    )


@router.post("/transactions/{transaction_id}/match", response_model=ManualMatchResponse)
def match_transaction(
    transaction_id: UUID,
    body: ManualMatchRequest,
    db: Session = Depends(get_db),
    ledger: LedgerStore = Depends(get_ledger_store),
) -> ManualMatchResponse:
    """Bind an unmatched line to a ledger entry chosen by the operator."""
    logger.info(
        "Manual match requested: txn=%s entry=%s", transaction_id, body.ledger_entry_id
    )
    try:
        result = ManualMatcher(db, ledger).match(transaction_id, body.ledger_entry_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    return ManualMatchResponse(
        success=result.success,
        error=result.error,
        transaction=TransactionResponse.model_validate(result.transaction),
        settlement=SettlementResponse.model_validate(result.settlement),
    )


@router.post(
    "/{settlement_id}/supplementary-deposit",
    response_model=SupplementaryDepositResponse,
)
def create_supplementary_deposit(
    settlement_id: UUID,
    body: Optional[SupplementaryDepositRequest] = None,
    db: Session = Depends(get_db),
    ledger: LedgerStore = Depends(get_ledger_store),
) -> SupplementaryDepositResponse:
    """Deposit lines matched after the settlement's initial deposit."""
    batch = _load(settlement_id, db)

    account = body.deposit_account if body else None
    if not account and batch.configuration_id is not None:
        configuration = ConfigurationRepository(db).get(batch.configuration_id)
        account = configuration.deposit_account if configuration else None
    if not account:
        raise HTTPException(
            status_code=400,
            detail="No deposit account configured for this settlement",
        )

    attempt = DepositGrouper(db, ledger).create_supplementary_deposit(batch, account)
    if attempt.success:
        db.commit()
        logger.info(
            "Supplementary deposit %s created for settlement %s",
            attempt.deposit_reference,
            batch.external_id,
        )
    else:
        db.rollback()
        logger.warning(
            "Supplementary deposit for settlement %s failed: %s",
            batch.external_id,
            attempt.error,
        )

    return SupplementaryDepositResponse(
        success=attempt.success,
        deposit_reference=attempt.deposit_reference,
        error=attempt.error,
    )
