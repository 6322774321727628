"""Pydantic schemas for settlement batches and their transactions."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TransactionResponse(BaseModel):
    """A settlement line with its reconciliation outcome."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    external_id: str
    merchant_reference: Optional[str] = None
    amount: Decimal
    currency: Optional[str] = None
    type: Optional[str] = None
    method: Optional[str] = None
    auth_code: Optional[str] = None
    transacted_at: Optional[datetime] = None
    matched: bool = False
    match_error: Optional[str] = None
    ledger_entry_id: Optional[str] = None
    in_deposit: bool = False
    deposit_reference: Optional[str] = None


class SettlementResponse(BaseModel):
    """Settlement header with its match statistics."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    external_id: str
    settlement_date: Optional[date] = None
    amount: Decimal
    currency: Optional[str] = None
    status: str
    credit_debit: Optional[str] = None
    reference_number: Optional[str] = None
    configuration_id: Optional[UUID] = None
    matched_count: int = 0
    unmatched_count: int = 0
    matched_amount: Decimal = Decimal("0")
    processed: bool = False
    processed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    deposit_reference: Optional[str] = None
    created_at: datetime


class DepositSummary(BaseModel):
    """Transactions of one settlement grouped by the deposit they went into."""

    deposit_reference: str
    amount: Decimal
    transaction_count: int


class SettlementDetailResponse(BaseModel):
    """Everything an operator needs to finish a settlement by hand."""

    settlement: SettlementResponse
    transactions: list[TransactionResponse]
    deposits: list[DepositSummary]
    pending_deposit: list[TransactionResponse]


class ManualMatchRequest(BaseModel):
    ledger_entry_id: str = Field(
        ...,
        min_length=1,
        description="Ledger entry id, or its document number",
    )


class ManualMatchResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    transaction: Optional[TransactionResponse] = None
    settlement: Optional[SettlementResponse] = None


class SupplementaryDepositRequest(BaseModel):
    deposit_account: Optional[str] = Field(
        None,
        description="Overrides the settlement configuration's deposit account",
    )


class SupplementaryDepositResponse(BaseModel):
    success: bool
    deposit_reference: Optional[str] = None
    error: Optional[str] = None
