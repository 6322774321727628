"""Pydantic schemas for settlement source API payloads.

Field aliases follow the source's camelCase wire names; everything past the
client works with the snake_case attributes.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SourceTransaction(BaseModel):
    """One transaction line inside a settlement detail response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    merchant_reference: Optional[str] = Field(None, alias="merchantReference")
    amount: Decimal
    currency: Optional[str] = None
    type: Optional[str] = None
    method: Optional[str] = None
    auth_code: Optional[str] = Field(None, alias="authCode")
    username: Optional[str] = None
    date_time_utc: Optional[datetime] = Field(None, alias="dateTimeUtc")


class SourceSettlement(BaseModel):
    """Settlement header as returned by the listing endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    settlement_date: Optional[date] = Field(None, alias="settlementDate")
    amount: Decimal = Decimal("0")
    currency: Optional[str] = None
    status: str
    credit_debit: Optional[str] = Field(None, alias="CRDR")
    reference_number: Optional[str] = Field(None, alias="referenceNumber")
    merchant_id: Optional[str] = Field(None, alias="merchantId")
    customer_id: Optional[str] = Field(None, alias="customerId")


class SourceSettlementDetail(SourceSettlement):
    """Settlement header plus its transaction lines."""

    transactions: list[SourceTransaction] = Field(default_factory=list)


class SourceSettlementList(BaseModel):
    """Envelope of the listing endpoint."""

    model_config = ConfigDict(extra="ignore")

    settlements: list[SourceSettlement] = Field(default_factory=list)
