"""Pydantic schemas for reconciliation run requests and summaries."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class FetchRequest(BaseModel):
    """Request body for an ad-hoc fetch over an explicit date range."""

    date_from: date = Field(..., description="First settlement date (inclusive)")
    date_to: date = Field(..., description="Last settlement date (inclusive)")
    configuration_id: Optional[UUID] = Field(
        None,
        description="Limit the fetch to one configuration; None = all active",
    )

    @model_validator(mode="after")
    def _check_range(self) -> "FetchRequest":
        if self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self


class ConfigurationRunResponse(BaseModel):
    configuration_id: UUID
    name: str
    settlements_found: int = 0
    settlements_processed: int = 0
    settlements_skipped: int = 0
    deposits_created: int = 0
    transactions_matched: int = 0
    transactions_unmatched: int = 0
    total_amount: Decimal = Decimal("0")
    errors: list[str] = Field(default_factory=list)


class RunSummaryResponse(BaseModel):
    """Aggregate result of a scheduled or ad-hoc run."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    configurations_processed: int = 0
    settlements_found: int = 0
    settlements_processed: int = 0
    settlements_skipped: int = 0
    deposits_created: int = 0
    transactions_matched: int = 0
    transactions_unmatched: int = 0
    total_amount: Decimal = Decimal("0")
    stopped_early: bool = False
    errors: list[str] = Field(default_factory=list)
    configurations: list[ConfigurationRunResponse] = Field(default_factory=list)
