"""Pydantic schemas for reconciliation configurations."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from deposit_reconciler.core.constants import Environment, ScheduleFrequency


class ConfigurationBase(BaseModel):
    """Fields an operator can set on a configuration."""

    name: str = Field(..., max_length=100)
    environment: Environment = Environment.PRODUCTION
    merchant_id: Optional[str] = Field(None, max_length=100)
    customer_id: Optional[str] = Field(None, max_length=100)
    deposit_account: str = Field(
        ...,
        max_length=100,
        description="Bank account deposits are posted to",
    )
    lookback_days: int = Field(1, ge=0, le=90)
    is_active: bool = True
    notification_email: Optional[str] = Field(None, max_length=255)
    send_email: bool = False
    schedule_enabled: bool = False
    schedule_frequency: ScheduleFrequency = ScheduleFrequency.DAILY
    schedule_day: int = Field(1, ge=1, le=7, description="ISO weekday, 1=Monday")
    schedule_hour: int = Field(6, ge=0, le=23)


class ConfigurationCreate(ConfigurationBase):
    """Request body for creating a configuration."""

    api_username: str = Field(..., max_length=100)
    api_password: str = Field(..., max_length=255)


class ConfigurationUpdate(BaseModel):
    """Partial update; only the provided fields are changed."""

    name: Optional[str] = Field(None, max_length=100)
    api_username: Optional[str] = Field(None, max_length=100)
    api_password: Optional[str] = Field(None, max_length=255)
    environment: Optional[Environment] = None
    merchant_id: Optional[str] = None
    customer_id: Optional[str] = None
    deposit_account: Optional[str] = None
    lookback_days: Optional[int] = Field(None, ge=0, le=90)
    is_active: Optional[bool] = None
    notification_email: Optional[str] = None
    send_email: Optional[bool] = None
    schedule_enabled: Optional[bool] = None
    schedule_frequency: Optional[ScheduleFrequency] = None
    schedule_day: Optional[int] = Field(None, ge=1, le=7)
    schedule_hour: Optional[int] = Field(None, ge=0, le=23)


class ConfigurationResponse(ConfigurationBase):
    """Configuration as returned by the API. Credentials are never echoed."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    api_username: str
    last_run_at: Optional[datetime] = None
    last_run_status: Optional[str] = None
    created_at: datetime
