"""Reconciliation configuration endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from deposit_reconciler.core.database import get_db
from deposit_reconciler.core.logging import get_logger
from deposit_reconciler.models.configuration import ReconciliationConfiguration
from deposit_reconciler.repositories import ConfigurationRepository
from deposit_reconciler.schemas.configuration import (
    ConfigurationCreate,
    ConfigurationResponse,
    ConfigurationUpdate,
)

logger = get_logger(__name__)

router = APIRouter()


def _load(configuration_id: UUID, db: Session) -> ReconciliationConfiguration:
    configuration = ConfigurationRepository(db).get(configuration_id)
    if configuration is None:
        raise HTTPException(
            status_code=404,
            detail=f"Configuration {configuration_id} not found",
        )
    return configuration


@router.get("", response_model=list[ConfigurationResponse])
def list_configurations(db: Session = Depends(get_db)) -> list:
    """List every configuration, active or not."""
    return ConfigurationRepository(db).list_all()


@router.post("", response_model=ConfigurationResponse, status_code=201)
def create_configuration(
    body: ConfigurationCreate,
    db: Session = Depends(get_db),
) -> ReconciliationConfiguration:
    """Create a configuration for one settlement source credential set."""
    if not body.merchant_id and not body.customer_id:
        raise HTTPException(
            status_code=400,
            detail="Either merchant_id or customer_id is required",
        )
    configuration = ConfigurationRepository(db).create(**body.model_dump(mode="json"))
    db.commit()
    db.refresh(configuration)
    logger.info("Configuration created: %s (%s)", configuration.name, configuration.id)
    return configuration


@router.get("/{configuration_id}", response_model=ConfigurationResponse)
def get_configuration(
    configuration_id: UUID,
    db: Session = Depends(get_db),
) -> ReconciliationConfiguration:
    return _load(configuration_id, db)


@router.patch("/{configuration_id}", response_model=ConfigurationResponse)
def update_configuration(
    configuration_id: UUID,
    body: ConfigurationUpdate,
    db: Session = Depends(get_db),
) -> ReconciliationConfiguration:
    """Change only the fields present in the request body."""
    configuration = _load(configuration_id, db)
    changes = body.model_dump(mode="json", exclude_unset=True)
    ConfigurationRepository(db).update(configuration, **changes)
    db.commit()
    db.refresh(configuration)
    logger.info(
        "Configuration updated: %s fields=%s", configuration.name, sorted(changes)
    )
    return configuration
