"""Reconciliation run endpoints.

``/run`` is what an external scheduler calls; ``/fetch`` lets an operator
pull an explicit date range for one or all configurations.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from deposit_reconciler.api.dependencies import get_coordinator, get_settings
from deposit_reconciler.core.config import Settings
from deposit_reconciler.core.exceptions import (
    ConfigurationError,
    NoActiveConfigurationError,
)
from deposit_reconciler.core.logging import get_logger
from deposit_reconciler.schemas.reconciliation import FetchRequest, RunSummaryResponse
from deposit_reconciler.services.reconciliation.coordinator import BatchCoordinator
from deposit_reconciler.services.reconciliation.schedule import DeadlineBudget

logger = get_logger(__name__)

router = APIRouter()


@router.post("/run", response_model=RunSummaryResponse)
def run_scheduled(
    time_budget: Optional[float] = Query(
        None, gt=0, description="Seconds available to this run"
    ),
    coordinator: BatchCoordinator = Depends(get_coordinator),
    config: Settings = Depends(get_settings),
) -> RunSummaryResponse:
    """Process every configuration whose schedule is due now."""
    budget = DeadlineBudget(time_budget or config.run_time_budget_seconds)
    summary = coordinator.run_scheduled(budget=budget)
    return RunSummaryResponse(**summary.to_dict())


@router.post("/fetch", response_model=RunSummaryResponse)
def fetch_settlements(
    body: FetchRequest,
    coordinator: BatchCoordinator = Depends(get_coordinator),
) -> RunSummaryResponse:
    """Fetch and reconcile settlements for an explicit date range."""
    logger.info(
        "Ad-hoc fetch requested: %s to %s, configuration=%s",
        body.date_from,
        body.date_to,
        body.configuration_id or "all",
    )
    try:
        summary = coordinator.run_adhoc(
            body.date_from, body.date_to, configuration_id=body.configuration_id
        )
    except NoActiveConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConfigurationError as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    return RunSummaryResponse(**summary.to_dict())
