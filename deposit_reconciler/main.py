"""Settlement Deposit Reconciler - Main Application."""

import logging.config

from fastapi import FastAPI

from deposit_reconciler import __version__
from deposit_reconciler import models  # noqa: F401  (registers tables)
from deposit_reconciler.api.routes import (
    configurations,
    ledger,
    reconciliation,
    settlement,
)
from deposit_reconciler.core.config import settings
from deposit_reconciler.core.database import Base, engine
from deposit_reconciler.core.logging import setup_logging
from deposit_reconciler.core.logging_config import LOGGING_CONFIG

# Configure logging before anything else
logging.config.dictConfig(LOGGING_CONFIG)
logger = setup_logging(settings.log_level)

# Create all tables on startup
logger.info("Creating database tables...")
Base.metadata.create_all(bind=engine)
logger.info("Database tables ready")

# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and readiness checks.",
    },
    {
        "name": "Configurations",
        "description": (
            "Settlement source credentials, merchant filters, deposit account "
            "and schedule for each configuration."
        ),
    },
    {
        "name": "Settlements",
        "description": (
            "Browse recorded settlements, inspect their transactions and "
            "deposits, match transactions by hand and create supplementary "
            "deposits."
        ),
    },
    {
        "name": "Reconciliation",
        "description": (
            "Trigger scheduled runs or ad-hoc fetches that pull settlements, "
            "match them to ledger entries and group them into deposits."
        ),
    },
    {
        "name": "Ledger",
        "description": "Search undeposited ledger entries for manual matching.",
    },
]


app = FastAPI(
    title="Settlement Deposit Reconciler",
    description=(
        "## Settlement to Bank Deposit Reconciliation API\n\n"
        "Pulls settlement batches from the card processor, matches every "
        "settlement transaction to a customer payment or cash sale in the "
        "ledger, and groups the matched payments into bank deposits.\n\n"
        "### Matching\n"
        "1. Merchant reference digits against the ledger document number\n"
        "2. Auth code or processor transaction id, disambiguated by amount\n\n"
        "A match is posted only when the ledger entry is still in undeposited "
        "funds and the amounts agree within 0.01. Refunds are always left for "
        "manual handling.\n"
    ),
    version=__version__,
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(
    configurations.router, prefix="/api/v1/configurations", tags=["Configurations"]
)
app.include_router(settlement.router, prefix="/api/v1/settlements", tags=["Settlements"])
app.include_router(
    reconciliation.router, prefix="/api/v1/reconciliation", tags=["Reconciliation"]
)
app.include_router(ledger.router, prefix="/api/v1/ledger", tags=["Ledger"])

logger.info("Deposit Reconciler API ready - routes registered")


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for load balancers and monitoring."""
    return {"status": "healthy", "service": "deposit-reconciler"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "deposit_reconciler.main:app",
        host="0.0.0.0",
        port=settings.app_port,
        reload=settings.app_env == "development",
    )
