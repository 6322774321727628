"""Exception hierarchy for the reconciler.

Matching and deposit failures are returned as values; only conditions that
stop a unit of work (configuration, source or store faults) are raised.
"""

from __future__ import annotations

from typing import Optional


class ReconcilerError(Exception):
    """Base class for all reconciler errors."""


class ConfigurationError(ReconcilerError):
    """A configuration record is missing or unusable."""


class NoActiveConfigurationError(ConfigurationError):
    """No active reconciliation configuration exists."""


class SettlementSourceError(ReconcilerError):
    """The settlement source could not be queried."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SettlementSourceAuthError(SettlementSourceError):
    """The settlement source rejected the configured credentials."""


class RecordNotFoundError(ReconcilerError):
    """A settlement, transaction or ledger record does not exist."""
