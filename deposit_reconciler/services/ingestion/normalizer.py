"""Normalizer utility functions for settlement source payloads.

The source is loose about casing and whitespace, and reports timestamps in
UTC with an offset. These helpers turn parsed payloads into column values for
``SettlementBatch`` and ``ExternalTransaction``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from deposit_reconciler.core.logging import get_logger
from deposit_reconciler.schemas.source import SourceSettlement, SourceTransaction

logger = get_logger(__name__)


def normalize_text(value: Optional[str]) -> Optional[str]:
    """Strip whitespace; blank strings become None."""
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


def normalize_currency(code: Optional[str]) -> Optional[str]:
    """Uppercase a currency code: 'nzd' -> 'NZD'.

    Currency is carried through untouched otherwise; codes that are not three
    letters are logged and kept as given.
    """
    stripped = normalize_text(code)
    if stripped is None:
        return None
    if len(stripped) != 3 or not stripped.isalpha():
        logger.warning("Unexpected currency code: %r", code)
        return stripped
    return stripped.upper()


def normalize_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware timestamp to naive UTC for storage."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def settlement_fields(source: SourceSettlement) -> dict[str, Any]:
    """Column values for a new ``SettlementBatch``."""
    return {
        "external_id": source.id.strip(),
        "settlement_date": source.settlement_date,
        "amount": source.amount,
        "currency": normalize_currency(source.currency),
        "status": source.status.strip(),
        "credit_debit": normalize_text(source.credit_debit),
        "reference_number": normalize_text(source.reference_number),
        "merchant_id": normalize_text(source.merchant_id),
        "customer_id": normalize_text(source.customer_id),
    }


def transaction_fields(source: SourceTransaction) -> dict[str, Any]:
    """Column values for a new ``ExternalTransaction``."""
    return {
        "external_id": source.id.strip(),
        "merchant_reference": normalize_text(source.merchant_reference),
        "amount": source.amount,
        "currency": normalize_currency(source.currency),
        "type": normalize_text(source.type),
        "method": normalize_text(source.method),
        "auth_code": normalize_text(source.auth_code),
        "username": normalize_text(source.username),
        "transacted_at": normalize_timestamp(source.date_time_utc),
    }
