"""Entry locator: resolves a settlement line to at most one ledger entry.

Strategies run in order and the first hit wins:

1. Reference lookup. Digits of the merchant reference are taken as a ledger
   document number, customer payments first, then cash sales. The first row
   is returned as-is; several rows sharing a document number are not
   disambiguated by amount.
2. Auth code / processor reference lookup over customer payments. One
   candidate is accepted outright; among several, the first within the
   amount tolerance wins, and none within tolerance means no match.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from deposit_reconciler.core.constants import LedgerEntryKind
from deposit_reconciler.core.logging import get_logger
from deposit_reconciler.schemas.ledger import LedgerEntryRecord
from deposit_reconciler.services.ledger.store import LedgerStore
from deposit_reconciler.services.reconciliation.validator import within_tolerance

logger = get_logger(__name__)

_NON_DIGITS = re.compile(r"\D")

# Document-number lookups try these kinds in order
_REFERENCE_KINDS = (LedgerEntryKind.CUSTOMER_PAYMENT, LedgerEntryKind.CASH_SALE)


def _present(value: Optional[str]) -> Optional[str]:
    """Blank and whitespace-only values count as absent."""
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


def clean_reference(reference: Optional[str]) -> Optional[str]:
    """Keep only the digits of a merchant reference ('INV-1001' -> '1001')."""
    if _present(reference) is None:
        return None
    digits = _NON_DIGITS.sub("", reference)
    return digits or None


class EntryLocator:
    """Finds the ledger entry a settlement line most likely pays."""

    def __init__(
        self,
        ledger: LedgerStore,
        reference_limit: int = 5,
        auth_limit: int = 10,
    ) -> None:
        self.ledger = ledger
        self.reference_limit = reference_limit
        self.auth_limit = auth_limit

    # ── Public API ───────────────────────────────────────────────────

    def locate(self, transaction: Any) -> Optional[LedgerEntryRecord]:
        """Return the candidate entry for ``transaction`` or None."""
        entry = self._by_reference(transaction)
        if entry is not None:
            return entry
        return self._by_auth_or_external_id(transaction)

    # ── Strategies ───────────────────────────────────────────────────

    def _by_reference(self, transaction: Any) -> Optional[LedgerEntryRecord]:
        document_number = clean_reference(transaction.merchant_reference)
        if document_number is None:
            return None

        for kind in _REFERENCE_KINDS:
            rows = self.ledger.find_by_document_number(
                document_number, kind, limit=self.reference_limit
            )
            if rows:
                if len(rows) > 1:
                    logger.warning(
                        "Document number %s matches %d %s entries; taking the first",
                        document_number,
                        len(rows),
                        kind.value,
                    )
                logger.debug(
                    "Txn %s located by reference: entry=%s",
                    transaction.external_id,
                    rows[0].id,
                )
                return rows[0]
        return None

    def _by_auth_or_external_id(self, transaction: Any) -> Optional[LedgerEntryRecord]:
        auth_code = _present(transaction.auth_code)
        external_id = _present(transaction.external_id)
        if auth_code is None and external_id is None:
            return None

        candidates = self.ledger.find_by_auth_or_reference(
            auth_code, external_id, limit=self.auth_limit
        )
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        for candidate in candidates:
            if within_tolerance(candidate.amount, transaction.amount):
                return candidate

        logger.info(
            "Txn %s: %d auth/reference candidates, none within amount tolerance",
            transaction.external_id,
            len(candidates),
        )
        return None
