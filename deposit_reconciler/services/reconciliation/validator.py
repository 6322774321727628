"""Match validation rules.

Every function here is *pure*: it receives a candidate ledger entry and the
settlement line, and returns a verdict without touching the database. The
engine decides what to persist.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

# Largest absolute difference between a settlement line and its ledger entry
AMOUNT_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one candidate match."""

    valid: bool
    reason: Optional[str] = None


def to_decimal(value: Any) -> Decimal:
    """Coerce amounts to Decimal without float artefacts (100.1 -> '100.1')."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def within_tolerance(a: Any, b: Any) -> bool:
    """True when two amounts differ by no more than ``AMOUNT_TOLERANCE``."""
    return abs(to_decimal(a) - to_decimal(b)) <= AMOUNT_TOLERANCE


def search_keys(transaction: Any) -> str:
    """Describe the keys the locator searched, for unmatched diagnostics."""
    return (
        f"docNum={getattr(transaction, 'merchant_reference', None) or 'none'}, "
        f"authCode={getattr(transaction, 'auth_code', None) or 'none'}, "
        f"externalId={getattr(transaction, 'external_id', None) or 'none'}"
    )


def validate(entry: Any, transaction: Any) -> ValidationResult:
    """Decide whether ``entry`` may be posted as the match for ``transaction``.

    Rules are checked in order and the first failure wins:

    1. no entry located
    2. entry no longer available for deposit
    3. amounts differ by more than ``AMOUNT_TOLERANCE``

    Args:
        entry: The located ledger entry (``LedgerEntryRecord``) or None.
        transaction: The settlement line; needs ``amount`` and the search keys.

    Returns:
        A ``ValidationResult``; ``reason`` is set when ``valid`` is False.
    """
    if entry is None:
        return ValidationResult(
            valid=False,
            reason=f"No matching ledger entry found (searched: {search_keys(transaction)})",
        )

    if not entry.available_for_deposit:
        return ValidationResult(
            valid=False,
            reason=(
                "Ledger entry has already been deposited "
                f"(Entry #{entry.document_number or entry.id})"
            ),
        )

    if not within_tolerance(entry.amount, transaction.amount):
        return ValidationResult(
            valid=False,
            reason=(
                "Transaction amount does not match ledger entry amount "
                f"(ledger: {to_decimal(entry.amount)}, "
                f"settlement: {to_decimal(transaction.amount)})"
            ),
        )

    return ValidationResult(valid=True)
