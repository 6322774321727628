"""Ledger store adapters.

The reconciliation services only talk to ``LedgerStore``. ``SqlLedgerStore``
maps the ``ledger_entries`` / ``deposit_batches`` tables onto
``LedgerEntryRecord`` values and is where account classification becomes the
``available_for_deposit`` boolean.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from deposit_reconciler.core.constants import (
    UNDEPOSITED_ACCOUNT_MARKER,
    LedgerEntryKind,
)
from deposit_reconciler.core.logging import get_logger
from deposit_reconciler.models.ledger import DepositBatch, LedgerEntry
from deposit_reconciler.schemas.ledger import LedgerEntryRecord

logger = get_logger(__name__)

_DEPOSITABLE_KINDS = (
    LedgerEntryKind.CUSTOMER_PAYMENT.value,
    LedgerEntryKind.CASH_SALE.value,
)


def is_undeposited_account(account: Optional[str]) -> bool:
    """True when the account classification is an undeposited-funds account."""
    return bool(account) and UNDEPOSITED_ACCOUNT_MARKER in account.lower()


class LedgerStore(ABC):
    """Query and deposit interface onto the host ledger."""

    @abstractmethod
    def get(self, entry_id: str) -> Optional[LedgerEntryRecord]:
        """Fetch one entry by its internal id."""
        raise NotImplementedError

    @abstractmethod
    def find_by_document_number(
        self,
        document_number: str,
        kind: LedgerEntryKind,
        limit: int = 5,
    ) -> list[LedgerEntryRecord]:
        """Entries of ``kind`` whose document number equals ``document_number``."""
        raise NotImplementedError

    @abstractmethod
    def find_by_auth_or_reference(
        self,
        auth_code: Optional[str],
        external_id: Optional[str],
        limit: int = 10,
    ) -> list[LedgerEntryRecord]:
        """Customer payments carrying either the auth code or the processor reference."""
        raise NotImplementedError

    @abstractmethod
    def search(
        self,
        text: Optional[str] = None,
        amount: Optional[Decimal] = None,
        tolerance: Decimal = Decimal("0.01"),
        limit: int = 50,
    ) -> list[LedgerEntryRecord]:
        """Undeposited payments and cash sales for manual matching."""
        raise NotImplementedError

    @abstractmethod
    def list_undeposited(self, account: str) -> list[LedgerEntryRecord]:
        """The entries a new deposit into ``account`` could currently include."""
        raise NotImplementedError

    @abstractmethod
    def create_deposit(
        self,
        account: str,
        deposit_date: Optional[date],
        memo: str,
        entry_ids: Iterable[str],
    ) -> str:
        """Commit a deposit of ``entry_ids`` and return its reference."""
        raise NotImplementedError


class SqlLedgerStore(LedgerStore):
    """``LedgerStore`` backed by the local ledger tables."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Queries ──────────────────────────────────────────────────────

    def get(self, entry_id: str) -> Optional[LedgerEntryRecord]:
        entry = self.db.get(LedgerEntry, entry_id)
        return self._to_record(entry) if entry is not None else None

    def find_by_document_number(
        self,
        document_number: str,
        kind: LedgerEntryKind,
        limit: int = 5,
    ) -> list[LedgerEntryRecord]:
        rows = (
            self.db.query(LedgerEntry)
            .filter(
                LedgerEntry.document_number == document_number,
                LedgerEntry.kind == LedgerEntryKind(kind).value,
            )
            .limit(limit)
            .all()
        )
        return [self._to_record(row) for row in rows]

    def find_by_auth_or_reference(
        self,
        auth_code: Optional[str],
        external_id: Optional[str],
        limit: int = 10,
    ) -> list[LedgerEntryRecord]:
        conditions = []
        if auth_code:
            conditions.append(LedgerEntry.auth_code == auth_code)
        if external_id:
            conditions.append(LedgerEntry.processor_reference == external_id)
        if not conditions:
            return []

        rows = (
            self.db.query(LedgerEntry)
            .filter(
                LedgerEntry.kind == LedgerEntryKind.CUSTOMER_PAYMENT.value,
                or_(*conditions),
            )
            .limit(limit)
            .all()
        )
        return [self._to_record(row) for row in rows]

    def search(
        self,
        text: Optional[str] = None,
        amount: Optional[Decimal] = None,
        tolerance: Decimal = Decimal("0.01"),
        limit: int = 50,
    ) -> list[LedgerEntryRecord]:
        query = self.db.query(LedgerEntry).filter(
            LedgerEntry.kind.in_(_DEPOSITABLE_KINDS),
            LedgerEntry.deposit_id.is_(None),
            LedgerEntry.account.ilike(f"%{UNDEPOSITED_ACCOUNT_MARKER}%"),
        )
        if text:
            pattern = f"%{text.strip()}%"
            query = query.filter(
                or_(
                    LedgerEntry.document_number.ilike(pattern),
                    LedgerEntry.id.ilike(pattern),
                )
            )
        if amount is not None:
            query = query.filter(
                LedgerEntry.amount >= amount - tolerance,
                LedgerEntry.amount <= amount + tolerance,
            )

        rows = query.order_by(LedgerEntry.entry_date.desc()).limit(limit).all()
        return [self._to_record(row) for row in rows]

    def list_undeposited(self, account: str) -> list[LedgerEntryRecord]:
        rows = (
            self.db.query(LedgerEntry)
            .filter(
                LedgerEntry.kind.in_(_DEPOSITABLE_KINDS),
                LedgerEntry.deposit_id.is_(None),
            )
            .all()
        )
        return [
            self._to_record(row) for row in rows if is_undeposited_account(row.account)
        ]

    # ── Deposits ─────────────────────────────────────────────────────

    def create_deposit(
        self,
        account: str,
        deposit_date: Optional[date],
        memo: str,
        entry_ids: Iterable[str],
    ) -> str:
        ids = list(entry_ids)
        entries = self.db.query(LedgerEntry).filter(LedgerEntry.id.in_(ids)).all()
        if not entries:
            raise ValueError("A deposit needs at least one ledger entry")

        deposit = DepositBatch(
            account=account,
            deposit_date=deposit_date,
            memo=memo,
            total_amount=sum((e.amount for e in entries), Decimal("0")),
        )
        self.db.add(deposit)
        self.db.flush()

        for entry in entries:
            entry.deposit_id = deposit.id
            entry.account = account
        self.db.flush()

        logger.info(
            "Deposit created: id=%s account=%s entries=%d total=%s",
            deposit.id,
            account,
            len(entries),
            deposit.total_amount,
        )
        return str(deposit.id)

    # ── Private helpers ──────────────────────────────────────────────

    @staticmethod
    def _to_record(entry: LedgerEntry) -> LedgerEntryRecord:
        return LedgerEntryRecord(
            id=entry.id,
            document_number=entry.document_number,
            kind=entry.kind,
            amount=entry.amount,
            currency=entry.currency,
            status=entry.status,
            account=entry.account,
            available_for_deposit=(
                entry.deposit_id is None and is_undeposited_account(entry.account)
            ),
            customer_name=entry.customer_name,
            entry_date=entry.entry_date,
        )
