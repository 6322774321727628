"""Shared test fixtures for the deposit reconciler tests.

Uses a SQLite file database so tests run without PostgreSQL.
"""

from __future__ import annotations

import os

# Override DATABASE_URL before importing anything from the package; the
# module-level ``engine`` in core.database would otherwise target PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ.pop("SMTP_HOST", None)

from datetime import date
from decimal import Decimal
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from deposit_reconciler.core.config import Settings
from deposit_reconciler.core.constants import LedgerEntryKind
from deposit_reconciler.core.database import Base, get_db
from deposit_reconciler.main import app
from deposit_reconciler.models.configuration import ReconciliationConfiguration
from deposit_reconciler.models.ledger import LedgerEntry
from deposit_reconciler.schemas.ledger import LedgerEntryRecord
from deposit_reconciler.schemas.source import (
    SourceSettlement,
    SourceSettlementDetail,
)
from deposit_reconciler.services.ledger.store import LedgerStore

TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """FastAPI test client with overridden DB dependency."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        smtp_host=None,
        retry_delay_seconds=1.0,
        max_api_retries=3,
    )


# ── Factories ────────────────────────────────────────────────────────


def add_ledger_entry(
    db,
    entry_id: str,
    document_number: str,
    amount: str,
    kind: LedgerEntryKind = LedgerEntryKind.CUSTOMER_PAYMENT,
    account: str = "Undeposited Funds",
    auth_code: Optional[str] = None,
    processor_reference: Optional[str] = None,
) -> LedgerEntry:
    entry = LedgerEntry(
        id=entry_id,
        document_number=document_number,
        kind=kind.value,
        amount=Decimal(amount),
        currency="NZD",
        status="Deposited" if "undeposited" not in account.lower() else "Not Deposited",
        account=account,
        auth_code=auth_code,
        processor_reference=processor_reference,
        entry_date=date(2024, 1, 4),
    )
    db.add(entry)
    db.flush()
    return entry


def add_configuration(db, **overrides) -> ReconciliationConfiguration:
    fields = {
        "name": "Main Store",
        "api_username": "api-user",
        "api_password": "secret",
        "environment": "uat",
        "merchant_id": "MERCHANT1",
        "deposit_account": "Cheque Account",
        "lookback_days": 1,
        "is_active": True,
        "notification_email": None,
        "send_email": False,
        "schedule_enabled": True,
        "schedule_frequency": "daily",
        "schedule_day": 1,
        "schedule_hour": 6,
    }
    fields.update(overrides)
    configuration = ReconciliationConfiguration(**fields)
    db.add(configuration)
    db.flush()
    return configuration


def settlement_detail(
    external_id: str = "S1",
    transactions: Optional[list[dict]] = None,
    status: str = "Done",
    credit_debit: str = "CR",
    settlement_date: str = "2024-01-05",
    reference: str = "REF-S1",
) -> SourceSettlementDetail:
    """A settlement detail payload in the source's wire format."""
    txns = transactions or []
    return SourceSettlementDetail.model_validate(
        {
            "id": external_id,
            "settlementDate": settlement_date,
            "amount": str(sum(Decimal(str(t["amount"])) for t in txns) if txns else "0"),
            "currency": "NZD",
            "status": status,
            "CRDR": credit_debit,
            "referenceNumber": reference,
            "merchantId": "MERCHANT1",
            "transactions": txns,
        }
    )


def source_txn(
    txn_id: str,
    amount: str,
    reference: Optional[str] = None,
    type: str = "Purchase",
    auth_code: Optional[str] = None,
) -> dict:
    return {
        "id": txn_id,
        "merchantReference": reference,
        "amount": amount,
        "currency": "NZD",
        "type": type,
        "method": "card",
        "authCode": auth_code,
        "dateTimeUtc": "2024-01-04T22:15:00Z",
    }


# ── Fakes ────────────────────────────────────────────────────────────


class InMemoryLedger(LedgerStore):
    """LedgerStore over a list of records, recording every query."""

    def __init__(self, entries: Optional[list[dict]] = None) -> None:
        self.entries: list[dict] = list(entries or [])
        self.calls: list[tuple] = []
        self.deposits: list[dict] = []

    @staticmethod
    def _record(row: dict) -> LedgerEntryRecord:
        return LedgerEntryRecord(
            id=row["id"],
            document_number=row["document_number"],
            kind=row.get("kind", LedgerEntryKind.CUSTOMER_PAYMENT.value),
            amount=Decimal(row["amount"]),
            available_for_deposit=row.get("available", True),
        )

    def get(self, entry_id):
        self.calls.append(("get", entry_id))
        for row in self.entries:
            if row["id"] == entry_id:
                return self._record(row)
        return None

    def find_by_document_number(self, document_number, kind, limit=5):
        self.calls.append(("document_number", document_number, LedgerEntryKind(kind)))
        rows = [
            r
            for r in self.entries
            if r["document_number"] == document_number
            and r.get("kind", LedgerEntryKind.CUSTOMER_PAYMENT.value)
            == LedgerEntryKind(kind).value
        ]
        return [self._record(r) for r in rows[:limit]]

    def find_by_auth_or_reference(self, auth_code, external_id, limit=10):
        self.calls.append(("auth_or_reference", auth_code, external_id))
        rows = [
            r
            for r in self.entries
            if r.get("kind", LedgerEntryKind.CUSTOMER_PAYMENT.value)
            == LedgerEntryKind.CUSTOMER_PAYMENT.value
            and (
                (auth_code and r.get("auth_code") == auth_code)
                or (external_id and r.get("processor_reference") == external_id)
            )
        ]
        return [self._record(r) for r in rows[:limit]]

    def search(self, text=None, amount=None, tolerance=Decimal("0.01"), limit=50):
        return [self._record(r) for r in self.entries if r.get("available", True)][:limit]

    def list_undeposited(self, account):
        return [self._record(r) for r in self.entries if r.get("available", True)]

    def create_deposit(self, account, deposit_date, memo, entry_ids):
        ids = list(entry_ids)
        reference = f"DEP-{len(self.deposits) + 1}"
        self.deposits.append(
            {"reference": reference, "account": account, "memo": memo, "entry_ids": ids}
        )
        for row in self.entries:
            if row["id"] in ids:
                row["available"] = False
        return reference


class FakeSourceClient:
    """Settlement source double serving canned settlements."""

    def __init__(self, details: list[SourceSettlementDetail], fail_on: tuple = ()) -> None:
        self.details = {d.id: d for d in details}
        self.fail_on = set(fail_on)
        self.list_calls: list[tuple[date, date]] = []
        self.detail_calls: list[str] = []

    def __enter__(self) -> "FakeSourceClient":
        return self

    def __exit__(self, *exc_info) -> None:
        return None

    def list_settlements(self, date_from, date_to) -> list[SourceSettlement]:
        self.list_calls.append((date_from, date_to))
        return [SourceSettlement.model_validate(d.model_dump()) for d in self.details.values()]

    def get_settlement_detail(self, external_id):
        self.detail_calls.append(external_id)
        if external_id in self.fail_on:
            raise RuntimeError(f"detail for {external_id} exploded")
        return self.details[external_id]


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send(self, recipient: str, subject: str, body: str) -> None:
        self.sent.append((recipient, subject, body))
