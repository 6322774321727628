"""Tests for the reconciliation engine against SQLite and the SQL ledger."""

from __future__ import annotations

from decimal import Decimal

from conftest import add_ledger_entry, settlement_detail, source_txn
from deposit_reconciler.core.constants import REFUND_REQUIRES_MANUAL
from deposit_reconciler.models.transaction import ExternalTransaction
from deposit_reconciler.repositories import SettlementRepository
from deposit_reconciler.services.ledger.store import SqlLedgerStore
from deposit_reconciler.services.reconciliation.engine import ReconciliationEngine


def _run(db, settings, detail):
    batch = SettlementRepository(db).create_batch(detail)
    engine = ReconciliationEngine(db, settings, SqlLedgerStore(db))
    return batch, engine.match(detail.transactions, batch)


class TestMatch:
    def test_purchase_matches_and_refund_is_held(self, db_session, test_settings):
        add_ledger_entry(db_session, "501", "1001", "100.00")
        detail = settlement_detail(
            transactions=[
                source_txn("T1", "100.00", reference="1001"),
                source_txn("T2", "20.00", type="Refund", reference="1001"),
            ]
        )

        batch, outcome = _run(db_session, test_settings, detail)

        assert [m.transaction.external_id for m in outcome.matched] == ["T1"]
        assert outcome.matched[0].entry.id == "501"
        assert [(u.transaction.external_id, u.reason) for u in outcome.unmatched] == [
            ("T2", REFUND_REQUIRES_MANUAL)
        ]
        assert outcome.matched_amount == Decimal("100.00")

    def test_every_line_is_persisted(self, db_session, test_settings):
        detail = settlement_detail(
            transactions=[
                source_txn("T1", "10.00", reference="404"),
                source_txn("T2", "20.00", type="Refund"),
            ]
        )
        batch, _ = _run(db_session, test_settings, detail)

        rows = db_session.query(ExternalTransaction).filter_by(settlement_id=batch.id).all()
        assert {r.external_id for r in rows} == {"T1", "T2"}
        assert all(not r.matched for r in rows)
        assert all(r.match_error for r in rows)

    def test_matched_row_links_entry(self, db_session, test_settings):
        add_ledger_entry(db_session, "501", "1001", "100.00")
        detail = settlement_detail(transactions=[source_txn("T1", "100.00", reference="1001")])
        _run(db_session, test_settings, detail)

        row = db_session.query(ExternalTransaction).filter_by(external_id="T1").one()
        assert row.matched is True
        assert row.ledger_entry_id == "501"
        assert row.match_error is None
        assert row.in_deposit is False

    def test_amount_mismatch_is_unmatched_with_both_amounts(
        self, db_session, test_settings
    ):
        add_ledger_entry(db_session, "501", "1001", "100.02")
        detail = settlement_detail(transactions=[source_txn("T1", "100.00", reference="1001")])

        _, outcome = _run(db_session, test_settings, detail)

        assert outcome.matched == []
        reason = outcome.unmatched[0].reason
        assert "100.02" in reason and "100.00" in reason
        row = db_session.query(ExternalTransaction).filter_by(external_id="T1").one()
        assert row.match_error == reason
        assert row.ledger_entry_id is None

    def test_refund_never_matches_even_with_perfect_entry(self, db_session, test_settings):
        add_ledger_entry(db_session, "501", "1001", "20.00", auth_code="AUTH1")
        detail = settlement_detail(
            transactions=[
                source_txn("T2", "20.00", type="refund", reference="1001", auth_code="AUTH1")
            ]
        )
        _, outcome = _run(db_session, test_settings, detail)
        assert outcome.matched == []
        assert outcome.unmatched[0].reason == REFUND_REQUIRES_MANUAL

    def test_already_deposited_entry(self, db_session, test_settings):
        add_ledger_entry(db_session, "501", "1001", "100.00", account="Cheque Account")
        detail = settlement_detail(transactions=[source_txn("T1", "100.00", reference="1001")])
        _, outcome = _run(db_session, test_settings, detail)
        assert "already been deposited" in outcome.unmatched[0].reason

    def test_not_found_reason_lists_search_keys(self, db_session, test_settings):
        detail = settlement_detail(
            transactions=[source_txn("T9", "5.00", reference="INV-42", auth_code="XYZ")]
        )
        _, outcome = _run(db_session, test_settings, detail)
        reason = outcome.unmatched[0].reason
        assert "docNum=INV-42" in reason
        assert "authCode=XYZ" in reason
        assert "externalId=T9" in reason

    def test_error_note_lists_each_unmatched_line(self, db_session, test_settings):
        detail = settlement_detail(
            transactions=[
                source_txn("T1", "10.00", type="Refund"),
                source_txn("T2", "20.00", type="Refund"),
            ]
        )
        _, outcome = _run(db_session, test_settings, detail)
        assert outcome.error_note() == (
            "Unmatched transactions:\n"
            f"Txn T1: {REFUND_REQUIRES_MANUAL}\n"
            f"Txn T2: {REFUND_REQUIRES_MANUAL}"
        )

    def test_empty_settlement(self, db_session, test_settings):
        _, outcome = _run(db_session, test_settings, settlement_detail(transactions=[]))
        assert outcome.matched == [] and outcome.unmatched == []
        assert outcome.error_note() is None
