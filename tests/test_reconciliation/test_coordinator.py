"""Tests for the batch coordinator: scheduling, idempotency, isolation, budget."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal

from conftest import (
    FakeSourceClient,
    RecordingNotifier,
    add_configuration,
    add_ledger_entry,
    settlement_detail,
    source_txn,
)
from deposit_reconciler.core.constants import (
    LOW_BUDGET,
    REFUND_REQUIRES_MANUAL,
    SUBJECT_ERRORS,
    SUBJECT_SUCCESS,
)
from deposit_reconciler.core.exceptions import SettlementSourceAuthError
from deposit_reconciler.models.configuration import ReconciliationConfiguration
from deposit_reconciler.models.ledger import DepositBatch, LedgerEntry
from deposit_reconciler.models.settlement import SettlementBatch
from deposit_reconciler.services.ledger.store import SqlLedgerStore
from deposit_reconciler.services.reconciliation.coordinator import BatchCoordinator
from deposit_reconciler.services.reconciliation.schedule import ProcessingBudget

# Friday 2024-01-05, inside the default 06:00 schedule slot
NOW = datetime(2024, 1, 5, 6, 15)


class SequenceBudget(ProcessingBudget):
    """Returns the given values in order, then repeats the last one."""

    def __init__(self, *values: float) -> None:
        self.values = list(values)

    def remaining(self) -> float:
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


def _coordinator(db, settings, clients, notifier=None, now=NOW):
    """Coordinator whose source clients are looked up by configuration name."""
    return BatchCoordinator(
        db=db,
        config=settings,
        ledger=SqlLedgerStore(db),
        client_factory=lambda configuration: clients[configuration.name],
        notifier=notifier,
        clock=lambda: now,
    )


def _s1_client() -> FakeSourceClient:
    return FakeSourceClient(
        [
            settlement_detail(
                "S1",
                transactions=[
                    source_txn("T1", "100.00", reference="1001"),
                    source_txn("T2", "20.00", type="Refund"),
                ],
            )
        ]
    )


# ── End-to-end scenarios ─────────────────────────────────────────────


class TestSettlementScenarios:
    def test_purchase_matched_refund_held_and_deposited(self, db_session, test_settings):
        configuration = add_configuration(db_session)
        add_ledger_entry(db_session, "E1", "1001", "100.00")
        db_session.commit()

        summary = _coordinator(
            db_session, test_settings, {"Main Store": _s1_client()}
        ).run_scheduled()

        batch = db_session.query(SettlementBatch).filter_by(external_id="S1").one()
        assert batch.matched_count == 1
        assert batch.unmatched_count == 1
        assert batch.matched_amount == Decimal("100.00")
        assert batch.processed is True
        assert batch.processed_at == NOW
        assert batch.configuration_id == configuration.id
        assert REFUND_REQUIRES_MANUAL in batch.error_message

        deposit = db_session.query(DepositBatch).one()
        assert batch.deposit_reference == str(deposit.id)
        assert [e.id for e in deposit.entries] == ["E1"]
        assert deposit.account == "Cheque Account"

        assert summary.settlements_processed == 1
        assert summary.deposits_created == 1
        assert summary.transactions_matched == 1
        assert summary.transactions_unmatched == 1
        assert configuration.last_run_status == (
            "Success: 1 settlements processed, 1 matched, 1 unmatched"
        )
        assert configuration.last_run_at == NOW

    def test_amount_mismatch_creates_no_deposit(self, db_session, test_settings):
        add_configuration(db_session)
        add_ledger_entry(db_session, "E1", "1001", "100.02")
        db_session.commit()
        client = FakeSourceClient(
            [settlement_detail("S1", transactions=[source_txn("T1", "100.00", reference="1001")])]
        )

        _coordinator(db_session, test_settings, {"Main Store": client}).run_scheduled()

        batch = db_session.query(SettlementBatch).one()
        assert (batch.matched_count, batch.unmatched_count) == (0, 1)
        assert "100.02" in batch.error_message and "100.00" in batch.error_message
        assert batch.deposit_reference is None
        assert db_session.query(DepositBatch).count() == 0

    def test_debit_settlement_is_processed_without_deposit(self, db_session, test_settings):
        add_configuration(db_session)
        add_ledger_entry(db_session, "E1", "1001", "100.00")
        db_session.commit()
        client = FakeSourceClient(
            [
                settlement_detail(
                    "S1",
                    credit_debit="DR",
                    transactions=[source_txn("T1", "100.00", reference="1001")],
                )
            ]
        )

        _coordinator(db_session, test_settings, {"Main Store": client}).run_scheduled()

        batch = db_session.query(SettlementBatch).one()
        assert batch.processed is True
        assert batch.matched_count == 1
        assert batch.deposit_reference is None
        assert db_session.query(DepositBatch).count() == 0

    def test_entry_deposited_elsewhere_notes_missing_deposit(
        self, db_session, test_settings
    ):
        add_configuration(db_session)
        add_ledger_entry(db_session, "E1", "1001", "100.00")
        db_session.commit()
        coordinator = _coordinator(db_session, test_settings, {"Main Store": _s1_client()})

        # The entry leaves undeposited funds between matching and grouping
        original = coordinator.ledger.list_undeposited
        coordinator.ledger.list_undeposited = lambda account: []
        try:
            coordinator.run_scheduled()
        finally:
            coordinator.ledger.list_undeposited = original

        batch = db_session.query(SettlementBatch).one()
        assert batch.processed is True
        assert batch.deposit_reference is None
        assert "Deposit not created" in batch.error_message


# ── Idempotency ─────────────────────────────────────────────────────


class TestAtMostOnce:
    def test_overlapping_runs_record_settlement_once(self, db_session, test_settings):
        add_configuration(db_session)
        add_ledger_entry(db_session, "E1", "1001", "100.00")
        db_session.commit()
        client = _s1_client()
        coordinator = _coordinator(db_session, test_settings, {"Main Store": client})

        first = coordinator.run_adhoc(date(2024, 1, 1), date(2024, 1, 5))
        second = coordinator.run_adhoc(date(2024, 1, 4), date(2024, 1, 8))

        assert db_session.query(SettlementBatch).filter_by(external_id="S1").count() == 1
        assert first.settlements_processed == 1
        assert second.settlements_processed == 0
        assert second.settlements_skipped == 1
        assert client.detail_calls == ["S1"]

    def test_unsettled_batches_are_skipped(self, db_session, test_settings):
        add_configuration(db_session)
        db_session.commit()
        client = FakeSourceClient(
            [
                settlement_detail("S1", status="Pending"),
                settlement_detail("S2", status="Void"),
            ]
        )

        summary = _coordinator(
            db_session, test_settings, {"Main Store": client}
        ).run_adhoc(date(2024, 1, 1), date(2024, 1, 5))

        assert summary.settlements_found == 2
        assert summary.settlements_skipped == 2
        assert db_session.query(SettlementBatch).count() == 0
        assert client.detail_calls == []


# ── Failure isolation ───────────────────────────────────────────────


class TestFailureIsolation:
    def test_bad_settlement_does_not_stop_the_others(self, db_session, test_settings):
        add_configuration(db_session)
        db_session.commit()
        client = FakeSourceClient(
            [
                settlement_detail("S1", transactions=[source_txn("T1", "5.00")]),
                settlement_detail("S2", transactions=[source_txn("T2", "6.00")]),
                settlement_detail("S3", transactions=[source_txn("T3", "7.00")]),
            ],
            fail_on=("S2",),
        )

        summary = _coordinator(
            db_session, test_settings, {"Main Store": client}
        ).run_adhoc(date(2024, 1, 1), date(2024, 1, 5))

        recorded = {b.external_id for b in db_session.query(SettlementBatch).all()}
        assert recorded == {"S1", "S3"}
        assert summary.settlements_processed == 2
        assert any("Settlement S2" in e for e in summary.all_errors())

    def test_source_failure_only_aborts_its_configuration(self, db_session, test_settings):
        add_configuration(db_session, name="A Store")
        add_configuration(db_session, name="B Store")
        db_session.commit()

        class RejectingClient(FakeSourceClient):
            def list_settlements(self, date_from, date_to):
                raise SettlementSourceAuthError("API authentication failed", 401)

        clients = {
            "A Store": RejectingClient([]),
            "B Store": FakeSourceClient([settlement_detail("S1")]),
        }
        summary = _coordinator(db_session, test_settings, clients).run_scheduled()

        assert db_session.query(SettlementBatch).count() == 1
        results = {r.name: r for r in summary.configurations}
        assert results["A Store"].failed is True
        assert results["A Store"].errors == ["API authentication failed"]
        assert results["B Store"].settlements_processed == 1

        configs = {c.name: c for c in db_session.query(ReconciliationConfiguration).all()}
        assert configs["A Store"].last_run_status == "Error: API authentication failed"
        assert configs["B Store"].last_run_status.startswith("Success: 1 settlements")

    def test_no_active_configuration(self, db_session, test_settings):
        add_configuration(db_session, is_active=False)
        db_session.commit()

        summary = _coordinator(db_session, test_settings, {}).run_scheduled()

        assert summary.configurations == []
        assert summary.errors == ["No active reconciliation configuration found"]


# ── Budget ──────────────────────────────────────────────────────────


class TestBudget:
    def test_low_budget_stops_between_settlements(self, db_session, test_settings):
        add_configuration(db_session)
        db_session.commit()
        client = FakeSourceClient(
            [
                settlement_detail("S1", transactions=[source_txn("T1", "5.00")]),
                settlement_detail("S2", transactions=[source_txn("T2", "6.00")]),
            ]
        )
        # configuration check, settlement S1 check, settlement S2 check
        budget = SequenceBudget(1000, 1000, 10)

        summary = _coordinator(
            db_session, test_settings, {"Main Store": client}
        ).run_scheduled(budget=budget)

        assert [b.external_id for b in db_session.query(SettlementBatch).all()] == ["S1"]
        assert summary.stopped_early is True
        assert LOW_BUDGET in summary.errors

    def test_low_budget_before_configuration_processes_nothing(
        self, db_session, test_settings
    ):
        add_configuration(db_session)
        db_session.commit()
        client = _s1_client()

        summary = _coordinator(
            db_session, test_settings, {"Main Store": client}
        ).run_scheduled(budget=SequenceBudget(1))

        assert summary.configurations == []
        assert summary.errors == [LOW_BUDGET]
        assert client.list_calls == []

    def test_work_is_resumed_on_next_run(self, db_session, test_settings):
        add_configuration(db_session)
        db_session.commit()
        client = FakeSourceClient(
            [
                settlement_detail("S1", transactions=[source_txn("T1", "5.00")]),
                settlement_detail("S2", transactions=[source_txn("T2", "6.00")]),
            ]
        )
        coordinator = _coordinator(db_session, test_settings, {"Main Store": client})

        coordinator.run_adhoc(
            date(2024, 1, 1), date(2024, 1, 5), budget=SequenceBudget(1000, 1000, 10)
        )
        coordinator.run_adhoc(date(2024, 1, 1), date(2024, 1, 5))

        recorded = sorted(b.external_id for b in db_session.query(SettlementBatch).all())
        assert recorded == ["S1", "S2"]
        assert client.detail_calls == ["S1", "S2"]


# ── Scheduling ──────────────────────────────────────────────────────


class TestScheduledRun:
    def test_lookback_window_is_passed_to_source(self, db_session, test_settings):
        add_configuration(db_session, lookback_days=3)
        db_session.commit()
        client = FakeSourceClient([])

        _coordinator(db_session, test_settings, {"Main Store": client}).run_scheduled()

        assert client.list_calls == [(date(2024, 1, 2), date(2024, 1, 5))]

    def test_configuration_outside_its_hour_is_skipped(self, db_session, test_settings):
        add_configuration(db_session, schedule_hour=7)
        db_session.commit()
        client = FakeSourceClient([])

        summary = _coordinator(
            db_session, test_settings, {"Main Store": client}
        ).run_scheduled()

        assert summary.configurations == []
        assert summary.errors == []
        assert client.list_calls == []

    def test_recent_run_is_not_repeated(self, db_session, test_settings):
        add_configuration(db_session, last_run_at=NOW - timedelta(minutes=30))
        db_session.commit()
        client = FakeSourceClient([])

        _coordinator(db_session, test_settings, {"Main Store": client}).run_scheduled()

        assert client.list_calls == []

    def test_adhoc_ignores_schedule_and_keeps_last_run(self, db_session, test_settings):
        configuration = add_configuration(db_session, schedule_enabled=False)
        db_session.commit()
        client = FakeSourceClient([])

        _coordinator(db_session, test_settings, {"Main Store": client}).run_adhoc(
            date(2024, 1, 1), date(2024, 1, 2), configuration_id=configuration.id
        )

        assert client.list_calls == [(date(2024, 1, 1), date(2024, 1, 2))]
        assert configuration.last_run_at is None


# ── Notifications ───────────────────────────────────────────────────


class TestNotifications:
    def test_shared_address_gets_one_combined_email(self, db_session, test_settings):
        add_configuration(
            db_session, name="A Store", notification_email="ops@x.com", send_email=True
        )
        add_configuration(
            db_session, name="B Store", notification_email="ops@x.com", send_email=True
        )
        db_session.commit()
        notifier = RecordingNotifier()
        clients = {"A Store": FakeSourceClient([]), "B Store": FakeSourceClient([])}

        _coordinator(db_session, test_settings, clients, notifier=notifier).run_scheduled()

        assert [recipient for recipient, _, _ in notifier.sent] == ["ops@x.com"]
        body = notifier.sent[0][2]
        assert "Results by Configuration:" in body
        assert "A Store:" in body and "B Store:" in body

    def test_single_configuration_has_no_breakdown(self, db_session, test_settings):
        add_configuration(db_session, notification_email="ops@x.com", send_email=True)
        db_session.commit()
        notifier = RecordingNotifier()

        _coordinator(
            db_session,
            test_settings,
            {"Main Store": FakeSourceClient([])},
            notifier=notifier,
        ).run_scheduled()

        recipient, subject, body = notifier.sent[0]
        assert subject == SUBJECT_SUCCESS
        assert "Results by Configuration" not in body

    def test_unmatched_transactions_flag_the_subject(self, db_session, test_settings):
        add_configuration(db_session, notification_email="ops@x.com", send_email=True)
        add_ledger_entry(db_session, "E1", "1001", "100.00")
        db_session.commit()
        notifier = RecordingNotifier()

        _coordinator(
            db_session, test_settings, {"Main Store": _s1_client()}, notifier=notifier
        ).run_scheduled()

        _, subject, body = notifier.sent[0]
        assert subject == SUBJECT_ERRORS
        assert "- Unmatched: 1" in body
        assert "NOTE:" in body

    def test_distinct_addresses_each_get_a_copy(self, db_session, test_settings):
        add_configuration(
            db_session, name="A Store", notification_email="a@x.com", send_email=True
        )
        add_configuration(
            db_session, name="B Store", notification_email="b@x.com", send_email=True
        )
        add_configuration(
            db_session, name="C Store", notification_email="c@x.com", send_email=False
        )
        db_session.commit()
        notifier = RecordingNotifier()
        clients = {name: FakeSourceClient([]) for name in ("A Store", "B Store", "C Store")}

        _coordinator(db_session, test_settings, clients, notifier=notifier).run_scheduled()

        assert sorted(r for r, _, _ in notifier.sent) == ["a@x.com", "b@x.com"]

    def test_notifier_failure_does_not_fail_the_run(self, db_session, test_settings):
        add_configuration(db_session, notification_email="ops@x.com", send_email=True)
        db_session.commit()

        class BrokenNotifier(RecordingNotifier):
            def send(self, recipient, subject, body):
                raise ConnectionRefusedError("smtp down")

        summary = _coordinator(
            db_session,
            test_settings,
            {"Main Store": FakeSourceClient([])},
            notifier=BrokenNotifier(),
        ).run_scheduled()

        assert summary.finished_at == NOW


def test_ledger_entry_marked_deposited_after_run(db_session, test_settings):
    add_configuration(db_session)
    add_ledger_entry(db_session, "E1", "1001", "100.00")
    db_session.commit()

    _coordinator(db_session, test_settings, {"Main Store": _s1_client()}).run_scheduled()

    entry = db_session.get(LedgerEntry, "E1")
    assert entry.deposit_id is not None
    assert SqlLedgerStore(db_session).get("E1").available_for_deposit is False
