# Overview: Pytest coverage for balance reconstruction from the four movement sources.

"""
Channel Ledger Tests

- Balances are recomputed from movements, as-of filtering is inclusive
- Additivity and partition of balances over time
- Stable ordering of movements sharing a timestamp
- Bad timestamps get a deterministic fallback, never a dropped row
- Store failures and slow reads surface as TransientStoreError
"""

import time
from datetime import datetime, timedelta

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from washrent.domain import Channel, SourceCategory
from washrent.errors import TransientStoreError
from washrent.extensions import db
from washrent.models import MaintenanceCost, OrderPayment
from washrent.services import ledger_service, movement_sources
from washrent.services.ledger_service import EPSILON
from washrent.services.movement_sources import FALLBACK_EPOCH, resolve_timestamp


T1 = datetime(2026, 3, 1, 9, 0)
T2 = datetime(2026, 3, 2, 9, 0)
T3 = datetime(2026, 3, 3, 9, 0)
T4 = datetime(2026, 3, 4, 9, 0)


@pytest.fixture
def scenario_a(fund, spend, make_order, pay):
    """cash: +100 @t1, +200 @t2, +50 @t3, -80 @t4 (mixed sources)."""
    fund("cash", 100, at=T1)
    order = make_order(customer_name="Luisa", plan_name="24 hours")
    pay(order, "cash", 200, at=T2)
    fund("cash", 50, at=T3)
    spend("cash", 80, at=T4)
    return order


class TestBalances:
    def test_scenario_a(self, db_session, scenario_a):
        assert ledger_service.balance_as_of(Channel.CASH, T4) == 270
        assert ledger_service.balance_as_of(Channel.CASH, T3) == 350

    def test_cutoff_is_inclusive(self, db_session, scenario_a):
        assert ledger_service.balance_as_of(Channel.CASH, T1) == 100
        assert ledger_service.balance_as_of(Channel.CASH, T1 - EPSILON) == 0

    def test_empty_channel_is_zero(self, db_session, scenario_a):
        assert ledger_service.balance_as_of(Channel.NEQUI, T4) == 0
        assert ledger_service.all_movements(Channel.DAVIPLATA) == []

    def test_channels_are_independent(self, db_session, scenario_a, fund):
        fund("nequi", 999, at=T2)
        assert ledger_service.balance_as_of(Channel.CASH, T4) == 270
        assert ledger_service.balance_as_of(Channel.NEQUI, T4) == 999

    def test_additivity(self, db_session, scenario_a):
        for t in (T1, T2, T3, T4, T4 + timedelta(days=10)):
            assert ledger_service.balance_as_of(Channel.CASH, t) == ledger_service.balance_in_range(
                Channel.CASH, None, t
            )

    def test_partition(self, db_session, scenario_a):
        for t1, t2 in ((T1, T3), (T2, T4), (T1 - EPSILON, T4)):
            left = ledger_service.balance_as_of(Channel.CASH, t1)
            right = ledger_service.balance_in_range(Channel.CASH, t1 + EPSILON, t2)
            assert ledger_service.balance_as_of(Channel.CASH, t2) == left + right

    def test_future_dated_movement_counts_once_reached(self, db_session, scenario_a, fund):
        later = T4 + timedelta(days=5)
        fund("cash", 1000, at=later)

        assert ledger_service.balance_as_of(Channel.CASH, T4) == 270
        assert ledger_service.balance_as_of(Channel.CASH, later) == 1270

    def test_balance_up_to_yesterday(self, db_session, fund):
        now = datetime(2026, 3, 15, 10, 0)
        fund("cash", 100, at=datetime(2026, 3, 14, 23, 59, 59, 999999))
        fund("cash", 40, at=datetime(2026, 3, 15, 0, 0))

        assert ledger_service.balance_up_to_yesterday(Channel.CASH, now) == 100
        assert ledger_service.current_balances(now)[Channel.CASH] == 140

    def test_current_balances_has_every_channel(self, db_session, scenario_a):
        balances = ledger_service.current_balances(T4)
        assert set(balances) == {Channel.CASH, Channel.NEQUI, Channel.DAVIPLATA}
        assert balances[Channel.CASH] == 270


class TestMovements:
    def test_range_is_inclusive_and_ascending(self, db_session, scenario_a):
        movements = ledger_service.movements_in_range(Channel.CASH, T2, T4)
        assert [m.timestamp for m in movements] == [T2, T3, T4]
        assert [m.signed_amount for m in movements] == [200, 50, -80]

    def test_unbounded_range_returns_everything(self, db_session, scenario_a):
        assert len(ledger_service.movements_in_range(Channel.CASH)) == 4

    def test_movement_ids_are_source_qualified(self, db_session, scenario_a):
        ids = [m.id for m in ledger_service.all_movements(Channel.CASH)]
        assert ids[0].startswith("capital-")
        assert ids[1].startswith("payment-")
        assert ids[3].startswith("expense-")
        assert len(set(ids)) == 4

    def test_same_timestamp_tie_break_is_stable(self, db_session, fund, make_order, pay, spend):
        order = make_order()
        spend("cash", 5, at=T1)
        pay(order, "cash", 20, at=T1)
        fund("cash", 100, at=T1)

        first = [m.id for m in ledger_service.all_movements(Channel.CASH)]
        second = [m.id for m in ledger_service.all_movements(Channel.CASH)]
        assert first == second
        categories = [m.source_category for m in ledger_service.all_movements(Channel.CASH)]
        assert categories == [
            SourceCategory.CAPITAL_EVENT,
            SourceCategory.ORDER_PAYMENT,
            SourceCategory.EXPENSE,
        ]

    def test_withdrawal_is_a_debit(self, db_session, fund):
        fund("cash", 500, at=T1)
        fund("cash", 120, at=T2, kind="withdrawal")
        assert ledger_service.balance_as_of(Channel.CASH, T2) == 380

    def test_payment_concept_names_customer(self, db_session, scenario_a):
        payment = [
            m for m in ledger_service.all_movements(Channel.CASH)
            if m.source_category is SourceCategory.ORDER_PAYMENT
        ][0]
        assert payment.concept == "Payment from Luisa"
        assert payment.description == "Plan 24 hours"


class TestStatement:
    def test_opening_plus_period_equals_closing(self, db_session, scenario_a):
        statement = ledger_service.channel_statement(Channel.CASH, T2, T4)

        assert statement["opening_balance_cents"] == 100
        assert statement["total_in_cents"] == 250
        assert statement["total_out_cents"] == 80
        assert statement["closing_balance_cents"] == 270
        assert statement["movement_count"] == 3
        assert [row["running_balance_cents"] for row in statement["movements"]] == [300, 350, 270]
        assert statement["closing_balance_cents"] == ledger_service.balance_as_of(Channel.CASH, T4)

    def test_by_source_breakdown(self, db_session, scenario_a):
        statement = ledger_service.channel_statement(Channel.CASH)
        assert statement["by_source"] == {
            "order_payment": 200,
            "capital_event": 150,
            "expense": -80,
            "maintenance_cost": 0,
        }
        assert statement["channel_name"] == "Efectivo"


class TestDataQuality:
    def test_missing_timestamp_falls_back_to_created_at(self, db_session, make_order):
        order = make_order()
        payment = OrderPayment(order_id=order.id, channel="cash", amount_cents=70, paid_at=None, recorded_by="x")
        db_session.add(payment)
        db_session.commit()

        movements = ledger_service.all_movements(Channel.CASH)
        assert len(movements) == 1
        assert movements[0].timestamp_fallback is True
        assert movements[0].timestamp == payment.created_at.replace(tzinfo=None)
        assert movements[0].amount == 70

    def test_fallback_is_deterministic(self, db_session):
        ts1, used1 = resolve_timestamp("not-a-date", category=SourceCategory.EXPENSE, source_id=42)
        ts2, used2 = resolve_timestamp("not-a-date", category=SourceCategory.EXPENSE, source_id=42)

        assert used1 and used2
        assert ts1 == ts2 == FALLBACK_EPOCH + timedelta(seconds=42)

    def test_iso_string_is_parsed(self, db_session):
        ts, used = resolve_timestamp("2026-03-01T09:00:00Z", category=SourceCategory.EXPENSE, source_id=1)
        assert ts == T1
        assert used is False

    def test_fallback_logs_warning(self, db_session, caplog):
        resolve_timestamp(None, category=SourceCategory.MAINTENANCE_COST, source_id=3)
        assert "maintenance-3" in caplog.text

    def test_maintenance_cost_without_timestamp_still_counts(self, db_session, fund):
        fund("daviplata", 1000, at=T1)
        db_session.add(MaintenanceCost(equipment_id=1, channel="daviplata", amount_cents=300, occurred_at=None))
        db_session.commit()

        assert ledger_service.balance_as_of(Channel.DAVIPLATA) == 700

    def test_garbage_stored_timestamp_keeps_the_row(self, db_session, fund, spend, caplog):
        fund("cash", 1000, at=T1)
        expense = spend("cash", 300, at=T2)
        db_session.execute(text("UPDATE expenses SET spent_at = 'garbage' WHERE id = :id"), {"id": expense.id})
        db_session.commit()

        assert ledger_service.balance_as_of(Channel.CASH, datetime(2030, 1, 1)) == 700

        flagged = [m for m in ledger_service.all_movements(Channel.CASH) if m.timestamp_fallback]
        assert [m.id for m in flagged] == [f"expense-{expense.id}"]
        assert "garbage" in caplog.text

    def test_garbage_payment_timestamp_does_not_break_funds_reads(self, db_session, fund, make_order, pay):
        fund("nequi", 500, at=T1)
        payment = pay(make_order(), "nequi", 200, at=T2)
        db_session.execute(text("UPDATE order_payments SET paid_at = '31/02/2026' WHERE id = :id"), {"id": payment.id})
        db_session.commit()

        assert ledger_service.current_balances(datetime(2030, 1, 1))[Channel.NEQUI] == 700


class TestStoreFailures:
    def test_operational_error_becomes_transient(self, db_session, monkeypatch):
        def broken(channel):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setitem(movement_sources.SOURCE_READERS, SourceCategory.EXPENSE, broken)

        with pytest.raises(TransientStoreError) as exc:
            ledger_service.balance_as_of(Channel.CASH, T4)
        assert exc.value.to_dict()["retryable"] is True

    def test_slow_read_times_out(self, app, db_session, monkeypatch):
        def slow(channel):
            time.sleep(0.05)
            return []

        monkeypatch.setitem(app.config, "LEDGER_READ_TIMEOUT_SECONDS", 0.01)
        monkeypatch.setitem(movement_sources.SOURCE_READERS, SourceCategory.CAPITAL_EVENT, slow)

        with pytest.raises(TransientStoreError):
            ledger_service.current_balances(T4)

    def test_failure_is_never_a_zero_balance(self, db_session, fund, monkeypatch):
        fund("cash", 100, at=T1)

        def broken(channel):
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        monkeypatch.setitem(movement_sources.SOURCE_READERS, SourceCategory.ORDER_PAYMENT, broken)
        with pytest.raises(TransientStoreError):
            ledger_service.channel_statement(Channel.CASH)

        db.session.rollback()
