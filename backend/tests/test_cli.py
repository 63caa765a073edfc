# Overview: Pytest coverage for the flask CLI groups, run through the app's test CLI runner.

import pytest

from washrent.extensions import db
from washrent.models import Equipment


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestLedgerCommands:
    def test_balances(self, runner, db_session, fund, spend):
        fund("cash", 1_500)
        spend("cash", 200)

        result = runner.invoke(args=["ledger", "balances", "--as-of", "2026-03-15T12:00:00Z"])

        assert result.exit_code == 0
        assert "Efectivo" in result.output
        assert "13.00" in result.output

    def test_statement(self, runner, db_session, fund, spend):
        fund("nequi", 2_000)
        spend("nequi", 500)

        result = runner.invoke(args=["ledger", "statement", "nequi"])

        assert result.exit_code == 0
        assert "Opening balance: 0.00" in result.output
        assert "Closing balance: 15.00" in result.output

    def test_unknown_channel_fails(self, runner, db_session):
        result = runner.invoke(args=["ledger", "statement", "paypal"])
        assert result.exit_code != 0

    def test_bad_as_of_fails(self, runner, db_session):
        result = runner.invoke(args=["ledger", "balances", "--as-of", "yesterday"])
        assert result.exit_code != 0


class TestMaintenanceCommands:
    def test_reconcile(self, runner, db_session, make_equipment):
        e = make_equipment(state="rented", assigned_order_id=404)

        first = runner.invoke(args=["maintenance", "reconcile"])
        assert first.exit_code == 0
        assert f"Corrected 1 unit(s): {e.id}" in first.output
        assert db.session.get(Equipment, e.id).state == "available"

        second = runner.invoke(args=["maintenance", "reconcile"])
        assert "No orphaned units found." in second.output

    def test_partial_writes_listing_and_repair(self, runner, db_session, make_equipment):
        make_equipment(state="in_maintenance", active_maintenance_id=55)

        listed = runner.invoke(args=["maintenance", "partial-writes"])
        assert listed.exit_code == 0
        assert "maintenance=55" in listed.output
        assert "UNRESOLVABLE" in listed.output

        repaired = runner.invoke(args=["maintenance", "partial-writes", "--repair"])
        assert repaired.exit_code != 0
        assert "Repaired 0, unresolved 1" in repaired.output

    def test_clean_store(self, runner, db_session):
        result = runner.invoke(args=["maintenance", "partial-writes"])
        assert "No partial writes found." in result.output


class TestSystemCommands:
    def test_seed_demo_is_idempotent(self, runner, db_session):
        first = runner.invoke(args=["system", "seed-demo"])
        assert first.exit_code == 0, first.output
        assert "PASS Recorded initial capital" in first.output

        second = runner.invoke(args=["system", "seed-demo"])
        assert second.exit_code == 0
        assert "SKIP Initial capital already recorded" in second.output
        assert db.session.query(Equipment).count() == 3
