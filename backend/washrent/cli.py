# Overview: Flask CLI command groups for bootstrap, ledger inspection, and maintenance.

# backend/washrent/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` once migrations are in play).
# - python -m flask system seed-demo
#   Idempotent demo data: initial capital, a few units, one delivered order.
#
# Ledger inspection:
# - python -m flask ledger balances [--as-of 2026-03-01T12:00:00Z]
#   Balance of every channel, plus balance up to end of yesterday.
# - python -m flask ledger statement cash --start 2026-03-01 --end 2026-03-31
#   Opening/closing balance and every movement in the window.
#
# Maintenance:
# - python -m flask maintenance reconcile
#   Return rented units with no active order to available.
# - python -m flask maintenance partial-writes [--repair]
#   List (and optionally re-derive) incomplete maintenance writes.

import click
from flask.cli import with_appcontext

from .extensions import db
from .domain import ALL_CHANNELS, parse_channel
from .errors import DomainError
from .models import Equipment
from .services import capital_service, equipment_service, ledger_service, order_service
from .services import maintenance_service, reconciliation_service
from .time_utils import parse_iso_datetime, utcnow


CLI_ACTOR = "cli"


def _cents(value: int) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}{abs(value) // 100:,}.{abs(value) % 100:02d}"


def _parse_dt_option(value, name):
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise click.BadParameter(f"{name} must be an ISO-8601 datetime")


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create every table that does not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """
    Load demo data for a local walkthrough.

    Safe to run twice: every step checks before writing.
    """
    click.echo("START Seeding demo data...")

    if not capital_service.has_initial_capital():
        capital_service.record_initial_capital(
            {"cash": 50_000_00, "nequi": 30_000_00, "daviplata": 10_000_00},
            actor=CLI_ACTOR,
            notes="Demo opening balance",
        )
        click.echo("PASS Recorded initial capital")
    else:
        click.echo("SKIP Initial capital already recorded")

    for code, brand in (("G-01", "LG"), ("G-02", "Samsung"), ("G-03", "Whirlpool")):
        if db.session.query(Equipment).filter_by(code=code).first():
            click.echo(f"SKIP Equipment {code} exists")
            continue
        equipment_service.register_equipment(code, actor=CLI_ACTOR, brand=brand)
        click.echo(f"PASS Registered equipment {code}")

    if not order_service.list_orders():
        unit = db.session.query(Equipment).filter_by(code="G-01").first()
        order = order_service.create_order(
            customer_name="Demo Customer",
            actor=CLI_ACTOR,
            plan_name="24 hours",
            price_cents=35_000_00,
        )
        if unit.state == "available":
            order_service.deliver_order(order.id, unit.id, actor=CLI_ACTOR)
        order_service.record_payment(order.id, channel="cash", amount_cents=35_000_00, actor=CLI_ACTOR)
        click.echo(f"PASS Created order {order.id}")

    click.echo("DONE Demo data ready")


@click.group('ledger')
def ledger_group():
    """Channel ledger inspection."""


@ledger_group.command('balances')
@click.option('--as-of', 'as_of', default=None, help='ISO-8601 instant used as "now"')
@with_appcontext
def ledger_balances(as_of):
    """Print the balance of every channel."""
    now = _parse_dt_option(as_of, "--as-of") or utcnow()
    try:
        balances = ledger_service.current_balances(now)
        click.echo(f"Balances as of {now.isoformat()}Z")
        for channel in ALL_CHANNELS:
            yesterday = ledger_service.balance_up_to_yesterday(channel, now)
            click.echo(
                f"  {channel.display_name:<10} {_cents(balances[channel]):>16}"
                f"   (up to yesterday {_cents(yesterday)})"
            )
        click.echo(f"  {'Total':<10} {_cents(sum(balances.values())):>16}")
    except DomainError as e:
        raise click.ClickException(e.message)


@ledger_group.command('statement')
@click.argument('channel')
@click.option('--start', default=None, help='ISO-8601 start (inclusive)')
@click.option('--end', default=None, help='ISO-8601 end (inclusive)')
@with_appcontext
def ledger_statement(channel, start, end):
    """Print the statement of one channel."""
    try:
        ch = parse_channel(channel)
        statement = ledger_service.channel_statement(
            ch,
            _parse_dt_option(start, "--start"),
            _parse_dt_option(end, "--end"),
        )
    except DomainError as e:
        raise click.ClickException(e.message)

    click.echo(f"{statement['channel_name']} statement")
    click.echo(f"  Opening balance: {_cents(statement['opening_balance_cents'])}")
    for row in statement["movements"]:
        click.echo(
            f"  {row['timestamp']}  {row['id']:<16} {_cents(row['signed_amount_cents']):>14}"
            f"  {_cents(row['running_balance_cents']):>14}  {row['concept']}"
        )
    click.echo(f"  In: {_cents(statement['total_in_cents'])}  Out: {_cents(statement['total_out_cents'])}")
    click.echo(f"  Closing balance: {_cents(statement['closing_balance_cents'])}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('reconcile')
@with_appcontext
def reconcile_cli():
    """Return orphaned rented units to available."""
    corrected = reconciliation_service.reconcile_orphans(actor=CLI_ACTOR)
    if corrected:
        click.echo(f"Corrected {len(corrected)} unit(s): {', '.join(str(i) for i in corrected)}")
    else:
        click.echo("No orphaned units found.")


@maintenance_group.command('partial-writes')
@click.option('--repair', is_flag=True, help='Re-derive missing pieces where two of three exist')
@with_appcontext
def partial_writes_cli(repair):
    """List incomplete maintenance writes."""
    if not repair:
        findings = maintenance_service.detect_partial_writes()
        if not findings:
            click.echo("No partial writes found.")
            return
        for f in findings:
            click.echo(
                f"  maintenance={f['maintenance_id']} equipment={f['equipment_id']}"
                f" present={','.join(f['present'])} missing={','.join(f['missing'])}"
                f" {'resolvable' if f['resolvable'] else 'UNRESOLVABLE'}"
            )
        return

    report = maintenance_service.repair_partial_writes(actor=CLI_ACTOR)
    click.echo(f"Repaired {len(report['repaired'])}, unresolved {len(report['unresolved'])}")
    if report["unresolved"]:
        raise click.ClickException("Some maintenance writes need an operator")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(maintenance_group)
