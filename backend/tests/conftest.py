"""
Pytest fixtures for washrent backend tests.

Provides an in-memory database, a fixed clock, and small factories for the
four movement sources and for equipment.
"""

import uuid
from datetime import datetime, timedelta

import pytest
from washrent import create_app
from washrent.extensions import db
from washrent.models import CapitalEvent, Equipment, Expense, Order, OrderPayment


# Fixed "now" for services that accept an injected clock
NOW = datetime(2026, 3, 15, 12, 0, 0)

# Default timestamp for funding rows; safely in the past for routes that use the real clock
FUNDED_AT = datetime(2020, 1, 1, 9, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_READ_TIMEOUT_SECONDS': 10,
        'RECONCILE_ON_STARTUP': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def actor():
    return "tester"


@pytest.fixture
def fund(db_session):
    """Credit a channel with a capital injection: fund("cash", 500, at=...)."""
    def _fund(channel: str, cents: int, at: datetime = FUNDED_AT, kind: str = "injection") -> CapitalEvent:
        event = CapitalEvent(
            batch_ref=str(uuid.uuid4()),
            kind=kind,
            channel=channel,
            amount_cents=cents,
            occurred_at=at,
            created_by="fixture",
        )
        db_session.add(event)
        db_session.commit()
        return event

    return _fund


@pytest.fixture
def spend(db_session):
    """Debit a channel with a general expense: spend("cash", 80, at=...)."""
    def _spend(channel: str, cents: int, at: datetime = FUNDED_AT) -> Expense:
        expense = Expense(
            channel=channel,
            amount_cents=cents,
            spent_at=at,
            created_by="fixture",
        )
        db_session.add(expense)
        db_session.commit()
        return expense

    return _spend


@pytest.fixture
def make_equipment(db_session):
    counter = {"n": 0}

    def _make(code: str | None = None, state: str = "available", **fields) -> Equipment:
        counter["n"] += 1
        equipment = Equipment(
            code=code or f"E{counter['n']}",
            state=state,
            created_by="fixture",
            **fields,
        )
        db_session.add(equipment)
        db_session.commit()
        return equipment

    return _make


@pytest.fixture
def make_order(db_session):
    def _make(customer_name: str = "Ana", status: str = "pending", **fields) -> Order:
        order = Order(customer_name=customer_name, status=status, created_by="fixture", **fields)
        db_session.add(order)
        db_session.commit()
        return order

    return _make


@pytest.fixture
def pay(db_session):
    def _pay(order: Order, channel: str, cents: int, at: datetime = FUNDED_AT) -> OrderPayment:
        payment = OrderPayment(
            order_id=order.id,
            channel=channel,
            amount_cents=cents,
            paid_at=at,
            recorded_by="fixture",
        )
        db_session.add(payment)
        db_session.commit()
        return payment

    return _pay


def actor_headers(actor: str = "tester") -> dict:
    """Helper to create X-Actor headers."""
    return {'X-Actor': actor}


def hours(n: int) -> timedelta:
    return timedelta(hours=n)
