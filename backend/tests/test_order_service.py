# Overview: Pytest coverage for order events and their effect on equipment and the ledger.

import pytest

from washrent.domain import Channel
from washrent.errors import InvalidStateTransition, NotFound, ValidationError
from washrent.extensions import db
from washrent.models import Equipment
from washrent.services import ledger_service, order_service


@pytest.fixture
def order(db_session, actor):
    return order_service.create_order(customer_name="Marta", actor=actor, plan_name="Weekend", price_cents=60_000)


class TestOrderEvents:
    def test_deliver_rents_the_unit(self, db_session, order, make_equipment, actor):
        unit = make_equipment()

        delivered = order_service.deliver_order(order.id, unit.id, actor=actor)

        unit = db.session.get(Equipment, unit.id)
        assert delivered.status == "delivered"
        assert delivered.assigned_equipment_id == unit.id
        assert unit.state == "rented"
        assert unit.location == "customer"
        assert unit.assigned_order_id == order.id
        assert unit.active_maintenance_id is None

    def test_deliver_requires_available_unit(self, db_session, order, make_equipment, actor):
        unit = make_equipment(state="out_of_service")

        with pytest.raises(InvalidStateTransition):
            order_service.deliver_order(order.id, unit.id, actor=actor)

        db.session.rollback()
        assert order_service.get_order(order.id).status == "pending"

    def test_deliver_twice_rejected(self, db_session, order, make_equipment, actor):
        order_service.deliver_order(order.id, make_equipment().id, actor=actor)
        with pytest.raises(InvalidStateTransition):
            order_service.deliver_order(order.id, make_equipment().id, actor=actor)

    def test_pickup_releases_unit(self, db_session, order, make_equipment, actor):
        unit = make_equipment()
        order_service.deliver_order(order.id, unit.id, actor=actor)

        order_service.pickup_order(order.id, actor=actor)

        unit = db.session.get(Equipment, unit.id)
        assert order_service.get_order(order.id).status == "picked_up"
        assert unit.state == "available"
        assert unit.assigned_order_id is None

    def test_pickup_tolerates_drifted_unit(self, db_session, order, make_equipment, actor):
        unit = make_equipment()
        order_service.deliver_order(order.id, unit.id, actor=actor)

        # out-of-band edit: unit already freed
        unit = db.session.get(Equipment, unit.id)
        unit.state = "available"
        unit.assigned_order_id = None
        db.session.commit()

        picked = order_service.pickup_order(order.id, actor=actor)
        assert picked.status == "picked_up"
        assert db.session.get(Equipment, unit.id).state == "available"

    def test_cancel_pending(self, db_session, order, actor):
        cancelled = order_service.cancel_order(order.id, actor=actor, reason="customer away")
        assert cancelled.status == "cancelled"
        assert cancelled.cancel_reason == "customer away"

    def test_cancel_delivered_frees_unit(self, db_session, order, make_equipment, actor):
        unit = make_equipment()
        order_service.deliver_order(order.id, unit.id, actor=actor)

        order_service.cancel_order(order.id, actor=actor)
        assert db.session.get(Equipment, unit.id).state == "available"

    def test_terminal_order_cannot_be_cancelled(self, db_session, order, actor):
        order_service.cancel_order(order.id, actor=actor)
        with pytest.raises(InvalidStateTransition):
            order_service.cancel_order(order.id, actor=actor)

    def test_deleted_order_not_found(self, db_session, make_order, now):
        order = make_order(deleted_at=now)
        with pytest.raises(NotFound):
            order_service.get_order(order.id)


class TestPayments:
    def test_payment_is_a_ledger_credit(self, db_session, order, actor, now):
        order_service.record_payment(order.id, channel="nequi", amount_cents=25_000, actor=actor, paid_at=now)

        assert ledger_service.balance_as_of(Channel.NEQUI, now) == 25_000
        movement = ledger_service.all_movements(Channel.NEQUI)[0]
        assert movement.concept == "Payment from Marta"

    def test_summary_tracks_pending(self, db_session, order, actor, now):
        order_service.record_payment(order.id, channel="cash", amount_cents=20_000, actor=actor, paid_at=now, is_partial=True)
        order_service.record_payment(order.id, channel="nequi", amount_cents=10_000, actor=actor, paid_at=now)

        summary = order_service.payment_summary(order.id)
        assert summary["paid_cents"] == 30_000
        assert summary["pending_cents"] == 30_000
        assert len(summary["payments"]) == 2

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_payment_rejected(self, db_session, order, actor, amount):
        with pytest.raises(ValidationError):
            order_service.record_payment(order.id, channel="cash", amount_cents=amount, actor=actor)

    def test_unknown_channel_rejected(self, db_session, order, actor):
        with pytest.raises(ValidationError):
            order_service.record_payment(order.id, channel="paypal", amount_cents=100, actor=actor)
