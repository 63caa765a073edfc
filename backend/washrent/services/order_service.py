# Overview: Service-layer operations for rental orders; drives equipment assignment and records payments.

"""
Order Events

WHY: Orders are the authoritative source for which unit is at which
customer. Delivery and pickup are the only order events that move a unit
between available and rented, and a payment on an order is one of the four
movement sources of the channel ledger.

DESIGN PRINCIPLES:
- The order status change and the unit transition commit in one transaction.
- Pickup/cancel never fail because the unit drifted out of sync: the order
  is authoritative, the unit is released only if it still points at this
  order, and anything else is left for the orphan reconciler.
- Payments are append-only; corrections are new rows.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app

from ..extensions import db
from ..domain import EquipmentState, OrderStatus, parse_channel
from ..errors import ConflictError, InvalidStateTransition, NotFound, ValidationError
from ..models import Equipment, Order, OrderPayment
from ..time_utils import utcnow
from . import equipment_service
from .concurrency import run_with_retry


def create_order(
    *,
    customer_name: str,
    actor: str,
    plan_name: str | None = None,
    price_cents: int = 0,
    customer_phone: str | None = None,
    code: str | None = None,
    notes: str | None = None,
) -> Order:
    if not (customer_name or "").strip():
        raise ValidationError("customer_name is required")
    if isinstance(price_cents, bool) or not isinstance(price_cents, int) or price_cents < 0:
        raise ValidationError("price_cents must be a non-negative integer")
    if code and db.session.query(Order).filter_by(code=code).first():
        raise ConflictError(f"Order '{code}' already exists")

    order = Order(
        code=code,
        customer_name=customer_name.strip(),
        customer_phone=customer_phone,
        plan_name=plan_name,
        price_cents=price_cents,
        status=OrderStatus.PENDING.value,
        notes=notes,
        created_by=actor,
    )
    db.session.add(order)
    db.session.commit()
    return order


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order or order.deleted_at is not None:
        raise NotFound(f"Order {order_id} not found")
    return order


def list_orders(status=None) -> list[Order]:
    q = db.session.query(Order).filter(Order.deleted_at.is_(None))
    if status is not None:
        q = q.filter(Order.status == OrderStatus(status).value)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).all()


def _require_status(order: Order, *allowed: OrderStatus) -> None:
    if OrderStatus(order.status) not in allowed:
        raise InvalidStateTransition(
            f"Order {order.id} is {order.status}; expected {', '.join(s.value for s in allowed)}",
            current_state=order.status,
        )


def _release_unit(order: Order, *, actor: str) -> None:
    if order.assigned_equipment_id is None:
        return
    equipment = db.session.get(Equipment, order.assigned_equipment_id)
    if (
        equipment is not None
        and equipment.state == EquipmentState.RENTED.value
        and equipment.assigned_order_id == order.id
    ):
        equipment_service.apply_released(equipment, actor=actor)
    else:
        current_app.logger.warning(
            "Order %s released but unit %s no longer points at it; left for reconciliation",
            order.id,
            order.assigned_equipment_id,
        )


# =============================================================================
# ORDER EVENTS
# =============================================================================

def deliver_order(
    order_id: int,
    equipment_id: int,
    *,
    actor: str,
    delivered_at: Optional[datetime] = None,
) -> Order:
    """
    pending -> delivered; unit available -> rented.

    Raises:
        NotFound: order or unit missing
        InvalidStateTransition: order not pending or unit not available
    """
    def _op():
        order = get_order(order_id)
        _require_status(order, OrderStatus.PENDING)
        equipment = equipment_service.get_equipment(equipment_id)

        equipment_service.apply_rented(equipment, order.id, actor=actor)

        order.status = OrderStatus.DELIVERED.value
        order.assigned_equipment_id = equipment.id
        order.delivered_at = delivered_at or utcnow()
        order.delivered_by = actor
        db.session.commit()
        return order

    return run_with_retry(_op)


def pickup_order(
    order_id: int,
    *,
    actor: str,
    picked_up_at: Optional[datetime] = None,
) -> Order:
    """delivered -> picked_up; the unit goes back to available."""
    def _op():
        order = get_order(order_id)
        _require_status(order, OrderStatus.DELIVERED)

        order.status = OrderStatus.PICKED_UP.value
        order.picked_up_at = picked_up_at or utcnow()
        order.picked_up_by = actor
        _release_unit(order, actor=actor)
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(
    order_id: int,
    *,
    actor: str,
    reason: str | None = None,
    now: Optional[datetime] = None,
) -> Order:
    """pending | delivered -> cancelled; frees the unit if one was delivered."""
    def _op():
        order = get_order(order_id)
        _require_status(order, OrderStatus.PENDING, OrderStatus.DELIVERED)

        order.status = OrderStatus.CANCELLED.value
        order.cancelled_at = now or utcnow()
        order.cancel_reason = reason
        _release_unit(order, actor=actor)
        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# PAYMENTS
# =============================================================================

def record_payment(
    order_id: int,
    *,
    channel,
    amount_cents: int,
    actor: str,
    paid_at: Optional[datetime] = None,
    reference: str | None = None,
    is_partial: bool = False,
) -> OrderPayment:
    """Append a payment (credit on ``channel``) to an order."""
    channel = parse_channel(channel)
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer")

    order = get_order(order_id)
    payment = OrderPayment(
        order_id=order.id,
        channel=channel.value,
        amount_cents=amount_cents,
        reference=reference,
        is_partial=bool(is_partial),
        paid_at=paid_at or utcnow(),
        recorded_by=actor,
    )
    db.session.add(payment)
    db.session.commit()
    return payment


def payment_summary(order_id: int) -> dict:
    order = get_order(order_id)
    payments = (
        db.session.query(OrderPayment)
        .filter_by(order_id=order.id)
        .order_by(OrderPayment.id)
        .all()
    )
    paid = sum(p.amount_cents for p in payments)
    return {
        "order_id": order.id,
        "price_cents": order.price_cents,
        "paid_cents": paid,
        "pending_cents": max(order.price_cents - paid, 0),
        "payments": [p.to_dict() for p in payments],
    }
