from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    Rental order. Authoritative for which unit is assigned to whom.

    LIFECYCLE:
    - pending -> delivered -> picked_up
    - pending | delivered -> cancelled
    picked_up and cancelled are terminal. A soft-deleted order (deleted_at set)
    is never considered active, whatever its status.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_equipment", "status", "assigned_equipment_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=True, unique=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=True)
    plan_name = db.Column(db.String(128), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    assigned_equipment_id = db.Column(db.Integer, nullable=True, index=True)

    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_by = db.Column(db.String(128), nullable=True)
    picked_up_at = db.Column(db.DateTime(timezone=True), nullable=True)
    picked_up_by = db.Column(db.String(128), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(128), nullable=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "plan_name": self.plan_name,
            "price_cents": self.price_cents,
            "status": self.status,
            "assigned_equipment_id": self.assigned_equipment_id,
            "delivered_at": to_utc_z(self.delivered_at),
            "delivered_by": self.delivered_by,
            "picked_up_at": to_utc_z(self.picked_up_at),
            "picked_up_by": self.picked_up_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
            "deleted_at": to_utc_z(self.deleted_at),
            "notes": self.notes,
            "created_by": self.created_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class OrderPayment(db.Model):
    """
    Money received against an order (order-payment movement source).

    Append-only. paid_at may be NULL on legacy rows; the ledger falls back to
    created_at in that case and logs a data-quality warning.
    """
    __tablename__ = "order_payments"
    __table_args__ = (
        db.Index("ix_order_payments_channel_paid", "channel", "paid_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    channel = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    is_partial = db.Column(db.Boolean, nullable=False, default=False)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    recorded_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "channel": self.channel,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
            "is_partial": self.is_partial,
            "paid_at": to_utc_z(self.paid_at),
            "recorded_by": self.recorded_by,
        }
