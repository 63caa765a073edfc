from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Equipment(db.Model):
    """
    A physical washing machine available for rent.

    STATE MACHINE (enforced by equipment_service, never by callers):
    - available -> rented           (order delivery)
    - rented -> available           (order pickup/cancel, orphan reconciler)
    - available -> in_maintenance   (maintenance open only)
    - in_maintenance -> available   (maintenance close only)
    - available <-> out_of_service  (operator)
    - any -> retired                (terminal)

    INVARIANT: assigned_order_id is set iff state == rented;
    active_maintenance_id is set iff state == in_maintenance.

    Both references are plain integers, not foreign keys: the referenced
    rows live in independently edited tables and a dangling reference must
    stay observable so the reconciler and the partial-write repair can find it.
    """
    __tablename__ = "equipment"
    __table_args__ = (
        db.Index("ix_equipment_state", "state"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-facing identifier printed on the unit (e.g. "G-07")
    code = db.Column(db.String(32), nullable=False, unique=True)
    brand = db.Column(db.String(64), nullable=True)
    model = db.Column(db.String(64), nullable=True)
    serial_number = db.Column(db.String(128), nullable=True)

    state = db.Column(db.String(32), nullable=False, default="available")
    location = db.Column(db.String(32), nullable=False, default="warehouse")

    assigned_order_id = db.Column(db.Integer, nullable=True, index=True)
    active_maintenance_id = db.Column(db.Integer, nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(128), nullable=True)
    updated_by = db.Column(db.String(128), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Equipment id={self.id} code={self.code!r} state={self.state!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "brand": self.brand,
            "model": self.model,
            "serial_number": self.serial_number,
            "state": self.state,
            "location": self.location,
            "assigned_order_id": self.assigned_order_id,
            "active_maintenance_id": self.active_maintenance_id,
            "notes": self.notes,
            "updated_by": self.updated_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class MaintenanceRecord(db.Model):
    """
    Repair lifecycle for one unit.

    LIFECYCLE:
    - OPEN:   closed_at is NULL. The cost was debited when the record was created.
    - CLOSED: closed_at set. Closing never changes the debited amount.
    """
    __tablename__ = "maintenance_records"
    __table_args__ = (
        db.Index("ix_maintenance_equipment_opened", "equipment_id", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    equipment_id = db.Column(db.Integer, db.ForeignKey("equipment.id"), nullable=False, index=True)

    channel = db.Column(db.String(16), nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    failure_type = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)
    technician = db.Column(db.String(128), nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    estimated_end_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)
    opened_by = db.Column(db.String(128), nullable=False)
    closed_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    equipment = db.relationship("Equipment", backref=db.backref("maintenance_records", lazy=True))

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "channel": self.channel,
            "cost_cents": self.cost_cents,
            "failure_type": self.failure_type,
            "description": self.description,
            "technician": self.technician,
            "opened_at": to_utc_z(self.opened_at),
            "estimated_end_at": to_utc_z(self.estimated_end_at),
            "closed_at": to_utc_z(self.closed_at),
            "is_open": self.is_open,
            "notes": self.notes,
            "opened_by": self.opened_by,
            "closed_by": self.closed_by,
        }


class MaintenanceCost(db.Model):
    """
    Maintenance-cost movement source (append-only).

    Written BEFORE its MaintenanceRecord, so maintenance_ref is a plain
    integer that may briefly (or, after an interrupted write, permanently)
    point at nothing.
    """
    __tablename__ = "maintenance_costs"
    __table_args__ = (
        db.Index("ix_maintenance_costs_channel_occurred", "channel", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    maintenance_ref = db.Column(db.Integer, nullable=True, index=True)
    equipment_id = db.Column(db.Integer, nullable=False, index=True)

    channel = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    concept = db.Column(db.String(128), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "maintenance_ref": self.maintenance_ref,
            "equipment_id": self.equipment_id,
            "channel": self.channel,
            "amount_cents": self.amount_cents,
            "concept": self.concept,
            "occurred_at": to_utc_z(self.occurred_at),
        }
