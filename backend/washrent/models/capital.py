from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class CapitalEvent(db.Model):
    """
    Owner capital put into or taken out of one channel.

    KINDS:
    - initial:    opening capital, recorded once for the business
    - injection:  credit
    - withdrawal: debit

    One row per channel. A single operator action spanning several channels
    writes several rows sharing batch_ref.
    """
    __tablename__ = "capital_events"
    __table_args__ = (
        db.Index("ix_capital_events_channel_occurred", "channel", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_ref = db.Column(db.String(36), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, index=True)
    channel = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)  # magnitude; sign comes from kind

    concept = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_ref": self.batch_ref,
            "kind": self.kind,
            "channel": self.channel,
            "amount_cents": self.amount_cents,
            "concept": self.concept,
            "notes": self.notes,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_by": self.created_by,
        }


class ExpenseConcept(db.Model):
    __tablename__ = "expense_concepts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }


class Expense(db.Model):
    """General operating expense (expense movement source). Append-only."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_channel_spent", "channel", "spent_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    concept_id = db.Column(db.Integer, db.ForeignKey("expense_concepts.id"), nullable=True, index=True)

    channel = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=True)

    spent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    concept = db.relationship("ExpenseConcept", backref=db.backref("expenses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "concept_id": self.concept_id,
            "concept": self.concept.name if self.concept else None,
            "channel": self.channel,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "spent_at": to_utc_z(self.spent_at),
            "created_by": self.created_by,
        }
