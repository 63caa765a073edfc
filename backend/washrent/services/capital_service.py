# Overview: Service-layer operations for owner capital and operating expenses (two ledger movement sources).

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..domain import ALL_CHANNELS, CapitalKind, parse_capital_kind, parse_channel
from ..errors import ConflictError, NotFound, ValidationError
from ..models import CapitalEvent, Expense, ExpenseConcept
from ..time_utils import utcnow
from . import funds_service


def _parse_amounts(amounts: dict) -> dict:
    """
    Normalize {channel: cents} input.

    Zero amounts are dropped; at least one channel must be positive.
    """
    if not isinstance(amounts, dict) or not amounts:
        raise ValidationError("amounts must map channel -> amount_cents")

    parsed = {}
    for raw_channel, cents in amounts.items():
        channel = parse_channel(raw_channel)
        if isinstance(cents, bool) or not isinstance(cents, int) or cents < 0:
            raise ValidationError(f"amount for {channel.value} must be a non-negative integer")
        if cents:
            parsed[channel] = cents

    if not parsed:
        raise ValidationError("at least one channel amount must be positive")
    # canonical order so batch rows are written deterministically
    return {c: parsed[c] for c in ALL_CHANNELS if c in parsed}


def has_initial_capital() -> bool:
    return (
        db.session.query(CapitalEvent.id)
        .filter(CapitalEvent.kind == CapitalKind.INITIAL.value)
        .first()
        is not None
    )


def _write_batch(
    kind: CapitalKind,
    amounts: dict,
    *,
    actor: str,
    concept: str | None,
    notes: str | None,
    occurred_at: Optional[datetime],
) -> list[CapitalEvent]:
    batch_ref = str(uuid.uuid4())
    at = occurred_at or utcnow()
    events = []
    for channel, cents in amounts.items():
        event = CapitalEvent(
            batch_ref=batch_ref,
            kind=kind.value,
            channel=channel.value,
            amount_cents=cents,
            concept=concept,
            notes=notes,
            occurred_at=at,
            created_by=actor,
        )
        db.session.add(event)
        events.append(event)
    db.session.commit()
    return events


def record_initial_capital(
    amounts: dict,
    *,
    actor: str,
    notes: str | None = None,
    occurred_at: Optional[datetime] = None,
) -> list[CapitalEvent]:
    """Opening capital per channel. Recorded once; later changes are injections/withdrawals."""
    parsed = _parse_amounts(amounts)
    if has_initial_capital():
        raise ConflictError("Initial capital has already been recorded")
    return _write_batch(
        CapitalKind.INITIAL,
        parsed,
        actor=actor,
        concept="Initial capital",
        notes=notes,
        occurred_at=occurred_at,
    )


def record_capital_movement(
    kind,
    amounts: dict,
    *,
    actor: str,
    concept: str | None = None,
    notes: str | None = None,
    occurred_at: Optional[datetime] = None,
) -> list[CapitalEvent]:
    """
    Injection (credit) or withdrawal (debit) across one or more channels.

    A withdrawal must be covered by every channel it touches.
    """
    kind = parse_capital_kind(kind)
    if kind is CapitalKind.INITIAL:
        raise ValidationError("use record_initial_capital for initial capital")
    parsed = _parse_amounts(amounts)

    if kind is CapitalKind.WITHDRAWAL:
        for channel, cents in parsed.items():
            funds_service.require_sufficient(channel, cents, occurred_at)

    return _write_batch(
        kind,
        parsed,
        actor=actor,
        concept=concept,
        notes=notes,
        occurred_at=occurred_at,
    )


def list_capital_events(kind=None) -> list[CapitalEvent]:
    q = db.session.query(CapitalEvent)
    if kind is not None:
        q = q.filter(CapitalEvent.kind == parse_capital_kind(kind).value)
    return q.order_by(CapitalEvent.occurred_at, CapitalEvent.id).all()


# =============================================================================
# EXPENSES
# =============================================================================

def create_expense_concept(name: str, *, description: str | None = None) -> ExpenseConcept:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if db.session.query(ExpenseConcept).filter_by(name=name).first():
        raise ConflictError(f"Expense concept '{name}' already exists")

    concept = ExpenseConcept(name=name, description=description, is_active=True)
    db.session.add(concept)
    db.session.commit()
    return concept


def list_expense_concepts(active_only: bool = True) -> list[ExpenseConcept]:
    q = db.session.query(ExpenseConcept)
    if active_only:
        q = q.filter(ExpenseConcept.is_active.is_(True))
    return q.order_by(ExpenseConcept.name).all()


def record_expense(
    channel,
    amount_cents: int,
    *,
    actor: str,
    concept_id: int | None = None,
    description: str | None = None,
    spent_at: Optional[datetime] = None,
) -> Expense:
    channel = parse_channel(channel)
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer")

    if concept_id is not None:
        concept = db.session.get(ExpenseConcept, concept_id)
        if not concept:
            raise NotFound(f"Expense concept {concept_id} not found")
        if not concept.is_active:
            raise ValidationError(f"Expense concept '{concept.name}' is inactive")

    expense = Expense(
        concept_id=concept_id,
        channel=channel.value,
        amount_cents=amount_cents,
        description=description,
        spent_at=spent_at or utcnow(),
        created_by=actor,
    )
    db.session.add(expense)
    db.session.commit()
    return expense
