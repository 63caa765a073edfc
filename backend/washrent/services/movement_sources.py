# Overview: Read-only adapters that turn the four movement source tables into Movements.

"""
Movement Store Adapter

WHY: Money moves through four independent tables (order payments, capital
events, expenses, maintenance costs). None of them knows about the others and
there is no single query that returns a consistent cross-table snapshot, so
each source has its own reader that normalizes raw rows into Movement.

RULES:
- Readers are read-only and idempotent. They never flush or commit.
- A row with a missing or unparsable timestamp is NEVER dropped. It gets a
  deterministic fallback (row created_at, else an epoch offset from the row
  id) and a data-quality warning is logged.
- Database failures and slow reads surface as TransientStoreError. They are
  never turned into an empty movement list.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from flask import current_app
from sqlalchemy import type_coerce
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import defer

from ..extensions import db
from ..domain import (
    CapitalKind,
    Channel,
    Direction,
    Movement,
    MOVEMENT_ID_PREFIX,
    SourceCategory,
)
from ..errors import DataQualityError, TransientStoreError
from ..models import CapitalEvent, Expense, MaintenanceCost, Order, OrderPayment
from ..time_utils import parse_iso_datetime


FALLBACK_EPOCH = datetime(1970, 1, 1)

CAPITAL_CONCEPTS = {
    CapitalKind.INITIAL: "Initial capital",
    CapitalKind.INJECTION: "Capital injection",
    CapitalKind.WITHDRAWAL: "Capital withdrawal",
}


def movement_id(category: SourceCategory, source_id: int) -> str:
    return f"{MOVEMENT_ID_PREFIX[category]}-{source_id}"


def resolve_timestamp(
    raw,
    *,
    category: SourceCategory,
    source_id: int,
    created_at: datetime | None = None,
) -> tuple[datetime, bool]:
    """
    Return (timestamp, used_fallback) for a raw source value.

    Accepts datetimes and ISO-8601 strings. Anything else falls back to the
    row's own creation time, or to FALLBACK_EPOCH + source_id seconds when
    even that is missing, so the result only depends on the row itself.
    """
    if isinstance(raw, datetime):
        if raw.tzinfo is not None:
            raw = raw.astimezone(timezone.utc).replace(tzinfo=None)
        return raw, False

    if isinstance(raw, str) and raw.strip():
        try:
            parsed = parse_iso_datetime(raw)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed, False

    if isinstance(created_at, datetime):
        fallback = created_at.replace(tzinfo=None)
    else:
        fallback = FALLBACK_EPOCH + timedelta(seconds=source_id)

    err = DataQualityError(
        f"{movement_id(category, source_id)} has invalid timestamp {raw!r}; using {fallback.isoformat()}"
    )
    current_app.logger.warning("Ledger data quality: %s", err.message)
    return fallback, True


def _movement(
    *,
    category: SourceCategory,
    row,
    raw_timestamp,
    channel: Channel,
    direction: Direction,
    amount: int,
    concept: str,
    description: str | None = None,
    reference: str | None = None,
) -> Movement:
    ts, used_fallback = resolve_timestamp(
        raw_timestamp,
        category=category,
        source_id=row.id,
        created_at=row.created_at,
    )
    return Movement(
        id=movement_id(category, row.id),
        timestamp=ts,
        channel=channel,
        direction=direction,
        amount=abs(int(amount or 0)),
        source_category=category,
        source_id=row.id,
        concept=concept,
        description=description,
        reference=reference,
        timestamp_fallback=used_fallback,
    )


# =============================================================================
# SOURCE READERS
# =============================================================================

def _raw_timestamp(column):
    """
    Select a timestamp column without the DateTime result processor.

    A malformed stored value would otherwise raise while the row loads, before
    resolve_timestamp gets a chance to fall back. The matching entity
    attribute is deferred so it is never parsed either.
    """
    return type_coerce(column, db.String).label("raw_timestamp")


def read_order_payments(channel: Channel) -> list[Movement]:
    rows = (
        db.session.query(OrderPayment, Order, _raw_timestamp(OrderPayment.paid_at))
        .outerjoin(Order, Order.id == OrderPayment.order_id)
        .options(defer(OrderPayment.paid_at))
        .filter(OrderPayment.channel == channel.value)
        .all()
    )
    movements = []
    for payment, order, raw_timestamp in rows:
        customer = order.customer_name if order else "Customer"
        order_label = (order.code or order.id) if order else payment.order_id
        movements.append(_movement(
            category=SourceCategory.ORDER_PAYMENT,
            row=payment,
            raw_timestamp=raw_timestamp,
            channel=channel,
            direction=Direction.CREDIT,
            amount=payment.amount_cents,
            concept=f"Payment from {customer}",
            description=f"Plan {order.plan_name}" if order and order.plan_name else None,
            reference=payment.reference or f"Order #{order_label}",
        ))
    return movements


def read_capital_events(channel: Channel) -> list[Movement]:
    rows = (
        db.session.query(CapitalEvent, _raw_timestamp(CapitalEvent.occurred_at))
        .options(defer(CapitalEvent.occurred_at))
        .filter(CapitalEvent.channel == channel.value)
        .all()
    )
    movements = []
    for event, raw_timestamp in rows:
        kind = CapitalKind(event.kind)
        movements.append(_movement(
            category=SourceCategory.CAPITAL_EVENT,
            row=event,
            raw_timestamp=raw_timestamp,
            channel=channel,
            direction=Direction.DEBIT if kind is CapitalKind.WITHDRAWAL else Direction.CREDIT,
            amount=event.amount_cents,
            concept=event.concept or CAPITAL_CONCEPTS[kind],
            description=event.notes,
            reference=f"Capital #{event.batch_ref[-6:]}",
        ))
    return movements


def read_expenses(channel: Channel) -> list[Movement]:
    rows = (
        db.session.query(Expense, _raw_timestamp(Expense.spent_at))
        .options(defer(Expense.spent_at))
        .filter(Expense.channel == channel.value)
        .all()
    )
    return [
        _movement(
            category=SourceCategory.EXPENSE,
            row=expense,
            raw_timestamp=raw_timestamp,
            channel=channel,
            direction=Direction.DEBIT,
            amount=expense.amount_cents,
            concept=expense.concept.name if expense.concept else "General expense",
            description=expense.description,
            reference=f"Expense #{expense.id}",
        )
        for expense, raw_timestamp in rows
    ]


def read_maintenance_costs(channel: Channel) -> list[Movement]:
    rows = (
        db.session.query(MaintenanceCost, _raw_timestamp(MaintenanceCost.occurred_at))
        .options(defer(MaintenanceCost.occurred_at))
        .filter(MaintenanceCost.channel == channel.value)
        .all()
    )
    return [
        _movement(
            category=SourceCategory.MAINTENANCE_COST,
            row=cost,
            raw_timestamp=raw_timestamp,
            channel=channel,
            direction=Direction.DEBIT,
            amount=cost.amount_cents,
            concept=cost.concept or "Maintenance",
            reference=f"Maintenance #{cost.maintenance_ref}" if cost.maintenance_ref else None,
        )
        for cost, raw_timestamp in rows
    ]


SOURCE_READERS: dict[SourceCategory, Callable[[Channel], list[Movement]]] = {
    SourceCategory.ORDER_PAYMENT: read_order_payments,
    SourceCategory.CAPITAL_EVENT: read_capital_events,
    SourceCategory.EXPENSE: read_expenses,
    SourceCategory.MAINTENANCE_COST: read_maintenance_costs,
}


def read_all_sources(
    channel: Channel,
    *,
    categories: Iterable[SourceCategory] | None = None,
) -> list[Movement]:
    """
    Read every source category for one channel (unsorted).

    Raises:
        TransientStoreError: a source read failed or the combined read
            exceeded LEDGER_READ_TIMEOUT_SECONDS.
    """
    timeout = current_app.config.get("LEDGER_READ_TIMEOUT_SECONDS")
    started = time.monotonic()
    movements: list[Movement] = []

    for category in categories or SOURCE_READERS.keys():
        reader = SOURCE_READERS[category]
        try:
            movements.extend(reader(channel))
        except (OperationalError, PoolTimeoutError) as exc:
            current_app.logger.warning("Ledger source %s unavailable: %s", category.value, exc)
            raise TransientStoreError(f"Ledger source '{category.value}' is unavailable; retry later") from exc

        if timeout is not None and time.monotonic() - started > timeout:
            raise TransientStoreError(
                f"Ledger read for {channel.value} exceeded {timeout}s; retry later"
            )

    return movements
