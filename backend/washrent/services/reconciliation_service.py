# Overview: Orphan reconciler; re-derives equipment assignment from authoritative order records.

"""
Orphan Reconciliation

A unit is orphaned when it is rented but no active (non-terminal,
non-deleted) order references it. That happens when an order is cancelled,
completed or deleted out of band without going through order_service.

For every rented unit:
- no active order         -> clear the assignment, back to available
- one active order        -> make assigned_order_id point at it
- several active orders   -> log an error, leave it for an operator

Each unit is corrected and committed on its own. A StaleDataError means a
concurrent writer (or another sweep) touched the unit first, so it is
skipped. Running the sweep twice in a row corrects nothing the second time.
No movements are ever written.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..domain import EquipmentState
from ..models import Equipment
from . import equipment_service


def reconcile_orphans(*, actor: str | None = None) -> list[int]:
    """Returns the ids of the units that were corrected."""
    corrected: list[int] = []
    rented_ids = [
        eq_id
        for (eq_id,) in db.session.query(Equipment.id)
        .filter(Equipment.state == EquipmentState.RENTED.value)
        .order_by(Equipment.id)
        .all()
    ]

    for equipment_id in rented_ids:
        equipment = db.session.get(Equipment, equipment_id)
        if equipment is None or equipment.state != EquipmentState.RENTED.value:
            continue

        active = equipment_service.active_orders_for(equipment.id)

        if len(active) > 1:
            current_app.logger.error(
                "Equipment %s is referenced by %d active orders (%s); needs an operator",
                equipment.code,
                len(active),
                ", ".join(str(o.id) for o in active),
            )
            continue

        if len(active) == 1 and equipment.assigned_order_id == active[0].id:
            continue

        try:
            if not active:
                previous = equipment.assigned_order_id
                equipment_service.apply_released(equipment, actor=actor)
                current_app.logger.info(
                    "Reconciled orphan %s: order %s is no longer active, unit released",
                    equipment.code,
                    previous,
                )
            else:
                previous = equipment.assigned_order_id
                equipment.assigned_order_id = active[0].id
                if actor:
                    equipment.updated_by = actor
                db.session.flush()
                current_app.logger.info(
                    "Reconciled %s: assignment moved from order %s to %s",
                    equipment.code,
                    previous,
                    active[0].id,
                )
            db.session.commit()
        except StaleDataError:
            db.session.rollback()
            current_app.logger.info("Skipped %s: changed concurrently", equipment_id)
            continue

        corrected.append(equipment_id)

    return corrected
