# Overview: Service-layer operations for the equipment registry; owns the unit state machine.

"""
Equipment Registry

================================================================================
STATE MACHINE
================================================================================

    available  -> rented          order delivery (order_service)
    rented     -> available       order pickup / cancel, orphan reconciler
    available  -> in_maintenance  maintenance open ONLY (maintenance_service)
    in_maintenance -> available   maintenance close ONLY (maintenance_service)
    available  -> out_of_service  operator
    out_of_service -> available   operator
    any        -> retired         operator; terminal, no outgoing transitions

RULES (NON-NEGOTIABLE):
1. assigned_order_id is set iff state == rented.
2. active_maintenance_id is set iff state == in_maintenance.
3. Setting one reference clears the other; every transition rewrites the
   whole (state, assigned_order_id, active_maintenance_id) triple at once.
4. Every write to the triple is a conditional update on version_id
   (optimistic locking). A concurrent writer gets StaleDataError, which
   run_with_retry turns into a fresh attempt that re-checks the state.

The apply_* helpers below mutate but never commit; the caller owns the
transaction so the unit change lands together with its order or
maintenance record.
================================================================================
"""

from __future__ import annotations

from collections import Counter
from typing import Optional

from sqlalchemy import func

from ..extensions import db
from ..domain import (
    EquipmentState,
    LOCATION_FOR_STATE,
    OrderStatus,
    parse_equipment_state,
)
from ..errors import ConflictError, InvalidStateTransition, NotFound, ValidationError
from ..models import Equipment, MaintenanceRecord, Order
from ..time_utils import utcnow
from .concurrency import run_with_retry


VALID_TRANSITIONS = {
    (EquipmentState.AVAILABLE, EquipmentState.RENTED),
    (EquipmentState.RENTED, EquipmentState.AVAILABLE),
    (EquipmentState.AVAILABLE, EquipmentState.IN_MAINTENANCE),
    (EquipmentState.IN_MAINTENANCE, EquipmentState.AVAILABLE),
    (EquipmentState.AVAILABLE, EquipmentState.OUT_OF_SERVICE),
    (EquipmentState.OUT_OF_SERVICE, EquipmentState.AVAILABLE),
    (EquipmentState.AVAILABLE, EquipmentState.RETIRED),
    (EquipmentState.RENTED, EquipmentState.RETIRED),
    (EquipmentState.IN_MAINTENANCE, EquipmentState.RETIRED),
    (EquipmentState.OUT_OF_SERVICE, EquipmentState.RETIRED),
}

ACTIVE_ORDER_STATUSES = [s.value for s in OrderStatus if not s.is_terminal]


def can_transition(from_state, to_state) -> bool:
    """True when ``from_state -> to_state`` is an edge of the state machine."""
    return (parse_equipment_state(from_state), parse_equipment_state(to_state)) in VALID_TRANSITIONS


def state_of(equipment: Equipment) -> EquipmentState:
    return EquipmentState(equipment.state)


# =============================================================================
# REGISTRY
# =============================================================================

def register_equipment(
    code: str,
    *,
    actor: str,
    brand: str | None = None,
    model: str | None = None,
    serial_number: str | None = None,
    notes: str | None = None,
) -> Equipment:
    """Add a new unit to inventory in the available state."""
    code = (code or "").strip()
    if not code:
        raise ValidationError("code is required")

    existing = db.session.query(Equipment).filter_by(code=code).first()
    if existing:
        raise ConflictError(f"Equipment '{code}' already exists")

    equipment = Equipment(
        code=code,
        brand=brand,
        model=model,
        serial_number=serial_number,
        notes=notes,
        state=EquipmentState.AVAILABLE.value,
        location=LOCATION_FOR_STATE[EquipmentState.AVAILABLE].value,
        created_by=actor,
        updated_by=actor,
    )
    db.session.add(equipment)
    db.session.commit()
    return equipment


def get_equipment(equipment_id: int) -> Equipment:
    equipment = db.session.get(Equipment, equipment_id)
    if not equipment:
        raise NotFound(f"Equipment {equipment_id} not found")
    return equipment


def list_equipment(state=None) -> list[Equipment]:
    q = db.session.query(Equipment)
    if state is not None:
        q = q.filter(Equipment.state == parse_equipment_state(state).value)
    return q.order_by(Equipment.code).all()


def active_orders_for(equipment_id: int) -> list[Order]:
    """Non-terminal, non-deleted orders whose assignment references the unit."""
    return (
        db.session.query(Order)
        .filter(
            Order.assigned_equipment_id == equipment_id,
            Order.status.in_(ACTIVE_ORDER_STATUSES),
            Order.deleted_at.is_(None),
        )
        .order_by(Order.id)
        .all()
    )


def state_summary() -> dict:
    """
    Unit counts per state.

    ``orphaned`` counts rented units with no active order; the reconciler
    will return them to available on its next sweep.
    """
    rows = db.session.query(Equipment.state, func.count(Equipment.id)).group_by(Equipment.state).all()
    counts = Counter({state.value: 0 for state in EquipmentState})
    counts.update({state: count for state, count in rows})

    rented = db.session.query(Equipment).filter(Equipment.state == EquipmentState.RENTED.value).all()
    orphaned = sum(1 for eq in rented if not active_orders_for(eq.id))

    return {
        "total": sum(count for _, count in rows),
        "by_state": dict(counts),
        "orphaned": orphaned,
    }


# =============================================================================
# TRANSITIONS (no commit; caller owns the transaction)
# =============================================================================

def _apply(
    equipment: Equipment,
    to_state: EquipmentState,
    *,
    actor: str | None,
    assigned_order_id: Optional[int] = None,
    active_maintenance_id: Optional[int] = None,
) -> Equipment:
    from_state = state_of(equipment)
    if (from_state, to_state) not in VALID_TRANSITIONS:
        raise InvalidStateTransition(
            f"Equipment {equipment.code} cannot go from {from_state.value} to {to_state.value}",
            current_state=from_state.value,
            target_state=to_state.value,
        )

    equipment.state = to_state.value
    equipment.location = LOCATION_FOR_STATE[to_state].value
    equipment.assigned_order_id = assigned_order_id if to_state is EquipmentState.RENTED else None
    equipment.active_maintenance_id = (
        active_maintenance_id if to_state is EquipmentState.IN_MAINTENANCE else None
    )
    if actor:
        equipment.updated_by = actor
    db.session.flush()
    return equipment


def apply_rented(equipment: Equipment, order_id: int, *, actor: str | None) -> Equipment:
    return _apply(equipment, EquipmentState.RENTED, actor=actor, assigned_order_id=order_id)


def apply_released(equipment: Equipment, *, actor: str | None) -> Equipment:
    """rented -> available, clearing the assignment."""
    if state_of(equipment) is not EquipmentState.RENTED:
        raise InvalidStateTransition(
            f"Equipment {equipment.code} is not rented",
            current_state=equipment.state,
            target_state=EquipmentState.AVAILABLE.value,
        )
    return _apply(equipment, EquipmentState.AVAILABLE, actor=actor)


def apply_enter_maintenance(equipment: Equipment, maintenance_id: int, *, actor: str | None) -> Equipment:
    return _apply(
        equipment,
        EquipmentState.IN_MAINTENANCE,
        actor=actor,
        active_maintenance_id=maintenance_id,
    )


def apply_leave_maintenance(equipment: Equipment, *, actor: str | None) -> Equipment:
    if state_of(equipment) is not EquipmentState.IN_MAINTENANCE:
        raise InvalidStateTransition(
            f"Equipment {equipment.code} is not in maintenance",
            current_state=equipment.state,
            target_state=EquipmentState.AVAILABLE.value,
        )
    return _apply(equipment, EquipmentState.AVAILABLE, actor=actor)


def force_available(equipment: Equipment, *, actor: str | None) -> Equipment:
    """
    Put a unit back in service regardless of its references.

    Only for repair paths where the record the unit points at is gone;
    retired units stay retired.
    """
    if state_of(equipment) is EquipmentState.RETIRED:
        raise InvalidStateTransition(
            f"Equipment {equipment.code} is retired",
            current_state=equipment.state,
            target_state=EquipmentState.AVAILABLE.value,
        )
    equipment.state = EquipmentState.AVAILABLE.value
    equipment.location = LOCATION_FOR_STATE[EquipmentState.AVAILABLE].value
    equipment.assigned_order_id = None
    equipment.active_maintenance_id = None
    if actor:
        equipment.updated_by = actor
    db.session.flush()
    return equipment


# =============================================================================
# OPERATOR TRANSITIONS (commit)
# =============================================================================

def _operator_transition(
    equipment_id: int,
    to_state: EquipmentState,
    *,
    actor: str,
    notes: str | None,
    required_from: EquipmentState | None = None,
    after_apply=None,
):
    def _op():
        equipment = get_equipment(equipment_id)
        if required_from is not None and state_of(equipment) is not required_from:
            raise InvalidStateTransition(
                f"Equipment {equipment.code} is not {required_from.value}",
                current_state=equipment.state,
                target_state=to_state.value,
            )
        _apply(equipment, to_state, actor=actor)
        if after_apply is not None:
            after_apply(equipment)
        if notes:
            equipment.notes = notes
        db.session.commit()
        return equipment

    return run_with_retry(_op)


def mark_out_of_service(equipment_id: int, *, actor: str, notes: str | None = None) -> Equipment:
    """available -> out_of_service. No financial side effect."""
    return _operator_transition(
        equipment_id,
        EquipmentState.OUT_OF_SERVICE,
        actor=actor,
        notes=notes,
        required_from=EquipmentState.AVAILABLE,
    )


def return_to_service(equipment_id: int, *, actor: str, notes: str | None = None) -> Equipment:
    """out_of_service -> available. Other states have their own way back."""
    return _operator_transition(
        equipment_id,
        EquipmentState.AVAILABLE,
        actor=actor,
        notes=notes,
        required_from=EquipmentState.OUT_OF_SERVICE,
    )


def retire(
    equipment_id: int,
    *,
    actor: str,
    notes: str | None = None,
    now=None,
) -> Equipment:
    """
    any -> retired (terminal).

    Open maintenance records of the unit are closed in the same transaction.
    Their cost was debited at open, so no movement is written here.
    """
    def _close_open_records(equipment: Equipment) -> None:
        open_records = (
            db.session.query(MaintenanceRecord)
            .filter(
                MaintenanceRecord.equipment_id == equipment.id,
                MaintenanceRecord.closed_at.is_(None),
            )
            .all()
        )
        for record in open_records:
            record.closed_at = now or utcnow()
            record.closed_by = actor
            record.notes = f"{record.notes}\nClosed on retirement" if record.notes else "Closed on retirement"

    return _operator_transition(
        equipment_id,
        EquipmentState.RETIRED,
        actor=actor,
        notes=notes,
        after_apply=_close_open_records,
    )
