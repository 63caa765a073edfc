# Overview: Service-layer operations for maintenance; opens and closes repair records and guards their write sequence.

"""
Maintenance Lifecycle

WRITE ORDER (open):
    1. MaintenanceCost row   (the debit; ledger-visible immediately)
    2. MaintenanceRecord row
    3. Equipment triple      (available -> in_maintenance)

All three land in one transaction. If anything fails before commit the
session is rolled back and none of them exist. The ordering still matters for
stores that cannot do that (imports, manual edits, an interrupted process):
detect_partial_writes() finds the leftovers and repair_partial_writes()
re-derives the missing pieces.

FUNDS:
- The channel is checked before any write (InsufficientFunds, nothing changes).
- The balance is re-checked after the cost row is flushed. A concurrent debit
  that slipped in between makes it negative; the whole attempt is rolled back.

CLOSE:
- Never creates or alters a movement. The cost was final when debited.
- Closing a record whose equipment no longer points at it still closes the
  record; the equipment is left alone and a warning is logged.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..domain import EquipmentState, parse_channel
from ..errors import (
    AlreadyClosed,
    InsufficientFunds,
    InvalidStateTransition,
    NotFound,
    PartialWriteDetected,
    ValidationError,
)
from ..models import Equipment, MaintenanceCost, MaintenanceRecord
from ..time_utils import utcnow
from . import equipment_service, funds_service, ledger_service
from .concurrency import run_with_retry


FAILURE_TYPES = [
    "Motor",
    "Water pump",
    "Electronics / Control",
    "Drum",
    "Filters",
    "Electrical connections",
    "Water connections",
    "Seals",
    "Other",
]


def cost_concept(failure_type: str) -> str:
    return f"Maintenance - {failure_type}"


def _validate_cost(cost_cents) -> int:
    if isinstance(cost_cents, bool) or not isinstance(cost_cents, int):
        raise ValidationError("cost_cents must be an integer")
    if cost_cents < 0:
        raise ValidationError("cost_cents must not be negative")
    return cost_cents


def get_record(maintenance_id: int) -> MaintenanceRecord:
    record = db.session.get(MaintenanceRecord, maintenance_id)
    if not record:
        raise NotFound(f"Maintenance record {maintenance_id} not found")
    return record


# =============================================================================
# OPEN
# =============================================================================

def open_maintenance(
    equipment_id: int,
    channel,
    cost_cents: int,
    *,
    actor: str,
    failure_type: str,
    description: str | None = None,
    technician: str | None = None,
    estimated_end_at: Optional[datetime] = None,
    notes: str | None = None,
    now: Optional[datetime] = None,
) -> MaintenanceRecord:
    """
    Send an available unit to the workshop and debit the repair cost.

    Raises:
        NotFound: unknown equipment
        InvalidStateTransition: equipment is not available
        InsufficientFunds: the channel cannot cover cost_cents
        ValidationError: bad channel, cost or failure type
        TransientStoreError: the balance could not be read
    """
    channel = parse_channel(channel)
    cost_cents = _validate_cost(cost_cents)
    failure_type = (failure_type or "").strip()
    if not failure_type:
        raise ValidationError("failure_type is required")

    def _op():
        at = now or utcnow()
        equipment = equipment_service.get_equipment(equipment_id)
        if equipment_service.state_of(equipment) is not EquipmentState.AVAILABLE:
            raise InvalidStateTransition(
                f"Equipment {equipment.code} is {equipment.state}; only available units can enter maintenance",
                current_state=equipment.state,
                target_state=EquipmentState.IN_MAINTENANCE.value,
            )

        if cost_cents > 0:
            funds_service.require_sufficient(channel, cost_cents, at)

        try:
            cost = None
            if cost_cents > 0:
                cost = MaintenanceCost(
                    equipment_id=equipment.id,
                    channel=channel.value,
                    amount_cents=cost_cents,
                    concept=cost_concept(failure_type),
                    occurred_at=at,
                )
                db.session.add(cost)
                db.session.flush()

            record = MaintenanceRecord(
                equipment_id=equipment.id,
                channel=channel.value,
                cost_cents=cost_cents,
                failure_type=failure_type,
                description=description,
                technician=technician,
                opened_at=at,
                estimated_end_at=estimated_end_at,
                notes=notes,
                opened_by=actor,
            )
            db.session.add(record)
            db.session.flush()
            if cost is not None:
                cost.maintenance_ref = record.id

            equipment_service.apply_enter_maintenance(equipment, record.id, actor=actor)

            if cost_cents > 0:
                balance = ledger_service.balance_as_of(channel, at)
                if balance < 0:
                    raise InsufficientFunds(channel, required=cost_cents, available=balance + cost_cents)

            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            "Maintenance %s opened for %s: %s cents from %s",
            record.id,
            equipment.code,
            cost_cents,
            channel.value,
        )
        return record

    return run_with_retry(_op)


# =============================================================================
# CLOSE
# =============================================================================

def close_maintenance(
    maintenance_id: int,
    *,
    actor: str,
    notes: str | None = None,
    equipment_id: int | None = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Close a record and return its unit to available.

    When the record itself is gone but a unit is still stuck on it (looked up
    by active_maintenance_id, or by ``equipment_id`` as a hint), the unit is
    put back in service anyway.

    Returns {"record": dict | None, "equipment": dict | None, "degenerate": bool}.

    Raises:
        NotFound: neither the record nor a unit referencing it exists
        AlreadyClosed: the record was closed before
    """
    def _op():
        record = db.session.get(MaintenanceRecord, maintenance_id)

        if record is None:
            equipment = (
                db.session.query(Equipment)
                .filter(Equipment.active_maintenance_id == maintenance_id)
                .first()
            )
            if equipment is None and equipment_id is not None:
                hinted = db.session.get(Equipment, equipment_id)
                # the hint may not free a unit tied to another live record
                if (
                    hinted is not None
                    and hinted.state == EquipmentState.IN_MAINTENANCE.value
                    and (
                        hinted.active_maintenance_id is None
                        or db.session.get(MaintenanceRecord, hinted.active_maintenance_id) is None
                    )
                ):
                    equipment = hinted
            if equipment is None:
                raise NotFound(f"Maintenance record {maintenance_id} not found")

            current_app.logger.warning(
                "Maintenance record %s missing; forcing %s back to available",
                maintenance_id,
                equipment.code,
            )
            equipment_service.force_available(equipment, actor=actor)
            db.session.commit()
            return {"record": None, "equipment": equipment.to_dict(), "degenerate": True}

        if not record.is_open:
            raise AlreadyClosed(f"Maintenance record {maintenance_id} is already closed")

        record.closed_at = now or utcnow()
        record.closed_by = actor
        if notes:
            record.notes = f"{record.notes}\n{notes}" if record.notes else notes

        equipment = db.session.get(Equipment, record.equipment_id)
        if (
            equipment is not None
            and equipment.state == EquipmentState.IN_MAINTENANCE.value
            and equipment.active_maintenance_id == record.id
        ):
            equipment_service.apply_leave_maintenance(equipment, actor=actor)
        else:
            current_app.logger.warning(
                "Maintenance record %s closed but equipment %s does not reference it (state=%s)",
                record.id,
                record.equipment_id,
                equipment.state if equipment else None,
            )

        db.session.commit()
        return {
            "record": record.to_dict(),
            "equipment": equipment.to_dict() if equipment else None,
            "degenerate": False,
        }

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def maintenance_history(equipment_id: int) -> list[MaintenanceRecord]:
    equipment_service.get_equipment(equipment_id)
    return (
        db.session.query(MaintenanceRecord)
        .filter(MaintenanceRecord.equipment_id == equipment_id)
        .order_by(MaintenanceRecord.opened_at.desc(), MaintenanceRecord.id.desc())
        .all()
    )


def active_maintenance() -> list[MaintenanceRecord]:
    return (
        db.session.query(MaintenanceRecord)
        .filter(MaintenanceRecord.closed_at.is_(None))
        .order_by(MaintenanceRecord.opened_at, MaintenanceRecord.id)
        .all()
    )


def maintenance_stats(top: int = 5) -> dict:
    total, total_cost = db.session.query(
        func.count(MaintenanceRecord.id),
        func.coalesce(func.sum(MaintenanceRecord.cost_cents), 0),
    ).one()
    open_count = (
        db.session.query(func.count(MaintenanceRecord.id))
        .filter(MaintenanceRecord.closed_at.is_(None))
        .scalar()
    )
    by_failure = dict(
        db.session.query(MaintenanceRecord.failure_type, func.count(MaintenanceRecord.id))
        .group_by(MaintenanceRecord.failure_type)
        .all()
    )

    repairs = func.count(MaintenanceRecord.id).label("repairs")
    top_rows = (
        db.session.query(Equipment.id, Equipment.code, repairs)
        .join(MaintenanceRecord, MaintenanceRecord.equipment_id == Equipment.id)
        .group_by(Equipment.id, Equipment.code)
        .order_by(repairs.desc(), Equipment.code)
        .limit(top)
        .all()
    )

    return {
        "total": total,
        "open": open_count,
        "closed": total - open_count,
        "total_cost_cents": int(total_cost),
        "by_failure_type": by_failure,
        "top_equipment": [
            {"equipment_id": eq_id, "code": code, "repairs": count}
            for eq_id, code, count in top_rows
        ],
    }


# =============================================================================
# PARTIAL WRITES
# =============================================================================

# One open is three artifacts sharing a maintenance id
COST = "cost"
RECORD = "record"
UNIT = "unit"


def _finding(maintenance_id, equipment_id, present: list[str], missing: list[str]) -> dict:
    return {
        "maintenance_id": maintenance_id,
        "equipment_id": equipment_id,
        "present": present,
        "missing": missing,
        "resolvable": len(present) >= 2 and len(missing) == 1,
    }


def detect_partial_writes() -> list[dict]:
    """
    Find maintenance opens whose cost / record / unit-reference triple is incomplete.

    Closed records only need their cost; a unit is expected to point at open
    records only. Zero-cost records never have a cost row.
    """
    costs: dict[int, MaintenanceCost] = {}
    findings = []
    for cost in db.session.query(MaintenanceCost).order_by(MaintenanceCost.id).all():
        if cost.maintenance_ref is None:
            findings.append(_finding(None, cost.equipment_id, [COST], [RECORD, UNIT]))
        else:
            costs.setdefault(cost.maintenance_ref, cost)

    records = {r.id: r for r in db.session.query(MaintenanceRecord).all()}
    units = {
        eq.active_maintenance_id: eq
        for eq in db.session.query(Equipment)
        .filter(
            Equipment.state == EquipmentState.IN_MAINTENANCE.value,
            Equipment.active_maintenance_id.isnot(None),
        )
        .all()
    }

    for maintenance_id in sorted(set(costs) | set(records) | set(units)):
        cost = costs.get(maintenance_id)
        record = records.get(maintenance_id)
        unit = units.get(maintenance_id)

        if record is not None and not record.is_open:
            continue

        expected = [RECORD, UNIT]
        if record is None or record.cost_cents > 0:
            expected.insert(0, COST)
        pieces = {COST: cost, RECORD: record, UNIT: unit}
        present = [p for p in expected if pieces[p] is not None]
        missing = [p for p in expected if pieces[p] is None]
        if not missing:
            continue

        if unit is not None:
            equipment_id = unit.id
        elif record is not None:
            equipment_id = record.equipment_id
        else:
            equipment_id = cost.equipment_id
        findings.append(_finding(maintenance_id, equipment_id, present, missing))

    for finding in findings:
        current_app.logger.critical("Maintenance partial write: %s", finding)
    return findings


def _rederive(finding: dict, *, actor: str) -> bool:
    maintenance_id = finding["maintenance_id"]
    missing = finding["missing"][0]

    if missing == UNIT:
        record = db.session.get(MaintenanceRecord, maintenance_id)
        equipment = db.session.get(Equipment, record.equipment_id)
        if equipment is None or equipment.state != EquipmentState.AVAILABLE.value:
            return False
        equipment_service.apply_enter_maintenance(equipment, record.id, actor=actor)

    elif missing == RECORD:
        cost = (
            db.session.query(MaintenanceCost)
            .filter(MaintenanceCost.maintenance_ref == maintenance_id)
            .order_by(MaintenanceCost.id)
            .first()
        )
        failure_type = (cost.concept or "").replace(cost_concept(""), "", 1).strip() or "Other"
        db.session.add(MaintenanceRecord(
            id=maintenance_id,
            equipment_id=finding["equipment_id"],
            channel=cost.channel,
            cost_cents=cost.amount_cents,
            failure_type=failure_type,
            opened_at=cost.occurred_at or cost.created_at or utcnow(),
            opened_by=actor,
            notes="Re-derived from maintenance cost",
        ))

    elif missing == COST:
        record = db.session.get(MaintenanceRecord, maintenance_id)
        db.session.add(MaintenanceCost(
            maintenance_ref=record.id,
            equipment_id=record.equipment_id,
            channel=record.channel,
            amount_cents=record.cost_cents,
            concept=cost_concept(record.failure_type),
            occurred_at=record.opened_at,
        ))

    db.session.commit()
    return True


def repair_partial_writes(*, actor: str, strict: bool = False) -> dict:
    """
    Re-derive the missing piece of every triple that still has the other two.

    Findings with a single piece left are never guessed at: they are logged
    as critical and reported as unresolved. With ``strict`` they also raise
    PartialWriteDetected once everything repairable has been committed.
    """
    repaired = []
    unresolved = []

    for finding in detect_partial_writes():
        if finding["resolvable"] and _rederive(finding, actor=actor):
            current_app.logger.info("Maintenance partial write repaired: %s", finding)
            repaired.append(finding)
        else:
            current_app.logger.critical("Maintenance partial write left unresolved: %s", finding)
            unresolved.append(finding)

    if strict and unresolved:
        raise PartialWriteDetected(
            f"{len(unresolved)} maintenance write(s) could not be re-derived",
            findings=unresolved,
        )
    return {"repaired": repaired, "unresolved": unresolved}
