# backend/washrent/routes/maintenance.py
"""
Maintenance API Routes

- POST /api/maintenance                    - Open (debits the repair cost)
- POST /api/maintenance/:id/close          - Close (no money moves)
- GET  /api/maintenance/active             - Open records
- GET  /api/maintenance/equipment/:id      - History of one unit, newest first
- GET  /api/maintenance/stats              - Totals and most repaired units
- GET  /api/maintenance/failure-types      - Failure catalogue
- GET  /api/maintenance/partial-writes     - Incomplete cost/record/unit triples
- POST /api/maintenance/repair             - Re-derive what can be re-derived

Error responses worth telling apart on the client:
    409 invalid_state_transition: the unit is not available
    422 insufficient_funds: pick another channel (see /api/funds/eligible)
    410 already_closed
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError
from ..services import maintenance_service
from ..decorators import require_actor
from ..validation import optional_datetime, optional_int, optional_str, require_amount, require_int, require_str


maintenance_bp = Blueprint("maintenance", __name__, url_prefix="/api/maintenance")


@maintenance_bp.post("")
@require_actor
def open_maintenance_route():
    """
    Request body:
        {
            "equipment_id": 3,
            "channel": "nequi",
            "cost_cents": 20000,
            "failure_type": "Water pump",
            "description": "...",          // optional
            "technician": "...",           // optional
            "estimated_end_at": "ISO-8601" // optional
        }
    """
    try:
        payload = request.get_json(silent=True) or {}
        record = maintenance_service.open_maintenance(
            require_int(payload, "equipment_id"),
            require_str(payload, "channel"),
            require_amount(payload, "cost_cents", allow_zero=True),
            actor=g.actor,
            failure_type=require_str(payload, "failure_type"),
            description=optional_str(payload, "description"),
            technician=optional_str(payload, "technician"),
            estimated_end_at=optional_datetime(payload, "estimated_end_at"),
            notes=optional_str(payload, "notes"),
        )
        return jsonify({"maintenance": record.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open maintenance")
        return jsonify({"error": "Internal server error"}), 500


@maintenance_bp.post("/<int:maintenance_id>/close")
@require_actor
def close_maintenance_route(maintenance_id: int):
    try:
        payload = request.get_json(silent=True) or {}
        result = maintenance_service.close_maintenance(
            maintenance_id,
            actor=g.actor,
            notes=optional_str(payload, "notes"),
            equipment_id=optional_int(payload, "equipment_id"),
        )
        return jsonify(result), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close maintenance")
        return jsonify({"error": "Internal server error"}), 500


@maintenance_bp.get("/active")
def active_maintenance_route():
    try:
        records = maintenance_service.active_maintenance()
        return jsonify({"items": [r.to_dict() for r in records]}), 200
    except Exception:
        current_app.logger.exception("Failed to list active maintenance")
        return jsonify({"error": "Internal server error"}), 500


@maintenance_bp.get("/equipment/<int:equipment_id>")
def maintenance_history_route(equipment_id: int):
    try:
        records = maintenance_service.maintenance_history(equipment_id)
        return jsonify({"equipment_id": equipment_id, "items": [r.to_dict() for r in records]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load maintenance history")
        return jsonify({"error": "Internal server error"}), 500


@maintenance_bp.get("/stats")
def maintenance_stats_route():
    try:
        top = request.args.get("top", default=5, type=int)
        return jsonify(maintenance_service.maintenance_stats(max(1, min(top, 50)))), 200
    except Exception:
        current_app.logger.exception("Failed to compute maintenance stats")
        return jsonify({"error": "Internal server error"}), 500


@maintenance_bp.get("/failure-types")
def failure_types_route():
    return jsonify({"items": maintenance_service.FAILURE_TYPES}), 200


@maintenance_bp.get("/partial-writes")
def partial_writes_route():
    try:
        findings = maintenance_service.detect_partial_writes()
        return jsonify({"items": findings, "count": len(findings)}), 200
    except Exception:
        current_app.logger.exception("Failed to scan for partial writes")
        return jsonify({"error": "Internal server error"}), 500


@maintenance_bp.post("/repair")
@require_actor
def repair_partial_writes_route():
    """
    Re-derive incomplete triples. Anything that cannot be re-derived is
    reported with 500 partial_write_detected and its findings.
    """
    try:
        report = maintenance_service.repair_partial_writes(actor=g.actor, strict=True)
        return jsonify(report), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Partial write repair failed")
        return jsonify({"error": "Internal server error"}), 500
