# backend/washrent/routes/equipment.py
"""
Equipment Registry API Routes

- GET  /api/equipment                      - List units (optional ?state=)
- POST /api/equipment                      - Register a unit
- GET  /api/equipment/summary              - Counts per state (+ orphaned)
- GET  /api/equipment/:id                  - One unit
- POST /api/equipment/:id/out-of-service   - available -> out_of_service
- POST /api/equipment/:id/back-in-service  - out_of_service -> available
- POST /api/equipment/:id/retire           - any -> retired
- POST /api/equipment/reconcile            - Run the orphan sweep now

Rented and in_maintenance are never set here: they follow order and
maintenance events.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError
from ..services import equipment_service, reconciliation_service
from ..decorators import require_actor
from ..validation import optional_str, require_str


equipment_bp = Blueprint("equipment", __name__, url_prefix="/api/equipment")


@equipment_bp.get("")
def list_equipment_route():
    try:
        units = equipment_service.list_equipment(request.args.get("state") or None)
        return jsonify({"items": [u.to_dict() for u in units]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list equipment")
        return jsonify({"error": "Internal server error"}), 500


@equipment_bp.post("")
@require_actor
def register_equipment_route():
    """
    Request body:
        {"code": "G-07", "brand": "LG", "model": "WM3400", "serial_number": "...", "notes": "..."}

    Error responses:
        400: missing code
        409: code already registered
    """
    try:
        payload = request.get_json(silent=True) or {}
        equipment = equipment_service.register_equipment(
            require_str(payload, "code"),
            actor=g.actor,
            brand=optional_str(payload, "brand"),
            model=optional_str(payload, "model"),
            serial_number=optional_str(payload, "serial_number"),
            notes=optional_str(payload, "notes"),
        )
        return jsonify({"equipment": equipment.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register equipment")
        return jsonify({"error": "Internal server error"}), 500


@equipment_bp.get("/summary")
def equipment_summary_route():
    try:
        return jsonify(equipment_service.state_summary()), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to summarize equipment")
        return jsonify({"error": "Internal server error"}), 500


@equipment_bp.get("/<int:equipment_id>")
def get_equipment_route(equipment_id: int):
    try:
        equipment = equipment_service.get_equipment(equipment_id)
        return jsonify({"equipment": equipment.to_dict()}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load equipment")
        return jsonify({"error": "Internal server error"}), 500


def _operator_action(action, equipment_id: int):
    try:
        payload = request.get_json(silent=True) or {}
        equipment = action(equipment_id, actor=g.actor, notes=optional_str(payload, "notes"))
        return jsonify({"equipment": equipment.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Equipment transition failed")
        return jsonify({"error": "Internal server error"}), 500


@equipment_bp.post("/<int:equipment_id>/out-of-service")
@require_actor
def out_of_service_route(equipment_id: int):
    return _operator_action(equipment_service.mark_out_of_service, equipment_id)


@equipment_bp.post("/<int:equipment_id>/back-in-service")
@require_actor
def back_in_service_route(equipment_id: int):
    return _operator_action(equipment_service.return_to_service, equipment_id)


@equipment_bp.post("/<int:equipment_id>/retire")
@require_actor
def retire_route(equipment_id: int):
    return _operator_action(equipment_service.retire, equipment_id)


@equipment_bp.post("/reconcile")
@require_actor
def reconcile_route():
    """
    Response:
        {"corrected": [3, 9], "count": 2}
    """
    try:
        corrected = reconciliation_service.reconcile_orphans(actor=g.actor)
        return jsonify({"corrected": corrected, "count": len(corrected)}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Orphan reconciliation failed")
        return jsonify({"error": "Internal server error"}), 500
