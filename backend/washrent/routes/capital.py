# Overview: Flask API routes for owner capital and operating expenses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError
from ..services import capital_service
from ..decorators import require_actor
from ..validation import (
    amounts_by_channel,
    optional_datetime,
    optional_int,
    optional_str,
    require_amount,
    require_str,
)


capital_bp = Blueprint("capital", __name__, url_prefix="/api/capital")


@capital_bp.post("/initial")
@require_actor
def initial_capital_route():
    """
    Request body:
        {"amounts": {"cash": 500000, "nequi": 200000}, "notes": "...", "occurred_at": "ISO-8601"}

    409 when initial capital was already recorded.
    """
    try:
        payload = request.get_json(silent=True) or {}
        events = capital_service.record_initial_capital(
            amounts_by_channel(payload),
            actor=g.actor,
            notes=optional_str(payload, "notes"),
            occurred_at=optional_datetime(payload, "occurred_at"),
        )
        return jsonify({"items": [e.to_dict() for e in events]}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record initial capital")
        return jsonify({"error": "Internal server error"}), 500


@capital_bp.get("/movements")
def list_capital_route():
    try:
        events = capital_service.list_capital_events(request.args.get("kind") or None)
        return jsonify({"items": [e.to_dict() for e in events]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list capital events")
        return jsonify({"error": "Internal server error"}), 500


@capital_bp.post("/movements")
@require_actor
def capital_movement_route():
    """
    Request body:
        {"kind": "injection" | "withdrawal", "amounts": {...}, "concept": "...", "notes": "..."}

    A withdrawal larger than a channel's balance is rejected with 422.
    """
    try:
        payload = request.get_json(silent=True) or {}
        events = capital_service.record_capital_movement(
            require_str(payload, "kind"),
            amounts_by_channel(payload),
            actor=g.actor,
            concept=optional_str(payload, "concept"),
            notes=optional_str(payload, "notes"),
            occurred_at=optional_datetime(payload, "occurred_at"),
        )
        return jsonify({"items": [e.to_dict() for e in events]}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record capital movement")
        return jsonify({"error": "Internal server error"}), 500


@capital_bp.get("/expense-concepts")
def list_expense_concepts_route():
    concepts = capital_service.list_expense_concepts()
    return jsonify({"items": [c.to_dict() for c in concepts]}), 200


@capital_bp.post("/expense-concepts")
@require_actor
def create_expense_concept_route():
    try:
        payload = request.get_json(silent=True) or {}
        concept = capital_service.create_expense_concept(
            require_str(payload, "name"),
            description=optional_str(payload, "description"),
        )
        return jsonify({"concept": concept.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create expense concept")
        return jsonify({"error": "Internal server error"}), 500


@capital_bp.post("/expenses")
@require_actor
def record_expense_route():
    try:
        payload = request.get_json(silent=True) or {}
        expense = capital_service.record_expense(
            require_str(payload, "channel"),
            require_amount(payload),
            actor=g.actor,
            concept_id=optional_int(payload, "concept_id"),
            description=optional_str(payload, "description"),
            spent_at=optional_datetime(payload, "spent_at"),
        )
        return jsonify({"expense": expense.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return jsonify({"error": "Internal server error"}), 500
