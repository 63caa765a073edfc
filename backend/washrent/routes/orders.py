# Overview: Flask API routes for rental orders; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError
from ..services import order_service
from ..decorators import require_actor
from ..validation import (
    optional_datetime,
    optional_int,
    optional_str,
    require_amount,
    require_int,
    require_str,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_actor
def create_order_route():
    try:
        payload = request.get_json(silent=True) or {}
        order = order_service.create_order(
            customer_name=require_str(payload, "customer_name"),
            actor=g.actor,
            plan_name=optional_str(payload, "plan_name"),
            price_cents=optional_int(payload, "price_cents") or 0,
            customer_phone=optional_str(payload, "customer_phone"),
            code=optional_str(payload, "code"),
            notes=optional_str(payload, "notes"),
        )
        return jsonify({"order": order.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
def list_orders_route():
    try:
        status = request.args.get("status") or None
        orders = order_service.list_orders(status)
        return jsonify({"items": [o.to_dict() for o in orders]}), 200

    except ValueError:
        return jsonify({"error": "unknown status", "code": "validation_error"}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({
            "order": order.to_dict(),
            "payments": order_service.payment_summary(order_id),
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/deliver")
@require_actor
def deliver_order_route(order_id: int):
    """
    Request body:
        {"equipment_id": 3, "delivered_at": "ISO-8601"}  // delivered_at optional

    Error responses:
        404: order or unit not found
        409: order not pending, or unit not available
    """
    try:
        payload = request.get_json(silent=True) or {}
        order = order_service.deliver_order(
            order_id,
            require_int(payload, "equipment_id"),
            actor=g.actor,
            delivered_at=optional_datetime(payload, "delivered_at"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deliver order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/pickup")
@require_actor
def pickup_order_route(order_id: int):
    try:
        payload = request.get_json(silent=True) or {}
        order = order_service.pickup_order(
            order_id,
            actor=g.actor,
            picked_up_at=optional_datetime(payload, "picked_up_at"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to pick up order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_actor
def cancel_order_route(order_id: int):
    try:
        payload = request.get_json(silent=True) or {}
        order = order_service.cancel_order(
            order_id,
            actor=g.actor,
            reason=optional_str(payload, "reason"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/payments")
@require_actor
def record_payment_route(order_id: int):
    """
    Request body:
        {"channel": "cash", "amount_cents": 35000, "reference": "...", "is_partial": false, "paid_at": "ISO-8601"}
    """
    try:
        payload = request.get_json(silent=True) or {}
        payment = order_service.record_payment(
            order_id,
            channel=require_str(payload, "channel"),
            amount_cents=require_amount(payload),
            actor=g.actor,
            paid_at=optional_datetime(payload, "paid_at"),
            reference=optional_str(payload, "reference"),
            is_partial=bool(payload.get("is_partial", False)),
        )
        return jsonify({"payment": payment.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500
