# Overview: Flask API routes for funds authorization; read-only checks before a debit.

from flask import Blueprint, request, jsonify, current_app

from ..domain import parse_channel
from ..errors import DomainError, ValidationError
from ..services import funds_service
from ..time_utils import utcnow


funds_bp = Blueprint("funds", __name__, url_prefix="/api/funds")


def _amount_arg() -> int:
    amount = request.args.get("amount_cents", type=int)
    if amount is None:
        raise ValidationError("amount_cents is required and must be an integer")
    return amount


@funds_bp.get("/check")
def check_funds_route():
    """
    Can ``channel`` cover ``amount_cents`` right now?

    A negative answer is a 200 with sufficient=false, not an error.
    """
    try:
        channel = parse_channel(request.args.get("channel", ""))
        amount = _amount_arg()
        sufficient, balance = funds_service.check(channel, amount, utcnow())
        return jsonify({
            "channel": channel.value,
            "amount_cents": amount,
            "sufficient": sufficient,
            "balance_cents": balance,
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check funds")
        return jsonify({"error": "Internal server error"}), 500


@funds_bp.get("/eligible")
def eligible_channels_route():
    """
    Channels that can cover ``amount_cents`` in canonical order.

    With ``selected``, also returns the channel the form should switch to
    (the selection itself when still eligible, else the first eligible one,
    else null).
    """
    try:
        amount = _amount_arg()
        selected_raw = request.args.get("selected")
        selected = parse_channel(selected_raw, "selected") if selected_raw else None

        now = utcnow()
        eligible = funds_service.eligible_channels(amount, now)
        reassigned = funds_service.reassign_channel(selected, amount, eligible=eligible)
        return jsonify({
            "amount_cents": amount,
            "eligible": [c.value for c in eligible],
            "selected": selected.value if selected else None,
            "reassigned": reassigned.value if reassigned else None,
            "blocked": not eligible,
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute eligible channels")
        return jsonify({"error": "Internal server error"}), 500
