# Overview: Flask API routes for channel balances and movement history; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..domain import ALL_CHANNELS, parse_channel
from ..errors import DomainError, ValidationError
from ..services import ledger_service
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow

"""
Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- as_of filtering is inclusive: timestamp <= as_of.
- start/end filtering is inclusive on both ends; a missing bound is unbounded.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


def datetime_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@ledger_bp.get("/balances")
def balances_route():
    """
    Current balance of every channel plus the balance up to end of yesterday.

    Query:
        as_of: optional ISO-8601 instant used as "now"
    """
    try:
        now = datetime_arg("as_of") or utcnow()
        current = ledger_service.current_balances(now)
        items = []
        for channel in ALL_CHANNELS:
            items.append({
                "channel": channel.value,
                "channel_name": channel.display_name,
                "balance_cents": current[channel],
                "balance_up_to_yesterday_cents": ledger_service.balance_up_to_yesterday(channel, now),
            })
        return jsonify({
            "as_of": to_utc_z(now),
            "balances": items,
            "total_cents": sum(current.values()),
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute channel balances")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/<channel>/balance")
def channel_balance_route(channel: str):
    try:
        ch = parse_channel(channel)
        as_of = datetime_arg("as_of") or utcnow()
        return jsonify({
            "channel": ch.value,
            "as_of": to_utc_z(as_of),
            "balance_cents": ledger_service.balance_as_of(ch, as_of),
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute channel balance")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/<channel>/movements")
def channel_movements_route(channel: str):
    """
    Movements of one channel in [start, end], ascending.

    Response:
        {
            "channel": "cash",
            "net_change_cents": 270,   // balance_in_range over the same window
            "items": [...]
        }
    """
    try:
        ch = parse_channel(channel)
        start = datetime_arg("start")
        end = datetime_arg("end")
        if start and end and start > end:
            raise ValidationError("start must not be after end")

        movements = ledger_service.movements_in_range(ch, start, end)
        return jsonify({
            "channel": ch.value,
            "start": to_utc_z(start),
            "end": to_utc_z(end),
            "net_change_cents": sum(m.signed_amount for m in movements),
            "items": [m.to_dict() for m in movements],
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list channel movements")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/<channel>/statement")
def channel_statement_route(channel: str):
    try:
        ch = parse_channel(channel)
        start = datetime_arg("start")
        end = datetime_arg("end")
        if start and end and start > end:
            raise ValidationError("start must not be after end")

        return jsonify(ledger_service.channel_statement(ch, start, end)), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build channel statement")
        return jsonify({"error": "Internal server error"}), 500
