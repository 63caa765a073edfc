# backend/washrent/routes/system.py
"""
System health endpoint.

Checks the database and a full ledger read so a slow or unreachable source
shows up here before it shows up as a 503 on a balance screen.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..domain import Channel
from ..errors import TransientStoreError
from ..services import ledger_service
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_ledger_health() -> dict:
    """One full read of the cash ledger, timed against the configured read timeout."""
    start_time = time.time()
    try:
        ledger_service.balance_as_of(Channel.CASH)
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "timeout_seconds": current_app.config.get("LEDGER_READ_TIMEOUT_SECONDS"),
        }
    except TransientStoreError as e:
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "warning": e.message,
        }


@system_bp.get("/health")
def health():
    start_time = time.time()
    database_health = check_database_health()
    ledger_health = check_ledger_health() if database_health["status"] == "healthy" else {"status": "skipped"}

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    elif ledger_health["status"] == "degraded":
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "ledger": ledger_health,
        },
    }, http_status
