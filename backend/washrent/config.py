# backend/washrent/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/washrent.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///washrent.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound for one aggregated read of the four movement sources.
    # Exceeding it surfaces as TransientStoreError (HTTP 503), never as a zero balance.
    LEDGER_READ_TIMEOUT_SECONDS = float(os.environ.get("LEDGER_READ_TIMEOUT_SECONDS", "10"))

    # Run the orphan sweep once when the app boots
    RECONCILE_ON_STARTUP = os.environ.get("RECONCILE_ON_STARTUP", "false").lower() == "true"
