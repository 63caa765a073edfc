# backend/washrent/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        # Must land before db.init_app: the engine is built from the URI there
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.ledger import ledger_bp
    from .routes.funds import funds_bp
    from .routes.equipment import equipment_bp
    from .routes.maintenance import maintenance_bp
    from .routes.orders import orders_bp
    from .routes.capital import capital_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(funds_bp)
    app.register_blueprint(equipment_bp)
    app.register_blueprint(maintenance_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(capital_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "X-Actor, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("RECONCILE_ON_STARTUP"):
        from .services.reconciliation_service import reconcile_orphans
        with app.app_context():
            corrected = reconcile_orphans(actor="startup")
            if corrected:
                app.logger.info("Startup reconciliation corrected %d unit(s)", len(corrected))

    return app
