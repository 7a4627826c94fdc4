# backend/stockledger/__init__.py
from flask import Flask, g, has_request_context, request

from .config import Config
from .extensions import db, migrate, LEDGER_KEY, GUARD_KEY
from .logging_config import configure_logging


def _current_actor():
    """Username of the request's session holder, for the audit trail."""
    if not has_request_context():
        return None
    user = g.get("current_user")
    return user["username"] if user else None


def create_app(test_config=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # One ledger and one guard per app; routes reach them via extensions.get_ledger/get_guard
    from .services.access_guard import AccessGuard
    from .services.audit_service import LedgerAuditObserver
    from .services.catalog_service import CatalogLedger
    from .services.inventory_store import InventoryStore

    ledger = CatalogLedger(InventoryStore(), seed_sample_data=app.config["SEED_SAMPLE_DATA"])
    LedgerAuditObserver(actor_resolver=_current_actor).attach(ledger)
    app.extensions[LEDGER_KEY] = ledger
    app.extensions[GUARD_KEY] = AccessGuard.from_config(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.reports import reports_bp
    from .routes.backup import backup_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(backup_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
