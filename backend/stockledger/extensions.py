# Overview: Flask extension instances for the database and schema migrations,
# plus accessors for the app-scoped catalog ledger and access guard.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

LEDGER_KEY = "catalog_ledger"
GUARD_KEY = "access_guard"


def get_ledger():
    """The CatalogLedger built by create_app()."""
    return current_app.extensions[LEDGER_KEY]


def get_guard():
    """The AccessGuard built by create_app()."""
    return current_app.extensions[GUARD_KEY]
