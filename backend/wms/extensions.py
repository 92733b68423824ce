# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()


def wms_runtime():
    """The bus / registry / engine wired by create_app for the current app."""
    from flask import current_app
    return current_app.extensions["wms"]
