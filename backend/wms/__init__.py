# backend/wms/__init__.py
import logging
from dataclasses import dataclass

from flask import Flask

from .config import Config
from .extensions import db, migrate


@dataclass(frozen=True)
class WmsRuntime:
    """Per-app component graph; stored in app.extensions['wms']."""
    bus: object
    registry: object
    engine: object
    orchestrator: object
    audit: object


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    logging.getLogger("wms").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Wire the event bus, type registry and engine once per app
    from .services.audit_service import AuditRecorder
    from .services.document_types import build_registry
    from .services.event_bus import EventBus
    from .services.event_service import record_delivery_failure
    from .services.lifecycle_service import DocumentEngine
    from .services.orchestrator import Orchestrator

    bus = EventBus(failure_sink=record_delivery_failure)
    registry = build_registry()
    engine = DocumentEngine(bus, registry)
    orchestrator = Orchestrator(engine)
    orchestrator.register(bus)
    audit = AuditRecorder()
    audit.register(bus)
    app.extensions["wms"] = WmsRuntime(
        bus=bus,
        registry=registry,
        engine=engine,
        orchestrator=orchestrator,
        audit=audit,
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.documents import documents_bp
    from .routes.inventory import inventory_bp
    from .routes.approvals import approvals_bp
    from .routes.events import events_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(approvals_bp)
    app.register_blueprint(events_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
