# backend/wms/routes/system.py
"""
System health endpoint.
"""

import time
from flask import Blueprint, jsonify, current_app
from sqlalchemy import text

from ..extensions import db, wms_runtime
from ..models import EventDeliveryFailure
from wms.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity and the open delivery-failure backlog."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        open_failures = db.session.query(EventDeliveryFailure).filter_by(status="open").count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"open_delivery_failures": open_failures},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    runtime = wms_runtime()
    body = {
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "event_bus": {"status": "healthy", "subscribers": runtime.bus.handler_names()},
        },
        "document_types": runtime.registry.types(),
    }
    return jsonify(body), 200 if database["status"] == "healthy" else 503
