# Overview: Flask API routes for the event log and delivery-failure ledger.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import DomainError
from ..extensions import wms_runtime
from ..services import event_service, permission_service


events_bp = Blueprint("events", __name__, url_prefix="/api/events")


@events_bp.get("")
@require_actor
def list_events_route():
    """Query params: entity_type, entity_id, event_type, limit"""
    try:
        permission_service.require_permission(g.actor, "events", "view")
        events = event_service.list_events(
            entity_type=request.args.get("entity_type"),
            entity_id=request.args.get("entity_id", type=int),
            event_type=request.args.get("event_type"),
            limit=request.args.get("limit", 100, type=int),
        )
        return jsonify({"events": [e.to_dict() for e in events]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list events")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.get("/failures")
@require_actor
def list_failures_route():
    """Query params: status (open | resolved | all; default open)"""
    try:
        permission_service.require_permission(g.actor, "events", "view")
        status = request.args.get("status", event_service.FAILURE_OPEN)
        failures = event_service.list_failures(status=None if status == "all" else status)
        return jsonify({"failures": [f.to_dict() for f in failures]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list delivery failures")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.post("/failures/<int:failure_id>/redrive")
@require_actor
def redrive_failure_route(failure_id: int):
    try:
        permission_service.require_permission(g.actor, "events", "redrive")
        failure = event_service.redrive_failure(failure_id, wms_runtime().bus)
        return jsonify({"failure": failure.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to redrive delivery failure")
        return jsonify({"error": "Internal server error"}), 500
