# Overview: Flask API routes for documents; parses input and returns JSON responses.

"""Document API routes: create, lines, transitions and reads for every document type."""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import DomainError
from ..extensions import wms_runtime
from ..services import document_service, permission_service
from ..validation import json_object


documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


@documents_bp.post("/<document_type>")
@require_actor
def create_document_route(document_type: str):
    """
    Create a draft document.

    Request body:
    {
        "warehouse_id": int,
        "to_warehouse_id": int (wt only),
        "project_id": int (optional),
        "source_document_id": int (optional),
        "notes": str (optional),
        "lines": [{"item_id": int, "quantity": int, "unit_cost_cents": int, "condition": str}]
    }
    """
    try:
        data = json_object(request.get_json(silent=True))
        doc = wms_runtime().engine.create(
            document_type,
            g.actor,
            warehouse_id=data.get("warehouse_id"),
            to_warehouse_id=data.get("to_warehouse_id"),
            project_id=data.get("project_id"),
            source_document_id=data.get("source_document_id"),
            notes=data.get("notes"),
            lines=data.get("lines") or [],
        )
        return jsonify({"document": document_service.get_document_summary(doc.id)}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/lines")
@require_actor
def add_line_route(document_id: int):
    """
    Add a line to a draft document.

    Request body:
    {
        "item_id": int,
        "quantity": int,
        "unit_cost_cents": int (optional),
        "condition": "good" | "damaged" (optional),
        "version": int (optional, expected document version)
    }
    """
    try:
        data = json_object(request.get_json(silent=True))
        line = wms_runtime().engine.add_line(
            document_id,
            g.actor,
            item_id=data.get("item_id"),
            quantity=data.get("quantity"),
            unit_cost_cents=data.get("unit_cost_cents", 0),
            condition=data.get("condition"),
            expected_version=data.get("version"),
        )
        return jsonify({"line": line.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add document line")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/transitions/<action>")
@require_actor
def transition_route(document_id: int, action: str):
    """
    Apply a lifecycle action.

    Request body:
    {
        "version": int (optional; the version the client read),
        ... action-specific fields (e.g. "result" for qci complete)
    }

    Returns:
        200: Document after the transition
        400: Body is not an object, or version is not a positive integer
        403: Role, permission, approval tier or scope failure
        409: Invalid transition, version conflict, insufficient stock
    """
    try:
        data = dict(json_object(request.get_json(silent=True)))
        expected_version = data.pop("version", None)
        doc = wms_runtime().engine.transition(
            document_id,
            action,
            g.actor,
            payload=data,
            expected_version=expected_version,
        )
        return jsonify({"document": document_service.get_document_summary(doc.id)}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to apply %s to document %s", action, document_id)
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/<int:document_id>")
@require_actor
def get_document_route(document_id: int):
    try:
        doc = document_service.get_document(document_id)
        permission_service.require_permission(g.actor, doc.document_type, "view")
        summary = document_service.get_document_summary(document_id)
        summary["allowed_actions"] = wms_runtime().engine.allowed_actions(doc, g.actor)
        return jsonify({"document": summary}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/by-number/<document_type>/<path:document_number>")
@require_actor
def get_document_by_number_route(document_type: str, document_number: str):
    try:
        wms_runtime().registry.get(document_type)
        permission_service.require_permission(g.actor, document_type, "view")
        doc = document_service.get_document_by_number(document_type, document_number)
        return jsonify({"document": document_service.get_document_summary(doc.id)}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load document %s", document_number)
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/<int:document_id>/actions")
@require_actor
def allowed_actions_route(document_id: int):
    try:
        doc = document_service.get_document(document_id)
        permission_service.require_permission(g.actor, doc.document_type, "view")
        engine = wms_runtime().engine
        return jsonify({
            "document_id": doc.id,
            "status": doc.status,
            "version": doc.version,
            "actions": engine.allowed_actions(doc),
            "actions_for_actor": engine.allowed_actions(doc, g.actor),
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list allowed actions")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("")
@require_actor
def list_documents_route():
    """
    List documents.

    Query params: document_type (required), status, warehouse_id, project_id, limit, offset
    """
    document_type = request.args.get("document_type")
    try:
        if not document_type:
            return jsonify({"error": "document_type query parameter required"}), 400
        wms_runtime().registry.get(document_type)
        permission_service.require_permission(g.actor, document_type, "view")

        docs = document_service.list_documents(
            document_type=document_type,
            status=request.args.get("status"),
            warehouse_id=request.args.get("warehouse_id", type=int),
            project_id=request.args.get("project_id", type=int),
            limit=request.args.get("limit", 50, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"documents": [d.to_dict() for d in docs]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list documents")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/types")
@require_actor
def document_types_route():
    registry = wms_runtime().registry
    return jsonify({"types": [registry.get(t).to_dict() for t in registry.types()]}), 200
