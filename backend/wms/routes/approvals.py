# Overview: Flask API routes for approval tiers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import DomainError, ValidationError
from ..services import approval_service, permission_service
from ..services.concurrency import run_in_transaction
from ..validation import json_object


approvals_bp = Blueprint("approvals", __name__, url_prefix="/api/approvals")


@approvals_bp.get("/preview")
@require_actor
def preview_route():
    """
    Who must approve a document of this type and value? Cached; may lag tier edits.

    Query params: document_type, amount_cents
    """
    try:
        permission_service.require_permission(g.actor, "approvals", "view")
        document_type = request.args.get("document_type")
        if not document_type:
            raise ValidationError("document_type is required")
        requirement = approval_service.preview(document_type, request.args.get("amount_cents", "0"))
        return jsonify(requirement.to_dict()), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to preview approval chain")
        return jsonify({"error": "Internal server error"}), 500


@approvals_bp.get("/tiers")
@require_actor
def list_tiers_route():
    try:
        permission_service.require_permission(g.actor, "approvals", "view")
        tiers = approval_service.list_tiers(request.args.get("document_type"))
        return jsonify({"tiers": [t.to_dict() for t in tiers]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list approval tiers")
        return jsonify({"error": "Internal server error"}), 500


@approvals_bp.put("/tiers/<document_type>")
@require_actor
def set_tiers_route(document_type: str):
    """
    Replace the tiers of a document type.

    Request body:
    {
        "tiers": [{"min_amount_cents": int, "max_amount_cents": int|null, "required_role": str}]
    }
    """
    try:
        data = json_object(request.get_json(silent=True))
        permission_service.require_permission(g.actor, "approvals", "manage")
        tiers = run_in_transaction(lambda: approval_service.set_tiers(document_type, data.get("tiers") or []))
        return jsonify({"tiers": [t.to_dict() for t in tiers]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to replace approval tiers")
        return jsonify({"error": "Internal server error"}), 500
