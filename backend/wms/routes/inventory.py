# Overview: Flask API routes for the inventory lot ledger; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import DomainError, ValidationError
from ..extensions import wms_runtime
from ..services import inventory_service, permission_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/lots")
@require_actor
def list_lots_route():
    """
    List lots in FIFO order.

    Query params: item_id, warehouse_id, status, limit
    """
    try:
        permission_service.require_permission(g.actor, "inventory", "view")
        lots = inventory_service.list_lots(
            item_id=request.args.get("item_id", type=int),
            warehouse_id=request.args.get("warehouse_id", type=int),
            status=request.args.get("status"),
            limit=request.args.get("limit", 200, type=int),
        )
        return jsonify({"lots": [lot.to_dict() for lot in lots]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list lots")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/lots/<int:lot_id>")
@require_actor
def get_lot_route(lot_id: int):
    try:
        permission_service.require_permission(g.actor, "inventory", "view")
        return jsonify({"lot": inventory_service.get_lot(lot_id).to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load lot")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/stock")
@require_actor
def stock_level_route():
    """Query params: item_id, warehouse_id (both required)."""
    try:
        permission_service.require_permission(g.actor, "inventory", "view")
        item_id = request.args.get("item_id", type=int)
        warehouse_id = request.args.get("warehouse_id", type=int)
        if item_id is None or warehouse_id is None:
            raise ValidationError("item_id and warehouse_id are required")
        return jsonify(inventory_service.get_stock_level(item_id, warehouse_id)), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to compute stock level")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/lots/<int:lot_id>/block")
@require_actor
def block_lot_route(lot_id: int):
    try:
        lot = inventory_service.set_lot_blocked(lot_id, g.actor, bus=wms_runtime().bus, blocked=True)
        return jsonify({"lot": lot.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to block lot")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/lots/<int:lot_id>/unblock")
@require_actor
def unblock_lot_route(lot_id: int):
    try:
        lot = inventory_service.set_lot_blocked(lot_id, g.actor, bus=wms_runtime().bus, blocked=False)
        return jsonify({"lot": lot.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to unblock lot")
        return jsonify({"error": "Internal server error"}), 500
