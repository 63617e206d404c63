# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

"""
Consumable inventory routes.

- Reads: any counter role
- Item create/edit/delete and stock movements: OWNER/ADMIN/STAFF with an
  active subscription; delete is OWNER/ADMIN only
- Stock only changes through /adjust and /restock
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_active_subscription, require_auth, require_business_context, require_role
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..services import inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

COUNTER_ROLES = ("OWNER", "ADMIN", "STAFF")


@inventory_bp.get("")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def list_items_route():
    items = inventory_service.list_items(
        g.business_id,
        category=request.args.get("category"),
        low_stock=request.args.get("low_stock", "").lower() in {"1", "true", "yes"},
        search=request.args.get("search"),
    )
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@inventory_bp.get("/stats")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def stats_route():
    return jsonify({"stats": inventory_service.inventory_stats(g.business_id)}), 200


@inventory_bp.post("")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
@require_active_subscription
def create_item_route():
    try:
        item = inventory_service.create_item(
            g.business_id, request.get_json(silent=True), actor_id=g.current_user.id
        )
        return jsonify({"item": item.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:item_id>")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def get_item_route(item_id: int):
    try:
        item = inventory_service.get_item(g.business_id, item_id)
        logs = inventory_service.list_stock_logs(g.business_id, item_id)
        return jsonify({"item": item.to_dict(), "logs": [log.to_dict() for log in logs]}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@inventory_bp.patch("/<int:item_id>")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
@require_active_subscription
def update_item_route(item_id: int):
    try:
        item = inventory_service.update_item(g.business_id, item_id, request.get_json(silent=True))
        return jsonify({"item": item.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/<int:item_id>")
@require_auth
@require_business_context
@require_role("OWNER", "ADMIN")
def delete_item_route(item_id: int):
    try:
        inventory_service.delete_item(g.business_id, item_id)
        return jsonify({"message": "Item deleted"}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:item_id>/adjust")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
@require_active_subscription
def adjust_stock_route(item_id: int):
    """Body: type (ADD|REMOVE), quantity, reason, notes"""
    try:
        data = request.get_json(silent=True) or {}
        result = inventory_service.adjust_stock(
            g.business_id,
            item_id,
            data.get("type"),
            data.get("quantity"),
            data.get("reason"),
            notes=data.get("notes"),
            actor_id=g.current_user.id,
        )
        return jsonify({"item": result["item"].to_dict(), "log": result["log"].to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:item_id>/restock")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
@require_active_subscription
def restock_route(item_id: int):
    try:
        data = request.get_json(silent=True) or {}
        result = inventory_service.restock(
            g.business_id,
            item_id,
            data.get("quantity"),
            cost_per_unit_paise=data.get("cost_per_unit_paise"),
            supplier=data.get("supplier"),
            notes=data.get("notes"),
            actor_id=g.current_user.id,
        )
        return jsonify({"item": result["item"].to_dict(), "log": result["log"].to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to restock item")
        return jsonify({"error": "Internal server error"}), 500
