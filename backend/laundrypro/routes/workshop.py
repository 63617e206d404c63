# Overview: Flask API routes for workshop routing; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_business_context, require_role
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..services import workshop_service


workshop_bp = Blueprint("workshop", __name__, url_prefix="/api/workshop")

COUNTER_ROLES = ("OWNER", "ADMIN", "STAFF")


@workshop_bp.get("/items")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def list_items_route():
    try:
        result = workshop_service.list_workshop_items(
            g.business_id,
            tab=request.args.get("tab", "processing"),
            store_id=request.args.get("store_id", type=int),
        )
        items = []
        for item in result["items"]:
            row = item.to_dict()
            row["order_number"] = item.order.order_number
            row["order_status"] = item.order.status
            items.append(row)
        return jsonify({"items": items, "stats": result["stats"]}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@workshop_bp.post("/orders/<int:order_id>/send")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def send_items_route(order_id: int):
    """Send selected items of an order to the workshop partner (partial success)."""
    try:
        data = request.get_json(silent=True) or {}
        result = workshop_service.send_items_to_workshop(
            g.business_id,
            order_id,
            data.get("item_ids"),
            partner_name=data.get("partner_name"),
            notes=data.get("notes"),
            actor_id=g.current_user.id,
        )
        body = {k: v for k, v in result.items() if k != "order"}
        body["order"] = result["order"].to_dict(include_items=True)
        return jsonify(body), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to send items to workshop")
        return jsonify({"error": "Internal server error"}), 500


@workshop_bp.patch("/items/<int:item_id>")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def update_item_route(item_id: int):
    """action: mark_returned | mark_ready | return_to_store"""
    try:
        data = request.get_json(silent=True) or {}
        result = workshop_service.update_workshop_item(
            g.business_id,
            item_id,
            data.get("action"),
            notes=data.get("notes"),
            actor_id=g.current_user.id,
        )
        return jsonify({
            "item": result["item"].to_dict(),
            "order_status": result["order_status"],
            "order_moved": result["order_moved"],
        }), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update workshop item")
        return jsonify({"error": "Internal server error"}), 500
