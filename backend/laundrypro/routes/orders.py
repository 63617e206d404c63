# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

"""
Order API routes

All routes are scoped to g.business_id. Writes additionally require an
active subscription (402 otherwise). Drivers use /api/driver instead.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_active_subscription, require_auth, require_business_context, require_role
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

COUNTER_ROLES = ("OWNER", "ADMIN", "STAFF")


@orders_bp.get("")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def list_orders_route():
    result = order_service.list_orders(
        g.business_id,
        status=request.args.get("status"),
        store_id=request.args.get("store_id", type=int),
        customer_id=request.args.get("customer_id", type=int),
        search=request.args.get("search"),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 20, type=int),
    )
    return jsonify({
        "orders": [o.to_dict() for o in result["orders"]],
        "total": result["total"],
        "page": result["page"],
        "per_page": result["per_page"],
    }), 200


@orders_bp.get("/stats")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def order_stats_route():
    stats = order_service.order_stats(g.business_id, store_id=request.args.get("store_id", type=int))
    return jsonify({"stats": stats}), 200


@orders_bp.post("")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
@require_active_subscription
def create_order_route():
    """
    Create a walk-in or pickup order.

    Body: store_id, customer_id, order_type, items[], discount_paise,
    paid_paise, payment_mode, pickup_date, delivery_date, special_instructions
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.create_order(g.business_id, data, actor_id=g.current_user.id)
        return jsonify({"order": order.to_dict(include_items=True)}), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.business_id, order_id)
        body = order.to_dict(include_items=True)
        body["payments"] = [p.to_dict() for p in order.payments]
        return jsonify({"order": body}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@orders_bp.patch("/<int:order_id>")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
@require_active_subscription
def update_order_route(order_id: int):
    try:
        order = order_service.update_order(g.business_id, order_id, request.get_json(silent=True))
        return jsonify({"order": order.to_dict(include_items=True)}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def cancel_order_route(order_id: int):
    """Orders are never deleted; DELETE cancels."""
    try:
        order = order_service.cancel_order(g.business_id, order_id, actor_id=g.current_user.id)
        return jsonify({"order": order.to_dict(), "message": "Order cancelled"}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def update_status_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        result = order_service.update_status(
            g.business_id,
            order_id,
            data.get("status"),
            actor_id=g.current_user.id,
            notes=data.get("notes"),
            rework_reason=data.get("rework_reason"),
            workshop_partner_name=data.get("workshop_partner_name"),
            workshop_notes=data.get("workshop_notes"),
        )
        order = result["order"]
        message = f"Order status updated to {order.status}"
        if result["is_rework"]:
            message = f"Order sent for rework (rework #{order.rework_count})"
        return jsonify({
            "order": order.to_dict(include_items=True),
            "previous_status": result["previous_status"],
            "is_rework": result["is_rework"],
            "message": message,
        }), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/items")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
@require_active_subscription
def add_items_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        result = order_service.add_items(
            g.business_id,
            order_id,
            data.get("items"),
            transition_to_in_progress=data.get("transition_to_in_progress", True) is not False,
            delivery_date=data.get("delivery_date"),
            actor_id=g.current_user.id,
        )
        return jsonify({
            "order": result["order"].to_dict(include_items=True),
            "items_added": result["items_added"],
            "transitioned": result["transitioned"],
        }), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add order items")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/payments")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def record_payment_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        result = order_service.record_payment(
            g.business_id,
            order_id,
            data.get("amount_paise"),
            data.get("mode"),
            notes=data.get("notes"),
            actor_id=g.current_user.id,
        )
        return jsonify({
            "order": result["order"].to_dict(),
            "payment": result["payment"].to_dict(),
        }), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/history")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def status_history_route(order_id: int):
    try:
        rows = order_service.list_status_history(g.business_id, order_id)
        return jsonify({"history": [row.to_dict() for row in rows]}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@orders_bp.post("/<int:order_id>/assign-driver")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def assign_driver_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.assign_driver(g.business_id, order_id, data.get("driver_id"))
        return jsonify({"order": order.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to assign driver")
        return jsonify({"error": "Internal server error"}), 500
