# Overview: Flask API routes for the driver app; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_auth, require_business_context, require_role
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..services import order_service


driver_bp = Blueprint("driver", __name__, url_prefix="/api/driver")


@driver_bp.get("/orders")
@require_auth
@require_business_context
@require_role("DRIVER")
def my_orders_route():
    orders = order_service.list_driver_orders(g.business_id, g.current_user.id)
    return jsonify({"orders": [o.to_dict(include_items=True) for o in orders]}), 200


def _transition(action, order_id: int, failure: str):
    try:
        order = action(g.business_id, order_id, g.current_user.id)
        return jsonify({"order": order.to_dict(include_items=True)}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception(failure)
        return jsonify({"error": "Internal server error"}), 500


@driver_bp.post("/orders/<int:order_id>/pickup")
@require_auth
@require_business_context
@require_role("DRIVER")
def pickup_route(order_id: int):
    return _transition(order_service.driver_pickup, order_id, "Failed to mark order picked up")


@driver_bp.post("/orders/<int:order_id>/start-delivery")
@require_auth
@require_business_context
@require_role("DRIVER")
def start_delivery_route(order_id: int):
    return _transition(order_service.driver_start_delivery, order_id, "Failed to start delivery")


@driver_bp.post("/orders/<int:order_id>/deliver")
@require_auth
@require_business_context
@require_role("DRIVER")
def deliver_route(order_id: int):
    return _transition(order_service.driver_deliver, order_id, "Failed to mark order delivered")
