# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_active_subscription, require_auth, require_business_context, require_role
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..services import customer_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")

COUNTER_ROLES = ("OWNER", "ADMIN", "STAFF")


@customers_bp.get("")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def list_customers_route():
    result = customer_service.list_customers(
        g.business_id,
        search=request.args.get("search"),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 20, type=int),
    )
    return jsonify({
        "customers": [c.to_dict() for c in result["customers"]],
        "total": result["total"],
        "page": result["page"],
        "per_page": result["per_page"],
    }), 200


@customers_bp.post("")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
@require_active_subscription
def create_customer_route():
    try:
        customer = customer_service.create_customer(g.business_id, request.get_json(silent=True))
        return jsonify({"customer": customer.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def get_customer_route(customer_id: int):
    try:
        result = customer_service.get_customer(g.business_id, customer_id)
        return jsonify({
            "customer": result["customer"].to_dict(),
            "recent_orders": [o.to_dict() for o in result["recent_orders"]],
        }), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@customers_bp.patch("/<int:customer_id>")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
@require_active_subscription
def update_customer_route(customer_id: int):
    try:
        customer = customer_service.update_customer(
            g.business_id, customer_id, request.get_json(silent=True)
        )
        return jsonify({"customer": customer.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/push-token")
@require_auth
@require_business_context
def register_push_token_route(customer_id: int):
    """Body: token (null to clear), enabled"""
    try:
        data = request.get_json(silent=True) or {}
        customer = customer_service.register_push_token(
            g.business_id,
            customer_id,
            data.get("token"),
            enabled=data.get("enabled", True) is not False,
        )
        return jsonify({"customer": customer.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register push token")
        return jsonify({"error": "Internal server error"}), 500
