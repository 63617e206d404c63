# Overview: Flask API routes for the service catalogue; parses input and returns JSON responses.

"""
Service catalogue routes.

- /api/treatments: treatments with list stats, toggle and guarded delete
- /api/items: catalogue items with inline prices, the price matrix and
  archive-or-delete
- Reads: counter roles; writes: OWNER/ADMIN with an active subscription
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_active_subscription, require_auth, require_business_context, require_role
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..services import catalog_service


treatments_bp = Blueprint("treatments", __name__, url_prefix="/api/treatments")
items_bp = Blueprint("items", __name__, url_prefix="/api/items")

COUNTER_ROLES = ("OWNER", "ADMIN", "STAFF")
MANAGER_ROLES = ("OWNER", "ADMIN")


def _flag(name: str) -> bool:
    return request.args.get(name, "").lower() in {"1", "true", "yes"}


# -- Treatments --

@treatments_bp.get("")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def list_treatments_route():
    result = catalog_service.list_treatments(g.business_id, active_only=_flag("active_only"))
    return jsonify({
        "treatments": [t.to_dict() for t in result["treatments"]],
        "stats": result["stats"],
    }), 200


@treatments_bp.post("")
@require_auth
@require_business_context
@require_role(*MANAGER_ROLES)
@require_active_subscription
def create_treatment_route():
    try:
        treatment = catalog_service.create_treatment(g.business_id, request.get_json(silent=True))
        return jsonify({"treatment": treatment.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create treatment")
        return jsonify({"error": "Internal server error"}), 500


@treatments_bp.patch("/<int:treatment_id>")
@require_auth
@require_business_context
@require_role(*MANAGER_ROLES)
@require_active_subscription
def update_treatment_route(treatment_id: int):
    try:
        treatment = catalog_service.update_treatment(
            g.business_id, treatment_id, request.get_json(silent=True)
        )
        return jsonify({"treatment": treatment.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update treatment")
        return jsonify({"error": "Internal server error"}), 500


@treatments_bp.post("/<int:treatment_id>/toggle")
@require_auth
@require_business_context
@require_role(*MANAGER_ROLES)
@require_active_subscription
def toggle_treatment_route(treatment_id: int):
    try:
        treatment = catalog_service.toggle_treatment(g.business_id, treatment_id)
        return jsonify({"treatment": treatment.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@treatments_bp.delete("/<int:treatment_id>")
@require_auth
@require_business_context
@require_role(*MANAGER_ROLES)
def delete_treatment_route(treatment_id: int):
    try:
        catalog_service.delete_treatment(g.business_id, treatment_id)
        return jsonify({"message": "Treatment deleted"}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete treatment")
        return jsonify({"error": "Internal server error"}), 500


# -- Items --

@items_bp.get("")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def list_items_route():
    items = catalog_service.list_items(
        g.business_id,
        category=request.args.get("category"),
        search=request.args.get("search"),
        active_only=_flag("active_only"),
    )
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@items_bp.get("/matrix")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def price_matrix_route():
    return jsonify(catalog_service.price_matrix(g.business_id)), 200


@items_bp.get("/<int:item_id>")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def get_item_route(item_id: int):
    try:
        return jsonify({"item": catalog_service.get_item(g.business_id, item_id).to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@items_bp.post("")
@require_auth
@require_business_context
@require_role(*MANAGER_ROLES)
@require_active_subscription
def create_item_route():
    """Body: name, category, is_active, sort_order, prices[{treatment_id, price_paise, express_price_paise, is_available}]"""
    try:
        item = catalog_service.create_item(g.business_id, request.get_json(silent=True))
        return jsonify({"item": item.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create catalogue item")
        return jsonify({"error": "Internal server error"}), 500


@items_bp.patch("/<int:item_id>")
@require_auth
@require_business_context
@require_role(*MANAGER_ROLES)
@require_active_subscription
def update_item_route(item_id: int):
    try:
        item = catalog_service.update_item(g.business_id, item_id, request.get_json(silent=True))
        return jsonify({"item": item.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update catalogue item")
        return jsonify({"error": "Internal server error"}), 500


@items_bp.post("/<int:item_id>/toggle")
@require_auth
@require_business_context
@require_role(*MANAGER_ROLES)
@require_active_subscription
def toggle_item_route(item_id: int):
    try:
        item = catalog_service.toggle_item(g.business_id, item_id)
        return jsonify({"item": item.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@items_bp.delete("/<int:item_id>")
@require_auth
@require_business_context
@require_role(*MANAGER_ROLES)
def delete_item_route(item_id: int):
    try:
        return jsonify(catalog_service.delete_item(g.business_id, item_id)), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete catalogue item")
        return jsonify({"error": "Internal server error"}), 500
