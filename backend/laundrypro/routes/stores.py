# Overview: Flask API routes for stores and business settings; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_business_context, require_role
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..services import store_service, tenant_service


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")
settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@stores_bp.get("")
@require_auth
@require_business_context
def list_stores_route():
    include_inactive = request.args.get("include_inactive", "").lower() in {"1", "true", "yes"}
    stores = store_service.list_stores(g.business_id, include_inactive=include_inactive)
    return jsonify({"stores": [store.to_dict() for store in stores]}), 200


@stores_bp.post("")
@require_auth
@require_business_context
@require_role("OWNER", "ADMIN")
def create_store_route():
    try:
        store = store_service.create_store(g.business_id, request.get_json(silent=True))
        return jsonify({"store": store.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create store")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.patch("/<int:store_id>")
@require_auth
@require_business_context
@require_role("OWNER", "ADMIN")
def update_store_route(store_id: int):
    try:
        store = store_service.update_store(g.business_id, store_id, request.get_json(silent=True))
        return jsonify({"store": store.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update store")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.delete("/<int:store_id>")
@require_auth
@require_business_context
@require_role("OWNER", "ADMIN")
def deactivate_store_route(store_id: int):
    try:
        store = store_service.deactivate_store(g.business_id, store_id)
        return jsonify({"store": store.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate store")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.get("")
@require_auth
@require_business_context
def get_settings_route():
    settings = tenant_service.get_settings(g.business_id)
    return jsonify({"settings": settings.to_dict()}), 200


@settings_bp.patch("")
@require_auth
@require_business_context
@require_role("OWNER", "ADMIN")
def update_settings_route():
    try:
        settings = tenant_service.update_settings(g.business_id, request.get_json(silent=True))
        return jsonify({"settings": settings.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return jsonify({"error": "Internal server error"}), 500
