# Overview: Flask API routes for the platform console; super admin only.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_super_admin
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..services import admin_service, session_service
from ..extensions import db
from ..models import User


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/businesses")
@require_auth
@require_super_admin
def list_businesses_route():
    rows = admin_service.list_businesses(
        plan_status=request.args.get("plan_status"),
        search=request.args.get("search"),
    )
    return jsonify({"businesses": rows}), 200


@admin_bp.get("/businesses/<int:business_id>")
@require_auth
@require_super_admin
def get_business_route(business_id: int):
    try:
        return jsonify(admin_service.get_business_detail(business_id)), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@admin_bp.patch("/businesses/<int:business_id>")
@require_auth
@require_super_admin
def update_business_route(business_id: int):
    """Activate or suspend a tenant. Suspension revokes every session of its users."""
    data = request.get_json(silent=True) or {}
    if "is_active" not in data or not isinstance(data["is_active"], bool):
        return jsonify({"error": "is_active (boolean) required"}), 400
    try:
        business = admin_service.set_business_active(business_id, data["is_active"])
        if not business.is_active:
            user_ids = [
                uid for (uid,) in db.session.query(User.id).filter_by(business_id=business.id).all()
            ]
            for user_id in user_ids:
                session_service.revoke_all_user_sessions(user_id, reason="Business deactivated")
        return jsonify({"business": business.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update business")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/businesses/<int:business_id>/extend-trial")
@require_auth
@require_super_admin
def extend_trial_route(business_id: int):
    try:
        data = request.get_json(silent=True) or {}
        business = admin_service.extend_trial(business_id, data.get("days"))
        return jsonify({"business": business.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to extend trial")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/businesses/<int:business_id>/plan")
@require_auth
@require_super_admin
def update_plan_route(business_id: int):
    """Body: plan_type and/or plan_status"""
    try:
        data = request.get_json(silent=True) or {}
        business = admin_service.set_business_plan(
            business_id, plan_type=data.get("plan_type"), plan_status=data.get("plan_status")
        )
        return jsonify({"business": business.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update business plan")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/businesses/<int:business_id>/features")
@require_auth
@require_super_admin
def update_features_route(business_id: int):
    """Body: any of pickup_enabled, delivery_enabled, workshop_enabled, multi_store_enabled"""
    try:
        settings = admin_service.set_business_features(business_id, request.get_json(silent=True))
        return jsonify({"settings": settings.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update business features")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/stats")
@require_auth
@require_super_admin
def stats_route():
    return jsonify({"stats": admin_service.platform_stats()}), 200
