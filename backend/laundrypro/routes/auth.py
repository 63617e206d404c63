# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /api/auth/register: self-service signup (trial business + owner), logs in
- POST /api/auth/login: email + password -> bearer token
- POST /api/auth/logout: revoke the presented token
- GET  /api/auth/me: current user, business and access status
- Staff management for OWNER/ADMIN (respects the plan's max_staff)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_business_context, require_role
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..services import auth_service, session_service, subscription_service
from ..services.tenant_service import require_business


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.register_business(
            business_name=data.get("business_name"),
            owner_name=data.get("name"),
            email=data.get("email"),
            password=data.get("password"),
            phone=data.get("phone"),
        )
        session, token = session_service.create_session(
            user,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "message": "Registration successful. Your trial has started.",
            "user": user.to_dict(),
            "business": require_business(user.business_id).to_dict(),
            "token": token,
            "expires_at": session.to_dict()["expires_at"],
        }), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register business")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")
        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "expires_at": session.to_dict()["expires_at"],
        }), 200

    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers.get("Authorization", "").split(" ", 1)[1].strip()
    session_service.revoke_session(token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    context = g.session_context
    body = {"user": g.current_user.to_dict(), "business": None}
    if context.is_super_admin and not g.business_id:
        body["subscription"] = subscription_service.resolve_access_status(None, is_super_admin=True)
        return jsonify(body), 200

    business = require_business(g.business_id)
    body["business"] = business.to_dict()
    body["subscription"] = subscription_service.resolve_access_status(
        business, is_super_admin=context.is_super_admin
    )
    return jsonify(body), 200


@auth_bp.get("/users")
@require_auth
@require_business_context
@require_role("OWNER", "ADMIN")
def list_users_route():
    role = request.args.get("role")
    users = auth_service.list_users(g.business_id, role=role)
    return jsonify({"users": [u.to_dict() for u in users]}), 200


@auth_bp.post("/users")
@require_auth
@require_business_context
@require_role("OWNER", "ADMIN")
def create_user_route():
    """Add a staff member or driver to the caller's business."""
    data = request.get_json(silent=True) or {}
    role = str(data.get("role") or "STAFF").upper()
    if role == "OWNER" and g.current_user.role != "OWNER":
        return jsonify({"error": "Only owners can create owners"}), 403
    try:
        user = auth_service.create_user(
            name=data.get("name"),
            email=data.get("email"),
            password=data.get("password"),
            business_id=g.business_id,
            role=role,
            store_id=data.get("store_id"),
            phone=data.get("phone"),
        )
        return jsonify({"user": user.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.patch("/users/<int:user_id>")
@require_auth
@require_business_context
@require_role("OWNER", "ADMIN")
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    if "is_active" not in data or not isinstance(data["is_active"], bool):
        return jsonify({"error": "is_active (boolean) required"}), 400
    if user_id == g.current_user.id and not data["is_active"]:
        return jsonify({"error": "You cannot deactivate yourself"}), 400
    try:
        user = auth_service.set_user_active(g.business_id, user_id, data["is_active"])
        if not user.is_active:
            session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
        return jsonify({"user": user.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500
