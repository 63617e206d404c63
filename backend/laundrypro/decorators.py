# Overview: Request, role and subscription decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service, subscription_service
from .services.tenant_service import require_business


def _is_authenticated() -> bool:
    return hasattr(g, "current_user") and hasattr(g, "session_context")


def _is_super_admin() -> bool:
    return _is_authenticated() and bool(g.session_context.is_super_admin)


def require_auth(f):
    """
    Require a bearer session and establish tenant context.

    Sets the following Flask g attributes:
    - g.current_user: the authenticated User
    - g.business_id: the business fixed on the session (None for super admins)
    - g.session_context: the full SessionContext

    Returns 401 for a missing header or an invalid, expired, idle or revoked
    token, and when a non super admin session carries no business.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        if not context.business_id and not context.is_super_admin:
            return jsonify({"error": "Invalid session: missing business context"}), 401

        g.current_user = context.user
        g.business_id = context.business_id
        g.session_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Allow only the listed roles. Super admins always pass."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401
            if _is_super_admin():
                return f(*args, **kwargs)
            if g.current_user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_business_context(f):
    """Business-scoped routes: a super admin without a business gets 400."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if not g.business_id:
            return jsonify({"error": "Business context required"}), 400
        return f(*args, **kwargs)
    return decorated_function


def require_super_admin(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if not _is_super_admin():
            return jsonify({"error": "Super admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function


def require_active_subscription(f):
    """
    Gate writes on the plan resolver. Returns 402 with the resolver payload
    when the business cannot access the app.

    The resolver may write (trial backfill, suspension flip).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if _is_super_admin():
            return f(*args, **kwargs)

        status = subscription_service.resolve_access_status(require_business(g.business_id))
        if not status["can_access"]:
            return jsonify({
                "error": "Subscription required",
                "subscription": status,
            }), 402
        return f(*args, **kwargs)

    return decorated_function
