# Overview: Flask API routes for the notification feed; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_business_context
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
@require_business_context
def list_notifications_route():
    result = notification_service.list_notifications(
        g.business_id,
        unread_only=request.args.get("unread_only", "").lower() in {"1", "true", "yes"},
        limit=min(request.args.get("limit", 50, type=int), 200),
    )
    return jsonify({
        "notifications": [n.to_dict() for n in result["notifications"]],
        "unread_count": result["unread_count"],
    }), 200


@notifications_bp.post("/read")
@require_auth
@require_business_context
def mark_read_route():
    """Body: ids (list) or all=true"""
    data = request.get_json(silent=True) or {}
    ids = data.get("ids")
    if not data.get("all"):
        if not isinstance(ids, list) or not all(isinstance(i, int) and not isinstance(i, bool) for i in ids):
            return jsonify({"error": "ids (list of integers) or all=true required"}), 400
    else:
        ids = None
    count = notification_service.mark_read(g.business_id, ids)
    return jsonify({"updated": count}), 200
