# Overview: Flask API route for the owner dashboard; returns period aggregates as JSON.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_business_context, require_role
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..services import dashboard_service


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@require_auth
@require_business_context
@require_role("OWNER", "ADMIN", "STAFF")
def dashboard_stats_route():
    """Query: time_range (week|month|year, default week), store_id"""
    try:
        stats = dashboard_service.dashboard_stats(
            g.business_id,
            time_range=request.args.get("time_range", "week"),
            store_id=request.args.get("store_id", type=int),
        )
        return jsonify({"stats": stats}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
