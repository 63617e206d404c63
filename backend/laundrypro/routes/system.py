# Overview: Flask API routes for system health; parses input and returns JSON responses.

"""
System health endpoint.

Reports database reachability and session table state so load balancers and
deploy scripts can tell a healthy instance from a broken one.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Business, SessionToken
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def _elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000, 2)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        business_count = db.session.query(Business).count()
        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {"businesses": business_count},
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": _elapsed_ms(start_time),
            "error": "Database error",
        }


def check_session_service_health() -> dict:
    """Active sessions plus expired ones still waiting for cleanup."""
    start_time = time.time()
    try:
        active = db.session.query(SessionToken).filter_by(is_revoked=False).count()
        expired = db.session.query(SessionToken).filter(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked.is_(False),
        ).count()
        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {
                "active_sessions": active,
                "expired_pending_cleanup": expired,
            },
        }
    except Exception:
        current_app.logger.exception("Session service health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": _elapsed_ms(start_time),
            "error": "Session service error",
        }


def check_gateway_config() -> dict:
    # Missing keys only disable checkout; the app still serves.
    configured = bool(current_app.config.get("RAZORPAY_KEY_ID") and current_app.config.get("RAZORPAY_KEY_SECRET"))
    if configured:
        return {"status": "healthy"}
    return {"status": "degraded", "warning": "Payment gateway keys not configured"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: a dependency is unhealthy
    """
    start_time = time.time()
    checks = {
        "database": check_database_health(),
        "session_service": check_session_service_health(),
        "payment_gateway": check_gateway_config(),
    }

    statuses = [check["status"] for check in checks.values()]
    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": _elapsed_ms(start_time),
        "checks": checks,
    }, http_status
