# Overview: Flask API routes for plans, checkout and gateway webhooks; parses input and returns JSON responses.

"""
Subscription and billing routes.

- GET  /api/subscription/plans: public plan catalogue
- GET  /api/subscription/status: access status (resolver output)
- POST /api/subscription/checkout, /verify: purchase flow (OWNER only)
- POST /api/subscription/cancel: OWNER only
- POST /api/webhooks/razorpay: signed gateway events (no session)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_business_context, require_role
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..plans import catalogue
from ..services import subscription_service
from ..services.subscription_service import SubscriptionError


billing_bp = Blueprint("billing", __name__, url_prefix="/api/subscription")
webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@billing_bp.get("/plans")
def plans_route():
    return jsonify({"plans": catalogue()}), 200


@billing_bp.get("/status")
@require_auth
def status_route():
    try:
        status = subscription_service.get_access_status(
            g.business_id, is_super_admin=g.session_context.is_super_admin
        )
        return jsonify({"subscription": status}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@billing_bp.get("")
@require_auth
@require_business_context
def current_route():
    subscription = subscription_service.current_subscription(g.business_id)
    return jsonify({
        "subscription": subscription.to_dict() if subscription else None,
        "status": subscription_service.get_access_status(g.business_id),
    }), 200


@billing_bp.post("/checkout")
@require_auth
@require_business_context
@require_role("OWNER")
def checkout_route():
    """Body: plan_type (BASIC|PROFESSIONAL), billing_cycle (MONTHLY|SEMI_ANNUAL|ANNUAL)"""
    try:
        data = request.get_json(silent=True) or {}
        result = subscription_service.create_checkout(
            g.business_id, data.get("plan_type"), data.get("billing_cycle")
        )
        return jsonify(result), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create checkout")
        return jsonify({"error": "Internal server error"}), 500


@billing_bp.post("/verify")
@require_auth
@require_business_context
@require_role("OWNER")
def verify_route():
    try:
        data = request.get_json(silent=True) or {}
        result = subscription_service.verify_payment(
            g.business_id,
            data.get("razorpay_order_id"),
            data.get("razorpay_payment_id"),
            data.get("razorpay_signature"),
        )
        return jsonify({
            "message": "Subscription activated",
            "payment": result["payment"].to_dict(),
            "subscription": result["subscription"].to_dict(),
            "status": subscription_service.get_access_status(g.business_id),
        }), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to verify payment")
        return jsonify({"error": "Internal server error"}), 500


@billing_bp.post("/cancel")
@require_auth
@require_business_context
@require_role("OWNER")
def cancel_route():
    """Body: immediate (bool), reason"""
    try:
        data = request.get_json(silent=True) or {}
        result = subscription_service.cancel_subscription(
            g.business_id,
            immediate=data.get("immediate") is True,
            reason=data.get("reason"),
        )
        return jsonify(result), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel subscription")
        return jsonify({"error": "Internal server error"}), 500


@billing_bp.get("/billing-history")
@require_auth
@require_business_context
@require_role("OWNER", "ADMIN")
def billing_history_route():
    history = subscription_service.billing_history(g.business_id)
    return jsonify({
        "payments": [p.to_dict() for p in history["payments"]],
        "invoices": [i.to_dict() for i in history["invoices"]],
    }), 200


@webhooks_bp.post("/razorpay")
def razorpay_webhook_route():
    # Signature is computed over the raw body; never re-serialize it.
    raw_body = request.get_data(as_text=True)
    signature = request.headers.get("X-Razorpay-Signature")
    try:
        return jsonify(subscription_service.handle_webhook(raw_body, signature)), 200
    except SubscriptionError as e:
        return jsonify({"error": str(e)}), 400
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process gateway webhook")
        return jsonify({"error": "Internal server error"}), 500
