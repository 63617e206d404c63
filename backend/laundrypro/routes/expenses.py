# Overview: Flask API routes for expense operations; parses input and returns JSON responses.

"""
Expense routes.

- Reads and stats: OWNER/ADMIN/STAFF
- Create/edit: counter roles with an active subscription
- Delete (soft): OWNER/ADMIN only
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_active_subscription, require_auth, require_business_context, require_role
from ..errors import DOMAIN_ERRORS, domain_error_response
from ..services import expense_service


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")

COUNTER_ROLES = ("OWNER", "ADMIN", "STAFF")


@expenses_bp.get("")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def list_expenses_route():
    try:
        result = expense_service.list_expenses(
            g.business_id,
            search=request.args.get("search"),
            category=request.args.get("category"),
            payment_method=request.args.get("payment_method"),
            store_id=request.args.get("store_id", type=int),
            date_range=request.args.get("date_range"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            sort_by=request.args.get("sort_by", "date"),
            sort_order=request.args.get("sort_order", "desc"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
        return jsonify({
            "expenses": [e.to_dict() for e in result["expenses"]],
            "total": result["total"],
            "page": result["page"],
            "per_page": result["per_page"],
        }), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@expenses_bp.get("/stats")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def stats_route():
    try:
        stats = expense_service.expense_stats(g.business_id, request.args.get("date_range", "month"))
        return jsonify({"stats": stats}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@expenses_bp.post("")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
@require_active_subscription
def create_expense_route():
    try:
        expense = expense_service.create_expense(
            g.business_id, request.get_json(silent=True), actor_id=g.current_user.id
        )
        return jsonify({"expense": expense.to_dict()}), 201
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.get("/<int:expense_id>")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
def get_expense_route(expense_id: int):
    try:
        expense = expense_service.get_expense(g.business_id, expense_id)
        return jsonify({"expense": expense.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)


@expenses_bp.patch("/<int:expense_id>")
@require_auth
@require_business_context
@require_role(*COUNTER_ROLES)
@require_active_subscription
def update_expense_route(expense_id: int):
    try:
        expense = expense_service.update_expense(g.business_id, expense_id, request.get_json(silent=True))
        return jsonify({"expense": expense.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.delete("/<int:expense_id>")
@require_auth
@require_business_context
@require_role("OWNER", "ADMIN")
def delete_expense_route(expense_id: int):
    try:
        expense_service.delete_expense(g.business_id, expense_id)
        return jsonify({"message": "Expense deleted"}), 200
    except DOMAIN_ERRORS as e:
        return domain_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete expense")
        return jsonify({"error": "Internal server error"}), 500
