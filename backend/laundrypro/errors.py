# Overview: Maps domain exceptions raised by services to JSON error responses.

from __future__ import annotations

from flask import jsonify

from .services.catalog_service import CatalogError
from .services.inventory_service import InventoryError
from .services.order_service import OrderError
from .services.payment_gateway import GatewayError
from .services.store_service import StoreError
from .services.subscription_service import SubscriptionError
from .services.workshop_service import WorkshopError
from .validation import ConflictError, NotFoundError, ValidationError


DOMAIN_ERRORS = (
    ValidationError,
    ConflictError,
    NotFoundError,
    OrderError,
    WorkshopError,
    InventoryError,
    SubscriptionError,
    StoreError,
    CatalogError,
    GatewayError,
)


def status_for(exc: Exception) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, GatewayError):
        return 502
    return 400


def domain_error_response(exc: Exception):
    """{"error": message, "details": ...} with the status for the exception type."""
    # LookupError str() wraps the message in quotes
    message = exc.args[0] if exc.args else str(exc)
    body = {"error": message}
    details = getattr(exc, "details", None)
    if details:
        body["details"] = details
    return jsonify(body), status_for(exc)
