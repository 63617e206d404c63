# Overview: Human-readable order and tag numbers with collision retry.

"""
Order Number Generator

FORMAT: {STORECODE}-{YYMMDD}-{NNNN}   e.g. "MAI-250114-0007"
    STORECODE: first three letters of the store name (non-letters stripped),
               upper-cased; "STR" when the name has no letters
    YYMMDD:    creation day (UTC)
    NNNN:      per-business, per-prefix sequence, zero-padded

CONCURRENCY:
The generator is read-highest-then-increment with NO lock. Two creators
(dashboard and a mobile app, say) can compute the same number. The unique
constraint uq_orders_business_order_number rejects the second insert and
create_order_with_retry regenerates from scratch and tries again:
    attempt 1 -> collision -> sleep 0.05s
    attempt 2 -> collision -> sleep 0.10s
    ...
Only a unique violation on the order number is retried. Anything else
propagates on the first failure.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order
from ..validation import ConflictError
from laundrypro.time_utils import utcnow


logger = logging.getLogger(__name__)

MAX_RETRIES = 5
RETRY_BACKOFF_SECONDS = 0.05


class OrderNumberConflictError(ConflictError):
    """Retries exhausted while generating a unique order number."""


def store_code(store_name: str | None) -> str:
    letters = re.sub(r"[^A-Za-z]", "", store_name or "")
    return letters[:3].upper() or "STR"


def order_number_prefix(store_name: str | None, now: datetime | None = None) -> str:
    now = now or utcnow()
    return f"{store_code(store_name)}-{now.strftime('%y%m%d')}-"


def generate_order_number(business_id: int, store_name: str | None, now: datetime | None = None) -> str:
    """Next number for the store's day prefix within the business."""
    prefix = order_number_prefix(store_name, now)

    last = (
        db.session.query(Order.order_number)
        .filter(
            Order.business_id == business_id,
            Order.order_number.like(f"{prefix}%"),
        )
        .order_by(Order.order_number.desc())
        .first()
    )

    sequence = 1
    if last:
        suffix = last[0][len(prefix):]
        if suffix.isdigit():
            sequence = int(suffix) + 1

    return f"{prefix}{sequence:04d}"


def generate_tag_number(order_number: str, index: int) -> str:
    """Per-item physical tag: order number plus 1-based sequence (3 digits)."""
    return f"{order_number}-{index:03d}"


def is_order_number_conflict(exc: IntegrityError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return "order_number" in message or "uq_orders_business_order_number" in message


def create_order_with_retry(create_fn, *, max_retries: int = MAX_RETRIES):
    """
    Run create_fn (which must generate its own order number and commit) until
    it succeeds or the retry budget is spent.

    Raises OrderNumberConflictError when every attempt collided.
    """
    for attempt in range(1, max_retries + 1):
        try:
            return create_fn()
        except IntegrityError as exc:
            db.session.rollback()
            if not is_order_number_conflict(exc):
                raise
            logger.warning("Order number collision (attempt %s/%s)", attempt, max_retries)
            if attempt < max_retries:
                time.sleep(RETRY_BACKOFF_SECONDS * attempt)
        except Exception:
            db.session.rollback()
            raise

    raise OrderNumberConflictError("Failed to generate unique order number, please try again")
