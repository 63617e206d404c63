# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Users log in with email + password. Passwords are hashed with bcrypt; the
cost factor comes from BCRYPT_ROUNDS (12 by default, lowered in tests).

MULTI-TENANT: every user except a super admin belongs to exactly one
business. Email is globally unique because login does not name a business.
Staff creation respects the business's max_staff plan limit.
"""

import logging
import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import Business, User
from ..models.auth import USER_ROLES
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import run_with_retry
from .tenant_service import get_settings, provision_business, require_store_in_business
from laundrypro.time_utils import utcnow


logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one letter and one digit.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check. A malformed stored hash never matches."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    email = (email or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    return email


def create_user(
    *,
    name: str,
    email: str,
    password: str,
    business_id: int | None,
    role: str = "STAFF",
    store_id: int | None = None,
    phone: str | None = None,
    is_super_admin: bool = False,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises ValidationError for bad input, ConflictError when the email is
    taken and NotFoundError when the business or store does not exist.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    email = normalize_email(email)
    role = str(role or "STAFF").upper()
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    if business_id is None and not is_super_admin:
        raise ValidationError("business_id is required")

    if business_id is not None:
        business = db.session.get(Business, business_id)
        if not business:
            raise NotFoundError("Business not found")
        settings = get_settings(business_id)
        staff = db.session.query(User).filter_by(business_id=business_id, is_active=True).count()
        if staff >= settings.max_staff:
            raise ValidationError(
                f"Staff limit reached ({settings.max_staff}). Upgrade your plan to add more users."
            )
        if store_id is not None:
            require_store_in_business(store_id, business_id)

    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("A user with this email already exists")

    user = User(
        business_id=business_id,
        store_id=store_id,
        name=name,
        email=email,
        phone=phone,
        password_hash=hash_password(password),
        role=role,
        is_super_admin=is_super_admin,
    )
    db.session.add(user)
    db.session.commit()
    return user


def register_business(
    *,
    business_name: str,
    owner_name: str,
    email: str,
    password: str,
    phone: str | None = None,
    store_name: str = "Main Store",
) -> User:
    """
    Self-service signup: a trial business with its settings, a first store and
    an OWNER user, all in one transaction.

    Raises ConflictError when the email is taken; nothing is written.
    """
    owner_name = (owner_name or "").strip()
    if not owner_name:
        raise ValidationError("name is required")
    email = normalize_email(email)
    password_hash = hash_password(password)
    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("A user with this email already exists")

    def _op():
        business, store = provision_business(
            business_name, email=email, phone=phone, store_name=store_name
        )
        user = User(
            business_id=business.id,
            store_id=store.id,
            name=owner_name,
            email=email,
            phone=phone,
            password_hash=password_hash,
            role="OWNER",
        )
        db.session.add(user)
        db.session.commit()
        return user

    user = run_with_retry(_op)
    logger.info("Business %s registered by %s", user.business_id, user.email)
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Check credentials. Returns the User, or None for any failure (unknown
    email, wrong password, inactive user or inactive business).

    Updates last_login_at on success.
    """
    email = (email or "").strip().lower()
    if not email or not password:
        return None

    user = db.session.query(User).filter(User.email == email, User.is_active.is_(True)).first()
    if not user:
        return None

    if user.business_id is not None:
        business = db.session.get(Business, user.business_id)
        if not business or not business.is_active:
            return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def list_users(business_id: int, *, role: str | None = None) -> list[User]:
    query = db.session.query(User).filter_by(business_id=business_id)
    if role:
        query = query.filter_by(role=role.upper())
    return query.order_by(User.name.asc(), User.id.asc()).all()


def set_user_active(business_id: int, user_id: int, is_active: bool) -> User:
    user = db.session.query(User).filter_by(id=user_id, business_id=business_id).first()
    if not user:
        raise NotFoundError("User not found")
    user.is_active = bool(is_active)
    db.session.commit()
    return user
