from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Store
from ..validation import ConflictError, ModelValidationPolicy, NotFoundError, apply_patch, validate_payload
from .concurrency import lock_for_update, run_with_retry
from .tenant_service import get_settings


STORE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "address", "phone", "is_active"},
    required_on_create={"name"},
)


class StoreError(Exception):
    """Raised when store operations fail."""
    pass


def _name_taken(business_id: int, name: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Store.id).filter_by(business_id=business_id, name=name)
    if exclude_id is not None:
        query = query.filter(Store.id != exclude_id)
    return query.first() is not None


def create_store(business_id: int, payload: dict) -> Store:
    data = validate_payload(model=Store, payload=payload, policy=STORE_POLICY, partial=False)

    def _op():
        settings = get_settings(business_id)
        active = db.session.query(Store).filter_by(business_id=business_id, is_active=True).count()
        if active >= settings.max_stores:
            raise StoreError(
                f"Store limit reached ({settings.max_stores}). Upgrade your plan to add more stores."
            )
        if _name_taken(business_id, data["name"]):
            raise ConflictError("A store with this name already exists")

        store = Store(business_id=business_id, **data)
        db.session.add(store)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("A store with this name already exists")
        return store

    return run_with_retry(_op)


def update_store(business_id: int, store_id: int, payload: dict) -> Store:
    patch = validate_payload(model=Store, payload=payload, policy=STORE_POLICY, partial=True)

    def _op():
        store = lock_for_update(
            db.session.query(Store).filter_by(id=store_id, business_id=business_id)
        ).first()
        if not store:
            raise NotFoundError("Store not found")
        if "name" in patch and _name_taken(business_id, patch["name"], exclude_id=store.id):
            raise ConflictError("A store with this name already exists")
        if patch.get("is_active") and not store.is_active:
            settings = get_settings(business_id)
            active = db.session.query(Store).filter_by(business_id=business_id, is_active=True).count()
            if active >= settings.max_stores:
                raise StoreError(f"Store limit reached ({settings.max_stores})")

        apply_patch(store, patch)
        db.session.commit()
        return store

    return run_with_retry(_op)


def deactivate_store(business_id: int, store_id: int) -> Store:
    return update_store(business_id, store_id, {"is_active": False})


def get_store(business_id: int, store_id: int) -> Store | None:
    return db.session.query(Store).filter_by(id=store_id, business_id=business_id).first()


def list_stores(business_id: int, *, include_inactive: bool = False) -> list[Store]:
    query = db.session.query(Store).filter_by(business_id=business_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Store.name.asc()).all()
