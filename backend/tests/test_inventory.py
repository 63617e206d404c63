# Overview: Pytest coverage for consumable inventory stock movements.

"""
Inventory Ledger Tests

Every stock movement writes exactly one log row in the same transaction, and
stock never goes below zero.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from laundrypro.models import InventoryItem, InventoryRestockLog, Notification
from laundrypro.services import inventory_service, notification_service
from laundrypro.services.inventory_service import InventoryError
from laundrypro.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def detergent(db_session, business_a):
    return inventory_service.create_item(business_a.id, {
        "name": "Liquid Detergent",
        "sku": "DET-001",
        "category": "detergent",
        "unit": "litre",
        "min_stock": 5,
        "cost_per_unit_paise": 12000,
        "current_stock": 10,
    })


def _logs(db_session, item):
    return db_session.query(InventoryRestockLog).filter_by(inventory_item_id=item.id).all()


class TestCreateItem:

    def test_initial_stock_is_logged(self, db_session, detergent):
        assert detergent.current_stock == 10
        assert detergent.category == "DETERGENT"
        logs = _logs(db_session, detergent)
        assert len(logs) == 1
        assert (logs[0].previous_stock, logs[0].added_stock, logs[0].new_stock) == (0, 10, 10)
        assert logs[0].total_cost_paise == 120000

    def test_duplicate_sku_rejected(self, db_session, business_a, detergent):
        with pytest.raises(ConflictError):
            inventory_service.create_item(business_a.id, {"name": "Other", "sku": "DET-001"})

    def test_same_sku_in_other_business(self, db_session, business_b, detergent):
        item = inventory_service.create_item(business_b.id, {"name": "Detergent", "sku": "DET-001"})
        assert item.business_id == business_b.id

    def test_invalid_category(self, db_session, business_a):
        with pytest.raises(ValidationError):
            inventory_service.create_item(business_a.id, {"name": "Bleach", "category": "POTIONS"})

    def test_stock_not_patchable(self, db_session, business_a, detergent):
        with pytest.raises(ValidationError):
            inventory_service.update_item(business_a.id, detergent.id, {"current_stock": 100})


class TestAdjustStock:

    def test_add_writes_log(self, db_session, business_a, owner_a, detergent):
        result = inventory_service.adjust_stock(
            business_a.id, detergent.id, "ADD", 4, "COUNT_CORRECTION", notes="Found in back room",
            actor_id=owner_a.id,
        )

        assert result["item"].current_stock == 14
        log = result["log"]
        assert (log.previous_stock, log.added_stock, log.new_stock) == (10, 4, 14)
        assert log.notes == "[ADD] COUNT_CORRECTION: Found in back room"
        assert log.created_by_user_id == owner_a.id
        assert result["item"].last_restocked_at is not None

    def test_remove_writes_signed_log(self, db_session, business_a, detergent):
        result = inventory_service.adjust_stock(business_a.id, detergent.id, "REMOVE", 3, "DAMAGED")

        assert result["item"].current_stock == 7
        assert result["log"].added_stock == -3
        assert result["log"].new_stock == 7

    def test_remove_beyond_stock_rejected(self, db_session, business_a, detergent):
        """Nothing is written when a removal would go negative."""
        with pytest.raises(InventoryError) as exc_info:
            inventory_service.adjust_stock(business_a.id, detergent.id, "REMOVE", 11, "LOST")

        assert str(exc_info.value) == "Cannot remove 11 units. Only 10 units available."
        db_session.expire_all()
        assert db_session.get(InventoryItem, detergent.id).current_stock == 10
        assert len(_logs(db_session, detergent)) == 1

    def test_remove_everything_allowed(self, db_session, business_a, detergent):
        result = inventory_service.adjust_stock(business_a.id, detergent.id, "REMOVE", 10, "INTERNAL_USE")

        assert result["item"].current_stock == 0

    def test_invalid_type_and_reason(self, db_session, business_a, detergent):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(business_a.id, detergent.id, "SET", 1, "OTHER")
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(business_a.id, detergent.id, "ADD", 1, "BIRTHDAY")
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(business_a.id, detergent.id, "ADD", 0, "OTHER")

    def test_cross_tenant_item(self, db_session, business_b, detergent):
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(business_b.id, detergent.id, "ADD", 1, "OTHER")


class TestStockNotifications:

    def _feed(self, db_session, business):
        return (
            db_session.query(Notification)
            .filter_by(business_id=business.id)
            .order_by(Notification.id)
            .all()
        )

    def test_crossing_threshold_alerts(self, db_session, business_a, detergent):
        inventory_service.adjust_stock(business_a.id, detergent.id, "REMOVE", 6, "INTERNAL_USE")

        titles = [n.title for n in self._feed(db_session, business_a)]
        assert titles == ["Low Stock Alert"]

    def test_out_of_stock(self, db_session, business_a, detergent):
        inventory_service.adjust_stock(business_a.id, detergent.id, "REMOVE", 10, "INTERNAL_USE")

        titles = [n.title for n in self._feed(db_session, business_a)]
        assert titles == ["Out of Stock"]

    def test_restock_replenishes(self, db_session, business_a, detergent):
        inventory_service.adjust_stock(business_a.id, detergent.id, "REMOVE", 8, "INTERNAL_USE")

        result = inventory_service.restock(
            business_a.id, detergent.id, 20, cost_per_unit_paise=11000, supplier="CleanSupply"
        )

        assert result["item"].current_stock == 22
        assert result["item"].cost_per_unit_paise == 11000
        assert result["log"].total_cost_paise == 220000
        titles = [n.title for n in self._feed(db_session, business_a)]
        assert titles == ["Low Stock Alert", "Stock Replenished"]

    def test_movement_above_threshold_is_quiet(self, db_session, business_a, detergent):
        inventory_service.adjust_stock(business_a.id, detergent.id, "REMOVE", 2, "SAMPLE")

        assert self._feed(db_session, business_a) == []

    def test_feed_failure_does_not_fail_adjustment(self, db_session, business_a, detergent, monkeypatch):
        """The movement and its log row stay committed when the alert insert fails."""
        def broken_notification(**kwargs):
            raise SQLAlchemyError("notification table unavailable")

        monkeypatch.setattr(notification_service, "Notification", broken_notification)

        result = inventory_service.adjust_stock(business_a.id, detergent.id, "REMOVE", 6, "INTERNAL_USE")

        assert result["item"].current_stock == 4
        db_session.expire_all()
        assert db_session.get(InventoryItem, detergent.id).current_stock == 4
        logs = _logs(db_session, detergent)
        assert [log.added_stock for log in logs] == [10, -6]
        assert self._feed(db_session, business_a) == []


class TestDeleteItem:

    def test_delete_keeps_stock_log(self, db_session, business_a, detergent):
        inventory_service.adjust_stock(business_a.id, detergent.id, "REMOVE", 3, "DAMAGED")
        assert len(_logs(db_session, detergent)) == 2

        deleted = inventory_service.delete_item(business_a.id, detergent.id)

        assert deleted.deleted_at is not None
        db_session.expire_all()
        assert len(_logs(db_session, detergent)) == 2
        assert db_session.get(InventoryItem, detergent.id) is not None

    def test_deleted_item_hidden(self, db_session, business_a, detergent):
        inventory_service.delete_item(business_a.id, detergent.id)

        assert inventory_service.list_items(business_a.id) == []
        assert inventory_service.inventory_stats(business_a.id)["total_items"] == 0
        assert inventory_service.inventory_stats(business_a.id)["total_value_paise"] == 0
        with pytest.raises(NotFoundError):
            inventory_service.get_item(business_a.id, detergent.id)
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(business_a.id, detergent.id, "ADD", 1, "OTHER")

    def test_deleted_item_log_still_readable(self, db_session, business_a, detergent):
        inventory_service.delete_item(business_a.id, detergent.id)

        logs = inventory_service.list_stock_logs(business_a.id, detergent.id)

        assert [log.notes for log in logs] == ["Initial stock"]

    def test_delete_twice_is_404(self, db_session, business_a, detergent):
        inventory_service.delete_item(business_a.id, detergent.id)

        with pytest.raises(NotFoundError):
            inventory_service.delete_item(business_a.id, detergent.id)
