# Overview: Pytest coverage for item-level workshop routing and order reconciliation.

"""
Workshop Routing Tests

Items travel to an external partner one by one; the order only follows when
every item agrees. Each call is a single transaction.
"""

import pytest

from laundrypro.models import OrderItem, OrderStatusHistory
from laundrypro.services import order_service, workshop_service
from laundrypro.services.workshop_service import WorkshopError
from laundrypro.validation import NotFoundError, ValidationError


@pytest.fixture
def order(db_session, business_a, store_a, customer_a, walkin_payload):
    return order_service.create_order(business_a.id, walkin_payload(store_a, customer_a))


def _item_ids(order):
    return [item.id for item in order.items]


class TestSendToWorkshop:
    """Batch send with partial success."""

    def test_partial_send_keeps_order_status(self, db_session, business_a, order):
        first_id, _ = _item_ids(order)

        result = workshop_service.send_items_to_workshop(
            business_a.id, order.id, [first_id], partner_name="CleanCo"
        )

        assert result["items_updated"] == 1
        assert result["order_moved"] is False
        assert result["order_status"] == "IN_PROGRESS"
        item = db_session.get(OrderItem, first_id)
        assert item.status == "AT_WORKSHOP"
        assert item.workshop_partner_name == "CleanCo"

    def test_all_items_moves_order(self, db_session, business_a, order):
        first_id, second_id = _item_ids(order)
        workshop_service.send_items_to_workshop(business_a.id, order.id, [first_id], partner_name="CleanCo")

        result = workshop_service.send_items_to_workshop(
            business_a.id, order.id, [second_id], partner_name="CleanCo"
        )

        assert result["order_moved"] is True
        assert result["order_status"] == "AT_WORKSHOP"
        assert result["message"] == "1 item(s) sent to workshop. Order moved to Workshop status."
        last = order_service.list_status_history(business_a.id, order.id)[-1]
        assert (last.from_status, last.to_status) == ("IN_PROGRESS", "AT_WORKSHOP")
        assert last.notes == "All items sent to workshop: CleanCo"

    def test_same_item_twice_rejected(self, db_session, business_a, order):
        first_id, _ = _item_ids(order)
        workshop_service.send_items_to_workshop(business_a.id, order.id, [first_id])

        with pytest.raises(WorkshopError) as exc_info:
            workshop_service.send_items_to_workshop(business_a.id, order.id, [first_id])

        assert "No valid items to send to workshop" in str(exc_info.value)
        assert "Shirt: already at workshop" in str(exc_info.value)

    def test_mixed_batch_skips_ineligible(self, db_session, business_a, order):
        first_id, second_id = _item_ids(order)
        workshop_service.send_items_to_workshop(business_a.id, order.id, [first_id])

        result = workshop_service.send_items_to_workshop(
            business_a.id, order.id, [first_id, second_id, 99999]
        )

        assert result["items_updated"] == 1
        assert result["items_requested"] == 3
        assert result["message"].startswith("1 of 3 item(s) sent to workshop")
        assert "Item 99999: not found in order" in result["skipped"]

    def test_default_partner_name(self, db_session, business_a, order):
        first_id, _ = _item_ids(order)

        workshop_service.send_items_to_workshop(business_a.id, order.id, [first_id], partner_name="  ")

        assert db_session.get(OrderItem, first_id).workshop_partner_name == "External Workshop"

    def test_order_must_be_sendable(self, db_session, business_a, order):
        order_service.cancel_order(business_a.id, order.id)

        with pytest.raises(WorkshopError):
            workshop_service.send_items_to_workshop(business_a.id, order.id, _item_ids(order))

    def test_item_ids_validated(self, db_session, business_a, order):
        with pytest.raises(ValidationError):
            workshop_service.send_items_to_workshop(business_a.id, order.id, [])
        with pytest.raises(ValidationError):
            workshop_service.send_items_to_workshop(business_a.id, order.id, ["1"])

    def test_cross_tenant_order_not_found(self, db_session, business_b, order):
        with pytest.raises(NotFoundError):
            workshop_service.send_items_to_workshop(business_b.id, order.id, _item_ids(order))


class TestItemActions:
    """Return, QC and return-to-store actions."""

    def test_mark_ready_requires_returned(self, db_session, business_a, order):
        """An item that is not back from the workshop cannot pass QC."""
        first_id, _ = _item_ids(order)

        with pytest.raises(WorkshopError) as exc_info:
            workshop_service.update_workshop_item(business_a.id, first_id, "mark_ready")

        assert str(exc_info.value) == "Item must be in WORKSHOP_RETURNED status"
        db_session.expire_all()
        assert db_session.get(OrderItem, first_id).status == "IN_PROGRESS"

    def test_mark_returned_requires_at_workshop(self, db_session, business_a, order):
        first_id, _ = _item_ids(order)

        with pytest.raises(WorkshopError):
            workshop_service.update_workshop_item(business_a.id, first_id, "mark_returned")

    def test_invalid_action(self, db_session, business_a, order):
        with pytest.raises(ValidationError):
            workshop_service.update_workshop_item(business_a.id, _item_ids(order)[0], "teleport")

    def test_full_round_trip_advances_order_to_ready(self, db_session, business_a, owner_a, order):
        """Both items out, back, QC'd: the order auto-advances to READY."""
        ids = _item_ids(order)
        workshop_service.send_items_to_workshop(business_a.id, order.id, ids, partner_name="CleanCo")

        for item_id in ids:
            workshop_service.update_workshop_item(
                business_a.id, item_id, "mark_returned", notes="Back in good shape"
            )

        first = workshop_service.update_workshop_item(business_a.id, ids[0], "mark_ready", actor_id=owner_a.id)
        assert first["order_moved"] is False
        assert first["order_status"] == "AT_WORKSHOP"

        second = workshop_service.update_workshop_item(business_a.id, ids[1], "mark_ready", actor_id=owner_a.id)
        assert second["order_moved"] is True
        assert second["order_status"] == "READY"

        last = (
            db_session.query(OrderStatusHistory)
            .filter_by(order_id=order.id)
            .order_by(OrderStatusHistory.id.desc())
            .first()
        )
        assert (last.from_status, last.to_status) == ("AT_WORKSHOP", "READY")
        assert last.notes == "Auto-updated: All items are ready"
        assert last.changed_by_user_id == owner_a.id

    def test_return_to_store_skips_qc(self, db_session, business_a, order):
        ids = _item_ids(order)
        workshop_service.send_items_to_workshop(business_a.id, order.id, ids)

        workshop_service.update_workshop_item(business_a.id, ids[0], "return_to_store")
        result = workshop_service.update_workshop_item(business_a.id, ids[1], "return_to_store")

        assert result["item"].status == "READY"
        assert result["item"].workshop_returned_date is not None
        assert result["order_status"] == "READY"

    def test_notes_are_appended(self, db_session, business_a, order):
        first_id, _ = _item_ids(order)
        workshop_service.send_items_to_workshop(business_a.id, order.id, [first_id], notes="Delicate")

        workshop_service.update_workshop_item(business_a.id, first_id, "mark_returned", notes="OK")

        assert db_session.get(OrderItem, first_id).workshop_notes == "Delicate\n[Returned] OK"

    def test_unknown_item(self, db_session, business_a):
        with pytest.raises(NotFoundError):
            workshop_service.update_workshop_item(business_a.id, 99999, "mark_returned")

    def test_cross_tenant_item(self, db_session, business_b, order):
        with pytest.raises(NotFoundError):
            workshop_service.update_workshop_item(business_b.id, _item_ids(order)[0], "mark_returned")
