# Overview: Pytest coverage for treatments, catalogue items, the price matrix and catalogue-priced orders.

"""
Service Catalogue Tests

Treatment codes and item names are unique per business, deletes never
orphan live orders, and order lines naming item_id + treatment_id are
priced from the matrix.
"""

import pytest

from laundrypro.models import CatalogItem, ItemTreatmentPrice, Order, Treatment
from laundrypro.services import catalog_service, order_service
from laundrypro.services.catalog_service import CatalogError
from laundrypro.validation import ConflictError, NotFoundError, ValidationError

from conftest import build_walkin_payload


@pytest.fixture
def wash_iron(db_session, business_a):
    return catalog_service.create_treatment(business_a.id, {"name": "Wash & Iron"})


@pytest.fixture
def dry_clean(db_session, business_a):
    return catalog_service.create_treatment(business_a.id, {"name": "Dry Clean", "turnaround_hours": 72})


@pytest.fixture
def shirt(db_session, business_a, wash_iron, dry_clean):
    return catalog_service.create_item(business_a.id, {
        "name": "Shirt",
        "category": "garment",
        "prices": [
            {"treatment_id": wash_iron.id, "price_paise": 4000},
            {"treatment_id": dry_clean.id, "price_paise": 9000, "express_price_paise": 12000},
        ],
    })


def _line(item, treatment, **extra):
    line = {"item_id": item.id, "treatment_id": treatment.id, "quantity": 2}
    line.update(extra)
    return line


class TestTreatments:

    def test_code_derived_from_name(self, db_session, wash_iron):
        assert wash_iron.code == "WASH_IRON"
        assert wash_iron.turnaround_hours == 24

    def test_duplicate_code_rejected(self, db_session, business_a, wash_iron):
        with pytest.raises(ConflictError):
            catalog_service.create_treatment(business_a.id, {"name": "Wash and Iron", "code": "wash_iron"})

    def test_same_code_in_other_business(self, db_session, business_b, wash_iron):
        treatment = catalog_service.create_treatment(business_b.id, {"name": "Wash & Iron"})
        assert treatment.code == "WASH_IRON"

    def test_bad_code_rejected(self, db_session, business_a):
        with pytest.raises(ValidationError):
            catalog_service.create_treatment(business_a.id, {"name": "Steam", "code": "STEAM-1"})

    @pytest.mark.parametrize("hours", [0, 721])
    def test_turnaround_bounds(self, db_session, business_a, hours):
        with pytest.raises(ValidationError):
            catalog_service.create_treatment(business_a.id, {"name": "Steam", "turnaround_hours": hours})

    def test_list_stats(self, db_session, business_a, wash_iron, dry_clean):
        catalog_service.toggle_treatment(business_a.id, dry_clean.id)
        catalog_service.create_treatment(business_a.id, {"name": "Wash + Dry Clean", "is_combo": True})

        result = catalog_service.list_treatments(business_a.id)

        assert result["stats"] == {"total": 3, "active": 2, "inactive": 1, "combo": 1}

    def test_delete_blocked_by_active_order(
        self, db_session, business_a, store_a, customer_a, shirt, wash_iron
    ):
        order_service.create_order(
            business_a.id, build_walkin_payload(store_a, customer_a, items=[_line(shirt, wash_iron)])
        )

        with pytest.raises(CatalogError) as exc:
            catalog_service.delete_treatment(business_a.id, wash_iron.id)

        assert "1 active order(s)" in str(exc.value)
        assert db_session.get(Treatment, wash_iron.id) is not None

    def test_delete_after_orders_finish(
        self, db_session, business_a, store_a, customer_a, shirt, wash_iron
    ):
        order = order_service.create_order(
            business_a.id, build_walkin_payload(store_a, customer_a, items=[_line(shirt, wash_iron)])
        )
        order_service.cancel_order(business_a.id, order.id)

        catalog_service.delete_treatment(business_a.id, wash_iron.id)

        db_session.expire_all()
        assert db_session.get(Treatment, wash_iron.id) is None
        kept = db_session.get(Order, order.id).items[0]
        assert kept.treatment_id is None
        assert kept.treatment_name == "Wash & Iron"
        assert db_session.query(ItemTreatmentPrice).filter_by(treatment_id=wash_iron.id).count() == 0

    def test_other_business_treatment_is_404(self, db_session, business_b, wash_iron):
        with pytest.raises(NotFoundError):
            catalog_service.update_treatment(business_b.id, wash_iron.id, {"name": "Stolen"})


class TestItems:

    def test_inline_prices(self, db_session, shirt, dry_clean):
        prices = {p.treatment_id: p for p in shirt.prices}
        assert shirt.category == "GARMENT"
        assert prices[dry_clean.id].express_price_paise == 12000

    def test_name_unique_case_insensitive(self, db_session, business_a, shirt):
        with pytest.raises(ConflictError) as exc:
            catalog_service.create_item(business_a.id, {"name": "SHIRT"})
        assert str(exc.value) == "An item with this name already exists"

    def test_null_price_removes_cell(self, db_session, business_a, shirt, wash_iron):
        item = catalog_service.update_item(
            business_a.id, shirt.id, {"prices": [{"treatment_id": wash_iron.id, "price_paise": None}]}
        )

        assert wash_iron.id not in {p.treatment_id for p in item.prices}
        assert len(item.prices) == 1

    def test_price_upsert(self, db_session, business_a, shirt, wash_iron):
        catalog_service.update_item(
            business_a.id, shirt.id, {"prices": [{"treatment_id": wash_iron.id, "price_paise": 4500}]}
        )

        cell = db_session.query(ItemTreatmentPrice).filter_by(item_id=shirt.id, treatment_id=wash_iron.id).one()
        assert cell.price_paise == 4500

    def test_foreign_treatment_in_prices(self, db_session, business_a, business_b):
        other = catalog_service.create_treatment(business_b.id, {"name": "Steam"})

        with pytest.raises(NotFoundError):
            catalog_service.create_item(business_a.id, {
                "name": "Towel",
                "prices": [{"treatment_id": other.id, "price_paise": 100}],
            })

    def test_unused_item_removed(self, db_session, business_a, shirt):
        result = catalog_service.delete_item(business_a.id, shirt.id)

        assert result["archived"] is False
        assert db_session.get(CatalogItem, shirt.id) is None
        assert db_session.query(ItemTreatmentPrice).filter_by(item_id=shirt.id).count() == 0

    def test_used_item_archived(self, db_session, business_a, store_a, customer_a, shirt, wash_iron):
        order_service.create_order(
            business_a.id, build_walkin_payload(store_a, customer_a, items=[_line(shirt, wash_iron)])
        )

        result = catalog_service.delete_item(business_a.id, shirt.id)

        assert result == {"archived": True, "message": "Item archived (used in 1 orders)"}
        archived = db_session.get(CatalogItem, shirt.id)
        assert archived.deleted_at is not None
        assert archived.is_active is False
        assert catalog_service.list_items(business_a.id) == []

    def test_archived_name_can_be_reused(self, db_session, business_a, store_a, customer_a, shirt, wash_iron):
        order_service.create_order(
            business_a.id, build_walkin_payload(store_a, customer_a, items=[_line(shirt, wash_iron)])
        )
        catalog_service.delete_item(business_a.id, shirt.id)

        again = catalog_service.create_item(business_a.id, {"name": "Shirt"})

        assert again.id != shirt.id

    def test_price_matrix(self, db_session, business_a, shirt, wash_iron, dry_clean):
        catalog_service.toggle_treatment(business_a.id, dry_clean.id)

        matrix = catalog_service.price_matrix(business_a.id)

        assert [t["id"] for t in matrix["treatments"]] == [wash_iron.id]
        assert matrix["items"][0]["prices"] == {
            str(wash_iron.id): {
                "treatment_id": wash_iron.id,
                "treatment_name": "Wash & Iron",
                "price_paise": 4000,
                "express_price_paise": None,
                "is_available": True,
            }
        }


class TestCataloguePricedOrders:

    def test_line_priced_from_matrix(self, db_session, business_a, store_a, customer_a, shirt, wash_iron):
        order = order_service.create_order(
            business_a.id, build_walkin_payload(store_a, customer_a, items=[_line(shirt, wash_iron)])
        )

        item = order.items[0]
        assert (item.item_name, item.treatment_name) == ("Shirt", "Wash & Iron")
        assert (item.catalog_item_id, item.treatment_id) == (shirt.id, wash_iron.id)
        assert item.unit_price_paise == 4000
        assert order.subtotal_paise == 8000

    def test_express_price_replaces_multiplier(
        self, db_session, business_a, store_a, customer_a, shirt, dry_clean
    ):
        order = order_service.create_order(
            business_a.id,
            build_walkin_payload(store_a, customer_a, items=[_line(shirt, dry_clean, is_express=True)]),
        )

        assert order.items[0].subtotal_paise == 24000

    def test_express_without_override_uses_multiplier(
        self, db_session, business_a, store_a, customer_a, shirt, wash_iron
    ):
        order = order_service.create_order(
            business_a.id,
            build_walkin_payload(store_a, customer_a, items=[_line(shirt, wash_iron, is_express=True)]),
        )

        # 4000 x 2 x 1.5
        assert order.items[0].subtotal_paise == 12000

    def test_explicit_price_wins(self, db_session, business_a, store_a, customer_a, shirt, wash_iron):
        order = order_service.create_order(
            business_a.id,
            build_walkin_payload(store_a, customer_a, items=[_line(shirt, wash_iron, unit_price_paise=3500)]),
        )

        assert order.items[0].unit_price_paise == 3500

    def test_unavailable_cell_rejected(self, db_session, business_a, store_a, customer_a, shirt, wash_iron):
        catalog_service.update_item(business_a.id, shirt.id, {
            "prices": [{"treatment_id": wash_iron.id, "price_paise": 4000, "is_available": False}],
        })

        with pytest.raises(CatalogError):
            order_service.create_order(
                business_a.id, build_walkin_payload(store_a, customer_a, items=[_line(shirt, wash_iron)])
            )

    def test_item_id_needs_treatment_id(self, db_session, business_a, store_a, customer_a, shirt):
        with pytest.raises(ValidationError):
            order_service.create_order(
                business_a.id, build_walkin_payload(store_a, customer_a, items=[{"item_id": shirt.id}])
            )

    def test_other_business_item_is_404(self, db_session, business_b, store_b, customer_b, shirt, wash_iron):
        with pytest.raises(NotFoundError):
            order_service.create_order(
                business_b.id, build_walkin_payload(store_b, customer_b, items=[_line(shirt, wash_iron)])
            )


class TestCatalogueApi:

    def test_list_and_create(self, client, headers_a, wash_iron):
        listed = client.get('/api/treatments', headers=headers_a)
        created = client.post('/api/items', json={'name': 'Saree', 'category': 'SPECIALTY'}, headers=headers_a)

        assert listed.status_code == 200
        assert listed.json['stats']['total'] == 1
        assert created.status_code == 201
        assert created.json['item']['name'] == "Saree"

    def test_delete_treatment_in_use_is_400(
        self, client, headers_a, business_a, store_a, customer_a, shirt, wash_iron
    ):
        order_service.create_order(
            business_a.id, build_walkin_payload(store_a, customer_a, items=[_line(shirt, wash_iron)])
        )

        response = client.delete(f'/api/treatments/{wash_iron.id}', headers=headers_a)

        assert response.status_code == 400
        assert "active order" in response.json['error']

    def test_matrix_endpoint(self, client, headers_a, shirt):
        response = client.get('/api/items/matrix', headers=headers_a)

        assert response.status_code == 200
        assert response.json['items'][0]['name'] == "Shirt"
