"""
Stock mutation tests: the negative-stock guard, permissive mode, and the
catalog rules around products.
"""

import pytest

from shopledger.errors import ConflictError, NotFoundError, ValidationError
from shopledger.services import inventory_service


class TestAdjustStock:
    def test_positive_and_negative_deltas(self, db_session, product):
        inventory_service.adjust_stock(product.id, 5)
        inventory_service.adjust_stock(product.id, -3)

        assert inventory_service.get_product_by_id(product.id).stock_quantity == 12

    def test_guard_refuses_going_below_zero(self, db_session, product):
        """
        SCENARIO: Product P has 10 in stock, caller removes 11
        EXPECTED: ConflictError, stock stays at 10
        """
        with pytest.raises(ConflictError) as exc_info:
            inventory_service.adjust_stock(product.id, -11)

        assert exc_info.value.details["stock_quantity"] == 10
        assert exc_info.value.details["requested"] == 11
        assert inventory_service.get_product_by_id(product.id).stock_quantity == 10

    def test_down_to_exactly_zero_is_allowed(self, db_session, product):
        inventory_service.adjust_stock(product.id, -10)
        assert inventory_service.get_product_by_id(product.id).stock_quantity == 0

    def test_permissive_mode_allows_negative_stock(self, app, db_session, product, monkeypatch):
        monkeypatch.setitem(app.config, "ALLOW_NEGATIVE_STOCK", True)

        inventory_service.adjust_stock(product.id, -11)

        assert inventory_service.get_product_by_id(product.id).stock_quantity == -1

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(9999, 1)

    @pytest.mark.parametrize("delta", [0, 1.5, "2", True])
    def test_invalid_delta(self, db_session, product, delta):
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(product.id, delta)

    def test_not_idempotent(self, db_session, product):
        inventory_service.adjust_stock(product.id, -2)
        inventory_service.adjust_stock(product.id, -2)

        assert inventory_service.get_product_by_id(product.id).stock_quantity == 6


class TestCatalog:
    def test_create_product(self, db_session):
        product = inventory_service.create_product(
            {"name": "Widget", "barcode": "W-1", "price_cents": 250, "cost_cents": 100, "stock_quantity": 4}
        )
        assert product.id is not None
        assert product.stock_quantity == 4
        assert inventory_service.find_product_by_barcode("W-1").id == product.id

    def test_duplicate_barcode(self, db_session, product):
        with pytest.raises(ConflictError):
            inventory_service.create_product({"name": "Copy", "barcode": "P-0001"})

    def test_blank_barcodes_do_not_collide(self, db_session):
        first = inventory_service.create_product({"name": "Loose A", "barcode": ""})
        second = inventory_service.create_product({"name": "Loose B", "barcode": ""})

        assert first.barcode is None
        assert second.barcode is None

    def test_negative_initial_stock_rejected(self, db_session):
        with pytest.raises(ValidationError):
            inventory_service.create_product({"name": "Broken", "stock_quantity": -1})

    def test_update_cannot_set_stock(self, db_session, product):
        with pytest.raises(ValidationError):
            inventory_service.update_product(product.id, {"stock_quantity": 99})

    def test_update_price(self, db_session, product):
        updated = inventory_service.update_product(product.id, {"price_cents": 1800})
        assert updated.price_cents == 1800

    def test_update_barcode_to_taken_value(self, db_session, product, product_b):
        with pytest.raises(ConflictError):
            inventory_service.update_product(product_b.id, {"barcode": "P-0001"})

    def test_negative_price_rejected(self, db_session, product):
        with pytest.raises(ValidationError):
            inventory_service.update_product(product.id, {"price_cents": -1})

    def test_save_product_persists_catalog_edit(self, db_session, product):
        product.name = "Product P (large)"
        inventory_service.save_product(product)
        db_session.expire_all()

        assert inventory_service.get_product_by_id(product.id).name == "Product P (large)"

    def test_low_stock_listing(self, db_session, product, product_b):
        inventory_service.adjust_stock(product_b.id, -8)

        low = inventory_service.list_low_stock(threshold=5)
        assert [p.id for p in low] == [product_b.id]

    def test_search_by_name(self, db_session, product, product_b):
        found = inventory_service.list_products(search="product b")
        assert [p.id for p in found] == [product_b.id]
