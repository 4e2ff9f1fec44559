"""
Sale and purchase document tests: stock moves with every create, update and
delete; invoice numbers stay unique; line math is done server-side.
"""

import logging

import pytest

from shopledger.errors import ConflictError, NotFoundError, ValidationError
from shopledger.models import Sale
from shopledger.services import inventory_service, purchase_service, sales_service
from shopledger.services.document_service import DOCUMENT_TYPE_SALE, peek_trade_invoice_number


def _stock(product):
    return inventory_service.get_product_by_id(product.id).stock_quantity


def _sale_line(product, quantity, price_cents=1500):
    return {"product_id": product.id, "quantity": quantity, "price_at_sale_cents": price_cents}


def _purchase_line(product, quantity, price_cents=800):
    return {"product_id": product.id, "quantity": quantity, "price_at_purchase_cents": price_cents}


class TestCreateSale:
    def test_sale_deducts_stock_and_computes_totals(self, db_session, customer, product):
        """
        SCENARIO: Product P (10 in stock, cost 9.00) sells 3 units at 15.00
        EXPECTED: stock 7, total 45.00, profit 18.00, first invoice number INV-5001
        """
        sale = sales_service.create_sale({"customer_id": customer.id, "items": [_sale_line(product, 3)]})

        assert _stock(product) == 7
        assert sale.invoice_number == "INV-5001"
        assert sale.total_amount_cents == 4500
        assert sale.total_profit_cents == 1800
        assert sale.items[0].purchase_price_cents == 900
        assert sale.items[0].total_cents == 4500

    def test_client_totals_are_not_accepted(self, db_session, customer, product):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                {"customer_id": customer.id, "total_amount_cents": 1, "items": [_sale_line(product, 1)]}
            )

    @pytest.mark.parametrize(
        "quantity, price_cents",
        [(10**12, 999_999_999), (1_000_001, 1), (1000, 999_999_999)],
    )
    def test_oversized_lines_rejected(self, db_session, customer, product, quantity, price_cents):
        """
        SCENARIO: a line whose quantity or extended amount is beyond the column range
        EXPECTED: ValidationError before anything is written; stock untouched
        """
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                {"customer_id": customer.id, "items": [_sale_line(product, quantity, price_cents)]}
            )

        assert _stock(product) == 10
        assert db_session.query(Sale).count() == 0

    def test_invoice_numbers_increment(self, db_session, customer, product):
        first = sales_service.create_sale({"customer_id": customer.id, "items": [_sale_line(product, 1)]})
        second = sales_service.create_sale({"customer_id": customer.id, "items": [_sale_line(product, 1)]})

        assert (first.invoice_number, second.invoice_number) == ("INV-5001", "INV-5002")

    def test_allocation_skips_manually_taken_number(self, db_session, customer, product):
        sales_service.create_sale(
            {"customer_id": customer.id, "invoice_number": "INV-5001", "items": [_sale_line(product, 1)]}
        )
        assert peek_trade_invoice_number(DOCUMENT_TYPE_SALE) == "INV-5002"

        auto = sales_service.create_sale({"customer_id": customer.id, "items": [_sale_line(product, 1)]})
        assert auto.invoice_number == "INV-5002"

    def test_duplicate_invoice_number(self, db_session, customer, product):
        sales_service.create_sale(
            {"customer_id": customer.id, "invoice_number": "A-1", "items": [_sale_line(product, 3)]}
        )

        with pytest.raises(ConflictError):
            sales_service.create_sale(
                {"customer_id": customer.id, "invoice_number": "A-1", "items": [_sale_line(product, 3)]}
            )

        assert _stock(product) == 7
        assert db_session.query(Sale).count() == 1

    def test_insufficient_stock_rolls_back_whole_sale(self, db_session, customer, product, product_b):
        with pytest.raises(ConflictError):
            sales_service.create_sale(
                {
                    "customer_id": customer.id,
                    "items": [_sale_line(product, 2), _sale_line(product_b, 11, 2500)],
                }
            )

        assert _stock(product) == 10
        assert _stock(product_b) == 10
        assert db_session.query(Sale).count() == 0

    def test_missing_product_is_skipped(self, db_session, customer, product, caplog):
        caplog.set_level(logging.WARNING)

        sale = sales_service.create_sale(
            {
                "customer_id": customer.id,
                "items": [_sale_line(product, 1), {"product_id": 9999, "quantity": 2, "price_at_sale_cents": 100}],
            }
        )

        assert len(sale.items) == 2
        assert sale.total_amount_cents == 1700
        assert _stock(product) == 9
        assert "9999" in caplog.text

    def test_unknown_customer(self, db_session, product):
        with pytest.raises(NotFoundError):
            sales_service.create_sale({"customer_id": 404, "items": [_sale_line(product, 1)]})

    def test_empty_items(self, db_session, customer):
        with pytest.raises(ValidationError):
            sales_service.create_sale({"customer_id": customer.id, "items": []})


class TestUpdateSale:
    def test_update_moves_stock_by_difference(self, db_session, customer, product, product_b, product_c):
        """
        SCENARIO: sale of P x3 and B x2 is edited to P x5 at 16.00 and C x1; B is dropped
        EXPECTED: P 10-5=5, B back to 10, C 9, P's selling price follows the new line
        """
        sale = sales_service.create_sale(
            {"customer_id": customer.id, "items": [_sale_line(product, 3), _sale_line(product_b, 2, 2500)]}
        )
        assert (_stock(product), _stock(product_b)) == (7, 8)

        updated = sales_service.update_sale(
            sale.id,
            {"items": [_sale_line(product, 5, 1600), _sale_line(product_c, 1, 700)]},
        )

        assert _stock(product) == 5
        assert _stock(product_b) == 10
        assert _stock(product_c) == 9
        assert inventory_service.get_product_by_id(product.id).price_cents == 1600
        assert updated.total_amount_cents == 5 * 1600 + 700
        assert sorted(item.product_id for item in updated.items) == sorted([product.id, product_c.id])

    def test_update_without_items_leaves_stock(self, db_session, customer, product):
        sale = sales_service.create_sale({"customer_id": customer.id, "items": [_sale_line(product, 3)]})

        updated = sales_service.update_sale(sale.id, {"payment_status": "PAID", "notes": "settled"})

        assert updated.payment_status == "PAID"
        assert _stock(product) == 7

    def test_update_that_oversells_changes_nothing(self, db_session, customer, product):
        sale = sales_service.create_sale({"customer_id": customer.id, "items": [_sale_line(product, 3)]})

        with pytest.raises(ConflictError):
            sales_service.update_sale(sale.id, {"items": [_sale_line(product, 14)]})

        assert _stock(product) == 7
        assert sales_service.get_sale(sale.id).items[0].quantity == 3

    def test_update_to_taken_invoice_number(self, db_session, customer, product):
        sales_service.create_sale({"customer_id": customer.id, "invoice_number": "X-1", "items": [_sale_line(product, 1)]})
        other = sales_service.create_sale({"customer_id": customer.id, "items": [_sale_line(product, 1)]})

        with pytest.raises(ConflictError):
            sales_service.update_sale(other.id, {"invoice_number": "X-1"})


class TestDeleteSale:
    def test_create_then_delete_restores_stock(self, db_session, customer, product, product_b):
        sale = sales_service.create_sale(
            {"customer_id": customer.id, "items": [_sale_line(product, 4), _sale_line(product_b, 1, 2500)]}
        )

        sales_service.delete_sale(sale.id)

        assert _stock(product) == 10
        assert _stock(product_b) == 10
        assert sales_service.get_sale(sale.id) is None

    def test_delete_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.delete_sale(12345)


class TestPurchases:
    def test_oversized_purchase_line_rejected(self, db_session, supplier, product):
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(
                {"supplier_id": supplier.id, "items": [_purchase_line(product, 10**12, 999_999_999)]}
            )

        assert _stock(product) == 10

    def test_purchase_adds_stock(self, db_session, supplier, product):
        purchase = purchase_service.create_purchase(
            {"supplier_id": supplier.id, "paid_amount_cents": 1000, "items": [_purchase_line(product, 5)]}
        )

        assert _stock(product) == 15
        assert purchase.total_amount_cents == 4000
        assert purchase.balance_cents == 3000
        assert purchase.invoice_number == "INV-5001"

    def test_sales_and_purchases_number_independently(self, db_session, customer, supplier, product):
        sale = sales_service.create_sale({"customer_id": customer.id, "items": [_sale_line(product, 1)]})
        purchase = purchase_service.create_purchase(
            {"supplier_id": supplier.id, "items": [_purchase_line(product, 1)]}
        )

        assert sale.invoice_number == "INV-5001"
        assert purchase.invoice_number == "INV-5001"

    def test_create_then_delete_restores_stock(self, db_session, supplier, product):
        purchase = purchase_service.create_purchase(
            {"supplier_id": supplier.id, "items": [_purchase_line(product, 5)]}
        )

        purchase_service.delete_purchase(purchase.id)

        assert _stock(product) == 10

    def test_update_sets_product_cost(self, db_session, supplier, product):
        purchase = purchase_service.create_purchase(
            {"supplier_id": supplier.id, "items": [_purchase_line(product, 5)]}
        )

        purchase_service.update_purchase(purchase.id, {"items": [_purchase_line(product, 2, 850)]})

        refreshed = inventory_service.get_product_by_id(product.id)
        assert refreshed.stock_quantity == 12
        assert refreshed.cost_cents == 850
        assert refreshed.price_cents == 1500

    def test_paid_more_than_total(self, db_session, supplier, product):
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(
                {"supplier_id": supplier.id, "paid_amount_cents": 5000, "items": [_purchase_line(product, 1)]}
            )

        assert _stock(product) == 10

    def test_delete_after_goods_sold_is_guarded(self, db_session, customer, supplier, product):
        purchase = purchase_service.create_purchase(
            {"supplier_id": supplier.id, "items": [_purchase_line(product, 5)]}
        )
        sales_service.create_sale({"customer_id": customer.id, "items": [_sale_line(product, 12)]})

        with pytest.raises(ConflictError):
            purchase_service.delete_purchase(purchase.id)

        assert _stock(product) == 3
        assert purchase_service.get_purchase(purchase.id) is not None

    def test_unknown_supplier(self, db_session, product):
        with pytest.raises(NotFoundError):
            purchase_service.create_purchase({"supplier_id": 404, "items": [_purchase_line(product, 1)]})
