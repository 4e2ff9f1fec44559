"""
Invoice tests: stock deduction on issue, numbering, and the
DRAFT -> FINALIZED -> PAID lifecycle that gates returns.
"""

import re

import pytest

from shopledger.errors import ConflictError, InvalidStateTransition, NotFoundError, ValidationError
from shopledger.models import Invoice
from shopledger.services import inventory_service, invoice_service


class TestCreateInvoice:
    def test_snapshot_and_stock(self, db_session, finalized_invoice, product, customer):
        assert re.match(r"^INV-\d{6}-\d{6}$", finalized_invoice.invoice_number)
        assert finalized_invoice.status == "FINALIZED"
        assert finalized_invoice.finalized_at is not None
        assert finalized_invoice.customer_name == customer.name
        assert finalized_invoice.total_cents == 4500
        assert finalized_invoice.balance_cents == 4500

        item = finalized_invoice.items[0]
        assert (item.name, item.unit_price_cents, item.cost_cents) == ("Product P", 1500, 900)
        assert inventory_service.get_product_by_id(product.id).stock_quantity == 7

    def test_explicit_unit_price(self, db_session, product):
        invoice = invoice_service.create_invoice(
            {"items": [{"product_id": product.id, "quantity": 2, "unit_price_cents": 1200}]}
        )
        assert invoice.total_cents == 2400
        assert invoice.status == "DRAFT"

    def test_line_total_beyond_max_amount(self, db_session, product):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(
                {"items": [{"product_id": product.id, "quantity": 5, "unit_price_cents": 999_999_999}]}
            )

        assert inventory_service.get_product_by_id(product.id).stock_quantity == 10

    def test_unknown_product_rolls_back(self, db_session, product):
        with pytest.raises(NotFoundError):
            invoice_service.create_invoice(
                {"items": [{"product_id": product.id, "quantity": 1}, {"product_id": 9999, "quantity": 1}]}
            )

        assert db_session.query(Invoice).count() == 0
        assert inventory_service.get_product_by_id(product.id).stock_quantity == 10

    def test_insufficient_stock(self, db_session, product):
        with pytest.raises(ConflictError):
            invoice_service.create_invoice({"items": [{"product_id": product.id, "quantity": 11}]})

    def test_status_limited_to_draft_or_finalized(self, db_session, product):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(
                {"status": "PAID", "items": [{"product_id": product.id, "quantity": 1}]}
            )


class TestInvoiceLifecycle:
    def test_finalize_draft(self, db_session, product):
        draft = invoice_service.create_invoice({"items": [{"product_id": product.id, "quantity": 1}]})

        finalized = invoice_service.finalize_invoice(draft.id)

        assert finalized.status == "FINALIZED"
        with pytest.raises(InvalidStateTransition):
            invoice_service.finalize_invoice(draft.id)

    def test_payments_until_paid(self, db_session, finalized_invoice):
        partly = invoice_service.record_invoice_payment(finalized_invoice.id, 2000)
        assert (partly.status, partly.balance_cents) == ("FINALIZED", 2500)

        paid = invoice_service.record_invoice_payment(finalized_invoice.id, 2500)
        assert (paid.status, paid.balance_cents, paid.paid_amount_cents) == ("PAID", 0, 4500)

    def test_overpayment_rejected(self, db_session, finalized_invoice):
        with pytest.raises(ValidationError):
            invoice_service.record_invoice_payment(finalized_invoice.id, 4501)

    def test_payment_on_draft_refused(self, db_session, product):
        draft = invoice_service.create_invoice({"items": [{"product_id": product.id, "quantity": 1}]})

        with pytest.raises(InvalidStateTransition):
            invoice_service.record_invoice_payment(draft.id, 100)
