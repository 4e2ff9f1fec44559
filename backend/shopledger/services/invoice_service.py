# Overview: Point-of-sale invoices, the documents that returns are raised against.

from __future__ import annotations

from flask import current_app

from ..errors import InvalidStateTransition, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Invoice, InvoiceItem
from ..models.invoices import (
    INVOICE_STATUS_DRAFT,
    INVOICE_STATUS_FINALIZED,
    INVOICE_STATUS_PAID,
)
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    enforce_amount,
    enforce_line_total,
    enforce_quantity,
    split_items,
    validate_payload,
)
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import DOCUMENT_TYPE_INVOICE, next_monthly_number
from .inventory_service import _adjust_stock_inner


INVOICE_POLICY = ModelValidationPolicy(
    writable_fields={"customer_id", "customer_name", "invoice_date", "status", "notes"},
    choices={"status": {INVOICE_STATUS_DRAFT, INVOICE_STATUS_FINALIZED}},
)

INVOICE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "unit_price_cents"},
    required_on_create={"product_id", "quantity"},
)


def _clean_items(items: list | None) -> list[dict]:
    if not items:
        raise ValidationError("items must contain at least one line")
    cleaned = []
    for idx, raw in enumerate(items):
        try:
            line = validate_payload(model=InvoiceItem, payload=raw, policy=INVOICE_ITEM_POLICY, partial=False)
            enforce_quantity(line)
            enforce_amount(line, "unit_price_cents")
            enforce_line_total(line["quantity"], line.get("unit_price_cents"))
        except ValidationError as exc:
            raise ValidationError(f"items[{idx}]: {exc.message}", {"line": idx}) from exc
        cleaned.append(line)
    return cleaned


def get_invoice_by_id(invoice_id: int) -> Invoice | None:
    return db.session.get(Invoice, invoice_id)


def lock_invoice(invoice_id: int) -> Invoice | None:
    """Lock an invoice row; returns serialize per invoice through this lock."""
    return lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()


def create_invoice(payload: dict, *, acting_user_id: int | None = None) -> Invoice:
    """
    Issue an invoice and deduct every line from stock.

    Unit price defaults to the product's current price; name and cost are
    snapshotted from the product so later catalog edits do not rewrite it.
    """
    header, items = split_items(payload)
    patch = validate_payload(model=Invoice, payload=header, policy=INVOICE_POLICY, partial=True)
    lines = _clean_items(items)

    customer = None
    if patch.get("customer_id") is not None:
        customer = db.session.get(Customer, patch["customer_id"])
        if customer is None:
            raise NotFoundError(f"Customer {patch['customer_id']} not found", {"customer_id": patch["customer_id"]})

    def _op():
        begin_write()
        invoice = Invoice(**patch)
        invoice.invoice_number = next_monthly_number(DOCUMENT_TYPE_INVOICE, "INV")
        invoice.created_by_user_id = acting_user_id
        if customer is not None and not invoice.customer_name:
            invoice.customer_name = customer.name
        if invoice.status == INVOICE_STATUS_FINALIZED:
            invoice.finalized_at = utcnow()

        built = []
        for line in sorted(lines, key=lambda l: l["product_id"]):
            product = _adjust_stock_inner(line["product_id"], -line["quantity"])
            unit_price = line.get("unit_price_cents")
            if unit_price is None:
                unit_price = product.price_cents
            enforce_line_total(line["quantity"], unit_price)
            built.append(
                InvoiceItem(
                    product_id=product.id,
                    name=product.name,
                    quantity=line["quantity"],
                    unit_price_cents=unit_price,
                    cost_cents=product.cost_cents,
                    subtotal_cents=line["quantity"] * unit_price,
                )
            )
        invoice.items = built
        invoice.total_cents = sum(item.subtotal_cents for item in built)
        invoice.paid_amount_cents = 0
        invoice.balance_cents = invoice.total_cents

        db.session.add(invoice)
        db.session.flush()
        invoice_number = invoice.invoice_number
        db.session.commit()
        current_app.logger.info("Invoice %s issued (%s)", invoice.id, invoice_number)
        return invoice

    return run_with_retry(_op)


def finalize_invoice(invoice_id: int) -> Invoice:
    def _op():
        begin_write()
        invoice = lock_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found", {"invoice_id": invoice_id})
        if invoice.status != INVOICE_STATUS_DRAFT:
            raise InvalidStateTransition(
                f"Cannot finalize invoice in status {invoice.status}",
                {"invoice_id": invoice_id, "status": invoice.status},
            )
        invoice.status = INVOICE_STATUS_FINALIZED
        invoice.finalized_at = utcnow()
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def record_invoice_payment(invoice_id: int, amount_cents: int) -> Invoice:
    """Apply a payment to a finalized invoice; fully paid invoices become PAID."""
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer")

    def _op():
        begin_write()
        invoice = lock_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found", {"invoice_id": invoice_id})
        if invoice.status != INVOICE_STATUS_FINALIZED:
            raise InvalidStateTransition(
                f"Cannot record a payment on invoice in status {invoice.status}",
                {"invoice_id": invoice_id, "status": invoice.status},
            )
        if amount_cents > invoice.balance_cents:
            raise ValidationError(
                "Payment exceeds the outstanding balance",
                {"balance_cents": invoice.balance_cents, "amount_cents": amount_cents},
            )
        invoice.paid_amount_cents += amount_cents
        invoice.balance_cents = invoice.total_cents - invoice.paid_amount_cents
        if invoice.balance_cents == 0:
            invoice.status = INVOICE_STATUS_PAID
        db.session.commit()
        return invoice

    return run_with_retry(_op)
