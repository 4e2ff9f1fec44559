# Overview: Purchase documents and their stock impact.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Purchase, PurchaseItem, Supplier
from ..models.trade import PAYMENT_TYPES
from ..validation import (
    ModelValidationPolicy,
    enforce_amount,
    enforce_line_total,
    enforce_quantity,
    split_items,
    validate_payload,
)
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import DOCUMENT_TYPE_PURCHASE, next_trade_invoice_number
from .inventory_service import apply_stock_deltas, quantities_by_product


PURCHASE_POLICY = ModelValidationPolicy(
    writable_fields={
        "supplier_id",
        "invoice_number",
        "purchase_date",
        "paid_amount_cents",
        "payment_type",
        "notes",
    },
    required_on_create={"supplier_id"},
    choices={"payment_type": PAYMENT_TYPES},
)

PURCHASE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "price_at_purchase_cents"},
    required_on_create={"product_id", "quantity", "price_at_purchase_cents"},
)

# Received goods go into stock
STOCK_SIGN = 1


def _clean_items(items: list | None) -> list[dict]:
    if not items:
        raise ValidationError("items must contain at least one line")
    cleaned = []
    for idx, raw in enumerate(items):
        try:
            line = validate_payload(model=PurchaseItem, payload=raw, policy=PURCHASE_ITEM_POLICY, partial=False)
            enforce_quantity(line)
            enforce_amount(line, "price_at_purchase_cents")
            enforce_line_total(line["quantity"], line["price_at_purchase_cents"])
        except ValidationError as exc:
            raise ValidationError(f"items[{idx}]: {exc.message}", {"line": idx}) from exc
        cleaned.append(line)
    return cleaned


def _build_item(line: dict) -> PurchaseItem:
    return PurchaseItem(
        product_id=line["product_id"],
        quantity=line["quantity"],
        price_at_purchase_cents=line["price_at_purchase_cents"],
        total_cents=line["quantity"] * line["price_at_purchase_cents"],
    )


def _recalculate_totals(purchase: Purchase) -> None:
    purchase.total_amount_cents = sum(item.total_cents for item in purchase.items)
    paid = purchase.paid_amount_cents or 0
    if paid > purchase.total_amount_cents:
        raise ValidationError(
            "paid_amount_cents cannot exceed the purchase total",
            {"paid_amount_cents": paid, "total_amount_cents": purchase.total_amount_cents},
        )
    purchase.balance_cents = purchase.total_amount_cents - paid


def _ensure_invoice_number_free(invoice_number: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Purchase.id).filter(Purchase.invoice_number == invoice_number)
    if exclude_id is not None:
        query = query.filter(Purchase.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(
            f"Invoice number {invoice_number} is already used by another purchase",
            {"invoice_number": invoice_number},
        )


def _lock_purchase(purchase_id: int) -> Purchase:
    purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
    if purchase is None:
        raise NotFoundError(f"Purchase {purchase_id} not found", {"purchase_id": purchase_id})
    return purchase


def create_purchase(payload: dict) -> Purchase:
    """Record a purchase and add its items to stock."""
    header, items = split_items(payload)
    patch = validate_payload(model=Purchase, payload=header, policy=PURCHASE_POLICY, partial=False)
    enforce_amount(patch, "paid_amount_cents")
    lines = _clean_items(items)
    if db.session.get(Supplier, patch["supplier_id"]) is None:
        raise NotFoundError(f"Supplier {patch['supplier_id']} not found", {"supplier_id": patch["supplier_id"]})

    def _op():
        begin_write()
        invoice_number = patch.get("invoice_number")
        if invoice_number:
            _ensure_invoice_number_free(invoice_number)
        else:
            invoice_number = next_trade_invoice_number(DOCUMENT_TYPE_PURCHASE)

        purchase = Purchase(**{**patch, "invoice_number": invoice_number})
        purchase.items = [_build_item(line) for line in lines]
        _recalculate_totals(purchase)
        db.session.add(purchase)
        db.session.flush()

        apply_stock_deltas({}, quantities_by_product(purchase.items), sign=STOCK_SIGN)

        db.session.commit()
        current_app.logger.info("Purchase %s recorded (%s)", purchase.id, invoice_number)
        return purchase

    return run_with_retry(_op)


def update_purchase(purchase_id: int, payload: dict) -> Purchase:
    """
    Edit a purchase. When items are supplied, stock moves by the per-product
    difference and each product's cost follows the new purchase price.
    """
    header, items = split_items(payload)
    patch = validate_payload(model=Purchase, payload=header, policy=PURCHASE_POLICY, partial=True)
    enforce_amount(patch, "paid_amount_cents")
    lines = _clean_items(items) if items is not None else None
    if "supplier_id" in patch and db.session.get(Supplier, patch["supplier_id"]) is None:
        raise NotFoundError(f"Supplier {patch['supplier_id']} not found", {"supplier_id": patch["supplier_id"]})

    def _op():
        begin_write()
        purchase = _lock_purchase(purchase_id)
        if patch.get("invoice_number") and patch["invoice_number"] != purchase.invoice_number:
            _ensure_invoice_number_free(patch["invoice_number"], exclude_id=purchase.id)

        for key, value in patch.items():
            setattr(purchase, key, value)

        if lines is not None:
            old_quantities = quantities_by_product(purchase.items)
            purchase.items = [_build_item(line) for line in lines]
            db.session.flush()
            apply_stock_deltas(old_quantities, quantities_by_product(purchase.items), sign=STOCK_SIGN)

            for item in purchase.items:
                product = db.session.get(Product, item.product_id)
                if product is not None:
                    product.cost_cents = item.price_at_purchase_cents

        _recalculate_totals(purchase)
        db.session.commit()
        current_app.logger.info("Purchase %s updated", purchase_id)
        return purchase

    return run_with_retry(_op)


def delete_purchase(purchase_id: int) -> None:
    """Take the received quantities back out of stock, then remove the purchase."""
    def _op():
        begin_write()
        purchase = _lock_purchase(purchase_id)
        apply_stock_deltas(quantities_by_product(purchase.items), {}, sign=STOCK_SIGN)
        db.session.delete(purchase)
        db.session.commit()
        current_app.logger.info("Purchase %s deleted", purchase_id)

    run_with_retry(_op)


def get_purchase(purchase_id: int) -> Purchase | None:
    return db.session.get(Purchase, purchase_id)


def list_purchases(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    supplier_id: int | None = None,
) -> list[Purchase]:
    query = db.session.query(Purchase)
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    if start is not None:
        query = query.filter(Purchase.purchase_date >= start)
    if end is not None:
        query = query.filter(Purchase.purchase_date <= end)
    return query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc()).all()
