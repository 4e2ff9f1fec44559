# Overview: Sale documents and their stock impact.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Product, Sale, SaleItem
from ..models.trade import PAYMENT_STATUSES
from ..validation import (
    ModelValidationPolicy,
    enforce_amount,
    enforce_line_total,
    enforce_quantity,
    split_items,
    validate_payload,
)
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import DOCUMENT_TYPE_SALE, next_trade_invoice_number
from .inventory_service import apply_stock_deltas, quantities_by_product


SALE_POLICY = ModelValidationPolicy(
    writable_fields={"customer_id", "invoice_number", "sale_date", "payment_status", "notes"},
    required_on_create={"customer_id"},
    choices={"payment_status": PAYMENT_STATUSES},
)

SALE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "price_at_sale_cents", "purchase_price_cents"},
    required_on_create={"product_id", "quantity", "price_at_sale_cents"},
)

# Stock leaves the shop when a sale is recorded
STOCK_SIGN = -1


def _clean_items(items: list | None) -> list[dict]:
    if not items:
        raise ValidationError("items must contain at least one line")
    cleaned = []
    for idx, raw in enumerate(items):
        try:
            line = validate_payload(model=SaleItem, payload=raw, policy=SALE_ITEM_POLICY, partial=False)
            enforce_quantity(line)
            enforce_amount(line, "price_at_sale_cents")
            enforce_amount(line, "purchase_price_cents")
            enforce_line_total(line["quantity"], line["price_at_sale_cents"])
        except ValidationError as exc:
            raise ValidationError(f"items[{idx}]: {exc.message}", {"line": idx}) from exc
        cleaned.append(line)
    return cleaned


def _build_item(line: dict) -> SaleItem:
    """Server-side line math; client totals are never trusted."""
    purchase_price = line.get("purchase_price_cents")
    if purchase_price is None:
        product = db.session.get(Product, line["product_id"])
        purchase_price = product.cost_cents if product is not None else 0
    quantity = line["quantity"]
    price = line["price_at_sale_cents"]
    return SaleItem(
        product_id=line["product_id"],
        quantity=quantity,
        price_at_sale_cents=price,
        purchase_price_cents=purchase_price,
        total_cents=quantity * price,
        profit_cents=(price - purchase_price) * quantity,
    )


def _recalculate_totals(sale: Sale) -> None:
    sale.total_amount_cents = sum(item.total_cents for item in sale.items)
    sale.total_profit_cents = sum(item.profit_cents for item in sale.items)


def _ensure_invoice_number_free(invoice_number: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Sale.id).filter(Sale.invoice_number == invoice_number)
    if exclude_id is not None:
        query = query.filter(Sale.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(
            f"Invoice number {invoice_number} is already used by another sale",
            {"invoice_number": invoice_number},
        )


def _lock_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
    return sale


def create_sale(payload: dict) -> Sale:
    """
    Record a sale and take its items out of stock.

    Invoice number must be unique (allocated when omitted). Line totals,
    profits and document totals are recomputed here. A line whose product
    no longer exists is kept on the document but moves no stock.
    """
    header, items = split_items(payload)
    patch = validate_payload(model=Sale, payload=header, policy=SALE_POLICY, partial=False)
    lines = _clean_items(items)
    if db.session.get(Customer, patch["customer_id"]) is None:
        raise NotFoundError(f"Customer {patch['customer_id']} not found", {"customer_id": patch["customer_id"]})

    def _op():
        begin_write()
        invoice_number = patch.get("invoice_number")
        if invoice_number:
            _ensure_invoice_number_free(invoice_number)
        else:
            invoice_number = next_trade_invoice_number(DOCUMENT_TYPE_SALE)

        sale = Sale(**{**patch, "invoice_number": invoice_number})
        sale.items = [_build_item(line) for line in lines]
        _recalculate_totals(sale)
        db.session.add(sale)
        db.session.flush()

        apply_stock_deltas({}, quantities_by_product(sale.items), sign=STOCK_SIGN)

        db.session.commit()
        current_app.logger.info("Sale %s recorded (%s)", sale.id, invoice_number)
        return sale

    return run_with_retry(_op)


def update_sale(sale_id: int, payload: dict) -> Sale:
    """
    Edit a sale. When items are supplied, stock moves by the per-product
    difference between the old and new lines and each product's selling
    price follows the new line price.
    """
    header, items = split_items(payload)
    patch = validate_payload(model=Sale, payload=header, policy=SALE_POLICY, partial=True)
    lines = _clean_items(items) if items is not None else None
    if "customer_id" in patch and db.session.get(Customer, patch["customer_id"]) is None:
        raise NotFoundError(f"Customer {patch['customer_id']} not found", {"customer_id": patch["customer_id"]})

    def _op():
        begin_write()
        sale = _lock_sale(sale_id)
        if patch.get("invoice_number") and patch["invoice_number"] != sale.invoice_number:
            _ensure_invoice_number_free(patch["invoice_number"], exclude_id=sale.id)

        for key, value in patch.items():
            setattr(sale, key, value)

        if lines is not None:
            old_quantities = quantities_by_product(sale.items)
            sale.items = [_build_item(line) for line in lines]
            db.session.flush()
            apply_stock_deltas(old_quantities, quantities_by_product(sale.items), sign=STOCK_SIGN)

            for item in sale.items:
                product = db.session.get(Product, item.product_id)
                if product is not None:
                    product.price_cents = item.price_at_sale_cents

        _recalculate_totals(sale)
        db.session.commit()
        current_app.logger.info("Sale %s updated", sale_id)
        return sale

    return run_with_retry(_op)


def delete_sale(sale_id: int) -> None:
    """Put the sold quantities back into stock, then remove the sale."""
    def _op():
        begin_write()
        sale = _lock_sale(sale_id)
        apply_stock_deltas(quantities_by_product(sale.items), {}, sign=STOCK_SIGN)
        db.session.delete(sale)
        db.session.commit()
        current_app.logger.info("Sale %s deleted", sale_id)

    run_with_retry(_op)


def get_sale(sale_id: int) -> Sale | None:
    return db.session.get(Sale, sale_id)


def list_sales(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    customer_id: int | None = None,
) -> list[Sale]:
    query = db.session.query(Sale)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if start is not None:
        query = query.filter(Sale.sale_date >= start)
    if end is not None:
        query = query.filter(Sale.sale_date <= end)
    return query.order_by(Sale.sale_date.desc(), Sale.id.desc()).all()
