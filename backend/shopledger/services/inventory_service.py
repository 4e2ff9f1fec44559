# Overview: Product catalog and stock adjustment; the only writer of Product.stock_quantity.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from .concurrency import begin_write, lock_for_update, run_with_retry


PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "barcode", "price_cents", "cost_cents", "stock_quantity"},
    required_on_create={"name"},
)

# Stock is only ever changed through adjust_stock()
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "barcode", "price_cents", "cost_cents"},
)


def _negative_stock_allowed() -> bool:
    return bool(current_app.config.get("ALLOW_NEGATIVE_STOCK", False))


def _lock_product(product_id: int) -> Product | None:
    return lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()


def _adjust_stock_inner(product_id: int, delta: int, *, skip_missing: bool = False) -> Product | None:
    """Core stock mutation without retry or commit.

    skip_missing: log and return None for an unknown product instead of raising
    (sale/purchase lines keep pointing at products that may have been removed).
    """
    begin_write()
    product = _lock_product(product_id)
    if product is None:
        if skip_missing:
            current_app.logger.warning(
                "Product %s not found; skipping stock adjustment of %+d", product_id, delta
            )
            return None
        raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})

    new_quantity = product.stock_quantity + delta
    if new_quantity < 0 and delta < 0 and not _negative_stock_allowed():
        raise ConflictError(
            f"Insufficient stock for product {product_id}",
            {
                "product_id": product_id,
                "stock_quantity": product.stock_quantity,
                "requested": -delta,
            },
        )

    product.stock_quantity = new_quantity
    db.session.flush()
    return product


def adjust_stock(product_id: int, delta: int, *, commit: bool = True) -> Product:
    """
    Apply a signed quantity change to a product's stock.

    Not idempotent: every call applies its delta once. Refuses to go below
    zero unless ALLOW_NEGATIVE_STOCK is set.
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer")
    if delta == 0:
        raise ValidationError("delta must be non-zero")

    def _op():
        product = _adjust_stock_inner(product_id, delta)
        if commit:
            quantity = product.stock_quantity
            db.session.commit()
            current_app.logger.info("Adjusted stock of product %s by %+d (now %d)", product_id, delta, quantity)
        return product

    return run_with_retry(_op) if commit else _op()


# =============================================================================
# Catalog
# =============================================================================

def get_product_by_id(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def save_product(product: Product) -> Product:
    def _op():
        db.session.add(product)
        db.session.commit()
        return product
    return run_with_retry(_op)


def find_product_by_barcode(barcode: str) -> Product | None:
    if not barcode or not barcode.strip():
        return None
    return db.session.query(Product).filter_by(barcode=barcode.strip()).first()


def _ensure_barcode_free(barcode: str | None, *, exclude_id: int | None = None) -> None:
    if not barcode:
        return
    query = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Barcode {barcode} is already assigned", {"barcode": barcode})


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)
    if patch.get("stock_quantity") is not None and patch["stock_quantity"] < 0 and not _negative_stock_allowed():
        raise ValidationError("stock_quantity must be >= 0")

    def _op():
        _ensure_barcode_free(patch.get("barcode"))
        product = Product(**patch)
        db.session.add(product)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Product violates a uniqueness constraint", {"barcode": patch.get("barcode")})
        return product

    return run_with_retry(_op)


def update_product(product_id: int, payload: dict) -> Product:
    """Edit name/description/barcode/price/cost. stock_quantity is rejected here."""
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op():
        begin_write()
        product = _lock_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
        if "barcode" in patch:
            _ensure_barcode_free(patch["barcode"], exclude_id=product.id)
        for key, value in patch.items():
            setattr(product, key, value)
        db.session.commit()
        return product

    return run_with_retry(_op)


def list_products(*, search: str | None = None) -> list[Product]:
    query = db.session.query(Product)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter((Product.name.ilike(like)) | (Product.barcode.ilike(like)))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def list_low_stock(threshold: int = 5) -> list[Product]:
    """Products at or below the threshold, emptiest first."""
    return (
        db.session.query(Product)
        .filter(Product.stock_quantity <= threshold)
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .all()
    )


def quantities_by_product(lines) -> dict[int, int]:
    """Sum line quantities per product_id (a product may appear on several lines)."""
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def apply_stock_deltas(old: dict[int, int], new: dict[int, int], *, sign: int) -> None:
    """
    Move stock by the per-product difference between two line sets.

    sign=-1 for documents that consume stock (sales), +1 for documents that
    add it (purchases). Products are locked in id order. Missing products are
    skipped with a warning.
    """
    for product_id in sorted(set(old) | set(new)):
        diff = new.get(product_id, 0) - old.get(product_id, 0)
        if diff:
            _adjust_stock_inner(product_id, sign * diff, skip_missing=True)
