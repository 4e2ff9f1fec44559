"""
Return Workflow Service

WHY: A return reverses part of an invoice. Two things must never happen:
the same units returned twice across several return documents, and the
same return putting its items back on the shelf twice.

DESIGN PRINCIPLES:
- Returns reference the original invoice for traceability
- Approval required before processing
- Per (invoice, product): SUM(returned_quantity of APPROVED / PROCESSED /
  COMPLETED returns) <= invoiced quantity. Checked at create and re-checked
  at approve, both under the invoice row lock
- Restocking happens once, guarded by inventory_adjusted
- Financial fields are frozen once PROCESSED / COMPLETED

LIFECYCLE:
1. Create return (PENDING)
2. Approve / Reject (REJECTED is terminal)
3. Process (APPROVED -> PROCESSED -> COMPLETED): restock restockable items, refund due
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..errors import ConflictError, InvalidStateTransition, NotFoundError, ValidationError
from ..extensions import db
from ..models import Invoice, Return, ReturnItem
from ..models.documents import (
    REFUND_METHODS,
    RETURN_ITEM_CONDITIONS,
    RETURN_ITEM_REASONS,
    RETURN_STATUS_APPROVED,
    RETURN_STATUS_COMPLETED,
    RETURN_STATUS_PENDING,
    RETURN_STATUS_PROCESSED,
    RETURN_STATUS_REJECTED,
    RETURN_TYPES,
)
from ..models.invoices import RETURNABLE_INVOICE_STATUSES
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    enforce_amount,
    enforce_quantity,
    split_items,
    validate_payload,
)
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import DOCUMENT_TYPE_RETURN, next_monthly_number
from .inventory_service import _adjust_stock_inner
from .invoice_service import lock_invoice


# Statuses whose quantities count against the invoice
COUNTED_STATUSES = {RETURN_STATUS_APPROVED, RETURN_STATUS_PROCESSED, RETURN_STATUS_COMPLETED}
LOCKED_STATUSES = {RETURN_STATUS_PROCESSED, RETURN_STATUS_COMPLETED}
DELETABLE_STATUSES = {RETURN_STATUS_PENDING, RETURN_STATUS_REJECTED}

# Frozen once the refund has been processed; fees are included because they
# feed refund_amount_cents
LOCKED_FIELDS = (
    "items",
    "total_return_amount_cents",
    "refund_amount_cents",
    "return_type",
    "refund_method",
    "restocking_fee_cents",
    "processing_fee_cents",
)
COMPUTED_FIELDS = ("total_return_amount_cents", "refund_amount_cents")


RETURN_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "original_invoice_id",
        "return_date",
        "return_type",
        "refund_method",
        "return_reason",
        "notes",
        "restocking_fee_cents",
        "processing_fee_cents",
        "receipt_required",
        "receipt_provided",
    },
    required_on_create={"original_invoice_id", "return_type", "refund_method", "return_reason"},
    choices={"return_type": RETURN_TYPES, "refund_method": REFUND_METHODS},
)

RETURN_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "return_type",
        "refund_method",
        "return_reason",
        "notes",
        "restocking_fee_cents",
        "processing_fee_cents",
        "receipt_required",
        "receipt_provided",
        "total_return_amount_cents",
        "refund_amount_cents",
    },
    choices={"return_type": RETURN_TYPES, "refund_method": REFUND_METHODS},
)

RETURN_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "returned_quantity", "reason", "condition", "restockable"},
    required_on_create={"product_id", "returned_quantity", "reason"},
    choices={"reason": RETURN_ITEM_REASONS, "condition": RETURN_ITEM_CONDITIONS},
)


# =============================================================================
# Helpers
# =============================================================================

def _clean_items(items: list | None) -> list[dict]:
    if not items:
        raise ValidationError("items must contain at least one line")
    cleaned = []
    for idx, raw in enumerate(items):
        try:
            line = validate_payload(model=ReturnItem, payload=raw, policy=RETURN_ITEM_POLICY, partial=False)
            enforce_quantity(line, "returned_quantity")
        except ValidationError as exc:
            raise ValidationError(f"items[{idx}]: {exc.message}", {"line": idx}) from exc
        cleaned.append(line)
    return cleaned


def _enforce_fees(patch: dict) -> None:
    enforce_amount(patch, "restocking_fee_cents")
    enforce_amount(patch, "processing_fee_cents")


def _requested_by_product(lines) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        product_id = line["product_id"] if isinstance(line, dict) else line.product_id
        quantity = line["returned_quantity"] if isinstance(line, dict) else line.returned_quantity
        totals[product_id] = totals.get(product_id, 0) + quantity
    return totals


def returned_quantities(invoice_id: int, *, exclude_return_id: int | None = None) -> dict[int, int]:
    """Units per product already counted against an invoice."""
    query = (
        db.session.query(ReturnItem.product_id, func.sum(ReturnItem.returned_quantity))
        .join(Return, Return.id == ReturnItem.return_id)
        .filter(
            Return.original_invoice_id == invoice_id,
            Return.status.in_(COUNTED_STATUSES),
        )
    )
    if exclude_return_id is not None:
        query = query.filter(Return.id != exclude_return_id)
    return {product_id: int(qty or 0) for product_id, qty in query.group_by(ReturnItem.product_id).all()}


def _check_returnable(invoice: Invoice, requested: dict[int, int], *, exclude_return_id: int | None = None) -> None:
    """Raise unless every requested product fits in what is left on the invoice."""
    already = returned_quantities(invoice.id, exclude_return_id=exclude_return_id)
    for product_id in sorted(requested):
        invoiced = invoice.quantity_for_product(product_id)
        if invoiced == 0:
            raise ValidationError(
                f"Product {product_id} is not on invoice {invoice.invoice_number}",
                {"product_id": product_id, "invoice_id": invoice.id},
            )
        previously = already.get(product_id, 0)
        if previously + requested[product_id] > invoiced:
            raise ConflictError(
                f"Cannot return {requested[product_id]} units of product {product_id}: "
                f"{previously} of {invoiced} already returned",
                {
                    "product_id": product_id,
                    "invoice_id": invoice.id,
                    "invoiced_quantity": invoiced,
                    "previously_returned": previously,
                    "requested": requested[product_id],
                    "remaining": max(0, invoiced - previously),
                },
            )


def _build_items(invoice: Invoice, lines: list[dict]) -> list[ReturnItem]:
    built = []
    for line in lines:
        source = next(item for item in invoice.items if item.product_id == line["product_id"])
        quantity = line["returned_quantity"]
        built.append(
            ReturnItem(
                product_id=source.product_id,
                name=source.name,
                original_quantity=invoice.quantity_for_product(source.product_id),
                returned_quantity=quantity,
                unit_price_cents=source.unit_price_cents,
                cost_cents=source.cost_cents,
                return_amount_cents=quantity * source.unit_price_cents,
                reason=line["reason"],
                condition=line.get("condition") or "USED",
                restockable=True if line.get("restockable") is None else line["restockable"],
            )
        )
    return built


def _require_invoice(invoice_id: int) -> Invoice:
    invoice = lock_invoice(invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found", {"invoice_id": invoice_id})
    return invoice


def _lock_return(return_id: int) -> Return:
    return_doc = lock_for_update(db.session.query(Return).filter_by(id=return_id)).first()
    if return_doc is None:
        raise NotFoundError(f"Return {return_id} not found", {"return_id": return_id})
    return return_doc


def _require_status(return_doc: Return, allowed: set[str], action: str) -> None:
    if return_doc.status not in allowed:
        raise InvalidStateTransition(
            f"Cannot {action} return {return_doc.return_number} in status {return_doc.status}",
            {"return_id": return_doc.id, "status": return_doc.status, "allowed": sorted(allowed)},
        )


# =============================================================================
# Lifecycle
# =============================================================================

def create_return(payload: dict, *, acting_user_id: int | None = None) -> Return:
    """
    Create a PENDING return against a finalized or paid invoice.

    Amounts come from the invoice lines; client-supplied money fields other
    than fees are not accepted.
    """
    header, items = split_items(payload)
    patch = validate_payload(model=Return, payload=header, policy=RETURN_CREATE_POLICY, partial=False)
    _enforce_fees(patch)
    lines = _clean_items(items)

    def _op():
        begin_write()
        invoice = _require_invoice(patch["original_invoice_id"])
        if invoice.status not in RETURNABLE_INVOICE_STATUSES:
            raise InvalidStateTransition(
                f"Invoice {invoice.invoice_number} is {invoice.status}; only finalized or paid invoices accept returns",
                {"invoice_id": invoice.id, "status": invoice.status},
            )
        _check_returnable(invoice, _requested_by_product(lines))

        return_doc = Return(**patch)
        return_doc.return_number = next_monthly_number(DOCUMENT_TYPE_RETURN, "RET")
        return_doc.original_invoice_number = invoice.invoice_number
        return_doc.customer_id = invoice.customer_id
        return_doc.customer_name = invoice.customer_name
        return_doc.status = RETURN_STATUS_PENDING
        return_doc.inventory_adjusted = False
        return_doc.created_by_user_id = acting_user_id
        return_doc.restocking_fee_cents = patch.get("restocking_fee_cents") or 0
        return_doc.processing_fee_cents = patch.get("processing_fee_cents") or 0
        return_doc.items = _build_items(invoice, lines)
        return_doc.calculate_totals()

        db.session.add(return_doc)
        db.session.flush()
        return_number = return_doc.return_number
        db.session.commit()
        current_app.logger.info("Return %s created against invoice %s", return_number, invoice.id)
        return return_doc

    return run_with_retry(_op)


def approve_return(return_id: int, *, acting_user_id: int | None = None, notes: str | None = None) -> Return:
    """
    PENDING -> APPROVED.

    Re-checks the invoice's remaining quantity so two pending returns for the
    same units cannot both be approved.
    """
    def _op():
        begin_write()
        current = db.session.get(Return, return_id)
        if current is None:
            raise NotFoundError(f"Return {return_id} not found", {"return_id": return_id})
        invoice = _require_invoice(current.original_invoice_id)
        return_doc = _lock_return(return_id)
        _require_status(return_doc, {RETURN_STATUS_PENDING}, "approve")

        _check_returnable(invoice, _requested_by_product(return_doc.items), exclude_return_id=return_doc.id)

        return_doc.status = RETURN_STATUS_APPROVED
        return_doc.approved_by_user_id = acting_user_id
        return_doc.approved_at = utcnow()
        return_doc.append_note(notes)
        db.session.commit()
        current_app.logger.info("Return %s approved by user %s", return_id, acting_user_id)
        return return_doc

    return run_with_retry(_op)


def reject_return(
    return_id: int,
    reason: str | None,
    *,
    acting_user_id: int | None = None,
    notes: str | None = None,
) -> Return:
    """PENDING -> REJECTED (terminal). A reason is required."""
    if not reason or not str(reason).strip():
        raise ValidationError("rejection reason is required")

    def _op():
        begin_write()
        return_doc = _lock_return(return_id)
        _require_status(return_doc, {RETURN_STATUS_PENDING}, "reject")

        return_doc.status = RETURN_STATUS_REJECTED
        return_doc.rejection_reason = str(reason).strip()
        return_doc.rejected_by_user_id = acting_user_id
        return_doc.rejected_at = utcnow()
        return_doc.append_note(notes)
        db.session.commit()
        current_app.logger.info("Return %s rejected", return_id)
        return return_doc

    return run_with_retry(_op)


def process_return(
    return_id: int,
    *,
    acting_user_id: int | None = None,
    adjust_inventory: bool = True,
    notes: str | None = None,
) -> Return:
    """
    APPROVED -> PROCESSED -> COMPLETED in one unit of work.

    Restockable items go back into stock at most once per return; a second
    call finds the return COMPLETED and is refused without touching stock.
    """
    def _op():
        begin_write()
        return_doc = _lock_return(return_id)
        _require_status(return_doc, {RETURN_STATUS_APPROVED}, "process")

        now = utcnow()
        return_doc.status = RETURN_STATUS_PROCESSED
        return_doc.processed_by_user_id = acting_user_id
        return_doc.processed_at = now

        restocked = 0
        if adjust_inventory and not return_doc.inventory_adjusted:
            for item in sorted(return_doc.items, key=lambda i: i.product_id):
                if item.restockable:
                    _adjust_stock_inner(item.product_id, item.returned_quantity)
                    restocked += item.returned_quantity
            return_doc.inventory_adjusted = True

        return_doc.status = RETURN_STATUS_COMPLETED
        return_doc.completed_at = now
        return_doc.append_note(notes)
        db.session.commit()
        current_app.logger.info("Return %s completed (%d units restocked)", return_id, restocked)
        return return_doc

    return run_with_retry(_op)


def update_return(return_id: int, payload: dict) -> Return:
    """
    Edit a return. Financial fields are frozen once PROCESSED / COMPLETED;
    items may only change while PENDING. Totals are always recomputed here.
    """
    if isinstance(payload, dict) and "status" in payload:
        raise ValidationError("status changes go through approve / reject / process")
    header, items = split_items(payload)
    patch = validate_payload(model=Return, payload=header, policy=RETURN_UPDATE_POLICY, partial=True)
    _enforce_fees(patch)
    lines = _clean_items(items) if items is not None else None
    touched = set(patch) | ({"items"} if items is not None else set())
    computed = sorted(f for f in COMPUTED_FIELDS if f in touched)
    if computed:
        raise ValidationError(
            f"{', '.join(computed)} are computed from items and fees",
            {"fields": computed},
        )
    frozen = sorted(f for f in LOCKED_FIELDS if f in touched)

    def _op():
        begin_write()
        current = db.session.get(Return, return_id)
        if current is None:
            raise NotFoundError(f"Return {return_id} not found", {"return_id": return_id})

        invoice = _require_invoice(current.original_invoice_id) if items is not None else None
        return_doc = _lock_return(return_id)

        # Status is only trusted once the row is locked and refreshed
        if return_doc.status in LOCKED_STATUSES and frozen:
            raise InvalidStateTransition(
                f"Cannot modify {', '.join(frozen)} of a {return_doc.status} return",
                {"return_id": return_id, "status": return_doc.status, "fields": frozen},
            )

        if items is not None:
            _require_status(return_doc, {RETURN_STATUS_PENDING}, "change items of")
            _check_returnable(invoice, _requested_by_product(lines), exclude_return_id=return_doc.id)
            return_doc.items = _build_items(invoice, lines)

        for key, value in patch.items():
            setattr(return_doc, key, value)

        return_doc.calculate_totals()
        db.session.commit()
        return return_doc

    return run_with_retry(_op)


def delete_return(return_id: int) -> None:
    """Only PENDING or REJECTED returns may be deleted."""
    def _op():
        begin_write()
        return_doc = _lock_return(return_id)
        _require_status(return_doc, DELETABLE_STATUSES, "delete")
        db.session.delete(return_doc)
        db.session.commit()
        current_app.logger.info("Return %s deleted", return_id)

    run_with_retry(_op)


# =============================================================================
# Queries
# =============================================================================

def get_return(return_id: int) -> Return | None:
    return db.session.get(Return, return_id)


def list_returns(
    *,
    status: str | None = None,
    invoice_id: int | None = None,
    customer_id: int | None = None,
) -> list[Return]:
    query = db.session.query(Return)
    if status:
        query = query.filter(Return.status == status)
    if invoice_id is not None:
        query = query.filter(Return.original_invoice_id == invoice_id)
    if customer_id is not None:
        query = query.filter(Return.customer_id == customer_id)
    return query.order_by(Return.return_date.desc(), Return.id.desc()).all()


def get_return_statistics(*, date_from: datetime | None = None, date_to: datetime | None = None) -> dict:
    query = db.session.query(Return)
    if date_from is not None:
        query = query.filter(Return.return_date >= date_from)
    if date_to is not None:
        query = query.filter(Return.return_date <= date_to)
    returns = query.all()

    total_amount = sum(r.total_return_amount_cents for r in returns)
    by_status = {
        status: sum(1 for r in returns if r.status == status)
        for status in (
            RETURN_STATUS_PENDING,
            RETURN_STATUS_APPROVED,
            RETURN_STATUS_REJECTED,
            RETURN_STATUS_PROCESSED,
            RETURN_STATUS_COMPLETED,
        )
    }
    return {
        "total_returns": len(returns),
        "total_return_amount_cents": total_amount,
        "total_refund_amount_cents": sum(r.refund_amount_cents for r in returns),
        "avg_return_value_cents": total_amount // len(returns) if returns else 0,
        "pending_returns": by_status[RETURN_STATUS_PENDING],
        "approved_returns": by_status[RETURN_STATUS_APPROVED],
        "rejected_returns": by_status[RETURN_STATUS_REJECTED],
        "processed_returns": by_status[RETURN_STATUS_PROCESSED],
        "completed_returns": by_status[RETURN_STATUS_COMPLETED],
    }
