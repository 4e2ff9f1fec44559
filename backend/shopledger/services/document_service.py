# Overview: Atomic document number allocation (sale/purchase invoices, POS invoices, returns).

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence, Invoice, Purchase, Return, Sale
from ..time_utils import utcnow
from .concurrency import begin_write


DOCUMENT_TYPE_SALE = "SALE"
DOCUMENT_TYPE_PURCHASE = "PURCHASE"
DOCUMENT_TYPE_INVOICE = "INVOICE"
DOCUMENT_TYPE_RETURN = "RETURN"

# Model + number column that must stay unique for each sequence family
_NUMBERED_DOCUMENTS = {
    DOCUMENT_TYPE_SALE: (Sale, "invoice_number"),
    DOCUMENT_TYPE_PURCHASE: (Purchase, "invoice_number"),
    DOCUMENT_TYPE_INVOICE: (Invoice, "invoice_number"),
    DOCUMENT_TYPE_RETURN: (Return, "return_number"),
}


def next_document_number(*, document_type: str, start: int = 1) -> int:
    """
    Atomically allocate the next number of a sequence.

    Must run inside the caller's write transaction: the UPDATE takes the
    row lock, and the allocation is rolled back with everything else if
    the caller fails.
    """
    if not document_type:
        raise ValueError("document_type is required")

    begin_write()
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        return current - 1

    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(document_type=document_type, next_number=start + 1))
        return start
    except IntegrityError:
        # Another writer created the row first; take the next number from it
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        return current - 1


def peek_document_number(*, document_type: str, start: int = 1) -> int:
    """Next number that would be allocated, without consuming it."""
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current if current is not None else start


def _number_taken(family: str, number: str) -> bool:
    model, column = _NUMBERED_DOCUMENTS[family]
    return (
        db.session.query(model.id)
        .filter(getattr(model, column) == number)
        .first()
        is not None
    )


def _trade_invoice_start() -> int:
    return int(current_app.config.get("INVOICE_NUMBER_START", 5001))


def format_trade_invoice_number(number: int) -> str:
    return f"INV-{number}"


def next_trade_invoice_number(document_type: str) -> str:
    """
    Allocate "INV-5001", "INV-5002", ... for sales or purchases.

    Numbers already taken by a manually entered invoice number are skipped.
    """
    while True:
        candidate = format_trade_invoice_number(
            next_document_number(document_type=document_type, start=_trade_invoice_start())
        )
        if not _number_taken(document_type, candidate):
            return candidate


def peek_trade_invoice_number(document_type: str) -> str:
    number = peek_document_number(document_type=document_type, start=_trade_invoice_start())
    while _number_taken(document_type, format_trade_invoice_number(number)):
        number += 1
    return format_trade_invoice_number(number)


def next_monthly_number(family: str, prefix: str, *, pad: int = 6) -> str:
    """
    Allocate "<PREFIX>-YYYYMM-NNNNNN"; the counter restarts every month.
    """
    period = utcnow().strftime("%Y%m")
    while True:
        seq = next_document_number(document_type=f"{family}:{period}")
        candidate = f"{prefix}-{period}-{seq:0{pad}d}"
        if not _number_taken(family, candidate):
            return candidate
