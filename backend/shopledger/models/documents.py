from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


RETURN_STATUS_PENDING = "PENDING"
RETURN_STATUS_APPROVED = "APPROVED"
RETURN_STATUS_REJECTED = "REJECTED"
RETURN_STATUS_PROCESSED = "PROCESSED"
RETURN_STATUS_COMPLETED = "COMPLETED"

RETURN_TYPES = {"FULL_REFUND", "PARTIAL_REFUND", "EXCHANGE", "STORE_CREDIT"}
REFUND_METHODS = {"CASH", "CARD", "ORIGINAL_PAYMENT", "STORE_CREDIT"}
RETURN_ITEM_REASONS = {"DEFECTIVE", "WRONG_ITEM", "CUSTOMER_REQUEST", "DAMAGED", "EXPIRED", "OTHER"}
RETURN_ITEM_CONDITIONS = {"NEW", "USED", "DAMAGED", "DEFECTIVE"}


class Return(db.Model):
    """
    Merchandise return document.

    LIFECYCLE:
    1. PENDING: Return created, awaiting approval
    2. APPROVED: Approved, ready to process
    3. PROCESSED -> COMPLETED: restockable items added back (once), refund due
    4. REJECTED: terminal

    DESIGN PRINCIPLES:
    - Returns reference the original invoice for traceability
    - Returned units per (invoice, product) never exceed the invoiced units,
      counting every APPROVED / PROCESSED / COMPLETED return
    - inventory_adjusted flips to True exactly once
    - refund_amount_cents = max(0, total_return_amount_cents - restocking - processing fees)
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("return_number", name="uq_returns_return_number"),
        db.Index("ix_returns_invoice_status", "original_invoice_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "RET-202405-000001")
    return_number = db.Column(db.String(64), nullable=False)
    return_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    original_invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    original_invoice_number = db.Column(db.String(64), nullable=False)

    # Copied from the original invoice
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    # Financials (cents)
    total_return_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    refund_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    restocking_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    processing_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    return_type = db.Column(db.String(32), nullable=False)
    refund_method = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=RETURN_STATUS_PENDING, index=True)

    # Approval workflow
    approved_by_user_id = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by_user_id = db.Column(db.Integer, nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    return_reason = db.Column(db.Text, nullable=False)
    notes = db.Column(db.Text, nullable=True)
    receipt_required = db.Column(db.Boolean, nullable=False, default=True)
    receipt_provided = db.Column(db.Boolean, nullable=False, default=False)

    # Set exactly once, when restockable items are added back to stock
    inventory_adjusted = db.Column(db.Boolean, nullable=False, default=False)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    processed_by_user_id = db.Column(db.Integer, nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    original_invoice = db.relationship("Invoice", backref=db.backref("returns", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def calculate_totals(self) -> dict:
        """Recompute total and refund from the items and fees."""
        self.total_return_amount_cents = sum(item.return_amount_cents for item in self.items)
        refund = self.total_return_amount_cents - (self.restocking_fee_cents or 0) - (self.processing_fee_cents or 0)

        # Ensure refund is not negative
        self.refund_amount_cents = max(0, refund)
        return {
            "total_return_amount_cents": self.total_return_amount_cents,
            "refund_amount_cents": self.refund_amount_cents,
        }

    def append_note(self, note: str | None) -> None:
        if not note:
            return
        self.notes = f"{self.notes}\n{note}" if self.notes else note

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_number": self.return_number,
            "return_date": to_utc_z(self.return_date),
            "original_invoice_id": self.original_invoice_id,
            "original_invoice_number": self.original_invoice_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "items": [item.to_dict() for item in self.items],
            "total_return_amount_cents": self.total_return_amount_cents,
            "refund_amount_cents": self.refund_amount_cents,
            "restocking_fee_cents": self.restocking_fee_cents,
            "processing_fee_cents": self.processing_fee_cents,
            "return_type": self.return_type,
            "refund_method": self.refund_method,
            "status": self.status,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "rejected_by_user_id": self.rejected_by_user_id,
            "rejected_at": to_utc_z(self.rejected_at) if self.rejected_at else None,
            "rejection_reason": self.rejection_reason,
            "return_reason": self.return_reason,
            "notes": self.notes,
            "receipt_required": self.receipt_required,
            "receipt_provided": self.receipt_provided,
            "inventory_adjusted": self.inventory_adjusted,
            "created_by_user_id": self.created_by_user_id,
            "processed_by_user_id": self.processed_by_user_id,
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ReturnItem(db.Model):
    """
    Individual line on a return document.

    returned_quantity <= original_quantity (units on the invoice) and the
    sum across returns is bounded by the invoiced quantity.
    """
    __tablename__ = "return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    original_quantity = db.Column(db.Integer, nullable=False)
    returned_quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    return_amount_cents = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(32), nullable=False)
    condition = db.Column(db.String(16), nullable=False, default="USED")
    restockable = db.Column(db.Boolean, nullable=False, default=True)

    return_doc = db.relationship(
        "Return",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", order_by="ReturnItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "product_id": self.product_id,
            "name": self.name,
            "original_quantity": self.original_quantity,
            "returned_quantity": self.returned_quantity,
            "unit_price_cents": self.unit_price_cents,
            "cost_cents": self.cost_cents,
            "return_amount_cents": self.return_amount_cents,
            "reason": self.reason,
            "condition": self.condition,
            "restockable": self.restockable,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type document sequences.

    WHY: Prevent race conditions when generating document numbers
    (sale/purchase invoice numbers, POS invoices, returns).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
