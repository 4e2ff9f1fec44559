from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


INVOICE_STATUS_DRAFT = "DRAFT"
INVOICE_STATUS_FINALIZED = "FINALIZED"
INVOICE_STATUS_PAID = "PAID"

# Only these invoices can be returned against
RETURNABLE_INVOICE_STATUSES = {INVOICE_STATUS_FINALIZED, INVOICE_STATUS_PAID}


class Invoice(db.Model):
    """
    Point-of-sale invoice: the document a Return references.

    LIFECYCLE:
    1. DRAFT: created, stock already deducted for every line
    2. FINALIZED: closed for editing, payments outstanding
    3. PAID: paid_amount_cents covers total_cents
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        db.Index("ix_invoices_status_date", "status", "invoice_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "INV-202405-000001")
    invoice_number = db.Column(db.String(64), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=INVOICE_STATUS_DRAFT, index=True)
    invoice_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    finalized_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def quantity_for_product(self, product_id: int) -> int:
        return sum(item.quantity for item in self.items if item.product_id == product_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "status": self.status,
            "invoice_date": to_utc_z(self.invoice_date),
            "items": [item.to_dict() for item in self.items],
            "total_cents": self.total_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "balance_cents": self.balance_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "finalized_at": to_utc_z(self.finalized_at) if self.finalized_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    invoice = db.relationship(
        "Invoice",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", order_by="InvoiceItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "cost_cents": self.cost_cents,
            "subtotal_cents": self.subtotal_cents,
        }
