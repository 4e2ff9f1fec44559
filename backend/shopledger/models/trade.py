from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUSES = {PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PAID}

PAYMENT_TYPES = {"CASH", "CARD", "BANK_TRANSFER", "CHEQUE", "CREDIT"}


class Sale(db.Model):
    """
    Sale aggregate (single-shot: create / update / delete, no lifecycle).

    INVARIANTS (recomputed server-side, client totals are never trusted):
    - item.total_cents = quantity * price_at_sale_cents
    - item.profit_cents = (price_at_sale_cents - purchase_price_cents) * quantity
    - total_amount_cents = SUM(item.total_cents)
    - total_profit_cents = SUM(item.profit_cents)
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_sales_invoice_number"),
        db.Index("ix_sales_customer_date", "customer_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Human-readable invoice number (e.g., "INV-5001")
    invoice_number = db.Column(db.String(64), nullable=False)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_profit_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "invoice_number": self.invoice_number,
            "sale_date": to_utc_z(self.sale_date),
            "items": [item.to_dict() for item in self.items],
            "total_amount_cents": self.total_amount_cents,
            "total_profit_cents": self.total_profit_cents,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SaleItem(db.Model):
    """
    Line item on a sale.

    product_id is a loose reference (no FK): a line whose product has gone
    missing stays on the sale and is skipped for stock adjustment.
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_at_sale_cents = db.Column(db.Integer, nullable=False)
    # Cost snapshot at time of sale (profit basis)
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    profit_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship(
        "Sale",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", order_by="SaleItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price_at_sale_cents": self.price_at_sale_cents,
            "purchase_price_cents": self.purchase_price_cents,
            "total_cents": self.total_cents,
            "profit_cents": self.profit_cents,
        }


class Purchase(db.Model):
    """
    Purchase aggregate; mirror of Sale on the stock side (creation adds stock).

    balance_cents = total_amount_cents - paid_amount_cents (amount still owed).
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_purchases_invoice_number"),
        db.Index("ix_purchases_supplier_date", "supplier_id", "purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    invoice_number = db.Column(db.String(64), nullable=False)

    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_type = db.Column(db.String(16), nullable=False, default="CASH")
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "invoice_number": self.invoice_number,
            "purchase_date": to_utc_z(self.purchase_date),
            "items": [item.to_dict() for item in self.items],
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "balance_cents": self.balance_cents,
            "payment_type": self.payment_type,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseItem(db.Model):
    """Line item on a purchase (loose product reference, same as SaleItem)."""
    __tablename__ = "purchase_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_at_purchase_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    purchase = db.relationship(
        "Purchase",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", order_by="PurchaseItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price_at_purchase_cents": self.price_at_purchase_cents,
            "total_cents": self.total_cents,
        }
