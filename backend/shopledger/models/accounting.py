from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


ACCOUNT_TYPE_RECEIVABLE = "RECEIVABLE"
ACCOUNT_TYPE_PAYABLE = "PAYABLE"
ACCOUNT_TYPE_GENERAL = "GENERAL"
ACCOUNT_TYPES = {ACCOUNT_TYPE_RECEIVABLE, ACCOUNT_TYPE_PAYABLE, ACCOUNT_TYPE_GENERAL}

TRANSACTION_TYPE_CASH_RECEIVED = "CASH_RECEIVED"
TRANSACTION_TYPE_EXPENSE_VOUCHER = "EXPENSE_VOUCHER"
TRANSACTION_TYPES = {TRANSACTION_TYPE_CASH_RECEIVED, TRANSACTION_TYPE_EXPENSE_VOUCHER}


class Account(db.Model):
    """
    Balance-bearing account (receivable, payable or general).

    INVARIANT:
    balance_cents == SUM(credit_cents) - SUM(debit_cents) over this
    account's LedgerEntry rows. balance_cents is only ever written by
    ledger_service.post_entry(), in the same DB transaction that appends
    the matching entry.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.Index("ix_accounts_type", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Signed running balance (credits minus debits)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("accounts", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("accounts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Account id={self.id} type={self.type} balance_cents={self.balance_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "balance_cents": self.balance_cents,
            "customer_id": self.customer_id,
            "supplier_id": self.supplier_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Transaction(db.Model):
    """
    Cash received or expense voucher posted against an account.

    IMMUTABLE: created once through transaction_service.create_transaction(),
    which appends exactly one LedgerEntry and mutates the account balance once.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_account_date", "account_id", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    transaction_type = db.Column(db.String(32), nullable=False, index=True)

    # Business time (backdating allowed); created_at is system time
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    description = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "amount_cents": self.amount_cents,
            "transaction_type": self.transaction_type,
            "transaction_date": to_utc_z(self.transaction_date),
            "description": self.description,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class LedgerEntry(db.Model):
    """
    Append-only debit/credit record with a running balance snapshot.

    - Exactly one of debit_cents / credit_cents is non-zero.
    - balance_cents is the account balance immediately after this posting.
    - Canonical replay order: (transaction_date, created_at, id).
    - Never updated or deleted.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_entries_account_date", "account_id", "transaction_date", "created_at"),
        db.CheckConstraint("debit_cents >= 0 AND credit_cents >= 0", name="ck_ledger_entries_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)

    debit_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False)

    description = db.Column(db.String(255), nullable=True)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account", backref=db.backref("ledger_entries", lazy=True))
    transaction = db.relationship("Transaction", backref=db.backref("ledger_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "transaction_id": self.transaction_id,
            "debit_cents": self.debit_cents,
            "credit_cents": self.credit_cents,
            "balance_cents": self.balance_cents,
            "description": self.description,
            "transaction_date": to_utc_z(self.transaction_date),
            "created_at": to_utc_z(self.created_at),
        }
