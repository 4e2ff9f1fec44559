# Overview: Cash received / expense voucher transactions and their ledger postings.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import Account, Transaction
from ..models.accounting import (
    TRANSACTION_TYPE_CASH_RECEIVED,
    TRANSACTION_TYPE_EXPENSE_VOUCHER,
    TRANSACTION_TYPES,
)
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, enforce_amount, validate_payload
from .concurrency import begin_write, lock_for_update, run_with_retry
from .ledger_service import DIRECTION_CREDIT, DIRECTION_DEBIT, _post_entry_inner


TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={"account_id", "amount_cents", "transaction_type", "transaction_date", "description"},
    required_on_create={"account_id", "amount_cents", "transaction_type"},
    choices={"transaction_type": TRANSACTION_TYPES},
)

DIRECTION_BY_TYPE = {
    TRANSACTION_TYPE_CASH_RECEIVED: DIRECTION_CREDIT,
    TRANSACTION_TYPE_EXPENSE_VOUCHER: DIRECTION_DEBIT,
}


def create_transaction(payload: dict, *, acting_user_id: int | None = None) -> Transaction:
    """
    Record a transaction and post it to its account in one unit of work.

    CASH_RECEIVED credits the account, EXPENSE_VOUCHER debits it. If the
    posting fails, the transaction row is rolled back with it.
    """
    patch = validate_payload(model=Transaction, payload=payload, policy=TRANSACTION_POLICY, partial=False)
    enforce_amount(patch, "amount_cents", positive=True)

    def _op():
        begin_write()
        account = lock_for_update(db.session.query(Account).filter_by(id=patch["account_id"])).first()
        if account is None:
            raise NotFoundError(f"Account {patch['account_id']} not found", {"account_id": patch["account_id"]})

        tx = Transaction(
            account_id=account.id,
            amount_cents=patch["amount_cents"],
            transaction_type=patch["transaction_type"],
            transaction_date=patch.get("transaction_date") or utcnow(),
            description=patch.get("description"),
            created_by_user_id=acting_user_id,
        )
        db.session.add(tx)
        db.session.flush()

        entry = _post_entry_inner(
            account_id=account.id,
            amount_cents=tx.amount_cents,
            direction=DIRECTION_BY_TYPE[tx.transaction_type],
            description=tx.description or tx.transaction_type,
            transaction_date=tx.transaction_date,
            transaction_id=tx.id,
        )
        balance = entry.balance_cents
        db.session.commit()
        current_app.logger.info(
            "Transaction %s (%s, %d cents) posted to account %s (balance %d)",
            tx.id, tx.transaction_type, tx.amount_cents, tx.account_id, balance,
        )
        return tx

    return run_with_retry(_op)


def get_transaction(transaction_id: int) -> Transaction | None:
    return db.session.get(Transaction, transaction_id)


def list_transactions(
    *,
    account_id: int | None = None,
    transaction_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Transaction]:
    query = db.session.query(Transaction)
    if account_id is not None:
        query = query.filter(Transaction.account_id == account_id)
    if transaction_type:
        query = query.filter(Transaction.transaction_type == transaction_type)
    if start is not None:
        query = query.filter(Transaction.transaction_date >= start)
    if end is not None:
        query = query.filter(Transaction.transaction_date <= end)
    return query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc()).all()
