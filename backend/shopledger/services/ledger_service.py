# Overview: Account balance ledger; the only writer of Account.balance_cents.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import func

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Account, Customer, LedgerEntry, Supplier
from ..models.accounting import ACCOUNT_TYPES
from ..time_utils import normalize_datetime, utcnow
from ..validation import MAX_AMOUNT_CENTS, ModelValidationPolicy, validate_payload
from .concurrency import begin_write, lock_for_update, run_with_retry
"""
Account Ledger Invariants (authoritative)

- balance_cents == SUM(credit_cents) - SUM(debit_cents) over the account's entries.
- A posting mutates the balance and appends its entry in the same DB transaction.
- Entries are append-only; entry.balance_cents is the post-posting snapshot.
- Replay order is (transaction_date, created_at, id).
"""

DIRECTION_CREDIT = "CREDIT"
DIRECTION_DEBIT = "DEBIT"
DIRECTIONS = {DIRECTION_CREDIT, DIRECTION_DEBIT}


ACCOUNT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "type", "description", "customer_id", "supplier_id"},
    required_on_create={"name", "type"},
    choices={"type": ACCOUNT_TYPES},
)


def _validate_amount(amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer")
    if amount_cents <= 0:
        raise ValidationError("amount_cents must be > 0")
    if amount_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"amount_cents cannot exceed {MAX_AMOUNT_CENTS}")
    return amount_cents


def _post_entry_inner(
    *,
    account_id: int,
    amount_cents: int,
    direction: str,
    description: Optional[str] = None,
    transaction_date: Optional[datetime] = None,
    transaction_id: Optional[int] = None,
) -> LedgerEntry:
    """Core posting logic without retry or commit.

    Called by post_entry() and by transaction_service inside its own unit of work.
    """
    amount_cents = _validate_amount(amount_cents)
    if direction not in DIRECTIONS:
        raise ValidationError(f"direction must be one of: {', '.join(sorted(DIRECTIONS))}")

    begin_write()
    account = lock_for_update(db.session.query(Account).filter_by(id=account_id)).first()
    if account is None:
        raise NotFoundError(f"Account {account_id} not found", {"account_id": account_id})

    if direction == DIRECTION_CREDIT:
        account.balance_cents += amount_cents
        debit_cents, credit_cents = 0, amount_cents
    else:
        account.balance_cents -= amount_cents
        debit_cents, credit_cents = amount_cents, 0

    entry = LedgerEntry(
        account_id=account.id,
        transaction_id=transaction_id,
        debit_cents=debit_cents,
        credit_cents=credit_cents,
        balance_cents=account.balance_cents,
        description=description,
        transaction_date=normalize_datetime(transaction_date) or utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def post_entry(
    *,
    account_id: int,
    amount_cents: int,
    direction: str,
    description: Optional[str] = None,
    transaction_date: Optional[datetime] = None,
    transaction_id: Optional[int] = None,
    commit: bool = True,
) -> LedgerEntry:
    """
    Post one debit or credit to an account.

    CREDIT adds to the balance, DEBIT subtracts. The account row is locked
    for the duration; the balance mutation and the entry commit together.
    """
    def _op():
        entry = _post_entry_inner(
            account_id=account_id,
            amount_cents=amount_cents,
            direction=direction,
            description=description,
            transaction_date=transaction_date,
            transaction_id=transaction_id,
        )
        if commit:
            balance = entry.balance_cents
            db.session.commit()
            current_app.logger.info(
                "Posted %s of %d cents to account %s (balance %d)",
                direction, amount_cents, account_id, balance,
            )
        return entry

    return run_with_retry(_op) if commit else _op()


# =============================================================================
# Accounts
# =============================================================================

def get_account_by_id(account_id: int) -> Account | None:
    return db.session.get(Account, account_id)


def save_account(account: Account) -> Account:
    """Persist non-balance changes to an account (collaborator for callers holding one)."""
    def _op():
        db.session.add(account)
        db.session.commit()
        return account
    return run_with_retry(_op)


def _check_links(patch: dict) -> None:
    if patch.get("customer_id") is not None and db.session.get(Customer, patch["customer_id"]) is None:
        raise NotFoundError(f"Customer {patch['customer_id']} not found", {"customer_id": patch["customer_id"]})
    if patch.get("supplier_id") is not None and db.session.get(Supplier, patch["supplier_id"]) is None:
        raise NotFoundError(f"Supplier {patch['supplier_id']} not found", {"supplier_id": patch["supplier_id"]})


def create_account(payload: dict) -> Account:
    """Create an account. The opening balance is always zero; money arrives via postings."""
    patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_POLICY, partial=False)
    _check_links(patch)

    def _op():
        account = Account(**patch)
        account.balance_cents = 0
        db.session.add(account)
        db.session.commit()
        return account

    return run_with_retry(_op)


def update_account(account_id: int, payload: dict) -> Account:
    """Rename or relink an account. balance_cents is not writable here."""
    patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_POLICY, partial=True)
    _check_links(patch)

    def _op():
        begin_write()
        account = lock_for_update(db.session.query(Account).filter_by(id=account_id)).first()
        if account is None:
            raise NotFoundError(f"Account {account_id} not found", {"account_id": account_id})
        for key, value in patch.items():
            setattr(account, key, value)
        db.session.commit()
        return account

    return run_with_retry(_op)


def delete_account(account_id: int) -> None:
    """Delete an account that has never been posted to."""
    def _op():
        begin_write()
        account = lock_for_update(db.session.query(Account).filter_by(id=account_id)).first()
        if account is None:
            raise NotFoundError(f"Account {account_id} not found", {"account_id": account_id})
        entries = db.session.query(func.count(LedgerEntry.id)).filter_by(account_id=account_id).scalar()
        if entries:
            raise ConflictError(
                "Account has ledger entries and cannot be deleted",
                {"account_id": account_id, "entries": entries},
            )
        db.session.delete(account)
        db.session.commit()

    run_with_retry(_op)


def list_accounts(*, account_type: str | None = None, customer_id: int | None = None,
                  supplier_id: int | None = None) -> list[Account]:
    query = db.session.query(Account)
    if account_type:
        query = query.filter(Account.type == account_type)
    if customer_id is not None:
        query = query.filter(Account.customer_id == customer_id)
    if supplier_id is not None:
        query = query.filter(Account.supplier_id == supplier_id)
    return query.order_by(Account.name.asc(), Account.id.asc()).all()


def list_ledger_entries(account_id: int, *, start: datetime | None = None,
                        end: datetime | None = None) -> list[LedgerEntry]:
    if get_account_by_id(account_id) is None:
        raise NotFoundError(f"Account {account_id} not found", {"account_id": account_id})
    query = db.session.query(LedgerEntry).filter(LedgerEntry.account_id == account_id)
    if start is not None:
        query = query.filter(LedgerEntry.transaction_date >= start)
    if end is not None:
        query = query.filter(LedgerEntry.transaction_date <= end)
    return query.order_by(
        LedgerEntry.transaction_date.asc(),
        LedgerEntry.created_at.asc(),
        LedgerEntry.id.asc(),
    ).all()


def verify_account_balance(account_id: int) -> dict:
    """
    Recompute SUM(credit) - SUM(debit) and compare with the stored balance.

    Read-only: drift is reported, never corrected.
    """
    account = get_account_by_id(account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found", {"account_id": account_id})

    credits, debits = (
        db.session.query(
            func.coalesce(func.sum(LedgerEntry.credit_cents), 0),
            func.coalesce(func.sum(LedgerEntry.debit_cents), 0),
        )
        .filter(LedgerEntry.account_id == account_id)
        .one()
    )
    computed = int(credits) - int(debits)
    return {
        "account_id": account.id,
        "stored_balance_cents": account.balance_cents,
        "computed_balance_cents": computed,
        "drift_cents": account.balance_cents - computed,
        "consistent": account.balance_cents == computed,
    }
