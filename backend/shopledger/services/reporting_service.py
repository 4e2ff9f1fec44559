# Overview: Derive-on-read ledgers for customers, suppliers and accounts.

from __future__ import annotations

from datetime import datetime

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Account,
    Customer,
    LedgerEntry,
    Product,
    Purchase,
    Sale,
    Supplier,
    Transaction,
)
from ..models.accounting import TRANSACTION_TYPE_CASH_RECEIVED, TRANSACTION_TYPE_EXPENSE_VOUCHER
from ..time_utils import end_of_day, start_of_day, to_utc_z
"""
Ledger Report Invariants (authoritative)

- Reports never write: no locks, no flush, no commit.
- Balance is "amount owed" for customers and suppliers:
  documents (sales / purchases) increase it, the settling transaction type
  decreases it (CASH_RECEIVED for a customer, EXPENSE_VOUCHER for a
  supplier), the other type increases it.
- Customer rows show increases as debits; supplier rows show them as credits.
- Account ledgers replay LedgerEntry rows as credit - debit.
- previous_balance covers everything dated strictly before start (start of
  day); entries cover [start, end] with end inclusive to the end of day.
"""

ENTITY_CUSTOMER = "customer"
ENTITY_SUPPLIER = "supplier"
ENTITY_ACCOUNT = "account"
ENTITY_TYPES = (ENTITY_CUSTOMER, ENTITY_SUPPLIER, ENTITY_ACCOUNT)
_ENTITY_MODELS = {ENTITY_CUSTOMER: Customer, ENTITY_SUPPLIER: Supplier, ENTITY_ACCOUNT: Account}

# Tie-break for rows sharing a timestamp: documents before money movements
_SOURCE_RANK = {"sale": 0, "purchase": 0, "transaction": 1, "ledger_entry": 1}

SETTLING_TRANSACTION_TYPE = {
    ENTITY_CUSTOMER: TRANSACTION_TYPE_CASH_RECEIVED,
    ENTITY_SUPPLIER: TRANSACTION_TYPE_EXPENSE_VOUCHER,
}


def _row(*, date, source, source_id, line_id, reference, description, quantity, price_cents, signed_cents, debit_cents, credit_cents, order_key=None) -> dict:
    return {
        "order_key": order_key if order_key is not None else (source_id or 0, line_id),
        "date": date,
        "source": source,
        "source_id": source_id,
        "line_id": line_id,
        "reference": reference,
        "description": description,
        "quantity": quantity,
        "price_cents": price_cents,
        "signed_cents": signed_cents,
        "debit_cents": debit_cents,
        "credit_cents": credit_cents,
    }


def _product_names(product_ids) -> dict[int, str]:
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    return dict(db.session.query(Product.id, Product.name).filter(Product.id.in_(ids)).all())


def _transaction_rows(entity_type: str, account_ids: list[int]) -> list[dict]:
    if not account_ids:
        return []
    settling = SETTLING_TRANSACTION_TYPE[entity_type]
    rows = []
    for tx in db.session.query(Transaction).filter(Transaction.account_id.in_(account_ids)).all():
        increase = tx.transaction_type != settling
        signed = tx.amount_cents if increase else -tx.amount_cents
        # Customer ledgers show increases as debits, supplier ledgers as credits
        shows_as_debit = increase == (entity_type == ENTITY_CUSTOMER)
        rows.append(
            _row(
                date=tx.transaction_date,
                source="transaction",
                source_id=tx.id,
                line_id=tx.id,
                reference=None,
                description=f"{tx.transaction_type}: {tx.description}" if tx.description else tx.transaction_type,
                quantity=0,
                price_cents=0,
                signed_cents=signed,
                debit_cents=tx.amount_cents if shows_as_debit else 0,
                credit_cents=0 if shows_as_debit else tx.amount_cents,
            )
        )
    return rows


def _linked_account_ids(column, entity_id: int) -> list[int]:
    return [account_id for (account_id,) in db.session.query(Account.id).filter(column == entity_id).all()]


def _customer_rows(customer_id: int) -> list[dict]:
    sales = db.session.query(Sale).filter(Sale.customer_id == customer_id).all()
    names = _product_names(item.product_id for sale in sales for item in sale.items)
    rows = []
    for sale in sales:
        for item in sale.items:
            rows.append(
                _row(
                    date=sale.sale_date,
                    source="sale",
                    source_id=sale.id,
                    line_id=item.id,
                    reference=sale.invoice_number,
                    description=names.get(item.product_id, f"Product {item.product_id}"),
                    quantity=item.quantity,
                    price_cents=item.price_at_sale_cents,
                    signed_cents=item.total_cents,
                    debit_cents=item.total_cents,
                    credit_cents=0,
                )
            )
    rows.extend(_transaction_rows(ENTITY_CUSTOMER, _linked_account_ids(Account.customer_id, customer_id)))
    return rows


def _supplier_rows(supplier_id: int) -> list[dict]:
    purchases = db.session.query(Purchase).filter(Purchase.supplier_id == supplier_id).all()
    names = _product_names(item.product_id for purchase in purchases for item in purchase.items)
    rows = []
    for purchase in purchases:
        for item in purchase.items:
            rows.append(
                _row(
                    date=purchase.purchase_date,
                    source="purchase",
                    source_id=purchase.id,
                    line_id=item.id,
                    reference=purchase.invoice_number,
                    description=names.get(item.product_id, f"Product {item.product_id}"),
                    quantity=item.quantity,
                    price_cents=item.price_at_purchase_cents,
                    signed_cents=item.total_cents,
                    debit_cents=0,
                    credit_cents=item.total_cents,
                )
            )
    rows.extend(_transaction_rows(ENTITY_SUPPLIER, _linked_account_ids(Account.supplier_id, supplier_id)))
    return rows


def _account_rows(account_id: int) -> list[dict]:
    rows = []
    for entry in db.session.query(LedgerEntry).filter(LedgerEntry.account_id == account_id).all():
        rows.append(
            _row(
                date=entry.transaction_date,
                source="ledger_entry",
                source_id=entry.transaction_id,
                line_id=entry.id,
                reference=None,
                description=entry.description,
                quantity=0,
                price_cents=0,
                signed_cents=entry.credit_cents - entry.debit_cents,
                debit_cents=entry.debit_cents,
                credit_cents=entry.credit_cents,
                order_key=(entry.created_at, entry.id),
            )
        )
    return rows


def _check_entity_type(entity_type: str) -> None:
    if entity_type not in ENTITY_TYPES:
        raise ValidationError(
            f"entity_type must be one of: {', '.join(ENTITY_TYPES)}",
            {"entity_type": entity_type},
        )


def _resolve_entity(entity_type: str, entity_id: int):
    _check_entity_type(entity_type)
    model = _ENTITY_MODELS[entity_type]
    entity = db.session.get(model, entity_id)
    if entity is None:
        raise NotFoundError(
            f"{entity_type.capitalize()} {entity_id} not found",
            {f"{entity_type}_id": entity_id},
        )
    return entity


def _entity_rows(entity_type: str, entity_id: int) -> list[dict]:
    if entity_type == ENTITY_CUSTOMER:
        rows = _customer_rows(entity_id)
    elif entity_type == ENTITY_SUPPLIER:
        rows = _supplier_rows(entity_id)
    else:
        rows = _account_rows(entity_id)
    rows.sort(key=lambda r: (r["date"], _SOURCE_RANK[r["source"]], r["order_key"]))
    return rows


def compute_ledger(entity_type: str, entity_id: int, start=None, end=None) -> dict:
    """
    Replay an entity's history into {previous_balance, entries, running_balance}.

    start / end accept dates, datetimes or ISO strings; either may be None.
    """
    entity = _resolve_entity(entity_type, entity_id)
    try:
        start_dt = start_of_day(start)
        end_dt = end_of_day(end)
    except ValueError:
        raise ValidationError("start_date / end_date must be ISO-8601 dates")
    if start_dt is not None and end_dt is not None and end_dt < start_dt:
        raise ValidationError("end_date must not be before start_date")

    rows = _entity_rows(entity_type, entity_id)
    previous_balance = sum(
        row["signed_cents"] for row in rows if start_dt is not None and row["date"] < start_dt
    )

    balance = previous_balance
    entries = []
    total_debit = 0
    total_credit = 0
    for row in rows:
        if start_dt is not None and row["date"] < start_dt:
            continue
        if end_dt is not None and row["date"] > end_dt:
            continue
        balance += row["signed_cents"]
        total_debit += row["debit_cents"]
        total_credit += row["credit_cents"]
        entries.append(
            {
                "date": to_utc_z(row["date"]),
                "source": row["source"],
                "source_id": row["source_id"],
                "reference": row["reference"],
                "description": row["description"],
                "quantity": row["quantity"],
                "price_cents": row["price_cents"],
                "debit_cents": row["debit_cents"],
                "credit_cents": row["credit_cents"],
                "balance_cents": balance,
            }
        )

    return {
        "entity_type": entity_type,
        "entity_id": entity_id,
        "name": entity.name,
        "start_date": to_utc_z(start_dt),
        "end_date": to_utc_z(end_dt),
        "previous_balance_cents": previous_balance,
        "entries": entries,
        "total_debit_cents": total_debit,
        "total_credit_cents": total_credit,
        "running_balance_cents": balance,
    }


def get_entity_balance(entity_type: str, entity_id: int, as_of: datetime | None = None) -> int:
    """Full replay up to as_of (inclusive); no stored balance is consulted."""
    _resolve_entity(entity_type, entity_id)
    cutoff = end_of_day(as_of)
    return sum(
        row["signed_cents"]
        for row in _entity_rows(entity_type, entity_id)
        if cutoff is None or row["date"] <= cutoff
    )


def list_balances(entity_type: str) -> list[dict]:
    _check_entity_type(entity_type)
    model = _ENTITY_MODELS[entity_type]
    results = []
    for entity in db.session.query(model).order_by(model.name.asc(), model.id.asc()).all():
        results.append(
            {
                "id": entity.id,
                "name": entity.name,
                "balance_cents": sum(row["signed_cents"] for row in _entity_rows(entity_type, entity.id)),
            }
        )
    return results
