# Overview: Flask API routes for cash received / expense voucher transactions.

from flask import Blueprint, jsonify, request, current_app, g

from ..decorators import with_acting_user
from ..errors import LedgerError, NotFoundError
from ..services import transaction_service
from ..validation import parse_date_param, parse_int_param

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("")
@with_acting_user
def create_transaction_route():
    """
    Record a transaction and post it to the account ledger.

    Request body:
    {
        "account_id": 1,
        "amount_cents": 50000,
        "transaction_type": "CASH_RECEIVED",   (or "EXPENSE_VOUCHER")
        "transaction_date": "2024-05-01T10:00:00Z",  (optional)
        "description": "Counter cash"  (optional)
    }

    Returns:
        201: Transaction created, account balance updated
        400: Invalid input
        404: Account not found
    """
    try:
        tx = transaction_service.create_transaction(
            request.get_json(silent=True), acting_user_id=g.acting_user_id
        )
        return jsonify(tx.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("")
def list_transactions_route():
    try:
        txs = transaction_service.list_transactions(
            account_id=parse_int_param(request.args.get("account_id"), field="account_id"),
            transaction_type=request.args.get("transaction_type"),
            start=parse_date_param(request.args.get("start_date"), field="start_date"),
            end=parse_date_param(request.args.get("end_date"), field="end_date", end=True),
        )
        return jsonify({"items": [t.to_dict() for t in txs]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    tx = transaction_service.get_transaction(transaction_id)
    if tx is None:
        err = NotFoundError(f"Transaction {transaction_id} not found", {"transaction_id": transaction_id})
        return jsonify(err.to_dict()), err.status_code
    return jsonify(tx.to_dict()), 200
