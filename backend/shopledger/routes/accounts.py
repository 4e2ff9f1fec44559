# Overview: Flask API routes for accounts and their ledger entries.

from flask import Blueprint, jsonify, request, current_app

from ..errors import LedgerError, NotFoundError
from ..services import ledger_service
from ..validation import parse_date_param, parse_int_param

accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


@accounts_bp.post("")
def create_account_route():
    try:
        account = ledger_service.create_account(request.get_json(silent=True))
        return jsonify(account.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create account")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("")
def list_accounts_route():
    try:
        accounts = ledger_service.list_accounts(
            account_type=request.args.get("type"),
            customer_id=parse_int_param(request.args.get("customer_id"), field="customer_id"),
            supplier_id=parse_int_param(request.args.get("supplier_id"), field="supplier_id"),
        )
        return jsonify({"items": [a.to_dict() for a in accounts]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@accounts_bp.get("/<int:account_id>")
def get_account_route(account_id: int):
    account = ledger_service.get_account_by_id(account_id)
    if account is None:
        err = NotFoundError(f"Account {account_id} not found", {"account_id": account_id})
        return jsonify(err.to_dict()), err.status_code
    return jsonify(account.to_dict()), 200


@accounts_bp.patch("/<int:account_id>")
def update_account_route(account_id: int):
    try:
        account = ledger_service.update_account(account_id, request.get_json(silent=True))
        return jsonify(account.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update account")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.delete("/<int:account_id>")
def delete_account_route(account_id: int):
    try:
        ledger_service.delete_account(account_id)
        return "", 204
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete account")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("/<int:account_id>/entries")
def list_entries_route(account_id: int):
    """
    Ledger entries in replay order.

    Query params: start_date, end_date (end is inclusive to the end of the day)
    """
    try:
        entries = ledger_service.list_ledger_entries(
            account_id,
            start=parse_date_param(request.args.get("start_date"), field="start_date"),
            end=parse_date_param(request.args.get("end_date"), field="end_date", end=True),
        )
        return jsonify({"items": [e.to_dict() for e in entries]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@accounts_bp.get("/<int:account_id>/verify")
def verify_account_route(account_id: int):
    try:
        return jsonify(ledger_service.verify_account_balance(account_id)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
