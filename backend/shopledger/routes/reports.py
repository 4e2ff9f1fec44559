# Overview: Flask API routes for derived ledgers and balances (read-only).

from flask import Blueprint, jsonify, request

from ..errors import LedgerError
from ..services import reporting_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/ledger/<entity_type>/<int:entity_id>")
def ledger_route(entity_type: str, entity_id: int):
    """
    Customer, supplier or account ledger.

    Query params: start_date, end_date (YYYY-MM-DD or ISO datetime)
    Returns previous_balance_cents, entries[] with running balance_cents,
    and running_balance_cents.
    """
    try:
        ledger = reporting_service.compute_ledger(
            entity_type,
            entity_id,
            start=request.args.get("start_date") or None,
            end=request.args.get("end_date") or None,
        )
        return jsonify(ledger), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@reports_bp.get("/balances/<entity_type>")
def balances_route(entity_type: str):
    try:
        return jsonify({"items": reporting_service.list_balances(entity_type)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
