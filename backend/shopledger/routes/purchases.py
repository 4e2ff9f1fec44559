# Overview: Flask API routes for purchases; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request, current_app

from ..errors import LedgerError, NotFoundError
from ..services import purchase_service
from ..services.document_service import DOCUMENT_TYPE_PURCHASE, peek_trade_invoice_number
from ..validation import parse_date_param, parse_int_param

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
def create_purchase_route():
    try:
        purchase = purchase_service.create_purchase(request.get_json(silent=True))
        return jsonify(purchase.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
def list_purchases_route():
    try:
        purchases = purchase_service.list_purchases(
            start=parse_date_param(request.args.get("start_date"), field="start_date"),
            end=parse_date_param(request.args.get("end_date"), field="end_date", end=True),
            supplier_id=parse_int_param(request.args.get("supplier_id"), field="supplier_id"),
        )
        return jsonify({"items": [p.to_dict() for p in purchases]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@purchases_bp.get("/next-invoice-number")
def next_invoice_number_route():
    return jsonify({"invoice_number": peek_trade_invoice_number(DOCUMENT_TYPE_PURCHASE)}), 200


@purchases_bp.get("/<int:purchase_id>")
def get_purchase_route(purchase_id: int):
    purchase = purchase_service.get_purchase(purchase_id)
    if purchase is None:
        err = NotFoundError(f"Purchase {purchase_id} not found", {"purchase_id": purchase_id})
        return jsonify(err.to_dict()), err.status_code
    return jsonify(purchase.to_dict()), 200


@purchases_bp.put("/<int:purchase_id>")
def update_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.update_purchase(purchase_id, request.get_json(silent=True))
        return jsonify(purchase.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.delete("/<int:purchase_id>")
def delete_purchase_route(purchase_id: int):
    try:
        purchase_service.delete_purchase(purchase_id)
        return "", 204
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete purchase")
        return jsonify({"error": "Internal server error"}), 500
