# Overview: Flask API routes for point-of-sale invoices.

from flask import Blueprint, jsonify, request, current_app, g

from ..decorators import with_acting_user
from ..errors import LedgerError, NotFoundError
from ..services import invoice_service
from ..validation import json_object

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.post("")
@with_acting_user
def create_invoice_route():
    """
    Issue an invoice; every line is deducted from stock.

    Request body:
    {
        "customer_id": 1,  (optional)
        "status": "FINALIZED",  (optional; DRAFT by default)
        "items": [{"product_id": 7, "quantity": 3, "unit_price_cents": 1500}]
    }
    """
    try:
        invoice = invoice_service.create_invoice(request.get_json(silent=True), acting_user_id=g.acting_user_id)
        return jsonify(invoice.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
def get_invoice_route(invoice_id: int):
    invoice = invoice_service.get_invoice_by_id(invoice_id)
    if invoice is None:
        err = NotFoundError(f"Invoice {invoice_id} not found", {"invoice_id": invoice_id})
        return jsonify(err.to_dict()), err.status_code
    return jsonify(invoice.to_dict()), 200


@invoices_bp.post("/<int:invoice_id>/finalize")
def finalize_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.finalize_invoice(invoice_id)
        return jsonify(invoice.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to finalize invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/payments")
def record_payment_route(invoice_id: int):
    """Request body: {"amount_cents": 4500}"""
    try:
        data = json_object(request.get_json(silent=True))
        invoice = invoice_service.record_invoice_payment(invoice_id, data.get("amount_cents"))
        return jsonify(invoice.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record invoice payment")
        return jsonify({"error": "Internal server error"}), 500
