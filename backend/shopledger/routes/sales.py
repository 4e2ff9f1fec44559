# Overview: Flask API routes for sales; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request, current_app

from ..errors import LedgerError, NotFoundError
from ..services import sales_service
from ..services.document_service import DOCUMENT_TYPE_SALE, peek_trade_invoice_number
from ..validation import parse_date_param, parse_int_param

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Record a sale and deduct stock.

    Request body:
    {
        "customer_id": 1,
        "invoice_number": "INV-5001",  (optional; allocated when omitted)
        "sale_date": "2024-05-01T10:00:00Z",  (optional)
        "items": [
            {"product_id": 7, "quantity": 3, "price_at_sale_cents": 1500}
        ]
    }

    Line totals, profits and document totals are computed server-side.

    Returns:
        201: Sale created
        400: Invalid input
        404: Customer not found
        409: Invoice number already used / insufficient stock
    """
    try:
        sale = sales_service.create_sale(request.get_json(silent=True))
        return jsonify(sale.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    try:
        sales = sales_service.list_sales(
            start=parse_date_param(request.args.get("start_date"), field="start_date"),
            end=parse_date_param(request.args.get("end_date"), field="end_date", end=True),
            customer_id=parse_int_param(request.args.get("customer_id"), field="customer_id"),
        )
        return jsonify({"items": [s.to_dict() for s in sales]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.get("/next-invoice-number")
def next_invoice_number_route():
    """Preview only; the number is allocated when the sale is created."""
    return jsonify({"invoice_number": peek_trade_invoice_number(DOCUMENT_TYPE_SALE)}), 200


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    if sale is None:
        err = NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
        return jsonify(err.to_dict()), err.status_code
    return jsonify(sale.to_dict()), 200


@sales_bp.put("/<int:sale_id>")
def update_sale_route(sale_id: int):
    try:
        sale = sales_service.update_sale(sale_id, request.get_json(silent=True))
        return jsonify(sale.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    """Delete a sale and return its quantities to stock."""
    try:
        sales_service.delete_sale(sale_id)
        return "", 204
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500
