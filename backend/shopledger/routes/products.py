# Overview: Flask API routes for products and stock adjustments.

from flask import Blueprint, jsonify, request, current_app

from ..errors import LedgerError, NotFoundError, ValidationError
from ..services import inventory_service
from ..validation import json_object, parse_int_param

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("")
def create_product_route():
    try:
        product = inventory_service.create_product(request.get_json(silent=True))
        return jsonify(product.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("")
def list_products_route():
    """
    Query params:
    - q: name / barcode search
    - barcode: exact barcode lookup
    - low_stock: threshold; returns products at or below it
    """
    try:
        barcode = request.args.get("barcode")
        if barcode:
            product = inventory_service.find_product_by_barcode(barcode)
            return jsonify({"items": [product.to_dict()] if product else []}), 200

        threshold = parse_int_param(request.args.get("low_stock"), field="low_stock")
        if threshold is not None:
            products = inventory_service.list_low_stock(threshold)
        else:
            products = inventory_service.list_products(search=request.args.get("q"))
        return jsonify({"items": [p.to_dict() for p in products]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    product = inventory_service.get_product_by_id(product_id)
    if product is None:
        err = NotFoundError(f"Product {product_id} not found", {"product_id": product_id})
        return jsonify(err.to_dict()), err.status_code
    return jsonify(product.to_dict()), 200


@products_bp.patch("/<int:product_id>")
def update_product_route(product_id: int):
    try:
        product = inventory_service.update_product(product_id, request.get_json(silent=True))
        return jsonify(product.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/adjust")
def adjust_stock_route(product_id: int):
    """
    Manual stock correction.

    Request body:
    {
        "delta": -2
    }
    """
    try:
        data = json_object(request.get_json(silent=True))
        if "delta" not in data:
            raise ValidationError("delta is required")
        product = inventory_service.adjust_stock(product_id, data["delta"])
        return jsonify(product.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500
