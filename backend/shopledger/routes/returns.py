# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

"""
Return Processing API Routes

DESIGN:
- Create returns referencing an original (finalized or paid) invoice
- Approval / rejection workflow
- Process returns to restock restockable items exactly once
- Acting user taken from the X-Acting-User header
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_acting_user, with_acting_user
from ..errors import LedgerError, NotFoundError
from ..services import return_service
from ..validation import json_object, parse_bool_field, parse_date_param, parse_int_param


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


# =============================================================================
# RETURN CREATION
# =============================================================================

@returns_bp.post("")
@with_acting_user
def create_return_route():
    """
    Create a new return document (status: PENDING).

    Request body:
    {
        "original_invoice_id": 12,
        "return_type": "PARTIAL_REFUND",
        "refund_method": "CASH",
        "return_reason": "Wrong size",
        "restocking_fee_cents": 0,  (optional)
        "processing_fee_cents": 0,  (optional)
        "items": [
            {"product_id": 7, "returned_quantity": 2, "reason": "CUSTOMER_REQUEST", "restockable": true}
        ]
    }

    Returns:
        201: Return created with PENDING status
        400: Invalid input / product not on invoice
        404: Invoice not found
        409: Quantity exceeds what is left to return / invoice not returnable
    """
    try:
        return_doc = return_service.create_return(
            request.get_json(silent=True), acting_user_id=g.acting_user_id
        )
        return jsonify(return_doc.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
def list_returns_route():
    try:
        returns = return_service.list_returns(
            status=request.args.get("status"),
            invoice_id=parse_int_param(request.args.get("invoice_id"), field="invoice_id"),
            customer_id=parse_int_param(request.args.get("customer_id"), field="customer_id"),
        )
        return jsonify({"items": [r.to_dict() for r in returns]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@returns_bp.get("/statistics")
def return_statistics_route():
    try:
        stats = return_service.get_return_statistics(
            date_from=parse_date_param(request.args.get("date_from"), field="date_from"),
            date_to=parse_date_param(request.args.get("date_to"), field="date_to", end=True),
        )
        return jsonify(stats), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@returns_bp.get("/<int:return_id>")
def get_return_route(return_id: int):
    return_doc = return_service.get_return(return_id)
    if return_doc is None:
        err = NotFoundError(f"Return {return_id} not found", {"return_id": return_id})
        return jsonify(err.to_dict()), err.status_code
    return jsonify(return_doc.to_dict()), 200


@returns_bp.patch("/<int:return_id>")
def update_return_route(return_id: int):
    """
    Edit a return.

    Returns:
        200: Updated
        409: Financial fields of a processed / completed return
    """
    try:
        return_doc = return_service.update_return(return_id, request.get_json(silent=True))
        return jsonify(return_doc.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.delete("/<int:return_id>")
def delete_return_route(return_id: int):
    try:
        return_service.delete_return(return_id)
        return "", 204
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete return")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RETURN APPROVAL WORKFLOW
# =============================================================================

@returns_bp.post("/<int:return_id>/approve")
@require_acting_user
def approve_return_route(return_id: int):
    """
    Approve a return (PENDING -> APPROVED).

    Request body (optional): {"notes": "..."}
    """
    try:
        data = json_object(request.get_json(silent=True))
        return_doc = return_service.approve_return(
            return_id, acting_user_id=g.acting_user_id, notes=data.get("notes")
        )
        return jsonify(return_doc.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/reject")
@with_acting_user
def reject_return_route(return_id: int):
    """
    Reject a return (PENDING -> REJECTED).

    Request body:
    {
        "rejection_reason": "Outside return window"
    }
    """
    try:
        data = json_object(request.get_json(silent=True))
        return_doc = return_service.reject_return(
            return_id,
            data.get("rejection_reason"),
            acting_user_id=g.acting_user_id,
            notes=data.get("notes"),
        )
        return jsonify(return_doc.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<int:return_id>/process")
@require_acting_user
def process_return_route(return_id: int):
    """
    Process an approved return (APPROVED -> COMPLETED).

    Request body (optional):
    {
        "adjust_inventory": true,
        "notes": "..."
    }
    """
    try:
        data = json_object(request.get_json(silent=True))
        return_doc = return_service.process_return(
            return_id,
            acting_user_id=g.acting_user_id,
            adjust_inventory=parse_bool_field(data, "adjust_inventory", default=True),
            notes=data.get("notes"),
        )
        return jsonify(return_doc.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500
