# Overview: Flask API routes for customers and suppliers.

from flask import Blueprint, jsonify, request, current_app

from ..errors import LedgerError, NotFoundError
from ..services import party_service

parties_bp = Blueprint("parties", __name__, url_prefix="/api")


@parties_bp.post("/<any(customers, suppliers):collection>")
def create_party_route(collection: str):
    try:
        party = party_service.create_party(collection[:-1], request.get_json(silent=True))
        return jsonify(party.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create %s", collection[:-1])
        return jsonify({"error": "Internal server error"}), 500


@parties_bp.get("/<any(customers, suppliers):collection>")
def list_parties_route(collection: str):
    parties = party_service.list_parties(collection[:-1])
    return jsonify({"items": [p.to_dict() for p in parties]}), 200


@parties_bp.get("/<any(customers, suppliers):collection>/<int:party_id>")
def get_party_route(collection: str, party_id: int):
    party_type = collection[:-1]
    party = party_service.get_party(party_type, party_id)
    if party is None:
        err = NotFoundError(f"{party_type.capitalize()} {party_id} not found", {f"{party_type}_id": party_id})
        return jsonify(err.to_dict()), err.status_code
    return jsonify(party.to_dict()), 200
