# Overview: Customers and suppliers referenced by sales, purchases and accounts.

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import Customer, Supplier
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import run_with_retry


PARTY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email"},
    required_on_create={"name"},
)

PARTY_MODELS = {
    "customer": Customer,
    "supplier": Supplier,
}


def _model_for(party_type: str):
    model = PARTY_MODELS.get(party_type)
    if model is None:
        raise NotFoundError(f"Unknown party type: {party_type}", {"party_type": party_type})
    return model


def create_party(party_type: str, payload: dict):
    model = _model_for(party_type)
    patch = validate_payload(model=model, payload=payload, policy=PARTY_POLICY, partial=False)

    def _op():
        party = model(**patch)
        db.session.add(party)
        db.session.commit()
        return party

    return run_with_retry(_op)


def get_party(party_type: str, party_id: int):
    model = _model_for(party_type)
    return db.session.get(model, party_id)


def list_parties(party_type: str) -> list:
    model = _model_for(party_type)
    return db.session.query(model).order_by(model.name.asc(), model.id.asc()).all()
