# Overview: Error taxonomy shared by services and routes.

from __future__ import annotations


class LedgerError(Exception):
    """
    Base class for every business failure raised by the services.

    kind is a stable machine-readable label; status_code is the HTTP status
    the routes answer with. details carries structured context (offending
    product, remaining quantity, ...).
    """
    kind = "error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "details": self.details}


class ValidationError(LedgerError):
    """400-level input problem (malformed payload, non-positive amount, ...)."""
    kind = "validation_error"
    status_code = 400


class NotFoundError(LedgerError):
    """Referenced account, product, invoice, return or document is missing."""
    kind = "not_found"
    status_code = 404


class ConflictError(LedgerError):
    """409-level business rule conflict (duplicate invoice number, over-return, stock)."""
    kind = "conflict"
    status_code = 409


class InvalidStateTransition(LedgerError):
    """Workflow guard violation (e.g. approving a return that is not PENDING)."""
    kind = "invalid_state_transition"
    status_code = 409
