# Overview: Typed error taxonomy shared by services and routes.

"""
Every business failure raised by a service is a LedgerError subclass.
Routes render them as {"error": message, "details": {...}} with the class's
status code; anything else is a 500.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for business rule failures."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(LedgerError):
    """400-level input problem, raised before any transaction starts."""
    status_code = 400


class AuthenticationError(LedgerError):
    status_code = 401


class PermissionDeniedError(LedgerError):
    status_code = 403


class NotFoundError(LedgerError):
    """Referenced product, sale, customer, user or payroll record is absent."""
    status_code = 404


class PayrollInfoMissing(NotFoundError):
    pass


class ConflictError(LedgerError):
    """409-level business rule conflict (stock, points, duplicates, concurrent writes)."""
    status_code = 409


class InsufficientStock(ConflictError):
    pass


class InsufficientPoints(ConflictError):
    pass


class ExceedsRemainingQuantity(ConflictError):
    pass


class StateError(LedgerError):
    """Operation not allowed in the entity's current state."""
    status_code = 409


class NoRemainingQuantity(StateError):
    pass
