# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations


class PetalError(Exception):
    """Base class for domain failures surfaced to the caller."""

    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": str(self), "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class InvalidQuantity(PetalError):
    code = "INVALID_QUANTITY"


class InsufficientStock(PetalError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409


class NotFound(PetalError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidState(PetalError):
    """Operation not allowed in the entity's current lifecycle state."""
    code = "INVALID_STATE"
    status_code = 409


class InvalidAmount(PetalError):
    code = "INVALID_AMOUNT"


class InvalidStemCount(PetalError):
    code = "INVALID_STEM_COUNT"
