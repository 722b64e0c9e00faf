# Overview: Domain exception hierarchy shared by services and routes.

"""
Error taxonomy for the sale/inventory core.

Services raise these; routes map them to HTTP statuses via ``http_status``.
Every error carries a human message plus an optional ``details`` dict that is
safe to return to the client.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for all domain errors."""

    code = "POS_ERROR"
    http_status = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(PosError):
    """User-fixable input problem."""
    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(PosError):
    code = "NOT_FOUND"
    http_status = 404


class ConflictError(PosError):
    """Business rule conflict (duplicate identifier, register already open...)."""
    code = "CONFLICT"
    http_status = 409


class StockRaceError(ConflictError):
    """Selected serialized units were taken by a concurrent sale."""
    code = "STOCK_RACE"


class InsufficientStockError(ConflictError):
    code = "INSUFFICIENT_STOCK"


class SerialIntegrityError(PosError):
    """A unit could not be marked sold after it passed validation."""
    code = "SERIAL_INTEGRITY"
    http_status = 500


class PermissionDeniedError(PosError):
    code = "PERMISSION_DENIED"
    http_status = 403


class StoreError(PosError):
    """Persistence failure; the caller sees a generic message."""
    code = "STORE_ERROR"
    http_status = 500


def http_status_for(code: str | None) -> int:
    """HTTP status for an error code carried by a result object."""
    pending = [PosError]
    while pending:
        cls = pending.pop()
        if cls.code == code:
            return cls.http_status
        pending.extend(cls.__subclasses__())
    return 500
