"""
Exceptions raised by the record store services.

Every error carries a machine-readable ``code``, the HTTP ``status_code``
the API layer answers with, a human-readable ``message`` and a ``detail``
dict with the structured data a client needs (the requested and available
quantities of a stock failure, the conflicting fields of a duplicate, ...).
"""

from typing import Any, Dict


class RecordStoreError(Exception):
    """Base class for all record store errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, **self.detail}


class NotFoundError(RecordStoreError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(RecordStoreError):
    code = "CONFLICT"
    status_code = 409


class InsufficientStockError(RecordStoreError):
    """Requested quantity exceeds the stock left on the catalog item."""

    code = "INSUFFICIENT_STOCK"
    status_code = 400

    def __init__(self, message: str, requested: int, available: int, **detail: Any):
        super().__init__(message, requested=requested, available=available, **detail)
        self.requested = requested
        self.available = available


class UnauthorizedError(RecordStoreError):
    code = "UNAUTHORIZED"
    status_code = 403


class BadRequestError(RecordStoreError):
    code = "BAD_REQUEST"
    status_code = 400


class InternalError(RecordStoreError):
    """A collaborator (metadata service, database) failed unexpectedly."""

    code = "INTERNAL_ERROR"
    status_code = 500
