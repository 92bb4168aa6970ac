# Overview: Error taxonomy shared by services and routes; each error knows its HTTP status.

from __future__ import annotations


class SmerpError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": str(self)}
        body.update(self.details)
        return body


class ValidationError(SmerpError, ValueError):
    """400-level input problem."""

    status_code = 400


class InsufficientStockError(ValidationError):
    """A posting would take an item's quantity below zero."""


class NotFoundError(SmerpError, LookupError):
    """404-level missing entity."""

    status_code = 404


class InventoryNotFound(NotFoundError):
    """Inventory posting against an item id that does not exist."""


class ConflictError(SmerpError):
    """409-level business rule conflict (e.g., duplicate item code or barcode)."""

    status_code = 409


class InvalidTransitionError(ConflictError):
    """A status trigger was fired from a status that does not allow it."""


class PostingError(ConflictError):
    """
    Inventory posting failed part-way through a transaction.

    The partial postings were compensated and the transaction was canceled;
    details carry the transaction id so the caller can inspect it.
    """


class PermissionDeniedError(SmerpError):
    """Raised when the user lacks the required resource permission."""

    status_code = 403


class PersistenceError(SmerpError):
    """Database failure. Logged, not retried automatically."""

    status_code = 500


class NegativeStockWarning(UserWarning):
    """Non-fatal: a ledger posting left an item's quantity below zero."""
