# Overview: Error hierarchy shared by the ledger, catalog and sales services.

from __future__ import annotations


class RetailLedgerError(Exception):
    """Base class for business-rule failures raised by the services."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(RetailLedgerError):
    """Raised when an item, store, sale or sale line does not exist."""


class ItemNotFoundError(NotFoundError):
    pass


class StoreNotFoundError(NotFoundError):
    pass


class SaleNotFoundError(NotFoundError):
    pass


class LineNotFoundError(NotFoundError):
    pass


class InsufficientStockError(RetailLedgerError):
    """Raised when a request needs more available stock than the record holds."""


class InvalidQuantityError(RetailLedgerError):
    """Raised for zero, negative or non-integer quantities."""


class InvalidReservationError(RetailLedgerError):
    """Raised when releasing more than is currently reserved."""


class InvalidRefundQuantityError(RetailLedgerError):
    """Raised when refunding more than the sale line holds."""


class InvalidTransferError(RetailLedgerError):
    pass


class InvalidStockLevelError(RetailLedgerError):
    pass


class InvalidSaleError(RetailLedgerError):
    """Raised for malformed sale requests (no lines, bad payment method, bad discount)."""


class InvalidCatalogEntryError(RetailLedgerError):
    pass


class NotAuthorizedError(RetailLedgerError):
    """Raised when the caller's store does not own the document."""


class ConcurrencyConflictError(RetailLedgerError):
    """
    Raised when a lock or version conflict persists after retries.

    Callers should retry the whole operation.
    """
