# Overview: Error taxonomy shared by services, routes and the CLI.

"""
Every failure a service can report is a StockLedgerError subclass.

- kind: stable machine-readable code returned to API callers
- details: structured context (e.g. which items were short)
- http_status: what the HTTP layer answers with

None of these are retried inside the services; retry is a caller decision.
"""

from __future__ import annotations


class StockLedgerError(Exception):
    """Base class for domain errors."""

    kind = "ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None, *, kind: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if kind is not None:
            self.kind = kind

    def to_dict(self) -> dict:
        payload = {"error": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(StockLedgerError):
    """Malformed input: missing items, non-positive quantity, short reason."""

    kind = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(StockLedgerError):
    """Unknown product, store, inventory record, sale, transfer or user."""

    kind = "NOT_FOUND"
    http_status = 404


class InventoryNotFoundError(NotFoundError):
    kind = "INVENTORY_NOT_FOUND"


class ConflictError(StockLedgerError):
    """Business-rule conflict with current state."""

    kind = "CONFLICT"
    http_status = 409


class InsufficientStockError(ConflictError):
    kind = "INSUFFICIENT_STOCK"


class SameStoreError(ConflictError):
    kind = "SAME_STORE"


class ConcurrencyConflictError(ConflictError):
    """The record changed underneath the unit of work; resubmit."""

    kind = "CONCURRENT_UPDATE"


class SaleAlreadyVoidedError(ConflictError):
    kind = "SALE_ALREADY_VOIDED"


class InvalidTransferStatusError(ConflictError):
    kind = "INVALID_TRANSFER_STATUS"


class InvalidOperationError(StockLedgerError):
    """Operation not allowed for this change type or would break an invariant."""

    kind = "INVALID_OPERATION"
    http_status = 422


class AuthorizationError(StockLedgerError):
    """Role or store-scope violation."""

    kind = "AUTHORIZATION_ERROR"
    http_status = 403


class WindowExpiredError(AuthorizationError):
    kind = "WINDOW_EXPIRED"


class InvalidTokenError(StockLedgerError):
    kind = "INVALID_TOKEN"
    http_status = 401


class IntegrityError(StockLedgerError):
    """Reconciliation found drift. Diagnostic only; nothing is corrected."""

    kind = "INTEGRITY_ERROR"
    http_status = 500


class LedgerImmutableError(StockLedgerError):
    """Attempt to update or delete an inventory history entry."""

    kind = "LEDGER_IMMUTABLE"
    http_status = 500
