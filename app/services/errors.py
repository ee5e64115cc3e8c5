"""
Exceptions raised by routing, persistence, sync and submission services.
Controllers map these to HTTP responses.
"""
from typing import Optional


class RoutingError(Exception):
    """Routing attempt could not produce a plan."""

    reason = "ROUTING_ERROR"

    def __init__(self, message: str, diagnostics: Optional[list] = None):
        super().__init__(message)
        self.diagnostics = diagnostics or []


class NoRoutableItemsError(RoutingError):
    """Every line item failed resolution; nothing was persisted."""

    reason = "NO_ROUTABLE_ITEMS"


class CommitFailure(Exception):
    """Atomic Order + OrderItems write failed. Retry with the same external order ref."""

    def __init__(self, external_order_ref: str, cause: Exception):
        super().__init__(f"Failed to commit order {external_order_ref}: {cause}")
        self.external_order_ref = external_order_ref
        self.cause = cause


class SupplierFetchError(Exception):
    """A supplier feed could not be fetched or parsed."""


class SupplierSubmissionError(Exception):
    """A supplier rejected or did not receive a sub-order."""

    def __init__(self, supplier_name: str, message: str, retryable: bool = True):
        super().__init__(f"{supplier_name}: {message}")
        self.supplier_name = supplier_name
        self.retryable = retryable


class CatalogConflictError(Exception):
    """An identifier is already held by another product in the store."""
