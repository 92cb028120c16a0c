"""
Exception hierarchy for the customer sync service.

Adapters translate driver errors into these types at the store boundary so
the reconciler and the HTTP layer never depend on psycopg2 directly.
"""

from typing import Optional


class CustomerSyncError(Exception):
    """Base class for all customer sync failures."""

    code = "error"


class ValidationError(CustomerSyncError):
    """Raised when request input is rejected before any store is touched."""

    code = "invalid_input"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class StoreError(CustomerSyncError):
    """
    A statement failed against one of the two databases.

    Attributes:
        store: Logical store name (e.g. "core2.users")
        detail: Native driver error text, safe for operators to read
    """

    code = "store_error"

    def __init__(self, store: str, detail: str):
        super().__init__(f"[{store}] {detail}")
        self.store = store
        self.detail = detail


class ConnectionLostError(StoreError):
    """Raised when a dead connection could not be recovered for commit."""

    code = "connection_lost"


class AuthorizationError(CustomerSyncError):
    """Raised when the caller has no session or lacks a capability."""

    code = "unauthorized"

    def __init__(self, capability: Optional[str] = None, authenticated: bool = True):
        super().__init__("Unauthorized access.")
        self.capability = capability
        self.authenticated = authenticated
