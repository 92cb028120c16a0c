"""
Store adapters for the two customer databases.

- AccountStore: core2 `users` (identity, contact, credential, lifecycle)
- ProfileStore: core1 `customers` (address, geolocation, presence)
- BookingStore: core2 `bookings` (read-only)
- SystemLogAudit: core2 `system_logs` (best-effort audit trail)
"""

from customer_sync.stores.connection import StoreConnection
from customer_sync.stores.fields import FieldSet
from customer_sync.stores.account_store import AccountStore
from customer_sync.stores.profile_store import ProfileStore
from customer_sync.stores.booking_store import BookingStore
from customer_sync.stores.audit_log import SystemLogAudit

__all__ = [
    "StoreConnection",
    "FieldSet",
    "AccountStore",
    "ProfileStore",
    "BookingStore",
    "SystemLogAudit",
]
